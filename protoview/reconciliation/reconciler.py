#!/usr/bin/env python3
"""
Reconciliation of an incoming prediction against the stored records for its key

reconcile() decides whether a prediction becomes a new row or is merged
into the row already stored under its identity key. It never touches
storage; the ingestion service applies the decision inside a transaction.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Iterable, Sequence, Tuple

from protoview.classification.classifier import (
    assign_tiers, classify_scheme_a, is_persistable, scheme_b_tier
)
from protoview.exceptions import AmbiguousMergeError
from protoview.models.interaction import ConfidenceTier, PredictionRecord
from protoview.utils.numeric import version_key

logger = logging.getLogger("protoview.reconcile")

# Inputs to the interface-quality tier that a merge may fill in
SCHEME_B_INPUTS = ('contacts_pae_lt_3', 'contacts_pae_lt_6', 'interface_plddt')

# Fields an additive merge may fill when the stored value is null
ADDITIVE_FIELDS = SCHEME_B_INPUTS + ('ipsae_pae_cutoff', 'source_path')

_EPOCH = datetime.min


class ReconcileAction(str, Enum):
    INSERT = "insert"
    UPDATE = "update"
    DROP = "drop"


@dataclass
class ReconciliationResult:
    """Outcome of reconcile()

    For UPDATE, record carries the id of the stored row it replaces and
    changed_fields lists the columns that differ; an empty list means the
    stored row is already up to date.
    """
    action: ReconcileAction
    record: PredictionRecord
    changed_fields: List[str] = field(default_factory=list)
    authoritative: bool = False

    @property
    def is_noop(self) -> bool:
        return self.action is ReconcileAction.UPDATE and not self.changed_fields


def is_more_authoritative(record: PredictionRecord, existing: PredictionRecord) -> bool:
    """Whether record supersedes existing

    True if record brings an ipSAE score that existing lacks, or if its
    analysis version sorts later. A later record without a score still
    supersedes provenance and version; the stored score is kept.
    """
    if record.has_ipsae and not existing.has_ipsae:
        return True
    return version_key(record.analysis_version) > version_key(existing.analysis_version)


def recency(record: PredictionRecord) -> Tuple:
    return (record.ingested_at or _EPOCH, record.id or 0)


def select_keeper(records: Sequence[PredictionRecord]) -> PredictionRecord:
    """Pick the record to keep among duplicates of one identity key

    The ipSAE-bearing record wins if there is one. Among several, the one
    from the most recent source wins: the later analysis version first,
    since every source_path belongs to one analysis run, then the latest
    ingestion, then the highest id. source_path itself is an opaque label
    and is never compared. Without ipSAE the most recently ingested record
    wins.

    Raises:
        ValueError: If records is empty
    """
    if not records:
        raise ValueError("select_keeper needs at least one record")
    scored = [r for r in records if r.has_ipsae]
    if scored:
        return max(scored, key=lambda r: (version_key(r.analysis_version),) + recency(r))
    return max(records, key=recency)


def _changed(before: PredictionRecord, after: PredictionRecord) -> List[str]:
    old, new = before.to_db_dict(), after.to_db_dict()
    return [column for column in new if old[column] != new[column]]


def _apply_authoritative(record: PredictionRecord, target: PredictionRecord) -> None:
    if record.has_ipsae:
        target.ipsae = record.ipsae
        target.ipsae_pae_cutoff = record.ipsae_pae_cutoff
        target.reported_ipsae_class = record.reported_ipsae_class
    if record.source_path is not None:
        target.source_path = record.source_path
    target.analysis_version = record.analysis_version
    target.alphafold_version = record.alphafold_version
    for name in SCHEME_B_INPUTS:
        value = getattr(record, name)
        if value is not None:
            setattr(target, name, value)


def fill_missing(record: PredictionRecord, target: PredictionRecord) -> None:
    """Copy fields that are null on target and set on record"""
    for name in ADDITIVE_FIELDS:
        if name == 'ipsae_pae_cutoff' and not target.has_ipsae:
            continue
        if getattr(target, name) is None and getattr(record, name) is not None:
            setattr(target, name, getattr(record, name))


def reconcile(record: PredictionRecord, existing: Iterable[PredictionRecord]) -> ReconciliationResult:
    """Decide how an incoming record lands in storage

    Args:
        record: Validated incoming record
        existing: Stored records for the same subject key; only those with
            an equal identity key are considered

    Returns:
        ReconciliationResult with the row to insert, or the merged row to
        write over an existing one, or DROP for a Very Low ipSAE record

    Raises:
        MalformedRecordError: If the record has no subject key or invalid metrics
        AmbiguousMergeError: If more than one matching stored record has ipSAE data
    """
    record.validate()
    if not is_persistable(record):
        logger.debug(f"Dropping {record.subject_key}: ipSAE {record.ipsae} is Very Low")
        return ReconciliationResult(ReconcileAction.DROP, record)

    key = record.identity_key
    matches = [e for e in existing if e.identity_key == key]

    if not matches:
        new_record = assign_tiers(record.copy(id=None))
        return ReconciliationResult(ReconcileAction.INSERT, new_record)

    scored = [m for m in matches if m.has_ipsae]
    if len(scored) > 1:
        raise AmbiguousMergeError(
            f"{len(scored)} stored records with ipSAE data for {record.subject_key}",
            {"subject": str(record.subject_key), "iptm": record.iptm,
             "ids": sorted(m.id for m in scored if m.id is not None)}
        )
    if len(matches) > 1:
        logger.warning(f"{len(matches)} stored duplicates for {record.subject_key}; "
                       f"merging into one, run cleanup to remove the rest")

    stored = select_keeper(matches)
    target = stored.copy(reported_ipsae_class=None)
    authoritative = is_more_authoritative(record, stored)

    if authoritative:
        _apply_authoritative(record, target)
    else:
        fill_missing(record, target)

    assign_tiers(target)
    changed = _changed(stored, target)
    if changed:
        logger.debug(f"Merging {record.subject_key} into id {stored.id} "
                     f"({'authoritative' if authoritative else 'additive'}): {', '.join(changed)}")
    return ReconciliationResult(ReconcileAction.UPDATE, target, changed, authoritative)


@dataclass
class RecomputeReport:
    """Result of recompute_tiers()

    changed: records whose stored tiers differ from their metrics, with the
        recomputed tiers applied
    very_low: records whose ipSAE score now classifies as Very Low; these
        can no longer be stored and should be deleted
    """
    examined: int = 0
    changed: List[PredictionRecord] = field(default_factory=list)
    very_low: List[PredictionRecord] = field(default_factory=list)


def recompute_tiers(records: Iterable[PredictionRecord]) -> RecomputeReport:
    """Recompute both stored tiers for every record

    Pure: inputs are not modified. Running it over its own output finds no
    further changes.
    """
    report = RecomputeReport()
    for record in records:
        report.examined += 1
        ipsae_tier = classify_scheme_a(record.ipsae)
        if ipsae_tier is ConfidenceTier.VERY_LOW:
            report.very_low.append(record)
            continue
        confidence = scheme_b_tier(record)
        if confidence != record.confidence or ipsae_tier != record.ipsae_confidence:
            report.changed.append(record.copy(confidence=confidence, ipsae_confidence=ipsae_tier))
    return report
