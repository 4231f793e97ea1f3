#!/usr/bin/env python3
"""
Confidence classification for interaction predictions

Two independent schemes:
  - Scheme B scores interface quality from iPTM, the count of interface
    contacts with PAE < 3 Å and the mean interface pLDDT.
  - Scheme A thresholds the ipSAE score.
Both are pure functions of their inputs.
"""
import logging
from typing import Any, Dict, Iterable, Iterator, Optional, Union

from protoview.exceptions import ValidationError
from protoview.models.interaction import ConfidenceTier, PredictionRecord, Scheme
from protoview.utils.numeric import Number, or_zero, to_float, to_int

logger = logging.getLogger("protoview.classification")

# Scheme B thresholds
HIGH_IPTM = 0.7
HIGH_CONTACTS = 40
HIGH_PLDDT = 80
HIGH_MIXED_CONTACTS = 30
HIGH_MIXED_IPTM = 0.5
EXCLUSION_IPTM = 0.75
EXCLUSION_CONTACTS = 5
MEDIUM_IPTM = 0.6
MEDIUM_CONTACTS = 20
MEDIUM_PLDDT = 75
MEDIUM_MIXED_CONTACTS = 15
MEDIUM_MIXED_IPTM = 0.45

# Scheme A lower bounds, exclusive
IPSAE_HIGH = 0.7
IPSAE_MEDIUM = 0.5
IPSAE_LOW = 0.3

IPSAE_CLASS_LABELS = {
    'high confidence': ConfidenceTier.HIGH,
    'high': ConfidenceTier.HIGH,
    'medium confidence': ConfidenceTier.MEDIUM,
    'medium': ConfidenceTier.MEDIUM,
    'low/ambiguous': ConfidenceTier.LOW,
    'low confidence': ConfidenceTier.LOW,
    'low': ConfidenceTier.LOW,
    'very low': ConfidenceTier.VERY_LOW,
}


def classify_scheme_b(iptm: Optional[Number], contacts: Optional[Number],
                      plddt: Optional[Number]) -> ConfidenceTier:
    """Interface-quality tier

    Args:
        iptm: Interface predicted TM-score, 0..1
        contacts: Interface contacts with PAE < 3 Å
        plddt: Mean interface pLDDT, 0..100

    Returns:
        High, Medium or Low; missing inputs count as 0
    """
    iptm, contacts, plddt = or_zero(iptm), or_zero(contacts), or_zero(plddt)

    meets_high = (
        iptm >= HIGH_IPTM
        or (contacts >= HIGH_CONTACTS and plddt >= HIGH_PLDDT)
        or (contacts >= HIGH_MIXED_CONTACTS and iptm >= HIGH_MIXED_IPTM and plddt >= HIGH_PLDDT)
    )
    # Few confident contacts cannot be rescued by a moderate iPTM
    excluded_from_high = iptm < EXCLUSION_IPTM and contacts < EXCLUSION_CONTACTS

    if meets_high and not excluded_from_high:
        return ConfidenceTier.HIGH

    if (iptm >= MEDIUM_IPTM
            or (contacts >= MEDIUM_CONTACTS and plddt >= MEDIUM_PLDDT)
            or (contacts >= MEDIUM_MIXED_CONTACTS and iptm >= MEDIUM_MIXED_IPTM)):
        return ConfidenceTier.MEDIUM

    return ConfidenceTier.LOW


def classify_scheme_a(score: Optional[Number]) -> Optional[ConfidenceTier]:
    """ipSAE tier; None when there is no score"""
    if score is None:
        return None
    if score > IPSAE_HIGH:
        return ConfidenceTier.HIGH
    if score > IPSAE_MEDIUM:
        return ConfidenceTier.MEDIUM
    if score > IPSAE_LOW:
        return ConfidenceTier.LOW
    return ConfidenceTier.VERY_LOW


def classify(scheme: Union[Scheme, str], metrics: Dict[str, Any]) -> Optional[ConfidenceTier]:
    """Classify a metrics mapping under one scheme

    Args:
        scheme: Scheme.A reads 'ipsae'; Scheme.B reads 'iptm',
            'contacts_pae_lt_3' and 'interface_plddt'
        metrics: Raw metric values; numeric strings are accepted

    Returns:
        Tier, or None for scheme A without a score

    Raises:
        ValidationError: For an unknown scheme
        MalformedRecordError: For unparseable metric values
    """
    try:
        scheme = Scheme(scheme)
    except ValueError as e:
        raise ValidationError(f"Unknown classification scheme: {scheme!r}") from e

    if scheme is Scheme.A:
        return classify_scheme_a(to_float(metrics.get('ipsae'), 'ipsae'))
    return classify_scheme_b(
        to_float(metrics.get('iptm'), 'iptm'),
        to_int(metrics.get('contacts_pae_lt_3'), 'contacts_pae_lt_3'),
        to_float(metrics.get('interface_plddt'), 'interface_plddt'),
    )


def normalize_ipsae_class(label: Optional[str]) -> Optional[ConfidenceTier]:
    """Map an analysis-pipeline class label ('High Confidence', 'Low/Ambiguous', ...) to a tier

    Unrecognised labels give None.
    """
    if label is None:
        return None
    return IPSAE_CLASS_LABELS.get(str(label).strip().lower())


def scheme_b_tier(record: PredictionRecord) -> ConfidenceTier:
    return classify_scheme_b(record.iptm, record.contacts_pae_lt_3, record.interface_plddt)


def assign_tiers(record: PredictionRecord) -> PredictionRecord:
    """Set both stored tiers on a record from its metrics

    The stored ipSAE tier always comes from the score; a pipeline label that
    disagrees with it is logged and ignored.

    Args:
        record: Record to update in place

    Returns:
        The same record
    """
    record.confidence = scheme_b_tier(record)
    record.ipsae_confidence = classify_scheme_a(record.ipsae)

    if record.reported_ipsae_class is not None and record.ipsae is not None:
        reported = normalize_ipsae_class(record.reported_ipsae_class)
        if reported != record.ipsae_confidence:
            logger.warning(
                f"ipSAE class {record.reported_ipsae_class!r} for {record.subject_key} "
                f"disagrees with score {record.ipsae}; storing "
                f"{record.ipsae_confidence.value}"
            )
    return record


def is_persistable(record: PredictionRecord) -> bool:
    """False for records whose ipSAE tier is Very Low; those are never stored"""
    return classify_scheme_a(record.ipsae) is not ConfidenceTier.VERY_LOW


def in_view(record: PredictionRecord, scheme: Union[Scheme, str]) -> bool:
    """Whether a record is visible when browsing under a scheme

    The scheme A view holds only records with an ipSAE score; the scheme B
    view holds everything.
    """
    return Scheme(scheme) is Scheme.B or record.has_ipsae


def filter_view(records: Iterable[PredictionRecord],
                scheme: Union[Scheme, str]) -> Iterator[PredictionRecord]:
    """Records visible under a scheme, in input order"""
    scheme = Scheme(scheme)
    return (r for r in records if in_view(r, scheme))


def view_tier(record: PredictionRecord, scheme: Union[Scheme, str]) -> Optional[ConfidenceTier]:
    """Tier shown for a record under a scheme"""
    if Scheme(scheme) is Scheme.A:
        return record.ipsae_confidence
    return record.confidence
