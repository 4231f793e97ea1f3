#!/usr/bin/env python3
"""
Bulk duplicate cleanup

Groups stored records by identity key and reduces every group with more
than one member to a single keeper. Each group is applied through a
callback (normally one database transaction); a failing group is reported
and the pass moves on.
"""
import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional

from protoview.classification.classifier import assign_tiers
from protoview.exceptions import ProtoViewError, ValidationError
from protoview.models.interaction import IdentityKey, PredictionRecord
from protoview.reconciliation.reconciler import fill_missing, recency, select_keeper

logger = logging.getLogger("protoview.cleanup")


@dataclass
class CleanupGroup:
    """One duplicate group: the record kept (with gaps filled from the rest) and the ids removed"""
    identity_key: IdentityKey
    keep: PredictionRecord
    remove: List[PredictionRecord]

    @property
    def remove_ids(self) -> List[int]:
        return [r.id for r in self.remove]


@dataclass
class CleanupFailure:
    identity_key: IdentityKey
    error: str
    error_type: str

    def to_dict(self) -> Dict[str, str]:
        subject, iptm, contacts = self.identity_key
        return {
            'subject': str(subject),
            'iptm': iptm,
            'contacts_pae_lt_3': contacts,
            'error_type': self.error_type,
            'error': self.error,
        }


@dataclass
class CleanupReport:
    groups_processed: int = 0
    duplicates_removed: int = 0
    failures: List[CleanupFailure] = field(default_factory=list)
    dry_run: bool = False
    groups: List[CleanupGroup] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.failures

    def to_dict(self) -> Dict:
        return {
            'groups_processed': self.groups_processed,
            'duplicates_removed': self.duplicates_removed,
            'dry_run': self.dry_run,
            'failures': [f.to_dict() for f in self.failures],
        }


def group_by_identity(records: Iterable[PredictionRecord]) -> "OrderedDict[IdentityKey, List[PredictionRecord]]":
    """Group records by identity key, preserving first-seen order"""
    groups: "OrderedDict[IdentityKey, List[PredictionRecord]]" = OrderedDict()
    for record in records:
        groups.setdefault(record.identity_key, []).append(record)
    return groups


def plan_group(identity_key: IdentityKey, members: List[PredictionRecord]) -> CleanupGroup:
    """Choose the keeper of a duplicate group and fill its null fields from the others

    Raises:
        ValidationError: If a member to be removed has no id
    """
    stored_keeper = select_keeper(members)
    removed = [m for m in members if m is not stored_keeper]
    missing_ids = [m for m in removed if m.id is None]
    if missing_ids:
        raise ValidationError(f"Cannot remove unsaved duplicates of {identity_key[0]}",
                              {"subject": str(identity_key[0]), "unsaved": len(missing_ids)})

    keep = stored_keeper.copy(reported_ipsae_class=None)
    for other in sorted(removed, key=recency, reverse=True):
        fill_missing(other, keep)
    assign_tiers(keep)
    return CleanupGroup(identity_key, keep, removed)


def bulk_cleanup(records: Iterable[PredictionRecord],
                 apply_group: Optional[Callable[[CleanupGroup], None]] = None) -> CleanupReport:
    """Remove duplicates so that each identity key keeps exactly one record

    Args:
        records: Every stored record in scope, in any order
        apply_group: Persists one group atomically; when None the pass is a
            dry run and only reports what it would remove

    Returns:
        CleanupReport; groups that could not be planned or whose callback
        raised are in failures and count neither as processed nor as removed
    """
    report = CleanupReport(dry_run=apply_group is None)

    for identity_key, members in group_by_identity(records).items():
        if len(members) < 2:
            continue

        try:
            group = plan_group(identity_key, members)
            if apply_group is not None:
                apply_group(group)
        except ProtoViewError as e:
            logger.error(f"Cleanup failed for {identity_key[0]} (iptm {identity_key[1]}): {e}")
            report.failures.append(CleanupFailure(identity_key, str(e), e.__class__.__name__))
            continue
        except Exception as e:
            logger.error(f"Unexpected error cleaning {identity_key[0]} (iptm {identity_key[1]}): {e}",
                         exc_info=True)
            report.failures.append(CleanupFailure(identity_key, str(e), e.__class__.__name__))
            continue
        report.groups.append(group)

        logger.debug(f"{'Would keep' if report.dry_run else 'Kept'} id {group.keep.id} for "
                     f"{identity_key[0]}, removing {group.remove_ids}")
        report.groups_processed += 1
        report.duplicates_removed += len(group.remove)

    logger.info(f"Cleanup {'dry run ' if report.dry_run else ''}complete: "
                f"{report.groups_processed} groups, {report.duplicates_removed} duplicates removed, "
                f"{len(report.failures)} failures")
    return report
