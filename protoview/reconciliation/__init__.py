from .reconciler import (
    ReconcileAction, ReconciliationResult, RecomputeReport, reconcile, recompute_tiers
)
from .cleanup import CleanupReport, CleanupFailure, CleanupGroup, bulk_cleanup

__all__ = [
    'ReconcileAction', 'ReconciliationResult', 'RecomputeReport', 'reconcile', 'recompute_tiers',
    'CleanupReport', 'CleanupFailure', 'CleanupGroup', 'bulk_cleanup',
]
