#!/usr/bin/env python3
"""
Summary statistics over stored prediction records
"""
import logging
from typing import Dict, Iterable, List, Optional, Sequence, Union

import numpy as np
import pandas as pd

from protoview.classification.classifier import in_view, view_tier
from protoview.models.interaction import ConfidenceTier, PredictionRecord, Scheme

logger = logging.getLogger("protoview.services.report")

TIER_ORDER = [t.value for t in ConfidenceTier]
PERCENTILES = [10, 25, 50, 75, 90, 95, 99]
SCORE_FIELDS = ('iptm', 'ipsae', 'interface_plddt', 'contacts_pae_lt_3', 'contacts_pae_lt_6')


def tier_distribution(records: Iterable[PredictionRecord]) -> pd.DataFrame:
    """Tier counts and percentages under both schemes

    Percentages are relative to the records visible under each scheme, so
    the scheme A rows only cover records with an ipSAE score.

    Returns:
        DataFrame with columns scheme, tier, count, percent
    """
    records = list(records)
    rows: List[Dict] = []
    for scheme in Scheme:
        visible = [r for r in records if in_view(r, scheme)]
        tiers = pd.Series([view_tier(r, scheme) for r in visible], dtype=object)
        counts = tiers.map(lambda t: t.value if t is not None else None).value_counts()
        total = len(visible)
        for tier in TIER_ORDER:
            count = int(counts.get(tier, 0))
            rows.append({
                'scheme': scheme.value,
                'tier': tier,
                'count': count,
                'percent': round(100.0 * count / total, 1) if total else 0.0,
            })
        unset = total - int(counts.sum())
        if unset:
            logger.warning(f"{unset} records have no stored scheme {scheme.value} tier; "
                           f"run 'protoview recompute'")
    return pd.DataFrame(rows, columns=['scheme', 'tier', 'count', 'percent'])


def score_summary(records: Iterable[PredictionRecord], field: str = 'iptm',
                  threshold: Optional[float] = None) -> Dict[str, Union[int, float, None]]:
    """Descriptive statistics for one numeric field

    Args:
        records: Records to summarise; null values are skipped
        field: One of iptm, ipsae, interface_plddt, contacts_pae_lt_3, contacts_pae_lt_6
        threshold: Also count values at or above this threshold

    Returns:
        Dictionary with count, mean, median, min, max, std and p<N> percentiles;
        statistics are None when there are no values

    Raises:
        ValueError: For an unknown field
    """
    if field not in SCORE_FIELDS:
        raise ValueError(f"Unknown score field: {field}")

    values = np.array([getattr(r, field) for r in records if getattr(r, field) is not None],
                      dtype=float)
    summary: Dict[str, Union[int, float, None]] = {'field': field, 'count': int(values.size)}

    if values.size == 0:
        for key in ('mean', 'median', 'min', 'max', 'std'):
            summary[key] = None
        for percentile in PERCENTILES:
            summary[f"p{percentile}"] = None
        if threshold is not None:
            summary['above_threshold'] = 0
        return summary

    summary.update({
        'mean': float(np.mean(values)),
        'median': float(np.median(values)),
        'min': float(np.min(values)),
        'max': float(np.max(values)),
        'std': float(np.std(values)),
    })
    for percentile in PERCENTILES:
        summary[f"p{percentile}"] = float(np.percentile(values, percentile))
    if threshold is not None:
        summary['above_threshold'] = int(np.sum(values >= threshold))
    return summary


def summary_frame(records: Iterable[PredictionRecord],
                  fields: Sequence[str] = SCORE_FIELDS) -> pd.DataFrame:
    """score_summary for several fields, one row per field"""
    records = list(records)
    return pd.DataFrame([score_summary(records, f) for f in fields]).set_index('field')
