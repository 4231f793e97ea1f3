from .classifier import (
    classify, classify_scheme_a, classify_scheme_b, normalize_ipsae_class,
    assign_tiers, is_persistable, filter_view
)

__all__ = [
    'classify', 'classify_scheme_a', 'classify_scheme_b', 'normalize_ipsae_class',
    'assign_tiers', 'is_persistable', 'filter_view',
]
