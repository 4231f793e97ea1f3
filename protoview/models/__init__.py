#!/usr/bin/env python3
"""
ProtoView models
"""
from .interaction import (
    ConfidenceTier, Scheme, SubjectKey, PredictionRecord, IdentityKey
)

__all__ = ['ConfidenceTier', 'Scheme', 'SubjectKey', 'PredictionRecord', 'IdentityKey']
