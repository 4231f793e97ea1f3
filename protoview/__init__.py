#!/usr/bin/env python3
"""
ProtoView interaction confidence engine

Classifies AlphaFold protein-interaction predictions into confidence tiers
and keeps one stored record per prediction identity.
"""

__version__ = '0.1.0'
__author__ = 'ProtoView Team'
__license__ = 'MIT'

from .core.context import ApplicationContext
from .exceptions import ProtoViewError
from .error_handlers import handle_exceptions

__all__ = ['ApplicationContext', 'ProtoViewError', 'handle_exceptions']
