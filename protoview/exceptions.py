#!/usr/bin/env python3
"""
Exception hierarchy for ProtoView.
All custom exceptions should inherit from ProtoViewError.
"""
from typing import Dict, Any, Optional


class ProtoViewError(Exception):
    """Base exception for all ProtoView errors"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        """Initialize with error message and optional details

        Args:
            message: Error message
            details: Optional details dictionary with context
        """
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ConfigurationError(ProtoViewError):
    """Error related to configuration issues"""
    pass


class DatabaseError(ProtoViewError):
    """Base class for database-related errors"""
    pass


class ConnectionError(DatabaseError):
    """Error connecting to a database"""
    pass


class QueryError(DatabaseError):
    """Error executing a database query"""
    pass


class TransactionConflictError(DatabaseError):
    """Concurrent write on the same identity key; retry the whole reconcile call"""
    pass


class ValidationError(ProtoViewError):
    """Data validation error"""
    pass


class MalformedRecordError(ValidationError):
    """Prediction record is missing identity fields or carries unparseable numbers"""
    pass


class ReconciliationError(ProtoViewError):
    """Base class for duplicate reconciliation errors"""
    pass


class AmbiguousMergeError(ReconciliationError):
    """More than one stored record claims authoritative ipSAE data for one identity key"""
    pass
