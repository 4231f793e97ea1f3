#!/usr/bin/env python3
"""
Shared fixtures for the ProtoView test suite

Unit tests run against an in-memory repository that mimics the
transactional behaviour of InteractionRepository; no database is needed.
"""
import copy
import logging
import itertools
from datetime import datetime, timedelta
from typing import Dict, List

import pytest

from protoview.core.context import ApplicationContext
from protoview.exceptions import TransactionConflictError
from protoview.models.interaction import PredictionRecord, SubjectKey

BASE_TIME = datetime(2025, 1, 1, 12, 0, 0)


def make_record(bait="Q9NVL8", prey="P68363", iptm=0.59, contacts=298, plddt=86.1,
                ipsae=None, version="v3", record_id=None, ingested_offset=0, **kwargs) -> PredictionRecord:
    """Build a PredictionRecord with sensible defaults"""
    subject = kwargs.pop("subject_key", None) or SubjectKey.of(bait, prey)
    if ipsae is not None:
        kwargs.setdefault("ipsae_pae_cutoff", 10.0)
    return PredictionRecord(
        subject_key=subject,
        iptm=iptm,
        contacts_pae_lt_3=contacts,
        interface_plddt=plddt,
        ipsae=ipsae,
        analysis_version=version,
        id=record_id,
        ingested_at=BASE_TIME + timedelta(minutes=ingested_offset) if record_id is not None else None,
        **kwargs
    )


class FakeDB:
    """Stands in for DBManager.execute_transaction with rollback on error"""

    def __init__(self, repository: "FakeInteractionRepository"):
        self.repository = repository
        self.transactions = 0
        self.fail_next: List[Exception] = []

    def execute_transaction(self, callback, dict_cursor=False):
        self.transactions += 1
        snapshot = copy.deepcopy(self.repository.rows)
        try:
            if self.fail_next:
                raise self.fail_next.pop(0)
            return callback(None)
        except Exception:
            self.repository.rows = snapshot
            raise


class FakeInteractionRepository:
    """In-memory InteractionRepository honouring the unique identity index"""

    def __init__(self, records=None, enforce_unique=True):
        self.rows: Dict[int, PredictionRecord] = {}
        self.enforce_unique = enforce_unique
        self._ids = itertools.count(1)
        self._clock = itertools.count(1)
        self.db = FakeDB(self)
        self.failing_groups = set()
        for record in records or []:
            self.seed(record)

    def seed(self, record: PredictionRecord) -> PredictionRecord:
        stored = copy.deepcopy(record)
        if stored.id is None:
            stored.id = next(self._ids)
        if stored.ingested_at is None:
            stored.ingested_at = BASE_TIME + timedelta(minutes=next(self._clock))
        self.rows[stored.id] = stored
        return stored

    def _check_unique(self, record: PredictionRecord) -> None:
        if not self.enforce_unique:
            return
        for other in self.rows.values():
            if other.id != record.id and other.identity_key == record.identity_key:
                raise TransactionConflictError("duplicate key value violates unique constraint",
                                               {"code": "23505"})

    def lock_subject(self, cursor, subject_key):
        return [copy.deepcopy(r) for r in sorted(self.rows.values(), key=lambda r: r.id)
                if r.subject_key == subject_key]

    def insert_with_cursor(self, cursor, record):
        self._check_unique(record)
        record.id = next(self._ids)
        record.ingested_at = BASE_TIME + timedelta(minutes=next(self._clock))
        self.rows[record.id] = copy.deepcopy(record)
        return record.id

    def update_with_cursor(self, cursor, record):
        self._check_unique(record)
        self.rows[record.id] = copy.deepcopy(record)
        return 1

    def delete_with_cursor(self, cursor, ids):
        removed = 0
        for record_id in ids:
            if self.rows.pop(record_id, None) is not None:
                removed += 1
        return removed

    def apply_cleanup_group(self, keep, remove):
        def _apply(cursor):
            if keep.subject_key in self.failing_groups:
                raise TransactionConflictError("could not obtain lock", {"code": "55P03"})
            deleted = self.delete_with_cursor(cursor, [r.id for r in remove])
            self.update_with_cursor(cursor, keep)
            return deleted
        return self.db.execute_transaction(_apply)

    def update_tiers(self, records):
        records = list(records)
        for record in records:
            stored = self.rows[record.id]
            stored.confidence = record.confidence
            stored.ipsae_confidence = record.ipsae_confidence
        return len(records)

    def delete_ids(self, ids):
        return self.delete_with_cursor(None, ids)

    def iter_all(self, batch_size=2000):
        for record_id in sorted(self.rows):
            yield copy.deepcopy(self.rows[record_id])

    def all(self) -> List[PredictionRecord]:
        return list(self.iter_all())


@pytest.fixture
def record_factory():
    """Factory for prediction records"""
    return make_record


@pytest.fixture
def repository():
    """Empty in-memory repository"""
    return FakeInteractionRepository()


@pytest.fixture
def sample_prediction():
    """One entry of an analysis JSON document as written by the v4 pipeline"""
    return {
        "directory_name": "q9nvl8_and_p68363",
        "iptm": 0.59,
        "ipsae": 0.751,
        "ipsae_confidence_class": "High Confidence",
        "ipsae_pae_cutoff": 10.0,
        "contacts_pae3": 298,
        "contacts_pae6": 412,
        "mean_interface_plddt": 86.1,
    }


@pytest.fixture(autouse=True)
def reset_application_context():
    """Never leak the ApplicationContext singleton between tests"""
    ApplicationContext.reset()
    yield
    ApplicationContext.reset()


@pytest.fixture(autouse=True)
def restore_package_logger():
    """Undo LoggingManager.configure so caplog keeps seeing protoview records"""
    yield
    package_logger = logging.getLogger("protoview")
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
        handler.close()
    package_logger.propagate = True
    package_logger.setLevel(logging.NOTSET)


def pytest_configure(config):
    """Register ProtoView test markers"""
    config.addinivalue_line(
        "markers", "unit: fast test with no external services"
    )
    config.addinivalue_line(
        "markers", "integration: test requiring a PostgreSQL database"
    )
