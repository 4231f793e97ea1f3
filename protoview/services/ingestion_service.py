#!/usr/bin/env python3
"""
Ingestion of prediction records into storage.

Each record is validated, filtered and reconciled against the rows already
stored for its subject key inside one transaction that row-locks those
rows. Per-record failures are logged and collected; they never abort the
batch.
"""
import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from protoview.classification.classifier import is_persistable
from protoview.error_handlers import log_exception
from protoview.exceptions import (
    AmbiguousMergeError, MalformedRecordError, TransactionConflictError, ValidationError
)
from protoview.models.interaction import PredictionRecord
from protoview.reconciliation.reconciler import ReconcileAction, ReconciliationResult, reconcile

RECORD_ERRORS = (MalformedRecordError, AmbiguousMergeError, TransactionConflictError)


@dataclass
class IngestionFailure:
    subject: str
    error_type: str
    error: str
    index: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {'index': self.index, 'subject': self.subject,
                'error_type': self.error_type, 'error': self.error}


@dataclass
class IngestionReport:
    """Counts per outcome for one ingestion batch"""
    received: int = 0
    inserted: int = 0
    updated: int = 0
    unchanged: int = 0
    filtered: int = 0
    failures: List[IngestionFailure] = field(default_factory=list)

    @property
    def failed(self) -> int:
        return len(self.failures)

    def failure_counts(self) -> Dict[str, int]:
        return dict(Counter(f.error_type for f in self.failures))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'received': self.received,
            'inserted': self.inserted,
            'updated': self.updated,
            'unchanged': self.unchanged,
            'filtered': self.filtered,
            'failed': self.failed,
            'failures': [f.to_dict() for f in self.failures],
        }


class IngestionService:
    """Validates, reconciles and stores prediction records"""

    def __init__(self, repository, ingestion_config: Optional[Dict[str, Any]] = None):
        """Initialize ingestion service

        Args:
            repository: InteractionRepository (or anything with its
                lock_subject/insert_with_cursor/update_with_cursor methods and a
                db attribute providing execute_transaction)
            ingestion_config: 'ingestion' configuration section
        """
        self.repository = repository
        config = ingestion_config or {}
        self.default_analysis_version = config.get('default_analysis_version', 'v3')
        self.default_alphafold_version = config.get('default_alphafold_version', 'AF3')
        self.default_pae_cutoff = float(config.get('default_ipsae_pae_cutoff', 10.0))
        self.conflict_retries = max(0, int(config.get('conflict_retries', 2)))
        self.logger = logging.getLogger("protoview.services.ingestion")

    @classmethod
    def from_context(cls, context) -> 'IngestionService':
        return cls(context.interactions, context.config_manager.get_section('ingestion'))

    def ingest_one(self, record: PredictionRecord) -> ReconciliationResult:
        """Reconcile and store one record in its own transaction

        A transaction conflict is retried up to conflict_retries times before
        it propagates.

        Raises:
            MalformedRecordError: If the record fails validation
            AmbiguousMergeError: If stored data for the key is ambiguous
            TransactionConflictError: If conflicts persist after retries
        """
        record.validate()
        if not is_persistable(record):
            return ReconciliationResult(ReconcileAction.DROP, record)

        def _apply(cursor) -> ReconciliationResult:
            existing = self.repository.lock_subject(cursor, record.subject_key)
            result = reconcile(record, existing)
            if result.action is ReconcileAction.INSERT:
                self.repository.insert_with_cursor(cursor, result.record)
            elif result.action is ReconcileAction.UPDATE and result.changed_fields:
                self.repository.update_with_cursor(cursor, result.record)
            return result

        attempt = 0
        while True:
            try:
                return self.repository.db.execute_transaction(_apply, dict_cursor=True)
            except TransactionConflictError as e:
                if attempt >= self.conflict_retries:
                    raise
                attempt += 1
                self.logger.info(f"Retrying {record.subject_key} after conflict "
                                 f"({attempt}/{self.conflict_retries}): {e.message}")

    def ingest(self, records: Iterable[PredictionRecord]) -> IngestionReport:
        """Ingest a batch of records

        Args:
            records: Parsed prediction records

        Returns:
            IngestionReport with per-outcome counts and collected failures
        """
        report = IngestionReport()
        self._ingest_indexed(enumerate(records), report)
        self._log_summary(report)
        return report

    def _ingest_indexed(self, indexed_records, report: IngestionReport) -> None:
        for index, record in indexed_records:
            report.received += 1
            try:
                result = self.ingest_one(record)
            except RECORD_ERRORS as e:
                self._record_failure(report, e, str(record.subject_key), index)
                continue
            self._count(report, result)

    def _log_summary(self, report: IngestionReport) -> None:
        self.logger.info(
            f"Ingested {report.received} records: {report.inserted} inserted, "
            f"{report.updated} updated, {report.unchanged} unchanged, "
            f"{report.filtered} filtered, {report.failed} failed"
        )

    def ingest_predictions(self, payload: Dict[str, Any], source_path: Optional[str] = None,
                           analysis_version: Optional[str] = None,
                           alphafold_version: Optional[str] = None) -> IngestionReport:
        """Ingest an analysis JSON document

        Args:
            payload: Parsed document with a 'filtered_predictions' list
            source_path: Provenance stored on every record
            analysis_version: Version tag; falls back to the payload's
                'analysis_version' and then to the configured default
            alphafold_version: AlphaFold generation; falls back to the payload's
                'alphafold_version' and then to the configured default

        Returns:
            IngestionReport; unparseable predictions are counted as failures

        Raises:
            ValidationError: If the payload has no prediction list
        """
        predictions = payload.get('filtered_predictions') if isinstance(payload, dict) else None
        if not isinstance(predictions, list):
            raise ValidationError("Analysis document has no 'filtered_predictions' list",
                                  {"source_path": source_path})

        version = str(analysis_version or payload.get('analysis_version') or self.default_analysis_version)
        af_version = alphafold_version or payload.get('alphafold_version') or self.default_alphafold_version

        report = IngestionReport()
        parsed = []
        for index, prediction in enumerate(predictions):
            try:
                parsed.append((index, PredictionRecord.from_prediction(
                    prediction, source_path=source_path, analysis_version=version,
                    alphafold_version=af_version, default_pae_cutoff=self.default_pae_cutoff,
                )))
            except MalformedRecordError as e:
                report.received += 1
                name = prediction.get('directory_name', '?') if isinstance(prediction, dict) else '?'
                self._record_failure(report, e, str(name), index)

        self._ingest_indexed(parsed, report)
        self._log_summary(report)
        return report

    def _count(self, report: IngestionReport, result: ReconciliationResult) -> None:
        if result.action is ReconcileAction.DROP:
            report.filtered += 1
        elif result.action is ReconcileAction.INSERT:
            report.inserted += 1
        elif result.changed_fields:
            report.updated += 1
        else:
            report.unchanged += 1

    def _record_failure(self, report: IngestionReport, error, subject: str, index: int) -> None:
        log_exception(self.logger, error, level=logging.WARNING,
                      context={"subject": subject, "index": index})
        report.failures.append(IngestionFailure(subject, error.__class__.__name__,
                                                error.message, index))
