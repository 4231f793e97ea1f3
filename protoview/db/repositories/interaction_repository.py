#!/usr/bin/env python3
"""
Interaction repository for ProtoView
Handles database operations for stored prediction records
"""
import logging
from typing import List, Dict, Any, Optional, Iterator, Iterable, Sequence, Union

from protoview.db.manager import DBManager
from protoview.exceptions import ValidationError
from protoview.models.interaction import (
    ConfidenceTier, PredictionRecord, Scheme, SubjectKey
)


class InteractionRepository:
    """Repository for prediction records"""

    def __init__(self, db_manager: DBManager, schema: str = "protoview",
                 table: str = "prediction_records"):
        """Initialize repository

        Args:
            db_manager: Database manager instance
            schema: Schema holding the table
            table: Table name
        """
        self.db = db_manager
        self.table = f"{schema}.{table}"
        self.logger = logging.getLogger("protoview.db.interaction_repository")

    # Statements shared by the single-call methods and the transactional callbacks

    def _select_subject_sql(self, for_update: bool) -> str:
        query = f"""
        SELECT * FROM {self.table}
        WHERE bait_key = %s AND prey_key = %s
        ORDER BY id
        """
        if for_update:
            query += " FOR UPDATE"
        return query

    def _insert_sql(self, columns: Sequence[str]) -> str:
        return (f"INSERT INTO {self.table} ({', '.join(columns)}) "
                f"VALUES ({', '.join(['%s'] * len(columns))}) RETURNING id, ingested_at")

    def _update_sql(self, columns: Sequence[str]) -> str:
        set_items = ", ".join(f"{c} = %s" for c in columns)
        return f"UPDATE {self.table} SET {set_items}, updated_at = CURRENT_TIMESTAMP WHERE id = %s"

    def _delete_sql(self) -> str:
        return f"DELETE FROM {self.table} WHERE id = ANY(%s)"

    # Cursor-level operations, used inside DBManager.execute_transaction

    def lock_subject(self, cursor, subject_key: SubjectKey) -> List[PredictionRecord]:
        """Select and row-lock every record stored for a subject key"""
        cursor.execute(self._select_subject_sql(for_update=True),
                       (subject_key.bait_key, subject_key.prey_key))
        return [PredictionRecord.from_db_row(dict(row)) for row in cursor.fetchall()]

    def insert_with_cursor(self, cursor, record: PredictionRecord) -> int:
        data = record.to_db_dict()
        columns = list(data.keys())
        cursor.execute(self._insert_sql(columns), [data[c] for c in columns])
        row = cursor.fetchone()
        if isinstance(row, dict):
            record.id, record.ingested_at = row['id'], row['ingested_at']
        else:
            record.id, record.ingested_at = row[0], row[1]
        return record.id

    def update_with_cursor(self, cursor, record: PredictionRecord) -> int:
        if record.id is None:
            raise ValidationError("Cannot update a record without an id",
                                  {"subject": str(record.subject_key)})
        data = record.to_db_dict()
        columns = list(data.keys())
        cursor.execute(self._update_sql(columns), [data[c] for c in columns] + [record.id])
        return cursor.rowcount

    def delete_with_cursor(self, cursor, ids: Sequence[int]) -> int:
        if not ids:
            return 0
        cursor.execute(self._delete_sql(), (list(ids),))
        return cursor.rowcount

    # Single-call operations

    def get_by_subject(self, subject_key: SubjectKey, for_update: bool = False) -> List[PredictionRecord]:
        """Get every record stored for a subject key

        Args:
            subject_key: Bait/prey key
            for_update: Lock the rows; only meaningful inside a transaction,
                see lock_subject

        Returns:
            Records ordered by id
        """
        if for_update:
            return self.db.execute_transaction(
                lambda cursor: self.lock_subject(cursor, subject_key), dict_cursor=True
            )
        rows = self.db.execute_dict_query(self._select_subject_sql(for_update=False),
                                          (subject_key.bait_key, subject_key.prey_key))
        return [PredictionRecord.from_db_row(row) for row in rows]

    def get_by_id(self, record_id: int) -> Optional[PredictionRecord]:
        """Get record by ID"""
        rows = self.db.execute_dict_query(f"SELECT * FROM {self.table} WHERE id = %s", (record_id,))
        if not rows:
            return None
        return PredictionRecord.from_db_row(rows[0])

    def insert(self, record: PredictionRecord) -> int:
        """Insert a record

        Returns:
            New record id

        Raises:
            TransactionConflictError: If a record with the same identity key exists
        """
        record_id = self.db.insert(self.table, record.to_db_dict(), "id")
        record.id = record_id
        self.logger.debug(f"Inserted {record.subject_key} with ID {record_id}")
        return record_id

    def update(self, record: PredictionRecord) -> bool:
        """Write all columns of a stored record

        Returns:
            True if a row was updated
        """
        if record.id is None:
            raise ValidationError("Cannot update a record without an id",
                                  {"subject": str(record.subject_key)})
        rows = self.db.update(self.table, record.to_db_dict(), "id = %s", (record.id,))
        return rows > 0

    def delete_ids(self, ids: Sequence[int]) -> int:
        """Delete records by id

        Returns:
            Number of rows deleted
        """
        if not ids:
            return 0
        return self.db.delete(self.table, "id = ANY(%s)", (list(ids),))

    def iter_all(self, batch_size: int = 2000) -> Iterator[PredictionRecord]:
        """Stream every stored record in id order"""
        query = f"SELECT * FROM {self.table} ORDER BY id"
        for row in self.db.iter_dict_query(query, batch_size=batch_size):
            yield PredictionRecord.from_db_row(row)

    def count(self) -> int:
        rows = self.db.execute_query(f"SELECT COUNT(*) FROM {self.table}")
        return rows[0][0] if rows else 0

    def query_view(self, scheme: Union[Scheme, str],
                   tiers: Optional[Iterable[Union[ConfidenceTier, str]]] = None,
                   limit: Optional[int] = None) -> List[PredictionRecord]:
        """Records visible when browsing under a scheme

        The scheme A view only contains records with an ipSAE score and
        filters on the ipSAE tier; the scheme B view contains every record
        and filters on the interface-quality tier.

        Args:
            scheme: Scheme.A or Scheme.B
            tiers: Tiers to include; all when None
            limit: Maximum number of records

        Returns:
            Records ordered by the scheme's score, best first
        """
        scheme = Scheme(scheme)
        conditions = []
        params: List[Any] = []

        if scheme is Scheme.A:
            tier_column = "ipsae_confidence"
            conditions.append("ipsae IS NOT NULL")
            order = "ipsae DESC, id"
        else:
            tier_column = "confidence"
            order = "iptm DESC, id"

        if tiers is not None:
            tier_values = [ConfidenceTier.from_value(t).value for t in tiers]
            conditions.append(f"{tier_column}::text = ANY(%s)")
            params.append(tier_values)

        query = f"SELECT * FROM {self.table}"
        if conditions:
            query += " WHERE " + " AND ".join(conditions)
        query += f" ORDER BY {order}"
        if limit is not None:
            query += " LIMIT %s"
            params.append(int(limit))

        rows = self.db.execute_dict_query(query, tuple(params))
        return [PredictionRecord.from_db_row(row) for row in rows]

    def apply_cleanup_group(self, keep: PredictionRecord, remove: Sequence[PredictionRecord]) -> int:
        """Delete duplicates and write the keeper in one transaction

        Deletion runs first so the keeper's update never collides with a
        duplicate under the unique identity index.

        Returns:
            Number of rows deleted

        Raises:
            TransactionConflictError: On lock or serialization conflict
            DatabaseError: If the transaction fails otherwise
        """
        ids = [r.id for r in remove]

        def _apply(cursor) -> int:
            deleted = self.delete_with_cursor(cursor, ids)
            self.update_with_cursor(cursor, keep)
            return deleted

        deleted = self.db.execute_transaction(_apply)
        self.logger.debug(f"Kept id {keep.id}, deleted {deleted} duplicates for {keep.subject_key}")
        return deleted

    def update_tiers(self, records: Iterable[PredictionRecord]) -> int:
        """Persist recomputed tiers in one transaction

        Returns:
            Number of rows updated
        """
        params = [
            (r.confidence.value if r.confidence else None,
             r.ipsae_confidence.value if r.ipsae_confidence else None,
             r.id)
            for r in records
        ]
        if not params:
            return 0
        query = (f"UPDATE {self.table} SET confidence = %s::protoview.confidence_tier, "
                 f"ipsae_confidence = %s::protoview.confidence_tier, "
                 f"updated_at = CURRENT_TIMESTAMP WHERE id = %s")

        def _apply(cursor) -> int:
            cursor.executemany(query, params)
            return len(params)

        updated = self.db.execute_transaction(_apply)
        self.logger.info(f"Updated tiers for {updated} records")
        return updated
