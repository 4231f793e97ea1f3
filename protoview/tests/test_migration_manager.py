#!/usr/bin/env python3
"""
Tests for protoview.db.migration_manager
"""

from unittest.mock import MagicMock, patch

import psycopg2
import pytest

from protoview.cli.main import PACKAGE_MIGRATIONS_DIR
from protoview.db.migration_manager import MigrationManager
from protoview.exceptions import ConnectionError, DatabaseError


@pytest.fixture
def migrations_dir(tmp_path):
    (tmp_path / "001_create.sql").write_text("CREATE TABLE t (id INT);")
    (tmp_path / "002_index.sql").write_text("BROKEN;")
    (tmp_path / "README.md").write_text("not a migration")
    return tmp_path


def _connection(applied, failing_sql=None):
    cursor = MagicMock()
    cursor.fetchall.return_value = [(name,) for name in applied]

    def execute(sql, params=None):
        if failing_sql is not None and sql == failing_sql:
            raise psycopg2.ProgrammingError("syntax error")

    cursor.execute.side_effect = execute
    conn = MagicMock()
    conn.cursor.return_value.__enter__.return_value = cursor
    return conn, cursor


@pytest.mark.unit
class TestMigrationManager:

    def test_migration_files_sorted_and_filtered(self, migrations_dir):
        manager = MigrationManager({}, str(migrations_dir))
        assert manager.get_migration_files() == ["001_create.sql", "002_index.sql"]

    def test_package_migrations_shipped(self):
        """Both bundled migrations are found in the package directory"""
        manager = MigrationManager({}, PACKAGE_MIGRATIONS_DIR)
        assert manager.get_migration_files() == [
            "001_create_prediction_records.sql",
            "002_enforce_identity_key.sql",
        ]

    def test_applies_only_pending(self, migrations_dir):
        (migrations_dir / "002_index.sql").write_text("CREATE INDEX i ON t (id);")
        conn, cursor = _connection(applied=["001_create.sql"])
        with patch('protoview.db.migration_manager.psycopg2.connect', return_value=conn):
            applied = MigrationManager({}, str(migrations_dir)).apply_migrations()

        assert applied == ["002_index.sql"]
        statements = [call[0][0] for call in cursor.execute.call_args_list]
        assert "CREATE INDEX i ON t (id);" in statements
        assert "CREATE TABLE t (id INT);" not in statements
        conn.close.assert_called_once()

    def test_up_to_date(self, migrations_dir):
        conn, _ = _connection(applied=["001_create.sql", "002_index.sql"])
        with patch('protoview.db.migration_manager.psycopg2.connect', return_value=conn):
            assert MigrationManager({}, str(migrations_dir)).apply_migrations() == []

    def test_failed_migration_rolls_back(self, migrations_dir):
        conn, _ = _connection(applied=["001_create.sql"], failing_sql="BROKEN;")
        with patch('protoview.db.migration_manager.psycopg2.connect', return_value=conn):
            with pytest.raises(DatabaseError) as exc_info:
                MigrationManager({}, str(migrations_dir)).apply_migrations()
        assert exc_info.value.details == {"migration": "002_index.sql"}
        conn.rollback.assert_called_once()
        conn.close.assert_called_once()

    def test_connection_failure(self, migrations_dir):
        with patch('protoview.db.migration_manager.psycopg2.connect',
                   side_effect=psycopg2.OperationalError("refused")):
            with pytest.raises(ConnectionError):
                MigrationManager({}, str(migrations_dir)).apply_migrations()
