#!/usr/bin/env python3
"""
Tests for error handling

Covers:
- Exception hierarchy and exit codes
- Error formatting and the CLI decorators
- Mapping of psycopg2 errors to ProtoView errors in DBManager
"""

import logging
from unittest.mock import MagicMock, patch

import psycopg2
import pytest
from psycopg2 import errors as pg_errors

from protoview.db.manager import DBManager
from protoview.error_handlers import (
    cli_error_handler, exit_code_for, format_error, handle_exceptions, log_exception
)
from protoview.exceptions import (
    AmbiguousMergeError, ConfigurationError, ConnectionError, DatabaseError,
    MalformedRecordError, ProtoViewError, QueryError, ReconciliationError,
    TransactionConflictError, ValidationError
)

DB_CONFIG = {'host': 'localhost', 'port': 5432, 'database': 'protoview_test', 'user': 'test'}


@pytest.mark.unit
class TestExceptionHierarchy:

    def test_hierarchy(self):
        assert issubclass(MalformedRecordError, ValidationError)
        assert issubclass(AmbiguousMergeError, ReconciliationError)
        assert issubclass(TransactionConflictError, DatabaseError)
        for cls in (ValidationError, ReconciliationError, DatabaseError, ConfigurationError):
            assert issubclass(cls, ProtoViewError)

    def test_details(self):
        error = MalformedRecordError("bad iptm", {"field": "iptm"})
        assert error.message == "bad iptm"
        assert error.details == {"field": "iptm"}
        assert str(error) == "bad iptm"
        assert ProtoViewError("x").details == {}

    @pytest.mark.parametrize("error,code", [
        (ConfigurationError("x"), 3),
        (MalformedRecordError("x"), 4),
        (AmbiguousMergeError("x"), 5),
        (TransactionConflictError("x"), 75),
        (QueryError("x"), 1),
        (RuntimeError("x"), 2),
        (KeyboardInterrupt(), 130),
    ])
    def test_exit_codes(self, error, code):
        assert exit_code_for(error) == code


@pytest.mark.unit
class TestFormatting:

    def test_format_known_error(self):
        error = AmbiguousMergeError("two scored rows", {"ids": [1, 2], "iptm": 0.5})
        assert format_error(error) == "AmbiguousMergeError: two scored rows"
        assert "Details: ids=[1, 2], iptm=0.5" in format_error(error, verbose=True)

    def test_format_unexpected_error(self):
        assert format_error(ValueError("boom")) == "Unexpected Error: boom"

    def test_log_exception_levels(self, caplog):
        logger = logging.getLogger("protoview.test")
        with caplog.at_level(logging.WARNING, logger="protoview.test"):
            log_exception(logger, MalformedRecordError("bad row"), level=logging.WARNING)
        record = caplog.records[-1]
        assert record.levelno == logging.WARNING
        assert record.exc_info is None or record.exc_info == (None, None, None)


@pytest.mark.unit
class TestDecorators:

    def test_returns_value_on_success(self):
        @handle_exceptions()
        def command():
            return 0
        assert command() == 0

    def test_known_error_returns_code(self, capsys):
        @handle_exceptions()
        def command():
            raise TransactionConflictError("retry me")
        assert command() == 75
        assert "TransactionConflictError: retry me" in capsys.readouterr().err

    def test_unexpected_error_returns_two(self, capsys):
        @handle_exceptions()
        def command():
            raise RuntimeError("surprise")
        assert command() == 2
        assert "See log for details" in capsys.readouterr().err

    def test_cli_error_handler_exits(self):
        @cli_error_handler
        def command():
            raise ConfigurationError("no config")
        with pytest.raises(SystemExit) as exc_info:
            command()
        assert exc_info.value.code == 3


def _mock_connection(cursor):
    conn = MagicMock()
    conn.cursor.return_value.__enter__.return_value = cursor
    return conn


@pytest.mark.unit
class TestDBManagerErrors:

    def test_missing_config_field(self):
        with pytest.raises(ConnectionError):
            DBManager({'host': 'localhost'})

    def test_connect_failure(self):
        with patch('protoview.db.manager.psycopg2.connect',
                   side_effect=psycopg2.OperationalError("refused")):
            with pytest.raises(ConnectionError):
                DBManager(DB_CONFIG).connect()

    @pytest.mark.parametrize("pg_error", [
        pg_errors.UniqueViolation, pg_errors.SerializationFailure,
        pg_errors.DeadlockDetected, pg_errors.LockNotAvailable,
    ])
    def test_transaction_conflicts(self, pg_error):
        """Concurrency failures surface as TransactionConflictError and roll back"""
        conn = _mock_connection(MagicMock())

        def callback(cursor):
            raise pg_error("conflict")

        with patch('protoview.db.manager.psycopg2.connect', return_value=conn):
            with pytest.raises(TransactionConflictError):
                DBManager(DB_CONFIG).execute_transaction(callback)
        conn.rollback.assert_called_once()
        conn.commit.assert_not_called()
        conn.close.assert_called_once()

    def test_other_database_error(self):
        conn = _mock_connection(MagicMock())

        def callback(cursor):
            raise psycopg2.ProgrammingError("syntax error")

        with patch('protoview.db.manager.psycopg2.connect', return_value=conn):
            with pytest.raises(DatabaseError) as exc_info:
                DBManager(DB_CONFIG).execute_transaction(callback)
        assert not isinstance(exc_info.value, TransactionConflictError)

    def test_protoview_error_propagates_unchanged(self):
        """Domain errors raised inside a transaction roll back and pass through"""
        conn = _mock_connection(MagicMock())

        def callback(cursor):
            raise AmbiguousMergeError("two scored rows")

        with patch('protoview.db.manager.psycopg2.connect', return_value=conn):
            with pytest.raises(AmbiguousMergeError):
                DBManager(DB_CONFIG).execute_transaction(callback)
        conn.rollback.assert_called_once()

    def test_commit_on_success(self):
        cursor = MagicMock()
        conn = _mock_connection(cursor)
        with patch('protoview.db.manager.psycopg2.connect', return_value=conn):
            result = DBManager(DB_CONFIG).execute_transaction(lambda c: "done")
        assert result == "done"
        conn.commit.assert_called_once()

    def test_insert_conflict(self):
        cursor = MagicMock()
        cursor.execute.side_effect = pg_errors.UniqueViolation("duplicate key")
        conn = _mock_connection(cursor)
        with patch('protoview.db.manager.psycopg2.connect', return_value=conn):
            with pytest.raises(TransactionConflictError):
                DBManager(DB_CONFIG).insert("protoview.prediction_records", {'iptm': 0.5}, "id")

    def test_query_error(self):
        cursor = MagicMock()
        cursor.execute.side_effect = psycopg2.ProgrammingError("relation does not exist")
        conn = _mock_connection(cursor)
        with patch('protoview.db.manager.psycopg2.connect', return_value=conn):
            with pytest.raises(QueryError):
                DBManager(DB_CONFIG).execute_dict_query("SELECT 1")
