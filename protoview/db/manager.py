#!/usr/bin/env python3
"""
Database manager for ProtoView
Handles PostgreSQL connections, queries and transactions
"""
import psycopg2
import psycopg2.extras
from psycopg2 import errors as pg_errors
import logging
from contextlib import contextmanager
from typing import Dict, Any, List, Tuple, Optional, Generator, TypeVar, Union, Callable

from protoview.exceptions import (
    ConnectionError, QueryError, DatabaseError, TransactionConflictError
)

T = TypeVar('T')

# Errors raised when another transaction touched the same identity key first
CONFLICT_ERRORS = (
    pg_errors.UniqueViolation,
    pg_errors.SerializationFailure,
    pg_errors.DeadlockDetected,
    pg_errors.LockNotAvailable,
)


def _error_details(e: psycopg2.Error, **extra: Any) -> Dict[str, Any]:
    details = dict(extra)
    if getattr(e, 'pgcode', None):
        details['code'] = e.pgcode
    return details


class DBManager:
    """Database manager for ProtoView"""

    def __init__(self, config: Dict[str, Any]):
        """Initialize database manager

        Args:
            config: Keyword arguments for psycopg2.connect

        Raises:
            ConnectionError: If required configuration is missing
        """
        self.config = config
        self.logger = logging.getLogger("protoview.db")

        required_fields = ['host', 'port', 'database', 'user']
        for field in required_fields:
            if field not in config:
                raise ConnectionError(f"Missing required database configuration field: {field}")

    def connect(self) -> psycopg2.extensions.connection:
        """Open a new connection

        Raises:
            ConnectionError: If the server cannot be reached
        """
        try:
            return psycopg2.connect(**self.config)
        except psycopg2.Error as e:
            error_msg = f"Database connection error: {str(e)}"
            self.logger.error(error_msg)
            raise ConnectionError(error_msg, _error_details(e)) from e

    @contextmanager
    def get_connection(self) -> Generator[psycopg2.extensions.connection, None, None]:
        """Context manager for a connection that commits on success

        Anything raised inside the block rolls the transaction back and
        propagates unchanged.

        Yields:
            Database connection
        """
        conn = self.connect()
        try:
            yield conn
            conn.commit()
        except BaseException:
            conn.rollback()
            raise
        finally:
            conn.close()

    def execute_query(self, query: str, params: Optional[Union[Tuple, Dict[str, Any]]] = None) -> List[Tuple]:
        """Execute a query and return results

        Args:
            query: SQL query
            params: Query parameters

        Returns:
            List of result tuples

        Raises:
            QueryError: If query execution fails
        """
        try:
            with self.get_connection() as conn:
                with conn.cursor() as cursor:
                    cursor.execute(query, params or ())
                    if cursor.description:
                        return cursor.fetchall()
                    return []
        except psycopg2.Error as e:
            error_msg = f"Query execution error: {str(e)}"
            self.logger.error(f"{error_msg}\nQuery: {query}\nParams: {params}")
            raise QueryError(error_msg, _error_details(e, query=query)) from e

    def execute_dict_query(self, query: str,
                           params: Optional[Union[Tuple, Dict[str, Any]]] = None) -> List[Dict[str, Any]]:
        """Execute a query and return results as dictionaries

        Args:
            query: SQL query
            params: Query parameters

        Returns:
            List of result dictionaries

        Raises:
            QueryError: If query execution fails
        """
        try:
            with self.get_connection() as conn:
                with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cursor:
                    cursor.execute(query, params or ())
                    if cursor.description:
                        return [dict(row) for row in cursor.fetchall()]
                    return []
        except psycopg2.Error as e:
            error_msg = f"Query execution error: {str(e)}"
            self.logger.error(f"{error_msg}\nQuery: {query}\nParams: {params}")
            raise QueryError(error_msg, _error_details(e, query=query)) from e

    def iter_dict_query(self, query: str,
                        params: Optional[Union[Tuple, Dict[str, Any]]] = None,
                        batch_size: int = 2000) -> Generator[Dict[str, Any], None, None]:
        """Stream rows through a server-side cursor

        Args:
            query: SQL query
            params: Query parameters
            batch_size: Rows fetched per round trip

        Yields:
            One dictionary per row
        """
        try:
            with self.get_connection() as conn:
                with conn.cursor(name="protoview_scan",
                                 cursor_factory=psycopg2.extras.RealDictCursor) as cursor:
                    cursor.itersize = batch_size
                    cursor.execute(query, params or ())
                    for row in cursor:
                        yield dict(row)
        except psycopg2.Error as e:
            error_msg = f"Query execution error: {str(e)}"
            self.logger.error(f"{error_msg}\nQuery: {query}")
            raise QueryError(error_msg, _error_details(e, query=query)) from e

    def insert(self, table: str, data: Dict[str, Any], returning: Optional[str] = None) -> Optional[Any]:
        """Insert a record and optionally return a value

        Args:
            table: Table name
            data: Column data
            returning: Column to return (optional)

        Returns:
            Value of the returning column if specified

        Raises:
            TransactionConflictError: If the insert hits a unique constraint
            QueryError: If insert fails otherwise
        """
        columns = list(data.keys())
        query = f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({', '.join(['%s'] * len(columns))})"
        if returning:
            query += f" RETURNING {returning}"

        try:
            with self.get_connection() as conn:
                with conn.cursor() as cursor:
                    cursor.execute(query, [data[col] for col in columns])
                    if returning:
                        result = cursor.fetchone()
                        return result[0] if result else None
                    return None
        except CONFLICT_ERRORS as e:
            raise TransactionConflictError(f"Insert conflict on {table}: {str(e)}",
                                           _error_details(e, table=table)) from e
        except psycopg2.Error as e:
            error_msg = f"Insert error: {str(e)}"
            self.logger.error(f"{error_msg}\nTable: {table}\nData: {data}")
            raise QueryError(error_msg, _error_details(e, table=table)) from e

    def update(self, table: str, data: Dict[str, Any], condition: str,
               condition_params: Union[Tuple, List]) -> int:
        """Update records in a table

        Args:
            table: Table name
            data: Column data to update
            condition: WHERE clause condition
            condition_params: Positional parameters for the condition

        Returns:
            Number of rows updated

        Raises:
            QueryError: If update fails
        """
        set_items = [f"{k} = %s" for k in data.keys()]
        values = list(data.values()) + list(condition_params)
        query = f"UPDATE {table} SET {', '.join(set_items)} WHERE {condition}"

        try:
            with self.get_connection() as conn:
                with conn.cursor() as cursor:
                    cursor.execute(query, values)
                    return cursor.rowcount
        except psycopg2.Error as e:
            error_msg = f"Update error: {str(e)}"
            self.logger.error(f"{error_msg}\nTable: {table}\nCondition: {condition}")
            raise QueryError(error_msg, _error_details(e, table=table, condition=condition)) from e

    def delete(self, table: str, condition: str,
               condition_params: Union[Tuple, List]) -> int:
        """Delete records from a table

        Args:
            table: Table name
            condition: WHERE clause condition
            condition_params: Parameters for the condition

        Returns:
            Number of rows deleted

        Raises:
            QueryError: If delete fails
        """
        query = f"DELETE FROM {table} WHERE {condition}"

        try:
            with self.get_connection() as conn:
                with conn.cursor() as cursor:
                    cursor.execute(query, condition_params)
                    return cursor.rowcount
        except psycopg2.Error as e:
            error_msg = f"Delete error: {str(e)}"
            self.logger.error(f"{error_msg}\nTable: {table}\nCondition: {condition}")
            raise QueryError(error_msg, _error_details(e, table=table, condition=condition)) from e

    def execute_transaction(self, callback: Callable[[psycopg2.extensions.cursor], T],
                            dict_cursor: bool = False) -> T:
        """Execute operations in a single transaction

        The callback runs on one cursor; the transaction commits when it
        returns and rolls back if it raises.

        Args:
            callback: Function that takes a cursor and performs operations
            dict_cursor: Hand the callback a RealDictCursor

        Returns:
            Result of the callback function

        Raises:
            TransactionConflictError: On unique violation, serialization failure or deadlock
            DatabaseError: If the transaction fails otherwise
        """
        cursor_factory = psycopg2.extras.RealDictCursor if dict_cursor else None
        try:
            with self.get_connection() as conn:
                with conn.cursor(cursor_factory=cursor_factory) as cursor:
                    return callback(cursor)
        except CONFLICT_ERRORS as e:
            error_msg = f"Transaction conflict: {str(e)}"
            self.logger.warning(error_msg)
            raise TransactionConflictError(error_msg, _error_details(e)) from e
        except psycopg2.Error as e:
            error_msg = f"Transaction error: {str(e)}"
            self.logger.error(error_msg)
            raise DatabaseError(error_msg, _error_details(e)) from e
