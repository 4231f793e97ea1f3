# protoview/db/migration_manager.py
import os
import re
import logging
import psycopg2
from typing import Dict, Any, List

from protoview.exceptions import ConnectionError, DatabaseError

MIGRATION_FILE = re.compile(r"^\d+.*\.sql$")


class MigrationManager:
    """Applies numbered .sql files once each, tracked in <schema>.schema_migrations"""

    def __init__(self, db_config: Dict[str, Any], migrations_dir: str, schema: str = "protoview"):
        self.db_config = db_config
        self.migrations_dir = migrations_dir
        self.schema = schema
        self.logger = logging.getLogger("protoview.migration")

    def _create_migration_table(self, conn) -> None:
        with conn.cursor() as cursor:
            cursor.execute(f"CREATE SCHEMA IF NOT EXISTS {self.schema}")
            cursor.execute(f"""
            CREATE TABLE IF NOT EXISTS {self.schema}.schema_migrations (
                id SERIAL PRIMARY KEY,
                migration_name VARCHAR(255) UNIQUE NOT NULL,
                applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
            """)
        conn.commit()

    def _get_applied_migrations(self, conn) -> List[str]:
        with conn.cursor() as cursor:
            cursor.execute(f"SELECT migration_name FROM {self.schema}.schema_migrations ORDER BY id")
            return [row[0] for row in cursor.fetchall()]

    def get_migration_files(self) -> List[str]:
        """Sorted list of migration files in the migrations directory"""
        return sorted(f for f in os.listdir(self.migrations_dir) if MIGRATION_FILE.match(f))

    def _apply_migration(self, conn, migration_file: str) -> None:
        file_path = os.path.join(self.migrations_dir, migration_file)
        self.logger.info(f"Applying migration: {migration_file}")

        with open(file_path, 'r') as f:
            sql = f.read()

        try:
            with conn.cursor() as cursor:
                cursor.execute(sql)
                cursor.execute(
                    f"INSERT INTO {self.schema}.schema_migrations (migration_name) VALUES (%s)",
                    (migration_file,)
                )
            conn.commit()
        except psycopg2.Error as e:
            conn.rollback()
            self.logger.error(f"Error applying migration {migration_file}: {str(e)}")
            raise DatabaseError(f"Migration {migration_file} failed: {str(e)}",
                                {"migration": migration_file}) from e

        self.logger.info(f"Migration applied successfully: {migration_file}")

    def apply_migrations(self) -> List[str]:
        """Apply all pending migrations

        Returns:
            Names of the migrations applied in this call
        """
        try:
            conn = psycopg2.connect(**self.db_config)
        except psycopg2.Error as e:
            raise ConnectionError(f"Database connection error: {str(e)}") from e

        applied_now = []
        try:
            self._create_migration_table(conn)
            applied = set(self._get_applied_migrations(conn))
            for migration in self.get_migration_files():
                if migration not in applied:
                    self._apply_migration(conn, migration)
                    applied_now.append(migration)
        finally:
            conn.close()

        if not applied_now:
            self.logger.info("Database schema is up to date")
        return applied_now
