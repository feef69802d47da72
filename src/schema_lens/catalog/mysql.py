"""
MySQL catalog adapter using pymysql.

Reads structural metadata from INFORMATION_SCHEMA:
- TABLES / COLUMNS / STATISTICS
- KEY_COLUMN_USAGE joined with REFERENTIAL_CONSTRAINTS
- VIEWS / TRIGGERS

MySQL has no namespace below the database, so every object's schema is None.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

from schema_lens.catalog.base import CatalogAdapter, ObjectRef
from schema_lens.errors import CatalogAccessError
from schema_lens.models import Column, DatabaseType, ForeignKey, Index, Trigger

logger = logging.getLogger(__name__)


class MySQLCatalogAdapter(CatalogAdapter):
    """Catalog adapter for MySQL and MariaDB."""

    database_type = DatabaseType.MYSQL

    def _open_connection(self) -> Any:
        import pymysql

        conn = pymysql.connect(
            host=self.config.host,
            port=self.config.port,
            user=self.config.user,
            password=self.config.password,
            database=self.config.database,
            connect_timeout=self.config.query_timeout,
            read_timeout=self.config.query_timeout,
            ssl={"ssl": {}} if self.config.ssl else None,
            charset="utf8mb4",
        )
        logger.debug(f"Connected to MySQL {self.config.host}:{self.config.port} as {self.config.user}")
        return conn

    def verify_access(self, database: str) -> None:
        try:
            with self._cursor() as cursor:
                cursor.execute("SHOW DATABASES LIKE %s", (database,))
                found = cursor.fetchall()
        except Exception as e:
            if "access denied" in str(e).lower():
                message = f"Access denied to database '{database}': check user credentials and grants"
            else:
                message = f"Could not connect to MySQL server for database '{database}': {e}"
            raise CatalogAccessError(message, database=database, cause=e) from e

        if not found:
            raise CatalogAccessError(
                f"Database '{database}' does not exist or is not visible to user '{self.config.user}'",
                database=database,
            )

        try:
            with self._cursor() as cursor:
                cursor.execute("SELECT 1 FROM INFORMATION_SCHEMA.TABLES LIMIT 1")
                cursor.fetchall()
        except Exception as e:
            raise CatalogAccessError(
                f"No permission to read INFORMATION_SCHEMA for database '{database}': {e}",
                database=database,
                cause=e,
            ) from e

    def list_tables(self, cursor, database: str) -> List[ObjectRef]:
        cursor.execute("""
            SELECT TABLE_NAME
            FROM INFORMATION_SCHEMA.TABLES
            WHERE TABLE_SCHEMA = %s AND TABLE_TYPE = 'BASE TABLE'
            ORDER BY TABLE_NAME
        """, (database,))
        return [(None, row[0]) for row in cursor.fetchall()]

    def get_columns(self, cursor, database: str, schema: Optional[str], table: str) -> List[Column]:
        cursor.execute("""
            SELECT COLUMN_NAME, DATA_TYPE, IS_NULLABLE, COLUMN_KEY,
                   COLUMN_DEFAULT, COLUMN_COMMENT
            FROM INFORMATION_SCHEMA.COLUMNS
            WHERE TABLE_SCHEMA = %s AND TABLE_NAME = %s
            ORDER BY ORDINAL_POSITION
        """, (database, table))

        columns = []
        for name, data_type, is_nullable, column_key, default, comment in cursor.fetchall():
            columns.append(Column(
                name=name,
                type=data_type,
                nullable=is_nullable == "YES",
                is_primary_key=column_key == "PRI",
                default_value=None if default is None else str(default),
                comment=comment or None,
            ))
        return columns

    def get_primary_keys(self, cursor, database: str, schema: Optional[str], table: str) -> List[str]:
        cursor.execute("""
            SELECT COLUMN_NAME
            FROM INFORMATION_SCHEMA.KEY_COLUMN_USAGE
            WHERE TABLE_SCHEMA = %s AND TABLE_NAME = %s AND CONSTRAINT_NAME = 'PRIMARY'
            ORDER BY ORDINAL_POSITION
        """, (database, table))
        return [row[0] for row in cursor.fetchall()]

    def get_indexes(self, cursor, database: str, schema: Optional[str], table: str) -> List[Index]:
        cursor.execute("""
            SELECT INDEX_NAME, COLUMN_NAME, NON_UNIQUE
            FROM INFORMATION_SCHEMA.STATISTICS
            WHERE TABLE_SCHEMA = %s AND TABLE_NAME = %s
            ORDER BY INDEX_NAME, SEQ_IN_INDEX
        """, (database, table))
        return group_index_rows(
            (name, column, not int(non_unique)) for name, column, non_unique in cursor.fetchall()
        )

    def list_foreign_keys(self, cursor, database: str) -> List[ForeignKey]:
        cursor.execute("""
            SELECT k.CONSTRAINT_NAME, k.TABLE_NAME, k.COLUMN_NAME,
                   k.REFERENCED_TABLE_NAME, k.REFERENCED_COLUMN_NAME
            FROM INFORMATION_SCHEMA.KEY_COLUMN_USAGE k
            JOIN INFORMATION_SCHEMA.REFERENTIAL_CONSTRAINTS r
                ON k.CONSTRAINT_SCHEMA = r.CONSTRAINT_SCHEMA
                AND k.CONSTRAINT_NAME = r.CONSTRAINT_NAME
                AND k.TABLE_NAME = r.TABLE_NAME
            WHERE k.TABLE_SCHEMA = %s AND k.REFERENCED_TABLE_NAME IS NOT NULL
            ORDER BY k.TABLE_NAME, k.CONSTRAINT_NAME, k.ORDINAL_POSITION
        """, (database,))
        return [
            ForeignKey(
                name=constraint,
                from_table=from_table,
                from_column=from_column,
                to_table=to_table,
                to_column=to_column,
            )
            for constraint, from_table, from_column, to_table, to_column in cursor.fetchall()
        ]

    def list_views(self, cursor, database: str) -> List[Tuple[Optional[str], str, str]]:
        cursor.execute("""
            SELECT TABLE_NAME, VIEW_DEFINITION
            FROM INFORMATION_SCHEMA.VIEWS
            WHERE TABLE_SCHEMA = %s
            ORDER BY TABLE_NAME
        """, (database,))
        return [(None, name, definition or "") for name, definition in cursor.fetchall()]

    def get_view_columns(self, cursor, database: str, schema: Optional[str], view: str) -> List[Column]:
        return self.get_columns(cursor, database, schema, view)

    def list_triggers(self, cursor, database: str) -> List[Trigger]:
        cursor.execute("""
            SELECT TRIGGER_NAME, EVENT_MANIPULATION, EVENT_OBJECT_TABLE,
                   ACTION_TIMING, ACTION_STATEMENT
            FROM INFORMATION_SCHEMA.TRIGGERS
            WHERE TRIGGER_SCHEMA = %s
            ORDER BY EVENT_OBJECT_TABLE, TRIGGER_NAME
        """, (database,))
        return [
            Trigger(name=name, table=table, event=event, timing=timing, definition=statement or "")
            for name, event, table, timing, statement in cursor.fetchall()
        ]


def group_index_rows(rows) -> List[Index]:
    """Group ordered (index_name, column_name, unique) rows into Index records."""
    grouped: Dict[str, Index] = {}
    for name, column, unique in rows:
        if name not in grouped:
            grouped[name] = Index(name=name, columns=[], unique=bool(unique))
        grouped[name].columns.append(column)
    return list(grouped.values())
