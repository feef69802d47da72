"""
SQL Server catalog adapter using pyodbc.

Reads structural metadata from the sys.* catalog views:
- sys.tables / sys.columns / sys.types / sys.default_constraints
- sys.key_constraints / sys.indexes / sys.index_columns
- sys.foreign_keys / sys.foreign_key_columns
- sys.views (via OBJECT_DEFINITION)
- sys.triggers / sys.trigger_events
- sys.sql_expression_dependencies for deep dependencies
"""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional, Tuple

from schema_lens.catalog.base import CatalogAdapter, ObjectRef
from schema_lens.catalog.dependencies import ObjectDependency, dependencies_to_foreign_keys
from schema_lens.catalog.mysql import group_index_rows
from schema_lens.errors import CatalogAccessError
from schema_lens.models import Column, DatabaseType, ForeignKey, Index, Trigger, qualified_name

logger = logging.getLogger(__name__)

_COLUMNS_SQL = """
    SELECT c.name, t.name, c.is_nullable, dc.definition, CAST(ep.value AS NVARCHAR(4000))
    FROM sys.columns c
    INNER JOIN sys.types t ON c.user_type_id = t.user_type_id
    INNER JOIN {kind} o ON c.object_id = o.object_id
    INNER JOIN sys.schemas s ON o.schema_id = s.schema_id
    LEFT JOIN sys.default_constraints dc ON c.default_object_id = dc.object_id
    LEFT JOIN sys.extended_properties ep ON ep.major_id = c.object_id
        AND ep.minor_id = c.column_id AND ep.name = 'MS_Description'
    WHERE DB_NAME() = ? AND s.name = ? AND o.name = ?
    ORDER BY c.column_id
"""


class SQLServerCatalogAdapter(CatalogAdapter):
    """Catalog adapter for Microsoft SQL Server and Azure SQL."""

    database_type = DatabaseType.SQLSERVER

    def _open_connection(self) -> Any:
        import pyodbc

        parts = [
            f"DRIVER={{{self.config.driver}}}",
            f"SERVER={self.config.host},{self.config.port}",
            f"DATABASE={self.config.database}",
            f"UID={self.config.user}",
            f"PWD={self.config.password}",
            f"Encrypt={'yes' if self.config.ssl else 'no'}",
            "TrustServerCertificate=yes",
        ]
        conn = pyodbc.connect(";".join(parts), timeout=self.config.query_timeout)
        conn.timeout = self.config.query_timeout
        logger.debug(f"Connected to SQL Server {self.config.host}:{self.config.port} as {self.config.user}")
        return conn

    def verify_access(self, database: str) -> None:
        try:
            with self._cursor() as cursor:
                cursor.execute("SELECT DB_ID(?)", (database,))
                row = cursor.fetchone()
        except Exception as e:
            if "login failed" in str(e).lower():
                message = f"Login failed for database '{database}': check user credentials"
            else:
                message = f"Could not connect to SQL Server for database '{database}': {e}"
            raise CatalogAccessError(message, database=database, cause=e) from e

        if not row or row[0] is None:
            raise CatalogAccessError(
                f"Database '{database}' does not exist or is not visible to user '{self.config.user}'",
                database=database,
            )

        try:
            with self._cursor() as cursor:
                cursor.execute("SELECT TOP 1 1 FROM sys.tables")
                cursor.fetchall()
        except Exception as e:
            raise CatalogAccessError(
                f"No permission to read the system catalog of database '{database}': {e}",
                database=database,
                cause=e,
            ) from e

    def list_tables(self, cursor, database: str) -> List[ObjectRef]:
        cursor.execute("""
            SELECT s.name, t.name
            FROM sys.tables t
            INNER JOIN sys.schemas s ON t.schema_id = s.schema_id
            WHERE DB_NAME() = ?
            ORDER BY s.name, t.name
        """, (database,))
        return [(schema, name) for schema, name in cursor.fetchall()]

    def get_columns(self, cursor, database: str, schema: Optional[str], table: str) -> List[Column]:
        cursor.execute(_COLUMNS_SQL.format(kind="sys.tables"), (database, schema, table))
        return [self._column(row) for row in cursor.fetchall()]

    def get_primary_keys(self, cursor, database: str, schema: Optional[str], table: str) -> List[str]:
        cursor.execute("""
            SELECT c.name
            FROM sys.key_constraints kc
            INNER JOIN sys.index_columns ic ON kc.parent_object_id = ic.object_id
                AND kc.unique_index_id = ic.index_id
            INNER JOIN sys.columns c ON ic.object_id = c.object_id
                AND ic.column_id = c.column_id
            INNER JOIN sys.tables t ON kc.parent_object_id = t.object_id
            INNER JOIN sys.schemas s ON t.schema_id = s.schema_id
            WHERE DB_NAME() = ? AND s.name = ? AND t.name = ? AND kc.type = 'PK'
            ORDER BY ic.key_ordinal
        """, (database, schema, table))
        return [row[0] for row in cursor.fetchall()]

    def get_indexes(self, cursor, database: str, schema: Optional[str], table: str) -> List[Index]:
        cursor.execute("""
            SELECT i.name, c.name, i.is_unique
            FROM sys.indexes i
            INNER JOIN sys.index_columns ic ON i.object_id = ic.object_id
                AND i.index_id = ic.index_id
            INNER JOIN sys.columns c ON ic.object_id = c.object_id
                AND ic.column_id = c.column_id
            INNER JOIN sys.tables t ON i.object_id = t.object_id
            INNER JOIN sys.schemas s ON t.schema_id = s.schema_id
            WHERE DB_NAME() = ? AND s.name = ? AND t.name = ? AND i.type > 0
            ORDER BY i.name, ic.key_ordinal
        """, (database, schema, table))
        return group_index_rows(
            (name, column, bool(is_unique)) for name, column, is_unique in cursor.fetchall()
        )

    def list_foreign_keys(self, cursor, database: str) -> List[ForeignKey]:
        cursor.execute("""
            SELECT fk.name, sp.name, tp.name, cp.name, sr.name, tr.name, cr.name
            FROM sys.foreign_keys fk
            INNER JOIN sys.foreign_key_columns fkc ON fk.object_id = fkc.constraint_object_id
            INNER JOIN sys.tables tp ON fkc.parent_object_id = tp.object_id
            INNER JOIN sys.schemas sp ON tp.schema_id = sp.schema_id
            INNER JOIN sys.columns cp ON fkc.parent_object_id = cp.object_id
                AND fkc.parent_column_id = cp.column_id
            INNER JOIN sys.tables tr ON fkc.referenced_object_id = tr.object_id
            INNER JOIN sys.schemas sr ON tr.schema_id = sr.schema_id
            INNER JOIN sys.columns cr ON fkc.referenced_object_id = cr.object_id
                AND fkc.referenced_column_id = cr.column_id
            WHERE DB_NAME() = ?
            ORDER BY sp.name, tp.name, fk.name, fkc.constraint_column_id
        """, (database,))
        return [
            ForeignKey(
                name=name,
                from_table=qualified_name(from_schema, from_table),
                from_column=from_column,
                to_table=qualified_name(to_schema, to_table),
                to_column=to_column,
            )
            for name, from_schema, from_table, from_column, to_schema, to_table, to_column
            in cursor.fetchall()
        ]

    def list_views(self, cursor, database: str) -> List[Tuple[Optional[str], str, str]]:
        cursor.execute("""
            SELECT s.name, v.name, OBJECT_DEFINITION(v.object_id)
            FROM sys.views v
            INNER JOIN sys.schemas s ON v.schema_id = s.schema_id
            WHERE DB_NAME() = ?
            ORDER BY s.name, v.name
        """, (database,))
        return [(schema, name, definition or "") for schema, name, definition in cursor.fetchall()]

    def get_view_columns(self, cursor, database: str, schema: Optional[str], view: str) -> List[Column]:
        cursor.execute(_COLUMNS_SQL.format(kind="sys.views"), (database, schema, view))
        return [self._column(row) for row in cursor.fetchall()]

    def list_triggers(self, cursor, database: str) -> List[Trigger]:
        cursor.execute("""
            SELECT tr.name, s.name, t.name, OBJECT_DEFINITION(tr.object_id),
                   tr.is_instead_of_trigger,
                   STUFF((
                       SELECT ',' + te.type_desc
                       FROM sys.trigger_events te
                       WHERE te.object_id = tr.object_id
                       ORDER BY te.type
                       FOR XML PATH('')
                   ), 1, 1, '')
            FROM sys.triggers tr
            INNER JOIN sys.tables t ON tr.parent_id = t.object_id
            INNER JOIN sys.schemas s ON t.schema_id = s.schema_id
            WHERE DB_NAME() = ? AND tr.is_disabled = 0
            ORDER BY s.name, t.name, tr.name
        """, (database,))

        triggers = []
        for name, schema, table, definition, is_instead_of, event_types in cursor.fetchall():
            definition = definition or ""
            event, timing = trigger_event(event_types, bool(is_instead_of), definition)
            triggers.append(Trigger(
                name=name,
                table=qualified_name(schema, table),
                event=event,
                timing=timing,
                definition=definition,
            ))
        return triggers

    def get_deep_dependencies(self, database: str) -> List[ForeignKey]:
        """
        Derive undeclared table dependencies from sys.sql_expression_dependencies.

        Never raises: any failure (typically missing VIEW DEFINITION
        permission) is logged and yields an empty list.
        """
        try:
            with self._cursor() as cursor:
                cursor.execute("""
                    SELECT DISTINCT
                        SCHEMA_NAME(t1.schema_id), t1.name,
                        SCHEMA_NAME(t2.schema_id), t2.name,
                        'DEP_' + CAST(sed.referencing_id AS VARCHAR(20))
                            + '_' + CAST(sed.referenced_id AS VARCHAR(20))
                    FROM sys.sql_expression_dependencies sed
                    INNER JOIN sys.tables t1 ON sed.referencing_id = t1.object_id
                    INNER JOIN sys.tables t2 ON sed.referenced_id = t2.object_id
                    WHERE DB_NAME() = ?
                        AND sed.referencing_class = 1
                        AND sed.referenced_class = 1
                        AND sed.referencing_id <> sed.referenced_id
                    ORDER BY 1, 2, 3, 4
                """, (database,))
                rows = cursor.fetchall()

                columns_cache: Dict[Tuple[str, str], List[str]] = {}
                pk_cache: Dict[Tuple[str, str], List[str]] = {}

                def columns_of(schema: str, table: str) -> List[str]:
                    if (schema, table) not in columns_cache:
                        columns_cache[(schema, table)] = [
                            c.name for c in self.get_columns(cursor, database, schema, table)
                        ]
                    return columns_cache[(schema, table)]

                def pks_of(schema: str, table: str) -> List[str]:
                    if (schema, table) not in pk_cache:
                        pk_cache[(schema, table)] = self.get_primary_keys(cursor, database, schema, table)
                    return pk_cache[(schema, table)]

                deps = [
                    ObjectDependency(
                        name=dep_name,
                        referencing_schema=from_schema,
                        referencing_table=from_table,
                        referenced_schema=to_schema,
                        referenced_table=to_table,
                        referencing_columns=columns_of(from_schema, from_table),
                        referenced_columns=columns_of(to_schema, to_table),
                        referenced_primary_keys=pks_of(to_schema, to_table),
                    )
                    for from_schema, from_table, to_schema, to_table, dep_name in rows
                ]
        except Exception as e:
            logger.warning(f"Deep dependency extraction skipped for '{database}': {e}")
            return []

        foreign_keys = dependencies_to_foreign_keys(deps)
        logger.info(f"Inferred {len(foreign_keys)} deep dependencies in '{database}'")
        return foreign_keys

    @staticmethod
    def _column(row) -> Column:
        name, data_type, is_nullable, default, comment = row
        return Column(
            name=name,
            type=data_type,
            nullable=bool(is_nullable),
            default_value=default,
            comment=comment or None,
        )


TRIGGER_HEADER_PATTERN = re.compile(
    r"\b(?P<timing>FOR|AFTER|INSTEAD\s+OF)\s+"
    r"(?P<events>(?:INSERT|UPDATE|DELETE)(?:\s*,\s*(?:INSERT|UPDATE|DELETE))*)"
    r"\s+(?:NOT\s+FOR\s+REPLICATION\s+)?AS\b",
    re.IGNORECASE,
)


def trigger_event(
    event_types: Optional[str], is_instead_of: bool, definition: str = ""
) -> Tuple[str, str]:
    """
    Return (event, timing) of a SQL Server trigger from its catalog row.

    ``event_types`` is the comma-joined ``sys.trigger_events.type_desc``
    list. When it is empty the event is read from the definition header.
    """
    timing = "INSTEAD OF" if is_instead_of else "AFTER"
    events = [e.strip().upper() for e in (event_types or "").split(",") if e.strip()]
    if events:
        return ", ".join(events), timing
    return infer_trigger_event(definition)[0], timing


def infer_trigger_event(definition: str) -> Tuple[str, str]:
    """Read (event, timing) from the header of a trigger definition; the body is ignored."""
    match = TRIGGER_HEADER_PATTERN.search(re.sub(r"\s+", " ", definition or ""))
    if not match:
        return "UNKNOWN", "BEFORE"

    events = ", ".join(e.strip().upper() for e in match.group("events").split(","))
    timing = "INSTEAD OF" if match.group("timing").upper().startswith("INSTEAD") else "AFTER"
    return events, timing
