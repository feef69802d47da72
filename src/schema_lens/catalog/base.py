"""
Catalog adapter capability set shared by the MySQL and SQL Server variants.

An adapter turns one engine's system catalog into a SchemaInfo. Each
variant implements the per-object catalog queries; this base class owns
access verification, the concurrent sub-fetches, and the partial-failure
policy: one unreadable table or view is emitted empty, and a failed views,
triggers or deep-dependency sub-fetch (after retries) leaves that list
empty. Only the tables and foreign keys sub-fetches are fatal.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from dataclasses import replace
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from schema_lens.catalog.assembler import assemble_schema
from schema_lens.config import ConnectionConfig
from schema_lens.errors import CatalogAccessError, PartialMetadataWarning, warn_degraded
from schema_lens.models import (
    Column,
    DatabaseType,
    ForeignKey,
    Index,
    SchemaInfo,
    Table,
    Trigger,
    View,
    qualified_name,
)

logger = logging.getLogger(__name__)

# Sub-fetches whose failure degrades the schema instead of failing the pass
OPTIONAL_FETCHES = frozenset({"views", "triggers", "deep_dependencies"})

# (schema, name) as listed by the catalog
ObjectRef = Tuple[Optional[str], str]


class CatalogAdapter(ABC):
    """
    Reads structural metadata from one engine family's catalog.

    Each sub-fetch opens its own DB-API connection through ``connect`` so
    that the concurrent fetches never share a connection.
    """

    database_type: DatabaseType

    def __init__(
        self,
        config: ConnectionConfig,
        connect: Optional[Callable[[], Any]] = None,
    ):
        """
        Initialize adapter.

        Args:
            config: Connection settings
            connect: Optional zero-argument connection factory; defaults to
                the variant's driver
        """
        self.config = config
        self._connect = connect or self._open_connection

    @abstractmethod
    def _open_connection(self) -> Any:
        """Open a new DB-API connection with the engine's driver."""

    @contextmanager
    def _cursor(self) -> Iterator[Any]:
        """Yield a cursor on a fresh connection, closing both afterwards."""
        conn = self._connect()
        try:
            cursor = conn.cursor()
            try:
                yield cursor
            finally:
                cursor.close()
        finally:
            conn.close()

    # ------------------------------------------------------------------
    # Capability set implemented by each variant
    # ------------------------------------------------------------------

    @abstractmethod
    def verify_access(self, database: str) -> None:
        """Raise CatalogAccessError unless the database and its catalog are readable."""

    @abstractmethod
    def list_tables(self, cursor, database: str) -> List[ObjectRef]:
        """List base tables."""

    @abstractmethod
    def get_columns(self, cursor, database: str, schema: Optional[str], table: str) -> List[Column]:
        """Get ordered column metadata for a table."""

    @abstractmethod
    def get_primary_keys(self, cursor, database: str, schema: Optional[str], table: str) -> List[str]:
        """Get ordered primary key column names for a table."""

    @abstractmethod
    def get_indexes(self, cursor, database: str, schema: Optional[str], table: str) -> List[Index]:
        """Get indexes for a table."""

    @abstractmethod
    def list_foreign_keys(self, cursor, database: str) -> List[ForeignKey]:
        """Get all declared foreign keys, one record per column pair."""

    @abstractmethod
    def list_views(self, cursor, database: str) -> List[Tuple[Optional[str], str, str]]:
        """List views as (schema, name, definition)."""

    @abstractmethod
    def get_view_columns(self, cursor, database: str, schema: Optional[str], view: str) -> List[Column]:
        """Get ordered result columns of a view."""

    @abstractmethod
    def list_triggers(self, cursor, database: str) -> List[Trigger]:
        """Get enabled triggers."""

    def get_deep_dependencies(self, database: str) -> List[ForeignKey]:
        """Best-effort undeclared dependencies; engines without support return none."""
        return []

    # ------------------------------------------------------------------
    # Sub-fetches
    # ------------------------------------------------------------------

    def get_tables(self, database: str) -> List[Table]:
        """Fetch every table with its columns, primary key and indexes."""
        tables: List[Table] = []
        with self._cursor() as cursor:
            for schema, name in self.list_tables(cursor, database):
                try:
                    primary_keys = self.get_primary_keys(cursor, database, schema, name)
                    columns = self.get_columns(cursor, database, schema, name)
                    indexes = self.get_indexes(cursor, database, schema, name)
                except Exception as e:
                    self._warn_partial("table", qualified_name(schema, name), e)
                    tables.append(Table(name=name, schema=schema))
                    continue

                pk_lower = {pk.lower() for pk in primary_keys}
                columns = [
                    replace(col, is_primary_key=col.is_primary_key or col.name.lower() in pk_lower)
                    for col in columns
                ]
                tables.append(Table(
                    name=name,
                    schema=schema,
                    columns=columns,
                    primary_keys=primary_keys,
                    indexes=indexes,
                ))

        logger.debug(f"Fetched {len(tables)} tables from {database}")
        return tables

    def get_views(self, database: str) -> List[View]:
        """Fetch every view with its definition and result columns."""
        views: List[View] = []
        with self._cursor() as cursor:
            for schema, name, definition in self.list_views(cursor, database):
                try:
                    columns = self.get_view_columns(cursor, database, schema, name)
                except Exception as e:
                    self._warn_partial("view", qualified_name(schema, name), e)
                    columns = []

                views.append(View(
                    name=name,
                    schema=schema,
                    definition=definition or "",
                    columns=columns,
                ))

        logger.debug(f"Fetched {len(views)} views from {database}")
        return views

    def get_triggers(self, database: str) -> List[Trigger]:
        with self._cursor() as cursor:
            return self.list_triggers(cursor, database)

    def get_foreign_keys(self, database: str) -> List[ForeignKey]:
        with self._cursor() as cursor:
            return self.list_foreign_keys(cursor, database)

    # ------------------------------------------------------------------
    # Full pass
    # ------------------------------------------------------------------

    def get_schema(self, database: Optional[str] = None) -> SchemaInfo:
        """
        Extract the complete SchemaInfo of a database.

        Args:
            database: Database name; defaults to the configured one

        Returns:
            SchemaInfo with tables, views, triggers and the flattened
            foreign key list (declared plus deep dependencies)

        Raises:
            CatalogAccessError: the database or its catalog is unreadable
        """
        database = database or self.config.database
        logger.info(f"Reading {self.database_type.value} catalog of '{database}'")

        self.verify_access(database)

        fetches: Dict[str, Callable[[str], list]] = {
            "tables": self.get_tables,
            "views": self.get_views,
            "triggers": self.get_triggers,
            "foreign_keys": self.get_foreign_keys,
        }
        if self.config.deep_dependencies:
            fetches["deep_dependencies"] = self.get_deep_dependencies

        with ThreadPoolExecutor(
            max_workers=min(self.config.max_workers, len(fetches)),
            thread_name_prefix="catalog",
        ) as pool:
            futures = {
                key: pool.submit(self._fetch_with_retry, key, fetch, database)
                for key, fetch in fetches.items()
            }
            results = {key: self._collect(key, future, database) for key, future in futures.items()}

        schema = assemble_schema(
            tables=results["tables"],
            views=results["views"],
            triggers=results["triggers"],
            foreign_keys=results["foreign_keys"],
            deep_dependencies=results.get("deep_dependencies", []),
        )
        logger.info(
            f"Schema read: {len(schema.tables)} tables, {len(schema.views)} views, "
            f"{len(schema.foreign_keys)} foreign keys"
        )
        return schema

    def _fetch_with_retry(self, key: str, fetch: Callable[[str], list], database: str) -> list:
        """Run one sub-fetch, retrying with exponential backoff."""
        attempts = self.config.fetch_attempts
        for attempt in range(1, attempts + 1):
            try:
                return fetch(database)
            except CatalogAccessError:
                raise
            except Exception as e:
                if attempt == attempts:
                    raise
                wait = self.config.fetch_retry_delay * 2 ** (attempt - 1)
                logger.warning(
                    f"Reading {key.replace('_', ' ')} of '{database}' failed: {e} | "
                    f"retry {attempt}/{attempts - 1} in {wait:.1f}s"
                )
                time.sleep(wait)

    def _collect(self, key: str, future, database: str) -> list:
        label = key.replace("_", " ")
        try:
            return future.result()
        except CatalogAccessError:
            raise
        except Exception as e:
            if key in OPTIONAL_FETCHES:
                message = f"Could not read {label} of database '{database}', continuing without them: {e}"
                logger.warning(message)
                warn_degraded(message, PartialMetadataWarning)
                return []
            raise CatalogAccessError(
                f"Failed to read {label} of database '{database}': {e}",
                database=database,
                cause=e,
            ) from e

    @staticmethod
    def _warn_partial(kind: str, name: str, error: Exception) -> None:
        message = f"Could not read metadata for {kind} {name}, emitting it empty: {error}"
        logger.warning(message)
        warn_degraded(message, PartialMetadataWarning)
