"""
Adapter dispatch on the configured database type.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, Optional, Type

from schema_lens.catalog.base import CatalogAdapter
from schema_lens.catalog.mysql import MySQLCatalogAdapter
from schema_lens.catalog.sqlserver import SQLServerCatalogAdapter
from schema_lens.config import ConnectionConfig
from schema_lens.errors import ConfigError
from schema_lens.models import DatabaseType

ADAPTERS: Dict[DatabaseType, Type[CatalogAdapter]] = {
    DatabaseType.MYSQL: MySQLCatalogAdapter,
    DatabaseType.SQLSERVER: SQLServerCatalogAdapter,
}


def create_adapter(
    config: ConnectionConfig,
    connect: Optional[Callable[[], Any]] = None,
) -> CatalogAdapter:
    """
    Create the catalog adapter for a connection.

    Args:
        config: Connection settings
        connect: Optional connection factory overriding the driver

    Returns:
        MySQLCatalogAdapter or SQLServerCatalogAdapter
    """
    adapter_cls = ADAPTERS.get(config.type)
    if adapter_cls is None:
        raise ConfigError(f"Unsupported database type: {config.type}")
    return adapter_cls(config, connect=connect)
