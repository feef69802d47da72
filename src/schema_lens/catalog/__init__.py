"""
Catalog adapters for MySQL and SQL Server.

Each adapter reads one engine's system catalog and produces an
engine-agnostic SchemaInfo.
"""

from schema_lens.catalog.base import CatalogAdapter
from schema_lens.catalog.mysql import MySQLCatalogAdapter
from schema_lens.catalog.sqlserver import SQLServerCatalogAdapter
from schema_lens.catalog.assembler import assemble_schema
from schema_lens.catalog.dependencies import ObjectDependency, dependencies_to_foreign_keys
from schema_lens.catalog.factory import create_adapter

__all__ = [
    "CatalogAdapter",
    "MySQLCatalogAdapter",
    "SQLServerCatalogAdapter",
    "assemble_schema",
    "ObjectDependency",
    "dependencies_to_foreign_keys",
    "create_adapter",
]
