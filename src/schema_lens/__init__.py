"""
Schema Lens - Schema introspection and relationship discovery

Reads the system catalogs of MySQL and SQL Server databases into one
engine-agnostic model and builds a relationship graph of its tables and
views.

Features:
- Declared foreign keys, flattened per column pair
- Relationships inferred from view JOIN conditions
- Relationships inferred from function arguments in view select lists
- Undeclared dependencies from SQL Server's expression dependency catalog
- JSON schema cache and DDL export
"""

__version__ = "0.1.0"

from schema_lens.models import (
    Column,
    Confidence,
    DatabaseType,
    EdgeLabel,
    ForeignKey,
    GraphData,
    GraphEdge,
    GraphNode,
    Index,
    NodeKind,
    SchemaInfo,
    Table,
    Trigger,
    View,
)
from schema_lens.errors import (
    CacheError,
    CatalogAccessError,
    ConfigError,
    PartialMetadataWarning,
    SchemaLensError,
    ViewAnalysisSkipped,
)
from schema_lens.discovery import GraphBuilder, build_graph
from schema_lens.catalog import create_adapter
from schema_lens.introspection import introspect, introspect_and_cache

__all__ = [
    # Models
    "Column",
    "Confidence",
    "DatabaseType",
    "EdgeLabel",
    "ForeignKey",
    "GraphData",
    "GraphEdge",
    "GraphNode",
    "Index",
    "NodeKind",
    "SchemaInfo",
    "Table",
    "Trigger",
    "View",
    # Errors
    "CacheError",
    "CatalogAccessError",
    "ConfigError",
    "PartialMetadataWarning",
    "SchemaLensError",
    "ViewAnalysisSkipped",
    # Inference
    "GraphBuilder",
    "build_graph",
    # Introspection
    "create_adapter",
    "introspect",
    "introspect_and_cache",
]
