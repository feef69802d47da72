"""
Introspection pass: catalog -> SchemaInfo -> GraphData, optionally cached.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional, Tuple

from schema_lens.cache import SchemaCache
from schema_lens.catalog.factory import create_adapter
from schema_lens.config import ConnectionConfig
from schema_lens.discovery.graph_builder import GraphBuilder
from schema_lens.errors import CacheError
from schema_lens.models import GraphData, SchemaInfo

logger = logging.getLogger(__name__)


def introspect(
    config: ConnectionConfig,
    connect: Optional[Callable[[], Any]] = None,
) -> Tuple[SchemaInfo, GraphData]:
    """
    Run one full introspection pass.

    Args:
        config: Connection to introspect
        connect: Optional connection factory overriding the driver

    Returns:
        (schema, graph)

    Raises:
        CatalogAccessError: the catalog could not be read
    """
    logger.info(f"Starting introspection of {config.name} ({config.id})")

    adapter = create_adapter(config, connect=connect)
    schema = adapter.get_schema(config.database)
    graph = GraphBuilder().build(schema)

    logger.info(
        f"Introspection of {config.id} finished: {len(graph.nodes)} nodes, {len(graph.edges)} edges"
    )
    return schema, graph


def introspect_and_cache(
    config: ConnectionConfig,
    cache: SchemaCache,
    connect: Optional[Callable[[], Any]] = None,
) -> Tuple[SchemaInfo, GraphData]:
    """
    Run an introspection pass and replace the connection's cache entry.

    Concurrent refreshes of the same connection are serialized. A cache
    write failure is logged and does not fail the pass.
    """
    with cache.lock(config.id):
        schema, graph = introspect(config, connect=connect)
        try:
            cache.set(config.id, schema, graph)
        except CacheError as e:
            logger.error(f"Introspection result for {config.id} not cached: {e}")
    return schema, graph
