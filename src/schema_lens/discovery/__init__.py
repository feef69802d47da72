"""
Relationship discovery from catalog metadata and view definitions.

    from schema_lens.discovery import build_graph

    graph = build_graph(schema)
    graph.related_nodes("orders")
"""

from schema_lens.discovery.view_parser import ViewDefinitionParser, ParsedView, JoinClause
from schema_lens.discovery.graph_builder import GraphBuilder, build_graph, normalize_node_id

__all__ = [
    "ViewDefinitionParser",
    "ParsedView",
    "JoinClause",
    "GraphBuilder",
    "build_graph",
    "normalize_node_id",
]
