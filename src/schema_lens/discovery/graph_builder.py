"""
Relationship inference pipeline: SchemaInfo -> GraphData.

Steps, in order:
1. One node per table, then one per view (id = qualified name).
2. One edge per declared (or deep-dependency) foreign key column pair.
3. For each view, edges from JOIN ... ON equalities (``view-join``).
4. For each view, edges from columns passed to functions in the select
   list (``view-function``), unless step 3 already produced the same
   relationship.

A view whose analysis fails contributes no edges and never aborts the
pass. The builder keeps no state between calls.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Set, Tuple

from schema_lens.discovery.view_parser import ColumnRef, ParsedView, ViewDefinitionParser
from schema_lens.errors import ViewAnalysisSkipped, warn_degraded
from schema_lens.models import (
    Column,
    Confidence,
    EdgeLabel,
    GraphData,
    GraphEdge,
    GraphNode,
    NodeKind,
    SchemaInfo,
    Table,
    View,
    qualified_name,
)

logger = logging.getLogger(__name__)

# (table id, view column lower, table column lower)
RelationKey = Tuple[str, str, str]


def normalize_node_id(name: str, valid_ids: Sequence[str]) -> Optional[str]:
    """
    Resolve a possibly qualified object name to a node id.

    Tries an exact match first, then a case-insensitive one, then matches
    the bare name against ids ending in ``.name`` or equal to it.

    Args:
        name: Object name as written in a catalog record or SQL text
        valid_ids: Candidate node ids, in emission order

    Returns:
        The matching node id with catalog spelling, or None
    """
    if not name:
        return None
    if name in valid_ids:
        return name

    name_lower = name.lower()
    for node_id in valid_ids:
        if node_id.lower() == name_lower:
            return node_id

    bare = name_lower.rsplit(".", 1)[-1]
    suffix = "." + bare
    for node_id in valid_ids:
        node_lower = node_id.lower()
        if node_lower == bare or node_lower.endswith(suffix):
            return node_id
    return None


@dataclass
class _BuildContext:
    """State of a single build() call."""
    schema: SchemaInfo
    nodes: List[GraphNode] = field(default_factory=list)
    edges: List[GraphEdge] = field(default_factory=list)
    edge_ids: Set[str] = field(default_factory=set)
    node_ids: Set[str] = field(default_factory=set)
    tables: Dict[str, Table] = field(default_factory=dict)
    table_ids: List[str] = field(default_factory=list)

    def add_node(self, node: GraphNode) -> bool:
        # ids differing only in case are distinct objects under a case-sensitive collation
        if node.id in self.node_ids:
            logger.warning(f"Duplicate object id {node.id}, keeping the first occurrence")
            return False
        self.node_ids.add(node.id)
        self.nodes.append(node)
        return True

    def add_edge(self, edge: GraphEdge) -> bool:
        if edge.id in self.edge_ids:
            return False
        self.edge_ids.add(edge.id)
        self.edges.append(edge)
        return True


@dataclass(frozen=True)
class _Lineage:
    """Base column a view column is projected from."""
    table_id: str
    column: str
    instance: Optional[int]  # position of the FROM/JOIN reference; None when unqualified

    def matches(self, table_id: str, column: str, instance: Optional[int]) -> bool:
        return (
            self.table_id == table_id
            and self.column.lower() == column.lower()
            and _same_instance(self.instance, instance)
        )


@dataclass
class _ViewScope:
    """Resolved names of one view definition."""
    view: View
    view_id: str
    alias_map: Dict[str, str]  # qualifier lower -> node id, "" for CTE names
    instances: Dict[str, int]  # qualifier lower -> index into the view's table refs
    referenced_tables: List[str]
    column_mapping: Dict[str, _Lineage]  # view column lower -> lineage


class GraphBuilder:
    """
    Builds the relationship graph of one schema.

    Example:
        graph = GraphBuilder().build(schema)
        graph.related_nodes("dbo.Orders")
    """

    def __init__(self, parser: Optional[ViewDefinitionParser] = None):
        self.parser = parser or ViewDefinitionParser()

    def build(self, schema: SchemaInfo) -> GraphData:
        """
        Run the full inference pass.

        Args:
            schema: Structural metadata of one database

        Returns:
            GraphData; identical input always yields identical output
        """
        ctx = _BuildContext(schema=schema)

        self._add_nodes(ctx)
        self._add_foreign_key_edges(ctx)
        fk_count = len(ctx.edges)

        for view in schema.views:
            if not view.definition or not view.definition.strip():
                continue
            try:
                view_edges = self._analyze_view(ctx, view)
            except Exception as e:
                message = f"Skipping relationship analysis of view {view.full_name}: {e}"
                logger.warning(message)
                warn_degraded(message, ViewAnalysisSkipped)
                continue
            for edge in view_edges:
                ctx.add_edge(edge)

        logger.info(
            f"Built graph: {len(ctx.nodes)} nodes, {len(ctx.edges)} edges "
            f"({fk_count} foreign key, {len(ctx.edges) - fk_count} view)"
        )
        return GraphData(nodes=ctx.nodes, edges=ctx.edges)

    # ------------------------------------------------------------------
    # Steps 1 and 2
    # ------------------------------------------------------------------

    def _add_nodes(self, ctx: _BuildContext) -> None:
        for table in ctx.schema.tables:
            node = GraphNode(
                id=table.full_name,
                label=table.name,
                kind=NodeKind.TABLE,
                schema=table.schema,
                columns=list(table.columns),
            )
            if ctx.add_node(node):
                ctx.tables[node.id] = table
                ctx.table_ids.append(node.id)

        for view in ctx.schema.views:
            ctx.add_node(GraphNode(
                id=view.full_name,
                label=view.name,
                kind=NodeKind.VIEW,
                schema=view.schema,
                columns=list(view.columns),
            ))

    def _add_foreign_key_edges(self, ctx: _BuildContext) -> None:
        for fk in ctx.schema.foreign_keys:
            from_id = normalize_node_id(fk.from_table, ctx.table_ids)
            to_id = normalize_node_id(fk.to_table, ctx.table_ids)
            if from_id is None or to_id is None:
                missing = fk.from_table if from_id is None else fk.to_table
                logger.warning(f"Skipping foreign key {fk.name}: table {missing} not in schema")
                continue

            edge_id = f"fk_{fk.name}_{fk.from_column}_{fk.to_column}"
            existing = self._edge(ctx, edge_id)
            if existing is not None:
                if (existing.from_node, existing.to_node) == (from_id, to_id):
                    logger.debug(f"Duplicate foreign key edge {edge_id} skipped")
                    continue
                # same constraint and column names on another table pair
                edge_id = f"fk_{fk.name}_{from_id}_{fk.from_column}_{to_id}_{fk.to_column}"

            ctx.add_edge(GraphEdge(
                id=edge_id,
                from_node=from_id,
                to_node=to_id,
                from_column=fk.from_column,
                to_column=fk.to_column,
                label=EdgeLabel.DECLARED_FK,
                confidence=fk.confidence,
                constraint=fk.name,
            ))

    @staticmethod
    def _edge(ctx: _BuildContext, edge_id: str) -> Optional[GraphEdge]:
        if edge_id not in ctx.edge_ids:
            return None
        return next(e for e in ctx.edges if e.id == edge_id)

    # ------------------------------------------------------------------
    # Steps 3 and 4
    # ------------------------------------------------------------------

    def _analyze_view(self, ctx: _BuildContext, view: View) -> List[GraphEdge]:
        parsed = self.parser.parse(view.definition, view.full_name)
        if not parsed.is_valid:
            raise ValueError("; ".join(parsed.parse_errors))

        scope = self._scope(ctx, view, parsed)
        join_edges, join_keys = self._join_edges(ctx, scope, parsed)
        function_edges = self._function_edges(ctx, scope, parsed, join_keys)
        if not join_edges and not function_edges:
            logger.debug(f"View {scope.view_id}: no relationships found")
        return join_edges + function_edges

    def _scope(self, ctx: _BuildContext, view: View, parsed: ParsedView) -> _ViewScope:
        view_id = view.full_name
        alias_map: Dict[str, str] = {}
        instances: Dict[str, int] = {}
        referenced: List[str] = []
        cte_names = {name.lower() for name in parsed.cte_names}

        for index, ref in enumerate(parsed.table_refs):
            if ref.schema is None and ref.name.lower() in cte_names:
                # local to the definition; must never resolve to a catalog table
                table_id = ""
            else:
                table_id = normalize_node_id(ref.full_name, ctx.table_ids)
                if table_id is None:
                    if ref.name.lower() == view.name.lower():
                        table_id = view_id
                    else:
                        continue
                elif table_id not in referenced:
                    referenced.append(table_id)

            if ref.alias:
                alias_map[ref.alias.lower()] = table_id
                instances[ref.alias.lower()] = index
            for key in (ref.name.lower(), ref.full_name.lower()):
                alias_map.setdefault(key, table_id)
                instances.setdefault(key, index)

        scope = _ViewScope(
            view=view,
            view_id=view_id,
            alias_map=alias_map,
            instances=instances,
            referenced_tables=referenced,
            column_mapping={},
        )
        scope.column_mapping = self._column_mapping(ctx, scope, parsed)
        return scope

    def _column_mapping(
        self, ctx: _BuildContext, scope: _ViewScope, parsed: ParsedView
    ) -> Dict[str, _Lineage]:
        """Map each plainly projected view column to its base table column."""
        view = scope.view
        items = parsed.select_items
        positional = len(items) == len(view.columns)
        mapping: Dict[str, _Lineage] = {}

        for i, item in enumerate(items):
            if item.source is None:
                continue

            view_column = _find_column(view.columns, item.output_name) if item.output_name else None
            if view_column is None and positional:
                view_column = view.columns[i]
            if view_column is None:
                continue

            target = None
            if item.source.qualifier:
                table_id = self._resolve_qualifier(ctx, scope, item.source)
                table = ctx.tables.get(table_id) if table_id else None
                column = table.get_column(item.source.column) if table else None
                if column:
                    target = _Lineage(table_id, column.name, self._instance(scope, item.source))
            else:
                for table_id in scope.referenced_tables:
                    column = ctx.tables[table_id].get_column(item.source.column)
                    if column:
                        target = _Lineage(table_id, column.name, None)
                        break

            if target:
                mapping.setdefault(view_column.name.lower(), target)
        return mapping

    def _join_edges(
        self, ctx: _BuildContext, scope: _ViewScope, parsed: ParsedView
    ) -> Tuple[List[GraphEdge], Set[RelationKey]]:
        edges: List[GraphEdge] = []
        keys: Set[RelationKey] = set()

        for table_id in scope.referenced_tables:
            table = ctx.tables[table_id]
            for join in parsed.joins:
                for left, right in join.conditions:
                    for target_side, other_side in ((left, right), (right, left)):
                        if self._resolve_qualifier(ctx, scope, target_side) != table_id:
                            continue
                        table_column = table.get_column(target_side.column)
                        if table_column is None:
                            continue
                        view_column = self._join_view_column(ctx, scope, other_side)
                        if view_column is None:
                            continue

                        key = (table_id, view_column.name.lower(), table_column.name.lower())
                        if key in keys:
                            continue
                        keys.add(key)
                        edges.append(self._view_edge(
                            scope.view_id, table_id, view_column.name, table_column.name,
                            EdgeLabel.VIEW_JOIN, Confidence.EXACT,
                        ))
        return edges, keys

    def _join_view_column(
        self, ctx: _BuildContext, scope: _ViewScope, other: ColumnRef
    ) -> Optional[Column]:
        """
        Find the view column carrying the value of the join's other side.

        A column found through the mapping or by name is rejected when it
        projects a column of a different table than the other side's, or of
        another reference to the same table (a self-join's other alias).
        """
        view = scope.view
        if other.qualifier and self._is_view_reference(scope, other):
            return _find_column(view.columns, other.column)

        other_table = self._resolve_qualifier(ctx, scope, other) if other.qualifier else None
        other_instance = self._instance(scope, other) if other_table else None

        if other_table:
            for column in view.columns:
                mapped = scope.column_mapping.get(column.name.lower())
                if mapped and mapped.matches(other_table, other.column, other_instance):
                    return column

        column = _find_column(view.columns, other.column)
        if column is None:
            return None
        mapped = scope.column_mapping.get(column.name.lower())
        if mapped is None or (
            other_table is not None
            and mapped.table_id == other_table
            and _same_instance(mapped.instance, other_instance)
        ):
            return column
        logger.debug(
            f"View {scope.view_id}: column {column.name} projects "
            f"{mapped.table_id}.{mapped.column}, not the join side {other}"
        )
        return None

    def _function_edges(
        self,
        ctx: _BuildContext,
        scope: _ViewScope,
        parsed: ParsedView,
        join_keys: Set[RelationKey],
    ) -> List[GraphEdge]:
        edges: List[GraphEdge] = []
        seen: Set[RelationKey] = set()

        for call in parsed.function_calls:
            for ref in call.references:
                table_id = self._resolve_qualifier(ctx, scope, ref)
                table = ctx.tables.get(table_id) if table_id else None
                table_column = table.get_column(ref.column) if table else None
                if table_column is None:
                    continue

                view_column, confidence = _pick_view_column(scope.view.columns, table_column.name)
                if view_column is None:
                    continue

                key = (table_id, view_column.name.lower(), table_column.name.lower())
                if key in join_keys or key in seen:
                    continue
                seen.add(key)
                edges.append(self._view_edge(
                    scope.view_id, table_id, view_column.name, table_column.name,
                    EdgeLabel.VIEW_FUNCTION, confidence,
                ))
        return edges

    # ------------------------------------------------------------------
    # Name resolution
    # ------------------------------------------------------------------

    def _resolve_qualifier(
        self, ctx: _BuildContext, scope: _ViewScope, ref: ColumnRef
    ) -> Optional[str]:
        """Resolve a column's qualifier to a table id via the alias map, else by name."""
        if not ref.qualifier:
            return None
        if ref.schema:
            return normalize_node_id(qualified_name(ref.schema, ref.qualifier), ctx.table_ids)
        table_id = scope.alias_map.get(ref.qualifier.lower())
        if table_id is not None:
            return table_id if table_id in ctx.tables else None
        return normalize_node_id(ref.qualifier, ctx.table_ids)

    @staticmethod
    def _instance(scope: _ViewScope, ref: ColumnRef) -> Optional[int]:
        """Which FROM/JOIN reference a column's qualifier names."""
        if not ref.qualifier:
            return None
        return scope.instances.get(qualified_name(ref.schema, ref.qualifier).lower())

    @staticmethod
    def _is_view_reference(scope: _ViewScope, ref: ColumnRef) -> bool:
        qualifier = ref.qualifier.lower()
        if ref.schema:
            return qualified_name(ref.schema, ref.qualifier).lower() == scope.view_id.lower()
        return (
            qualifier in (scope.view.name.lower(), scope.view_id.lower())
            or scope.alias_map.get(qualifier) == scope.view_id
        )

    @staticmethod
    def _view_edge(
        view_id: str,
        table_id: str,
        view_column: str,
        table_column: str,
        label: EdgeLabel,
        confidence: Confidence,
    ) -> GraphEdge:
        prefix = "view_function" if label == EdgeLabel.VIEW_FUNCTION else "view"
        edge = GraphEdge(
            id=f"{prefix}_{view_id}_to_{table_id}_{view_column}_{table_column}",
            from_node=view_id,
            to_node=table_id,
            from_column=view_column,
            to_column=table_column,
            label=label,
            confidence=confidence,
        )
        logger.debug(
            f"Inferred {label.value} edge {view_id}.{view_column} -> "
            f"{table_id}.{table_column} ({confidence.value})"
        )
        return edge


def _same_instance(a: Optional[int], b: Optional[int]) -> bool:
    return a is None or b is None or a == b


def _find_column(columns: Sequence[Column], name: str) -> Optional[Column]:
    name_lower = name.lower()
    for column in columns:
        if column.name.lower() == name_lower:
            return column
    return None


def _pick_view_column(
    columns: Sequence[Column], table_column: str
) -> Tuple[Optional[Column], Optional[Confidence]]:
    """Choose the view column a function argument most plausibly feeds."""
    if not columns:
        return None, None

    exact = _find_column(columns, table_column)
    if exact:
        return exact, Confidence.EXACT

    target = table_column.lower()
    for column in columns:
        name = column.name.lower()
        if name in target or target in name:
            return column, Confidence.EXACT

    return columns[0], Confidence.HEURISTIC


def build_graph(schema: SchemaInfo) -> GraphData:
    """
    Convenience function to build a relationship graph.

    Args:
        schema: Structural metadata of one database

    Returns:
        GraphData
    """
    return GraphBuilder().build(schema)
