"""
Core data models for the schema_lens package.

Defines the engine-agnostic schema structures produced by the catalog
adapters (SchemaInfo and its parts) and the graph structures produced by
the relationship inference pipeline (GraphData and its parts).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class DatabaseType(str, Enum):
    """Supported catalog engine families."""
    MYSQL = "mysql"
    SQLSERVER = "sqlserver"


class NodeKind(str, Enum):
    """Kind of object a graph node stands for."""
    TABLE = "table"
    VIEW = "view"


class EdgeLabel(str, Enum):
    """Origin of a graph edge."""
    DECLARED_FK = "declared-fk"
    VIEW_JOIN = "view-join"
    VIEW_FUNCTION = "view-function"


class Confidence(str, Enum):
    """How a relationship was established."""
    EXACT = "exact"
    HEURISTIC = "heuristic"


def qualified_name(namespace: Optional[str], name: str) -> str:
    """Return ``namespace.name`` or bare ``name`` when there is no namespace."""
    return f"{namespace}.{name}" if namespace else name


@dataclass(frozen=True)
class Column:
    """Metadata for a single table or view column."""
    name: str
    type: str
    nullable: bool = True
    is_primary_key: bool = False
    is_foreign_key: bool = False
    default_value: Optional[str] = None
    comment: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "name": self.name,
            "type": self.type,
            "nullable": self.nullable,
            "is_primary_key": self.is_primary_key,
            "is_foreign_key": self.is_foreign_key,
            "default_value": self.default_value,
            "comment": self.comment,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Column:
        """Create from dictionary."""
        return cls(
            name=data["name"],
            type=data.get("type", ""),
            nullable=data.get("nullable", True),
            is_primary_key=data.get("is_primary_key", False),
            is_foreign_key=data.get("is_foreign_key", False),
            default_value=data.get("default_value"),
            comment=data.get("comment"),
        )


@dataclass(frozen=True)
class Index:
    """A table index and its ordered key columns."""
    name: str
    columns: List[str] = field(default_factory=list)
    unique: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "columns": list(self.columns), "unique": self.unique}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Index:
        return cls(
            name=data["name"],
            columns=list(data.get("columns", [])),
            unique=data.get("unique", False),
        )


@dataclass(frozen=True)
class Table:
    """Metadata for a database table. Identity is ``(schema, name)``."""
    name: str
    schema: Optional[str] = None
    columns: List[Column] = field(default_factory=list)
    primary_keys: List[str] = field(default_factory=list)
    indexes: List[Index] = field(default_factory=list)

    @property
    def full_name(self) -> str:
        """Return schema-qualified table name."""
        return qualified_name(self.schema, self.name)

    @property
    def column_names(self) -> List[str]:
        """Return list of column names."""
        return [c.name for c in self.columns]

    def get_column(self, name: str) -> Optional[Column]:
        """Get column by name (case-insensitive)."""
        name_lower = name.lower()
        for col in self.columns:
            if col.name.lower() == name_lower:
                return col
        return None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "name": self.name,
            "schema": self.schema,
            "columns": [c.to_dict() for c in self.columns],
            "primary_keys": list(self.primary_keys),
            "indexes": [i.to_dict() for i in self.indexes],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Table:
        """Create from dictionary."""
        return cls(
            name=data["name"],
            schema=data.get("schema"),
            columns=[Column.from_dict(c) for c in data.get("columns", [])],
            primary_keys=list(data.get("primary_keys", [])),
            indexes=[Index.from_dict(i) for i in data.get("indexes", [])],
        )


@dataclass(frozen=True)
class ForeignKey:
    """
    One column pair of a foreign key relationship.

    A declared constraint spanning N columns is represented as N records
    sharing the same ``name``.
    """
    name: str
    from_table: str
    from_column: str
    to_table: str
    to_column: str
    confidence: Confidence = Confidence.EXACT

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "name": self.name,
            "from_table": self.from_table,
            "from_column": self.from_column,
            "to_table": self.to_table,
            "to_column": self.to_column,
            "confidence": self.confidence.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> ForeignKey:
        """Create from dictionary."""
        return cls(
            name=data["name"],
            from_table=data["from_table"],
            from_column=data["from_column"],
            to_table=data["to_table"],
            to_column=data["to_column"],
            confidence=Confidence(data.get("confidence", "exact")),
        )


@dataclass(frozen=True)
class View:
    """A view with its raw SQL definition and result columns."""
    name: str
    schema: Optional[str] = None
    definition: str = ""
    columns: List[Column] = field(default_factory=list)

    @property
    def full_name(self) -> str:
        return qualified_name(self.schema, self.name)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "schema": self.schema,
            "definition": self.definition,
            "columns": [c.to_dict() for c in self.columns],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> View:
        return cls(
            name=data["name"],
            schema=data.get("schema"),
            definition=data.get("definition") or "",
            columns=[Column.from_dict(c) for c in data.get("columns", [])],
        )


@dataclass(frozen=True)
class Trigger:
    """A table trigger. Carried through for display only."""
    name: str
    table: str
    event: str
    timing: str
    definition: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "table": self.table,
            "event": self.event,
            "timing": self.timing,
            "definition": self.definition,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Trigger:
        return cls(
            name=data["name"],
            table=data["table"],
            event=data.get("event", "UNKNOWN"),
            timing=data.get("timing", ""),
            definition=data.get("definition") or "",
        )


@dataclass(frozen=True)
class SchemaInfo:
    """
    Structural metadata of one database.

    This is the sole input of the relationship inference pipeline.
    """
    tables: List[Table] = field(default_factory=list)
    views: List[View] = field(default_factory=list)
    triggers: List[Trigger] = field(default_factory=list)
    foreign_keys: List[ForeignKey] = field(default_factory=list)

    def get_table(self, name: str) -> Optional[Table]:
        """Get table by qualified or bare name (case-insensitive)."""
        name_lower = name.lower()
        for table in self.tables:
            if table.full_name.lower() == name_lower:
                return table
        for table in self.tables:
            if table.name.lower() == name_lower:
                return table
        return None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "tables": [t.to_dict() for t in self.tables],
            "views": [v.to_dict() for v in self.views],
            "triggers": [t.to_dict() for t in self.triggers],
            "foreign_keys": [fk.to_dict() for fk in self.foreign_keys],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> SchemaInfo:
        """Create from dictionary."""
        return cls(
            tables=[Table.from_dict(t) for t in data.get("tables", [])],
            views=[View.from_dict(v) for v in data.get("views", [])],
            triggers=[Trigger.from_dict(t) for t in data.get("triggers", [])],
            foreign_keys=[ForeignKey.from_dict(fk) for fk in data.get("foreign_keys", [])],
        )


@dataclass(frozen=True)
class GraphNode:
    """Graph vertex for a table or a view."""
    id: str
    label: str
    kind: NodeKind
    schema: Optional[str] = None
    columns: List[Column] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "label": self.label,
            "kind": self.kind.value,
            "schema": self.schema,
            "columns": [c.to_dict() for c in self.columns],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> GraphNode:
        return cls(
            id=data["id"],
            label=data.get("label", data["id"]),
            kind=NodeKind(data.get("kind", "table")),
            schema=data.get("schema"),
            columns=[Column.from_dict(c) for c in data.get("columns", [])],
        )


@dataclass(frozen=True)
class GraphEdge:
    """Graph connection between two nodes on one column pair."""
    id: str
    from_node: str
    to_node: str
    from_column: str
    to_column: str
    label: EdgeLabel
    confidence: Confidence = Confidence.EXACT
    constraint: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "from": self.from_node,
            "to": self.to_node,
            "from_column": self.from_column,
            "to_column": self.to_column,
            "label": self.label.value,
            "confidence": self.confidence.value,
            "constraint": self.constraint,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> GraphEdge:
        """Create from dictionary."""
        return cls(
            id=data["id"],
            from_node=data["from"],
            to_node=data["to"],
            from_column=data["from_column"],
            to_column=data["to_column"],
            label=EdgeLabel(data["label"]),
            confidence=Confidence(data.get("confidence", "exact")),
            constraint=data.get("constraint"),
        )


@dataclass(frozen=True)
class GraphData:
    """Nodes and edges produced by one inference pass."""
    nodes: List[GraphNode] = field(default_factory=list)
    edges: List[GraphEdge] = field(default_factory=list)

    @property
    def node_ids(self) -> List[str]:
        return [n.id for n in self.nodes]

    def node(self, node_id: str) -> Optional[GraphNode]:
        """Get node by id."""
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def edges_for(self, node_id: str) -> List[GraphEdge]:
        """Get all edges touching a node (as source or target)."""
        return [e for e in self.edges if node_id in (e.from_node, e.to_node)]

    def related_nodes(self, node_id: str) -> List[str]:
        """Get ids of all nodes adjacent to ``node_id``, sorted."""
        related = set()
        for edge in self.edges:
            if edge.from_node == node_id:
                related.add(edge.to_node)
            if edge.to_node == node_id:
                related.add(edge.from_node)
        related.discard(node_id)
        return sorted(related)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "nodes": [n.to_dict() for n in self.nodes],
            "edges": [e.to_dict() for e in self.edges],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> GraphData:
        """Create from dictionary."""
        return cls(
            nodes=[GraphNode.from_dict(n) for n in data.get("nodes", [])],
            edges=[GraphEdge.from_dict(e) for e in data.get("edges", [])],
        )
