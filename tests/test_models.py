"""Tests for core data models."""

import json

import pytest

from schema_lens.models import (
    Column,
    Confidence,
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
    qualified_name,
)


class TestColumn:
    """Tests for Column."""

    def test_defaults(self):
        col = Column(name="id", type="int")
        assert col.nullable is True
        assert col.is_primary_key is False
        assert col.is_foreign_key is False
        assert col.default_value is None

    def test_serialization(self):
        col = Column(
            name="amount",
            type="decimal",
            nullable=False,
            default_value="0.00",
            comment="Order total",
        )
        restored = Column.from_dict(col.to_dict())

        assert restored == col

    def test_from_dict_minimal(self):
        col = Column.from_dict({"name": "x"})
        assert col.type == ""
        assert col.nullable is True


class TestTable:
    """Tests for Table."""

    @pytest.fixture
    def table(self):
        return Table(
            name="Orders",
            schema="dbo",
            columns=[
                Column(name="OrderID", type="int", nullable=False, is_primary_key=True),
                Column(name="CustomerID", type="int"),
            ],
            primary_keys=["OrderID"],
            indexes=[Index(name="PK_Orders", columns=["OrderID"], unique=True)],
        )

    def test_full_name(self, table):
        assert table.full_name == "dbo.Orders"
        assert Table(name="orders").full_name == "orders"

    def test_column_names(self, table):
        assert table.column_names == ["OrderID", "CustomerID"]

    def test_get_column_case_insensitive(self, table):
        assert table.get_column("customerid").name == "CustomerID"
        assert table.get_column("missing") is None

    def test_serialization(self, table):
        restored = Table.from_dict(table.to_dict())

        assert restored == table
        assert restored.indexes[0].unique is True


class TestForeignKey:
    """Tests for ForeignKey."""

    def test_default_confidence(self):
        fk = ForeignKey("fk_a", "orders", "customer_id", "customers", "id")
        assert fk.confidence == Confidence.EXACT
        assert fk.to_dict()["confidence"] == "exact"

    def test_heuristic_round_trip(self):
        fk = ForeignKey("DEP_1_2", "dbo.a", "b_id", "dbo.b", "id", confidence=Confidence.HEURISTIC)
        assert ForeignKey.from_dict(fk.to_dict()) == fk


class TestSchemaInfo:
    """Tests for SchemaInfo."""

    @pytest.fixture
    def schema(self):
        return SchemaInfo(
            tables=[
                Table(name="Orders", schema="dbo", columns=[Column(name="id", type="int")]),
                Table(name="Orders", schema="archive"),
            ],
            views=[View(name="vOrders", schema="dbo", definition="SELECT id FROM dbo.Orders")],
            triggers=[Trigger(name="trg", table="dbo.Orders", event="INSERT", timing="AFTER")],
            foreign_keys=[ForeignKey("fk", "dbo.Orders", "id", "archive.Orders", "id")],
        )

    def test_get_table_prefers_qualified_match(self, schema):
        assert schema.get_table("archive.orders").schema == "archive"
        assert schema.get_table("Orders").schema == "dbo"
        assert schema.get_table("nope") is None

    def test_json_round_trip(self, schema):
        data = json.loads(json.dumps(schema.to_dict()))
        restored = SchemaInfo.from_dict(data)

        assert restored == schema

    def test_from_dict_tolerates_missing_sections(self):
        schema = SchemaInfo.from_dict({"tables": [{"name": "t"}]})
        assert schema.views == []
        assert schema.foreign_keys == []

    def test_null_view_definition(self):
        view = View.from_dict({"name": "v", "definition": None})
        assert view.definition == ""


class TestGraphData:
    """Tests for GraphData."""

    @pytest.fixture
    def graph(self):
        return GraphData(
            nodes=[
                GraphNode(id="orders", label="orders", kind=NodeKind.TABLE),
                GraphNode(id="customers", label="customers", kind=NodeKind.TABLE),
                GraphNode(id="v_orders", label="v_orders", kind=NodeKind.VIEW),
                GraphNode(id="audit", label="audit", kind=NodeKind.TABLE),
            ],
            edges=[
                GraphEdge(
                    id="fk_fk1_customer_id_id",
                    from_node="orders",
                    to_node="customers",
                    from_column="customer_id",
                    to_column="id",
                    label=EdgeLabel.DECLARED_FK,
                    constraint="fk1",
                ),
                GraphEdge(
                    id="view_v_orders_to_customers_customer_id_id",
                    from_node="v_orders",
                    to_node="customers",
                    from_column="customer_id",
                    to_column="id",
                    label=EdgeLabel.VIEW_JOIN,
                ),
            ],
        )

    def test_node_lookup(self, graph):
        assert graph.node("v_orders").kind == NodeKind.VIEW
        assert graph.node("missing") is None
        assert graph.node_ids == ["orders", "customers", "v_orders", "audit"]

    def test_related_nodes(self, graph):
        assert graph.related_nodes("customers") == ["orders", "v_orders"]
        assert graph.related_nodes("orders") == ["customers"]
        assert graph.related_nodes("audit") == []

    def test_edges_for(self, graph):
        assert len(graph.edges_for("customers")) == 2
        assert graph.edges_for("audit") == []

    def test_edge_wire_keys(self, graph):
        data = graph.edges[0].to_dict()

        assert data["from"] == "orders"
        assert data["to"] == "customers"
        assert data["label"] == "declared-fk"
        assert data["constraint"] == "fk1"

    def test_round_trip(self, graph):
        data = json.loads(json.dumps(graph.to_dict()))
        assert GraphData.from_dict(data) == graph


def test_qualified_name():
    assert qualified_name("dbo", "Orders") == "dbo.Orders"
    assert qualified_name(None, "orders") == "orders"
    assert qualified_name("", "orders") == "orders"
