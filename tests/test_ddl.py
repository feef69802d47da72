"""Tests for DDL export."""

import pytest

from schema_lens.ddl import quote_identifier, quote_name, render_ddl, render_table
from schema_lens.models import (
    Column,
    Confidence,
    DatabaseType,
    ForeignKey,
    SchemaInfo,
    Table,
    Trigger,
    View,
)


@pytest.fixture
def schema():
    return SchemaInfo(
        tables=[
            Table(
                name="Orders",
                schema="dbo",
                columns=[
                    Column("OrderID", "int", nullable=False),
                    Column("Status", "varchar", default_value="'new'"),
                ],
                primary_keys=["OrderID"],
            ),
        ],
        views=[
            View(name="vOrders", schema="dbo", definition="SELECT OrderID FROM dbo.Orders"),
            View(name="vEmpty", schema="dbo"),
        ],
        triggers=[
            Trigger(
                name="trg_orders",
                table="dbo.Orders",
                event="INSERT",
                timing="AFTER",
                definition="CREATE TRIGGER trg_orders ON dbo.Orders AFTER INSERT AS BEGIN SET NOCOUNT ON END",
            ),
        ],
        foreign_keys=[
            ForeignKey("FK_Orders_Customers", "dbo.Orders", "CustomerID", "dbo.Customers", "CustomerID"),
            ForeignKey("DEP_1_2", "dbo.Orders", "OrderID", "dbo.Audit", "OrderID",
                       confidence=Confidence.HEURISTIC),
        ],
    )


class TestQuoting:
    """Tests for identifier quoting."""

    def test_sqlserver(self):
        assert quote_identifier("Order Lines", DatabaseType.SQLSERVER) == "[Order Lines]"
        assert quote_identifier("odd]name", DatabaseType.SQLSERVER) == "[odd]]name]"

    def test_mysql(self):
        assert quote_identifier("order", DatabaseType.MYSQL) == "`order`"
        assert quote_identifier("a`b", DatabaseType.MYSQL) == "`a``b`"

    def test_qualified(self):
        assert quote_name("dbo.Orders", DatabaseType.SQLSERVER) == "[dbo].[Orders]"
        assert quote_name("Orders", DatabaseType.SQLSERVER, schema="sales") == "[sales].[Orders]"
        assert quote_name("orders", DatabaseType.MYSQL) == "`orders`"


class TestRenderTable:
    """Tests for CREATE TABLE rendering."""

    def test_columns_and_primary_key(self, schema):
        ddl = render_table(schema.tables[0], DatabaseType.SQLSERVER)

        assert ddl.startswith("-- Table: dbo.Orders\nCREATE TABLE [dbo].[Orders] (")
        assert "    [OrderID] int NOT NULL," in ddl
        assert "    [Status] varchar DEFAULT 'new'," in ddl
        assert "    PRIMARY KEY ([OrderID])" in ddl
        assert ddl.endswith(");")


class TestRenderDdl:
    """Tests for the full DDL script."""

    def test_sqlserver_script(self, schema):
        ddl = render_ddl(schema, DatabaseType.SQLSERVER)

        assert ddl.startswith("-- DDL generated for sqlserver")
        assert "ADD CONSTRAINT [FK_Orders_Customers]" in ddl
        assert "REFERENCES [dbo].[Customers]([CustomerID]);" in ddl
        assert "CREATE VIEW [dbo].[vOrders] AS SELECT OrderID FROM dbo.Orders\nGO" in ddl
        assert "CREATE TRIGGER trg_orders ON dbo.Orders AFTER INSERT" in ddl
        assert ddl.count("\nGO") == 2
        assert ddl.endswith("\n")

    def test_order_of_sections(self, schema):
        ddl = render_ddl(schema, DatabaseType.SQLSERVER)

        assert ddl.index("CREATE TABLE") < ddl.index("ALTER TABLE") < ddl.index("CREATE VIEW")
        assert ddl.index("CREATE VIEW") < ddl.index("CREATE TRIGGER")

    def test_heuristic_foreign_keys_are_comments(self, schema):
        ddl = render_ddl(schema, DatabaseType.SQLSERVER)

        assert "-- Inferred dependency DEP_1_2: dbo.Orders.OrderID -> dbo.Audit.OrderID" in ddl
        assert "[DEP_1_2]" not in ddl

    def test_empty_view_definition_skipped(self, schema):
        assert "vEmpty" not in render_ddl(schema, DatabaseType.SQLSERVER)

    def test_mysql_script(self):
        schema = SchemaInfo(
            tables=[Table(name="orders", columns=[Column("id", "int", nullable=False)], primary_keys=["id"])],
            views=[View(name="v_orders", definition="select `o`.`id` AS `id` from `shop`.`orders` `o`")],
            triggers=[Trigger(
                name="trg_orders_ins",
                table="orders",
                event="INSERT",
                timing="BEFORE",
                definition="SET NEW.status = 'new'",
            )],
        )
        ddl = render_ddl(schema, "mysql")

        assert ddl.startswith("-- DDL generated for mysql")
        assert "CREATE TABLE `orders` (" in ddl
        assert "CREATE VIEW `v_orders` AS select" in ddl
        assert (
            "CREATE TRIGGER `trg_orders_ins` BEFORE INSERT ON `orders` "
            "FOR EACH ROW SET NEW.status = 'new';"
        ) in ddl
        assert "GO" not in ddl
