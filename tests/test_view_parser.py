"""
Tests for the view definition parser.

Tests table reference extraction, JOIN condition parsing, select-list
lineage and function-call argument extraction.
"""

import pytest

from schema_lens.discovery.view_parser import (
    ColumnRef,
    TableRef,
    ViewDefinitionParser,
    extract_cte_names,
    extract_select_list,
    normalize_sql,
    split_top_level,
)


@pytest.fixture
def parser():
    return ViewDefinitionParser()


class TestNormalizeSql:
    """Tests for SQL normalisation."""

    def test_strips_comments(self):
        sql = "SELECT a -- trailing\nFROM t /* block\ncomment */ WHERE 1 = 1"
        assert normalize_sql(sql) == "SELECT a FROM t WHERE 1 = 1"

    def test_strips_identifier_quoting(self):
        assert normalize_sql("SELECT [o].[id] FROM [dbo].[Orders] [o]") == "SELECT o.id FROM dbo.Orders o"
        assert normalize_sql('SELECT `o`.`id` FROM "orders" `o`') == "SELECT o.id FROM orders o"

    def test_empty(self):
        assert normalize_sql("") == ""
        assert normalize_sql(None) == ""


class TestHelpers:
    """Tests for the text helpers."""

    def test_split_top_level_ignores_nested_commas(self):
        parts = split_top_level("a, fn(b, c), 'x,y', d")
        assert [p.strip() for p in parts] == ["a", "fn(b, c)", "'x,y'", "d"]

    def test_select_list_stops_at_top_level_from(self):
        sql = "SELECT EXTRACT(YEAR FROM o.created) AS y, o.id FROM orders o"
        assert extract_select_list(sql) == "EXTRACT(YEAR FROM o.created) AS y, o.id"

    def test_select_list_strips_distinct_and_top(self):
        assert extract_select_list("SELECT DISTINCT a, b FROM t") == "a, b"
        assert extract_select_list("SELECT TOP (10) a FROM t") == "a"

    def test_no_select(self):
        assert extract_select_list("UPDATE t SET a = 1") is None

    def test_select_list_skips_leading_cte(self):
        sql = (
            "WITH recent AS (SELECT id, customer_id FROM orders WHERE id > 10) "
            "SELECT r.customer_id, c.name FROM recent r JOIN customers c ON r.customer_id = c.id"
        )
        assert extract_select_list(sql) == "r.customer_id, c.name"

    def test_cte_names(self):
        sql = "WITH a AS (SELECT 1 AS x), b (y) AS (SELECT 2) SELECT * FROM a, b"
        assert extract_cte_names(sql) == ["a", "b"]
        assert extract_cte_names("SELECT a, b AS c FROM t") == []


class TestTableReferences:
    """Tests for FROM / JOIN table extraction."""

    def test_from_and_join_with_aliases(self, parser):
        result = parser.parse(
            "SELECT o.id FROM orders o JOIN customers AS c ON o.customer_id = c.id"
        )

        assert result.is_valid
        assert result.table_refs == [
            TableRef(name="orders", alias="o"),
            TableRef(name="customers", alias="c"),
        ]

    def test_schema_qualified(self, parser):
        result = parser.parse("SELECT * FROM [dbo].[Orders] o INNER JOIN sales.Customer c ON o.cid = c.id")

        assert result.table_refs[0] == TableRef(name="Orders", schema="dbo", alias="o")
        assert result.table_refs[1] == TableRef(name="Customer", schema="sales", alias="c")

    def test_comma_separated_from(self, parser):
        result = parser.parse("SELECT a.x FROM accounts a, customers c WHERE a.cid = c.id")

        names = [ref.name for ref in result.table_refs]
        assert names == ["accounts", "customers"]

    def test_keyword_is_not_alias(self, parser):
        result = parser.parse("SELECT * FROM orders WHERE id > 1")

        assert result.table_refs == [TableRef(name="orders")]

    def test_subquery_is_skipped(self, parser):
        result = parser.parse("SELECT x.id FROM (SELECT id FROM orders) x")

        assert [ref.name for ref in result.table_refs] == ["orders"]

    def test_mysql_stored_form(self, parser):
        definition = (
            "select `o`.`id` AS `id`,`o`.`customer_id` AS `customer_id` "
            "from (`shop`.`orders` `o` join `shop`.`customers` `c` "
            "on((`o`.`customer_id` = `c`.`id`)))"
        )
        result = parser.parse(definition)

        assert result.table_refs == [
            TableRef(name="orders", schema="shop", alias="o"),
            TableRef(name="customers", schema="shop", alias="c"),
        ]
        assert result.joins[0].conditions == [
            (ColumnRef("customer_id", "o"), ColumnRef("id", "c")),
        ]


class TestJoinConditions:
    """Tests for JOIN ... ON parsing."""

    def test_join_types(self, parser):
        result = parser.parse(
            "SELECT * FROM a "
            "LEFT OUTER JOIN b ON a.id = b.a_id "
            "RIGHT JOIN c ON b.id = c.b_id "
            "JOIN d ON c.id = d.c_id"
        )

        assert [j.join_type for j in result.joins] == ["LEFT", "RIGHT", "INNER"]
        assert [j.table.name for j in result.joins] == ["b", "c", "d"]

    def test_compound_condition(self, parser):
        result = parser.parse(
            "SELECT * FROM a JOIN b ON a.id = b.a_id AND a.region = b.region WHERE a.x = 1"
        )

        assert result.joins[0].conditions == [
            (ColumnRef("id", "a"), ColumnRef("a_id", "b")),
            (ColumnRef("region", "a"), ColumnRef("region", "b")),
        ]

    def test_literal_comparisons_ignored(self, parser):
        result = parser.parse(
            "SELECT * FROM a JOIN b ON a.id = b.a_id AND b.status = 'open' AND b.kind = 3"
        )

        assert result.joins[0].conditions == [(ColumnRef("id", "a"), ColumnRef("a_id", "b"))]

    def test_table_hint(self, parser):
        result = parser.parse("SELECT * FROM a JOIN b WITH (NOLOCK) ON a.id = b.a_id")

        assert result.joins[0].table == TableRef(name="b")
        assert len(result.joins[0].conditions) == 1

    def test_non_equality_ignored(self, parser):
        assert parser.parse_conditions("a.x >= b.y") == []
        assert parser.parse_conditions("a.x <> b.y") == []


class TestSelectItems:
    """Tests for select-list lineage."""

    def test_plain_and_aliased_columns(self, parser):
        result = parser.parse("SELECT o.id, o.total AS amount, name FROM orders o")

        items = result.select_items
        assert [i.output_name for i in items] == ["id", "amount", "name"]
        assert items[0].source == ColumnRef("id", "o")
        assert items[1].source == ColumnRef("total", "o")
        assert items[2].source == ColumnRef("name")

    def test_expressions_have_no_source(self, parser):
        result = parser.parse("SELECT UPPER(c.name) AS name_upper, c.a + c.b total FROM customers c")

        assert [i.output_name for i in result.select_items] == ["name_upper", "total"]
        assert all(i.source is None for i in result.select_items)

    def test_assignment_alias(self, parser):
        result = parser.parse("SELECT CustomerKey = c.id FROM customers c")

        item = result.select_items[0]
        assert item.output_name == "CustomerKey"
        assert item.source == ColumnRef("id", "c")

    def test_star(self, parser):
        result = parser.parse("SELECT o.* FROM orders o")

        assert result.select_items[0].source is None


class TestFunctionCalls:
    """Tests for function-call argument extraction."""

    def test_schema_qualified_reference(self, parser):
        result = parser.parse("SELECT s.id, dbo.fnLookup(dbo.Product.code) AS label FROM dbo.Sales s")

        call = result.function_calls[0]
        assert call.schema == "dbo"
        assert call.name == "fnLookup"
        assert call.references == [ColumnRef(column="code", qualifier="Product", schema="dbo")]

    def test_alias_reference_and_literals(self, parser):
        result = parser.parse("SELECT fmt(o.total, 'a.b') AS t FROM orders o")

        assert result.function_calls[0].references == [ColumnRef("total", "o")]

    def test_nested_calls(self, parser):
        result = parser.parse("SELECT COALESCE(fn(o.a), o.b) AS v FROM orders o")

        names = [c.name for c in result.function_calls]
        assert names == ["COALESCE", "fn"]
        assert ColumnRef("b", "o") in result.function_calls[0].references
        assert result.function_calls[1].references == [ColumnRef("a", "o")]

    def test_numbers_are_not_references(self, parser):
        result = parser.parse("SELECT ROUND(o.total, 2.5) AS t FROM orders o")

        assert result.function_calls[0].references == [ColumnRef("total", "o")]


class TestParsedView:
    """Tests for ParsedView serialization."""

    def test_to_dict(self, parser):
        result = parser.parse("SELECT o.id FROM orders o JOIN c ON o.cid = c.id", "v_test")
        data = result.to_dict()

        assert data["view_name"] == "v_test"
        assert data["is_valid"] is True
        assert data["joins"][0]["conditions"] == [["o.cid", "c.id"]]

    def test_empty_definition(self, parser):
        result = parser.parse("", "v_empty")

        assert result.is_valid
        assert result.table_refs == []

    def test_cte_definition(self, parser):
        result = parser.parse(
            "WITH x AS (SELECT fn(t.a) AS v FROM t) "
            "SELECT x.v, UPPER(u.name) AS n FROM x JOIN u ON u.id = x.v"
        )

        assert result.cte_names == ["x"]
        assert [s.output_name for s in result.select_items] == ["v", "n"]
        assert [call.name for call in result.function_calls] == ["UPPER"]
        assert result.to_dict()["cte_names"] == ["x"]
