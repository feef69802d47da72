"""Tests for dependency column-pair inference."""

from schema_lens.catalog.dependencies import (
    ObjectDependency,
    dependencies_to_foreign_keys,
    infer_dependency_columns,
)
from schema_lens.models import Confidence


def dep(**kwargs):
    defaults = dict(name="DEP_1_2", referencing_table="Orders", referenced_table="Customers")
    defaults.update(kwargs)
    return ObjectDependency(**defaults)


class TestInferDependencyColumns:
    """Tests for infer_dependency_columns."""

    def test_referencing_column_named_after_referenced_table(self):
        pair = infer_dependency_columns(dep(
            referencing_columns=["OrderID", "CustomerID"],
            referenced_columns=["CustomerID", "Name"],
        ))
        assert pair == ("CustomerID", "CustomerID")

    def test_falls_back_to_referenced_primary_key(self):
        pair = infer_dependency_columns(dep(
            referencing_columns=["OrderID", "CustomerRef"],
            referenced_columns=["Code", "Name"],
            referenced_primary_keys=["Code"],
        ))
        assert pair == ("CustomerRef", "Code")

    def test_referenced_column_named_after_referencing_table(self):
        pair = infer_dependency_columns(dep(
            referencing_columns=["ID", "Total"],
            referenced_columns=["Name", "OrderRef"],
        ))
        assert pair == ("ID", "OrderRef")

    def test_first_columns_as_last_resort(self):
        pair = infer_dependency_columns(dep(
            referencing_table="Audit",
            referenced_table="Ledger",
            referencing_columns=["A", "B"],
            referenced_columns=["X", "Y"],
        ))
        assert pair == ("A", "X")

    def test_no_columns(self):
        assert infer_dependency_columns(dep(referencing_columns=["A"])) is None


def test_dependencies_to_foreign_keys():
    foreign_keys = dependencies_to_foreign_keys([
        dep(
            referencing_schema="dbo",
            referenced_schema="dbo",
            referencing_columns=["CustomerID"],
            referenced_columns=["CustomerID"],
        ),
        dep(name="DEP_3_4"),
    ])

    assert len(foreign_keys) == 1
    fk = foreign_keys[0]
    assert fk.name == "DEP_1_2"
    assert (fk.from_table, fk.to_table) == ("dbo.Orders", "dbo.Customers")
    assert fk.confidence == Confidence.HEURISTIC
