"""
Column-pair inference for object-level dependencies.

An expression-dependency catalog only says "object A references object B".
To draw that as a relationship we guess one column on each side:

1. Naming convention: a column on one side whose name contains the first
   few characters of the other side's table name (``orders.customer_id``
   referencing ``customers``).
2. Otherwise the first column of each table.

Dependencies for which neither side has columns are dropped.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, Tuple

from schema_lens.models import Confidence, ForeignKey, qualified_name

logger = logging.getLogger(__name__)

# Characters of a table name compared against column names
PREFIX_LENGTH = 5


@dataclass
class ObjectDependency:
    """One referencing -> referenced object pair from the dependency catalog."""
    name: str
    referencing_table: str
    referenced_table: str
    referencing_schema: Optional[str] = None
    referenced_schema: Optional[str] = None
    referencing_columns: List[str] = field(default_factory=list)
    referenced_columns: List[str] = field(default_factory=list)
    referenced_primary_keys: List[str] = field(default_factory=list)


def _prefix(table_name: str) -> str:
    return table_name.lower()[:PREFIX_LENGTH]


def _find(columns: Sequence[str], name: str) -> Optional[str]:
    name_lower = name.lower()
    for col in columns:
        if col.lower() == name_lower:
            return col
    return None


def infer_dependency_columns(dep: ObjectDependency) -> Optional[Tuple[str, str]]:
    """
    Pick a plausible (from_column, to_column) pair for a dependency.

    Returns:
        The column pair, or None when no pair can be determined
    """
    from_cols = dep.referencing_columns
    to_cols = dep.referenced_columns
    if not from_cols or not to_cols:
        return None

    referenced_prefix = _prefix(dep.referenced_table)
    referencing_prefix = _prefix(dep.referencing_table)

    # Referencing column named after the referenced table (orders.customer_id -> customers)
    for col in from_cols:
        if referenced_prefix and referenced_prefix in col.lower():
            target = (
                _find(to_cols, col)
                or next(iter(dep.referenced_primary_keys), None)
                or to_cols[0]
            )
            return col, target

    # Referenced column named after the referencing table
    for col in to_cols:
        if referencing_prefix and referencing_prefix in col.lower():
            return _find(from_cols, col) or from_cols[0], col

    return from_cols[0], to_cols[0]


def dependencies_to_foreign_keys(deps: Iterable[ObjectDependency]) -> List[ForeignKey]:
    """Turn dependency pairs into heuristic ForeignKey records."""
    foreign_keys = []
    for dep in deps:
        pair = infer_dependency_columns(dep)
        if pair is None:
            logger.debug(f"Dropping dependency {dep.name}: no columns on one side")
            continue

        from_column, to_column = pair
        foreign_keys.append(ForeignKey(
            name=dep.name,
            from_table=qualified_name(dep.referencing_schema, dep.referencing_table),
            from_column=from_column,
            to_table=qualified_name(dep.referenced_schema, dep.referenced_table),
            to_column=to_column,
            confidence=Confidence.HEURISTIC,
        ))

    return foreign_keys
