"""
Schema assembler: merges catalog adapter output into one SchemaInfo.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Dict, List, Set

from schema_lens.models import ForeignKey, SchemaInfo, Table, Trigger, View

logger = logging.getLogger(__name__)


def assemble_schema(
    tables: List[Table],
    views: List[View],
    triggers: List[Trigger],
    foreign_keys: List[ForeignKey],
    deep_dependencies: List[ForeignKey],
) -> SchemaInfo:
    """
    Build the engine-agnostic SchemaInfo.

    Declared foreign keys come first, then deep dependencies, with no
    deduplication: the inference pipeline compares at edge level. Columns
    that are the source of a declared foreign key get ``is_foreign_key``.

    Args:
        tables: Tables from the catalog adapter
        views: Views from the catalog adapter
        triggers: Triggers from the catalog adapter
        foreign_keys: Declared foreign keys, flattened per column pair
        deep_dependencies: Inferred dependency records

    Returns:
        SchemaInfo
    """
    all_foreign_keys = list(foreign_keys) + list(deep_dependencies)
    if deep_dependencies:
        logger.info(
            f"Merged {len(foreign_keys)} declared foreign keys with "
            f"{len(deep_dependencies)} deep dependencies"
        )

    return SchemaInfo(
        tables=_mark_foreign_key_columns(tables, foreign_keys),
        views=list(views),
        triggers=list(triggers),
        foreign_keys=all_foreign_keys,
    )


def _mark_foreign_key_columns(tables: List[Table], foreign_keys: List[ForeignKey]) -> List[Table]:
    """Set ``is_foreign_key`` on the source columns of declared foreign keys."""
    fk_columns: Dict[str, Set[str]] = {}
    for fk in foreign_keys:
        fk_columns.setdefault(fk.from_table.lower(), set()).add(fk.from_column.lower())

    marked = []
    for table in tables:
        cols = fk_columns.get(table.full_name.lower()) or fk_columns.get(table.name.lower())
        if not cols:
            marked.append(table)
            continue
        marked.append(replace(table, columns=[
            replace(c, is_foreign_key=True) if c.name.lower() in cols else c
            for c in table.columns
        ]))
    return marked
