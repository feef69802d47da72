"""
DDL export: renders a SchemaInfo as engine-specific DDL text.

Tables come first, then foreign keys as ALTER TABLE statements, then views
and triggers. Foreign keys inferred from deep dependencies are not real
constraints and are emitted as comments only.
"""

from __future__ import annotations

import logging
import re
from typing import List, Optional

from schema_lens.models import Confidence, DatabaseType, SchemaInfo, Table

logger = logging.getLogger(__name__)

_CREATE_PREFIX = re.compile(r"^\s*(?:CREATE|ALTER)\b", re.IGNORECASE)


def quote_identifier(name: str, dialect: DatabaseType) -> str:
    """Quote one identifier for the dialect."""
    if dialect == DatabaseType.SQLSERVER:
        return f"[{name.replace(']', ']]')}]"
    return f"`{name.replace('`', '``')}`"


def quote_name(name: str, dialect: DatabaseType, schema: Optional[str] = None) -> str:
    """Quote a possibly schema-qualified name (``dbo.Orders`` -> ``[dbo].[Orders]``)."""
    if schema is None and "." in name:
        schema, name = name.split(".", 1)
    quoted = quote_identifier(name, dialect)
    return f"{quote_identifier(schema, dialect)}.{quoted}" if schema else quoted


def render_table(table: Table, dialect: DatabaseType) -> str:
    """Render CREATE TABLE for one table."""
    lines = [f"-- Table: {table.full_name}"]
    lines.append(f"CREATE TABLE {quote_name(table.name, dialect, table.schema)} (")

    definitions = []
    for col in table.columns:
        definition = f"    {quote_identifier(col.name, dialect)} {col.type}"
        if not col.nullable:
            definition += " NOT NULL"
        if col.default_value is not None:
            definition += f" DEFAULT {col.default_value}"
        definitions.append(definition)

    if table.primary_keys:
        keys = ", ".join(quote_identifier(pk, dialect) for pk in table.primary_keys)
        definitions.append(f"    PRIMARY KEY ({keys})")

    lines.append(",\n".join(definitions))
    lines.append(");")
    return "\n".join(lines)


def render_ddl(schema: SchemaInfo, dialect: DatabaseType) -> str:
    """
    Render the complete DDL script of a schema.

    Args:
        schema: Structural metadata
        dialect: Target engine family (controls quoting and batch separators)

    Returns:
        DDL text
    """
    dialect = DatabaseType(dialect)
    separator = "GO" if dialect == DatabaseType.SQLSERVER else None
    blocks: List[str] = [f"-- DDL generated for {dialect.value}"]

    for table in schema.tables:
        blocks.append(render_table(table, dialect))

    for fk in schema.foreign_keys:
        if fk.confidence == Confidence.HEURISTIC:
            blocks.append(
                f"-- Inferred dependency {fk.name}: "
                f"{fk.from_table}.{fk.from_column} -> {fk.to_table}.{fk.to_column}"
            )
            continue
        blocks.append("\n".join([
            f"-- Foreign Key: {fk.name}",
            f"ALTER TABLE {quote_name(fk.from_table, dialect)}",
            f"    ADD CONSTRAINT {quote_identifier(fk.name, dialect)}",
            f"    FOREIGN KEY ({quote_identifier(fk.from_column, dialect)}) "
            f"REFERENCES {quote_name(fk.to_table, dialect)}({quote_identifier(fk.to_column, dialect)});",
        ]))

    for view in schema.views:
        definition = view.definition.strip()
        if not definition:
            continue
        if not _CREATE_PREFIX.match(definition):
            definition = f"CREATE VIEW {quote_name(view.name, dialect, view.schema)} AS {definition}"
        blocks.append(_statement(f"-- View: {view.full_name}\n{definition}", separator))

    for trigger in schema.triggers:
        definition = trigger.definition.strip()
        if not definition:
            continue
        if not _CREATE_PREFIX.match(definition):
            definition = (
                f"CREATE TRIGGER {quote_identifier(trigger.name, dialect)} "
                f"{trigger.timing} {trigger.event} ON {quote_name(trigger.table, dialect)} "
                f"FOR EACH ROW {definition}"
            )
        blocks.append(_statement(f"-- Trigger: {trigger.name}\n{definition}", separator))

    logger.debug(
        f"Rendered DDL for {len(schema.tables)} tables, {len(schema.foreign_keys)} foreign keys"
    )
    return "\n\n".join(blocks) + "\n"


def _statement(text: str, separator: Optional[str]) -> str:
    if separator:
        return f"{text}\n{separator}"
    return text if text.endswith(";") else text + ";"
