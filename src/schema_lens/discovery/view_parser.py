"""
View definition parser for extracting structural hints from view SQL.

This is targeted text-pattern extraction, not a SQL grammar. Each target
has its own narrow pattern:

- table references:  FROM|JOIN [schema.]table [[AS] alias]  (plus comma lists)
- join conditions:   JOIN ... ON <cond> [AND|OR <cond>]...
- equality:          [qualifier.]column = [qualifier.]column
- CTE names:         WITH name [(columns)] AS (...) [, name AS (...)]...
- select list:       top-level items of the SELECT ... FROM outside any
                     parentheses (a leading WITH list is skipped)
- function calls:    [schema.]function(args), references in args as
                     [schema.]table.column or alias.column

Anything the patterns do not recognise is skipped; a missed hint is
acceptable, a wrong one is not.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Tuple

logger = logging.getLogger(__name__)

IDENT = r"[A-Za-z_#@][\w$#@]*"
QUALIFIED_IDENT = rf"{IDENT}(?:\.{IDENT}){{0,2}}"

# Words that can follow a table reference but are never aliases
RESERVED_WORDS = frozenset({
    "ON", "USING", "WHERE", "GROUP", "ORDER", "HAVING", "UNION", "EXCEPT",
    "INTERSECT", "INNER", "LEFT", "RIGHT", "FULL", "CROSS", "OUTER", "NATURAL",
    "JOIN", "STRAIGHT_JOIN", "WITH", "LIMIT", "WINDOW", "SELECT", "FROM",
    "APPLY", "PIVOT", "UNPIVOT", "FOR", "OPTION", "AS", "AND", "OR",
})

# Call-like words in a select list that are syntax, not functions
NON_FUNCTION_WORDS = frozenset({
    "IN", "EXISTS", "AND", "OR", "NOT", "AS", "ON", "WHEN", "THEN", "ELSE",
    "OVER", "VALUES", "SELECT", "FROM", "WHERE", "CASE", "END", "IS", "LIKE",
    "BETWEEN", "DISTINCT", "ALL", "ANY", "SOME",
})


@dataclass(frozen=True)
class TableRef:
    """A table mentioned in a FROM or JOIN clause."""
    name: str
    schema: Optional[str] = None
    alias: Optional[str] = None

    @property
    def full_name(self) -> str:
        return f"{self.schema}.{self.name}" if self.schema else self.name

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "schema": self.schema, "alias": self.alias}


@dataclass(frozen=True)
class ColumnRef:
    """A possibly qualified column reference such as ``o.customer_id``."""
    column: str
    qualifier: Optional[str] = None
    schema: Optional[str] = None

    def __str__(self) -> str:
        return ".".join(p for p in (self.schema, self.qualifier, self.column) if p)


@dataclass
class JoinClause:
    """One JOIN with its ON equality conditions."""
    table: TableRef
    join_type: str
    conditions: List[Tuple[ColumnRef, ColumnRef]] = field(default_factory=list)


@dataclass
class SelectItem:
    """One top-level item of the select list."""
    expression: str
    output_name: Optional[str] = None
    source: Optional[ColumnRef] = None  # set when the item is a plain column


@dataclass
class FunctionCall:
    """A call-like expression in the select list and the columns it receives."""
    name: str
    schema: Optional[str] = None
    arguments: str = ""
    references: List[ColumnRef] = field(default_factory=list)


@dataclass
class ParsedView:
    """Result of parsing a view definition."""
    view_name: str
    table_refs: List[TableRef] = field(default_factory=list)
    joins: List[JoinClause] = field(default_factory=list)
    select_items: List[SelectItem] = field(default_factory=list)
    function_calls: List[FunctionCall] = field(default_factory=list)
    cte_names: List[str] = field(default_factory=list)
    is_valid: bool = True
    parse_errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "view_name": self.view_name,
            "table_refs": [t.to_dict() for t in self.table_refs],
            "joins": [
                {
                    "table": j.table.to_dict(),
                    "join_type": j.join_type,
                    "conditions": [[str(a), str(b)] for a, b in j.conditions],
                }
                for j in self.joins
            ],
            "select_items": [
                {"expression": s.expression, "output_name": s.output_name}
                for s in self.select_items
            ],
            "function_calls": [
                {
                    "name": f"{f.schema}.{f.name}" if f.schema else f.name,
                    "references": [str(r) for r in f.references],
                }
                for f in self.function_calls
            ],
            "cte_names": self.cte_names,
            "is_valid": self.is_valid,
            "parse_errors": self.parse_errors,
        }


class ViewDefinitionParser:
    """
    Extracts table references, join conditions, select-list lineage and
    function-call arguments from view SQL.

    Supports:
    - ANSI JOINs (INNER, LEFT/RIGHT/FULL [OUTER], CROSS, plain JOIN)
    - Comma-separated FROM lists
    - SQL Server [bracket] and MySQL `backtick` quoting, table hints
    - MySQL's stored form: ``from (`db`.`t` `a` join ... on((...)))``
    """

    TABLE_REF_PATTERN = re.compile(
        rf"^\(*\s*(?P<table>{QUALIFIED_IDENT})(?:\s+(?:AS\s+)?(?P<alias>{IDENT}))?",
        re.IGNORECASE,
    )

    JOIN_PATTERN = re.compile(
        r"(?P<type>(?:(?:INNER|CROSS|NATURAL|(?:LEFT|RIGHT|FULL)(?:\s+OUTER)?)\s+)?JOIN)\s+"
        rf"\(*\s*(?!SELECT\b)(?P<table>{QUALIFIED_IDENT})"
        rf"(?:\s+(?:AS\s+)?(?P<alias>{IDENT}))?"
        r"(?:\s+WITH\s*\([^)]*\))?"
        r"(?:\s+ON\b\s*(?P<condition>.+?))?"
        r"(?=\s+(?:(?:INNER|CROSS|NATURAL|LEFT|RIGHT|FULL)\s+)?(?:OUTER\s+)?JOIN\b"
        r"|\s+(?:WHERE|GROUP|ORDER|HAVING|UNION|EXCEPT|INTERSECT|LIMIT|WINDOW|OPTION)\b"
        r"|$)",
        re.IGNORECASE | re.DOTALL,
    )

    FROM_BODY_PATTERN = re.compile(
        r"FROM\s+(?P<body>.*?)"
        r"(?=\b(?:INNER|CROSS|NATURAL|LEFT|RIGHT|FULL|JOIN|STRAIGHT_JOIN|WHERE|GROUP"
        r"|ORDER|HAVING|UNION|EXCEPT|INTERSECT|LIMIT|WINDOW|OPTION)\b|\)|$)",
        re.IGNORECASE | re.DOTALL,
    )

    CONDITION_PATTERN = re.compile(
        rf"(?<![\w.'])(?P<left>{QUALIFIED_IDENT})\s*=\s*(?P<right>{QUALIFIED_IDENT})(?![\w(.])",
        re.IGNORECASE,
    )

    COLUMN_ITEM_PATTERN = re.compile(
        rf"^(?P<ref>{QUALIFIED_IDENT}|\*|{IDENT}\.\*)(?:\s+(?:AS\s+)?(?P<alias>{IDENT}))?$",
        re.IGNORECASE,
    )

    TRAILING_ALIAS_PATTERN = re.compile(rf"\s+(?:AS\s+)?(?P<alias>{IDENT})$", re.IGNORECASE)

    ASSIGNMENT_ALIAS_PATTERN = re.compile(rf"^(?P<alias>{IDENT})\s*=\s*(?P<expr>.+)$", re.DOTALL)

    CALL_START_PATTERN = re.compile(rf"(?:(?P<schema>{IDENT})\s*\.\s*)?(?P<name>{IDENT})\s*\(")

    ARGUMENT_REFERENCE_PATTERN = re.compile(
        rf"(?<![\w.])(?:(?P<schema>{IDENT})\.)?(?P<table>{IDENT})\.(?P<column>{IDENT})(?![\w(.])"
    )

    SELECT_PREFIX_PATTERN = re.compile(
        r"^(?:(?:DISTINCT|ALL|DISTINCTROW|SQL_\w+)\s+|TOP\s*\(?\s*\d+\s*\)?\s*(?:PERCENT\s+)?(?:WITH\s+TIES\s+)?)*",
        re.IGNORECASE,
    )

    def parse(self, definition: str, view_name: str = "unnamed") -> ParsedView:
        """
        Parse a view definition.

        Args:
            definition: Raw SQL text of the view
            view_name: Name of the view (for diagnostics)

        Returns:
            ParsedView; ``is_valid`` is False when extraction failed
        """
        result = ParsedView(view_name=view_name)

        try:
            sql = normalize_sql(definition)
            if not sql:
                return result

            # CTE references stay in table_refs; cte_names tells them apart
            result.cte_names = extract_cte_names(sql)
            result.table_refs = self._extract_table_refs(sql)
            result.joins = self._extract_joins(sql)

            select_list = extract_select_list(sql)
            if select_list is not None:
                result.select_items = self._extract_select_items(select_list)
                result.function_calls = self._extract_function_calls(select_list)

        except (re.error, ValueError, IndexError) as e:
            result.is_valid = False
            result.parse_errors.append(f"Parse error: {e}")
            logger.warning(f"Failed to parse view '{view_name}': {e}")

        return result

    def _extract_table_refs(self, sql: str) -> List[TableRef]:
        """Extract tables from FROM clauses (including comma lists) and JOINs, in text order."""
        found: List[Tuple[int, TableRef]] = []

        for from_match in re.finditer(r"\bFROM\b", sql, re.IGNORECASE):
            body_match = self.FROM_BODY_PATTERN.match(sql, from_match.start())
            if not body_match:
                continue
            offset = body_match.start("body")
            for part in split_top_level(body_match.group("body")):
                ref = self._table_ref(part)
                if ref:
                    found.append((offset, ref))
                offset += len(part) + 1

        for join_match in self.JOIN_PATTERN.finditer(sql):
            ref = self._make_ref(join_match.group("table"), join_match.group("alias"))
            if ref:
                found.append((join_match.start(), ref))

        found.sort(key=lambda item: item[0])
        refs: List[TableRef] = []
        for _, ref in found:
            if ref not in refs:
                refs.append(ref)
        return refs

    def _extract_joins(self, sql: str) -> List[JoinClause]:
        """Extract JOIN clauses with their ON equality conditions."""
        joins = []
        for match in self.JOIN_PATTERN.finditer(sql):
            table = self._make_ref(match.group("table"), match.group("alias"))
            if not table:
                continue

            join = JoinClause(table=table, join_type=_normalize_join_type(match.group("type")))
            condition = match.group("condition")
            if condition:
                join.conditions = self.parse_conditions(condition)
            joins.append(join)
        return joins

    def parse_conditions(self, condition: str) -> List[Tuple[ColumnRef, ColumnRef]]:
        """
        Split an ON condition into column equalities.

        Compound AND/OR conditions are split on the connectives; each part
        contributes at most one ``column = column`` pair. Comparisons
        against literals are ignored.
        """
        pairs = []
        stripped = re.sub(r"'[^']*'", "''", condition)
        for part in re.split(r"\b(?:AND|OR)\b", stripped, flags=re.IGNORECASE):
            part = part.replace("(", " ").replace(")", " ")
            match = self.CONDITION_PATTERN.search(part)
            if not match:
                continue
            left = _column_ref(match.group("left"))
            right = _column_ref(match.group("right"))
            if left and right:
                pairs.append((left, right))
        return pairs

    def _extract_select_items(self, select_list: str) -> List[SelectItem]:
        items = []
        for raw in split_top_level(select_list):
            expression = raw.strip()
            if not expression:
                continue

            match = self.COLUMN_ITEM_PATTERN.match(expression)
            if match and not _is_reserved(match.group("alias")):
                ref_text = match.group("ref")
                if ref_text.endswith("*"):
                    items.append(SelectItem(expression=expression))
                    continue
                source = _column_ref(ref_text)
                output = match.group("alias") or (source.column if source else None)
                items.append(SelectItem(expression=expression, output_name=output, source=source))
                continue

            assignment = self.ASSIGNMENT_ALIAS_PATTERN.match(expression)
            if assignment and "(" not in assignment.group("alias"):
                inner = assignment.group("expr").strip()
                inner_match = self.COLUMN_ITEM_PATTERN.match(inner)
                source = _column_ref(inner_match.group("ref")) if inner_match and not inner_match.group("alias") else None
                items.append(SelectItem(expression=expression, output_name=assignment.group("alias"), source=source))
                continue

            trailing = self.TRAILING_ALIAS_PATTERN.search(expression)
            alias = trailing.group("alias") if trailing and not _is_reserved(trailing.group("alias")) else None
            items.append(SelectItem(expression=expression, output_name=alias))
        return items

    def _extract_function_calls(self, select_list: str) -> List[FunctionCall]:
        """Find every call-like expression, nested ones included."""
        calls = []
        for schema, name, args in iter_calls(select_list):
            if name.upper() in NON_FUNCTION_WORDS:
                continue
            literal_free = re.sub(r"'[^']*'", "''", args)
            references = []
            for ref_match in self.ARGUMENT_REFERENCE_PATTERN.finditer(literal_free):
                ref = ColumnRef(
                    column=ref_match.group("column"),
                    qualifier=ref_match.group("table"),
                    schema=ref_match.group("schema"),
                )
                if ref not in references:
                    references.append(ref)
            calls.append(FunctionCall(name=name, schema=schema, arguments=args, references=references))
        return calls

    def _table_ref(self, text: str) -> Optional[TableRef]:
        text = text.strip()
        if not text or text.lstrip("( ").upper().startswith("SELECT"):
            return None
        match = self.TABLE_REF_PATTERN.match(text)
        if not match:
            return None
        rest = text[match.end():].strip()
        if rest and not rest.upper().startswith("WITH"):
            # not a plain "table [AS] alias" item
            return None
        return self._make_ref(match.group("table"), match.group("alias"))

    def _make_ref(self, table: Optional[str], alias: Optional[str]) -> Optional[TableRef]:
        if not table:
            return None
        parts = table.split(".")
        name = parts[-1]
        if name.upper() in RESERVED_WORDS:
            return None
        schema = parts[-2] if len(parts) > 1 else None
        if _is_reserved(alias):
            alias = None
        return TableRef(name=name, schema=schema, alias=alias)


def normalize_sql(sql: str) -> str:
    """Strip comments and identifier quoting, collapse whitespace."""
    if not sql:
        return ""
    sql = re.sub(r"--[^\n]*", " ", sql)
    sql = re.sub(r"/\*.*?\*/", " ", sql, flags=re.DOTALL)
    sql = re.sub(r"[\[\]`\"]", "", sql)
    sql = re.sub(r"\s+", " ", sql)
    return sql.strip()


def split_top_level(text: str, separator: str = ",") -> List[str]:
    """Split on ``separator`` outside parentheses and string literals."""
    parts = []
    depth = 0
    in_string = False
    current = []
    for char in text:
        if char == "'":
            in_string = not in_string
        elif not in_string:
            if char == "(":
                depth += 1
            elif char == ")":
                depth = max(depth - 1, 0)
            elif char == separator and depth == 0:
                parts.append("".join(current))
                current = []
                continue
        current.append(char)
    parts.append("".join(current))
    return parts


SELECT_KEYWORD_PATTERN = re.compile(r"\bSELECT\s+", re.IGNORECASE)

CTE_NAME_PATTERN = re.compile(
    rf"(?:\bWITH\s+(?:RECURSIVE\s+)?|,\s*)(?P<name>{IDENT})\s*(?:\([^()]*\)\s*)?AS\s*\(",
    re.IGNORECASE,
)


def find_outer_select(sql: str) -> Optional[re.Match]:
    """
    Locate the SELECT keyword of the statement itself.

    That is the first SELECT outside parentheses, so the bodies of a
    leading ``WITH name AS (...)`` list are skipped. When every SELECT is
    parenthesised the first one is returned.
    """
    first = None
    depth = 0
    in_string = False
    pos = 0
    for match in SELECT_KEYWORD_PATTERN.finditer(sql):
        for char in sql[pos:match.start()]:
            if char == "'":
                in_string = not in_string
            elif in_string:
                continue
            elif char == "(":
                depth += 1
            elif char == ")":
                depth -= 1
        pos = match.start()
        if in_string:
            continue
        if depth == 0:
            return match
        if first is None:
            first = match
    return first


def extract_cte_names(sql: str) -> List[str]:
    """Names declared by a leading WITH list, in declaration order."""
    select_match = find_outer_select(sql)
    prelude = sql[:select_match.start()] if select_match else sql
    if not re.search(r"\bWITH\b", prelude, re.IGNORECASE):
        return []

    names: List[str] = []
    for match in CTE_NAME_PATTERN.finditer(prelude):
        name = match.group("name")
        if name.upper() not in RESERVED_WORDS and name not in names:
            names.append(name)
    return names


def extract_select_list(sql: str) -> Optional[str]:
    """Return the item list of the statement's SELECT, up to its top-level FROM."""
    select_match = find_outer_select(sql)
    if not select_match:
        return None

    start = select_match.end()
    depth = 0
    in_string = False
    from_pattern = re.compile(r"\bFROM\b", re.IGNORECASE)
    for i in range(start, len(sql)):
        char = sql[i]
        if char == "'":
            in_string = not in_string
        elif in_string:
            continue
        elif char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
        elif depth == 0 and char in "Ff" and from_pattern.match(sql, i) and (i == 0 or not sql[i - 1].isalnum()):
            items = sql[start:i].strip()
            return ViewDefinitionParser.SELECT_PREFIX_PATTERN.sub("", items)
    return None


def iter_calls(text: str) -> Iterator[Tuple[Optional[str], str, str]]:
    """Yield (schema, name, arguments) for every ``name(...)`` with balanced parentheses."""
    for match in ViewDefinitionParser.CALL_START_PATTERN.finditer(text):
        if match.start() > 0 and text[match.start() - 1] == ".":
            # tail of a longer dotted name; the full match starts earlier
            continue
        open_index = match.end() - 1
        depth = 0
        for i in range(open_index, len(text)):
            if text[i] == "(":
                depth += 1
            elif text[i] == ")":
                depth -= 1
                if depth == 0:
                    yield match.group("schema"), match.group("name"), text[open_index + 1:i]
                    break


def _column_ref(text: str) -> Optional[ColumnRef]:
    parts = text.split(".")
    column = parts[-1]
    if column[0].isdigit():
        return None
    qualifier = parts[-2] if len(parts) > 1 else None
    schema = parts[-3] if len(parts) > 2 else None
    return ColumnRef(column=column, qualifier=qualifier, schema=schema)


def _is_reserved(word: Optional[str]) -> bool:
    return bool(word) and word.upper() in RESERVED_WORDS


def _normalize_join_type(join_str: str) -> str:
    """Normalize join type to standard form."""
    join_str = join_str.upper()

    if "LEFT" in join_str:
        return "LEFT"
    elif "RIGHT" in join_str:
        return "RIGHT"
    elif "FULL" in join_str:
        return "FULL"
    elif "CROSS" in join_str:
        return "CROSS"
    else:
        return "INNER"
