"""Raw-definition matchers used by the schema comparator.

Structural introspection cannot express everything a stale schema leaves
behind: a legacy column name can survive inside a constraint clause, and an
enumerated value list lives inside a CHECK expression.  Matchers answer
those two questions for one backend so the comparator stays free of
dialect-specific text handling.

- ``ConstraintDefinitionMatcher`` reads only the structured CHECK
  expressions reported by the catalog (PostgreSQL).
- ``TextDefinitionMatcher`` additionally scans the raw CREATE TABLE text
  when the backend exposes one (SQLite).
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from enrollment_schema.schema.canonical import CanonicalSchema, ValueListSpec
    from enrollment_schema.schema.models import TableSnapshot

_QUOTED_LITERAL = re.compile(r"'((?:[^']|'')*)'")


class DefinitionMatcher(Protocol):
    """Detects stale constraints that structural introspection cannot see."""

    def legacy_names(self, snapshot: TableSnapshot, canonical: CanonicalSchema) -> list[str]:
        """Forbidden names found in definition text whose replacement is absent."""
        ...

    def missing_values(self, snapshot: TableSnapshot, value_list: ValueListSpec) -> list[str]:
        """Required values a value-list constraint does not admit.

        Returns an empty list when no value-list constraint exists for the
        column at all -- a missing constraint admits every value.
        """
        ...


def _strip_literals(sql: str) -> str:
    """Blank out quoted string literals so identifiers are matched alone."""
    return _QUOTED_LITERAL.sub("''", sql)


def _mentions_identifier(sql: str, name: str) -> bool:
    pattern = rf'(?<![\w"`\[]){re.escape(name)}(?![\w"`\]])|["`\[]{re.escape(name)}["`\]]'
    return re.search(pattern, _strip_literals(sql), re.IGNORECASE) is not None


def _admitted_values(sql: str, column: str) -> list[str] | None:
    """Extract the enumerated values a CHECK expression admits for *column*.

    Understands ``col IN ('A', 'B')`` and PostgreSQL's rewritten form
    ``(col)::text = ANY (ARRAY['A'::character varying, ...])``.  Returns
    None when the expression holds no value list for the column.
    """
    name = re.escape(column)
    in_list = re.search(
        rf'["`\[]?\b{name}\b["`\]]?\s+IN\s*\(([^)]*)\)', sql, re.IGNORECASE
    )
    if in_list:
        return [v.replace("''", "'") for v in _QUOTED_LITERAL.findall(in_list.group(1))]

    any_array = re.search(
        rf"\b{name}\b.*?=\s*ANY\s*\(+\s*ARRAY\s*\[(.*?)\]", sql, re.IGNORECASE | re.DOTALL
    )
    if any_array:
        return [v.replace("''", "'") for v in _QUOTED_LITERAL.findall(any_array.group(1))]

    return None


class ConstraintDefinitionMatcher:
    """Matcher over structured CHECK constraints only."""

    def legacy_names(self, snapshot: TableSnapshot, canonical: CanonicalSchema) -> list[str]:
        return []

    def missing_values(self, snapshot: TableSnapshot, value_list: ValueListSpec) -> list[str]:
        admitted = self._structured_values(snapshot, value_list.column)
        if admitted is None:
            return []
        return _missing(value_list, admitted)

    def _structured_values(self, snapshot: TableSnapshot, column: str) -> list[str] | None:
        for sqltext in snapshot.check_constraints:
            values = _admitted_values(sqltext, column)
            if values is not None:
                return values
        return None


class TextDefinitionMatcher(ConstraintDefinitionMatcher):
    """Matcher that falls back to the raw CREATE TABLE text."""

    def legacy_names(self, snapshot: TableSnapshot, canonical: CanonicalSchema) -> list[str]:
        if not snapshot.raw_definition:
            return []

        found: list[str] = []
        for forbidden in canonical.forbidden_columns:
            if not _mentions_identifier(snapshot.raw_definition, forbidden.name):
                continue
            if forbidden.replacement and _mentions_identifier(
                snapshot.raw_definition, forbidden.replacement
            ):
                continue
            found.append(forbidden.name)
        return found

    def missing_values(self, snapshot: TableSnapshot, value_list: ValueListSpec) -> list[str]:
        admitted = self._structured_values(snapshot, value_list.column)
        if admitted is None and snapshot.raw_definition:
            admitted = _admitted_values(snapshot.raw_definition, value_list.column)
        if admitted is None:
            return []
        return _missing(value_list, admitted)


def _missing(value_list: ValueListSpec, admitted: list[str]) -> list[str]:
    present = {v.upper() for v in admitted}
    return [v for v in value_list.values if v.upper() not in present]
