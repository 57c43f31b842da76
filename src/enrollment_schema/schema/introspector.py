"""Live table inspection via the SQLAlchemy runtime inspector.

This module reads the store's catalog to capture the structure of one table:
- Columns, reported type names, nullability
- Primary key membership (cross-referenced case-insensitively)
- Structured CHECK constraint expressions, when the backend reports them
- Raw CREATE TABLE text, when the dialect exposes it

Inspection is read-only.  Every call builds a fresh inspector so no catalog
data is cached between snapshots.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy import Connection, inspect, text
from sqlalchemy.engine import Inspector
from sqlalchemy.exc import CompileError, SQLAlchemyError

from enrollment_schema.errors import IntrospectionFailure
from enrollment_schema.schema.models import ColumnSpec, TableSnapshot

if TYPE_CHECKING:
    from enrollment_schema.dialects.base import DialectSupport

logger = logging.getLogger(__name__)


class SchemaIntrospector:
    """Captures ``TableSnapshot`` values from a live connection.

    Usage:
        introspector = SchemaIntrospector(connection, get_dialect(connection))
        snapshot = introspector.inspect("teacher_assignments")
        if snapshot is None:
            ...  # table absent
    """

    def __init__(self, connection: Connection, dialect: "DialectSupport"):
        """Initialize with an open connection.

        Args:
            connection: SQLAlchemy connection owned by the caller.
            dialect: Dialect support matching the connection's backend.
        """
        self._conn = connection
        self._dialect = dialect

    def inspect(self, table_name: str) -> TableSnapshot | None:
        """Capture the current structure of a table.

        Args:
            table_name: Table to inspect.

        Returns:
            A new ``TableSnapshot``, or None if the table does not exist.

        Raises:
            IntrospectionFailure: If the catalog cannot be read.
        """
        try:
            inspector = inspect(self._conn)
            if not inspector.has_table(table_name):
                logger.debug(f"Table '{table_name}' not found in catalog")
                return None

            columns = self._get_columns(inspector, table_name)
            checks = self._get_check_constraints(inspector, table_name)
            raw_definition = self._dialect.get_raw_definition(self._conn, table_name)
        except SQLAlchemyError as e:
            raise IntrospectionFailure(
                f"Failed to read catalog for table '{table_name}': {e}"
            ) from e

        snapshot = TableSnapshot(
            table_name=table_name,
            columns=columns,
            raw_definition=raw_definition,
            check_constraints=checks,
        )
        logger.debug(
            f"Inspected '{table_name}': {', '.join(snapshot.column_names) or '(no columns)'}"
        )
        return snapshot

    def count_rows(self, table_name: str) -> int:
        """Return the number of rows in a table.

        Raises:
            IntrospectionFailure: If the count query fails.
        """
        try:
            result = self._conn.execute(text(f"SELECT COUNT(*) FROM {table_name}"))
            return int(result.scalar() or 0)
        except SQLAlchemyError as e:
            raise IntrospectionFailure(f"Failed to count rows in '{table_name}': {e}") from e

    def _get_columns(self, inspector: Inspector, table_name: str) -> dict[str, ColumnSpec]:
        """Get columns for a table, keyed by lower-cased name."""
        pk = inspector.get_pk_constraint(table_name) or {}
        pk_names = {name.lower() for name in pk.get("constrained_columns") or []}

        columns: dict[str, ColumnSpec] = {}
        for info in inspector.get_columns(table_name):
            name = info["name"]
            default = info.get("default")
            columns[name.lower()] = ColumnSpec(
                name=name,
                declared_type=self._type_name(info["type"]),
                nullable=bool(info.get("nullable", True)),
                is_primary_key=name.lower() in pk_names,
                default=str(default) if default is not None else None,
            )
        return columns

    def _get_check_constraints(self, inspector: Inspector, table_name: str) -> tuple[str, ...]:
        """Get CHECK constraint expressions (empty if the backend can't report them)."""
        try:
            checks = inspector.get_check_constraints(table_name)
        except NotImplementedError:
            return ()
        return tuple(check["sqltext"] for check in checks if check.get("sqltext"))

    def _type_name(self, type_) -> str:
        """Render a reflected column type in the connection's dialect.

        Columns declared without a type (allowed by SQLite) come back as
        ``NullType`` and are reported by class name.
        """
        try:
            return type_.compile(dialect=self._conn.dialect).upper()
        except CompileError:
            return type(type_).__name__.upper()
