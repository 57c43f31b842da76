"""Dialect support protocol definition.

Defines the ``DialectSupport`` Protocol that every backend the reconciler
can rebuild must implement.  The reconciler refuses to guess DDL for a
backend without one.

Usage:
    from enrollment_schema.dialects.base import DialectSupport

    def describe(dialect: DialectSupport) -> str:
        return dialect.name
"""

from __future__ import annotations

from contextlib import AbstractContextManager
from typing import TYPE_CHECKING, Protocol

from sqlalchemy import Connection

if TYPE_CHECKING:
    from enrollment_schema.dialects.matchers import DefinitionMatcher
    from enrollment_schema.schema.models import ColumnSpec


class DialectSupport(Protocol):
    """Backend-specific pieces of inspection and DDL rendering.

    Attributes:
        name: SQLAlchemy dialect name this support handles
            (``connection.dialect.name``).
        definition_matcher: Strategy the comparator uses for constraint
            checks that structural introspection cannot express.
    """

    name: str
    definition_matcher: DefinitionMatcher

    def get_raw_definition(self, connection: Connection, table_name: str) -> str | None:
        """Return the table's CREATE statement as stored by the backend.

        Args:
            connection: Open SQLAlchemy connection.
            table_name: Table to look up.

        Returns:
            The stored definition text, or None if the backend does not
            keep one.
        """
        ...

    def render_identity_column(self, column: ColumnSpec) -> str:
        """Render the column definition of a single integer primary key.

        Example:
            dialect.render_identity_column(ColumnSpec(name="id", declared_type="INTEGER"))
            # 'id INTEGER PRIMARY KEY AUTOINCREMENT'
        """
        ...

    def ddl_transaction(self, connection: Connection) -> AbstractContextManager[None]:
        """Open the single transaction a rebuild runs in.

        DDL executed inside the block must be undone when the block raises.
        The connection must have no transaction in progress.
        """
        ...

    def render_identity_reset(self, table_name: str, column: str) -> str | None:
        """Statement that moves the identity generator past copied key values.

        Returns None when the backend advances it on explicit inserts.
        """
        ...
