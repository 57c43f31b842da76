"""PostgreSQL dialect support.

PostgreSQL does not store CREATE TABLE text; CHECK constraints are read back
as structured expressions through the SQLAlchemy inspector, so raw
definition sniffing is disabled.  Connections use the psycopg (v3) driver
(see ``enrollment_schema.factory.resolve_url``).
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING

from sqlalchemy import Connection

from enrollment_schema.dialects.matchers import ConstraintDefinitionMatcher

if TYPE_CHECKING:
    from enrollment_schema.schema.models import ColumnSpec


class PostgresDialect:
    """``DialectSupport`` for PostgreSQL databases."""

    name = "postgresql"

    def __init__(self) -> None:
        self.definition_matcher = ConstraintDefinitionMatcher()

    def get_raw_definition(self, connection: Connection, table_name: str) -> str | None:
        return None

    def render_identity_column(self, column: ColumnSpec) -> str:
        return f"{column.name} {column.declared_type} GENERATED BY DEFAULT AS IDENTITY PRIMARY KEY"

    @contextmanager
    def ddl_transaction(self, connection: Connection) -> Iterator[None]:
        # PostgreSQL DDL is transactional as issued
        with connection.begin():
            yield

    def render_identity_reset(self, table_name: str, column: str) -> str | None:
        """Move the identity sequence past the highest copied key.

        An empty table resets the sequence so the next value is 1.
        """
        return (
            f"SELECT setval(pg_get_serial_sequence('{table_name}', '{column}'), "
            f"COALESCE(MAX({column}), 1), MAX({column}) IS NOT NULL) "
            f"FROM {table_name}"
        )
