"""SQLite dialect support.

SQLite keeps the verbatim CREATE TABLE text in ``sqlite_master``, which is
the only place column-level CHECK constraints can be read back reliably.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING

from sqlalchemy import Connection, text

from enrollment_schema.dialects.matchers import TextDefinitionMatcher

if TYPE_CHECKING:
    from enrollment_schema.schema.models import ColumnSpec


class SqliteDialect:
    """``DialectSupport`` for SQLite databases."""

    name = "sqlite"

    def __init__(self) -> None:
        self.definition_matcher = TextDefinitionMatcher()

    def get_raw_definition(self, connection: Connection, table_name: str) -> str | None:
        query = text(
            "SELECT sql FROM sqlite_master WHERE type = 'table' AND name = :name"
        )
        return connection.execute(query, {"name": table_name}).scalar()

    def render_identity_column(self, column: ColumnSpec) -> str:
        return f"{column.name} INTEGER PRIMARY KEY AUTOINCREMENT"

    @contextmanager
    def ddl_transaction(self, connection: Connection) -> Iterator[None]:
        """Run the block in an explicit BEGIN on the pysqlite connection.

        pysqlite's legacy transaction control commits before DDL, so the
        driver is switched to manual mode for the duration of the block and
        restored afterwards. Engines from ``create_store_engine`` already
        emit BEGIN themselves and are left as they are.
        """
        dbapi_connection = connection.connection.driver_connection
        previous = dbapi_connection.isolation_level
        dbapi_connection.isolation_level = None
        try:
            with connection.begin():
                if not dbapi_connection.in_transaction:
                    connection.exec_driver_sql("BEGIN")
                yield
        finally:
            dbapi_connection.isolation_level = previous

    def render_identity_reset(self, table_name: str, column: str) -> str | None:
        # AUTOINCREMENT tracks max(rowid) in sqlite_sequence on every insert
        return None
