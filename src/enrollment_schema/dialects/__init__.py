"""Dialect support registry.

Maps SQLAlchemy dialect names to the ``DialectSupport`` implementations the
reconciler knows how to rebuild.  Any other backend is skipped.

Usage:
    from enrollment_schema.dialects import get_dialect

    dialect = get_dialect(connection)
    if dialect is None:
        ...  # unknown backend, do not guess DDL
"""

from sqlalchemy import Connection

from enrollment_schema.dialects.base import DialectSupport
from enrollment_schema.dialects.postgres import PostgresDialect
from enrollment_schema.dialects.sqlite import SqliteDialect
from enrollment_schema.errors import UnsupportedDialect

DIALECTS: dict[str, DialectSupport] = {
    "sqlite": SqliteDialect(),
    "postgresql": PostgresDialect(),
}


def get_dialect(connection: Connection) -> DialectSupport | None:
    """Return dialect support for a connection, or None if unsupported."""
    return DIALECTS.get(connection.dialect.name)


def require_dialect(connection: Connection) -> DialectSupport:
    """Return dialect support for a connection.

    Raises:
        UnsupportedDialect: If the backend has no registered support.
    """
    dialect = get_dialect(connection)
    if dialect is None:
        raise UnsupportedDialect(connection.dialect.name)
    return dialect


__all__ = [
    "DIALECTS",
    "DialectSupport",
    "PostgresDialect",
    "SqliteDialect",
    "get_dialect",
    "require_dialect",
]
