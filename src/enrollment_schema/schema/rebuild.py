"""Table rebuild -- replace a table's structure with its canonical one.

Renders a ``RebuildPlan`` (literal DDL) from a ``CanonicalSchema`` for one
dialect, then executes it inside a single transaction.  Three modes:

- ``create``: the table is absent; create it with its sequence table and
  indexes.
- ``replace``: drop and recreate the table.  Existing rows are discarded
  (logged as a warning).
- ``preserve``: build the canonical table under ``<table>__rebuild``, copy
  the columns present in both structures, drop the old table and rename.

Any failed step rolls back the whole transaction and raises
``RebuildFailure``; the table is never left half-dropped.

Usage:
    from enrollment_schema.schema.rebuild import build_rebuild_plan, rebuild_table

    plan = build_rebuild_plan(TEACHER_ASSIGNMENTS, dialect)
    result = rebuild_table(connection, plan, existing=snapshot)
    print(result.rows_discarded)
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from sqlalchemy import Connection, text
from sqlalchemy.exc import SQLAlchemyError

from enrollment_schema.dialects import get_dialect
from enrollment_schema.errors import RebuildFailure
from enrollment_schema.schema.canonical import CanonicalSchema
from enrollment_schema.schema.models import (
    ColumnSpec,
    RebuildMode,
    RebuildResult,
    TableSnapshot,
)

if TYPE_CHECKING:
    from enrollment_schema.dialects.base import DialectSupport

logger = logging.getLogger(__name__)

REBUILD_SUFFIX = "__rebuild"


# ------------------------------------------------------------------
# Plan data class
# ------------------------------------------------------------------


@dataclass
class RebuildPlan:
    """Literal target structure of one table.

    Attributes:
        table_name: Governed table.
        definitions: Column definitions followed by table constraints,
            rendered for the target dialect.
        column_names: Canonical column names, in order.
        required_columns: NOT NULL columns without a default.  A
            ``preserve`` rebuild needs a source column for each of them.
        index_sql: CREATE INDEX statements (``IF NOT EXISTS``).
        sequence_table: Name of the companion counter table, if any.
        sequence_sql: Statements that create and seed the counter table
            without overwriting an existing seed.
        identity_column: Single integer primary key whose generator must
            follow rows copied by a ``preserve`` rebuild, if any.
        mode: Rebuild mode used when the table already exists.

    Example:
        plan = build_rebuild_plan(TEACHER_ASSIGNMENTS, SqliteDialect())
        plan.to_sql()
        # 'CREATE TABLE teacher_assignments (id INTEGER PRIMARY KEY AUTOINCREMENT, ...)'
    """

    table_name: str
    definitions: list[str]
    column_names: list[str]
    required_columns: list[str] = field(default_factory=list)
    index_sql: list[str] = field(default_factory=list)
    sequence_table: str | None = None
    sequence_sql: list[str] = field(default_factory=list)
    identity_column: str | None = None
    mode: RebuildMode = RebuildMode.REPLACE

    def to_sql(self, table_name: str | None = None) -> str:
        """Return the CREATE TABLE statement, optionally under another name."""
        name = table_name or self.table_name
        return f"CREATE TABLE {name} ({', '.join(self.definitions)})"

    @property
    def temp_table_name(self) -> str:
        return f"{self.table_name}{REBUILD_SUFFIX}"


# ------------------------------------------------------------------
# Plan generation
# ------------------------------------------------------------------


def _identity_column(canonical: CanonicalSchema) -> str | None:
    pk_columns = [c for c in canonical.columns if c.is_primary_key]
    if len(pk_columns) == 1 and pk_columns[0].declared_type.upper() == "INTEGER":
        return pk_columns[0].name
    return None


def _render_column(column: ColumnSpec, canonical: CanonicalSchema, dialect: "DialectSupport") -> str:
    if column.name == _identity_column(canonical):
        return dialect.render_identity_column(column)

    parts = [column.name, column.declared_type]
    if not column.nullable:
        parts.append("NOT NULL")
    if column.default is not None:
        parts.append(f"DEFAULT {column.default}")
    return " ".join(parts)


def _quote_literal(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


def build_rebuild_plan(canonical: CanonicalSchema, dialect: "DialectSupport") -> RebuildPlan:
    """Render the rebuild plan for a canonical schema.

    Pure sync logic -- no I/O.

    Args:
        canonical: Expected table structure.
        dialect: Dialect support of the target store.

    Returns:
        ``RebuildPlan`` with CREATE TABLE definitions, index statements and
        sequence-table statements.
    """
    definitions = [_render_column(col, canonical, dialect) for col in canonical.columns]

    pk_columns = [c.name for c in canonical.columns if c.is_primary_key]
    if len(pk_columns) > 1:
        definitions.append(f"PRIMARY KEY ({', '.join(pk_columns)})")

    for fk in canonical.foreign_keys:
        definitions.append(
            f"FOREIGN KEY ({fk.column}) REFERENCES {fk.references_table}({fk.references_column})"
        )

    for unique in canonical.unique_constraints:
        definitions.append(f"UNIQUE ({', '.join(unique.columns)})")

    for value_list in canonical.value_lists:
        values = ", ".join(_quote_literal(v) for v in value_list.values)
        definitions.append(f"CHECK ({value_list.column} IN ({values}))")

    index_sql = [
        f"CREATE {'UNIQUE ' if index.unique else ''}INDEX IF NOT EXISTS {index.name} "
        f"ON {canonical.table_name} ({', '.join(index.columns)})"
        for index in canonical.indexes
    ]

    sequence_sql: list[str] = []
    seq = canonical.sequence_table_name
    if seq:
        sequence_sql = [
            f"CREATE TABLE IF NOT EXISTS {seq} (next_val INTEGER NOT NULL DEFAULT 1)",
            f"INSERT INTO {seq} (next_val) SELECT 1 WHERE NOT EXISTS (SELECT 1 FROM {seq})",
        ]

    return RebuildPlan(
        table_name=canonical.table_name,
        definitions=definitions,
        column_names=canonical.required_column_names,
        required_columns=[
            c.name
            for c in canonical.columns
            if not c.nullable and c.default is None and not c.is_primary_key
        ],
        index_sql=index_sql,
        sequence_table=seq,
        sequence_sql=sequence_sql,
        identity_column=_identity_column(canonical),
        mode=canonical.rebuild_mode,
    )


# ------------------------------------------------------------------
# Plan execution
# ------------------------------------------------------------------


@contextmanager
def _rebuild_transaction(
    connection: Connection, table_name: str, dialect: "DialectSupport | None"
) -> Iterator[None]:
    """Run the block as one transaction; roll back and raise on failure.

    Catalog reads leave an implicit (autobegun) transaction open on the
    connection; it is committed first so the rebuild starts its own.
    """
    if dialect is None:
        raise RebuildFailure(table_name, "begin", f"unsupported dialect '{connection.dialect.name}'")
    if connection.in_transaction():
        connection.commit()

    try:
        with dialect.ddl_transaction(connection):
            yield
    except RebuildFailure:
        logger.warning(f"Rebuild of '{table_name}' rolled back")
        raise
    except SQLAlchemyError as e:
        logger.warning(f"Rebuild of '{table_name}' rolled back")
        raise RebuildFailure(table_name, "commit", e) from e


def _execute(connection: Connection, table_name: str, step: str, sql: str) -> None:
    logger.debug(f"[{table_name}] {step}: {sql}")
    try:
        connection.execute(text(sql))
    except SQLAlchemyError as e:
        raise RebuildFailure(table_name, step, e) from e


def _count_rows(connection: Connection, table_name: str) -> int:
    try:
        return int(connection.execute(text(f"SELECT COUNT(*) FROM {table_name}")).scalar() or 0)
    except SQLAlchemyError as e:
        raise RebuildFailure(table_name, "row count", e) from e


def _create_supporting_objects(connection: Connection, plan: RebuildPlan) -> None:
    for sql in plan.sequence_sql:
        _execute(connection, plan.table_name, "sequence table", sql)
    for sql in plan.index_sql:
        _execute(connection, plan.table_name, "create index", sql)


def rebuild_table(
    connection: Connection,
    plan: RebuildPlan,
    existing: TableSnapshot | None = None,
    mode: RebuildMode | None = None,
) -> RebuildResult:
    """Bring a table to the structure described by *plan*.

    Args:
        connection: Open SQLAlchemy connection on a supported dialect.
        plan: Plan from ``build_rebuild_plan()``.
        existing: Snapshot of the current table, or None if it is absent.
        mode: Override the plan's mode for an existing table (an operator
            force rebuild uses ``replace``).  Ignored when *existing* is None.

    Returns:
        ``RebuildResult`` describing the committed rebuild.

    Raises:
        RebuildFailure: If any step failed.  The transaction has been
            rolled back: the table is either fully intact with its old
            structure or, in create mode, still absent.
    """
    if existing is None:
        mode = RebuildMode.CREATE
    elif mode is None or mode == RebuildMode.CREATE:
        mode = plan.mode

    table = plan.table_name
    result = RebuildResult(success=False, mode=mode)

    dialect = get_dialect(connection)
    with _rebuild_transaction(connection, table, dialect):
        if mode == RebuildMode.CREATE:
            logger.info(f"Creating table '{table}'")
            _execute(connection, table, "create table", plan.to_sql())
            _create_supporting_objects(connection, plan)

        elif mode == RebuildMode.REPLACE:
            result.rows_before = _count_rows(connection, table)
            if result.rows_before > 0:
                logger.warning(
                    f"Table '{table}' has {result.rows_before} row(s) - "
                    f"data will be lost during schema rebuild"
                )
            _execute(connection, table, "drop table", f"DROP TABLE {table}")
            _execute(connection, table, "create table", plan.to_sql())
            _create_supporting_objects(connection, plan)
            result.rows_discarded = result.rows_before

        else:
            result.rows_before = _count_rows(connection, table)
            shared = [name for name in plan.column_names if existing.has_column(name)]
            unsourced = [name for name in plan.required_columns if not existing.has_column(name)]
            if unsourced and result.rows_before > 0:
                raise RebuildFailure(
                    table,
                    "copy rows",
                    f"no source column for NOT NULL column(s): {', '.join(unsourced)}",
                )

            tmp = plan.temp_table_name
            columns = ", ".join(shared)
            _execute(connection, table, "drop stale temp table", f"DROP TABLE IF EXISTS {tmp}")
            _execute(connection, table, "create temp table", plan.to_sql(tmp))
            if shared:
                _execute(
                    connection,
                    table,
                    "copy rows",
                    f"INSERT INTO {tmp} ({columns}) SELECT {columns} FROM {table}",
                )
                reset_sql = plan.identity_column and dialect.render_identity_reset(
                    tmp, plan.identity_column
                )
                if reset_sql:
                    _execute(connection, table, "reset identity", reset_sql)
            _execute(connection, table, "drop table", f"DROP TABLE {table}")
            _execute(connection, table, "rename table", f"ALTER TABLE {tmp} RENAME TO {table}")
            _create_supporting_objects(connection, plan)
            result.rows_copied = result.rows_before if shared else 0
            result.rows_discarded = result.rows_before - result.rows_copied

    result.success = True
    logger.info(f"Rebuild of '{table}' committed ({mode.value})")
    return result
