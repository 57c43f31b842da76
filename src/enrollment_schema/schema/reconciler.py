"""Schema reconciliation -- inspect, diff, rebuild, verify.

Runs once per process start, synchronously, before the hosting application
accepts persistence traffic.  Callers must serialize it ahead of any writer
touching the governed tables.

State machine for one table::

    INSPECT --(absent)--> REBUILD(create) -> VERIFY
    INSPECT --(present)--> DIFF
    DIFF --(clean)--> DONE(no_op)
    DIFF --(dirty)--> REBUILD(replace|preserve) -> VERIFY
    VERIFY --(clean)--> DONE(fixed)
    VERIFY --(dirty)--> DONE(failed)
    REBUILD --(error)--> DONE(failed)

An unknown backend ends in DONE(skipped).  Rebuild and verification
failures are reported, not raised; catalog read failures propagate.

Usage:
    from enrollment_schema.schema.reconciler import reconcile, reconcile_all

    with engine.connect() as connection:
        report = reconcile(connection, TEACHER_ASSIGNMENTS)
        print(report.format_report())
"""

import logging
from collections.abc import Iterable

from sqlalchemy import Connection

from enrollment_schema.dialects import get_dialect
from enrollment_schema.dialects.matchers import DefinitionMatcher
from enrollment_schema.errors import RebuildFailure, VerificationFailure
from enrollment_schema.schema.canonical import (
    GOVERNED_TABLES,
    CanonicalSchema,
    get_canonical_schema,
)
from enrollment_schema.schema.comparator import diff_schema
from enrollment_schema.schema.introspector import SchemaIntrospector
from enrollment_schema.schema.models import (
    Discrepancy,
    DiscrepancyKind,
    RebuildMode,
    ReconcileOutcome,
    ReconcileReport,
)
from enrollment_schema.schema.rebuild import build_rebuild_plan, rebuild_table

logger = logging.getLogger(__name__)


def _finish(connection: Connection) -> None:
    """Close the implicit read transaction left by catalog queries."""
    if connection.in_transaction():
        connection.commit()


def _verify(
    introspector: SchemaIntrospector,
    canonical: CanonicalSchema,
    matcher: DefinitionMatcher,
) -> list[Discrepancy]:
    snapshot = introspector.inspect(canonical.table_name)
    if snapshot is None:
        return [
            Discrepancy(
                kind=DiscrepancyKind.REQUIRED_COLUMN_MISSING,
                detail=f"Table '{canonical.table_name}' is absent after rebuild",
            )
        ]
    return diff_schema(snapshot, canonical, matcher)


def reconcile(connection: Connection, canonical: CanonicalSchema) -> ReconcileReport:
    """Bring one table to its canonical structure.

    Args:
        connection: Open SQLAlchemy connection to the store.
        canonical: Expected structure of the governed table.

    Returns:
        ``ReconcileReport`` with outcome ``no_op``, ``fixed``, ``failed`` or
        ``skipped``.

    Raises:
        IntrospectionFailure: If the catalog cannot be read.
    """
    table = canonical.table_name

    dialect = get_dialect(connection)
    if dialect is None:
        logger.info(
            f"Skipping '{table}': no schema support for dialect '{connection.dialect.name}'"
        )
        return ReconcileReport(
            table_name=table,
            outcome=ReconcileOutcome.SKIPPED,
            error=f"Unsupported dialect '{connection.dialect.name}'",
        )

    matcher = dialect.definition_matcher
    introspector = SchemaIntrospector(connection, dialect)
    snapshot = introspector.inspect(table)

    discrepancies: list[Discrepancy] = []
    if snapshot is not None:
        discrepancies = diff_schema(snapshot, canonical, matcher)
        if not discrepancies:
            _finish(connection)
            logger.info(f"Table '{table}' schema is correct")
            return ReconcileReport(table_name=table, outcome=ReconcileOutcome.NO_OP)

        logger.warning(f"Schema mismatch in '{table}': {len(discrepancies)} discrepancies")
        for item in discrepancies:
            logger.info(f"  [{item.kind.value}] {item.detail}")

    report = ReconcileReport(
        table_name=table,
        outcome=ReconcileOutcome.FIXED,
        discrepancies_found=len(discrepancies),
        discrepancies=discrepancies,
    )

    plan = build_rebuild_plan(canonical, dialect)
    try:
        result = rebuild_table(connection, plan, existing=snapshot)
    except RebuildFailure as e:
        logger.error(str(e))
        report.outcome = ReconcileOutcome.FAILED
        report.mode = RebuildMode.CREATE if snapshot is None else plan.mode
        report.error = str(e)
        return report

    report.mode = result.mode
    report.rows_discarded = result.rows_discarded

    remaining = _verify(introspector, canonical, matcher)
    _finish(connection)
    if remaining:
        failure = VerificationFailure(table, remaining)
        logger.error(str(failure))
        report.outcome = ReconcileOutcome.FAILED
        report.error = str(failure)
        return report

    logger.info(f"Table '{table}' reconciled ({result.mode.value})")
    return report


def reconcile_table(connection: Connection, table_name: str) -> ReconcileReport:
    """Reconcile a governed table by name.

    Raises:
        KeyError: If the table has no canonical schema.
    """
    return reconcile(connection, get_canonical_schema(table_name))


def reconcile_all(
    connection: Connection,
    table_names: Iterable[str] | None = None,
) -> list[ReconcileReport]:
    """Reconcile governed tables in startup order.

    Args:
        connection: Open SQLAlchemy connection to the store.
        table_names: Tables to reconcile.  Defaults to every governed table
            (``GOVERNED_TABLES``).  The order given is the order run.

    Returns:
        One ``ReconcileReport`` per table.
    """
    names = list(table_names) if table_names is not None else list(GOVERNED_TABLES)
    return [reconcile_table(connection, name) for name in names]


def force_rebuild(connection: Connection, canonical: CanonicalSchema) -> ReconcileReport:
    """Drop and recreate a table regardless of its current state.

    Operator-only: every row in the table is discarded.  Never run at
    startup -- use ``reconcile()`` there.

    Returns:
        ``ReconcileReport`` with outcome ``fixed`` or ``failed`` (or
        ``skipped`` for an unsupported backend).
    """
    table = canonical.table_name

    dialect = get_dialect(connection)
    if dialect is None:
        return ReconcileReport(
            table_name=table,
            outcome=ReconcileOutcome.SKIPPED,
            error=f"Unsupported dialect '{connection.dialect.name}'",
        )

    introspector = SchemaIntrospector(connection, dialect)
    snapshot = introspector.inspect(table)
    discrepancies = (
        diff_schema(snapshot, canonical, dialect.definition_matcher) if snapshot else []
    )

    logger.warning(f"Force rebuilding '{table}'")
    report = ReconcileReport(
        table_name=table,
        outcome=ReconcileOutcome.FIXED,
        discrepancies_found=len(discrepancies),
        discrepancies=discrepancies,
    )
    plan = build_rebuild_plan(canonical, dialect)
    try:
        result = rebuild_table(connection, plan, existing=snapshot, mode=RebuildMode.REPLACE)
    except RebuildFailure as e:
        logger.error(str(e))
        report.outcome = ReconcileOutcome.FAILED
        report.error = str(e)
        return report

    report.mode = result.mode
    report.rows_discarded = result.rows_discarded
    remaining = _verify(introspector, canonical, dialect.definition_matcher)
    _finish(connection)
    if remaining:
        report.outcome = ReconcileOutcome.FAILED
        report.error = str(VerificationFailure(table, remaining))
    return report
