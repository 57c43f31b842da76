"""Schema comparison of a live table snapshot against its canonical schema.

Pure logic -- no I/O, no database connections.  Constraint checks that need
the table's definition text are delegated to a ``DefinitionMatcher`` chosen
by the caller for the store's dialect.

Usage:
    from enrollment_schema.schema.comparator import diff_schema
    from enrollment_schema.schema.canonical import TEACHER_ASSIGNMENTS

    snapshot = SchemaIntrospector(connection, dialect).inspect("teacher_assignments")
    discrepancies = diff_schema(snapshot, TEACHER_ASSIGNMENTS, dialect.definition_matcher)
    if not discrepancies:
        print("Schema accepted as-is")
"""

from enrollment_schema.dialects.matchers import DefinitionMatcher, TextDefinitionMatcher
from enrollment_schema.schema.canonical import CanonicalSchema
from enrollment_schema.schema.models import Discrepancy, DiscrepancyKind, TableSnapshot


def diff_schema(
    snapshot: TableSnapshot,
    canonical: CanonicalSchema,
    matcher: DefinitionMatcher | None = None,
) -> list[Discrepancy]:
    """Compare a table snapshot against its canonical schema.

    Discrepancies are emitted in a fixed order:

    1. Forbidden (legacy) columns present in the snapshot.
    2. Stale constraints: forbidden names surviving in the definition text
       without their replacement, then value-list constraints that do not
       admit every required value.
    3. Required columns missing from the snapshot.  A missing column that is
       the replacement of a forbidden column reported in step 1 is not
       reported again -- the forbidden-column entry already names it.

    Args:
        snapshot: Structure of the live table (the table must exist).
        canonical: Expected structure.
        matcher: Definition matcher for the store's dialect.  Defaults to
            ``TextDefinitionMatcher``.

    Returns:
        List of ``Discrepancy``.  Empty means the schema is accepted as-is.

    Examples:
        >>> from enrollment_schema.schema.canonical import TEACHER_ASSIGNMENTS
        >>> from enrollment_schema.schema.models import ColumnSpec
        >>> cols = {
        ...     name: ColumnSpec(name=name, declared_type="INTEGER")
        ...     for name in TEACHER_ASSIGNMENTS.required_column_names
        ... }
        >>> snap = TableSnapshot(table_name="teacher_assignments", columns=cols)
        >>> diff_schema(snap, TEACHER_ASSIGNMENTS)
        []
    """
    if matcher is None:
        matcher = TextDefinitionMatcher()

    discrepancies: list[Discrepancy] = []
    reported: set[str] = set()
    covered: set[str] = set()

    # 1. Forbidden columns present
    for forbidden in canonical.forbidden_columns:
        if not snapshot.has_column(forbidden.name):
            continue
        detail = f"Column '{forbidden.name}' must not exist in '{canonical.table_name}'"
        if forbidden.replacement:
            detail += f" (use '{forbidden.replacement}' instead)"
            covered.add(forbidden.replacement.lower())
        discrepancies.append(
            Discrepancy(
                kind=DiscrepancyKind.FORBIDDEN_COLUMN_PRESENT,
                detail=detail,
                column=forbidden.name,
            )
        )
        reported.add(forbidden.name.lower())

    # 2. Stale constraints from definition text
    for name in matcher.legacy_names(snapshot, canonical):
        if name.lower() in reported:
            continue
        discrepancies.append(
            Discrepancy(
                kind=DiscrepancyKind.CONSTRAINT_STALE,
                detail=f"Table definition still references legacy name '{name}'",
                column=name,
            )
        )
        reported.add(name.lower())

    for value_list in canonical.value_lists:
        if not snapshot.has_column(value_list.column):
            continue
        missing = matcher.missing_values(snapshot, value_list)
        if missing:
            discrepancies.append(
                Discrepancy(
                    kind=DiscrepancyKind.CONSTRAINT_STALE,
                    detail=(
                        f"Constraint on '{value_list.column}' does not allow: "
                        f"{', '.join(missing)}"
                    ),
                    column=value_list.column,
                )
            )

    # 3. Required columns missing
    for column in canonical.columns:
        if snapshot.has_column(column.name) or column.key in covered:
            continue
        discrepancies.append(
            Discrepancy(
                kind=DiscrepancyKind.REQUIRED_COLUMN_MISSING,
                detail=f"Column '{column.name}' missing from table '{canonical.table_name}'",
                column=column.name,
            )
        )

    return discrepancies
