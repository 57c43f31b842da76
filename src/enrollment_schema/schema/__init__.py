"""Schema inspection, comparison, rebuild and reconciliation.

Provides live table inspection (``SchemaIntrospector``), comparison against
the compiled-in canonical schemas (``diff_schema``), transactional rebuilds
(``build_rebuild_plan``, ``rebuild_table``) and the startup orchestrator
(``reconcile``, ``reconcile_all``).

Usage:
    from enrollment_schema.schema import reconcile, TEACHER_ASSIGNMENTS
    from enrollment_schema.schema import SchemaIntrospector, diff_schema
"""

from enrollment_schema.schema.canonical import (
    CANONICAL_SCHEMAS,
    GOVERNED_TABLES,
    TEACHER_ASSIGNMENTS,
    USERS,
    CanonicalSchema,
    ForbiddenColumn,
    ForeignKeySpec,
    IndexSpec,
    UniqueSpec,
    ValueListSpec,
    get_canonical_schema,
)
from enrollment_schema.schema.comparator import diff_schema
from enrollment_schema.schema.introspector import SchemaIntrospector
from enrollment_schema.schema.models import (
    ColumnSpec,
    ConnectionResult,
    Discrepancy,
    DiscrepancyKind,
    RebuildMode,
    RebuildResult,
    ReconcileOutcome,
    ReconcileReport,
    TableSnapshot,
)
from enrollment_schema.schema.rebuild import RebuildPlan, build_rebuild_plan, rebuild_table
from enrollment_schema.schema.reconciler import (
    force_rebuild,
    reconcile,
    reconcile_all,
    reconcile_table,
)

__all__ = [
    "CANONICAL_SCHEMAS",
    "GOVERNED_TABLES",
    "TEACHER_ASSIGNMENTS",
    "USERS",
    "CanonicalSchema",
    "ForbiddenColumn",
    "ForeignKeySpec",
    "IndexSpec",
    "UniqueSpec",
    "ValueListSpec",
    "get_canonical_schema",
    "diff_schema",
    "SchemaIntrospector",
    "ColumnSpec",
    "ConnectionResult",
    "Discrepancy",
    "DiscrepancyKind",
    "RebuildMode",
    "RebuildResult",
    "ReconcileOutcome",
    "ReconcileReport",
    "TableSnapshot",
    "RebuildPlan",
    "build_rebuild_plan",
    "rebuild_table",
    "force_rebuild",
    "reconcile",
    "reconcile_all",
    "reconcile_table",
]
