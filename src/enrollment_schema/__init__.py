"""enrollment-schema: Startup schema reconciliation for the enrollment database.

Inspects governed tables on a live SQLAlchemy connection, compares them with
their compiled-in canonical structure, and rebuilds stale tables inside a
single transaction.

Usage:
    from enrollment_schema import connect_and_reconcile
    from enrollment_schema import reconcile, reconcile_all, TEACHER_ASSIGNMENTS
    from enrollment_schema import load_db_config, DatabaseProfile, DatabaseConfig
"""

__version__ = "0.1.0"

# Config
from enrollment_schema.config.loader import load_db_config
from enrollment_schema.config.models import DatabaseConfig, DatabaseProfile

# Errors
from enrollment_schema.errors import (
    IntrospectionFailure,
    RebuildFailure,
    SchemaReconcileError,
    StoreUnavailable,
    UnsupportedDialect,
    VerificationFailure,
)

# Factory
from enrollment_schema.factory import (
    ProfileNotFoundError,
    connect_and_reconcile,
    create_store_engine,
    resolve_url,
)

# Schema
from enrollment_schema.schema.canonical import (
    GOVERNED_TABLES,
    TEACHER_ASSIGNMENTS,
    USERS,
    CanonicalSchema,
    get_canonical_schema,
)
from enrollment_schema.schema.comparator import diff_schema
from enrollment_schema.schema.introspector import SchemaIntrospector
from enrollment_schema.schema.models import (
    ConnectionResult,
    Discrepancy,
    DiscrepancyKind,
    ReconcileOutcome,
    ReconcileReport,
    TableSnapshot,
)
from enrollment_schema.schema.reconciler import force_rebuild, reconcile, reconcile_all

__all__ = [
    # Config
    "load_db_config",
    "DatabaseProfile",
    "DatabaseConfig",
    # Errors
    "SchemaReconcileError",
    "StoreUnavailable",
    "UnsupportedDialect",
    "IntrospectionFailure",
    "RebuildFailure",
    "VerificationFailure",
    # Factory
    "connect_and_reconcile",
    "create_store_engine",
    "ProfileNotFoundError",
    "resolve_url",
    # Schema
    "GOVERNED_TABLES",
    "TEACHER_ASSIGNMENTS",
    "USERS",
    "CanonicalSchema",
    "get_canonical_schema",
    "diff_schema",
    "SchemaIntrospector",
    "ConnectionResult",
    "Discrepancy",
    "DiscrepancyKind",
    "ReconcileOutcome",
    "ReconcileReport",
    "TableSnapshot",
    "force_rebuild",
    "reconcile",
    "reconcile_all",
]
