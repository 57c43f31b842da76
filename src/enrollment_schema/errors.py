"""Error taxonomy for schema reconciliation.

Only ``StoreUnavailable`` and ``IntrospectionFailure`` escape ``reconcile()``.
``RebuildFailure`` and ``VerificationFailure`` are raised by the lower layers
and turned into ``DONE(failed)`` reports by the reconciler.
``UnsupportedDialect`` is raised only by callers that ask for a dialect
explicitly; the reconciler reports an unknown backend as ``skipped``.
"""


class SchemaReconcileError(Exception):
    """Base class for all reconciliation errors."""

    pass


class StoreUnavailable(SchemaReconcileError):
    """Raised when no connection to the store can be obtained."""

    pass


class UnsupportedDialect(SchemaReconcileError):
    """Raised when a connection's backend has no registered dialect support."""

    def __init__(self, dialect_name: str):
        self.dialect_name = dialect_name
        super().__init__(f"No schema support for database dialect '{dialect_name}'")


class IntrospectionFailure(SchemaReconcileError):
    """Raised when the store's catalog cannot be read."""

    pass


class RebuildFailure(SchemaReconcileError):
    """Raised after a rebuild transaction has been rolled back."""

    def __init__(self, table_name: str, step: str, cause: Exception | str):
        self.table_name = table_name
        self.step = step
        self.cause = cause
        super().__init__(f"Rebuild of '{table_name}' failed during {step}: {cause}")


class VerificationFailure(SchemaReconcileError):
    """Raised when a rebuilt table still differs from its canonical schema."""

    def __init__(self, table_name: str, remaining: list):
        self.table_name = table_name
        self.remaining = remaining
        super().__init__(
            f"Table '{table_name}' still has {len(remaining)} discrepancies after rebuild"
        )
