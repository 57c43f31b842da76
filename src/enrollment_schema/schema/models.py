"""Pydantic models for schema inspection, comparison and reconciliation.

This module contains schema-domain models:
- Inspection models: ColumnSpec, TableSnapshot
- Comparison models: DiscrepancyKind, Discrepancy
- Rebuild/reconcile results: RebuildMode, RebuildResult, ReconcileOutcome,
  ReconcileReport
- Connection result: ConnectionResult

Canonical (expected) schema models live in
enrollment_schema.schema.canonical.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


# ============================================================================
# Inspection Models
# ============================================================================


class ColumnSpec(BaseModel):
    """Schema for a single table column.

    Used both for columns reported by the catalog and for the required
    columns of a canonical schema.  Identity is the lower-cased name.

    Example:
        >>> col = ColumnSpec(name="Teacher_ID", declared_type="INTEGER")
        >>> col.key
        'teacher_id'
        >>> col.nullable
        True
    """

    model_config = ConfigDict(frozen=True)

    name: str
    declared_type: str
    nullable: bool = True
    is_primary_key: bool = False
    default: str | None = None

    @property
    def key(self) -> str:
        """Case-insensitive identity of the column within its table."""
        return self.name.lower()


class TableSnapshot(BaseModel):
    """Point-in-time structure of one live table.

    ``columns`` is keyed by lower-cased column name, in ordinal order.
    """

    model_config = ConfigDict(frozen=True)

    table_name: str
    columns: dict[str, ColumnSpec] = Field(default_factory=dict)
    raw_definition: str | None = None
    check_constraints: tuple[str, ...] = ()

    def has_column(self, name: str) -> bool:
        """True if the table has a column with this name (any case)."""
        return name.lower() in self.columns

    @property
    def column_names(self) -> list[str]:
        """Column names as reported by the store."""
        return [col.name for col in self.columns.values()]

    @property
    def primary_key(self) -> list[str]:
        return [col.name for col in self.columns.values() if col.is_primary_key]


# ============================================================================
# Comparison Models
# ============================================================================


class DiscrepancyKind(str, Enum):
    """Severity class of a schema divergence."""

    FORBIDDEN_COLUMN_PRESENT = "forbidden_column_present"
    REQUIRED_COLUMN_MISSING = "required_column_missing"
    CONSTRAINT_STALE = "constraint_stale"


class Discrepancy(BaseModel):
    """One detected divergence between actual and canonical structure."""

    model_config = ConfigDict(frozen=True)

    kind: DiscrepancyKind
    detail: str
    column: str | None = None


# ============================================================================
# Rebuild / Reconcile Results
# ============================================================================


class RebuildMode(str, Enum):
    """How a table is brought to its canonical structure.

    - ``create``: the table is absent and is created from scratch.
    - ``replace``: the table is dropped and recreated empty (destructive).
    - ``preserve``: the canonical table is built under a temporary name,
      rows of shared columns are copied, then the names are swapped.
    """

    CREATE = "create"
    REPLACE = "replace"
    PRESERVE = "preserve"


class RebuildResult(BaseModel):
    """Result of a committed rebuild.

    Attributes:
        success: Always True for a returned result (failures raise).
        mode: Rebuild mode that was executed.
        rows_before: Row count of the table before the rebuild.
        rows_copied: Rows carried over by a ``preserve`` rebuild.
        rows_discarded: Rows lost by the rebuild.
    """

    success: bool = False
    mode: RebuildMode
    rows_before: int = 0
    rows_copied: int = 0
    rows_discarded: int = 0


class ReconcileOutcome(str, Enum):
    """Terminal state of one reconciliation run."""

    NO_OP = "no_op"
    FIXED = "fixed"
    FAILED = "failed"
    SKIPPED = "skipped"


class ReconcileReport(BaseModel):
    """Structured outcome of ``reconcile()`` for one table.

    Example:
        >>> report = ReconcileReport(table_name="users", outcome=ReconcileOutcome.NO_OP)
        >>> report.ok
        True
        >>> report.format_report()
        'users: schema valid (no changes)'
    """

    table_name: str
    outcome: ReconcileOutcome
    discrepancies_found: int = 0
    discrepancies: list[Discrepancy] = Field(default_factory=list)
    mode: RebuildMode | None = None
    rows_discarded: int = 0
    error: str | None = None

    @property
    def ok(self) -> bool:
        """True unless the run ended in ``failed``."""
        return self.outcome != ReconcileOutcome.FAILED

    @property
    def data_discarded(self) -> bool:
        return self.rows_discarded > 0

    def format_report(self) -> str:
        """Format the report as a human-readable block of text."""
        if self.outcome == ReconcileOutcome.NO_OP:
            return f"{self.table_name}: schema valid (no changes)"
        if self.outcome == ReconcileOutcome.SKIPPED:
            return f"{self.table_name}: skipped ({self.error or 'unsupported store'})"

        if self.outcome == ReconcileOutcome.FIXED:
            mode = self.mode.value if self.mode else "rebuild"
            lines = [f"{self.table_name}: fixed by {mode}"]
        else:
            lines = [f"{self.table_name}: reconciliation failed"]
            if self.error:
                lines.append(f"  Error: {self.error}")

        if self.discrepancies:
            lines.append(f"  Discrepancies ({self.discrepancies_found}):")
            for item in self.discrepancies:
                lines.append(f"    - [{item.kind.value}] {item.detail}")

        if self.data_discarded:
            lines.append(f"  Rows discarded: {self.rows_discarded}")

        return "\n".join(lines)


# ============================================================================
# Connection Result
# ============================================================================


class ConnectionResult(BaseModel):
    """Result of connect_and_reconcile().

    Example:
        >>> result = ConnectionResult(success=True, profile_name="local")
        >>> result.reports
        []
    """

    success: bool
    profile_name: str | None = None
    reports: list[ReconcileReport] = Field(default_factory=list)
    error: str | None = None
