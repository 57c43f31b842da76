"""Canonical table definitions governed by the reconciler.

A ``CanonicalSchema`` is the single source of truth for a table's expected
structure.  The values below are compiled into the package and are not
configurable at runtime.

Usage:
    from enrollment_schema.schema.canonical import TEACHER_ASSIGNMENTS, get_canonical_schema

    canonical = get_canonical_schema("teacher_assignments")
    canonical.required_column_names
    # ['id', 'teacher_id', 'subject_id', 'section_id', 'created_at', 'updated_at']
"""

from pydantic import BaseModel, ConfigDict, Field

from enrollment_schema.schema.models import ColumnSpec, RebuildMode


class ForeignKeySpec(BaseModel):
    """Foreign key from a governed column to a parent table."""

    model_config = ConfigDict(frozen=True)

    column: str
    references_table: str
    references_column: str = "id"


class UniqueSpec(BaseModel):
    """Table-level UNIQUE constraint."""

    model_config = ConfigDict(frozen=True)

    columns: tuple[str, ...]


class IndexSpec(BaseModel):
    """Supporting index recreated after every rebuild."""

    model_config = ConfigDict(frozen=True)

    name: str
    columns: tuple[str, ...]
    unique: bool = False


class ForbiddenColumn(BaseModel):
    """Legacy column name whose presence marks a stale schema generation."""

    model_config = ConfigDict(frozen=True)

    name: str
    replacement: str | None = None  # canonical column that superseded it


class ValueListSpec(BaseModel):
    """Enumerated values a column's CHECK constraint must admit."""

    model_config = ConfigDict(frozen=True)

    column: str
    values: tuple[str, ...]


class CanonicalSchema(BaseModel):
    """Expected structure of one governed table."""

    model_config = ConfigDict(frozen=True)

    table_name: str
    version: int = 1
    columns: tuple[ColumnSpec, ...]
    foreign_keys: tuple[ForeignKeySpec, ...] = ()
    unique_constraints: tuple[UniqueSpec, ...] = ()
    indexes: tuple[IndexSpec, ...] = ()
    forbidden_columns: tuple[ForbiddenColumn, ...] = ()
    value_lists: tuple[ValueListSpec, ...] = ()
    sequence_table: bool = True
    rebuild_mode: RebuildMode = Field(default=RebuildMode.REPLACE)

    @property
    def required_column_names(self) -> list[str]:
        return [col.name for col in self.columns]

    @property
    def forbidden_column_names(self) -> list[str]:
        return [col.name for col in self.forbidden_columns]

    @property
    def sequence_table_name(self) -> str | None:
        """Name of the companion counter table (``<table>_seq``), if any."""
        if not self.sequence_table:
            return None
        return f"{self.table_name}_seq"

    def value_list_for(self, column: str) -> ValueListSpec | None:
        for spec in self.value_lists:
            if spec.column.lower() == column.lower():
                return spec
        return None


# ============================================================================
# Governed tables
# ============================================================================


TEACHER_ASSIGNMENTS = CanonicalSchema(
    table_name="teacher_assignments",
    version=2,
    columns=(
        ColumnSpec(name="id", declared_type="INTEGER", nullable=False, is_primary_key=True),
        ColumnSpec(name="teacher_id", declared_type="INTEGER", nullable=False),
        ColumnSpec(name="subject_id", declared_type="INTEGER", nullable=False),
        ColumnSpec(name="section_id", declared_type="INTEGER", nullable=False),
        ColumnSpec(name="created_at", declared_type="TIMESTAMP", nullable=False),
        ColumnSpec(name="updated_at", declared_type="TIMESTAMP"),
    ),
    foreign_keys=(
        ForeignKeySpec(column="teacher_id", references_table="users"),
        ForeignKeySpec(column="subject_id", references_table="subjects"),
        ForeignKeySpec(column="section_id", references_table="sections"),
    ),
    unique_constraints=(UniqueSpec(columns=("teacher_id", "subject_id", "section_id")),),
    indexes=(
        IndexSpec(name="idx_teacher_assignments_teacher_id", columns=("teacher_id",)),
        IndexSpec(name="idx_teacher_assignments_subject_id", columns=("subject_id",)),
        IndexSpec(name="idx_teacher_assignments_section_id", columns=("section_id",)),
    ),
    forbidden_columns=(
        ForbiddenColumn(name="teacher", replacement="teacher_id"),
        ForbiddenColumn(name="subject", replacement="subject_id"),
        ForbiddenColumn(name="section", replacement="section_id"),
        ForbiddenColumn(name="grade_level"),
    ),
    sequence_table=True,
    rebuild_mode=RebuildMode.REPLACE,
)

USERS = CanonicalSchema(
    table_name="users",
    version=2,
    columns=(
        ColumnSpec(name="id", declared_type="INTEGER", nullable=False, is_primary_key=True),
        ColumnSpec(name="username", declared_type="VARCHAR(50)", nullable=False),
        ColumnSpec(name="password", declared_type="VARCHAR(255)", nullable=False),
        ColumnSpec(name="full_name", declared_type="VARCHAR(100)", nullable=False),
        ColumnSpec(name="email", declared_type="VARCHAR(100)"),
        ColumnSpec(name="role", declared_type="VARCHAR(20)", nullable=False),
        ColumnSpec(name="is_active", declared_type="BOOLEAN", nullable=False, default="TRUE"),
        ColumnSpec(name="created_at", declared_type="TIMESTAMP", nullable=False),
        ColumnSpec(name="updated_at", declared_type="TIMESTAMP"),
        ColumnSpec(name="last_login", declared_type="TIMESTAMP"),
    ),
    unique_constraints=(UniqueSpec(columns=("username",)),),
    indexes=(IndexSpec(name="idx_users_username", columns=("username",), unique=True),),
    value_lists=(
        ValueListSpec(column="role", values=("ADMIN", "REGISTRAR", "STAFF", "TEACHER")),
    ),
    sequence_table=False,
    rebuild_mode=RebuildMode.PRESERVE,
)

# Startup order: parents before children
GOVERNED_TABLES: tuple[str, ...] = ("users", "teacher_assignments")

CANONICAL_SCHEMAS: dict[str, CanonicalSchema] = {
    schema.table_name: schema for schema in (USERS, TEACHER_ASSIGNMENTS)
}


def get_canonical_schema(table_name: str) -> CanonicalSchema:
    """Look up the canonical schema for a governed table.

    Raises:
        KeyError: If the table is not governed by this package.
    """
    try:
        return CANONICAL_SCHEMAS[table_name.lower()]
    except KeyError:
        raise KeyError(
            f"Table '{table_name}' has no canonical schema.\n"
            f"Governed tables: {', '.join(GOVERNED_TABLES)}"
        ) from None
