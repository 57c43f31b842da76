"""Tests for SchemaIntrospector against a live SQLite store."""

from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from conftest import LEGACY_USERS, create_legacy_teacher_assignments, execute
from enrollment_schema.dialects import SqliteDialect
from enrollment_schema.errors import IntrospectionFailure
from enrollment_schema.schema.introspector import SchemaIntrospector


class TestInspect:
    """Snapshots captured from the catalog."""

    def test_absent_table_returns_none(self, connection) -> None:
        introspector = SchemaIntrospector(connection, SqliteDialect())
        assert introspector.inspect("teacher_assignments") is None

    def test_columns_in_ordinal_order(self, connection) -> None:
        create_legacy_teacher_assignments(connection)
        snap = SchemaIntrospector(connection, SqliteDialect()).inspect("teacher_assignments")
        assert snap.column_names == [
            "id",
            "teacher",
            "subject",
            "section",
            "grade_level",
            "created_at",
        ]

    def test_types_nullability_and_primary_key(self, connection) -> None:
        execute(connection, LEGACY_USERS)
        snap = SchemaIntrospector(connection, SqliteDialect()).inspect("users")
        assert snap.columns["id"].is_primary_key
        assert snap.primary_key == ["id"]
        assert snap.columns["username"].declared_type == "VARCHAR(50)"
        assert snap.columns["username"].nullable is False
        assert snap.columns["email"].nullable is True

    def test_raw_definition_captured(self, connection) -> None:
        execute(connection, LEGACY_USERS)
        snap = SchemaIntrospector(connection, SqliteDialect()).inspect("users")
        assert "CHECK (role IN ('ADMIN', 'REGISTRAR', 'STAFF'))" in snap.raw_definition

    def test_untyped_column(self, connection) -> None:
        execute(connection, "CREATE TABLE loose (id INTEGER PRIMARY KEY, anything)")
        snap = SchemaIntrospector(connection, SqliteDialect()).inspect("loose")
        assert snap.has_column("anything")
        assert snap.columns["anything"].declared_type

    def test_each_call_returns_fresh_snapshot(self, connection) -> None:
        create_legacy_teacher_assignments(connection)
        introspector = SchemaIntrospector(connection, SqliteDialect())
        before = introspector.inspect("teacher_assignments")
        execute(connection, "ALTER TABLE teacher_assignments ADD COLUMN updated_at TIMESTAMP")
        after = introspector.inspect("teacher_assignments")
        assert not before.has_column("updated_at")
        assert after.has_column("updated_at")

    def test_count_rows(self, connection) -> None:
        create_legacy_teacher_assignments(connection, rows=4)
        introspector = SchemaIntrospector(connection, SqliteDialect())
        assert introspector.count_rows("teacher_assignments") == 4


class TestFailures:
    """Catalog errors become IntrospectionFailure."""

    def test_catalog_error_is_wrapped(self, connection) -> None:
        dialect = MagicMock(spec=SqliteDialect)
        dialect.get_raw_definition.side_effect = OperationalError("SELECT sql", {}, Exception("disk I/O error"))
        create_legacy_teacher_assignments(connection)
        with pytest.raises(IntrospectionFailure, match="teacher_assignments"):
            SchemaIntrospector(connection, dialect).inspect("teacher_assignments")

    def test_count_rows_of_missing_table(self, connection) -> None:
        with pytest.raises(IntrospectionFailure):
            SchemaIntrospector(connection, SqliteDialect()).count_rows("missing")
