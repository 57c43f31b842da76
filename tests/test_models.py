"""Tests for schema models and report formatting."""

import pytest
from pydantic import ValidationError

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


class TestColumnSpec:
    """ColumnSpec identity and defaults."""

    def test_key_is_lower_cased(self) -> None:
        col = ColumnSpec(name="Teacher_ID", declared_type="INTEGER")
        assert col.key == "teacher_id"

    def test_defaults(self) -> None:
        col = ColumnSpec(name="email", declared_type="VARCHAR(100)")
        assert col.nullable is True
        assert col.is_primary_key is False
        assert col.default is None

    def test_frozen(self) -> None:
        col = ColumnSpec(name="id", declared_type="INTEGER")
        with pytest.raises(ValidationError):
            col.name = "other"


class TestTableSnapshot:
    """Case-insensitive column lookup on snapshots."""

    def _snapshot(self) -> TableSnapshot:
        return TableSnapshot(
            table_name="users",
            columns={
                "id": ColumnSpec(name="ID", declared_type="INTEGER", is_primary_key=True),
                "username": ColumnSpec(name="Username", declared_type="VARCHAR(50)"),
            },
        )

    def test_has_column_any_case(self) -> None:
        snap = self._snapshot()
        assert snap.has_column("username")
        assert snap.has_column("USERNAME")
        assert not snap.has_column("email")

    def test_column_names_keep_reported_case(self) -> None:
        assert self._snapshot().column_names == ["ID", "Username"]

    def test_primary_key(self) -> None:
        assert self._snapshot().primary_key == ["ID"]


class TestReconcileReport:
    """Report flags and human-readable formatting."""

    def test_no_op_report(self) -> None:
        report = ReconcileReport(table_name="users", outcome=ReconcileOutcome.NO_OP)
        assert report.ok
        assert not report.data_discarded
        assert report.format_report() == "users: schema valid (no changes)"

    def test_skipped_report(self) -> None:
        report = ReconcileReport(
            table_name="users",
            outcome=ReconcileOutcome.SKIPPED,
            error="Unsupported dialect 'mssql'",
        )
        assert report.ok
        assert report.format_report() == "users: skipped (Unsupported dialect 'mssql')"

    def test_fixed_report_lists_discrepancies_and_data_loss(self) -> None:
        report = ReconcileReport(
            table_name="teacher_assignments",
            outcome=ReconcileOutcome.FIXED,
            discrepancies_found=1,
            discrepancies=[
                Discrepancy(
                    kind=DiscrepancyKind.REQUIRED_COLUMN_MISSING,
                    detail="Column 'updated_at' missing from table 'teacher_assignments'",
                    column="updated_at",
                )
            ],
            mode=RebuildMode.REPLACE,
            rows_discarded=3,
        )
        text = report.format_report()
        assert text.splitlines()[0] == "teacher_assignments: fixed by replace"
        assert "Discrepancies (1):" in text
        assert "[required_column_missing]" in text
        assert "Rows discarded: 3" in text
        assert report.data_discarded

    def test_failed_report_shows_error(self) -> None:
        report = ReconcileReport(
            table_name="users",
            outcome=ReconcileOutcome.FAILED,
            error="Rebuild of 'users' failed during create index: boom",
        )
        assert not report.ok
        lines = report.format_report().splitlines()
        assert lines[0] == "users: reconciliation failed"
        assert "boom" in lines[1]


class TestResults:
    """RebuildResult and ConnectionResult defaults."""

    def test_rebuild_result_requires_mode(self) -> None:
        with pytest.raises(ValidationError):
            RebuildResult()

    def test_rebuild_result_defaults(self) -> None:
        result = RebuildResult(mode=RebuildMode.CREATE)
        assert result.success is False
        assert result.rows_before == 0
        assert result.rows_discarded == 0

    def test_connection_result_defaults(self) -> None:
        result = ConnectionResult(success=False, error="nope")
        assert result.reports == []
        assert result.profile_name is None

    def test_enums_are_strings(self) -> None:
        assert DiscrepancyKind.CONSTRAINT_STALE == "constraint_stale"
        assert ReconcileOutcome.NO_OP.value == "no_op"
        assert RebuildMode("preserve") is RebuildMode.PRESERVE
