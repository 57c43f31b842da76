"""Tests for profile selection, engine creation and connect_and_reconcile()."""

import os
import textwrap
from pathlib import Path
from unittest.mock import patch

import pytest
from sqlalchemy import text

from conftest import create_legacy_teacher_assignments, execute
from enrollment_schema.config.models import DatabaseProfile
from enrollment_schema.errors import IntrospectionFailure
from enrollment_schema.factory import (
    ProfileNotFoundError,
    clear_profile_lock,
    connect_and_reconcile,
    create_store_engine,
    get_active_profile,
    get_active_profile_name,
    read_profile_lock,
    resolve_url,
    write_profile_lock,
)
from enrollment_schema.schema.models import ReconcileOutcome


@pytest.fixture
def workdir(tmp_path: Path, monkeypatch) -> Path:
    """Run in an isolated directory with no DB_PROFILE in the environment."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("DB_PROFILE", raising=False)
    return tmp_path


def _write_config(workdir: Path, db_url: str, schema: str = "") -> Path:
    path = workdir / "db.toml"
    path.write_text(
        textwrap.dedent(f"""\
            [profiles.local]
            url = "{db_url}"
            description = "Desktop database"
            """)
        + schema
    )
    return path


class TestProfileLock:
    """Lock file lives in the working directory."""

    def test_round_trip(self, workdir: Path) -> None:
        assert read_profile_lock() is None
        write_profile_lock("local")
        assert (workdir / ".db-profile").read_text() == "local"
        assert read_profile_lock() == "local"
        clear_profile_lock()
        assert read_profile_lock() is None

    def test_clear_without_lock(self, workdir: Path) -> None:
        clear_profile_lock()
        assert not (workdir / ".db-profile").exists()


class TestGetActiveProfileName:
    """Env var first, then lock file."""

    def test_default_prefix_reads_db_profile(self, workdir: Path) -> None:
        with patch.dict(os.environ, {"DB_PROFILE": "local"}):
            assert get_active_profile_name() == "local"

    def test_custom_prefix(self, workdir: Path) -> None:
        with patch.dict(os.environ, {"SCHOOL_DB_PROFILE": "server"}):
            assert get_active_profile_name(env_prefix="SCHOOL_") == "server"

    def test_env_var_wins_over_lock_file(self, workdir: Path) -> None:
        write_profile_lock("local")
        with patch.dict(os.environ, {"DB_PROFILE": "server"}):
            assert get_active_profile_name() == "server"

    def test_lock_file_fallback(self, workdir: Path) -> None:
        write_profile_lock("docker")
        assert get_active_profile_name() == "docker"

    def test_raises_when_no_profile(self, workdir: Path) -> None:
        with pytest.raises(ProfileNotFoundError, match="enrollment-schema"):
            get_active_profile_name()

    def test_get_active_profile_unknown_name(self, workdir: Path) -> None:
        _write_config(workdir, "sqlite://")
        with patch.dict(os.environ, {"DB_PROFILE": "nope"}):
            with pytest.raises(KeyError):
                get_active_profile()

    def test_get_active_profile(self, workdir: Path) -> None:
        _write_config(workdir, "sqlite://")
        with patch.dict(os.environ, {"DB_PROFILE": "local"}):
            name, profile = get_active_profile()
        assert name == "local"
        assert profile.url == "sqlite://"


class TestResolveUrl:
    """Password substitution and driver selection."""

    def test_password_substitution_is_quoted(self) -> None:
        profile = DatabaseProfile(
            url="postgresql://app:[YOUR-PASSWORD]@db/enrollment", db_password="p@ss/word"
        )
        assert resolve_url(profile) == "postgresql+psycopg://app:p%40ss%2Fword@db/enrollment"

    def test_postgres_scheme_normalized(self) -> None:
        profile = DatabaseProfile(url="postgres://app@db/enrollment")
        assert resolve_url(profile) == "postgresql+psycopg://app@db/enrollment"

    def test_explicit_driver_kept(self) -> None:
        profile = DatabaseProfile(url="postgresql+psycopg://app@db/enrollment")
        assert resolve_url(profile) == "postgresql+psycopg://app@db/enrollment"

    def test_sqlite_unchanged(self) -> None:
        profile = DatabaseProfile(url="sqlite:///enrollment.db", db_password="unused")
        assert resolve_url(profile) == "sqlite:///enrollment.db"


class TestCreateStoreEngine:
    """SQLite engines run DDL transactionally."""

    def test_sqlite_ddl_rolls_back(self, tmp_path: Path) -> None:
        engine = create_store_engine(f"sqlite:///{tmp_path / 't.db'}")
        try:
            with engine.connect() as conn:
                trans = conn.begin()
                conn.execute(text("CREATE TABLE scratch (id INTEGER)"))
                trans.rollback()
                found = conn.execute(
                    text("SELECT name FROM sqlite_master WHERE name = 'scratch'")
                ).scalar()
            assert found is None
        finally:
            engine.dispose()

    def test_server_engine_defaults(self) -> None:
        with patch("enrollment_schema.factory.create_engine") as mock_create:
            create_store_engine("postgresql+psycopg://app@db/enrollment")
        url, = mock_create.call_args.args
        assert url.endswith("?connect_timeout=5")
        assert mock_create.call_args.kwargs["pool_pre_ping"] is True


class TestConnectAndReconcile:
    """Startup entry point never raises."""

    def test_success_writes_lock(self, workdir: Path) -> None:
        _write_config(workdir, f"sqlite:///{workdir / 'enrollment.db'}")

        result = connect_and_reconcile("local")

        assert result.success, result.error
        assert [r.table_name for r in result.reports] == ["users", "teacher_assignments"]
        assert read_profile_lock() == "local"

    def test_legacy_table_reported(self, workdir: Path, engine) -> None:
        with engine.connect() as conn:
            create_legacy_teacher_assignments(conn, rows=3)
        db_url = engine.url.render_as_string(hide_password=False)
        _write_config(workdir, db_url)

        result = connect_and_reconcile("local", table_names=["teacher_assignments"])

        assert result.success
        report, = result.reports
        assert report.outcome == ReconcileOutcome.FIXED
        assert report.discrepancies_found == 5
        assert report.rows_discarded == 3

    def test_failed_table_does_not_write_lock(self, workdir: Path) -> None:
        _write_config(workdir, f"sqlite:///{workdir / 'enrollment.db'}")
        engine = create_store_engine(f"sqlite:///{workdir / 'enrollment.db'}")
        with engine.connect() as conn:
            execute(
                conn,
                "CREATE TABLE users (id INTEGER PRIMARY KEY, username VARCHAR(50) NOT NULL)",
                "INSERT INTO users (username) VALUES ('admin')",
            )
        engine.dispose()

        result = connect_and_reconcile("local")

        assert not result.success
        assert "users" in result.error
        assert read_profile_lock() is None

    def test_store_unavailable(self, workdir: Path) -> None:
        _write_config(workdir, f"sqlite:///{workdir / 'missing' / 'dir' / 'enrollment.db'}")

        result = connect_and_reconcile("local")

        assert not result.success
        assert "Failed to connect" in result.error
        assert result.reports == []

    def test_unknown_url_scheme(self, workdir: Path) -> None:
        _write_config(workdir, "nosuchdb://host/enrollment")

        result = connect_and_reconcile("local")

        assert not result.success
        assert result.profile_name == "local"
        assert "Invalid database URL for profile 'local'" in result.error
        assert "nosuchdb" in result.error
        assert read_profile_lock() is None

    def test_missing_driver(self, workdir: Path) -> None:
        _write_config(workdir, "postgresql://app@db/enrollment")
        with patch(
            "enrollment_schema.factory.create_engine",
            side_effect=ModuleNotFoundError("No module named 'psycopg'"),
        ):
            result = connect_and_reconcile("local")

        assert not result.success
        assert "psycopg" in result.error

    def test_introspection_failure(self, workdir: Path) -> None:
        _write_config(workdir, f"sqlite:///{workdir / 'enrollment.db'}")
        with patch(
            "enrollment_schema.factory.reconcile_all",
            side_effect=IntrospectionFailure("catalog unreadable"),
        ):
            result = connect_and_reconcile("local")
        assert not result.success
        assert result.error == "catalog unreadable"

    def test_no_profile(self, workdir: Path) -> None:
        result = connect_and_reconcile()
        assert not result.success
        assert "No database profile" in result.error

    def test_unknown_profile(self, workdir: Path) -> None:
        _write_config(workdir, "sqlite://")
        result = connect_and_reconcile("staging")
        assert not result.success
        assert "Available: local" in result.error

    def test_missing_config(self, workdir: Path) -> None:
        result = connect_and_reconcile("local")
        assert not result.success
        assert "db.toml" in result.error

    def test_unknown_table(self, workdir: Path) -> None:
        _write_config(workdir, f"sqlite:///{workdir / 'enrollment.db'}")
        result = connect_and_reconcile("local", table_names=["grades"])
        assert not result.success
        assert "grades" in result.error

    def test_reconcile_on_startup_disabled(self, workdir: Path) -> None:
        _write_config(
            workdir,
            f"sqlite:///{workdir / 'enrollment.db'}",
            "\n[schema]\nreconcile_on_startup = false\n",
        )
        result = connect_and_reconcile("local")
        assert result.success
        assert result.reports == []
        assert not (workdir / "enrollment.db").exists()

    def test_env_prefix(self, workdir: Path) -> None:
        _write_config(workdir, f"sqlite:///{workdir / 'enrollment.db'}")
        with patch.dict(os.environ, {"SCHOOL_DB_PROFILE": "local"}):
            result = connect_and_reconcile(env_prefix="SCHOOL_")
        assert result.success
        assert result.profile_name == "local"
