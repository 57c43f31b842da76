"""Store engine factory and startup reconciliation entry point.

Profiles live in ``db.toml``; the profile that last reconciled cleanly is
remembered in a ``.db-profile`` lock file in the working directory.

Usage:
    from enrollment_schema.factory import connect_and_reconcile

    result = connect_and_reconcile("local")
    if not result.success:
        print(result.error)
    for report in result.reports:
        print(report.format_report())
"""

import logging
import os
from collections.abc import Iterable
from pathlib import Path
from typing import Any
from urllib.parse import quote

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from enrollment_schema.config import DatabaseProfile, load_db_config
from enrollment_schema.errors import IntrospectionFailure, StoreUnavailable
from enrollment_schema.schema.models import ConnectionResult, ReconcileReport
from enrollment_schema.schema.reconciler import reconcile_all

logger = logging.getLogger(__name__)

# Profile lock file name (resolved against the working directory)
_PROFILE_LOCK_NAME = ".db-profile"


# ============================================================================
# Profile Lock File Operations
# ============================================================================


class ProfileNotFoundError(Exception):
    """Raised when no database profile is configured."""

    pass


def _profile_lock_file() -> Path:
    return Path.cwd() / _PROFILE_LOCK_NAME


def read_profile_lock() -> str | None:
    """Read profile name from lock file.

    Returns:
        Profile name if lock file exists, None otherwise
    """
    lock_file = _profile_lock_file()
    if lock_file.exists():
        return lock_file.read_text().strip() or None
    return None


def write_profile_lock(profile_name: str) -> None:
    """Write profile name to lock file.

    Only call this after a successful reconciliation.

    Args:
        profile_name: Name of reconciled profile
    """
    _profile_lock_file().write_text(profile_name)


def clear_profile_lock() -> None:
    """Remove profile lock file."""
    lock_file = _profile_lock_file()
    if lock_file.exists():
        lock_file.unlink()


def get_active_profile_name(env_prefix: str = "") -> str:
    """Get active profile name from env var or lock file.

    Priority:
    1. ``{env_prefix}DB_PROFILE`` env var (for initial connect or CI/CD)
    2. .db-profile file (profile from previous successful connect)
    3. Raise ProfileNotFoundError

    Args:
        env_prefix: Prefix for the environment variable
            (e.g. ``"APP_"`` reads ``APP_DB_PROFILE``).

    Returns:
        Profile name

    Raises:
        ProfileNotFoundError: If no profile is configured
    """
    env_profile = os.environ.get(f"{env_prefix}DB_PROFILE")
    if env_profile:
        return env_profile

    lock_profile = read_profile_lock()
    if lock_profile:
        return lock_profile

    raise ProfileNotFoundError(
        "No database profile configured.\n"
        f"Run: {env_prefix}DB_PROFILE=<name> enrollment-schema reconcile\n"
        "Profiles are listed by: enrollment-schema profiles"
    )


def get_active_profile(
    env_prefix: str = "",
    config_path: Path | None = None,
) -> tuple[str, DatabaseProfile]:
    """Get active profile name and configuration.

    Returns:
        Tuple of (profile_name, DatabaseProfile)

    Raises:
        ProfileNotFoundError: If no profile configured
        KeyError: If profile not found in db.toml
    """
    profile_name = get_active_profile_name(env_prefix)
    config = load_db_config(config_path)

    if profile_name not in config.profiles:
        raise KeyError(
            f"Profile '{profile_name}' not found in db.toml.\n"
            f"Available profiles: {', '.join(config.profiles.keys())}"
        )

    return profile_name, config.profiles[profile_name]


# ============================================================================
# Engine Creation
# ============================================================================


def resolve_url(profile: DatabaseProfile) -> str:
    """Resolve profile URL with password substitution.

    PostgreSQL URLs are pinned to the synchronous ``psycopg`` driver.

    Args:
        profile: Database profile from config

    Returns:
        Connection URL with password substituted

    Example:
        >>> p = DatabaseProfile(url="postgres://app:[YOUR-PASSWORD]@db/school", db_password="p@ss")
        >>> resolve_url(p)
        'postgresql+psycopg://app:p%40ss@db/school'
    """
    url = profile.url
    if profile.db_password and "[YOUR-PASSWORD]" in url:
        url = url.replace("[YOUR-PASSWORD]", quote(profile.db_password, safe=""))

    for scheme in ("postgresql://", "postgres://"):
        if url.startswith(scheme):
            url = "postgresql+psycopg://" + url[len(scheme):]
            break
    return url


def _enable_sqlite_transactional_ddl(engine: Engine) -> None:
    """Let SQLAlchemy, not pysqlite, emit BEGIN so DDL can be rolled back.

    pysqlite's own transaction handling commits before DDL statements,
    which would leave a failed rebuild half-applied.
    """

    @event.listens_for(engine, "connect")
    def _do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _do_begin(conn):
        conn.exec_driver_sql("BEGIN")


def create_store_engine(database_url: str, **kwargs: Any) -> Engine:
    """Create a synchronous SQLAlchemy engine for the store.

    SQLite engines get transactional DDL; server engines get
    ``pool_pre_ping`` and a connect timeout.

    Args:
        database_url: SQLAlchemy URL (already resolved).
        **kwargs: Additional keyword arguments forwarded to ``create_engine``.

    Returns:
        Configured ``Engine``.

    Example:
        engine = create_store_engine("sqlite:///enrollment.db")
    """
    if database_url.startswith("sqlite"):
        engine = create_engine(database_url, **kwargs)
        _enable_sqlite_transactional_ddl(engine)
        return engine

    if database_url.startswith("postgresql") and "connect_timeout" not in database_url:
        separator = "&" if "?" in database_url else "?"
        database_url = f"{database_url}{separator}connect_timeout=5"

    defaults: dict[str, Any] = {"pool_pre_ping": True, "echo": False}
    # Caller kwargs override defaults
    merged = {**defaults, **kwargs}
    return create_engine(database_url, **merged)


# ============================================================================
# Connection and Reconciliation
# ============================================================================


def connect_and_reconcile(
    profile_name: str | None = None,
    table_names: Iterable[str] | None = None,
    env_prefix: str = "",
    config_path: Path | None = None,
) -> ConnectionResult:
    """Connect to a profile's store and reconcile the governed tables.

    This is the startup API.  It never raises: configuration, connection
    and catalog errors are returned in ``ConnectionResult.error``.  The
    profile lock is written only when every table ends ``no_op``,
    ``fixed`` or ``skipped``.

    Args:
        profile_name: Profile name from db.toml. If None, uses the
            ``{env_prefix}DB_PROFILE`` env var or the .db-profile lock file.
        table_names: Tables to reconcile. Defaults to the ``[schema].tables``
            setting of db.toml.
        env_prefix: Prefix for environment variable lookup.
        config_path: Path to db.toml (default: ./db.toml).

    Returns:
        ConnectionResult with success status and one report per table

    Example:
        >>> result = connect_and_reconcile("local")
        >>> if result.success:
        ...     print(f"Connected to {result.profile_name}")
        ... else:
        ...     print(f"Failed: {result.error}")
    """
    # Resolve profile name
    if profile_name is None:
        try:
            profile_name = get_active_profile_name(env_prefix)
        except ProfileNotFoundError as e:
            return ConnectionResult(success=False, error=str(e))

    # Load profile config
    try:
        config = load_db_config(config_path)
    except (FileNotFoundError, ValueError) as e:
        return ConnectionResult(success=False, profile_name=profile_name, error=str(e))

    if profile_name not in config.profiles:
        available = ", ".join(config.profiles.keys())
        return ConnectionResult(
            success=False,
            profile_name=profile_name,
            error=f"Profile '{profile_name}' not found. Available: {available}",
        )
    profile = config.profiles[profile_name]

    if table_names is None:
        if not config.reconcile_on_startup:
            logger.info(f"Reconciliation disabled for profile '{profile_name}'")
            write_profile_lock(profile_name)
            return ConnectionResult(success=True, profile_name=profile_name)
        table_names = config.tables

    try:
        engine = create_store_engine(resolve_url(profile))
    except (SQLAlchemyError, ImportError) as e:
        # Unknown URL scheme or driver not installed
        error = f"Invalid database URL for profile '{profile_name}': {e}"
        logger.error(error)
        return ConnectionResult(success=False, profile_name=profile_name, error=error)

    try:
        reports = _reconcile_store(engine, table_names)
    except (StoreUnavailable, IntrospectionFailure) as e:
        logger.error(str(e))
        return ConnectionResult(success=False, profile_name=profile_name, error=str(e))
    except KeyError as e:
        # Unknown table name in the requested list
        logger.error(e.args[0])
        return ConnectionResult(success=False, profile_name=profile_name, error=e.args[0])
    finally:
        engine.dispose()

    failed = [report.table_name for report in reports if not report.ok]
    if failed:
        return ConnectionResult(
            success=False,
            profile_name=profile_name,
            reports=reports,
            error=f"Reconciliation failed for: {', '.join(failed)}",
        )

    write_profile_lock(profile_name)
    return ConnectionResult(success=True, profile_name=profile_name, reports=reports)


def _reconcile_store(engine: Engine, table_names: Iterable[str]) -> list[ReconcileReport]:
    try:
        connection = engine.connect()
    except OperationalError as e:
        raise StoreUnavailable(f"Failed to connect to database: {e}") from e

    with connection:
        return reconcile_all(connection, table_names)
