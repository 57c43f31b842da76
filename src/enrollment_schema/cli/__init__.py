"""CLI module for enrollment schema reconciliation.

Provides commands for profile management, table inspection, startup
reconciliation, and operator-forced rebuilds.

Usage:
    DB_PROFILE=local enrollment-schema reconcile
    enrollment-schema status
    enrollment-schema profiles
    enrollment-schema inspect teacher_assignments
    enrollment-schema reconcile --table users
    enrollment-schema rebuild --table teacher_assignments --confirm

Commands:
    profiles  - List available profiles
    status    - Show current connection status
    inspect   - Show a table's live structure and its discrepancies
    reconcile - Bring governed tables to their canonical structure
    rebuild   - Drop and recreate a table (discards all rows)
"""

import argparse
import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table
from sqlalchemy import Engine
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from enrollment_schema.config.loader import load_db_config
from enrollment_schema.dialects import require_dialect
from enrollment_schema.errors import IntrospectionFailure, UnsupportedDialect
from enrollment_schema.factory import (
    ProfileNotFoundError,
    connect_and_reconcile,
    create_store_engine,
    get_active_profile,
    read_profile_lock,
    resolve_url,
)
from enrollment_schema.schema.canonical import get_canonical_schema
from enrollment_schema.schema.comparator import diff_schema
from enrollment_schema.schema.introspector import SchemaIntrospector
from enrollment_schema.schema.models import ReconcileOutcome, ReconcileReport
from enrollment_schema.schema.reconciler import force_rebuild

console = Console()

_OUTCOME_STYLES = {
    ReconcileOutcome.NO_OP: "[bold green]v[/bold green]",
    ReconcileOutcome.FIXED: "[bold yellow]~[/bold yellow]",
    ReconcileOutcome.SKIPPED: "[dim]-[/dim]",
    ReconcileOutcome.FAILED: "[bold red]x[/bold red]",
}


# ============================================================================
# Helpers
# ============================================================================


def _config_path(args: argparse.Namespace) -> Path | None:
    config = getattr(args, "config", None)
    return Path(config) if config else None


def _open_engine(args: argparse.Namespace) -> tuple[str, Engine] | None:
    """Resolve the active profile and create its engine.

    Prints the error and returns None when no usable profile exists.
    """
    env_prefix = getattr(args, "env_prefix", "")
    try:
        profile_name, profile = get_active_profile(env_prefix, _config_path(args))
    except ProfileNotFoundError:
        console.print("[yellow]No profile configured.[/yellow]")
        console.print(
            f"[dim]Run[/dim] [cyan]{env_prefix}DB_PROFILE=<name> "
            f"enrollment-schema {args.command}[/cyan]"
        )
        return None
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        return None
    except KeyError as e:
        console.print(f"[red]Error: {escape(e.args[0])}[/red]")
        return None

    try:
        return profile_name, create_store_engine(resolve_url(profile))
    except (SQLAlchemyError, ImportError) as e:
        console.print(
            f"[red]Invalid database URL for profile '{escape(profile_name)}': {escape(str(e))}[/red]"
        )
        return None


def _print_report(report: ReconcileReport) -> None:
    marker = _OUTCOME_STYLES[report.outcome]
    lines = report.format_report().splitlines()
    console.print(f"{marker} {escape(lines[0])}", highlight=False)
    for line in lines[1:]:
        console.print(escape(line), highlight=False)
    if report.data_discarded:
        console.print(
            f"  [bold yellow]Warning:[/bold yellow] {report.rows_discarded} "
            f"row(s) discarded from [cyan]{report.table_name}[/cyan]"
        )


# ============================================================================
# Command implementations
# ============================================================================


def cmd_profiles(args: argparse.Namespace) -> int:
    """List available profiles from db.toml.

    Reads only local TOML config -- no database calls.

    Args:
        args: Parsed CLI arguments.

    Returns:
        0 on success, 1 if db.toml not found.
    """
    try:
        config = load_db_config(_config_path(args))
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        return 1

    current = read_profile_lock()

    table = Table(title="Database Profiles", show_header=True, header_style="bold")
    table.add_column("", width=2)
    table.add_column("Profile")
    table.add_column("Provider")
    table.add_column("Description")

    for name, profile in config.profiles.items():
        marker = "[bold green]*[/bold green]" if name == current else " "
        name_style = "bold cyan" if name == current else ""
        table.add_row(
            marker,
            f"[{name_style}]{name}[/{name_style}]" if name_style else name,
            profile.provider,
            profile.description or "",
        )

    console.print(table)

    if current:
        console.print("\n[bold green]*[/bold green] = current profile")

    return 0


def cmd_status(args: argparse.Namespace) -> int:
    """Show current connection status.

    Reads only local files (lock file and TOML config) -- no database calls.

    Returns:
        0 always (informational command).
    """
    profile = read_profile_lock()

    if not profile:
        console.print("[yellow]No reconciled profile.[/yellow]")
        console.print("[dim]Run:[/dim] [cyan]DB_PROFILE=<name> enrollment-schema reconcile[/cyan]")
        return 0

    table = Table(title="Connection Status", show_header=False)
    table.add_column("Key", style="dim")
    table.add_column("Value")
    table.add_row("Current profile", f"[bold cyan]{profile}[/bold cyan]")
    table.add_row("Profile source", ".db-profile (reconciled)")

    try:
        config = load_db_config(_config_path(args))
        if profile in config.profiles:
            p = config.profiles[profile]
            table.add_row("Provider", p.provider)
            if p.description:
                table.add_row("Description", p.description)
        table.add_row(
            "Reconcile on startup",
            "yes" if config.reconcile_on_startup else "[yellow]no[/yellow]",
        )
        table.add_row("Governed tables", ", ".join(config.tables))
    except FileNotFoundError:
        table.add_row("Warning", "[yellow]db.toml not found[/yellow]")

    console.print(table)
    return 0


def cmd_inspect(args: argparse.Namespace) -> int:
    """Show the live structure of a governed table and its discrepancies.

    Read-only: nothing is rebuilt.

    Returns:
        0 if the table matches its canonical schema, 1 otherwise.
    """
    try:
        canonical = get_canonical_schema(args.table)
    except KeyError as e:
        console.print(f"[red]Error: {escape(e.args[0])}[/red]")
        return 1

    opened = _open_engine(args)
    if opened is None:
        return 1
    profile_name, engine = opened

    console.print(
        f"Inspecting [bold]{canonical.table_name}[/bold] "
        f"in profile [bold cyan]{profile_name}[/bold cyan]"
    )
    try:
        with engine.connect() as connection:
            dialect = require_dialect(connection)
            introspector = SchemaIntrospector(connection, dialect)
            snapshot = introspector.inspect(canonical.table_name)
            row_count = introspector.count_rows(canonical.table_name) if snapshot else 0
    except (OperationalError, IntrospectionFailure, UnsupportedDialect) as e:
        console.print(f"\n[red]Error: {escape(str(e))}[/red]")
        return 1
    finally:
        engine.dispose()

    if snapshot is None:
        console.print("\n[bold red]x[/bold red] Table does not exist")
        return 1

    table = Table(
        title=f"{snapshot.table_name} ({row_count} rows)",
        show_header=True,
        header_style="bold",
    )
    table.add_column("Column")
    table.add_column("Type")
    table.add_column("Nullable")
    table.add_column("PK")
    for column in snapshot.columns.values():
        table.add_row(
            column.name,
            column.declared_type,
            "yes" if column.nullable else "no",
            "[bold]*[/bold]" if column.is_primary_key else "",
        )
    console.print()
    console.print(table)

    discrepancies = diff_schema(snapshot, canonical, dialect.definition_matcher)
    if not discrepancies:
        console.print("\n[bold green]v[/bold green] Schema is valid")
        return 0

    console.print(f"\n[bold red]x[/bold red] {len(discrepancies)} discrepancies:")
    for item in discrepancies:
        console.print(escape(f"  - [{item.kind.value}] {item.detail}"), highlight=False)
    return 1


def cmd_reconcile(args: argparse.Namespace) -> int:
    """Reconcile governed tables and write the profile lock on success.

    Returns:
        0 if every table ended no_op, fixed or skipped; 1 otherwise.
    """
    env_prefix = getattr(args, "env_prefix", "")
    previous_profile = read_profile_lock()
    table_names = [args.table] if args.table else None

    console.print("Connecting to database...", style="dim")
    result = connect_and_reconcile(
        table_names=table_names,
        env_prefix=env_prefix,
        config_path=_config_path(args),
    )

    console.print()
    for report in result.reports:
        _print_report(report)

    if not result.success:
        console.print(f"\n[bold red]x[/bold red] {escape(result.error or '')}")
        return 1

    console.print(
        f"\n[bold green]v[/bold green] Connected to profile: "
        f"[bold cyan]{result.profile_name}[/bold cyan]"
    )
    if previous_profile and previous_profile != result.profile_name:
        console.print(
            f"\n[dim]Switched from[/dim] [bold]{previous_profile}[/bold] "
            f"[dim]to[/dim] [bold cyan]{result.profile_name}[/bold cyan]"
        )
    return 0


def cmd_rebuild(args: argparse.Namespace) -> int:
    """Force a destructive rebuild of one governed table.

    Without ``--confirm`` only the plan is shown.

    Returns:
        0 on success or preview, 1 on failure.
    """
    try:
        canonical = get_canonical_schema(args.table)
    except KeyError as e:
        console.print(f"[red]Error: {escape(e.args[0])}[/red]")
        return 1

    if not args.confirm:
        console.print(
            f"[bold yellow]Warning:[/bold yellow] rebuilding "
            f"[cyan]{canonical.table_name}[/cyan] drops the table and discards every row."
        )
        console.print("[dim]To rebuild, add[/dim] [cyan]--confirm[/cyan] [dim]flag.[/dim]")
        return 0

    opened = _open_engine(args)
    if opened is None:
        return 1
    profile_name, engine = opened

    console.print(
        f"Rebuilding [bold]{canonical.table_name}[/bold] "
        f"in profile [bold cyan]{profile_name}[/bold cyan]"
    )
    try:
        with engine.connect() as connection:
            report = force_rebuild(connection, canonical)
    except (OperationalError, IntrospectionFailure) as e:
        console.print(f"\n[red]Error: {escape(str(e))}[/red]")
        return 1
    finally:
        engine.dispose()

    console.print()
    _print_report(report)
    return 0 if report.outcome == ReconcileOutcome.FIXED else 1


# ============================================================================
# Entry point
# ============================================================================


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point.

    Parses command line arguments and dispatches to appropriate handler.

    Returns:
        Exit code (0 for success, non-zero for errors).
    """
    parser = argparse.ArgumentParser(
        prog="enrollment-schema",
        description="Schema reconciliation for the enrollment database",
    )

    # Global options
    parser.add_argument(
        "--env-prefix",
        default="",
        help=(
            "Prefix for environment variable lookup "
            "(e.g., --env-prefix APP_ reads APP_DB_PROFILE)"
        ),
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to db.toml (default: ./db.toml)",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Log every reconciliation step",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # profiles command
    p_profiles = subparsers.add_parser("profiles", help="List available profiles")
    p_profiles.set_defaults(func=cmd_profiles)

    # status command
    p_status = subparsers.add_parser("status", help="Show current connection status")
    p_status.set_defaults(func=cmd_status)

    # inspect command
    p_inspect = subparsers.add_parser(
        "inspect",
        help="Show a table's live structure and its discrepancies",
    )
    p_inspect.add_argument("table", help="Governed table name")
    p_inspect.set_defaults(func=cmd_inspect)

    # reconcile command
    p_reconcile = subparsers.add_parser(
        "reconcile",
        help="Bring governed tables to their canonical structure",
    )
    p_reconcile.add_argument(
        "--table",
        "-t",
        default=None,
        help="Reconcile only this table (default: all governed tables)",
    )
    p_reconcile.set_defaults(func=cmd_reconcile)

    # rebuild command
    p_rebuild = subparsers.add_parser(
        "rebuild",
        help="Drop and recreate a table (discards all rows)",
    )
    p_rebuild.add_argument("--table", "-t", required=True, help="Governed table name")
    p_rebuild.add_argument(
        "--confirm",
        action="store_true",
        help="Actually perform the rebuild",
    )
    p_rebuild.set_defaults(func=cmd_rebuild)

    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(message)s",
            handlers=[RichHandler(console=console, show_path=False)],
        )

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
