"""TOML loader for database profiles."""

import tomllib
from pathlib import Path

from pydantic import ValidationError

from enrollment_schema.config.models import DatabaseConfig, DatabaseProfile


def load_db_config(config_path: Path | None = None) -> DatabaseConfig:
    """Load database configuration from TOML file.

    Args:
        config_path: Path to db.toml (default: db.toml in the current
            working directory)

    Returns:
        DatabaseConfig with all profiles

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If config format is invalid
    """
    if config_path is None:
        config_path = Path.cwd() / "db.toml"

    if not config_path.exists():
        raise FileNotFoundError(
            f"Database config not found: {config_path}\n"
            f"Create db.toml with at least one [profiles.<name>] table."
        )

    with open(config_path, "rb") as f:
        try:
            data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ValueError(f"Invalid TOML in {config_path.name}: {e}") from e

    # Parse profiles
    profiles = {}
    for name, profile_data in data.get("profiles", {}).items():
        try:
            profiles[name] = DatabaseProfile(**profile_data)
        except ValidationError as e:
            raise ValueError(f"Invalid profile '{name}' in {config_path.name}: {e}") from e

    # Parse schema settings
    schema_settings = data.get("schema", {})

    config = DatabaseConfig(
        profiles=profiles,
        reconcile_on_startup=schema_settings.get("reconcile_on_startup", True),
    )
    if "tables" in schema_settings:
        config.tables = list(schema_settings["tables"])
    return config
