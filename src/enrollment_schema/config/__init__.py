"""Configuration management: profiles, TOML loading, and config models.

Usage:
    >>> from enrollment_schema.config import load_db_config, DatabaseProfile, DatabaseConfig
"""

from enrollment_schema.config.loader import load_db_config
from enrollment_schema.config.models import DatabaseConfig, DatabaseProfile

__all__ = ["load_db_config", "DatabaseConfig", "DatabaseProfile"]
