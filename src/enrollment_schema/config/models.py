"""Pydantic models for database configuration."""

from pydantic import BaseModel, Field, model_validator

from enrollment_schema.schema.canonical import GOVERNED_TABLES

# URL scheme (without driver) -> provider name used in db.toml
_PROVIDERS = {
    "sqlite": "sqlite",
    "postgresql": "postgres",
    "postgres": "postgres",
}


# ============================================================================
# Configuration Models
# ============================================================================


class DatabaseProfile(BaseModel):
    """Database connection profile from db.toml.

    ``provider`` is derived from the URL scheme when omitted; an explicit
    value must agree with the URL.
    """

    url: str
    description: str = ""
    db_password: str | None = None  # For [YOUR-PASSWORD] placeholder substitution
    provider: str | None = None

    @model_validator(mode="after")
    def check_provider(self) -> "DatabaseProfile":
        scheme = self.url.split(":", 1)[0].split("+", 1)[0].lower()
        derived = _PROVIDERS.get(scheme, scheme)
        if self.provider is None:
            self.provider = derived
            return self

        declared = _PROVIDERS.get(self.provider.lower(), self.provider.lower())
        if declared != derived:
            raise ValueError(
                f"provider '{self.provider}' does not match URL scheme '{scheme}'"
            )
        self.provider = declared
        return self


class DatabaseConfig(BaseModel):
    """Complete database configuration from db.toml."""

    profiles: dict[str, DatabaseProfile]
    reconcile_on_startup: bool = True
    tables: list[str] = Field(default_factory=lambda: list(GOVERNED_TABLES))
