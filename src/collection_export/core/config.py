"""Application configuration via Pydantic Settings.

All configuration is loaded from environment variables following 12-factor principles.
"""

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_url: str = Field(
        default="sqlite+aiosqlite:///./collection_export.db",
        description="Async SQLAlchemy connection string for the record store",
    )

    # Export
    export_storage_dir: str = Field(
        default="./exports",
        description="Directory where generated export artifacts are stored",
    )
    export_page_size: int = Field(
        default=1000,
        description="Records fetched per page while generating an export",
        gt=0,
    )
    export_generate_in_background: bool = Field(
        default=False,
        description="Generate export output in a background task after the export record is created",
    )
    export_auto_delete: bool = Field(
        default=True,
        description="Delete old export records whenever a new export is created",
    )
    export_auto_delete_minutes: int = Field(
        default=60,
        description="Age in minutes after which export records are deleted by the sweep",
        gt=0,
    )
    export_sanitize_formulas: bool = Field(
        default=False,
        description="Prefix cells that start with formula characters with a single quote",
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )
    log_dir: str | None = Field(
        default=None,
        description="Directory for log files (enables file logging with 24h rotation when set)",
    )
    log_json: bool = Field(
        default=False,
        description="Emit JSON log lines instead of the human-readable format",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        allowed = {"TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in allowed:
            msg = f"Invalid log_level: must be one of {sorted(allowed)}"
            raise ValueError(msg)
        return v.upper()


def get_settings() -> Settings:
    """Create and return application settings."""
    return Settings()
