"""Configuration management for the library lending engine.

Process-level settings only: where the database lives, how often the
background sweeps fire, and how noisy logging is. Fine amounts are not
configuration in this sense. The active fine configuration is a database
row (see ``database.fine_repository``) so that every server instance reads
the same values.
"""

from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LendingConfig(BaseSettings):
    """Settings for the lending server and its background jobs.

    Every field can be overridden with a ``LIBRARY_LENDING_`` prefixed
    environment variable or an entry in a local ``.env`` file.
    """

    model_config = SettingsConfigDict(
        env_prefix="LIBRARY_LENDING_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # === Server Metadata ===

    server_name: str = Field(
        default="library-lending",
        description="Server name announced to MCP clients",
        pattern=r"^[a-z0-9-]+$",
    )

    server_version: str = Field(
        default="0.1.0",
        description="Server version announced to MCP clients",
        pattern=r"^\d+\.\d+\.\d+(-[a-zA-Z0-9.]+)?$",
    )

    # === Database Configuration ===

    database_url: str = Field(
        default="sqlite:///data/library.db",
        description="SQLAlchemy database URL",
    )

    sqlite_busy_timeout: float = Field(
        default=30.0,
        description="Seconds a SQLite writer waits for the database write lock",
        gt=0,
    )

    # === Background Sweeps ===

    scheduler_enabled: bool = Field(
        default=True,
        description="Run the fine and overdue sweeps inside the server process",
    )

    fine_sweep_interval_seconds: int = Field(
        default=86_400,
        description="Seconds between fine recalculation sweeps",
        ge=60,
    )

    overdue_sweep_interval_seconds: int = Field(
        default=3_600,
        description="Seconds between overdue status sweeps",
        ge=60,
    )

    # === Development Configuration ===

    debug: bool = Field(
        default=False,
        description="Enable debug logging",
    )

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)",
        pattern=r"^(DEBUG|INFO|WARNING|ERROR)$",
    )

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        """Create the parent directory of a file-backed SQLite database."""
        if v.startswith("sqlite:///") and ":memory:" not in v:
            db_path = Path(v.removeprefix("sqlite:///"))
            db_path.absolute().parent.mkdir(parents=True, exist_ok=True)
        return v

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    @property
    def effective_log_level(self) -> str:
        return "DEBUG" if self.debug else self.log_level


class _ConfigStore:
    """Internal storage for configuration singleton."""

    _instance: LendingConfig | None = None


def get_config() -> LendingConfig:
    """Get or create the global configuration instance."""
    if _ConfigStore._instance is None:  # type: ignore[reportPrivateUsage]
        _ConfigStore._instance = LendingConfig()  # type: ignore[reportPrivateUsage]
    return _ConfigStore._instance  # type: ignore[reportPrivateUsage]


def reset_config() -> None:
    """Reset configuration (useful for testing)."""
    _ConfigStore._instance = None  # type: ignore[reportPrivateUsage]
