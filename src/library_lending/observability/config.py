"""Logfire settings.

Read from ``LOGFIRE_*`` environment variables the same way ``LendingConfig``
reads ``LIBRARY_LENDING_*`` ones. ``ENVIRONMENT`` is honoured as well, since
deployments usually set it once for every service.
"""

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ObservabilityConfig(BaseSettings):
    """Where traces and metrics go, and whether they are collected at all."""

    model_config = SettingsConfigDict(
        env_prefix="LOGFIRE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    token: str = Field(default="", description="Write token; empty keeps data local")

    service_name: str = Field(default="library-lending", pattern=r"^[a-z0-9-]+$")

    environment: str = Field(
        default="development",
        validation_alias=AliasChoices("LOGFIRE_ENVIRONMENT", "ENVIRONMENT"),
    )

    enabled: bool = Field(default=True, description="Skip Logfire configuration when false")

    console_output: bool = Field(
        default=False,
        validation_alias="LOGFIRE_CONSOLE",
        description="Echo spans to the console; stdio servers keep stdout for MCP",
    )

    send_to_logfire: bool = Field(
        default=False,
        validation_alias="LOGFIRE_SEND",
        description="Export to the Logfire backend; needs a token",
    )

    @property
    def is_production(self) -> bool:
        return self.environment == "production"
