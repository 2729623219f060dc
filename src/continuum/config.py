"""Continuum Configuration Module.

Provides centralized configuration for the migration engine and CLI.
All settings support environment variable overrides with CONTINUUM_ prefix.
The cluster URL also honours the bare COUCH_URL variable.
"""

from pathlib import Path

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Default paths
CONTINUUM_HOME = Path.home() / ".continuum"
CONTINUUM_CHECKPOINT = CONTINUUM_HOME / "checkpoint"


class ContinuumSettings(BaseSettings):
    """Continuum configuration.

    All settings can be overridden via environment variables with CONTINUUM_
    prefix. For example, CONTINUUM_SETTLE_SECONDS=0 disables the pause after
    a primary is recreated.
    """

    model_config = SettingsConfigDict(
        env_prefix="CONTINUUM_",
        env_nested_delimiter="__",
    )

    couch_url: str = Field(
        default="http://localhost:5984",
        validation_alias=AliasChoices("couch_url", "CONTINUUM_COUCH_URL", "COUCH_URL"),
        description="Root URL of the CouchDB cluster to act upon",
    )

    # Paths
    home: Path = Field(
        default=CONTINUUM_HOME,
        description="Base directory for Continuum state",
    )
    checkpoint_path: Path = Field(
        default=CONTINUUM_CHECKPOINT,
        description="File holding the last database migrated by migrate-all",
    )

    # Timing
    interval: int = Field(
        default=1000,
        ge=1,
        description="Milliseconds between replication progress checks",
    )
    settle_seconds: float = Field(
        default=15.0,
        ge=0,
        description="Pause after recreating a primary so cluster metadata settles",
    )
    replication_timeout: float | None = Field(
        default=None,
        description="Seconds to wait for a replication to catch up (None waits forever)",
    )
    request_timeout: float | None = Field(
        default=None,
        description="HTTP timeout in seconds; one-shot replications can be slow",
    )

    # Logging
    log_level: str = Field(
        default="warning",
        description="Logging level (debug, info, warning, error)",
    )
    log_format: str = Field(
        default="console",
        description="Log output format (console or json)",
    )


# Global settings instance
settings = ContinuumSettings()
