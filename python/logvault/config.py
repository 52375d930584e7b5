"""Application settings loaded from environment variables.

Environment Configuration:
    LOGVAULT_ENV: Deployment environment (local | test | staging | prod)
    DATABASE_URL: SQLAlchemy connection string (required)
    LOGVAULT_XMPP_HOST: Host qualifier appended to shard and stats table names (required)
    LOGVAULT_INTERNAL_SECRET: Internal API secret (required in staging/prod)

Archive Configuration:
    LOGVAULT_MESSAGES_PREFIX: Message shard table prefix (default "logdb_messages_")
    LOGVAULT_SEARCH_SHARD_LIMIT: Max rows scanned per shard during search (default 10000)
    LOGVAULT_SEARCH_RESULT_LIMIT: Max rows presented per search (default 100)
    LOGVAULT_RESTORE_COMPENSATION: Re-mark shard rows when a restore rolls back (default true)

Logging Configuration:
    LOGVAULT_LOG_JSON: Emit JSON logs (default true); console renderer otherwise
"""

import re
from enum import Enum
from functools import lru_cache
from typing import Annotated

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings

# Shard names embed the host verbatim, so keep it to identifier-safe characters
HOST_PATTERN = re.compile(r"^[A-Za-z0-9._-]{1,64}$")


class Environment(str, Enum):
    """Valid deployment environments."""

    LOCAL = "local"
    TEST = "test"
    STAGING = "staging"
    PROD = "prod"


class Settings(BaseSettings):
    """Application configuration.

    Settings are loaded from environment variables.
    Validation rules:
    - DATABASE_URL and LOGVAULT_XMPP_HOST are always required
    - LOGVAULT_SEARCH_RESULT_LIMIT may not exceed LOGVAULT_SEARCH_SHARD_LIMIT
    - LOGVAULT_INTERNAL_SECRET is required in staging and prod only
    """

    logvault_env: Environment = Field(default=Environment.LOCAL, alias="LOGVAULT_ENV")
    database_url: Annotated[str, Field(alias="DATABASE_URL")]
    xmpp_host: Annotated[str, Field(alias="LOGVAULT_XMPP_HOST")]
    internal_secret: str | None = Field(default=None, alias="LOGVAULT_INTERNAL_SECRET")

    # Archive layout
    messages_prefix: str = Field(default="logdb_messages_", alias="LOGVAULT_MESSAGES_PREFIX")

    # Search caps: raw per-shard scan vs. final presentation
    search_shard_limit: int = Field(default=10_000, alias="LOGVAULT_SEARCH_SHARD_LIMIT", ge=1)
    search_result_limit: int = Field(default=100, alias="LOGVAULT_SEARCH_RESULT_LIMIT", ge=1)

    restore_compensation: bool = Field(default=True, alias="LOGVAULT_RESTORE_COMPENSATION")

    log_json: bool = Field(default=True, alias="LOGVAULT_LOG_JSON")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
        "populate_by_name": True,
    }

    @field_validator("xmpp_host")
    @classmethod
    def validate_xmpp_host(cls, value: str) -> str:
        if not HOST_PATTERN.match(value):
            raise ValueError(
                "LOGVAULT_XMPP_HOST may only contain letters, digits, '.', '_' and '-'"
            )
        return value

    @model_validator(mode="after")
    def validate_required_settings(self) -> "Settings":
        """Cross-field checks."""
        if self.search_result_limit > self.search_shard_limit:
            raise ValueError(
                "LOGVAULT_SEARCH_RESULT_LIMIT must not exceed LOGVAULT_SEARCH_SHARD_LIMIT"
            )

        if self.logvault_env in (Environment.STAGING, Environment.PROD):
            if not self.internal_secret:
                raise ValueError(
                    "LOGVAULT_INTERNAL_SECRET is required for "
                    f"LOGVAULT_ENV={self.logvault_env.value}"
                )

        return self

    @property
    def requires_internal_header(self) -> bool:
        """Whether requests must include the internal secret header."""
        return self.logvault_env in (Environment.STAGING, Environment.PROD)


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings.

    Returns:
        Settings instance loaded from environment.

    Raises:
        ValidationError: If required settings are missing or invalid.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache. Useful for testing."""
    get_settings.cache_clear()
