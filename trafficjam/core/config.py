"""Configuration using Pydantic Settings.

Settings are read from ``TRAFFICJAM_*`` environment variables. A
``.env.{environment}`` file is only read when asked for explicitly::

    cfg = load_settings(env_file_for())

``env_file_for`` picks the file named by TRAFFICJAM_ENV (development, testing,
staging or production) in the working directory. Variables already set in the
process take precedence over the file, and the file never modifies
``os.environ``.

Limits are declared as JSON in TRAFFICJAM_LIMITS, for example::

    TRAFFICJAM_LIMITS='{"login": {"max": 5, "period": 60}}'
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_ENV = "development"

ENV_FILE_MAP = {
    "development": ".env.development",
    "testing": ".env.testing",
    "staging": ".env.staging",
    "production": ".env.production",
}

# MD5 digests are 16 bytes: 22 meaningful base64 characters before padding.
MAX_HASH_LENGTH = 22


class LimitRule(BaseModel):
    """Quota declared for one action: ``max`` units per ``period`` seconds."""

    max: float = Field(..., ge=0, description="Quota capacity (0 denies any consumption)")
    period: int = Field(..., gt=0, description="Window length in whole seconds")

    model_config = ConfigDict(frozen=True)


class KeySettings(BaseSettings):
    """Namespacing and truncation of derived store keys."""

    prefix: str = Field(
        "tj",
        min_length=1,
        description="Prefix prepended to every derived key",
    )
    hash_length: int = Field(
        12,
        ge=1,
        le=MAX_HASH_LENGTH,
        description="Number of base64 digest characters kept from the subject hash",
    )

    model_config = SettingsConfigDict(
        env_prefix="TRAFFICJAM_KEY_",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )


class StoreSettings(BaseSettings):
    """Shared store configuration."""

    backend: Literal["redis", "memory"] = Field(
        "redis",
        description="Store backend (redis for shared state, memory for a single process)",
    )
    redis_url: str = Field(
        "redis://localhost:6379/0",
        description="Redis connection URL",
    )
    socket_timeout_seconds: float | None = Field(
        5.0,
        description="Redis socket timeout in seconds (None disables it)",
    )
    max_attempts: int = Field(
        10,
        ge=1,
        description="Read/compute/write attempts before a conflicting update gives up",
    )

    model_config = SettingsConfigDict(
        env_prefix="TRAFFICJAM_STORE_",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )


class LogSettings(BaseSettings):
    """Logging configuration."""

    level: str = Field("INFO", description="Level of the trafficjam logger")
    format: Literal["json", "plain"] = Field("json", description="Log line format")

    model_config = SettingsConfigDict(
        env_prefix="TRAFFICJAM_LOG_",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )


def _build_key_settings() -> KeySettings:
    return KeySettings()


def _build_store_settings() -> StoreSettings:
    return StoreSettings()


def _build_log_settings() -> LogSettings:
    return LogSettings()


class Settings(BaseSettings):
    """Main settings container.

    Raises validation errors on creation if a setting is malformed.
    """

    env: str = Field(DEFAULT_ENV, description="Deployment environment name")
    key: KeySettings = Field(default_factory=_build_key_settings)
    store: StoreSettings = Field(default_factory=_build_store_settings)
    log: LogSettings = Field(default_factory=_build_log_settings)
    limits: dict[str, LimitRule] = Field(
        default_factory=dict,
        description="Action name to quota rule",
    )

    model_config = SettingsConfigDict(
        env_prefix="TRAFFICJAM_",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )


# Nested settings are created via default_factory so env loading works.
settings = Settings()


def env_file_for(env: str | None = None, directory: str | Path = ".") -> Path | None:
    """Return the ``.env`` file of ``env`` in ``directory`` if it exists.

    ``env`` defaults to TRAFFICJAM_ENV; unknown names fall back to development.
    """

    name = env or os.getenv("TRAFFICJAM_ENV", DEFAULT_ENV)
    path = Path(directory) / ENV_FILE_MAP.get(name, ENV_FILE_MAP[DEFAULT_ENV])
    return path if path.is_file() else None


def load_settings(env_file: str | Path | None = None) -> Settings:
    """Build settings from the environment, plus ``env_file`` when given.

    Nested settings don't inherit ``env_file`` from the container, so each one
    reads the file itself.
    """

    if env_file is None:
        return Settings()
    return Settings(
        key=KeySettings(_env_file=env_file),
        store=StoreSettings(_env_file=env_file),
        log=LogSettings(_env_file=env_file),
        _env_file=env_file,
    )
