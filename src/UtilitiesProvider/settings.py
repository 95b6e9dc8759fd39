# === NAVMAP v1 ===
# {
#   "module": "UtilitiesProvider.settings",
#   "purpose": "Pydantic configuration models, environment overrides, and the cached provider settings",
#   "sections": [
#     {"id": "constants", "name": "Defaults & Constants", "anchor": "CON", "kind": "constants"},
#     {"id": "models", "name": "Configuration Models", "anchor": "MOD", "kind": "api"},
#     {"id": "env", "name": "Environment Overrides", "anchor": "ENV", "kind": "api"},
#     {"id": "cache", "name": "Settings Cache", "anchor": "CAC", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Configuration models for the utilities provider.

Settings are grouped by concern (HTTP transport, retries, logging, directory
safety, bcrypt) as Pydantic models so every value is validated when the
provider starts.  Process-wide defaults come from :func:`get_settings`, which
layers the ``UTILITIES_*`` environment variables (plus the historical
``HTTP_REQ_RETRY_MODE`` and ``TF_STATE`` switches) on top of the model
defaults and memoises the result.
"""

from __future__ import annotations

import hashlib
import json
import logging
import threading
from pathlib import Path
from typing import Optional, Tuple

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

__all__ = [
    "DEFAULT_PROTECTED_PATHS",
    "HttpSettings",
    "RetrySettings",
    "LoggingSettings",
    "DirectorySettings",
    "BcryptSettings",
    "ProviderSettings",
    "EnvironmentOverrides",
    "get_settings",
    "invalidate_settings_cache",
]

# ============================================================================
# DEFAULTS & CONSTANTS
# ============================================================================

DEFAULT_PROTECTED_PATHS: Tuple[str, ...] = (
    "/",
    "/etc",
    "/usr",
    "/var/lib",
    "/bin",
    "/sbin",
    "/boot",
    "/proc",
    "/sys",
    "/dev",
    "/lib",
    "/opt",
    "/tmp",
    "/var/run",
    "/var/lock",
    "/var/cache",
    "/var/log",
    "/home",
    "/root",
    "/mnt",
    "/media",
    "/srv",
    "/var/spool",
    "/var/tmp",
    "/libexec",
)

DEFAULT_USER_AGENT = "utilities-provider/0.1"


# ============================================================================
# CONFIGURATION MODELS
# ============================================================================


class HttpSettings(BaseModel):
    """Transport settings for the shared HTTPX client."""

    connect_timeout_sec: float = Field(default=10.0, gt=0)
    read_timeout_sec: float = Field(default=30.0, gt=0)
    write_timeout_sec: float = Field(default=30.0, gt=0)
    pool_timeout_sec: float = Field(default=10.0, gt=0)
    user_agent: str = Field(default=DEFAULT_USER_AGENT, min_length=1)
    follow_redirects: bool = True
    download_chunk_bytes: int = Field(
        default=1 << 20, gt=0, description="Chunk size used when streaming archive downloads"
    )

    model_config = ConfigDict(frozen=True)


class RetrySettings(BaseModel):
    """Backoff policy applied by the ``http_request`` function."""

    enabled: bool = True
    max_attempts: int = Field(default=5, ge=1, description="Initial request plus retries")
    backoff_base: float = Field(default=1.0, ge=0)
    backoff_max: float = Field(default=30.0, ge=0)
    max_delay_seconds: int = Field(default=120, gt=0)

    model_config = ConfigDict(frozen=True)


class LoggingSettings(BaseModel):
    """Logging-related configuration."""

    level: str = Field(default="INFO", description="Logging level (DEBUG, INFO, WARNING, ERROR)")
    json_logs: bool = False
    log_dir: Optional[Path] = None
    retention_days: int = Field(default=30, ge=1)
    max_log_size_mb: int = Field(default=100, gt=0)

    @field_validator("level")
    @classmethod
    def validate_level(cls, value: str) -> str:
        """Normalise logging levels and ensure they match the supported set."""

        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR"}
        upper = value.upper()
        if upper not in valid_levels:
            raise ValueError(f"level must be one of {valid_levels}")
        return upper

    model_config = ConfigDict(frozen=True)


class DirectorySettings(BaseModel):
    """Safety rails for the ``utilities_local_directory`` resource."""

    protected_paths: Tuple[str, ...] = DEFAULT_PROTECTED_PATHS

    @field_validator("protected_paths")
    @classmethod
    def validate_protected_paths(cls, value: Tuple[str, ...]) -> Tuple[str, ...]:
        cleaned = []
        for item in value:
            if not item.startswith("/"):
                raise ValueError(f"protected path must be absolute: {item!r}")
            cleaned.append(item.rstrip("/") or "/")
        return tuple(cleaned)

    model_config = ConfigDict(frozen=True)


class BcryptSettings(BaseModel):
    """Cost bounds and state lookup for the bcrypt data source."""

    default_cost: int = Field(default=10, ge=4, le=31)
    min_cost: int = Field(default=4, ge=4, le=31)
    max_cost: int = Field(default=31, ge=4, le=31)
    state_file: Optional[Path] = None

    model_config = ConfigDict(frozen=True)


class ProviderSettings(BaseModel):
    """Aggregated provider configuration."""

    http: HttpSettings = Field(default_factory=HttpSettings)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    directory: DirectorySettings = Field(default_factory=DirectorySettings)
    bcrypt: BcryptSettings = Field(default_factory=BcryptSettings)

    model_config = ConfigDict(frozen=True)

    def config_hash(self) -> str:
        """Compute a deterministic hash of all configuration for provenance tracking."""

        payload = self.model_dump(mode="json")
        canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]


# ============================================================================
# ENVIRONMENT OVERRIDES
# ============================================================================


class EnvironmentOverrides(BaseSettings):
    """Pydantic settings model exposing environment-derived overrides."""

    log_level: Optional[str] = Field(default=None, alias="UTILITIES_LOG_LEVEL")
    log_dir: Optional[Path] = Field(default=None, alias="UTILITIES_LOG_DIR")
    http_timeout_sec: Optional[float] = Field(default=None, alias="UTILITIES_HTTP_TIMEOUT_SEC")
    retry_max_attempts: Optional[int] = Field(default=None, alias="UTILITIES_RETRY_MAX_ATTEMPTS")
    retry_mode: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("HTTP_REQ_RETRY_MODE", "UTILITIES_RETRY_MODE"),
    )
    tf_state: Optional[Path] = Field(
        default=None, validation_alias=AliasChoices("TF_STATE", "UTILITIES_TF_STATE")
    )

    model_config = SettingsConfigDict(
        env_prefix="UTILITIES_", case_sensitive=False, extra="ignore", populate_by_name=True
    )

    @property
    def retries_enabled(self) -> Optional[bool]:
        if self.retry_mode is None:
            return None
        return self.retry_mode.strip().lower() != "false"


def _apply_env_overrides(settings: ProviderSettings) -> ProviderSettings:
    """Return ``settings`` with values from :class:`EnvironmentOverrides` layered on top."""

    env = EnvironmentOverrides()
    logger = logging.getLogger("UtilitiesProvider")
    updates = {}

    logging_updates = {}
    if env.log_level is not None:
        logging_updates["level"] = env.log_level
        logger.info("Config overridden: log_level=%s", env.log_level, extra={"stage": "config"})
    if env.log_dir is not None:
        logging_updates["log_dir"] = env.log_dir
        logger.info("Config overridden: log_dir=%s", env.log_dir, extra={"stage": "config"})
    if logging_updates:
        merged = settings.logging.model_dump()
        merged.update(logging_updates)
        updates["logging"] = LoggingSettings.model_validate(merged)

    if env.http_timeout_sec is not None:
        merged = settings.http.model_dump()
        merged["read_timeout_sec"] = env.http_timeout_sec
        merged["write_timeout_sec"] = env.http_timeout_sec
        updates["http"] = HttpSettings.model_validate(merged)
        logger.info(
            "Config overridden: http_timeout_sec=%s",
            env.http_timeout_sec,
            extra={"stage": "config"},
        )

    retry_updates = {}
    if env.retry_max_attempts is not None:
        retry_updates["max_attempts"] = env.retry_max_attempts
        logger.info(
            "Config overridden: retry_max_attempts=%s",
            env.retry_max_attempts,
            extra={"stage": "config"},
        )
    if env.retries_enabled is not None:
        retry_updates["enabled"] = env.retries_enabled
        logger.info(
            "Config overridden: retries enabled=%s", env.retries_enabled, extra={"stage": "config"}
        )
    if retry_updates:
        merged = settings.retry.model_dump()
        merged.update(retry_updates)
        updates["retry"] = RetrySettings.model_validate(merged)

    if env.tf_state is not None:
        merged = settings.bcrypt.model_dump()
        merged["state_file"] = env.tf_state
        updates["bcrypt"] = BcryptSettings.model_validate(merged)

    if not updates:
        return settings
    return settings.model_copy(update=updates)


# ============================================================================
# SETTINGS CACHE
# ============================================================================

_SETTINGS_LOCK = threading.RLock()
_SETTINGS_CACHE: Optional[ProviderSettings] = None


def get_settings() -> ProviderSettings:
    """Return a memoised :class:`ProviderSettings` with environment overrides applied."""

    global _SETTINGS_CACHE  # noqa: PLW0603

    with _SETTINGS_LOCK:
        if _SETTINGS_CACHE is None:
            _SETTINGS_CACHE = _apply_env_overrides(ProviderSettings())
        return _SETTINGS_CACHE


def invalidate_settings_cache() -> None:
    """Invalidate the cached provider settings."""

    global _SETTINGS_CACHE  # noqa: PLW0603

    with _SETTINGS_LOCK:
        _SETTINGS_CACHE = None
