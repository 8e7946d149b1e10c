"""Centralized settings for spotcheck.

All tunables of the resilience layer (retry policy defaults, circuit breaker
thresholds, cache TTL, diagnostics capacity, verification radius) live in one
validated, cached ``SpotcheckSettings`` object.

Manifesto:
    Configuration should be explicit, validated, and environment-driven.

    - **Pydantic validation:** Type-checked at startup, not at first retry
    - **Environment-driven:** ``SPOTCHECK_*`` env vars and ``.env`` files
    - **Sensible defaults:** Works out of the box on a device or in tests

Examples:
    >>> import os
    >>> os.environ["SPOTCHECK_RETRY_MAX_ATTEMPTS"] = "5"
    >>> get_settings(_force_reload=True).retry_max_attempts
    5

Tags:
    settings, configuration, pydantic, environment, spotcheck
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class SpotcheckSettings(BaseSettings):
    """Spotcheck configuration.

    Fields
    ──────
    log_level                  : Structlog log level
    log_format                 : ``json`` or ``console``
    data_dir                   : Directory for the durable key-value store
    retry_*                    : Default ``RetryPolicy`` values (seconds)
    breaker_*                  : Default circuit breaker thresholds
    cache_ttl_seconds          : Last-known-good cache lifetime
    diagnostics_capacity       : Size of the recent-errors ring buffer
    verification_radius_meters : Default check-in radius
    """

    model_config = SettingsConfigDict(
        env_prefix="SPOTCHECK_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Observability ────────────────────────────────────────────
    log_level: str = Field(default="INFO")
    log_format: Literal["json", "console"] = Field(default="json")

    # ── Storage ──────────────────────────────────────────────────
    data_dir: Path = Field(
        default_factory=lambda: Path.home() / ".spotcheck",
        description="Directory holding the durable key-value store",
    )

    # ── Retry ────────────────────────────────────────────────────
    retry_max_attempts: int = Field(default=3, ge=1)
    retry_base_delay: float = Field(default=1.0, ge=0)
    retry_max_delay: float = Field(default=10.0, ge=0)
    retry_backoff_multiplier: float = Field(default=2.0)

    # ── Circuit breaker ──────────────────────────────────────────
    breaker_failure_threshold: int = Field(default=5, ge=1)
    breaker_reset_timeout: float = Field(default=60.0, ge=0)

    # ── Degradation / diagnostics ────────────────────────────────
    cache_ttl_seconds: float = Field(default=24 * 60 * 60, gt=0)
    diagnostics_capacity: int = Field(default=100, ge=1)

    # ── Location ─────────────────────────────────────────────────
    verification_radius_meters: float = Field(default=100.0, gt=0)

    @field_validator("retry_backoff_multiplier")
    @classmethod
    def _multiplier_above_one(cls, value: float) -> float:
        if value <= 1:
            raise ValueError("retry_backoff_multiplier must be greater than 1")
        return value

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        return value.upper()

    @property
    def store_path(self) -> Path:
        return self.data_dir / "spotcheck.db"


_settings_cache: dict[str, SpotcheckSettings] = {}


def get_settings(*, _force_reload: bool = False) -> SpotcheckSettings:
    """Load, validate, and cache a :class:`SpotcheckSettings` instance."""
    if _force_reload or "default" not in _settings_cache:
        _settings_cache["default"] = SpotcheckSettings()
    return _settings_cache["default"]


def clear_settings_cache() -> None:
    """Forget the cached settings (tests)."""
    _settings_cache.clear()


__all__ = ["SpotcheckSettings", "clear_settings_cache", "get_settings"]
