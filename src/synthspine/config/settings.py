"""
Centralized settings for the synthesis engine.

Manifesto:
    One validated, cached settings object replaces per-component knobs
    parsed ad-hoc from the environment. Window sizes, lookup budgets and
    sweep cadence are read once, validated by pydantic, and handed to the
    components that need them.

All fields can be set via ``SYNTH_*`` environment variables (e.g.
``SYNTH_LOOKUP_TIMEOUT_SECONDS=0.5``) or a ``.env`` file.

Tags:
    configuration, settings, pydantic, caching, validation
"""

from __future__ import annotations

from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class SynthesisSettings(BaseSettings):
    """Synthesis engine configuration."""

    model_config = SettingsConfigDict(
        env_prefix="SYNTH_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Rules ────────────────────────────────────────────────────
    rules_dir: Path = Field(default=Path("rules"), description="Directory of rule YAML files")

    # ── Logging ──────────────────────────────────────────────────
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="console")

    # ── Deduplication ────────────────────────────────────────────
    dedup_short_window_seconds: int = Field(default=60, ge=1)
    dedup_medium_window_seconds: int = Field(default=300, ge=1)
    dedup_long_window_seconds: int = Field(default=3600, ge=1)
    dedup_bucket_ms: int = Field(default=1000, ge=1, description="Event-time bucket granularity")
    dedup_max_entries: int = Field(default=100_000, ge=1, description="Per-window capacity")
    dedup_shards: int = Field(default=16, ge=1)

    # ── Relationships / lookups ──────────────────────────────────
    lookup_timeout_seconds: float = Field(default=2.0, gt=0)
    lookup_max_attempts: int = Field(default=3, ge=1)
    validation_max_attempts: int = Field(default=5, ge=1)

    # ── Background work ──────────────────────────────────────────
    sweep_interval_seconds: float = Field(default=30.0, gt=0)
    worker_shards: int = Field(default=4, ge=1)

    @model_validator(mode="after")
    def _validate_windows(self) -> SynthesisSettings:
        """Dedup windows must grow from short to long."""
        if not (
            self.dedup_short_window_seconds
            <= self.dedup_medium_window_seconds
            <= self.dedup_long_window_seconds
        ):
            raise ValueError("dedup windows must satisfy short <= medium <= long")
        return self


# ── Settings factory with caching ────────────────────────────────────────

_settings_cache: dict[str, SynthesisSettings] = {}


def get_settings(*, _force_reload: bool = False) -> SynthesisSettings:
    """Load, validate, and cache a :class:`SynthesisSettings` instance."""
    if not _force_reload and "default" in _settings_cache:
        return _settings_cache["default"]
    settings = SynthesisSettings()
    _settings_cache["default"] = settings
    return settings


def clear_settings_cache() -> None:
    """Drop the cached settings (tests, reconfiguration)."""
    _settings_cache.clear()
