"""Tests for synthspine.config.settings."""

import pytest
from pydantic import ValidationError

from synthspine.config.settings import SynthesisSettings, clear_settings_cache, get_settings


class TestSynthesisSettings:
    """Tests for SynthesisSettings."""

    def test_defaults(self):
        settings = SynthesisSettings(_env_file=None)
        assert settings.dedup_short_window_seconds == 60
        assert settings.dedup_medium_window_seconds == 300
        assert settings.dedup_long_window_seconds == 3600
        assert settings.lookup_max_attempts == 3
        assert settings.validation_max_attempts == 5

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("SYNTH_LOOKUP_TIMEOUT_SECONDS", "0.5")
        monkeypatch.setenv("SYNTH_DEDUP_SHARDS", "4")
        settings = SynthesisSettings(_env_file=None)
        assert settings.lookup_timeout_seconds == 0.5
        assert settings.dedup_shards == 4

    def test_window_order(self):
        with pytest.raises(ValidationError, match="short <= medium <= long"):
            SynthesisSettings(_env_file=None, dedup_short_window_seconds=600)

    def test_positive_timeout(self):
        with pytest.raises(ValidationError):
            SynthesisSettings(_env_file=None, lookup_timeout_seconds=0)


class TestGetSettings:
    """Tests for the cached settings factory."""

    def test_cached(self):
        assert get_settings() is get_settings()

    def test_reload(self, monkeypatch):
        first = get_settings()
        monkeypatch.setenv("SYNTH_WORKER_SHARDS", "9")
        assert get_settings() is first
        clear_settings_cache()
        assert get_settings().worker_shards == 9
        assert get_settings(_force_reload=True) is not first
