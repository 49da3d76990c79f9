"""Engine configuration: validated settings loaded from ``SYNTH_*`` env vars."""

from .settings import SynthesisSettings, clear_settings_cache, get_settings

__all__ = ["SynthesisSettings", "get_settings", "clear_settings_cache"]
