"""Runtime settings for keel."""

from keel.core.config.settings import KeelSettings, clear_settings_cache, get_settings

__all__ = ["KeelSettings", "get_settings", "clear_settings_cache"]
