"""Configuration and constants."""

from techtrend_cache.config.settings import Settings, get_settings, reload_settings

__all__ = ["Settings", "get_settings", "reload_settings"]
