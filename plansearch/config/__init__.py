"""Configuration module -- exports Settings, the loaders, and a module-level singleton."""

from plansearch.config.loader import build_settings, load_config
from plansearch.config.settings import Settings

settings = Settings()

__all__ = ["Settings", "build_settings", "load_config", "settings"]
