"""Configuration models and loaders."""

from .models import ConfigError, IngestSettings, load_settings

__all__ = ["ConfigError", "IngestSettings", "load_settings"]
