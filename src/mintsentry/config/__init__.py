"""Configuration module for mintsentry.

Usage:
    from mintsentry.config import get_settings

    settings = get_settings()  # Cached singleton
    print(settings.app_name)
"""

from mintsentry.config.settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]
