"""Common utilities for h3sign."""

from h3sign.common.settings import Settings, get_settings

__all__ = [
    "Settings",
    "get_settings",
]
