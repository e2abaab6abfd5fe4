"""Common utilities for dokupay."""

from dokupay.common.settings import Settings, get_settings

__all__ = [
    "Settings",
    "get_settings",
]
