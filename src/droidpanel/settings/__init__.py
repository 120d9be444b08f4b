"""
User settings persistence for the droidpanel package.
"""

from .store import BUILD_TYPES, SETTING_KEYS, Settings, SettingsStore

__all__ = ["BUILD_TYPES", "SETTING_KEYS", "Settings", "SettingsStore"]
