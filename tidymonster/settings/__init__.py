"""
Settings — persisted operator configuration.

Public API:
    KeyValueStore, JsonFileStore, EnvironmentOverride, InMemoryCache — stores
    open_settings_store — the standard store stack
    TidySettings — validated settings model
    load_settings, save_setting, save_settings — typed access to a store
"""

from .errors import SettingsError, InvalidSettingError
from .store import (
    KeyValueStore,
    JsonFileStore,
    EnvironmentOverride,
    InMemoryCache,
    default_config_path,
    open_settings_store,
)
from .models import (
    SETTING_KEYS,
    ShortcutFilter,
    TidySettings,
    load_settings,
    save_setting,
    save_settings,
)

__all__ = [
    # Errors
    "SettingsError",
    "InvalidSettingError",
    # Stores
    "KeyValueStore",
    "JsonFileStore",
    "EnvironmentOverride",
    "InMemoryCache",
    "default_config_path",
    "open_settings_store",
    # Models
    "SETTING_KEYS",
    "ShortcutFilter",
    "TidySettings",
    "load_settings",
    "save_setting",
    "save_settings",
]
