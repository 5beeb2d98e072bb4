"""存储协作者

备份引擎使用的实体存储、图片存储和设置存储
"""

from .base import (
    EntityKind,
    EntityStore,
    AssetStore,
    SettingsStore,
)
from .sqlite_store import SQLiteEntityStore
from .asset_store import FileAssetStore
from .settings_store import (
    JsonSettingsStore,
    DEFAULT_DISPLAY_SETTINGS,
    RECOGNITION_PRESETS,
    DEFAULT_PRESET,
)

__all__ = [
    "EntityKind",
    "EntityStore",
    "AssetStore",
    "SettingsStore",
    "SQLiteEntityStore",
    "FileAssetStore",
    "JsonSettingsStore",
    "DEFAULT_DISPLAY_SETTINGS",
    "RECOGNITION_PRESETS",
    "DEFAULT_PRESET",
]
