"""JSON 设置存储

显示设置、识别参数和当前预设分别保存在设置目录下的 JSON 文件中
"""

import copy
from pathlib import Path
from typing import Any, Dict, Optional, Union

from loguru import logger

from ..common.file_handler import JsonFileHandler
from .base import SettingsStore


DISPLAY_SETTINGS_FILE = "display_settings.json"
RECOGNITION_SETTINGS_FILE = "recognition_settings.json"
PRESET_FILE = "recognition_preset.json"

DEFAULT_DISPLAY_SETTINGS: Dict[str, Any] = {
    "article_card_style": "COMPACT",
    "show_stock_indicators": True,
    "show_article_images": True,
    "grid_columns": 1,
}

RECOGNITION_PRESETS: Dict[str, Dict[str, Any]] = {
    "precise": {
        "lowe_ratio_threshold": 0.65,
        "absolute_distance_threshold": 220.0,
        "min_features": 30,
        "match_ratio_weight": 0.4,
        "density_weight": 0.2,
        "distance_quality_weight": 0.25,
        "consistency_weight": 0.15,
        "default_matching_threshold": 0.75,
        "min_features_for_validation": 80,
        "ideal_features_for_validation": 300,
    },
    "balanced": {
        "lowe_ratio_threshold": 0.75,
        "absolute_distance_threshold": 280.0,
        "min_features": 20,
        "match_ratio_weight": 0.4,
        "density_weight": 0.2,
        "distance_quality_weight": 0.2,
        "consistency_weight": 0.2,
        "default_matching_threshold": 0.6,
        "min_features_for_validation": 50,
        "ideal_features_for_validation": 200,
    },
    "fast": {
        "lowe_ratio_threshold": 0.8,
        "absolute_distance_threshold": 320.0,
        "min_features": 10,
        "match_ratio_weight": 0.5,
        "density_weight": 0.2,
        "distance_quality_weight": 0.15,
        "consistency_weight": 0.15,
        "default_matching_threshold": 0.5,
        "min_features_for_validation": 30,
        "ideal_features_for_validation": 120,
    },
}

DEFAULT_PRESET = "balanced"


class JsonSettingsStore(SettingsStore):
    """基于 JSON 文件的设置存储"""

    def __init__(self, settings_dir: Union[str, Path]):
        self.files = JsonFileHandler(settings_dir)

    def get_display_settings(self) -> Dict[str, Any]:
        settings = copy.deepcopy(DEFAULT_DISPLAY_SETTINGS)
        settings.update(self.files.load(DISPLAY_SETTINGS_FILE, {}) or {})
        return settings

    def set_display_settings(self, settings: Dict[str, Any]) -> None:
        columns = settings.get("grid_columns", 1)
        if not 1 <= int(columns) <= 3:
            raise ValueError(f"列数必须在 1-3 之间: {columns}")
        self.files.save(DISPLAY_SETTINGS_FILE, dict(settings))

    def get_recognition_settings(self) -> Dict[str, Any]:
        settings = copy.deepcopy(RECOGNITION_PRESETS[DEFAULT_PRESET])
        settings.update(self.files.load(RECOGNITION_SETTINGS_FILE, {}) or {})
        return settings

    def set_recognition_settings(self, settings: Dict[str, Any]) -> None:
        """保存自定义识别参数（清除当前预设标记）"""
        self.files.save(RECOGNITION_SETTINGS_FILE, dict(settings))
        self.files.delete(PRESET_FILE)

    def get_current_preset(self) -> Optional[str]:
        data = self.files.load(PRESET_FILE, {}) or {}
        return data.get("name")

    def apply_preset(self, name: str) -> None:
        if name not in RECOGNITION_PRESETS:
            raise ValueError(f"未知的识别预设: {name}")
        self.files.save(RECOGNITION_SETTINGS_FILE, RECOGNITION_PRESETS[name])
        self.files.save(PRESET_FILE, {"name": name})
        logger.info(f"已应用识别预设: {name}")


__all__ = [
    "JsonSettingsStore",
    "DEFAULT_DISPLAY_SETTINGS",
    "RECOGNITION_PRESETS",
    "DEFAULT_PRESET",
]
