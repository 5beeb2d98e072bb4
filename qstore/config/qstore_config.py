"""QStore 配置类

继承 dict，支持点号访问；加载时补全缺失项并用 JSON Schema 验证
"""

import copy
import json
from pathlib import Path
from typing import Any, Optional

from loguru import logger

from .schema import CONFIG_JSON_SCHEMA, get_default_config
from .validator import ConfigValidator, get_validator

SCHEMA_NAME = "qstore"


class QStoreConfig(dict):
    """QStore 配置类（继承 dict）"""

    def __init__(
        self,
        config_path: Path,
        schema: Optional[dict] = None,
        validator: Optional[ConfigValidator] = None,
    ):
        super().__init__()
        self.config_path = Path(config_path)
        self.schema = schema or CONFIG_JSON_SCHEMA
        self.validator = validator or get_validator()
        self.validator.register_schema(SCHEMA_NAME, self.schema)

        self._initialize_config()

    def _initialize_config(self):
        """初始化配置（加载或创建）"""
        if self.config_path.exists():
            self.load()
            self._check_config_integrity()
        else:
            self.update(get_default_config())
            self.save()
            logger.info(f"已创建配置文件: {self.config_path}")

        self.validate()

    def load(self) -> None:
        """从文件加载配置"""
        try:
            with open(self.config_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            logger.error(f"配置文件格式错误: {e}")
            raise

        self.clear()
        self.update(data)
        logger.debug(f"已加载配置: {self.config_path}")

    def save(self) -> None:
        """保存配置到文件"""
        try:
            self.config_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_path, "w", encoding="utf-8") as f:
                json.dump(dict(self), f, indent=2, ensure_ascii=False)
            logger.debug(f"已保存配置: {self.config_path}")
        except OSError as e:
            logger.error(f"保存配置失败: {e}")
            raise

    def validate(self) -> bool:
        """验证整个配置

        Raises:
            ConfigValidationError: 验证失败
        """
        return self.validator.validate(dict(self), SCHEMA_NAME)

    def _check_config_integrity(self, refer_conf: Optional[dict] = None) -> None:
        """检查配置完整性

        1. 插入缺失的配置项
        2. 按默认配置同步顺序
        3. 有变更时自动保存
        """
        refer_conf = refer_conf or get_default_config()
        has_changes = False

        for key, value in refer_conf.items():
            if key not in self:
                self[key] = copy.deepcopy(value)
                logger.debug(f"插入缺失配置: {key}")
                has_changes = True
            elif isinstance(value, dict):
                current = super().get(key)
                if isinstance(current, dict):
                    for sub_key, sub_value in value.items():
                        if sub_key not in current:
                            current[sub_key] = copy.deepcopy(sub_value)
                            logger.debug(f"插入缺失配置: {key}.{sub_key}")
                            has_changes = True

        ordered_config = {key: self[key] for key in refer_conf if key in self}
        # 保留未知配置（向后兼容）
        for key in self.keys():
            if key not in ordered_config:
                ordered_config[key] = self[key]

        self.clear()
        self.update(ordered_config)

        if has_changes:
            self.save()
            logger.info("配置完整性检查完成，已自动修复")

    def __getattr__(self, key: str) -> Any:
        """支持点号访问"""
        try:
            return self[key]
        except KeyError:
            raise AttributeError(f"'{type(self).__name__}' has no attribute '{key}'")

    def __setattr__(self, key: str, value: Any) -> None:
        """支持点号赋值"""
        if key in ("config_path", "schema", "validator"):
            super().__setattr__(key, value)
        else:
            self[key] = value

    def get(self, key: str, default: Any = None) -> Any:
        """获取嵌套配置值（支持 "backup.max_backups" 格式）"""
        if "." not in key:
            return super().get(key, default)

        parts = key.split(".")
        current = self
        for part in parts[:-1]:
            current = current.get(part, {})
            if not isinstance(current, dict):
                return default
        return current.get(parts[-1], default)

    def set(self, key: str, value: Any, validate: bool = True) -> None:
        """设置嵌套配置值（支持点号路径）

        Raises:
            ConfigValidationError: 值不符合 Schema
        """
        if validate:
            self.validator.validate_value(value, SCHEMA_NAME, key)

        if "." not in key:
            self[key] = value
            return

        parts = key.split(".")
        current = self
        for part in parts[:-1]:
            if part not in current:
                current[part] = {}
            current = current[part]
        current[parts[-1]] = value


__all__ = ["QStoreConfig"]
