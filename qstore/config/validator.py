"""配置 Schema 验证器

基于 JSON Schema 验证配置，一次收集所有错误，每条错误带有配置项的点号路径
"""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional

from jsonschema import Draft7Validator, SchemaError
from jsonschema.exceptions import ValidationError
from loguru import logger


class ConfigValidationError(Exception):
    """配置验证错误

    errors 中每一项形如 "backup.compression_level: 12 is greater than the maximum of 9"
    """

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.errors = errors or []


class ConfigValidator:
    """配置验证器

    按名称注册 Schema，注册时检查 Schema 本身是否合法
    """

    def __init__(self):
        self._validators: Dict[str, Draft7Validator] = {}

    def load_schema_from_file(self, schema_path: str) -> dict:
        """从文件加载 Schema

        Raises:
            ConfigValidationError: 文件不存在或不是 JSON
        """
        schema_file = Path(schema_path)
        if not schema_file.is_file():
            raise ConfigValidationError(f"Schema 文件不存在: {schema_path}")

        try:
            schema = json.loads(schema_file.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise ConfigValidationError(f"Schema JSON 解析失败: {e}") from e
        except OSError as e:
            raise ConfigValidationError(f"读取 Schema 失败: {e}") from e

        logger.debug(f"已加载 Schema: {schema_path}")
        return schema

    def register_schema(self, name: str, schema: dict) -> None:
        """注册 Schema

        Raises:
            ConfigValidationError: Schema 本身不合法
        """
        try:
            Draft7Validator.check_schema(schema)
        except SchemaError as e:
            raise ConfigValidationError(f"Schema 无效: {name}", errors=[e.message]) from e

        self._validators[name] = Draft7Validator(schema)
        logger.debug(f"已注册 Schema: {name}")

    def register_schema_from_file(self, name: str, schema_path: str) -> None:
        self.register_schema(name, self.load_schema_from_file(schema_path))

    def _validator_for(self, schema_name: str) -> Draft7Validator:
        if schema_name not in self._validators:
            raise ConfigValidationError(f"Schema 不存在: {schema_name}")
        return self._validators[schema_name]

    def validate(self, config: dict, schema_name: str) -> bool:
        """验证整个配置

        Returns:
            验证通过时为 True

        Raises:
            ConfigValidationError: 验证失败，errors 包含全部错误
        """
        errors = self._collect(self._validator_for(schema_name), config)
        if errors:
            raise ConfigValidationError(f"配置验证失败: {schema_name}", errors=errors)

        logger.debug(f"配置验证通过: {schema_name}")
        return True

    def validate_value(self, value: Any, schema_name: str, property_path: str) -> bool:
        """验证单个配置值

        Args:
            value: 配置值
            schema_name: Schema 名称
            property_path: 点号路径，如 "backup.compression_level"

        Raises:
            ConfigValidationError: 验证失败
        """
        validator = self._validator_for(schema_name)
        target_schema = self._navigate_schema(validator.schema, property_path)
        if target_schema is None:
            # 未声明的配置项不做限制
            return True

        errors = self._collect(Draft7Validator(target_schema), value, prefix=property_path)
        if errors:
            raise ConfigValidationError(f"配置值验证失败: {property_path}", errors=errors)
        return True

    def _navigate_schema(self, schema: dict, property_path: str) -> Optional[dict]:
        """沿 properties 找到点号路径对应的子 Schema"""
        current: Optional[dict] = schema
        for part in property_path.split("."):
            properties = (current or {}).get("properties", {})
            if part not in properties:
                return None
            current = properties[part]
        return current

    def _collect(self, validator: Draft7Validator, instance: Any, prefix: str = "") -> List[str]:
        """收集全部错误，按配置路径排序"""
        found = sorted(validator.iter_errors(instance), key=lambda e: list(map(str, e.path)))
        return [self._format_validation_error(e, prefix) for e in found]

    def _format_validation_error(self, error: ValidationError, prefix: str = "") -> str:
        parts = [prefix] if prefix else []
        parts.extend(str(p) for p in error.path)
        location = ".".join(parts) or "<root>"
        return f"{location}: {error.message}"

    def get_schema(self, name: str) -> Optional[dict]:
        validator = self._validators.get(name)
        return validator.schema if validator else None

    def list_schemas(self) -> List[str]:
        return list(self._validators.keys())


_global_validator: Optional[ConfigValidator] = None


def get_validator() -> ConfigValidator:
    """获取全局配置验证器实例"""
    global _global_validator
    if _global_validator is None:
        _global_validator = ConfigValidator()
    return _global_validator


__all__ = [
    "ConfigValidationError",
    "ConfigValidator",
    "get_validator",
]
