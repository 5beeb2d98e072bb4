"""QStore 配置管理

提供配置 Schema、验证器和配置类
"""

from .schema import CONFIG_SCHEMA, CONFIG_JSON_SCHEMA, get_default_config, to_json_schema
from .validator import ConfigValidationError, ConfigValidator, get_validator
from .qstore_config import QStoreConfig

__all__ = [
    "CONFIG_SCHEMA",
    "CONFIG_JSON_SCHEMA",
    "get_default_config",
    "to_json_schema",
    "ConfigValidationError",
    "ConfigValidator",
    "get_validator",
    "QStoreConfig",
]
