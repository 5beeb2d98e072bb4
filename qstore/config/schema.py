"""QStore 配置 Schema 定义

按分组描述配置项，可转换为 JSON Schema 供验证器使用
"""

import copy

CONFIG_SCHEMA = {
    "app_group": {
        "name": "应用设置",
        "metadata": {
            "app": {
                "type": "object",
                "description": "应用配置",
                "items": {
                    "device_info": {
                        "type": "string",
                        "default": "",
                        "hint": "写入备份元数据的设备描述（留空自动获取）",
                    },
                },
            }
        },
    },
    "storage_group": {
        "name": "存储设置",
        "metadata": {
            "storage": {
                "type": "object",
                "description": "数据存储位置（相对路径相对于数据目录）",
                "items": {
                    "database_path": {
                        "type": "string",
                        "default": "qstore.db",
                        "hint": "SQLite 数据库文件",
                    },
                    "assets_dir": {
                        "type": "string",
                        "default": "images",
                        "hint": "文章图片目录",
                    },
                    "settings_dir": {
                        "type": "string",
                        "default": "settings",
                        "hint": "用户设置目录",
                    },
                },
            }
        },
    },
    "backup_group": {
        "name": "备份设置",
        "metadata": {
            "backup": {
                "type": "object",
                "description": "备份与恢复配置",
                "items": {
                    "output_dir": {
                        "type": "string",
                        "default": "backups",
                        "hint": "默认备份输出目录",
                    },
                    "compression_level": {
                        "type": "int",
                        "default": 6,
                        "validation": {"min": 0, "max": 9},
                        "hint": "ZIP 压缩级别（0-9）",
                    },
                    "include_features": {
                        "type": "bool",
                        "default": True,
                        "hint": "备份图片特征数据",
                    },
                    "verify_checksums": {
                        "type": "bool",
                        "default": True,
                        "hint": "恢复前校验数据块",
                    },
                    "create_backup_before_restore": {
                        "type": "bool",
                        "default": True,
                        "hint": "恢复前自动创建安全备份",
                    },
                    "max_backups": {
                        "type": "int",
                        "default": 10,
                        "validation": {"min": 0},
                        "hint": "保留的最大备份数（0 表示不清理）",
                    },
                },
            }
        },
    },
    "log_group": {
        "name": "日志设置",
        "metadata": {
            "log": {
                "type": "object",
                "description": "日志配置",
                "items": {
                    "level": {
                        "type": "string",
                        "default": "INFO",
                        "options": ["TRACE", "DEBUG", "INFO", "WARNING", "ERROR"],
                        "hint": "日志级别",
                    },
                },
            }
        },
    },
}

_JSON_TYPES = {
    "string": "string",
    "int": "integer",
    "float": "number",
    "bool": "boolean",
    "list": "array",
    "object": "object",
}


def _field_to_json_schema(field: dict) -> dict:
    schema = {"type": _JSON_TYPES[field["type"]]}
    if "options" in field:
        schema["enum"] = list(field["options"])
    validation = field.get("validation", {})
    if "min" in validation:
        schema["minimum"] = validation["min"]
    if "max" in validation:
        schema["maximum"] = validation["max"]
    if "hint" in field:
        schema["description"] = field["hint"]
    return schema


def to_json_schema(config_schema: dict = None) -> dict:
    """把分组 Schema 转换为 JSON Schema"""
    config_schema = config_schema or CONFIG_SCHEMA
    properties = {}
    for group_data in config_schema.values():
        for section_name, section_data in group_data["metadata"].items():
            if section_data["type"] == "object":
                properties[section_name] = {
                    "type": "object",
                    "description": section_data.get("description", ""),
                    "properties": {
                        field_name: _field_to_json_schema(field_data)
                        for field_name, field_data in section_data["items"].items()
                    },
                }
            else:
                properties[section_name] = _field_to_json_schema(section_data)

    return {
        "$schema": "http://json-schema.org/draft-07/schema#",
        "type": "object",
        "properties": properties,
    }


def get_default_config() -> dict:
    """从 Schema 生成默认配置"""
    config = {}
    for group_name, group_data in CONFIG_SCHEMA.items():
        for section_name, section_data in group_data["metadata"].items():
            if section_data["type"] == "object":
                config[section_name] = {
                    field_name: copy.deepcopy(field_data["default"])
                    for field_name, field_data in section_data["items"].items()
                }
            else:
                config[section_name] = section_data["default"]
    return config


CONFIG_JSON_SCHEMA = to_json_schema()
