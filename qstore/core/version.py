"""版本信息

应用版本、构建号以及持久化存储的 Schema 版本
"""

import platform

APP_VERSION = "1.4.0"
"""应用版本"""

APP_VERSION_CODE = 14
"""应用构建号"""

SCHEMA_VERSION = 3
"""持久化存储 Schema 版本，恢复时与备份中的 dbVersion 比较"""


def get_device_info() -> str:
    """获取设备描述（仅用于展示，不做校验）"""
    return f"{platform.system()} {platform.machine()}".strip()


def get_version_info() -> dict:
    """获取版本信息

    Returns:
        版本信息字典
    """
    return {
        "version": APP_VERSION,
        "version_code": APP_VERSION_CODE,
        "schema_version": SCHEMA_VERSION,
        "python": platform.python_version(),
    }


__all__ = [
    "APP_VERSION",
    "APP_VERSION_CODE",
    "SCHEMA_VERSION",
    "get_device_info",
    "get_version_info",
]
