"""通用工具模块

提供项目中常用的辅助函数和工具类。
"""

from .helpers import (
    utc_now,
    utc_timestamp_iso,
    get_formatted_timestamp,
)

from .file_handler import JsonFileHandler

from .path_utils import (
    ensure_path,
    ensure_dir,
    is_safe_relative_path,
    format_size,
)

__all__ = [
    "utc_now",
    "utc_timestamp_iso",
    "get_formatted_timestamp",
    "JsonFileHandler",
    "ensure_path",
    "ensure_dir",
    "is_safe_relative_path",
    "format_size",
]
