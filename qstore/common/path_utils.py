"""路径工具函数

提供路径操作的辅助函数。
"""

from pathlib import Path, PurePosixPath
from typing import Union


def ensure_path(path: Union[str, Path]) -> Path:
    """确保路径的父目录存在

    Args:
        path: 路径

    Returns:
        规范化后的路径对象
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    return path


def ensure_dir(directory: Union[str, Path]) -> Path:
    """确保目录存在

    Args:
        directory: 目录路径

    Returns:
        规范化后的目录路径对象
    """
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)
    return directory


def is_safe_relative_path(path: str) -> bool:
    """判断归档中的相对路径是否安全（非空、非绝对路径、不含 ..）

    Args:
        path: 使用 / 分隔的相对路径

    Returns:
        是否安全
    """
    if not path or "\\" in path:
        return False
    pure = PurePosixPath(path)
    if pure.is_absolute() or ".." in pure.parts:
        return False
    return bool(pure.parts) and pure.parts[0] not in ("", ".")


def format_size(size: float) -> str:
    """格式化文件大小

    Args:
        size: 字节大小

    Returns:
        格式化后的字符串，如 "1.23 MB"
    """
    for unit in ["B", "KB", "MB", "GB", "TB"]:
        if size < 1024.0:
            return f"{size:.2f} {unit}"
        size /= 1024.0
    return f"{size:.2f} PB"
