"""备份模块异常"""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .constants import InvalidReason


class BackupError(Exception):
    """备份/恢复错误基类"""


class CorruptedDataError(BackupError):
    """数据块无法解析"""

    def __init__(self, block: str, details: str = ""):
        super().__init__(f"数据块 {block} 已损坏: {details}" if details else f"数据块 {block} 已损坏")
        self.block = block
        self.details = details


class BackupInProgressError(BackupError):
    """已有备份或恢复操作在进行中"""

    def __init__(self, message: str = "已有备份或恢复操作在进行中"):
        super().__init__(message)


class BackupCancelledError(BackupError):
    """调用方放弃了进度流，操作在阶段边界处停止"""


class BackupValidationError(BackupError):
    """备份文件无效"""

    def __init__(self, reason: "InvalidReason"):
        super().__init__(str(reason))
        self.reason = reason


__all__ = [
    "BackupError",
    "CorruptedDataError",
    "BackupInProgressError",
    "BackupCancelledError",
    "BackupValidationError",
]
