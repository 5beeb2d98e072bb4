"""路径管理器

统一管理备份系统需要的所有路径，避免硬编码
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from loguru import logger

from ...common.path_utils import format_size as _format_size
from .archive import ArchiveCodec


@dataclass
class BackupPaths:
    """备份路径配置"""

    data_dir: Path
    """数据目录"""

    backups_dir: Path
    """备份输出目录"""

    assets_dir: Path
    """图片文件目录"""

    settings_dir: Path
    """设置文件目录"""

    database_path: Path
    """数据库文件路径"""


class PathManager:
    """路径管理器

    配置中的相对路径都相对于数据目录解析
    """

    def __init__(
        self,
        data_dir: Path,
        storage_config: Optional[Dict[str, Any]] = None,
        backup_config: Optional[Dict[str, Any]] = None,
    ):
        """初始化路径管理器

        Args:
            data_dir: 数据目录
            storage_config: 配置中的 storage 段
            backup_config: 配置中的 backup 段
        """
        self.data_dir = Path(data_dir)
        storage_config = storage_config or {}
        backup_config = backup_config or {}

        self.paths = BackupPaths(
            data_dir=self.data_dir,
            backups_dir=self._resolve(backup_config.get("output_dir", "backups")),
            assets_dir=self._resolve(storage_config.get("assets_dir", "images")),
            settings_dir=self._resolve(storage_config.get("settings_dir", "settings")),
            database_path=self._resolve(
                storage_config.get("database_path", "qstore.db")
            ),
        )
        self._codec = ArchiveCodec()

    def _resolve(self, value: str) -> Path:
        path = Path(value)
        if path.is_absolute():
            return path
        return self.data_dir / path

    def ensure_directories(self) -> None:
        """确保所有必要的目录存在"""
        for path in [
            self.paths.data_dir,
            self.paths.backups_dir,
            self.paths.assets_dir,
            self.paths.settings_dir,
        ]:
            path.mkdir(parents=True, exist_ok=True)
        self.paths.database_path.parent.mkdir(parents=True, exist_ok=True)

    def get_backup_list(self, directory: Optional[Path] = None) -> List[Path]:
        """获取所有备份文件列表

        Returns:
            备份文件路径列表，最新的在前
        """
        return self._codec.list_archives(directory or self.paths.backups_dir)

    def cleanup_old_backups(
        self, max_backups: int, directory: Optional[Path] = None
    ) -> List[str]:
        """清理旧备份

        Args:
            max_backups: 保留的最大备份数量，0 表示不清理
            directory: 备份目录，默认为配置的输出目录

        Returns:
            被删除的备份文件名列表
        """
        if max_backups <= 0:
            return []

        backups = self.get_backup_list(directory)
        if len(backups) <= max_backups:
            return []

        deleted = []
        for backup_file in backups[max_backups:]:
            try:
                backup_file.unlink()
                deleted.append(backup_file.name)
                logger.info(f"已删除旧备份: {backup_file.name}")
            except OSError as e:
                logger.error(f"删除备份 {backup_file.name} 失败: {e}")

        return deleted

    def format_size(self, size: float) -> str:
        """格式化文件大小，如 "1.23 MB" """
        return _format_size(size)


__all__ = ["PathManager", "BackupPaths"]
