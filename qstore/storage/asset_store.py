"""文件系统图片存储"""

import shutil
from pathlib import Path
from typing import List, Optional, Union

from loguru import logger

from ..common.path_utils import ensure_dir, ensure_path
from .base import AssetStore


class FileAssetStore(AssetStore):
    """以目录为根的图片存储

    所有路径相对于根目录，拒绝越出根目录的路径
    """

    def __init__(self, root: Union[str, Path]):
        self.root = ensure_dir(Path(root))

    def _resolve(self, path: str) -> Path:
        root = self.root.resolve()
        candidate = (root / path).resolve()
        if candidate == root or root not in candidate.parents:
            raise ValueError(f"非法的图片路径: {path}")
        return candidate

    def read(self, path: str) -> Optional[bytes]:
        file_path = self._resolve(path)
        if not file_path.is_file():
            logger.debug(f"图片不存在: {path}")
            return None
        return file_path.read_bytes()

    def write(self, path: str, data: bytes) -> None:
        file_path = ensure_path(self._resolve(path))
        file_path.write_bytes(data)

    def delete_all(self) -> None:
        if self.root.exists():
            shutil.rmtree(self.root)
        self.root.mkdir(parents=True, exist_ok=True)
        logger.debug(f"已删除所有图片: {self.root}")

    def list_paths(self) -> List[str]:
        """列出所有图片的相对路径（排序）"""
        return sorted(
            p.relative_to(self.root).as_posix()
            for p in self.root.rglob("*")
            if p.is_file()
        )

    def used_space(self) -> int:
        return sum(p.stat().st_size for p in self.root.rglob("*") if p.is_file())


__all__ = ["FileAssetStore"]
