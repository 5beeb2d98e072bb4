"""备份归档编解码

定义 ZIP 归档的固定结构并负责条目的底层读写：

    metadata.json
    data/categories.json
    data/articles.json
    data/inventory.json
    data/movements.json
    data/article_images.json
    settings/display_settings.json
    settings/recognition_settings.json
    images/<相对路径>
"""

import re
import zipfile
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Mapping, Optional

from loguru import logger

from ...common.helpers import get_formatted_timestamp
from ...common.path_utils import is_safe_relative_path
from .constants import BlockName, InvalidReason
from .errors import CorruptedDataError


METADATA_FILE = "metadata.json"
DATA_DIR = "data/"
SETTINGS_DIR = "settings/"
IMAGES_DIR = "images/"

BLOCK_FILES: Dict[BlockName, str] = {
    BlockName.CATEGORIES: f"{DATA_DIR}categories.json",
    BlockName.ARTICLES: f"{DATA_DIR}articles.json",
    BlockName.INVENTORY: f"{DATA_DIR}inventory.json",
    BlockName.MOVEMENTS: f"{DATA_DIR}movements.json",
    BlockName.ARTICLE_IMAGES: f"{DATA_DIR}article_images.json",
    BlockName.DISPLAY_SETTINGS: f"{SETTINGS_DIR}display_settings.json",
    BlockName.RECOGNITION_SETTINGS: f"{SETTINGS_DIR}recognition_settings.json",
}
"""数据块与归档条目名的对应关系（写入顺序）"""

REQUIRED_FILES: List[str] = [METADATA_FILE, *BLOCK_FILES.values()]

BACKUP_FILE_PREFIX = "qstore_backup_"
BACKUP_FILE_EXTENSION = ".zip"
BACKUP_TIMESTAMP_FORMAT = "%Y-%m-%d_%H%M%S"
PARTIAL_SUFFIX = ".part"

BACKUP_NAME_PATTERN = re.compile(
    rf"^{re.escape(BACKUP_FILE_PREFIX)}(?P<timestamp>\d{{4}}-\d{{2}}-\d{{2}}_\d{{6}})"
    r"(?:_(?P<index>\d+))?"
    rf"{re.escape(BACKUP_FILE_EXTENSION)}$"
)


@dataclass
class ArchiveContent:
    """读入内存的归档内容"""

    metadata_json: str
    blocks: Dict[BlockName, bytes]
    """数据块原始字节，校验和按字节计算，解析时再解码"""

    image_files: Dict[str, bytes] = field(default_factory=dict)
    """相对路径 -> 图片数据"""


class ArchiveCodec:
    """备份归档编解码器"""

    def generate_file_name(self, moment: Optional[datetime] = None) -> str:
        """生成带时间戳的文件名，按文件名排序即按时间排序"""
        timestamp = get_formatted_timestamp(BACKUP_TIMESTAMP_FORMAT, moment)
        return f"{BACKUP_FILE_PREFIX}{timestamp}{BACKUP_FILE_EXTENSION}"

    def resolve_output_file(
        self, directory: Path, moment: Optional[datetime] = None
    ) -> Path:
        """在目录中确定输出文件，同一秒内重名时追加序号"""
        name = self.generate_file_name(moment)
        candidate = directory / name
        stem = name[: -len(BACKUP_FILE_EXTENSION)]
        index = 1
        while candidate.exists():
            candidate = directory / f"{stem}_{index}{BACKUP_FILE_EXTENSION}"
            index += 1
        return candidate

    def is_backup_file(self, path: Path) -> bool:
        return (
            path.is_file()
            and path.name.startswith(BACKUP_FILE_PREFIX)
            and path.name.endswith(BACKUP_FILE_EXTENSION)
        )

    def list_archives(self, directory: Path) -> List[Path]:
        """列出目录中的备份文件（最新的在前）"""
        if not directory.exists():
            return []
        return sorted(
            (p for p in directory.iterdir() if self.is_backup_file(p)),
            key=self._sort_key,
            reverse=True,
        )

    def _sort_key(self, path: Path):
        """按 (时间戳, 序号) 排序，序号按数字比较"""
        match = BACKUP_NAME_PATTERN.match(path.name)
        if match is None:
            return path.name, 0
        return match.group("timestamp"), int(match.group("index") or 0)

    def write_archive(
        self,
        output_file: Path,
        blocks: Mapping[BlockName, str],
        image_files: Mapping[str, bytes],
        metadata_json: str,
        compression_level: int = 6,
    ) -> Path:
        """写入备份归档

        先写入 .part 临时文件，完成后再改名；失败时删除临时文件。
        元数据最后写入，因为它的校验和覆盖之前写入的所有数据块。

        Args:
            output_file: 目标文件
            blocks: 数据块文本
            image_files: 相对路径 -> 图片数据
            metadata_json: 元数据文本
            compression_level: 压缩级别 0-9

        Returns:
            写入的文件路径
        """
        if not 0 <= compression_level <= 9:
            raise ValueError(f"压缩级别必须在 0-9 之间: {compression_level}")

        partial = output_file.with_name(output_file.name + PARTIAL_SUFFIX)
        output_file.parent.mkdir(parents=True, exist_ok=True)

        try:
            with zipfile.ZipFile(
                partial,
                "w",
                compression=zipfile.ZIP_DEFLATED,
                compresslevel=compression_level,
            ) as zf:
                for block, entry_name in BLOCK_FILES.items():
                    zf.writestr(entry_name, blocks[block].encode("utf-8"))

                for relative_path, data in image_files.items():
                    zf.writestr(f"{IMAGES_DIR}{relative_path}", data)
                    logger.debug(f"写入图片: {relative_path}")

                zf.writestr(METADATA_FILE, metadata_json.encode("utf-8"))

            partial.replace(output_file)

        except BaseException:
            partial.unlink(missing_ok=True)
            raise

        return output_file

    def validate_structure(self, archive_path: Path) -> Optional[InvalidReason]:
        """校验归档结构（只检查条目是否存在，不解析内容）

        Returns:
            无效原因，结构有效时为 None
        """
        try:
            with zipfile.ZipFile(archive_path, "r") as zf:
                names = set(zf.namelist())
        except (zipfile.BadZipFile, OSError) as e:
            logger.warning(f"无法打开归档 {archive_path}: {e}")
            return InvalidReason.invalid_archive(str(e))

        missing = [name for name in REQUIRED_FILES if name not in names]
        if missing:
            return InvalidReason.missing_data_files(missing)
        return None

    def read_metadata(self, archive_path: Path) -> Optional[str]:
        """只读取元数据条目"""
        with zipfile.ZipFile(archive_path, "r") as zf:
            if METADATA_FILE not in zf.namelist():
                return None
            return self._read_text(zf, METADATA_FILE, BlockName.METADATA)

    def read_archive(self, archive_path: Path) -> ArchiveContent:
        """读取整个归档到内存

        Raises:
            KeyError: 缺少必需条目
            CorruptedDataError: 元数据不是 UTF-8 文本，或图片路径不安全
        """
        with zipfile.ZipFile(archive_path, "r") as zf:
            metadata_json = self._read_text(zf, METADATA_FILE, BlockName.METADATA)
            blocks = {
                block: zf.read(entry_name)
                for block, entry_name in BLOCK_FILES.items()
            }
            image_files = self._read_images(zf)

        return ArchiveContent(
            metadata_json=metadata_json, blocks=blocks, image_files=image_files
        )

    def _read_text(self, zf: zipfile.ZipFile, entry_name: str, block: BlockName) -> str:
        try:
            return zf.read(entry_name).decode("utf-8")
        except UnicodeDecodeError as e:
            raise CorruptedDataError(block.value, f"不是 UTF-8 文本: {e}") from e

    def _read_images(self, zf: zipfile.ZipFile) -> Dict[str, bytes]:
        images: Dict[str, bytes] = {}
        for info in zf.infolist():
            if not info.filename.startswith(IMAGES_DIR) or info.is_dir():
                continue
            relative_path = info.filename[len(IMAGES_DIR):]
            if not is_safe_relative_path(relative_path):
                raise CorruptedDataError("images", f"非法的图片路径: {info.filename}")
            images[relative_path] = zf.read(info)
        return images


__all__ = [
    "ArchiveCodec",
    "ArchiveContent",
    "METADATA_FILE",
    "IMAGES_DIR",
    "BLOCK_FILES",
    "REQUIRED_FILES",
    "BACKUP_FILE_PREFIX",
    "BACKUP_FILE_EXTENSION",
]
