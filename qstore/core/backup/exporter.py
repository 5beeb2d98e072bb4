"""备份导出器

负责从实体存储、图片存储和设置存储中读取数据，转换为传输记录并序列化
"""

from typing import Dict, List, Tuple

from loguru import logger

from ...storage.base import AssetStore, EntityKind, EntityStore, SettingsStore
from .constants import BackupChecksums, BlockName
from .records import (
    ArticleRecord,
    BackupData,
    CategoryRecord,
    DisplaySettingsRecord,
    ImageRecord,
    InventoryRecord,
    MovementRecord,
    RecognitionSettingsRecord,
)
from .serializer import BackupSerializer


class BackupExporter:
    """备份导出器

    导出内容：
    - 分类、文章、库存、库存变动、文章图片记录
    - 显示设置与识别参数（含当前预设）
    - 图片文件（找不到的文件会被跳过）
    """

    def __init__(
        self,
        entity_store: EntityStore,
        asset_store: AssetStore,
        settings_store: SettingsStore,
        serializer: BackupSerializer,
    ):
        self.entity_store = entity_store
        self.asset_store = asset_store
        self.settings_store = settings_store
        self.serializer = serializer

    def export_all(self, kind: EntityKind, include_features: bool = True) -> list:
        """导出某类实体的全部记录（保持存储的读取顺序）

        Args:
            kind: 实体类型
            include_features: 图片记录是否包含特征数据

        Returns:
            传输记录列表
        """
        rows = self.entity_store.read_all(kind)

        if kind == EntityKind.CATEGORIES:
            records = [CategoryRecord.from_row(row) for row in rows]
        elif kind == EntityKind.ARTICLES:
            records = [ArticleRecord.from_row(row) for row in rows]
        elif kind == EntityKind.INVENTORY:
            records = [InventoryRecord.from_row(row) for row in rows]
        elif kind == EntityKind.MOVEMENTS:
            records = [MovementRecord.from_row(row) for row in rows]
        elif kind == EntityKind.ARTICLE_IMAGES:
            records = [ImageRecord.from_row(row, include_features) for row in rows]
        else:
            raise ValueError(f"未知的实体类型: {kind}")

        logger.info(f"导出 {kind.value}: {len(records)} 条记录")
        return records

    def export_settings(self) -> Tuple[DisplaySettingsRecord, RecognitionSettingsRecord]:
        """导出显示设置和识别参数"""
        display = DisplaySettingsRecord.from_settings(
            self.settings_store.get_display_settings()
        )
        recognition = RecognitionSettingsRecord.from_settings(
            self.settings_store.get_recognition_settings(),
            self.settings_store.get_current_preset(),
        )
        logger.info("导出设置完成")
        return display, recognition

    def collect_image_files(
        self, images: List[ImageRecord]
    ) -> Tuple[Dict[str, bytes], List[str]]:
        """读取图片记录引用的文件

        找不到或读取失败的文件直接跳过，既不写入归档也不出现在清单中

        Returns:
            (相对路径 -> 数据, 排序后的清单)
        """
        image_files: Dict[str, bytes] = {}
        for image in images:
            if image.image_path in image_files:
                continue
            try:
                data = self.asset_store.read(image.image_path)
            except (OSError, ValueError) as e:
                logger.warning(f"读取图片失败，跳过 {image.image_path}: {e}")
                continue
            if data is None:
                logger.warning(f"图片文件不存在，跳过: {image.image_path}")
                continue
            image_files[image.image_path] = data

        manifest = sorted(image_files)
        logger.info(f"收集图片文件: {len(manifest)}/{len(images)}")
        return image_files, manifest

    def serialize_blocks(self, data: BackupData) -> Dict[BlockName, str]:
        """序列化所有数据块"""
        s = self.serializer
        return {
            BlockName.CATEGORIES: s.serialize(BlockName.CATEGORIES, data.categories),
            BlockName.ARTICLES: s.serialize(BlockName.ARTICLES, data.articles),
            BlockName.INVENTORY: s.serialize(BlockName.INVENTORY, data.inventory),
            BlockName.MOVEMENTS: s.serialize(BlockName.MOVEMENTS, data.movements),
            BlockName.ARTICLE_IMAGES: s.serialize(
                BlockName.ARTICLE_IMAGES, data.article_images
            ),
            BlockName.DISPLAY_SETTINGS: s.serialize(
                BlockName.DISPLAY_SETTINGS, data.display_settings
            ),
            BlockName.RECOGNITION_SETTINGS: s.serialize(
                BlockName.RECOGNITION_SETTINGS, data.recognition_settings
            ),
        }

    def compute_checksums(
        self, blocks: Dict[BlockName, str], manifest: List[str]
    ) -> BackupChecksums:
        """计算每个数据块和图片清单的校验和"""
        s = self.serializer
        return BackupChecksums(
            categories=s.calculate_checksum(blocks[BlockName.CATEGORIES]),
            articles=s.calculate_checksum(blocks[BlockName.ARTICLES]),
            inventory=s.calculate_checksum(blocks[BlockName.INVENTORY]),
            movements=s.calculate_checksum(blocks[BlockName.MOVEMENTS]),
            article_images=s.calculate_checksum(blocks[BlockName.ARTICLE_IMAGES]),
            display_settings=s.calculate_checksum(blocks[BlockName.DISPLAY_SETTINGS]),
            recognition_settings=s.calculate_checksum(
                blocks[BlockName.RECOGNITION_SETTINGS]
            ),
            images_manifest=s.calculate_checksum_for_list(manifest),
        )


__all__ = ["BackupExporter"]
