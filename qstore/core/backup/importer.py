"""备份导入器

负责把归档中的数据块反序列化，并按外键顺序写回各个存储
"""

from typing import Callable, Dict, Mapping, Optional, Union

from loguru import logger

from ...storage.base import AssetStore, EntityKind, EntityStore, SettingsStore
from .constants import BackupCounts, BlockName, RestorePhase
from .errors import CorruptedDataError
from .records import BackupData, DisplaySettingsRecord, RecognitionSettingsRecord
from .serializer import BackupSerializer


PhaseCallback = Callable[[RestorePhase], None]


class BackupImporter:
    """备份导入器

    恢复顺序：清空实体表 → 分类 → 文章 → 库存 → 图片记录 → 库存变动，
    然后是图片文件和设置。
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

    def deserialize_all(
        self, blocks: Mapping[BlockName, Union[str, bytes]]
    ) -> BackupData:
        """反序列化所有数据块（文本或归档中的原始字节）

        Raises:
            CorruptedDataError: 任一数据块不是 UTF-8 文本或无法解析
        """
        s = self.serializer
        return BackupData(
            categories=s.deserialize(BlockName.CATEGORIES, blocks[BlockName.CATEGORIES]),
            articles=s.deserialize(BlockName.ARTICLES, blocks[BlockName.ARTICLES]),
            inventory=s.deserialize(BlockName.INVENTORY, blocks[BlockName.INVENTORY]),
            movements=s.deserialize(BlockName.MOVEMENTS, blocks[BlockName.MOVEMENTS]),
            article_images=s.deserialize(
                BlockName.ARTICLE_IMAGES, blocks[BlockName.ARTICLE_IMAGES]
            ),
            display_settings=s.deserialize(
                BlockName.DISPLAY_SETTINGS, blocks[BlockName.DISPLAY_SETTINGS]
            ),
            recognition_settings=s.deserialize(
                BlockName.RECOGNITION_SETTINGS, blocks[BlockName.RECOGNITION_SETTINGS]
            ),
        )

    def check_references(self, data: BackupData) -> None:
        """检查引用完整性：文章引用的分类、其余记录引用的文章必须在同一备份中

        Raises:
            CorruptedDataError: 存在无法解析的引用
        """
        category_ids = {c.uuid for c in data.categories}
        article_ids = {a.uuid for a in data.articles}

        for article in data.articles:
            if article.category_id not in category_ids:
                raise CorruptedDataError(
                    BlockName.ARTICLES.value,
                    f"文章 {article.uuid} 引用了不存在的分类 {article.category_id}",
                )

        children = [
            (BlockName.INVENTORY, data.inventory),
            (BlockName.ARTICLE_IMAGES, data.article_images),
            (BlockName.MOVEMENTS, data.movements),
        ]
        for block, records in children:
            for record in records:
                if record.article_uuid not in article_ids:
                    raise CorruptedDataError(
                        block.value, f"引用了不存在的文章 {record.article_uuid}"
                    )

    def restore_entities(
        self, data: BackupData, on_phase: Optional[PhaseCallback] = None
    ) -> Dict[EntityKind, int]:
        """清空并重新写入所有实体（在一个事务中完成）

        图片记录和库存变动由存储重新分配代理键，业务标识原样保留

        Returns:
            各类实体写入的数量
        """
        notify = on_phase or (lambda phase: None)
        steps = [
            (RestorePhase.RESTORING_CATEGORIES, EntityKind.CATEGORIES, data.categories),
            (RestorePhase.RESTORING_ARTICLES, EntityKind.ARTICLES, data.articles),
            (RestorePhase.RESTORING_INVENTORY, EntityKind.INVENTORY, data.inventory),
            (
                RestorePhase.RESTORING_ARTICLE_IMAGES,
                EntityKind.ARTICLE_IMAGES,
                data.article_images,
            ),
            (RestorePhase.RESTORING_MOVEMENTS, EntityKind.MOVEMENTS, data.movements),
        ]
        restored: Dict[EntityKind, int] = {}

        with self.entity_store.transaction():
            notify(RestorePhase.CLEARING_DATABASE)
            self.entity_store.wipe_all()

            for phase, kind, records in steps:
                notify(phase)
                for record in records:
                    self.entity_store.insert(kind, record.to_row())
                restored[kind] = len(records)
                logger.info(f"恢复 {kind.value}: {len(records)} 条记录")

        return restored

    def restore_assets(self, image_files: Mapping[str, bytes]) -> int:
        """删除现有图片并写入归档中的图片

        Returns:
            写入的文件数
        """
        self.asset_store.delete_all()
        for relative_path, data in image_files.items():
            self.asset_store.write(relative_path, data)
            logger.debug(f"恢复图片: {relative_path}")
        logger.info(f"图片文件恢复完成，共 {len(image_files)} 个文件")
        return len(image_files)

    def restore_settings(
        self,
        display: DisplaySettingsRecord,
        recognition: RecognitionSettingsRecord,
    ) -> bool:
        """写入两组设置，若识别参数带有预设名称则尝试重新应用

        Returns:
            预设是否已应用
        """
        self.settings_store.set_display_settings(display.to_settings())
        self.settings_store.set_recognition_settings(recognition.to_settings())
        logger.info("设置恢复完成")

        if recognition.preset_name:
            return self.attempt_apply_preset(recognition.preset_name)
        return False

    def attempt_apply_preset(self, name: str) -> bool:
        """尝试应用预设，失败只记录日志，不影响恢复结果"""
        try:
            self.settings_store.apply_preset(name)
            return True
        except Exception as e:
            logger.warning(f"应用识别预设 {name} 失败（已忽略）: {e}")
            return False

    @staticmethod
    def counts_of(
        restored: Mapping[EntityKind, int], image_files: int
    ) -> BackupCounts:
        return BackupCounts(
            categories=restored.get(EntityKind.CATEGORIES, 0),
            articles=restored.get(EntityKind.ARTICLES, 0),
            inventory=restored.get(EntityKind.INVENTORY, 0),
            movements=restored.get(EntityKind.MOVEMENTS, 0),
            article_images=restored.get(EntityKind.ARTICLE_IMAGES, 0),
            image_files=image_files,
        )


__all__ = ["BackupImporter"]
