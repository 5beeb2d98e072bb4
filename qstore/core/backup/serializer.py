"""备份序列化器

负责传输记录与 JSON 文本之间的转换，以及数据块校验和的计算与验证
"""

import hashlib
import json
from typing import Any, Sequence, Union

from loguru import logger
from pydantic import BaseModel, ValidationError

from .constants import CHECKSUM_ALGORITHM, ArchiveMetadata, BlockName
from .errors import CorruptedDataError
from .records import (
    ArticleRecord,
    CategoryRecord,
    DisplaySettingsRecord,
    ImageRecord,
    InventoryRecord,
    MovementRecord,
    RecognitionSettingsRecord,
)


LIST_BLOCKS: dict[BlockName, type[BaseModel]] = {
    BlockName.CATEGORIES: CategoryRecord,
    BlockName.ARTICLES: ArticleRecord,
    BlockName.INVENTORY: InventoryRecord,
    BlockName.MOVEMENTS: MovementRecord,
    BlockName.ARTICLE_IMAGES: ImageRecord,
}
"""以 JSON 数组存储的数据块"""

OBJECT_BLOCKS: dict[BlockName, type[BaseModel]] = {
    BlockName.DISPLAY_SETTINGS: DisplaySettingsRecord,
    BlockName.RECOGNITION_SETTINGS: RecognitionSettingsRecord,
    BlockName.METADATA: ArchiveMetadata,
}
"""以 JSON 对象存储的数据块"""


class BackupSerializer:
    """备份序列化器

    序列化结果是确定的：同一组记录（同样的顺序）总是得到相同的文本和校验和。
    记录顺序保持读取时的顺序，不会重新排序。
    """

    def __init__(self, indent: int = 2):
        self.indent = indent

    def _dumps(self, data: Any) -> str:
        return json.dumps(data, ensure_ascii=False, indent=self.indent)

    def serialize(
        self, block: BlockName, data: Union[Sequence[BaseModel], BaseModel]
    ) -> str:
        """序列化数据块

        Args:
            block: 数据块名称
            data: 记录列表（列表块）或单个记录（对象块）

        Returns:
            JSON 文本
        """
        if block in LIST_BLOCKS:
            return self._dumps(
                [record.model_dump(by_alias=True, mode="json") for record in data]
            )
        if block in OBJECT_BLOCKS:
            return self._dumps(data.model_dump(by_alias=True, mode="json"))
        raise ValueError(f"未知的数据块: {block}")

    def deserialize(self, block: BlockName, text: Union[str, bytes]) -> Any:
        """反序列化数据块

        Args:
            block: 数据块名称
            text: JSON 文本，或归档中读出的原始字节

        Returns:
            记录列表或单个记录

        Raises:
            CorruptedDataError: 不是 UTF-8 文本、不是有效 JSON 或记录字段不合法
        """
        if isinstance(text, bytes):
            try:
                text = text.decode("utf-8")
            except UnicodeDecodeError as e:
                raise CorruptedDataError(block.value, f"不是 UTF-8 文本: {e}") from e

        try:
            raw = json.loads(text)
        except (json.JSONDecodeError, TypeError) as e:
            raise CorruptedDataError(block.value, f"JSON 解析失败: {e}") from e

        try:
            if block in LIST_BLOCKS:
                if not isinstance(raw, list):
                    raise CorruptedDataError(block.value, "应为 JSON 数组")
                model = LIST_BLOCKS[block]
                return [model.model_validate(item) for item in raw]

            if block in OBJECT_BLOCKS:
                if not isinstance(raw, dict):
                    raise CorruptedDataError(block.value, "应为 JSON 对象")
                return OBJECT_BLOCKS[block].model_validate(raw)
        except ValidationError as e:
            first = e.errors()[0] if e.errors() else {}
            location = ".".join(str(p) for p in first.get("loc", ()))
            raise CorruptedDataError(
                block.value, f"{location}: {first.get('msg', str(e))}"
            ) from e

        raise ValueError(f"未知的数据块: {block}")

    def serialize_metadata(self, metadata: ArchiveMetadata) -> str:
        return self.serialize(BlockName.METADATA, metadata)

    def deserialize_metadata(self, text: str) -> ArchiveMetadata:
        return self.deserialize(BlockName.METADATA, text)

    def calculate_checksum(self, data: Union[str, bytes]) -> str:
        """计算数据块的 SHA-256 校验和

        Args:
            data: 数据块文本（按 UTF-8 编码）或原始字节

        Returns:
            "sha256:<hex>"
        """
        if isinstance(data, str):
            data = data.encode("utf-8")
        digest = hashlib.sha256(data).hexdigest()
        return f"{CHECKSUM_ALGORITHM}:{digest}"

    def calculate_checksum_for_list(self, items: Sequence[str]) -> str:
        """计算路径清单的校验和（排序后以换行拼接，与文件内容无关）"""
        return self.calculate_checksum("\n".join(sorted(items)))

    def verify_checksum(self, data: Union[str, bytes], expected: str) -> bool:
        """验证校验和

        Args:
            data: 数据块文本或原始字节
            expected: 元数据中记录的校验和

        Returns:
            是否匹配
        """
        algorithm, _, digest = (expected or "").partition(":")
        if not digest:
            return False
        if algorithm != CHECKSUM_ALGORITHM:
            logger.warning(f"不支持的校验和算法: {algorithm}")
            return False
        return self.calculate_checksum(data) == expected


__all__ = ["BackupSerializer", "LIST_BLOCKS", "OBJECT_BLOCKS"]
