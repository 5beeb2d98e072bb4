"""备份传输记录

与存储中的实体结构解耦，保证即使内部存储变化，归档格式依然稳定。
每条记录只在一次备份/恢复操作中存在，不会被持久化。
"""

import base64
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


MIN_GRID_COLUMNS = 1
MAX_GRID_COLUMNS = 3


class MovementType(str, Enum):
    """库存变动类型"""

    IN = "IN"
    OUT = "OUT"
    ADJUSTMENT = "ADJUSTMENT"


class ArticleCardStyle(str, Enum):
    """文章卡片显示样式"""

    FULL = "FULL"
    COMPACT = "COMPACT"
    MINIMAL = "MINIMAL"

    @classmethod
    def default(cls) -> "ArticleCardStyle":
        return cls.COMPACT

    @classmethod
    def from_name(cls, name: Optional[str]) -> "ArticleCardStyle":
        """按名称查找（忽略大小写），找不到时返回默认样式"""
        for style in cls:
            if name and style.name == name.upper():
                return style
        return cls.default()


class _Record(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    def to_dict(self) -> Dict[str, Any]:
        """转换为归档中的字典结构"""
        return self.model_dump(by_alias=True, mode="json")


class CategoryRecord(_Record):
    """分类"""

    uuid: str
    name: str
    description: str = ""
    notes: str = ""
    created_at: int = Field(alias="createdAt")
    updated_at: int = Field(alias="updatedAt")

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "CategoryRecord":
        return cls(
            uuid=row["uuid"],
            name=row["name"],
            description=row.get("description") or "",
            notes=row.get("notes") or "",
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def to_row(self) -> Dict[str, Any]:
        return {
            "uuid": self.uuid,
            "name": self.name,
            "description": self.description,
            "notes": self.notes,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


class ArticleRecord(_Record):
    """文章（库存物品）"""

    uuid: str
    name: str
    description: str = ""
    category_id: str = Field(alias="categoryId")
    unit_of_measure: str = Field(alias="unitOfMeasure")
    reorder_level: float = Field(alias="reorderLevel")
    notes: str = ""
    code_oem: str = Field(default="", alias="codeOEM")
    code_erp: str = Field(default="", alias="codeERP")
    code_bm: str = Field(default="", alias="codeBM")
    created_at: int = Field(alias="createdAt")
    updated_at: int = Field(alias="updatedAt")

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "ArticleRecord":
        return cls(
            uuid=row["uuid"],
            name=row["name"],
            description=row.get("description") or "",
            category_id=row["category_id"],
            unit_of_measure=row["unit_of_measure"],
            reorder_level=float(row["reorder_level"]),
            notes=row.get("notes") or "",
            code_oem=row.get("code_oem") or "",
            code_erp=row.get("code_erp") or "",
            code_bm=row.get("code_bm") or "",
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def to_row(self) -> Dict[str, Any]:
        return {
            "uuid": self.uuid,
            "name": self.name,
            "description": self.description,
            "category_id": self.category_id,
            "unit_of_measure": self.unit_of_measure,
            "reorder_level": self.reorder_level,
            "notes": self.notes,
            "code_oem": self.code_oem,
            "code_erp": self.code_erp,
            "code_bm": self.code_bm,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


class InventoryRecord(_Record):
    """库存数量"""

    article_uuid: str = Field(alias="articleUuid")
    current_quantity: float = Field(alias="currentQuantity")
    last_movement_at: int = Field(alias="lastMovementAt")

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "InventoryRecord":
        return cls(
            article_uuid=row["article_uuid"],
            current_quantity=float(row["current_quantity"]),
            last_movement_at=row["last_movement_at"],
        )

    def to_row(self) -> Dict[str, Any]:
        return {
            "article_uuid": self.article_uuid,
            "current_quantity": self.current_quantity,
            "last_movement_at": self.last_movement_at,
        }


class MovementRecord(_Record):
    """库存变动"""

    id: int
    article_uuid: str = Field(alias="articleUuid")
    type: MovementType
    quantity: float
    notes: str = ""
    created_at: int = Field(alias="createdAt")

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "MovementRecord":
        return cls(
            id=row["id"],
            article_uuid=row["article_uuid"],
            type=row["type"],
            quantity=float(row["quantity"]),
            notes=row.get("notes") or "",
            created_at=row["created_at"],
        )

    def to_row(self) -> Dict[str, Any]:
        # id 由存储重新分配
        return {
            "article_uuid": self.article_uuid,
            "type": self.type.value,
            "quantity": self.quantity,
            "notes": self.notes,
            "created_at": self.created_at,
        }


class ImageRecord(_Record):
    """文章图片，特征数据以 Base64 嵌入"""

    id: int
    article_uuid: str = Field(alias="articleUuid")
    image_path: str = Field(alias="imagePath")
    features_data_base64: str = Field(default="", alias="featuresDataBase64")
    created_at: int = Field(alias="createdAt")

    @field_validator("features_data_base64")
    @classmethod
    def _check_base64(cls, value: str) -> str:
        if value:
            base64.b64decode(value, validate=True)
        return value

    @classmethod
    def from_row(
        cls, row: Dict[str, Any], include_features: bool = True
    ) -> "ImageRecord":
        features = row.get("features_data") or b""
        return cls(
            id=row["id"],
            article_uuid=row["article_uuid"],
            image_path=row["image_path"],
            features_data_base64=(
                base64.b64encode(features).decode("ascii") if include_features else ""
            ),
            created_at=row["created_at"],
        )

    def features_data(self) -> bytes:
        """解码特征数据"""
        if not self.features_data_base64:
            return b""
        return base64.b64decode(self.features_data_base64, validate=True)

    def to_row(self) -> Dict[str, Any]:
        # id 由存储重新分配
        return {
            "article_uuid": self.article_uuid,
            "image_path": self.image_path,
            "features_data": self.features_data(),
            "created_at": self.created_at,
        }


class DisplaySettingsRecord(_Record):
    """显示设置"""

    article_card_style: str = Field(alias="articleCardStyle")
    show_stock_indicators: bool = Field(alias="showStockIndicators")
    show_article_images: bool = Field(alias="showArticleImages")
    grid_columns: int = Field(alias="gridColumns")

    @field_validator("grid_columns")
    @classmethod
    def _check_grid_columns(cls, value: int) -> int:
        if not MIN_GRID_COLUMNS <= value <= MAX_GRID_COLUMNS:
            raise ValueError(
                f"列数必须在 {MIN_GRID_COLUMNS}-{MAX_GRID_COLUMNS} 之间: {value}"
            )
        return value

    @classmethod
    def from_settings(cls, settings: Dict[str, Any]) -> "DisplaySettingsRecord":
        return cls(
            article_card_style=ArticleCardStyle.from_name(
                settings.get("article_card_style")
            ).value,
            show_stock_indicators=settings.get("show_stock_indicators", True),
            show_article_images=settings.get("show_article_images", True),
            grid_columns=settings.get("grid_columns", 1),
        )

    def to_settings(self) -> Dict[str, Any]:
        return {
            "article_card_style": ArticleCardStyle.from_name(
                self.article_card_style
            ).value,
            "show_stock_indicators": self.show_stock_indicators,
            "show_article_images": self.show_article_images,
            "grid_columns": self.grid_columns,
        }


class RecognitionSettingsRecord(_Record):
    """图像识别参数，可附带当前预设名称"""

    lowe_ratio_threshold: float = Field(alias="loweRatioThreshold")
    absolute_distance_threshold: float = Field(alias="absoluteDistanceThreshold")
    min_features: int = Field(alias="minFeatures")
    match_ratio_weight: float = Field(alias="matchRatioWeight")
    density_weight: float = Field(alias="densityWeight")
    distance_quality_weight: float = Field(alias="distanceQualityWeight")
    consistency_weight: float = Field(alias="consistencyWeight")
    default_matching_threshold: float = Field(alias="defaultMatchingThreshold")
    min_features_for_validation: int = Field(alias="minFeaturesForValidation")
    ideal_features_for_validation: int = Field(alias="idealFeaturesForValidation")
    preset_name: Optional[str] = Field(default=None, alias="presetName")

    @classmethod
    def from_settings(
        cls, settings: Dict[str, Any], preset_name: Optional[str] = None
    ) -> "RecognitionSettingsRecord":
        return cls(preset_name=preset_name, **settings)

    def to_settings(self) -> Dict[str, Any]:
        return self.model_dump(exclude={"preset_name"})


@dataclass
class BackupData:
    """一次备份/恢复中的全部传输记录"""

    categories: List[CategoryRecord]
    articles: List[ArticleRecord]
    inventory: List[InventoryRecord]
    movements: List[MovementRecord]
    article_images: List[ImageRecord]
    display_settings: DisplaySettingsRecord
    recognition_settings: RecognitionSettingsRecord


__all__ = [
    "MovementType",
    "ArticleCardStyle",
    "CategoryRecord",
    "ArticleRecord",
    "InventoryRecord",
    "MovementRecord",
    "ImageRecord",
    "DisplaySettingsRecord",
    "RecognitionSettingsRecord",
    "BackupData",
]
