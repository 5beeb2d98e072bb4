"""备份模块常量

定义元数据模型、阶段枚举、校验错误和操作结果，供导出、导入和编排器共享
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from ..version import SCHEMA_VERSION


CHECKSUM_ALGORITHM = "sha256"
"""校验和算法前缀，格式为 sha256:<hex>"""


class BlockName(str, Enum):
    """归档中的逻辑数据块名称（与 checksums 字段一致）"""

    CATEGORIES = "categories"
    ARTICLES = "articles"
    INVENTORY = "inventory"
    MOVEMENTS = "movements"
    ARTICLE_IMAGES = "articleImages"
    DISPLAY_SETTINGS = "displaySettings"
    RECOGNITION_SETTINGS = "recognitionSettings"
    IMAGES_MANIFEST = "imagesManifest"
    METADATA = "metadata"


class BackupCounts(BaseModel):
    """备份中各类实体的数量"""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    categories: int = 0
    articles: int = 0
    inventory: int = 0
    movements: int = 0
    article_images: int = Field(default=0, alias="articleImages")
    image_files: int = Field(default=0, alias="imageFiles")

    def as_tuple(self) -> tuple:
        """(categories, articles, inventory, movements, articleImages)"""
        return (
            self.categories,
            self.articles,
            self.inventory,
            self.movements,
            self.article_images,
        )


class BackupChecksums(BaseModel):
    """各数据块的 SHA-256 校验和"""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    categories: str
    articles: str
    inventory: str
    movements: str
    article_images: str = Field(alias="articleImages")
    display_settings: str = Field(alias="displaySettings")
    recognition_settings: str = Field(alias="recognitionSettings")
    images_manifest: str = Field(alias="imagesManifest")

    def for_block(self, block: BlockName) -> str:
        """按数据块名称获取校验和"""
        return self.model_dump(by_alias=True)[block.value]


class ArchiveMetadata(BaseModel):
    """备份元数据（存储在 metadata.json 中，最后写入）"""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    app_version: str = Field(alias="appVersion")
    """创建备份的应用版本"""

    app_version_code: int = Field(alias="appVersionCode")
    """应用构建号"""

    db_version: int = Field(alias="dbVersion")
    """持久化存储 Schema 版本"""

    backup_date: str = Field(alias="backupDate")
    """创建时间（ISO 8601 UTC）"""

    device_info: Optional[str] = Field(default=None, alias="deviceInfo")
    """设备描述（可选）"""

    counts: BackupCounts
    """实体数量"""

    checksums: BackupChecksums
    """数据块校验和"""

    images_manifest: List[str] = Field(default_factory=list, alias="imagesManifest")
    """图片清单（排序后的相对路径）"""

    def to_dict(self) -> Dict[str, Any]:
        """转换为字典（使用归档中的字段名）"""
        return self.model_dump(by_alias=True)

    def is_compatible(self, current_version: int = SCHEMA_VERSION) -> bool:
        """Schema 版本是否可被当前系统恢复"""
        return self.db_version <= current_version


class BackupPhase(str, Enum):
    """备份阶段"""

    INITIALIZING = "initializing"
    EXPORTING_CATEGORIES = "exporting_categories"
    EXPORTING_ARTICLES = "exporting_articles"
    EXPORTING_INVENTORY = "exporting_inventory"
    EXPORTING_MOVEMENTS = "exporting_movements"
    EXPORTING_ARTICLE_IMAGES = "exporting_article_images"
    EXPORTING_SETTINGS = "exporting_settings"
    COPYING_IMAGE_FILES = "copying_image_files"
    SERIALIZING = "serializing"
    COMPUTING_CHECKSUMS = "computing_checksums"
    ASSEMBLING_METADATA = "assembling_metadata"
    RESOLVING_DESTINATION = "resolving_destination"
    CREATING_ZIP = "creating_zip"
    FINALIZING = "finalizing"


class RestorePhase(str, Enum):
    """恢复阶段"""

    VALIDATING_ZIP = "validating_zip"
    READING_METADATA = "reading_metadata"
    CHECKING_VERSION = "checking_version"
    VALIDATING_CHECKSUMS = "validating_checksums"
    SAFETY_BACKUP = "safety_backup"
    DESERIALIZING = "deserializing"
    CLEARING_DATABASE = "clearing_database"
    RESTORING_CATEGORIES = "restoring_categories"
    RESTORING_ARTICLES = "restoring_articles"
    RESTORING_INVENTORY = "restoring_inventory"
    RESTORING_ARTICLE_IMAGES = "restoring_article_images"
    RESTORING_MOVEMENTS = "restoring_movements"
    RESTORING_IMAGE_FILES = "restoring_image_files"
    RESTORING_SETTINGS = "restoring_settings"
    FINALIZING = "finalizing"


class ValidationErrorType(str, Enum):
    """备份校验错误类型"""

    INVALID_ARCHIVE = "invalid_archive"
    MISSING_METADATA = "missing_metadata"
    MISSING_DATA_FILES = "missing_data_files"
    INCOMPATIBLE_VERSION = "incompatible_version"
    CHECKSUM_MISMATCH = "checksum_mismatch"
    MISSING_IMAGES = "missing_images"
    CORRUPTED_DATA = "corrupted_data"


@dataclass
class InvalidReason:
    """备份无效的原因

    只有与 type 对应的字段会被填充
    """

    type: ValidationErrorType

    missing_files: List[str] = field(default_factory=list)
    """缺失的归档条目（MISSING_DATA_FILES）"""

    backup_version: Optional[int] = None
    """备份的 Schema 版本（INCOMPATIBLE_VERSION）"""

    current_version: Optional[int] = None
    """当前 Schema 版本（INCOMPATIBLE_VERSION）"""

    component: Optional[str] = None
    """出错的数据块（CHECKSUM_MISMATCH / CORRUPTED_DATA）"""

    missing_paths: List[str] = field(default_factory=list)
    """清单中有但归档中没有的图片（MISSING_IMAGES）"""

    details: str = ""

    @classmethod
    def invalid_archive(cls, details: str = "") -> "InvalidReason":
        return cls(ValidationErrorType.INVALID_ARCHIVE, details=details)

    @classmethod
    def missing_metadata(cls, details: str = "") -> "InvalidReason":
        return cls(ValidationErrorType.MISSING_METADATA, details=details)

    @classmethod
    def missing_data_files(cls, names: List[str]) -> "InvalidReason":
        return cls(ValidationErrorType.MISSING_DATA_FILES, missing_files=list(names))

    @classmethod
    def incompatible_version(cls, backup: int, current: int) -> "InvalidReason":
        return cls(
            ValidationErrorType.INCOMPATIBLE_VERSION,
            backup_version=backup,
            current_version=current,
        )

    @classmethod
    def checksum_mismatch(cls, component: str) -> "InvalidReason":
        return cls(ValidationErrorType.CHECKSUM_MISMATCH, component=component)

    @classmethod
    def missing_images(cls, paths: List[str]) -> "InvalidReason":
        return cls(ValidationErrorType.MISSING_IMAGES, missing_paths=list(paths))

    @classmethod
    def corrupted_data(cls, component: str, details: str = "") -> "InvalidReason":
        return cls(
            ValidationErrorType.CORRUPTED_DATA, component=component, details=details
        )

    def __str__(self) -> str:
        if self.type == ValidationErrorType.MISSING_DATA_FILES:
            return f"缺少数据文件: {', '.join(self.missing_files)}"
        if self.type == ValidationErrorType.INCOMPATIBLE_VERSION:
            return (
                f"备份版本 ({self.backup_version}) 高于当前版本 ({self.current_version})"
            )
        if self.type == ValidationErrorType.CHECKSUM_MISMATCH:
            return f"校验和不匹配: {self.component}"
        if self.type == ValidationErrorType.MISSING_IMAGES:
            return f"缺少图片: {', '.join(self.missing_paths)}"
        if self.type == ValidationErrorType.CORRUPTED_DATA:
            return f"数据损坏: {self.component} {self.details}".strip()
        if self.details:
            return f"{self.type.value}: {self.details}"
        return self.type.value

    def to_dict(self) -> Dict[str, Any]:
        """转换为字典"""
        return {
            "type": self.type.value,
            "missing_files": self.missing_files,
            "backup_version": self.backup_version,
            "current_version": self.current_version,
            "component": self.component,
            "missing_paths": self.missing_paths,
            "details": self.details,
            "message": str(self),
        }


class ResultStatus(str, Enum):
    """操作结果类型"""

    SUCCESS = "success"
    ERROR = "error"
    INVALID = "invalid"


@dataclass
class BackupProgress:
    """备份/恢复进度快照"""

    stage: str
    """阶段标识（BackupPhase / RestorePhase 的值）"""

    message: str
    """阶段描述"""

    progress: float
    """进度 0.0 - 1.0"""

    def to_dict(self) -> Dict[str, Any]:
        """转换为字典"""
        return {
            "stage": self.stage,
            "message": self.message,
            "progress": self.progress,
        }


@dataclass
class BackupOptions:
    """备份选项"""

    include_features: bool = True
    """是否包含图片特征数据（会增大文件）"""

    compression_level: int = 6
    """ZIP 压缩级别（0-9）"""

    destination_dir: Optional[Path] = None
    """输出目录，None 表示使用配置的默认目录"""

    def __post_init__(self):
        if not 0 <= self.compression_level <= 9:
            raise ValueError(
                f"压缩级别必须在 0-9 之间: {self.compression_level}"
            )
        if self.destination_dir is not None:
            self.destination_dir = Path(self.destination_dir)


@dataclass
class RestoreOptions:
    """恢复选项"""

    verify_checksums: bool = True
    """恢复前校验数据块"""

    create_backup_before_restore: bool = True
    """恢复前自动创建安全备份"""


@dataclass
class BackupSuccess:
    """备份创建成功"""

    archive_path: Path
    metadata: ArchiveMetadata
    size_bytes: int
    status: ResultStatus = field(default=ResultStatus.SUCCESS, init=False)

    @property
    def success(self) -> bool:
        return True

    def to_dict(self) -> Dict[str, Any]:
        """转换为字典"""
        return {
            "status": self.status.value,
            "archive_path": str(self.archive_path),
            "size_bytes": self.size_bytes,
            "metadata": self.metadata.to_dict(),
        }


@dataclass
class BackupFailure:
    """备份创建失败"""

    error: BaseException
    phase: BackupPhase
    status: ResultStatus = field(default=ResultStatus.ERROR, init=False)

    @property
    def success(self) -> bool:
        return False

    def to_dict(self) -> Dict[str, Any]:
        """转换为字典"""
        return {
            "status": self.status.value,
            "phase": self.phase.value,
            "error": str(self.error),
        }


@dataclass
class RestoreSuccess:
    """恢复完成"""

    metadata: ArchiveMetadata
    restored_counts: BackupCounts

    safety_backup: Optional[Path] = None
    """恢复前创建的安全备份（失败或未启用时为 None）"""

    warnings: List[str] = field(default_factory=list)
    status: ResultStatus = field(default=ResultStatus.SUCCESS, init=False)

    @property
    def success(self) -> bool:
        return True

    def to_dict(self) -> Dict[str, Any]:
        """转换为字典"""
        return {
            "status": self.status.value,
            "metadata": self.metadata.to_dict(),
            "restored_counts": self.restored_counts.model_dump(by_alias=True),
            "safety_backup": str(self.safety_backup) if self.safety_backup else None,
            "warnings": self.warnings,
        }


@dataclass
class RestoreFailure:
    """恢复过程中出错"""

    error: BaseException
    phase: RestorePhase
    rollback_successful: bool = False
    status: ResultStatus = field(default=ResultStatus.ERROR, init=False)

    @property
    def success(self) -> bool:
        return False

    def to_dict(self) -> Dict[str, Any]:
        """转换为字典"""
        return {
            "status": self.status.value,
            "phase": self.phase.value,
            "error": str(self.error),
            "rollback_successful": self.rollback_successful,
        }


@dataclass
class RestoreInvalid:
    """备份无效或不兼容，未修改任何状态"""

    reason: InvalidReason
    status: ResultStatus = field(default=ResultStatus.INVALID, init=False)

    @property
    def success(self) -> bool:
        return False

    def to_dict(self) -> Dict[str, Any]:
        """转换为字典"""
        return {"status": self.status.value, "reason": self.reason.to_dict()}


BackupResult = Union[BackupSuccess, BackupFailure]
RestoreResult = Union[RestoreSuccess, RestoreFailure, RestoreInvalid]


@dataclass
class PreCheckResult:
    """恢复前预检查结果"""

    valid: bool = False
    """归档结构与元数据是否有效"""

    can_import: bool = False
    """Schema 版本是否允许恢复"""

    version_status: str = ""
    """版本状态: match / older / newer"""

    backup_version: Optional[int] = None
    current_version: int = SCHEMA_VERSION
    backup_time: str = ""
    metadata: Optional[ArchiveMetadata] = None
    reason: Optional[InvalidReason] = None
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """转换为字典"""
        return {
            "valid": self.valid,
            "can_import": self.can_import,
            "version_status": self.version_status,
            "backup_version": self.backup_version,
            "current_version": self.current_version,
            "backup_time": self.backup_time,
            "metadata": self.metadata.to_dict() if self.metadata else None,
            "reason": self.reason.to_dict() if self.reason else None,
            "warnings": self.warnings,
        }


@dataclass
class BackupFileInfo:
    """备份文件信息"""

    path: Path
    metadata: Optional[ArchiveMetadata]
    size_bytes: int
    last_modified: float

    @property
    def is_valid(self) -> bool:
        return self.metadata is not None


__all__ = [
    "CHECKSUM_ALGORITHM",
    "BlockName",
    "BackupCounts",
    "BackupChecksums",
    "ArchiveMetadata",
    "BackupPhase",
    "RestorePhase",
    "ValidationErrorType",
    "InvalidReason",
    "ResultStatus",
    "BackupProgress",
    "BackupOptions",
    "RestoreOptions",
    "BackupSuccess",
    "BackupFailure",
    "RestoreSuccess",
    "RestoreFailure",
    "RestoreInvalid",
    "BackupResult",
    "RestoreResult",
    "PreCheckResult",
    "BackupFileInfo",
]
