"""备份模块

提供数据备份和恢复功能
"""

from .path_manager import PathManager, BackupPaths
from .archive import ArchiveCodec, ArchiveContent
from .serializer import BackupSerializer
from .exporter import BackupExporter
from .importer import BackupImporter
from .orchestrator import BackupOrchestrator
from .records import (
    MovementType,
    ArticleCardStyle,
    CategoryRecord,
    ArticleRecord,
    InventoryRecord,
    MovementRecord,
    ImageRecord,
    DisplaySettingsRecord,
    RecognitionSettingsRecord,
    BackupData,
)
from .constants import (
    BlockName,
    ArchiveMetadata,
    BackupCounts,
    BackupChecksums,
    BackupPhase,
    RestorePhase,
    ValidationErrorType,
    InvalidReason,
    ResultStatus,
    BackupProgress,
    BackupOptions,
    RestoreOptions,
    BackupSuccess,
    BackupFailure,
    RestoreSuccess,
    RestoreFailure,
    RestoreInvalid,
    BackupResult,
    RestoreResult,
    PreCheckResult,
    BackupFileInfo,
)
from .errors import (
    BackupError,
    CorruptedDataError,
    BackupInProgressError,
    BackupCancelledError,
    BackupValidationError,
)

__all__ = [
    "PathManager",
    "BackupPaths",
    "ArchiveCodec",
    "ArchiveContent",
    "BackupSerializer",
    "BackupExporter",
    "BackupImporter",
    "BackupOrchestrator",
    # Records
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
    # Metadata & results
    "BlockName",
    "ArchiveMetadata",
    "BackupCounts",
    "BackupChecksums",
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
    # Errors
    "BackupError",
    "CorruptedDataError",
    "BackupInProgressError",
    "BackupCancelledError",
    "BackupValidationError",
]
