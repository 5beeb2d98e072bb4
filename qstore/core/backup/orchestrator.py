"""备份编排器

按阶段执行备份创建（导出 → 校验和 → 打包）和恢复
（结构校验 → 版本检查 → 校验和 → 安全备份 → 清空 → 重新写入 → 图片 → 设置），
通过异步生成器向调用方推送进度，最后一项是操作结果。

同步的流水线在工作线程中运行，进度通过事件循环线程安全地转发。
同一时间只允许一个备份或恢复操作。
"""

import asyncio
import threading
from contextlib import aclosing
from pathlib import Path
from typing import (
    AsyncIterator,
    Callable,
    Dict,
    List,
    Optional,
    Set,
    Union,
)

from loguru import logger

from ...common.helpers import utc_timestamp_iso
from ...common.path_utils import ensure_dir
from ...storage.base import AssetStore, EntityKind, EntityStore, SettingsStore
from ..version import APP_VERSION, APP_VERSION_CODE, SCHEMA_VERSION, get_device_info
from .archive import ArchiveCodec, ArchiveContent
from .constants import (
    ArchiveMetadata,
    BackupCounts,
    BackupFailure,
    BackupFileInfo,
    BackupOptions,
    BackupPhase,
    BackupProgress,
    BackupResult,
    BackupSuccess,
    BlockName,
    InvalidReason,
    PreCheckResult,
    RestoreFailure,
    RestoreInvalid,
    RestoreOptions,
    RestorePhase,
    RestoreResult,
    RestoreSuccess,
)
from .errors import (
    BackupCancelledError,
    BackupInProgressError,
    BackupValidationError,
    CorruptedDataError,
)
from .exporter import BackupExporter
from .importer import BackupImporter
from .path_manager import PathManager
from .records import BackupData
from .serializer import BackupSerializer


Phase = Union[BackupPhase, RestorePhase]
ProgressSink = Callable[[BackupProgress], None]

BACKUP_PHASE_PROGRESS: Dict[BackupPhase, float] = {
    BackupPhase.INITIALIZING: 0.0,
    BackupPhase.EXPORTING_CATEGORIES: 0.05,
    BackupPhase.EXPORTING_ARTICLES: 0.15,
    BackupPhase.EXPORTING_INVENTORY: 0.25,
    BackupPhase.EXPORTING_MOVEMENTS: 0.35,
    BackupPhase.EXPORTING_ARTICLE_IMAGES: 0.45,
    BackupPhase.EXPORTING_SETTINGS: 0.50,
    BackupPhase.COPYING_IMAGE_FILES: 0.55,
    BackupPhase.SERIALIZING: 0.70,
    BackupPhase.COMPUTING_CHECKSUMS: 0.80,
    BackupPhase.ASSEMBLING_METADATA: 0.85,
    BackupPhase.RESOLVING_DESTINATION: 0.88,
    BackupPhase.CREATING_ZIP: 0.90,
    BackupPhase.FINALIZING: 0.95,
}

RESTORE_PHASE_PROGRESS: Dict[RestorePhase, float] = {
    RestorePhase.VALIDATING_ZIP: 0.05,
    RestorePhase.READING_METADATA: 0.10,
    RestorePhase.CHECKING_VERSION: 0.15,
    RestorePhase.VALIDATING_CHECKSUMS: 0.20,
    RestorePhase.SAFETY_BACKUP: 0.25,
    RestorePhase.DESERIALIZING: 0.30,
    RestorePhase.CLEARING_DATABASE: 0.40,
    RestorePhase.RESTORING_CATEGORIES: 0.50,
    RestorePhase.RESTORING_ARTICLES: 0.55,
    RestorePhase.RESTORING_INVENTORY: 0.60,
    RestorePhase.RESTORING_ARTICLE_IMAGES: 0.65,
    RestorePhase.RESTORING_MOVEMENTS: 0.70,
    RestorePhase.RESTORING_IMAGE_FILES: 0.80,
    RestorePhase.RESTORING_SETTINGS: 0.90,
    RestorePhase.FINALIZING: 0.95,
}

PHASE_MESSAGES: Dict[Phase, str] = {
    BackupPhase.INITIALIZING: "初始化...",
    BackupPhase.EXPORTING_CATEGORIES: "导出分类...",
    BackupPhase.EXPORTING_ARTICLES: "导出文章...",
    BackupPhase.EXPORTING_INVENTORY: "导出库存...",
    BackupPhase.EXPORTING_MOVEMENTS: "导出库存变动...",
    BackupPhase.EXPORTING_ARTICLE_IMAGES: "导出图片记录...",
    BackupPhase.EXPORTING_SETTINGS: "导出设置...",
    BackupPhase.COPYING_IMAGE_FILES: "复制图片文件...",
    BackupPhase.SERIALIZING: "序列化数据...",
    BackupPhase.COMPUTING_CHECKSUMS: "计算校验和...",
    BackupPhase.ASSEMBLING_METADATA: "生成元数据...",
    BackupPhase.RESOLVING_DESTINATION: "确定输出位置...",
    BackupPhase.CREATING_ZIP: "创建 ZIP 文件...",
    BackupPhase.FINALIZING: "完成备份...",
    RestorePhase.VALIDATING_ZIP: "校验 ZIP 结构...",
    RestorePhase.READING_METADATA: "读取备份...",
    RestorePhase.CHECKING_VERSION: "检查版本...",
    RestorePhase.VALIDATING_CHECKSUMS: "校验数据完整性...",
    RestorePhase.SAFETY_BACKUP: "创建安全备份...",
    RestorePhase.DESERIALIZING: "反序列化数据...",
    RestorePhase.CLEARING_DATABASE: "清空数据库...",
    RestorePhase.RESTORING_CATEGORIES: "恢复分类...",
    RestorePhase.RESTORING_ARTICLES: "恢复文章...",
    RestorePhase.RESTORING_INVENTORY: "恢复库存...",
    RestorePhase.RESTORING_ARTICLE_IMAGES: "恢复图片记录...",
    RestorePhase.RESTORING_MOVEMENTS: "恢复库存变动...",
    RestorePhase.RESTORING_IMAGE_FILES: "恢复图片文件...",
    RestorePhase.RESTORING_SETTINGS: "恢复设置...",
    RestorePhase.FINALIZING: "完成恢复...",
}

# 估算备份大小时每条记录的近似字节数
_ESTIMATED_RECORD_BYTES = {
    EntityKind.ARTICLES: 500,
    EntityKind.MOVEMENTS: 200,
    EntityKind.ARTICLE_IMAGES: 2048,
}
_ESTIMATED_COMPRESSION_RATIO = 0.5

_DONE = object()


class _PhaseTracker:
    """记录当前阶段、推送进度并在阶段边界检查取消标记"""

    def __init__(
        self,
        fractions: Dict,
        report: Optional[ProgressSink] = None,
        cancel: Optional[threading.Event] = None,
    ):
        self.fractions = fractions
        self.report = report
        self.cancel = cancel
        self.phase: Optional[Phase] = None
        self.cancellable = True

    def enter(self, phase: Phase, message: Optional[str] = None) -> None:
        if self.cancellable and self.cancel is not None and self.cancel.is_set():
            raise BackupCancelledError(f"操作已在 {phase.value} 阶段之前取消")
        self.phase = phase
        message = message or PHASE_MESSAGES[phase]
        logger.info(f"[{phase.value}] {message}")
        self.emit(message, self.fractions[phase])

    def emit(self, message: str, progress: float) -> None:
        if self.report is None:
            return
        stage = self.phase.value if self.phase is not None else ""
        self.report(BackupProgress(stage=stage, message=message, progress=progress))

    def begin_mutation(self) -> None:
        """开始修改状态之后不再响应取消"""
        self.cancellable = False


class BackupOrchestrator:
    """备份编排器

    特性：
    - 备份与恢复共用一把互斥锁，忙碌时立即返回失败
    - 创建失败时删除未完成的归档
    - 恢复前的所有校验都在修改状态之前完成
    - 实体清空与重新写入在同一事务中执行
    """

    def __init__(
        self,
        entity_store: EntityStore,
        asset_store: AssetStore,
        settings_store: SettingsStore,
        path_manager: PathManager,
        max_backups: int = 0,
        device_info: Optional[str] = None,
        schema_version: int = SCHEMA_VERSION,
        default_backup_options: Optional[BackupOptions] = None,
        default_restore_options: Optional[RestoreOptions] = None,
    ):
        """初始化编排器

        Args:
            entity_store: 实体存储
            asset_store: 图片存储
            settings_store: 设置存储
            path_manager: 路径管理器（提供默认输出目录）
            max_backups: 默认目录中保留的最大备份数，0 表示不清理
            device_info: 写入元数据的设备描述，None 时自动获取
            schema_version: 当前 Schema 版本
            default_backup_options: 未指定选项时使用的备份选项
            default_restore_options: 未指定选项时使用的恢复选项
        """
        self.entity_store = entity_store
        self.asset_store = asset_store
        self.settings_store = settings_store
        self.path_manager = path_manager
        self.max_backups = max_backups
        self.device_info = device_info if device_info is not None else get_device_info()
        self.schema_version = schema_version
        self.default_backup_options = default_backup_options or BackupOptions()
        self.default_restore_options = default_restore_options or RestoreOptions()

        self.serializer = BackupSerializer()
        self.codec = ArchiveCodec()
        self.exporter = BackupExporter(
            entity_store, asset_store, settings_store, self.serializer
        )
        self.importer = BackupImporter(
            entity_store, asset_store, settings_store, self.serializer
        )

        self._lock = asyncio.Lock()
        self._tasks: Set[asyncio.Task] = set()

    @property
    def backups_dir(self) -> Path:
        return self.path_manager.paths.backups_dir

    def is_busy(self) -> bool:
        """是否有备份或恢复操作正在进行"""
        return self._lock.locked()

    async def wait_idle(self) -> None:
        """等待所有已启动的操作（包括被调用方放弃的）结束"""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ============================================
    # 流式接口
    # ============================================

    async def create_backup(
        self, options: Optional[BackupOptions] = None
    ) -> AsyncIterator[Union[BackupProgress, BackupResult]]:
        """创建备份

        依次产出 BackupProgress，最后一项是 BackupSuccess 或 BackupFailure。
        提前停止迭代时，备份会在下一个阶段边界停止并删除未完成的文件。

        Args:
            options: 备份选项

        Yields:
            进度快照，最后是操作结果
        """
        options = options or self.default_backup_options

        def work(report: ProgressSink, cancel: threading.Event) -> BackupResult:
            tracker = _PhaseTracker(BACKUP_PHASE_PROGRESS, report, cancel)
            return self._create_backup_blocking(options, tracker)

        busy = BackupFailure(BackupInProgressError(), BackupPhase.INITIALIZING)
        async with aclosing(self._stream(work, busy)) as stream:
            async for item in stream:
                yield item

    async def restore_backup(
        self, archive_path: Union[str, Path], options: Optional[RestoreOptions] = None
    ) -> AsyncIterator[Union[BackupProgress, RestoreResult]]:
        """从备份恢复

        依次产出 BackupProgress，最后一项是 RestoreSuccess、RestoreFailure
        或 RestoreInvalid。提前停止迭代时，只有尚未开始修改状态的恢复会停止。

        Args:
            archive_path: 备份文件路径
            options: 恢复选项

        Yields:
            进度快照，最后是操作结果
        """
        options = options or self.default_restore_options
        archive_path = Path(archive_path)

        def work(report: ProgressSink, cancel: threading.Event) -> RestoreResult:
            tracker = _PhaseTracker(RESTORE_PHASE_PROGRESS, report, cancel)
            return self._restore_blocking(archive_path, options, tracker)

        busy = RestoreFailure(
            BackupInProgressError(), RestorePhase.VALIDATING_ZIP, rollback_successful=True
        )
        async with aclosing(self._stream(work, busy)) as stream:
            async for item in stream:
                yield item

    async def run_backup(
        self,
        options: Optional[BackupOptions] = None,
        on_progress: Optional[ProgressSink] = None,
    ) -> BackupResult:
        """创建备份并等待结果"""
        return await self._collect(self.create_backup(options), on_progress)

    async def run_restore(
        self,
        archive_path: Union[str, Path],
        options: Optional[RestoreOptions] = None,
        on_progress: Optional[ProgressSink] = None,
    ) -> RestoreResult:
        """从备份恢复并等待结果"""
        return await self._collect(
            self.restore_backup(archive_path, options), on_progress
        )

    async def _collect(self, stream, on_progress: Optional[ProgressSink]):
        result = None
        async for item in stream:
            if isinstance(item, BackupProgress):
                if on_progress is not None:
                    on_progress(item)
            else:
                result = item
        return result

    async def _stream(self, work, busy_result):
        """在工作线程中运行 work，并把进度转发为异步生成器"""
        if self._lock.locked():
            logger.warning("已有备份或恢复操作在进行中，拒绝新的请求")
            yield busy_result
            return

        await self._lock.acquire()
        loop = asyncio.get_running_loop()
        queue: asyncio.Queue = asyncio.Queue()
        cancel = threading.Event()

        def report(progress: BackupProgress) -> None:
            loop.call_soon_threadsafe(queue.put_nowait, progress)

        async def run():
            try:
                return await asyncio.to_thread(work, report, cancel)
            finally:
                self._lock.release()
                queue.put_nowait(_DONE)

        task = asyncio.create_task(run())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

        try:
            while True:
                item = await queue.get()
                if item is _DONE:
                    break
                yield item
            yield task.result()
        finally:
            if not task.done():
                cancel.set()
                logger.info("进度流已被放弃，操作将在下一个阶段边界停止")

    # ============================================
    # 备份创建
    # ============================================

    def _create_backup_blocking(
        self,
        options: BackupOptions,
        tracker: _PhaseTracker,
        apply_retention: bool = True,
    ) -> BackupResult:
        output_file: Optional[Path] = None
        try:
            tracker.enter(BackupPhase.INITIALIZING)
            exporter = self.exporter

            tracker.enter(BackupPhase.EXPORTING_CATEGORIES)
            categories = exporter.export_all(EntityKind.CATEGORIES)
            tracker.enter(BackupPhase.EXPORTING_ARTICLES)
            articles = exporter.export_all(EntityKind.ARTICLES)
            tracker.enter(BackupPhase.EXPORTING_INVENTORY)
            inventory = exporter.export_all(EntityKind.INVENTORY)
            tracker.enter(BackupPhase.EXPORTING_MOVEMENTS)
            movements = exporter.export_all(EntityKind.MOVEMENTS)
            tracker.enter(BackupPhase.EXPORTING_ARTICLE_IMAGES)
            images = exporter.export_all(
                EntityKind.ARTICLE_IMAGES, include_features=options.include_features
            )
            tracker.enter(BackupPhase.EXPORTING_SETTINGS)
            display, recognition = exporter.export_settings()

            tracker.enter(BackupPhase.COPYING_IMAGE_FILES)
            image_files, manifest = exporter.collect_image_files(images)

            data = BackupData(
                categories=categories,
                articles=articles,
                inventory=inventory,
                movements=movements,
                article_images=images,
                display_settings=display,
                recognition_settings=recognition,
            )

            tracker.enter(BackupPhase.SERIALIZING)
            blocks = exporter.serialize_blocks(data)

            tracker.enter(BackupPhase.COMPUTING_CHECKSUMS)
            checksums = exporter.compute_checksums(blocks, manifest)

            tracker.enter(BackupPhase.ASSEMBLING_METADATA)
            metadata = ArchiveMetadata(
                app_version=APP_VERSION,
                app_version_code=APP_VERSION_CODE,
                db_version=self.schema_version,
                backup_date=utc_timestamp_iso(),
                device_info=self.device_info,
                counts=BackupCounts(
                    categories=len(categories),
                    articles=len(articles),
                    inventory=len(inventory),
                    movements=len(movements),
                    article_images=len(images),
                    image_files=len(image_files),
                ),
                checksums=checksums,
                images_manifest=manifest,
            )
            metadata_json = self.serializer.serialize_metadata(metadata)

            tracker.enter(BackupPhase.RESOLVING_DESTINATION)
            directory = ensure_dir(options.destination_dir or self.backups_dir)
            target = self.codec.resolve_output_file(directory)

            tracker.enter(BackupPhase.CREATING_ZIP)
            output_file = self.codec.write_archive(
                target,
                blocks,
                image_files,
                metadata_json,
                compression_level=options.compression_level,
            )

            tracker.enter(BackupPhase.FINALIZING)
            size_bytes = output_file.stat().st_size
            if (
                apply_retention
                and self.max_backups > 0
                and directory == self.backups_dir
            ):
                self.path_manager.cleanup_old_backups(self.max_backups, directory)

            tracker.emit("备份完成", 1.0)
            logger.info(
                f"备份创建成功: {output_file.name} "
                f"({self.path_manager.format_size(size_bytes)})"
            )
            return BackupSuccess(
                archive_path=output_file, metadata=metadata, size_bytes=size_bytes
            )

        except Exception as e:
            phase = tracker.phase or BackupPhase.INITIALIZING
            if output_file is not None:
                output_file.unlink(missing_ok=True)
            if isinstance(e, BackupCancelledError):
                logger.warning(f"备份已取消: {e}")
            else:
                logger.error(f"备份失败（{phase.value}）: {e}")
            return BackupFailure(error=e, phase=phase)

    def attempt_safety_backup(self) -> Optional[Path]:
        """恢复前创建安全备份

        失败只记录日志，不会阻止恢复。不执行保留数量清理，
        以免删除正在恢复的归档

        Returns:
            安全备份路径，失败时为 None
        """
        try:
            result = self._create_backup_blocking(
                BackupOptions(),
                _PhaseTracker(BACKUP_PHASE_PROGRESS),
                apply_retention=False,
            )
        except Exception as e:
            logger.warning(f"安全备份失败（已忽略）: {e}")
            return None

        if isinstance(result, BackupSuccess):
            logger.info(f"安全备份已创建: {result.archive_path}")
            return result.archive_path
        logger.warning(f"安全备份失败（已忽略）: {result.error}")
        return None

    # ============================================
    # 恢复
    # ============================================

    def _restore_blocking(
        self, archive_path: Path, options: RestoreOptions, tracker: _PhaseTracker
    ) -> RestoreResult:
        try:
            tracker.enter(RestorePhase.VALIDATING_ZIP)
            reason = self.codec.validate_structure(archive_path)
            if reason is not None:
                return self._invalid(reason)

            tracker.enter(RestorePhase.READING_METADATA)
            try:
                content = self.codec.read_archive(archive_path)
            except CorruptedDataError as e:
                return self._invalid(InvalidReason.corrupted_data(e.block, e.details))
            try:
                metadata = self.serializer.deserialize_metadata(content.metadata_json)
            except CorruptedDataError as e:
                return self._invalid(InvalidReason.missing_metadata(e.details))

            tracker.enter(RestorePhase.CHECKING_VERSION)
            if not metadata.is_compatible(self.schema_version):
                return self._invalid(
                    InvalidReason.incompatible_version(
                        metadata.db_version, self.schema_version
                    )
                )
            warnings: List[str] = []
            if metadata.db_version < self.schema_version:
                warnings.append(
                    f"备份版本 ({metadata.db_version}) 低于当前版本 "
                    f"({self.schema_version})，数据按原样恢复"
                )

            if options.verify_checksums:
                tracker.enter(RestorePhase.VALIDATING_CHECKSUMS)
                reason = self._verify_checksums(content, metadata)
                if reason is not None:
                    return self._invalid(reason)
            reason = self._verify_manifest(content, metadata, options.verify_checksums)
            if reason is not None:
                return self._invalid(reason)

            safety_backup = None
            if options.create_backup_before_restore:
                tracker.enter(RestorePhase.SAFETY_BACKUP)
                safety_backup = self.attempt_safety_backup()
                if safety_backup is None:
                    warnings.append("安全备份创建失败")

            tracker.enter(RestorePhase.DESERIALIZING)
            try:
                data = self.importer.deserialize_all(content.blocks)
                self.importer.check_references(data)
            except CorruptedDataError as e:
                return self._invalid(InvalidReason.corrupted_data(e.block, e.details))

        except Exception as e:
            # 尚未修改任何状态
            phase = tracker.phase or RestorePhase.VALIDATING_ZIP
            if isinstance(e, BackupCancelledError):
                logger.warning(f"恢复已取消: {e}")
            else:
                logger.error(f"恢复失败（{phase.value}）: {e}")
            return RestoreFailure(error=e, phase=phase, rollback_successful=True)

        tracker.begin_mutation()
        try:
            restored = self.importer.restore_entities(data, on_phase=tracker.enter)
        except Exception as e:
            rolled_back = self.entity_store.supports_transactions
            logger.error(
                f"恢复失败（{tracker.phase.value}）: {e}，"
                f"{'数据库已回滚' if rolled_back else '无法回滚'}"
            )
            return RestoreFailure(
                error=e, phase=tracker.phase, rollback_successful=rolled_back
            )

        try:
            tracker.enter(RestorePhase.RESTORING_IMAGE_FILES)
            image_count = self.importer.restore_assets(content.image_files)

            tracker.enter(RestorePhase.RESTORING_SETTINGS)
            self.importer.restore_settings(
                data.display_settings, data.recognition_settings
            )

            tracker.enter(RestorePhase.FINALIZING)
        except Exception as e:
            logger.error(f"恢复失败（{tracker.phase.value}）: {e}，数据库已提交，无法回滚")
            return RestoreFailure(
                error=e, phase=tracker.phase, rollback_successful=False
            )

        tracker.emit("恢复完成", 1.0)
        logger.info(f"恢复完成: {archive_path.name}")
        return RestoreSuccess(
            metadata=metadata,
            restored_counts=self.importer.counts_of(restored, image_count),
            safety_backup=safety_backup,
            warnings=warnings,
        )

    def _invalid(self, reason: InvalidReason) -> RestoreInvalid:
        logger.warning(f"备份无效: {reason}")
        return RestoreInvalid(reason=reason)

    def _verify_checksums(
        self, content: ArchiveContent, metadata: ArchiveMetadata
    ) -> Optional[InvalidReason]:
        """按顺序校验每个数据块，遇到第一个不匹配即返回"""
        for block, raw in content.blocks.items():
            if not self.serializer.verify_checksum(
                raw, metadata.checksums.for_block(block)
            ):
                return InvalidReason.checksum_mismatch(block.value)
        return None

    def _verify_manifest(
        self,
        content: ArchiveContent,
        metadata: ArchiveMetadata,
        verify_checksum: bool = True,
    ) -> Optional[InvalidReason]:
        """清单中的图片必须都在归档中，清单本身的校验和必须匹配"""
        missing = [p for p in metadata.images_manifest if p not in content.image_files]
        if missing:
            return InvalidReason.missing_images(missing)
        if verify_checksum and not self.serializer.verify_checksum(
            "\n".join(sorted(metadata.images_manifest)),
            metadata.checksums.images_manifest,
        ):
            return InvalidReason.checksum_mismatch(BlockName.IMAGES_MANIFEST.value)
        return None

    # ============================================
    # 工具方法
    # ============================================

    async def pre_check_backup(self, archive_path: Union[str, Path]) -> PreCheckResult:
        """恢复前预检查（结构、元数据和版本，不修改任何状态）"""
        return await asyncio.to_thread(self._pre_check_blocking, Path(archive_path))

    def _pre_check_blocking(self, archive_path: Path) -> PreCheckResult:
        result = PreCheckResult(current_version=self.schema_version)

        if not archive_path.is_file():
            result.reason = InvalidReason.invalid_archive(f"文件不存在: {archive_path}")
            return result

        reason = self.codec.validate_structure(archive_path)
        if reason is not None:
            result.reason = reason
            return result

        try:
            metadata = self.serializer.deserialize_metadata(
                self.codec.read_metadata(archive_path) or ""
            )
        except CorruptedDataError as e:
            result.reason = InvalidReason.missing_metadata(e.details)
            return result

        result.valid = True
        result.metadata = metadata
        result.backup_version = metadata.db_version
        result.backup_time = metadata.backup_date

        if metadata.db_version > self.schema_version:
            result.version_status = "newer"
            result.reason = InvalidReason.incompatible_version(
                metadata.db_version, self.schema_version
            )
        elif metadata.db_version < self.schema_version:
            result.version_status = "older"
            result.can_import = True
            result.warnings.append(
                f"备份来自旧版本 (Schema {metadata.db_version})，将按原样恢复"
            )
        else:
            result.version_status = "match"
            result.can_import = True

        return result

    async def validate_backup(self, archive_path: Union[str, Path]) -> ArchiveMetadata:
        """校验备份结构并读取元数据

        Raises:
            BackupValidationError: 备份无效
        """
        return await asyncio.to_thread(self._validate_blocking, Path(archive_path))

    def _validate_blocking(self, archive_path: Path) -> ArchiveMetadata:
        reason = self.codec.validate_structure(archive_path)
        if reason is not None:
            raise BackupValidationError(reason)
        try:
            return self.serializer.deserialize_metadata(
                self.codec.read_metadata(archive_path) or ""
            )
        except CorruptedDataError as e:
            raise BackupValidationError(InvalidReason.missing_metadata(e.details)) from e

    async def get_available_backups(
        self, directory: Optional[Path] = None
    ) -> List[BackupFileInfo]:
        """列出备份文件（最新的在前），无效的备份 metadata 为 None"""
        return await asyncio.to_thread(self._list_blocking, directory)

    def _list_blocking(self, directory: Optional[Path]) -> List[BackupFileInfo]:
        backups = []
        for path in self.path_manager.get_backup_list(directory):
            try:
                metadata = self._validate_blocking(path)
            except BackupValidationError as e:
                logger.debug(f"无效的备份 {path.name}: {e}")
                metadata = None
            stat = path.stat()
            backups.append(
                BackupFileInfo(
                    path=path,
                    metadata=metadata,
                    size_bytes=stat.st_size,
                    last_modified=stat.st_mtime,
                )
            )
        return backups

    async def delete_backup(self, archive_path: Union[str, Path]) -> bool:
        """删除备份文件（只删除备份文件名格式的文件）"""
        archive_path = Path(archive_path)
        if not self.codec.is_backup_file(archive_path):
            logger.warning(f"不是备份文件，拒绝删除: {archive_path}")
            return False
        try:
            await asyncio.to_thread(archive_path.unlink)
        except OSError as e:
            logger.error(f"删除备份 {archive_path.name} 失败: {e}")
            return False
        logger.info(f"已删除备份: {archive_path.name}")
        return True

    async def estimate_backup_size(self) -> int:
        """估算压缩后的备份大小（字节）"""
        return await asyncio.to_thread(self._estimate_blocking)

    def _estimate_blocking(self) -> int:
        estimated = 0
        for kind, size in _ESTIMATED_RECORD_BYTES.items():
            estimated += self.entity_store.count(kind) * size
        estimated += self.asset_store.used_space()
        return int(estimated * _ESTIMATED_COMPRESSION_RATIO)

    async def cleanup_old_backups(self, max_backups: Optional[int] = None) -> List[str]:
        """按保留数量清理默认目录中的旧备份"""
        limit = self.max_backups if max_backups is None else max_backups
        return await asyncio.to_thread(self.path_manager.cleanup_old_backups, limit)


__all__ = [
    "BackupOrchestrator",
    "BACKUP_PHASE_PROGRESS",
    "RESTORE_PHASE_PROGRESS",
]
