"""备份编排器测试

测试备份创建、恢复流水线、校验门禁、并发保护和进度流
"""

import json
import zipfile

import pytest

from conftest import (
    IMAGE_PATHS,
    FailingEntityStore,
    GatedEntityStore,
    rewrite_archive,
    snapshot,
)
from qstore.core.backup import (
    ArchiveMetadata,
    BackupCancelledError,
    BackupError,
    BackupFailure,
    BackupInProgressError,
    BackupOptions,
    BackupOrchestrator,
    BackupPhase,
    BackupProgress,
    BackupSuccess,
    BackupValidationError,
    BlockName,
    RestoreFailure,
    RestoreInvalid,
    RestoreOptions,
    RestorePhase,
    RestoreSuccess,
    ValidationErrorType,
)
from qstore.core.backup.archive import BACKUP_FILE_PREFIX, BLOCK_FILES, METADATA_FILE
from qstore.core.version import SCHEMA_VERSION
from qstore.storage import EntityKind


NO_SAFETY = RestoreOptions(create_backup_before_restore=False)


def mutate(entity_store, asset_store, settings_store):
    """把当前状态改成与预置数据不同的内容"""
    entity_store.wipe_all()
    entity_store.insert(
        EntityKind.CATEGORIES,
        {
            "uuid": "other",
            "name": "Other",
            "description": "",
            "notes": "",
            "created_at": 1,
            "updated_at": 1,
        },
    )
    asset_store.delete_all()
    asset_store.write("stale/file.jpg", b"stale")
    settings_store.set_display_settings({"article_card_style": "MINIMAL", "grid_columns": 3})
    settings_store.apply_preset("fast")


def archive_names(path):
    with zipfile.ZipFile(path) as zf:
        return set(zf.namelist())


def edit_metadata(source, target, edit):
    """修改归档中的 metadata.json"""

    def transform(data):
        metadata = json.loads(data.decode("utf-8"))
        edit(metadata)
        return json.dumps(metadata).encode("utf-8")

    return rewrite_archive(source, target, transform={METADATA_FILE: transform})


def append_space(data):
    """追加空白，仍是有效的 UTF-8 和 JSON"""
    return data + b" "


def flip_high_bit(data):
    """翻转第二个字节的最高位，结果不再是有效的 UTF-8"""
    flipped = bytearray(data)
    flipped[1] ^= 0x80
    return bytes(flipped)


def reseal_block(source, target, orchestrator, entry_name, block, edit):
    """修改数据块内容并重新计算元数据中的校验和"""
    intermediate = target.with_name(target.stem + ".tmp.zip")

    def transform(data):
        edited = edit(json.loads(data.decode("utf-8")))
        return json.dumps(edited, ensure_ascii=False, indent=2).encode("utf-8")

    rewrite_archive(source, intermediate, transform={entry_name: transform})
    with zipfile.ZipFile(intermediate) as zf:
        checksum = orchestrator.serializer.calculate_checksum(zf.read(entry_name))
    edit_metadata(
        intermediate,
        target,
        lambda m: m["checksums"].update({block.value: checksum}),
    )
    intermediate.unlink()
    return target


class TestCreateBackup:
    """测试备份创建"""

    @pytest.mark.asyncio
    async def test_create_backup_success(self, orchestrator, path_manager):
        """测试创建备份并检查元数据"""
        result = await orchestrator.run_backup()

        assert isinstance(result, BackupSuccess)
        assert result.success
        assert result.archive_path.exists()
        assert result.archive_path.parent == path_manager.paths.backups_dir
        assert result.archive_path.name.startswith(BACKUP_FILE_PREFIX)
        assert result.size_bytes == result.archive_path.stat().st_size

        metadata = result.metadata
        assert metadata.counts.as_tuple() == (3, 10, 10, 25, 4)
        assert metadata.counts.image_files == 4
        assert metadata.images_manifest == sorted(IMAGE_PATHS)
        assert metadata.db_version == SCHEMA_VERSION
        assert metadata.device_info == "pytest"
        assert metadata.backup_date.endswith("Z")

        # 没有遗留的临时文件
        assert not list(path_manager.paths.backups_dir.glob("*.part"))

    @pytest.mark.asyncio
    async def test_archive_layout(self, orchestrator):
        """测试归档条目布局"""
        result = await orchestrator.run_backup()
        names = archive_names(result.archive_path)

        assert {
            "metadata.json",
            "data/categories.json",
            "data/articles.json",
            "data/inventory.json",
            "data/movements.json",
            "data/article_images.json",
            "settings/display_settings.json",
            "settings/recognition_settings.json",
        } <= names
        assert {f"images/{p}" for p in IMAGE_PATHS} <= names

        with zipfile.ZipFile(result.archive_path) as zf:
            # 元数据最后写入
            assert zf.namelist()[-1] == "metadata.json"
            stored = ArchiveMetadata.model_validate_json(zf.read("metadata.json"))
        assert stored == result.metadata

    @pytest.mark.asyncio
    async def test_progress_stream(self, orchestrator):
        """测试进度流：阶段顺序、进度单调递增，最后一项是结果"""
        items = [item async for item in orchestrator.create_backup()]

        assert isinstance(items[-1], BackupSuccess)
        progress = items[:-1]
        assert all(isinstance(p, BackupProgress) for p in progress)

        fractions = [p.progress for p in progress]
        assert fractions == sorted(fractions)
        assert all(0.0 <= f <= 1.0 for f in fractions)
        assert fractions[-1] == 1.0

        stages = []
        for p in progress:
            if not stages or stages[-1] != p.stage:
                stages.append(p.stage)
        assert stages == [phase.value for phase in BackupPhase]

    @pytest.mark.asyncio
    async def test_checksums_are_deterministic(self, orchestrator):
        """测试数据不变时两次备份的校验和一致"""
        first = await orchestrator.run_backup()
        second = await orchestrator.run_backup()

        assert first.metadata.checksums == second.metadata.checksums
        assert first.archive_path != second.archive_path
        assert first.archive_path.exists() and second.archive_path.exists()

    @pytest.mark.asyncio
    async def test_missing_assets_are_skipped(self, orchestrator, asset_store, path_manager):
        """测试找不到的图片被跳过，不进入归档也不进入清单"""
        (path_manager.paths.assets_dir / IMAGE_PATHS[1]).unlink()

        result = await orchestrator.run_backup()

        assert result.success
        assert result.metadata.counts.article_images == 4
        assert result.metadata.counts.image_files == 3
        assert IMAGE_PATHS[1] not in result.metadata.images_manifest
        assert f"images/{IMAGE_PATHS[1]}" not in archive_names(result.archive_path)

        restored = await orchestrator.run_restore(result.archive_path, NO_SAFETY)
        assert isinstance(restored, RestoreSuccess)
        assert restored.restored_counts.image_files == 3

    @pytest.mark.asyncio
    async def test_custom_destination(self, orchestrator, data_dir):
        """测试指定输出目录"""
        destination = data_dir / "elsewhere"
        result = await orchestrator.run_backup(BackupOptions(destination_dir=destination))

        assert result.success
        assert result.archive_path.parent == destination

    @pytest.mark.asyncio
    async def test_without_features(self, orchestrator, entity_store):
        """测试不包含特征数据的备份"""
        result = await orchestrator.run_backup(BackupOptions(include_features=False))

        with zipfile.ZipFile(result.archive_path) as zf:
            images = json.loads(zf.read("data/article_images.json"))
        assert all(image["featuresDataBase64"] == "" for image in images)

        await orchestrator.run_restore(result.archive_path, NO_SAFETY)
        rows = entity_store.read_all(EntityKind.ARTICLE_IMAGES)
        assert len(rows) == 4
        assert all(not row["features_data"] for row in rows)

    @pytest.mark.asyncio
    async def test_failure_removes_partial_archive(self, orchestrator, path_manager):
        """测试写入失败时返回失败阶段并删除未完成的文件"""

        def broken_write(*args, **kwargs):
            raise OSError("磁盘已满")

        orchestrator.codec.write_archive = broken_write
        result = await orchestrator.run_backup()

        assert isinstance(result, BackupFailure)
        assert result.phase == BackupPhase.CREATING_ZIP
        assert isinstance(result.error, OSError)
        assert not any(path_manager.paths.backups_dir.iterdir())

    @pytest.mark.asyncio
    async def test_retention(self, populated, path_manager):
        """测试创建后按数量保留备份"""
        orchestrator = BackupOrchestrator(*populated, path_manager, max_backups=2)

        first = await orchestrator.run_backup()
        second = await orchestrator.run_backup()
        third = await orchestrator.run_backup()

        assert not first.archive_path.exists()
        assert second.archive_path.exists()
        assert third.archive_path.exists()
        assert len(path_manager.get_backup_list()) == 2


class TestRestoreBackup:
    """测试恢复流水线"""

    @pytest.mark.asyncio
    async def test_round_trip(self, orchestrator, populated):
        """测试备份后修改数据，再恢复得到原来的状态"""
        before = snapshot(*populated)
        backup = await orchestrator.run_backup()

        mutate(*populated)
        assert snapshot(*populated) != before

        result = await orchestrator.run_restore(backup.archive_path, NO_SAFETY)

        assert isinstance(result, RestoreSuccess)
        assert result.restored_counts.as_tuple() == (3, 10, 10, 25, 4)
        assert result.restored_counts.image_files == 4
        assert result.metadata == backup.metadata
        assert result.safety_backup is None
        assert snapshot(*populated) == before

    @pytest.mark.asyncio
    async def test_surrogate_keys_are_reassigned(self, orchestrator, entity_store):
        """测试图片记录和变动由存储重新分配代理键"""
        backup = await orchestrator.run_backup()
        old_ids = [row["id"] for row in entity_store.read_all(EntityKind.MOVEMENTS)]

        await orchestrator.run_restore(backup.archive_path, NO_SAFETY)
        new_ids = [row["id"] for row in entity_store.read_all(EntityKind.MOVEMENTS)]

        assert len(new_ids) == 25
        assert not set(old_ids) & set(new_ids)

    @pytest.mark.asyncio
    async def test_restore_progress_stream(self, orchestrator):
        """测试恢复进度流"""
        backup = await orchestrator.run_backup()
        items = [item async for item in orchestrator.restore_backup(backup.archive_path)]

        assert isinstance(items[-1], RestoreSuccess)
        fractions = [p.progress for p in items[:-1]]
        assert fractions == sorted(fractions)
        assert fractions[-1] == 1.0

        stages = {p.stage for p in items[:-1]}
        assert {phase.value for phase in RestorePhase} == stages

    @pytest.mark.asyncio
    @pytest.mark.parametrize("block,entry_name", list(BLOCK_FILES.items()))
    @pytest.mark.parametrize(
        "tamper",
        [append_space, flip_high_bit],
        ids=["still_utf8", "invalid_utf8"],
    )
    async def test_tampered_block_is_rejected(
        self, orchestrator, populated, data_dir, block, entry_name, tamper
    ):
        """测试任一数据块被篡改时报告校验和不匹配，且不修改状态"""
        backup = await orchestrator.run_backup()
        tampered = rewrite_archive(
            backup.archive_path,
            data_dir / "tampered.zip",
            transform={entry_name: tamper},
        )
        mutate(*populated)
        before = snapshot(*populated)

        result = await orchestrator.run_restore(tampered)

        assert isinstance(result, RestoreInvalid)
        assert result.reason.type == ValidationErrorType.CHECKSUM_MISMATCH
        assert result.reason.component == block.value
        assert snapshot(*populated) == before

    @pytest.mark.asyncio
    async def test_invalid_utf8_without_verification_is_corrupted_data(
        self, orchestrator, populated, data_dir
    ):
        """测试关闭校验时，非 UTF-8 数据块在解析时报告数据损坏"""
        backup = await orchestrator.run_backup()
        broken = rewrite_archive(
            backup.archive_path,
            data_dir / "broken.zip",
            transform={"data/articles.json": flip_high_bit},
        )
        before = snapshot(*populated)

        result = await orchestrator.run_restore(
            broken, RestoreOptions(verify_checksums=False, create_backup_before_restore=False)
        )

        assert isinstance(result, RestoreInvalid)
        assert result.reason.type == ValidationErrorType.CORRUPTED_DATA
        assert result.reason.component == "articles"
        assert snapshot(*populated) == before

    @pytest.mark.asyncio
    async def test_tampered_block_accepted_without_verification(
        self, orchestrator, entity_store, data_dir
    ):
        """测试关闭校验时篡改后的数据被原样恢复"""
        backup = await orchestrator.run_backup()
        tampered = rewrite_archive(
            backup.archive_path,
            data_dir / "tampered.zip",
            transform={
                "data/articles.json": lambda d: d.replace(b"Articolo 5", b"Articolo V", 1)
            },
        )

        result = await orchestrator.run_restore(
            tampered, RestoreOptions(verify_checksums=False, create_backup_before_restore=False)
        )

        assert result.success
        names = [row["name"] for row in entity_store.read_all(EntityKind.ARTICLES)]
        assert "Articolo V" in names

    @pytest.mark.asyncio
    async def test_newer_schema_is_rejected(self, orchestrator, populated, data_dir, path_manager):
        """测试备份 Schema 版本高于当前版本时拒绝，且不创建安全备份"""
        backup = await orchestrator.run_backup()
        newer = edit_metadata(
            backup.archive_path,
            data_dir / "newer.zip",
            lambda m: m.update(dbVersion=SCHEMA_VERSION + 1),
        )
        before = snapshot(*populated)

        result = await orchestrator.run_restore(newer)

        assert isinstance(result, RestoreInvalid)
        assert result.reason.type == ValidationErrorType.INCOMPATIBLE_VERSION
        assert result.reason.backup_version == SCHEMA_VERSION + 1
        assert result.reason.current_version == SCHEMA_VERSION
        assert snapshot(*populated) == before
        assert path_manager.get_backup_list() == [backup.archive_path]

    @pytest.mark.asyncio
    async def test_older_schema_is_accepted(self, populated, path_manager):
        """测试旧版本备份可以恢复，并带有警告"""
        old = BackupOrchestrator(*populated, path_manager, schema_version=SCHEMA_VERSION)
        current = BackupOrchestrator(
            *populated, path_manager, schema_version=SCHEMA_VERSION + 1
        )
        backup = await old.run_backup()

        result = await current.run_restore(backup.archive_path, NO_SAFETY)

        assert isinstance(result, RestoreSuccess)
        assert result.warnings

    @pytest.mark.asyncio
    async def test_missing_entry_is_rejected(self, orchestrator, populated, data_dir):
        """测试缺少数据文件时拒绝恢复"""
        backup = await orchestrator.run_backup()
        broken = rewrite_archive(
            backup.archive_path,
            data_dir / "broken.zip",
            changes={"data/inventory.json": None},
        )
        before = snapshot(*populated)

        result = await orchestrator.run_restore(broken)

        assert isinstance(result, RestoreInvalid)
        assert result.reason.type == ValidationErrorType.MISSING_DATA_FILES
        assert result.reason.missing_files == ["data/inventory.json"]
        assert snapshot(*populated) == before

    @pytest.mark.asyncio
    async def test_not_a_zip_is_rejected(self, orchestrator, data_dir):
        """测试无法打开的文件"""
        bogus = data_dir / "bogus.zip"
        bogus.write_bytes(b"not a zip file")

        result = await orchestrator.run_restore(bogus)

        assert isinstance(result, RestoreInvalid)
        assert result.reason.type == ValidationErrorType.INVALID_ARCHIVE

    @pytest.mark.asyncio
    async def test_unreadable_metadata_is_rejected(self, orchestrator, data_dir):
        """测试元数据无法解析"""
        backup = await orchestrator.run_backup()
        broken = rewrite_archive(
            backup.archive_path, data_dir / "broken.zip", changes={METADATA_FILE: b"{oops"}
        )

        result = await orchestrator.run_restore(broken)

        assert isinstance(result, RestoreInvalid)
        assert result.reason.type == ValidationErrorType.MISSING_METADATA

    @pytest.mark.asyncio
    async def test_missing_image_entry_is_rejected(self, orchestrator, data_dir):
        """测试清单中的图片在归档中缺失"""
        backup = await orchestrator.run_backup()
        broken = rewrite_archive(
            backup.archive_path,
            data_dir / "broken.zip",
            changes={f"images/{IMAGE_PATHS[2]}": None},
        )

        result = await orchestrator.run_restore(broken)

        assert isinstance(result, RestoreInvalid)
        assert result.reason.type == ValidationErrorType.MISSING_IMAGES
        assert result.reason.missing_paths == [IMAGE_PATHS[2]]

    @pytest.mark.asyncio
    async def test_manifest_checksum_mismatch(self, orchestrator, data_dir):
        """测试清单被修改后校验和不匹配"""
        backup = await orchestrator.run_backup()
        broken = edit_metadata(
            backup.archive_path,
            data_dir / "broken.zip",
            lambda m: m["imagesManifest"].pop(),
        )

        result = await orchestrator.run_restore(broken)

        assert isinstance(result, RestoreInvalid)
        assert result.reason.type == ValidationErrorType.CHECKSUM_MISMATCH
        assert result.reason.component == "imagesManifest"

    @pytest.mark.asyncio
    async def test_malformed_block_is_corrupted_data(self, orchestrator, populated, data_dir):
        """测试数据块不是有效 JSON"""
        backup = await orchestrator.run_backup()
        broken = rewrite_archive(
            backup.archive_path,
            data_dir / "broken.zip",
            changes={"data/movements.json": b"[{"},
        )
        before = snapshot(*populated)

        result = await orchestrator.run_restore(
            broken, RestoreOptions(verify_checksums=False, create_backup_before_restore=False)
        )

        assert isinstance(result, RestoreInvalid)
        assert result.reason.type == ValidationErrorType.CORRUPTED_DATA
        assert result.reason.component == "movements"
        assert snapshot(*populated) == before

    @pytest.mark.asyncio
    async def test_dangling_reference_is_corrupted_data(
        self, orchestrator, populated, data_dir
    ):
        """测试文章引用了备份中不存在的分类"""
        backup = await orchestrator.run_backup()

        def orphan(data):
            articles = json.loads(data.decode("utf-8"))
            articles[0]["categoryId"] = "missing"
            return json.dumps(articles).encode("utf-8")

        broken = rewrite_archive(
            backup.archive_path,
            data_dir / "broken.zip",
            transform={"data/articles.json": orphan},
        )
        before = snapshot(*populated)

        result = await orchestrator.run_restore(
            broken, RestoreOptions(verify_checksums=False, create_backup_before_restore=False)
        )

        assert isinstance(result, RestoreInvalid)
        assert result.reason.type == ValidationErrorType.CORRUPTED_DATA
        assert result.reason.component == "articles"
        assert snapshot(*populated) == before

    @pytest.mark.asyncio
    async def test_unknown_movement_type_is_corrupted_data(self, orchestrator, data_dir):
        """测试未知的变动类型"""
        backup = await orchestrator.run_backup()
        broken = rewrite_archive(
            backup.archive_path,
            data_dir / "broken.zip",
            transform={
                "data/movements.json": lambda d: d.replace(b'"ADJUSTMENT"', b'"TRANSFER"', 1)
            },
        )

        result = await orchestrator.run_restore(
            broken, RestoreOptions(verify_checksums=False, create_backup_before_restore=False)
        )

        assert isinstance(result, RestoreInvalid)
        assert result.reason.type == ValidationErrorType.CORRUPTED_DATA
        assert result.reason.component == "movements"

    @pytest.mark.asyncio
    async def test_out_of_range_setting_is_rejected_before_changes(
        self, orchestrator, populated, data_dir
    ):
        """测试校验和正确但设置值越界时，在修改任何状态之前拒绝"""
        backup = await orchestrator.run_backup()

        def five_columns(display):
            display["gridColumns"] = 5
            return display

        resealed = reseal_block(
            backup.archive_path,
            data_dir / "resealed.zip",
            orchestrator,
            "settings/display_settings.json",
            BlockName.DISPLAY_SETTINGS,
            five_columns,
        )
        mutate(*populated)
        before = snapshot(*populated)

        result = await orchestrator.run_restore(resealed, NO_SAFETY)

        assert isinstance(result, RestoreInvalid)
        assert result.reason.type == ValidationErrorType.CORRUPTED_DATA
        assert result.reason.component == BlockName.DISPLAY_SETTINGS.value
        assert "gridColumns" in result.reason.details
        assert snapshot(*populated) == before

    @pytest.mark.asyncio
    async def test_failed_insert_rolls_back(self, orchestrator, populated):
        """测试写入实体失败时事务回滚，原数据保留"""
        entity_store = populated[0]
        assert isinstance(entity_store, FailingEntityStore)
        backup = await orchestrator.run_backup()
        before = snapshot(*populated)

        entity_store.fail_on = EntityKind.MOVEMENTS
        result = await orchestrator.run_restore(backup.archive_path, NO_SAFETY)

        assert isinstance(result, RestoreFailure)
        assert result.phase == RestorePhase.RESTORING_MOVEMENTS
        assert result.rollback_successful
        assert snapshot(*populated) == before

    @pytest.mark.asyncio
    async def test_failure_after_commit_cannot_roll_back(
        self, orchestrator, asset_store, entity_store
    ):
        """测试数据库提交后写图片失败，报告无法回滚"""
        backup = await orchestrator.run_backup()

        def broken_write(path, data):
            raise OSError("只读文件系统")

        asset_store.write = broken_write
        result = await orchestrator.run_restore(backup.archive_path, NO_SAFETY)

        assert isinstance(result, RestoreFailure)
        assert result.phase == RestorePhase.RESTORING_IMAGE_FILES
        assert not result.rollback_successful
        assert entity_store.count(EntityKind.MOVEMENTS) == 25


class TestSafetyBackup:
    """测试恢复前的安全备份"""

    @pytest.mark.asyncio
    async def test_safety_backup_captures_current_state(
        self, orchestrator, populated, path_manager
    ):
        """测试安全备份保存恢复前的状态"""
        backup = await orchestrator.run_backup()
        mutate(*populated)

        result = await orchestrator.run_restore(backup.archive_path)

        assert isinstance(result, RestoreSuccess)
        assert result.safety_backup is not None
        assert result.safety_backup.exists()
        safety = await orchestrator.validate_backup(result.safety_backup)
        assert safety.counts.categories == 1
        assert safety.counts.articles == 0
        assert len(path_manager.get_backup_list()) == 2

    @pytest.mark.asyncio
    async def test_safety_backup_keeps_source_archive(self, populated, path_manager):
        """测试安全备份不按保留数量清理，正在恢复的归档不会被删除"""
        orchestrator = BackupOrchestrator(*populated, path_manager, max_backups=1)
        backup = await orchestrator.run_backup()

        result = await orchestrator.run_restore(backup.archive_path)

        assert isinstance(result, RestoreSuccess)
        assert backup.archive_path.exists()
        assert result.safety_backup.exists()
        assert len(path_manager.get_backup_list()) == 2

        # 之后的普通备份照常清理
        latest = await orchestrator.run_backup()
        assert path_manager.get_backup_list() == [latest.archive_path]

    @pytest.mark.asyncio
    async def test_safety_backup_failure_does_not_block_restore(
        self, orchestrator, settings_store
    ):
        """测试安全备份失败不会阻止恢复"""
        backup = await orchestrator.run_backup()

        def broken_read():
            raise OSError("设置不可读")

        settings_store.get_display_settings = broken_read
        result = await orchestrator.run_restore(backup.archive_path)

        assert isinstance(result, RestoreSuccess)
        assert result.safety_backup is None
        assert result.warnings

    def test_attempt_safety_backup_returns_none_on_failure(self, orchestrator):
        """测试尝试操作失败时返回可忽略的结果"""

        def broken_export(*args, **kwargs):
            raise RuntimeError("导出失败")

        orchestrator.exporter.export_all = broken_export
        assert orchestrator.attempt_safety_backup() is None


class TestConcurrency:
    """测试互斥保护和进度流放弃"""

    @pytest.fixture
    def gated(self, populated, path_manager):
        entity_store, asset_store, settings_store = populated

        def build(method):
            store = GatedEntityStore(entity_store, method)
            return store, BackupOrchestrator(
                store, asset_store, settings_store, path_manager
            )

        return build

    @pytest.mark.asyncio
    async def test_second_operation_is_rejected(self, gated):
        """测试操作进行中时新的请求立即失败"""
        store, orchestrator = gated("read_all")
        stream = orchestrator.create_backup()
        first = await stream.__anext__()
        assert first.stage == BackupPhase.INITIALIZING.value
        assert orchestrator.is_busy()

        busy_backup = await orchestrator.run_backup()
        assert isinstance(busy_backup, BackupFailure)
        assert isinstance(busy_backup.error, BackupInProgressError)

        busy_restore = await orchestrator.run_restore("whatever.zip")
        assert isinstance(busy_restore, RestoreFailure)
        assert isinstance(busy_restore.error, BackupInProgressError)

        store.gate.set()
        rest = [item async for item in stream]
        assert isinstance(rest[-1], BackupSuccess)
        assert not orchestrator.is_busy()

    @pytest.mark.asyncio
    async def test_abandoned_backup_stops_and_cleans_up(self, gated, path_manager):
        """测试放弃进度流后备份在阶段边界停止，不留下文件"""
        store, orchestrator = gated("read_all")
        stream = orchestrator.create_backup()
        await stream.__anext__()

        await stream.aclose()
        store.gate.set()
        await orchestrator.wait_idle()

        assert not orchestrator.is_busy()
        assert not any(path_manager.paths.backups_dir.iterdir())

        result = await orchestrator.run_backup()
        assert result.success

    @pytest.mark.asyncio
    async def test_abandoned_restore_before_mutation_is_cancelled(self, gated, populated):
        """测试在修改状态之前放弃恢复，状态不变"""
        store, orchestrator = gated("read_all")
        store.gate.set()
        backup = await orchestrator.run_backup()
        mutate(*populated)
        before = snapshot(*populated)
        store.gate.clear()

        # 安全备份读取实体时停住
        stream = orchestrator.restore_backup(backup.archive_path)
        async for item in stream:
            if item.stage == RestorePhase.SAFETY_BACKUP.value:
                break
        await stream.aclose()
        store.gate.set()
        await orchestrator.wait_idle()

        assert not orchestrator.is_busy()
        assert snapshot(*populated) == before

    @pytest.mark.asyncio
    async def test_abandoned_restore_after_mutation_completes(self, gated, populated):
        """测试开始修改状态后放弃进度流，恢复仍然完成"""
        store, orchestrator = gated("wipe_all")
        store.gate.set()
        backup = await orchestrator.run_backup()
        expected = snapshot(*populated)
        mutate(*populated)
        store.gate.clear()

        stream = orchestrator.restore_backup(backup.archive_path, NO_SAFETY)
        async for item in stream:
            if item.stage == RestorePhase.CLEARING_DATABASE.value:
                break
        await stream.aclose()
        store.gate.set()
        await orchestrator.wait_idle()

        assert snapshot(*populated) == expected


class TestUtilities:
    """测试预检查、列表、删除和估算"""

    @pytest.mark.asyncio
    async def test_pre_check_match(self, orchestrator):
        """测试同版本备份预检查"""
        backup = await orchestrator.run_backup()
        result = await orchestrator.pre_check_backup(backup.archive_path)

        assert result.valid
        assert result.can_import
        assert result.version_status == "match"
        assert result.backup_version == SCHEMA_VERSION
        assert result.backup_time == backup.metadata.backup_date
        assert result.metadata == backup.metadata

    @pytest.mark.asyncio
    async def test_pre_check_newer_and_older(self, orchestrator, populated, path_manager, data_dir):
        """测试版本状态"""
        backup = await orchestrator.run_backup()
        newer = edit_metadata(
            backup.archive_path,
            data_dir / "newer.zip",
            lambda m: m.update(dbVersion=SCHEMA_VERSION + 1),
        )

        result = await orchestrator.pre_check_backup(newer)
        assert result.valid
        assert not result.can_import
        assert result.version_status == "newer"
        assert result.reason.type == ValidationErrorType.INCOMPATIBLE_VERSION

        future = BackupOrchestrator(
            *populated, path_manager, schema_version=SCHEMA_VERSION + 1
        )
        result = await future.pre_check_backup(backup.archive_path)
        assert result.can_import
        assert result.version_status == "older"
        assert result.warnings

    @pytest.mark.asyncio
    async def test_pre_check_missing_file(self, orchestrator, data_dir):
        """测试文件不存在"""
        result = await orchestrator.pre_check_backup(data_dir / "nope.zip")

        assert not result.valid
        assert result.reason.type == ValidationErrorType.INVALID_ARCHIVE

    @pytest.mark.asyncio
    async def test_validate_backup(self, orchestrator, data_dir):
        """测试校验备份"""
        backup = await orchestrator.run_backup()
        assert await orchestrator.validate_backup(backup.archive_path) == backup.metadata

        broken = rewrite_archive(
            backup.archive_path, data_dir / "broken.zip", changes={METADATA_FILE: None}
        )
        with pytest.raises(BackupValidationError) as exc_info:
            await orchestrator.validate_backup(broken)
        assert exc_info.value.reason.type == ValidationErrorType.MISSING_DATA_FILES

    @pytest.mark.asyncio
    async def test_get_available_backups(self, orchestrator, path_manager):
        """测试列出备份（最新的在前，无效的也列出）"""
        first = await orchestrator.run_backup()
        second = await orchestrator.run_backup()
        junk = path_manager.paths.backups_dir / f"{BACKUP_FILE_PREFIX}0000-00-00_000000.zip"
        junk.write_bytes(b"junk")

        backups = await orchestrator.get_available_backups()

        assert [b.path for b in backups] == [
            second.archive_path,
            first.archive_path,
            junk,
        ]
        assert backups[0].is_valid
        assert not backups[-1].is_valid
        assert backups[0].size_bytes == second.size_bytes

    @pytest.mark.asyncio
    async def test_delete_backup(self, orchestrator, data_dir):
        """测试删除备份（只删除备份文件）"""
        backup = await orchestrator.run_backup()
        other = data_dir / "keep.txt"
        other.write_text("keep")

        assert await orchestrator.delete_backup(backup.archive_path)
        assert not backup.archive_path.exists()
        assert not await orchestrator.delete_backup(other)
        assert other.exists()

    @pytest.mark.asyncio
    async def test_estimate_backup_size(self, orchestrator, asset_store):
        """测试估算备份大小"""
        estimated = await orchestrator.estimate_backup_size()
        expected = int((10 * 500 + 25 * 200 + 4 * 2048 + asset_store.used_space()) * 0.5)

        assert estimated == expected

    @pytest.mark.asyncio
    async def test_cleanup_old_backups(self, orchestrator, path_manager):
        """测试手动清理旧备份"""
        for _ in range(3):
            await orchestrator.run_backup()

        deleted = await orchestrator.cleanup_old_backups(1)

        assert len(deleted) == 2
        assert len(path_manager.get_backup_list()) == 1


class TestResultTypes:
    """测试结果类型"""

    def test_cancelled_error_is_backup_error(self):
        """测试取消异常属于备份异常"""
        assert issubclass(BackupCancelledError, BackupError)

    @pytest.mark.asyncio
    async def test_result_to_dict(self, orchestrator):
        """测试结果转换为字典"""
        backup = await orchestrator.run_backup()
        data = backup.to_dict()

        assert data["status"] == "success"
        assert data["metadata"]["counts"]["articleImages"] == 4
        assert data["metadata"]["checksums"]["imagesManifest"].startswith("sha256:")
