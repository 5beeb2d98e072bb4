"""QStore 备份工具入口文件

创建、恢复、列出和检查 QStore 数据备份
"""

import argparse
import asyncio
import sys
from pathlib import Path

from loguru import logger

from qstore.config import ConfigValidationError, QStoreConfig
from qstore.core.backup import (
    BackupOptions,
    BackupOrchestrator,
    BackupProgress,
    PathManager,
    RestoreInvalid,
    RestoreOptions,
)
from qstore.core.version import get_version_info
from qstore.storage import FileAssetStore, JsonSettingsStore, SQLiteEntityStore

DEFAULT_DATA_DIR = Path("data")
CONFIG_FILE = "config.json"


def setup_logging(level: str = "INFO") -> None:
    logger.remove()
    logger.add(
        sys.stdout,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> <level>[{level}]</level> {message}",
        level=level.upper(),
        colorize=True,
    )


def build_orchestrator(config: QStoreConfig, data_dir: Path) -> BackupOrchestrator:
    """根据配置创建存储和编排器"""
    path_manager = PathManager(data_dir, config.get("storage"), config.get("backup"))
    path_manager.ensure_directories()
    paths = path_manager.paths

    return BackupOrchestrator(
        entity_store=SQLiteEntityStore(paths.database_path),
        asset_store=FileAssetStore(paths.assets_dir),
        settings_store=JsonSettingsStore(paths.settings_dir),
        path_manager=path_manager,
        max_backups=config.get("backup.max_backups", 0),
        device_info=config.get("app.device_info") or None,
        default_backup_options=BackupOptions(
            include_features=config.get("backup.include_features", True),
            compression_level=config.get("backup.compression_level", 6),
        ),
        default_restore_options=RestoreOptions(
            verify_checksums=config.get("backup.verify_checksums", True),
            create_backup_before_restore=config.get(
                "backup.create_backup_before_restore", True
            ),
        ),
    )


def print_progress(progress: BackupProgress) -> None:
    print(f"[{progress.progress * 100:5.1f}%] {progress.message}")


async def cmd_backup(orchestrator: BackupOrchestrator, args) -> int:
    defaults = orchestrator.default_backup_options
    options = BackupOptions(
        include_features=defaults.include_features and not args.no_features,
        compression_level=(
            args.level if args.level is not None else defaults.compression_level
        ),
        destination_dir=args.output_dir,
    )
    result = await orchestrator.run_backup(options, on_progress=print_progress)
    if result.success:
        print(f"备份已创建: {result.archive_path}")
        print(f"大小: {orchestrator.path_manager.format_size(result.size_bytes)}")
        return 0
    logger.error(f"备份失败（{result.phase.value}）: {result.error}")
    return 1


async def cmd_restore(orchestrator: BackupOrchestrator, args) -> int:
    defaults = orchestrator.default_restore_options
    options = RestoreOptions(
        verify_checksums=defaults.verify_checksums and not args.no_verify,
        create_backup_before_restore=(
            defaults.create_backup_before_restore and not args.no_safety_backup
        ),
    )
    result = await orchestrator.run_restore(
        args.file, options, on_progress=print_progress
    )
    if result.success:
        counts = result.restored_counts
        print(
            f"恢复完成: 分类 {counts.categories}, 文章 {counts.articles}, "
            f"库存 {counts.inventory}, 变动 {counts.movements}, "
            f"图片记录 {counts.article_images}, 图片文件 {counts.image_files}"
        )
        if result.safety_backup:
            print(f"安全备份: {result.safety_backup}")
        for warning in result.warnings:
            logger.warning(warning)
        return 0

    if isinstance(result, RestoreInvalid):
        logger.error(f"备份无效: {result.reason}")
    else:
        logger.error(
            f"恢复失败（{result.phase.value}）: {result.error}，"
            f"{'数据库已回滚' if result.rollback_successful else '数据可能不完整'}"
        )
    return 1


async def cmd_list(orchestrator: BackupOrchestrator, args) -> int:
    backups = await orchestrator.get_available_backups()
    if not backups:
        print("没有找到备份")
        return 0

    for info in backups:
        size = orchestrator.path_manager.format_size(info.size_bytes)
        if info.metadata is None:
            print(f"{info.path.name}  {size}  (无效)")
            continue
        counts = info.metadata.counts
        print(
            f"{info.path.name}  {size}  {info.metadata.backup_date}  "
            f"v{info.metadata.app_version}  文章 {counts.articles}  "
            f"图片 {counts.image_files}"
        )
    return 0


async def cmd_check(orchestrator: BackupOrchestrator, args) -> int:
    result = await orchestrator.pre_check_backup(args.file)
    if not result.valid:
        print(f"备份无效: {result.reason}")
        return 1

    print(f"备份时间: {result.backup_time}")
    print(f"备份版本: {result.backup_version} (当前 {result.current_version})")
    print(f"版本状态: {result.version_status}")
    for warning in result.warnings:
        print(f"警告: {warning}")
    if not result.can_import:
        print(f"无法恢复: {result.reason}")
        return 1
    return 0


def show_version() -> int:
    info = get_version_info()
    print(f"QStore {info['version']} (build {info['version_code']})")
    print(f"Schema 版本: {info['schema_version']}")
    print(f"Python {info['python']}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="QStore 备份命令行工具")
    parser.add_argument(
        "--data-dir",
        type=Path,
        default=DEFAULT_DATA_DIR,
        help="数据目录（默认 ./data）",
    )
    parser.add_argument("--log-level", default=None, help="日志级别")

    subparsers = parser.add_subparsers(dest="command", required=True)

    backup = subparsers.add_parser("backup", help="创建备份")
    backup.add_argument("--output-dir", type=Path, default=None, help="输出目录")
    backup.add_argument(
        "--level", type=int, choices=range(10), default=None, help="压缩级别 0-9"
    )
    backup.add_argument(
        "--no-features", action="store_true", help="不包含图片特征数据"
    )

    restore = subparsers.add_parser("restore", help="从备份恢复")
    restore.add_argument("file", type=Path, help="备份文件")
    restore.add_argument("--no-verify", action="store_true", help="跳过校验和检查")
    restore.add_argument(
        "--no-safety-backup", action="store_true", help="恢复前不创建安全备份"
    )

    subparsers.add_parser("list", help="列出备份")

    check = subparsers.add_parser("check", help="检查备份是否可恢复")
    check.add_argument("file", type=Path, help="备份文件")

    subparsers.add_parser("version", help="显示版本信息")
    return parser


COMMANDS = {
    "backup": cmd_backup,
    "restore": cmd_restore,
    "list": cmd_list,
    "check": cmd_check,
}


async def main(argv=None) -> int:
    """主函数：解析命令并执行"""
    args = build_parser().parse_args(argv)

    if args.command == "version":
        return show_version()

    config = QStoreConfig(args.data_dir / CONFIG_FILE)
    setup_logging(args.log_level or config.get("log.level", "INFO"))

    orchestrator = build_orchestrator(config, args.data_dir)
    try:
        return await COMMANDS[args.command](orchestrator, args)
    finally:
        await orchestrator.wait_idle()
        orchestrator.entity_store.close()


def cli() -> None:
    """命令行入口"""
    setup_logging()
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        logger.info("收到退出信号，操作已中断")
    except ConfigValidationError as e:
        logger.error(f"配置无效: {e}")
        for error in e.errors:
            logger.error(f"  {error}")
        sys.exit(1)
    except Exception as e:
        logger.error(f"操作失败: {e}")
        sys.exit(1)


if __name__ == "__main__":
    cli()
