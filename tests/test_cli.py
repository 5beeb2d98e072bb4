"""命令行入口测试"""

import json

import pytest

import main
from qstore.core.backup import PathManager


def run(data_dir, *args):
    return main.main(["--data-dir", str(data_dir), "--log-level", "WARNING", *args])


class TestCommandLine:
    """测试命令行子命令"""

    @pytest.mark.asyncio
    async def test_version(self, capsys):
        """测试显示版本"""
        assert await main.main(["version"]) == 0
        assert "QStore" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_backup_list_check_restore(self, data_dir, capsys):
        """测试创建、列出、检查和恢复备份"""
        assert await run(data_dir, "backup", "--level", "9") == 0
        assert (data_dir / "config.json").exists()

        backups = PathManager(data_dir).get_backup_list()
        assert len(backups) == 1
        assert f"备份已创建: {backups[0]}" in capsys.readouterr().out

        assert await run(data_dir, "list") == 0
        assert backups[0].name in capsys.readouterr().out

        assert await run(data_dir, "check", str(backups[0])) == 0
        assert "版本状态: match" in capsys.readouterr().out

        assert await run(data_dir, "restore", str(backups[0]), "--no-safety-backup") == 0
        assert "恢复完成" in capsys.readouterr().out
        assert len(PathManager(data_dir).get_backup_list()) == 1

    @pytest.mark.asyncio
    async def test_restore_invalid_file(self, data_dir):
        """测试恢复无效文件返回错误码"""
        bogus = data_dir / "bogus.zip"
        bogus.write_bytes(b"nope")

        assert await run(data_dir, "restore", str(bogus)) == 1
        assert await run(data_dir, "check", str(bogus)) == 1

    @pytest.mark.asyncio
    async def test_empty_list(self, data_dir, capsys):
        """测试没有备份"""
        assert await run(data_dir, "list") == 0
        assert "没有找到备份" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_configured_output_dir(self, data_dir):
        """测试配置文件中的输出目录"""
        config = {"backup": {"output_dir": "archive", "max_backups": 1}}
        (data_dir / "config.json").write_text(json.dumps(config), encoding="utf-8")

        assert await run(data_dir, "backup") == 0
        assert await run(data_dir, "backup") == 0

        assert len(list((data_dir / "archive").glob("qstore_backup_*.zip"))) == 1
