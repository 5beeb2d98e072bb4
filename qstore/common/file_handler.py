"""JSON 文件处理器

提供统一的 JSON 文件读写操作。
"""

import json
import os
from pathlib import Path
from typing import Any, Union

from loguru import logger


class JsonFileHandler:
    """JSON 文件处理器

    写入先落到临时文件再替换，读取失败时返回默认值
    """

    def __init__(self, base_path: Union[str, Path]):
        """初始化文件处理器

        Args:
            base_path: 基础路径
        """
        self.base_path = Path(base_path)

    def path_of(self, filename: str) -> Path:
        return self.base_path / filename

    def load(self, filename: str, default: Any = None) -> Any:
        """加载 JSON 文件

        Args:
            filename: 文件名
            default: 默认值

        Returns:
            解析后的数据或默认值
        """
        file_path = self.path_of(filename)
        if not file_path.exists():
            return default

        try:
            with open(file_path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"加载文件失败 {filename}: {e}")
            return default

    def save(
        self, filename: str, data: Any, indent: int = 2, ensure_ascii: bool = False
    ) -> None:
        """保存 JSON 文件

        Args:
            filename: 文件名
            data: 要保存的数据
            indent: 缩进空格数
            ensure_ascii: 是否确保 ASCII 编码

        Raises:
            OSError: 写入失败
        """
        file_path = self.path_of(filename)
        tmp_path = file_path.with_name(file_path.name + ".tmp")
        self.base_path.mkdir(parents=True, exist_ok=True)
        try:
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=indent, ensure_ascii=ensure_ascii)
            os.replace(tmp_path, file_path)
        except OSError as e:
            logger.error(f"保存文件失败 {filename}: {e}")
            tmp_path.unlink(missing_ok=True)
            raise

    def delete(self, filename: str) -> bool:
        """删除文件

        Args:
            filename: 文件名

        Returns:
            文件是否存在并被删除
        """
        file_path = self.path_of(filename)
        if not file_path.exists():
            return False
        file_path.unlink()
        return True
