"""存储协作者抽象基类

备份引擎只通过这些窄接口访问实体存储、图片文件和用户设置
"""

import abc
from contextlib import contextmanager
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional


class EntityKind(str, Enum):
    """实体类型（同时也是表名）"""

    CATEGORIES = "categories"
    ARTICLES = "articles"
    INVENTORY = "inventory"
    MOVEMENTS = "movements"
    ARTICLE_IMAGES = "article_images"


class EntityStore(abc.ABC):
    """实体存储"""

    supports_transactions: bool = False
    """transaction() 是否真正具备回滚能力"""

    @abc.abstractmethod
    def read_all(self, kind: EntityKind) -> List[Dict[str, Any]]:
        """按自然读取顺序返回某类实体的全部行"""
        raise NotImplementedError

    @abc.abstractmethod
    def insert(self, kind: EntityKind, row: Dict[str, Any]) -> Optional[int]:
        """插入一行

        Returns:
            新分配的代理键（没有代理键的表返回 None）
        """
        raise NotImplementedError

    @abc.abstractmethod
    def wipe_all(self) -> None:
        """清空所有实体表"""
        raise NotImplementedError

    def count(self, kind: EntityKind) -> int:
        return len(self.read_all(kind))

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """把一组写操作作为一个整体提交

        默认实现没有事务语义，支持事务的存储应当覆盖
        """
        yield


class AssetStore(abc.ABC):
    """图片文件存储，路径均为相对路径"""

    @abc.abstractmethod
    def read(self, path: str) -> Optional[bytes]:
        """读取文件，不存在时返回 None"""
        raise NotImplementedError

    @abc.abstractmethod
    def write(self, path: str, data: bytes) -> None:
        """写入文件，自动创建父目录"""
        raise NotImplementedError

    @abc.abstractmethod
    def delete_all(self) -> None:
        """删除全部文件"""
        raise NotImplementedError

    def used_space(self) -> int:
        """已用空间（字节）"""
        return 0


class SettingsStore(abc.ABC):
    """用户设置存储"""

    @abc.abstractmethod
    def get_display_settings(self) -> Dict[str, Any]:
        raise NotImplementedError

    @abc.abstractmethod
    def set_display_settings(self, settings: Dict[str, Any]) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    def get_recognition_settings(self) -> Dict[str, Any]:
        raise NotImplementedError

    @abc.abstractmethod
    def set_recognition_settings(self, settings: Dict[str, Any]) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    def get_current_preset(self) -> Optional[str]:
        """当前生效的识别预设名称，自定义参数时为 None"""
        raise NotImplementedError

    @abc.abstractmethod
    def apply_preset(self, name: str) -> None:
        """应用识别预设

        Raises:
            ValueError: 未知的预设名称
        """
        raise NotImplementedError


__all__ = [
    "EntityKind",
    "EntityStore",
    "AssetStore",
    "SettingsStore",
]
