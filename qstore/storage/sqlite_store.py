"""SQLite 实体存储

五张表，启用外键约束；一个连接由可重入锁保护，可在工作线程中使用
"""

import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Union

from loguru import logger

from ..core.version import SCHEMA_VERSION
from .base import EntityKind, EntityStore


SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS categories (
    uuid TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    notes TEXT NOT NULL DEFAULT '',
    created_at INTEGER NOT NULL,
    updated_at INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS articles (
    uuid TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    category_id TEXT NOT NULL REFERENCES categories(uuid),
    unit_of_measure TEXT NOT NULL,
    reorder_level REAL NOT NULL DEFAULT 0,
    notes TEXT NOT NULL DEFAULT '',
    code_oem TEXT NOT NULL DEFAULT '',
    code_erp TEXT NOT NULL DEFAULT '',
    code_bm TEXT NOT NULL DEFAULT '',
    created_at INTEGER NOT NULL,
    updated_at INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS inventory (
    article_uuid TEXT PRIMARY KEY REFERENCES articles(uuid),
    current_quantity REAL NOT NULL DEFAULT 0,
    last_movement_at INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS movements (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    article_uuid TEXT NOT NULL REFERENCES articles(uuid),
    type TEXT NOT NULL,
    quantity REAL NOT NULL,
    notes TEXT NOT NULL DEFAULT '',
    created_at INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS article_images (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    article_uuid TEXT NOT NULL REFERENCES articles(uuid),
    image_path TEXT NOT NULL,
    features_data BLOB,
    created_at INTEGER NOT NULL
);
"""

COLUMNS: Dict[EntityKind, List[str]] = {
    EntityKind.CATEGORIES: [
        "uuid", "name", "description", "notes", "created_at", "updated_at",
    ],
    EntityKind.ARTICLES: [
        "uuid", "name", "description", "category_id", "unit_of_measure",
        "reorder_level", "notes", "code_oem", "code_erp", "code_bm",
        "created_at", "updated_at",
    ],
    EntityKind.INVENTORY: ["article_uuid", "current_quantity", "last_movement_at"],
    EntityKind.MOVEMENTS: [
        "id", "article_uuid", "type", "quantity", "notes", "created_at",
    ],
    EntityKind.ARTICLE_IMAGES: [
        "id", "article_uuid", "image_path", "features_data", "created_at",
    ],
}

# 子表在前
WIPE_ORDER = [
    EntityKind.MOVEMENTS,
    EntityKind.ARTICLE_IMAGES,
    EntityKind.INVENTORY,
    EntityKind.ARTICLES,
    EntityKind.CATEGORIES,
]


class SQLiteEntityStore(EntityStore):
    """基于 SQLite 的实体存储"""

    supports_transactions = True

    def __init__(self, db_path: Union[str, Path]):
        """初始化存储

        Args:
            db_path: 数据库文件路径，":memory:" 表示内存数据库
        """
        self.db_path = str(db_path)
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        self._lock = threading.RLock()
        self._in_transaction = False
        self._conn = sqlite3.connect(
            self.db_path, check_same_thread=False, isolation_level=None
        )
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA foreign_keys = ON")
        self._conn.executescript(SCHEMA_SQL)
        if self.schema_version == 0:
            self._conn.execute(f"PRAGMA user_version = {SCHEMA_VERSION}")

    @property
    def schema_version(self) -> int:
        """数据库中记录的 Schema 版本"""
        with self._lock:
            return self._conn.execute("PRAGMA user_version").fetchone()[0]

    def read_all(self, kind: EntityKind) -> List[Dict[str, Any]]:
        kind = EntityKind(kind)
        with self._lock:
            cursor = self._conn.execute(f"SELECT * FROM {kind.value} ORDER BY rowid")
            return [dict(row) for row in cursor.fetchall()]

    def insert(self, kind: EntityKind, row: Dict[str, Any]) -> Optional[int]:
        kind = EntityKind(kind)
        unknown = set(row) - set(COLUMNS[kind])
        if unknown:
            raise ValueError(f"表 {kind.value} 不包含列: {', '.join(sorted(unknown))}")

        columns = list(row.keys())
        placeholders = ",".join(["?"] * len(columns))
        sql = f"INSERT INTO {kind.value} ({','.join(columns)}) VALUES ({placeholders})"

        with self._lock:
            cursor = self._conn.execute(sql, [row[col] for col in columns])
            if "id" in COLUMNS[kind]:
                return cursor.lastrowid
            return None

    def wipe_all(self) -> None:
        with self._lock:
            for kind in WIPE_ORDER:
                self._conn.execute(f"DELETE FROM {kind.value}")
            logger.debug("已清空所有实体表")

    def count(self, kind: EntityKind) -> int:
        kind = EntityKind(kind)
        with self._lock:
            return self._conn.execute(f"SELECT COUNT(*) FROM {kind.value}").fetchone()[0]

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """事务上下文，异常时回滚

        事务期间持有锁，其他线程的读写会等待事务结束
        """
        with self._lock:
            if self._in_transaction:
                yield
                return

            self._conn.execute("BEGIN")
            self._in_transaction = True
            try:
                yield
            except BaseException:
                self._conn.execute("ROLLBACK")
                logger.warning("事务已回滚")
                raise
            else:
                self._conn.execute("COMMIT")
            finally:
                self._in_transaction = False

    def close(self) -> None:
        with self._lock:
            self._conn.close()


__all__ = ["SQLiteEntityStore", "SCHEMA_SQL", "COLUMNS"]
