"""测试公共夹具

提供真实的 SQLite / 文件系统存储，以及预置数据
（3 个分类、10 篇文章、10 条库存、25 条变动、4 条图片记录）
"""

import tempfile
import threading
import zipfile
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Dict, Optional

import pytest

from qstore.core.backup import BackupOrchestrator, PathManager
from qstore.storage import (
    EntityKind,
    EntityStore,
    FileAssetStore,
    JsonSettingsStore,
    SQLiteEntityStore,
)

BASE_TIME = 1_700_000_000_000

IMAGE_PATHS = [f"art-{i}/img_{i}.jpg" for i in range(4)]

DISPLAY_SETTINGS = {
    "article_card_style": "FULL",
    "show_stock_indicators": False,
    "show_article_images": True,
    "grid_columns": 2,
}


def populate(entity_store, asset_store, settings_store) -> None:
    """写入预置数据"""
    for i in range(3):
        entity_store.insert(
            EntityKind.CATEGORIES,
            {
                "uuid": f"cat-{i}",
                "name": f"Categoria {i} – 分类",
                "description": f"描述 {i}",
                "notes": f"note {i}",
                "created_at": BASE_TIME + i,
                "updated_at": BASE_TIME + i + 10,
            },
        )

    for i in range(10):
        entity_store.insert(
            EntityKind.ARTICLES,
            {
                "uuid": f"art-{i}",
                "name": f"Articolo {i}",
                "description": f"Descrizione {i}",
                "category_id": f"cat-{i % 3}",
                "unit_of_measure": "pz",
                "reorder_level": i * 1.5,
                "notes": "",
                "code_oem": f"OEM-{i}",
                "code_erp": f"ERP-{i}",
                "code_bm": f"BM-{i}",
                "created_at": BASE_TIME + 100 + i,
                "updated_at": BASE_TIME + 200 + i,
            },
        )
        entity_store.insert(
            EntityKind.INVENTORY,
            {
                "article_uuid": f"art-{i}",
                "current_quantity": i * 2.25,
                "last_movement_at": BASE_TIME + 300 + i,
            },
        )

    movement_types = ["IN", "OUT", "ADJUSTMENT"]
    for i in range(25):
        entity_store.insert(
            EntityKind.MOVEMENTS,
            {
                "article_uuid": f"art-{i % 10}",
                "type": movement_types[i % 3],
                "quantity": i + 0.5,
                "notes": f"movimento {i}",
                "created_at": BASE_TIME + 400 + i,
            },
        )

    for i, path in enumerate(IMAGE_PATHS):
        entity_store.insert(
            EntityKind.ARTICLE_IMAGES,
            {
                "article_uuid": f"art-{i}",
                "image_path": path,
                "features_data": bytes(range(i, i + 16)),
                "created_at": BASE_TIME + 500 + i,
            },
        )
        asset_store.write(path, f"image-{i}".encode("utf-8") * 50)

    settings_store.set_display_settings(dict(DISPLAY_SETTINGS))
    settings_store.apply_preset("precise")


def snapshot(entity_store, asset_store, settings_store) -> Dict:
    """记录当前全部状态（图片记录和变动去掉代理键）"""

    def without_id(rows):
        return [{k: v for k, v in row.items() if k != "id"} for row in rows]

    return {
        "categories": entity_store.read_all(EntityKind.CATEGORIES),
        "articles": entity_store.read_all(EntityKind.ARTICLES),
        "inventory": entity_store.read_all(EntityKind.INVENTORY),
        "movements": without_id(entity_store.read_all(EntityKind.MOVEMENTS)),
        "article_images": without_id(entity_store.read_all(EntityKind.ARTICLE_IMAGES)),
        "assets": {p: asset_store.read(p) for p in asset_store.list_paths()},
        "display": settings_store.get_display_settings(),
        "recognition": settings_store.get_recognition_settings(),
        "preset": settings_store.get_current_preset(),
    }


def rewrite_archive(
    source: Path,
    target: Path,
    changes: Optional[Dict[str, Optional[bytes]]] = None,
    transform: Optional[Dict[str, Callable[[bytes], bytes]]] = None,
) -> Path:
    """复制归档，可替换（值为 None 时删除）或变换指定条目"""
    changes = changes or {}
    transform = transform or {}
    with zipfile.ZipFile(source, "r") as src, zipfile.ZipFile(
        target, "w", compression=zipfile.ZIP_DEFLATED
    ) as dst:
        for info in src.infolist():
            data = src.read(info)
            if info.filename in changes:
                data = changes[info.filename]
                if data is None:
                    continue
            if info.filename in transform:
                data = transform[info.filename](data)
            dst.writestr(info.filename, data)
    return target


class GatedEntityStore(EntityStore):
    """在指定方法上等待闸门打开的实体存储"""

    def __init__(self, inner: SQLiteEntityStore, gated_method: str):
        self.inner = inner
        self.gated_method = gated_method
        self.gate = threading.Event()
        self.supports_transactions = inner.supports_transactions

    def _wait(self, method: str) -> None:
        if method == self.gated_method:
            assert self.gate.wait(timeout=10), "闸门未打开"

    def read_all(self, kind):
        self._wait("read_all")
        return self.inner.read_all(kind)

    def insert(self, kind, row):
        self._wait("insert")
        return self.inner.insert(kind, row)

    def wipe_all(self):
        self._wait("wipe_all")
        self.inner.wipe_all()

    def count(self, kind):
        return self.inner.count(kind)

    @contextmanager
    def transaction(self):
        with self.inner.transaction():
            yield


class FailingEntityStore(SQLiteEntityStore):
    """可以让某类实体的插入失败的存储"""

    fail_on: Optional[EntityKind] = None

    def insert(self, kind, row):
        if self.fail_on is not None and EntityKind(kind) == self.fail_on:
            raise RuntimeError(f"插入 {kind} 失败")
        return super().insert(kind, row)


@pytest.fixture
def data_dir():
    """临时数据目录"""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def path_manager(data_dir):
    pm = PathManager(data_dir)
    pm.ensure_directories()
    return pm


@pytest.fixture
def entity_store(path_manager):
    store = FailingEntityStore(path_manager.paths.database_path)
    yield store
    store.close()


@pytest.fixture
def asset_store(path_manager):
    return FileAssetStore(path_manager.paths.assets_dir)


@pytest.fixture
def settings_store(path_manager):
    return JsonSettingsStore(path_manager.paths.settings_dir)


@pytest.fixture
def populated(entity_store, asset_store, settings_store):
    """写入预置数据并返回三个存储"""
    populate(entity_store, asset_store, settings_store)
    return entity_store, asset_store, settings_store


@pytest.fixture
def orchestrator(populated, path_manager):
    entity_store, asset_store, settings_store = populated
    return BackupOrchestrator(
        entity_store,
        asset_store,
        settings_store,
        path_manager,
        device_info="pytest",
    )
