from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Dict, Optional

import pytest

from focusboard.services.runtime import StoreRuntime
from focusboard.services.storage import NoteStorage


@pytest.fixture()
def runtime():
    rt = StoreRuntime()
    rt.start()
    yield rt
    rt.stop()


@pytest.fixture()
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "database" / "data.db"


def open_storage(runtime: StoreRuntime, db_path: Path, **kwargs) -> NoteStorage:
    store = NoteStorage(db_path=db_path, **kwargs)
    runtime.run(store.initialize())
    return store


@pytest.fixture()
def storage(runtime, db_path):
    store = open_storage(runtime, db_path, order_scope="tab_parent", note_ordering="manual")
    yield store
    runtime.run(store.close())


def scope_orders(
    db_path: Path, tab_id: Optional[int], parent_id: Optional[int] = None
) -> Dict[int, Optional[int]]:
    """{note_id: order_id} for one (tab_id, parent_id) scope, read straight from the file."""
    conn = sqlite3.connect(str(db_path))
    try:
        rows = conn.execute(
            "SELECT id, order_id FROM notes WHERE tab_id IS ? AND parent_id IS ?",
            (tab_id, parent_id),
        ).fetchall()
    finally:
        conn.close()
    return dict(rows)


def all_orders(db_path: Path) -> Dict[int, Optional[int]]:
    conn = sqlite3.connect(str(db_path))
    try:
        return dict(conn.execute("SELECT id, order_id FROM notes").fetchall())
    finally:
        conn.close()
