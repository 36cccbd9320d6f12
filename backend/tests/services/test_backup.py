from __future__ import annotations

import asyncio
from datetime import datetime

import pytest

from focusboard.errors import IOFailureError
from focusboard.services import backup as backup_module
from focusboard.services.backup import BackupExporter, backup_folder_name, ensure_directory

STAMP = datetime(2026, 10, 17, 14, 3, 59)


def _database_dir(tmp_path):
    db_dir = tmp_path / "database"
    db_dir.mkdir()
    (db_dir / "data.db").write_bytes(b"main")
    (db_dir / "data.db-wal").write_bytes(b"wal")
    (db_dir / "data.db-shm").write_bytes(b"shm")
    (db_dir / "nested").mkdir()
    return db_dir


def test_backup_folder_name():
    assert backup_folder_name(STAMP) == "database-backup_2026-10-17_T14H-03M-59S"


def test_ensure_directory_is_idempotent(tmp_path):
    target = tmp_path / "a" / "b"
    assert ensure_directory(target) is True
    assert ensure_directory(target) is False
    assert target.is_dir()


def test_ensure_directory_on_a_file_fails(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("x")

    with pytest.raises(IOFailureError) as exc_info:
        ensure_directory(blocker)
    assert exc_info.value.public_message == "Failed to create backup directory."


def test_export_copies_database_files(tmp_path):
    db_dir = _database_dir(tmp_path)
    exporter = BackupExporter(database_dir=db_dir)

    target = exporter.export(now=STAMP)

    assert target == tmp_path / "database_backups" / "database-backup_2026-10-17_T14H-03M-59S"
    assert sorted(p.name for p in target.iterdir()) == ["data.db", "data.db-shm", "data.db-wal"]
    assert (target / "data.db").read_bytes() == b"main"


def test_export_twice_in_the_same_second(tmp_path):
    exporter = BackupExporter(database_dir=_database_dir(tmp_path))

    first = exporter.export(now=STAMP)
    second = exporter.export(now=STAMP)

    assert first == second
    assert (second / "data.db-wal").read_bytes() == b"wal"


def test_export_without_database_dir_fails(tmp_path):
    exporter = BackupExporter(database_dir=tmp_path / "missing", backup_dir=tmp_path / "out")

    with pytest.raises(IOFailureError) as exc_info:
        exporter.export(now=STAMP)
    assert exc_info.value.public_message == "Failed to read entries from database directory."


def test_export_copy_failure_is_an_io_failure(tmp_path, monkeypatch):
    exporter = BackupExporter(database_dir=_database_dir(tmp_path))

    def broken_copy(src, dst, *args, **kwargs):
        raise PermissionError("denied")

    monkeypatch.setattr(backup_module.shutil, "copy2", broken_copy)

    with pytest.raises(IOFailureError) as exc_info:
        exporter.export(now=STAMP)
    assert exc_info.value.public_message == "Failed to copy database to destination."
    assert "denied" not in exc_info.value.public_message


def test_backup_store_runs_off_the_loop(runtime, tmp_path):
    exporter = BackupExporter(database_dir=_database_dir(tmp_path), backup_dir=tmp_path / "out")

    target = runtime.run(exporter.backup_store(now=STAMP))

    assert target.parent == tmp_path / "out"
    assert (target / "data.db").exists()


def test_backup_store_waits_for_the_write_in_flight(runtime, tmp_path):
    write_lock = asyncio.Lock()
    exporter = BackupExporter(
        database_dir=_database_dir(tmp_path), backup_dir=tmp_path / "out", write_lock=write_lock
    )

    async def back_up_mid_write():
        async with write_lock:
            copy = asyncio.ensure_future(exporter.backup_store(now=STAMP))
            await asyncio.sleep(0.1)
            copied_mid_write = copy.done()
        return copied_mid_write, await copy

    copied_mid_write, target = runtime.run(back_up_mid_write())

    assert copied_mid_write is False
    assert (target / "data.db-wal").read_bytes() == b"wal"
