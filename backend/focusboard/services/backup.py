"""
Database backup: copy every file of the database directory (db, -wal, -shm)
into a new timestamped folder under the sibling ``*_backups`` directory.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
from datetime import datetime
from pathlib import Path
from contextlib import nullcontext
from typing import Optional

from ..config import config
from ..errors import IOFailureError

logger = logging.getLogger(__name__)

BACKUP_PREFIX = "database-backup_"
TIMESTAMP_FORMAT = "%Y-%m-%d_T%HH-%MM-%SS"


def ensure_directory(path: Path) -> bool:
    """
    Create ``path`` (and missing parents) if needed.

    Returns True if it was created, False if it already existed. Only genuine
    I/O failures raise.
    """
    try:
        path.mkdir(parents=True)
    except FileExistsError:
        if not path.is_dir():
            logger.error("Backup path %s exists and is not a directory", path)
            raise IOFailureError("Failed to create backup directory.")
        logger.info("Directory already exists: %s", path)
        return False
    except OSError as exc:
        logger.error("Failed to create directory %s: %s", path, exc)
        raise IOFailureError("Failed to create backup directory.") from exc
    logger.info("Directory created: %s", path)
    return True


def backup_folder_name(now: datetime) -> str:
    """e.g. database-backup_2026-10-17_T14H-03M-59S (local time)"""
    return f"{BACKUP_PREFIX}{now.strftime(TIMESTAMP_FORMAT)}"


class BackupExporter:
    """Copies the store's backing files; knows their directory and the store's write lock."""

    def __init__(
        self,
        database_dir: Optional[Path] = None,
        backup_dir: Optional[Path] = None,
        write_lock: Optional[asyncio.Lock] = None,
    ):
        self.database_dir = Path(database_dir or config.DATABASE_DIR)
        self.backup_dir = Path(backup_dir or self.database_dir.parent / f"{self.database_dir.name}_backups")
        self.write_lock = write_lock

    def export(self, now: Optional[datetime] = None) -> Path:
        """Copy the database directory into a fresh timestamped folder and return it."""
        ensure_directory(self.backup_dir)

        target = self.backup_dir / backup_folder_name(now or datetime.now())
        ensure_directory(target)

        try:
            entries = sorted(self.database_dir.iterdir())
        except OSError as exc:
            logger.error("Failed to read entries from %s: %s", self.database_dir, exc)
            raise IOFailureError("Failed to read entries from database directory.") from exc

        copied = 0
        for src_path in entries:
            if not src_path.is_file():
                continue
            dest_path = target / src_path.name
            try:
                shutil.copy2(src_path, dest_path)
            except OSError as exc:
                logger.error("Failed to copy %s to %s: %s", src_path, dest_path, exc)
                raise IOFailureError("Failed to copy database to destination.") from exc
            copied += 1

        logger.info("Database backup completed: %d files -> %s", copied, target)
        return target

    async def backup_store(self, now: Optional[datetime] = None) -> Path:
        """
        Copy off the store loop while holding the store's write lock, so no
        commit lands between copying the database file and its WAL.
        """
        async with (self.write_lock or nullcontext()):
            return await asyncio.to_thread(self.export, now)
