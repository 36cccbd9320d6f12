"""
Dependency injection container for backend services.

We store a single Services instance on the Flask app (app.extensions["services"]).
Routes can then fetch dependencies via get_services() which makes route tests able
to inject fakes without importing/initializing global singletons.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from flask import current_app

from ..config import config
from .backup import BackupExporter
from .lifecycle import LifecycleCoordinator
from .runtime import StoreRuntime
from .storage import NoteStorage


@dataclass(frozen=True)
class Services:
    runtime: StoreRuntime
    storage: NoteStorage
    lifecycle: LifecycleCoordinator
    backup: BackupExporter


def create_services(
    *,
    database_url: Optional[str] = None,
    db_path: Optional[Path] = None,
    backup_dir: Optional[Path] = None,
) -> Services:
    """
    Build the production Services container and open the database.

    Args:
        database_url: Optional override for database URL (useful for tests).
        db_path: Optional SQLite file path; its directory is what gets backed up.
        backup_dir: Optional override for where backups are written.
    """
    config.validate()

    runtime = StoreRuntime()
    runtime.start()

    storage = NoteStorage(db_path=db_path, database_url=database_url)
    runtime.run(storage.initialize())

    database_dir = Path(db_path).parent if db_path else config.DATABASE_DIR
    return Services(
        runtime=runtime,
        storage=storage,
        lifecycle=LifecycleCoordinator(runtime, storage),
        backup=BackupExporter(
            database_dir=database_dir, backup_dir=backup_dir, write_lock=storage.write_lock
        ),
    )


def get_services() -> Services:
    """
    Fetch the Services container from the current Flask app.

    Raises:
        RuntimeError if services have not been attached to the app.
    """
    services = current_app.extensions.get("services")
    if services is None:
        raise RuntimeError('Services not configured. Expected app.extensions["services"].')
    return services
