"""
Central SQLAlchemy models and engine utilities.

The schema is created idempotently on every start (no migrations): tables and
indexes are only emitted when they do not exist yet.
"""

import logging
from pathlib import Path
from typing import Optional

from sqlalchemy import (
    Column,
    ForeignKey,
    Index,
    Integer,
    Text,
    TIMESTAMP,
    event,
)
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

from .config import config

logger = logging.getLogger(__name__)

Base = declarative_base()

BUSY_TIMEOUT_MS = 5000


class Tab(Base):
    """
    Top-level container for notes.
    """
    __tablename__ = "tabs"

    id = Column(Integer, primary_key=True)
    name = Column(Text, nullable=False)

    created_at = Column(TIMESTAMP, nullable=False, server_default=func.now())
    updated_at = Column(TIMESTAMP, nullable=False, server_default=func.now())


class Note(Base):
    """
    Notes table.

    A note with parent_id NULL is top-level within its tab. order_id is the
    note's position among its siblings; it stays nullable so databases written
    before ordering existed still load.
    """
    __tablename__ = "notes"

    id = Column(Integer, primary_key=True)
    title = Column(Text, nullable=False)
    content = Column(Text, nullable=False, server_default="")
    tab_id = Column(Integer, ForeignKey("tabs.id", ondelete="CASCADE"), nullable=True)
    parent_id = Column(Integer, ForeignKey("notes.id", ondelete="CASCADE"), nullable=True)
    order_id = Column(Integer, nullable=True)
    note_type = Column(Text, nullable=False, server_default="note")

    created_at = Column(TIMESTAMP, nullable=False, server_default=func.now())
    updated_at = Column(TIMESTAMP, nullable=False, server_default=func.now())

    # Indexes
    __table_args__ = (
        Index("idx_notes_tab_parent_order", "tab_id", "parent_id", "order_id"),
        Index("idx_notes_parent_order", "parent_id", "order_id"),
    )


def get_database_url(db_path: Optional[Path] = None) -> str:
    """
    Get database URL from the environment, defaulting to the SQLite file in the data dir.

    Returns:
        Async SQLAlchemy connection string
    """
    if db_path is None and config.DATABASE_URL:
        return config.DATABASE_URL

    path = Path(db_path or config.DATABASE_FILE).resolve()
    path.parent.mkdir(parents=True, exist_ok=True)
    return f"sqlite+aiosqlite:///{path}"


def create_engine_for_url(database_url: Optional[str] = None) -> AsyncEngine:
    """Build an async SQLAlchemy engine for the given URL (or default environment)."""
    url = database_url or get_database_url()
    engine = create_async_engine(
        url,
        echo=False,
        pool_pre_ping=True,
    )

    if engine.dialect.name == "sqlite":
        event.listen(engine.sync_engine, "connect", _set_sqlite_pragmas)

    return engine


def _set_sqlite_pragmas(dbapi_connection, connection_record):
    """
    Apply SQLite pragmas once per new connection.

    WAL gives one writer alongside many readers. auto_vacuum only takes effect
    on a database that has no tables yet, so it is issued first.
    """
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA auto_vacuum=INCREMENTAL")
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA synchronous=NORMAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.execute(f"PRAGMA busy_timeout={BUSY_TIMEOUT_MS}")
    cursor.close()


async def ensure_schema(engine: AsyncEngine) -> None:
    """
    Create tables and indexes if they are absent.

    Safe to call on every start: existing objects are detected and skipped,
    nothing is dropped or altered.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all, checkfirst=True)
    logger.info("Database schema ready (%s)", engine.url.render_as_string(hide_password=True))
