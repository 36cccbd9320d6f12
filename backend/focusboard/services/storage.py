"""
SQLAlchemy-backed storage service for tabs and notes.

All methods are coroutines and must run on the store's event loop (see
``runtime.StoreRuntime``). Writes are serialized by a single lock so the
database sees one writer at a time; every mutation runs in one transaction.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager, contextmanager, nullcontext
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, AsyncGenerator, Generator, List, Optional, Sequence, Set, Tuple

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import aliased

from ..config import config
from ..database import (
    Note as NoteORM,
    Tab as TabORM,
    create_engine_for_url,
    ensure_schema,
    get_database_url,
)
from ..errors import (
    ConstraintViolationError,
    NotFoundError,
    StoreError,
    TransactionFailureError,
    UnavailableError,
)
from .models import Note as NoteDTO, Tab as TabDTO
from .ordering import OrderingEngine, OrderScope, ReorderError

logger = logging.getLogger(__name__)

NOTE_ORDERING_MODES = ("manual", "recent")

_UNAVAILABLE_MARKERS = (
    "database is locked",
    "database is busy",
    "unable to open database",
    "disk i/o error",
)


class _AnyParent:
    def __repr__(self) -> str:
        return "ANY_PARENT"


# Sentinel for list_notes: do not filter on parent_id.
ANY_PARENT: Any = _AnyParent()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


@contextmanager
def _translate_errors(action: str, public_message: str) -> Generator[None, None, None]:
    """Log the raw database error and re-raise it as a user-safe StoreError."""
    try:
        yield
    except StoreError:
        raise
    except ReorderError as exc:
        logger.error("Failed to %s: %s", action, exc)
        raise TransactionFailureError(public_message) from exc
    except IntegrityError as exc:
        logger.error("Failed to %s (constraint): %s", action, exc)
        raise ConstraintViolationError() from exc
    except PoolTimeoutError as exc:
        logger.error("Failed to %s (no connection available): %s", action, exc)
        raise UnavailableError() from exc
    except OperationalError as exc:
        logger.error("Failed to %s: %s", action, exc)
        if any(marker in str(exc).lower() for marker in _UNAVAILABLE_MARKERS):
            raise UnavailableError() from exc
        raise TransactionFailureError(public_message) from exc
    except SQLAlchemyError as exc:
        logger.exception("Failed to %s", action)
        raise TransactionFailureError(public_message) from exc


class NoteStorage:
    """
    Async storage facade used by the command routes and the lifecycle coordinator.

    Ordering behaviour is fixed at construction:
      - order_scope: "tab_parent" or "tab" (which siblings share one order)
      - note_ordering: "manual" keeps order_id dense and lists by it,
        "recent" leaves order_id alone and lists by updated_at descending.
    """

    def __init__(
        self,
        db_path: Optional[Path] = None,
        database_url: Optional[str] = None,
        order_scope: Optional[str] = None,
        note_ordering: Optional[str] = None,
        engine: Optional[AsyncEngine] = None,
    ):
        self.engine = engine or create_engine_for_url(database_url or get_database_url(db_path))
        self.session_factory = async_sessionmaker(
            bind=self.engine,
            class_=AsyncSession,
            autoflush=False,
            expire_on_commit=False,
        )
        self.ordering = OrderingEngine(OrderScope(order_scope or config.ORDER_SCOPE))

        self.note_ordering = note_ordering or config.NOTE_ORDERING
        if self.note_ordering not in NOTE_ORDERING_MODES:
            raise ValueError(f"Unknown note ordering {self.note_ordering!r}")

        # Shared with the lifecycle drain and the backup copy: one writer at a time.
        self.write_lock = asyncio.Lock()
        self._accepting_writes = True

    @property
    def manual_ordering(self) -> bool:
        return self.note_ordering == "manual"

    @property
    def accepting_writes(self) -> bool:
        return self._accepting_writes

    def stop_writes(self) -> None:
        """Refuse every later write with UnavailableError. Writes already holding the lock finish."""
        if self._accepting_writes:
            logger.info("Store closing, no longer accepting writes")
        self._accepting_writes = False

    async def initialize(self) -> None:
        """Create the schema if needed. Call once before serving commands."""
        with _translate_errors("initialize database", "Failed to open the note database."):
            await ensure_schema(self.engine)

    async def close(self) -> None:
        await self.engine.dispose()

    # ------------------------------------------------------------------
    # Tabs
    # ------------------------------------------------------------------

    async def list_tabs(self) -> List[TabDTO]:
        async with self._session_scope("fetch tabs", "Failed to fetch tabs. Please try again") as session:
            rows = (await session.execute(select(TabORM).order_by(TabORM.id.asc()))).scalars().all()
            return [TabDTO.model_validate(row) for row in rows]

    async def create_tab(self, name: str) -> TabDTO:
        now = _utcnow()
        db_tab = TabORM(name=name, created_at=now, updated_at=now)

        async with self._session_scope(
            f"create tab {name!r}", "Failed to create tab. Please try again", write=True
        ) as session:
            session.add(db_tab)
            await session.flush()

        logger.info("Created tab %s", db_tab.id)
        return TabDTO.model_validate(db_tab)

    async def update_tab(self, tab_id: int, name: str) -> None:
        async with self._session_scope(
            f"update tab {tab_id}", "Failed to update tab. Please try again", write=True
        ) as session:
            result = await session.execute(
                update(TabORM)
                .where(TabORM.id == tab_id)
                .values(name=name, updated_at=_utcnow())
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise NotFoundError("tab", tab_id)

    async def delete_tab(self, tab_id: int) -> None:
        """Delete a tab; its notes and their descendants go with it."""
        async with self._session_scope(
            f"delete tab {tab_id}", "Failed to delete tab. Please try again", write=True
        ) as session:
            scopes = await self._affected_scopes(session, NoteORM.tab_id == tab_id)
            result = await session.execute(
                delete(TabORM).where(TabORM.id == tab_id).execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise NotFoundError("tab", tab_id)
            await self._renumber_scopes(session, scopes)

        logger.info("Deleted tab %s", tab_id)

    # ------------------------------------------------------------------
    # Notes
    # ------------------------------------------------------------------

    async def get_note(self, note_id: int) -> NoteDTO:
        async with self._session_scope(
            f"fetch note {note_id}", "Failed to load note. Please try again."
        ) as session:
            note = await session.get(NoteORM, note_id)
            if note is None:
                raise NotFoundError("note", note_id)
            return NoteDTO.model_validate(note)

    async def list_notes(self, tab_id: Optional[int] = None, parent_id: Any = ANY_PARENT) -> List[NoteDTO]:
        """
        List notes whose tab_id matches (None selects notes without a tab).

        Pass parent_id to narrow to one set of siblings; None selects top-level notes.
        """
        query = select(NoteORM).where(NoteORM.tab_id.is_not_distinct_from(tab_id))
        if parent_id is not ANY_PARENT:
            query = query.where(NoteORM.parent_id.is_not_distinct_from(parent_id))

        if self.manual_ordering:
            query = query.order_by(*self.ordering.sort_key())
        else:
            query = query.order_by(NoteORM.updated_at.desc(), NoteORM.id.desc())

        async with self._session_scope(
            f"fetch notes (tab_id = {tab_id})", "Failed to load notes. Please try again."
        ) as session:
            rows = (await session.execute(query)).scalars().all()
            return [NoteDTO.model_validate(row) for row in rows]

    async def create_note(
        self,
        title: str,
        content: str = "",
        tab_id: Optional[int] = None,
        parent_id: Optional[int] = None,
        note_type: str = "note",
    ) -> NoteDTO:
        """Insert a note at the end of its scope. Position and insert share one transaction."""
        now = _utcnow()
        async with self._session_scope(
            f"create note {title!r}", "Failed to create note. Please try again", write=True
        ) as session:
            order_id = None
            if self.manual_ordering:
                order_id = await self.ordering.next_order_id(session, tab_id, parent_id)

            db_note = NoteORM(
                title=title,
                content=content,
                tab_id=tab_id,
                parent_id=parent_id,
                order_id=order_id,
                note_type=note_type,
                created_at=now,
                updated_at=now,
            )
            session.add(db_note)
            await session.flush()

        logger.info("Created note %s (tab=%s parent=%s order=%s)", db_note.id, tab_id, parent_id, order_id)
        return NoteDTO.model_validate(db_note)

    async def update_note(self, note_id: int, title: str, content: str) -> None:
        """Update title and content. Ordering fields are never touched here."""
        async with self._session_scope(
            f"update note {note_id}", "Failed to update note. Please try again", write=True
        ) as session:
            result = await session.execute(
                update(NoteORM)
                .where(NoteORM.id == note_id)
                .values(title=title, content=content, updated_at=_utcnow())
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise NotFoundError("note", note_id)

    async def delete_note(self, note_id: int) -> None:
        """Delete a note and its descendants, then close the gap among its siblings."""
        async with self._session_scope(
            f"delete note {note_id}", "Failed to delete note. Please try again", write=True
        ) as session:
            scopes = await self._affected_scopes(session, NoteORM.id == note_id)
            result = await session.execute(
                delete(NoteORM).where(NoteORM.id == note_id).execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise NotFoundError("note", note_id)
            await self._renumber_scopes(session, scopes)

        logger.info("Deleted note %s", note_id)

    async def reorder_notes(self, note_ids: Sequence[int]) -> None:
        """Apply a caller-supplied order in one transaction. An empty list is a no-op."""
        if not note_ids:
            return

        async with self._session_scope("reorder notes", "Failed to reorder notes", write=True) as session:
            count = await self.ordering.reorder(session, note_ids)

        logger.debug("Reordered %d notes", count)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _affected_scopes(self, session: AsyncSession, condition) -> Set[Tuple[Optional[int], Optional[int]]]:
        """
        Scopes that lose members when the notes matching ``condition`` are deleted.

        Walks descendants too, since ON DELETE CASCADE removes them and a child
        may sit in a scope that survives (e.g. a different tab).
        """
        if not self.manual_ordering:
            return set()

        doomed = select(NoteORM.id).where(condition).cte("doomed", recursive=True)
        doomed_alias = doomed.alias()
        child = aliased(NoteORM)
        doomed = doomed.union_all(select(child.id).where(child.parent_id == doomed_alias.c.id))

        rows = await session.execute(
            select(NoteORM.tab_id, NoteORM.parent_id)
            .where(NoteORM.id.in_(select(doomed.c.id)))
            .distinct()
        )
        return {self.ordering.scope_key(tab_id, parent_id) for tab_id, parent_id in rows.all()}

    async def _renumber_scopes(self, session: AsyncSession, scopes: Set[Tuple[Optional[int], Optional[int]]]) -> None:
        for tab_id, parent_id in scopes:
            await self.ordering.renumber(session, tab_id, parent_id)

    @asynccontextmanager
    async def _session_scope(
        self, action: str, public_message: str, write: bool = False
    ) -> AsyncGenerator[AsyncSession, None]:
        async with (self.write_lock if write else nullcontext()):
            if write and not self._accepting_writes:
                logger.warning("Rejected %s: store is closing", action)
                raise UnavailableError()
            with _translate_errors(action, public_message):
                session = self.session_factory()
                try:
                    yield session
                    await session.commit()
                except Exception:
                    await session.rollback()
                    raise
                finally:
                    await session.close()
