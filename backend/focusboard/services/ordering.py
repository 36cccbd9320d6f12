"""
Sibling ordering for notes.

Notes that share an ordering scope carry ``order_id`` values 1..N with no
gaps or repeats. The scope is either ``(tab_id, parent_id)`` or ``tab_id``
alone, fixed when the engine is built.

Every method here runs inside the caller's session and transaction; the
caller owns commit/rollback and write serialization.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import List, Optional, Sequence, Tuple

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import Note as NoteORM

logger = logging.getLogger(__name__)


class OrderScope(str, Enum):
    """Which columns define a group of siblings."""

    TAB_PARENT = "tab_parent"
    TAB = "tab"


class ReorderError(Exception):
    """A reorder could not be applied; the transaction must roll back."""


class OrderingEngine:
    """Assigns and maintains order_id within a scope."""

    def __init__(self, scope: OrderScope = OrderScope.TAB_PARENT):
        self.scope = OrderScope(scope)

    def scope_filter(self, tab_id: Optional[int], parent_id: Optional[int]) -> list:
        """WHERE clauses selecting one scope. NULL ids match NULL (SQL ``IS``)."""
        clauses = [NoteORM.tab_id.is_not_distinct_from(tab_id)]
        if self.scope is OrderScope.TAB_PARENT:
            clauses.append(NoteORM.parent_id.is_not_distinct_from(parent_id))
        return clauses

    def scope_key(self, tab_id: Optional[int], parent_id: Optional[int]) -> Tuple[Optional[int], Optional[int]]:
        """Hashable identity of the scope a note with these ids belongs to."""
        if self.scope is OrderScope.TAB:
            return (tab_id, None)
        return (tab_id, parent_id)

    @staticmethod
    def sort_key() -> tuple:
        """
        Total order for reading a scope.

        NULL order_id (rows written before ordering existed) sorts first, then
        order_id ascending, then id as a tie-breaker. The NULL rule is spelled
        out instead of relying on the engine's NULL ordering.
        """
        return (
            NoteORM.order_id.is_(None).desc(),
            NoteORM.order_id.asc(),
            NoteORM.id.asc(),
        )

    async def next_order_id(
        self, session: AsyncSession, tab_id: Optional[int], parent_id: Optional[int]
    ) -> int:
        """
        Position for a note appended to the scope: max(order_id) + 1, or 1 when empty.

        Legacy rows without an order_id are numbered first so the append keeps
        the scope dense.
        """
        where = self.scope_filter(tab_id, parent_id)

        unordered = await session.scalar(
            select(func.count()).select_from(NoteORM).where(*where, NoteORM.order_id.is_(None))
        )
        if unordered:
            logger.info(
                "Numbering %d unordered notes in scope tab=%s parent=%s",
                unordered, tab_id, parent_id,
            )
            await self.renumber(session, tab_id, parent_id)

        max_order = await session.scalar(select(func.max(NoteORM.order_id)).where(*where))
        return (max_order or 0) + 1

    async def renumber(
        self, session: AsyncSession, tab_id: Optional[int], parent_id: Optional[int]
    ) -> int:
        """
        Rewrite the scope's order_id values to 1..N following the sort key.

        Only rows whose position changes are written. Returns N.
        """
        rows = await session.execute(
            select(NoteORM.id, NoteORM.order_id)
            .where(*self.scope_filter(tab_id, parent_id))
            .order_by(*self.sort_key())
        )
        members = rows.all()
        for position, (note_id, current) in enumerate(members, start=1):
            if current != position:
                await self._set_position(session, note_id, position)
        return len(members)

    async def reorder(self, session: AsyncSession, note_ids: Sequence[int]) -> int:
        """
        Assign order_id = index + 1 to each id, in list order.

        Ids not in the list keep their values. An id that matches no row (or
        appears twice) raises ReorderError; the caller rolls back so a partial
        reorder is never committed. Returns the number of notes updated.
        """
        ids: List[int] = list(note_ids)
        if not ids:
            return 0
        if len(set(ids)) != len(ids):
            raise ReorderError("duplicate note ids in reorder request")

        for position, note_id in enumerate(ids, start=1):
            updated = await self._set_position(session, note_id, position)
            if updated == 0:
                raise ReorderError(f"note {note_id} does not exist")
        return len(ids)

    async def _set_position(self, session: AsyncSession, note_id: int, position: int) -> int:
        result = await session.execute(
            update(NoteORM)
            .where(NoteORM.id == note_id)
            .values(order_id=position)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount
