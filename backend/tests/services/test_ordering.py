"""
Reorder tests: a reorder applies completely or not at all.
"""
from __future__ import annotations

import pytest
from sqlalchemy.exc import OperationalError

from conftest import scope_orders
from focusboard.errors import TransactionFailureError
from focusboard.services.ordering import OrderingEngine, OrderScope


@pytest.fixture()
def abc(runtime, storage):
    tab = runtime.run(storage.create_tab("Work"))
    notes = [runtime.run(storage.create_note(x, tab_id=tab.id)) for x in "abc"]
    return tab, notes


def test_reorder_assigns_list_positions(runtime, storage, db_path, abc):
    tab, (a, b, c) = abc

    runtime.run(storage.reorder_notes([c.id, a.id, b.id]))

    assert scope_orders(db_path, tab.id) == {c.id: 1, a.id: 2, b.id: 3}
    listed = runtime.run(storage.list_notes(tab_id=tab.id))
    assert [n.title for n in listed] == ["c", "a", "b"]


def test_reorder_empty_list_is_a_noop(runtime, storage, db_path, abc):
    tab, (a, b, c) = abc

    runtime.run(storage.reorder_notes([]))

    assert scope_orders(db_path, tab.id) == {a.id: 1, b.id: 2, c.id: 3}


def test_reorder_with_missing_id_changes_nothing(runtime, storage, db_path, abc):
    tab, (a, b, c) = abc

    with pytest.raises(TransactionFailureError) as exc_info:
        runtime.run(storage.reorder_notes([c.id, 9999, a.id]))

    assert exc_info.value.public_message == "Failed to reorder notes"
    assert scope_orders(db_path, tab.id) == {a.id: 1, b.id: 2, c.id: 3}


def test_reorder_rolls_back_when_a_write_fails(runtime, storage, db_path, abc, monkeypatch):
    tab, (a, b, c) = abc
    real_set_position = storage.ordering._set_position
    calls = []

    async def flaky_set_position(session, note_id, position):
        calls.append(note_id)
        if len(calls) == 2:
            raise OperationalError("UPDATE notes", {}, Exception("simulated failure"))
        return await real_set_position(session, note_id, position)

    monkeypatch.setattr(storage.ordering, "_set_position", flaky_set_position)

    with pytest.raises(TransactionFailureError) as exc_info:
        runtime.run(storage.reorder_notes([c.id, b.id, a.id]))

    assert exc_info.value.public_message == "Failed to reorder notes"
    assert "simulated" not in str(exc_info.value)
    assert scope_orders(db_path, tab.id) == {a.id: 1, b.id: 2, c.id: 3}


def test_reorder_rejects_duplicate_ids(runtime, storage, db_path, abc):
    tab, (a, b, c) = abc

    with pytest.raises(TransactionFailureError):
        runtime.run(storage.reorder_notes([a.id, a.id, b.id]))

    assert scope_orders(db_path, tab.id) == {a.id: 1, b.id: 2, c.id: 3}


def test_reorder_leaves_unlisted_notes_untouched(runtime, storage, db_path, abc):
    tab, (a, b, c) = abc

    runtime.run(storage.reorder_notes([b.id, a.id]))

    assert scope_orders(db_path, tab.id) == {b.id: 1, a.id: 2, c.id: 3}


def test_scope_key_collapses_parent_in_tab_mode():
    assert OrderingEngine(OrderScope.TAB).scope_key(3, 7) == (3, None)
    assert OrderingEngine(OrderScope.TAB_PARENT).scope_key(3, 7) == (3, 7)
    assert OrderingEngine("tab").scope is OrderScope.TAB
