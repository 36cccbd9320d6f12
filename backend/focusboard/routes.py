"""
REST API routes for the note board.

Organized into logical groups:
- Tabs: CRUD operations for tabs
- Notes: CRUD and reordering for notes
- Maintenance: backup, shutdown and health

Store errors come back as {"error": <user-safe message>, "kind": <kind>};
raw database errors are only ever logged.
"""

import logging

from flask import Blueprint, request, jsonify
from pydantic import ValidationError
from werkzeug.exceptions import BadRequest

from .errors import StoreError
from .services.container import get_services
from .services.models import NoteCreate, NoteUpdate, ReorderRequest, TabCreate, TabUpdate
from .services.storage import ANY_PARENT

logger = logging.getLogger(__name__)

bp = Blueprint("api", __name__)


def _json_error(message: str, status: int = 400):
    return jsonify({"error": message}), status


def _payload():
    return request.get_json(silent=True) or {}


def _optional_int_arg(name: str):
    """Query arg as int; absent -> None, literal "null" -> None."""
    raw = request.args.get(name)
    if raw is None or raw == "" or raw.lower() == "null":
        return None
    try:
        return int(raw)
    except ValueError:
        raise BadRequest(f"{name} must be an integer or null") from None


@bp.errorhandler(StoreError)
def _handle_store_error(exc: StoreError):
    return jsonify(exc.to_dict()), exc.http_status


@bp.errorhandler(ValidationError)
def _handle_validation_error(exc: ValidationError):
    logger.info("Rejected invalid request: %s", exc)
    return _json_error("Invalid request", 400)


@bp.errorhandler(BadRequest)
def _handle_bad_request(exc: BadRequest):
    logger.info("Rejected invalid request: %s", exc)
    return _json_error("Invalid request", 400)


# ============================================================================
# TAB ENDPOINTS
# ============================================================================


@bp.get("/tabs")
def list_tabs():
    """
    List all tabs, oldest first.

    Returns:
        JSON: {"tabs": [...]}
    """
    svc = get_services()
    tabs = svc.runtime.run(svc.storage.list_tabs())
    return jsonify({"tabs": [tab.model_dump(mode="json") for tab in tabs]})


@bp.post("/tabs")
def create_tab():
    """
    Create a tab.

    Body:
        {"name": str}

    Returns:
        JSON: {"tab": {...}} (201)
    """
    svc = get_services()
    body = TabCreate.model_validate(_payload())
    tab = svc.runtime.run(svc.storage.create_tab(body.name))
    return jsonify({"tab": tab.model_dump(mode="json")}), 201


@bp.put("/tabs/<int:tab_id>")
def update_tab(tab_id: int):
    svc = get_services()
    body = TabUpdate.model_validate(_payload())
    svc.runtime.run(svc.storage.update_tab(tab_id, body.name))
    return jsonify({"success": True})


@bp.delete("/tabs/<int:tab_id>")
def delete_tab(tab_id: int):
    """
    Delete a tab together with every note in it (children included).

    Returns:
        JSON: {"success": bool, "message": str}
    """
    svc = get_services()
    svc.runtime.run(svc.storage.delete_tab(tab_id))
    return jsonify({"success": True, "message": f"Tab {tab_id} deleted successfully"})


# ============================================================================
# NOTE ENDPOINTS
# ============================================================================


@bp.get("/notes")
def list_notes():
    """
    List notes in a tab.

    Query params:
        - tab_id: Tab to list (omit or "null" for notes without a tab)
        - parent_id: Only children of this note ("null" for top-level notes);
          omit to list the whole tab

    Returns:
        JSON: {"notes": [...], "total": int}
    """
    svc = get_services()
    tab_id = _optional_int_arg("tab_id")
    parent_id = _optional_int_arg("parent_id") if "parent_id" in request.args else ANY_PARENT

    notes = svc.runtime.run(svc.storage.list_notes(tab_id=tab_id, parent_id=parent_id))
    return jsonify({"notes": [note.model_dump(mode="json") for note in notes], "total": len(notes)})


@bp.get("/notes/<int:note_id>")
def get_note(note_id: int):
    svc = get_services()
    note = svc.runtime.run(svc.storage.get_note(note_id))
    return jsonify({"note": note.model_dump(mode="json")})


@bp.post("/notes")
def create_note():
    """
    Create a note at the end of its siblings.

    Body:
        {"title": str, "content": str, "tab_id": int|null,
         "parent_id": int|null, "note_type": str}

    Returns:
        JSON: {"note": {...}} (201)
    """
    svc = get_services()
    body = NoteCreate.model_validate(_payload())
    note = svc.runtime.run(
        svc.storage.create_note(
            title=body.title,
            content=body.content,
            tab_id=body.tab_id,
            parent_id=body.parent_id,
            note_type=body.note_type,
        )
    )
    return jsonify({"note": note.model_dump(mode="json")}), 201


@bp.put("/notes/<int:note_id>")
def update_note(note_id: int):
    svc = get_services()
    body = NoteUpdate.model_validate(_payload())
    svc.runtime.run(svc.storage.update_note(note_id, body.title, body.content))
    return jsonify({"success": True})


@bp.delete("/notes/<int:note_id>")
def delete_note(note_id: int):
    """
    Delete a note and its descendants.

    Returns:
        JSON: {"success": bool, "message": str}
    """
    svc = get_services()
    svc.runtime.run(svc.storage.delete_note(note_id))
    return jsonify({"success": True, "message": f"Note {note_id} deleted successfully"})


@bp.post("/notes/reorder")
def reorder_notes():
    """
    Apply a new order to a set of sibling notes.

    Body:
        {"note_ids": [int, ...]}  (first id gets order_id 1)
    """
    svc = get_services()
    body = ReorderRequest.model_validate(_payload())
    svc.runtime.run(svc.storage.reorder_notes(body.note_ids))
    return jsonify({"success": True})


# ============================================================================
# MAINTENANCE ENDPOINTS
# ============================================================================


@bp.post("/backup")
def backup_store():
    """
    Copy the database files into a timestamped backup folder.

    Returns:
        JSON: {"success": true, "path": str}
    """
    svc = get_services()
    path = svc.runtime.run(svc.backup.backup_store())
    return jsonify({"success": True, "path": str(path)})


@bp.post("/shutdown")
def shutdown():
    """
    Ask the app to close. The store drains first; the response comes back immediately.

    Returns:
        JSON: {"closing": bool, "state": str} (202)
    """
    svc = get_services()
    started = svc.lifecycle.request_shutdown()
    return jsonify({"closing": True, "started": started, "state": svc.lifecycle.state.value}), 202


@bp.get("/health")
def health():
    svc = get_services()
    return jsonify({"status": "ok", "lifecycle": svc.lifecycle.state.value})
