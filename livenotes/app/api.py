"""
API blueprint for Live Lecture Notes.

Endpoints:
- POST /api/recording/start
- POST /api/recording/stop
- GET /api/recording             (current snapshot)
- GET /api/conversations?userId=
- GET /api/conversations/<id>
- GET /api/notes?userId=
- GET /api/notes/<id>
- GET /api/notes/<id>/markdown
- PATCH /api/notes/<id>
- DELETE /api/notes/<id>
- GET /api/config
"""

from __future__ import annotations

import json
from typing import Any, Dict, Optional

from flask import Blueprint, Response, current_app, jsonify, request
from loguru import logger

from livenotes.exceptions import (
    PersistenceFailure,
    RecordingStateError,
    SourceUnavailable,
)
from livenotes.models import NoteRecord, SessionResult, SessionSnapshot

api_bp = Blueprint("api", __name__)

# Request body keys accepted on PATCH /notes/<id>
_NOTE_FIELD_ALIASES = {
    "topic": "topic",
    "keyConcepts": "key_concepts",
    "key_concepts": "key_concepts",
    "bulletNotes": "bullet_notes",
    "bullet_notes": "bullet_notes",
    "definitions": "definitions",
    "questions": "questions",
    "summary": "summary",
    "rawTranscription": "raw_transcription",
    "raw_transcription": "raw_transcription",
}


def _state() -> Dict[str, Any]:
    return current_app.extensions["livenotes"]


def _run(coro):
    state = _state()
    return state["runner"].run(coro, timeout=current_app.config["LIVENOTES_REQUEST_TIMEOUT"])


def _user_id() -> str:
    return request.args.get("userId") or _state()["controller"].user_id or ""


def _not_found(what: str, item_id: str):
    return jsonify({"ok": False, "error": f"{what} not found: {item_id}"}), 404


def _snapshot_payload(snapshot: SessionSnapshot) -> Dict[str, Any]:
    return {
        "epoch": snapshot.epoch,
        "recording": snapshot.recording,
        "lineCount": snapshot.line_count,
        "blocks": snapshot.blocks.to_records(),
        "note": _note_payload(snapshot.note) if snapshot.note else None,
        "workerState": snapshot.worker_state.value,
        "pendingBlocks": snapshot.pending_blocks,
    }


def _note_payload(note) -> Dict[str, Any]:
    return {
        "topic": note.topic,
        "keyConcepts": list(note.key_concepts),
        "bulletNotes": list(note.bullet_notes),
        "definitions": [d.to_record() for d in note.definitions],
        "questions": list(note.questions),
        "summary": note.summary,
    }


def _note_record_payload(record: NoteRecord) -> Dict[str, Any]:
    payload = _note_payload(record.to_note())
    payload.update(
        {
            "id": record.id,
            "rawTranscription": record.raw_transcription,
            "timestamp": record.timestamp,
            "userId": record.user_id,
        }
    )
    return payload


def _result_payload(result: SessionResult) -> Dict[str, Any]:
    return {
        "ok": True,
        "conversationId": result.conversation_id,
        "noteId": result.note_id,
        "blocks": result.blocks.to_records(),
        "note": _note_payload(result.note) if result.note else None,
    }


@api_bp.errorhandler(RecordingStateError)
def _handle_state_error(e: RecordingStateError):
    return jsonify({"ok": False, "error": e.message}), 409


@api_bp.errorhandler(SourceUnavailable)
@api_bp.errorhandler(PersistenceFailure)
def _handle_upstream_error(e):
    logger.error(f"Upstream failure: {e.message} {e.details}")
    return jsonify({"ok": False, "error": e.message, "details": e.details}), 502


@api_bp.post("/recording/start")
def api_recording_start():
    controller = _state()["controller"]
    epoch = _run(controller.start())
    return jsonify({"ok": True, "epoch": epoch})


@api_bp.post("/recording/stop")
def api_recording_stop():
    controller = _state()["controller"]
    result = _run(controller.stop())
    return jsonify(_result_payload(result))


@api_bp.post("/recording/save")
def api_recording_save():
    """Retry saving the last recording after a persistence failure."""
    controller = _state()["controller"]
    result = _run(controller.save())
    return jsonify(_result_payload(result))


@api_bp.get("/recording")
def api_recording_snapshot():
    controller = _state()["controller"]
    snapshot = _state()["runner"].call(controller.snapshot)
    return jsonify(_snapshot_payload(snapshot))


@api_bp.get("/conversations")
def api_list_conversations():
    store = _state()["controller"].store
    summaries = _run(store.list_by_user(_user_id()))
    return jsonify({"ok": True, "conversations": [s.dict() for s in summaries]})


@api_bp.get("/conversations/<conversation_id>")
def api_get_conversation(conversation_id: str):
    store = _state()["controller"].store
    record = _run(store.get_by_id(conversation_id))
    if record is None:
        return _not_found("conversation", conversation_id)
    return jsonify(
        {
            "ok": True,
            "id": record.id,
            "timestamp": record.timestamp,
            "summary": record.summary,
            "userId": record.user_id,
            "blocks": record.decoded_blocks(),
        }
    )


@api_bp.get("/notes")
def api_list_notes():
    store = _state()["controller"].store
    records = _run(store.list_notes_by_user(_user_id()))
    return jsonify({"ok": True, "notes": [_note_record_payload(r) for r in records]})


@api_bp.get("/notes/<note_id>")
def api_get_note(note_id: str):
    store = _state()["controller"].store
    record = _run(store.get_note(note_id))
    if record is None:
        return _not_found("note", note_id)
    return jsonify({"ok": True, **_note_record_payload(record)})


@api_bp.get("/notes/<note_id>/markdown")
def api_note_markdown(note_id: str):
    store = _state()["controller"].store
    record = _run(store.get_note(note_id))
    if record is None:
        return _not_found("note", note_id)
    return Response(record.to_note().to_markdown(), mimetype="text/markdown")


def _parse_note_patch(data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    fields: Dict[str, Any] = {}
    for key, value in data.items():
        name = _NOTE_FIELD_ALIASES.get(key)
        if name is None:
            return None
        if name == "definitions" and isinstance(value, list):
            value = json.dumps(value, ensure_ascii=False)
        fields[name] = value
    return fields


@api_bp.patch("/notes/<note_id>")
def api_update_note(note_id: str):
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({"ok": False, "error": "JSON object body required"}), 400
    fields = _parse_note_patch(data)
    if fields is None:
        return jsonify({"ok": False, "error": "Unknown note field in body"}), 400
    store = _state()["controller"].store
    try:
        record = _run(store.update_note(note_id, **fields))
    except ValueError as e:
        return jsonify({"ok": False, "error": str(e)}), 400
    if record is None:
        return _not_found("note", note_id)
    return jsonify({"ok": True, **_note_record_payload(record)})


@api_bp.delete("/notes/<note_id>")
def api_delete_note(note_id: str):
    store = _state()["controller"].store
    if not _run(store.delete_note(note_id)):
        return _not_found("note", note_id)
    return jsonify({"ok": True})


@api_bp.get("/config")
def api_config():
    return jsonify(_state()["config"].to_dict())
