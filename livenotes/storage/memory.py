"""
In-memory conversation store for development and tests.
"""

from __future__ import annotations

import uuid
from typing import Any, Dict, List, Optional

from livenotes.models import ConversationRecord, ConversationSummary, NoteRecord
from livenotes.storage.base import ConversationStore, clean_note_update


class InMemoryStore(ConversationStore):
    """Dict-backed store. Insertion order doubles as recency."""

    def __init__(self):
        self._conversations: Dict[str, ConversationRecord] = {}
        self._notes: Dict[str, NoteRecord] = {}

    async def create_conversation(self, record: ConversationRecord) -> str:
        conversation_id = uuid.uuid4().hex
        self._conversations[conversation_id] = record.copy(update={"id": conversation_id})
        return conversation_id

    async def list_by_user(self, user_id: str) -> List[ConversationSummary]:
        return [
            ConversationSummary(id=c.id, timestamp=c.timestamp, summary=c.summary)
            for c in reversed(list(self._conversations.values()))
            if c.user_id == user_id
        ]

    async def get_by_id(self, conversation_id: str) -> Optional[ConversationRecord]:
        return self._conversations.get(conversation_id)

    async def create_note(self, record: NoteRecord) -> str:
        note_id = uuid.uuid4().hex
        self._notes[note_id] = record.copy(update={"id": note_id})
        return note_id

    async def list_notes_by_user(self, user_id: str) -> List[NoteRecord]:
        return [n for n in reversed(list(self._notes.values())) if n.user_id == user_id]

    async def get_note(self, note_id: str) -> Optional[NoteRecord]:
        return self._notes.get(note_id)

    async def update_note(self, note_id: str, **fields: Any) -> Optional[NoteRecord]:
        patch = clean_note_update(fields)
        current = self._notes.get(note_id)
        if current is None:
            return None
        data = current.dict()
        data.update(patch)
        updated = NoteRecord(**data)
        self._notes[note_id] = updated
        return updated

    async def delete_note(self, note_id: str) -> bool:
        return self._notes.pop(note_id, None) is not None
