"""
Redis-backed conversation store.

Layout (``{prefix}`` defaults to ``livenotes``):

- ``{prefix}:conversation:{id}``  JSON conversation record
- ``{prefix}:note:{id}``          JSON note record
- ``{prefix}:user:{user}:conversations`` / ``...:notes``  id lists, newest first
"""

from __future__ import annotations

import json
import uuid
from typing import Any, List, Optional

from loguru import logger
from redis import asyncio as aioredis

from livenotes.config import StorageConfig
from livenotes.models import ConversationRecord, ConversationSummary, NoteRecord
from livenotes.storage.base import ConversationStore, clean_note_update


class RedisStore(ConversationStore):
    """Stores records as JSON strings with per-user id lists."""

    def __init__(self, client: aioredis.Redis, key_prefix: str = "livenotes"):
        self.client = client
        self.key_prefix = key_prefix

    @classmethod
    def from_config(cls, config: StorageConfig) -> "RedisStore":
        client = aioredis.from_url(config.redis_url, db=config.redis_db, decode_responses=True)
        logger.info(f"Connected Redis store at {config.redis_url} (db={config.redis_db})")
        return cls(client, key_prefix=config.key_prefix)

    def _key(self, kind: str, record_id: str) -> str:
        return f"{self.key_prefix}:{kind}:{record_id}"

    def _user_key(self, user_id: Optional[str], kind: str) -> str:
        return f"{self.key_prefix}:user:{user_id or ''}:{kind}"

    async def _load_many(self, kind: str, ids: List[str]) -> List[dict]:
        if not ids:
            return []
        raw = await self.client.mget([self._key(kind, i) for i in ids])
        return [json.loads(r) for r in raw if r]

    async def create_conversation(self, record: ConversationRecord) -> str:
        conversation_id = uuid.uuid4().hex
        data = record.dict()
        data["id"] = conversation_id
        await self.client.set(self._key("conversation", conversation_id), json.dumps(data))
        await self.client.lpush(self._user_key(record.user_id, "conversations"), conversation_id)
        return conversation_id

    async def list_by_user(self, user_id: str) -> List[ConversationSummary]:
        ids = await self.client.lrange(self._user_key(user_id, "conversations"), 0, -1)
        return [
            ConversationSummary(id=d["id"], timestamp=d["timestamp"], summary=d["summary"])
            for d in await self._load_many("conversation", ids)
        ]

    async def get_by_id(self, conversation_id: str) -> Optional[ConversationRecord]:
        raw = await self.client.get(self._key("conversation", conversation_id))
        return ConversationRecord(**json.loads(raw)) if raw else None

    async def create_note(self, record: NoteRecord) -> str:
        note_id = uuid.uuid4().hex
        data = record.dict()
        data["id"] = note_id
        await self.client.set(self._key("note", note_id), json.dumps(data))
        await self.client.lpush(self._user_key(record.user_id, "notes"), note_id)
        return note_id

    async def list_notes_by_user(self, user_id: str) -> List[NoteRecord]:
        ids = await self.client.lrange(self._user_key(user_id, "notes"), 0, -1)
        return [NoteRecord(**d) for d in await self._load_many("note", ids)]

    async def get_note(self, note_id: str) -> Optional[NoteRecord]:
        raw = await self.client.get(self._key("note", note_id))
        return NoteRecord(**json.loads(raw)) if raw else None

    async def update_note(self, note_id: str, **fields: Any) -> Optional[NoteRecord]:
        patch = clean_note_update(fields)
        current = await self.get_note(note_id)
        if current is None:
            return None
        data = current.dict()
        data.update(patch)
        updated = NoteRecord(**data)
        await self.client.set(self._key("note", note_id), json.dumps(updated.dict()))
        return updated

    async def delete_note(self, note_id: str) -> bool:
        current = await self.get_note(note_id)
        if current is None:
            return False
        await self.client.delete(self._key("note", note_id))
        await self.client.lrem(self._user_key(current.user_id, "notes"), 0, note_id)
        return True

    async def close(self) -> None:
        await self.client.aclose()
