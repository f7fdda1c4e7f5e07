"""
Persistence interface for finalized conversations and notes.

All backends implement ConversationStore. ResilientStore wraps any backend
with a per-call timeout and bounded retries, and turns final failures into
PersistenceFailure.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar

from loguru import logger
from redis.exceptions import RedisError
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from livenotes.config import StorageConfig, get_config
from livenotes.exceptions import PersistenceFailure
from livenotes.models import ConversationRecord, ConversationSummary, NoteRecord

T = TypeVar("T")

# Fields a note update may patch
NOTE_UPDATE_FIELDS = (
    "topic",
    "key_concepts",
    "bullet_notes",
    "definitions",
    "questions",
    "summary",
    "raw_transcription",
)

TRANSIENT_ERRORS = (asyncio.TimeoutError, ConnectionError, OSError, RedisError)


def clean_note_update(fields: Dict[str, Any]) -> Dict[str, Any]:
    """Drop unset fields and reject unknown ones."""
    unknown = sorted(set(fields) - set(NOTE_UPDATE_FIELDS))
    if unknown:
        raise ValueError(f"Unknown note fields: {', '.join(unknown)}")
    return {k: v for k, v in fields.items() if v is not None}


class ConversationStore(ABC):
    """Abstract store for conversation and note records."""

    @abstractmethod
    async def create_conversation(self, record: ConversationRecord) -> str:
        """Persist a conversation and return its id."""

    @abstractmethod
    async def list_by_user(self, user_id: str) -> List[ConversationSummary]:
        """Conversations saved by ``user_id``, most recent first."""

    @abstractmethod
    async def get_by_id(self, conversation_id: str) -> Optional[ConversationRecord]:
        """Return the conversation or None."""

    @abstractmethod
    async def create_note(self, record: NoteRecord) -> str:
        """Persist a note and return its id."""

    @abstractmethod
    async def list_notes_by_user(self, user_id: str) -> List[NoteRecord]:
        """Notes saved by ``user_id``, most recent first."""

    @abstractmethod
    async def get_note(self, note_id: str) -> Optional[NoteRecord]:
        """Return the note or None."""

    @abstractmethod
    async def update_note(self, note_id: str, **fields: Any) -> Optional[NoteRecord]:
        """Patch the given non-None fields; None if the note does not exist."""

    @abstractmethod
    async def delete_note(self, note_id: str) -> bool:
        """Delete a note; False if it did not exist."""

    async def close(self) -> None:
        pass


class ResilientStore(ConversationStore):
    """Adds timeouts and retries with exponential backoff to another store."""

    def __init__(self, inner: ConversationStore, timeout: float = 10.0,
                 max_retries: int = 2, retry_delay: float = 0.5):
        self.inner = inner
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay

    async def _call(self, operation: str, func: Callable[..., Awaitable[T]], *args, **kwargs) -> T:
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.max_retries + 1),
                wait=wait_exponential(multiplier=self.retry_delay, max=10),
                retry=retry_if_exception_type(TRANSIENT_ERRORS),
                reraise=True,
            ):
                with attempt:
                    if attempt.retry_state.attempt_number > 1:
                        logger.warning(f"Retrying {operation} (attempt {attempt.retry_state.attempt_number})")
                    return await asyncio.wait_for(func(*args, **kwargs), timeout=self.timeout)
        except ValueError:
            raise
        except Exception as e:
            logger.error(f"Persistence call {operation} failed: {e}")
            raise PersistenceFailure(operation, e) from e

    async def create_conversation(self, record: ConversationRecord) -> str:
        return await self._call("create_conversation", self.inner.create_conversation, record)

    async def list_by_user(self, user_id: str) -> List[ConversationSummary]:
        return await self._call("list_by_user", self.inner.list_by_user, user_id)

    async def get_by_id(self, conversation_id: str) -> Optional[ConversationRecord]:
        return await self._call("get_by_id", self.inner.get_by_id, conversation_id)

    async def create_note(self, record: NoteRecord) -> str:
        return await self._call("create_note", self.inner.create_note, record)

    async def list_notes_by_user(self, user_id: str) -> List[NoteRecord]:
        return await self._call("list_notes_by_user", self.inner.list_notes_by_user, user_id)

    async def get_note(self, note_id: str) -> Optional[NoteRecord]:
        return await self._call("get_note", self.inner.get_note, note_id)

    async def update_note(self, note_id: str, **fields: Any) -> Optional[NoteRecord]:
        return await self._call("update_note", self.inner.update_note, note_id, **fields)

    async def delete_note(self, note_id: str) -> bool:
        return await self._call("delete_note", self.inner.delete_note, note_id)

    async def close(self) -> None:
        await self.inner.close()


def create_store(config: Optional[StorageConfig] = None) -> ConversationStore:
    """Build the configured backend wrapped in a ResilientStore."""
    cfg = config or get_config().storage
    if cfg.backend == "redis":
        from livenotes.storage.redis_store import RedisStore
        inner: ConversationStore = RedisStore.from_config(cfg)
    else:
        from livenotes.storage.memory import InMemoryStore
        inner = InMemoryStore()
    logger.info(f"Using {cfg.backend} conversation store")
    return ResilientStore(
        inner,
        timeout=cfg.timeout,
        max_retries=cfg.max_retries,
        retry_delay=cfg.retry_delay,
    )
