"""
Persistence for finalized conversations and notes.
"""

from livenotes.storage.base import ConversationStore, ResilientStore, create_store
from livenotes.storage.memory import InMemoryStore
from livenotes.storage.redis_store import RedisStore

__all__ = [
    "ConversationStore",
    "InMemoryStore",
    "RedisStore",
    "ResilientStore",
    "create_store",
]
