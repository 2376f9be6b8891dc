"""Conversation memory: in-process cache over a durable key-value store."""

from .kv_store import (
    BaseKeyValueStore,
    InMemoryKeyValueStore,
    SQLiteKeyValueStore,
    memory_key,
)
from .conversation_store import ConversationMemoryStore, conversation_key, GLOBAL_KEY

__all__ = [
    "BaseKeyValueStore",
    "InMemoryKeyValueStore",
    "SQLiteKeyValueStore",
    "memory_key",
    "ConversationMemoryStore",
    "conversation_key",
    "GLOBAL_KEY",
]
