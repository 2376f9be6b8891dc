"""Durable key-value stores backing conversation memory."""

import sqlite3
import json
import logging
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from datetime import datetime
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

MEMORY_KEY_PREFIX = "bms_ai_memory_v1"


def memory_key(conversation_key: str) -> str:
    """
    Build the durable key for a conversation key.

    Args:
        conversation_key: Org id or "global"

    Returns:
        Storage key, e.g. "bms_ai_memory_v1:org-42"
    """
    suffix = (conversation_key or "").strip() or "global"
    return f"{MEMORY_KEY_PREFIX}:{suffix}"


class BaseKeyValueStore(ABC):
    """Abstract JSON key-value store."""

    @abstractmethod
    def get_json(self, key: str) -> Optional[Any]:
        """Return the decoded value for `key`, or None if missing."""
        pass

    @abstractmethod
    def set_json(self, key: str, value: Optional[Any]):
        """Store `value` under `key`; None removes the key."""
        pass


class InMemoryKeyValueStore(BaseKeyValueStore):
    """Process-local store; values are kept JSON-encoded like the durable one."""

    def __init__(self):
        self._data: Dict[str, str] = {}
        self._lock = threading.Lock()

    def get_json(self, key: str) -> Optional[Any]:
        with self._lock:
            raw = self._data.get(key)
        return json.loads(raw) if raw is not None else None

    def set_json(self, key: str, value: Optional[Any]):
        with self._lock:
            if value is None:
                self._data.pop(key, None)
            else:
                self._data[key] = json.dumps(value)


class SQLiteKeyValueStore(BaseKeyValueStore):
    """SQLite-based persistent key-value store."""

    def __init__(self, db_path: str = "data/assistant_memory.db"):
        """
        Initialize SQLite key-value store.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _get_connection(self) -> sqlite3.Connection:
        """Get database connection with row factory."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self):
        """Initialize database schema."""
        conn = self._get_connection()
        cursor = conn.cursor()

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS kv (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        conn.commit()
        conn.close()
        logger.info(f"Key-value store initialized at {self.db_path}")

    def get_json(self, key: str) -> Optional[Any]:
        """
        Read a JSON value.

        Args:
            key: Storage key

        Returns:
            Decoded value or None if not found
        """
        conn = self._get_connection()
        cursor = conn.cursor()

        cursor.execute("SELECT value FROM kv WHERE key = ?", (key,))
        row = cursor.fetchone()
        conn.close()

        if not row:
            return None

        return json.loads(row["value"])

    def set_json(self, key: str, value: Optional[Any]):
        """
        Write or delete a JSON value.

        Args:
            key: Storage key
            value: JSON-serializable value, or None to delete
        """
        conn = self._get_connection()
        cursor = conn.cursor()

        if value is None:
            cursor.execute("DELETE FROM kv WHERE key = ?", (key,))
        else:
            cursor.execute(
                """
                INSERT OR REPLACE INTO kv (key, value, updated_at)
                VALUES (?, ?, ?)
                """,
                (key, json.dumps(value), datetime.now().isoformat())
            )

        conn.commit()
        conn.close()
