"""Simple SQLite key/value store for client-held state."""

import json
import logging
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)


class ClientStorage:
    """Persisted key/value state kept on the client between runs."""

    def __init__(self, db_path: str = "data/client.db"):
        """Initialize storage."""
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _init_db(self):
        """Create tables if they don't exist."""
        with sqlite3.connect(self.db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS entries (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            conn.commit()
        logger.info(f"Client storage initialized at {self.db_path}")

    def get(self, key: str, default: Optional[Any] = None) -> Any:
        """Get a value by key."""
        with sqlite3.connect(self.db_path) as conn:
            cursor = conn.execute("SELECT value FROM entries WHERE key = ?", (key,))
            row = cursor.fetchone()

        if not row:
            return default
        return json.loads(row[0])

    def set(self, key: str, value: Any):
        """Store a JSON-serializable value under a key."""
        with sqlite3.connect(self.db_path) as conn:
            conn.execute(
                """
                INSERT INTO entries (key, value, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    updated_at = excluded.updated_at
                """,
                (key, json.dumps(value), datetime.now().isoformat()),
            )
            conn.commit()

    def delete(self, key: str):
        """Remove a key if present."""
        with sqlite3.connect(self.db_path) as conn:
            conn.execute("DELETE FROM entries WHERE key = ?", (key,))
            conn.commit()

    def keys(self) -> list[str]:
        """List stored keys."""
        with sqlite3.connect(self.db_path) as conn:
            cursor = conn.execute("SELECT key FROM entries ORDER BY key")
            return [row[0] for row in cursor.fetchall()]

    def clear(self) -> int:
        """
        Remove every stored entry.

        Returns:
            Number of entries removed
        """
        with sqlite3.connect(self.db_path) as conn:
            cursor = conn.execute("DELETE FROM entries")
            conn.commit()
            removed = cursor.rowcount
        logger.info(f"Cleared {removed} stored entries")
        return removed
