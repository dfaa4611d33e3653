"""
Text store using SQLite.

Holds the raw text of every chunk (content chunks and metadata chunks),
keyed by chunk key. It knows nothing about which document a chunk
belongs to.
"""

import sqlite3

from .errors import ChunkNotFound
from .sqlite_base import SqliteStore
from .types import utc_now, format_utc


class TextStore(SqliteStore):
    """SQLite-backed keyed store for chunk text."""

    def _create_schema(self, conn: sqlite3.Connection) -> None:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS texts (
                key TEXT PRIMARY KEY,
                content TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)

    def put(self, key: str, text: str) -> None:
        """Insert or replace the text for a key."""
        self._execute("""
            INSERT OR REPLACE INTO texts (key, content, updated_at)
            VALUES (?, ?, ?)
        """, (key, text, format_utc(utc_now())))

    def get(self, key: str) -> str:
        """
        Get the text for a key.

        Raises:
            ChunkNotFound: If no text is stored under the key
        """
        rows = self._query("SELECT content FROM texts WHERE key = ?", (key,))
        if not rows:
            raise ChunkNotFound(key)
        return rows[0]["content"]

    def exists(self, key: str) -> bool:
        return bool(self._query("SELECT 1 FROM texts WHERE key = ?", (key,)))

    def delete(self, key: str) -> bool:
        """Delete the text for a key. Returns True if it existed."""
        cursor = self._execute("DELETE FROM texts WHERE key = ?", (key,))
        return cursor.rowcount > 0

    def list_keys(self) -> list[str]:
        return [row["key"] for row in self._query("SELECT key FROM texts ORDER BY key")]
