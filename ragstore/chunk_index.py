"""
Chunk index using SQLite.

Maps each document id to its ordered chunk keys (metadata key first, then
content chunks in split order). A secondary index on the chunk key column
answers the reverse question: which document owns this chunk?

The index holds pointers only. Deleting an entry does not delete the text
or embedding records it names; the engine removes those first.
"""

import sqlite3

from .errors import ChunkNotFound, DocumentNotFound
from .sqlite_base import SqliteStore


class ChunkIndex(SqliteStore):
    """SQLite-backed document -> chunk keys index with parent lookup."""

    def _create_schema(self, conn: sqlite3.Connection) -> None:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS chunk_index (
                document_id TEXT NOT NULL,
                position INTEGER NOT NULL,
                chunk_key TEXT NOT NULL,
                PRIMARY KEY (document_id, position)
            )
        """)

        # Reverse lookup: chunk key -> parent document
        conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_chunk_index_key
            ON chunk_index(chunk_key)
        """)

    def put(self, document_id: str, chunk_keys: list[str]) -> None:
        """Create or overwrite the entry for a document in one transaction."""
        with self._lock:
            with self._conn:
                self._conn.execute(
                    "DELETE FROM chunk_index WHERE document_id = ?", (document_id,)
                )
                self._conn.executemany(
                    "INSERT INTO chunk_index (document_id, position, chunk_key) VALUES (?, ?, ?)",
                    [(document_id, pos, key) for pos, key in enumerate(chunk_keys)],
                )

    def get(self, document_id: str) -> list[str]:
        """
        Get the ordered chunk keys of a document.

        Raises:
            DocumentNotFound: If the document has no entry
        """
        rows = self._query("""
            SELECT chunk_key FROM chunk_index
            WHERE document_id = ?
            ORDER BY position
        """, (document_id,))
        if not rows:
            raise DocumentNotFound(document_id)
        return [row["chunk_key"] for row in rows]

    def get_parent(self, chunk_key: str) -> str:
        """
        Get the document id that owns a chunk key.

        Raises:
            ChunkNotFound: If no entry references the key
        """
        rows = self._query("""
            SELECT document_id FROM chunk_index
            WHERE chunk_key = ?
            ORDER BY document_id
            LIMIT 1
        """, (chunk_key,))
        if not rows:
            raise ChunkNotFound(chunk_key)
        return rows[0]["document_id"]

    def exists(self, document_id: str) -> bool:
        return bool(self._query(
            "SELECT 1 FROM chunk_index WHERE document_id = ? LIMIT 1", (document_id,)
        ))

    def remove(self, document_id: str) -> bool:
        """Delete the forward entry. Returns True if it existed."""
        cursor = self._execute("DELETE FROM chunk_index WHERE document_id = ?", (document_id,))
        return cursor.rowcount > 0

    def list_documents(self) -> list[str]:
        rows = self._query("SELECT DISTINCT document_id FROM chunk_index ORDER BY document_id")
        return [row["document_id"] for row in rows]
