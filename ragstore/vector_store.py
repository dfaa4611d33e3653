"""
Vector store using SQLite.

Persists embedding records (key, source checksum, vector). Vectors are
stored as little-endian float64 blobs. The store dimension is recorded in
a settings table on the first insert and never changes afterwards.
"""

import sqlite3
import struct
from typing import Optional

from .errors import DimensionMismatch
from .sqlite_base import SqliteStore
from .types import EmbeddingRecord


def _pack(vector: list[float]) -> bytes:
    return struct.pack(f"<{len(vector)}d", *vector)


def _unpack(blob: bytes) -> list[float]:
    return list(struct.unpack(f"<{len(blob) // 8}d", blob))


class VectorStore(SqliteStore):
    """
    SQLite-backed embedding records.

    Args:
        db_path: Path to SQLite database file
        embedding_dimension: Expected dimension, if known up front
    """

    def __init__(self, db_path, embedding_dimension: Optional[int] = None):
        self._dimension: Optional[int] = None
        super().__init__(db_path)
        stored = self._load_dimension()
        if stored is not None and embedding_dimension is not None and stored != embedding_dimension:
            raise DimensionMismatch(stored, embedding_dimension)
        self._dimension = stored if stored is not None else embedding_dimension

    def _create_schema(self, conn: sqlite3.Connection) -> None:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS embeddings (
                key TEXT PRIMARY KEY,
                checksum TEXT NOT NULL,
                dimension INTEGER NOT NULL,
                vector BLOB NOT NULL
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS settings (
                name TEXT PRIMARY KEY,
                value TEXT NOT NULL
            )
        """)

    def _load_dimension(self) -> Optional[int]:
        rows = self._query("SELECT value FROM settings WHERE name = 'dimension'")
        return int(rows[0]["value"]) if rows else None

    @property
    def embedding_dimension(self) -> Optional[int]:
        return self._dimension

    def put(self, record: EmbeddingRecord) -> None:
        """
        Insert or replace a record.

        Raises:
            DimensionMismatch: If the vector length differs from the store dimension
        """
        with self._lock:
            if self._dimension is None:
                self._execute(
                    "INSERT OR REPLACE INTO settings (name, value) VALUES ('dimension', ?)",
                    (str(record.dimension),),
                )
                self._dimension = record.dimension
            elif record.dimension != self._dimension:
                raise DimensionMismatch(self._dimension, record.dimension, record.key)
            self._execute("""
                INSERT OR REPLACE INTO embeddings (key, checksum, dimension, vector)
                VALUES (?, ?, ?, ?)
            """, (record.key, record.checksum, record.dimension, _pack(record.vector)))

    def get(self, key: str) -> Optional[EmbeddingRecord]:
        rows = self._query("SELECT key, checksum, vector FROM embeddings WHERE key = ?", (key,))
        if not rows:
            return None
        row = rows[0]
        return EmbeddingRecord(key=row["key"], checksum=row["checksum"], vector=_unpack(row["vector"]))

    def get_checksum(self, key: str) -> Optional[str]:
        rows = self._query("SELECT checksum FROM embeddings WHERE key = ?", (key,))
        return rows[0]["checksum"] if rows else None

    def delete(self, key: str) -> bool:
        cursor = self._execute("DELETE FROM embeddings WHERE key = ?", (key,))
        return cursor.rowcount > 0

    def list_keys(self) -> list[str]:
        return [row["key"] for row in self._query("SELECT key FROM embeddings ORDER BY key")]

    def all_records(self) -> list[EmbeddingRecord]:
        """All records, ordered by key."""
        rows = self._query("SELECT key, checksum, vector FROM embeddings ORDER BY key")
        return [
            EmbeddingRecord(key=row["key"], checksum=row["checksum"], vector=_unpack(row["vector"]))
            for row in rows
        ]

    def count(self) -> int:
        return self._query("SELECT COUNT(*) AS n FROM embeddings")[0]["n"]
