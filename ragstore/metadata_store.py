"""
Metadata store using SQLite.

Stores one flat record per document: scalar fields plus a JSON-encoded
string-to-string tag map. Records are replaced wholesale on every store,
never merged.
"""

import json
import sqlite3
from typing import Optional

from .sqlite_base import SqliteStore
from .types import DocumentMetadata, MetadataFilter, parse_utc_timestamp, format_utc


class MetadataStore(SqliteStore):
    """
    SQLite-backed store for document metadata.

    ``get`` on an unknown id returns a default record so callers can probe
    without exception handling; ``exists`` is the explicit check.
    """

    def _create_schema(self, conn: sqlite3.Connection) -> None:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS metadata (
                id TEXT PRIMARY KEY,
                original_path TEXT NOT NULL DEFAULT '',
                mime_type TEXT NOT NULL,
                size_bytes INTEGER NOT NULL DEFAULT 0,
                created_at TEXT NOT NULL,
                is_binary INTEGER NOT NULL DEFAULT 0,
                summary TEXT,
                tags_json TEXT NOT NULL DEFAULT '{}'
            )
        """)

        # Index for filter queries
        conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_metadata_mime
            ON metadata(mime_type)
        """)
        conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_metadata_created
            ON metadata(created_at)
        """)

    @staticmethod
    def _row_to_metadata(row: sqlite3.Row) -> DocumentMetadata:
        return DocumentMetadata(
            id=row["id"],
            original_path=row["original_path"],
            mime_type=row["mime_type"],
            size_bytes=row["size_bytes"],
            created_at=parse_utc_timestamp(row["created_at"]),
            is_binary=bool(row["is_binary"]),
            summary=row["summary"],
            custom_tags=json.loads(row["tags_json"]),
        )

    # -------------------------------------------------------------------------
    # Write Operations
    # -------------------------------------------------------------------------

    def put(self, metadata: DocumentMetadata) -> None:
        """Insert or fully replace the metadata record for ``metadata.id``."""
        self._execute("""
            INSERT OR REPLACE INTO metadata
            (id, original_path, mime_type, size_bytes, created_at, is_binary, summary, tags_json)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            metadata.id,
            metadata.original_path,
            metadata.mime_type,
            metadata.size_bytes,
            format_utc(metadata.created_at),
            int(metadata.is_binary),
            metadata.summary,
            json.dumps(metadata.custom_tags, ensure_ascii=False),
        ))

    def delete(self, id: str) -> bool:
        """
        Delete a metadata record.

        Returns:
            True if the record existed and was deleted
        """
        cursor = self._execute("DELETE FROM metadata WHERE id = ?", (id,))
        return cursor.rowcount > 0

    # -------------------------------------------------------------------------
    # Read Operations
    # -------------------------------------------------------------------------

    def get(self, id: str) -> DocumentMetadata:
        """Get a record by id, or an empty default record if absent."""
        found = self.find(id)
        return found if found is not None else DocumentMetadata(id=id)

    def find(self, id: str) -> Optional[DocumentMetadata]:
        """Get a record by id, or None if absent."""
        rows = self._query("SELECT * FROM metadata WHERE id = ?", (id,))
        if not rows:
            return None
        return self._row_to_metadata(rows[0])

    def exists(self, id: str) -> bool:
        return bool(self._query("SELECT 1 FROM metadata WHERE id = ?", (id,)))

    def list_ids(self) -> list[str]:
        return [row["id"] for row in self._query("SELECT id FROM metadata ORDER BY id")]

    def count(self) -> int:
        return self._query("SELECT COUNT(*) AS n FROM metadata")[0]["n"]

    def query(self, filter: MetadataFilter) -> list[DocumentMetadata]:
        """
        Find records matching a filter.

        Scalar conditions are pushed into SQL; path wildcards and tag
        conditions are applied in Python on the narrowed rows.
        """
        clauses = []
        params: list = []
        if filter.mime_type is not None:
            clauses.append("mime_type = ?")
            params.append(filter.mime_type)
        if filter.mime_type_prefix is not None:
            clauses.append("mime_type LIKE ? ESCAPE '\\'")
            escaped = filter.mime_type_prefix.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
            params.append(escaped + "%")
        if filter.is_binary is not None:
            clauses.append("is_binary = ?")
            params.append(int(filter.is_binary))
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""

        rows = self._query(f"SELECT * FROM metadata {where} ORDER BY id", tuple(params))
        matched = [m for m in map(self._row_to_metadata, rows) if filter.matches(m)]
        return matched[filter.offset:filter.offset + filter.limit]
