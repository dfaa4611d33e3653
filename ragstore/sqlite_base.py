"""
Shared SQLite connection handling for the local stores.

Each store owns one database file. Connections are shared across threads
(guarded by a lock) and use WAL mode so readers never block writers.
"""

import sqlite3
import threading
from pathlib import Path
from typing import Optional


class SqliteStore:
    """Base class: opens the database, creates the schema, manages lifecycle."""

    def __init__(self, db_path: Path):
        """
        Args:
            db_path: Path to SQLite database file
        """
        self._db_path = Path(db_path)
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.RLock()
        self._init_db()

    def _init_db(self) -> None:
        """Initialize the SQLite database."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row

        # Better concurrent access across processes
        self._conn.execute("PRAGMA journal_mode=WAL")
        # Wait up to 5 seconds for locks instead of failing immediately
        self._conn.execute("PRAGMA busy_timeout=5000")

        with self._lock:
            self._create_schema(self._conn)
            self._conn.commit()

    def _create_schema(self, conn: sqlite3.Connection) -> None:
        raise NotImplementedError

    def _execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        """Run a single write statement and commit."""
        with self._lock:
            cursor = self._conn.execute(sql, params)
            self._conn.commit()
            return cursor

    def _query(self, sql: str, params: tuple = ()) -> list[sqlite3.Row]:
        with self._lock:
            return self._conn.execute(sql, params).fetchall()

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def __del__(self):
        self.close()
