"""
Per-document write locks.

Writes to the same document id are serialized; writes to different ids
proceed in parallel. Lock entries are reference counted and dropped once
no thread holds or waits on them, so the table does not grow with the
number of ids ever written.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Iterator, Optional

logger = logging.getLogger(__name__)

DEFAULT_LOCK_TIMEOUT = 300.0


class KeyedLock:
    """A lock per key, acquired with a timeout."""

    def __init__(self, timeout: float = DEFAULT_LOCK_TIMEOUT):
        self._timeout = timeout
        self._guard = threading.Lock()
        self._locks: dict[str, threading.RLock] = {}
        self._users: dict[str, int] = {}

    def _checkout(self, key: str) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.RLock()
            self._users[key] = self._users.get(key, 0) + 1
            return lock

    def _checkin(self, key: str) -> None:
        with self._guard:
            remaining = self._users[key] - 1
            if remaining:
                self._users[key] = remaining
            else:
                del self._users[key]
                del self._locks[key]

    @contextmanager
    def acquire(self, *keys: str, timeout: Optional[float] = None) -> Iterator[None]:
        """
        Hold the locks for all ``keys`` for the duration of the block.

        Keys are locked in sorted order so two callers locking the same pair
        cannot deadlock.

        Raises:
            TimeoutError: If a lock is not obtained within the timeout
        """
        wait = self._timeout if timeout is None else timeout
        held: list[tuple[str, threading.RLock]] = []
        try:
            for key in sorted(set(keys)):
                lock = self._checkout(key)
                if not lock.acquire(timeout=wait):
                    self._checkin(key)
                    raise TimeoutError(f"Could not lock {key!r} within {wait:g} seconds")
                held.append((key, lock))
            yield
        finally:
            for key, lock in reversed(held):
                lock.release()
                self._checkin(key)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
