"""
Error types and error logging utilities.

Logs full stack traces for debugging while showing clean messages to users.
"""

import os
import traceback
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional


class RagStoreError(Exception):
    """Base class for all engine errors."""


class NotFound(RagStoreError, KeyError):
    """A required read found no record for the key."""

    def __init__(self, key: str, kind: str = "Record"):
        self.key = key
        self.kind = kind
        super().__init__(f"{kind} not found: {key!r}")

    def __str__(self) -> str:
        # KeyError.__str__ would repr() the message
        return self.args[0]


class DocumentNotFound(NotFound):
    def __init__(self, key: str):
        super().__init__(key, "Document")


class ChunkNotFound(NotFound):
    def __init__(self, key: str):
        super().__init__(key, "Chunk")


class ProviderError(RagStoreError):
    """An external embedding or summarization call failed. Nothing was written."""


class EmbeddingGenerationFailed(ProviderError):
    def __init__(self, key: str, cause: Optional[BaseException] = None):
        self.key = key
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Embedding generation failed for {key!r}{detail}")


class SummarizationFailed(ProviderError):
    pass


class DimensionMismatch(RagStoreError):
    """Vector length differs from the store's fixed dimensionality."""

    def __init__(self, expected: int, actual: int, key: str = ""):
        self.expected = expected
        self.actual = actual
        where = f" for {key!r}" if key else ""
        super().__init__(
            f"Embedding dimension mismatch{where}: store uses {expected}, got {actual}. "
            f"Use the same embedding model for the lifetime of a store."
        )


class OrphanedChunk(RagStoreError):
    """A chunk key referenced by the index has no text or embedding record."""

    def __init__(self, chunk_key: str, missing: str):
        self.chunk_key = chunk_key
        self.missing = missing
        super().__init__(f"Chunk {chunk_key!r} has no {missing} record")


def _error_log_path(store_path: Optional[Path] = None) -> Path:
    """Resolve error log path, respecting RAGSTORE_STORE_PATH."""
    if store_path is not None:
        return Path(store_path) / "ragstore-errors.log"
    store = os.environ.get("RAGSTORE_STORE_PATH")
    if store:
        return Path(store) / "ragstore-errors.log"
    return Path.home() / ".ragstore" / "ragstore-errors.log"


def log_exception(exc: Exception, context: str = "", store_path: Optional[Path] = None) -> Path:
    """
    Log exception with full traceback to file.

    Args:
        exc: The exception that occurred
        context: Optional context string (e.g., command name)
        store_path: Store directory; defaults to the configured store

    Returns:
        Path to the error log file
    """
    log_path = _error_log_path(store_path)
    timestamp = datetime.now(timezone.utc).isoformat()
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(log_path, os.O_WRONLY | os.O_CREAT | os.O_APPEND, 0o600)
        with os.fdopen(fd, "a") as f:
            f.write(f"\n{'='*60}\n")
            f.write(f"[{timestamp}]")
            if context:
                f.write(f" {context}")
            f.write("\n")
            f.write("".join(traceback.format_exception(type(exc), exc, exc.__traceback__)))
    except OSError:
        pass  # Can't write error log; don't crash over it
    return log_path
