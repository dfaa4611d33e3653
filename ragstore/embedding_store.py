"""
Embedding store with change-detection caching.

Wraps a vector backend and an embedding provider:
- store_embedding() hashes the source text and only calls the provider when
  the stored checksum differs (new key or changed text)
- score() ranks every stored vector against a query vector by cosine
  similarity, in parallel row blocks

Provider failures surface as EmbeddingGenerationFailed and leave the
backend untouched.
"""

import hashlib
import logging
import math
import os
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Optional

import numpy as np

from .errors import DimensionMismatch, EmbeddingGenerationFailed
from .protocol import VectorStoreProtocol
from .providers.base import EmbeddingProvider
from .types import EmbeddingRecord

logger = logging.getLogger(__name__)

# Rows per scoring task
SCORE_BLOCK_SIZE = 4096


def content_checksum(text: str) -> str:
    """SHA-256 hex digest of the UTF-8 text."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def cosine_similarity(a: list[float], b: list[float]) -> float:
    """dot(a, b) / (|a| |b|), or 0.0 when either vector has zero magnitude."""
    if len(a) != len(b):
        raise DimensionMismatch(len(a), len(b))
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(x * x for x in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return max(-1.0, min(1.0, dot / (norm_a * norm_b)))


def _score_block(matrix: np.ndarray, query: np.ndarray, query_norm: float) -> np.ndarray:
    dots = matrix @ query
    denom = np.linalg.norm(matrix, axis=1) * query_norm
    sims = np.zeros(len(matrix), dtype=np.float64)
    nonzero = denom > 0
    sims[nonzero] = dots[nonzero] / denom[nonzero]
    return np.clip(sims, -1.0, 1.0)


class EmbeddingStore:
    """
    Checksum-cached embeddings over a vector backend.

    Args:
        vector_store: Persistence for embedding records
        provider: Embedding provider, or None to create lazily
        provider_factory: Called once on first use when ``provider`` is None
        max_workers: Threads used for scoring (defaults to CPU count)
    """

    def __init__(
        self,
        vector_store: VectorStoreProtocol,
        provider: Optional[EmbeddingProvider] = None,
        *,
        provider_factory: Optional[Callable[[], EmbeddingProvider]] = None,
        max_workers: Optional[int] = None,
        block_size: int = SCORE_BLOCK_SIZE,
    ):
        if provider is None and provider_factory is None:
            raise ValueError("EmbeddingStore needs a provider or a provider_factory")
        self._vectors = vector_store
        self._provider = provider
        self._provider_factory = provider_factory
        self._provider_lock = threading.Lock()
        self._max_workers = max_workers or os.cpu_count() or 1
        self._block_size = block_size

    @property
    def vector_store(self) -> VectorStoreProtocol:
        return self._vectors

    @property
    def embedding_dimension(self) -> Optional[int]:
        return self._vectors.embedding_dimension

    def _get_provider(self) -> EmbeddingProvider:
        """Get the embedding provider, creating it lazily on first use."""
        if self._provider is not None:
            return self._provider
        with self._provider_lock:
            # Double-check after acquiring lock
            if self._provider is None:
                self._provider = self._provider_factory()
        return self._provider

    def generate(self, text: str, key: str = "") -> list[float]:
        """
        Call the provider and validate the vector's dimension.

        Raises:
            EmbeddingGenerationFailed: If the provider call fails
            DimensionMismatch: If the vector length differs from the store's
        """
        try:
            vector = [float(v) for v in self._get_provider().embed(text)]
        except DimensionMismatch:
            raise
        except Exception as e:
            raise EmbeddingGenerationFailed(key or text[:40], e) from e
        expected = self._vectors.embedding_dimension
        if expected is not None and len(vector) != expected:
            raise DimensionMismatch(expected, len(vector), key)
        return vector

    # -------------------------------------------------------------------------
    # Write Operations
    # -------------------------------------------------------------------------

    def is_stale(self, key: str, text: str) -> bool:
        """True if the key has no record or its checksum differs from ``text``'s."""
        return self._vectors.get_checksum(key) != content_checksum(text)

    def store_embedding(self, key: str, text: str) -> bool:
        """
        Embed ``text`` under ``key`` unless the stored checksum already matches.

        Returns:
            True if a new embedding was generated, False on a checksum hit
        """
        checksum = content_checksum(text)
        if self._vectors.get_checksum(key) == checksum:
            logger.debug("Checksum unchanged, skipping embedding for %s", key)
            return False
        vector = self.generate(text, key)
        self._vectors.put(EmbeddingRecord(key=key, checksum=checksum, vector=vector))
        return True

    def get(self, key: str) -> Optional[EmbeddingRecord]:
        return self._vectors.get(key)

    def exists(self, key: str) -> bool:
        return self._vectors.get_checksum(key) is not None

    def remove(self, key: str) -> bool:
        return self._vectors.delete(key)

    def keys(self) -> list[str]:
        return self._vectors.list_keys()

    def count(self) -> int:
        return self._vectors.count()

    # -------------------------------------------------------------------------
    # Scoring
    # -------------------------------------------------------------------------

    def score(self, query_vector: list[float]) -> list[tuple[float, EmbeddingRecord]]:
        """
        Cosine similarity of ``query_vector`` against every stored record.

        Row blocks are scored on a thread pool; the result is sorted by
        similarity descending with ties broken by key, so the order does not
        depend on how the rows were partitioned.

        Raises:
            DimensionMismatch: If the query length differs from the store's
        """
        records = self._vectors.all_records()
        if not records:
            return []
        dimension = self._vectors.embedding_dimension or records[0].dimension
        if len(query_vector) != dimension:
            raise DimensionMismatch(dimension, len(query_vector))

        matrix = np.asarray([r.vector for r in records], dtype=np.float64)
        query = np.asarray(query_vector, dtype=np.float64)
        query_norm = float(np.linalg.norm(query))

        blocks = [
            matrix[start:start + self._block_size]
            for start in range(0, len(matrix), self._block_size)
        ]
        if len(blocks) == 1 or self._max_workers == 1:
            parts = [_score_block(block, query, query_norm) for block in blocks]
        else:
            with ThreadPoolExecutor(max_workers=min(self._max_workers, len(blocks))) as pool:
                parts = list(pool.map(lambda b: _score_block(b, query, query_norm), blocks))
        sims = np.concatenate(parts)

        scored = [(float(sim), record) for sim, record in zip(sims, records)]
        scored.sort(key=lambda pair: (-pair[0], pair[1].key))
        return scored
