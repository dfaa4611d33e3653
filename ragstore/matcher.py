"""
Relevance queries over the stored chunks.

A query is truncated to the token limit, embedded, and scored against every
stored embedding. Each hit is resolved to its parent document through the
chunk index; hits with no parent are skipped. ``take_top`` then selects a
prefix of the ranking that fits a token budget, measured on the rendered
view each chunk will occupy in a prompt.
"""

import logging
from typing import Callable, Optional, Protocol

from .embedding_store import EmbeddingStore
from .errors import ChunkNotFound, OrphanedChunk
from .protocol import ChunkIndexProtocol, TextStoreProtocol
from .types import RelevantMatch

logger = logging.getLogger(__name__)

DEFAULT_MAX_QUERY_TOKENS = 8000
DEFAULT_MAX_TOTAL_TOKENS = 8000


class TokenCounter(Protocol):
    def count(self, text: str) -> int: ...

    def truncate(self, text: str, max_tokens: int) -> str: ...


def render_match(match: RelevantMatch, store_name: str) -> str:
    """The view of a match that is handed to downstream consumers."""
    return (
        f"Store: {store_name}\n"
        f"Path: {match.parent_document_id}\n"
        f"Chunk: {match.chunk_key}\n"
        f"\n"
        f"{match.text}"
    )


class Matcher:
    """
    Ranks stored chunks against query text.

    Args:
        embedding_store: Checksum-cached embeddings to score against
        chunk_index: Resolves chunk keys to parent documents
        text_store: Source of chunk text, read lazily
        tokenizer: Truncates queries and measures rendered matches
        store_name: Label used in the rendered header
        max_query_tokens: Queries longer than this are truncated
    """

    def __init__(
        self,
        embedding_store: EmbeddingStore,
        chunk_index: ChunkIndexProtocol,
        text_store: TextStoreProtocol,
        tokenizer: TokenCounter,
        store_name: str = "default",
        max_query_tokens: int = DEFAULT_MAX_QUERY_TOKENS,
    ):
        self._embeddings = embedding_store
        self._index = chunk_index
        self._texts = text_store
        self._tokenizer = tokenizer
        self.store_name = store_name
        self.max_query_tokens = max_query_tokens

    def _loader(self, chunk_key: str) -> Callable[[], str]:
        def load() -> str:
            try:
                return self._texts.get(chunk_key)
            except ChunkNotFound:
                raise OrphanedChunk(chunk_key, "text") from None
        return load

    def query(self, text: str) -> list[RelevantMatch]:
        """
        Rank every stored chunk by similarity to ``text``.

        Returns:
            Matches sorted by similarity descending, ties by chunk key
        """
        if self._embeddings.count() == 0:
            return []
        truncated = self._tokenizer.truncate(text, self.max_query_tokens)
        query_vector = self._embeddings.generate(truncated, "<query>")

        matches = []
        for similarity, record in self._embeddings.score(query_vector):
            try:
                parent = self._index.get_parent(record.key)
            except ChunkNotFound:
                logger.warning("Skipping embedding %r with no parent document", record.key)
                continue
            matches.append(RelevantMatch(
                similarity=similarity,
                chunk_key=record.key,
                parent_document_id=parent,
                _loader=self._loader(record.key),
            ))
        return matches

    def render(self, match: RelevantMatch) -> str:
        return render_match(match, self.store_name)

    def take_top(
        self,
        matches: list[RelevantMatch],
        max_total_tokens: Optional[int] = DEFAULT_MAX_TOTAL_TOKENS,
    ) -> list[RelevantMatch]:
        """
        Select the longest ranked prefix whose rendered views fit the budget.

        Selection stops at the first match that would overflow; smaller
        matches further down are not considered. Matches whose text is
        missing are skipped with a warning.
        """
        if max_total_tokens is None:
            max_total_tokens = DEFAULT_MAX_TOTAL_TOKENS
        selected = []
        total = 0
        for match in matches:
            try:
                cost = self._tokenizer.count(self.render(match))
            except OrphanedChunk as e:
                logger.warning("%s, skipping", e)
                continue
            if total + cost > max_total_tokens:
                break
            selected.append(match)
            total += cost
        logger.debug("Selected %d of %d matches (%d tokens)", len(selected), len(matches), total)
        return selected
