"""
Core API for document storage and retrieval.

This is the minimal working implementation focused on:
- store(): chunk text, embed each chunk, index the chunk keys
- store_binary(): extract text and summarize uploads, then store
- get() / get_chunk() / get_metadata(): direct reads
- move() / remove(): identity changes and deletion across all stores
- query() / relevant_chunks() / relevant_items(): ranked retrieval

The four stores have no shared transaction. Every multi-store write is an
explicit ordered sequence: chunk records first, the chunk index last, and
cleanup of superseded records only after the index points at the new ones.
"""

import builtins
import logging
import threading
from pathlib import Path
from typing import Optional

from .backend import StoreBundle, create_stores
from .chunker import split as split_chunks
from .config import StoreConfig, get_default_store_path, load_or_create_config
from .embedding_store import EmbeddingStore
from .errors import ChunkNotFound, DocumentNotFound, OrphanedChunk
from .locks import DEFAULT_LOCK_TIMEOUT, KeyedLock
from .matcher import Matcher, TokenCounter
from .protocol import (
    ChunkIndexProtocol,
    MetadataStoreProtocol,
    TextStoreProtocol,
    VectorStoreProtocol,
)
from .providers.base import BinaryContentAdapter, EmbeddingProvider, get_registry
from .tokens import Tokenizer
from .types import (
    DocumentMetadata,
    DocumentWithChunks,
    EmbeddingRecord,
    EmbeddingReport,
    MetadataFilter,
    RelevantMatch,
    TreeNode,
    chunk_key,
    infer_mime_type,
    is_metadata_key,
    metadata_key,
    split_path,
    utc_now,
    validate_id,
)

logger = logging.getLogger(__name__)


class DocumentEngine:
    """
    Chunked document store with semantic retrieval.

    Stores are injected or created from the store configuration. Providers
    are created lazily so read-only use never touches the network.

    Args:
        store_path: Store directory (defaults to RAGSTORE_STORE_PATH or ~/.ragstore)
        config: Explicit configuration; skips reading ragstore.toml
        text_store, vector_store, chunk_index, metadata_store: Injected stores;
            all four must be given to bypass the backend factory
        embedding_provider: Injected embedding provider
        content_adapter: Injected binary content adapter
        tokenizer: Token counter for chunking, truncation and budgets
        lock_timeout: Seconds to wait for a per-document write lock
    """

    def __init__(
        self,
        store_path: Optional[str | Path] = None,
        *,
        config: Optional[StoreConfig] = None,
        text_store: Optional[TextStoreProtocol] = None,
        vector_store: Optional[VectorStoreProtocol] = None,
        chunk_index: Optional[ChunkIndexProtocol] = None,
        metadata_store: Optional[MetadataStoreProtocol] = None,
        embedding_provider: Optional[EmbeddingProvider] = None,
        content_adapter: Optional[BinaryContentAdapter] = None,
        tokenizer: Optional[TokenCounter] = None,
        lock_timeout: float = DEFAULT_LOCK_TIMEOUT,
    ):
        if config is not None:
            # Injected config: skip filesystem discovery
            self._config = config
            self._store_path = Path(config.path)
        else:
            self._store_path = get_default_store_path(
                Path(store_path) if store_path is not None else None
            )
            self._config = load_or_create_config(self._store_path)

        # --- Storage backends (injected or factory-created) ---
        injected = (text_store, vector_store, chunk_index, metadata_store)
        if all(store is not None for store in injected):
            self._bundle = StoreBundle(*injected, is_local=False)
        elif any(store is not None for store in injected):
            raise ValueError("Inject all four stores or none")
        else:
            self._bundle = create_stores(self._config)

        self._texts = self._bundle.text_store
        self._index = self._bundle.chunk_index
        self._metadata = self._bundle.metadata_store

        # --- Persistent operations log (file-backed stores only) ---
        self._ops_log_handler = None
        if self._bundle.is_local:
            from .logging_config import configure_ops_log
            self._ops_log_handler = configure_ops_log(self._store_path)

        self._tokenizer = tokenizer or Tokenizer(self._config.chunking.encoding)
        self._content_adapter = content_adapter
        self._provider_init_lock = threading.Lock()
        self._locks = KeyedLock(lock_timeout)

        self._embeddings = EmbeddingStore(
            self._bundle.vector_store,
            embedding_provider,
            provider_factory=self._create_embedding_provider,
        )
        self._matcher = Matcher(
            self._embeddings,
            self._index,
            self._texts,
            self._tokenizer,
            store_name=self._config.name,
            max_query_tokens=self._config.query.max_query_tokens,
        )

    # -------------------------------------------------------------------------
    # Providers
    # -------------------------------------------------------------------------

    def _create_embedding_provider(self) -> EmbeddingProvider:
        logger.debug("Creating embedding provider %s", self._config.embedding.name)
        return get_registry().create_embedding(
            self._config.embedding.name,
            self._config.embedding.params,
        )

    def _get_content_adapter(self) -> BinaryContentAdapter:
        """Get the binary content adapter, creating it lazily on first use."""
        if self._content_adapter is not None:
            return self._content_adapter
        with self._provider_init_lock:
            if self._content_adapter is None:
                from .providers.documents import ContentAdapter
                media = self._config.media
                describer = None
                if media.name and media.name != "none":
                    describer = get_registry().create_media(media.name, media.params)
                self._content_adapter = ContentAdapter(describer)
        return self._content_adapter

    @property
    def store_path(self) -> Path:
        return self._store_path

    @property
    def config(self) -> StoreConfig:
        return self._config

    @property
    def matcher(self) -> Matcher:
        return self._matcher

    @property
    def embedding_store(self) -> EmbeddingStore:
        return self._embeddings

    # -------------------------------------------------------------------------
    # Write Operations
    # -------------------------------------------------------------------------

    def store(
        self,
        id: str,
        content: str,
        *,
        tags: Optional[dict[str, str]] = None,
        mime_type: Optional[str] = None,
        original_path: Optional[str] = None,
        split: bool = True,
    ) -> DocumentMetadata:
        """
        Store text content under ``id``, replacing any previous version.

        Unchanged chunks keep their embeddings; only new or edited chunk
        text reaches the embedding provider. A failure leaves the previous
        version readable.

        Raises:
            ValueError: If the id is invalid
            EmbeddingGenerationFailed: If the provider fails for any chunk
            DimensionMismatch: If the provider's vectors do not fit the store
        """
        validate_id(id)
        metadata = DocumentMetadata(
            id=id,
            original_path=original_path or "",
            mime_type=mime_type or infer_mime_type(original_path or id),
            size_bytes=len(content.encode("utf-8")),
            created_at=utc_now(),
            is_binary=False,
            custom_tags=dict(tags or {}),
        )
        with self._locks.acquire(id):
            return self._store_document(id, content, metadata, split)

    def store_binary(
        self,
        id: str,
        data: bytes,
        mime_type: str,
        *,
        tags: Optional[dict[str, str]] = None,
        original_path: Optional[str] = None,
        split: bool = True,
    ) -> DocumentMetadata:
        """
        Store uploaded bytes under ``id``.

        Text is extracted by the content adapter. For binary types a summary
        is generated, kept on the metadata, and placed ahead of the
        extracted text so the content chunks also rank on it.

        Raises:
            SummarizationFailed: If the describer fails (nothing is written)
        """
        validate_id(id)
        adapter = self._get_content_adapter()
        extracted = adapter.extract(data, mime_type)
        is_binary = adapter.is_binary(mime_type)
        summary = adapter.summarize(data, mime_type) if is_binary else None
        content = f"{summary}\n\n{extracted}" if summary else extracted

        metadata = DocumentMetadata(
            id=id,
            original_path=original_path or "",
            mime_type=mime_type,
            size_bytes=len(data),
            created_at=utc_now(),
            is_binary=is_binary,
            summary=summary,
            custom_tags=dict(tags or {}),
        )
        with self._locks.acquire(id):
            return self._store_document(id, content, metadata, split)

    def _plan_chunks(self, id: str, content: str, split: bool) -> list[tuple[str, str]]:
        """Derive (chunk key, text) pairs for the content of a document."""
        if split:
            chunking = self._config.chunking
            parts = split_chunks(
                content,
                chunking.line_separator,
                chunking.tokens_per_chunk,
                counter=self._tokenizer.count,
            )
            if len(parts) > 1:
                return [(chunk_key(id, n), text) for n, text in enumerate(parts)]
        return [(id, content)]

    def _store_document(
        self, id: str, content: str, metadata: DocumentMetadata, split: bool
    ) -> DocumentMetadata:
        """Write metadata, chunks and the index entry. Caller holds the lock."""
        previous_keys = self._index.get(id) if self._index.exists(id) else []
        previous_metadata = self._metadata.get(id) if self._metadata.exists(id) else None

        entries = [(metadata_key(id), metadata.to_chunk_text())]
        entries.extend(self._plan_chunks(id, content, split))
        new_keys = [key for key, _ in entries]
        created = [key for key in new_keys if key not in previous_keys]

        regenerated = 0
        # Prior text and embedding of keys this call overwrites, for rollback
        replaced: dict[str, tuple[Optional[str], Optional[EmbeddingRecord]]] = {}
        try:
            self._metadata.put(metadata)
            for key, text in entries:
                if key in previous_keys:
                    replaced[key] = (self._read_text(key), self._embeddings.get(key))
                # Embed before writing text so a provider failure leaves this key as it was
                if self._embeddings.store_embedding(key, text):
                    regenerated += 1
                self._texts.put(key, text)
            # The index write comes last: it never points at unwritten chunks
            self._index.put(id, new_keys)
        except Exception:
            self._compensate(id, created, replaced, previous_metadata)
            raise

        obsolete = [key for key in previous_keys if key not in new_keys]
        self._delete_chunk_records(obsolete)

        logger.info(
            "Stored %s: %d chunks, %d embedded, %d obsolete removed",
            id, len(new_keys) - 1, regenerated, len(obsolete),
        )
        return metadata

    def _read_text(self, key: str) -> Optional[str]:
        try:
            return self._texts.get(key)
        except ChunkNotFound:
            return None

    def _compensate(
        self,
        id: str,
        created: list[str],
        replaced: dict[str, tuple[Optional[str], Optional[EmbeddingRecord]]],
        previous: Optional[DocumentMetadata],
    ) -> None:
        """
        Undo a failed store.

        Records created by the call are deleted, overwritten chunks get their
        prior text and embedding back, and the old metadata is restored.
        """
        logger.warning(
            "Store of %s failed, rolling back %d new and %d replaced chunks",
            id, len(created), len(replaced),
        )
        try:
            self._delete_chunk_records(created)
            for key, (text, record) in replaced.items():
                if text is not None:
                    self._texts.put(key, text)
                if record is not None:
                    self._embeddings.vector_store.put(record)
            if previous is not None:
                self._metadata.put(previous)
            else:
                self._metadata.delete(id)
        except Exception as e:
            # The original failure is what the caller needs to see
            logger.error("Rollback of %s incomplete: %s", id, e)

    def _delete_chunk_records(self, keys: list[str]) -> None:
        for key in keys:
            self._texts.delete(key)
            self._embeddings.remove(key)

    def move(self, old_id: str, new_id: str, *, split: bool = True) -> DocumentMetadata:
        """
        Re-store a document under a new id, then delete the old one.

        If writing ``new_id`` fails, ``old_id`` is left untouched. Moving a
        document onto an existing id replaces that document.

        Raises:
            DocumentNotFound: If ``old_id`` does not exist
        """
        validate_id(new_id)
        with self._locks.acquire(old_id, new_id):
            old = self.get_metadata(old_id)
            if old_id == new_id:
                return old
            content = self.get(old_id)
            metadata = DocumentMetadata(
                id=new_id,
                original_path=old.original_path,
                mime_type=old.mime_type,
                size_bytes=old.size_bytes,
                created_at=utc_now(),
                is_binary=old.is_binary,
                summary=old.summary,
                custom_tags=dict(old.custom_tags),
            )
            stored = self._store_document(new_id, content, metadata, split)
            self._remove_document(old_id)
        logger.info("Moved %s -> %s", old_id, new_id)
        return stored

    def remove(self, id: str) -> bool:
        """
        Delete a document and every record derived from it.

        Idempotent: removing an absent id returns False.
        """
        with self._locks.acquire(id):
            removed = self._remove_document(id)
        if removed:
            logger.info("Removed %s", id)
        return removed

    def _remove_document(self, id: str) -> bool:
        keys = self._index.get(id) if self._index.exists(id) else []
        if not keys and not self._metadata.exists(id):
            return False
        for key in keys:
            if not self._texts.delete(key):
                logger.warning("%s", OrphanedChunk(key, "text"))
            if not self._embeddings.remove(key):
                logger.warning("%s", OrphanedChunk(key, "embedding"))
        self._index.remove(id)
        self._metadata.delete(id)
        return True

    # -------------------------------------------------------------------------
    # Embeddings
    # -------------------------------------------------------------------------

    def embed(self, id: str) -> EmbeddingReport:
        """
        Re-embed any chunk of ``id`` whose text changed since it was embedded.

        Raises:
            DocumentNotFound: If the document does not exist
        """
        with self._locks.acquire(id):
            return self._embed_keys(self._index.get(id))

    def _embed_keys(self, keys: list[str]) -> EmbeddingReport:
        report = EmbeddingReport()
        for key in keys:
            report.checked += 1
            try:
                text = self._texts.get(key)
            except ChunkNotFound:
                logger.warning("%s, skipping", OrphanedChunk(key, "text"))
                report.missing += 1
                continue
            if self._embeddings.store_embedding(key, text):
                report.regenerated += 1
            else:
                report.skipped += 1
        return report

    def update_embeddings(self) -> EmbeddingReport:
        """Reconcile embeddings with the stored text for every document."""
        report = EmbeddingReport()
        for id in self._index.list_documents():
            try:
                report += self.embed(id)
            except DocumentNotFound:
                # Removed concurrently
                continue
        logger.info(
            "Embedding update: %d checked, %d regenerated, %d missing",
            report.checked, report.regenerated, report.missing,
        )
        return report

    # -------------------------------------------------------------------------
    # Read Operations
    # -------------------------------------------------------------------------

    def get(self, id: str) -> str:
        """
        Get the full text of a document.

        Raises:
            DocumentNotFound: If the document does not exist
            OrphanedChunk: If an indexed chunk has no text record
        """
        keys = self._index.get(id)
        content_keys = [key for key in keys if not is_metadata_key(key)]
        parts = []
        for key in content_keys:
            try:
                parts.append(self._texts.get(key))
            except ChunkNotFound:
                raise OrphanedChunk(key, "text") from None
        return "".join(parts)

    def get_chunk(self, chunk_key: str) -> str:
        """
        Get the text of a single chunk (content or metadata).

        Raises:
            ChunkNotFound: If no text is stored under the key
        """
        return self._texts.get(chunk_key)

    def get_document_with_chunks(self, id: str) -> DocumentWithChunks:
        return DocumentWithChunks(
            content=self.get(id),
            metadata=self.get_metadata(id),
            chunk_keys=self._index.get(id),
        )

    def get_metadata(self, id: str) -> DocumentMetadata:
        """
        Raises:
            DocumentNotFound: If the document does not exist
        """
        if not self._metadata.exists(id):
            raise DocumentNotFound(id)
        return self._metadata.get(id)

    def exists(self, id: str) -> bool:
        return self._index.exists(id)

    def count(self) -> int:
        return len(self._index.list_documents())

    def list(self, folder: Optional[str] = None, recursive: bool = True) -> builtins.list[str]:
        """
        List document ids, optionally scoped to a folder.

        Folders are the path-like segments of ids (``docs/guide/intro``).
        Without ``recursive``, only documents directly inside the folder
        are listed.
        """
        ids = self._index.list_documents()
        prefix = split_path(folder) if folder else []
        result = []
        for id in ids:
            parts = split_path(id)
            if parts[:len(prefix)] != prefix or len(parts) <= len(prefix):
                continue
            if not recursive and len(parts) != len(prefix) + 1:
                continue
            result.append(id)
        return result

    def tree(self) -> TreeNode:
        """Group document ids into a folder hierarchy for display."""
        root = TreeNode(name="")
        for id in self._index.list_documents():
            node = root
            parts = split_path(id)
            for depth, part in enumerate(parts):
                child = node.children.get(part)
                if child is None:
                    child = TreeNode(name=part, path="/".join(parts[:depth + 1]))
                    node.children[part] = child
                node = child
            node.document_id = id
        return root

    def find_metadata(self, filter: MetadataFilter) -> builtins.list[DocumentMetadata]:
        return self._metadata.query(filter)

    # -------------------------------------------------------------------------
    # Query Operations
    # -------------------------------------------------------------------------

    def query(self, text: str) -> builtins.list[RelevantMatch]:
        """Rank every stored chunk against ``text``, most similar first."""
        return self._matcher.query(text)

    def relevant_chunks(
        self, text: str, max_total_tokens: Optional[int] = None
    ) -> builtins.list[RelevantMatch]:
        """Query and keep the top-ranked matches that fit the token budget."""
        if max_total_tokens is None:
            max_total_tokens = self._config.query.max_total_tokens
        return self._matcher.take_top(self.query(text), max_total_tokens)

    def relevant_items(self, text: str) -> builtins.list[str]:
        """Distinct parent document ids, in order of their best-ranked chunk."""
        seen: dict[str, None] = {}
        for match in self.query(text):
            seen.setdefault(match.parent_document_id, None)
        return builtins.list(seen)

    def render(self, match: RelevantMatch) -> str:
        return self._matcher.render(match)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def close(self) -> None:
        """Close the stores and detach the operations log."""
        self._bundle.close()
        if self._ops_log_handler is not None:
            from .logging_config import remove_ops_log
            remove_ops_log(self._ops_log_handler)
            self._ops_log_handler = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
