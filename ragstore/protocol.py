"""
Protocol definitions for the engine and its storage backends.

Defines interface contracts at two levels:
- DocumentEngineProtocol: the public API (CLI, embedding applications)
- TextStoreProtocol / VectorStoreProtocol / ChunkIndexProtocol /
  MetadataStoreProtocol: keyed-record repositories injected into the engine
  (SQLite or in-memory locally, anything else via the backend entry points)

Stores know nothing about each other. Only the chunk index holds
parent/child relations.
"""

import builtins
from typing import Optional, Protocol, runtime_checkable

from .types import (
    DocumentMetadata,
    DocumentWithChunks,
    EmbeddingRecord,
    MetadataFilter,
    RelevantMatch,
    TreeNode,
)


@runtime_checkable
class DocumentEngineProtocol(Protocol):
    """
    The public interface for storing and retrieving documents.

    Implemented by:
    - DocumentEngine
    """

    # -- Write operations --

    def store(
        self,
        id: str,
        content: str,
        *,
        tags: Optional[dict[str, str]] = None,
        mime_type: Optional[str] = None,
        original_path: Optional[str] = None,
        split: bool = True,
    ) -> DocumentMetadata: ...

    def store_binary(
        self,
        id: str,
        data: bytes,
        mime_type: str,
        *,
        tags: Optional[dict[str, str]] = None,
        original_path: Optional[str] = None,
        split: bool = True,
    ) -> DocumentMetadata: ...

    def move(self, old_id: str, new_id: str, *, split: bool = True) -> DocumentMetadata: ...

    def remove(self, id: str) -> bool: ...

    # -- Read operations --

    def get(self, id: str) -> str: ...

    def get_chunk(self, chunk_key: str) -> str: ...

    def get_document_with_chunks(self, id: str) -> DocumentWithChunks: ...

    def get_metadata(self, id: str) -> DocumentMetadata: ...

    def exists(self, id: str) -> bool: ...

    def list(self, folder: Optional[str] = None, recursive: bool = True) -> builtins.list[str]: ...

    def tree(self) -> TreeNode: ...

    def find_metadata(self, filter: MetadataFilter) -> builtins.list[DocumentMetadata]: ...

    # -- Query operations --

    def query(self, text: str) -> builtins.list[RelevantMatch]: ...

    def relevant_chunks(
        self, text: str, max_total_tokens: Optional[int] = None
    ) -> builtins.list[RelevantMatch]: ...

    def relevant_items(self, text: str) -> builtins.list[str]: ...

    def close(self) -> None: ...


# ---------------------------------------------------------------------------
# Storage backend protocols
# ---------------------------------------------------------------------------


@runtime_checkable
class TextStoreProtocol(Protocol):
    """
    Raw chunk text keyed by chunk key.

    Implemented by:
    - TextStore (local SQLite)
    - MemoryTextStore
    """

    def put(self, key: str, text: str) -> None: ...

    def get(self, key: str) -> str: ...

    def exists(self, key: str) -> bool: ...

    def delete(self, key: str) -> bool: ...

    def list_keys(self) -> list[str]: ...

    def close(self) -> None: ...


@runtime_checkable
class VectorStoreProtocol(Protocol):
    """
    Persisted embedding records: ``{key, checksum, vector}``.

    Implemented by:
    - VectorStore (local SQLite)
    - MemoryVectorStore
    """

    @property
    def embedding_dimension(self) -> Optional[int]: ...

    def put(self, record: EmbeddingRecord) -> None: ...

    def get(self, key: str) -> Optional[EmbeddingRecord]: ...

    def get_checksum(self, key: str) -> Optional[str]: ...

    def delete(self, key: str) -> bool: ...

    def list_keys(self) -> list[str]: ...

    def all_records(self) -> list[EmbeddingRecord]: ...

    def count(self) -> int: ...

    def close(self) -> None: ...


@runtime_checkable
class ChunkIndexProtocol(Protocol):
    """
    Document id -> ordered chunk keys, with reverse lookup.

    Implemented by:
    - ChunkIndex (local SQLite)
    - MemoryChunkIndex
    """

    def put(self, document_id: str, chunk_keys: list[str]) -> None: ...

    def get(self, document_id: str) -> list[str]: ...

    def get_parent(self, chunk_key: str) -> str: ...

    def exists(self, document_id: str) -> bool: ...

    def remove(self, document_id: str) -> bool: ...

    def list_documents(self) -> list[str]: ...

    def close(self) -> None: ...


@runtime_checkable
class MetadataStoreProtocol(Protocol):
    """
    Per-document descriptive metadata.

    ``get`` returns an empty default record for unknown ids; use ``exists``
    to probe.

    Implemented by:
    - MetadataStore (local SQLite)
    - MemoryMetadataStore
    """

    def put(self, metadata: DocumentMetadata) -> None: ...

    def get(self, id: str) -> DocumentMetadata: ...

    def exists(self, id: str) -> bool: ...

    def delete(self, id: str) -> bool: ...

    def list_ids(self) -> list[str]: ...

    def query(self, filter: MetadataFilter) -> list[DocumentMetadata]: ...

    def count(self) -> int: ...

    def close(self) -> None: ...
