"""
In-memory stores.

Dict-backed implementations of the four store protocols, with the same
semantics and errors as the SQLite stores. Used for the ``memory`` backend
and throughout the tests. Each store guards its dict with a lock.
"""

import threading
from dataclasses import replace
from typing import Optional

from .errors import ChunkNotFound, DimensionMismatch, DocumentNotFound
from .types import DocumentMetadata, EmbeddingRecord, MetadataFilter


class _MemoryBase:
    def __init__(self):
        self._lock = threading.RLock()

    def close(self) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


class MemoryTextStore(_MemoryBase):
    def __init__(self):
        super().__init__()
        self._texts: dict[str, str] = {}

    def put(self, key: str, text: str) -> None:
        with self._lock:
            self._texts[key] = text

    def get(self, key: str) -> str:
        with self._lock:
            try:
                return self._texts[key]
            except KeyError:
                raise ChunkNotFound(key) from None

    def exists(self, key: str) -> bool:
        with self._lock:
            return key in self._texts

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._texts.pop(key, None) is not None

    def list_keys(self) -> list[str]:
        with self._lock:
            return sorted(self._texts)


class MemoryVectorStore(_MemoryBase):
    def __init__(self, embedding_dimension: Optional[int] = None):
        super().__init__()
        self._records: dict[str, EmbeddingRecord] = {}
        self._dimension = embedding_dimension

    @property
    def embedding_dimension(self) -> Optional[int]:
        return self._dimension

    def put(self, record: EmbeddingRecord) -> None:
        with self._lock:
            if self._dimension is None:
                self._dimension = record.dimension
            elif record.dimension != self._dimension:
                raise DimensionMismatch(self._dimension, record.dimension, record.key)
            self._records[record.key] = EmbeddingRecord(
                key=record.key, checksum=record.checksum, vector=list(record.vector)
            )

    def get(self, key: str) -> Optional[EmbeddingRecord]:
        with self._lock:
            record = self._records.get(key)
            if record is None:
                return None
            return EmbeddingRecord(key=record.key, checksum=record.checksum, vector=list(record.vector))

    def get_checksum(self, key: str) -> Optional[str]:
        with self._lock:
            record = self._records.get(key)
            return record.checksum if record is not None else None

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._records.pop(key, None) is not None

    def list_keys(self) -> list[str]:
        with self._lock:
            return sorted(self._records)

    def all_records(self) -> list[EmbeddingRecord]:
        with self._lock:
            return [self._records[key] for key in sorted(self._records)]

    def count(self) -> int:
        with self._lock:
            return len(self._records)


class MemoryChunkIndex(_MemoryBase):
    def __init__(self):
        super().__init__()
        self._forward: dict[str, list[str]] = {}
        self._parents: dict[str, str] = {}

    def put(self, document_id: str, chunk_keys: list[str]) -> None:
        with self._lock:
            self._drop_parents(document_id)
            self._forward[document_id] = list(chunk_keys)
            for key in chunk_keys:
                self._parents[key] = document_id

    def _drop_parents(self, document_id: str) -> None:
        for key in self._forward.get(document_id, []):
            if self._parents.get(key) == document_id:
                del self._parents[key]

    def get(self, document_id: str) -> list[str]:
        with self._lock:
            try:
                return list(self._forward[document_id])
            except KeyError:
                raise DocumentNotFound(document_id) from None

    def get_parent(self, chunk_key: str) -> str:
        with self._lock:
            try:
                return self._parents[chunk_key]
            except KeyError:
                raise ChunkNotFound(chunk_key) from None

    def exists(self, document_id: str) -> bool:
        with self._lock:
            return document_id in self._forward

    def remove(self, document_id: str) -> bool:
        with self._lock:
            if document_id not in self._forward:
                return False
            self._drop_parents(document_id)
            del self._forward[document_id]
            return True

    def list_documents(self) -> list[str]:
        with self._lock:
            return sorted(self._forward)


class MemoryMetadataStore(_MemoryBase):
    def __init__(self):
        super().__init__()
        self._records: dict[str, DocumentMetadata] = {}

    def put(self, metadata: DocumentMetadata) -> None:
        with self._lock:
            self._records[metadata.id] = replace(metadata, custom_tags=dict(metadata.custom_tags))

    def delete(self, id: str) -> bool:
        with self._lock:
            return self._records.pop(id, None) is not None

    def get(self, id: str) -> DocumentMetadata:
        found = self.find(id)
        return found if found is not None else DocumentMetadata(id=id)

    def find(self, id: str) -> Optional[DocumentMetadata]:
        with self._lock:
            record = self._records.get(id)
            if record is None:
                return None
            return replace(record, custom_tags=dict(record.custom_tags))

    def exists(self, id: str) -> bool:
        with self._lock:
            return id in self._records

    def list_ids(self) -> list[str]:
        with self._lock:
            return sorted(self._records)

    def count(self) -> int:
        with self._lock:
            return len(self._records)

    def query(self, filter: MetadataFilter) -> list[DocumentMetadata]:
        with self._lock:
            matched = [
                replace(self._records[id], custom_tags=dict(self._records[id].custom_tags))
                for id in sorted(self._records)
                if filter.matches(self._records[id])
            ]
        return matched[filter.offset:filter.offset + filter.limit]
