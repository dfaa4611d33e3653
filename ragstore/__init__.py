"""
ragstore

A chunked document store with checksum-cached embeddings and
token-budgeted semantic retrieval.

Quick Start:
    from ragstore import DocumentEngine

    engine = DocumentEngine()  # uses ~/.ragstore/
    engine.store("notes/meeting", "Postgres migration planned for Q3.")
    for match in engine.relevant_chunks("database system"):
        print(match.similarity, match.parent_document_id)

CLI Usage:
    ragstore put notes/meeting "Postgres migration planned for Q3."
    ragstore put-file ./report.pdf --id reports/q3
    ragstore find "database system"

Environment Variables:
    RAGSTORE_STORE_PATH      - Override default store location
    RAGSTORE_OPENAI_API_KEY  - API key for OpenAI providers

The store is initialized automatically on first use. Configuration is persisted
in a TOML file within the store directory.
"""

# Configure quiet mode early (before any library imports)
import os
if not os.environ.get("RAGSTORE_VERBOSE"):
    os.environ.setdefault("HF_HUB_DISABLE_PROGRESS_BARS", "1")
    os.environ.setdefault("TRANSFORMERS_VERBOSITY", "error")
    os.environ.setdefault("TOKENIZERS_PARALLELISM", "false")

from .api import DocumentEngine
from .errors import (
    ChunkNotFound,
    DimensionMismatch,
    DocumentNotFound,
    EmbeddingGenerationFailed,
    NotFound,
    OrphanedChunk,
    ProviderError,
    RagStoreError,
    SummarizationFailed,
)
from .types import (
    DocumentMetadata,
    DocumentWithChunks,
    EmbeddingReport,
    MetadataFilter,
    RelevantMatch,
    TreeNode,
)

__version__ = "0.1.0"
__all__ = [
    "DocumentEngine",
    "DocumentMetadata",
    "DocumentWithChunks",
    "EmbeddingReport",
    "MetadataFilter",
    "RelevantMatch",
    "TreeNode",
    "RagStoreError",
    "NotFound",
    "DocumentNotFound",
    "ChunkNotFound",
    "ProviderError",
    "EmbeddingGenerationFailed",
    "SummarizationFailed",
    "DimensionMismatch",
    "OrphanedChunk",
]
