"""
Data types for the document retrieval engine.
"""

import mimetypes
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Optional


# Key suffixes. Chunk keys are derived from the document id and position.
METADATA_SUFFIX = ".metadata"
CHUNK_INFIX = " chunk "

DEFAULT_MIME_TYPE = "text/plain"

# Separators treated as folder boundaries in document ids
PATH_SEPARATORS = ("/", "\\")


def utc_now() -> datetime:
    """Current UTC time, truncated to whole seconds."""
    return datetime.now(timezone.utc).replace(microsecond=0)


def format_utc(dt: datetime) -> str:
    """Canonical stored form of a timestamp: YYYY-MM-DDTHH:MM:SS (UTC, no suffix)."""
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S")


def parse_utc_timestamp(ts: str) -> datetime:
    """Parse a stored timestamp string to a timezone-aware UTC datetime.

    Accepts the canonical format as well as 'Z' / '+00:00' suffixed values.
    """
    ts = ts.replace("Z", "+00:00")
    dt = datetime.fromisoformat(ts)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _as_utc(dt: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    return dt.replace(tzinfo=timezone.utc) if dt.tzinfo is None else dt


MAX_ID_LENGTH = 1024

# Blocked: control chars, DEL, and characters that confuse shells and markup
_ID_BLOCKED_RE = re.compile(r'[\x00-\x1f\x7f`<>|;"]')


def validate_id(id: str) -> None:
    """Validate a document id: length and no dangerous characters."""
    if not id or len(id) > MAX_ID_LENGTH:
        raise ValueError(f"ID must be 1-{MAX_ID_LENGTH} characters")
    if _ID_BLOCKED_RE.search(id):
        raise ValueError(f"ID contains invalid characters: {id!r}")
    if id.endswith(METADATA_SUFFIX) or CHUNK_INFIX in id:
        raise ValueError(f"ID collides with a reserved chunk key form: {id!r}")


# -----------------------------------------------------------------------------
# Chunk keys
# -----------------------------------------------------------------------------

def metadata_key(document_id: str) -> str:
    """Key of the searchable metadata chunk for a document."""
    return f"{document_id}{METADATA_SUFFIX}"


def chunk_key(document_id: str, position: int) -> str:
    """Key of the content chunk at a 0-based position."""
    return f"{document_id}{CHUNK_INFIX}{position}"


def is_metadata_key(key: str) -> bool:
    return key.endswith(METADATA_SUFFIX)


# -----------------------------------------------------------------------------
# MIME types
# -----------------------------------------------------------------------------

EXTENSION_TYPES = {
    ".md": "text/markdown",
    ".markdown": "text/markdown",
    ".txt": "text/plain",
    ".py": "text/x-python",
    ".cs": "text/x-csharp",
    ".js": "text/javascript",
    ".ts": "text/typescript",
    ".json": "application/json",
    ".yaml": "text/yaml",
    ".yml": "text/yaml",
    ".html": "text/html",
    ".htm": "text/html",
    ".css": "text/css",
    ".csv": "text/csv",
    ".xml": "application/xml",
    ".rst": "text/x-rst",
    ".pdf": "application/pdf",
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".webp": "image/webp",
}


def infer_mime_type(path: str) -> str:
    """Guess a MIME type from a path or id; falls back to text/plain."""
    lowered = path.lower()
    for ext, content_type in EXTENSION_TYPES.items():
        if lowered.endswith(ext):
            return content_type
    guessed, _ = mimetypes.guess_type(lowered)
    return guessed or DEFAULT_MIME_TYPE


# -----------------------------------------------------------------------------
# Records
# -----------------------------------------------------------------------------

@dataclass
class DocumentMetadata:
    """
    Descriptive metadata for one stored document.

    Created once per store call and fully replaced on re-store.
    ``summary`` is only set for binary documents.
    """
    id: str
    original_path: str = ""
    mime_type: str = DEFAULT_MIME_TYPE
    size_bytes: int = 0
    created_at: datetime = field(default_factory=utc_now)
    is_binary: bool = False
    summary: Optional[str] = None
    custom_tags: dict[str, str] = field(default_factory=dict)

    def to_chunk_text(self) -> str:
        """Render the metadata as searchable text for the metadata chunk."""
        lines = [
            f"Document ID: {self.id}",
            f"Original Path: {self.original_path}",
            f"MIME Type: {self.mime_type}",
            f"Size: {self.size_bytes} bytes",
            f"Created: {self.created_at.strftime('%Y-%m-%d %H:%M:%S')} UTC",
            f"Is Binary: {self.is_binary}",
        ]
        if self.summary:
            lines.append(f"Summary: {self.summary}")
        if self.custom_tags:
            lines.append("Custom Metadata:")
            for key, value in self.custom_tags.items():
                lines.append(f"  {key}: {value}")
        return "\n".join(lines)

    def to_record(self) -> dict:
        """Flat record: scalar fields plus the string-to-string tag map."""
        return {
            "id": self.id,
            "original_path": self.original_path,
            "mime_type": self.mime_type,
            "size_bytes": self.size_bytes,
            "created_at": format_utc(self.created_at),
            "is_binary": self.is_binary,
            "summary": self.summary,
            "custom_tags": dict(self.custom_tags),
        }

    @classmethod
    def from_record(cls, record: dict) -> "DocumentMetadata":
        return cls(
            id=record["id"],
            original_path=record.get("original_path") or "",
            mime_type=record.get("mime_type") or DEFAULT_MIME_TYPE,
            size_bytes=int(record.get("size_bytes") or 0),
            created_at=parse_utc_timestamp(record["created_at"]),
            is_binary=bool(record.get("is_binary")),
            summary=record.get("summary"),
            custom_tags={str(k): str(v) for k, v in (record.get("custom_tags") or {}).items()},
        )


@dataclass
class EmbeddingRecord:
    """A persisted embedding. Stale when ``checksum`` no longer matches its source text."""
    key: str
    checksum: str
    vector: list[float]

    @property
    def dimension(self) -> int:
        return len(self.vector)


@dataclass
class EmbeddingReport:
    """Outcome of an embedding reconciliation pass."""
    checked: int = 0
    regenerated: int = 0
    skipped: int = 0
    missing: int = 0

    def __add__(self, other: "EmbeddingReport") -> "EmbeddingReport":
        return EmbeddingReport(
            checked=self.checked + other.checked,
            regenerated=self.regenerated + other.regenerated,
            skipped=self.skipped + other.skipped,
            missing=self.missing + other.missing,
        )


@dataclass
class MetadataFilter:
    """
    Filter criteria for metadata queries. All set conditions are AND-ed.

    ``path_pattern`` matches ``original_path`` with ``*`` wildcards.
    """
    mime_type: Optional[str] = None
    mime_type_prefix: Optional[str] = None
    path_pattern: Optional[str] = None
    created_after: Optional[datetime] = None
    created_before: Optional[datetime] = None
    custom_tags: Optional[dict[str, str]] = None
    is_binary: Optional[bool] = None
    limit: int = 100
    offset: int = 0

    @property
    def is_empty(self) -> bool:
        return (
            self.mime_type is None
            and self.mime_type_prefix is None
            and self.path_pattern is None
            and self.created_after is None
            and self.created_before is None
            and not self.custom_tags
            and self.is_binary is None
        )

    def matches(self, metadata: DocumentMetadata) -> bool:
        if self.mime_type is not None and metadata.mime_type != self.mime_type:
            return False
        if self.mime_type_prefix is not None and not metadata.mime_type.startswith(self.mime_type_prefix):
            return False
        if self.path_pattern is not None:
            regex = "^" + ".*".join(re.escape(p) for p in self.path_pattern.split("*")) + "$"
            if not re.match(regex, metadata.original_path, re.IGNORECASE):
                return False
        if self.created_after is not None and metadata.created_at <= _as_utc(self.created_after):
            return False
        if self.created_before is not None and metadata.created_at >= _as_utc(self.created_before):
            return False
        if self.custom_tags:
            for key, value in self.custom_tags.items():
                if metadata.custom_tags.get(key) != value:
                    return False
        if self.is_binary is not None and metadata.is_binary != self.is_binary:
            return False
        return True


@dataclass
class RelevantMatch:
    """
    One ranked query result. Not persisted.

    The chunk text is loaded on first access of ``text``.
    """
    similarity: float
    chunk_key: str
    parent_document_id: str
    _loader: Optional[Callable[[], str]] = field(default=None, repr=False, compare=False)
    _text: Optional[str] = field(default=None, repr=False, compare=False)

    @property
    def text(self) -> str:
        if self._text is None:
            if self._loader is None:
                raise ValueError(f"No text accessor for {self.chunk_key!r}")
            self._text = self._loader()
        return self._text

    def __str__(self) -> str:
        return f"{self.similarity:.4f} {self.chunk_key} ({self.parent_document_id})"


@dataclass
class DocumentWithChunks:
    """A document's content together with its metadata and chunk keys."""
    content: str
    metadata: DocumentMetadata
    chunk_keys: list[str]


@dataclass
class TreeNode:
    """
    Folder-style grouping of document ids, for display only.

    ``document_id`` is set when the node itself is a stored document.
    """
    name: str
    path: str = ""
    document_id: Optional[str] = None
    children: dict[str, "TreeNode"] = field(default_factory=dict)

    @property
    def is_document(self) -> bool:
        return self.document_id is not None

    def render(self, indent: int = 0) -> str:
        lines = []
        for name in sorted(self.children):
            child = self.children[name]
            suffix = "/" if child.children else ""
            lines.append(f"{'  ' * indent}{name}{suffix}")
            if child.children:
                lines.append(child.render(indent + 1))
        return "\n".join(line for line in lines if line)


def split_path(document_id: str) -> list[str]:
    """Split an id on path-like separators, dropping empty segments."""
    normalized = document_id
    for sep in PATH_SEPARATORS[1:]:
        normalized = normalized.replace(sep, PATH_SEPARATORS[0])
    return [part for part in normalized.split(PATH_SEPARATORS[0]) if part]
