"""
Configuration management for document stores.

The configuration is stored as a TOML file in the store directory.
It specifies the storage backend, which providers to use and their
parameters, and the chunking and query budgets.
"""

import os
import tomllib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

# tomli_w for writing TOML (tomllib is read-only)
try:
    import tomli_w
except ImportError:
    tomli_w = None  # type: ignore

from .chunker import DEFAULT_TOKENS_PER_CHUNK
from .matcher import DEFAULT_MAX_QUERY_TOKENS, DEFAULT_MAX_TOTAL_TOKENS
from .tokens import DEFAULT_ENCODING


CONFIG_FILENAME = "ragstore.toml"
CONFIG_VERSION = 1

DEFAULT_STORE_PATH = Path.home() / ".ragstore"


@dataclass
class ProviderConfig:
    """Configuration for a single provider."""
    name: str
    params: dict[str, Any] = field(default_factory=dict)


@dataclass
class ChunkingConfig:
    tokens_per_chunk: int = DEFAULT_TOKENS_PER_CHUNK
    line_separator: str = "\n"
    encoding: str = DEFAULT_ENCODING


@dataclass
class QueryConfig:
    max_query_tokens: int = DEFAULT_MAX_QUERY_TOKENS
    max_total_tokens: int = DEFAULT_MAX_TOTAL_TOKENS


@dataclass
class StoreConfig:
    """Complete store configuration."""
    path: Path
    version: int = CONFIG_VERSION
    created: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    backend: str = "local"
    name: str = "default"

    # Provider configurations
    embedding: ProviderConfig = field(default_factory=lambda: ProviderConfig("sentence-transformers"))
    media: ProviderConfig = field(default_factory=lambda: ProviderConfig("none"))

    chunking: ChunkingConfig = field(default_factory=ChunkingConfig)
    query: QueryConfig = field(default_factory=QueryConfig)

    @property
    def config_path(self) -> Path:
        """Path to the TOML config file."""
        return self.path / CONFIG_FILENAME

    def exists(self) -> bool:
        """Check if config file exists."""
        return self.config_path.exists()


def get_default_store_path(explicit: Optional[Path] = None) -> Path:
    """Resolve the store directory: argument, then RAGSTORE_STORE_PATH, then ~/.ragstore."""
    if explicit is not None:
        return Path(explicit).expanduser().resolve()
    env_path = os.environ.get("RAGSTORE_STORE_PATH")
    if env_path:
        return Path(env_path).expanduser().resolve()
    return DEFAULT_STORE_PATH


def detect_default_providers() -> dict[str, ProviderConfig]:
    """
    Detect the best default providers for the current environment.

    Priority:
    1. OpenAI embeddings and vision (if an API key is available)
    2. Fallback: local sentence-transformers embeddings, no media summaries

    Returns provider configs for: embedding, media
    """
    has_openai_key = bool(
        os.environ.get("RAGSTORE_OPENAI_API_KEY") or
        os.environ.get("OPENAI_API_KEY")
    )
    if has_openai_key:
        return {
            "embedding": ProviderConfig("openai", {"model": "text-embedding-3-small"}),
            "media": ProviderConfig("openai"),
        }
    return {
        "embedding": ProviderConfig("sentence-transformers"),
        "media": ProviderConfig("none"),
    }


def create_default_config(store_path: Path) -> StoreConfig:
    """Create a new config with auto-detected defaults."""
    providers = detect_default_providers()

    return StoreConfig(
        path=store_path,
        embedding=providers["embedding"],
        media=providers["media"],
    )


def load_config(store_path: Path) -> StoreConfig:
    """
    Load configuration from a store directory.

    Raises:
        FileNotFoundError: If config doesn't exist
        ValueError: If config is invalid
    """
    config_path = store_path / CONFIG_FILENAME

    if not config_path.exists():
        raise FileNotFoundError(f"Config not found: {config_path}")

    with open(config_path, "rb") as f:
        data = tomllib.load(f)

    store = data.get("store", {})
    version = store.get("version", 1)
    if version > CONFIG_VERSION:
        raise ValueError(f"Config version {version} is newer than supported ({CONFIG_VERSION})")

    def parse_provider(section: dict) -> ProviderConfig:
        return ProviderConfig(
            name=section.get("name", ""),
            params={k: v for k, v in section.items() if k != "name"},
        )

    chunking = data.get("chunking", {})
    query = data.get("query", {})
    tokens_per_chunk = int(chunking.get("tokens_per_chunk", DEFAULT_TOKENS_PER_CHUNK))
    if tokens_per_chunk < 1:
        raise ValueError(f"chunking.tokens_per_chunk must be positive, got {tokens_per_chunk}")

    return StoreConfig(
        path=store_path,
        version=version,
        created=store.get("created", ""),
        backend=store.get("backend", "local"),
        name=store.get("name", "default"),
        embedding=parse_provider(data.get("embedding", {"name": "sentence-transformers"})),
        media=parse_provider(data.get("media", {"name": "none"})),
        chunking=ChunkingConfig(
            tokens_per_chunk=tokens_per_chunk,
            line_separator=chunking.get("line_separator", "\n"),
            encoding=chunking.get("encoding", DEFAULT_ENCODING),
        ),
        query=QueryConfig(
            max_query_tokens=int(query.get("max_query_tokens", DEFAULT_MAX_QUERY_TOKENS)),
            max_total_tokens=int(query.get("max_total_tokens", DEFAULT_MAX_TOTAL_TOKENS)),
        ),
    )


def save_config(config: StoreConfig) -> None:
    """
    Save configuration to the store directory.

    Creates the directory if it doesn't exist.
    """
    if tomli_w is None:
        raise RuntimeError("tomli_w is required to save config. Install with: pip install tomli-w")

    config.path.mkdir(parents=True, exist_ok=True)

    def provider_to_dict(p: ProviderConfig) -> dict:
        d = {"name": p.name}
        d.update(p.params)
        return d

    data = {
        "store": {
            "version": config.version,
            "created": config.created,
            "backend": config.backend,
            "name": config.name,
        },
        "embedding": provider_to_dict(config.embedding),
        "media": provider_to_dict(config.media),
        "chunking": {
            "tokens_per_chunk": config.chunking.tokens_per_chunk,
            "line_separator": config.chunking.line_separator,
            "encoding": config.chunking.encoding,
        },
        "query": {
            "max_query_tokens": config.query.max_query_tokens,
            "max_total_tokens": config.query.max_total_tokens,
        },
    }

    with open(config.config_path, "wb") as f:
        tomli_w.dump(data, f)


def load_or_create_config(store_path: Path) -> StoreConfig:
    """
    Load existing config or create a new one with defaults.

    This is the main entry point for config management.
    """
    config_path = store_path / CONFIG_FILENAME

    if config_path.exists():
        return load_config(store_path)
    else:
        config = create_default_config(store_path)
        save_config(config)
        return config
