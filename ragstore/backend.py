"""
Pluggable storage backend factory.

Creates the four stores the engine writes to (text, vectors, chunk index,
metadata) based on configuration. Local backends use one SQLite file per
store; ``memory`` keeps everything in process. External backends register
via the ``ragstore.backends`` entry point group.

External backend packages provide a factory function::

    def create_stores(config: StoreConfig) -> StoreBundle:
        ...

and register it in their pyproject.toml::

    [project.entry-points."ragstore.backends"]
    my-backend = "my_package.backend:create_stores"
"""

from typing import NamedTuple

from .config import StoreConfig
from .protocol import (
    ChunkIndexProtocol,
    MetadataStoreProtocol,
    TextStoreProtocol,
    VectorStoreProtocol,
)


class StoreBundle(NamedTuple):
    """Collection of storage backends returned by the factory."""
    text_store: TextStoreProtocol
    vector_store: VectorStoreProtocol
    chunk_index: ChunkIndexProtocol
    metadata_store: MetadataStoreProtocol
    is_local: bool  # True for filesystem-backed stores

    def close(self) -> None:
        for store in self[:4]:
            store.close()


def create_stores(config: StoreConfig) -> StoreBundle:
    """
    Create storage backends from configuration.

    For ``backend = "local"`` (default), creates SQLite stores in the store
    directory. ``backend = "memory"`` creates in-process stores. Other values
    load a backend via the ``ragstore.backends`` entry point group.
    """
    if config.backend == "local":
        return _create_local_stores(config)
    if config.backend == "memory":
        return create_memory_stores()
    return _load_backend(config.backend, config)


def _create_local_stores(config: StoreConfig) -> StoreBundle:
    """Create the default local storage backends."""
    from .chunk_index import ChunkIndex
    from .metadata_store import MetadataStore
    from .text_store import TextStore
    from .vector_store import VectorStore

    store_path = config.path

    return StoreBundle(
        text_store=TextStore(store_path / "texts.db"),
        vector_store=VectorStore(store_path / "embeddings.db"),
        chunk_index=ChunkIndex(store_path / "chunks.db"),
        metadata_store=MetadataStore(store_path / "metadata.db"),
        is_local=True,
    )


def create_memory_stores() -> StoreBundle:
    """Create empty in-memory stores."""
    from .memory_store import (
        MemoryChunkIndex,
        MemoryMetadataStore,
        MemoryTextStore,
        MemoryVectorStore,
    )

    return StoreBundle(
        text_store=MemoryTextStore(),
        vector_store=MemoryVectorStore(),
        chunk_index=MemoryChunkIndex(),
        metadata_store=MemoryMetadataStore(),
        is_local=False,
    )


def _load_backend(name: str, config: StoreConfig) -> StoreBundle:
    """Load a backend by entry point name."""
    from importlib.metadata import entry_points

    eps = entry_points(group="ragstore.backends")
    for ep in eps:
        if ep.name == name:
            factory = ep.load()
            return factory(config)

    available = [ep.name for ep in eps]
    if available:
        raise ValueError(
            f"Unknown backend: {name!r}. Available: {available}"
        )
    raise ValueError(
        f"Unknown backend: {name!r}. No backends registered. "
        f"Use 'local' or 'memory', or install a backend package."
    )
