"""
Provider interfaces and implementations.

Concrete providers register themselves with the global registry when their
module is imported; the registry imports them on first use.
"""

from .base import (
    BinaryContentAdapter,
    EmbeddingProvider,
    MediaDescriber,
    ProviderRegistry,
    get_registry,
)

__all__ = [
    "BinaryContentAdapter",
    "EmbeddingProvider",
    "MediaDescriber",
    "ProviderRegistry",
    "get_registry",
]
