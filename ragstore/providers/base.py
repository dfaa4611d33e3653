"""
Base provider protocols.

These define the interfaces that concrete providers must implement.
Using Protocol for structural subtyping - no explicit inheritance required.
"""

from typing import Protocol, runtime_checkable


# -----------------------------------------------------------------------------
# Embedding Generation
# -----------------------------------------------------------------------------

@runtime_checkable
class EmbeddingProvider(Protocol):
    """
    Generates vector embeddings from text.

    The same provider must be used for indexing and querying: a store's
    dimensionality is fixed by its first embedding.

    Example implementation:
        class SentenceTransformerEmbedding:
            def __init__(self, model: str = "all-MiniLM-L6-v2"):
                from sentence_transformers import SentenceTransformer
                self._model = SentenceTransformer(model)

            @property
            def dimension(self) -> int:
                return self._model.get_sentence_embedding_dimension()

            def embed(self, text: str) -> list[float]:
                return self._model.encode(text).tolist()
    """

    @property
    def dimension(self) -> int:
        """The dimensionality of the embedding vectors."""
        ...

    def embed(self, text: str) -> list[float]:
        """
        Generate an embedding vector for the given text.

        Raises:
            Any exception on provider failure; the engine wraps it in
            EmbeddingGenerationFailed
        """
        ...

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Generate embeddings for multiple texts, one vector per input."""
        ...


# -----------------------------------------------------------------------------
# Media Description
# -----------------------------------------------------------------------------

MEDIA_DESCRIPTION_PROMPT = """Describe this file so it can be found by a text search.

Begin with the subject directly - do not start with "This image shows..." or "The document is...".

Name the visible objects, people, text, diagrams, and their purpose. Stay under 200 words."""


@runtime_checkable
class MediaDescriber(Protocol):
    """
    Generates text descriptions of binary content.

    Returns None for unsupported content types so the caller can fall back
    to extracted text only.
    """

    def describe(self, data: bytes, content_type: str) -> str | None:
        """
        Generate a text description of binary content.

        Args:
            data: Raw file bytes
            content_type: MIME type (e.g., "image/png", "application/pdf")

        Returns:
            Description text, or None if the content type is not supported
        """
        ...


# -----------------------------------------------------------------------------
# Binary Content Adapter
# -----------------------------------------------------------------------------

@runtime_checkable
class BinaryContentAdapter(Protocol):
    """
    Turns uploaded bytes into indexable text.

    ``extract`` pulls out whatever text the format carries; ``summarize``
    produces a description for formats flagged binary (images, PDFs).
    """

    def is_binary(self, mime_type: str) -> bool:
        """True if content of this type should get a generated summary."""
        ...

    def extract(self, data: bytes, mime_type: str) -> str:
        """Extract text content. Returns "" for formats with no text layer."""
        ...

    def summarize(self, data: bytes, mime_type: str) -> str | None:
        """
        Generate a summary for binary content.

        Raises:
            SummarizationFailed: If the describer call fails
        """
        ...


# -----------------------------------------------------------------------------
# Provider Registry
# -----------------------------------------------------------------------------

class ProviderRegistry:
    """
    Registry for discovering and instantiating providers.

    Providers are registered by name and can be instantiated from configuration.
    This allows the store configuration (TOML) to specify providers by name
    rather than requiring code changes.

    Example:
        registry = ProviderRegistry()
        registry.register_embedding("openai", OpenAIEmbedding)

        # Later, from config:
        provider = registry.create_embedding("openai", {"model": "text-embedding-3-small"})
    """

    def __init__(self):
        self._embedding_providers: dict[str, type] = {}
        self._media_providers: dict[str, type] = {}
        self._lazy_loaded = False

    def _ensure_providers_loaded(self) -> None:
        """Lazily load all provider modules."""
        if self._lazy_loaded:
            return

        self._lazy_loaded = True

        # Import provider modules to trigger registration.
        # Third-party SDKs are imported inside provider constructors, so
        # these imports only register classes.
        from . import embeddings  # noqa: F401
        from . import llm  # noqa: F401

    # Registration methods

    def register_embedding(self, name: str, provider_class: type) -> None:
        """Register an embedding provider class."""
        self._embedding_providers[name] = provider_class

    def register_media(self, name: str, provider_class: type) -> None:
        """Register a media describer class."""
        self._media_providers[name] = provider_class

    # Factory methods

    @staticmethod
    def _create_provider(kind: str, name: str, providers: dict, params: dict | None):
        """Shared factory logic for all provider types."""
        if name not in providers:
            available = ", ".join(providers.keys()) or "none"
            raise ValueError(
                f"Unknown {kind} provider: '{name}'. "
                f"Available providers: {available}. "
                f"Install missing dependencies or check provider name."
            )
        try:
            return providers[name](**(params or {}))
        except ImportError as e:
            raise RuntimeError(
                f"Failed to create {kind} provider '{name}': {e}\n"
                f"Install required dependencies."
            ) from e
        except Exception as e:
            raise RuntimeError(
                f"Failed to create {kind} provider '{name}': {e}"
            ) from e

    def create_embedding(self, name: str, params: dict | None = None) -> EmbeddingProvider:
        """Create an embedding provider instance."""
        self._ensure_providers_loaded()
        return self._create_provider("embedding", name, self._embedding_providers, params)

    def create_media(self, name: str, params: dict | None = None) -> MediaDescriber:
        """Create a media describer instance."""
        self._ensure_providers_loaded()
        return self._create_provider("media", name, self._media_providers, params)

    # Introspection

    def list_embedding_providers(self) -> list[str]:
        """List registered embedding provider names."""
        self._ensure_providers_loaded()
        return list(self._embedding_providers.keys())

    def list_media_providers(self) -> list[str]:
        """List registered media describer names."""
        self._ensure_providers_loaded()
        return list(self._media_providers.keys())


# Global registry instance
# Concrete providers register themselves on import
_registry = ProviderRegistry()


def get_registry() -> ProviderRegistry:
    """Get the global provider registry."""
    return _registry
