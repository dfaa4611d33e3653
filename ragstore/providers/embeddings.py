"""
Embedding providers.

Each provider imports its SDK lazily in ``__init__`` so registering the
classes costs nothing. None of them retry: callers see the first failure.
"""

import logging
import os

from .base import get_registry

logger = logging.getLogger(__name__)


class OpenAIEmbedding:
    """
    Embedding provider using OpenAI's embeddings API.

    Requires: RAGSTORE_OPENAI_API_KEY or OPENAI_API_KEY environment variable.

    Default model is text-embedding-3-small (1536 dimensions), which shares
    the cl100k_base tokenizer used for chunk budgets.
    """

    DIMENSIONS = {
        "text-embedding-3-small": 1536,
        "text-embedding-3-large": 3072,
        "text-embedding-ada-002": 1536,
    }

    def __init__(
        self,
        model: str = "text-embedding-3-small",
        api_key: str | None = None,
        batch_size: int = 512,
    ):
        try:
            from openai import OpenAI
        except ImportError:
            raise RuntimeError("OpenAIEmbedding requires 'openai' library")

        key = api_key or os.environ.get("RAGSTORE_OPENAI_API_KEY") or os.environ.get("OPENAI_API_KEY")
        if not key:
            raise ValueError(
                "OpenAI API key required. Set RAGSTORE_OPENAI_API_KEY or OPENAI_API_KEY"
            )

        self.model = model
        self.batch_size = batch_size
        self._client = OpenAI(api_key=key)
        self._dimension = self.DIMENSIONS.get(model)

    @property
    def dimension(self) -> int:
        if self._dimension is None:
            self._dimension = len(self.embed("dimension probe"))
        return self._dimension

    def embed(self, text: str) -> list[float]:
        return self.embed_batch([text])[0]

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        vectors: list[list[float]] = []
        for start in range(0, len(texts), self.batch_size):
            # The API rejects empty input strings
            batch = [t if t.strip() else " " for t in texts[start:start + self.batch_size]]
            response = self._client.embeddings.create(model=self.model, input=batch)
            vectors.extend(item.embedding for item in sorted(response.data, key=lambda d: d.index))
            logger.debug("OpenAI embeddings: %d texts, %d tokens", len(batch), response.usage.total_tokens)
        return vectors


class OllamaEmbedding:
    """
    Embedding provider using Ollama's local API.

    Respects OLLAMA_HOST env var (default: http://localhost:11434).
    """

    def __init__(
        self,
        model: str = "nomic-embed-text",
        base_url: str | None = None,
    ):
        self.model = model
        from .ollama_utils import ollama_base_url, ollama_ensure_model
        self.base_url = ollama_base_url(base_url)
        ollama_ensure_model(self.base_url, self.model)
        self._dimension: int | None = None

    @property
    def dimension(self) -> int:
        if self._dimension is None:
            self._dimension = len(self.embed("dimension probe"))
        return self._dimension

    def embed(self, text: str) -> list[float]:
        return self.embed_batch([text])[0]

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        import requests

        response = requests.post(
            f"{self.base_url}/api/embed",
            json={"model": self.model, "input": texts},
            timeout=(10, 120),  # (connect, read)
        )
        if not response.ok:
            detail = response.text[:200] if response.text else ""
            raise RuntimeError(
                f"Ollama embedding failed (model={self.model}): "
                f"HTTP {response.status_code} from {self.base_url}. {detail}"
            )
        return response.json()["embeddings"]


class SentenceTransformerEmbedding:
    """
    Local embedding provider using sentence-transformers.

    Runs on CPU without an API key. The model is downloaded on first use.
    """

    def __init__(self, model: str = "all-MiniLM-L6-v2"):
        try:
            from sentence_transformers import SentenceTransformer
        except ImportError:
            raise RuntimeError(
                "SentenceTransformerEmbedding requires 'sentence-transformers' library"
            )
        self.model_name = model
        self._model = SentenceTransformer(model)

    @property
    def dimension(self) -> int:
        return self._model.get_sentence_embedding_dimension()

    def embed(self, text: str) -> list[float]:
        return self._model.encode(text).tolist()

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        return self._model.encode(texts).tolist()


# Register providers
_registry = get_registry()
_registry.register_embedding("openai", OpenAIEmbedding)
_registry.register_embedding("ollama", OllamaEmbedding)
_registry.register_embedding("sentence-transformers", SentenceTransformerEmbedding)
