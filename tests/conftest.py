"""
Shared pytest fixtures for ragstore tests.

Provides mock providers to avoid loading heavy ML models or calling APIs
during testing.
"""

import hashlib
import re

import pytest

from ragstore.api import DocumentEngine
from ragstore.config import StoreConfig
from ragstore.providers.documents import ContentAdapter
from ragstore.tokens import Tokenizer


_WORD_RE = re.compile(r"[a-z0-9]+")


class MockEmbeddingProvider:
    """
    Deterministic bag-of-words embedding provider for testing.

    Each word is hashed into one of ``dimension`` buckets, so texts that
    share words have positive cosine similarity and texts that share none
    score 0. No ML model loading.
    """

    dimension = 4096
    model_name = "mock-model"

    def __init__(self):
        self.embed_calls = 0
        self.batch_calls = 0
        self.texts: list[str] = []

    def embed(self, text: str) -> list[float]:
        """Generate a word-count vector from hashed words."""
        self.embed_calls += 1
        self.texts.append(text)
        vector = [0.0] * self.dimension
        for word in _WORD_RE.findall(text.lower()):
            bucket = int(hashlib.md5(word.encode()).hexdigest(), 16) % self.dimension
            vector[bucket] += 1.0
        return vector

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Generate embeddings for multiple texts."""
        self.batch_calls += 1
        return [self.embed(t) for t in texts]


class FailingEmbeddingProvider(MockEmbeddingProvider):
    """Embedding provider that fails for texts containing a marker, or after N calls."""

    def __init__(self, fail_marker: str | None = None, fail_after: int | None = None):
        super().__init__()
        self.fail_marker = fail_marker
        self.fail_after = fail_after

    def embed(self, text: str) -> list[float]:
        if self.fail_marker is not None and self.fail_marker in text:
            raise ConnectionError(f"Embedding service unavailable ({self.fail_marker})")
        if self.fail_after is not None and self.embed_calls >= self.fail_after:
            raise TimeoutError(f"Connection timed out (call {self.embed_calls + 1})")
        return super().embed(text)


class MockMediaDescriber:
    """Describes images with a fixed caption; other types unsupported."""

    def __init__(self, caption: str = "A red bicycle leaning against a brick wall"):
        self.caption = caption
        self.describe_calls = 0

    def describe(self, data: bytes, content_type: str) -> str | None:
        self.describe_calls += 1
        if not content_type.startswith("image/"):
            return None
        return self.caption


class FailingMediaDescriber:
    def describe(self, data: bytes, content_type: str) -> str | None:
        raise RuntimeError("Vision model unavailable")


class WordTokenizer:
    """Whitespace word counter: one token per word."""

    def count(self, text: str) -> int:
        return len(text.split())

    def truncate(self, text: str, max_tokens: int) -> str:
        words = text.split()
        if len(words) <= max_tokens:
            return text
        return " ".join(words[:max_tokens])


@pytest.fixture
def mock_embedding_provider():
    """Create a fresh MockEmbeddingProvider instance."""
    return MockEmbeddingProvider()


@pytest.fixture
def mock_media_describer():
    return MockMediaDescriber()


@pytest.fixture
def word_tokenizer():
    return WordTokenizer()


@pytest.fixture
def bpe_tokenizer():
    """
    The real cl100k_base tokenizer.

    tiktoken downloads the encoding on first use; tests are skipped when it
    cannot be loaded (offline CI).
    """
    tokenizer = Tokenizer()
    try:
        tokenizer.count("warm up")
    except Exception as e:
        pytest.skip(f"tiktoken encoding unavailable: {e}")
    return tokenizer


@pytest.fixture
def make_engine(tmp_path, word_tokenizer):
    """
    Factory for engines over memory or local SQLite stores.

    All engines use the word tokenizer and are closed at teardown.
    """
    engines = []

    def _make(
        backend: str = "memory",
        provider=None,
        describer=None,
        tokens_per_chunk: int = 1000,
        max_total_tokens: int = 8000,
        **kwargs,
    ) -> DocumentEngine:
        config = StoreConfig(path=tmp_path / f"store-{len(engines)}", backend=backend, name="test")
        config.chunking.tokens_per_chunk = tokens_per_chunk
        config.query.max_total_tokens = max_total_tokens
        engine = DocumentEngine(
            config=config,
            embedding_provider=provider or MockEmbeddingProvider(),
            content_adapter=ContentAdapter(describer),
            tokenizer=word_tokenizer,
            **kwargs,
        )
        engines.append(engine)
        return engine

    yield _make

    for engine in engines:
        engine.close()


@pytest.fixture
def engine(make_engine, mock_embedding_provider):
    """Engine over in-memory stores with a call-counting provider."""
    return make_engine("memory", provider=mock_embedding_provider)


@pytest.fixture(params=["memory", "local"])
def any_engine(request, make_engine, mock_embedding_provider):
    """Engine over each built-in backend."""
    return make_engine(request.param, provider=mock_embedding_provider)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (loading real ML models)"
    )
    config.addinivalue_line(
        "markers", "e2e: marks tests as end-to-end (require real providers)"
    )
