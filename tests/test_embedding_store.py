"""Tests for the checksum-cached embedding store and cosine scoring."""

import math

import pytest

from ragstore.embedding_store import EmbeddingStore, content_checksum, cosine_similarity
from ragstore.errors import DimensionMismatch, EmbeddingGenerationFailed
from ragstore.memory_store import MemoryVectorStore
from ragstore.types import EmbeddingRecord
from ragstore.vector_store import VectorStore

from tests.conftest import FailingEmbeddingProvider, MockEmbeddingProvider


class FixedProvider:
    """Returns preset vectors by text."""

    def __init__(self, vectors: dict[str, list[float]]):
        self.vectors = vectors
        self.embed_calls = 0

    @property
    def dimension(self) -> int:
        return len(next(iter(self.vectors.values())))

    def embed(self, text: str) -> list[float]:
        self.embed_calls += 1
        return self.vectors[text]

    def embed_batch(self, texts):
        return [self.embed(t) for t in texts]


@pytest.fixture(params=["memory", "sqlite"])
def backend(request, tmp_path):
    store = MemoryVectorStore() if request.param == "memory" else VectorStore(tmp_path / "e.db")
    yield store
    store.close()


class TestChecksum:
    def test_sha256_hex(self):
        assert content_checksum("") == "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"

    def test_sensitive_to_single_character(self):
        assert content_checksum("hello world") != content_checksum("hello World")


class TestStoreEmbedding:
    def test_first_store_generates(self, backend):
        provider = MockEmbeddingProvider()
        store = EmbeddingStore(backend, provider)
        assert store.store_embedding("k", "some text") is True
        assert provider.embed_calls == 1
        record = store.get("k")
        assert record.checksum == content_checksum("some text")
        assert record.dimension == provider.dimension

    def test_unchanged_text_skips_provider(self, backend):
        provider = MockEmbeddingProvider()
        store = EmbeddingStore(backend, provider)
        store.store_embedding("k", "some text")
        assert store.store_embedding("k", "some text") is False
        assert provider.embed_calls == 1

    def test_changed_text_regenerates(self, backend):
        provider = MockEmbeddingProvider()
        store = EmbeddingStore(backend, provider)
        store.store_embedding("k", "some text")
        assert store.is_stale("k", "some text!")
        assert store.store_embedding("k", "some text!") is True
        assert provider.embed_calls == 2
        assert store.get("k").checksum == content_checksum("some text!")

    def test_same_text_different_keys_embedded_separately(self, backend):
        provider = MockEmbeddingProvider()
        store = EmbeddingStore(backend, provider)
        store.store_embedding("a", "text")
        store.store_embedding("b", "text")
        assert provider.embed_calls == 2

    def test_provider_failure_leaves_store_unchanged(self, backend):
        provider = FailingEmbeddingProvider(fail_marker="BOOM")
        store = EmbeddingStore(backend, provider)
        store.store_embedding("k", "original")
        before = store.get("k")

        with pytest.raises(EmbeddingGenerationFailed) as exc:
            store.store_embedding("k", "BOOM changed")
        assert isinstance(exc.value.__cause__, ConnectionError)
        assert store.get("k").checksum == before.checksum
        assert store.get("k").vector == before.vector

    def test_provider_failure_on_new_key_writes_nothing(self, backend):
        store = EmbeddingStore(backend, FailingEmbeddingProvider(fail_marker="BOOM"))
        with pytest.raises(EmbeddingGenerationFailed):
            store.store_embedding("new", "BOOM")
        assert not store.exists("new")
        assert store.count() == 0

    def test_dimension_mismatch_detected(self, backend):
        store = EmbeddingStore(backend, FixedProvider({"a": [1.0, 0.0], "b": [1.0, 0.0, 0.0]}))
        store.store_embedding("a", "a")
        with pytest.raises(DimensionMismatch) as exc:
            store.store_embedding("b", "b")
        assert exc.value.expected == 2
        assert exc.value.actual == 3
        assert not store.exists("b")

    def test_remove(self, backend):
        store = EmbeddingStore(backend, MockEmbeddingProvider())
        store.store_embedding("k", "text")
        assert store.remove("k") is True
        assert store.remove("k") is False
        assert store.keys() == []

    def test_provider_created_lazily(self, backend):
        created = []

        def factory():
            created.append(1)
            return MockEmbeddingProvider()

        store = EmbeddingStore(backend, provider_factory=factory)
        assert created == []
        store.store_embedding("k", "text")
        store.store_embedding("j", "other")
        assert created == [1]

    def test_requires_provider_or_factory(self, backend):
        with pytest.raises(ValueError):
            EmbeddingStore(backend)


class TestCosineSimilarity:
    def test_identical_vectors(self):
        assert cosine_similarity([1.0, 2.0, 3.0], [1.0, 2.0, 3.0]) == pytest.approx(1.0)

    def test_opposite_vectors(self):
        assert cosine_similarity([1.0, 2.0], [-1.0, -2.0]) == pytest.approx(-1.0)

    def test_orthogonal_vectors(self):
        assert cosine_similarity([1.0, 0.0], [0.0, 5.0]) == pytest.approx(0.0)

    def test_zero_magnitude_is_zero(self):
        assert cosine_similarity([0.0, 0.0], [1.0, 1.0]) == 0.0

    def test_length_mismatch(self):
        with pytest.raises(DimensionMismatch):
            cosine_similarity([1.0], [1.0, 2.0])


class TestScore:
    def _store(self, backend, vectors: dict[str, list[float]], **kwargs) -> EmbeddingStore:
        for key, vector in vectors.items():
            backend.put(EmbeddingRecord(key=key, checksum=key, vector=vector))
        return EmbeddingStore(backend, MockEmbeddingProvider(), **kwargs)

    def test_empty_store(self, backend):
        assert EmbeddingStore(backend, MockEmbeddingProvider()).score([1.0, 0.0]) == []

    def test_sorted_descending(self, backend):
        store = self._store(backend, {
            "east": [1.0, 0.0],
            "north": [0.0, 1.0],
            "northeast": [1.0, 1.0],
            "west": [-1.0, 0.0],
        })
        scored = store.score([1.0, 0.2])
        keys = [record.key for _, record in scored]
        assert keys == ["east", "northeast", "north", "west"]
        sims = [sim for sim, _ in scored]
        assert sims == sorted(sims, reverse=True)

    def test_matches_pure_python_cosine(self, backend):
        vectors = {f"k{i}": [math.sin(i), math.cos(i), i / 10.0] for i in range(20)}
        store = self._store(backend, vectors)
        query = [0.3, -0.7, 0.5]
        for sim, record in store.score(query):
            assert sim == pytest.approx(cosine_similarity(query, vectors[record.key]))

    def test_bounds_and_self_similarity(self, backend):
        vectors = {f"k{i}": [float((i * 7) % 5 - 2), float(i % 3), 1e-3 * i] for i in range(30)}
        store = self._store(backend, vectors)
        for key, vector in vectors.items():
            scored = dict((record.key, sim) for sim, record in store.score(vector))
            assert all(-1.0 <= sim <= 1.0 for sim in scored.values())
            if any(vector):
                assert scored[key] == pytest.approx(1.0)

    def test_zero_vectors_score_zero(self, backend):
        store = self._store(backend, {"zero": [0.0, 0.0], "one": [1.0, 0.0]})
        scored = {record.key: sim for sim, record in store.score([1.0, 0.0])}
        assert scored["zero"] == 0.0
        assert {record.key: sim for sim, record in store.score([0.0, 0.0])} == {"one": 0.0, "zero": 0.0}

    def test_ties_broken_by_key(self, backend):
        store = self._store(backend, {"c": [1.0, 0.0], "a": [2.0, 0.0], "b": [3.0, 0.0]})
        assert [record.key for _, record in store.score([1.0, 0.0])] == ["a", "b", "c"]

    def test_parallel_blocks_match_sequential(self, backend):
        vectors = {f"key{i:03d}": [math.sin(i * 1.3), math.cos(i * 0.7), (i % 11) / 11.0] for i in range(200)}
        for key, vector in vectors.items():
            backend.put(EmbeddingRecord(key=key, checksum=key, vector=vector))
        query = [0.2, 0.9, -0.4]
        sequential = EmbeddingStore(backend, MockEmbeddingProvider(), max_workers=1).score(query)
        parallel = EmbeddingStore(backend, MockEmbeddingProvider(), max_workers=8, block_size=7).score(query)
        assert [r.key for _, r in parallel] == [r.key for _, r in sequential]
        assert [s for s, _ in parallel] == pytest.approx([s for s, _ in sequential])

    def test_query_dimension_mismatch(self, backend):
        store = self._store(backend, {"a": [1.0, 0.0]})
        with pytest.raises(DimensionMismatch):
            store.score([1.0, 0.0, 0.0])
