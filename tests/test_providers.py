"""Tests for the provider registry and the HTTP-backed providers (no network)."""

import json
from types import SimpleNamespace

import pytest
import requests

from ragstore.providers import get_registry
from ragstore.providers.base import ProviderRegistry
from ragstore.providers.ollama_utils import ollama_base_url, ollama_ensure_model


class FakeResponse:
    def __init__(self, payload=None, status_code=200, lines=None):
        self._payload = payload or {}
        self.status_code = status_code
        self.ok = status_code < 400
        self.text = json.dumps(self._payload)
        self._lines = lines or []

    def json(self):
        return self._payload

    def raise_for_status(self):
        if not self.ok:
            raise requests.HTTPError(f"HTTP {self.status_code}")

    def iter_lines(self):
        return iter(self._lines)


@pytest.fixture
def ollama_server(monkeypatch):
    """Patch requests with a fake Ollama server that has one model installed."""
    calls = []

    def fake_get(url, **kwargs):
        calls.append(("GET", url, None))
        return FakeResponse({"models": [{"name": "nomic-embed-text:latest"}, {"name": "llava:latest"}]})

    def fake_post(url, json=None, **kwargs):
        calls.append(("POST", url, json))
        if url.endswith("/api/embed"):
            return FakeResponse({"embeddings": [[float(len(t)), 1.0] for t in json["input"]]})
        if url.endswith("/api/chat"):
            return FakeResponse({"message": {"content": "  A cat on a sofa  "}})
        if url.endswith("/api/pull"):
            return FakeResponse(lines=[b'{"status": "pulling", "total": 10, "completed": 10}'])
        return FakeResponse(status_code=404)

    monkeypatch.setattr(requests, "get", fake_get)
    monkeypatch.setattr(requests, "post", fake_post)
    monkeypatch.delenv("OLLAMA_HOST", raising=False)
    return calls


class TestRegistry:
    def test_builtin_providers_registered(self):
        registry = get_registry()
        assert {"openai", "ollama", "sentence-transformers"} <= set(registry.list_embedding_providers())
        assert {"openai", "anthropic", "ollama"} <= set(registry.list_media_providers())

    def test_unknown_provider(self):
        with pytest.raises(ValueError, match="Unknown embedding provider: 'nope'"):
            get_registry().create_embedding("nope")

    def test_custom_registration(self):
        class Fixed:
            def __init__(self, size: int = 2):
                self.dimension = size

        registry = ProviderRegistry()
        registry.register_embedding("fixed", Fixed)
        assert registry.create_embedding("fixed", {"size": 5}).dimension == 5

    def test_constructor_errors_wrapped(self):
        class Broken:
            def __init__(self):
                raise ImportError("no module named 'heavy'")

        registry = ProviderRegistry()
        registry.register_media("broken", Broken)
        with pytest.raises(RuntimeError, match="Install required dependencies"):
            registry.create_media("broken")


class TestOllama:
    def test_base_url_resolution(self, monkeypatch):
        monkeypatch.delenv("OLLAMA_HOST", raising=False)
        assert ollama_base_url() == "http://localhost:11434"
        monkeypatch.setenv("OLLAMA_HOST", "gpu-box:11434/")
        assert ollama_base_url() == "http://gpu-box:11434"
        assert ollama_base_url("https://example.org") == "https://example.org"

    def test_installed_model_not_pulled(self, ollama_server):
        ollama_ensure_model("http://localhost:11434", "nomic-embed-text")
        assert [c[0] for c in ollama_server] == ["GET"]

    def test_missing_model_pulled(self, ollama_server, capsys):
        ollama_ensure_model("http://localhost:11434", "mxbai-embed-large")
        assert ollama_server[-1][:2] == ("POST", "http://localhost:11434/api/pull")
        assert "ready" in capsys.readouterr().err

    def test_unreachable_server(self, monkeypatch):
        def refuse(url, **kwargs):
            raise requests.ConnectionError("refused")

        monkeypatch.setattr(requests, "get", refuse)
        with pytest.raises(RuntimeError, match="Cannot reach Ollama"):
            ollama_ensure_model("http://localhost:11434", "llava")

    def test_embedding(self, ollama_server):
        provider = get_registry().create_embedding("ollama")
        assert provider.embed("abc") == [3.0, 1.0]
        assert provider.embed_batch(["a", "bb"]) == [[1.0, 1.0], [2.0, 1.0]]
        assert provider.dimension == 2

    def test_embedding_http_error(self, ollama_server, monkeypatch):
        provider = get_registry().create_embedding("ollama")
        monkeypatch.setattr(requests, "post", lambda url, **kw: FakeResponse({"error": "boom"}, 500))
        with pytest.raises(RuntimeError, match="HTTP 500"):
            provider.embed("text")

    def test_media_describer(self, ollama_server):
        describer = get_registry().create_media("ollama")
        assert describer.describe(b"\x89PNG", "image/png") == "A cat on a sofa"
        assert describer.describe(b"%PDF", "application/pdf") is None


class TestOpenAIEmbedding:
    def test_requires_key(self, monkeypatch):
        pytest.importorskip("openai")
        from ragstore.providers.embeddings import OpenAIEmbedding

        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        monkeypatch.delenv("RAGSTORE_OPENAI_API_KEY", raising=False)
        with pytest.raises(ValueError, match="API key required"):
            OpenAIEmbedding()

    def test_batches_and_orders_by_index(self):
        pytest.importorskip("openai")
        from ragstore.providers.embeddings import OpenAIEmbedding

        provider = OpenAIEmbedding(api_key="sk-test", batch_size=2)
        requests_seen = []

        def create(model, input):
            requests_seen.append(list(input))
            # Returned out of order; the provider sorts by index
            data = [
                SimpleNamespace(index=i, embedding=[float(len(text))])
                for i, text in reversed(list(enumerate(input)))
            ]
            return SimpleNamespace(data=data, usage=SimpleNamespace(total_tokens=len(input)))

        provider._client = SimpleNamespace(embeddings=SimpleNamespace(create=create))

        vectors = provider.embed_batch(["a", "bb", "", "dddd"])

        assert vectors == [[1.0], [2.0], [1.0], [4.0]]
        assert requests_seen == [["a", "bb"], [" ", "dddd"]]
        assert provider.dimension == 1536
