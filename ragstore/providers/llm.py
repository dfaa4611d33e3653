"""
Media description providers using multimodal LLMs.

Describers turn binary uploads (images, PDFs) into a short text summary
that is stored on the document metadata and indexed with its content.
"""

import base64
import os

from .base import MEDIA_DESCRIPTION_PROMPT, get_registry


def _encode(data: bytes) -> str:
    return base64.b64encode(data).decode("utf-8")


class OpenAIMediaDescriber:
    """
    Image description using OpenAI's vision-capable chat models.

    Requires: RAGSTORE_OPENAI_API_KEY or OPENAI_API_KEY environment variable.
    """

    def __init__(
        self,
        model: str = "gpt-4.1-mini",
        api_key: str | None = None,
        max_tokens: int = 300,
    ):
        try:
            from openai import OpenAI
        except ImportError:
            raise RuntimeError("OpenAIMediaDescriber requires 'openai' library")

        self.model = model
        self.max_tokens = max_tokens

        key = api_key or os.environ.get("RAGSTORE_OPENAI_API_KEY") or os.environ.get("OPENAI_API_KEY")
        if not key:
            raise ValueError(
                "OpenAI API key required. Set RAGSTORE_OPENAI_API_KEY or OPENAI_API_KEY"
            )

        self._client = OpenAI(api_key=key)

    def describe(self, data: bytes, content_type: str) -> str | None:
        """Describe an image. Other content types are not supported."""
        if not content_type.startswith("image/"):
            return None

        response = self._client.chat.completions.create(
            model=self.model,
            max_tokens=self.max_tokens,
            messages=[{
                "role": "user",
                "content": [
                    {"type": "text", "text": MEDIA_DESCRIPTION_PROMPT},
                    {
                        "type": "image_url",
                        "image_url": {"url": f"data:{content_type};base64,{_encode(data)}"},
                    },
                ],
            }],
        )
        text = (response.choices[0].message.content or "").strip()
        return text or None


class AnthropicMediaDescriber:
    """
    Image and PDF description using Anthropic's Claude API.

    Authentication (checked in priority order):
    1. api_key parameter (if provided)
    2. ANTHROPIC_API_KEY
    """

    SUPPORTED_IMAGES = ("image/png", "image/jpeg", "image/gif", "image/webp")

    def __init__(
        self,
        model: str = "claude-haiku-4-5-20251001",
        api_key: str | None = None,
        max_tokens: int = 300,
    ):
        try:
            from anthropic import Anthropic
        except ImportError:
            raise RuntimeError("AnthropicMediaDescriber requires 'anthropic' library")

        self.model = model
        self.max_tokens = max_tokens

        key = api_key or os.environ.get("ANTHROPIC_API_KEY")
        if not key:
            raise ValueError(
                "Anthropic authentication required. Set ANTHROPIC_API_KEY"
            )

        self.client = Anthropic(api_key=key)

    def describe(self, data: bytes, content_type: str) -> str | None:
        """Describe an image or PDF."""
        if content_type in self.SUPPORTED_IMAGES:
            block_type = "image"
        elif content_type == "application/pdf":
            block_type = "document"
        else:
            return None

        response = self.client.messages.create(
            model=self.model,
            max_tokens=self.max_tokens,
            messages=[{
                "role": "user",
                "content": [
                    {
                        "type": block_type,
                        "source": {
                            "type": "base64",
                            "media_type": content_type,
                            "data": _encode(data),
                        },
                    },
                    {"type": "text", "text": MEDIA_DESCRIPTION_PROMPT},
                ],
            }],
        )
        if response.content:
            text = response.content[0].text.strip()
            return text or None
        return None


class OllamaMediaDescriber:
    """
    Media description using Ollama's vision models.

    Supports image description via multimodal models (llava, moondream, etc.).

    Respects OLLAMA_HOST env var (default: http://localhost:11434).
    """

    def __init__(
        self,
        model: str = "llava",
        base_url: str | None = None,
    ):
        self.model = model
        from .ollama_utils import ollama_base_url, ollama_ensure_model
        self.base_url = ollama_base_url(base_url)
        ollama_ensure_model(self.base_url, self.model)

    def describe(self, data: bytes, content_type: str) -> str | None:
        """Describe an image using Ollama vision model."""
        if not content_type.startswith("image/"):
            return None

        import requests

        response = requests.post(
            f"{self.base_url}/api/chat",
            json={
                "model": self.model,
                "messages": [
                    {
                        "role": "user",
                        "content": MEDIA_DESCRIPTION_PROMPT,
                        "images": [_encode(data)],
                    },
                ],
                "stream": False,
            },
            timeout=120,
        )
        if not response.ok:
            detail = response.text[:200] if response.text else ""
            raise RuntimeError(
                f"Ollama vision failed (model={self.model}): "
                f"HTTP {response.status_code} from {self.base_url}. {detail}"
            )

        text = response.json()["message"]["content"].strip()
        return text if text else None


# Register providers
_registry = get_registry()
_registry.register_media("openai", OpenAIMediaDescriber)
_registry.register_media("anthropic", AnthropicMediaDescriber)
_registry.register_media("ollama", OllamaMediaDescriber)
