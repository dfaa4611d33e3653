"""
Token counting with a fixed BPE encoding.

Chunk sizes, query truncation and context budgets are all measured with the
same encoder so that budgets computed at index time hold at query time.
"""

import logging
from functools import lru_cache

import tiktoken

logger = logging.getLogger(__name__)

DEFAULT_ENCODING = "cl100k_base"


@lru_cache(maxsize=None)
def _get_encoding(name: str) -> "tiktoken.Encoding":
    logger.debug("Loading tokenizer encoding %s", name)
    return tiktoken.get_encoding(name)


class Tokenizer:
    """
    Counts and truncates text in BPE tokens (cl100k_base by default,
    matching text-embedding-3-* models).
    """

    def __init__(self, encoding: str = DEFAULT_ENCODING):
        self.encoding_name = encoding

    @property
    def _encoding(self) -> "tiktoken.Encoding":
        return _get_encoding(self.encoding_name)

    def count(self, text: str) -> int:
        if not text:
            return 0
        return len(self._encoding.encode(text, disallowed_special=()))

    def truncate(self, text: str, max_tokens: int) -> str:
        """Drop trailing tokens beyond ``max_tokens``. Never raises on long input."""
        if not text:
            return text
        tokens = self._encoding.encode(text, disallowed_special=())
        if len(tokens) <= max_tokens:
            return text
        logger.debug("Truncating text from %d to %d tokens", len(tokens), max_tokens)
        return self._encoding.decode(tokens[:max_tokens])


_default_tokenizer = None


def get_tokenizer() -> Tokenizer:
    """Get the shared default tokenizer."""
    global _default_tokenizer
    if _default_tokenizer is None:
        _default_tokenizer = Tokenizer()
    return _default_tokenizer


def count_tokens(text: str) -> int:
    """Count tokens with the default encoding."""
    return get_tokenizer().count(text)
