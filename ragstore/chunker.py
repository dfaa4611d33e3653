"""
Line-bounded token chunker.

Content is split into lines and consecutive lines are packed into a chunk
until the chunk's token count reaches the budget. Lines are never broken, so
a single oversized line becomes one oversized chunk. Every line keeps its
separator, which makes ``"".join(split(text)) == text`` hold for any input.
"""

from typing import Callable, Optional

from .tokens import count_tokens

DEFAULT_TOKENS_PER_CHUNK = 1000


def split_lines(content: str, line_separator: str = "\n") -> list[str]:
    """Split content into lines, each keeping its trailing separator."""
    if not content:
        return []
    if not line_separator:
        raise ValueError("line_separator must not be empty")
    parts = content.split(line_separator)
    lines = [part + line_separator for part in parts[:-1]]
    if parts[-1]:
        lines.append(parts[-1])
    return lines


def split(
    content: str,
    line_separator: str = "\n",
    tokens_per_chunk: int = DEFAULT_TOKENS_PER_CHUNK,
    *,
    counter: Optional[Callable[[str], int]] = None,
) -> list[str]:
    """
    Split content into ordered, token-bounded chunks along line boundaries.

    Args:
        content: Text to split
        line_separator: Line boundary marker
        tokens_per_chunk: A chunk is closed once it reaches this many tokens
        counter: Token counting function (defaults to the shared tokenizer)

    Returns:
        Ordered list of chunk texts; empty for empty content
    """
    if tokens_per_chunk < 1:
        raise ValueError(f"tokens_per_chunk must be positive, got {tokens_per_chunk}")
    count = counter or count_tokens

    chunks: list[str] = []
    current: list[str] = []
    for line in split_lines(content, line_separator):
        current.append(line)
        # BPE merges across line breaks, so measure the joined chunk
        text = "".join(current)
        if count(text) >= tokens_per_chunk:
            chunks.append(text)
            current = []
    if current:
        chunks.append("".join(current))
    return chunks
