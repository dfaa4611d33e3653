"""Tests for the line-bounded chunker."""

import re

import pytest

from ragstore.chunker import split, split_lines


def words(text: str) -> int:
    return len(text.split())


def merging_counter(text: str) -> int:
    """Words count one each; a run of newlines counts as a single token."""
    return len(re.findall(r"\n+|[^\s]+", text))


class TestSplitLines:
    def test_lines_keep_separator(self):
        assert split_lines("a\nb\nc") == ["a\n", "b\n", "c"]

    def test_trailing_separator_no_empty_line(self):
        assert split_lines("a\nb\n") == ["a\n", "b\n"]

    def test_blank_lines_preserved(self):
        assert split_lines("a\n\nb") == ["a\n", "\n", "b"]

    def test_empty_content(self):
        assert split_lines("") == []

    def test_custom_separator(self):
        assert split_lines("a||b", "||") == ["a||", "b"]

    def test_empty_separator_rejected(self):
        with pytest.raises(ValueError):
            split_lines("abc", "")


class TestSplit:
    def test_empty_content_yields_no_chunks(self):
        assert split("", counter=words) == []

    def test_short_content_single_chunk(self):
        assert split("one two\nthree", tokens_per_chunk=10, counter=words) == ["one two\nthree"]

    def test_chunk_closes_when_budget_reached(self):
        """A chunk is closed as soon as it reaches the budget, not only when it exceeds it."""
        content = "a b\nc d\ne f\ng"
        chunks = split(content, tokens_per_chunk=4, counter=words)
        assert chunks == ["a b\nc d\n", "e f\ng"]

    def test_oversized_line_is_one_chunk(self):
        """Lines are never broken mid-line."""
        long_line = " ".join(["word"] * 50)
        chunks = split(f"short\n{long_line}\ntail", tokens_per_chunk=10, counter=words)
        assert chunks == ["short\n" + long_line + "\n", "tail"]

    def test_round_trip_is_lossless(self):
        content = "\n".join(f"line {i} has some words" for i in range(200)) + "\n\n  trailing  "
        chunks = split(content, tokens_per_chunk=37, counter=words)
        assert len(chunks) > 1
        assert "".join(chunks) == content

    def test_fifteen_hundred_tokens_make_two_chunks(self):
        content = "\n".join(f"w{i}" for i in range(1500))
        chunks = split(content, tokens_per_chunk=1000, counter=words)
        assert len(chunks) == 2
        assert words(chunks[0]) == 1000
        assert words(chunks[1]) == 500

    def test_custom_line_separator(self):
        chunks = split("a b|c d|e", line_separator="|", tokens_per_chunk=2, counter=words)
        assert chunks == ["a b|", "c d|", "e"]

    def test_deterministic(self):
        content = "\n".join(["alpha beta gamma"] * 30)
        assert split(content, tokens_per_chunk=7, counter=words) == split(
            content, tokens_per_chunk=7, counter=words
        )

    def test_invalid_budget(self):
        with pytest.raises(ValueError):
            split("abc", tokens_per_chunk=0, counter=words)

    def test_budget_measured_on_joined_chunk(self):
        """Tokens that merge across line breaks are counted once."""
        assert split("\n" * 40, tokens_per_chunk=10, counter=merging_counter) == ["\n" * 40]

    def test_chunk_closes_on_joined_count(self):
        # Per line: 2 + 1 + 1 + 1 + 2; joined "x\n\n\n\ny\n" is x, \n\n\n\n, y, \n
        assert split("x\n\n\n\ny\n", tokens_per_chunk=4, counter=merging_counter) == ["x\n\n\n\ny\n"]
        assert split("x\ny\nz\n", tokens_per_chunk=4, counter=merging_counter) == ["x\ny\n", "z\n"]

    @pytest.mark.slow
    def test_default_counter_uses_tokenizer(self, bpe_tokenizer):
        """Without a counter the shared BPE tokenizer measures chunks."""
        content = "\n".join(["the quick brown fox jumps over the lazy dog"] * 20)
        chunks = split(content, tokens_per_chunk=50)
        assert len(chunks) > 1
        assert "".join(chunks) == content
