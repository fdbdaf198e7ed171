"""Token counting and human-readable statistics formatting."""

from __future__ import annotations

from functools import lru_cache
from typing import TYPE_CHECKING

import tiktoken

if TYPE_CHECKING:
    from collections.abc import Callable

    Tokenizer = Callable[[str], int]

KIB = 1024


@lru_cache(maxsize=8)
def _encoding(name: str) -> tiktoken.Encoding:
    return tiktoken.get_encoding(name)


def get_tokenizer(encoding: str = "o200k_base") -> Tokenizer:
    """Return a callable counting the tokens of a text with a tiktoken encoding.

    The encoding is loaded lazily on the first count. Special-token markers found in
    exported files are counted as ordinary text instead of raising.

    Args:
        encoding (str): tiktoken encoding name

    Returns:
        Tokenizer: ``text -> token count``
    """

    def count(text: str) -> int:
        return len(_encoding(encoding).encode(text, disallowed_special=()))

    return count


def format_file_size(size: int) -> str:
    """Format a byte count as ``B``, ``KB``, ``MB`` or ``GB`` with two decimals."""
    if size < KIB:
        return f"{size} B"
    if size < KIB**2:
        return f"{size / KIB:.2f} KB"
    if size < KIB**3:
        return f"{size / KIB**2:.2f} MB"
    return f"{size / KIB**3:.2f} GB"


def format_token_count(tokens: int) -> str:
    """Format a token count as ``n``, ``~n.nk`` or ``~n.nnM``."""
    if tokens < 1_000:  # noqa: PLR2004
        return str(tokens)
    if tokens < 1_000_000:  # noqa: PLR2004
        return f"~{tokens / 1_000:.1f}k"
    return f"~{tokens / 1_000_000:.2f}M"
