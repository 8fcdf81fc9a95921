"""
Character N-gram Extraction

Turns a term into the ordered multiset of its length-n character windows
after padding both ends with n-1 boundary characters:

    n = 3, "kind"  ->  "§§kind§§"  ->  §§k §ki kin ind nd§ d§§

A term of L code points yields exactly L + n - 1 n-grams (duplicates kept,
they raise term frequency). The empty term yields none.
"""

from __future__ import annotations

from collections import Counter
from typing import Final, Iterator

# Boundary padding character
PAD_CHAR: Final[str] = "§"

# Stand-in for PAD_CHAR occurring in caller input
PAD_REPLACEMENT: Final[str] = "\ufffd"


def sanitize(term: str) -> str:
    """Replace boundary characters in caller input so they cannot forge padding."""
    if PAD_CHAR in term:
        return term.replace(PAD_CHAR, PAD_REPLACEMENT)
    return term


def padded(term: str, n: int) -> str:
    """Sanitize `term` and surround it with n-1 padding characters on each side."""
    pads = PAD_CHAR * (n - 1)
    return f"{pads}{sanitize(term)}{pads}"


def extract_ngrams(term: str, n: int) -> Iterator[str]:
    """
    Yield the n-grams of `term` in order.

    Args:
        term: Input string (any length, may be empty)
        n: Gram length, >= 1

    Yields:
        len(term) + n - 1 strings of length n, or nothing for an empty term
    """
    if n < 1:
        raise ValueError(f"n must be >= 1, got {n}")
    if not term:
        return
    text = padded(term, n)
    for i in range(len(text) - n + 1):
        yield text[i:i + n]


def count_ngrams(term: str, n: int) -> Counter[str]:
    """N-gram multiset of `term` (n-gram -> occurrences), in first-seen order."""
    return Counter(extract_ngrams(term, n))


__all__ = [
    "PAD_CHAR",
    "PAD_REPLACEMENT",
    "sanitize",
    "padded",
    "extract_ngrams",
    "count_ngrams",
]
