"""
Core Type Definitions: N-gram Postings, Query Vectors and Results

Memory Layout:
    - Postings hold contiguous numpy arrays (document slots + term frequencies)
    - Query vectors hold a parallel weight array aligned with their n-grams

Thread Safety:
    - All types here are frozen; arrays are marked read-only on creation
      so a built index can be shared across threads without locks.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, Optional

import numpy as np


# =============================================================================
# CONSTANTS
# =============================================================================
# Largest document id the engine (and the binary format) can represent
MAX_DOC_ID: int = 2**64 - 1

SLOT_DTYPE = np.int64
TF_DTYPE = np.uint32
DOC_ID_DTYPE = np.uint64
WEIGHT_DTYPE = np.float64


def _frozen(array: np.ndarray) -> np.ndarray:
    array.flags.writeable = False
    return array


# =============================================================================
# POSTING LIST
# =============================================================================
@dataclass(frozen=True, slots=True, eq=False)
class PostingList:
    """
    Postings of one n-gram.

    Structure:
        - slots: internal document ordinals, ascending
        - tfs: occurrences of the n-gram in each document (parallel to slots)

    Invariants:
        - slots are distinct, so df == len(slots)
        - every tf >= 1
    """
    ngram: str
    slots: np.ndarray
    tfs: np.ndarray

    @classmethod
    def build(cls, ngram: str, postings: dict[int, int]) -> "PostingList":
        """Freeze a slot -> tf mapping into sorted, read-only arrays."""
        ordered = sorted(postings.items())
        slots = np.fromiter((s for s, _ in ordered), dtype=SLOT_DTYPE, count=len(ordered))
        tfs = np.fromiter((t for _, t in ordered), dtype=TF_DTYPE, count=len(ordered))
        return cls(ngram=ngram, slots=_frozen(slots), tfs=_frozen(tfs))

    @classmethod
    def from_arrays(cls, ngram: str, slots: np.ndarray, tfs: np.ndarray) -> "PostingList":
        return cls(
            ngram=ngram,
            slots=_frozen(np.asarray(slots, dtype=SLOT_DTYPE)),
            tfs=_frozen(np.asarray(tfs, dtype=TF_DTYPE)),
        )

    @property
    def df(self) -> int:
        """Document frequency (distinct documents containing the n-gram)."""
        return len(self.slots)

    def __len__(self) -> int:
        return len(self.slots)

    def __iter__(self) -> Iterator[tuple[int, int]]:
        for slot, tf in zip(self.slots, self.tfs):
            yield int(slot), int(tf)


# =============================================================================
# QUERY VECTOR
# =============================================================================
@dataclass(frozen=True, slots=True, eq=False)
class QueryVector:
    """
    Weighted n-gram vector of one query string.

    Only n-grams known to the index are kept; unknown n-grams have weight
    zero and cannot contribute to any score. `ngram_count` still counts
    every n-gram the query produced.
    """
    ngrams: tuple[str, ...]
    weights: np.ndarray
    norm: float
    ngram_count: int
    n: int

    @property
    def nnz(self) -> int:
        return len(self.ngrams)

    def to_dict(self) -> dict[str, float]:
        return {g: float(w) for g, w in zip(self.ngrams, self.weights)}

    def __len__(self) -> int:
        return len(self.ngrams)

    def __iter__(self) -> Iterator[tuple[str, float]]:
        for ngram, weight in zip(self.ngrams, self.weights):
            yield ngram, float(weight)

    def __repr__(self) -> str:
        return f"QueryVector(nnz={self.nnz}, norm={self.norm:.4f})"


# =============================================================================
# RESULT TYPES
# =============================================================================
@dataclass(frozen=True, slots=True)
class SearchResult:
    """One scored document."""
    doc_id: int
    score: float

    def __iter__(self) -> Iterator:
        yield self.doc_id
        yield self.score


@dataclass
class SearchResults:
    """Top-k results with query metadata."""
    matches: list[SearchResult]
    total_candidates: int
    query_ngrams: int
    query_time_ms: float

    def __len__(self) -> int:
        return len(self.matches)

    def __iter__(self) -> Iterator[SearchResult]:
        return iter(self.matches)

    @property
    def top(self) -> Optional[SearchResult]:
        return self.matches[0] if self.matches else None


@dataclass(frozen=True, slots=True)
class IndexStats:
    """Summary statistics of a built index."""
    n: int
    num_documents: int
    vocabulary_size: int
    total_postings: int
    avg_posting_length: float
    empty_documents: int

    def to_dict(self) -> dict:
        return {
            "n": self.n,
            "num_documents": self.num_documents,
            "vocabulary_size": self.vocabulary_size,
            "total_postings": self.total_postings,
            "avg_posting_length": self.avg_posting_length,
            "empty_documents": self.empty_documents,
        }


__all__ = [
    "MAX_DOC_ID",
    "PostingList",
    "QueryVector",
    "SearchResult",
    "SearchResults",
    "IndexStats",
]
