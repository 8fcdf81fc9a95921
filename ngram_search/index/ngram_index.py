"""
Immutable N-gram Index & Similarity Engine

Read-only structure produced by NGramIndexBuilder.build() or by
codec.deserialize(). Ranks indexed documents against a query string by the
cosine similarity of their IDF-weighted n-gram vectors.

Architecture:
    - Vocabulary: n-gram -> position in the postings/weights tables
    - Postings: one PostingList per n-gram (document slots + tfs)
    - Weights: ln(1 + N / df) per n-gram, frozen at build time
    - Document table: slot -> (external id, n-gram count, norm)

Scoring (term-at-a-time accumulation):
    1. For every query n-gram known to the index, walk its postings and
       add query_weight(g) * weight(g) * tf(g, d) to document d
    2. Divide each accumulated dot product by query_norm * norm(d)

Only documents sharing at least one n-gram with the query are visited, so
cost is O(query n-grams * average postings length), independent of corpus
size.

Thread Safety:
    - Immutable after construction; all arrays are read-only
    - Queries allocate only per-call state, so concurrent reads need no lock
"""

from __future__ import annotations

import heapq
import time
from typing import Iterator, Optional, Sequence

import numpy as np

from ngram_search.core.errors import Err, Ok, QueryError, Result
from ngram_search.core.types import (
    SLOT_DTYPE,
    WEIGHT_DTYPE,
    IndexStats,
    PostingList,
    QueryVector,
    SearchResult,
    SearchResults,
)
from ngram_search.index.ngrams import count_ngrams


# Plain cosine: query and document length weigh the same
COSINE_QWEIGHT: float = 0.5


def _read_only(array: np.ndarray) -> np.ndarray:
    array.flags.writeable = False
    return array


class NGramIndex:
    """
    Immutable, queryable n-gram index.

    Example:
        >>> query = index.make_query_vec("shol").unwrap()
        >>> ranked = sorted(index.find(query), key=lambda r: r[1], reverse=True)
    """

    __slots__ = (
        "_n", "_vocab", "_postings", "_weights",
        "_doc_ids", "_doc_lengths", "_norms", "_slot_of",
    )

    def __init__(
        self,
        n: int,
        postings: Sequence[PostingList],
        weights: np.ndarray,
        doc_ids: np.ndarray,
        doc_lengths: np.ndarray,
        norms: np.ndarray,
    ) -> None:
        """
        Assemble an index from frozen parts.

        Callers are the builder and the codec, which guarantee the
        invariants (aligned arrays, df >= 1, slots < len(doc_ids)).
        """
        self._n = n
        self._postings: tuple[PostingList, ...] = tuple(postings)
        self._vocab: dict[str, int] = {
            pl.ngram: pos for pos, pl in enumerate(self._postings)
        }
        self._weights = _read_only(np.asarray(weights, dtype=WEIGHT_DTYPE))
        self._doc_ids = _read_only(np.asarray(doc_ids))
        self._doc_lengths = _read_only(np.asarray(doc_lengths))
        self._norms = _read_only(np.asarray(norms, dtype=WEIGHT_DTYPE))
        self._slot_of: dict[int, int] = {
            int(doc_id): slot for slot, doc_id in enumerate(self._doc_ids)
        }

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------
    @property
    def n(self) -> int:
        """N-gram length."""
        return self._n

    @property
    def num_documents(self) -> int:
        """Distinct document ids (N)."""
        return len(self._doc_ids)

    @property
    def vocabulary_size(self) -> int:
        return len(self._postings)

    @property
    def is_empty(self) -> bool:
        return len(self._doc_ids) == 0

    @property
    def postings(self) -> tuple[PostingList, ...]:
        """Postings lists in vocabulary order."""
        return self._postings

    @property
    def doc_ids(self) -> np.ndarray:
        """External document id per slot."""
        return self._doc_ids

    @property
    def doc_lengths(self) -> np.ndarray:
        """N-gram count per slot."""
        return self._doc_lengths

    @property
    def norms(self) -> np.ndarray:
        """Weighted vector norm per slot."""
        return self._norms

    def __len__(self) -> int:
        return len(self._doc_ids)

    def __contains__(self, doc_id: object) -> bool:
        return doc_id in self._slot_of

    def __repr__(self) -> str:
        return (
            f"NGramIndex(n={self._n}, documents={self.num_documents}, "
            f"vocabulary={self.vocabulary_size})"
        )

    # -------------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------------
    def weight(self, ngram: str) -> float:
        """IDF weight of `ngram`; 0.0 for n-grams outside the vocabulary."""
        pos = self._vocab.get(ngram)
        return 0.0 if pos is None else float(self._weights[pos])

    def df(self, ngram: str) -> int:
        """Document frequency of `ngram`; 0 for unknown n-grams."""
        pos = self._vocab.get(ngram)
        return 0 if pos is None else self._postings[pos].df

    def posting_list(self, ngram: str) -> Optional[PostingList]:
        pos = self._vocab.get(ngram)
        return None if pos is None else self._postings[pos]

    def norm(self, doc_id: int) -> Optional[float]:
        """Stored vector norm of a document, None if the id is unknown."""
        slot = self._slot_of.get(doc_id)
        return None if slot is None else float(self._norms[slot])

    def document_length(self, doc_id: int) -> Optional[int]:
        """N-gram count of a document, None if the id is unknown."""
        slot = self._slot_of.get(doc_id)
        return None if slot is None else int(self._doc_lengths[slot])

    # -------------------------------------------------------------------------
    # Query Vectors
    # -------------------------------------------------------------------------
    def make_query_vec(self, query: str) -> Result[QueryVector, QueryError]:
        """
        Build the weighted n-gram vector of `query`.

        Each query n-gram is weighted by the index's frozen weight times its
        frequency in the query; n-grams outside the vocabulary weigh zero.

        Returns:
            Ok(QueryVector), or Err(QueryError) when the query yields no
            n-grams (empty string) or none of its n-grams are indexed
        """
        counts = count_ngrams(query, self._n)
        total = sum(counts.values())
        if total == 0:
            return Err(QueryError.empty_ngram_set(query))

        known = [(gram, tf) for gram, tf in counts.items() if gram in self._vocab]
        weights = np.array(
            [self._weights[self._vocab[gram]] * tf for gram, tf in known],
            dtype=WEIGHT_DTYPE,
        )
        norm = float(np.sqrt(np.dot(weights, weights))) if known else 0.0
        if norm == 0.0:
            return Err(QueryError.zero_norm(query, total))

        return Ok(QueryVector(
            ngrams=tuple(gram for gram, _ in known),
            weights=_read_only(weights),
            norm=norm,
            ngram_count=total,
            n=self._n,
        ))

    # -------------------------------------------------------------------------
    # Search Methods
    # -------------------------------------------------------------------------
    def find(self, query_vec: QueryVector) -> Iterator[tuple[int, float]]:
        """
        Score every document sharing an n-gram with the query.

        Returns:
            Lazy iterator of (doc_id, cosine similarity in [0, 1]) in
            unspecified order, one entry per document. Call again to rescore.
        """
        self._check_query(query_vec)
        return self._scores(query_vec, None, COSINE_QWEIGHT)

    def find_fast(
        self,
        query_vec: QueryVector,
        df_threshold: int,
    ) -> Iterator[tuple[int, float]]:
        """
        Like `find`, but skips query n-grams with df >= `df_threshold`.

        Very common n-grams have long postings and low weight; skipping them
        trades a little recall for speed. Documents matching only skipped
        n-grams are not returned.
        """
        self._check_query(query_vec)
        return self._scores(query_vec, df_threshold, COSINE_QWEIGHT)

    def find_qweight(
        self,
        query_vec: QueryVector,
        w: float,
        df_threshold: Optional[int] = None,
    ) -> Iterator[tuple[int, float]]:
        """
        Similarity with a custom weighting of the vector lengths.

        Score = dot / (query_norm^(2w) * doc_norm^(2(1-w))):
            w = 1.0 -> only the query's length is used
            w = 0.5 -> both lengths weigh the same (same as `find`)
            w = 0.0 -> only the document's length is used
        """
        if not 0.0 <= w <= 1.0:
            raise ValueError(f"w must be in [0, 1], got {w}")
        self._check_query(query_vec)
        return self._scores(query_vec, df_threshold, w)

    def search(
        self,
        query: str,
        k: int = 10,
        df_threshold: Optional[int] = None,
        qweight: float = COSINE_QWEIGHT,
    ) -> Result[SearchResults, QueryError]:
        """
        Top-k search for a query string.

        Results are sorted by score descending, ties by ascending doc_id.
        """
        if k < 1:
            raise ValueError(f"k must be >= 1, got {k}")
        start_time = time.perf_counter_ns()

        vec = self.make_query_vec(query)
        if vec.is_err():
            return vec
        query_vec = vec.unwrap()

        scored = list(self.find_qweight(query_vec, qweight, df_threshold))
        top = heapq.nlargest(k, scored, key=lambda r: (r[1], -r[0]))

        elapsed_ms = (time.perf_counter_ns() - start_time) / 1_000_000
        return Ok(SearchResults(
            matches=[SearchResult(doc_id, score) for doc_id, score in top],
            total_candidates=len(scored),
            query_ngrams=query_vec.ngram_count,
            query_time_ms=elapsed_ms,
        ))

    def _check_query(self, query_vec: QueryVector) -> None:
        if query_vec.n != self._n:
            raise ValueError(
                f"Query vector built for n={query_vec.n}, index uses n={self._n}"
            )

    def _accumulate(
        self,
        query_vec: QueryVector,
        df_threshold: Optional[int],
    ) -> tuple[np.ndarray, np.ndarray]:
        """Gather (slot, contribution) pairs from the query n-grams' postings."""
        slot_parts: list[np.ndarray] = []
        contrib_parts: list[np.ndarray] = []

        for ngram, q_weight in zip(query_vec.ngrams, query_vec.weights):
            pos = self._vocab.get(ngram)
            if pos is None:
                continue
            pl = self._postings[pos]
            if df_threshold is not None and pl.df >= df_threshold:
                continue
            slot_parts.append(pl.slots)
            contrib_parts.append((q_weight * self._weights[pos]) * pl.tfs)

        if not slot_parts:
            return np.empty(0, dtype=SLOT_DTYPE), np.empty(0, dtype=WEIGHT_DTYPE)
        return np.concatenate(slot_parts), np.concatenate(contrib_parts)

    def _scores(
        self,
        query_vec: QueryVector,
        df_threshold: Optional[int],
        w: float,
    ) -> Iterator[tuple[int, float]]:
        slots, contributions = self._accumulate(query_vec, df_threshold)
        if slots.size == 0:
            return

        touched, inverse = np.unique(slots, return_inverse=True)
        dots = np.bincount(inverse.ravel(), weights=contributions)
        doc_norms = self._norms[touched]

        if w == COSINE_QWEIGHT:
            scores = np.minimum(dots / (query_vec.norm * doc_norms), 1.0)
        else:
            scores = dots / (
                query_vec.norm ** (2.0 * w) * doc_norms ** (2.0 * (1.0 - w))
            )

        for slot, score in zip(touched, scores):
            yield int(self._doc_ids[slot]), float(score)

    # -------------------------------------------------------------------------
    # Statistics
    # -------------------------------------------------------------------------
    def stats(self) -> IndexStats:
        total_postings = sum(pl.df for pl in self._postings)
        return IndexStats(
            n=self._n,
            num_documents=self.num_documents,
            vocabulary_size=self.vocabulary_size,
            total_postings=total_postings,
            avg_posting_length=total_postings / max(1, len(self._postings)),
            empty_documents=int(np.count_nonzero(self._doc_lengths == 0)),
        )


__all__ = [
    "COSINE_QWEIGHT",
    "NGramIndex",
]
