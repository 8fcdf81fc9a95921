"""
N-gram Index Builder

Mutable accumulation phase of the engine. Terms are inserted one by one;
`build()` freezes everything into an immutable NGramIndex.

Build runs three ordered passes:
    1. Vocabulary pass: freeze postings, df(g) = distinct documents per n-gram
    2. Weight pass:     weight(g) = ln(1 + N / df(g)) over the final df values
    3. Norm pass:       norm(d) = sqrt(sum_g (weight(g) * tf(g, d))^2)

Weights need every insert, norms need every weight, so nothing is computed
incrementally during `insert`. Insertion order and splitting of inserts
across the same id therefore never change scores.

Thread Safety:
    - Single writer. Concurrent `insert` calls need external synchronization.

Example:
    >>> builder = NGramIndexBuilder.new(3).unwrap()
    >>> builder.insert("school", 4)
    >>> index = builder.build()
"""

from __future__ import annotations

import logging
import time
from typing import Iterable, Optional, Sequence

import numpy as np

from ngram_search.core.config import IndexConfig
from ngram_search.core.errors import ConstructionError, Err, Ok, Result
from ngram_search.core.types import (
    DOC_ID_DTYPE,
    MAX_DOC_ID,
    SLOT_DTYPE,
    WEIGHT_DTYPE,
    PostingList,
)
from ngram_search.index.ngram_index import NGramIndex
from ngram_search.index.ngrams import count_ngrams

logger = logging.getLogger(__name__)


# =============================================================================
# WEIGHTS & NORMS
# =============================================================================
def idf_weights(dfs: np.ndarray, num_documents: int) -> np.ndarray:
    """
    Inverse document frequency weight per n-gram: ln(1 + N / df).

    Args:
        dfs: Document frequency per n-gram, all >= 1
        num_documents: Total distinct documents N

    Returns:
        float64 array aligned with `dfs`, strictly positive
    """
    dfs = np.asarray(dfs, dtype=WEIGHT_DTYPE)
    return np.log1p(num_documents / dfs)


def document_norms(
    postings: Sequence[PostingList],
    weights: np.ndarray,
    num_documents: int,
) -> np.ndarray:
    """
    L2 norm of every document's weighted n-gram vector.

    Documents without n-grams (empty terms) get norm 0.0.

    Complexity: O(total postings)
    """
    if not postings:
        return np.zeros(num_documents, dtype=WEIGHT_DTYPE)

    slots = np.concatenate([pl.slots for pl in postings])
    contributions = np.concatenate(
        [weight * pl.tfs for pl, weight in zip(postings, weights)]
    )
    squares = np.bincount(
        slots, weights=contributions * contributions, minlength=num_documents
    )
    return np.sqrt(squares)


# =============================================================================
# BUILDER
# =============================================================================
class NGramIndexBuilder:
    """
    Accumulates n-gram postings and per-document statistics.

    Architecture:
        - Postings store: n-gram -> {document slot -> tf}
        - Slot table: external id -> dense internal ordinal; build() renumbers
          slots by ascending id
        - Document lengths: total n-gram count per slot

    A builder is consumed by `build()`; any later call raises RuntimeError.
    """

    __slots__ = ("_config", "_postings", "_slots", "_doc_ids", "_doc_lengths", "_consumed")

    def __init__(self, config: Optional[IndexConfig] = None) -> None:
        """
        Initialize empty builder.

        Raises:
            ValueError: If the configuration is invalid. Use `new()` to get
                a ConstructionError value instead.
        """
        self._config = config or IndexConfig()
        reason = self._config.validate()
        if reason:
            raise ValueError(reason)

        self._postings: dict[str, dict[int, int]] = {}
        self._slots: dict[int, int] = {}
        self._doc_ids: list[int] = []
        self._doc_lengths: list[int] = []
        self._consumed = False

    @classmethod
    def new(cls, n: int) -> Result["NGramIndexBuilder", ConstructionError]:
        """Create a builder for n-grams of length `n`; Err if n is not positive."""
        config = IndexConfig(n=n)
        if config.validate():
            return Err(ConstructionError.invalid_n(n))
        return Ok(cls(config))

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------
    @property
    def n(self) -> int:
        return self._config.n

    @property
    def num_documents(self) -> int:
        """Distinct ids inserted so far."""
        return len(self._doc_ids)

    @property
    def vocabulary_size(self) -> int:
        return len(self._postings)

    @property
    def is_consumed(self) -> bool:
        return self._consumed

    # -------------------------------------------------------------------------
    # Insertion
    # -------------------------------------------------------------------------
    def insert(self, term: str, doc_id: int) -> None:
        """
        Add `term` to the document identified by `doc_id`.

        Inserting an id again merges the new n-grams into its document
        (counts add). An empty term creates or extends a document without
        n-grams; such a document can never be returned by a search.

        Raises:
            TypeError: If term is not a str or doc_id is not an integer
            ValueError: If doc_id is outside [0, 2**64)
            RuntimeError: If the builder was already consumed by build()
        """
        self._ensure_usable()
        if not isinstance(term, str):
            raise TypeError(f"term must be str, got {type(term).__name__}")

        slot = self._slot_for(doc_id)
        grams = count_ngrams(term, self._config.n)
        for gram, tf in grams.items():
            postings = self._postings.get(gram)
            if postings is None:
                postings = self._postings[gram] = {}
            postings[slot] = postings.get(slot, 0) + tf
        self._doc_lengths[slot] += sum(grams.values())

    def insert_batch(self, items: Iterable[tuple[str, int]]) -> int:
        """
        Insert (term, doc_id) pairs.

        Returns:
            Number of pairs inserted
        """
        count = 0
        for term, doc_id in items:
            self.insert(term, doc_id)
            count += 1
        return count

    def _slot_for(self, doc_id: int) -> int:
        if isinstance(doc_id, bool) or not isinstance(doc_id, (int, np.integer)):
            raise TypeError(f"doc_id must be an integer, got {type(doc_id).__name__}")
        doc_id = int(doc_id)
        if not 0 <= doc_id <= MAX_DOC_ID:
            raise ValueError(f"doc_id must be in [0, {MAX_DOC_ID}], got {doc_id}")

        slot = self._slots.get(doc_id)
        if slot is None:
            slot = self._slots[doc_id] = len(self._doc_ids)
            self._doc_ids.append(doc_id)
            self._doc_lengths.append(0)
        return slot

    def _ensure_usable(self) -> None:
        if self._consumed:
            raise RuntimeError("NGramIndexBuilder was consumed by build()")

    # -------------------------------------------------------------------------
    # Build
    # -------------------------------------------------------------------------
    def build(self) -> NGramIndex:
        """
        Freeze the accumulated data into an immutable NGramIndex.

        The builder is consumed and releases its tables.
        """
        self._ensure_usable()
        self._consumed = True
        start = time.perf_counter()
        num_documents = len(self._doc_ids)

        # Canonical layout: documents by ascending id, n-grams sorted, so the
        # norm pass sums in an order that depends only on content
        order = sorted(range(num_documents), key=self._doc_ids.__getitem__)
        remap = {old: new for new, old in enumerate(order)}

        # 1. Vocabulary pass
        postings = [
            PostingList.build(gram, {remap[slot]: tf for slot, tf in slot_tfs.items()})
            for gram, slot_tfs in sorted(self._postings.items())
        ]
        dfs = np.fromiter((pl.df for pl in postings), dtype=SLOT_DTYPE, count=len(postings))

        # 2. Weight pass
        weights = idf_weights(dfs, num_documents)

        # 3. Norm pass
        norms = document_norms(postings, weights, num_documents)

        index = NGramIndex(
            n=self._config.n,
            postings=postings,
            weights=weights,
            doc_ids=np.array([self._doc_ids[old] for old in order], dtype=DOC_ID_DTYPE),
            doc_lengths=np.array([self._doc_lengths[old] for old in order], dtype=SLOT_DTYPE),
            norms=norms,
        )

        self._postings = {}
        self._slots = {}
        self._doc_ids = []
        self._doc_lengths = []

        logger.debug(
            "Built n-gram index: n=%d, documents=%d, vocabulary=%d in %.2fms",
            index.n,
            index.num_documents,
            index.vocabulary_size,
            (time.perf_counter() - start) * 1000,
        )
        return index


__all__ = [
    "idf_weights",
    "document_norms",
    "NGramIndexBuilder",
]
