"""
NGramSearch: In-Memory Fuzzy Term Search

Indexes short strings by their character n-grams and ranks indexed terms
against a query by the cosine similarity of IDF-weighted n-gram vectors.
Typo-tolerant lookup over a closed, rebuildable vocabulary (autocomplete,
spell-correction candidates, record linkage) without a database.

Usage:
    from ngram_search import NGramIndexBuilder, serialize, deserialize

    builder = NGramIndexBuilder.new(3).unwrap()
    for pos, term in enumerate(["music", "school", "preschool"]):
        builder.insert(term, pos)
    index = builder.build()

    query = index.make_query_vec("shol").unwrap()
    ranked = sorted(index.find(query), key=lambda r: r[1], reverse=True)

    restored = deserialize(serialize(index)).unwrap()
"""

from __future__ import annotations

__version__ = "0.1.0"

from ngram_search.core.types import (
    PostingList,
    QueryVector,
    SearchResult,
    SearchResults,
    IndexStats,
)
from ngram_search.core.errors import (
    Result,
    Ok,
    Err,
    ErrorCode,
    NGramSearchError,
    ConstructionError,
    QueryError,
    FormatError,
)
from ngram_search.core.config import IndexConfig, SearchConfig
from ngram_search.index.ngrams import extract_ngrams
from ngram_search.index.builder import NGramIndexBuilder
from ngram_search.index.ngram_index import NGramIndex
from ngram_search.index.codec import serialize, deserialize


__all__ = [
    # Version
    "__version__",
    # Core types
    "PostingList",
    "QueryVector",
    "SearchResult",
    "SearchResults",
    "IndexStats",
    "IndexConfig",
    "SearchConfig",
    # Error handling
    "Result",
    "Ok",
    "Err",
    "ErrorCode",
    "NGramSearchError",
    "ConstructionError",
    "QueryError",
    "FormatError",
    # Engine
    "extract_ngrams",
    "NGramIndexBuilder",
    "NGramIndex",
    "serialize",
    "deserialize",
]
