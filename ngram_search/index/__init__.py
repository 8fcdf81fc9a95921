"""
Index Module: N-gram Indexing, Scoring and Persistence

Provides:
    - N-gram extraction with boundary padding
    - NGramIndexBuilder: mutable accumulation phase
    - NGramIndex: immutable index with cosine similarity search
    - Codec: versioned binary (de)serialization
"""

from ngram_search.index.ngrams import (
    PAD_CHAR,
    extract_ngrams,
    count_ngrams,
    padded,
)
from ngram_search.index.ngram_index import NGramIndex
from ngram_search.index.builder import NGramIndexBuilder, idf_weights, document_norms
from ngram_search.index.codec import serialize, deserialize, save, load

__all__ = [
    # Extraction
    "PAD_CHAR",
    "extract_ngrams",
    "count_ngrams",
    "padded",
    # Build & query
    "NGramIndexBuilder",
    "NGramIndex",
    "idf_weights",
    "document_norms",
    # Codec
    "serialize",
    "deserialize",
    "save",
    "load",
]
