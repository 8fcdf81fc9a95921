"""
Core Module: Types, Errors, and Configuration

Self-contained module with zero external dependencies beyond numpy.
Provides the foundational abstractions for the n-gram search engine.
"""

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
    ConfigError,
)
from ngram_search.core.config import (
    IndexConfig,
    SearchConfig,
    LoggingConfig,
)

__all__ = [
    # Types
    "PostingList",
    "QueryVector",
    "SearchResult",
    "SearchResults",
    "IndexStats",
    # Errors
    "Result",
    "Ok",
    "Err",
    "ErrorCode",
    "NGramSearchError",
    "ConstructionError",
    "QueryError",
    "FormatError",
    "ConfigError",
    # Config
    "IndexConfig",
    "SearchConfig",
    "LoggingConfig",
]
