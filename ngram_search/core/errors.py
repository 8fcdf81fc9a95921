"""
Result Monad & Error Types: Explicit Failure Values

Implements a Rust-inspired Result[T, E] monad for deterministic error handling.
Fallible engine operations (builder construction, query vector creation,
index deserialization) return Result values instead of raising exceptions.

Design Principles:
    - Exhaustive Error Handling: every failure carries an ErrorCode
    - Type Safety: static type checking for error propagation
    - Composability: monadic bind (flat_map) for chaining fallible operations

Exceptions are reserved for programming errors: unwrapping an Err,
reusing a consumed builder, passing a malformed document id.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import (
    Any,
    Callable,
    Generic,
    Literal,
    NoReturn,
    Optional,
    TypeVar,
    Union,
    final,
)


# =============================================================================
# TYPE VARIABLES
# =============================================================================
T = TypeVar("T")  # Success value type
E = TypeVar("E")  # Error type
U = TypeVar("U")  # Transform result type


# =============================================================================
# RESULT MONAD: SUCCESS VARIANT
# =============================================================================
@final
@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    """
    Success variant of Result monad.

    Immutable container for successful computation results.

    Example:
        result = NGramIndexBuilder.new(3)
        if result.is_ok():
            builder = result.unwrap()
    """
    _value: T

    def is_ok(self) -> Literal[True]:
        return True

    def is_err(self) -> Literal[False]:
        return False

    def unwrap(self) -> T:
        """Extract value. Safe to call after is_ok() check."""
        return self._value

    def unwrap_or(self, default: T) -> T:
        return self._value

    def unwrap_or_else(self, f: Callable[[], T]) -> T:
        return self._value

    def expect(self, msg: str) -> T:
        """Unwrap with custom panic message (never panics for Ok)."""
        return self._value

    def map(self, fn: Callable[[T], U]) -> "Ok[U]":
        """
        Apply transformation to success value.

        Example:
            Ok(5).map(lambda x: x * 2)  # Ok(10)
        """
        return Ok(fn(self._value))

    def map_err(self, fn: Callable[[Any], Any]) -> "Ok[T]":
        """No-op on success variant - returns self unchanged."""
        return self

    def flat_map(self, fn: Callable[[T], "Result[U, Any]"]) -> "Result[U, Any]":
        """
        Monadic bind for chaining fallible operations.

        Example:
            deserialize(data).flat_map(lambda idx: idx.make_query_vec("shol"))
        """
        return fn(self._value)

    def and_then(self, fn: Callable[[T], "Result[U, Any]"]) -> "Result[U, Any]":
        """Alias for flat_map - Rust naming convention."""
        return fn(self._value)

    @property
    def value(self) -> T:
        return self._value

    @property
    def error(self) -> None:
        return None

    def __repr__(self) -> str:
        return f"Ok({self._value!r})"

    def __bool__(self) -> Literal[True]:
        return True


# =============================================================================
# RESULT MONAD: ERROR VARIANT
# =============================================================================
@final
@dataclass(frozen=True, slots=True)
class Err(Generic[E]):
    """
    Error variant of Result monad.

    Carries full error context for exhaustive handling.

    Example:
        result = index.make_query_vec("")
        if result.is_err():
            print(f"Error: {result.error}")
    """
    _error: E

    def is_ok(self) -> Literal[False]:
        return False

    def is_err(self) -> Literal[True]:
        return True

    def unwrap(self) -> NoReturn:
        """
        Attempting to unwrap an error is a programming error.

        Raises:
            RuntimeError: Always, with error context
        """
        raise RuntimeError(f"Called unwrap() on Err: {self._error}")

    def unwrap_or(self, default: T) -> T:
        return default

    def unwrap_or_else(self, f: Callable[[], T]) -> T:
        return f()

    def expect(self, msg: str) -> NoReturn:
        raise RuntimeError(f"{msg}: {self._error}")

    def map(self, fn: Callable[[Any], U]) -> "Err[E]":
        """No-op on error variant - propagates error unchanged."""
        return self

    def map_err(self, fn: Callable[[E], U]) -> "Err[U]":
        return Err(fn(self._error))

    def flat_map(self, fn: Callable[[Any], "Result[U, E]"]) -> "Err[E]":
        return self

    def and_then(self, fn: Callable[[Any], "Result[U, E]"]) -> "Err[E]":
        return self

    @property
    def value(self) -> None:
        return None

    @property
    def error(self) -> E:
        return self._error

    def __repr__(self) -> str:
        return f"Err({self._error!r})"

    def __bool__(self) -> Literal[False]:
        return False


# Union type for pattern matching
Result = Union[Ok[T], Err[E]]


# =============================================================================
# ERROR TAXONOMY: STRUCTURED ERROR HIERARCHY
# =============================================================================
class ErrorCode(Enum):
    """
    Canonical error codes.

    Ranges:
        1000-1999: Construction errors
        2000-2999: Query errors
        3000-3999: Format (codec) errors
        5000-5999: Configuration errors
    """
    # Construction errors (1000-1999)
    CONSTRUCTION_INVALID_N = 1001

    # Query errors (2000-2999)
    QUERY_EMPTY_NGRAM_SET = 2001
    QUERY_ZERO_NORM = 2002

    # Format errors (3000-3999)
    FORMAT_UNSUPPORTED_VERSION = 3001
    FORMAT_TRUNCATED = 3002
    FORMAT_INCONSISTENT = 3003

    # Configuration errors (5000-5999)
    CONFIG_INVALID = 5001


@dataclass(frozen=True, slots=True)
class NGramSearchError:
    """
    Base error type for all engine operations.

    Structured error with:
        - Unique error code for categorization
        - Human-readable message
        - Machine-readable details
        - Optional cause chain
        - Timestamp for debugging
    """
    code: ErrorCode
    message: str
    details: dict[str, Any] = field(default_factory=dict)
    cause: Optional["NGramSearchError"] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __str__(self) -> str:
        return f"[{self.code.name}] {self.message}"

    def to_dict(self) -> dict[str, Any]:
        """Serialize for logging."""
        return {
            "code": self.code.value,
            "code_name": self.code.name,
            "message": self.message,
            "details": self.details,
            "cause": self.cause.to_dict() if self.cause else None,
            "timestamp": self.timestamp.isoformat(),
        }

    def with_cause(self, cause: "NGramSearchError") -> "NGramSearchError":
        """Chain errors for root cause analysis."""
        return type(self)(
            code=self.code,
            message=self.message,
            details=self.details,
            cause=cause,
            timestamp=self.timestamp,
        )


# =============================================================================
# SPECIALIZED ERROR TYPES (Convenience constructors)
# =============================================================================
class ConstructionError(NGramSearchError):
    """Error creating a builder."""

    @classmethod
    def invalid_n(cls, n: Any) -> "ConstructionError":
        return cls(
            code=ErrorCode.CONSTRUCTION_INVALID_N,
            message=f"n-gram length must be a positive integer, got {n!r}",
            details={"n": n},
        )


class QueryError(NGramSearchError):
    """Error turning a query string into a query vector."""

    @classmethod
    def empty_ngram_set(cls, query: str) -> "QueryError":
        return cls(
            code=ErrorCode.QUERY_EMPTY_NGRAM_SET,
            message="Query produces no n-grams",
            details={"query": query},
        )

    @classmethod
    def zero_norm(cls, query: str, ngram_count: int) -> "QueryError":
        return cls(
            code=ErrorCode.QUERY_ZERO_NORM,
            message=f"None of the {ngram_count} query n-grams are indexed",
            details={"query": query, "ngram_count": ngram_count},
        )


class FormatError(NGramSearchError):
    """Error decoding a serialized index."""

    @classmethod
    def unsupported_version(cls, version: Any) -> "FormatError":
        return cls(
            code=ErrorCode.FORMAT_UNSUPPORTED_VERSION,
            message=f"Unsupported index format version: {version!r}",
            details={"version": version},
        )

    @classmethod
    def truncated(cls, offset: int, needed: int, available: int) -> "FormatError":
        return cls(
            code=ErrorCode.FORMAT_TRUNCATED,
            message=(
                f"Truncated input at offset {offset}: "
                f"needed {needed} bytes, {available} available"
            ),
            details={"offset": offset, "needed": needed, "available": available},
        )

    @classmethod
    def inconsistent(cls, reason: str, **details: Any) -> "FormatError":
        return cls(
            code=ErrorCode.FORMAT_INCONSISTENT,
            message=f"Inconsistent index data: {reason}",
            details={"reason": reason, **details},
        )


class ConfigError(NGramSearchError):
    """Error in configuration."""

    @classmethod
    def invalid(cls, param: str, value: Any, reason: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_INVALID,
            message=f"Invalid config '{param}': {reason}",
            details={"param": param, "value": value, "reason": reason},
        )


# =============================================================================
# EXPORTS
# =============================================================================
__all__ = [
    "Ok",
    "Err",
    "Result",
    "ErrorCode",
    "NGramSearchError",
    "ConstructionError",
    "QueryError",
    "FormatError",
    "ConfigError",
]
