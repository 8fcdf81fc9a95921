"""
Configuration Classes: Type-Safe Index, Search and Logging Configuration

Provides structured configuration with validation for:
    - Index construction parameters (n-gram length)
    - Query-time scoring options
    - Logging output
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Optional

from ngram_search.core.errors import ConfigError, Err, Ok, Result


# =============================================================================
# DEFAULTS
# =============================================================================
DEFAULT_NGRAM_LENGTH: int = 3
DEFAULT_TOP_K: int = 10
ENV_PREFIX: str = "NGRAM_SEARCH_"


def _env(name: str, default: str) -> str:
    return os.getenv(f"{ENV_PREFIX}{name}", default)


def _parse_int(param: str, raw: str) -> Result[int, ConfigError]:
    try:
        return Ok(int(raw))
    except ValueError:
        return Err(ConfigError.invalid(param, raw, "not an integer"))


def _parse_float(param: str, raw: str) -> Result[float, ConfigError]:
    try:
        return Ok(float(raw))
    except ValueError:
        return Err(ConfigError.invalid(param, raw, "not a number"))


# =============================================================================
# INDEX CONFIGURATION
# =============================================================================
@dataclass(frozen=True, slots=True)
class IndexConfig:
    """
    Index construction configuration.

    Parameters:
        n: Characters per n-gram (3 = trigrams, good for typo tolerance)
    """
    n: int = DEFAULT_NGRAM_LENGTH

    def validate(self) -> Optional[str]:
        if isinstance(self.n, bool) or not isinstance(self.n, int) or self.n < 1:
            return f"n must be a positive integer, got {self.n!r}"
        return None

    @classmethod
    def from_env(cls) -> Result["IndexConfig", ConfigError]:
        parsed = _parse_int("n", _env("N", str(DEFAULT_NGRAM_LENGTH)))
        if parsed.is_err():
            return parsed
        config = cls(n=parsed.unwrap())
        reason = config.validate()
        if reason:
            return Err(ConfigError.invalid("n", config.n, reason))
        return Ok(config)


# =============================================================================
# SEARCH CONFIGURATION
# =============================================================================
@dataclass(frozen=True, slots=True)
class SearchConfig:
    """
    Query-time options.

    Parameters:
        k: Results returned by top-k search
        df_threshold: Skip query n-grams at or above this document frequency
        qweight: Query/document length weighting (0.5 = plain cosine)
    """
    k: int = DEFAULT_TOP_K
    df_threshold: Optional[int] = None
    qweight: float = 0.5

    def validate(self) -> Optional[str]:
        violation = self.violation()
        return violation[2] if violation else None

    def violation(self) -> Optional[tuple[str, Any, str]]:
        """First invalid field as (param, value, reason), or None."""
        if self.k < 1:
            return "k", self.k, f"k must be >= 1, got {self.k}"
        if self.df_threshold is not None and self.df_threshold < 1:
            return (
                "df_threshold",
                self.df_threshold,
                f"df_threshold must be >= 1, got {self.df_threshold}",
            )
        if not 0.0 <= self.qweight <= 1.0:
            return "qweight", self.qweight, f"qweight must be in [0, 1], got {self.qweight}"
        return None

    @classmethod
    def from_env(cls) -> Result["SearchConfig", ConfigError]:
        k = _parse_int("k", _env("K", str(DEFAULT_TOP_K)))
        if k.is_err():
            return k
        qweight = _parse_float("qweight", _env("QWEIGHT", "0.5"))
        if qweight.is_err():
            return qweight
        df_threshold: Optional[int] = None
        raw_threshold = _env("DF_THRESHOLD", "")
        if raw_threshold:
            parsed = _parse_int("df_threshold", raw_threshold)
            if parsed.is_err():
                return parsed
            df_threshold = parsed.unwrap()

        config = cls(k=k.unwrap(), df_threshold=df_threshold, qweight=qweight.unwrap())
        violation = config.violation()
        if violation:
            return Err(ConfigError.invalid(*violation))
        return Ok(config)


# =============================================================================
# LOGGING CONFIGURATION
# =============================================================================
@dataclass(frozen=True, slots=True)
class LoggingConfig:
    """Logging output configuration."""
    level: str = "WARNING"
    json_output: bool = False

    @classmethod
    def from_env(cls) -> "LoggingConfig":
        return cls(
            level=_env("LOG_LEVEL", "WARNING").upper(),
            json_output=_env("LOG_JSON", "0").lower() in ("1", "true", "yes"),
        )


__all__ = [
    "DEFAULT_NGRAM_LENGTH",
    "DEFAULT_TOP_K",
    "IndexConfig",
    "SearchConfig",
    "LoggingConfig",
]
