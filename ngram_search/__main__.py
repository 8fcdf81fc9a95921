"""
NGramSearch CLI Entrypoint

Commands:
    ngram-search build   Index a file of terms (one per line, id = line number)
    ngram-search query   Rank indexed terms against a query string
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Optional, Sequence

from ngram_search.core.config import IndexConfig, LoggingConfig, SearchConfig
from ngram_search.index.builder import NGramIndexBuilder
from ngram_search.index.codec import load, save
from ngram_search.observability.logging import LogLevel, StructuredLogger, setup_logging

logger = StructuredLogger("ngram_search.cli")


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main CLI entrypoint. Returns the process exit code."""
    index_env = IndexConfig.from_env()
    search_env = SearchConfig.from_env()
    for env in (index_env, search_env):
        if env.is_err():
            print(f"error: {env.error}", file=sys.stderr)
            return 2

    parser = _build_parser(index_env.unwrap(), search_env.unwrap())
    args = parser.parse_args(argv)

    log_config = LoggingConfig.from_env()
    try:
        level = LogLevel.DEBUG if args.verbose else LogLevel.parse(log_config.level)
    except ValueError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2
    setup_logging(level=level, json_output=log_config.json_output)

    if args.command == "build":
        return _run_build(args)
    if args.command == "query":
        return _run_query(args)
    parser.print_help()
    return 0


def _build_parser(
    index_defaults: IndexConfig,
    search_defaults: SearchConfig,
) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ngram-search",
        description="In-memory fuzzy term search over character n-grams",
    )
    parser.add_argument(
        "--version", "-V",
        action="version",
        version=f"%(prog)s {_get_version()}",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    build_parser = subparsers.add_parser("build", help="Build an index from a terms file")
    build_parser.add_argument(
        "--terms", "-t",
        type=Path,
        required=True,
        help="UTF-8 text file, one term per line",
    )
    build_parser.add_argument(
        "--out", "-o",
        type=Path,
        required=True,
        help="Output index file",
    )
    build_parser.add_argument(
        "--n",
        type=int,
        default=index_defaults.n,
        help=f"N-gram length (default: {index_defaults.n})",
    )

    query_parser = subparsers.add_parser("query", help="Search an index file")
    query_parser.add_argument("query", help="Query string")
    query_parser.add_argument(
        "--index", "-i",
        type=Path,
        required=True,
        help="Index file written by 'build'",
    )
    query_parser.add_argument(
        "--k", "-k",
        type=int,
        default=search_defaults.k,
        help=f"Number of results (default: {search_defaults.k})",
    )
    query_parser.add_argument(
        "--df-threshold",
        type=int,
        default=search_defaults.df_threshold,
        help="Ignore query n-grams with at least this document frequency",
    )
    query_parser.add_argument(
        "--qweight",
        type=float,
        default=search_defaults.qweight,
        help="Query/document length weighting in [0, 1] (default: 0.5, cosine)",
    )
    return parser


def _get_version() -> str:
    from ngram_search import __version__
    return __version__


def _run_build(args: argparse.Namespace) -> int:
    """Index every line of the terms file, using the line number as id."""
    created = NGramIndexBuilder.new(args.n)
    if created.is_err():
        print(f"error: {created.error}", file=sys.stderr)
        return 2
    builder = created.unwrap()

    with open(args.terms, encoding="utf-8") as f:
        count = builder.insert_batch(
            (line.rstrip("\r\n"), line_no) for line_no, line in enumerate(f)
        )

    index = builder.build()
    size = save(index, args.out)
    logger.info("Index written", path=str(args.out), terms=count, bytes=size)
    print(f"Indexed {count} terms ({index.vocabulary_size} n-grams) -> {args.out}")
    return 0


def _run_query(args: argparse.Namespace) -> int:
    """Print the top-k matches as '<id>\\t<score>' lines."""
    config = SearchConfig(k=args.k, df_threshold=args.df_threshold, qweight=args.qweight)
    reason = config.validate()
    if reason:
        print(f"error: {reason}", file=sys.stderr)
        return 2

    loaded = load(args.index)
    if loaded.is_err():
        print(f"error: {loaded.error}", file=sys.stderr)
        return 1
    index = loaded.unwrap()

    with logger.context(index_path=str(args.index)):
        found = index.search(
            args.query,
            k=config.k,
            df_threshold=config.df_threshold,
            qweight=config.qweight,
        )
        if found.is_err():
            print(f"error: {found.error}", file=sys.stderr)
            return 1
        results = found.unwrap()
        logger.debug(
            "Query answered",
            candidates=results.total_candidates,
            elapsed_ms=results.query_time_ms,
        )

    for match in results:
        print(f"{match.doc_id}\t{match.score:.6f}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
