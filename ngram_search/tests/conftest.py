"""Shared fixtures: the reference vocabulary and indexes built from it."""

import pytest

from ngram_search.index.builder import NGramIndexBuilder

TERMS = [
    "music",
    "muskel",
    "kindergarten",
    "preschool",
    "school",
    "highschool",
    "to skip school",
    "kind",
]


def build_index(terms, n=3):
    builder = NGramIndexBuilder.new(n).unwrap()
    for pos, term in enumerate(terms):
        builder.insert(term, pos)
    return builder.build()


@pytest.fixture
def terms():
    return list(TERMS)


@pytest.fixture
def index(terms):
    return build_index(terms)


@pytest.fixture
def make_index():
    """Factory fixture: make_index(terms, n=3) -> NGramIndex with ids = positions."""
    return build_index
