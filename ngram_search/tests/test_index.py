"""
Unit Tests: NGramIndex

Tests:
    - Query vector construction and rejection of empty / unknown queries
    - Cosine scoring, ranking and exclusion of non-overlapping documents
    - Determinism, merge invariance and self-similarity
    - find_fast, find_qweight and top-k search
    - Immutability and concurrent reads
"""

import math
import random
from concurrent.futures import ThreadPoolExecutor

import numpy as np
import pytest

from ngram_search.core.errors import ErrorCode, QueryError
from ngram_search.core.types import QueryVector, SearchResults
from ngram_search.index.builder import NGramIndexBuilder
from ngram_search.index.ngrams import count_ngrams


def ranked(index, query):
    vec = index.make_query_vec(query).unwrap()
    return sorted(index.find(vec), key=lambda r: (-r[1], r[0]))


# =============================================================================
# QUERY VECTOR TESTS
# =============================================================================
class TestMakeQueryVec:
    """Tests for make_query_vec."""

    def test_known_ngrams_are_weighted(self, index):
        vec = index.make_query_vec("shol").unwrap()

        assert isinstance(vec, QueryVector)
        assert vec.n == 3
        assert vec.ngram_count == 6
        # "§sh", "sho", "hol" are not indexed
        assert set(vec.ngrams) == {"§§s", "ol§", "l§§"}
        assert vec.to_dict()["ol§"] == pytest.approx(math.log(1 + 8 / 4))

    def test_query_tf_scales_weight(self, make_index):
        index = make_index(["aaaa", "b"], n=2)
        vec = index.make_query_vec("aaa").unwrap()
        assert vec.to_dict()["aa"] == pytest.approx(2 * index.weight("aa"))

    def test_norm(self, index):
        vec = index.make_query_vec("school").unwrap()
        assert vec.norm == pytest.approx(math.sqrt(sum(w * w for _, w in vec)))

    def test_empty_query_rejected(self, index):
        result = index.make_query_vec("")

        assert result.is_err()
        assert isinstance(result.error, QueryError)
        assert result.error.code == ErrorCode.QUERY_EMPTY_NGRAM_SET
        assert result.value is None

    def test_unknown_ngrams_rejected(self, index):
        result = index.make_query_vec("xyz")

        assert result.is_err()
        assert result.error.code == ErrorCode.QUERY_ZERO_NORM
        assert result.error.details["ngram_count"] == 5

    def test_empty_index_rejects_queries(self):
        index = NGramIndexBuilder.new(3).unwrap().build()
        assert index.make_query_vec("abc").error.code == ErrorCode.QUERY_ZERO_NORM


# =============================================================================
# SCORING TESTS
# =============================================================================
class TestFind:
    """Tests for cosine scoring via find()."""

    def test_reference_ranking(self, index):
        results = ranked(index, "shol")
        order = [doc_id for doc_id, _ in results]

        assert order[:5] == [4, 3, 5, 6, 1]
        scores = dict(results)
        for doc_id in (0, 2, 7):
            assert doc_id not in scores or scores[doc_id] < scores[1]

    def test_scores_are_cosine_bounded(self, index, terms):
        for term in terms:
            for _, score in ranked(index, term):
                assert 0.0 < score <= 1.0

    def test_score_matches_cosine_definition(self, index):
        vec = index.make_query_vec("shol").unwrap()
        scores = dict(index.find(vec))

        doc = count_ngrams("school", 3)
        dot = sum(w * index.weight(g) * doc.get(g, 0) for g, w in vec)
        expected = dot / (vec.norm * index.norm(4))
        assert scores[4] == pytest.approx(expected)

    def test_lazy_and_repeatable(self, index):
        vec = index.make_query_vec("school").unwrap()
        results = index.find(vec)

        assert iter(results) is results
        first = list(results)
        assert list(results) == []
        assert list(index.find(vec)) == first

    def test_no_duplicate_ids(self, index, terms):
        for term in terms:
            ids = [doc_id for doc_id, _ in ranked(index, term)]
            assert len(ids) == len(set(ids))

    def test_no_overlap_exclusion(self, index, terms):
        grams = {pos: set(count_ngrams(t, 3)) for pos, t in enumerate(terms)}
        for query in ["shol", "music", "kinder", "skip"]:
            query_grams = set(count_ngrams(query, 3))
            found = {doc_id for doc_id, _ in ranked(index, query)}
            for doc_id, doc_grams in grams.items():
                assert (doc_id in found) == bool(doc_grams & query_grams)

    def test_self_similarity_is_maximal(self, index, terms):
        for pos, term in enumerate(terms):
            scores = dict(ranked(index, term))
            assert scores[pos] == pytest.approx(1.0)
            assert scores[pos] >= max(scores.values())

    def test_empty_term_document_never_found(self, make_index):
        index = make_index(["", "school", "schol"])
        for query in ["school", "s", "chool"]:
            found = {doc_id for doc_id, _ in ranked(index, query)}
            assert 0 not in found

    def test_deterministic_across_builds(self, make_index, terms):
        first = make_index(terms)
        second = make_index(terms)
        for query in ["shol", "kind", "muzik"]:
            assert set(ranked(first, query)) == set(ranked(second, query))

    def test_rejects_vector_from_other_n(self, make_index, terms):
        bigrams = make_index(terms, n=2)
        trigrams = make_index(terms, n=3)
        vec = bigrams.make_query_vec("school").unwrap()
        with pytest.raises(ValueError):
            trigrams.find(vec)


class TestMergeInvariant:
    """Splitting or reordering inserts to one id never changes scores."""

    def _build(self, inserts):
        builder = NGramIndexBuilder.new(2).unwrap()
        for term, doc_id in inserts:
            builder.insert(term, doc_id)
        return builder.build()

    def test_insert_order_does_not_matter(self):
        a = self._build([("ab", 1), ("cd", 1), ("abd", 2), ("ce", 3)])
        b = self._build([("ce", 3), ("cd", 1), ("abd", 2), ("ab", 1)])

        for query in ["ab", "cd", "abcd", "ce"]:
            scores_a = dict(a.find(a.make_query_vec(query).unwrap()))
            scores_b = dict(b.find(b.make_query_vec(query).unwrap()))
            assert scores_a == scores_b

    def test_shuffled_inserts_score_identically(self, terms):
        inserts = [(term, pos) for pos, term in enumerate(terms)]
        inserts += [("school bus", 4), ("kinder", 7), ("", 9)]
        reference = self._build(inserts)

        for seed in range(20):
            shuffled = list(inserts)
            random.Random(seed).shuffle(shuffled)
            index = self._build(shuffled)
            for query in ["shol", "kind", "muzik", "to skip"]:
                expected = dict(reference.find(reference.make_query_vec(query).unwrap()))
                assert dict(index.find(index.make_query_vec(query).unwrap())) == expected
            np.testing.assert_array_equal(index.norms, reference.norms)

    def test_layout_is_canonical(self):
        index = self._build([("zz", 30), ("ab", 10), ("ba", 20)])

        assert index.doc_ids.tolist() == [10, 20, 30]
        grams = [pl.ngram for pl in index.postings]
        assert grams == sorted(grams)

    def test_merged_vector_is_union_of_multisets(self):
        index = self._build([("ab", 1), ("cd", 1), ("abd", 2)])
        union = count_ngrams("ab", 2) + count_ngrams("cd", 2)

        expected = math.sqrt(sum((index.weight(g) * tf) ** 2 for g, tf in union.items()))
        assert index.norm(1) == pytest.approx(expected)
        assert index.document_length(1) == sum(union.values())


# =============================================================================
# VARIANT SEARCH TESTS
# =============================================================================
class TestFindVariants:
    """Tests for find_fast, find_qweight and search."""

    def test_find_fast_skips_common_ngrams(self, index):
        vec = index.make_query_vec("shol").unwrap()
        fast = dict(index.find_fast(vec, df_threshold=2))

        # only "§§s" (df 1) survives the threshold
        assert list(fast) == [4]

    def test_find_fast_high_threshold_equals_find(self, index):
        vec = index.make_query_vec("shol").unwrap()
        assert dict(index.find_fast(vec, df_threshold=100)) == dict(index.find(vec))

    def test_qweight_half_equals_find(self, index):
        vec = index.make_query_vec("shol").unwrap()
        assert dict(index.find_qweight(vec, 0.5)) == dict(index.find(vec))

    def test_qweight_extremes(self, index):
        vec = index.make_query_vec("shol").unwrap()
        cosine = dict(index.find(vec))
        query_only = dict(index.find_qweight(vec, 1.0))
        doc_only = dict(index.find_qweight(vec, 0.0))

        for doc_id, score in cosine.items():
            dot = score * vec.norm * index.norm(doc_id)
            assert query_only[doc_id] == pytest.approx(dot / vec.norm ** 2)
            assert doc_only[doc_id] == pytest.approx(dot / index.norm(doc_id) ** 2)

    def test_qweight_out_of_range(self, index):
        vec = index.make_query_vec("shol").unwrap()
        with pytest.raises(ValueError):
            index.find_qweight(vec, 1.5)

    def test_search_top_k(self, index):
        results = index.search("shol", k=3).unwrap()

        assert isinstance(results, SearchResults)
        assert [m.doc_id for m in results] == [4, 3, 5]
        assert results.total_candidates == 5
        assert results.query_ngrams == 6
        assert results.top.doc_id == 4

    def test_search_ties_break_by_id(self, make_index):
        index = make_index(["abc", "abc", "abd"])
        results = index.search("abc", k=2).unwrap()
        assert [m.doc_id for m in results] == [0, 1]

    def test_search_propagates_query_error(self, index):
        result = index.search("")
        assert result.is_err()
        assert result.error.code == ErrorCode.QUERY_EMPTY_NGRAM_SET

    def test_search_invalid_k(self, index):
        with pytest.raises(ValueError):
            index.search("shol", k=0)


# =============================================================================
# INDEX STRUCTURE TESTS
# =============================================================================
class TestIndexStructure:
    """Tests for lookups, stats and immutability."""

    def test_lookups(self, index):
        assert len(index) == 8
        assert not index.is_empty
        assert 4 in index
        assert 99 not in index
        assert index.df("l§§") == 5
        assert index.weight("zzz") == 0.0
        assert index.df("zzz") == 0
        assert index.posting_list("zzz") is None
        assert index.norm(99) is None
        assert index.document_length(6) == 16

    def test_stats(self, index):
        stats = index.stats()
        assert stats.n == 3
        assert stats.num_documents == 8
        assert stats.vocabulary_size == index.vocabulary_size
        assert stats.total_postings == sum(pl.df for pl in index.postings)
        assert stats.empty_documents == 0

    def test_arrays_are_read_only(self, index):
        with pytest.raises(ValueError):
            index.norms[0] = 0.0
        with pytest.raises(ValueError):
            index.postings[0].tfs[0] = 9

    def test_concurrent_reads(self, index, terms):
        expected = {term: ranked(index, term) for term in terms}

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(lambda t: (t, ranked(index, t)), terms * 20))

        for term, result in results:
            assert result == expected[term]
