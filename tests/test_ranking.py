"""Tests for corpus ranking."""

import numpy as np
import pytest

from visual_match.descriptors import as_flat_vector
from visual_match.metrics import CosineDistance, SumSquaredDistance
from visual_match.ranking import (
    CorpusEntry, RankedResult, Ranking, partition, rank,
)


def entries(**vectors):
    return [CorpusEntry(name, as_flat_vector(v)) for name, v in vectors.items()]


class TestRank:
    """Tests for rank()."""

    def test_nearest_first(self):
        corpus = entries(a=[0, 0], b=[1, 0], c=[0, 1])
        ranking = rank(as_flat_vector([1, 0]), corpus, SumSquaredDistance(), k=2)

        assert ranking.top == [RankedResult("b", 0.0), RankedResult("a", 1.0)]
        assert [r.distance for r in ranking.results] == [0.0, 1.0, 2.0]

    def test_ties_keep_corpus_order(self):
        corpus = entries(x=[1, 1], y=[0, 0], z=[1, 1])
        ranking = rank(as_flat_vector([1, 1]), corpus, SumSquaredDistance(), k=3)
        assert ranking.identifiers() == ["x", "z", "y"]

    def test_distances_nondecreasing(self):
        rng = np.random.RandomState(3)
        corpus = [CorpusEntry(f"img{i}", as_flat_vector(rng.rand(5)))
                  for i in range(40)]
        ranking = rank(as_flat_vector(rng.rand(5)), corpus,
                       SumSquaredDistance(), k=10)
        distances = [r.distance for r in ranking.results]
        assert distances == sorted(distances)
        assert len(ranking.top) == 10

    def test_permutation_invariant_without_ties(self):
        rng = np.random.RandomState(4)
        corpus = [CorpusEntry(f"img{i}", as_flat_vector(rng.rand(6)))
                  for i in range(15)]
        query = as_flat_vector(rng.rand(6))
        shuffled = [corpus[i] for i in rng.permutation(len(corpus))]

        a = rank(query, corpus, SumSquaredDistance(), k=5)
        b = rank(query, shuffled, SumSquaredDistance(), k=5)
        assert a.identifiers() == b.identifiers()

    def test_k_larger_than_corpus(self):
        corpus = entries(a=[0], b=[1])
        ranking = rank(as_flat_vector([0]), corpus, SumSquaredDistance(), k=10)
        assert len(ranking.top) == 2
        assert len(ranking.bottom) == 2

    def test_k_zero_gives_empty_selection(self):
        corpus = entries(a=[0], b=[1])
        ranking = rank(as_flat_vector([0]), corpus, SumSquaredDistance(), k=0)
        assert ranking.top == []
        assert ranking.bottom == []
        assert len(ranking) == 2

    def test_bottom_is_farthest_in_ascending_order(self):
        corpus = entries(a=[0], b=[3], c=[1], d=[2])
        ranking = rank(as_flat_vector([0]), corpus, SumSquaredDistance(), k=2)
        assert [r.identifier for r in ranking.bottom] == ["d", "b"]

    def test_empty_corpus(self):
        ranking = rank(as_flat_vector([0]), [], SumSquaredDistance(), k=3)
        assert ranking.results == []
        assert ranking.top == []
        assert ranking.skipped == []

    def test_mismatched_entry_skipped(self):
        corpus = entries(a=[0, 0], bad=[0, 0, 0], b=[1, 1])
        ranking = rank(as_flat_vector([0, 0]), corpus, SumSquaredDistance(), k=5)

        assert ranking.identifiers() == ["a", "b"]
        assert [s.identifier for s in ranking.skipped] == ["bad"]
        assert "shape mismatch" in ranking.skipped[0].reason

    def test_non_finite_distance_skipped(self):
        corpus = entries(a=[1, 0], inf=[np.inf, 0])
        ranking = rank(as_flat_vector([1, 0]), corpus, SumSquaredDistance(), k=5)
        assert ranking.identifiers() == ["a"]
        assert ranking.skipped[0].identifier == "inf"

    def test_duplicate_identifiers_rejected(self):
        corpus = [CorpusEntry("a", as_flat_vector([0])),
                  CorpusEntry("a", as_flat_vector([1]))]
        with pytest.raises(ValueError, match="Duplicate"):
            rank(as_flat_vector([0]), corpus, SumSquaredDistance(), k=1)

    def test_accepts_plain_tuples(self):
        corpus = [("a", as_flat_vector([1, 0])), ("b", as_flat_vector([0, 1]))]
        ranking = rank(as_flat_vector([1, 0]), corpus, CosineDistance(), k=1)
        assert ranking.identifiers() == ["a"]

    @pytest.mark.parametrize("workers", [2, 3, 8, 64])
    def test_workers_match_sequential(self, workers):
        rng = np.random.RandomState(5)
        corpus = [CorpusEntry(f"img{i}", as_flat_vector(rng.randint(0, 3, 2)))
                  for i in range(30)]
        query = as_flat_vector([1, 1])

        sequential = rank(query, corpus, SumSquaredDistance(), k=30, workers=1)
        threaded = rank(query, corpus, SumSquaredDistance(), k=30,
                        workers=workers)
        # Many ties: identical output proves order is preserved across slices
        assert threaded.results == sequential.results


class TestPartition:

    def test_contiguous_and_complete(self):
        items = list(range(10))
        slices = partition(items, 3)
        assert len(slices) == 3
        assert [x for s in slices for x in s] == items
        assert [len(s) for s in slices] == [4, 3, 3]

    def test_more_parts_than_items(self):
        assert partition([1, 2], 5) == [[1], [2]]

    def test_empty(self):
        assert partition([], 4) == [[]]


class TestRanking:

    def test_identifiers_are_top(self):
        ranking = Ranking(results=[RankedResult("a", 0.0),
                                   RankedResult("b", 1.0)], k=1)
        assert ranking.identifiers() == ["a"]
