"""
Tests for the exploration / exploitation selectors.

Test classes:
  1. TestEpsilonGreedy      -- epsilon=0 is top-K, full exploration, bounds
  2. TestSoftmax            -- low temperature exploits, no repeats
  3. TestMMR                -- relevance vs redundancy trade-off
  4. TestThompsonSampling   -- strong evidence wins, count validation
  5. TestCategorySimilarity -- default similarity for places
"""

import random

import pytest

from conftest import make_place
from services.diversity import (
    category_similarity,
    epsilon_greedy,
    maximal_marginal_relevance,
    softmax,
    thompson_sampling,
)

ITEMS = [("a", 0.9), ("b", 0.7), ("c", 0.7), ("d", 0.4), ("e", 0.1)]


class TestEpsilonGreedy:

    def test_zero_epsilon_is_top_k_with_stable_ties(self):
        assert epsilon_greedy(ITEMS, 0.0, 3, random.Random(1)) == ["a", "b", "c"]

    def test_zero_epsilon_ignores_the_random_source(self):
        picks = {tuple(epsilon_greedy(ITEMS, 0.0, 4, random.Random(seed))) for seed in range(20)}
        assert picks == {("a", "b", "c", "d")}

    def test_full_exploration_still_returns_distinct_items(self):
        picked = epsilon_greedy(ITEMS, 1.0, len(ITEMS), random.Random(5))
        assert sorted(picked) == ["a", "b", "c", "d", "e"]

    def test_count_larger_than_pool(self):
        assert epsilon_greedy(ITEMS[:2], 0.0, 10, random.Random(0)) == ["a", "b"]

    @pytest.mark.parametrize("epsilon", [-0.1, 1.5])
    def test_invalid_epsilon_raises(self, epsilon):
        with pytest.raises(ValueError):
            epsilon_greedy(ITEMS, epsilon, 1, random.Random(0))

    def test_negative_count_raises(self):
        with pytest.raises(ValueError):
            epsilon_greedy(ITEMS, 0.0, -1, random.Random(0))


class TestSoftmax:

    def test_very_low_temperature_picks_the_best_first(self):
        for seed in range(10):
            assert softmax(ITEMS, 0.001, 1, random.Random(seed)) == ["a"]

    def test_samples_without_replacement(self):
        picked = softmax(ITEMS, 5.0, 5, random.Random(11))
        assert len(picked) == len(set(picked)) == 5

    def test_seeded_runs_are_reproducible(self):
        first = softmax(ITEMS, 0.5, 3, random.Random(42))
        second = softmax(ITEMS, 0.5, 3, random.Random(42))
        assert first == second

    @pytest.mark.parametrize("temperature", [0.0, -1.0])
    def test_non_positive_temperature_raises(self, temperature):
        with pytest.raises(ValueError):
            softmax(ITEMS, temperature, 1, random.Random(0))


class TestMMR:

    def test_prefers_dissimilar_second_pick(self):
        a = make_place("A", category="restaurant")
        b = make_place("B", category="restaurant")
        c = make_place("C", category="museum")
        items = [(a, 0.9), (b, 0.85), (c, 0.8)]
        picked = maximal_marginal_relevance(items, 2, 0.5, category_similarity)
        assert [p.id for p in picked] == ["A", "C"]

    def test_lambda_one_is_top_k(self):
        same = lambda x, y: 1.0  # noqa: E731
        assert maximal_marginal_relevance(ITEMS, 3, 1.0, same) == ["a", "b", "c"]

    @pytest.mark.parametrize("lam", [-0.01, 1.01])
    def test_invalid_lambda_raises(self, lam):
        with pytest.raises(ValueError):
            maximal_marginal_relevance(ITEMS, 1, lam, lambda x, y: 0.0)


class TestThompsonSampling:

    def test_strong_evidence_wins(self):
        items = [("bad", 0, 100), ("good", 100, 0)]
        for seed in range(10):
            assert thompson_sampling(items, 1, random.Random(seed)) == ["good"]

    def test_returns_every_item_once(self):
        items = [("x", 1, 1), ("y", 0, 0), ("z", 3, 2)]
        assert sorted(thompson_sampling(items, 5, random.Random(2))) == ["x", "y", "z"]

    def test_negative_counts_raise(self):
        with pytest.raises(ValueError):
            thompson_sampling([("x", -1, 0)], 1, random.Random(0))


class TestCategorySimilarity:

    def test_same_primary_type(self):
        assert category_similarity(make_place("a", "restaurant,food"), make_place("b", "restaurant")) == 1.0

    def test_same_dominant_interest(self):
        assert category_similarity(make_place("a", "restaurant"), make_place("b", "bakery")) == 1.0

    def test_partial_interest_overlap(self):
        # museum is pure Culture; art_gallery is Art-dominant with some Culture
        assert category_similarity(make_place("a", "museum"), make_place("b", "art_gallery")) == 0.5

    def test_unrelated(self):
        assert category_similarity(make_place("a", "park"), make_place("b", "night_club")) == 0.0
        assert category_similarity(make_place("a", ""), make_place("b", "")) == 0.0
