"""
services/diversity.py
─────────────────────
Exploration / exploitation selection over scored items.

Every function is stateless and takes the random source explicitly, so a
seeded ``random.Random`` makes a selection reproducible. Items are
``(item, score)`` pairs; the functions return the selected items in pick
order and never return more than ``count`` or repeat an item.
"""

from __future__ import annotations

import logging
import math
import random
from typing import Callable, List, Optional, Sequence, Tuple, TypeVar

from models.place import Place
from services.category_mapper import dominant_interest, interest_overlap, map_to_interests

logger = logging.getLogger("wandr.diversity")

T = TypeVar("T")

Similarity = Callable[[T, T], float]


def _check_count(count: int) -> None:
    if count < 0:
        raise ValueError(f"count must be >= 0, got {count}")


def _ranked(items: Sequence[Tuple[T, float]]) -> List[Tuple[T, float]]:
    # sorted() is stable: equal scores keep their input order
    return sorted(items, key=lambda pair: pair[1], reverse=True)


# ── Epsilon-greedy ─────────────────────────────────────────────────────────

def epsilon_greedy(
    items: Sequence[Tuple[T, float]],
    epsilon: float,
    count: int,
    rng: random.Random,
) -> List[T]:
    """
    With probability ``epsilon`` pick a uniformly random remaining item,
    otherwise the best remaining one. ``epsilon == 0`` is plain top-K.
    """
    if not 0.0 <= epsilon <= 1.0:
        raise ValueError(f"epsilon must be in [0, 1], got {epsilon}")
    _check_count(count)

    remaining = _ranked(items)
    picked: List[T] = []
    while remaining and len(picked) < count:
        if epsilon > 0.0 and rng.random() < epsilon:
            index = rng.randrange(len(remaining))
            logger.debug("epsilon-greedy explore → rank %d", index)
        else:
            index = 0
        picked.append(remaining.pop(index)[0])
    return picked


# ── Softmax (Boltzmann) ────────────────────────────────────────────────────

def softmax(
    items: Sequence[Tuple[T, float]],
    temperature: float,
    count: int,
    rng: random.Random,
) -> List[T]:
    """Sample without replacement with probability ∝ exp(score / temperature)."""
    if temperature <= 0.0:
        raise ValueError(f"temperature must be > 0, got {temperature}")
    _check_count(count)

    remaining = _ranked(items)
    picked: List[T] = []
    while remaining and len(picked) < count:
        top = max(score for _, score in remaining)
        weights = [math.exp((score - top) / temperature) for _, score in remaining]
        target = rng.random() * sum(weights)
        index = len(remaining) - 1
        cumulative = 0.0
        for i, weight in enumerate(weights):
            cumulative += weight
            if target < cumulative:
                index = i
                break
        picked.append(remaining.pop(index)[0])
    return picked


# ── Maximal marginal relevance ─────────────────────────────────────────────

def maximal_marginal_relevance(
    items: Sequence[Tuple[T, float]],
    count: int,
    lam: float,
    similarity: Similarity,
) -> List[T]:
    """
    Greedy MMR: each step takes the item maximising
    ``lam·score − (1 − lam)·max_similarity_to_already_selected``.

    ``lam == 1`` is top-K, ``lam == 0`` is pure diversity.
    """
    if not 0.0 <= lam <= 1.0:
        raise ValueError(f"lambda must be in [0, 1], got {lam}")
    _check_count(count)

    remaining = _ranked(items)
    selected: List[T] = []
    while remaining and len(selected) < count:
        best_index = 0
        best_value = -math.inf
        for i, (item, score) in enumerate(remaining):
            redundancy = max((similarity(item, chosen) for chosen in selected), default=0.0)
            value = lam * score - (1.0 - lam) * redundancy
            if value > best_value:
                best_index, best_value = i, value
        selected.append(remaining.pop(best_index)[0])
    return selected


# ── Thompson sampling ──────────────────────────────────────────────────────

def thompson_sampling(
    items_with_counts: Sequence[Tuple[T, int, int]],
    count: int,
    rng: random.Random,
) -> List[T]:
    """
    Beta-Bernoulli Thompson sampling.

    Each draw samples ``Beta(successes + 1, failures + 1)`` for every
    remaining item and takes the highest sample.
    """
    _check_count(count)
    for _, successes, failures in items_with_counts:
        if successes < 0 or failures < 0:
            raise ValueError("success and failure counts must be >= 0")

    remaining = list(items_with_counts)
    picked: List[T] = []
    while remaining and len(picked) < count:
        samples = [rng.betavariate(s + 1, f + 1) for _, s, f in remaining]
        index = max(range(len(remaining)), key=samples.__getitem__)
        picked.append(remaining.pop(index)[0])
    return picked


# ── Similarity ─────────────────────────────────────────────────────────────

def _primary_type(place: Place) -> Optional[str]:
    tokens = place.category_tokens
    return tokens[0] if tokens else None


def category_similarity(a: Place, b: Place) -> float:
    """
    Default MMR similarity between two places.

    1.0 for the same primary type or dominant interest, 0.5 when their
    interest vectors overlap at all, 0.0 otherwise.
    """
    primary_a = _primary_type(a)
    if primary_a is not None and primary_a == _primary_type(b):
        return 1.0
    dominant_a = dominant_interest(a.category)
    if dominant_a is not None and dominant_a == dominant_interest(b.category):
        return 1.0
    if interest_overlap(map_to_interests(a.category), map_to_interests(b.category)) > 0.0:
        return 0.5
    return 0.0
