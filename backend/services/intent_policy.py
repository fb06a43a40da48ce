"""
services/intent_policy.py
─────────────────────────
Intent-level rules: request validation, category filtering, result limits,
scoring-weight overrides and diversity-strategy dispatch.

Everything here is pure. The static per-intent table lives in
``models/intent.py``.
"""

from __future__ import annotations

import logging
import random
from typing import AbstractSet, Dict, List, Mapping, Optional, Sequence, Tuple

from core.config import ScoringWeights
from models.history import HistorySnapshot
from models.intent import FOOD_CATEGORIES, CategoryRule, Intent, SelectionStrategy, policy_for
from models.place import Place
from models.scoring import ScoredCandidate
from models.taste import FeedbackType
from services import diversity

logger = logging.getLogger("wandr.intent")

MIN_RADIUS_M = 100
MAX_RADIUS_M = 50_000
MIN_ROUTE_WALK_M = 500
MAX_ROUTE_WALK_M = 10_000
MAX_CONFIGURABLE_RESULTS = 50

# TRY_SOMETHING_NEW shifts weight from familiarity to novelty
NOVELTY_WEIGHTS = ScoringWeights(implicit=0.15, explicit=0.20, novelty=0.35, context=0.15, quality=0.10)

_FOOD = frozenset(FOOD_CATEGORIES)
_SUCCESS = frozenset({FeedbackType.LIKE, FeedbackType.VISITED})
_FAILURE = frozenset({FeedbackType.DISLIKE, FeedbackType.SKIP})


# ═══════════════════════════════════════════════════════════════════════════
# Validation
# ═══════════════════════════════════════════════════════════════════════════

def validate_request(
    intent: Intent,
    lat: float,
    lng: float,
    radius_m: int,
    walking_distance_m: Optional[int] = None,
    max_results: Optional[int] = None,
) -> List[str]:
    """Return every validation problem; an empty list means the request is valid."""
    errors: List[str] = []

    if not -90.0 <= lat <= 90.0:
        errors.append("Latitude must be between -90 and 90")
    if not -180.0 <= lng <= 180.0:
        errors.append("Longitude must be between -180 and 180")
    if not MIN_RADIUS_M <= radius_m <= MAX_RADIUS_M:
        errors.append(f"Radius must be between {MIN_RADIUS_M} and {MAX_RADIUS_M} meters")

    if intent is Intent.ROUTE_PLANNING:
        if walking_distance_m is None or walking_distance_m < MIN_ROUTE_WALK_M:
            errors.append(f"Route planning requires a walking distance of at least {MIN_ROUTE_WALK_M} meters")
        elif walking_distance_m > MAX_ROUTE_WALK_M:
            errors.append(f"Walking distance cannot exceed {MAX_ROUTE_WALK_M} meters")

    if max_results is not None and max_results < 1:
        errors.append("max_results must be at least 1")

    if errors:
        logger.warning("Validation failed for %s: %s", intent.value, ", ".join(errors))
    return errors


# ═══════════════════════════════════════════════════════════════════════════
# Filtering
# ═══════════════════════════════════════════════════════════════════════════

def is_food_category(category: Optional[str]) -> bool:
    """
    True when any type in ``category`` is food.

    A type matches when it equals an allow-list entry or when one of its
    underscore-separated words does (``chinese_restaurant``). Plain substring
    matching is avoided so ``barber_shop`` does not count as a ``bar``.
    """
    if not category:
        return False
    for token in category.split(","):
        token = token.strip().lower()
        if not token:
            continue
        if token in _FOOD or any(word in _FOOD for word in token.split("_")):
            return True
    return False


def _allowed(rule: CategoryRule, place: Place) -> bool:
    if rule is CategoryRule.FOOD_ONLY:
        return is_food_category(place.category)
    if rule is CategoryRule.NON_FOOD:
        return bool(place.category.strip()) and not is_food_category(place.category)
    return True


def apply_intent_filter(
    intent: Intent,
    candidates: Sequence[Place],
    excluded_ids: AbstractSet[str] = frozenset(),
) -> List[Place]:
    """Drop excluded places and places the intent's category rule forbids."""
    rule = policy_for(intent).category_rule
    kept = [p for p in candidates if p.id not in excluded_ids and _allowed(rule, p)]
    if len(kept) < len(candidates):
        logger.info("Intent filter %s reduced %d places to %d", intent.value, len(candidates), len(kept))
    return kept


# ═══════════════════════════════════════════════════════════════════════════
# Limits & weights
# ═══════════════════════════════════════════════════════════════════════════

def effective_max_results(intent: Intent, requested: Optional[int] = None) -> int:
    policy = policy_for(intent)
    if requested is None or not policy.max_results_configurable:
        return policy.max_results
    cap = policy.max_results if policy.route_required else MAX_CONFIGURABLE_RESULTS
    return max(1, min(requested, cap))


def max_walking_distance(intent: Intent, user_preference: Optional[int] = None) -> int:
    """User preference (capped at 10 km) wins over the intent default."""
    if user_preference is not None:
        return min(user_preference, MAX_ROUTE_WALK_M)
    return policy_for(intent).default_walking_distance_m


def weights_for(intent: Intent, base: ScoringWeights) -> ScoringWeights:
    return NOVELTY_WEIGHTS if policy_for(intent).novelty_weighted else base


# ═══════════════════════════════════════════════════════════════════════════
# Selection
# ═══════════════════════════════════════════════════════════════════════════

def _stat_key(place: Place) -> Optional[str]:
    tokens = place.category_tokens
    return tokens[0] if tokens else None


def feedback_stats(history: HistorySnapshot) -> Dict[str, Tuple[int, int]]:
    """Per primary category type: (successes, failures) from feedback events."""
    stats: Dict[str, List[int]] = {}
    for event in history.recent_feedback:
        tokens = [t.strip().lower() for t in event.category.split(",") if t.strip()]
        if not tokens:
            continue
        counts = stats.setdefault(tokens[0], [0, 0])
        if event.feedback_type in _SUCCESS:
            counts[0] += 1
        elif event.feedback_type in _FAILURE:
            counts[1] += 1
    return {key: (s, f) for key, (s, f) in stats.items()}


def select(
    intent: Intent,
    scored: Sequence[ScoredCandidate],
    count: int,
    rng: random.Random,
    stats: Optional[Mapping[str, Tuple[int, int]]] = None,
) -> Tuple[List[ScoredCandidate], SelectionStrategy]:
    """
    Pick ``count`` candidates with the intent's diversity strategy.

    TRY_SOMETHING_NEW switches to Thompson sampling once any candidate's
    category has feedback statistics.
    """
    policy = policy_for(intent)
    pairs = [(candidate, candidate.score) for candidate in scored]
    strategy = policy.strategy

    if policy.novelty_weighted and stats and any(_stat_key(c.place) in stats for c in scored):
        strategy = SelectionStrategy.THOMPSON

    if strategy is SelectionStrategy.THOMPSON:
        triples = []
        for candidate in scored:
            successes, failures = (stats or {}).get(_stat_key(candidate.place), (0, 0))
            triples.append((candidate, successes, failures))
        picked = diversity.thompson_sampling(triples, count, rng)
    elif strategy is SelectionStrategy.MMR:
        picked = diversity.maximal_marginal_relevance(
            pairs, count, policy.strategy_param,
            lambda a, b: diversity.category_similarity(a.place, b.place),
        )
    elif strategy is SelectionStrategy.SOFTMAX:
        picked = diversity.softmax(pairs, policy.strategy_param, count, rng)
    else:
        picked = diversity.epsilon_greedy(pairs, policy.strategy_param, count, rng)

    logger.debug("Selected %d/%d candidates with %s", len(picked), len(scored), strategy.value)
    return picked, strategy
