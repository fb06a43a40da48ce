"""
services/scorers.py
───────────────────
Individual scoring dimensions for the hybrid scorer.

Every scorer returns a value in [0, 1] and falls back to a neutral 0.5 when
it has nothing to go on; missing data never penalizes a place.

  Explicit  — place interest vector projected onto the user's taste profile
  Implicit  — category affinity / decayed avoidance / favorite boost from history
  Novelty   — category absence in recent history + time since last visit
  Quality   — rating shrunk toward neutral by review-count confidence
  Context   — time-of-day / weather / season fit of the place's interests
  Distance  — proximity term used by the explanations (not part of the blend)
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, FrozenSet, List, Mapping, Optional, Tuple

from models.history import HistorySnapshot, as_utc
from models.place import Place
from models.scoring import ContextInsights, Season, TimeOfDay, WeatherCondition
from models.taste import FeedbackType, Interest, TasteProfile
from services.category_mapper import map_to_interests

NEUTRAL = 0.5

# Catalog types too generic to say anything about taste
_GENERIC_TYPES = frozenset({"point_of_interest", "establishment", "premise"})

_POSITIVE_FEEDBACK = frozenset({FeedbackType.LIKE, FeedbackType.VISITED})

_SECONDS_PER_DAY = 86_400.0


def clamp01(value: float) -> float:
    if math.isnan(value):
        return NEUTRAL
    return max(0.0, min(1.0, value))


def _taste_tokens(category: Optional[str]) -> FrozenSet[str]:
    if not category:
        return frozenset()
    tokens = {t.strip().lower() for t in category.split(",") if t.strip()}
    return frozenset(tokens - _GENERIC_TYPES)


def _age_days(then: datetime, now: datetime) -> float:
    return max(0.0, (as_utc(now) - as_utc(then)).total_seconds() / _SECONDS_PER_DAY)


# ═══════════════════════════════════════════════════════════════════════════
# Explicit
# ═══════════════════════════════════════════════════════════════════════════

class ExplicitScorer:
    """Scores a place against the user's stated interests."""

    def score(self, profile: Optional[TasteProfile], place: Place) -> float:
        if profile is None or not place.category.strip():
            return NEUTRAL

        place_interests = map_to_interests(place.category)
        if not place_interests:
            return NEUTRAL

        total_score = 0.0
        total_weight = 0.0
        for interest, place_weight in place_interests.items():
            total_score += place_weight * profile.weight(interest)
            total_weight += place_weight

        if total_weight <= 0.0:
            return NEUTRAL
        return clamp01(total_score / total_weight)

    @staticmethod
    def top_matching_interest(profile: Optional[TasteProfile], place: Place) -> Optional[Interest]:
        """Interest contributing most to the explicit score (for explanations)."""
        if profile is None:
            return None
        place_interests = map_to_interests(place.category)
        if not place_interests:
            return None
        return max(
            place_interests.items(),
            key=lambda kv: (kv[1] * profile.weight(kv[0]), kv[0].value),
        )[0]


# ═══════════════════════════════════════════════════════════════════════════
# Implicit
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class LearnedPreferences:
    """Behavioural signal distilled from a history snapshot."""

    positive_categories: Tuple[FrozenSet[str], ...] = ()
    disliked_at: Mapping[str, datetime] = field(default_factory=dict)
    favorite_ids: FrozenSet[str] = frozenset()

    @property
    def is_empty(self) -> bool:
        return not (self.positive_categories or self.disliked_at or self.favorite_ids)

    @classmethod
    def from_history(cls, history: HistorySnapshot) -> "LearnedPreferences":
        positives: List[FrozenSet[str]] = []
        disliked: Dict[str, datetime] = {}

        for event in history.recent_feedback:
            tokens = _taste_tokens(event.category)
            if not tokens:
                continue
            if event.feedback_type in _POSITIVE_FEEDBACK:
                positives.append(tokens)
            elif event.feedback_type is FeedbackType.DISLIKE:
                for token in tokens:
                    seen = disliked.get(token)
                    if seen is None or as_utc(event.created_at) > as_utc(seen):
                        disliked[token] = event.created_at

        for category in history.favorite_categories:
            tokens = _taste_tokens(category)
            if tokens:
                positives.append(tokens)

        return cls(
            positive_categories=tuple(positives),
            disliked_at=disliked,
            favorite_ids=history.favorite_ids,
        )


class ImplicitScorer:
    """
    Scores a place from the user's behaviour.

    score = 0.5 + 0.4·affinity − 0.4·avoidance + 0.1·[favorite]

    where affinity is the share of positive interactions (likes, visits,
    favorites) sharing a category type with the place, and avoidance is the
    exponentially decayed weight of the most recent matching dislike.
    """

    AFFINITY_WEIGHT = 0.4
    AVOIDANCE_WEIGHT = 0.4
    FAVORITE_BOOST = 0.1

    def __init__(self, avoidance_half_life_days: float = 30.0):
        self.half_life = avoidance_half_life_days

    def score(self, place: Place, preferences: Optional[LearnedPreferences], now: datetime) -> float:
        if preferences is None or preferences.is_empty:
            return NEUTRAL

        tokens = _taste_tokens(place.category)
        score = NEUTRAL

        if tokens and preferences.positive_categories:
            matching = sum(1 for cats in preferences.positive_categories if cats & tokens)
            affinity = matching / len(preferences.positive_categories)
            score += self.AFFINITY_WEIGHT * affinity

        score -= self.AVOIDANCE_WEIGHT * self.avoidance(tokens, preferences, now)

        if place.id in preferences.favorite_ids:
            score += self.FAVORITE_BOOST

        return clamp01(score)

    def avoidance(self, tokens: FrozenSet[str], preferences: LearnedPreferences, now: datetime) -> float:
        penalty = 0.0
        for token in tokens:
            disliked = preferences.disliked_at.get(token)
            if disliked is None:
                continue
            decay = 0.5 ** (_age_days(disliked, now) / self.half_life)
            penalty = max(penalty, decay)
        return penalty


# ═══════════════════════════════════════════════════════════════════════════
# Novelty
# ═══════════════════════════════════════════════════════════════════════════

class NoveltyScorer:
    """
    1.0 = maximally novel.

    Category novelty is the share of the last ``window`` history entries
    (suggestions and visits) that do *not* share a category type with the
    place. Recency novelty saturates as ``1 − exp(−days/tau)`` since the last
    visit to this exact place (never visited → 1.0).
    """

    def __init__(self, window: int = 10, tau_days: float = 30.0):
        self.window = window
        self.tau_days = tau_days

    def score(self, place: Place, history: HistorySnapshot, now: datetime) -> float:
        return clamp01(
            0.5 * self.category_novelty(place, history)
            + 0.5 * self.recency_novelty(place, history, now)
        )

    def category_novelty(self, place: Place, history: HistorySnapshot) -> float:
        tokens = _taste_tokens(place.category)
        recent = self._recent_categories(history)
        if not recent or not tokens:
            return 1.0
        familiar = sum(1 for cats in recent if cats & tokens)
        return 1.0 - familiar / len(recent)

    def recency_novelty(self, place: Place, history: HistorySnapshot, now: datetime) -> float:
        last_visit = self._last_visit(place.id, history)
        if last_visit is None:
            return 1.0
        return 1.0 - math.exp(-_age_days(last_visit, now) / self.tau_days)

    def _recent_categories(self, history: HistorySnapshot) -> List[FrozenSet[str]]:
        dated: List[Tuple[datetime, FrozenSet[str]]] = [
            (as_utc(entry.suggested_at), _taste_tokens(entry.category))
            for entry in history.recent_suggestions
        ]
        dated.extend(
            (as_utc(event.created_at), _taste_tokens(event.category))
            for event in history.recent_feedback
            if event.feedback_type is FeedbackType.VISITED
        )
        dated.sort(key=lambda item: item[0], reverse=True)
        return [cats for _, cats in dated[: self.window]]

    @staticmethod
    def _last_visit(place_id: str, history: HistorySnapshot) -> Optional[datetime]:
        visits = [
            event.created_at
            for event in history.recent_feedback
            if event.place_id == place_id and event.feedback_type is FeedbackType.VISITED
        ]
        return max(visits, key=as_utc) if visits else None


# ═══════════════════════════════════════════════════════════════════════════
# Quality
# ═══════════════════════════════════════════════════════════════════════════

def quality_score(place: Place, smoothing: float = 50.0) -> float:
    """
    ``rating/5`` shrunk toward 0.5 by ``n/(n + smoothing)`` confidence.

    A 5-star place with 2 reviews lands near neutral; one with 500 reviews
    lands near 1.0. Unrated places are neutral.
    """
    if place.rating is None or place.rating <= 0:
        return NEUTRAL
    confidence = place.review_count / (place.review_count + smoothing)
    return clamp01(confidence * (place.rating / 5.0) + (1.0 - confidence) * NEUTRAL)


def distance_score(distance_m: Optional[float], start_m: float = 500.0, max_m: float = 5000.0) -> float:
    """1.0 up to ``start_m``, linear down to 0.0 at ``max_m``; 0.5 when unknown."""
    if distance_m is None:
        return NEUTRAL
    if distance_m <= start_m:
        return 1.0
    if distance_m >= max_m or max_m <= start_m:
        return 0.0
    return 1.0 - (distance_m - start_m) / (max_m - start_m)


# ═══════════════════════════════════════════════════════════════════════════
# Context
# ═══════════════════════════════════════════════════════════════════════════

_TIME_FIT: Mapping[TimeOfDay, Mapping[Interest, float]] = {
    TimeOfDay.EARLY_MORNING: {Interest.NATURE: 0.1, Interest.SPORTS: 0.2, Interest.NIGHTLIFE: -0.3},
    TimeOfDay.MORNING: {
        Interest.FOOD: 0.1, Interest.NATURE: 0.2, Interest.CULTURE: 0.1,
        Interest.WELLNESS: 0.1, Interest.NIGHTLIFE: -0.3,
    },
    TimeOfDay.LUNCH: {Interest.FOOD: 0.3, Interest.NIGHTLIFE: -0.2},
    TimeOfDay.AFTERNOON: {
        Interest.CULTURE: 0.2, Interest.ART: 0.2, Interest.SHOPPING: 0.2, Interest.NATURE: 0.1,
    },
    TimeOfDay.EVENING: {Interest.FOOD: 0.2, Interest.NIGHTLIFE: 0.2, Interest.ART: 0.1},
    TimeOfDay.NIGHT: {
        Interest.NIGHTLIFE: 0.3, Interest.NATURE: -0.3,
        Interest.SHOPPING: -0.2, Interest.CULTURE: -0.2,
    },
}

_INDOOR = (Interest.CULTURE, Interest.ART, Interest.SHOPPING, Interest.WELLNESS, Interest.FOOD)
_OUTDOOR = (Interest.NATURE, Interest.SPORTS)

_SEASON_FIT: Mapping[Season, Mapping[Interest, float]] = {
    Season.SPRING: {Interest.NATURE: 0.1},
    Season.SUMMER: {Interest.NATURE: 0.1, Interest.SPORTS: 0.1, Interest.NIGHTLIFE: 0.05},
    Season.AUTUMN: {Interest.CULTURE: 0.05, Interest.ART: 0.05},
    Season.WINTER: {Interest.WELLNESS: 0.1, Interest.CULTURE: 0.1, Interest.NATURE: -0.1},
}


def _weather_adjustments(insights: ContextInsights) -> Dict[Interest, float]:
    adjustments: Dict[Interest, float] = {}
    if insights.weather in (WeatherCondition.RAIN, WeatherCondition.SNOW, WeatherCondition.STORM):
        for interest in _INDOOR:
            adjustments[interest] = 0.15
        for interest in _OUTDOOR:
            adjustments[interest] = -0.3
    elif insights.weather is WeatherCondition.CLEAR:
        temp = insights.temperature_c
        if temp is None or 15.0 <= temp <= 28.0:
            adjustments[Interest.NATURE] = 0.2
            adjustments[Interest.SPORTS] = 0.1
    return adjustments


def context_fit(place: Place, insights: Optional[ContextInsights]) -> Optional[float]:
    """
    How well the place suits the current time, weather and season.

    Returns None without insights (the context weight then contributes
    nothing); 0.5 for places whose category maps to no interest.
    """
    if insights is None:
        return None
    place_interests = map_to_interests(place.category)
    if not place_interests:
        return NEUTRAL

    time_adj = _TIME_FIT.get(insights.time_of_day, {})
    season_adj = _SEASON_FIT.get(insights.season, {})
    weather_adj = _weather_adjustments(insights)

    total_weight = sum(place_interests.values())
    shift = 0.0
    for interest, place_weight in place_interests.items():
        adj = time_adj.get(interest, 0.0) + season_adj.get(interest, 0.0) + weather_adj.get(interest, 0.0)
        shift += place_weight * adj
    return clamp01(NEUTRAL + shift / total_weight)
