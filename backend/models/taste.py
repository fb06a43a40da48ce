"""
models/taste.py
───────────────
Explicit taste profile models.

A ``TasteProfile`` holds one weight in [0, 1] per interest dimension plus a
handful of preference weights. Weights start neutral (0.5) and evolve through
quiz answers and bounded feedback deltas. The integer ``version`` is the
optimistic-concurrency token compared by the profile store on every write.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Mapping

from pydantic import BaseModel, Field

# Max ±change applied to any single weight by one feedback event
MAX_DELTA_PER_UPDATE = 0.05
NEUTRAL_WEIGHT = 0.5


class Interest(str, Enum):
    """Fixed, closed set of interest dimensions."""

    CULTURE = "Culture"
    FOOD = "Food"
    NATURE = "Nature"
    NIGHTLIFE = "Nightlife"
    SHOPPING = "Shopping"
    ART = "Art"
    WELLNESS = "Wellness"
    SPORTS = "Sports"


class Preference(str, Enum):
    """What aspects of a place the user values."""

    TASTE_QUALITY = "TasteQuality"
    ATMOSPHERE = "Atmosphere"
    DESIGN = "Design"
    CALMNESS = "Calmness"
    SPACIOUSNESS = "Spaciousness"


class FeedbackType(str, Enum):
    """Feedback actions a user can take on a suggested place."""

    LIKE = "like"
    DISLIKE = "dislike"
    SKIP = "skip"
    VISITED = "visited"


InterestVector = Dict[Interest, float]
"""Interest → weight in [0, 1]; weights are independent, not a distribution."""


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _neutral_interests() -> Dict[Interest, float]:
    return {interest: NEUTRAL_WEIGHT for interest in Interest}


def _neutral_preferences() -> Dict[Preference, float]:
    return {pref: NEUTRAL_WEIGHT for pref in Preference}


class TasteProfile(BaseModel):
    """Per-user explicit taste profile."""

    user_id: str = Field(..., min_length=1)
    interests: Dict[Interest, float] = Field(default_factory=_neutral_interests)
    preferences: Dict[Preference, float] = Field(default_factory=_neutral_preferences)
    novelty_tolerance: float = Field(default=NEUTRAL_WEIGHT, ge=0.0, le=1.0)
    quiz_version: str = "v1"
    version: int = Field(default=0, ge=0)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @classmethod
    def create_default(cls, user_id: str, quiz_version: str = "v1") -> "TasteProfile":
        return cls(user_id=user_id, quiz_version=quiz_version)

    def weight(self, interest: Interest) -> float:
        return self.interests.get(interest, NEUTRAL_WEIGHT)

    def top_interests(self, n: int = 3) -> list[Interest]:
        ranked = sorted(self.interests.items(), key=lambda kv: (-kv[1], kv[0].value))
        return [interest for interest, _ in ranked[:n]]

    # ── Behaviour ───────────────────────────────────────────────────────

    def apply_weights(self, weights: Mapping[str, float], now: datetime | None = None) -> None:
        """Overwrite weights (quiz or manual update); values clamp to [0, 1]."""
        for key, value in weights.items():
            self._set(key, _clamp(value))
        self.updated_at = now or _utcnow()

    def apply_delta(self, deltas: Mapping[str, float], now: datetime | None = None) -> None:
        """
        Apply incremental feedback deltas.

        Each delta is clamped to ±``MAX_DELTA_PER_UPDATE`` and each resulting
        weight to [0, 1]. Unknown keys are ignored.
        """
        if not deltas:
            return
        for key, raw in deltas.items():
            delta = max(-MAX_DELTA_PER_UPDATE, min(MAX_DELTA_PER_UPDATE, raw))
            current = self._get(key)
            if current is None:
                continue
            self._set(key, _clamp(current + delta))
        self.updated_at = now or _utcnow()

    def _get(self, key: str) -> float | None:
        if key == "NoveltyTolerance":
            return self.novelty_tolerance
        for interest in Interest:
            if key in (interest.value, f"{interest.value}Weight"):
                return self.interests.get(interest, NEUTRAL_WEIGHT)
        for pref in Preference:
            if key in (pref.value, f"{pref.value}Weight"):
                return self.preferences.get(pref, NEUTRAL_WEIGHT)
        return None

    def _set(self, key: str, value: float) -> None:
        if key == "NoveltyTolerance":
            self.novelty_tolerance = value
            return
        for interest in Interest:
            if key in (interest.value, f"{interest.value}Weight"):
                self.interests[interest] = value
                return
        for pref in Preference:
            if key in (pref.value, f"{pref.value}Weight"):
                self.preferences[pref] = value
                return

    def to_mongo(self) -> dict:
        data = self.model_dump(mode="json")
        data["created_at"] = self.created_at
        data["updated_at"] = self.updated_at
        return data
