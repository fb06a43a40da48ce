"""
models/scoring.py
─────────────────
Score breakdowns, scored candidates and the per-request scoring context.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field

from core.config import ScoringWeights
from models.history import HistorySnapshot
from models.place import Coordinates, Place
from models.taste import TasteProfile


class TimeOfDay(str, Enum):
    EARLY_MORNING = "early_morning"
    MORNING = "morning"
    LUNCH = "lunch"
    AFTERNOON = "afternoon"
    EVENING = "evening"
    NIGHT = "night"


class Season(str, Enum):
    SPRING = "spring"
    SUMMER = "summer"
    AUTUMN = "autumn"
    WINTER = "winter"


class WeatherCondition(str, Enum):
    CLEAR = "clear"
    CLOUDY = "cloudy"
    RAIN = "rain"
    SNOW = "snow"
    STORM = "storm"


class ContextInsights(BaseModel):
    """Ambient context for a location, supplied by the context provider."""

    model_config = ConfigDict(frozen=True)

    time_of_day: TimeOfDay
    season: Season
    weather: Optional[WeatherCondition] = None
    temperature_c: Optional[float] = None


class ScoreBreakdown(BaseModel):
    """
    Sub-scores and weights behind one final score.

    Used for explanations only; never reverse-engineered from ``final``.
    ``context`` is None when no context insights were available, in which
    case the context weight contributes nothing.
    """

    model_config = ConfigDict(frozen=True)

    implicit: float = Field(..., ge=0.0, le=1.0)
    explicit: float = Field(..., ge=0.0, le=1.0)
    novelty: float = Field(..., ge=0.0, le=1.0)
    quality: float = Field(..., ge=0.0, le=1.0)
    context: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    weights: ScoringWeights
    final: float = Field(..., ge=0.0, le=1.0)

    @computed_field
    @property
    def contributions(self) -> Dict[str, float]:
        """Weighted share of each dimension in ``final`` (context 0 when absent)."""
        w = self.weights
        return {
            "implicit": w.implicit * self.implicit,
            "explicit": w.explicit * self.explicit,
            "novelty": w.novelty * self.novelty,
            "quality": w.quality * self.quality,
            "context": w.context * self.context if self.context is not None else 0.0,
        }


class ScoredCandidate(BaseModel):
    place: Place
    breakdown: ScoreBreakdown
    reasons: List[str] = Field(default_factory=list)
    distance_m: Optional[float] = Field(default=None, ge=0.0)

    @property
    def score(self) -> float:
        return self.breakdown.final


class ScoringContext(BaseModel):
    """
    Everything the scorers need for one request, fetched up front.

    Scoring one candidate is a pure function of (place, ScoringContext).
    """

    model_config = ConfigDict(frozen=True)

    user_id: Optional[str] = None
    profile: Optional[TasteProfile] = None
    history: HistorySnapshot = Field(default_factory=HistorySnapshot.empty)
    insights: Optional[ContextInsights] = None
    origin: Optional[Coordinates] = None
    weights: ScoringWeights = Field(default_factory=ScoringWeights)
    now: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
