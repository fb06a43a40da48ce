"""
models/suggestion.py
────────────────────
Request and response envelopes for the suggestion orchestrator.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, Field

from models.intent import Intent
from models.route import OptimizedRoute, TravelMode
from models.scoring import ScoredCandidate


class SuggestionRequest(BaseModel):
    """
    Input to ``SuggestionOrchestrator.create_suggestions``.

    Coordinates are deliberately not range-constrained here: the intent
    policy validates them and reports every problem at once.
    """

    user_id: Optional[str] = None
    intent: Intent = Intent.QUICK_SUGGESTION
    lat: float
    lng: float
    radius_m: int = 3000
    walking_distance_m: Optional[int] = None
    max_results: Optional[int] = None
    travel_mode: TravelMode = TravelMode.WALKING
    session_id: Optional[str] = None


class SuggestionMeta(BaseModel):
    generated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    strategy: str = ""
    diversity_factor: float = 0.0
    used_personalization: bool = False
    used_context: bool = False
    time_of_day: Optional[str] = None
    weather: Optional[str] = None
    season: Optional[str] = None


class SuggestionsResult(BaseModel):
    """Envelope returned by the orchestrator (and the suggestions endpoint)."""

    intent: Intent
    is_personalized: bool = False
    user_id: Optional[str] = None
    suggestions: List[ScoredCandidate] = Field(default_factory=list)
    route: Optional[OptimizedRoute] = None
    total_candidates: int = Field(default=0, description="Places returned by search before filtering")
    warnings: List[str] = Field(default_factory=list)
    metadata: SuggestionMeta = Field(default_factory=SuggestionMeta)

    @property
    def place_ids(self) -> List[str]:
        return [c.place.id for c in self.suggestions]
