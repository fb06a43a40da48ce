"""
services/explain.py
───────────────────
Reason codes for a scored candidate.

A candidate gets 2–4 codes drawn from the sub-scores that cleared their
thresholds, strongest first. When too few qualify the list is padded with
generic codes so the client always has something to show.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional, Tuple

from models.history import HistorySnapshot
from models.place import Place
from models.scoring import ScoreBreakdown
from models.taste import TasteProfile
from services.scorers import ExplicitScorer, distance_score

logger = logging.getLogger("wandr.explain")

MIN_REASONS = 2
MAX_REASONS = 4

EXPLICIT_THRESHOLD = 0.7
IMPLICIT_THRESHOLD = 0.7
NOVELTY_THRESHOLD = 0.7
QUALITY_THRESHOLD = 0.8
CONTEXT_THRESHOLD = 0.7

GENERAL_RECOMMENDATION = "GENERAL_RECOMMENDATION"
WITHIN_SEARCH_AREA = "WITHIN_SEARCH_AREA"
_PADDING = (GENERAL_RECOMMENDATION, WITHIN_SEARCH_AREA)


def build_reasons(
    place: Place,
    breakdown: ScoreBreakdown,
    *,
    profile: Optional[TasteProfile],
    history: HistorySnapshot,
    distance_m: Optional[float],
    now: datetime,
    near_distance_m: float = 500.0,
) -> List[str]:
    """Return the ordered reason codes for one candidate."""
    ranked: List[Tuple[float, str]] = []

    if breakdown.explicit >= EXPLICIT_THRESHOLD:
        interest = ExplicitScorer.top_matching_interest(profile, place)
        if interest is not None:
            ranked.append((breakdown.explicit, f"MATCHES_INTEREST_{interest.value.upper()}"))

    if breakdown.implicit >= IMPLICIT_THRESHOLD:
        ranked.append((breakdown.implicit, "MATCHES_YOUR_HISTORY"))

    if place.id in history.favorite_ids:
        ranked.append((max(breakdown.implicit, IMPLICIT_THRESHOLD), "FAVORITE_PLACE"))

    if breakdown.novelty >= NOVELTY_THRESHOLD:
        ranked.append((breakdown.novelty, "NOVEL_EXPERIENCE"))

    if breakdown.quality >= QUALITY_THRESHOLD:
        ranked.append((breakdown.quality, "HIGHLY_RATED"))

    if distance_m is not None and distance_m < near_distance_m:
        ranked.append((distance_score(distance_m, start_m=0.0, max_m=near_distance_m), "CLOSE_TO_YOU"))

    if breakdown.context is not None and breakdown.context >= CONTEXT_THRESHOLD:
        ranked.append((breakdown.context, "GOOD_FIT_NOW"))

    ranked.sort(key=lambda item: (-item[0], item[1]))
    reasons = [code for _, code in ranked]

    # SPONSORED always takes the last slot, after any padding
    sponsored = place.is_sponsored(now)
    reserved = 1 if sponsored else 0
    reasons = reasons[: MAX_REASONS - reserved]

    for code in _PADDING:
        if len(reasons) + reserved >= MIN_REASONS:
            break
        reasons.append(code)
    if sponsored:
        reasons.append("SPONSORED")
    return reasons


def safe_reasons(place: Place, breakdown: ScoreBreakdown, **kwargs) -> List[str]:
    """``build_reasons`` that degrades to ``[]`` instead of failing the request."""
    try:
        return build_reasons(place, breakdown, **kwargs)
    except Exception:
        logger.exception("Failed to explain place %s", place.id)
        return []
