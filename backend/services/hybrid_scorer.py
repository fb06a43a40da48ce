"""
services/hybrid_scorer.py
─────────────────────────
Fuses the individual scoring dimensions into one ranked candidate list.

    final = Σ weight_k · subscore_k      k ∈ {implicit, explicit, novelty, context, quality}

The profile and history snapshot arrive once per request inside a
``ScoringContext``; scoring each candidate is then a pure function that runs
on a bounded thread pool. Results are ordered by final score, then quality,
then place id.
"""

from __future__ import annotations

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional, Sequence, Tuple

from core.config import Settings, get_settings
from models.place import Place, haversine_m
from models.scoring import ScoreBreakdown, ScoredCandidate, ScoringContext
from services.explain import safe_reasons
from services.scorers import (
    ExplicitScorer,
    ImplicitScorer,
    LearnedPreferences,
    NoveltyScorer,
    clamp01,
    context_fit,
    quality_score,
)

logger = logging.getLogger("wandr.scoring")

# (name, fn(place, ctx, preferences) -> Optional[float]); order matches ScoreBreakdown
Component = Tuple[str, Callable[[Place, ScoringContext, Optional[LearnedPreferences]], Optional[float]]]


def sort_candidates(candidates: Sequence[ScoredCandidate]) -> List[ScoredCandidate]:
    return sorted(
        candidates,
        key=lambda c: (-c.breakdown.final, -c.breakdown.quality, c.place.id),
    )


class HybridScorer:
    def __init__(self, settings: Optional[Settings] = None, executor: Optional[ThreadPoolExecutor] = None):
        settings = settings or get_settings()
        self.explicit = ExplicitScorer()
        self.implicit = ImplicitScorer(avoidance_half_life_days=settings.AVOIDANCE_HALF_LIFE_DAYS)
        self.novelty = NoveltyScorer(window=settings.NOVELTY_WINDOW, tau_days=settings.NOVELTY_TAU_DAYS)
        self.review_smoothing = settings.REVIEW_SMOOTHING
        self.near_distance_m = settings.NEAR_DISTANCE_M

        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=settings.SCORING_WORKERS,
            thread_name_prefix="wandr-score",
        )

        self.components: Tuple[Component, ...] = (
            ("implicit", lambda p, ctx, prefs: self.implicit.score(p, prefs, ctx.now)),
            ("explicit", lambda p, ctx, prefs: self.explicit.score(ctx.profile, p)),
            ("novelty", lambda p, ctx, prefs: self.novelty.score(p, ctx.history, ctx.now)),
            ("context", lambda p, ctx, prefs: context_fit(p, ctx.insights)),
            ("quality", lambda p, ctx, prefs: quality_score(p, self.review_smoothing)),
        )

    # ── Single candidate ────────────────────────────────────────────────

    def score_one(
        self,
        place: Place,
        ctx: ScoringContext,
        preferences: Optional[LearnedPreferences] = None,
    ) -> ScoredCandidate:
        subscores = {name: fn(place, ctx, preferences) for name, fn in self.components}
        weights = ctx.weights.as_dict()

        final = 0.0
        for name, value in subscores.items():
            if value is None:
                continue
            final += weights[name] * clamp01(value)

        breakdown = ScoreBreakdown(
            implicit=clamp01(subscores["implicit"]),
            explicit=clamp01(subscores["explicit"]),
            novelty=clamp01(subscores["novelty"]),
            quality=clamp01(subscores["quality"]),
            context=None if subscores["context"] is None else clamp01(subscores["context"]),
            weights=ctx.weights,
            final=clamp01(final),
        )

        distance = haversine_m(ctx.origin, place.coordinates) if ctx.origin is not None else None
        reasons = safe_reasons(
            place,
            breakdown,
            profile=ctx.profile,
            history=ctx.history,
            distance_m=distance,
            now=ctx.now,
            near_distance_m=self.near_distance_m,
        )
        return ScoredCandidate(place=place, breakdown=breakdown, reasons=reasons, distance_m=distance)

    # ── Batch ───────────────────────────────────────────────────────────

    async def score_and_explain(
        self,
        candidates: Sequence[Place],
        ctx: ScoringContext,
    ) -> List[ScoredCandidate]:
        if not candidates:
            return []

        preferences = LearnedPreferences.from_history(ctx.history) if ctx.user_id else None
        loop = asyncio.get_running_loop()
        scored = await asyncio.gather(*(
            loop.run_in_executor(self._executor, self.score_one, place, ctx, preferences)
            for place in candidates
        ))
        ranked = sort_candidates(scored)
        logger.info(
            "Scored %d candidates for %s (top=%.3f)",
            len(ranked), ctx.user_id or "anonymous", ranked[0].score,
        )
        return ranked

    def shutdown(self) -> None:
        if self._owns_executor:
            self._executor.shutdown(wait=False)
