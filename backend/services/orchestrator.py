"""
services/orchestrator.py
────────────────────────
End-to-end suggestion pipeline.

  Phase 0 → Validate the request              (InputInvalid, before any I/O)
  Phase 1 → Profile + history + context        (fetched concurrently, once)
  Phase 2 → Place search                       (upstream failure → 0 candidates)
  Phase 3 → Intent filter + exclusions         (active exclusions ∪ recent window)
  Phase 4 → Hybrid scoring + diversity         (per-intent strategy)
  Phase 5 → Route optimization                 (ROUTE_PLANNING only)
  Phase 6 → Persist suggestion / route history (personalized requests only)

The optional ``cancel_event`` is checked at each I/O boundary; once it is
set the request raises ``asyncio.CancelledError`` and nothing is written.
The persist phase itself is shielded: a caller that times out mid-write
never leaves suggestion rows without their route.
"""

from __future__ import annotations

import asyncio
import logging
import random
from datetime import datetime, timezone
from typing import Callable, List, Optional, Set

from core.config import Settings, get_settings
from core.errors import InputInvalid, OptimizationInfeasible, UpstreamUnavailable
from models.history import HistorySnapshot, RouteHistoryEntry, SuggestionHistoryEntry
from models.intent import policy_for
from models.place import Coordinates
from models.route import OptimizedRoute, Waypoint
from models.scoring import ContextInsights, ScoredCandidate, ScoringContext
from models.suggestion import SuggestionMeta, SuggestionRequest, SuggestionsResult
from models.taste import TasteProfile
from services.context import ContextProvider
from services.history_store import HistoryStore
from services.hybrid_scorer import HybridScorer
from services.intent_policy import (
    apply_intent_filter,
    effective_max_results,
    feedback_stats,
    max_walking_distance,
    select,
    validate_request,
    weights_for,
)
from services.place_search import PlaceSearch
from services.route_optimizer import RouteOptimizer
from services.taste_profile_store import TasteProfileStore

logger = logging.getLogger("wandr.orchestrator")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _check_cancelled(cancel_event: Optional[asyncio.Event]) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise asyncio.CancelledError()


class SuggestionOrchestrator:
    def __init__(
        self,
        *,
        place_search: PlaceSearch,
        history: HistoryStore,
        profiles: TasteProfileStore,
        scorer: HybridScorer,
        optimizer: RouteOptimizer,
        context: Optional[ContextProvider] = None,
        settings: Optional[Settings] = None,
        rng: Optional[random.Random] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.settings = settings or get_settings()
        self.place_search = place_search
        self.history = history
        self.profiles = profiles
        self.scorer = scorer
        self.optimizer = optimizer
        self.context = context
        self.rng = rng or random.Random(self.settings.DIVERSITY_SEED)
        self.clock = clock
        self._pending_writes: Set[asyncio.Future[None]] = set()

    # ── Phase 1 helpers ─────────────────────────────────────────────────

    async def _load_profile(self, user_id: Optional[str]) -> Optional[TasteProfile]:
        if not user_id:
            return None
        return await self.profiles.get(user_id)

    async def _load_history(self, user_id: Optional[str], now: datetime) -> HistorySnapshot:
        if not user_id:
            return HistorySnapshot.empty()
        return await self.history.snapshot(user_id, now)

    async def _load_context(self, lat: float, lng: float, warnings: List[str]) -> Optional[ContextInsights]:
        if self.context is None:
            return None
        try:
            return await self.context.insights(lat, lng)
        except Exception as exc:
            logger.warning("Context provider failed: %s", exc)
            warnings.append("Context insights unavailable; ranking without time/weather fit")
            return None

    # ── Main entry point ────────────────────────────────────────────────

    async def create_suggestions(
        self,
        request: SuggestionRequest,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> SuggestionsResult:
        intent = request.intent
        policy = policy_for(intent)

        # ── Phase 0: Validation ─────────────────────────────────────────
        errors = validate_request(
            intent, request.lat, request.lng, request.radius_m,
            request.walking_distance_m, request.max_results,
        )
        if errors:
            raise InputInvalid(errors)

        user_id = (request.user_id or "").strip() or None
        personalized = user_id is not None
        max_results = effective_max_results(intent, request.max_results)
        now = self.clock()
        warnings: List[str] = []

        # ── Phase 1: Per-request inputs ─────────────────────────────────
        _check_cancelled(cancel_event)
        profile, snapshot, insights = await asyncio.gather(
            self._load_profile(user_id),
            self._load_history(user_id, now),
            self._load_context(request.lat, request.lng, warnings),
        )

        # ── Phase 2: Place search ───────────────────────────────────────
        _check_cancelled(cancel_event)
        radius = request.radius_m
        if policy.route_required:
            radius = min(radius, max_walking_distance(intent, request.walking_distance_m))
        try:
            candidates = await self.place_search.search(request.lat, request.lng, radius, policy.category_hint)
        except UpstreamUnavailable as exc:
            logger.warning("Place search unavailable: %s", exc)
            warnings.append("Place search is temporarily unavailable")
            candidates = []

        # ── Phase 3: Intent filter ──────────────────────────────────────
        filtered = apply_intent_filter(intent, candidates, snapshot.blocked_ids)
        meta = SuggestionMeta(
            generated_at=now,
            strategy=policy.strategy.value,
            diversity_factor=policy.diversity_factor,
            used_personalization=personalized,
            used_context=insights is not None,
            time_of_day=insights.time_of_day.value if insights else None,
            weather=insights.weather.value if insights and insights.weather else None,
            season=insights.season.value if insights else None,
        )
        if not filtered:
            logger.info("No candidates left for %s after filtering (%d searched)", intent.value, len(candidates))
            return SuggestionsResult(
                intent=intent,
                is_personalized=personalized,
                user_id=user_id,
                total_candidates=len(candidates),
                warnings=warnings,
                metadata=meta,
            )

        # ── Phase 4: Scoring + diversity ────────────────────────────────
        origin = Coordinates(lat=request.lat, lng=request.lng)
        ctx = ScoringContext(
            user_id=user_id,
            profile=profile,
            history=snapshot,
            insights=insights,
            origin=origin,
            weights=weights_for(intent, self.settings.scoring_weights),
            now=now,
        )
        scored = await self.scorer.score_and_explain(filtered, ctx)
        stats = feedback_stats(snapshot) if personalized else None
        picked, strategy = select(intent, scored, max_results, self.rng, stats)
        meta = meta.model_copy(update={"strategy": strategy.value})

        # ── Phase 5: Route ──────────────────────────────────────────────
        route: Optional[OptimizedRoute] = None
        if policy.route_required and picked:
            route, picked = self._build_route(origin, picked, request, warnings)

        # ── Phase 6: Persist ────────────────────────────────────────────
        # Last cancellation point; once started, the history writes are shielded
        _check_cancelled(cancel_event)
        if personalized and picked:
            write = asyncio.ensure_future(self._persist(user_id, picked, route, request, now))
            self._pending_writes.add(write)
            write.add_done_callback(self._pending_writes.discard)
            await asyncio.shield(write)

        logger.info(
            "Returning %d/%d suggestions for %s (%s)",
            len(picked), len(candidates), user_id or "anonymous", intent.value,
        )
        return SuggestionsResult(
            intent=intent,
            is_personalized=personalized,
            user_id=user_id,
            suggestions=picked,
            route=route,
            total_candidates=len(candidates),
            warnings=warnings,
            metadata=meta,
        )

    # ── Phase 5/6 helpers ───────────────────────────────────────────────

    def _build_route(
        self,
        origin: Coordinates,
        picked: List[ScoredCandidate],
        request: SuggestionRequest,
        warnings: List[str],
    ):
        waypoints = [
            Waypoint(id=c.place.id, name=c.place.name, lat=c.place.lat, lng=c.place.lng)
            for c in picked
        ]
        try:
            route = self.optimizer.optimize(origin, waypoints, request.travel_mode)
        except OptimizationInfeasible as exc:
            warnings.append(f"Route could not be optimized: {exc}")
            return None, picked

        by_id = {c.place.id: c for c in picked}
        ordered = [by_id[w.id] for w in route.waypoints]
        return route, ordered

    async def _persist(
        self,
        user_id: str,
        picked: List[ScoredCandidate],
        route: Optional[OptimizedRoute],
        request: SuggestionRequest,
        now: datetime,
    ) -> None:
        source = request.intent.value.lower()
        entries = [
            SuggestionHistoryEntry(
                user_id=user_id,
                place_id=c.place.id,
                place_name=c.place.name,
                category=c.place.category,
                suggested_at=now,
                source=source,
                session_id=request.session_id,
            )
            for c in picked
        ]
        await self.history.add_suggestion_history(user_id, entries)

        if route is not None:
            await self.history.add_route_history(
                RouteHistoryEntry(
                    user_id=user_id,
                    route_name=f"{policy_for(request.intent).display_name} {now:%Y-%m-%d %H:%M}",
                    place_ids=[w.id for w in route.waypoints],
                    total_distance_m=route.total_distance_m,
                    created_at=now,
                    source=source,
                )
            )
