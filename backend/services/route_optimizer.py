"""
services/route_optimizer.py
───────────────────────────
Orders waypoints into a short open path starting at the origin.

  • ≤ EXACT_SOLVER_MAX_POINTS points (origin included) → Held–Karp, exact
  • larger inputs                                        → nearest neighbour + 2-opt

Travel cost is pluggable through a ``TravelCostFn``; the default is
great-circle distance with a per-mode average speed. The returned route is
never costlier than visiting the waypoints in their input order.
"""

from __future__ import annotations

import logging
import math
from typing import Callable, List, Optional, Sequence

from core.errors import OptimizationInfeasible
from models.place import Coordinates, haversine_m
from models.route import (
    MODE_SPEED_MPS,
    OptimizationMethod,
    OptimizedRoute,
    RouteLeg,
    RouteStop,
    TravelMode,
    Waypoint,
)

logger = logging.getLogger("wandr.routing")

TravelCostFn = Callable[[Coordinates, Coordinates, TravelMode], RouteLeg]

_EPS = 1e-9
_MAX_TWO_OPT_PASSES = 50


def haversine_leg(origin: Coordinates, destination: Coordinates, mode: TravelMode) -> RouteLeg:
    distance = haversine_m(origin, destination)
    return RouteLeg(distance_m=distance, duration_s=distance / MODE_SPEED_MPS[mode])


# ── Solvers (index 0 is the origin; orders list waypoint indices 1..n) ─────

def held_karp(dist: Sequence[Sequence[float]]) -> List[int]:
    """Exact shortest open path from node 0 through every other node."""
    m = len(dist) - 1
    if m <= 0:
        return []
    full = (1 << m) - 1
    dp = [[math.inf] * m for _ in range(1 << m)]
    parent = [[-1] * m for _ in range(1 << m)]
    for j in range(m):
        dp[1 << j][j] = dist[0][j + 1]

    for mask in range(1, 1 << m):
        row = dp[mask]
        for j in range(m):
            cost = row[j]
            if cost == math.inf or not mask & (1 << j):
                continue
            for k in range(m):
                if mask & (1 << k):
                    continue
                nxt = mask | (1 << k)
                candidate = cost + dist[j + 1][k + 1]
                if candidate < dp[nxt][k]:
                    dp[nxt][k] = candidate
                    parent[nxt][k] = j

    last = min(range(m), key=lambda j: dp[full][j])
    order: List[int] = []
    mask, j = full, last
    while j != -1:
        order.append(j + 1)
        previous = parent[mask][j]
        mask ^= 1 << j
        j = previous
    order.reverse()
    return order


def nearest_neighbor(dist: Sequence[Sequence[float]]) -> List[int]:
    unvisited = list(range(1, len(dist)))
    order: List[int] = []
    current = 0
    while unvisited:
        nxt = min(unvisited, key=lambda k: dist[current][k])
        unvisited.remove(nxt)
        order.append(nxt)
        current = nxt
    return order


def path_cost(order: Sequence[int], dist: Sequence[Sequence[float]]) -> float:
    total = 0.0
    current = 0
    for node in order:
        total += dist[current][node]
        current = node
    return total


def two_opt(order: List[int], dist: Sequence[Sequence[float]]) -> List[int]:
    """Reverse segments while that shortens the path (full-path comparison)."""
    best = list(order)
    best_cost = path_cost(best, dist)
    for _ in range(_MAX_TWO_OPT_PASSES):
        improved = False
        for i in range(len(best) - 1):
            for k in range(i + 1, len(best)):
                candidate = best[:i] + best[i:k + 1][::-1] + best[k + 1:]
                cost = path_cost(candidate, dist)
                if cost < best_cost - _EPS:
                    best, best_cost = candidate, cost
                    improved = True
        if not improved:
            break
    return best


# ═══════════════════════════════════════════════════════════════════════════
# Optimizer
# ═══════════════════════════════════════════════════════════════════════════

class RouteOptimizer:
    def __init__(self, cost_fn: Optional[TravelCostFn] = None, exact_max_points: int = 10):
        self.cost_fn = cost_fn or haversine_leg
        self.exact_max_points = exact_max_points

    def _leg(self, origin: Coordinates, destination: Coordinates, mode: TravelMode) -> RouteLeg:
        """One matrix entry; a failing cost provider degrades to great-circle distance."""
        try:
            return self.cost_fn(origin, destination, mode)
        except Exception as exc:
            logger.warning("Travel cost lookup failed (%s); using great-circle leg", exc)
            return haversine_leg(origin, destination, mode)

    def optimize(
        self,
        origin: Coordinates,
        waypoints: Sequence[Waypoint],
        mode: TravelMode = TravelMode.WALKING,
    ) -> OptimizedRoute:
        if not waypoints:
            raise OptimizationInfeasible("At least one waypoint is required")

        points = [origin] + [w.coordinates for w in waypoints]
        legs = [
            [self._leg(a, b, mode) if i != j else RouteLeg(distance_m=0.0, duration_s=0.0)
             for j, b in enumerate(points)]
            for i, a in enumerate(points)
        ]
        dist = [[leg.distance_m for leg in row] for row in legs]

        naive_order = list(range(1, len(points)))
        naive_cost = path_cost(naive_order, dist)

        order: Optional[List[int]] = None
        method = OptimizationMethod.NONE

        if len(points) <= self.exact_max_points:
            try:
                order = held_karp(dist)
                method = OptimizationMethod.EXACT
            except Exception:
                logger.exception("Exact solver failed for %d points; using heuristic", len(points))
                order = None

        if order is None:
            try:
                order = two_opt(nearest_neighbor(dist), dist)
                method = OptimizationMethod.NEAREST_NEIGHBOR
            except Exception:
                logger.exception("Heuristic solver failed; keeping input order")
                order = naive_order
                method = OptimizationMethod.NONE

        # every waypoint is mandatory: a tour must be a permutation of the input
        if sorted(order) != naive_order:
            logger.error("Solver returned %d of %d waypoints; keeping input order", len(order), len(naive_order))
            order = naive_order
            method = OptimizationMethod.NONE

        if path_cost(order, dist) > naive_cost + _EPS:
            order = naive_order

        stops: List[RouteStop] = []
        previous = 0
        for position, node in enumerate(order, start=1):
            stops.append(RouteStop(waypoint=waypoints[node - 1], order=position, leg=legs[previous][node]))
            previous = node

        total_distance = sum(stop.leg.distance_m for stop in stops)
        total_duration = sum(stop.leg.duration_s for stop in stops)
        improvement = (naive_cost - total_distance) / naive_cost * 100.0 if naive_cost > 0 else 0.0

        logger.info(
            "Optimized %d waypoints with %s: %.0f m (naive %.0f m, %.1f%% better)",
            len(waypoints), method.value, total_distance, naive_cost, improvement,
        )
        return OptimizedRoute(
            origin=origin,
            mode=mode,
            stops=stops,
            total_distance_m=total_distance,
            total_duration_s=total_duration,
            naive_distance_m=naive_cost,
            method=method,
            improvement_pct=max(0.0, improvement),
        )
