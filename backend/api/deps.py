"""
api/deps.py
───────────
Request-scoped accessors for the services built in the lifespan.

Authentication is out of scope: the caller's identity arrives in the
``X-User-Id`` header and is trusted as-is.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Header, HTTPException, Request

from core.config import Settings
from services.history_store import HistoryStore
from services.orchestrator import SuggestionOrchestrator
from services.route_optimizer import RouteOptimizer
from services.taste_profile_store import TasteProfileService


def optional_user_id(x_user_id: Optional[str] = Header(default=None)) -> Optional[str]:
    if x_user_id is None or not x_user_id.strip():
        return None
    return x_user_id.strip()


def require_user_id(x_user_id: Optional[str] = Header(default=None)) -> str:
    user_id = optional_user_id(x_user_id)
    if user_id is None:
        raise HTTPException(status_code=401, detail="X-User-Id header is required")
    return user_id


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_orchestrator(request: Request) -> SuggestionOrchestrator:
    return request.app.state.orchestrator


def get_history_store(request: Request) -> HistoryStore:
    return request.app.state.history_store


def get_profile_service(request: Request) -> TasteProfileService:
    return request.app.state.profile_service


def get_route_optimizer(request: Request) -> RouteOptimizer:
    return request.app.state.route_optimizer
