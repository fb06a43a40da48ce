"""
models/history.py
─────────────────
Durable per-user history documents and the per-request snapshot built from them.

Covers:
  • FavoriteEntry           — unbounded set of saved places
  • ExclusionEntry          — "don't show again", optional expiry
  • SuggestionHistoryEntry  — MRU, newest 20 kept (by ``seq``)
  • RouteHistoryEntry       — MRU, newest 3 kept (by ``seq``)
  • FeedbackEvent           — like / dislike / skip / visited log
  • HistorySnapshot         — immutable view handed to the scorers
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import FrozenSet, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from models.taste import FeedbackType


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes (as returned by pymongo) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class FavoriteEntry(BaseModel):
    user_id: str
    place_id: str
    place_name: str = ""
    category: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None
    notes: Optional[str] = None
    added_at: datetime = Field(default_factory=_utcnow)


class ExclusionEntry(BaseModel):
    user_id: str
    place_id: str
    place_name: str = ""
    reason: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow)
    expires_at: Optional[datetime] = None

    @property
    def is_permanent(self) -> bool:
        return self.expires_at is None

    def is_active(self, now: datetime) -> bool:
        """An exclusion applies while it has no expiry or the expiry is in the future."""
        return self.expires_at is None or as_utc(self.expires_at) > as_utc(now)


class SuggestionHistoryEntry(BaseModel):
    """
    One suggested place.

    ``seq`` is assigned by the history store; any value supplied by the
    caller is overwritten on insert.
    """

    user_id: str
    place_id: str
    place_name: str = ""
    category: Optional[str] = None
    suggested_at: datetime = Field(default_factory=_utcnow)
    source: str = "suggestions"
    session_id: Optional[str] = None
    seq: int = 0


class RouteHistoryEntry(BaseModel):
    user_id: str
    route_name: str = ""
    place_ids: List[str] = Field(default_factory=list)
    total_distance_m: float = 0.0
    created_at: datetime = Field(default_factory=_utcnow)
    source: str = "route_planning"
    seq: int = 0

    @property
    def place_count(self) -> int:
        return len(self.place_ids)


class FeedbackEvent(BaseModel):
    user_id: str
    place_id: str
    category: str = ""
    feedback_type: FeedbackType
    created_at: datetime = Field(default_factory=_utcnow)


class HistorySnapshot(BaseModel):
    """
    Read-only history view for one request.

    Built once per request (never per candidate). Lists are newest first.
    """

    model_config = ConfigDict(frozen=True)

    favorite_ids: FrozenSet[str] = frozenset()
    favorite_categories: Tuple[str, ...] = ()
    recent_suggestions: Tuple[SuggestionHistoryEntry, ...] = ()
    recent_feedback: Tuple[FeedbackEvent, ...] = ()
    active_exclusion_ids: FrozenSet[str] = frozenset()
    recently_excluded_ids: FrozenSet[str] = frozenset()

    @classmethod
    def empty(cls) -> "HistorySnapshot":
        return cls()

    @property
    def is_empty(self) -> bool:
        return not (self.favorite_ids or self.recent_suggestions or self.recent_feedback)

    @property
    def blocked_ids(self) -> FrozenSet[str]:
        """Place ids that must not be suggested in this request."""
        return self.active_exclusion_ids | self.recently_excluded_ids
