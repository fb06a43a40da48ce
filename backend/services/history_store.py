"""
services/history_store.py
─────────────────────────
Durable per-user history: favorites, exclusions, MRU suggestion / route
history and the feedback log.

Two backends share one interface:
  • MongoHistoryStore     — motor, one collection per record kind
  • InMemoryHistoryStore  — dicts guarded by a per-user ``asyncio.Lock``

MRU pruning
───────────
Every history row carries a per-user ``seq`` assigned by the store. After an
insert, rows older than the K-th newest ``seq`` are deleted. On Mongo the
sequence block for a batch is reserved with one atomic ``$inc`` on a
per-user counter document, so concurrent inserts always hold the highest
numbers and no prune can remove a row that was just written.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Dict, List, Optional, Sequence

import pymongo
from pymongo import ReturnDocument

from core.database import (
    COUNTERS_COLLECTION,
    EXCLUSIONS_COLLECTION,
    FAVORITES_COLLECTION,
    FEEDBACK_COLLECTION,
    ROUTE_HISTORY_COLLECTION,
    SUGGESTION_HISTORY_COLLECTION,
)
from models.history import (
    ExclusionEntry,
    FavoriteEntry,
    FeedbackEvent,
    HistorySnapshot,
    RouteHistoryEntry,
    SuggestionHistoryEntry,
    as_utc,
)

if TYPE_CHECKING:
    from motor.motor_asyncio import AsyncIOMotorCollection, AsyncIOMotorDatabase

logger = logging.getLogger("wandr.history")

DEFAULT_SUGGESTION_LIMIT = 20
DEFAULT_ROUTE_LIMIT = 3
DEFAULT_EXCLUSION_WINDOW = 3
SNAPSHOT_FEEDBACK_TAKE = 50

_SUGGESTION_KIND = "suggestion"
_ROUTE_KIND = "route"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class HistoryStore(ABC):
    """Backend-independent history operations."""

    def __init__(
        self,
        suggestion_limit: int = DEFAULT_SUGGESTION_LIMIT,
        route_limit: int = DEFAULT_ROUTE_LIMIT,
        exclusion_window: int = DEFAULT_EXCLUSION_WINDOW,
    ):
        self.suggestion_limit = suggestion_limit
        self.route_limit = route_limit
        self.exclusion_window = exclusion_window

    # ── Favorites ───────────────────────────────────────────────────────
    @abstractmethod
    async def add_favorite(self, entry: FavoriteEntry) -> FavoriteEntry: ...

    @abstractmethod
    async def remove_favorite(self, user_id: str, place_id: str) -> bool: ...

    @abstractmethod
    async def list_favorites(self, user_id: str) -> List[FavoriteEntry]: ...

    async def is_favorite(self, user_id: str, place_id: str) -> bool:
        return any(f.place_id == place_id for f in await self.list_favorites(user_id))

    # ── Exclusions ──────────────────────────────────────────────────────
    @abstractmethod
    async def add_exclusion(
        self,
        user_id: str,
        place_id: str,
        place_name: str = "",
        reason: Optional[str] = None,
        ttl: Optional[timedelta] = None,
        now: Optional[datetime] = None,
    ) -> ExclusionEntry: ...

    @abstractmethod
    async def remove_exclusion(self, user_id: str, place_id: str) -> bool: ...

    @abstractmethod
    async def active_exclusions(self, user_id: str, now: Optional[datetime] = None) -> List[ExclusionEntry]: ...

    async def is_excluded(self, user_id: str, place_id: str, now: Optional[datetime] = None) -> bool:
        return any(e.place_id == place_id for e in await self.active_exclusions(user_id, now))

    @abstractmethod
    async def purge_expired_exclusions(self, now: Optional[datetime] = None) -> int:
        """Delete every expired exclusion (all users). Returns the number removed."""

    # ── Suggestion / route history ──────────────────────────────────────
    @abstractmethod
    async def add_suggestion_history(
        self, user_id: str, entries: Sequence[SuggestionHistoryEntry]
    ) -> List[SuggestionHistoryEntry]: ...

    @abstractmethod
    async def recent_suggestions(self, user_id: str, take: int = DEFAULT_SUGGESTION_LIMIT) -> List[SuggestionHistoryEntry]: ...

    async def get_recently_excluded_place_ids(self, user_id: str, window_size: Optional[int] = None) -> List[str]:
        """Place ids of the newest ``window_size`` suggestion-history rows."""
        window = self.exclusion_window if window_size is None else window_size
        if window <= 0:
            return []
        return [entry.place_id for entry in await self.recent_suggestions(user_id, take=window)]

    @abstractmethod
    async def add_route_history(self, entry: RouteHistoryEntry) -> RouteHistoryEntry: ...

    @abstractmethod
    async def route_history(self, user_id: str) -> List[RouteHistoryEntry]: ...

    # ── Feedback ────────────────────────────────────────────────────────
    @abstractmethod
    async def record_feedback(self, event: FeedbackEvent) -> FeedbackEvent: ...

    @abstractmethod
    async def recent_feedback(self, user_id: str, take: int = SNAPSHOT_FEEDBACK_TAKE) -> List[FeedbackEvent]: ...

    @abstractmethod
    async def delete_user_data(self, user_id: str) -> int:
        """Remove every history record for ``user_id``. Returns the number removed."""

    # ── Snapshot ────────────────────────────────────────────────────────
    async def snapshot(self, user_id: str, now: Optional[datetime] = None) -> HistorySnapshot:
        """Read everything the scorers need for one request in one go."""
        now = now or _utcnow()
        favorites, exclusions, suggestions, feedback = await asyncio.gather(
            self.list_favorites(user_id),
            self.active_exclusions(user_id, now),
            self.recent_suggestions(user_id, take=self.suggestion_limit),
            self.recent_feedback(user_id, take=SNAPSHOT_FEEDBACK_TAKE),
        )
        window = suggestions[: self.exclusion_window] if self.exclusion_window > 0 else []
        return HistorySnapshot(
            favorite_ids=frozenset(f.place_id for f in favorites),
            favorite_categories=tuple(f.category for f in favorites if f.category),
            recent_suggestions=tuple(suggestions),
            recent_feedback=tuple(feedback),
            active_exclusion_ids=frozenset(e.place_id for e in exclusions),
            recently_excluded_ids=frozenset(entry.place_id for entry in window),
        )


# ═══════════════════════════════════════════════════════════════════════════
# MongoDB backend
# ═══════════════════════════════════════════════════════════════════════════

def _strip_id(doc: dict) -> dict:
    doc.pop("_id", None)
    return doc


class MongoHistoryStore(HistoryStore):
    def __init__(self, db: "AsyncIOMotorDatabase", **limits):
        super().__init__(**limits)
        self.favorites: "AsyncIOMotorCollection" = db[FAVORITES_COLLECTION]
        self.exclusions: "AsyncIOMotorCollection" = db[EXCLUSIONS_COLLECTION]
        self.suggestions: "AsyncIOMotorCollection" = db[SUGGESTION_HISTORY_COLLECTION]
        self.routes: "AsyncIOMotorCollection" = db[ROUTE_HISTORY_COLLECTION]
        self.feedback: "AsyncIOMotorCollection" = db[FEEDBACK_COLLECTION]
        self.counters: "AsyncIOMotorCollection" = db[COUNTERS_COLLECTION]

    # ── Sequence reservation & pruning ──────────────────────────────────

    async def _reserve_seq(self, kind: str, user_id: str, count: int) -> int:
        """Atomically reserve ``count`` sequence numbers; returns the first."""
        counter = await self.counters.find_one_and_update(
            {"_id": f"{kind}:{user_id}"},
            {"$inc": {"seq": count}},
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
        return counter["seq"] - count + 1

    @staticmethod
    async def _prune(collection: "AsyncIOMotorCollection", user_id: str, keep: int) -> int:
        cursor = (
            collection.find({"user_id": user_id}, {"seq": 1})
            .sort("seq", pymongo.DESCENDING)
            .skip(keep - 1)
            .limit(1)
        )
        boundary = await cursor.to_list(length=1)
        if not boundary:
            return 0
        result = await collection.delete_many({"user_id": user_id, "seq": {"$lt": boundary[0]["seq"]}})
        return result.deleted_count

    # ── Favorites ───────────────────────────────────────────────────────

    async def add_favorite(self, entry: FavoriteEntry) -> FavoriteEntry:
        await self.favorites.update_one(
            {"user_id": entry.user_id, "place_id": entry.place_id},
            {"$set": entry.model_dump()},
            upsert=True,
        )
        return entry

    async def remove_favorite(self, user_id: str, place_id: str) -> bool:
        result = await self.favorites.delete_one({"user_id": user_id, "place_id": place_id})
        return result.deleted_count > 0

    async def list_favorites(self, user_id: str) -> List[FavoriteEntry]:
        cursor = self.favorites.find({"user_id": user_id}).sort("added_at", pymongo.DESCENDING)
        return [FavoriteEntry(**_strip_id(doc)) async for doc in cursor]

    async def is_favorite(self, user_id: str, place_id: str) -> bool:
        return await self.favorites.count_documents({"user_id": user_id, "place_id": place_id}, limit=1) > 0

    # ── Exclusions ──────────────────────────────────────────────────────

    async def add_exclusion(
        self,
        user_id: str,
        place_id: str,
        place_name: str = "",
        reason: Optional[str] = None,
        ttl: Optional[timedelta] = None,
        now: Optional[datetime] = None,
    ) -> ExclusionEntry:
        now = now or _utcnow()
        entry = ExclusionEntry(
            user_id=user_id,
            place_id=place_id,
            place_name=place_name,
            reason=reason,
            created_at=now,
            expires_at=now + ttl if ttl is not None else None,
        )
        await self.exclusions.update_one(
            {"user_id": user_id, "place_id": place_id},
            {"$set": entry.model_dump()},
            upsert=True,
        )
        return entry

    async def remove_exclusion(self, user_id: str, place_id: str) -> bool:
        result = await self.exclusions.delete_one({"user_id": user_id, "place_id": place_id})
        return result.deleted_count > 0

    async def active_exclusions(self, user_id: str, now: Optional[datetime] = None) -> List[ExclusionEntry]:
        now = now or _utcnow()
        cursor = self.exclusions.find({
            "user_id": user_id,
            "$or": [{"expires_at": None}, {"expires_at": {"$gt": now}}],
        })
        return [ExclusionEntry(**_strip_id(doc)) async for doc in cursor]

    async def purge_expired_exclusions(self, now: Optional[datetime] = None) -> int:
        now = now or _utcnow()
        result = await self.exclusions.delete_many({"expires_at": {"$ne": None, "$lte": now}})
        if result.deleted_count:
            logger.info("Purged %d expired exclusions", result.deleted_count)
        return result.deleted_count

    # ── Suggestion history ──────────────────────────────────────────────

    async def add_suggestion_history(
        self, user_id: str, entries: Sequence[SuggestionHistoryEntry]
    ) -> List[SuggestionHistoryEntry]:
        if not entries:
            return []
        first = await self._reserve_seq(_SUGGESTION_KIND, user_id, len(entries))
        stored = [
            entry.model_copy(update={"user_id": user_id, "seq": first + i})
            for i, entry in enumerate(entries)
        ]
        await self.suggestions.insert_many([entry.model_dump() for entry in stored])
        pruned = await self._prune(self.suggestions, user_id, self.suggestion_limit)
        logger.debug("Stored %d suggestions for %s (pruned %d)", len(stored), user_id, pruned)
        return stored

    async def recent_suggestions(self, user_id: str, take: int = DEFAULT_SUGGESTION_LIMIT) -> List[SuggestionHistoryEntry]:
        if take <= 0:
            return []
        cursor = self.suggestions.find({"user_id": user_id}).sort("seq", pymongo.DESCENDING).limit(take)
        return [SuggestionHistoryEntry(**_strip_id(doc)) async for doc in cursor]

    # ── Route history ───────────────────────────────────────────────────

    async def add_route_history(self, entry: RouteHistoryEntry) -> RouteHistoryEntry:
        seq = await self._reserve_seq(_ROUTE_KIND, entry.user_id, 1)
        stored = entry.model_copy(update={"seq": seq})
        await self.routes.insert_one(stored.model_dump())
        await self._prune(self.routes, entry.user_id, self.route_limit)
        return stored

    async def route_history(self, user_id: str) -> List[RouteHistoryEntry]:
        cursor = self.routes.find({"user_id": user_id}).sort("seq", pymongo.DESCENDING).limit(self.route_limit)
        return [RouteHistoryEntry(**_strip_id(doc)) async for doc in cursor]

    # ── Feedback ────────────────────────────────────────────────────────

    async def record_feedback(self, event: FeedbackEvent) -> FeedbackEvent:
        await self.feedback.insert_one(event.model_dump())
        return event

    async def recent_feedback(self, user_id: str, take: int = SNAPSHOT_FEEDBACK_TAKE) -> List[FeedbackEvent]:
        cursor = self.feedback.find({"user_id": user_id}).sort("created_at", pymongo.DESCENDING).limit(take)
        return [FeedbackEvent(**_strip_id(doc)) async for doc in cursor]

    # ── Erasure ─────────────────────────────────────────────────────────

    async def delete_user_data(self, user_id: str) -> int:
        removed = 0
        for collection in (self.favorites, self.exclusions, self.suggestions, self.routes, self.feedback):
            result = await collection.delete_many({"user_id": user_id})
            removed += result.deleted_count
        await self.counters.delete_many({"_id": {"$in": [f"{_SUGGESTION_KIND}:{user_id}", f"{_ROUTE_KIND}:{user_id}"]}})
        logger.info("Deleted %d history records for %s", removed, user_id)
        return removed


# ═══════════════════════════════════════════════════════════════════════════
# In-memory backend
# ═══════════════════════════════════════════════════════════════════════════

class InMemoryHistoryStore(HistoryStore):
    """Process-local backend for development and tests."""

    def __init__(self, **limits):
        super().__init__(**limits)
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._counters: Dict[str, int] = defaultdict(int)
        self._favorites: Dict[str, Dict[str, FavoriteEntry]] = defaultdict(dict)
        self._exclusions: Dict[str, Dict[str, ExclusionEntry]] = defaultdict(dict)
        self._suggestions: Dict[str, List[SuggestionHistoryEntry]] = defaultdict(list)
        self._routes: Dict[str, List[RouteHistoryEntry]] = defaultdict(list)
        self._feedback: Dict[str, List[FeedbackEvent]] = defaultdict(list)

    def _reserve_seq(self, kind: str, user_id: str, count: int) -> int:
        key = f"{kind}:{user_id}"
        self._counters[key] += count
        return self._counters[key] - count + 1

    # ── Favorites ───────────────────────────────────────────────────────

    async def add_favorite(self, entry: FavoriteEntry) -> FavoriteEntry:
        async with self._locks[entry.user_id]:
            self._favorites[entry.user_id][entry.place_id] = entry.model_copy()
        return entry

    async def remove_favorite(self, user_id: str, place_id: str) -> bool:
        async with self._locks[user_id]:
            return self._favorites[user_id].pop(place_id, None) is not None

    async def list_favorites(self, user_id: str) -> List[FavoriteEntry]:
        favorites = list(self._favorites.get(user_id, {}).values())
        favorites.sort(key=lambda f: as_utc(f.added_at), reverse=True)
        return [f.model_copy() for f in favorites]

    # ── Exclusions ──────────────────────────────────────────────────────

    async def add_exclusion(
        self,
        user_id: str,
        place_id: str,
        place_name: str = "",
        reason: Optional[str] = None,
        ttl: Optional[timedelta] = None,
        now: Optional[datetime] = None,
    ) -> ExclusionEntry:
        now = now or _utcnow()
        entry = ExclusionEntry(
            user_id=user_id,
            place_id=place_id,
            place_name=place_name,
            reason=reason,
            created_at=now,
            expires_at=now + ttl if ttl is not None else None,
        )
        async with self._locks[user_id]:
            self._exclusions[user_id][place_id] = entry
        return entry.model_copy()

    async def remove_exclusion(self, user_id: str, place_id: str) -> bool:
        async with self._locks[user_id]:
            return self._exclusions[user_id].pop(place_id, None) is not None

    async def active_exclusions(self, user_id: str, now: Optional[datetime] = None) -> List[ExclusionEntry]:
        now = now or _utcnow()
        return [e.model_copy() for e in self._exclusions.get(user_id, {}).values() if e.is_active(now)]

    async def purge_expired_exclusions(self, now: Optional[datetime] = None) -> int:
        now = now or _utcnow()
        removed = 0
        for user_id in list(self._exclusions):
            async with self._locks[user_id]:
                entries = self._exclusions[user_id]
                for place_id in [pid for pid, e in entries.items() if not e.is_active(now)]:
                    del entries[place_id]
                    removed += 1
        if removed:
            logger.info("Purged %d expired exclusions", removed)
        return removed

    # ── Suggestion history ──────────────────────────────────────────────

    async def add_suggestion_history(
        self, user_id: str, entries: Sequence[SuggestionHistoryEntry]
    ) -> List[SuggestionHistoryEntry]:
        if not entries:
            return []
        async with self._locks[user_id]:
            first = self._reserve_seq(_SUGGESTION_KIND, user_id, len(entries))
            stored = [
                entry.model_copy(update={"user_id": user_id, "seq": first + i})
                for i, entry in enumerate(entries)
            ]
            rows = self._suggestions[user_id]
            rows.extend(stored)
            rows.sort(key=lambda e: e.seq, reverse=True)
            del rows[self.suggestion_limit:]
        return [entry.model_copy() for entry in stored]

    async def recent_suggestions(self, user_id: str, take: int = DEFAULT_SUGGESTION_LIMIT) -> List[SuggestionHistoryEntry]:
        if take <= 0:
            return []
        return [entry.model_copy() for entry in self._suggestions.get(user_id, [])[:take]]

    # ── Route history ───────────────────────────────────────────────────

    async def add_route_history(self, entry: RouteHistoryEntry) -> RouteHistoryEntry:
        async with self._locks[entry.user_id]:
            stored = entry.model_copy(update={"seq": self._reserve_seq(_ROUTE_KIND, entry.user_id, 1)})
            rows = self._routes[entry.user_id]
            rows.append(stored)
            rows.sort(key=lambda e: e.seq, reverse=True)
            del rows[self.route_limit:]
        return stored.model_copy()

    async def route_history(self, user_id: str) -> List[RouteHistoryEntry]:
        return [entry.model_copy() for entry in self._routes.get(user_id, [])]

    # ── Feedback ────────────────────────────────────────────────────────

    async def record_feedback(self, event: FeedbackEvent) -> FeedbackEvent:
        async with self._locks[event.user_id]:
            self._feedback[event.user_id].append(event.model_copy())
        return event

    async def recent_feedback(self, user_id: str, take: int = SNAPSHOT_FEEDBACK_TAKE) -> List[FeedbackEvent]:
        events = sorted(self._feedback.get(user_id, []), key=lambda e: as_utc(e.created_at), reverse=True)
        return [e.model_copy() for e in events[:take]]

    # ── Erasure ─────────────────────────────────────────────────────────

    async def delete_user_data(self, user_id: str) -> int:
        async with self._locks[user_id]:
            removed = 0
            for table in (self._favorites, self._exclusions, self._suggestions, self._routes, self._feedback):
                removed += len(table.pop(user_id, ()))
            self._counters.pop(f"{_SUGGESTION_KIND}:{user_id}", None)
            self._counters.pop(f"{_ROUTE_KIND}:{user_id}", None)
        logger.info("Deleted %d history records for %s", removed, user_id)
        return removed
