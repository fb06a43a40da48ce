"""
services/context.py
───────────────────
Ambient context for a location: local time of day, season and live weather.

Weather comes from WeatherAPI.com with a strict timeout. When the API key is
missing the circuit breaker trips immediately and no call is made; any
failure simply leaves ``weather`` empty. Time of day and season are always
derived, from the provider's local time when available or from the
longitude otherwise.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Protocol

import httpx

from models.scoring import ContextInsights, Season, TimeOfDay, WeatherCondition

logger = logging.getLogger("wandr.context")

WEATHER_API_URL = "http://api.weatherapi.com/v1/current.json"

# Condition keywords (lowercased), checked in order
_CONDITION_KEYWORDS = (
    (WeatherCondition.STORM, ("thunder", "storm")),
    (WeatherCondition.SNOW, ("snow", "sleet", "blizzard", "ice pellets")),
    (WeatherCondition.RAIN, ("rain", "drizzle", "shower")),
    (WeatherCondition.CLOUDY, ("cloud", "overcast", "mist", "fog")),
    (WeatherCondition.CLEAR, ("sunny", "clear")),
)


class ContextProvider(Protocol):
    async def insights(self, lat: float, lng: float) -> Optional[ContextInsights]: ...


# ── Pure derivations ───────────────────────────────────────────────────────

def time_of_day(hour: int) -> TimeOfDay:
    if 5 <= hour < 8:
        return TimeOfDay.EARLY_MORNING
    if 8 <= hour < 11:
        return TimeOfDay.MORNING
    if 11 <= hour < 14:
        return TimeOfDay.LUNCH
    if 14 <= hour < 17:
        return TimeOfDay.AFTERNOON
    if 17 <= hour < 21:
        return TimeOfDay.EVENING
    return TimeOfDay.NIGHT


def season_for(month: int, lat: float) -> Season:
    """Meteorological season; flipped in the southern hemisphere."""
    northern = {
        12: Season.WINTER, 1: Season.WINTER, 2: Season.WINTER,
        3: Season.SPRING, 4: Season.SPRING, 5: Season.SPRING,
        6: Season.SUMMER, 7: Season.SUMMER, 8: Season.SUMMER,
        9: Season.AUTUMN, 10: Season.AUTUMN, 11: Season.AUTUMN,
    }[month]
    if lat >= 0:
        return northern
    return {
        Season.WINTER: Season.SUMMER,
        Season.SUMMER: Season.WINTER,
        Season.SPRING: Season.AUTUMN,
        Season.AUTUMN: Season.SPRING,
    }[northern]


def condition_from_text(text: str) -> Optional[WeatherCondition]:
    lowered = text.lower()
    for condition, keywords in _CONDITION_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return condition
    return None


def approximate_local_time(lng: float, now: datetime) -> datetime:
    """Solar-offset local time (15° of longitude per hour)."""
    return now.astimezone(timezone.utc) + timedelta(hours=round(lng / 15.0))


def insights_from_weather(
    lat: float,
    lng: float,
    payload: Optional[Dict[str, Any]],
    now: datetime,
) -> ContextInsights:
    """Build insights from a ``current.json`` response (or None)."""
    local = approximate_local_time(lng, now)
    weather: Optional[WeatherCondition] = None
    temperature: Optional[float] = None

    if payload:
        try:
            local = datetime.strptime(payload["location"]["localtime"], "%Y-%m-%d %H:%M")
        except (KeyError, TypeError, ValueError):
            pass
        try:
            weather = condition_from_text(payload["current"]["condition"]["text"])
            temperature = float(payload["current"]["temp_c"])
        except (KeyError, TypeError, ValueError):
            logger.warning("Malformed weather payload for (%.4f, %.4f)", lat, lng)

    return ContextInsights(
        time_of_day=time_of_day(local.hour),
        season=season_for(local.month, lat),
        weather=weather,
        temperature_c=temperature,
    )


# ═══════════════════════════════════════════════════════════════════════════
# WeatherAPI provider
# ═══════════════════════════════════════════════════════════════════════════

class WeatherContextProvider:
    def __init__(
        self,
        api_key: str,
        timeout: float = 2.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.timeout = timeout
        self.transport = transport

    async def _fetch_live_weather(self, lat: float, lng: float) -> Optional[Dict[str, Any]]:
        """
        Call WeatherAPI.com with a strict timeout.

        **Guard clause**: a missing or empty API key trips the circuit
        breaker and no network call is attempted.
        """
        if not self.api_key or not self.api_key.strip():
            logger.warning("WEATHERAPI_API_KEY is missing or empty; circuit breaker tripped")
            return None

        params = {"key": self.api_key, "q": f"{lat},{lng}"}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                resp = await client.get(WEATHER_API_URL, params=params)
                resp.raise_for_status()
                return resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Live weather fetch failed (lat=%s, lng=%s): %s", lat, lng, exc)
            return None

    async def insights(self, lat: float, lng: float, now: Optional[datetime] = None) -> ContextInsights:
        payload = await self._fetch_live_weather(lat, lng)
        return insights_from_weather(lat, lng, payload, now or datetime.now(timezone.utc))
