"""
HTTP-level tests for the FastAPI application (memory backend).

Test classes:
  1. TestOps           -- health check, security headers
  2. TestSuggestions   -- suggestions endpoint, validation errors
  3. TestProfile       -- profile GET / PUT / DELETE, taste quiz
  4. TestFeedback      -- identity required, profile nudges, exclusions
  5. TestRoutes        -- ad-hoc route optimization
  6. TestHistory       -- favorites and exclusions endpoints
"""

import pytest
from fastapi.testclient import TestClient

from conftest import ORIGIN_LAT, ORIGIN_LNG, StaticContext, make_place
from core.errors import ConcurrencyConflict
from main import create_app
from services.place_search import InMemoryPlaceSearch
from services.taste_profile_store import InMemoryTasteProfileStore, TasteProfileService

USER = {"X-User-Id": "user-42"}


class AlwaysStaleStore(InMemoryTasteProfileStore):
    async def create(self, profile):
        raise ConcurrencyConflict(profile.user_id, profile.version)

    async def update(self, profile):
        raise ConcurrencyConflict(profile.user_id, profile.version)


@pytest.fixture
def client(settings, midday_context):
    catalog = InMemoryPlaceSearch([
        make_place("rest-1", "restaurant", name="Karaköy Lokantası"),
        make_place("cafe-1", "cafe", d_lat=0.002, name="Kronotrop"),
        make_place("mus-1", "museum", d_lng=0.003, name="Pera Museum"),
        make_place("park-1", "park", d_lat=-0.004, name="Gezi Park"),
        make_place("bar-1", "bar", d_lng=-0.002, name="360 Istanbul"),
    ])
    app = create_app(settings, place_search=catalog, context=StaticContext(midday_context))
    with TestClient(app) as test_client:
        yield test_client


def _suggest(client, headers=None, **body):
    payload = {"lat": ORIGIN_LAT, "lng": ORIGIN_LNG}
    payload.update(body)
    return client.post("/api/v1/suggestions", json=payload, headers=headers or {})


# ===================================================================
# 1. Ops
# ===================================================================

class TestOps:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "storage": "memory"}

    def test_security_headers(self, client):
        response = client.get("/health")
        assert "max-age=31536000" in response.headers["strict-transport-security"]
        assert response.headers["x-frame-options"].upper() == "DENY"


# ===================================================================
# 2. Suggestions
# ===================================================================

class TestSuggestions:

    def test_anonymous_quick_suggestion(self, client):
        response = _suggest(client)
        assert response.status_code == 200
        data = response.json()
        assert data["intent"] == "QUICK_SUGGESTION"
        assert data["is_personalized"] is False
        assert len(data["suggestions"]) == 3
        assert data["metadata"]["time_of_day"] == "lunch"
        for suggestion in data["suggestions"]:
            assert 2 <= len(suggestion["reasons"]) <= 4

    def test_personalized_request_is_recorded(self, client):
        response = _suggest(client, headers=USER, intent="FOOD_ONLY")
        assert response.status_code == 200
        returned = {s["place"]["id"] for s in response.json()["suggestions"]}
        assert returned <= {"rest-1", "cafe-1", "bar-1"}

        history = client.get("/api/v1/history/suggestions", headers=USER).json()
        assert {h["place_id"] for h in history} == returned
        assert all(h["source"] == "food_only" for h in history)

    def test_route_planning_returns_route(self, client):
        response = _suggest(client, headers=USER, intent="ROUTE_PLANNING", walking_distance_m=3000)
        assert response.status_code == 200
        data = response.json()
        assert data["route"] is not None
        route_ids = [stop["waypoint"]["id"] for stop in data["route"]["stops"]]
        assert route_ids == [s["place"]["id"] for s in data["suggestions"]]

        routes = client.get("/api/v1/history/routes", headers=USER).json()
        assert len(routes) == 1

    def test_invalid_input_lists_every_error(self, client):
        response = _suggest(client, lat=123.0, radius_m=5)
        assert response.status_code == 422
        assert len(response.json()["detail"]) == 2

    def test_route_planning_without_walking_distance(self, client):
        response = _suggest(client, intent="ROUTE_PLANNING")
        assert response.status_code == 422

    def test_unknown_intent_rejected(self, client):
        assert _suggest(client, intent="TELEPORT").status_code == 422


# ===================================================================
# 3. Profile
# ===================================================================

class TestProfile:

    def test_profile_requires_identity(self, client):
        assert client.get("/api/v1/profile").status_code == 401

    def test_default_profile_is_neutral(self, client):
        data = client.get("/api/v1/profile", headers=USER).json()
        assert data["version"] == 0
        assert data["interests"]["Food"] == 0.5

    def test_put_then_get(self, client):
        response = client.put(
            "/api/v1/profile",
            json={"weights": {"Food": 0.9, "Culture": 0.1}},
            headers=USER,
        )
        assert response.status_code == 200
        assert response.json()["version"] == 1

        data = client.get("/api/v1/profile", headers=USER).json()
        assert data["interests"]["Food"] == 0.9
        assert data["interests"]["Culture"] == 0.1

    def test_quiz_definition_hides_deltas(self, client):
        response = client.get("/api/v1/profile/quiz")
        assert response.status_code == 200
        quiz = response.json()
        assert quiz["version"] == "v1"
        option = quiz["steps"][0]["options"][0]
        assert set(option) == {"id", "label"}

    def test_submit_quiz_answers(self, client):
        response = client.post(
            "/api/v1/profile/quiz",
            json={"answers": {"free_day": "outdoors", "discovery": "new"}},
            headers=USER,
        )
        assert response.status_code == 200
        data = response.json()
        assert data["interests"]["Nature"] == pytest.approx(0.8)
        assert data["novelty_tolerance"] == pytest.approx(0.9)
        assert data["quiz_version"] == "v1"

    def test_submit_quiz_unknown_option(self, client):
        response = client.post(
            "/api/v1/profile/quiz", json={"answers": {"free_day": "skydiving"}}, headers=USER
        )
        assert response.status_code == 422

    def test_delete_removes_profile_and_history(self, client):
        client.put("/api/v1/profile", json={"weights": {"Food": 0.9}}, headers=USER)
        _suggest(client, headers=USER)

        data = client.delete("/api/v1/profile", headers=USER).json()
        assert data["profile_deleted"] is True
        assert data["history_records_deleted"] == 3
        assert client.get("/api/v1/history/suggestions", headers=USER).json() == []


# ===================================================================
# 4. Feedback
# ===================================================================

class TestFeedback:

    def test_feedback_requires_identity(self, client):
        response = client.post("/api/v1/feedback/rest-1", json={"feedback_type": "like"})
        assert response.status_code == 401

    def test_like_nudges_profile(self, client):
        response = client.post(
            "/api/v1/feedback/rest-1",
            json={"feedback_type": "like", "category": "restaurant"},
            headers=USER,
        )
        assert response.status_code == 200
        data = response.json()
        assert data["action"] == "like"
        assert data["profile_version"] == 1

        profile = client.get("/api/v1/profile", headers=USER).json()
        assert profile["interests"]["Food"] == pytest.approx(0.55)

    def test_visited_only_records_history(self, client):
        data = client.post(
            "/api/v1/feedback/mus-1",
            json={"feedback_type": "visited", "category": "museum"},
            headers=USER,
        ).json()
        assert data["profile_version"] is None
        assert data["excluded"] is False

    def test_dislike_can_exclude(self, client):
        data = client.post(
            "/api/v1/feedback/bar-1",
            json={"feedback_type": "dislike", "category": "bar", "exclude_days": 30},
            headers=USER,
        ).json()
        assert data["excluded"] is True

        exclusions = client.get("/api/v1/history/exclusions", headers=USER).json()
        assert [e["place_id"] for e in exclusions] == ["bar-1"]

        suggested = _suggest(client, headers=USER, intent="FOOD_ONLY").json()["suggestions"]
        assert "bar-1" not in {s["place"]["id"] for s in suggested}

    def test_conflict_records_no_event(self, client):
        client.app.state.profile_service = TasteProfileService(AlwaysStaleStore(), max_retries=1)
        response = client.post(
            "/api/v1/feedback/rest-1",
            json={"feedback_type": "like", "category": "restaurant"},
            headers=USER,
        )
        assert response.status_code == 409

        history = client.app.state.history_store
        assert client.portal.call(history.recent_feedback, "user-42") == []

    def test_invalid_feedback_type(self, client):
        response = client.post("/api/v1/feedback/rest-1", json={"feedback_type": "love"}, headers=USER)
        assert response.status_code == 422


# ===================================================================
# 5. Routes
# ===================================================================

class TestRoutes:

    def test_optimize(self, client):
        origin = {"lat": ORIGIN_LAT, "lng": ORIGIN_LNG}
        waypoints = [
            {"id": f"w{k}", "lat": ORIGIN_LAT, "lng": ORIGIN_LNG + 0.002 * k} for k in (2, 3, 1)
        ]
        response = client.post(
            "/api/v1/routes/optimize",
            json={"origin": origin, "waypoints": waypoints, "name": "evening walk"},
            headers=USER,
        )
        assert response.status_code == 200
        data = response.json()
        assert [s["waypoint"]["id"] for s in data["stops"]] == ["w1", "w2", "w3"]
        assert data["method"] == "exact"

        [saved] = client.get("/api/v1/history/routes", headers=USER).json()
        assert saved["route_name"] == "evening walk"
        assert saved["place_ids"] == ["w1", "w2", "w3"]

    def test_no_waypoints(self, client):
        response = client.post(
            "/api/v1/routes/optimize",
            json={"origin": {"lat": ORIGIN_LAT, "lng": ORIGIN_LNG}, "waypoints": []},
        )
        assert response.status_code == 422


# ===================================================================
# 6. History
# ===================================================================

class TestHistory:

    def test_favorites_round_trip(self, client):
        created = client.post(
            "/api/v1/history/favorites",
            json={"place_id": "park-1", "place_name": "Gezi Park", "category": "park"},
            headers=USER,
        )
        assert created.status_code == 201

        favorites = client.get("/api/v1/history/favorites", headers=USER).json()
        assert [f["place_id"] for f in favorites] == ["park-1"]

        assert client.delete("/api/v1/history/favorites/park-1", headers=USER).status_code == 204
        assert client.delete("/api/v1/history/favorites/park-1", headers=USER).status_code == 404

    def test_exclusion_hides_place(self, client):
        response = client.post("/api/v1/history/exclusions", json={"place_id": "rest-1"}, headers=USER)
        assert response.status_code == 201
        assert response.json()["expires_at"] is None

        suggested = _suggest(client, headers=USER, intent="FOOD_ONLY").json()["suggestions"]
        assert "rest-1" not in {s["place"]["id"] for s in suggested}

        assert client.delete("/api/v1/history/exclusions/rest-1", headers=USER).status_code == 204
