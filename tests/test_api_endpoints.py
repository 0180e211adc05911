"""
Endpoint tests: the routers wire auth, the database session and the
suggestion provider into the services correctly.
"""
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from main import app
from core.database import get_db
from core.exceptions import RateLimitedError
from core.security import create_access_token
from routers import recommendations as recommendations_router
from routers.recommendations import get_suggestion_provider
from services.suggestion_provider import Suggestion


class StubProvider:
    def __init__(self, suggestion=None, error=None):
        self.suggestion = suggestion
        self.error = error
        self.calls = 0

    def suggest(self, request):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.suggestion


@pytest.fixture
def client(db_session):
    def _override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def stub_provider():
    provider = StubProvider(Suggestion(exercise_ids=[], session_theme="Desk Reset", tip="Roll your shoulders"))
    app.dependency_overrides[get_suggestion_provider] = lambda: provider
    return provider


def _auth(user_id):
    token = create_access_token(data={"sub": str(user_id)})
    return {"Authorization": f"Bearer {token}"}


class TestAuth:
    def test_missing_token_is_401(self, client):
        response = client.get("/v1/profile")
        assert response.status_code == 401

    def test_garbage_token_is_401(self, client):
        response = client.get("/v1/profile", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401


class TestProfileAndCatalog:
    def test_profile(self, client, user_id, test_profile):
        response = client.get("/v1/profile", headers=_auth(user_id))

        assert response.status_code == 200
        body = response.json()
        assert body["user_id"] == str(user_id)
        assert body["current_streak"] == 0

    def test_profile_missing_is_404(self, client):
        response = client.get("/v1/profile", headers=_auth(uuid4()))

        assert response.status_code == 404
        assert response.json()["error_code"] == "PROFILE_NOT_FOUND"

    def test_exercises_sorted_by_name(self, client, user_id, make_catalog):
        make_catalog(3)

        response = client.get("/v1/exercises", headers=_auth(user_id))

        assert response.status_code == 200
        assert [e["name"] for e in response.json()] == ["E1", "E2", "E3"]
        assert response.json()[0]["instructions"] == ["Step 1 of E1", "Step 2 of E1"]

    def test_achievements_show_unlock_state(self, client, user_id, test_profile, catalog, make_achievement):
        make_achievement("exercises_completed", 1, name="First Step")
        make_achievement("streak", 7, name="Week Warrior")

        client.post(
            "/v1/activity/complete",
            json={"exercise_id": str(catalog[0].id), "duration_seconds": 60},
            headers=_auth(user_id),
        )
        response = client.get("/v1/achievements", headers=_auth(user_id))

        assert response.status_code == 200
        by_name = {a["name"]: a for a in response.json()}
        assert by_name["First Step"]["unlocked"] is True
        assert by_name["First Step"]["unlocked_at"] is not None
        assert by_name["Week Warrior"]["unlocked"] is False


class TestActivity:
    def test_complete_exercise(self, client, user_id, test_profile, catalog):
        response = client.post(
            "/v1/activity/complete",
            json={"exercise_id": str(catalog[0].id), "duration_seconds": 90, "difficulty_rating": 3},
            headers=_auth(user_id),
        )

        assert response.status_code == 201
        body = response.json()
        assert body["current_streak"] == 1
        assert body["total_exercises_completed"] == 1
        assert body["total_minutes_exercised"] == 2

    def test_complete_rejects_bad_rating(self, client, user_id, test_profile, catalog):
        response = client.post(
            "/v1/activity/complete",
            json={"exercise_id": str(catalog[0].id), "duration_seconds": 60, "difficulty_rating": 9},
            headers=_auth(user_id),
        )

        assert response.status_code == 422

    def test_complete_without_profile_is_404(self, client, user_id, catalog):
        response = client.post(
            "/v1/activity/complete",
            json={"exercise_id": str(catalog[0].id), "duration_seconds": 60},
            headers=_auth(user_id),
        )

        assert response.status_code == 404

    def test_complete_unknown_exercise_is_404(self, client, user_id, test_profile, catalog):
        response = client.post(
            "/v1/activity/complete",
            json={"exercise_id": str(uuid4()), "duration_seconds": 60},
            headers=_auth(user_id),
        )

        assert response.status_code == 404
        assert response.json()["error_code"] == "NOT_FOUND"

    def test_recent_activity_newest_first(self, client, user_id, test_profile, catalog):
        for exercise in catalog[:3]:
            client.post(
                "/v1/activity/complete",
                json={"exercise_id": str(exercise.id), "duration_seconds": 60},
                headers=_auth(user_id),
            )

        response = client.get("/v1/activity", headers=_auth(user_id))

        assert response.status_code == 200
        names = [log["exercise_name"] for log in response.json()]
        assert len(names) == 3
        assert names[-1] == "E1"

    def test_weekly_summary(self, client, user_id, test_profile, catalog):
        client.post(
            "/v1/activity/complete",
            json={"exercise_id": str(catalog[0].id), "duration_seconds": 120},
            headers=_auth(user_id),
        )

        response = client.get("/v1/activity/weekly-summary", headers=_auth(user_id))

        assert response.status_code == 200
        body = response.json()
        assert len(body["days"]) == 7
        assert body["total_exercises"] == 1
        assert body["total_minutes"] == 2
        assert body["current_streak"] == 1


class TestRecommendations:
    def test_today_uses_provider_then_cache(self, client, user_id, test_profile, catalog, stub_provider):
        stub_provider.suggestion.exercise_ids = [str(e.id) for e in catalog[:5]]

        first = client.get("/v1/recommendations/today", headers=_auth(user_id))
        second = client.get("/v1/recommendations/today", headers=_auth(user_id))

        assert first.status_code == 200
        assert first.json()["session_theme"] == "Desk Reset"
        assert first.json()["source"] == "provider"
        assert second.json()["exercise_ids"] == first.json()["exercise_ids"]
        assert second.json()["source"] == "cache"
        assert stub_provider.calls == 1

    def test_rate_limited_provider_still_returns_workout(self, client, user_id, test_profile, catalog, stub_provider):
        stub_provider.error = RateLimitedError()

        response = client.get("/v1/recommendations/today", headers=_auth(user_id))

        assert response.status_code == 200
        body = response.json()
        assert len(body["exercise_ids"]) == 5
        assert body["used_fallback"] is True
        assert body["fallback_reason"] == "rate_limited"

    def test_offset_is_passed_to_the_cache(self, client, user_id, test_profile, catalog, stub_provider, monkeypatch):
        seen = {}
        real = recommendations_router.get_todays_recommendation

        def spy(*args, **kwargs):
            seen.update(kwargs)
            return real(*args, **kwargs)

        monkeypatch.setattr(recommendations_router, "get_todays_recommendation", spy)

        response = client.get("/v1/recommendations/today?utc_offset_minutes=-480", headers=_auth(user_id))

        assert response.status_code == 200
        assert seen["utc_offset_minutes"] == -480

    def test_offset_out_of_range_is_422(self, client, user_id, test_profile, catalog, stub_provider):
        response = client.get("/v1/recommendations/today?utc_offset_minutes=2000", headers=_auth(user_id))

        assert response.status_code == 422

    def test_requires_profile(self, client, catalog, stub_provider):
        response = client.get("/v1/recommendations/today", headers=_auth(uuid4()))

        assert response.status_code == 404


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
