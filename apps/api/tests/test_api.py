"""
HTTP surface tests: the routers against a real engine over in-memory
persistence and the in-memory broker.
"""
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from core.deps import get_engine
from main import app

ONBOARDING = {
    "name": "Mia",
    "gender": "female",
    "age": 30,
    "height": 165,
    "currentWeight": 70,
    "targetWeight": 60,
    "planWeeks": 10,
}


@pytest.fixture
def api_engine(engine):
    app.dependency_overrides[get_engine] = lambda: engine
    yield engine
    app.dependency_overrides.pop(get_engine, None)


@pytest.fixture
def client(api_engine):
    return TestClient(app)


@pytest.fixture
def onboarded_client(client):
    assert client.post("/v1/profile", json=ONBOARDING).status_code == 201
    return client


class TestProfileEndpoints:

    def test_missing_profile_is_404(self, client):
        response = client.get("/v1/profile")
        assert response.status_code == 404
        assert response.json()["error_code"] == "NOT_FOUND"

    def test_onboard(self, client):
        response = client.post("/v1/profile", json=ONBOARDING)
        assert response.status_code == 201
        body = response.json()
        assert body["coins"] == 1000
        assert body["startWeight"] == 70
        assert body["route"] == "aggressive"
        assert body["startDate"] == "2024-03-01"

    def test_onboard_twice_conflicts(self, onboarded_client):
        response = onboarded_client.post("/v1/profile", json=ONBOARDING)
        assert response.status_code == 409
        assert response.json()["error_code"] == "CONFLICT"

    def test_onboard_validation(self, client):
        response = client.post("/v1/profile", json={**ONBOARDING, "currentWeight": -5})
        assert response.status_code == 422

    def test_patch(self, onboarded_client):
        response = onboarded_client.patch("/v1/profile", json={"avatar": "https://img/2.png"})
        assert response.status_code == 200
        assert response.json()["avatar"] == "https://img/2.png"
        assert response.json()["name"] == "Mia"

    def test_summary_and_chart(self, onboarded_client):
        summary = onboarded_client.get("/v1/profile/summary").json()
        assert summary["todayTarget"] == 70
        assert summary["daysPassed"] == 0
        assert summary["totalDays"] == 70
        assert summary["hasCheckedInToday"] is False
        assert summary["todayPlan"]["day"] == 1

        chart = onboarded_client.get("/v1/profile/chart").json()
        assert [p["kind"] for p in chart] == ["start", "today", "end"]

    def test_reset(self, onboarded_client, api_engine, clock):
        clock.advance(days=3)
        response = onboarded_client.post("/v1/profile/reset", json={"targetWeight": 65, "planWeeks": 12})
        assert response.status_code == 200
        assert response.json()["startDate"] == "2024-03-04"
        assert response.json()["route"] == "gentle"


class TestPlanEndpoints:

    def test_today(self, onboarded_client):
        body = onboarded_client.get("/v1/plan/today").json()
        assert body["route"] == "aggressive"
        assert body["dayIndex"] == 0
        assert body["plan"]["day"] == 1

    def test_route_plan(self, client):
        response = client.get("/v1/plan/gentle")
        assert response.status_code == 200
        assert len(response.json()) == 7

    def test_unknown_route(self, client):
        assert client.get("/v1/plan/turbo").status_code == 422


class TestCheckInEndpoints:

    def test_evaluate_then_submit(self, onboarded_client, clock):
        clock.advance(days=7)
        evaluation = onboarded_client.post("/v1/checkin/evaluate", json={"weight": 70.0}).json()
        assert evaluation["needsReflection"] is True
        assert evaluation["penaltyCoins"] == 50
        assert evaluation["todayTarget"] == 69.0

        rejected = onboarded_client.post("/v1/checkin", json={"weight": 70.0})
        assert rejected.status_code == 422
        assert rejected.json()["error_code"] == "REFLECTION_REQUIRED"

        accepted = onboarded_client.post("/v1/checkin", json={"weight": 70.0, "reflection": "overate"})
        assert accepted.status_code == 201
        body = accepted.json()
        assert body["coins"] == 950
        assert body["penaltyCoins"] == 50
        assert body["log"]["isTargetMet"] is False
        assert body["log"]["reflection"] == "Couldn't resist, ate too much"
        assert body["systemMessage"]["userId"] == "system"

        logs = onboarded_client.get("/v1/checkin/logs").json()
        assert [log["date"] for log in logs] == ["2024-03-08"]
        assert onboarded_client.get("/v1/checkin/today").json()["weight"] == 70.0
        assert onboarded_client.get("/v1/checkin/2024-03-08").status_code == 200
        assert onboarded_client.get("/v1/checkin/2024-03-07").status_code == 404

    def test_on_track(self, onboarded_client, clock):
        clock.advance(days=7)
        body = onboarded_client.post("/v1/checkin", json={"weight": 68.9}).json()
        assert body["penaltyCoins"] == 0
        assert body["coins"] == 1000
        assert body.get("systemMessage") is None

    def test_bad_weight(self, onboarded_client):
        assert onboarded_client.post("/v1/checkin", json={"weight": 0}).status_code == 422
        assert onboarded_client.post("/v1/checkin", json={"weight": "heavy"}).status_code == 422

    def test_reasons(self, client):
        reasons = client.get("/v1/checkin/reasons").json()
        assert {"id": "overate", "label": "Couldn't resist, ate too much"} in reasons


class TestTeamEndpoints:

    def test_create_chat_leave(self, onboarded_client):
        created = onboarded_client.post("/v1/team")
        assert created.status_code == 201
        assert len(created.json()["teamId"]) == 6
        assert created.json()["connected"] is True

        sent = onboarded_client.post("/v1/team/chat", json={"content": "hi all"})
        assert sent.status_code == 201
        assert sent.json()["content"] == "hi all"
        assert [m["content"] for m in onboarded_client.get("/v1/team/chat").json()] == ["hi all"]

        left = onboarded_client.delete("/v1/team")
        assert left.json()["teamId"] is None
        assert left.json()["connected"] is False

    def test_join_normalizes(self, onboarded_client):
        response = onboarded_client.post("/v1/team/join", json={"code": " ab12cd "})
        assert response.status_code == 200
        assert response.json()["teamId"] == "AB12CD"

    def test_join_bad_code(self, onboarded_client):
        response = onboarded_client.post("/v1/team/join", json={"code": "nope"})
        assert response.status_code == 422
        assert response.json()["error_code"] == "VALIDATION_ERROR_CODE"

    def test_chat_without_team(self, onboarded_client):
        response = onboarded_client.post("/v1/team/chat", json={"content": "hello?"})
        assert response.status_code == 409

    def test_team_needs_profile(self, client):
        assert client.get("/v1/team").status_code == 404


class TestServiceEndpoints:

    def test_ping(self, client):
        assert client.get("/ping").json() == {"pong": True}

    def test_engine_not_started(self):
        app.dependency_overrides.pop(get_engine, None)
        response = TestClient(app).get("/v1/profile")
        assert response.status_code == 503
        assert response.json()["error_code"] == "ENGINE_UNAVAILABLE"

    def test_health_reuses_redis_client(self, client, monkeypatch):
        monkeypatch.setattr("core.store._redis_client", None)
        with patch("core.store.redis.from_url") as from_url:
            client.get("/health")
            client.get("/health")
        assert from_url.call_count == 1
