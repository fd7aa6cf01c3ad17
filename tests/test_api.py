"""
tests/test_api.py

HTTP surface tests through FastAPI's TestClient, with services built in
MOCK_AWS mode and a scripted summarizer.
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from survey_insights.config import Settings
from survey_insights.container import build_services
from survey_insights.main import create_app
from survey_insights.storage import dynamo_client

from conftest import ScriptedSummarizer, make_submission, make_survey


@pytest.fixture()
def services(monkeypatch):
    # Fresh in-memory tables for every test; tasks stay on the in-memory broker
    monkeypatch.setattr(dynamo_client, "_in_memory_resource", None)
    cfg = Settings(MOCK_AWS=True, CELERY_TASK_ALWAYS_EAGER=False)
    services = build_services(cfg, summarizer=ScriptedSummarizer())
    services.surveys.put(make_survey())
    for index, (text, choice) in enumerate([("hello", "A"), ("world", "B"), ("hi", "A")]):
        services.submissions.put(make_submission(index, {"q-text": text, "q-choice": choice}))
    return services


@pytest.fixture()
def client(services):
    app = create_app(services=services)
    with TestClient(app) as test_client:
        yield test_client


# ---------------------------------------------------------------------------
# POST /api/v1/insights
# ---------------------------------------------------------------------------


class TestCreateInsightEndpoint:
    def test_creates_pending_insight(self, client, services) -> None:
        response = client.post(
            "/api/v1/insights", json={"survey_id": "survey-1", "context_type": "COURSE_FEEDBACK"}
        )
        assert response.status_code == 201
        data = response.json()["data"]
        assert data["status"] == "PENDING"
        assert [b["batch_number"] for b in data["batches"]] == [1, 2]

        stored = services.insights.get_by_id(data["insight_id"])
        assert stored.status.value == "PENDING"

    def test_unknown_survey_is_404(self, client) -> None:
        response = client.post(
            "/api/v1/insights", json={"survey_id": "nope", "context_type": "COURSE_FEEDBACK"}
        )
        assert response.status_code == 404
        assert response.json()["error"] == "RESOURCE_NOT_FOUND"

    def test_invalid_context_type_is_400(self, client, services) -> None:
        response = client.post(
            "/api/v1/insights", json={"survey_id": "survey-1", "context_type": "WEATHER"}
        )
        assert response.status_code == 400
        assert response.json()["error"] == "VALIDATION_ERROR"
        assert services.insights.query(0, 100) == []

    def test_blank_survey_id_is_400(self, client) -> None:
        response = client.post(
            "/api/v1/insights", json={"survey_id": "", "context_type": "COURSE_FEEDBACK"}
        )
        assert response.status_code == 400


# ---------------------------------------------------------------------------
# GET endpoints
# ---------------------------------------------------------------------------


class TestReadEndpoints:
    def test_get_after_worker_run_is_completed(self, client, services) -> None:
        created = client.post(
            "/api/v1/insights", json={"survey_id": "survey-1", "context_type": "EVENT_FEEDBACK"}
        ).json()["data"]

        # What a worker does on delivery
        assert services.process_insight_task.apply(args=[created["insight_id"]]).successful()

        response = client.get(f"/api/v1/insights/{created['insight_id']}")
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["status"] == "COMPLETED"
        assert data["analysis"]
        assert data["completed_at"] is not None

    def test_get_unknown_insight_is_404(self, client) -> None:
        response = client.get("/api/v1/insights/does-not-exist")
        assert response.status_code == 404
        body = response.json()
        assert body["error"] == "RESOURCE_NOT_FOUND"
        assert body["details"] == {"resource": "insight", "id": "does-not-exist"}

    def test_list_filters_and_paginates(self, client) -> None:
        for context in ("COURSE_FEEDBACK", "EVENT_FEEDBACK", "PRODUCT_SATISFACTION"):
            client.post("/api/v1/insights", json={"survey_id": "survey-1", "context_type": context})

        assert len(client.get("/api/v1/insights").json()["data"]) == 3
        assert len(client.get("/api/v1/insights", params={"limit": 2}).json()["data"]) == 2
        assert len(client.get("/api/v1/insights", params={"offset": 2}).json()["data"]) == 1
        assert client.get("/api/v1/insights", params={"survey_id": "other"}).json()["data"] == []

    @pytest.mark.parametrize("params", [{"limit": 0}, {"limit": 101}, {"offset": -1}])
    def test_bad_pagination_is_400(self, client, params) -> None:
        assert client.get("/api/v1/insights", params=params).status_code == 400

    def test_health(self, client) -> None:
        body = client.get("/api/v1/health").json()
        assert body["status"] == "ok"
        assert body["dynamo"] == "connected"
        assert body["broker"] == "connected"
        assert body["task_execution"] == "queued"


# ---------------------------------------------------------------------------
# Eager task execution (single-process local development)
# ---------------------------------------------------------------------------


@pytest.fixture()
def eager_client(monkeypatch):
    monkeypatch.setattr(dynamo_client, "_in_memory_resource", None)
    services = build_services(
        Settings(MOCK_AWS=True, CELERY_TASK_ALWAYS_EAGER=True), summarizer=ScriptedSummarizer()
    )
    services.surveys.put(make_survey())
    services.submissions.put(make_submission(0, {"q-text": "hello", "q-choice": "A"}))
    with TestClient(create_app(services=services)) as test_client:
        yield test_client


class TestEagerExecution:
    def test_created_insight_is_processed_inline(self, eager_client) -> None:
        created = eager_client.post(
            "/api/v1/insights", json={"survey_id": "survey-1", "context_type": "COURSE_FEEDBACK"}
        )
        assert created.status_code == 201
        insight_id = created.json()["data"]["insight_id"]

        data = eager_client.get(f"/api/v1/insights/{insight_id}").json()["data"]
        assert data["status"] == "COMPLETED"
        assert all(b["summary"] for b in data["batches"])

    def test_health_reports_eager_mode(self, eager_client) -> None:
        body = eager_client.get("/api/v1/health").json()
        assert body["status"] == "ok"
        assert body["broker"] == "unused"
        assert body["task_execution"] == "eager"
