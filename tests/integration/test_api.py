"""
Integration tests for the HTTP API

Uses FastAPI's TestClient against a pipeline wired with in-memory collaborators.
"""
import pytest
from unittest.mock import AsyncMock
from fastapi.testclient import TestClient

from agrisentinel.database import get_db
from agrisentinel.domain.entities import utcnow
from agrisentinel.domain.enums import RiskType, Severity
from agrisentinel.domain.farm import ThresholdConfig
from agrisentinel.models import AlertRecord, DeliveryTicketRecord
from agrisentinel.services import events as events_module
from agrisentinel.services import pipeline as pipeline_module
from agrisentinel.services.delivery_coordinator import DeliveryCoordinator
from agrisentinel.services.events import DATA_SOURCE_FAILURE
from agrisentinel.services.farm_directory import InMemoryFarmDirectory
from agrisentinel.services.pipeline import FarmAssessmentPipeline
from factories import NOW, RecordingTransport, StubPredictor, make_observations

pytestmark = pytest.mark.integration


@pytest.fixture
def client(settings, events, monkeypatch):
    monkeypatch.setenv("AGRISENTINEL_ENABLE_SCHEDULER", "false")

    directory = InMemoryFarmDirectory()
    directory.register_farm(
        "farm_1", thresholds=ThresholdConfig(farm_id="farm_1", thresholds={RiskType.DROUGHT: Severity.MEDIUM})
    )
    directory.add_observations(make_observations(farm_id="farm_1", now=utcnow()))
    directory.register_farm("farm_empty", thresholds=ThresholdConfig(farm_id="farm_empty"))

    pipeline = FarmAssessmentPipeline(
        directory=directory,
        predictor=StubPredictor({RiskType.DROUGHT: (0.8, 0.85, 30.0)}),
        coordinator=DeliveryCoordinator(RecordingTransport(), settings=settings, events=events, sleep=AsyncMock()),
        events=events,
        settings=settings,
    )
    monkeypatch.setattr(pipeline_module, "_pipeline_instance", pipeline)
    monkeypatch.setattr(events_module, "_event_port_instance", events)

    from main import app
    with TestClient(app) as test_client:
        yield test_client


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["service"] == "agrisentinel-api"
        assert float(response.headers["X-Response-Time-Ms"]) >= 0

    def test_root(self, client):
        response = client.get("/")

        assert response.status_code == 200
        assert response.json()["health"] == "/health"


class TestAssessAndAlerts:
    """Test on-demand assessment and alert queries"""

    def test_assess_farm_creates_alert(self, client):
        response = client.post("/api/v1/farms/farm_1/assess")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "completed"
        assert data["overall_severity"] == "high"
        assert len(data["alerts_created"]) == 1
        assert len(data["risks"]) == len(RiskType)
        drought = next(r for r in data["risks"] if r["risk_type"] == "drought")
        assert drought["alertable"] is True

    def test_assess_farm_without_observations(self, client):
        response = client.post("/api/v1/farms/farm_empty/assess")

        assert response.status_code == 200
        assert response.json()["status"] == "skipped"

    def test_list_and_get_alerts(self, client):
        alert_id = client.post("/api/v1/farms/farm_1/assess").json()["alerts_created"][0]

        listing = client.get("/api/v1/alerts", params={"farm_id": "farm_1"})
        assert listing.status_code == 200
        body = listing.json()
        assert body["meta"]["total"] == 1
        assert body["alerts"][0]["alert_id"] == alert_id
        assert body["alerts"][0]["state"] == "scheduled"

        detail = client.get(f"/api/v1/alerts/{alert_id}")
        assert detail.status_code == 200
        assert detail.json()["recommendations"]
        assert "drought" in detail.json()["message"]

    def test_state_filter(self, client):
        client.post("/api/v1/farms/farm_1/assess")

        response = client.get("/api/v1/alerts", params={"state": "delivered"})

        assert response.status_code == 200
        assert response.json()["alerts"] == []

    def test_invalid_state_filter(self, client):
        response = client.get("/api/v1/alerts", params={"state": "bogus"})

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    def test_unknown_alert_not_found(self, client):
        response = client.get("/api/v1/alerts/alert_missing")

        assert response.status_code == 404
        error = response.json()["error"]
        assert error["code"] == "NOT_FOUND"
        assert "alert_missing" in error["message"]


class TestAdminNotifications:
    def test_notifications_listed_newest_first(self, client):
        client.post("/api/v1/farms/farm_empty/assess")

        response = client.get("/api/v1/admin/notifications", params={"reason": DATA_SOURCE_FAILURE})

        assert response.status_code == 200
        body = response.json()
        assert body["meta"]["total"] == 1
        assert body["notifications"][0]["farm_id"] == "farm_empty"


class FakeResult:
    def __init__(self, rows):
        self.rows = rows

    def scalars(self):
        return self

    def all(self):
        return list(self.rows)


class FakeSession:
    """Returns canned rows for successive execute() calls"""

    def __init__(self, *results):
        self.results = list(results)
        self.statements = []

    async def execute(self, statement):
        self.statements.append(statement)
        return FakeResult(self.results.pop(0))


class TestFarmHistory:
    """Test history endpoint with the database session replaced"""

    def _override(self, session):
        from main import app

        async def fake_db():
            yield session

        app.dependency_overrides[get_db] = fake_db
        return app

    def test_history_with_tickets(self, client):
        alert = AlertRecord(
            alert_id="alert_1", farm_id="farm_1", risk_type="drought", severity="high",
            probability=0.8, confidence=0.85, priority=33.0, state="delivered",
            event_time=NOW, expiration_time=NOW, delivered_at=NOW, refresh_count=1,
            recommendations='[{"action": "deficit_irrigation"}]', created_at=NOW, updated_at=NOW,
        )
        ticket = DeliveryTicketRecord(
            ticket_id="tkt_1", alert_id="alert_1", channel="sms", status="confirmed",
            attempt_count=2, created_at=NOW, updated_at=NOW,
        )
        app = self._override(FakeSession([alert], [ticket]))
        try:
            response = client.get("/api/v1/farms/farm_1/history")
        finally:
            app.dependency_overrides.clear()

        assert response.status_code == 200
        [entry] = response.json()["alerts"]
        assert entry["alert_id"] == "alert_1"
        assert entry["actions"] == ["deficit_irrigation"]
        assert entry["tickets"][0]["attempt_count"] == 2

    def test_empty_history(self, client):
        session = FakeSession([])
        app = self._override(session)
        try:
            response = client.get("/api/v1/farms/farm_9/history")
        finally:
            app.dependency_overrides.clear()

        assert response.status_code == 200
        assert response.json()["alerts"] == []
        assert len(session.statements) == 1
