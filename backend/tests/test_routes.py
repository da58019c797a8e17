"""Tests for the HTTP and WebSocket endpoints."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from roadheat.conditions import ActivityType, ConditionType
from roadheat.config import Settings
from roadheat.exceptions import ReportSourceUnavailable
from roadheat.main import build_report_source
from roadheat.routers import health_router, heatmap_router
from roadheat.services.freshness import FreshnessCoordinator
from roadheat.services.heatmap import HeatmapService
from roadheat.services.notifications import NotificationHub
from roadheat.sources.base import ReportSource
from roadheat.sources.http import HttpReportSource

from conftest import NOW, make_report

BOUNDS = {"zoom": 14, "south": 42.34, "north": 42.38, "west": -71.12, "east": -71.05}


@pytest.fixture
def source():
    source = MagicMock(spec=ReportSource)
    source.fetch_reports = AsyncMock(
        return_value=[make_report(condition=ConditionType.CONGESTION, severity=2)] * 3
    )
    return source


@pytest.fixture
def app(source):
    """App wired with an in-memory source instead of the lifespan handler."""
    app = FastAPI()
    app.include_router(health_router)
    app.include_router(heatmap_router)

    service = HeatmapService(source, clock=lambda: NOW)
    hub = NotificationHub()
    app.state.heatmap_service = service
    app.state.notification_hub = hub
    app.state.coordinator = FreshnessCoordinator(
        service.fetch_cells, hub, poll_interval=60, debounce=5
    )
    app.state.mqtt_listener = None
    return app


@pytest.fixture
def client(app):
    return TestClient(app)


class TestCellsEndpoint:
    """Tests for GET /api/heatmap/cells."""

    def test_returns_cells(self, client):
        response = client.get("/api/heatmap/cells", params=BOUNDS)

        assert response.status_code == 200
        [cell] = response.json()
        assert cell["report_count"] == 3
        assert cell["avg_score"] == 2.0
        assert cell["top_condition"] == "congestion"
        assert cell["low_data"] is False

    def test_activity_reweights(self, client):
        response = client.get(
            "/api/heatmap/cells", params={**BOUNDS, "activity": "commuting"}
        )
        assert response.json()[0]["avg_score"] == 3.0

    def test_malformed_box_is_400(self, client):
        response = client.get(
            "/api/heatmap/cells", params={**BOUNDS, "south": 42.38, "north": 42.34}
        )
        assert response.status_code == 400

    def test_unknown_activity_is_422(self, client):
        response = client.get("/api/heatmap/cells", params={**BOUNDS, "activity": "flying"})
        assert response.status_code == 422

    def test_unavailable_source_is_503(self, client, source):
        source.fetch_reports.side_effect = ReportSourceUnavailable("database down")

        response = client.get("/api/heatmap/cells", params=BOUNDS)

        assert response.status_code == 503
        assert response.json()["detail"] == "database down"


class TestConditionsEndpoint:
    """Tests for GET /api/heatmap/conditions."""

    def test_lists_registry(self, client):
        data = client.get("/api/heatmap/conditions").json()

        assert len(data["conditions"]) == len(ConditionType)
        pothole = next(c for c in data["conditions"] if c["condition"] == "pothole")
        assert pothole["condition_class"] == "structural"
        assert pothole["half_life_days"] == 7.0
        assert data["low_data_threshold"] == 3

    def test_lists_activity_metadata(self, client):
        data = client.get("/api/heatmap/conditions").json()

        assert len(data["activities"]) == len(ActivityType)
        commuting = next(a for a in data["activities"] if a["activity"] == "commuting")
        assert commuting["default_condition"] == "congestion"
        assert commuting["condition_priority"][0] == "congestion"
        assert len(commuting["condition_priority"]) == len(ConditionType)
        assert commuting["score_weights"]["congestion"] == 1.8


class TestHealthEndpoint:
    def test_health_without_mqtt(self, client):
        data = client.get("/health").json()
        assert data["status"] == "ok"
        assert data["subscriptions"] == 0
        assert data["mqtt"]["enabled"] is False
        assert data["mqtt"]["signals_received"] == 0

    def test_health_counts_report_signals(self, client, app):
        app.state.notification_hub.publish()
        app.state.notification_hub.publish()

        assert client.get("/health").json()["mqtt"]["signals_received"] == 2


class TestHeatmapStream:
    """Tests for the heatmap WebSocket stream."""

    def test_subscribe_activity_and_submit(self, client):
        with client.websocket_connect("/api/heatmap/ws") as ws:
            ws.send_json({"type": "subscribe", "activity": "running", **BOUNDS})
            first = ws.receive_json()
            assert first["sequence"] == 1
            assert first["activity"] == "running"
            assert first["cells"][0]["avg_score"] == 2.0

            ws.send_json({"type": "activity", "activity": "commuting"})
            reweighted = ws.receive_json()
            assert reweighted["sequence"] == 1
            assert reweighted["cells"][0]["avg_score"] == 3.0

            ws.send_json({"type": "submitted"})
            assert ws.receive_json()["sequence"] == 2

    def test_viewport_message_with_new_activity(self, client, source):
        with client.websocket_connect("/api/heatmap/ws") as ws:
            ws.send_json({"type": "subscribe", **BOUNDS})
            assert ws.receive_json()["activity"] == "running"

            ws.send_json(
                {"type": "viewport", "activity": "commuting", **BOUNDS, "zoom": 12}
            )
            reweighted = ws.receive_json()
            refreshed = ws.receive_json()

        assert reweighted["sequence"] == 1
        assert reweighted["activity"] == "commuting"
        assert refreshed["sequence"] == 2
        assert refreshed["activity"] == "commuting"
        assert source.fetch_reports.await_args.args[0].zoom == 12

    def test_stale_update_on_source_failure(self, client, source):
        with client.websocket_connect("/api/heatmap/ws") as ws:
            ws.send_json({"type": "subscribe", **BOUNDS})
            ws.receive_json()

            source.fetch_reports.side_effect = ReportSourceUnavailable("timeout")
            ws.send_json({"type": "submitted"})
            update = ws.receive_json()

        assert update["stale"] is True
        assert update["error"] == "timeout"
        assert update["cells"][0]["report_count"] == 3

    @pytest.mark.parametrize(
        "message",
        [
            {"type": "submitted"},
            {"type": "activity", "activity": "running"},
        ],
    )
    def test_viewport_required_first(self, client, message):
        with client.websocket_connect("/api/heatmap/ws") as ws:
            ws.send_json(message)
            assert "viewport" in ws.receive_json()["error"]

    def test_bad_messages_report_errors(self, client):
        with client.websocket_connect("/api/heatmap/ws") as ws:
            ws.send_text("not json")
            assert "error" in ws.receive_json()

            ws.send_json({"type": "subscribe", **BOUNDS, "south": 50})
            assert "error" in ws.receive_json()

            ws.send_json({"type": "subscribe", **BOUNDS})
            assert ws.receive_json()["sequence"] == 1

            ws.send_json({"type": "zoom-to-fit"})
            assert ws.receive_json()["error"] == "Unknown message type: zoom-to-fit"


class TestBuildReportSource:
    """Tests for report source selection."""

    def test_http_source(self):
        settings = Settings(
            _env_file=None,
            report_source="http",
            report_api_url="https://reports.example.test/rest/v1",
            report_api_key="anon-key",
        )
        source = build_report_source(settings)
        assert isinstance(source, HttpReportSource)
        assert source.base_url == "https://reports.example.test/rest/v1"

    def test_http_source_requires_url(self):
        settings = Settings(_env_file=None, report_source="http", report_api_url=None)
        with pytest.raises(ValueError, match="REPORT_API_URL"):
            build_report_source(settings)
