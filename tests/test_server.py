"""Tests for the push server."""

import pytest
from fastapi.testclient import TestClient

from truxtrack.server import create_app

from tests.helpers import StubProvider, record


@pytest.fixture
def provider():
    return StubProvider(
        "stub",
        delay={"A1": 0.01, "B2": 0.05, "OLD": 5.0},
        records=[record(1, "Picked up"), record(2, "Delivered")],
    )


@pytest.fixture
def client(provider):
    app = create_app(providers=[provider])
    with TestClient(app) as test_client:
        yield test_client


def test_status_endpoint(client):
    response = client.get("/api/scrapper/status")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "TruxTrack is up and running."
    assert "time" in body


class TestOrderTracker:
    """WebSocket tracking flow."""

    def test_track_request_streams_updates(self, client):
        with client.websocket_connect("/ordertracker") as ws:
            ws.send_json({"type": "track", "clientName": "acme", "trackingNumbers": ["A1", "B2"]})

            ack = ws.receive_json()
            first = ws.receive_json()
            second = ws.receive_json()
            complete = ws.receive_json()

        assert ack == {"type": "ack", "clientName": "acme", "trackingNumbers": ["A1", "B2"]}
        assert [first["trackingNumber"], second["trackingNumber"]] == ["A1", "B2"]
        assert first["type"] == "update"
        assert first["history"][0] == {
            "timestamp": "2025-03-02T12:00:00",
            "status": "Delivered",
            "isCompleted": False,
            "location": "",
            "company": "",
        }
        assert complete["type"] == "complete"
        assert complete["summary"]["delivered"] == 2

    def test_invalid_json(self, client):
        with client.websocket_connect("/ordertracker") as ws:
            ws.send_text("{not json")
            error = ws.receive_json()

        assert error == {"type": "error", "message": "Invalid JSON received"}

    def test_binary_frame(self, client):
        with client.websocket_connect("/ordertracker") as ws:
            ws.send_bytes(b"\x00\x01")
            error = ws.receive_json()

        assert error == {"type": "error", "message": "Binary frames are not supported"}

    def test_missing_client_name(self, client, provider):
        with client.websocket_connect("/ordertracker") as ws:
            ws.send_json({"trackingNumbers": ["A1"]})
            error = ws.receive_json()

        assert error["type"] == "error"
        assert error["message"] == "Client name cannot be null or empty."
        assert provider.lookups == []

    def test_new_request_supersedes_previous(self, client, provider):
        with client.websocket_connect("/ordertracker") as ws:
            ws.send_json({"clientName": "acme", "trackingNumbers": ["OLD"]})
            assert ws.receive_json()["type"] == "ack"

            ws.send_json({"clientName": "acme", "trackingNumbers": ["A1"]})
            assert ws.receive_json()["type"] == "ack"

            update = ws.receive_json()
            complete = ws.receive_json()

            assert provider.cancelled == ["superseded by a new request"]

        assert update["trackingNumber"] == "A1"
        assert complete["type"] == "complete"



class TestTrackOrder:
    """One-shot HTTP tracking."""

    def test_returns_history_newest_first(self, client, provider):
        response = client.post("/api/scrapper/track-order", json={"OrderId": " A1 "})

        assert response.status_code == 200
        assert response.json() == {
            "orderId": "A1",
            "statusHistory": [
                {"date": "2025-03-02T12:00:00", "status": "Delivered"},
                {"date": "2025-03-01T12:00:00", "status": "Picked up"},
            ],
        }
        assert provider.lookups == ["A1"]

    @pytest.mark.parametrize("order_id", ["", "   ", "string", "STRING", None])
    def test_rejects_missing_order_id(self, client, provider, order_id):
        response = client.post("/api/scrapper/track-order", json={"OrderId": order_id})

        assert response.status_code == 400
        assert response.json() == {"error": "A valid OrderId is required."}
        assert provider.lookups == []

    def test_no_match_gives_empty_history(self):
        app = create_app(providers=[StubProvider("a", found=False), StubProvider("b", found=False)])

        with TestClient(app) as test_client:
            response = test_client.post("/api/scrapper/track-order", json={"orderId": "ZZ9"})

        assert response.status_code == 200
        assert response.json() == {"orderId": "ZZ9", "statusHistory": []}

    def test_unexpected_failure_is_500(self, client, monkeypatch):
        async def broken(*args, **kwargs):
            raise RuntimeError("browser pool exhausted")

        monkeypatch.setattr(client.app.state.hub.orchestrator, "run", broken)

        response = client.post("/api/scrapper/track-order", json={"OrderId": "A1"})

        assert response.status_code == 500
        assert response.json() == {"error": "Scraping failed.", "details": "browser pool exhausted"}
