"""Tests for the WebSocket server REST endpoints."""

import pytest

try:
    from fastapi.testclient import TestClient
    _HAS_TESTCLIENT = True
except ImportError:
    _HAS_TESTCLIENT = False

try:
    from staring_contest.server import app, attach_game, state
    _HAS_SERVER = True
except ImportError:
    _HAS_SERVER = False

from conftest import Rig


pytestmark = pytest.mark.skipif(
    not (_HAS_TESTCLIENT and _HAS_SERVER),
    reason="fastapi not installed"
)


@pytest.fixture
def rig():
    rig = Rig()
    attach_game(rig.game)
    yield rig
    state.game = None
    state.owns_game = False
    state.clients.clear()


@pytest.fixture
def client(rig):
    with TestClient(app, raise_server_exceptions=False) as c:
        yield c


class TestRESTEndpoints:
    def test_index_page(self, client):
        resp = client.get("/")
        assert resp.status_code == 200
        assert "Staring Contest" in resp.text

    def test_api_state(self, client):
        resp = client.get("/api/state")
        assert resp.status_code == 200
        data = resp.json()
        assert data["state"] == "idle"
        assert data["start_enabled"] is True
        assert data["clients"] == 0
        assert set(data["pipelines"]) == {"face", "hand"}
        assert data["pipelines"]["face"]["status"] == "stopped"

    def test_start_then_restart(self, client, rig):
        resp = client.post("/api/start")
        assert resp.status_code == 200
        data = resp.json()
        assert data["accepted"] is True
        assert data["state"] == "countdown"
        assert data["countdown"] == 3
        assert data["show_countdown"] is True

        again = client.post("/api/start").json()
        assert again["accepted"] is False

        resp = client.post("/api/restart")
        assert resp.json()["state"] == "idle"
        assert rig.face_camera.open_streams == []

    def test_start_reports_camera_error(self, client, rig):
        rig.face_camera.error = "Permission denied"
        data = client.post("/api/start").json()
        assert data["accepted"] is False
        assert data["state"] == "idle"
        assert data["status"] == "Error accessing webcam: Permission denied"

    def test_metrics_endpoint(self, client):
        resp = client.get("/metrics")
        assert resp.status_code == 200
        assert 'staring_contest_state{state="idle"} 1' in resp.text
        assert 'staring_contest_state{state="active"} 0' in resp.text
        assert "staring_contest_active_connections 0" in resp.text


class TestWebSocket:
    def test_ws_connect(self, client):
        with client.websocket_connect("/ws") as ws:
            msg = ws.receive_json()
            assert msg["type"] == "connected"
            assert msg["state"]["state"] == "idle"

    def test_ws_ping(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_json({"type": "ping"})
            msg = ws.receive_json()
            assert msg["type"] == "pong"
            assert "server_time" in msg

    def test_ws_unknown_command(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_json({"type": "wink"})
            msg = ws.receive_json()
            assert msg["type"] == "error"
            assert "wink" in msg["data"]["message"]

    def test_ws_invalid_json(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_text("{not json")
            assert ws.receive_json()["type"] == "error"

    def test_ws_start_broadcasts_events(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_json({"type": "start"})
            seen = []
            for _ in range(10):
                msg = ws.receive_json()
                seen.append((msg["type"], msg["state"]["state"]))
                if msg["type"] == "countdown":
                    break
            assert ("state", "awaiting_camera") in seen
            assert seen[-1] == ("countdown", "countdown")
            assert msg["data"]["value"] == 3

            ws.send_json({"type": "restart"})
            for _ in range(10):
                msg = ws.receive_json()
                if msg["state"]["state"] == "idle":
                    break
            assert msg["state"]["start_enabled"] is True
