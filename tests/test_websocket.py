"""Tests for the session WebSocket stream."""


def test_websocket_sends_initial_session_view(client):
    with client.websocket_connect("/ws/session") as ws:
        data = ws.receive_json()
        assert data["type"] == "session"
        assert data["active_profile"] is None
        assert data["pipeline"]["state"] == "idle"


def test_websocket_ping(client):
    with client.websocket_connect("/ws/session") as ws:
        ws.receive_json()
        ws.send_json({"type": "ping"})
        assert ws.receive_json() == {"type": "pong"}


def test_websocket_invalid_json(client):
    with client.websocket_connect("/ws/session") as ws:
        ws.receive_json()
        ws.send_text("not json")
        data = ws.receive_json()
        assert data["type"] == "error"
