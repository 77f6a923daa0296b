from __future__ import annotations

from types import SimpleNamespace
from typing import Any

import pytest
from fastapi.testclient import TestClient

from fakes import snapshot_payload
from phone_connect.app import create_app
from phone_connect.cdp import actions
from phone_connect.schemas import CallTimeout, Snapshot
from phone_connect.sync import SnapshotStore


class FakeBridge:
    def __init__(self, connection: Any = None) -> None:
        self.connection = connection

    @property
    def is_connected(self) -> bool:
        return self.connection is not None

    async def run(self) -> None:
        return None

    async def stop(self) -> None:
        self.connection = None


HOST = SimpleNamespace(contexts=[1, 2])


def make_client(connection: Any = None, store: SnapshotStore | None = None) -> TestClient:
    app = create_app(bridge=FakeBridge(connection), store=store or SnapshotStore(), start_background=False)
    return TestClient(app)


def test_health_reports_bridge_state() -> None:
    body = make_client(HOST).get("/health").json()

    assert body["status"] == "ok"
    assert body["cdpConnected"] is True
    assert body["contexts"] == 2
    assert "timestamp" in body
    assert isinstance(body["https"], bool)


def test_health_without_host() -> None:
    body = make_client().get("/health").json()

    assert body["cdpConnected"] is False
    assert body["contexts"] == 0


def test_snapshot_unavailable_until_first_capture() -> None:
    store = SnapshotStore()
    client = make_client(store=store)

    response = client.get("/snapshot")
    assert response.status_code == 503
    assert response.json() == {"error": "No snapshot available"}

    store.update(Snapshot.from_payload(snapshot_payload("<p>x</p>", scroll_percent=0.5)))
    body = client.get("/snapshot").json()
    assert body["html"] == "<p>x</p>"
    assert body["scrollInfo"]["scrollPercent"] == 0.5
    assert body["stats"]["htmlSize"] == len("<p>x</p>")


def test_app_state_without_host_is_unknown() -> None:
    assert make_client().get("/app-state").json() == {"mode": "Unknown", "model": "Unknown"}


@pytest.mark.parametrize(
    ("path", "payload"),
    [
        ("/send", {"message": "hi"}),
        ("/set-mode", {"mode": "Fast"}),
        ("/set-model", {"model": "Gemini"}),
        ("/stop", None),
        ("/remote-click", {"selector": "button"}),
        ("/remote-scroll", {"scrollPercent": 0.5}),
    ],
)
def test_actions_without_host_return_503(path: str, payload: dict | None) -> None:
    response = make_client().post(path, json=payload)

    assert response.status_code == 503
    assert response.json() == {"error": "CDP disconnected"}


def test_debug_ui_without_host_returns_503() -> None:
    assert make_client().get("/debug-ui").status_code == 503


def test_send_requires_message() -> None:
    response = make_client(HOST).post("/send", json={"message": ""})

    assert response.status_code == 400
    assert response.json() == {"error": "Message required"}


def test_invalid_json_is_rejected() -> None:
    response = make_client(HOST).post(
        "/send", content=b"{not json", headers={"content-type": "application/json"}
    )

    assert response.status_code == 400
    assert response.json() == {"error": "Invalid JSON"}


def test_send_wraps_host_result(monkeypatch: pytest.MonkeyPatch) -> None:
    async def fake_inject(connection: Any, text: str) -> dict:
        assert connection is HOST
        return {"ok": False, "reason": "busy"}

    monkeypatch.setattr(actions, "inject_message", fake_inject)

    body = make_client(HOST).post("/send", json={"message": "hi"}).json()

    assert body == {"success": False, "method": "attempted", "details": {"ok": False, "reason": "busy"}}


def test_remote_scroll_forwards_percent(monkeypatch: pytest.MonkeyPatch) -> None:
    seen: dict[str, Any] = {}

    async def fake_scroll(connection: Any, scroll_top: float | None = None, scroll_percent: float | None = None) -> dict:
        seen.update(scroll_top=scroll_top, scroll_percent=scroll_percent)
        return {"success": True}

    monkeypatch.setattr(actions, "remote_scroll", fake_scroll)

    response = make_client(HOST).post("/remote-scroll", json={"scrollPercent": 0.75})

    assert response.json() == {"success": True}
    assert seen == {"scroll_top": None, "scroll_percent": 0.75}


def test_remote_scroll_rejects_non_numeric_values() -> None:
    response = make_client(HOST).post("/remote-scroll", json={"scrollTop": "top"})

    assert response.status_code == 400


def test_remote_click_requires_selector() -> None:
    response = make_client(HOST).post("/remote-click", json={"index": 0})

    assert response.status_code == 400
    assert response.json() == {"error": "Selector required"}


def test_host_errors_map_to_bad_gateway(monkeypatch: pytest.MonkeyPatch) -> None:
    async def timing_out(connection: Any) -> dict:
        raise CallTimeout("Runtime.evaluate", 30)

    monkeypatch.setattr(actions, "stop_generation", timing_out)

    response = make_client(HOST).post("/stop")

    assert response.status_code == 502
    assert response.json()["error"] == "CallTimeout"


def test_push_channel_sends_hello_first() -> None:
    store = SnapshotStore()
    client = make_client(store=store)

    with client.websocket_connect("/") as ws:
        assert ws.receive_json() == {"type": "hello", "snapshotAvailable": False}
        ws.send_text("ignored")

    store.update(Snapshot(html="<p>x</p>"))
    with client.websocket_connect("/") as ws:
        assert ws.receive_json() == {"type": "hello", "snapshotAvailable": True}
