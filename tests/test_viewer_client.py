from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from fakes import snapshot_payload
from phone_connect.viewer.agent import parse_args
from phone_connect.viewer.client import ViewerClient, to_websocket_url
from phone_connect.viewer.surface import MemorySurface


class FakeServer:
    def __init__(self, snapshot: dict | None = None) -> None:
        self.snapshot = snapshot
        self.requests: list[tuple[str, str, dict | None]] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content) if request.content else None
        self.requests.append((request.method, request.url.path, body))
        if request.url.path == "/snapshot":
            if self.snapshot is None:
                return httpx.Response(503, json={"error": "No snapshot available"})
            return httpx.Response(200, json=self.snapshot)
        if request.url.path == "/app-state":
            return httpx.Response(200, json={"mode": "Planning", "model": "Unknown"})
        return httpx.Response(200, json={"success": True})

    def paths(self) -> list[str]:
        return [path for _, path, _ in self.requests]


def make_client(server: FakeServer, surface: MemorySurface | None = None) -> ViewerClient:
    http = httpx.AsyncClient(base_url="http://bridge", transport=httpx.MockTransport(server))
    return ViewerClient("http://bridge", surface or MemorySurface(client_height=800), http_client=http)


@pytest.mark.parametrize(
    ("url", "expected"),
    [
        ("http://192.168.1.20:3030", "ws://192.168.1.20:3030/"),
        ("https://phone.local:3030/", "wss://phone.local:3030/"),
    ],
)
def test_to_websocket_url(url: str, expected: str) -> None:
    assert to_websocket_url(url) == expected


def test_hello_without_snapshot_does_not_pull() -> None:
    server = FakeServer()

    async def scenario() -> None:
        client = make_client(server)
        await client.handle_message({"type": "hello", "snapshotAvailable": False})
        await client.stop()

    asyncio.run(scenario())

    assert server.paths() == []


def test_hello_with_snapshot_renders_and_applies_host_scroll() -> None:
    server = FakeServer(snapshot_payload("<p>hi</p>", scroll_percent=0.5))
    surface = MemorySurface(client_height=800)

    async def scenario() -> None:
        client = make_client(server, surface)
        await client.handle_message({"type": "hello", "snapshotAvailable": True})
        await client.stop()

    asyncio.run(scenario())

    assert server.paths() == ["/snapshot"]
    assert surface.snapshot.html == "<p>hi</p>"
    assert surface.scroll_height == 2000
    assert surface.scroll_top == pytest.approx(600)


def test_update_is_skipped_while_user_scrolls() -> None:
    server = FakeServer(snapshot_payload())

    async def scenario() -> str:
        client = make_client(server)
        client.session.on_user_scroll()
        await client.handle_message({"type": "update", "hash": "abc"})
        client.session.close()
        await client.stop()
        return client.last_hash

    last_hash = asyncio.run(scenario())

    assert last_hash == "abc"
    assert "/snapshot" not in server.paths()


def test_load_snapshot_returns_none_before_first_capture() -> None:
    server = FakeServer()

    async def scenario():
        client = make_client(server)
        try:
            return await client.load_snapshot()
        finally:
            await client.stop()

    assert asyncio.run(scenario()) is None


def test_push_scroll_posts_fraction() -> None:
    server = FakeServer()

    async def scenario() -> dict:
        client = make_client(server)
        try:
            return await client.push_scroll(0.25)
        finally:
            await client.stop()

    result = asyncio.run(scenario())

    assert result == {"success": True}
    assert server.requests == [("POST", "/remote-scroll", {"scrollPercent": 0.25})]


def test_app_state_keeps_known_values() -> None:
    server = FakeServer()

    async def scenario() -> dict:
        client = make_client(server)
        client.app_state["model"] = "Gemini 3 Pro"
        await client.fetch_app_state()
        await client.stop()
        return client.app_state

    assert asyncio.run(scenario()) == {"mode": "Planning", "model": "Gemini 3 Pro"}


def test_actions_post_expected_payloads() -> None:
    server = FakeServer()

    async def scenario() -> None:
        client = make_client(server)
        await client.send_message("hello")
        await client.set_mode("Fast")
        await client.remote_click("button", index=1, text_content="Run")
        await client.stop_generation()
        await client.stop()

    asyncio.run(scenario())

    assert server.requests == [
        ("POST", "/send", {"message": "hello"}),
        ("POST", "/set-mode", {"mode": "Fast"}),
        ("POST", "/remote-click", {"selector": "button", "index": 1, "textContent": "Run"}),
        ("POST", "/stop", {}),
    ]


def test_agent_parses_server_url() -> None:
    args = parse_args(["--server", "http://10.0.0.2:3030", "-v"])

    assert args.server == "http://10.0.0.2:3030"
    assert args.verbose
