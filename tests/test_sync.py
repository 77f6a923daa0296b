from __future__ import annotations

import asyncio
import json
from typing import Any

from starlette.websockets import WebSocketState

from fakes import FakeCDPSocket, open_connection, per_context_responder, snapshot_payload
from phone_connect.cdp.connection import CDPConnection
from phone_connect.schemas import Snapshot
from phone_connect.sync import ChangeBroadcaster, SnapshotCaptureLoop, SnapshotStore
from phone_connect.utils import hash_string


class FakeViewerSocket:
    def __init__(self, state: WebSocketState = WebSocketState.CONNECTED, fail: bool = False) -> None:
        self.client_state = state
        self.application_state = state
        self.fail = fail
        self.messages: list[dict[str, Any]] = []

    async def send_text(self, data: str) -> None:
        if self.fail:
            raise RuntimeError("socket gone")
        self.messages.append(json.loads(data))


class StaticBridge:
    def __init__(self, connection: CDPConnection | None) -> None:
        self.connection = connection


class MutableResponder:
    """Returns whatever snapshot payload is currently set; None makes capture fail."""

    def __init__(self, payload: dict[str, Any] | None) -> None:
        self.payload = payload

    def __call__(self, frame: dict[str, Any]) -> list[dict[str, Any]]:
        value = self.payload if self.payload is not None else {"error": "cascade not found"}
        return per_context_responder({1: value})(frame)


# ═══════════════════════════════════════════════════════════════════════════════
# Store
# ═══════════════════════════════════════════════════════════════════════════════

def test_store_first_update_always_counts_as_change() -> None:
    store = SnapshotStore()
    assert not store.has_snapshot

    new_hash = store.update(Snapshot(html=""))

    assert new_hash == "0"
    assert store.has_snapshot


def test_store_ignores_stats_changes_but_keeps_latest_snapshot() -> None:
    store = SnapshotStore()
    first = Snapshot.from_payload(snapshot_payload("<p>a</p>", nodes=3))
    second = Snapshot.from_payload(snapshot_payload("<p>a</p>", nodes=99))

    assert store.update(first) == hash_string("<p>a</p>")
    assert store.update(second) is None
    assert store.latest is second


# ═══════════════════════════════════════════════════════════════════════════════
# Broadcaster
# ═══════════════════════════════════════════════════════════════════════════════

def test_register_sends_hello_reflecting_snapshot_availability() -> None:
    store = SnapshotStore()
    broadcaster = ChangeBroadcaster(store)
    early, late = FakeViewerSocket(), FakeViewerSocket()

    async def scenario() -> None:
        await broadcaster.register(early)
        store.update(Snapshot(html="<p>x</p>"))
        await broadcaster.register(late)

    asyncio.run(scenario())

    assert early.messages == [{"type": "hello", "snapshotAvailable": False}]
    assert late.messages == [{"type": "hello", "snapshotAvailable": True}]
    assert broadcaster.client_count == 2


def test_broadcast_skips_closed_sockets_and_drops_failing_ones() -> None:
    broadcaster = ChangeBroadcaster(SnapshotStore())
    healthy = FakeViewerSocket()
    closing = FakeViewerSocket()
    broken = FakeViewerSocket()

    async def scenario() -> int:
        for ws in (healthy, closing, broken):
            await broadcaster.register(ws)
        closing.client_state = WebSocketState.DISCONNECTED
        broken.fail = True
        return await broadcaster.broadcast({"type": "update", "hash": "abc"})

    delivered = asyncio.run(scenario())

    assert delivered == 1
    assert healthy.messages[-1] == {"type": "update", "hash": "abc"}
    assert closing.messages[-1]["type"] == "hello"
    assert broadcaster.client_count == 2


def test_unregister_removes_socket() -> None:
    broadcaster = ChangeBroadcaster(SnapshotStore())
    ws = FakeViewerSocket()

    async def scenario() -> int:
        await broadcaster.register(ws)
        broadcaster.unregister(ws)
        broadcaster.unregister(ws)
        return await broadcaster.broadcast({"type": "update", "hash": "x"})

    assert asyncio.run(scenario()) == 0
    assert broadcaster.client_count == 0


# ═══════════════════════════════════════════════════════════════════════════════
# Capture loop
# ═══════════════════════════════════════════════════════════════════════════════

def test_tick_without_connection_is_silent() -> None:
    store = SnapshotStore()
    viewer = FakeViewerSocket()
    broadcaster = ChangeBroadcaster(store)
    loop = SnapshotCaptureLoop(StaticBridge(None), store, broadcaster, interval=0)

    async def scenario() -> bool:
        await broadcaster.register(viewer)
        return await loop.tick()

    assert asyncio.run(scenario()) is False
    assert store.latest is None
    assert viewer.messages == [{"type": "hello", "snapshotAvailable": False}]


def test_tick_broadcasts_only_markup_changes() -> None:
    store = SnapshotStore()
    broadcaster = ChangeBroadcaster(store)
    viewer = FakeViewerSocket()
    responder = MutableResponder(snapshot_payload("<p>a</p>", nodes=1))

    async def scenario() -> list[bool]:
        conn = await open_connection(FakeCDPSocket(responder), contexts=(1,))
        loop = SnapshotCaptureLoop(StaticBridge(conn), store, broadcaster, interval=0)
        await broadcaster.register(viewer)
        results = [await loop.tick()]
        responder.payload = snapshot_payload("<p>a</p>", nodes=42)
        results.append(await loop.tick())
        responder.payload = snapshot_payload("<p>b</p>", nodes=42)
        results.append(await loop.tick())
        await conn.close()
        return results

    results = asyncio.run(scenario())

    updates = [m for m in viewer.messages if m["type"] == "update"]
    assert results == [True, False, True]
    assert [u["hash"] for u in updates] == [hash_string("<p>a</p>"), hash_string("<p>b</p>")]
    assert store.latest.html == "<p>b</p>"
    assert store.latest.stats.nodes == 42


def test_capture_failure_keeps_previous_snapshot() -> None:
    store = SnapshotStore()
    broadcaster = ChangeBroadcaster(store)
    responder = MutableResponder(snapshot_payload("<p>a</p>"))

    async def scenario() -> tuple[bool, bool]:
        conn = await open_connection(FakeCDPSocket(responder), contexts=(1,))
        loop = SnapshotCaptureLoop(StaticBridge(conn), store, broadcaster, interval=0)
        first = await loop.tick()
        responder.payload = None
        second = await loop.tick()
        await conn.close()
        return first, second

    first, second = asyncio.run(scenario())

    assert (first, second) == (True, False)
    assert store.latest.html == "<p>a</p>"
    assert store.last_hash == hash_string("<p>a</p>")


def test_run_survives_failures_until_stopped() -> None:
    store = SnapshotStore()
    responder = MutableResponder(None)

    async def scenario() -> None:
        conn = await open_connection(FakeCDPSocket(responder), contexts=(1,))
        loop = SnapshotCaptureLoop(StaticBridge(conn), store, ChangeBroadcaster(store), interval=0.001)
        task = asyncio.create_task(loop.run())
        await asyncio.sleep(0.02)
        responder.payload = snapshot_payload("<p>late</p>")
        await asyncio.sleep(0.02)
        loop.stop()
        await asyncio.wait_for(task, timeout=1)
        await conn.close()

    asyncio.run(scenario())

    assert store.latest.html == "<p>late</p>"
