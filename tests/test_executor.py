from __future__ import annotations

import asyncio
import json
from typing import Any

import pytest

from fakes import FakeCDPSocket, evaluate_reply, open_connection, per_context_responder, snapshot_payload
from phone_connect.cdp import actions
from phone_connect.cdp.executor import evaluate_in_contexts, is_success_result, is_usable_result
from phone_connect.cdp.snapshot import capture_snapshot
from phone_connect.schemas import CaptureFailure, ProtocolError


def run_with_contexts(values: dict[int, Any], coro_factory, contexts: tuple[int, ...] = (1, 2, 3)):
    async def scenario():
        socket = FakeCDPSocket(per_context_responder(values))
        conn = await open_connection(socket, contexts=contexts)
        try:
            return await coro_factory(conn), socket
        finally:
            await conn.close()

    return asyncio.run(scenario())


def evaluated_contexts(socket: FakeCDPSocket) -> list[int]:
    return [frame["params"]["contextId"] for frame in socket.sent if frame["method"] == "Runtime.evaluate"]


def test_is_usable_result() -> None:
    assert is_usable_result({"ok": True})
    assert is_usable_result("text")
    assert not is_usable_result(None)
    assert not is_usable_result({"error": "cascade not found"})


def test_is_success_result() -> None:
    assert is_success_result({"success": True})
    assert not is_success_result({"success": False, "error": "x"})
    assert not is_success_result(True)


def test_falls_back_to_next_context_until_one_accepts() -> None:
    values = {1: {"error": "cascade not found"}, 2: ProtocolError(-32000, "gone"), 3: {"ok": True}}

    evaluation, socket = run_with_contexts(values, lambda conn: evaluate_in_contexts(conn, "1"))

    assert evaluation.accepted
    assert evaluation.value == {"ok": True}
    assert evaluation.context.id == 3
    assert evaluated_contexts(socket) == [1, 2, 3]
    assert len(evaluation.errors) == 2


def test_stops_at_first_accepting_context() -> None:
    values = {1: {"ok": True}, 2: {"ok": True}}

    evaluation, socket = run_with_contexts(values, lambda conn: evaluate_in_contexts(conn, "1"))

    assert evaluation.context.id == 1
    assert evaluated_contexts(socket) == [1]


def test_evaluate_sends_return_by_value_and_context_id() -> None:
    _, socket = run_with_contexts({1: 1}, lambda conn: evaluate_in_contexts(conn, "1 + 0", await_promise=False), (1,))

    params = socket.sent[0]["params"]
    assert params == {"expression": "1 + 0", "returnByValue": True, "awaitPromise": False, "contextId": 1}


def test_script_exception_counts_as_failure() -> None:
    def respond(frame: dict[str, Any]) -> list[dict[str, Any]]:
        reply = evaluate_reply(frame, None)
        reply["result"]["exceptionDetails"] = {"text": "Uncaught", "exception": {"description": "TypeError: x"}}
        return [reply]

    async def scenario():
        conn = await open_connection(FakeCDPSocket(respond), contexts=(1,))
        try:
            return await evaluate_in_contexts(conn, "throw 1")
        finally:
            await conn.close()

    evaluation = asyncio.run(scenario())

    assert not evaluation.accepted
    assert "TypeError: x" in evaluation.errors[0]


def test_exhaustion_yields_no_context_envelope() -> None:
    evaluation, _ = run_with_contexts({}, lambda conn: evaluate_in_contexts(conn, "1"))

    failure = evaluation.failure()
    assert evaluation.value is None
    assert failure["ok"] is False
    assert failure["success"] is False
    assert failure["error"] == "no_context"
    assert len(failure["details"]) == 3


def test_no_contexts_means_no_calls() -> None:
    evaluation, socket = run_with_contexts({}, lambda conn: evaluate_in_contexts(conn, "1"), contexts=())

    assert not evaluation.accepted
    assert socket.sent == []


def test_remote_scroll_requires_success_flag() -> None:
    values = {1: {"error": "No scrollable element"}, 2: {"success": True, "scrollPercent": 0.5}}

    result, socket = run_with_contexts(values, lambda conn: actions.remote_scroll(conn, scroll_percent=0.5), (1, 2))

    assert result == {"success": True, "scrollPercent": 0.5}
    assert '"scrollPercent": 0.5' in socket.sent[0]["params"]["expression"]


def test_remote_scroll_failure_carries_details() -> None:
    result, _ = run_with_contexts({1: {"success": False}}, lambda conn: actions.remote_scroll(conn, scroll_top=10), (1,))

    assert result["success"] is False
    assert result["error"] == "no_context"
    assert result["details"]


def test_click_element_embeds_arguments_as_json() -> None:
    selector = 'button[title="Run \\"it\\""]'
    values = {1: {"success": True}}

    result, socket = run_with_contexts(
        values, lambda conn: actions.click_element(conn, selector, index=2, text_content="Run"), (1,)
    )

    expression = socket.sent[0]["params"]["expression"]
    assert result == {"success": True}
    assert json.dumps(selector) in expression


def test_set_mode_rejects_unknown_modes_without_calls() -> None:
    result, socket = run_with_contexts({}, lambda conn: actions.set_mode(conn, "Turbo"), (1,))

    assert result == {"success": False, "error": "Unsupported mode: Turbo"}
    assert socket.sent == []


def test_set_mode_returns_host_result() -> None:
    result, _ = run_with_contexts({1: {"success": True}}, lambda conn: actions.set_mode(conn, "Planning"), (1,))

    assert result == {"success": True}


def test_inject_message_reports_busy_host() -> None:
    result, _ = run_with_contexts({1: {"ok": False, "reason": "busy"}}, lambda conn: actions.inject_message(conn, "hi"), (1,))

    assert result == {"ok": False, "reason": "busy"}


def test_get_app_state_falls_back_to_unknown() -> None:
    result, _ = run_with_contexts({}, actions.get_app_state, (1,))

    assert result["mode"] == "Unknown"
    assert result["model"] == "Unknown"
    assert result["error"] == "no_context"


def test_capture_snapshot_records_successful_context() -> None:
    values = {1: {"error": "cascade not found"}, 2: snapshot_payload("<p>x</p>", scroll_percent=0.25)}

    async def scenario():
        conn = await open_connection(FakeCDPSocket(per_context_responder(values)), contexts=(1, 2))
        try:
            snapshot = await capture_snapshot(conn)
            return snapshot, conn.last_successful_context_id
        finally:
            await conn.close()

    snapshot, context_id = asyncio.run(scenario())

    assert snapshot.html == "<p>x</p>"
    assert snapshot.scroll_info.scroll_percent == 0.25
    assert context_id == 2


def test_capture_snapshot_raises_when_no_context_succeeds() -> None:
    with pytest.raises(CaptureFailure):
        run_with_contexts({1: {"error": "cascade not found"}}, capture_snapshot, (1,))
