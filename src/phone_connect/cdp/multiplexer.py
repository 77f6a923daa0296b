"""
CDP 呼叫多工器

在單一 WebSocket 上關聯非同步的 request/response，
以遞增的整數 id 對應回應，並負責逾時管理。
"""

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from phone_connect.config import CDP_CALL_TIMEOUT
from phone_connect.schemas import CallTimeout, HostConnectionClosed, ProtocolError

logger = logging.getLogger(__name__)

SendFunc = Callable[[str], Awaitable[None]]


@dataclass
class PendingCall:
    """等待回應中的呼叫"""
    method: str
    future: asyncio.Future
    timer: asyncio.TimerHandle


class CallMultiplexer:
    """
    CDP 呼叫多工器

    每個 pending id 只會被移除一次：收到回應、逾時、或連線關閉三者擇一。
    """

    def __init__(self, send: SendFunc, timeout: float = CDP_CALL_TIMEOUT) -> None:
        self._send = send
        self._timeout = timeout
        self._next_id = 1
        self._pending: dict[int, PendingCall] = {}

    @property
    def pending_count(self) -> int:
        """等待中的呼叫數量"""
        return len(self._pending)

    @property
    def pending_ids(self) -> list[int]:
        return list(self._pending)

    async def call(self, method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        """
        發送 CDP 指令並等待對應 id 的回應

        Args:
            method: CDP 方法名稱（例如 Runtime.evaluate）
            params: 指令參數

        Returns:
            回應中的 result 欄位

        Raises:
            CallTimeout: 逾時未收到回應
            ProtocolError: 遠端回傳 error
            HostConnectionClosed: 連線已關閉或送出失敗
        """
        loop = asyncio.get_running_loop()
        call_id = self._next_id
        self._next_id += 1

        future: asyncio.Future = loop.create_future()
        timer = loop.call_later(self._timeout, self._expire, call_id)
        self._pending[call_id] = PendingCall(method=method, future=future, timer=timer)

        message = json.dumps({"id": call_id, "method": method, "params": params or {}})
        try:
            await self._send(message)
        except Exception as e:
            entry = self._pending.pop(call_id, None)
            if entry:
                entry.timer.cancel()
            if isinstance(e, HostConnectionClosed):
                raise
            raise HostConnectionClosed(f"送出 {method} 失敗: {e}") from e

        return await future

    def dispatch(self, frame: dict[str, Any]) -> bool:
        """
        將收到的 frame 交給對應的 pending 呼叫

        Returns:
            是否有 pending 呼叫被解決
        """
        call_id = frame.get("id")
        if call_id is None:
            return False

        entry = self._pending.pop(call_id, None)
        if entry is None:
            logger.debug(f"收到未知 id 的回應: {call_id}")
            return False

        entry.timer.cancel()
        if entry.future.done():
            # 呼叫端已取消等待
            return True

        if frame.get("error") is not None:
            entry.future.set_exception(ProtocolError.from_payload(frame["error"]))
        else:
            entry.future.set_result(frame.get("result") or {})
        return True

    def reject_all(self, exc: Exception) -> int:
        """以指定錯誤結束所有等待中的呼叫，回傳被結束的數量"""
        pending = self._pending
        self._pending = {}
        for entry in pending.values():
            entry.timer.cancel()
            if not entry.future.done():
                entry.future.set_exception(exc)
        if pending:
            logger.warning(f"⚠️ 已中止 {len(pending)} 個等待中的 CDP 呼叫: {exc}")
        return len(pending)

    def _expire(self, call_id: int) -> None:
        """逾時回呼：移除自己的 pending 項目"""
        entry = self._pending.pop(call_id, None)
        if entry is None:
            return
        logger.warning(f"⏱️ CDP 呼叫逾時: {entry.method} (id={call_id})")
        if not entry.future.done():
            entry.future.set_exception(CallTimeout(entry.method, self._timeout))
