"""
CDP 連線管理

開啟單一持久 WebSocket 連線到主機的 debugger URL，
由唯一的讀取 Task 負責分派回應與追蹤 Execution Context。
"""

import asyncio
import contextlib
import json
import logging
from collections.abc import Callable
from enum import Enum
from typing import Any

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from phone_connect.cdp.multiplexer import CallMultiplexer
from phone_connect.config import CDP_CALL_TIMEOUT, CDP_CONTEXT_WAIT_INTERVAL, CDP_CONTEXT_WAIT_RETRIES
from phone_connect.schemas import ExecutionContext, HostConnectionClosed

logger = logging.getLogger(__name__)

CONTEXT_CREATED_EVENT = "Runtime.executionContextCreated"

CloseCallback = Callable[["CDPConnection"], None]


class ConnectionState(Enum):
    """連線狀態"""
    CONNECTING = "connecting"
    READY = "ready"
    CLOSED = "closed"


class CDPConnection:
    """
    單一 CDP 連線

    擁有 socket、呼叫多工器與 Execution Context 清單。
    Context 清單只會新增（以 id 去重），不會因 context 消失而移除。
    """

    def __init__(self, websocket: Any, call_timeout: float = CDP_CALL_TIMEOUT) -> None:
        self._websocket = websocket
        self._mux = CallMultiplexer(self._send, timeout=call_timeout)
        self._contexts: list[ExecutionContext] = []
        self._state = ConnectionState.CONNECTING
        self._reader_task: asyncio.Task | None = None
        self._close_callbacks: list[CloseCallback] = []
        self.last_successful_context_id: int | None = None

    # ═══════════════════════════════════════════════════════════════════════════════
    # 狀態
    # ═══════════════════════════════════════════════════════════════════════════════

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state is not ConnectionState.CLOSED

    @property
    def contexts(self) -> list[ExecutionContext]:
        """目前已知的 Execution Context（依發現順序）"""
        return list(self._contexts)

    @property
    def pending_count(self) -> int:
        return self._mux.pending_count

    def on_close(self, callback: CloseCallback) -> None:
        """註冊連線關閉時的回呼"""
        self._close_callbacks.append(callback)

    # ═══════════════════════════════════════════════════════════════════════════════
    # 生命週期
    # ═══════════════════════════════════════════════════════════════════════════════

    def start(self) -> None:
        """啟動讀取 Task"""
        if self._reader_task is None:
            self._reader_task = asyncio.create_task(self._reader_loop(), name="cdp-reader")

    def mark_ready(self) -> None:
        if self._state is ConnectionState.CONNECTING:
            self._state = ConnectionState.READY

    async def close(self) -> None:
        """關閉連線，所有等待中的呼叫會立即收到 HostConnectionClosed"""
        self._mark_closed("連線已由本地關閉")
        with contextlib.suppress(Exception):
            await self._websocket.close()
        if self._reader_task and not self._reader_task.done():
            self._reader_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._reader_task

    async def wait_for_contexts(
        self,
        retries: int = CDP_CONTEXT_WAIT_RETRIES,
        interval: float = CDP_CONTEXT_WAIT_INTERVAL,
    ) -> bool:
        """
        等待至少一個 Execution Context 出現

        Returns:
            是否已有 Context；找不到時仍繼續運作（降級狀態）
        """
        while not self._contexts and retries > 0:
            logger.info(f"⏳ 等待 Execution Context... (剩餘 {retries} 次)")
            await asyncio.sleep(interval)
            retries -= 1

        if not self._contexts:
            logger.warning("⚠️ 未發現任何 Execution Context，Snapshot 可能無法擷取")
            return False
        return True

    # ═══════════════════════════════════════════════════════════════════════════════
    # 呼叫
    # ═══════════════════════════════════════════════════════════════════════════════

    async def call(self, method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        """
        發送 CDP 指令並等待回應

        Raises:
            HostConnectionClosed: 連線已關閉
            CallTimeout: 逾時
            ProtocolError: 遠端回傳錯誤
        """
        if self._state is ConnectionState.CLOSED:
            raise HostConnectionClosed(f"CDP 連線已關閉，無法呼叫 {method}")
        return await self._mux.call(method, params)

    async def _send(self, message: str) -> None:
        try:
            await self._websocket.send(message)
        except ConnectionClosed as e:
            raise HostConnectionClosed(f"CDP 連線已斷開: {e}") from e

    # ═══════════════════════════════════════════════════════════════════════════════
    # 訊息處理
    # ═══════════════════════════════════════════════════════════════════════════════

    def handle_frame(self, frame: dict[str, Any]) -> None:
        """
        處理單一 frame

        回應分派與 context 事件並非互斥，同一個 frame 兩者都會檢查。
        """
        self._mux.dispatch(frame)

        if frame.get("method") == CONTEXT_CREATED_EVENT:
            payload = (frame.get("params") or {}).get("context")
            if isinstance(payload, dict):
                self._track_context(payload)

    def _track_context(self, payload: dict[str, Any]) -> None:
        try:
            context = ExecutionContext.from_payload(payload)
        except (KeyError, TypeError, ValueError):
            logger.debug(f"忽略無效的 Execution Context: {payload}")
            return
        if any(c.id == context.id for c in self._contexts):
            return
        self._contexts.append(context)
        logger.debug(f"新增 Execution Context: {context.describe()}")

    async def _reader_loop(self) -> None:
        """讀取 Task：唯一修改 pending 表與 context 清單的路徑"""
        reason = "CDP 連線已關閉"
        try:
            async for raw in self._websocket:
                try:
                    frame = json.loads(raw)
                except (TypeError, json.JSONDecodeError):
                    logger.debug(f"無法解析 CDP 訊息: {str(raw)[:100]}")
                    continue
                if isinstance(frame, dict):
                    self.handle_frame(frame)
        except ConnectionClosed as e:
            reason = f"CDP 連線已斷開: {e}"
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception(f"CDP 讀取迴圈錯誤: {e}")
            reason = f"CDP 讀取迴圈錯誤: {e}"
        finally:
            self._mark_closed(reason)

    def _mark_closed(self, reason: str) -> None:
        if self._state is ConnectionState.CLOSED:
            return
        self._state = ConnectionState.CLOSED
        logger.warning(f"🔻 CDP Connection closed: {reason}")
        self._mux.reject_all(HostConnectionClosed(reason))

        for callback in self._close_callbacks:
            try:
                callback(self)
            except Exception as e:
                logger.exception(f"連線關閉回呼失敗: {e}")


async def connect_cdp(
    debugger_url: str,
    call_timeout: float = CDP_CALL_TIMEOUT,
    context_wait_retries: int = CDP_CONTEXT_WAIT_RETRIES,
    context_wait_interval: float = CDP_CONTEXT_WAIT_INTERVAL,
) -> CDPConnection:
    """
    連接到 debugger URL 並啟用 Runtime 事件

    Args:
        debugger_url: Target 的 webSocketDebuggerUrl
        call_timeout: 單一呼叫逾時（秒）
        context_wait_retries: 等待 Execution Context 的次數
        context_wait_interval: 每次等待的間隔（秒）

    Raises:
        HostConnectionClosed: 無法開啟 socket
        BridgeError: Runtime.enable 失敗
    """
    try:
        # Snapshot 含完整樣式表，不限制訊息大小
        websocket = await websockets.connect(debugger_url, max_size=None, ping_interval=None)
    except (OSError, asyncio.TimeoutError, WebSocketException) as e:
        raise HostConnectionClosed(f"無法連接 CDP: {e}") from e

    connection = CDPConnection(websocket, call_timeout=call_timeout)
    connection.start()

    # 握手期間被取消（例如伺服器關閉）也要關閉 socket
    try:
        await connection.call("Runtime.enable", {})
        await connection.wait_for_contexts(retries=context_wait_retries, interval=context_wait_interval)
    except BaseException:
        await asyncio.shield(connection.close())
        raise

    connection.mark_ready()
    return connection
