"""
Viewer 客戶端

連接橋接伺服器的推送頻道，收到變更訊號時拉取完整 Snapshot，
並透過捲動同步協定與主機交換捲動位置。
"""

import asyncio
import contextlib
import json
import logging
from typing import Any

import httpx
import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from phone_connect.config import VIEWER_APP_STATE_INTERVAL, VIEWER_RECONNECT_INTERVAL
from phone_connect.schemas import Snapshot
from phone_connect.viewer.scroll_sync import ScrollSyncSession
from phone_connect.viewer.surface import ViewerSurface

logger = logging.getLogger(__name__)


def to_websocket_url(server_url: str) -> str:
    """http(s):// 轉換為推送頻道的 ws(s):// 位址"""
    url = server_url.rstrip("/")
    if url.startswith("https://"):
        url = "wss://" + url[len("https://"):]
    elif url.startswith("http://"):
        url = "ws://" + url[len("http://"):]
    return url + "/"


class ViewerClient:
    """
    Viewer 客戶端

    推送頻道只接收 hello / update 訊號，所有操作都走 HTTP API。
    """

    def __init__(
        self,
        server_url: str,
        surface: ViewerSurface,
        http_client: httpx.AsyncClient | None = None,
        reconnect_interval: float = VIEWER_RECONNECT_INTERVAL,
        app_state_interval: float = VIEWER_APP_STATE_INTERVAL,
        **session_options: Any,
    ) -> None:
        self._server_url = server_url.rstrip("/")
        self._ws_url = to_websocket_url(server_url)
        self._surface = surface
        self._http = http_client or httpx.AsyncClient(base_url=self._server_url, timeout=10.0)
        self._owns_http = http_client is None
        self._reconnect_interval = reconnect_interval
        self._app_state_interval = app_state_interval
        self._websocket: Any = None
        self._running = False

        self.session = ScrollSyncSession(surface, push=self.push_scroll, pull=self.load_snapshot, **session_options)
        self.app_state: dict[str, Any] = {"mode": "Unknown", "model": "Unknown"}
        self.last_hash = ""
        self.connected = False

    async def __aenter__(self) -> "ViewerClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.stop()

    # ═══════════════════════════════════════════════════════════════════════════════
    # Pull API
    # ═══════════════════════════════════════════════════════════════════════════════

    async def load_snapshot(self) -> Snapshot | None:
        """拉取最新 Snapshot 並渲染；伺服器尚無 Snapshot 時回傳 None"""
        response = await self._http.get("/snapshot")
        if response.status_code == 503:
            return None
        response.raise_for_status()

        snapshot = Snapshot.from_payload(response.json())
        self._surface.render(snapshot)
        self.session.apply_snapshot(snapshot.scroll_info)
        return snapshot

    async def push_scroll(self, fraction: float) -> dict[str, Any]:
        """將 viewer 捲動比例推送到主機"""
        return await self._post("/remote-scroll", {"scrollPercent": fraction})

    async def fetch_app_state(self) -> dict[str, Any]:
        response = await self._http.get("/app-state")
        response.raise_for_status()
        data = response.json()
        if data.get("mode") and data["mode"] != "Unknown":
            self.app_state["mode"] = data["mode"]
        if data.get("model") and data["model"] != "Unknown":
            self.app_state["model"] = data["model"]
        return data

    async def send_message(self, message: str) -> dict[str, Any]:
        return await self._post("/send", {"message": message})

    async def set_mode(self, mode: str) -> dict[str, Any]:
        return await self._post("/set-mode", {"mode": mode})

    async def set_model(self, model: str) -> dict[str, Any]:
        return await self._post("/set-model", {"model": model})

    async def stop_generation(self) -> dict[str, Any]:
        return await self._post("/stop", {})

    async def remote_click(self, selector: str, index: int = 0, text_content: str = "") -> dict[str, Any]:
        return await self._post("/remote-click", {"selector": selector, "index": index, "textContent": text_content})

    async def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        response = await self._http.post(path, json=payload)
        response.raise_for_status()
        return response.json()

    # ═══════════════════════════════════════════════════════════════════════════════
    # 推送頻道
    # ═══════════════════════════════════════════════════════════════════════════════

    async def handle_message(self, data: dict[str, Any]) -> None:
        """處理推送頻道的訊息"""
        msg_type = data.get("type")

        if msg_type == "hello":
            if data.get("snapshotAvailable"):
                await self.load_snapshot()
        elif msg_type == "update":
            self.last_hash = str(data.get("hash", ""))
            if not self.session.user_is_scrolling:
                await self.load_snapshot()
        else:
            logger.warning(f"未知訊息類型: {msg_type}")

    async def run(self) -> None:
        """
        執行主迴圈：接收推送訊號

        當連線斷開時會自動重連。
        """
        self._running = True
        poller = asyncio.create_task(self._poll_app_state())
        try:
            while self._running:
                try:
                    await self._listen()
                except (ConnectionClosed, OSError, WebSocketException) as e:
                    logger.warning(f"🔴 推送頻道已斷開: {e}")
                except Exception as e:
                    logger.exception(f"處理推送訊息時發生錯誤: {e}")
                finally:
                    self.connected = False
                    self._websocket = None

                if self._running:
                    await asyncio.sleep(self._reconnect_interval)
        finally:
            poller.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await poller

    async def _listen(self) -> None:
        logger.info(f"🔗 正在連接推送頻道: {self._ws_url}")
        async with websockets.connect(self._ws_url) as websocket:
            self._websocket = websocket
            self.connected = True
            logger.info("✅ 推送頻道已連線")
            async for message in websocket:
                try:
                    data = json.loads(message)
                except json.JSONDecodeError:
                    logger.warning(f"無法解析訊息: {str(message)[:100]}")
                    continue
                try:
                    await self.handle_message(data)
                except httpx.HTTPError as e:
                    logger.warning(f"拉取 Snapshot 失敗: {e}")

    async def _poll_app_state(self) -> None:
        """定期同步主機的模式與模型"""
        while True:
            try:
                await self.fetch_app_state()
            except httpx.HTTPError as e:
                logger.debug(f"同步 app state 失敗: {e}")
            await asyncio.sleep(self._app_state_interval)

    async def stop(self) -> None:
        """停止客戶端"""
        self._running = False
        self.session.close()
        if self._websocket is not None:
            with contextlib.suppress(Exception):
                await self._websocket.close()
        if self._owns_http:
            await self._http.aclose()
        logger.info("🛑 Viewer 已停止")
