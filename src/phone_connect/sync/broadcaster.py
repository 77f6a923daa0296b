"""
變更廣播器

透過各 viewer 的 WebSocket 推送變更通知（只送訊號，不送內容）。
"""

import json
import logging
from typing import Any

from starlette.websockets import WebSocket, WebSocketState

from phone_connect.sync.store import SnapshotStore

logger = logging.getLogger(__name__)


def _is_open(websocket: WebSocket) -> bool:
    return (
        websocket.client_state == WebSocketState.CONNECTED
        and websocket.application_state == WebSocketState.CONNECTED
    )


class ChangeBroadcaster:
    """
    Viewer 連線集合

    不保證送達、不重送、不保存錯過的事件；
    重新連線的 viewer 應重新拉取完整 Snapshot。
    """

    def __init__(self, store: SnapshotStore) -> None:
        self._store = store
        self._clients: set[WebSocket] = set()

    @property
    def client_count(self) -> int:
        return len(self._clients)

    async def register(self, websocket: WebSocket) -> None:
        """送出 hello 後加入 viewer 集合"""
        await websocket.send_text(json.dumps({"type": "hello", "snapshotAvailable": self._store.has_snapshot}))
        self._clients.add(websocket)
        logger.info(f"📱 Phone connected（目前 {len(self._clients)} 個）")

    def unregister(self, websocket: WebSocket) -> None:
        if websocket in self._clients:
            self._clients.discard(websocket)
            logger.info(f"📱 Phone disconnected（剩餘 {len(self._clients)} 個）")

    async def broadcast(self, event: dict[str, Any]) -> int:
        """
        推送事件給所有開啟中的 viewer

        Returns:
            成功送出的數量
        """
        message = json.dumps(event)
        delivered = 0
        for websocket in list(self._clients):
            if not _is_open(websocket):
                continue
            try:
                await websocket.send_text(message)
                delivered += 1
            except Exception as e:
                logger.debug(f"推送失敗，移除 viewer: {e}")
                self._clients.discard(websocket)
        return delivered
