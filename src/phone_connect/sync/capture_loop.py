"""
Snapshot 擷取迴圈

固定週期擷取主機 UI，以 markup 雜湊判斷變更，變更時廣播通知。
"""

import asyncio
import logging

from phone_connect.cdp.bridge import HostBridge
from phone_connect.cdp.snapshot import capture_snapshot
from phone_connect.config import POLL_INTERVAL
from phone_connect.schemas import BridgeError
from phone_connect.sync.broadcaster import ChangeBroadcaster
from phone_connect.sync.store import SnapshotStore

logger = logging.getLogger(__name__)


class SnapshotCaptureLoop:
    """
    Snapshot 擷取迴圈

    沒有主機連線時直接略過；擷取失敗只記錄，不中斷迴圈也不清除上一份 Snapshot。
    """

    def __init__(
        self,
        bridge: HostBridge,
        store: SnapshotStore,
        broadcaster: ChangeBroadcaster,
        interval: float = POLL_INTERVAL,
    ) -> None:
        self._bridge = bridge
        self._store = store
        self._broadcaster = broadcaster
        self._interval = interval
        self._running = False
        self._failure_streak = 0

    async def tick(self) -> bool:
        """
        執行一次擷取

        Returns:
            是否廣播了變更
        """
        connection = self._bridge.connection
        if connection is None:
            return False

        try:
            snapshot = await capture_snapshot(connection)
        except BridgeError as e:
            self._record_failure(e)
            return False

        self._failure_streak = 0
        new_hash = self._store.update(snapshot)
        if new_hash is None:
            return False

        await self._broadcaster.broadcast({"type": "update", "hash": new_hash})
        return True

    def _record_failure(self, error: Exception) -> None:
        self._failure_streak += 1
        if self._failure_streak == 1:
            logger.warning(f"❌ Snapshot 擷取失敗: {error}")
        else:
            logger.debug(f"Snapshot 擷取仍失敗（連續 {self._failure_streak} 次）: {error}")

    async def run(self) -> None:
        """持續執行直到 stop()"""
        self._running = True
        logger.info(f"🔄 Snapshot 擷取迴圈啟動，間隔 {self._interval}s")
        while self._running:
            try:
                await self.tick()
            except Exception as e:
                logger.exception(f"❌ Snapshot error: {e}")
            await asyncio.sleep(self._interval)

    def stop(self) -> None:
        self._running = False
