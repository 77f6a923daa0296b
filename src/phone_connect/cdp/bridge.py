"""
主機橋接器

持有目前的 CDP 連線參考，負責 discovery + connect 以及斷線後的重新探測。
連線本身不會自動重連，重連策略集中在這裡。
"""

import asyncio
import contextlib
import logging

from phone_connect.cdp.connection import CDPConnection, connect_cdp
from phone_connect.cdp.discovery import discover
from phone_connect.config import CDP_PORTS, HOST_RECONNECT_INTERVAL
from phone_connect.schemas import BridgeError, DiscoveryFailure

logger = logging.getLogger(__name__)


class HostBridge:
    """
    主機橋接器

    所有 viewer 與 capture loop 共用同一條 CDP 連線；
    連線關閉時參考會被清空，由 run() 迴圈重新探測。
    """

    def __init__(
        self,
        ports: list[int] | None = None,
        reconnect_interval: float = HOST_RECONNECT_INTERVAL,
    ) -> None:
        self._ports = list(CDP_PORTS if ports is None else ports)
        self._reconnect_interval = reconnect_interval
        self._connection: CDPConnection | None = None
        self._running = False
        self._connect_lock = asyncio.Lock()

    @property
    def connection(self) -> CDPConnection | None:
        """目前可用的連線，沒有主機時為 None"""
        return self._connection

    @property
    def is_connected(self) -> bool:
        return self._connection is not None and self._connection.is_open

    async def connect(self) -> bool:
        """
        執行 discovery 並建立連線

        Returns:
            是否連線成功；失敗只記錄警告，不拋出例外
        """
        async with self._connect_lock:
            if self.is_connected:
                return True

            logger.info("🔍 正在探測主機 CDP endpoint...")
            try:
                endpoint = await discover(self._ports)
                logger.info(f"✅ 已在 Port {endpoint.port} 找到主機")

                logger.info("🔌 正在連接 CDP...")
                connection = await connect_cdp(endpoint.debugger_url)
            except DiscoveryFailure as e:
                logger.warning(f"⚠️ CDP 初始化失敗: {e}")
                return False
            except BridgeError as e:
                logger.warning(f"⚠️ CDP 連線失敗: {e}")
                return False

            self.attach(connection)
            logger.info(
                f"✅ 已連線！共 {len(connection.contexts)} 個 Context: "
                f"{[c.describe() for c in connection.contexts]}"
            )
            return True

    def attach(self, connection: CDPConnection) -> None:
        """採用一條已建立的連線"""
        self._connection = connection
        connection.on_close(self._handle_close)

    def _handle_close(self, connection: CDPConnection) -> None:
        if self._connection is connection:
            self._connection = None
            logger.warning("🔴 主機連線已中斷，將重新探測")

    async def run(self) -> None:
        """
        重連迴圈

        沒有連線時每隔 reconnect_interval 秒重新 discovery + connect。
        """
        self._running = True
        while self._running:
            if not self.is_connected:
                try:
                    await self.connect()
                except Exception as e:
                    logger.exception(f"主機重連失敗: {e}")
            await asyncio.sleep(self._reconnect_interval)

    async def stop(self) -> None:
        """停止重連並關閉連線"""
        self._running = False
        connection, self._connection = self._connection, None
        if connection is not None:
            with contextlib.suppress(Exception):
                await connection.close()
            logger.info("🛑 主機連線已關閉")
