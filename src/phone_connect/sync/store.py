"""
Snapshot Store

保存最新一份 Snapshot 與其內容雜湊，供 capture loop 與 pull API 共用。
"""

import logging

from phone_connect.schemas import Snapshot
from phone_connect.utils import hash_string

logger = logging.getLogger(__name__)


class SnapshotStore:
    """
    最新 Snapshot 的唯一持有者

    雜湊只計算 markup；統計資訊與樣式的變動不視為變更。
    """

    def __init__(self) -> None:
        self._latest: Snapshot | None = None
        self._last_hash = ""

    @property
    def latest(self) -> Snapshot | None:
        return self._latest

    @property
    def last_hash(self) -> str:
        return self._last_hash

    @property
    def has_snapshot(self) -> bool:
        """是否曾經產生過 Snapshot"""
        return self._latest is not None

    def update(self, snapshot: Snapshot) -> str | None:
        """
        以新的 Snapshot 取代目前內容

        Returns:
            markup 有變更時回傳新的雜湊，否則為 None
        """
        first = self._latest is None
        self._latest = snapshot

        current_hash = hash_string(snapshot.html)
        if current_hash == self._last_hash:
            return None

        if first:
            logger.info("📸 已擷取第一份 Snapshot")
        self._last_hash = current_hash
        return current_hash
