"""
Snapshot 同步模組

擷取迴圈 → 雜湊比對 → 廣播變更訊號 → viewer 自行拉取完整 Snapshot。
"""

from phone_connect.sync.broadcaster import ChangeBroadcaster
from phone_connect.sync.capture_loop import SnapshotCaptureLoop
from phone_connect.sync.store import SnapshotStore

__all__ = ["ChangeBroadcaster", "SnapshotCaptureLoop", "SnapshotStore"]
