"""
Viewer 模組

推送頻道客戶端與主機/viewer 雙向捲動同步協定。
"""

from phone_connect.viewer.client import ViewerClient
from phone_connect.viewer.scroll_sync import ScrollSyncSession
from phone_connect.viewer.surface import MemorySurface, ViewerSurface

__all__ = ["MemorySurface", "ScrollSyncSession", "ViewerClient", "ViewerSurface"]
