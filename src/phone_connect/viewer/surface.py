"""
Viewer 顯示介面

捲動同步只依賴容器尺寸與捲動操作，實際渲染由各 viewer 自行實作。
"""

from dataclasses import dataclass
from typing import Protocol

from phone_connect.schemas import Snapshot
from phone_connect.utils import scroll_fraction


class ViewerSurface(Protocol):
    """Viewer 的捲動容器"""

    scroll_top: float
    scroll_height: float
    client_height: float

    def render(self, snapshot: Snapshot) -> None: ...

    def scroll_to(self, top: float) -> None: ...

    def scroll_to_bottom(self) -> None: ...


@dataclass
class MemorySurface:
    """
    無畫面的 viewer 容器

    沒有版面配置，內容高度沿用主機回報的 scrollHeight。
    """

    client_height: float = 800.0
    scroll_height: float = 0.0
    scroll_top: float = 0.0
    snapshot: Snapshot | None = None
    renders: int = 0

    @property
    def max_scroll(self) -> float:
        return max(self.scroll_height - self.client_height, 0.0)

    @property
    def fraction(self) -> float:
        return scroll_fraction(self.scroll_top, self.scroll_height, self.client_height)

    def render(self, snapshot: Snapshot) -> None:
        self.snapshot = snapshot
        self.renders += 1
        if snapshot.scroll_info.scroll_height:
            self.scroll_height = snapshot.scroll_info.scroll_height
        self.scroll_top = min(self.scroll_top, self.max_scroll)

    def scroll_to(self, top: float) -> None:
        self.scroll_top = min(max(top, 0.0), self.max_scroll)

    def scroll_to_bottom(self) -> None:
        self.scroll_top = self.max_scroll
