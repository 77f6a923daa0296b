"""
資料模型定義

包含 Debug Target、Execution Context、Snapshot 等核心資料結構，
以及橋接器使用的錯誤類型。
"""
from dataclasses import dataclass, field
from typing import Any

from phone_connect.utils import scroll_fraction


# ═══════════════════════════════════════════════════════════════════════════════
# 錯誤類型
# ═══════════════════════════════════════════════════════════════════════════════
class BridgeError(Exception):
    """橋接器錯誤基底類別"""


class DiscoveryFailure(BridgeError):
    """所有候選 Port 都找不到可用的 Debug Target"""


class HostConnectionClosed(BridgeError):
    """CDP 連線已關閉，所有等待中的呼叫都會收到此錯誤"""


class CallTimeout(BridgeError):
    """CDP 呼叫在逾時時間內沒有收到回應"""

    def __init__(self, method: str, timeout: float):
        self.method = method
        self.timeout = timeout
        super().__init__(f"CDP call {method} timed out after {timeout:g}s")


class ProtocolError(BridgeError):
    """遠端回傳 error 欄位"""

    def __init__(self, code: int | None, message: str, data: Any = None):
        self.code = code
        self.message = message
        self.data = data
        super().__init__(f"[{code}] {message}")

    @classmethod
    def from_payload(cls, payload: Any) -> "ProtocolError":
        if isinstance(payload, dict):
            return cls(payload.get("code"), str(payload.get("message", "Unknown error")), payload.get("data"))
        return cls(None, str(payload))


class CaptureFailure(BridgeError):
    """本輪 Snapshot 擷取失敗（沒有任何 Context 回傳可用結果）"""


# ═══════════════════════════════════════════════════════════════════════════════
# Debug Target / Execution Context
# ═══════════════════════════════════════════════════════════════════════════════
@dataclass(frozen=True)
class TargetInfo:
    """/json/list 回傳的單一 Debug Target"""
    id: str
    type: str = ""
    title: str = ""
    url: str = ""
    web_socket_debugger_url: str = ""

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "TargetInfo":
        return cls(
            id=str(payload.get("id", "")),
            type=str(payload.get("type") or ""),
            title=str(payload.get("title") or ""),
            url=str(payload.get("url") or ""),
            web_socket_debugger_url=str(payload.get("webSocketDebuggerUrl") or ""),
        )

    def describe(self) -> str:
        return f"[{self.type}] {self.title} ({self.url})"


@dataclass
class EndpointCandidate:
    """單一 Port 的探測結果，每次 discovery 重新產生"""
    port: int
    targets: list[TargetInfo] = field(default_factory=list)


@dataclass(frozen=True)
class DiscoveredEndpoint:
    """Discovery 選定的結果"""
    port: int
    debugger_url: str
    target: TargetInfo


@dataclass(frozen=True)
class ExecutionContext:
    """遠端可執行腳本的隔離環境"""
    id: int
    name: str = ""
    origin: str = ""

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "ExecutionContext":
        return cls(
            id=int(payload["id"]),
            name=str(payload.get("name") or ""),
            origin=str(payload.get("origin") or ""),
        )

    def describe(self) -> str:
        return f"[{self.id}] {self.name or 'unnamed'} ({self.origin})"


# ═══════════════════════════════════════════════════════════════════════════════
# Snapshot
# ═══════════════════════════════════════════════════════════════════════════════
@dataclass(frozen=True)
class ScrollInfo:
    """主機端捲動位置"""
    scroll_top: float = 0.0
    scroll_height: float = 0.0
    client_height: float = 0.0
    scroll_percent: float = 0.0

    @classmethod
    def from_payload(cls, payload: dict[str, Any] | None) -> "ScrollInfo":
        payload = payload or {}
        top = float(payload.get("scrollTop") or 0)
        height = float(payload.get("scrollHeight") or 0)
        client = float(payload.get("clientHeight") or 0)
        percent = payload.get("scrollPercent")
        if percent is None:
            percent = scroll_fraction(top, height, client)
        return cls(scroll_top=top, scroll_height=height, client_height=client, scroll_percent=float(percent or 0))

    def to_dict(self) -> dict[str, float]:
        return {
            "scrollTop": self.scroll_top,
            "scrollHeight": self.scroll_height,
            "clientHeight": self.client_height,
            "scrollPercent": self.scroll_percent,
        }


@dataclass(frozen=True)
class SnapshotStats:
    """Snapshot 統計資訊（不列入變更判斷）"""
    nodes: int = 0
    html_size: int = 0
    css_size: int = 0

    @classmethod
    def from_payload(cls, payload: dict[str, Any] | None) -> "SnapshotStats":
        payload = payload or {}
        return cls(
            nodes=int(payload.get("nodes") or 0),
            html_size=int(payload.get("htmlSize") or 0),
            css_size=int(payload.get("cssSize") or 0),
        )

    def to_dict(self) -> dict[str, int]:
        return {"nodes": self.nodes, "htmlSize": self.html_size, "cssSize": self.css_size}


@dataclass(frozen=True)
class Snapshot:
    """
    主機 UI 的一次擷取結果

    產生後不可變更，Store 只保留最新一份。
    """
    html: str
    css: str = ""
    background_color: str = ""
    color: str = ""
    font_family: str = ""
    scroll_info: ScrollInfo = field(default_factory=ScrollInfo)
    stats: SnapshotStats = field(default_factory=SnapshotStats)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "Snapshot":
        return cls(
            html=str(payload.get("html") or ""),
            css=str(payload.get("css") or ""),
            background_color=str(payload.get("backgroundColor") or ""),
            color=str(payload.get("color") or ""),
            font_family=str(payload.get("fontFamily") or ""),
            scroll_info=ScrollInfo.from_payload(payload.get("scrollInfo")),
            stats=SnapshotStats.from_payload(payload.get("stats")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "html": self.html,
            "css": self.css,
            "backgroundColor": self.background_color,
            "color": self.color,
            "fontFamily": self.font_family,
            "scrollInfo": self.scroll_info.to_dict(),
            "stats": self.stats.to_dict(),
        }
