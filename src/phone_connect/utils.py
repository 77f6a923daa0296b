"""
輔助函數工具箱

包含內容雜湊、捲動比例計算、字串處理與區域網路位址偵測
"""
import hashlib
import logging
import socket
from dataclasses import dataclass

logger = logging.getLogger(__name__)

# 空內容的固定雜湊值，與「尚未擷取」的空字串區隔
EMPTY_HASH = "0"


def hash_string(text: str) -> str:
    """
    計算內容雜湊，用於判斷 Snapshot 是否變更

    Args:
        text: 要雜湊的內容

    Returns:
        16 字元的十六進位雜湊；空內容回傳 "0"
    """
    if not text:
        return EMPTY_HASH
    return hashlib.sha256(text.encode("utf-8")).hexdigest()[:16]


def scroll_fraction(scroll_top: float, scroll_height: float, client_height: float) -> float:
    """
    將捲動位置換算成 0~1 的比例

    容器無法捲動（內容高度不超過可視高度）時視為 0。
    """
    overflow = scroll_height - client_height
    if overflow <= 0:
        return 0.0
    return min(max(scroll_top / overflow, 0.0), 1.0)


def truncate_string(text: str, max_length: int = 100, suffix: str = "...") -> str:
    """截斷過長的字串"""
    if len(text) > max_length:
        return text[:max_length] + suffix
    return text


# ═══════════════════════════════════════════════════════════════════════════════
# 區域網路位址（啟動時顯示手機可連線的 URL）
# ═══════════════════════════════════════════════════════════════════════════════
@dataclass(frozen=True)
class NetworkInterface:
    """可供手機連線的 IPv4 位址"""
    name: str
    address: str
    type: str


def _is_usable_ipv4(address: str | None) -> bool:
    if not address:
        return False
    return not address.startswith("127.") and address != "0.0.0.0" and ":" not in address


def _primary_lan_ipv4() -> str | None:
    """以 UDP socket 取得預設路由的來源位址（不會真的送出封包）"""
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
            sock.connect(("8.8.8.8", 80))
            return sock.getsockname()[0]
    except OSError:
        return None


def discover_ipv4_addresses() -> list[tuple[str, str]]:
    """
    列出本機非 loopback 的 IPv4 位址

    Returns:
        (名稱, 位址) 清單，依發現順序、不重複
    """
    found: list[tuple[str, str]] = []
    seen: set[str] = set()

    def _add(name: str, address: str | None) -> None:
        if _is_usable_ipv4(address) and address not in seen:
            seen.add(address)
            found.append((name, address))

    _add("default", _primary_lan_ipv4())

    hostname = socket.gethostname()
    try:
        for address in socket.gethostbyname_ex(hostname)[2]:
            _add(hostname, address)
    except OSError as e:
        logger.debug(f"無法解析主機名稱 {hostname}: {e}")

    return found


def address_priority(address: str) -> int:
    """家用/辦公室網段優先：192.168 > 10 > 172 > 其他"""
    if address.startswith("192.168."):
        return 1
    if address.startswith("10."):
        return 2
    if address.startswith("172."):
        return 3
    return 4


def get_local_ip(addresses: list[tuple[str, str]] | None = None) -> str:
    """挑選最適合手機連線的區域網路位址，找不到時回傳 localhost"""
    if addresses is None:
        addresses = discover_ipv4_addresses()
    ranked = sorted((address for _, address in addresses), key=address_priority)
    return ranked[0] if ranked else "localhost"


def classify_interface(name: str, address: str) -> str:
    if address.startswith("100.") or "tailscale" in name.lower():
        return "Tailscale"
    if address.startswith("10."):
        return "Private (10.x)"
    return "LAN"


def get_network_interfaces(addresses: list[tuple[str, str]] | None = None) -> list[NetworkInterface]:
    """
    列出所有可連線的位址並標示類型

    Tailscale 位址排在最前面，其餘保持發現順序。
    """
    if addresses is None:
        addresses = discover_ipv4_addresses()
    interfaces = [NetworkInterface(name, address, classify_interface(name, address)) for name, address in addresses]
    return sorted(interfaces, key=lambda iface: iface.type != "Tailscale")
