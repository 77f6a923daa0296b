"""
CDP Endpoint 探測

依序掃描候選 Port 的 /json/list，為每個 Debug Target 評分，
挑出主要的互動式 workbench 視窗。
"""

import logging
from collections.abc import Iterable, Sequence

import httpx

from phone_connect.config import CDP_DISCOVERY_TIMEOUT, CDP_HOST, CDP_PORTS
from phone_connect.schemas import DiscoveredEndpoint, DiscoveryFailure, EndpointCandidate, TargetInfo

logger = logging.getLogger(__name__)

# ═══════════════════════════════════════════════════════════════════════════════
# 評分規則（依主機應用程式調整）
# ═══════════════════════════════════════════════════════════════════════════════
WORKBENCH_URL_MARKER = "workbench.html"
APP_TITLE_MARKER = "antigravity"
LAUNCHER_TITLE_MARKER = "launchpad"
HEADLESS_MARKERS = ("jetski", "agent")

SCORE_WORKBENCH = 100
SCORE_APP_WINDOW = 90
SCORE_HEADLESS = 10


def score_target(target: TargetInfo) -> int:
    """
    為 Debug Target 評分

    - 100: 主要 workbench（非 headless 版本）
    - 90: 標題為主程式（非啟動器）
    - 10: headless agent
    - 0: 其他
    """
    url = target.url.lower()
    title = target.title.lower()

    if WORKBENCH_URL_MARKER in url and HEADLESS_MARKERS[0] not in url:
        return SCORE_WORKBENCH
    if APP_TITLE_MARKER in title and LAUNCHER_TITLE_MARKER not in title:
        return SCORE_APP_WINDOW
    if any(marker in url or marker in title for marker in HEADLESS_MARKERS):
        return SCORE_HEADLESS
    return 0


def pick_target(targets: Sequence[TargetInfo]) -> TargetInfo | None:
    """
    挑選最佳 Target

    依分數由高到低穩定排序（同分保留原順序），取第一個有 debugger URL
    的 Target；headless agent 不列入候選，未評分的 Target 仍可被選中。
    """
    ranked = sorted(targets, key=score_target, reverse=True)
    for target in ranked:
        if score_target(target) == SCORE_HEADLESS:
            continue
        if target.web_socket_debugger_url:
            return target
    return None


async def fetch_targets(client: httpx.AsyncClient, host: str, port: int) -> EndpointCandidate:
    """
    取得單一 Port 的 Target 清單

    Raises:
        httpx.HTTPError: 連線或 HTTP 錯誤
        ValueError: 回應不是 JSON 陣列
    """
    response = await client.get(f"http://{host}:{port}/json/list")
    response.raise_for_status()
    payload = response.json()
    if not isinstance(payload, list):
        raise ValueError(f"/json/list 回傳格式錯誤: {type(payload).__name__}")
    targets = [TargetInfo.from_payload(item) for item in payload if isinstance(item, dict)]
    return EndpointCandidate(port=port, targets=targets)


async def discover(
    ports: Iterable[int] | None = None,
    host: str = CDP_HOST,
    timeout: float = CDP_DISCOVERY_TIMEOUT,
) -> DiscoveredEndpoint:
    """
    依序探測候選 Port，回傳第一個可用的 Debug Target

    Args:
        ports: 候選 Port（依序嘗試），預設為 CDP_PORTS
        host: 主機位址
        timeout: 每個 Port 的 HTTP 逾時（秒）

    Raises:
        DiscoveryFailure: 所有 Port 都沒有可用的 Target
    """
    ports = list(CDP_PORTS if ports is None else ports)

    async with httpx.AsyncClient(timeout=timeout) as client:
        for port in ports:
            try:
                candidate = await fetch_targets(client, host, port)
            except (httpx.HTTPError, ValueError) as e:
                logger.debug(f"Port {port} 無法取得 Target 清單: {e}")
                continue

            logger.info(f"📡 Port {port} targets: {[t.describe() for t in candidate.targets]}")

            target = pick_target(candidate.targets)
            if target is None:
                continue

            logger.info(f"🎯 已選定 Target: {target.title} ({target.url})")
            return DiscoveredEndpoint(port=port, debugger_url=target.web_socket_debugger_url, target=target)

    raise DiscoveryFailure(
        f"CDP not found on ports {ports}. Is the host started with --remote-debugging-port={ports[0] if ports else 9000}?"
    )
