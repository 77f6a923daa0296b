"""
Viewer Agent 主程式

以無畫面的 viewer 連接橋接伺服器，記錄每次收到的 Snapshot。

使用方式：
    python -m phone_connect.viewer --server http://192.168.1.20:3030

環境變數：
    VIEWER_SERVER_URL - 橋接伺服器位址 (預設 http://localhost:3030)
"""

import argparse
import asyncio
import logging
import sys

from phone_connect.base.logging_config import setup_logging
from phone_connect.config import VIEWER_SERVER_URL
from phone_connect.schemas import Snapshot
from phone_connect.viewer.client import ViewerClient
from phone_connect.viewer.surface import MemorySurface

logger = logging.getLogger(__name__)


class LoggingSurface(MemorySurface):
    """每次渲染時輸出統計資訊"""

    def render(self, snapshot: Snapshot) -> None:
        super().render(snapshot)
        stats = snapshot.stats
        kbs = round((stats.html_size + stats.css_size) / 1024)
        logger.info(
            f"📸 Snapshot #{self.renders}: {stats.nodes} Nodes · {kbs}KB · "
            f"scroll {snapshot.scroll_info.scroll_percent:.0%}"
        )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """解析命令列參數"""
    parser = argparse.ArgumentParser(description="Phone Connect Viewer - 無畫面的鏡像 viewer")
    parser.add_argument(
        "--server",
        type=str,
        default=VIEWER_SERVER_URL,
        help=f"橋接伺服器位址 (預設: {VIEWER_SERVER_URL})",
    )
    parser.add_argument(
        "--height",
        type=float,
        default=800.0,
        help="模擬的可視高度 (預設: 800)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="顯示詳細日誌",
    )
    return parser.parse_args(argv)


async def run_viewer(args: argparse.Namespace) -> int:
    """執行 viewer 直到中斷"""
    logger.info("=" * 60)
    logger.info("📱 Viewer 啟動中...")
    logger.info(f"   Server URL: {args.server}")
    logger.info("=" * 60)

    client = ViewerClient(args.server, LoggingSurface(client_height=args.height))
    try:
        await client.run()
    finally:
        await client.stop()
    return 0


def main(argv: list[str] | None = None) -> int:
    """主函式"""
    args = parse_args(argv)
    setup_logging(
        log_file="phone_connect_viewer.log",
        console_log_level=logging.DEBUG if args.verbose else logging.INFO,
    )
    try:
        return asyncio.run(run_viewer(args))
    except KeyboardInterrupt:
        logger.info("👋 收到中斷訊號，正在停止...")
        return 0


if __name__ == "__main__":
    sys.exit(main())
