"""
環境設定與常數

集中管理所有配置項，從環境變數載入。
"""

import logging
import os
from pathlib import Path

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# ═══════════════════════════════════════════════════════════════════════════════
# 基本設定
# ═══════════════════════════════════════════════════════════════════════════════
# 專案根目錄
PROJECT_ROOT = Path(__file__).parent.parent.parent

# 載入 .env 檔案
ENV_PATH = PROJECT_ROOT / ".env"
if ENV_PATH.exists():
    load_dotenv(ENV_PATH)
    logger.info(f"📁 已載入環境設定檔: {ENV_PATH}")


def _parse_ports(raw: str) -> list[int]:
    """解析逗號分隔的 Port 清單，忽略無效項目"""
    ports: list[int] = []
    for item in raw.split(","):
        item = item.strip()
        if not item:
            continue
        try:
            ports.append(int(item))
        except ValueError:
            logger.warning(f"忽略無效的 CDP Port: {item!r}")
    return ports


# ═══════════════════════════════════════════════════════════════════════════════
# CDP 連線設定
# ═══════════════════════════════════════════════════════════════════════════════
CDP_HOST = os.getenv("CDP_HOST", "127.0.0.1")
CDP_PORTS = _parse_ports(os.getenv("CDP_PORTS", "9000,9001,9002,9003"))
CDP_CALL_TIMEOUT = float(os.getenv("CDP_CALL_TIMEOUT", "30"))  # 秒
CDP_DISCOVERY_TIMEOUT = float(os.getenv("CDP_DISCOVERY_TIMEOUT", "2"))  # 每個 Port 的 HTTP 逾時
CDP_CONTEXT_WAIT_RETRIES = int(os.getenv("CDP_CONTEXT_WAIT_RETRIES", "5"))
CDP_CONTEXT_WAIT_INTERVAL = float(os.getenv("CDP_CONTEXT_WAIT_INTERVAL", "0.5"))

# 主機斷線後重新 discovery 的間隔（秒）
HOST_RECONNECT_INTERVAL = float(os.getenv("HOST_RECONNECT_INTERVAL", "5"))

logger.info(f"🔍 CDP 候選 Port: {CDP_PORTS}")

# ═══════════════════════════════════════════════════════════════════════════════
# Snapshot 同步設定
# ═══════════════════════════════════════════════════════════════════════════════
POLL_INTERVAL = float(os.getenv("POLL_INTERVAL", "1.0"))  # 秒

# ═══════════════════════════════════════════════════════════════════════════════
# 伺服器設定
# ═══════════════════════════════════════════════════════════════════════════════
SERVER_HOST = os.getenv("SERVER_HOST", "0.0.0.0")
SERVER_PORT = int(os.getenv("PORT", "3030"))

# HTTPS 憑證（兩個檔案都存在時才啟用）
CERT_DIR = PROJECT_ROOT / "certs"
SSL_KEYFILE = Path(os.getenv("SSL_KEYFILE", str(CERT_DIR / "server.key")))
SSL_CERTFILE = Path(os.getenv("SSL_CERTFILE", str(CERT_DIR / "server.cert")))

# 日誌目錄（空值表示使用專案根目錄下的 logs/）
LOG_DIR = os.getenv("LOG_DIR", "")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()  # 控制台
LOG_FILE_LEVEL = os.getenv("LOG_FILE_LEVEL", "WARNING").upper()  # 檔案；NOTSET 表示不寫檔


def ssl_enabled() -> bool:
    """檢查 HTTPS 憑證是否存在"""
    return SSL_KEYFILE.is_file() and SSL_CERTFILE.is_file()


# ═══════════════════════════════════════════════════════════════════════════════
# Viewer 端設定
# ═══════════════════════════════════════════════════════════════════════════════
VIEWER_SERVER_URL = os.getenv("VIEWER_SERVER_URL", f"http://localhost:{SERVER_PORT}")
VIEWER_IDLE_TIMEOUT = float(os.getenv("VIEWER_IDLE_TIMEOUT", "5.0"))
VIEWER_PUSH_RATE_LIMIT = float(os.getenv("VIEWER_PUSH_RATE_LIMIT", "0.15"))
VIEWER_PUSH_DEBOUNCE = float(os.getenv("VIEWER_PUSH_DEBOUNCE", "0.1"))
VIEWER_PULL_DELAY = float(os.getenv("VIEWER_PULL_DELAY", "0.3"))
VIEWER_BOTTOM_THRESHOLD = float(os.getenv("VIEWER_BOTTOM_THRESHOLD", "0.98"))
VIEWER_RECONNECT_INTERVAL = float(os.getenv("VIEWER_RECONNECT_INTERVAL", "2.0"))
VIEWER_APP_STATE_INTERVAL = float(os.getenv("VIEWER_APP_STATE_INTERVAL", "5.0"))
