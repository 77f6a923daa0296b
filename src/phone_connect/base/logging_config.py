"""
日誌設定模組

控制台彩色輸出 + 輪替檔案；等級預設取自 LOG_LEVEL / LOG_FILE_LEVEL。
伺服器的 __main__ 與 lifespan 都會呼叫 setup_logging()，重複呼叫不會重建 handler。
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from phone_connect.config import LOG_DIR, LOG_FILE_LEVEL, LOG_LEVEL, PROJECT_ROOT

# CDP 輪詢每秒都會產生 HTTP / WebSocket 流量，這些套件只保留 WARNING 以上
QUIET_LOGGERS = (
    "asyncio",
    "httpx",
    "httpcore",
    "websockets",
    "uvicorn.access",
)

DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LOG_FORMAT = "[%(asctime)s][%(levelname)-8s][%(name)s:%(lineno)d] %(message)s"

# 256 色前景/背景代碼
_LEVEL_PALETTE: dict[int, tuple[int, int | None]] = {
    logging.DEBUG: (7, None),
    logging.INFO: (2, None),
    logging.WARNING: (3, None),
    logging.ERROR: (1, None),
    logging.CRITICAL: (6, 1),
}

# 目前已安裝的日誌檔名，None 表示尚未設定
_configured_log_file: str | None = None


def _colorize(text: str, fg: int, bg: int | None) -> str:
    codes = [f"38;5;{fg}"]
    if bg is not None:
        codes.append(f"48;5;{bg}")
    return f"\033[{';'.join(codes)}m{text}\033[0m"


class ColoredFormatter(logging.Formatter):
    """依日誌等級為控制台輸出加上 ANSI 顏色"""

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        palette = _LEVEL_PALETTE.get(record.levelno)
        return _colorize(message, *palette) if palette else message


def _resolve_level(level: int | str) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level)
    return resolved if isinstance(resolved, int) else logging.INFO


def setup_logging(
    log_file: str = "phone_connect.log",
    console_log_level: int | str | None = None,
    file_log_level: int | str | None = None,
    log_dir: str | None = None,
    force: bool = False,
) -> bool:
    """
    設定全域日誌系統

    Args:
        log_file: 日誌檔案名稱（相對於 log_dir）
        console_log_level: 控制台等級，預設 LOG_LEVEL
        file_log_level: 檔案等級，預設 LOG_FILE_LEVEL；NOTSET 表示不寫檔
        log_dir: 日誌目錄，預設 LOG_DIR 或專案根目錄的 logs/
        force: 已設定過時仍重新安裝 handler

    Returns:
        是否有重新安裝 handler
    """
    global _configured_log_file
    if _configured_log_file == log_file and not force:
        return False

    console_level = _resolve_level(LOG_LEVEL if console_log_level is None else console_log_level)
    file_level = _resolve_level(LOG_FILE_LEVEL if file_log_level is None else file_log_level)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        handler.close()

    if file_level != logging.NOTSET:
        log_dir_path = Path(log_dir or LOG_DIR or PROJECT_ROOT / "logs")
        try:
            log_dir_path.mkdir(parents=True, exist_ok=True)
            file_handler = RotatingFileHandler(
                filename=str(log_dir_path / log_file),
                maxBytes=10 * 1024 * 1024,  # 10 MB
                backupCount=5,
                encoding="utf-8",
            )
        except OSError as e:
            sys.stderr.write(f"警告: 無法建立日誌檔案 {log_dir_path / log_file}: {e}\n")
        else:
            file_handler.setLevel(file_level)
            file_handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))
            root_logger.addHandler(file_handler)

    if console_level != logging.NOTSET:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(console_level)
        formatter_cls = logging.Formatter if sys.platform == "win32" or not sys.stdout.isatty() else ColoredFormatter
        console_handler.setFormatter(formatter_cls(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))
        root_logger.addHandler(console_handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    _configured_log_file = log_file
    root_logger.debug(f"日誌系統設定完成 (console={logging.getLevelName(console_level)}, file={logging.getLevelName(file_level)})")
    return True
