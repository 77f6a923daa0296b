"""
Phone Connect 橋接伺服器

對 viewer 提供 HTTP pull API 與 WebSocket 推送頻道，
背景執行主機重連迴圈與 Snapshot 擷取迴圈。
"""

import asyncio
import contextlib
import json
import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, FastAPI, HTTPException, Request, WebSocket, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from phone_connect.cdp import actions
from phone_connect.cdp.bridge import HostBridge
from phone_connect.cdp.connection import CDPConnection
from phone_connect.config import ssl_enabled
from phone_connect.schemas import BridgeError
from phone_connect.sync import ChangeBroadcaster, SnapshotCaptureLoop, SnapshotStore

logger = logging.getLogger(__name__)

router = APIRouter()


# ═══════════════════════════════════════════════════════════════════════════════
# 共用輔助函式
# ═══════════════════════════════════════════════════════════════════════════════

def _require_connection(request: Request) -> CDPConnection:
    """取得目前的主機連線，沒有時回應 503"""
    connection = request.app.state.bridge.connection
    if connection is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="CDP disconnected")
    return connection


async def _read_body(request: Request) -> dict[str, Any]:
    """解析 JSON body；空 body 視為 {}"""
    raw = await request.body()
    if not raw.strip():
        return {}
    try:
        body = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON")
    if not isinstance(body, dict):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON")
    return body


def _optional_number(body: dict[str, Any], key: str) -> float | None:
    value = body.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"{key} must be a number")
    return float(value)


# ═══════════════════════════════════════════════════════════════════════════════
# 狀態端點
# ═══════════════════════════════════════════════════════════════════════════════

@router.get("/health")
async def health(request: Request) -> dict:
    bridge: HostBridge = request.app.state.bridge
    connection = bridge.connection
    return {
        "status": "ok",
        "cdpConnected": bridge.is_connected,
        "contexts": len(connection.contexts) if connection is not None else 0,
        "uptime": round(time.monotonic() - request.app.state.started_at, 3),
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "https": ssl_enabled(),
    }


@router.get("/snapshot")
async def snapshot(request: Request) -> dict:
    """最新一份 Snapshot；尚未擷取過時回應 503"""
    latest = request.app.state.store.latest
    if latest is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="No snapshot available")
    return latest.to_dict()


@router.get("/app-state")
async def app_state(request: Request) -> dict:
    connection = request.app.state.bridge.connection
    if connection is None:
        return {"mode": "Unknown", "model": "Unknown"}
    return await actions.get_app_state(connection)


# ═══════════════════════════════════════════════════════════════════════════════
# 遠端操作端點
# ═══════════════════════════════════════════════════════════════════════════════

@router.post("/send")
async def send(request: Request) -> dict:
    """
    在主機輸入框送出訊息

    回應 {success, method, details}，details 為主機端的原始結果。
    """
    body = await _read_body(request)
    message = body.get("message")
    if not message or not isinstance(message, str):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Message required")
    connection = _require_connection(request)

    result = await actions.inject_message(connection, message)
    return {
        "success": result.get("ok") is not False,
        "method": result.get("method") or "attempted",
        "details": result,
    }


@router.post("/set-mode")
async def set_mode(request: Request) -> dict:
    body = await _read_body(request)
    connection = _require_connection(request)
    return await actions.set_mode(connection, str(body.get("mode", "")))


@router.post("/set-model")
async def set_model(request: Request) -> dict:
    body = await _read_body(request)
    model = body.get("model")
    if not model or not isinstance(model, str):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Model required")
    connection = _require_connection(request)
    return await actions.set_model(connection, model)


@router.post("/stop")
async def stop(request: Request) -> dict:
    connection = _require_connection(request)
    return await actions.stop_generation(connection)


@router.post("/remote-click")
async def remote_click(request: Request) -> dict:
    body = await _read_body(request)
    selector = body.get("selector")
    if not selector or not isinstance(selector, str):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Selector required")
    index = body.get("index", 0)
    if isinstance(index, bool) or not isinstance(index, int):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="index must be an integer")
    connection = _require_connection(request)
    return await actions.click_element(connection, selector, index, str(body.get("textContent") or ""))


@router.post("/remote-scroll")
async def remote_scroll(request: Request) -> dict:
    """同步 viewer 的捲動位置；scrollPercent 優先於 scrollTop"""
    body = await _read_body(request)
    scroll_top = _optional_number(body, "scrollTop")
    scroll_percent = _optional_number(body, "scrollPercent")
    connection = _require_connection(request)
    return await actions.remote_scroll(connection, scroll_top=scroll_top, scroll_percent=scroll_percent)


@router.get("/debug-ui")
async def debug_ui(request: Request) -> dict:
    connection = _require_connection(request)
    return await actions.inspect_ui(connection)


# ═══════════════════════════════════════════════════════════════════════════════
# 推送頻道
# ═══════════════════════════════════════════════════════════════════════════════

@router.websocket("/")
async def push_channel(websocket: WebSocket) -> None:
    """
    Viewer 推送頻道

    伺服器只送出 hello / update；viewer 送來的訊息讀取後忽略。
    """
    broadcaster: ChangeBroadcaster = websocket.app.state.broadcaster
    await websocket.accept()
    try:
        await broadcaster.register(websocket)
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
    finally:
        broadcaster.unregister(websocket)


# ═══════════════════════════════════════════════════════════════════════════════
# 應用程式工廠
# ═══════════════════════════════════════════════════════════════════════════════

def create_app(
    bridge: HostBridge | None = None,
    store: SnapshotStore | None = None,
    start_background: bool = True,
) -> FastAPI:
    """
    建立 FastAPI 應用

    Args:
        bridge: 主機橋接器，預設依設定檔建立
        store: Snapshot Store，預設建立新的
        start_background: 是否在啟動時執行重連與擷取迴圈
    """
    bridge = bridge or HostBridge()
    store = store or SnapshotStore()
    broadcaster = ChangeBroadcaster(store)
    capture_loop = SnapshotCaptureLoop(bridge, store, broadcaster)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        啟動時：初始化日誌、啟動主機重連迴圈與 Snapshot 擷取迴圈
        關閉時：停止迴圈並關閉主機連線
        """
        tasks: list[asyncio.Task] = []
        if start_background:
            from phone_connect.base.logging_config import setup_logging

            setup_logging()
            logger.info("🚀 Phone Connect 伺服器初始化中...")
            tasks.append(asyncio.create_task(bridge.run()))
            tasks.append(asyncio.create_task(capture_loop.run()))

        yield

        capture_loop.stop()
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        await bridge.stop()
        logger.info("🛑 Phone Connect 伺服器已停止")

    app = FastAPI(
        title="Phone Connect",
        description="Mirror a desktop AI coding assistant to a phone over CDP",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.started_at = time.monotonic()
    app.state.bridge = bridge
    app.state.store = store
    app.state.broadcaster = broadcaster
    app.state.capture_loop = capture_loop

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})

    @app.exception_handler(BridgeError)
    async def bridge_exception_handler(request: Request, exc: BridgeError):
        logger.warning(f"⚠️ 主機錯誤: {request.method} {request.url.path}: {exc}")
        return JSONResponse(
            status_code=status.HTTP_502_BAD_GATEWAY,
            content={"error": type(exc).__name__, "message": str(exc)},
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception(f"❌ API Error: {request.method} {request.url.path}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Internal Server Error", "message": str(exc)},
        )

    app.include_router(router)
    return app


app = create_app()
