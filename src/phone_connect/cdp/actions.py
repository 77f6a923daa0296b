"""
遠端操作

透過 fan-out 執行器在主機上執行各種動作，
每個動作回傳統一的結果格式 {success|ok, error?, ...}。
"""

import logging
from typing import Any

from phone_connect.cdp import scripts
from phone_connect.cdp.connection import CDPConnection
from phone_connect.cdp.executor import evaluate_in_contexts, is_success_result
from phone_connect.utils import truncate_string

logger = logging.getLogger(__name__)


async def inject_message(connection: CDPConnection, text: str) -> dict[str, Any]:
    """在主機輸入框輸入訊息並送出"""
    evaluation = await evaluate_in_contexts(connection, scripts.inject_message_script(text))
    if not evaluation.accepted:
        return evaluation.failure()

    result = evaluation.value if isinstance(evaluation.value, dict) else {"ok": True, "value": evaluation.value}
    logger.info(f"💬 已送出訊息: {truncate_string(text, 40)} ({result.get('method', 'attempted')})")
    return result


async def set_mode(connection: CDPConnection, mode: str) -> dict[str, Any]:
    """
    切換 AI 模式

    Args:
        mode: Fast 或 Planning
    """
    if mode not in scripts.MODES:
        return {"success": False, "error": f"Unsupported mode: {mode}"}

    evaluation = await evaluate_in_contexts(connection, scripts.set_mode_script(mode))
    return evaluation.value if evaluation.accepted else evaluation.failure()


async def set_model(connection: CDPConnection, model: str) -> dict[str, Any]:
    """切換 AI 模型"""
    evaluation = await evaluate_in_contexts(connection, scripts.set_model_script(model))
    return evaluation.value if evaluation.accepted else evaluation.failure()


async def stop_generation(connection: CDPConnection) -> dict[str, Any]:
    """停止目前的產生"""
    evaluation = await evaluate_in_contexts(connection, scripts.stop_generation_script())
    return evaluation.value if evaluation.accepted else evaluation.failure()


async def click_element(
    connection: CDPConnection,
    selector: str,
    index: int = 0,
    text_content: str = "",
) -> dict[str, Any]:
    """
    點擊主機上的元素

    Args:
        selector: CSS Selector
        index: 符合元素中的索引
        text_content: 只保留文字包含此內容的元素
    """
    evaluation = await evaluate_in_contexts(
        connection,
        scripts.click_script(selector, index, text_content),
        accept=is_success_result,
    )
    return evaluation.value if evaluation.accepted else evaluation.failure()


async def remote_scroll(
    connection: CDPConnection,
    scroll_top: float | None = None,
    scroll_percent: float | None = None,
) -> dict[str, Any]:
    """
    捲動主機的聊天容器

    scroll_percent 優先於 scroll_top。
    """
    evaluation = await evaluate_in_contexts(
        connection,
        scripts.scroll_script(scroll_top, scroll_percent),
        accept=is_success_result,
    )
    return evaluation.value if evaluation.accepted else evaluation.failure()


async def get_app_state(connection: CDPConnection) -> dict[str, Any]:
    """查詢目前的模式與模型"""
    evaluation = await evaluate_in_contexts(connection, scripts.app_state_script())
    if evaluation.accepted:
        return evaluation.value
    return {"mode": "Unknown", "model": "Unknown", "error": "no_context"}


async def inspect_ui(connection: CDPConnection) -> dict[str, Any]:
    """取得輸入區塊的 UI 結構（除錯用）"""
    evaluation = await evaluate_in_contexts(connection, scripts.inspect_ui_script(), await_promise=False)
    return evaluation.value if evaluation.accepted else evaluation.failure()
