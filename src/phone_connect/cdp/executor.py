"""
Action 執行器

對每個已知的 Execution Context 依序執行腳本，採用第一個可用的結果。
單一 Context 失敗（例外、逾時、錯誤標記）不會中斷其他 Context 的嘗試；
有副作用的動作（點擊等）不可跨 Context 並行。
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from phone_connect.cdp.connection import CDPConnection
from phone_connect.schemas import BridgeError, ExecutionContext

logger = logging.getLogger(__name__)

NO_CONTEXT = "no_context"

AcceptFunc = Callable[[Any], bool]


def is_usable_result(value: Any) -> bool:
    """結果存在且不是應用層錯誤標記"""
    if not value:
        return False
    if isinstance(value, dict) and value.get("error"):
        return False
    return True


def is_success_result(value: Any) -> bool:
    """結果帶有 success 旗標"""
    return isinstance(value, dict) and bool(value.get("success"))


@dataclass
class Evaluation:
    """一次 fan-out 執行的結果"""
    value: Any = None
    context: ExecutionContext | None = None
    errors: list[str] = field(default_factory=list)

    @property
    def accepted(self) -> bool:
        return self.context is not None

    def failure(self, error: str = NO_CONTEXT) -> dict[str, Any]:
        """所有 Context 都失敗時的統一回應格式"""
        return {"ok": False, "success": False, "error": error, "details": list(self.errors)}


class ContextHandle:
    """單一 Execution Context 的執行代理"""

    def __init__(self, connection: CDPConnection, context: ExecutionContext) -> None:
        self.connection = connection
        self.context = context

    async def evaluate(self, expression: str, await_promise: bool = True, **options: Any) -> dict[str, Any]:
        """
        在此 Context 執行 Runtime.evaluate

        Returns:
            Runtime.evaluate 的原始 result（包含 result / exceptionDetails）
        """
        params: dict[str, Any] = {
            "expression": expression,
            "returnByValue": True,
            "awaitPromise": await_promise,
            "contextId": self.context.id,
        }
        params.update(options)
        return await self.connection.call("Runtime.evaluate", params)


def _describe_rejection(context: ExecutionContext, response: dict[str, Any]) -> str:
    details = response.get("exceptionDetails")
    if details:
        exception = details.get("exception") or {}
        return f"Context {context.id} Exception: {details.get('text', '')} {exception.get('description', '')}".rstrip()
    value = (response.get("result") or {}).get("value")
    if isinstance(value, dict) and value.get("error"):
        return f"Context {context.id}: {value['error']}"
    return f"Context {context.id}: Unknown failure (Result: {response.get('result')})"


async def evaluate_in_contexts(
    connection: CDPConnection,
    expression: str,
    accept: AcceptFunc = is_usable_result,
    await_promise: bool = True,
    **options: Any,
) -> Evaluation:
    """
    依發現順序在各 Context 執行腳本，回傳第一個被接受的結果

    Args:
        connection: CDP 連線
        expression: 要執行的 JavaScript
        accept: 判斷結果是否可用的函式
        await_promise: 是否等待 Promise
        **options: 額外的 Runtime.evaluate 參數

    Returns:
        Evaluation；沒有 Context 接受時 value 為 None
    """
    evaluation = Evaluation()

    for context in connection.contexts:
        handle = ContextHandle(connection, context)
        try:
            response = await handle.evaluate(expression, await_promise=await_promise, **options)
        except BridgeError as e:
            evaluation.errors.append(f"Context {context.id} Exception: {e}")
            continue

        value = (response.get("result") or {}).get("value")
        if not response.get("exceptionDetails") and accept(value):
            evaluation.value = value
            evaluation.context = context
            return evaluation

        evaluation.errors.append(_describe_rejection(context, response))

    if evaluation.errors:
        logger.debug(f"所有 Context 皆失敗: {evaluation.errors}")
    return evaluation
