"""
Snapshot 擷取

在主機的 Execution Context 中執行擷取腳本，產生不可變的 Snapshot。
"""

import logging

from phone_connect.cdp import scripts
from phone_connect.cdp.connection import CDPConnection
from phone_connect.cdp.executor import evaluate_in_contexts
from phone_connect.schemas import CaptureFailure, Snapshot

logger = logging.getLogger(__name__)


async def capture_snapshot(connection: CDPConnection) -> Snapshot:
    """
    擷取主機 UI

    Raises:
        CaptureFailure: 沒有任何 Context 回傳可用的 Snapshot
    """
    evaluation = await evaluate_in_contexts(connection, scripts.capture_script(), await_promise=False)
    if not evaluation.accepted or not isinstance(evaluation.value, dict):
        raise CaptureFailure(f"無法擷取 Snapshot: {evaluation.errors or 'no_context'}")

    context = evaluation.context
    if connection.last_successful_context_id != context.id:
        logger.info(f"✨ 已從 Context {context.describe()} 擷取 Snapshot")
        connection.last_successful_context_id = context.id

    return Snapshot.from_payload(evaluation.value)
