"""
CDP 連線模組

負責探測主機的 debugger endpoint、維護單一 CDP 連線，
並以 fan-out 方式在各 Execution Context 執行遠端操作。
"""

from phone_connect.cdp.bridge import HostBridge
from phone_connect.cdp.connection import CDPConnection, ConnectionState, connect_cdp
from phone_connect.cdp.discovery import discover
from phone_connect.cdp.executor import Evaluation, evaluate_in_contexts
from phone_connect.cdp.multiplexer import CallMultiplexer

__all__ = [
    "CDPConnection",
    "CallMultiplexer",
    "ConnectionState",
    "Evaluation",
    "HostBridge",
    "connect_cdp",
    "discover",
    "evaluate_in_contexts",
]
