"""
捲動同步協定

主機與 viewer 各自有獨立的捲動位置，以比例（0~1）互相對齊且不互相拉扯：

- 主機 → viewer：每份 Snapshot 帶主機捲動比例，viewer 未在捲動時套用；
  比例超過門檻（0.98）視為在底部，直接捲到底。
- viewer → 主機：使用者捲動時設定 user_is_scrolling（閒置 5 秒後清除），
  期間不套用主機比例；自己的比例以 rate limit（150ms 視窗）與
  debounce（100ms）推送，推送成功後排一次合併的 follow-up pull（300ms）。

debounce 必須短於 rate limit 視窗，推送才會在視窗關閉前送出。
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from phone_connect.config import (
    VIEWER_BOTTOM_THRESHOLD,
    VIEWER_IDLE_TIMEOUT,
    VIEWER_PULL_DELAY,
    VIEWER_PUSH_DEBOUNCE,
    VIEWER_PUSH_RATE_LIMIT,
)
from phone_connect.schemas import ScrollInfo
from phone_connect.utils import scroll_fraction
from phone_connect.viewer.surface import ViewerSurface

logger = logging.getLogger(__name__)

PushFunc = Callable[[float], Awaitable[Any]]
PullFunc = Callable[[], Awaitable[Any]]


class ScrollSyncSession:
    """
    單一 viewer 的捲動同步狀態

    四個計時器各自獨立：
        idle        使用者停止捲動後清除 user_is_scrolling
        rate_limit  視窗開啟期間的手勢不再排程推送
        debounce    手勢靜止後才真正推送
        pull        推送成功後合併的 follow-up pull
    """

    def __init__(
        self,
        surface: ViewerSurface,
        push: PushFunc,
        pull: PullFunc,
        idle_timeout: float = VIEWER_IDLE_TIMEOUT,
        rate_limit: float = VIEWER_PUSH_RATE_LIMIT,
        debounce: float = VIEWER_PUSH_DEBOUNCE,
        pull_delay: float = VIEWER_PULL_DELAY,
        bottom_threshold: float = VIEWER_BOTTOM_THRESHOLD,
    ) -> None:
        if debounce >= rate_limit:
            raise ValueError(f"debounce ({debounce}s) 必須短於 rate limit 視窗 ({rate_limit}s)")

        self._surface = surface
        self._push = push
        self._pull = pull
        self._idle_timeout = idle_timeout
        self._rate_limit = rate_limit
        self._debounce = debounce
        self._pull_delay = pull_delay
        self._bottom_threshold = bottom_threshold

        self._idle_timer: asyncio.TimerHandle | None = None
        self._rate_limit_timer: asyncio.TimerHandle | None = None
        self._debounce_timer: asyncio.TimerHandle | None = None
        self._pull_timer: asyncio.TimerHandle | None = None
        self._tasks: set[asyncio.Task] = set()

        self.user_is_scrolling = False
        self.pushes = 0
        self.pulls = 0

    @property
    def pull_pending(self) -> bool:
        return self._pull_timer is not None

    def viewer_fraction(self) -> float:
        """viewer 目前的捲動比例"""
        surface = self._surface
        return scroll_fraction(surface.scroll_top, surface.scroll_height, surface.client_height)

    # ═══════════════════════════════════════════════════════════════════════════════
    # 主機 → viewer
    # ═══════════════════════════════════════════════════════════════════════════════

    def apply_snapshot(self, scroll_info: ScrollInfo) -> bool:
        """
        套用主機的捲動比例

        Returns:
            是否有套用（使用者捲動中則不套用）
        """
        if self.user_is_scrolling:
            return False

        fraction = scroll_info.scroll_percent
        if fraction > self._bottom_threshold:
            self._surface.scroll_to_bottom()
        else:
            overflow = max(self._surface.scroll_height - self._surface.client_height, 0.0)
            self._surface.scroll_to(fraction * overflow)
        return True

    # ═══════════════════════════════════════════════════════════════════════════════
    # viewer → 主機
    # ═══════════════════════════════════════════════════════════════════════════════

    def on_user_scroll(self) -> None:
        """使用者手勢造成的捲動"""
        loop = asyncio.get_running_loop()

        self.user_is_scrolling = True
        if self._idle_timer is not None:
            self._idle_timer.cancel()
        self._idle_timer = loop.call_later(self._idle_timeout, self._on_idle)

        if self._rate_limit_timer is not None:
            return
        self._rate_limit_timer = loop.call_later(self._rate_limit, self._on_rate_limit_elapsed)

        if self._debounce_timer is not None:
            self._debounce_timer.cancel()
        self._debounce_timer = loop.call_later(self._debounce, self._on_debounce_elapsed)

    def scroll_to_bottom(self) -> None:
        """使用者按下「捲到底部」：結束捲動狀態並回到底部"""
        self._end_user_scroll()
        self._surface.scroll_to_bottom()

    def _on_idle(self) -> None:
        self._idle_timer = None
        self._end_user_scroll()

    def _end_user_scroll(self) -> None:
        if self._idle_timer is not None:
            self._idle_timer.cancel()
            self._idle_timer = None
        self.user_is_scrolling = False

    def _on_rate_limit_elapsed(self) -> None:
        self._rate_limit_timer = None

    def _on_debounce_elapsed(self) -> None:
        self._debounce_timer = None
        self._spawn(self._push_fraction())

    async def _push_fraction(self) -> None:
        fraction = self.viewer_fraction()
        try:
            await self._push(fraction)
        except Exception as e:
            logger.debug(f"捲動比例推送失敗: {e}")
            return

        self.pushes += 1
        if self._pull_timer is None:
            loop = asyncio.get_running_loop()
            self._pull_timer = loop.call_later(self._pull_delay, self._on_pull_elapsed)

    def _on_pull_elapsed(self) -> None:
        self._pull_timer = None
        self._spawn(self._follow_up_pull())

    async def _follow_up_pull(self) -> None:
        self.pulls += 1
        try:
            await self._pull()
        except Exception as e:
            logger.debug(f"follow-up pull 失敗: {e}")

    # ═══════════════════════════════════════════════════════════════════════════════
    # 生命週期
    # ═══════════════════════════════════════════════════════════════════════════════

    def _spawn(self, coro: Awaitable[Any]) -> None:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def close(self) -> None:
        """取消所有計時器與進行中的推送"""
        for timer in (self._idle_timer, self._rate_limit_timer, self._debounce_timer, self._pull_timer):
            if timer is not None:
                timer.cancel()
        self._idle_timer = self._rate_limit_timer = self._debounce_timer = self._pull_timer = None
        for task in list(self._tasks):
            task.cancel()
