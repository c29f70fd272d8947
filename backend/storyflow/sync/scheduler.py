"""可取消的延时调度抽象：arm(delay, callback) / cancel()，时钟可注入。"""

from __future__ import annotations

import asyncio
import heapq
import itertools
from typing import Callable, Protocol


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Clock(Protocol):
    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> TimerHandle: ...


class LoopClock:
    """基于当前运行中事件循环的真实时钟。"""

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> TimerHandle:
        loop = asyncio.get_running_loop()
        return loop.call_later(delay_ms / 1000, callback)


class _VirtualHandle:
    def __init__(self) -> None:
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class VirtualClock:
    """测试用虚拟时钟：advance() 推进时间并按到期顺序执行回调。"""

    def __init__(self) -> None:
        self.now_ms = 0.0
        self._seq = itertools.count()
        self._queue: list[tuple[float, int, _VirtualHandle, Callable[[], None]]] = []

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> TimerHandle:
        handle = _VirtualHandle()
        heapq.heappush(
            self._queue, (self.now_ms + delay_ms, next(self._seq), handle, callback)
        )
        return handle

    @property
    def pending(self) -> int:
        return sum(1 for _, _, handle, _ in self._queue if not handle.cancelled)

    def advance(self, delta_ms: float) -> int:
        if delta_ms < 0:
            raise ValueError("delta_ms must be >= 0")
        deadline = self.now_ms + delta_ms
        fired = 0
        while self._queue and self._queue[0][0] <= deadline:
            due, _, handle, callback = heapq.heappop(self._queue)
            self.now_ms = due
            if handle.cancelled:
                continue
            callback()
            fired += 1
        self.now_ms = deadline
        return fired


class DebounceScheduler:
    """最多保留一个待执行任务：每次 arm 都会取消上一次尚未触发的任务。"""

    def __init__(self, clock: Clock | None = None):
        self._clock = clock or LoopClock()
        self._handle: TimerHandle | None = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def arm(self, delay_ms: float, callback: Callable[[], None]) -> None:
        self.cancel()

        def _fire() -> None:
            self._handle = None
            callback()

        self._handle = self._clock.call_later(delay_ms, _fire)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
