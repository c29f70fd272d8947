"""持久化同步：位置/内容变更后去抖整图写回，手动保存立即写回。"""

from __future__ import annotations

import asyncio
import logging

from storyflow.errors import PersistenceFailure
from storyflow.graph.model import GraphRef
from storyflow.storage.ports import GraphStorePort
from storyflow.sync.scheduler import DebounceScheduler

logger = logging.getLogger(__name__)


class PersistenceSync:
    """纯调度与去重逻辑，不含业务规则；写回总是整图而非差量。"""

    def __init__(
        self,
        *,
        script_id: str,
        store: GraphStorePort,
        graph_ref: GraphRef,
        scheduler: DebounceScheduler,
        debounce_ms: float = 2000,
    ):
        if debounce_ms <= 0:
            raise ValueError("debounce_ms must be > 0")
        self.script_id = script_id
        self._store = store
        self._graph_ref = graph_ref
        self._scheduler = scheduler
        self.debounce_ms = debounce_ms
        self._inflight: set[asyncio.Task[None]] = set()

    @property
    def pending(self) -> bool:
        return self._scheduler.pending

    def notify_changed(self) -> None:
        self._scheduler.arm(self.debounce_ms, self._on_timer)

    def _on_timer(self) -> None:
        task = asyncio.get_running_loop().create_task(self._auto_flush())
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    async def _auto_flush(self) -> None:
        try:
            await self._write()
        except Exception:
            # 自动保存失败不打断编辑，仅记录日志。
            logger.exception("auto-save failed: script_id=%s", self.script_id)
            return
        logger.debug("auto-save flushed: script_id=%s", self.script_id)

    async def save_now(self) -> None:
        self._scheduler.cancel()
        try:
            await self._write()
        except Exception as exc:
            logger.error("manual save failed: script_id=%s error=%s", self.script_id, exc)
            raise PersistenceFailure(self.script_id, "save_graph", exc) from exc
        logger.info("manual save completed: script_id=%s", self.script_id)

    async def _write(self) -> None:
        layers = self._graph_ref.current.snapshot()
        await self._store.save_graph(self.script_id, layers)

    async def drain(self) -> None:
        if self._inflight:
            await asyncio.gather(*list(self._inflight))

    async def close(self) -> None:
        """关闭前把未到期的去抖写回立即落盘，再等待进行中的写回。"""
        if self._scheduler.pending:
            self._scheduler.cancel()
            await self._auto_flush()
        await self.drain()
