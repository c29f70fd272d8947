"""无外部依赖的内存存储：模拟网络延迟，用于本地闭环与测试。"""

from __future__ import annotations

import asyncio
from typing import Sequence

from storyflow.errors import NotFoundError
from storyflow.models import (
    CreateScriptParams,
    Layer,
    Script,
    StoryNode,
    UpdateScriptParams,
    utc_now,
)
from storyflow.storage.catalog import apply_script_update, new_script


class MemoryGraphStore:
    """以深拷贝隔离调用方与存储内部状态，行为与远端存储一致。"""

    def __init__(self, *, latency_ms: int = 0):
        if latency_ms < 0:
            raise ValueError("latency_ms must be >= 0")
        self.latency_ms = latency_ms
        self._graphs: dict[str, list[Layer]] = {}
        self._scripts: dict[str, Script] = {}
        self.save_calls = 0

    async def _delay(self) -> None:
        if self.latency_ms:
            await asyncio.sleep(self.latency_ms / 1000)

    async def load_graph(self, script_id: str) -> list[Layer]:
        await self._delay()
        return [layer.model_copy(deep=True) for layer in self._graphs.get(script_id, [])]

    async def save_graph(self, script_id: str, layers: Sequence[Layer]) -> None:
        await self._delay()
        self._graphs[script_id] = [layer.model_copy(deep=True) for layer in layers]
        self.save_calls += 1

    async def update_node_content(
        self,
        node_id: str,
        content: str,
        layers: Sequence[Layer],
        title: str | None = None,
    ) -> StoryNode | None:
        await self._delay()
        updated = _update_in_layers(layers, node_id, content, title)
        if updated is None:
            return None
        stored = self._graphs.get(updated[0])
        if stored is not None:
            _update_in_layers(stored, node_id, content, title)
        return updated[1]

    def _require_script(self, script_id: str) -> Script:
        script = self._scripts.get(script_id)
        if script is None or script.deleted_at:
            raise NotFoundError("script", script_id)
        return script

    async def list_scripts(self) -> list[Script]:
        await self._delay()
        return [s.model_copy(deep=True) for s in self._scripts.values() if not s.deleted_at]

    async def get_script(self, script_id: str) -> Script | None:
        await self._delay()
        script = self._scripts.get(script_id)
        if script is None or script.deleted_at:
            return None
        return script.model_copy(deep=True)

    async def create_script(self, params: CreateScriptParams) -> Script:
        await self._delay()
        script = new_script(params)
        self._scripts[script.id] = script
        return script.model_copy(deep=True)

    async def update_script(self, script_id: str, params: UpdateScriptParams) -> Script:
        await self._delay()
        updated = apply_script_update(self._require_script(script_id), params)
        self._scripts[script_id] = updated
        return updated.model_copy(deep=True)

    async def delete_script(self, script_id: str) -> None:
        await self._delay()
        script = self._require_script(script_id)
        script.deleted_at = utc_now()

    async def rename_script(self, script_id: str, title: str) -> Script:
        return await self.update_script(script_id, UpdateScriptParams(title=title))

    async def update_script_tags(self, script_id: str, tags: Sequence[str]) -> Script:
        return await self.update_script(script_id, UpdateScriptParams(tags=list(tags)))


def _update_in_layers(
    layers: Sequence[Layer], node_id: str, content: str, title: str | None
) -> tuple[str, StoryNode] | None:
    for layer in layers:
        for node in layer.nodes:
            if node.id != node_id:
                continue
            node.content = content
            if title is not None:
                node.title = title
            node.updated_at = utc_now()
            return layer.script_id, node
    return None
