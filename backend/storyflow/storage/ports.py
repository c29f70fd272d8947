from __future__ import annotations

from typing import Protocol, Sequence

from storyflow.models import (
    CreateScriptParams,
    Layer,
    Script,
    StoryNode,
    UpdateScriptParams,
)


class GraphStorePort(Protocol):
    """按 script_id 读写整图的异步后端存储。"""

    async def load_graph(self, script_id: str) -> list[Layer]: ...

    async def save_graph(self, script_id: str, layers: Sequence[Layer]) -> None: ...

    async def update_node_content(
        self,
        node_id: str,
        content: str,
        layers: Sequence[Layer],
        title: str | None = None,
    ) -> StoryNode | None: ...


class ScriptCatalogPort(Protocol):
    async def list_scripts(self) -> list[Script]: ...

    async def get_script(self, script_id: str) -> Script | None: ...

    async def create_script(self, params: CreateScriptParams) -> Script: ...

    async def update_script(self, script_id: str, params: UpdateScriptParams) -> Script: ...

    async def delete_script(self, script_id: str) -> None: ...

    async def rename_script(self, script_id: str, title: str) -> Script: ...

    async def update_script_tags(self, script_id: str, tags: Sequence[str]) -> Script: ...


class ScriptStorePort(GraphStorePort, ScriptCatalogPort, Protocol):
    pass
