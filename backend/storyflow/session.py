"""剧本编辑会话：加载图、响应画布事件、维护高亮与自动保存。"""

from __future__ import annotations

import logging
from typing import Callable

from storyflow.config import AUTOSAVE_DEBOUNCE_MS
from storyflow.errors import PersistenceFailure
from storyflow.graph.layout import LayoutDirection, Position, auto_arrange
from storyflow.graph.model import GraphRef, ScriptGraph, graph_from_layers
from storyflow.graph.mutations import MutationEngine
from storyflow.graph.projection import FlowGraph, OutlineLayer, build_outline, project_graph
from storyflow.graph.seed import generate_seed_layers
from storyflow.graph.tracer import trace_ancestors
from storyflow.models import Branch, BranchType, Layer, StoryNode
from storyflow.storage.ports import GraphStorePort
from storyflow.sync.persistence import PersistenceSync
from storyflow.sync.scheduler import Clock, DebounceScheduler

logger = logging.getLogger(__name__)


class ScriptEditSession:
    """单个剧本的编辑会话。

    所有读写都经由 GraphRef 读取当前图；渲染结果始终是
    (图状态, 布局方向, 是否沿用已存坐标, 高亮锚点) 的确定性函数。
    """

    def __init__(
        self,
        script_id: str,
        store: GraphStorePort,
        *,
        clock: Clock | None = None,
        debounce_ms: float = AUTOSAVE_DEBOUNCE_MS,
        direction: LayoutDirection = LayoutDirection.HORIZONTAL,
        id_factory: Callable[[str], str] | None = None,
    ):
        self.script_id = script_id
        self.direction = direction
        self._store = store
        self._graph_ref = GraphRef()
        self._mutations = MutationEngine(self._graph_ref, id_factory=id_factory)
        self._sync = PersistenceSync(
            script_id=script_id,
            store=store,
            graph_ref=self._graph_ref,
            scheduler=DebounceScheduler(clock),
            debounce_ms=debounce_ms,
        )
        self._highlight_anchor: str | None = None

    @property
    def loaded(self) -> bool:
        return self._graph_ref.loaded

    @property
    def sync(self) -> PersistenceSync:
        return self._sync

    @property
    def graph(self) -> ScriptGraph:
        return self._graph_ref.current

    async def load(self) -> None:
        """重新拉取并整体替换内存图；重复调用不会去重。"""
        layers = await self._store.load_graph(self.script_id)
        seeded = not layers
        if seeded:
            layers = generate_seed_layers(self.script_id)
            logger.info("no stored graph, seeded pyramid: script_id=%s", self.script_id)
        self._graph_ref.replace(graph_from_layers(self.script_id, layers))
        self._highlight_anchor = None
        if seeded:
            self._sync.notify_changed()
        logger.info(
            "graph loaded: script_id=%s counts=%s",
            self.script_id,
            self.graph.counts(),
        )

    def render(self, *, respect_stored: bool = True) -> FlowGraph:
        return project_graph(
            self.graph,
            self.direction,
            respect_stored=respect_stored,
            highlight=self.highlighted_nodes(),
        )

    def outline(self) -> list[OutlineLayer]:
        return build_outline(self.graph)

    # 高亮 -------------------------------------------------------------------

    def highlighted_nodes(self) -> set[str]:
        anchor = self._highlight_anchor
        if anchor is None:
            return set()
        if not self.graph.has_node(anchor):
            return set()
        return trace_ancestors(anchor, self.graph.edges())

    def clear_highlight(self) -> None:
        self._highlight_anchor = None

    # 画布事件 ---------------------------------------------------------------

    def on_node_click(self, node_id: str) -> set[str]:
        self.graph.find_node(node_id)
        self._highlight_anchor = node_id
        highlighted = self.highlighted_nodes()
        logger.debug(
            "highlight: script_id=%s node_id=%s size=%d",
            self.script_id,
            node_id,
            len(highlighted),
        )
        return highlighted

    def on_node_double_click(self, node_id: str) -> StoryNode:
        return self.graph.find_node(node_id)

    def on_node_move(self, node_id: str, x: float, y: float) -> StoryNode:
        node = self._mutations.move_node(node_id, x, y)
        self._sync.notify_changed()
        return node

    def on_connect(
        self,
        source: str,
        target: str,
        *,
        label: str | None = None,
        branch_type: BranchType = BranchType.DEFAULT,
    ) -> Branch:
        branch = self._mutations.connect(
            source, target, label=label, branch_type=branch_type
        )
        self._sync.notify_changed()
        return branch

    def on_edge_delete(self, branch_id: str) -> bool:
        removed = self._mutations.delete_edge(branch_id)
        if removed is None:
            return False
        self._sync.notify_changed()
        return True

    # 结构编辑 ---------------------------------------------------------------

    def add_layer(self, title: str, description: str | None = None) -> Layer:
        layer = self._mutations.add_layer(title, description)
        self._sync.notify_changed()
        return layer

    def add_node(
        self,
        layer_id: str,
        title: str,
        content: str,
        duration: int | None = None,
    ) -> StoryNode:
        node = self._mutations.add_node(layer_id, title, content, duration)
        self._sync.notify_changed()
        return node

    def delete_node(self, node_id: str) -> bool:
        removed = self._mutations.delete_node(node_id)
        if removed is None:
            return False
        if self._highlight_anchor == node_id:
            self._highlight_anchor = None
        self._sync.notify_changed()
        return True

    async def update_node_content(
        self, node_id: str, content: str, title: str | None = None
    ) -> StoryNode:
        node = self._mutations.update_content(node_id, content, title)
        try:
            stored = await self._store.update_node_content(
                node_id, content, self.graph.snapshot(), title
            )
        except Exception as exc:
            # 内存已改，写穿失败后仍交给整图写回补齐。
            self._sync.notify_changed()
            raise PersistenceFailure(self.script_id, "update_node_content", exc) from exc
        if stored is None:
            # 存储端尚无该节点（新建后未落盘），交给整图去抖写回。
            self._sync.notify_changed()
        return node

    # 布局 -------------------------------------------------------------------

    def auto_arrange(self, direction: LayoutDirection | None = None) -> dict[str, Position]:
        if direction is not None:
            self.direction = direction
        positions = auto_arrange(self.graph, self.direction)
        self._sync.notify_changed()
        return positions

    def set_direction(self, direction: LayoutDirection) -> dict[str, Position]:
        return self.auto_arrange(direction)

    # 持久化 -----------------------------------------------------------------

    async def save(self) -> None:
        await self._sync.save_now()

    async def close(self) -> None:
        await self._sync.close()


class SessionRegistry:
    """API 进程内每个 script_id 一个会话。"""

    def __init__(
        self,
        store: GraphStorePort,
        *,
        clock: Clock | None = None,
        debounce_ms: float = AUTOSAVE_DEBOUNCE_MS,
    ):
        self._store = store
        self._clock = clock
        self._debounce_ms = debounce_ms
        self._sessions: dict[str, ScriptEditSession] = {}

    @property
    def store(self) -> GraphStorePort:
        return self._store

    def _session(self, script_id: str) -> ScriptEditSession:
        session = self._sessions.get(script_id)
        if session is None:
            session = ScriptEditSession(
                script_id,
                self._store,
                clock=self._clock,
                debounce_ms=self._debounce_ms,
            )
            self._sessions[script_id] = session
        return session

    async def open(self, script_id: str) -> ScriptEditSession:
        session = self._session(script_id)
        if not session.loaded:
            await session.load()
        return session

    async def reload(self, script_id: str) -> ScriptEditSession:
        session = self._session(script_id)
        await session.load()
        return session

    async def close(self) -> None:
        for session in self._sessions.values():
            await session.close()
        self._sessions.clear()
