"""结构编辑：新增层/节点/分支、删除分支与节点（含级联清理）。"""

from __future__ import annotations

import logging
from typing import Callable
from uuid import uuid4

from storyflow.constants import DEFAULT_BRANCH_LABEL
from storyflow.graph.model import GraphRef, ScriptGraph
from storyflow.models import Branch, BranchType, Layer, NodeMetadata, StoryNode, utc_now

logger = logging.getLogger(__name__)


def _new_id(prefix: str) -> str:
    return f"{prefix}-{uuid4()}"


class MutationEngine:
    """对图施加编辑，保证每次成功返回后引用与所有权不变量依然成立。

    每个操作都通过 GraphRef 在调用时读取最新的图，不缓存旧快照。
    """

    def __init__(
        self,
        graph_ref: GraphRef,
        *,
        id_factory: Callable[[str], str] | None = None,
    ):
        self._graph_ref = graph_ref
        self._id_factory = id_factory or _new_id

    @property
    def _graph(self) -> ScriptGraph:
        return self._graph_ref.current

    def add_layer(self, title: str, description: str | None = None) -> Layer:
        graph = self._graph
        layer = Layer(
            id=self._id_factory("layer"),
            script_id=graph.script_id,
            layer_order=graph.max_layer_order() + 1,
            title=title,
            description=description,
        )
        graph.append_layer(layer)
        logger.debug(
            "layer added: script_id=%s layer_id=%s layer_order=%d",
            graph.script_id,
            layer.id,
            layer.layer_order,
        )
        return layer

    def add_node(
        self,
        layer_id: str,
        title: str,
        content: str,
        duration: int | None = None,
    ) -> StoryNode:
        graph = self._graph
        layer = graph.find_layer(layer_id)
        node = StoryNode(
            id=self._id_factory("node"),
            layer_id=layer.id,
            node_order=len(layer.nodes) + 1,
            title=title,
            content=content,
            duration=duration,
            metadata=NodeMetadata(scene=layer.title),
        )
        graph.append_node(layer.id, node)
        logger.debug("node added: layer_id=%s node_id=%s", layer.id, node.id)
        return node

    def connect(
        self,
        from_node_id: str,
        to_node_id: str,
        *,
        label: str | None = None,
        branch_type: BranchType = BranchType.DEFAULT,
    ) -> Branch:
        graph = self._graph
        source = graph.find_node(from_node_id)
        graph.find_node(to_node_id)
        # 同一对节点之间允许重复分支，也不检查是否成环。
        branch = Branch(
            id=self._id_factory("branch"),
            from_node_id=source.id,
            to_node_id=to_node_id,
            branch_label=DEFAULT_BRANCH_LABEL if label is None else label,
            branch_type=branch_type,
            branch_order=max((b.branch_order for b in source.branches), default=0) + 1,
        )
        graph.append_branch(source.id, branch)
        logger.debug(
            "branch added: branch_id=%s %s -> %s", branch.id, source.id, to_node_id
        )
        return branch

    def delete_edge(self, branch_id: str) -> Branch | None:
        removed = self._graph.remove_branch(branch_id)
        if removed is None:
            logger.debug("delete_edge no-op: branch_id=%s", branch_id)
        return removed

    def delete_node(self, node_id: str) -> StoryNode | None:
        graph = self._graph
        removed = graph.remove_node(node_id)
        if removed is None:
            logger.debug("delete_node no-op: node_id=%s", node_id)
            return None
        pruned = graph.prune_branches_to(node_id)
        if pruned:
            logger.info(
                "pruned %d branch(es) targeting deleted node_id=%s", len(pruned), node_id
            )
        return removed

    def update_content(
        self, node_id: str, content: str, title: str | None = None
    ) -> StoryNode:
        node = self._graph.find_node(node_id)
        node.content = content
        if title is not None:
            node.title = title
        node.updated_at = utc_now()
        return node

    def move_node(self, node_id: str, x: float, y: float) -> StoryNode:
        node = self._graph.find_node(node_id)
        node.position_x = x
        node.position_y = y
        node.updated_at = utc_now()
        return node
