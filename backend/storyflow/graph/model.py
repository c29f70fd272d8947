"""剧本分支图的内存模型：编辑会话内的唯一事实来源。"""

from __future__ import annotations

from typing import Iterable, Sequence

from storyflow.errors import NotFoundError
from storyflow.models import Branch, Layer, StoryNode


class ScriptGraph:
    """层、节点、分支的内存表示，维护 id 索引与引用不变量。

    结构性 setter 只供 MutationEngine 使用；它们不做级联，级联删除由
    调用方显式执行（先删节点，再清扫指向它的分支）。
    """

    def __init__(self, script_id: str, layers: Sequence[Layer] = ()):
        self.script_id = script_id
        self._layers: list[Layer] = list(layers)
        self._layer_index: dict[str, Layer] = {}
        self._node_index: dict[str, StoryNode] = {}
        self._node_layer: dict[str, str] = {}
        self._reindex()

    def _reindex(self) -> None:
        self._layer_index.clear()
        self._node_index.clear()
        self._node_layer.clear()
        for layer in self._layers:
            self._layer_index[layer.id] = layer
            for node in layer.nodes:
                self._node_index[node.id] = node
                self._node_layer[node.id] = layer.id

    @property
    def layers(self) -> list[Layer]:
        return sorted(self._layers, key=lambda layer: layer.layer_order)

    def find_layer(self, layer_id: str) -> Layer:
        layer = self._layer_index.get(layer_id)
        if layer is None:
            raise NotFoundError("layer", layer_id)
        return layer

    def find_node(self, node_id: str) -> StoryNode:
        node = self._node_index.get(node_id)
        if node is None:
            raise NotFoundError("node", node_id)
        return node

    def get_node(self, node_id: str) -> StoryNode | None:
        return self._node_index.get(node_id)

    def has_node(self, node_id: str) -> bool:
        return node_id in self._node_index

    def layer_of(self, node_id: str) -> Layer:
        layer_id = self._node_layer.get(node_id)
        if layer_id is None:
            raise NotFoundError("node", node_id)
        return self._layer_index[layer_id]

    def all_nodes(self) -> list[StoryNode]:
        return [node for layer in self.layers for node in layer.nodes]

    def all_branches(self) -> list[Branch]:
        return [branch for node in self.all_nodes() for branch in node.branches]

    def edges(self) -> list[tuple[str, str]]:
        return [(b.from_node_id, b.to_node_id) for b in self.all_branches()]

    def find_branch(self, branch_id: str) -> Branch | None:
        for branch in self.all_branches():
            if branch.id == branch_id:
                return branch
        return None

    def max_layer_order(self) -> int:
        return max((layer.layer_order for layer in self._layers), default=0)

    # 结构性 setter ---------------------------------------------------------

    def append_layer(self, layer: Layer) -> None:
        if layer.id in self._layer_index:
            raise ValueError(f"Layer id already exists: layer_id={layer.id}")
        for node in layer.nodes:
            if node.id in self._node_index:
                raise ValueError(f"Node id already exists: node_id={node.id}")
        self._layers.append(layer)
        self._reindex()

    def append_node(self, layer_id: str, node: StoryNode) -> None:
        layer = self.find_layer(layer_id)
        if node.id in self._node_index:
            raise ValueError(f"Node id already exists: node_id={node.id}")
        layer.nodes.append(node)
        self._node_index[node.id] = node
        self._node_layer[node.id] = layer.id

    def remove_node(self, node_id: str) -> StoryNode | None:
        layer_id = self._node_layer.pop(node_id, None)
        node = self._node_index.pop(node_id, None)
        if layer_id is None or node is None:
            return None
        layer = self._layer_index[layer_id]
        layer.nodes = [n for n in layer.nodes if n.id != node_id]
        return node

    def append_branch(self, node_id: str, branch: Branch) -> None:
        node = self.find_node(node_id)
        if branch.from_node_id != node.id:
            raise ValueError(
                "Branch ownership mismatch: "
                f"branch_id={branch.id} from_node_id={branch.from_node_id} owner={node.id}"
            )
        if not self.has_node(branch.to_node_id):
            raise NotFoundError("node", branch.to_node_id)
        node.branches.append(branch)

    def remove_branch(self, branch_id: str) -> Branch | None:
        for node in self.all_nodes():
            for branch in node.branches:
                if branch.id == branch_id:
                    node.branches = [b for b in node.branches if b.id != branch_id]
                    return branch
        return None

    def prune_branches_to(self, node_id: str) -> list[Branch]:
        pruned: list[Branch] = []
        for node in self.all_nodes():
            kept = [b for b in node.branches if b.to_node_id != node_id]
            if len(kept) != len(node.branches):
                pruned.extend(b for b in node.branches if b.to_node_id == node_id)
                node.branches = kept
        return pruned

    # 校验与快照 -------------------------------------------------------------

    def validate(self) -> None:
        """检查引用与所有权不变量，发现问题即抛 ValueError。"""
        layer_ids: set[str] = set()
        node_ids: set[str] = set()
        orders: set[int] = set()
        for layer in self._layers:
            if layer.id in layer_ids:
                raise ValueError(f"Duplicate layer id: layer_id={layer.id}")
            if layer.layer_order in orders:
                raise ValueError(
                    f"Duplicate layer_order: layer_id={layer.id} layer_order={layer.layer_order}"
                )
            if layer.script_id != self.script_id:
                raise ValueError(
                    "Layer belongs to another script: "
                    f"layer_id={layer.id} script_id={layer.script_id}"
                )
            layer_ids.add(layer.id)
            orders.add(layer.layer_order)
            for node in layer.nodes:
                if node.id in node_ids:
                    raise ValueError(f"Duplicate node id: node_id={node.id}")
                if node.layer_id != layer.id:
                    raise ValueError(
                        "Node layer back-reference mismatch: "
                        f"node_id={node.id} layer_id={node.layer_id} owner={layer.id}"
                    )
                node_ids.add(node.id)

        branch_ids: set[str] = set()
        for node in self.all_nodes():
            for branch in node.branches:
                if branch.id in branch_ids:
                    raise ValueError(f"Duplicate branch id: branch_id={branch.id}")
                branch_ids.add(branch.id)
                if branch.from_node_id != node.id:
                    raise ValueError(
                        "Branch ownership mismatch: "
                        f"branch_id={branch.id} from_node_id={branch.from_node_id} owner={node.id}"
                    )
                if branch.to_node_id not in node_ids:
                    raise ValueError(
                        "Dangling branch target: "
                        f"branch_id={branch.id} to_node_id={branch.to_node_id}"
                    )

    def snapshot(self) -> list[Layer]:
        return [layer.model_copy(deep=True) for layer in self.layers]

    def counts(self) -> dict[str, int]:
        return {
            "layers": len(self._layers),
            "nodes": len(self._node_index),
            "branches": len(self.all_branches()),
        }


class GraphRef:
    """持有最新图快照的单一可变单元，事件处理器在调用时按 id 读取。"""

    def __init__(self, graph: ScriptGraph | None = None):
        self._graph = graph

    @property
    def loaded(self) -> bool:
        return self._graph is not None

    @property
    def current(self) -> ScriptGraph:
        if self._graph is None:
            raise RuntimeError("Graph not loaded: load() must complete before use")
        return self._graph

    def replace(self, graph: ScriptGraph) -> None:
        self._graph = graph


def graph_from_layers(script_id: str, layers: Iterable[Layer]) -> ScriptGraph:
    graph = ScriptGraph(script_id, list(layers))
    graph.validate()
    return graph
