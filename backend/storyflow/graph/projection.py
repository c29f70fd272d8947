"""画布视图契约：由图状态确定性地推导节点/边列表与大纲树。"""

from __future__ import annotations

from enum import Enum
from typing import List

from pydantic import BaseModel, Field

from storyflow.constants import (
    DEFAULT_NODE_CONTENT,
    DEFAULT_NODE_LABEL,
    PRIMARY_EDGE_COLOR,
    SECONDARY_EDGE_COLOR,
)
from storyflow.graph.layout import (
    ConnectorSides,
    LayoutDirection,
    Position,
    assign_positions,
    connector_sides,
)
from storyflow.graph.model import ScriptGraph


class FlowNodeKind(str, Enum):
    INPUT = "input"
    OUTPUT = "output"
    DEFAULT = "default"


class FlowNode(BaseModel):
    id: str
    layer_id: str
    kind: FlowNodeKind = FlowNodeKind.DEFAULT
    position: Position
    connector_sides: ConnectorSides
    display_label: str
    display_content: str
    dimmed: bool = False


class FlowEdge(BaseModel):
    id: str
    source: str
    target: str
    label: str
    highlighted: bool = False
    dimmed: bool = False
    animated: bool = True
    color: str = PRIMARY_EDGE_COLOR


class FlowGraph(BaseModel):
    direction: LayoutDirection
    nodes: List[FlowNode] = Field(default_factory=list)
    edges: List[FlowEdge] = Field(default_factory=list)
    highlighted_count: int = 0


class OutlineNode(BaseModel):
    node_id: str
    title: str
    content: str


class OutlineLayer(BaseModel):
    layer_id: str
    title: str
    layer_order: int
    node_count: int
    nodes: List[OutlineNode] = Field(default_factory=list)


def project_graph(
    graph: ScriptGraph,
    direction: LayoutDirection,
    *,
    respect_stored: bool = True,
    highlight: set[str] | None = None,
) -> FlowGraph:
    """高亮集合为空时所有节点和边恢复默认外观（整体复位，而非逐个切换）。"""
    active = bool(highlight)
    highlight = highlight or set()
    positions = assign_positions(graph, direction, respect_stored=respect_stored)
    layers = graph.layers
    layer_count = len(layers)

    nodes: list[FlowNode] = []
    edges: list[FlowEdge] = []
    for rank, layer in enumerate(layers):
        sides = connector_sides(direction, layer_rank=rank, layer_count=layer_count)
        last_index = len(layer.nodes) - 1
        for index, node in enumerate(layer.nodes):
            kind = FlowNodeKind.DEFAULT
            if rank == 0 and index == 0:
                kind = FlowNodeKind.INPUT
            elif rank == layer_count - 1 and index == last_index:
                kind = FlowNodeKind.OUTPUT
            nodes.append(
                FlowNode(
                    id=node.id,
                    layer_id=layer.id,
                    kind=kind,
                    position=positions[node.id],
                    connector_sides=sides,
                    display_label=node.title or DEFAULT_NODE_LABEL,
                    display_content=node.content or DEFAULT_NODE_CONTENT,
                    dimmed=active and node.id not in highlight,
                )
            )
            for branch_index, branch in enumerate(node.branches):
                on_path = (
                    active
                    and branch.from_node_id in highlight
                    and branch.to_node_id in highlight
                )
                edges.append(
                    FlowEdge(
                        id=branch.id,
                        source=branch.from_node_id,
                        target=branch.to_node_id,
                        label=branch.branch_label,
                        highlighted=on_path,
                        dimmed=active and not on_path,
                        animated=on_path or not active,
                        color=PRIMARY_EDGE_COLOR if branch_index == 0 else SECONDARY_EDGE_COLOR,
                    )
                )
    return FlowGraph(
        direction=direction,
        nodes=nodes,
        edges=edges,
        highlighted_count=len(highlight) if active else 0,
    )


def build_outline(graph: ScriptGraph) -> list[OutlineLayer]:
    return [
        OutlineLayer(
            layer_id=layer.id,
            title=layer.title,
            layer_order=layer.layer_order,
            node_count=len(layer.nodes),
            nodes=[
                OutlineNode(node_id=node.id, title=node.title, content=node.content)
                for node in layer.nodes
            ],
        )
        for layer in graph.layers
    ]
