"""布局引擎：根据拓扑计算节点坐标，或沿用用户拖拽后保存的坐标。"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel

from storyflow.constants import (
    HORIZONTAL_CROSS_ORIGIN,
    HORIZONTAL_LAYER_SPACING,
    HORIZONTAL_NODE_SPACING,
    VERTICAL_CROSS_ORIGIN,
    VERTICAL_LAYER_SPACING,
    VERTICAL_NODE_SPACING,
)
from storyflow.graph.model import ScriptGraph
from storyflow.models import utc_now


class LayoutDirection(str, Enum):
    HORIZONTAL = "horizontal"
    VERTICAL = "vertical"


class ConnectorSide(str, Enum):
    LEFT = "left"
    RIGHT = "right"
    TOP = "top"
    BOTTOM = "bottom"


@dataclass(frozen=True)
class AxisSpacing:
    layer_spacing: float
    node_spacing: float
    cross_origin: float
    target_side: ConnectorSide
    source_side: ConnectorSide


SPACING: dict[LayoutDirection, AxisSpacing] = {
    LayoutDirection.HORIZONTAL: AxisSpacing(
        layer_spacing=HORIZONTAL_LAYER_SPACING,
        node_spacing=HORIZONTAL_NODE_SPACING,
        cross_origin=HORIZONTAL_CROSS_ORIGIN,
        target_side=ConnectorSide.LEFT,
        source_side=ConnectorSide.RIGHT,
    ),
    LayoutDirection.VERTICAL: AxisSpacing(
        layer_spacing=VERTICAL_LAYER_SPACING,
        node_spacing=VERTICAL_NODE_SPACING,
        cross_origin=VERTICAL_CROSS_ORIGIN,
        target_side=ConnectorSide.TOP,
        source_side=ConnectorSide.BOTTOM,
    ),
}


class Position(BaseModel):
    x: float
    y: float


class ConnectorSides(BaseModel):
    target: ConnectorSide | None = None
    source: ConnectorSide | None = None


def compute_position(
    direction: LayoutDirection, *, layer_order: int, index: int, count: int
) -> Position:
    """主轴坐标取 layer_order * 层间距，交叉轴围绕公共原点居中。"""
    spacing = SPACING[direction]
    primary = layer_order * spacing.layer_spacing
    cross = spacing.cross_origin + (index - (count - 1) / 2) * spacing.node_spacing
    if direction == LayoutDirection.HORIZONTAL:
        return Position(x=primary, y=cross)
    return Position(x=cross, y=primary)


def connector_sides(
    direction: LayoutDirection, *, layer_rank: int, layer_count: int
) -> ConnectorSides:
    spacing = SPACING[direction]
    return ConnectorSides(
        target=None if layer_rank == 0 else spacing.target_side,
        source=None if layer_rank == layer_count - 1 else spacing.source_side,
    )


def assign_positions(
    graph: ScriptGraph,
    direction: LayoutDirection,
    *,
    respect_stored: bool = True,
) -> dict[str, Position]:
    positions: dict[str, Position] = {}
    for layer in graph.layers:
        count = len(layer.nodes)
        for index, node in enumerate(layer.nodes):
            if respect_stored and node.has_position:
                positions[node.id] = Position(x=node.position_x, y=node.position_y)
                continue
            positions[node.id] = compute_position(
                direction, layer_order=layer.layer_order, index=index, count=count
            )
    return positions


def auto_arrange(graph: ScriptGraph, direction: LayoutDirection) -> dict[str, Position]:
    """强制重算全部坐标并写回节点记录，之后的渲染保持稳定直到再次拖动。"""
    positions = assign_positions(graph, direction, respect_stored=False)
    now = utc_now()
    for node in graph.all_nodes():
        position = positions[node.id]
        node.position_x = position.x
        node.position_y = position.y
        node.updated_at = now
    return positions
