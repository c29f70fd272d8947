"""无外部依赖的种子剧本：为首次打开、尚无图的剧本生成金字塔结构。"""

from __future__ import annotations

from typing import List

from storyflow.constants import SEED_BRANCH_LABELS, SEED_FAN_OUT, SEED_LAYER_COUNT
from storyflow.models import Branch, BranchType, Layer, NodeMetadata, StoryNode, utc_now


def seed_node_count(layer_order: int) -> int:
    return 2 ** (layer_order - 1)


def seed_targets(node_index: int, next_layer_count: int) -> list[int]:
    """第 i 个节点连向下一层的 2i 与 2i+1，超出下一层节点数的截断。"""
    start = node_index * SEED_FAN_OUT
    return [idx for idx in range(start, start + SEED_FAN_OUT) if idx < next_layer_count]


def generate_seed_layers(
    script_id: str, layer_count: int = SEED_LAYER_COUNT
) -> List[Layer]:
    if layer_count < 1:
        raise ValueError("layer_count must be >= 1")
    now = utc_now()
    layers: list[Layer] = []
    node_counter = 1
    for layer_order in range(1, layer_count + 1):
        layer_id = f"layer-{layer_order}"
        node_count = seed_node_count(layer_order)
        nodes: list[StoryNode] = []
        for node_order in range(1, node_count + 1):
            nodes.append(
                StoryNode(
                    id=f"node-{node_counter}",
                    layer_id=layer_id,
                    node_order=node_order,
                    title=f"Act {layer_order} - Node {node_order}",
                    content=(
                        f"Beat {node_order} of act {layer_order}.\n\n"
                        "Describe the scene, dialogue and action here.\n\n"
                        "Open the node to edit this content."
                    ),
                    duration=30 + (layer_order - 1) * 10 + node_order * 5,
                    metadata=NodeMetadata(
                        camera_type="close-up" if layer_order % 2 == 0 else "wide",
                        characters={f"Character {node_order}"},
                        scene=f"Scene {layer_order}",
                    ),
                    created_at=now,
                    updated_at=now,
                )
            )
            node_counter += 1
        layers.append(
            Layer(
                id=layer_id,
                script_id=script_id,
                layer_order=layer_order,
                title=f"Act {layer_order}",
                description=f"Act {layer_order} ({node_count} nodes)",
                created_at=now,
                updated_at=now,
                nodes=nodes,
            )
        )

    # 下一层节点全部创建完成后再连线，目标 id 直接取自实际节点。
    branch_counter = 1
    for current, following in zip(layers, layers[1:]):
        for node_index, node in enumerate(current.nodes):
            for branch_index, target_index in enumerate(
                seed_targets(node_index, len(following.nodes))
            ):
                node.branches.append(
                    Branch(
                        id=f"branch-{branch_counter}",
                        from_node_id=node.id,
                        to_node_id=following.nodes[target_index].id,
                        branch_label=SEED_BRANCH_LABELS[branch_index],
                        branch_type=BranchType.CHOICE,
                        branch_order=branch_index + 1,
                        created_at=now,
                    )
                )
                branch_counter += 1
    return layers
