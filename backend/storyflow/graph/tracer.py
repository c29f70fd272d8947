"""祖先追溯：沿分支反向广度优先搜索，得到所有通往某节点的路径上的节点。"""

from __future__ import annotations

from collections import deque
from typing import Iterable, Mapping


def build_reverse_index(edges: Iterable[tuple[str, str]]) -> dict[str, list[str]]:
    target_to_sources: dict[str, list[str]] = {}
    for source, target in edges:
        target_to_sources.setdefault(target, []).append(source)
    return target_to_sources


def trace_ancestors(node_id: str, edges: Iterable[tuple[str, str]]) -> set[str]:
    """返回包含 node_id 自身在内的反向可达集合。

    visited 集合保证每个节点最多入队一次，图中意外出现环时也能终止。
    """
    return trace_with_index(node_id, build_reverse_index(edges))


def trace_with_index(node_id: str, target_to_sources: Mapping[str, list[str]]) -> set[str]:
    visited = {node_id}
    queue = deque([node_id])
    while queue:
        current = queue.popleft()
        for source in target_to_sources.get(current, ()):
            if source in visited:
                continue
            visited.add(source)
            queue.append(source)
    return visited
