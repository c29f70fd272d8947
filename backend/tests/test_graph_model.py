import pytest

from storyflow.errors import NotFoundError
from storyflow.graph.model import GraphRef, ScriptGraph, graph_from_layers
from storyflow.models import Branch, Layer, StoryNode


def _layer(layer_id: str, order: int, node_ids: list[str], script_id: str = "s1") -> Layer:
    return Layer(
        id=layer_id,
        script_id=script_id,
        layer_order=order,
        title=f"Act {order}",
        nodes=[
            StoryNode(id=node_id, layer_id=layer_id, node_order=idx + 1, title=node_id)
            for idx, node_id in enumerate(node_ids)
        ],
    )


def _branch(branch_id: str, source: str, target: str, order: int = 1) -> Branch:
    return Branch(id=branch_id, from_node_id=source, to_node_id=target, branch_order=order)


def _two_layer_graph() -> ScriptGraph:
    first = _layer("l1", 1, ["a"])
    second = _layer("l2", 2, ["b", "c"])
    first.nodes[0].branches = [_branch("ab", "a", "b"), _branch("ac", "a", "c", 2)]
    return graph_from_layers("s1", [second, first])


def test_layers_sorted_by_order_and_lookups():
    graph = _two_layer_graph()
    assert [layer.id for layer in graph.layers] == ["l1", "l2"]
    assert graph.find_node("c").layer_id == "l2"
    assert graph.layer_of("b").id == "l2"
    assert graph.get_node("missing") is None
    assert graph.edges() == [("a", "b"), ("a", "c")]
    assert graph.max_layer_order() == 2
    assert graph.counts() == {"layers": 2, "nodes": 3, "branches": 2}


def test_find_missing_entities_raise_not_found():
    graph = _two_layer_graph()
    with pytest.raises(NotFoundError) as excinfo:
        graph.find_node("zz")
    assert excinfo.value.kind == "node"
    assert str(excinfo.value) == "Node not found: node_id=zz"
    with pytest.raises(KeyError):
        graph.find_layer("zz")


def test_validate_rejects_dangling_target():
    layer = _layer("l1", 1, ["a"])
    layer.nodes[0].branches = [_branch("ax", "a", "ghost")]
    with pytest.raises(ValueError, match="Dangling branch target"):
        graph_from_layers("s1", [layer])


def test_validate_rejects_ownership_mismatch():
    layer = _layer("l1", 1, ["a", "b"])
    layer.nodes[0].branches = [_branch("ba", "b", "a")]
    with pytest.raises(ValueError, match="ownership mismatch"):
        graph_from_layers("s1", [layer])


def test_validate_rejects_duplicates_and_foreign_layers():
    with pytest.raises(ValueError, match="Duplicate node id"):
        graph_from_layers("s1", [_layer("l1", 1, ["a"]), _layer("l2", 2, ["a"])])
    with pytest.raises(ValueError, match="Duplicate layer_order"):
        graph_from_layers("s1", [_layer("l1", 1, ["a"]), _layer("l2", 1, ["b"])])
    with pytest.raises(ValueError, match="another script"):
        graph_from_layers("s1", [_layer("l1", 1, ["a"], script_id="s2")])


def test_structural_setters_keep_indexes():
    graph = _two_layer_graph()
    graph.append_node("l2", StoryNode(id="d", layer_id="l2", node_order=3, title="d"))
    assert graph.has_node("d")

    with pytest.raises(ValueError):
        graph.append_branch("a", _branch("db", "d", "b"))
    with pytest.raises(NotFoundError):
        graph.append_branch("a", _branch("ag", "a", "ghost", 3))

    removed = graph.remove_node("c")
    assert removed is not None and removed.id == "c"
    assert graph.remove_node("c") is None
    pruned = graph.prune_branches_to("c")
    assert [b.id for b in pruned] == ["ac"]
    graph.validate()


def test_snapshot_is_isolated_copy():
    graph = _two_layer_graph()
    snapshot = graph.snapshot()
    snapshot[0].nodes[0].title = "changed"
    assert graph.find_node("a").title == "a"


def test_graph_ref_requires_load():
    ref = GraphRef()
    assert ref.loaded is False
    with pytest.raises(RuntimeError):
        _ = ref.current
    graph = _two_layer_graph()
    ref.replace(graph)
    assert ref.current is graph
