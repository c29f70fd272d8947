from storyflow.graph.model import graph_from_layers
from storyflow.graph.seed import generate_seed_layers
from storyflow.graph.tracer import build_reverse_index, trace_ancestors


def test_trace_includes_self_and_all_ancestors():
    edges = [("a", "b"), ("a", "c"), ("b", "d"), ("c", "d"), ("x", "y")]
    assert trace_ancestors("d", edges) == {"a", "b", "c", "d"}
    assert trace_ancestors("a", edges) == {"a"}


def test_trace_unknown_node_returns_singleton():
    assert trace_ancestors("ghost", [("a", "b")]) == {"ghost"}


def test_trace_terminates_on_cycles():
    edges = [("a", "b"), ("b", "c"), ("c", "a"), ("c", "d")]
    assert trace_ancestors("d", edges) == {"a", "b", "c", "d"}


def test_trace_seed_leaf_follows_single_path():
    graph = graph_from_layers("s1", generate_seed_layers("s1"))
    # node-63 是最后一层的最后一个节点
    assert trace_ancestors("node-63", graph.edges()) == {
        "node-1",
        "node-3",
        "node-7",
        "node-15",
        "node-31",
        "node-63",
    }


def test_reverse_index_keeps_duplicate_sources():
    index = build_reverse_index([("a", "b"), ("a", "b"), ("c", "b")])
    assert index == {"b": ["a", "a", "c"]}
