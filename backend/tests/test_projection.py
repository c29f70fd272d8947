from storyflow.graph.layout import ConnectorSide, LayoutDirection, Position
from storyflow.graph.model import graph_from_layers
from storyflow.graph.projection import FlowNodeKind, build_outline, project_graph
from storyflow.graph.seed import generate_seed_layers
from storyflow.graph.tracer import trace_ancestors


def _graph(layer_count: int = 3):
    return graph_from_layers("s1", generate_seed_layers("s1", layer_count))


def test_projection_without_highlight_is_all_default():
    flow = project_graph(_graph(), LayoutDirection.HORIZONTAL)
    assert len(flow.nodes) == 7
    assert len(flow.edges) == 6
    assert flow.highlighted_count == 0
    assert not any(node.dimmed for node in flow.nodes)
    assert all(edge.animated and not edge.dimmed and not edge.highlighted for edge in flow.edges)


def test_projection_dims_outside_ancestor_set():
    graph = _graph()
    highlight = trace_ancestors("node-5", graph.edges())
    flow = project_graph(graph, LayoutDirection.HORIZONTAL, highlight=highlight)
    assert flow.highlighted_count == 3
    dimmed = {node.id for node in flow.nodes if node.dimmed}
    assert dimmed == {"node-3", "node-4", "node-6", "node-7"}
    highlighted_edges = {(e.source, e.target) for e in flow.edges if e.highlighted}
    assert highlighted_edges == {("node-1", "node-2"), ("node-2", "node-5")}
    for edge in flow.edges:
        assert edge.animated == edge.highlighted
        assert edge.dimmed == (not edge.highlighted)


def test_edge_highlighted_only_when_both_endpoints_in_set():
    graph = _graph()
    highlight = {"node-1", "node-2"}
    flow = project_graph(graph, LayoutDirection.VERTICAL, highlight=highlight)
    assert [e.id for e in flow.edges if e.highlighted] == ["branch-1"]


def test_flow_node_kinds_and_connector_sides():
    flow = project_graph(_graph(), LayoutDirection.VERTICAL)
    kinds = {node.id: node.kind for node in flow.nodes}
    assert kinds["node-1"] == FlowNodeKind.INPUT
    assert kinds["node-7"] == FlowNodeKind.OUTPUT
    assert kinds["node-4"] == FlowNodeKind.DEFAULT
    first = next(node for node in flow.nodes if node.id == "node-1")
    assert first.connector_sides.target is None
    assert first.connector_sides.source == ConnectorSide.BOTTOM
    assert first.position == Position(x=100, y=200)


def test_edge_colors_and_display_fallbacks():
    graph = _graph()
    node = graph.find_node("node-2")
    node.title = ""
    node.content = ""
    flow = project_graph(graph, LayoutDirection.HORIZONTAL)
    rendered = next(n for n in flow.nodes if n.id == "node-2")
    assert rendered.display_label == "Untitled node"
    assert rendered.display_content == "No description"
    colors = {edge.id: edge.color for edge in flow.edges}
    assert colors["branch-1"] == "#1890ff"
    assert colors["branch-2"] == "#52c41a"


def test_projection_is_deterministic():
    graph = _graph()
    highlight = {"node-1", "node-3"}
    first = project_graph(graph, LayoutDirection.HORIZONTAL, highlight=highlight)
    second = project_graph(graph, LayoutDirection.HORIZONTAL, highlight=highlight)
    assert first == second


def test_outline_lists_layers_in_order():
    outline = build_outline(_graph())
    assert [layer.layer_id for layer in outline] == ["layer-1", "layer-2", "layer-3"]
    assert [layer.node_count for layer in outline] == [1, 2, 4]
    assert outline[1].nodes[0].node_id == "node-2"
    assert outline[1].nodes[0].title == "Act 2 - Node 1"
