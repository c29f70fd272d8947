from storyflow.graph.layout import (
    ConnectorSide,
    LayoutDirection,
    Position,
    assign_positions,
    auto_arrange,
    compute_position,
    connector_sides,
)
from storyflow.graph.model import graph_from_layers
from storyflow.graph.seed import generate_seed_layers


def _seed_graph():
    return graph_from_layers("s1", generate_seed_layers("s1"))


def test_vertical_layout_centres_layers_on_common_origin():
    positions = assign_positions(_seed_graph(), LayoutDirection.VERTICAL)
    assert positions["node-1"] == Position(x=100, y=200)
    assert positions["node-2"] == Position(x=0, y=400)
    assert positions["node-3"] == Position(x=200, y=400)
    layer_three = [positions[f"node-{i}"] for i in range(4, 8)]
    assert [p.x for p in layer_three] == [-200, 0, 200, 400]
    assert {p.y for p in layer_three} == {600}


def test_horizontal_layout_uses_layer_spacing_on_x():
    positions = assign_positions(_seed_graph(), LayoutDirection.HORIZONTAL)
    assert positions["node-1"] == Position(x=400, y=100)
    assert positions["node-2"] == Position(x=800, y=40)
    assert positions["node-3"] == Position(x=800, y=160)


def test_compute_position_single_node_sits_on_origin():
    assert compute_position(
        LayoutDirection.HORIZONTAL, layer_order=3, index=0, count=1
    ) == Position(x=1200, y=100)


def test_stored_positions_respected_unless_forced():
    graph = _seed_graph()
    node = graph.find_node("node-2")
    node.position_x = 5.0
    node.position_y = 7.0

    respected = assign_positions(graph, LayoutDirection.VERTICAL)
    assert respected["node-2"] == Position(x=5, y=7)

    forced = assign_positions(graph, LayoutDirection.VERTICAL, respect_stored=False)
    assert forced["node-2"] == Position(x=0, y=400)


def test_partial_stored_position_falls_back_to_computed():
    graph = _seed_graph()
    graph.find_node("node-1").position_x = 42.0
    positions = assign_positions(graph, LayoutDirection.HORIZONTAL)
    assert positions["node-1"] == Position(x=400, y=100)


def test_auto_arrange_writes_positions_back():
    graph = _seed_graph()
    graph.find_node("node-3").position_x = -999.0
    graph.find_node("node-3").position_y = -999.0
    positions = auto_arrange(graph, LayoutDirection.VERTICAL)
    node = graph.find_node("node-3")
    assert (node.position_x, node.position_y) == (200, 400)
    assert positions["node-3"] == Position(x=200, y=400)
    assert all(n.has_position for n in graph.all_nodes())
    assert assign_positions(graph, LayoutDirection.VERTICAL) == positions


def test_connector_sides_follow_direction_and_layer_rank():
    first = connector_sides(LayoutDirection.HORIZONTAL, layer_rank=0, layer_count=3)
    assert first.target is None
    assert first.source == ConnectorSide.RIGHT

    middle = connector_sides(LayoutDirection.VERTICAL, layer_rank=1, layer_count=3)
    assert middle.target == ConnectorSide.TOP
    assert middle.source == ConnectorSide.BOTTOM

    last = connector_sides(LayoutDirection.VERTICAL, layer_rank=2, layer_count=3)
    assert last.target == ConnectorSide.TOP
    assert last.source is None


def test_direction_toggle_round_trip_recomputes_from_formula():
    graph = _seed_graph()
    graph.find_node("node-4").position_x = 1.0
    graph.find_node("node-4").position_y = 1.0
    horizontal = auto_arrange(graph, LayoutDirection.HORIZONTAL)
    auto_arrange(graph, LayoutDirection.VERTICAL)
    again = auto_arrange(graph, LayoutDirection.HORIZONTAL)
    assert again == horizontal
    assert again["node-4"] == compute_position(
        LayoutDirection.HORIZONTAL, layer_order=3, index=0, count=4
    )
