import pytest
from pydantic import ValidationError

from storyflow.models import (
    Branch,
    BranchType,
    CreateScriptParams,
    Layer,
    StoryNode,
    tag_color,
)


def test_tag_color_uses_genre_map_with_fallback():
    assert tag_color("科幻") == "#1890ff"
    assert tag_color("悬疑") == "#722ed1"
    assert tag_color("unknown") == "#595959"


def test_branch_defaults_and_order_validation():
    branch = Branch(id="b1", from_node_id="n1", to_node_id="n2", branch_order=1)
    assert branch.branch_label == ""
    assert branch.branch_type == BranchType.DEFAULT

    with pytest.raises(ValidationError):
        Branch(id="b2", from_node_id="n1", to_node_id="n2", branch_order=0)


def test_story_node_position_and_duration():
    node = StoryNode(id="n1", layer_id="l1", node_order=1, title="T")
    assert node.has_position is False
    node.position_x = 10.0
    assert node.has_position is False
    node.position_y = 0.0
    assert node.has_position is True

    with pytest.raises(ValidationError):
        StoryNode(id="n2", layer_id="l1", node_order=1, title="T", duration=-1)


def test_layer_order_must_be_positive():
    with pytest.raises(ValidationError):
        Layer(id="l1", script_id="s1", layer_order=0, title="Act")
    layer = Layer(id="l1", script_id="s1", layer_order=1, title="Act")
    assert layer.is_collapsed is False
    assert layer.nodes == []


def test_create_script_params_rejects_blank_title():
    with pytest.raises(ValidationError):
        CreateScriptParams(title="   ")
