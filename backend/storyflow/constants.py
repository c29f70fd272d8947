"""画布布局、种子剧本与默认展示相关的常量。"""

from __future__ import annotations

SEED_LAYER_COUNT = 6
SEED_FAN_OUT = 2
SEED_BRANCH_LABELS = ("Choice A", "Choice B")

DEFAULT_BRANCH_LABEL = ""
DEFAULT_NODE_LABEL = "Untitled node"
DEFAULT_NODE_CONTENT = "No description"

# 水平方向：层沿 x 轴从左到右排列。
HORIZONTAL_LAYER_SPACING = 400.0
HORIZONTAL_NODE_SPACING = 120.0
HORIZONTAL_CROSS_ORIGIN = 100.0

# 垂直方向：层沿 y 轴从上到下排列。
VERTICAL_LAYER_SPACING = 200.0
VERTICAL_NODE_SPACING = 200.0
VERTICAL_CROSS_ORIGIN = 100.0

PRIMARY_EDGE_COLOR = "#1890ff"
SECONDARY_EDGE_COLOR = "#52c41a"

DEFAULT_TAG_COLOR = "#595959"
TAG_COLORS = {
    "科幻": "#1890ff",
    "悬疑": "#722ed1",
    "爱情": "#f5222d",
    "武侠": "#fa8c16",
    "恐怖": "#000000",
    "冒险": "#52c41a",
    "推理": "#eb2f96",
    "古装": "#13c2c2",
}

DEFAULT_USER_ID = "user-1"
