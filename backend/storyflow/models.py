"""剧本、层、节点与分支的领域模型定义。"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, Field, field_validator

from storyflow.constants import DEFAULT_BRANCH_LABEL, DEFAULT_TAG_COLOR, TAG_COLORS


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def tag_color(tag_name: str) -> str:
    return TAG_COLORS.get(tag_name, DEFAULT_TAG_COLOR)


class ScriptStatus(str, Enum):
    DRAFT = "draft"
    EDITING = "editing"
    COMPLETED = "completed"
    ARCHIVED = "archived"


class BranchType(str, Enum):
    CHOICE = "choice"
    DEFAULT = "default"


class ScriptTag(BaseModel):
    id: str
    script_id: str
    tag_name: str = Field(..., min_length=1)
    color: Optional[str] = None
    created_at: str = Field(default_factory=utc_now)


class Script(BaseModel):
    """剧本元数据；层与节点图另行按 script_id 存取。"""

    id: str
    user_id: str
    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    outline: Optional[str] = None
    world_setting: Optional[dict[str, Any]] = None
    status: ScriptStatus = ScriptStatus.DRAFT
    is_auto_generated: bool = False
    created_at: str = Field(default_factory=utc_now)
    updated_at: str = Field(default_factory=utc_now)
    deleted_at: Optional[str] = None
    tags: List[ScriptTag] = Field(default_factory=list)


class CreateScriptParams(BaseModel):
    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    outline: Optional[str] = None
    tags: Optional[List[str]] = None

    @field_validator("title")
    @classmethod
    def ensure_title_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("title must not be blank")
        return value


class UpdateScriptParams(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    outline: Optional[str] = None
    tags: Optional[List[str]] = None


class Branch(BaseModel):
    """有向分支，归属于 from_node_id 对应的节点。"""

    id: str
    from_node_id: str = Field(..., min_length=1)
    to_node_id: str = Field(..., min_length=1)
    branch_label: str = DEFAULT_BRANCH_LABEL
    branch_type: BranchType = BranchType.DEFAULT
    branch_order: int = Field(..., ge=1)
    created_at: str = Field(default_factory=utc_now)


class NodeMetadata(BaseModel):
    camera_type: Optional[str] = None
    characters: set[str] = Field(default_factory=set)
    scene: Optional[str] = None


class StoryNode(BaseModel):
    """故事节拍节点，面向画布渲染。"""

    id: str
    layer_id: str
    node_order: int = Field(..., ge=1)
    title: str
    content: str = ""
    duration: Optional[int] = Field(default=None, ge=0)
    position_x: Optional[float] = None
    position_y: Optional[float] = None
    metadata: NodeMetadata = Field(default_factory=NodeMetadata)
    branches: List[Branch] = Field(default_factory=list)
    created_at: str = Field(default_factory=utc_now)
    updated_at: str = Field(default_factory=utc_now)

    @property
    def has_position(self) -> bool:
        return self.position_x is not None and self.position_y is not None


class Layer(BaseModel):
    """层（幕）：按 layer_order 排序的一组节点。"""

    id: str
    script_id: str
    layer_order: int = Field(..., ge=1)
    title: str
    description: Optional[str] = None
    is_collapsed: bool = False
    created_at: str = Field(default_factory=utc_now)
    updated_at: str = Field(default_factory=utc_now)
    nodes: List[StoryNode] = Field(default_factory=list)
