"""剧本目录的纯函数：新建、标签物化与局部更新，供各存储实现共用。"""

from __future__ import annotations

from typing import List, Sequence
from uuid import uuid4

from storyflow.constants import DEFAULT_USER_ID
from storyflow.models import (
    CreateScriptParams,
    Script,
    ScriptStatus,
    ScriptTag,
    UpdateScriptParams,
    tag_color,
    utc_now,
)


def materialize_tags(script_id: str, tag_names: Sequence[str]) -> List[ScriptTag]:
    now = utc_now()
    return [
        ScriptTag(
            id=f"tag-{uuid4()}",
            script_id=script_id,
            tag_name=name,
            color=tag_color(name),
            created_at=now,
        )
        for name in tag_names
    ]


def new_script(params: CreateScriptParams, *, user_id: str = DEFAULT_USER_ID) -> Script:
    script_id = str(uuid4())
    now = utc_now()
    return Script(
        id=script_id,
        user_id=user_id,
        title=params.title,
        description=params.description,
        outline=params.outline,
        status=ScriptStatus.DRAFT,
        is_auto_generated=False,
        created_at=now,
        updated_at=now,
        tags=materialize_tags(script_id, params.tags or []),
    )


def apply_script_update(script: Script, params: UpdateScriptParams) -> Script:
    """只覆盖显式给出的字段；tags 未给出时保留原标签。"""
    changes = params.model_dump(exclude_unset=True, exclude={"tags"})
    if changes.get("title", "") is None:
        raise ValueError("title must not be null")
    updated = script.model_copy(update={**changes, "updated_at": utc_now()})
    if params.tags is not None:
        updated.tags = materialize_tags(script.id, params.tags)
    return updated
