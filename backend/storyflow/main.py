"""FastAPI 入口，暴露剧本目录与分支图编辑接口。"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any, List

from fastapi import Depends, FastAPI, HTTPException, Path, Query
from pydantic import BaseModel, Field

from storyflow.config import (
    AUTOSAVE_DEBOUNCE_MS,
    LOG_LEVEL,
    MEMORY_STORE_LATENCY_MS,
    require_store_mode,
    resolve_kuzu_db_path,
)
from storyflow.errors import PersistenceFailure
from storyflow.graph.layout import LayoutDirection, Position
from storyflow.graph.projection import FlowGraph, OutlineLayer
from storyflow.models import (
    Branch,
    BranchType,
    CreateScriptParams,
    Layer,
    Script,
    StoryNode,
    UpdateScriptParams,
)
from storyflow.session import ScriptEditSession, SessionRegistry
from storyflow.storage.graph import GraphStorage
from storyflow.storage.memory import MemoryGraphStore
from storyflow.storage.ports import ScriptStorePort

logger = logging.getLogger(__name__)

app = FastAPI(title="StoryFlow API", version="0.1.0")


@app.on_event("startup")
async def _validate_store_config() -> None:
    logging.basicConfig(
        level=LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    mode = require_store_mode()
    logger.info("storyflow api starting: store=%s", mode)


@app.on_event("shutdown")
async def _close_sessions() -> None:
    if get_session_registry.cache_info().currsize:
        await get_session_registry().close()


class TitlePayload(BaseModel):
    title: str = Field(..., min_length=1)


class TagsPayload(BaseModel):
    tags: List[str] = Field(default_factory=list)


class LayerPayload(BaseModel):
    title: str = Field(..., min_length=1)
    description: str | None = None


class NodePayload(BaseModel):
    title: str = Field(..., min_length=1)
    content: str = ""
    duration: int | None = Field(default=None, ge=0)


class NodeContentPayload(BaseModel):
    content: str
    title: str | None = None


class PositionPayload(BaseModel):
    x: float
    y: float


class ConnectPayload(BaseModel):
    from_node_id: str = Field(..., min_length=1)
    to_node_id: str = Field(..., min_length=1)
    label: str | None = None
    branch_type: BranchType = BranchType.DEFAULT


class LayoutPayload(BaseModel):
    direction: LayoutDirection | None = None


class LayoutResult(BaseModel):
    script_id: str
    direction: LayoutDirection
    positions: dict[str, Position] = Field(default_factory=dict)


class HighlightPayload(BaseModel):
    node_id: str = Field(..., min_length=1)


class HighlightView(BaseModel):
    script_id: str
    node_id: str | None = None
    node_ids: List[str] = Field(default_factory=list)


class DeleteResult(BaseModel):
    ok: bool
    removed: bool


@lru_cache(maxsize=1)
def get_graph_store() -> ScriptStorePort:
    """存储单例：按 STORYFLOW_STORE 选择 Kùzu 或内存实现，可在测试 override。"""
    mode = require_store_mode()
    if mode == "kuzu":
        return GraphStorage(db_path=resolve_kuzu_db_path())
    if mode == "memory":
        return MemoryGraphStore(latency_ms=MEMORY_STORE_LATENCY_MS)
    raise RuntimeError("unreachable")


@lru_cache(maxsize=1)
def get_session_registry() -> SessionRegistry:
    return SessionRegistry(get_graph_store(), debounce_ms=AUTOSAVE_DEBOUNCE_MS)


def get_script_store(
    registry: SessionRegistry = Depends(get_session_registry),
) -> ScriptStorePort:
    return registry.store


async def get_session(
    script_id: str = Path(..., min_length=1),
    registry: SessionRegistry = Depends(get_session_registry),
) -> ScriptEditSession:
    try:
        return await registry.open(script_id)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


# 剧本目录 -------------------------------------------------------------------


@app.get("/api/v1/scripts", response_model=List[Script])
async def list_scripts_endpoint(
    store: ScriptStorePort = Depends(get_script_store),
) -> List[Script]:
    return await store.list_scripts()


@app.post("/api/v1/scripts", response_model=Script)
async def create_script_endpoint(
    payload: CreateScriptParams,
    store: ScriptStorePort = Depends(get_script_store),
) -> Script:
    return await store.create_script(payload)


@app.get("/api/v1/scripts/{script_id}", response_model=Script)
async def get_script_endpoint(
    script_id: str,
    store: ScriptStorePort = Depends(get_script_store),
) -> Script:
    script = await store.get_script(script_id)
    if script is None:
        raise HTTPException(status_code=404, detail=f"Script not found: script_id={script_id}")
    return script


@app.patch("/api/v1/scripts/{script_id}", response_model=Script)
async def update_script_endpoint(
    script_id: str,
    payload: UpdateScriptParams,
    store: ScriptStorePort = Depends(get_script_store),
) -> Script:
    try:
        return await store.update_script(script_id, payload)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.delete("/api/v1/scripts/{script_id}")
async def delete_script_endpoint(
    script_id: str,
    store: ScriptStorePort = Depends(get_script_store),
) -> dict[str, Any]:
    try:
        await store.delete_script(script_id)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {"ok": True, "script_id": script_id}


@app.put("/api/v1/scripts/{script_id}/title", response_model=Script)
async def rename_script_endpoint(
    script_id: str,
    payload: TitlePayload,
    store: ScriptStorePort = Depends(get_script_store),
) -> Script:
    try:
        return await store.rename_script(script_id, payload.title)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.put("/api/v1/scripts/{script_id}/tags", response_model=Script)
async def update_script_tags_endpoint(
    script_id: str,
    payload: TagsPayload,
    store: ScriptStorePort = Depends(get_script_store),
) -> Script:
    try:
        return await store.update_script_tags(script_id, payload.tags)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


# 分支图 ---------------------------------------------------------------------


@app.get("/api/v1/scripts/{script_id}/graph", response_model=FlowGraph)
async def get_graph_endpoint(
    respect_stored: bool = Query(True),
    session: ScriptEditSession = Depends(get_session),
) -> FlowGraph:
    try:
        return session.render(respect_stored=respect_stored)
    except RuntimeError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc


@app.post("/api/v1/scripts/{script_id}/graph/reload", response_model=FlowGraph)
async def reload_graph_endpoint(
    script_id: str,
    registry: SessionRegistry = Depends(get_session_registry),
) -> FlowGraph:
    try:
        session = await registry.reload(script_id)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return session.render()


@app.get("/api/v1/scripts/{script_id}/outline", response_model=List[OutlineLayer])
async def get_outline_endpoint(
    session: ScriptEditSession = Depends(get_session),
) -> List[OutlineLayer]:
    return session.outline()


@app.post("/api/v1/scripts/{script_id}/layers", response_model=Layer)
async def add_layer_endpoint(
    payload: LayerPayload,
    session: ScriptEditSession = Depends(get_session),
) -> Layer:
    return session.add_layer(payload.title, payload.description)


@app.post("/api/v1/scripts/{script_id}/layers/{layer_id}/nodes", response_model=StoryNode)
async def add_node_endpoint(
    payload: NodePayload,
    layer_id: str = Path(..., min_length=1),
    session: ScriptEditSession = Depends(get_session),
) -> StoryNode:
    try:
        return session.add_node(layer_id, payload.title, payload.content, payload.duration)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.get("/api/v1/scripts/{script_id}/nodes/{node_id}", response_model=StoryNode)
async def get_node_endpoint(
    node_id: str = Path(..., min_length=1),
    session: ScriptEditSession = Depends(get_session),
) -> StoryNode:
    try:
        return session.on_node_double_click(node_id)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@app.patch("/api/v1/scripts/{script_id}/nodes/{node_id}", response_model=StoryNode)
async def update_node_content_endpoint(
    payload: NodeContentPayload,
    node_id: str = Path(..., min_length=1),
    session: ScriptEditSession = Depends(get_session),
) -> StoryNode:
    try:
        return await session.update_node_content(node_id, payload.content, payload.title)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except PersistenceFailure as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc


@app.delete("/api/v1/scripts/{script_id}/nodes/{node_id}", response_model=DeleteResult)
async def delete_node_endpoint(
    node_id: str = Path(..., min_length=1),
    session: ScriptEditSession = Depends(get_session),
) -> DeleteResult:
    removed = session.delete_node(node_id)
    return DeleteResult(ok=True, removed=removed)


@app.put("/api/v1/scripts/{script_id}/nodes/{node_id}/position", response_model=StoryNode)
async def move_node_endpoint(
    payload: PositionPayload,
    node_id: str = Path(..., min_length=1),
    session: ScriptEditSession = Depends(get_session),
) -> StoryNode:
    try:
        return session.on_node_move(node_id, payload.x, payload.y)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@app.post("/api/v1/scripts/{script_id}/branches", response_model=Branch)
async def connect_endpoint(
    payload: ConnectPayload,
    session: ScriptEditSession = Depends(get_session),
) -> Branch:
    try:
        return session.on_connect(
            payload.from_node_id,
            payload.to_node_id,
            label=payload.label,
            branch_type=payload.branch_type,
        )
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.delete("/api/v1/scripts/{script_id}/branches/{branch_id}", response_model=DeleteResult)
async def delete_branch_endpoint(
    branch_id: str = Path(..., min_length=1),
    session: ScriptEditSession = Depends(get_session),
) -> DeleteResult:
    removed = session.on_edge_delete(branch_id)
    return DeleteResult(ok=True, removed=removed)


@app.post("/api/v1/scripts/{script_id}/layout", response_model=LayoutResult)
async def auto_arrange_endpoint(
    payload: LayoutPayload,
    session: ScriptEditSession = Depends(get_session),
) -> LayoutResult:
    positions = session.auto_arrange(payload.direction)
    return LayoutResult(
        script_id=session.script_id,
        direction=session.direction,
        positions=positions,
    )


@app.post("/api/v1/scripts/{script_id}/highlight", response_model=HighlightView)
async def highlight_endpoint(
    payload: HighlightPayload,
    session: ScriptEditSession = Depends(get_session),
) -> HighlightView:
    try:
        node_ids = session.on_node_click(payload.node_id)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return HighlightView(
        script_id=session.script_id,
        node_id=payload.node_id,
        node_ids=sorted(node_ids),
    )


@app.delete("/api/v1/scripts/{script_id}/highlight", response_model=HighlightView)
async def clear_highlight_endpoint(
    session: ScriptEditSession = Depends(get_session),
) -> HighlightView:
    session.clear_highlight()
    return HighlightView(script_id=session.script_id)


@app.post("/api/v1/scripts/{script_id}/save")
async def save_endpoint(
    session: ScriptEditSession = Depends(get_session),
) -> dict[str, Any]:
    try:
        await session.save()
    except PersistenceFailure as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    return {"ok": True, "script_id": session.script_id, "counts": session.graph.counts()}
