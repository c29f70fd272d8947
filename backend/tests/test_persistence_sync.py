import logging
from unittest.mock import AsyncMock

import pytest

from storyflow.errors import PersistenceFailure
from storyflow.graph.model import GraphRef, graph_from_layers
from storyflow.graph.seed import generate_seed_layers
from storyflow.sync.persistence import PersistenceSync
from storyflow.sync.scheduler import DebounceScheduler, VirtualClock


def _sync(store) -> tuple[PersistenceSync, GraphRef, VirtualClock]:
    clock = VirtualClock()
    ref = GraphRef(graph_from_layers("s1", generate_seed_layers("s1", 2)))
    sync = PersistenceSync(
        script_id="s1",
        store=store,
        graph_ref=ref,
        scheduler=DebounceScheduler(clock),
        debounce_ms=2000,
    )
    return sync, ref, clock


@pytest.mark.asyncio
async def test_burst_of_changes_coalesces_into_one_write():
    store = AsyncMock()
    sync, ref, clock = _sync(store)

    sync.notify_changed()
    clock.advance(500)
    sync.notify_changed()
    clock.advance(1000)
    sync.notify_changed()
    clock.advance(1999)
    await sync.drain()
    store.save_graph.assert_not_awaited()

    clock.advance(1)
    await sync.drain()
    store.save_graph.assert_awaited_once()
    script_id, layers = store.save_graph.await_args.args
    assert script_id == "s1"
    assert [layer.id for layer in layers] == ["layer-1", "layer-2"]


@pytest.mark.asyncio
async def test_flush_writes_graph_state_at_fire_time():
    store = AsyncMock()
    sync, ref, clock = _sync(store)

    sync.notify_changed()
    ref.current.find_node("node-2").title = "Edited after notify"
    clock.advance(2000)
    await sync.drain()

    _, layers = store.save_graph.await_args.args
    assert layers[1].nodes[0].title == "Edited after notify"
    # 写出的是快照，之后的编辑不影响已写出的数据
    ref.current.find_node("node-2").title = "Later"
    assert layers[1].nodes[0].title == "Edited after notify"


@pytest.mark.asyncio
async def test_auto_flush_failure_is_logged_not_raised(caplog):
    store = AsyncMock()
    store.save_graph.side_effect = RuntimeError("backend down")
    sync, ref, clock = _sync(store)

    with caplog.at_level(logging.ERROR, logger="storyflow.sync.persistence"):
        sync.notify_changed()
        clock.advance(2000)
        await sync.drain()

    assert "auto-save failed" in caplog.text
    assert ref.current.counts()["nodes"] == 3


@pytest.mark.asyncio
async def test_manual_save_cancels_pending_flush():
    store = AsyncMock()
    sync, ref, clock = _sync(store)

    sync.notify_changed()
    await sync.save_now()
    assert sync.pending is False
    clock.advance(5000)
    await sync.drain()
    store.save_graph.assert_awaited_once()


@pytest.mark.asyncio
async def test_manual_save_failure_raises_persistence_failure():
    store = AsyncMock()
    store.save_graph.side_effect = ConnectionError("timeout")
    sync, ref, clock = _sync(store)

    with pytest.raises(PersistenceFailure) as excinfo:
        await sync.save_now()
    assert excinfo.value.script_id == "s1"
    assert isinstance(excinfo.value.cause, ConnectionError)
    assert ref.current.counts()["layers"] == 2


@pytest.mark.asyncio
async def test_close_flushes_pending_change_once():
    store = AsyncMock()
    sync, ref, clock = _sync(store)
    sync.notify_changed()
    ref.current.find_node("node-2").title = "Dragged before shutdown"
    await sync.close()

    store.save_graph.assert_awaited_once()
    _, layers = store.save_graph.await_args.args
    assert layers[1].nodes[0].title == "Dragged before shutdown"
    assert sync.pending is False
    clock.advance(5000)
    await sync.drain()
    store.save_graph.assert_awaited_once()


@pytest.mark.asyncio
async def test_close_without_pending_change_does_not_write():
    store = AsyncMock()
    sync, ref, clock = _sync(store)
    await sync.close()
    store.save_graph.assert_not_awaited()


def test_debounce_must_be_positive():
    with pytest.raises(ValueError):
        PersistenceSync(
            script_id="s1",
            store=AsyncMock(),
            graph_ref=GraphRef(),
            scheduler=DebounceScheduler(VirtualClock()),
            debounce_ms=0,
        )
