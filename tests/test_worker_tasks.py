import pytest
from sqlalchemy.ext.asyncio import create_async_engine

import worker.tasks as tasks


@pytest.fixture
def tracked_engines(monkeypatch):
    created = []

    def _create(url, **kwargs):
        engine = create_async_engine("sqlite+aiosqlite:///:memory:")
        created.append((engine, engine.sync_engine.pool))
        return engine

    monkeypatch.setattr(tasks, "create_async_engine", _create)
    return created


def _disposed(engine, pool_before) -> bool:
    # dispose() swaps in a fresh pool
    return engine.sync_engine.pool is not pool_before


@pytest.mark.asyncio
async def test_sweep_task_disposes_engine_when_sweep_raises(monkeypatch, tracked_engines):
    async def _boom(db, *, now):
        raise RuntimeError("db went away")

    monkeypatch.setattr(tasks, "sweep", _boom)

    with pytest.raises(RuntimeError):
        await tasks._sweep_expired_listings()

    [(engine, pool_before)] = tracked_engines
    assert _disposed(engine, pool_before)


@pytest.mark.asyncio
async def test_outbox_task_disposes_engine_when_dispatch_raises(monkeypatch, tracked_engines):
    async def _boom(db, *, outbox_id, lease_id):
        raise RuntimeError("handler crashed")

    monkeypatch.setattr(tasks, "process_claimed_event", _boom)

    with pytest.raises(RuntimeError):
        await tasks._process_outbox_event("obx_1", "lease_1")

    [(engine, pool_before)] = tracked_engines
    assert _disposed(engine, pool_before)
