"""
Cache manager - startup load, periodic sync, registry events and shutdown.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import make_entry
from dvector.core.cache_manager import SYNC_TASK_NAME, CacheManager
from dvector.core.errors import SyncError
from dvector.core.heartbeat import Heartbeat
from dvector.core.registry import IRegistry, RegistryRecord
from dvector.core.sync import SyncEngine
from dvector.vector.serialization import serialize_entries

MODEL_ID = "keywords-4"


async def register(registry, blob_store, key, vector):
    entries = [make_entry(key, vector, blob_id=f"doc-{key}", filename=key)]
    blob_id = await blob_store.put(serialize_entries(entries, MODEL_ID, len(vector)))
    await registry.add_document(RegistryRecord(key, blob_id, f"doc-{key}", 1))


@pytest.fixture
def engine(index, registry, blob_store, cache):
    return SyncEngine(index, registry, blob_store, cache, embedding_model_id=MODEL_ID)


@pytest.fixture
def manager(engine, registry):
    return CacheManager(engine, registry, heartbeat=Heartbeat(tick_sec=0.01), sync_interval_sec=60)


@pytest.mark.asyncio
async def test_initialize_catches_up_and_starts_timer(manager, registry, blob_store, index):
    await register(registry, blob_store, "a.txt", [1.0, 0.0, 0.0, 0.0])

    await manager.initialize()
    try:
        assert index.size() == 1
        assert index.version == 1
        assert manager.heartbeat.running
        assert SYNC_TASK_NAME in manager.heartbeat.list_tasks()
        assert manager.event_sync_active is True
    finally:
        await manager.shutdown()


@pytest.mark.asyncio
async def test_initialize_is_idempotent(manager):
    await manager.initialize()
    try:
        await manager.initialize()
        assert manager.heartbeat.list_tasks() == [SYNC_TASK_NAME]
    finally:
        await manager.shutdown()


@pytest.mark.asyncio
async def test_registry_write_event_triggers_sync(manager, registry, blob_store, index):
    await manager.initialize()
    try:
        await register(registry, blob_store, "a.txt", [1.0, 0.0, 0.0, 0.0])
        await asyncio.sleep(0.05)

        assert index.version == 1
        assert index.size() == 1
    finally:
        await manager.shutdown()


@pytest.mark.asyncio
async def test_auto_sync_disabled_skips_event_feed(engine, registry, blob_store, index):
    manager = CacheManager(engine, registry, heartbeat=Heartbeat(tick_sec=0.01), sync_interval_sec=60,
                           auto_sync=False)
    await manager.initialize()
    try:
        await register(registry, blob_store, "a.txt", [1.0, 0.0, 0.0, 0.0])
        await asyncio.sleep(0.05)

        assert manager.event_sync_active is False
        assert index.version == 0
    finally:
        await manager.shutdown()


@pytest.mark.asyncio
async def test_initialize_tolerates_unreachable_registry(index, blob_store, cache):
    registry = MagicMock(spec=IRegistry)
    registry.get_stats = AsyncMock(side_effect=ConnectionError("registry offline"))
    registry.subscribe.return_value = False
    engine = SyncEngine(index, registry, blob_store, cache, embedding_model_id=MODEL_ID)
    manager = CacheManager(engine, registry, heartbeat=Heartbeat(tick_sec=0.01), sync_interval_sec=60)

    await manager.initialize()
    try:
        assert manager.is_initialized
        assert manager.event_sync_active is False
        assert index.version == 0
    finally:
        await manager.shutdown()


@pytest.mark.asyncio
async def test_background_sync_runs_sync_if_stale(manager, registry, blob_store, index):
    await register(registry, blob_store, "a.txt", [1.0, 0.0, 0.0, 0.0])
    await manager.sync_engine.initialize()

    await manager._background_sync()

    assert index.version == 1


@pytest.mark.asyncio
async def test_failed_event_sync_is_logged_not_raised(manager):
    manager.sync_engine.sync_if_stale = AsyncMock(side_effect=SyncError("blob fetch failed"))

    await manager._event_sync(MagicMock(action="added", document_key="a.txt"))

    manager.sync_engine.sync_if_stale.assert_awaited_once()


@pytest.mark.asyncio
async def test_force_sync(manager, registry, blob_store, index):
    await register(registry, blob_store, "a.txt", [1.0, 0.0, 0.0, 0.0])
    await manager.sync_engine.initialize()
    await manager.sync_engine.sync_if_stale()
    index.clear()

    assert await manager.force_sync() is True
    assert index.size() == 1


@pytest.mark.asyncio
async def test_shutdown_stops_timer_and_unsubscribes(manager, registry, blob_store, index):
    await manager.initialize()
    await manager.shutdown()

    assert not manager.heartbeat.running
    assert manager.heartbeat.list_tasks() == []
    assert manager.is_initialized is False

    await register(registry, blob_store, "a.txt", [1.0, 0.0, 0.0, 0.0])
    await asyncio.sleep(0.02)
    assert index.version == 0


@pytest.mark.asyncio
async def test_get_status(manager):
    await manager.initialize()
    try:
        status = manager.get_status()
    finally:
        await manager.shutdown()

    assert status["initialized"] is True
    assert status["stats"]["state"] == "ready"
    assert status["heartbeat"]["status"] == "running"
    assert status["config"] == {"sync_interval_sec": 60, "auto_sync_enabled": True, "event_sync_active": True}
