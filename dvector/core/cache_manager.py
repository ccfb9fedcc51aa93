"""
Cache manager - lifecycle of the vector cache: startup load, periodic sync, registry events, shutdown.

The heartbeat timer and the registry event feed are two sources feeding the same
single-flight sync_if_stale(), so they can never run two rebuilds at once.
"""

import asyncio
import time
from typing import Optional, Set

from dvector.util.logging import logger
from .errors import DVectorError, RegistryUnavailable, SyncError
from .heartbeat import Heartbeat
from .registry import IRegistry, RegistryEvent
from .sync import SyncEngine

SYNC_TASK_NAME = "registry_sync"


class CacheManager:

    def __init__(self, sync_engine: SyncEngine, registry: IRegistry, heartbeat: Optional[Heartbeat] = None,
                 sync_interval_sec: float = 300, auto_sync: bool = True):
        self.sync_engine = sync_engine
        self.registry = registry
        self.heartbeat = heartbeat or Heartbeat()
        self.sync_interval_sec = sync_interval_sec
        self.auto_sync = auto_sync

        self.is_initialized = False
        self.event_sync_active = False
        self._event_tasks: Set[asyncio.Task] = set()

    async def initialize(self) -> None:
        """Load the cache, catch up with the registry if reachable, and start background sync."""
        if self.is_initialized:
            logger.info("Cache manager already initialized")
            return

        await self.sync_engine.initialize()

        try:
            await self.sync_engine.sync_if_stale()
        except (RegistryUnavailable, SyncError) as e:
            # Serve the cached snapshot; the timer retries
            logger.warning(f"Initial sync failed, serving cached version {self.sync_engine.local_version}: {e}")

        stats = self.sync_engine.get_stats()
        logger.info(f"Vector store ready: {stats['total_vectors']} vectors (version {stats['version']})")

        self.heartbeat.register_task(SYNC_TASK_NAME, self.sync_interval_sec, self._background_sync)
        # The initial sync just ran
        self.heartbeat.tasks[SYNC_TASK_NAME]["last_run"] = time.monotonic()
        await self.heartbeat.start()

        if self.auto_sync:
            self.event_sync_active = self.registry.subscribe(self.notify_registry_write)
            if not self.event_sync_active:
                logger.info("Registry has no event feed, relying on periodic sync")

        self.is_initialized = True

    async def _background_sync(self) -> None:
        was_stale = await self.sync_engine.sync_if_stale()
        if was_stale:
            stats = self.sync_engine.get_stats()
            logger.info(f"Background sync completed: {stats['total_vectors']} vectors (version {stats['version']})")

    def notify_registry_write(self, event: RegistryEvent) -> None:
        """Registry event listener. Schedules a sync without blocking the writer."""
        task = asyncio.get_running_loop().create_task(self._event_sync(event))
        self._event_tasks.add(task)
        task.add_done_callback(self._event_tasks.discard)

    async def _event_sync(self, event: RegistryEvent) -> None:
        try:
            await self.sync_engine.sync_if_stale()
        except DVectorError as e:
            logger.warning(f"Event-triggered sync after {event.action} of {event.document_key} failed: {e}")

    async def force_sync(self) -> bool:
        """Rebuild from the registry regardless of version."""
        logger.info("Forcing cache sync...")
        synced = await self.sync_engine.force_sync()
        stats = self.sync_engine.get_stats()
        logger.info(f"Force sync complete: {stats['total_vectors']} vectors (version {stats['version']})")
        return synced

    async def shutdown(self) -> None:
        """Stop the timer, drop the event subscription and cancel pending event syncs."""
        await self.heartbeat.stop()
        self.heartbeat.unregister_task(SYNC_TASK_NAME)

        if self.event_sync_active:
            self.registry.unsubscribe(self.notify_registry_write)
            self.event_sync_active = False

        pending = list(self._event_tasks)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        self.is_initialized = False
        logger.info("Cache manager shutdown complete")

    def get_status(self) -> dict:
        return {
            "initialized": self.is_initialized,
            "stats": self.sync_engine.get_stats(),
            "heartbeat": self.heartbeat.get_status(),
            "config": {
                "sync_interval_sec": self.sync_interval_sec,
                "auto_sync_enabled": self.auto_sync,
                "event_sync_active": self.event_sync_active,
            },
        }
