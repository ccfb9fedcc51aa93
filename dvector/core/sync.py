"""
Sync engine - keeps the local vector index aligned with the registry's version.

The registry's global version is the only clock. When it is ahead of the local
snapshot, the whole index is rebuilt from the vector blobs of every registered
document, built off to the side and swapped in one step. A failed rebuild leaves
the previous snapshot authoritative.
"""

import asyncio
import time
from enum import Enum
from typing import List, Optional

from dvector.util.logging import logger
from dvector.vector.cache import SnapshotCache
from dvector.vector.index import VectorIndex
from dvector.vector.serialization import deserialize_entries
from dvector.vector.types import VectorEntry, VectorIndexSnapshot
from .blob_store import IBlobStore
from .errors import (
    CorruptSnapshot,
    DimensionMismatch,
    DVectorError,
    RegistryUnavailable,
    StorageUnavailable,
    SyncError,
)
from .registry import IRegistry, RegistryRecord, RegistryStats


class SyncState(Enum):
    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    READY = "ready"
    STALE = "stale"
    RESYNCING = "resyncing"


class SyncEngine:
    """
    Reconciles a VectorIndex with the registry.

    sync_if_stale() is single-flight: while a resync runs, further callers
    (timer ticks, registry events, explicit requests) wait for it and share its
    result instead of starting another.
    """

    def __init__(self, index: VectorIndex, registry: IRegistry, blob_store: IBlobStore,
                 cache: SnapshotCache, embedding_model_id: str = ""):
        self.index = index
        self.registry = registry
        self.blob_store = blob_store
        self.cache = cache
        self.embedding_model_id = embedding_model_id or index.embedding_model_id

        self.state = SyncState.UNINITIALIZED
        self.last_sync_at: Optional[float] = None
        self.last_error: Optional[str] = None
        self._force_resync = False
        self._inflight: Optional[asyncio.Task] = None

    @property
    def local_version(self) -> int:
        return self.index.version

    def is_initialized(self) -> bool:
        return self.state not in (SyncState.UNINITIALIZED, SyncState.LOADING)

    async def initialize(self) -> None:
        """
        Load the durable snapshot, or bootstrap an empty one at version 0.

        A corrupt cache file is discarded and the engine starts maximally stale,
        so the next sync rebuilds from the registry whatever the versions say.
        """
        self.state = SyncState.LOADING

        try:
            snapshot = self.cache.load()
        except CorruptSnapshot as e:
            logger.log_sync("load", "corrupt", details={"path": str(self.cache.path), "error": str(e)[:100]})
            self.cache.delete()
            snapshot = None
            self._force_resync = True

        if snapshot is None:
            snapshot = VectorIndexSnapshot(version=0, embedding_model_id=self.embedding_model_id)
            self.cache.save(snapshot)
            logger.log_sync("bootstrap", local_version=0, details={"path": str(self.cache.path)})
        else:
            logger.log_sync("load", local_version=snapshot.version, details={"total_vectors": len(snapshot)})

        self.index.replace(snapshot)
        self.state = SyncState.STALE if self._force_resync else SyncState.READY

    async def _registry_stats(self) -> RegistryStats:
        try:
            return await self.registry.get_stats()
        except DVectorError:
            raise
        except Exception as e:
            raise RegistryUnavailable(f"Registry stats unavailable: {e}") from e

    async def _registry_records(self) -> List[RegistryRecord]:
        try:
            return await self.registry.list_documents()
        except DVectorError:
            raise
        except Exception as e:
            raise RegistryUnavailable(f"Registry document list unavailable: {e}") from e

    async def _fetch_vectors(self, record: RegistryRecord) -> bytes:
        try:
            return await self.blob_store.get(record.vector_blob_id)
        except DVectorError:
            raise
        except Exception as e:
            raise StorageUnavailable(
                f"Vector blob {record.vector_blob_id} for {record.document_key} unavailable: {e}"
            ) from e

    async def is_stale(self) -> bool:
        """True iff the registry version is ahead of the local version (or a rebuild is forced)."""
        stats = await self._registry_stats()
        stale = self._force_resync or stats.version > self.local_version
        if stale and self.state == SyncState.READY:
            self.state = SyncState.STALE
        return stale

    async def sync_if_stale(self, timeout: Optional[float] = None) -> bool:
        """
        Rebuild the index if the registry is ahead.

        Args:
            timeout: Seconds to wait. On timeout a resync started by this call is
                cancelled before anything is swapped, and asyncio.TimeoutError is raised.

        Returns:
            True if a resync was performed, False if the cache was current

        Raises:
            RegistryUnavailable: registry unreachable; the current snapshot keeps serving
            SyncError: a vector blob could not be fetched or parsed; nothing was swapped
        """
        task = self._inflight
        owner = task is None or task.done()
        if owner:
            task = asyncio.create_task(self._resync_if_stale())
            self._inflight = task

        try:
            return await asyncio.wait_for(asyncio.shield(task), timeout)
        except asyncio.TimeoutError:
            if owner:
                task.cancel()
                logger.log_sync("resync", "aborted", local_version=self.local_version,
                                details={"reason": f"timeout after {timeout}s"})
            raise
        except asyncio.CancelledError:
            if task.cancelled():
                raise SyncError("Resync was cancelled") from None
            raise

    async def force_sync(self, timeout: Optional[float] = None) -> bool:
        """Rebuild from the registry even if the versions agree."""
        self._force_resync = True
        return await self.sync_if_stale(timeout=timeout)

    async def _resync_if_stale(self) -> bool:
        try:
            stats = await self._registry_stats()
        except RegistryUnavailable as e:
            self.last_error = str(e)
            logger.log_sync("check", "failed", local_version=self.local_version, details={"error": str(e)[:100]})
            raise

        if not self._force_resync and stats.version <= self.local_version:
            self.state = SyncState.READY
            return False

        previous_version = self.local_version
        self.state = SyncState.RESYNCING
        logger.log_sync("resync", "started", local_version=previous_version, registry_version=stats.version)
        start_time = time.monotonic()

        try:
            snapshot = await self._build_snapshot(stats.version)
            # Persist and swap with no suspension point in between
            self.cache.save(snapshot)
            self.index.replace(snapshot)
        except asyncio.CancelledError:
            self.state = SyncState.STALE
            raise
        except RegistryUnavailable as e:
            self._abort(e, previous_version, stats.version)
            raise
        except (StorageUnavailable, CorruptSnapshot, DimensionMismatch, OSError) as e:
            self._abort(e, previous_version, stats.version)
            raise SyncError(f"Resync to version {stats.version} aborted: {e}") from e
        except Exception as e:
            self._abort(e, previous_version, stats.version)
            raise

        self._force_resync = False
        self.state = SyncState.READY
        self.last_sync_at = time.time()
        self.last_error = None
        logger.log_sync("resync", "success", local_version=snapshot.version, registry_version=stats.version,
                        details={"total_vectors": len(snapshot),
                                 "duration_ms": round((time.monotonic() - start_time) * 1000, 2)})
        return True

    def _abort(self, error: Exception, local_version: int, registry_version: int) -> None:
        self.state = SyncState.STALE
        self.last_error = str(error)
        logger.log_sync("resync", "aborted", local_version=local_version, registry_version=registry_version,
                        details={"error": str(error)[:100]})

    async def _build_snapshot(self, version: int) -> VectorIndexSnapshot:
        """Fetch every registered vector blob and assemble a complete snapshot."""
        records = await self._registry_records()

        # Any failed fetch fails the whole gather; the rest are cancelled
        fetches = [asyncio.ensure_future(self._fetch_vectors(r)) for r in records]
        try:
            payloads = await asyncio.gather(*fetches)
        finally:
            for fetch in fetches:
                if not fetch.done():
                    fetch.cancel()

        entries: List[VectorEntry] = []
        dimension = 0
        for record, payload in zip(records, payloads):
            blob_entries, blob_dimension, blob_model = deserialize_entries(payload)

            if self.embedding_model_id and blob_model and blob_model != self.embedding_model_id:
                raise CorruptSnapshot(
                    f"Document {record.document_key} was embedded with {blob_model}, "
                    f"expected {self.embedding_model_id}"
                )
            if not blob_entries:
                continue
            if dimension and blob_dimension != dimension:
                raise DimensionMismatch(dimension, blob_dimension)

            dimension = blob_dimension
            entries.extend(blob_entries)

        return VectorIndexSnapshot(
            version=version,
            entries=tuple(entries),
            dimension=dimension,
            embedding_model_id=self.embedding_model_id,
        )

    def get_stats(self) -> dict:
        return {
            "state": self.state.value,
            "version": self.local_version,
            "total_vectors": self.index.size(),
            "dimension": self.index.dimension,
            "last_sync_at": self.last_sync_at,
            "last_error": self.last_error,
        }
