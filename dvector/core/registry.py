"""
Versioned document registry - the canonical record of which documents exist and where their blobs live.
Every write bumps a global, monotonic version; the sync engine compares only that version.
"""

import asyncio
import dataclasses
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional


@dataclass(frozen=True)
class RegistryRecord:
    document_key: str
    vector_blob_id: str
    document_blob_id: str
    chunk_count: int
    version: int = 0
    owner: str = ""

    def __post_init__(self):
        if not self.document_key:
            raise ValueError("document_key cannot be empty")
        if self.chunk_count <= 0:
            raise ValueError(f"chunk_count must be > 0: {self.chunk_count}")


@dataclass(frozen=True)
class RegistryStats:
    total_documents: int
    version: int
    owner: str


@dataclass(frozen=True)
class RegistryEvent:
    """Write notification delivered to subscribers."""
    action: str  # added|removed
    document_key: str
    version: int


RegistryListener = Callable[[RegistryEvent], None]


class IRegistry(ABC):
    """Abstract read/write interface to the registry."""

    @abstractmethod
    async def get_stats(self) -> RegistryStats:
        pass

    @abstractmethod
    async def get_document(self, document_key: str) -> Optional[RegistryRecord]:
        pass

    @abstractmethod
    async def list_documents(self) -> List[RegistryRecord]:
        """All current records, in registration order."""
        pass

    @abstractmethod
    async def add_document(self, record: RegistryRecord) -> None:
        """Register or supersede a record. Bumps the version."""
        pass

    @abstractmethod
    async def remove_document(self, document_key: str) -> None:
        """Remove a record. Bumps the version."""
        pass

    def subscribe(self, listener: RegistryListener) -> bool:
        """Register a write listener. Returns False when the registry has no event feed."""
        return False

    def unsubscribe(self, listener: RegistryListener) -> None:
        pass


class InMemoryRegistry(IRegistry):
    """Process-local registry with a monotonic version counter and a write event feed."""

    def __init__(self, owner: str = "local", version: int = 0):
        self.owner = owner
        self._version = version
        self._records: Dict[str, RegistryRecord] = {}
        self._listeners: List[RegistryListener] = []
        self._lock = asyncio.Lock()

    async def get_stats(self) -> RegistryStats:
        return RegistryStats(total_documents=len(self._records), version=self._version, owner=self.owner)

    async def get_document(self, document_key: str) -> Optional[RegistryRecord]:
        return self._records.get(document_key)

    async def list_documents(self) -> List[RegistryRecord]:
        return list(self._records.values())

    async def add_document(self, record: RegistryRecord) -> None:
        async with self._lock:
            self._version += 1
            stored = dataclasses.replace(record, version=self._version, owner=record.owner or self.owner)
            # A re-ingested document supersedes the old record
            self._records.pop(record.document_key, None)
            self._records[record.document_key] = stored
            event = RegistryEvent("added", record.document_key, self._version)
        self._notify(event)

    async def remove_document(self, document_key: str) -> None:
        async with self._lock:
            if document_key not in self._records:
                raise KeyError(f"Document not registered: {document_key}")
            del self._records[document_key]
            self._version += 1
            event = RegistryEvent("removed", document_key, self._version)
        self._notify(event)

    def subscribe(self, listener: RegistryListener) -> bool:
        if listener not in self._listeners:
            self._listeners.append(listener)
        return True

    def unsubscribe(self, listener: RegistryListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self, event: RegistryEvent) -> None:
        for listener in list(self._listeners):
            listener(event)
