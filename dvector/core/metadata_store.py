"""
Per-owner document metadata kept as JSON blobs in the blob store.
The only mutable piece is a key -> blob id lookup, so any backing store can hold it.
"""

import asyncio
import json
import time
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from typing import Dict, List, Optional

from .blob_store import IBlobStore
from .errors import StorageUnavailable
from dvector.util.logging import logger


class IKeyLookup(ABC):
    """Narrow key -> blob id lookup."""

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        pass

    @abstractmethod
    async def set(self, key: str, blob_id: str) -> None:
        pass


class InMemoryKeyLookup(IKeyLookup):

    def __init__(self):
        self._values: Dict[str, str] = {}

    async def get(self, key: str) -> Optional[str]:
        return self._values.get(key)

    async def set(self, key: str, blob_id: str) -> None:
        self._values[key] = blob_id


@dataclass
class DocumentMetadata:
    document_id: str
    filename: str
    file_type: str
    size: int
    blob_id: str
    chunk_count: int
    owner: str
    vectors_blob_id: str = ""
    uploaded_at: float = field(default_factory=time.time)
    last_accessed: float = field(default_factory=time.time)


@dataclass
class OwnerDocumentIndex:
    owner: str
    documents: List[DocumentMetadata] = field(default_factory=list)
    last_updated: float = field(default_factory=time.time)


class DocumentIndexStore:
    """
    Stores each owner's document list as an immutable JSON blob and remembers
    the latest blob id through the key lookup.
    """

    KEY_SUFFIX = "_docs"

    def __init__(self, blob_store: IBlobStore, lookup: IKeyLookup):
        self.blob_store = blob_store
        self.lookup = lookup
        self._lock = asyncio.Lock()

    def _key(self, owner: str) -> str:
        return f"{owner}{self.KEY_SUFFIX}"

    async def load_index(self, owner: str) -> OwnerDocumentIndex:
        """Load an owner's index. A missing or unreadable index loads as empty."""
        blob_id = await self.lookup.get(self._key(owner))
        if not blob_id:
            return OwnerDocumentIndex(owner=owner)

        try:
            data = json.loads(await self.blob_store.get_text(blob_id))
        except (StorageUnavailable, ValueError) as e:
            logger.warning(f"Failed to load document index for {owner}: {e}")
            return OwnerDocumentIndex(owner=owner)

        return OwnerDocumentIndex(
            owner=data["owner"],
            documents=[DocumentMetadata(**d) for d in data.get("documents", [])],
            last_updated=data.get("last_updated", time.time()),
        )

    async def save_index(self, index: OwnerDocumentIndex) -> str:
        index.last_updated = time.time()
        blob_id = await self.blob_store.put(json.dumps(asdict(index)))
        await self.lookup.set(self._key(index.owner), blob_id)
        return blob_id

    async def add_document(self, owner: str, metadata: DocumentMetadata) -> None:
        """Add or replace a document, newest first."""
        async with self._lock:
            index = await self.load_index(owner)
            index.documents = [d for d in index.documents if d.document_id != metadata.document_id]
            index.documents.insert(0, metadata)
            await self.save_index(index)

    async def get_document(self, owner: str, document_id: str) -> Optional[DocumentMetadata]:
        index = await self.load_index(owner)
        return next((d for d in index.documents if d.document_id == document_id), None)

    async def list_documents(self, owner: str) -> List[DocumentMetadata]:
        index = await self.load_index(owner)
        return sorted(index.documents, key=lambda d: d.uploaded_at, reverse=True)

    async def delete_document(self, owner: str, document_id: str) -> None:
        async with self._lock:
            index = await self.load_index(owner)
            index.documents = [d for d in index.documents if d.document_id != document_id]
            await self.save_index(index)
