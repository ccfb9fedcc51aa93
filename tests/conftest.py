"""
Shared fixtures and fakes for the dvector test suite.
"""

import asyncio
from typing import Dict, List, Optional, Sequence

import pytest

from dvector.core.blob_store import InMemoryBlobStore
from dvector.core.errors import StorageUnavailable
from dvector.core.generation import IGenerator
from dvector.core.registry import InMemoryRegistry
from dvector.vector.cache import SnapshotCache
from dvector.vector.embeddings import IEmbeddingProvider
from dvector.vector.index import VectorIndex
from dvector.vector.types import EntryMetadata, VectorEntry


class KeywordEmbedding(IEmbeddingProvider):
    """Bag-of-keywords embedding: one dimension per vocabulary word."""

    def __init__(self, vocabulary: Sequence[str] = ("alpha", "beta", "gamma", "delta")):
        self.vocabulary = [w.lower() for w in vocabulary]
        self.calls: List[str] = []

    @property
    def model_id(self) -> str:
        return f"keywords-{len(self.vocabulary)}"

    async def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        words = text.lower().split()
        return [float(words.count(w)) for w in self.vocabulary]

    def get_dimension(self) -> int:
        return len(self.vocabulary)


class FlakyBlobStore(InMemoryBlobStore):
    """In-memory store whose reads fail for chosen blob ids."""

    def __init__(self):
        super().__init__()
        self.failing_ids = set()
        self.errors: Dict[str, Exception] = {}
        self.fail_puts = False
        self.get_calls: List[str] = []

    async def put(self, data) -> str:
        if self.fail_puts:
            raise StorageUnavailable("blob store offline")
        return await super().put(data)

    async def get(self, blob_id: str) -> bytes:
        self.get_calls.append(blob_id)
        if blob_id in self.failing_ids:
            raise StorageUnavailable(f"read failed for {blob_id}")
        if blob_id in self.errors:
            raise self.errors[blob_id]
        return await super().get(blob_id)


class GatedBlobStore(FlakyBlobStore):
    """Reads block until the gate opens."""

    def __init__(self):
        super().__init__()
        self.gate = asyncio.Event()
        self.waiting = asyncio.Event()

    async def get(self, blob_id: str) -> bytes:
        self.waiting.set()
        await self.gate.wait()
        return await super().get(blob_id)


class RecordingGenerator(IGenerator):
    """Returns a fixed answer and remembers what it was asked."""

    def __init__(self, answer: str = "generated answer"):
        self.answer = answer
        self.calls: List[Dict[str, str]] = []

    async def generate(self, system_instruction: str, context: str, question: str) -> str:
        self.calls.append({"system_instruction": system_instruction, "context": context, "question": question})
        return self.answer


def make_entry(text: str, embedding, blob_id: str = "blob-1", filename: str = "doc.txt",
               chunk_index: int = 0, total_chunks: int = 1, extra: Optional[dict] = None) -> VectorEntry:
    return VectorEntry(
        text=text,
        embedding=embedding,
        metadata=EntryMetadata(
            blob_id=blob_id,
            filename=filename,
            chunk_index=chunk_index,
            total_chunks=total_chunks,
            extra=extra or {},
        ),
    )


@pytest.fixture
def embedder():
    return KeywordEmbedding()


@pytest.fixture
def blob_store():
    return FlakyBlobStore()


@pytest.fixture
def registry():
    return InMemoryRegistry(owner="tester")


@pytest.fixture
def index(embedder):
    return VectorIndex(embedding_model_id=embedder.model_id)


@pytest.fixture
def cache(tmp_path):
    return SnapshotCache(str(tmp_path / "vector-store" / "memory-store.json"))


@pytest.fixture
def generator():
    return RecordingGenerator()
