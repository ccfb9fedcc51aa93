"""
Vector cache overlay - local, advisory copy of the registry's canonical document set.
Brute-force cosine index over an immutable snapshot that is swapped, never patched.
"""

import dataclasses
import threading
from abc import ABC, abstractmethod
from typing import Callable, List, Mapping, Optional, Sequence, Union

import numpy as np

from dvector.core.errors import DimensionMismatch
from .serialization import deserialize_snapshot, serialize_snapshot
from .types import EntryMetadata, SearchHit, VectorEntry, VectorIndexSnapshot

MetadataFilter = Union[Callable[[EntryMetadata], bool], Mapping[str, object]]


class IVectorIndex(ABC):
    """Abstract interface for vector index operations."""

    @abstractmethod
    def add(self, entries: Sequence[VectorEntry]) -> None:
        """Append entries to the index."""
        pass

    @abstractmethod
    def search(self, query_embedding, k: int, filter: Optional[MetadataFilter] = None) -> List[SearchHit]:
        """Return the top k entries by descending similarity."""
        pass

    @abstractmethod
    def size(self) -> int:
        """Number of entries held."""
        pass


def _as_predicate(filter: Optional[MetadataFilter]) -> Optional[Callable[[EntryMetadata], bool]]:
    if filter is None:
        return None
    if callable(filter):
        return filter
    return lambda metadata: metadata.matches(filter)


class VectorIndex(IVectorIndex):
    """
    In-memory index using cosine similarity.

    Readers take the current snapshot reference once and work on it, so they never
    observe a half-built index. Writers build a new snapshot and swap the reference
    under the write lock.
    """

    def __init__(self, embedding_model_id: str = "", snapshot: Optional[VectorIndexSnapshot] = None):
        self._write_lock = threading.Lock()
        if snapshot is None:
            snapshot = VectorIndexSnapshot(embedding_model_id=embedding_model_id)
        self._snapshot = snapshot

    @property
    def snapshot(self) -> VectorIndexSnapshot:
        return self._snapshot

    @property
    def version(self) -> int:
        return self._snapshot.version

    @property
    def dimension(self) -> int:
        return self._snapshot.dimension

    @property
    def embedding_model_id(self) -> str:
        return self._snapshot.embedding_model_id

    def size(self) -> int:
        return len(self._snapshot.entries)

    def add(self, entries: Sequence[VectorEntry]) -> None:
        """
        Append entries, validating every embedding before anything changes.

        The first insert into an empty index fixes the dimension.

        Raises:
            DimensionMismatch: if any entry's embedding length differs from the index dimension
        """
        entries = list(entries)
        if not entries:
            return

        with self._write_lock:
            current = self._snapshot
            dimension = current.dimension if current.entries or current.dimension else entries[0].dimension

            for entry in entries:
                if entry.dimension != dimension:
                    raise DimensionMismatch(dimension, entry.dimension)

            self._snapshot = dataclasses.replace(
                current,
                entries=current.entries + tuple(entries),
                dimension=dimension,
            )

    def replace(self, snapshot: VectorIndexSnapshot) -> None:
        """Swap in a fully built snapshot in one step."""
        with self._write_lock:
            self._snapshot = snapshot

    def set_version(self, version: int, expected: Optional[VectorIndexSnapshot] = None) -> bool:
        """
        Stamp the current entries with a new version.

        With `expected`, the stamp only applies while the index still holds that
        exact snapshot. Returns whether the version was set.
        """
        with self._write_lock:
            if expected is not None and self._snapshot is not expected:
                return False
            self._snapshot = dataclasses.replace(self._snapshot, version=version)
            return True

    def clear(self) -> None:
        """Drop all entries, keeping version and model id."""
        with self._write_lock:
            self._snapshot = VectorIndexSnapshot(
                version=self._snapshot.version,
                embedding_model_id=self._snapshot.embedding_model_id,
            )

    def search(self, query_embedding, k: int, filter: Optional[MetadataFilter] = None) -> List[SearchHit]:
        """
        Search for similar entries and return ranked hits.

        Ties keep insertion order. Returns min(k, matching entries) hits.
        """
        if k <= 0:
            raise ValueError(f"k must be > 0: {k}")

        snapshot = self._snapshot
        if not snapshot.entries:
            return []

        query = np.asarray(query_embedding, dtype=np.float64).reshape(-1)
        if query.shape[0] != snapshot.dimension:
            raise DimensionMismatch(snapshot.dimension, query.shape[0])

        predicate = _as_predicate(filter)
        if predicate is None:
            candidates = np.arange(len(snapshot.entries))
        else:
            candidates = np.array(
                [i for i, e in enumerate(snapshot.entries) if predicate(e.metadata)],
                dtype=np.int64,
            )
        if candidates.size == 0:
            return []

        norm = np.linalg.norm(query)
        if norm == 0:
            scores = np.zeros(candidates.size)
        else:
            scores = snapshot.matrix[candidates] @ (query / norm)

        # Stable sort keeps insertion order between equal scores
        order = np.argsort(-scores, kind="stable")[:k]

        return [
            SearchHit(entry=snapshot.entries[candidates[i]], score=float(scores[i]))
            for i in order
        ]

    def serialize(self) -> bytes:
        return serialize_snapshot(self._snapshot)

    @staticmethod
    def deserialize(data: bytes) -> VectorIndexSnapshot:
        return deserialize_snapshot(data)
