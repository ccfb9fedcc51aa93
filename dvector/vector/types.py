"""
Vector cache overlay - local, advisory copy of the registry's canonical document set.
Entry, snapshot and hit types held by the vector index.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple

import numpy as np

from dvector.core.errors import DimensionMismatch

# Wire key -> attribute name for the typed metadata fields
METADATA_FIELDS = {
    "blobId": "blob_id",
    "filename": "filename",
    "chunkIndex": "chunk_index",
    "totalChunks": "total_chunks",
}

_MISSING = object()


@dataclass(frozen=True)
class EntryMetadata:
    """Metadata attached to every embedded chunk."""

    blob_id: str
    """Blob id of the full source document"""

    filename: str
    """Original filename of the source document"""

    chunk_index: int
    """Position of this chunk within the document"""

    total_chunks: int
    """Number of chunks the document was split into"""

    extra: Mapping[str, Any] = field(default_factory=dict)
    """Collaborator-specific fields (fileType, uploadedAt, ...)"""

    def __post_init__(self):
        object.__setattr__(self, "extra", MappingProxyType(dict(self.extra)))

    def get(self, key: str, default: Any = None) -> Any:
        """Look up a field by wire key, attribute name or extra key."""
        attr = METADATA_FIELDS.get(key, key)
        if attr in METADATA_FIELDS.values():
            return getattr(self, attr)
        return self.extra.get(key, default)

    def matches(self, criteria: Mapping[str, Any]) -> bool:
        """True when every criterion equals the corresponding field."""
        return all(self.get(key, _MISSING) == value for key, value in criteria.items())

    def to_dict(self) -> Dict[str, Any]:
        data = dict(self.extra)
        data.update({
            "blobId": self.blob_id,
            "filename": self.filename,
            "chunkIndex": self.chunk_index,
            "totalChunks": self.total_chunks,
        })
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "EntryMetadata":
        extra = {k: v for k, v in data.items() if k not in METADATA_FIELDS}
        return cls(
            blob_id=data["blobId"],
            filename=data["filename"],
            chunk_index=data["chunkIndex"],
            total_chunks=data["totalChunks"],
            extra=extra,
        )

    def __eq__(self, other):
        if not isinstance(other, EntryMetadata):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __hash__(self):
        return hash((self.blob_id, self.filename, self.chunk_index, self.total_chunks))


@dataclass(frozen=True)
class VectorEntry:
    """One embedded chunk. Identity is its position in the index."""

    text: str
    embedding: Tuple[float, ...]
    metadata: EntryMetadata

    def __post_init__(self):
        object.__setattr__(self, "embedding", tuple(float(x) for x in self.embedding))

    @property
    def dimension(self) -> int:
        return len(self.embedding)


@dataclass(frozen=True)
class VectorIndexSnapshot:
    """Immutable, versioned set of entries. Swapped whole, never patched."""

    version: int = 0
    entries: Tuple[VectorEntry, ...] = ()
    dimension: int = 0
    embedding_model_id: str = ""
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self):
        object.__setattr__(self, "entries", tuple(self.entries))
        if self.version < 0:
            raise ValueError(f"Snapshot version must be >= 0: {self.version}")
        for entry in self.entries:
            if entry.dimension != self.dimension:
                raise DimensionMismatch(self.dimension, entry.dimension)

    def __eq__(self, other):
        if not isinstance(other, VectorIndexSnapshot):
            return NotImplemented
        return (self.version, self.entries, self.dimension, self.embedding_model_id) == \
            (other.version, other.entries, other.dimension, other.embedding_model_id)

    def __hash__(self):
        return hash((self.version, len(self.entries), self.dimension, self.embedding_model_id))

    def __len__(self):
        return len(self.entries)

    @property
    def matrix(self) -> np.ndarray:
        """Row-normalized embedding matrix, computed once per snapshot."""
        cached: Optional[np.ndarray] = self.__dict__.get("_matrix")
        if cached is None:
            if self.entries:
                raw = np.array([e.embedding for e in self.entries], dtype=np.float64)
                norms = np.linalg.norm(raw, axis=1, keepdims=True)
                # Zero vectors stay zero and score 0
                norms[norms == 0] = 1.0
                cached = raw / norms
            else:
                cached = np.zeros((0, self.dimension), dtype=np.float64)
            object.__setattr__(self, "_matrix", cached)
        return cached


@dataclass(frozen=True)
class SearchHit:
    """A search result: the matched entry and its cosine similarity."""

    entry: VectorEntry
    score: float
