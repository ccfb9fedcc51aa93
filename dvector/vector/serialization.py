"""
Vector serialization utilities.
Snapshot files for the local cache and per-document vector blobs for the blob store.
"""

import json
from datetime import datetime, timezone
from typing import List, Sequence, Tuple, Union

from pydantic import ValidationError

from dvector.core.errors import CorruptSnapshot, DimensionMismatch
from dvector.core.schema import EntryModel, SnapshotModel, VectorBlobModel
from .types import EntryMetadata, VectorEntry, VectorIndexSnapshot

FORMAT_VERSION = "1.0"

# 10MB default, blob stores cap payload size
DEFAULT_MAX_BLOB_BYTES = 10 * 1024 * 1024


def entry_to_dict(entry: VectorEntry) -> dict:
    return {
        "content": entry.text,
        "embedding": list(entry.embedding),
        "metadata": entry.metadata.to_dict(),
    }


def _entry_from_model(model: EntryModel) -> VectorEntry:
    return VectorEntry(
        text=model.content,
        embedding=tuple(model.embedding),
        metadata=EntryMetadata.from_dict(model.metadata),
    )


def _load_json(data: Union[bytes, str]):
    try:
        if isinstance(data, bytes):
            data = data.decode("utf-8")
        return json.loads(data)
    except (UnicodeDecodeError, ValueError) as e:
        raise CorruptSnapshot(f"Payload is not valid JSON: {e}") from e


def serialize_snapshot(snapshot: VectorIndexSnapshot) -> bytes:
    """Serialize a full index snapshot for the local cache file."""
    data = {
        "formatVersion": FORMAT_VERSION,
        "version": snapshot.version,
        "embeddingModelId": snapshot.embedding_model_id,
        "dimensions": snapshot.dimension,
        "entries": [entry_to_dict(e) for e in snapshot.entries],
        "createdAt": snapshot.created_at.isoformat(),
    }
    return json.dumps(data).encode("utf-8")


def deserialize_snapshot(data: Union[bytes, str]) -> VectorIndexSnapshot:
    """Parse and shape-check a snapshot. Raises CorruptSnapshot on any structural problem."""
    parsed = _load_json(data)

    try:
        model = SnapshotModel.model_validate(parsed)
    except ValidationError as e:
        raise CorruptSnapshot(f"Invalid snapshot structure: {e.error_count()} error(s)") from e

    try:
        return VectorIndexSnapshot(
            version=model.version,
            entries=tuple(_entry_from_model(m) for m in model.entries),
            dimension=model.dimensions,
            embedding_model_id=model.embeddingModelId,
            created_at=model.createdAt,
        )
    except DimensionMismatch as e:
        raise CorruptSnapshot(f"Snapshot violates its dimension: {e}") from e


def serialize_entries(entries: Sequence[VectorEntry], embedding_model: str, dimensions: int) -> bytes:
    """Serialize one document's entries as a vector blob."""
    data = {
        "formatVersion": FORMAT_VERSION,
        "embeddingModel": embedding_model,
        "dimensions": dimensions,
        "vectors": [entry_to_dict(e) for e in entries],
        "createdAt": datetime.now(timezone.utc).isoformat(),
    }
    return json.dumps(data).encode("utf-8")


def deserialize_entries(data: Union[bytes, str]) -> Tuple[List[VectorEntry], int, str]:
    """Parse a vector blob into (entries, dimensions, embedding model)."""
    parsed = _load_json(data)

    try:
        model = VectorBlobModel.model_validate(parsed)
    except ValidationError as e:
        raise CorruptSnapshot(f"Invalid serialized vector format: {e.error_count()} error(s)") from e

    entries = [_entry_from_model(m) for m in model.vectors]
    for entry in entries:
        if entry.dimension != model.dimensions:
            raise CorruptSnapshot(
                f"Vector blob declares {model.dimensions} dimensions but holds a {entry.dimension}-d vector"
            )
    return entries, model.dimensions, model.embeddingModel
