"""
Snapshot file and vector blob formats.
"""

import json

import pytest

from conftest import make_entry
from dvector.core.errors import CorruptSnapshot
from dvector.vector.serialization import (
    FORMAT_VERSION,
    deserialize_entries,
    deserialize_snapshot,
    serialize_entries,
    serialize_snapshot,
)
from dvector.vector.types import VectorIndexSnapshot


def sample_snapshot():
    return VectorIndexSnapshot(
        version=5,
        entries=(
            make_entry("first chunk", [0.1, 0.2, 0.3], blob_id="b1", filename="one.txt",
                       chunk_index=0, total_chunks=2, extra={"fileType": "text/plain"}),
            make_entry("second chunk", [0.4, 0.5, 0.6], blob_id="b1", filename="one.txt",
                       chunk_index=1, total_chunks=2),
            make_entry("other", [-1.0, 0.0, 1.0], blob_id="b2", filename="two.md"),
        ),
        dimension=3,
        embedding_model_id="hash-md5-3",
    )


def test_snapshot_round_trip_preserves_entries_and_order():
    snapshot = sample_snapshot()

    restored = deserialize_snapshot(serialize_snapshot(snapshot))

    assert restored == snapshot
    assert [e.text for e in restored.entries] == ["first chunk", "second chunk", "other"]
    assert restored.created_at == snapshot.created_at


def test_empty_snapshot_round_trip():
    snapshot = VectorIndexSnapshot(version=0, embedding_model_id="m")

    assert deserialize_snapshot(serialize_snapshot(snapshot)) == snapshot


def test_snapshot_wire_keys():
    data = json.loads(serialize_snapshot(sample_snapshot()))

    assert data["formatVersion"] == FORMAT_VERSION
    assert data["version"] == 5
    assert data["embeddingModelId"] == "hash-md5-3"
    assert data["dimensions"] == 3
    assert data["entries"][0]["content"] == "first chunk"
    assert data["entries"][0]["metadata"] == {
        "blobId": "b1",
        "filename": "one.txt",
        "chunkIndex": 0,
        "totalChunks": 2,
        "fileType": "text/plain",
    }


@pytest.mark.parametrize("payload", [
    b"",
    b"not json",
    b"\xff\xfe\x00",
    b"[]",
    b'{"version": 1}',
])
def test_unparsable_snapshot_is_corrupt(payload):
    with pytest.raises(CorruptSnapshot):
        deserialize_snapshot(payload)


def test_snapshot_with_bad_metadata_is_corrupt():
    data = json.loads(serialize_snapshot(sample_snapshot()))
    del data["entries"][0]["metadata"]["blobId"]

    with pytest.raises(CorruptSnapshot):
        deserialize_snapshot(json.dumps(data))


def test_snapshot_with_wrong_dimension_entry_is_corrupt():
    data = json.loads(serialize_snapshot(sample_snapshot()))
    data["entries"][1]["embedding"] = [1.0, 2.0]

    with pytest.raises(CorruptSnapshot, match="dimension"):
        deserialize_snapshot(json.dumps(data))


def test_snapshot_with_negative_version_is_corrupt():
    data = json.loads(serialize_snapshot(sample_snapshot()))
    data["version"] = -1

    with pytest.raises(CorruptSnapshot):
        deserialize_snapshot(json.dumps(data))


def test_vector_blob_round_trip():
    entries = list(sample_snapshot().entries)

    restored, dimensions, model = deserialize_entries(serialize_entries(entries, "hash-md5-3", 3))

    assert restored == entries
    assert dimensions == 3
    assert model == "hash-md5-3"


def test_vector_blob_wire_keys():
    data = json.loads(serialize_entries(list(sample_snapshot().entries), "hash-md5-3", 3))

    assert set(data) == {"formatVersion", "embeddingModel", "dimensions", "vectors", "createdAt"}
    assert len(data["vectors"]) == 3


def test_vector_blob_dimension_disagreement_is_corrupt():
    entries = list(sample_snapshot().entries)

    with pytest.raises(CorruptSnapshot, match="declares 4 dimensions"):
        deserialize_entries(serialize_entries(entries, "hash-md5-3", 4))


def test_vector_blob_missing_vectors_is_corrupt():
    with pytest.raises(CorruptSnapshot):
        deserialize_entries(json.dumps({"formatVersion": "1.0", "embeddingModel": "m", "dimensions": 3}))


@pytest.mark.parametrize("field, value", [
    ("version", "3"),
    ("dimensions", "3"),
    ("version", 3.0),
])
def test_snapshot_with_quoted_or_float_counts_is_corrupt(field, value):
    data = json.loads(serialize_snapshot(sample_snapshot()))
    data[field] = value

    with pytest.raises(CorruptSnapshot):
        deserialize_snapshot(json.dumps(data))


def test_snapshot_with_quoted_embedding_value_is_corrupt():
    data = json.loads(serialize_snapshot(sample_snapshot()))
    data["entries"][0]["embedding"][0] = "1.5"

    with pytest.raises(CorruptSnapshot):
        deserialize_snapshot(json.dumps(data))


def test_vector_blob_with_quoted_dimensions_is_corrupt():
    data = json.loads(serialize_entries(list(sample_snapshot().entries), "hash-md5-3", 3))
    data["dimensions"] = "3"

    with pytest.raises(CorruptSnapshot):
        deserialize_entries(json.dumps(data))
