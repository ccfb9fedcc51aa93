"""
Vector cache overlay - brute-force cosine index over swapped snapshots.
"""

import pytest
import numpy as np

from conftest import make_entry
from dvector.core.errors import DimensionMismatch
from dvector.vector.index import IVectorIndex, VectorIndex
from dvector.vector.types import VectorIndexSnapshot


def test_vector_index_interface():
    """Test that VectorIndex implements IVectorIndex interface."""
    index = VectorIndex()

    assert isinstance(index, IVectorIndex)
    assert index.size() == 0
    assert index.version == 0


def test_first_insert_fixes_dimension():
    index = VectorIndex()
    index.add([make_entry("a", [1.0, 0.0, 0.0])])

    assert index.dimension == 3
    assert index.size() == 1


def test_mismatched_entry_rejected_and_index_unchanged():
    """Adding a wrong-dimension entry rejects the whole batch."""
    index = VectorIndex()
    index.add([make_entry("a", [1.0, 0.0, 0.0])])
    before = index.snapshot

    with pytest.raises(DimensionMismatch) as exc_info:
        index.add([make_entry("b", [0.0, 1.0, 0.0]), make_entry("c", [1.0, 1.0])])

    assert exc_info.value.expected == 3
    assert exc_info.value.actual == 2
    assert index.snapshot is before
    assert index.size() == 1
    assert all(e.dimension == index.dimension for e in index.snapshot.entries)


def test_dimension_mismatch_is_value_error():
    index = VectorIndex()
    index.add([make_entry("a", [1.0, 0.0])])

    with pytest.raises(ValueError):
        index.add([make_entry("b", [1.0])])


def test_search_orders_by_descending_score():
    index = VectorIndex()
    index.add([
        make_entry("far", [0.0, 1.0]),
        make_entry("near", [1.0, 0.0]),
        make_entry("middle", [1.0, 1.0]),
    ])

    hits = index.search([1.0, 0.0], k=3)

    assert [h.entry.text for h in hits] == ["near", "middle", "far"]
    scores = [h.score for h in hits]
    assert scores == sorted(scores, reverse=True)
    assert scores[0] == pytest.approx(1.0)
    assert scores[1] == pytest.approx(1 / np.sqrt(2))
    assert scores[2] == pytest.approx(0.0)


def test_equal_scores_keep_insertion_order():
    index = VectorIndex()
    index.add([
        make_entry("first", [2.0, 0.0]),
        make_entry("second", [1.0, 0.0]),
        make_entry("third", [3.0, 0.0]),
    ])

    hits = index.search([1.0, 0.0], k=3)

    assert [h.entry.text for h in hits] == ["first", "second", "third"]


@pytest.mark.parametrize("k,expected", [(1, 1), (2, 2), (3, 3), (10, 3)])
def test_search_returns_min_of_k_and_size(k, expected):
    index = VectorIndex()
    index.add([make_entry(str(i), [1.0, float(i)]) for i in range(3)])

    assert len(index.search([1.0, 0.0], k=k)) == expected


def test_search_empty_index_returns_nothing():
    assert VectorIndex().search([1.0, 0.0], k=4) == []


def test_search_rejects_non_positive_k():
    index = VectorIndex()
    index.add([make_entry("a", [1.0, 0.0])])

    with pytest.raises(ValueError, match="k must be > 0"):
        index.search([1.0, 0.0], k=0)


def test_search_rejects_wrong_query_dimension():
    index = VectorIndex()
    index.add([make_entry("a", [1.0, 0.0])])

    with pytest.raises(DimensionMismatch):
        index.search([1.0, 0.0, 0.0], k=1)


def test_zero_vectors_score_zero():
    index = VectorIndex()
    index.add([make_entry("zero", [0.0, 0.0]), make_entry("unit", [1.0, 0.0])])

    hits = index.search([1.0, 0.0], k=2)
    assert [h.entry.text for h in hits] == ["unit", "zero"]
    assert hits[1].score == 0.0

    hits = index.search([0.0, 0.0], k=2)
    assert [h.score for h in hits] == [0.0, 0.0]
    assert [h.entry.text for h in hits] == ["zero", "unit"]


def test_search_with_mapping_filter():
    index = VectorIndex()
    index.add([
        make_entry("a1", [1.0, 0.0], filename="a.txt"),
        make_entry("b1", [1.0, 0.0], filename="b.txt"),
        make_entry("a2", [0.5, 0.5], filename="a.txt", extra={"fileType": "text/plain"}),
    ])

    hits = index.search([1.0, 0.0], k=10, filter={"filename": "a.txt"})
    assert [h.entry.text for h in hits] == ["a1", "a2"]

    hits = index.search([1.0, 0.0], k=10, filter={"fileType": "text/plain"})
    assert [h.entry.text for h in hits] == ["a2"]


def test_search_with_callable_filter_and_no_matches():
    index = VectorIndex()
    index.add([make_entry(str(i), [1.0, 0.0], chunk_index=i, total_chunks=3) for i in range(3)])

    hits = index.search([1.0, 0.0], k=10, filter=lambda m: m.chunk_index > 0)
    assert [h.entry.metadata.chunk_index for h in hits] == [1, 2]

    assert index.search([1.0, 0.0], k=10, filter=lambda m: False) == []


def test_reader_keeps_its_snapshot_across_swap():
    index = VectorIndex()
    index.add([make_entry("old", [1.0, 0.0])])
    held = index.snapshot

    replacement = VectorIndexSnapshot(version=7, entries=(make_entry("new", [0.0, 1.0]),), dimension=2)
    index.replace(replacement)

    assert [e.text for e in held.entries] == ["old"]
    assert index.snapshot is replacement
    assert index.version == 7
    assert index.search([0.0, 1.0], k=1)[0].entry.text == "new"


def test_set_version_and_clear():
    index = VectorIndex(embedding_model_id="model-x")
    index.add([make_entry("a", [1.0, 0.0])])

    index.set_version(4)
    assert index.version == 4
    assert index.size() == 1

    index.clear()
    assert index.size() == 0
    assert index.version == 4
    assert index.embedding_model_id == "model-x"


def test_set_version_only_on_expected_snapshot():
    index = VectorIndex(embedding_model_id="model-x")
    index.add([make_entry("a", [1.0, 0.0])])
    held = index.snapshot

    index.replace(VectorIndexSnapshot(version=2, embedding_model_id="model-x"))

    assert index.set_version(5, expected=held) is False
    assert index.version == 2

    assert index.set_version(5, expected=index.snapshot) is True
    assert index.version == 5


def test_empty_versioned_snapshot_is_kept():
    snapshot = VectorIndexSnapshot(version=3)
    index = VectorIndex(snapshot=snapshot)

    assert index.snapshot is snapshot
    assert index.version == 3


def test_serialize_round_trip():
    index = VectorIndex(embedding_model_id="model-x")
    index.add([
        make_entry("a", [1.0, 0.25], blob_id="b1", filename="a.txt", extra={"fileType": "text/plain"}),
        make_entry("b", [-0.5, 2.0], blob_id="b2", filename="b.md", chunk_index=1, total_chunks=2),
    ])
    index.set_version(9)

    restored = VectorIndex.deserialize(index.serialize())

    assert restored == index.snapshot
    assert [e.text for e in restored.entries] == ["a", "b"]
    assert restored.entries[0].metadata.get("fileType") == "text/plain"
