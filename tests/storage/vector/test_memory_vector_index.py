"""
Unit tests for the in-memory vector index.

Tests cosine similarity, upserts, top-k ordering, tie-breaking, filters and
dimension checks.
"""

import pytest

from item_memory.errors import DimensionMismatch
from item_memory.storage.vector.memory import InMemoryVectorIndex, cosine_similarity


@pytest.fixture
def index():
    """Create a fresh 3-dimensional index."""
    return InMemoryVectorIndex(dimension=3)


@pytest.fixture
def sample_vectors():
    """Sample vectors for testing."""
    return {
        "vec1": [1.0, 0.0, 0.0],  # Orthogonal to vec2
        "vec2": [0.0, 1.0, 0.0],  # Orthogonal to vec1
        "vec3": [0.9, 0.1, 0.0],  # Similar to vec1
        "vec4": [0.1, 0.9, 0.0],  # Similar to vec2
    }


def test_cosine_similarity_basics():
    assert cosine_similarity([1.0, 0.0], [1.0, 0.0]) == pytest.approx(1.0)
    assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)
    assert cosine_similarity([1.0, 0.0], [-1.0, 0.0]) == pytest.approx(-1.0)


def test_cosine_similarity_is_symmetric_and_scale_invariant():
    a = [0.3, 0.7, 0.1]
    b = [0.5, 0.2, 0.9]

    assert cosine_similarity(a, b) == pytest.approx(cosine_similarity(b, a))
    assert cosine_similarity(a, b) == pytest.approx(cosine_similarity([x * 4 for x in a], b))


def test_cosine_similarity_zero_vector():
    assert cosine_similarity([0.0, 0.0], [1.0, 2.0]) == 0.0


def test_cosine_similarity_dimension_mismatch():
    with pytest.raises(DimensionMismatch):
        cosine_similarity([1.0, 0.0], [1.0, 0.0, 0.0])


def test_invalid_dimension():
    with pytest.raises(ValueError):
        InMemoryVectorIndex(dimension=0)


def test_insert_and_get(index, sample_vectors):
    record = index.insert("item-1", sample_vectors["vec1"], {"price": "$10"}, method="fallback:pixel-bucket")

    assert record.id == "item-1"
    assert record.vector == [1.0, 0.0, 0.0]

    stored = index.get("item-1")
    assert stored.metadata == {"price": "$10"}
    assert stored.method == "fallback:pixel-bucket"
    assert "item-1" in index
    assert len(index) == 1


def test_get_nonexistent(index):
    assert index.get("missing") is None


def test_insert_wrong_dimension(index):
    with pytest.raises(DimensionMismatch) as exc_info:
        index.insert("bad", [1.0, 0.0])

    assert exc_info.value.expected == 3
    assert exc_info.value.actual == 2
    assert len(index) == 0


def test_insert_is_upsert(index, sample_vectors):
    """Re-inserting an id keeps exactly one record with the latest data."""
    index.insert("item-1", sample_vectors["vec1"], {"price": "$10"})
    index.insert("item-1", sample_vectors["vec2"], {"price": "$12"})

    assert len(index) == 1
    assert index.get("item-1").metadata == {"price": "$12"}
    assert index.get("item-1").vector == sample_vectors["vec2"]


def test_stored_data_is_isolated_from_callers(index):
    vector = [1.0, 0.0, 0.0]
    metadata = {"tags": ["a"]}
    index.insert("item-1", vector, metadata)

    vector[0] = 99.0
    metadata["tags"].append("b")
    index.get("item-1").vector[1] = 42.0

    stored = index.get("item-1")
    assert stored.vector == [1.0, 0.0, 0.0]
    assert stored.metadata == {"tags": ["a"]}


def test_search_orders_by_score(index, sample_vectors):
    for name, vector in sample_vectors.items():
        index.insert(name, vector)

    results = index.search([1.0, 0.0, 0.0], k=4)

    assert [r.id for r in results] == ["vec1", "vec3", "vec4", "vec2"]
    assert results[0].score == pytest.approx(1.0)
    assert all(results[i].score >= results[i + 1].score for i in range(len(results) - 1))


def test_search_top_k_and_min_score(index, sample_vectors):
    for name, vector in sample_vectors.items():
        index.insert(name, vector)

    assert len(index.search([1.0, 0.0, 0.0], k=1)) == 1

    results = index.search([1.0, 0.0, 0.0], k=10, min_score=0.5)
    assert {r.id for r in results} == {"vec1", "vec3"}


def test_search_returns_at_most_population(index, sample_vectors):
    index.insert("vec1", sample_vectors["vec1"])

    assert len(index.search([1.0, 0.0, 0.0], k=5)) == 1


def test_search_ties_prefer_most_recent(index):
    index.insert("older", [1.0, 0.0, 0.0], created_at=100.0)
    index.insert("newer", [2.0, 0.0, 0.0], created_at=200.0)

    results = index.search([1.0, 0.0, 0.0], k=2)

    assert [r.id for r in results] == ["newer", "older"]


def test_search_ties_same_timestamp_prefer_last_inserted(index):
    index.insert("first", [1.0, 0.0, 0.0], created_at=100.0)
    index.insert("second", [1.0, 0.0, 0.0], created_at=100.0)

    assert [r.id for r in index.search([1.0, 0.0, 0.0], k=2)] == ["second", "first"]


def test_search_filters_by_method_and_exclude(index):
    index.insert("pixel", [1.0, 0.0, 0.0], method="fallback:pixel-bucket")
    index.insert("clip", [1.0, 0.0, 0.0], method="model:clip")
    index.insert("pixel-2", [1.0, 0.0, 0.0], method="fallback:pixel-bucket")

    results = index.search([1.0, 0.0, 0.0], method="fallback:pixel-bucket", exclude=["pixel-2"])

    assert [r.id for r in results] == ["pixel"]


def test_zero_vectors_never_rank(index):
    index.insert("blank", [0.0, 0.0, 0.0])
    index.insert("real", [1.0, 0.0, 0.0])

    assert [r.id for r in index.search([1.0, 0.0, 0.0], min_score=-1.0)] == ["real"]
    assert index.search([0.0, 0.0, 0.0]) == []


def test_search_wrong_dimension(index):
    with pytest.raises(DimensionMismatch):
        index.search([1.0, 0.0])


@pytest.mark.parametrize("bad", [float("nan"), float("inf"), float("-inf")])
def test_non_finite_vectors_are_rejected(index, bad):
    index.insert("good", [1.0, 0.0, 0.0])

    with pytest.raises(ValueError):
        index.insert("bad", [bad, 1.0, 0.0])
    with pytest.raises(ValueError):
        index.search([bad, 0.0, 0.0])

    assert "bad" not in index
    assert [r.id for r in index.search([1.0, 0.0, 0.0], min_score=0.9)] == ["good"]


def test_cosine_similarity_non_finite_scores_zero():
    assert cosine_similarity([float("nan"), 1.0], [1.0, 0.0]) == 0.0


def test_search_empty_index(index):
    assert index.search([1.0, 0.0, 0.0]) == []


def test_search_results_carry_metadata_copies(index):
    index.insert("item-1", [1.0, 0.0, 0.0], {"price": "$10"})

    result = index.search([1.0, 0.0, 0.0])[0]
    result.metadata["price"] = "$999"

    assert index.get("item-1").metadata == {"price": "$10"}


def test_remove_is_idempotent(index):
    index.insert("item-1", [1.0, 0.0, 0.0])

    assert index.remove("item-1") is True
    assert index.remove("item-1") is False
    assert index.search([1.0, 0.0, 0.0]) == []


def test_records_in_insertion_order(index):
    index.insert("b", [1.0, 0.0, 0.0])
    index.insert("a", [0.0, 1.0, 0.0])

    assert [r.id for r in index.records()] == ["b", "a"]
    assert index.ids() == ["b", "a"]


def test_clear_and_stats(index):
    index.insert("a", [1.0, 0.0, 0.0], method="fallback:pixel-bucket")
    index.insert("b", [0.0, 1.0, 0.0])

    stats = index.stats()
    assert stats["total_vectors"] == 2
    assert stats["dimension"] == 3
    assert stats["methods"] == {"fallback:pixel-bucket": 1, "unknown": 1}

    assert index.clear() == 2
    assert len(index) == 0


def test_rejects_non_json_metadata(index):
    with pytest.raises(ValueError):
        index.insert("item-1", [1.0, 0.0, 0.0], {"when": object()})
