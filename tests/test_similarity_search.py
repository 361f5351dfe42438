# tests/test_similarity_search.py

import pytest
import numpy as np
from core.errors import DimensionMismatchError, InvalidArgumentError
from core.models import ImageMetadata
from core.record_store import VectorRecordStore
from core.vector_index import (
    BACKENDS,
    BruteForceIndex,
    FaissFlatIndex,
    create_index,
    distance_to_similarity,
)


@pytest.fixture(params=["flat", "faiss"])
def backend(request):
    """Run each test against both index backends"""
    return request.param

def build_index(backend, vectors, ids=None):
    vectors = np.asarray(vectors, dtype=np.float32)
    index = create_index(backend, vectors.shape[1])
    index.build(list(ids) if ids is not None else list(range(len(vectors))), vectors)
    return index

def test_create_index_backends():
    assert isinstance(create_index("flat", 4), BruteForceIndex)
    assert isinstance(create_index("faiss", 4), FaissFlatIndex)
    with pytest.raises(InvalidArgumentError):
        create_index("hnsw", 4)

def test_similarity_transform():
    """Score is 1 at distance 0 and decreases towards 0"""
    assert distance_to_similarity(0.0) == 1.0
    assert distance_to_similarity(1.0) == 0.5
    assert distance_to_similarity(200.0) == pytest.approx(1 / 201)
    assert distance_to_similarity(-1e-7) == 1.0

def test_results_sorted_by_distance(backend):
    index = build_index(backend, [[3, 0], [1, 0], [2, 0], [0, 0]])
    results = index.query([0, 0], k=4)

    assert [r[0] for r in results] == [3, 1, 2, 0]
    assert [r[1] for r in results] == pytest.approx([0.0, 1.0, 4.0, 9.0])

def test_ties_broken_by_ascending_id(backend):
    """Equidistant vectors come back in id order, even across the k-th slot"""
    vectors = [[1, 0], [0, 1], [-1, 0], [0, -1]]
    index = build_index(backend, vectors, ids=[7, 3, 5, 1])

    results = index.query([0, 0], k=2)
    assert [r[0] for r in results] == [1, 3]

    results = index.query([0, 0], k=4)
    assert [r[0] for r in results] == [1, 3, 5, 7]

def test_k_clamped_to_size(backend):
    index = build_index(backend, [[0, 0], [1, 1]])
    assert len(index.query([0, 0], k=100)) == 2

def test_empty_index_returns_nothing(backend):
    index = create_index(backend, 3)
    index.build([], np.empty((0, 3), dtype=np.float32))

    assert index.ntotal == 0
    assert index.query([0, 0, 0], k=5) == []

def test_query_validation(backend):
    index = build_index(backend, [[0, 0], [1, 1]])

    with pytest.raises(DimensionMismatchError):
        index.query([0, 0, 0], k=1)
    with pytest.raises(InvalidArgumentError):
        index.query([0, 0], k=0)

def test_build_validation(backend):
    index = create_index(backend, 2)
    with pytest.raises(InvalidArgumentError):
        index.build([0, 1], np.zeros((3, 2), dtype=np.float32))
    with pytest.raises(InvalidArgumentError):
        index.build([0], np.zeros((1, 3), dtype=np.float32))

def test_self_match(backend):
    """An indexed vector finds itself first at distance zero"""
    rng = np.random.default_rng(42)
    vectors = rng.normal(size=(20, 8)).astype(np.float32)
    index = build_index(backend, vectors)

    record_id, distance = index.query(vectors[5], k=1)[0]
    assert record_id == 5
    assert distance_to_similarity(distance) == pytest.approx(1.0)

def test_backends_agree():
    """FAISS flat search gives the same neighbours as the numpy scan"""
    rng = np.random.default_rng(0)
    vectors = rng.normal(size=(50, 16)).astype(np.float32)
    query = rng.normal(size=16).astype(np.float32)

    flat = build_index("flat", vectors).query(query, k=10)
    faiss_results = build_index("faiss", vectors).query(query, k=10)

    assert [r[0] for r in flat] == [r[0] for r in faiss_results]
    assert [r[1] for r in flat] == pytest.approx([r[1] for r in faiss_results], rel=1e-4)

def test_from_store(backend):
    store = VectorRecordStore(dimension=2)
    for i, path in enumerate(["a.jpg", "b.jpg", "c.jpg"]):
        store.append([float(i), 0.0], ImageMetadata.for_path(path))
    store.remove_by_path("a.jpg")

    index = BACKENDS[backend].from_store(store, 2)
    assert len(index) == 2
    assert index.query([0, 0], k=1)[0][0] == 1
