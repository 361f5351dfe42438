# core/vector_index.py

from abc import ABC, abstractmethod
from typing import List, Sequence, Tuple

import faiss
import numpy as np

from core.errors import InvalidArgumentError
from core.record_store import VectorRecordStore, as_vector


def distance_to_similarity(distance: float) -> float:
    """
    Map a squared L2 distance to a similarity score in (0, 1]

    Identical vectors score exactly 1.0; the score falls monotonically as
    the distance grows and never goes negative.
    """
    return 1.0 / (1.0 + max(float(distance), 0.0))


class SimilarityIndex(ABC):
    """
    Exact nearest-neighbour search over a fixed set of vectors.

    Instances are built once from a record store snapshot and never
    mutated afterwards; callers build a new one after every change to the
    store and swap it in.
    """

    name: str = "base"

    def __init__(self, dimension: int):
        self.dimension = dimension
        self._ids = np.empty(0, dtype=np.int64)

    @classmethod
    def from_store(cls, store: VectorRecordStore,
                   dimension: int) -> 'SimilarityIndex':
        index = cls(dimension)
        index.build(store.ids(), store.vectors())
        return index

    @abstractmethod
    def build(self, ids: Sequence[int], vectors: np.ndarray) -> None:
        """Load the given vectors; ids[i] labels vectors[i]"""

    @abstractmethod
    def _search(self, query: np.ndarray, k: int) -> Tuple[np.ndarray, np.ndarray]:
        """Return (ids, distances) for at least the k nearest vectors"""

    @property
    def ntotal(self) -> int:
        return int(self._ids.shape[0])

    def __len__(self) -> int:
        return self.ntotal

    def query(self, vector, k: int) -> List[Tuple[int, float]]:
        """
        Find the k nearest vectors

        Args:
            vector: Query vector of length ``dimension``
            k: Number of neighbours; clamped to the number of vectors

        Returns:
            List of (id, squared distance) pairs ordered by distance, ties
            broken by ascending id
        """
        if k <= 0:
            raise InvalidArgumentError(f"k must be positive, got {k}")
        query = as_vector(vector, self.dimension)

        if self.ntotal == 0:
            return []
        k = min(int(k), self.ntotal)

        ids, distances = self._search(query, k)
        order = np.lexsort((ids, distances))[:k]
        return [(int(ids[i]), float(distances[i])) for i in order]

    def _check_build_input(self, ids: Sequence[int],
                           vectors: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        ids = np.asarray(ids, dtype=np.int64)
        vectors = np.asarray(vectors, dtype=np.float32)
        if vectors.shape[0] == 0:
            vectors = vectors.reshape(0, self.dimension)
        if vectors.ndim != 2 or vectors.shape[1] != self.dimension:
            raise InvalidArgumentError(
                f"Expected vectors of shape (n, {self.dimension}), got {vectors.shape}"
            )
        if ids.shape[0] != vectors.shape[0]:
            raise InvalidArgumentError(
                f"{ids.shape[0]} ids given for {vectors.shape[0]} vectors"
            )
        return ids, np.ascontiguousarray(vectors)


class BruteForceIndex(SimilarityIndex):
    """Reference backend: a numpy scan over every stored vector"""

    name = "flat"

    def __init__(self, dimension: int):
        super().__init__(dimension)
        self._vectors = np.empty((0, dimension), dtype=np.float64)

    def build(self, ids: Sequence[int], vectors: np.ndarray) -> None:
        ids, vectors = self._check_build_input(ids, vectors)
        self._ids = ids
        self._vectors = vectors.astype(np.float64)

    def _search(self, query: np.ndarray, k: int) -> Tuple[np.ndarray, np.ndarray]:
        diff = self._vectors - query.astype(np.float64)
        distances = np.einsum('ij,ij->i', diff, diff)
        return self._ids, distances


class FaissFlatIndex(SimilarityIndex):
    """
    FAISS backend: IndexFlatL2 wrapped in an IndexIDMap so results carry
    record ids. Flat search is exhaustive, so results match the brute force
    scan.
    """

    name = "faiss"

    def __init__(self, dimension: int):
        super().__init__(dimension)
        self.index = faiss.IndexIDMap(faiss.IndexFlatL2(dimension))

    def build(self, ids: Sequence[int], vectors: np.ndarray) -> None:
        ids, vectors = self._check_build_input(ids, vectors)
        index = faiss.IndexIDMap(faiss.IndexFlatL2(self.dimension))
        if ids.shape[0]:
            index.add_with_ids(vectors, ids)
        self.index = index
        self._ids = ids

    def _search(self, query: np.ndarray, k: int) -> Tuple[np.ndarray, np.ndarray]:
        query = query.reshape(1, -1)
        fetch = min(k + 1, self.ntotal)
        distances, labels = self.index.search(query, fetch)

        # a tie across the k-th slot means faiss may have dropped an equally
        # distant vector with a smaller id
        if fetch > k and distances[0][k] == distances[0][k - 1]:
            distances, labels = self.index.search(query, self.ntotal)

        valid = labels[0] != -1
        return labels[0][valid], distances[0][valid].astype(np.float64)


BACKENDS = {
    BruteForceIndex.name: BruteForceIndex,
    FaissFlatIndex.name: FaissFlatIndex,
}


def create_index(backend: str, dimension: int) -> SimilarityIndex:
    """Instantiate an empty index for the named backend"""
    try:
        index_class = BACKENDS[backend]
    except KeyError:
        raise InvalidArgumentError(
            f"Unknown index backend '{backend}'; choose from {sorted(BACKENDS)}"
        ) from None
    return index_class(dimension)
