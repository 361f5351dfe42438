# core/record_store.py

from typing import Iterator, List, Optional, Sequence

import numpy as np

from core.errors import DimensionMismatchError, InvalidArgumentError
from core.models import ImageMetadata, IndexState, VectorRecord


def as_vector(vector, dimension: Optional[int] = None,
              path: Optional[str] = None) -> np.ndarray:
    """
    Convert a numeric sequence to a read-only float32 vector

    Raises:
        InvalidArgumentError: not a finite one-dimensional numeric sequence
        DimensionMismatchError: length differs from ``dimension``
    """
    try:
        array = np.array(vector, dtype=np.float32)
    except (TypeError, ValueError) as e:
        raise InvalidArgumentError(f"Vector is not numeric: {e}") from e

    if array.ndim != 1 or array.size == 0:
        raise InvalidArgumentError(
            f"Vector must be a non-empty 1-D sequence, got shape {array.shape}"
        )
    if dimension is not None and array.shape[0] != dimension:
        raise DimensionMismatchError(dimension, array.shape[0], path)
    if not np.all(np.isfinite(array)):
        raise InvalidArgumentError("Vector contains NaN or infinite values")

    array.setflags(write=False)
    return array


class VectorRecordStore:
    """
    Append-only in-memory table of (id, vector, metadata).

    The store is the system of record for what is indexed. Ids increase
    monotonically and are never handed out twice, even after removal.
    Lookups by path are linear scans.
    """

    def __init__(self, dimension: Optional[int] = None, next_id: int = 0,
                 records: Optional[Sequence[VectorRecord]] = None):
        self.dimension = dimension
        self.next_id = next_id
        self._records: List[VectorRecord] = list(records or [])

    @classmethod
    def from_state(cls, state: IndexState) -> 'VectorRecordStore':
        return cls(state.dimension, state.next_id, state.records)

    def to_state(self) -> IndexState:
        return IndexState(
            dimension=self.dimension,
            next_id=self.next_id,
            records=list(self._records),
        )

    def append(self, vector, metadata: ImageMetadata) -> int:
        """
        Append a record and return its new id

        The first record ever appended fixes the dimension when none was
        declared.
        """
        array = as_vector(vector, self.dimension, metadata.path)
        if self.dimension is None:
            self.dimension = int(array.shape[0])

        record_id = self.next_id
        self._records.append(VectorRecord(record_id, array, metadata))
        self.next_id += 1
        return record_id

    def remove_by_path(self, path: str) -> int:
        """Remove every record for ``path``; returns how many went away"""
        kept = [r for r in self._records if r.metadata.path != path]
        removed = len(self._records) - len(kept)
        if removed:
            self._records = kept
        return removed

    def get(self, record_id: int) -> Optional[VectorRecord]:
        for record in self._records:
            if record.id == record_id:
                return record
        return None

    def find_by_path(self, path: str) -> Optional[VectorRecord]:
        for record in self._records:
            if record.metadata.path == path:
                return record
        return None

    def list_paths(self) -> List[str]:
        return [r.metadata.path for r in self._records]

    def ids(self) -> List[int]:
        return [r.id for r in self._records]

    def records(self) -> List[VectorRecord]:
        return list(self._records)

    def vectors(self) -> np.ndarray:
        """All vectors as an (n, D) float32 matrix in insertion order"""
        if not self._records:
            return np.empty((0, self.dimension or 0), dtype=np.float32)
        return np.vstack([r.vector for r in self._records]).astype(np.float32)

    def copy(self) -> 'VectorRecordStore':
        return VectorRecordStore(self.dimension, self.next_id, self._records)

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[VectorRecord]:
        return iter(list(self._records))
