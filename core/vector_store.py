# core/vector_store.py

import logging
import os
import threading
from collections.abc import Mapping
from dataclasses import replace
from enum import Enum
from typing import Dict, Iterable, List, NamedTuple, Optional

import numpy as np

from core.duplicate_grouper import DuplicateGrouper
from core.errors import (
    DimensionMismatchError,
    IndexNotFoundError,
    InvalidArgumentError,
    NotInitializedError,
)
from core.models import (
    DuplicateGroup,
    ImageMetadata,
    IndexState,
    IndexStats,
    SearchResult,
    VectorRecord,
)
from core.persistence import INDEX_FILE, METADATA_FILE, IndexPersistence
from core.record_store import VectorRecordStore, as_vector
from core.vector_index import (
    BACKENDS,
    SimilarityIndex,
    create_index,
    distance_to_similarity,
)

logger = logging.getLogger(__name__)


class StoreState(Enum):
    UNINITIALIZED = "uninitialized"
    READY = "ready"
    RESETTING = "resetting"


class _Snapshot(NamedTuple):
    """Immutable view published to readers after every mutation"""
    store: VectorRecordStore
    index: SimilarityIndex
    by_id: Dict[int, VectorRecord]


def _validate_threshold(threshold: float):
    if not 0.0 <= threshold <= 1.0:
        raise InvalidArgumentError(f"threshold must be in [0, 1], got {threshold}")


class ImageVectorStore:
    """
    Persistent store of image embeddings with similarity search.

    Writers (add, delete, reset, initialize) are serialized on one lock.
    Each write copies the record store, applies the change, saves it and
    then publishes a freshly built index together with the new store.
    Readers use whatever snapshot is published when they start and never
    see a half-built index.
    """

    def __init__(self, storage_path: str = "data/vector_db",
                 backend: str = "flat",
                 index_filename: str = INDEX_FILE,
                 metadata_filename: str = METADATA_FILE):
        if backend not in BACKENDS:
            raise InvalidArgumentError(
                f"Unknown index backend '{backend}'; choose from {sorted(BACKENDS)}"
            )
        self.backend = backend
        self.persistence = IndexPersistence(storage_path, index_filename, metadata_filename)
        self.dimension: Optional[int] = None
        self._state = StoreState.UNINITIALIZED
        self._snapshot: Optional[_Snapshot] = None
        self._lock = threading.RLock()

    @classmethod
    def from_config(cls, config) -> 'ImageVectorStore':
        """Build from an IndexConfig"""
        return cls(
            storage_path=config.storage_path,
            backend=config.backend,
            index_filename=config.index_filename,
            metadata_filename=config.metadata_filename,
        )

    @property
    def storage_path(self) -> str:
        return str(self.persistence.storage_path)

    @property
    def state(self) -> StoreState:
        return self._state

    @property
    def is_initialized(self) -> bool:
        return self._state is StoreState.READY

    def initialize(self, dimension: int):
        """
        Load the persisted index or start an empty one

        Raises:
            DimensionMismatchError: persisted index uses another dimension
            CorruptStateError: persisted files are inconsistent
        """
        if not isinstance(dimension, (int, np.integer)) or dimension <= 0:
            raise InvalidArgumentError(f"dimension must be a positive integer, got {dimension!r}")
        dimension = int(dimension)

        with self._lock:
            if self._state is StoreState.READY:
                if dimension != self.dimension:
                    raise DimensionMismatchError(self.dimension, dimension)
                return

            try:
                state = self.persistence.load()
                logger.info(f"Loaded existing index with {len(state)} vectors")
            except IndexNotFoundError:
                logger.info(f"No existing index at {self.storage_path}; creating a new one")
                state = IndexState(dimension=dimension)

            if state.dimension != dimension:
                raise DimensionMismatchError(state.dimension, dimension)

            self.dimension = dimension
            self._publish(VectorRecordStore.from_state(state))
            self._state = StoreState.READY

    def add_vectors(self, items: Iterable) -> int:
        """
        Add embeddings to the index

        Items are mappings (or objects) with ``path``, ``vector`` and an
        optional ``metadata`` (ImageMetadata or dict). A path already in the
        index has its record replaced. Items are applied in order; when one
        fails, the items before it stay committed and the error is raised.

        Returns:
            Number of vectors added
        """
        with self._lock:
            store = self._ready_snapshot("add_vectors").store.copy()
            added = 0
            try:
                for item in items:
                    path, vector, metadata = self._unpack(item)
                    array = as_vector(vector, self.dimension, path)
                    replaced = store.remove_by_path(path)
                    store.append(array, metadata.stamped())
                    if replaced:
                        logger.debug(f"Replaced existing vector for {path}")
                    added += 1
            except Exception:
                logger.error(f"Stopped adding vectors after {added} items")
                raise
            finally:
                if added:
                    self._commit(store)

        if added:
            logger.info(f"Added {added} vectors ({len(store)} total)")
        return added

    def search(self, query_vector, k: int = 5,
               threshold: float = 0.0) -> List[SearchResult]:
        """
        Find up to k indexed images closest to the query vector

        Args:
            query_vector: Embedding of the query image
            k: Maximum number of results
            threshold: Minimum similarity in [0, 1]

        Returns:
            Results ordered from most to least similar
        """
        snapshot = self._ready_snapshot("search")
        _validate_threshold(threshold)
        if k < 1:
            raise InvalidArgumentError(f"k must be at least 1, got {k}")

        results = []
        for record_id, distance in snapshot.index.query(query_vector, k):
            similarity = distance_to_similarity(distance)
            if similarity < threshold:
                break
            record = snapshot.by_id[record_id]
            results.append(SearchResult(
                path=record.path,
                similarity=similarity,
                id=record.id,
                metadata=record.metadata,
            ))
        return results

    def delete_by_path(self, path: str) -> bool:
        """Remove the vector stored for ``path``; False if it was not indexed"""
        with self._lock:
            store = self._ready_snapshot("delete_by_path").store.copy()
            removed = store.remove_by_path(path)
            if not removed:
                return False
            self._commit(store)

        logger.info(f"Deleted {removed} vectors for {path}")
        return True

    def find_all_duplicate_groups(self, threshold: float) -> List[DuplicateGroup]:
        """Group the whole corpus into duplicate clusters; see DuplicateGrouper"""
        snapshot = self._ready_snapshot("find_all_duplicate_groups")
        grouper = DuplicateGrouper(threshold)
        return grouper.group(snapshot.store, snapshot.index)

    def reset(self):
        """Delete the persisted index and return to the uninitialized state"""
        with self._lock:
            self._state = StoreState.RESETTING
            try:
                self.persistence.reset()
            finally:
                self._snapshot = None
                self.dimension = None
                self._state = StoreState.UNINITIALIZED
        logger.info(f"Index at {self.storage_path} reset")

    def stats(self) -> IndexStats:
        snapshot = self._snapshot
        index_size, metadata_size = self.persistence.artifact_sizes()
        return IndexStats(
            total_vectors=len(snapshot.store) if snapshot else 0,
            dimension=self.dimension,
            storage_path=self.storage_path,
            index_artifact_size_bytes=index_size,
            metadata_artifact_size_bytes=metadata_size,
            last_modified=self.persistence.last_modified(),
            backend=self.backend,
        )

    def list_paths(self) -> List[str]:
        return self._ready_snapshot("list_paths").store.list_paths()

    def contains(self, path: str) -> bool:
        return self.get_record(path) is not None

    def get_record(self, path: str) -> Optional[VectorRecord]:
        return self._ready_snapshot("get_record").store.find_by_path(path)

    def get_vector(self, path: str) -> Optional[np.ndarray]:
        record = self.get_record(path)
        return record.vector if record else None

    def __len__(self) -> int:
        snapshot = self._snapshot
        return len(snapshot.store) if snapshot else 0

    def _ready_snapshot(self, operation: str) -> _Snapshot:
        # read once; reset() may clear the attribute at any moment
        snapshot = self._snapshot
        if snapshot is None or self._state is not StoreState.READY:
            raise NotInitializedError(operation)
        return snapshot

    def _commit(self, store: VectorRecordStore):
        # save before publishing so memory never runs ahead of disk
        self.persistence.save(store.to_state())
        self._publish(store)

    def _publish(self, store: VectorRecordStore):
        index = create_index(self.backend, self.dimension)
        index.build(store.ids(), store.vectors())
        by_id = {record.id: record for record in store}
        self._snapshot = _Snapshot(store, index, by_id)

    @staticmethod
    def _unpack(item):
        if isinstance(item, Mapping):
            path = item.get('path')
            vector = item.get('vector')
            metadata = item.get('metadata')
        else:
            path = getattr(item, 'path', None)
            vector = getattr(item, 'vector', None)
            metadata = getattr(item, 'metadata', None)

        if isinstance(path, os.PathLike):
            path = os.fspath(path)
        if not path or not isinstance(path, str):
            raise InvalidArgumentError(f"Item has no valid path: {item!r}")
        if vector is None:
            raise InvalidArgumentError(f"Item for {path} has no vector")

        if metadata is None:
            metadata = ImageMetadata.for_path(path)
        elif isinstance(metadata, Mapping):
            metadata = ImageMetadata.from_dict({**metadata, 'path': path})
        elif isinstance(metadata, ImageMetadata):
            if metadata.path != path:
                metadata = replace(metadata, path=path)
        else:
            raise InvalidArgumentError(f"Unsupported metadata for {path}: {metadata!r}")
        return path, vector, metadata
