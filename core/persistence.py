# core/persistence.py

import hashlib
import json
import logging
import os
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional, Tuple

import faiss
import numpy as np

from core.errors import (
    CorruptStateError,
    IndexIOError,
    IndexNotFoundError,
    InvalidArgumentError,
)
from core.models import ImageMetadata, IndexState, VectorRecord

logger = logging.getLogger(__name__)

FORMAT_VERSION = 1
INDEX_FILE = "faiss.index"
METADATA_FILE = "metadata.json"


def vector_digest(vectors: np.ndarray) -> str:
    """SHA-256 of the float32 vector payload, used to pair the two artifacts"""
    payload = np.ascontiguousarray(vectors, dtype=np.float32)
    return hashlib.sha256(payload.tobytes()).hexdigest()


class IndexPersistence:
    """
    Saves and loads an index as two companion files:

    - ``faiss.index``: a serialized FAISS IndexFlatL2 holding the dimension
      and the raw vectors in record order
    - ``metadata.json``: dimension, id counter, vector count, a digest of the
      vector payload and the ordered metadata records

    Both files are rewritten in full on every save. Each one goes to a temp
    file that is fsynced and renamed into place, index first; the digest in
    the metadata file exposes a pair torn by a crash between the renames.
    """

    def __init__(self, storage_path: str,
                 index_filename: str = INDEX_FILE,
                 metadata_filename: str = METADATA_FILE):
        self.storage_path = Path(storage_path)
        self.index_path = self.storage_path / index_filename
        self.metadata_path = self.storage_path / metadata_filename

    def exists(self) -> bool:
        return self.index_path.exists() or self.metadata_path.exists()

    def save(self, state: IndexState):
        """Write both artifacts for the given state"""
        if state.dimension is None:
            raise InvalidArgumentError("Cannot save an index without a dimension")

        dimension = int(state.dimension)
        if state.records:
            vectors = np.vstack([r.vector for r in state.records]).astype(np.float32)
        else:
            vectors = np.empty((0, dimension), dtype=np.float32)

        index = faiss.IndexFlatL2(dimension)
        if len(vectors):
            index.add(vectors)
        index_bytes = faiss.serialize_index(index).tobytes()

        metadata = {
            'format_version': FORMAT_VERSION,
            'dimension': dimension,
            'next_id': int(state.next_id),
            'count': len(state.records),
            'vector_sha256': vector_digest(vectors),
            'saved_at': datetime.now().isoformat(),
            'records': [
                {'id': int(r.id), **r.metadata.to_dict()} for r in state.records
            ],
        }
        metadata_bytes = json.dumps(metadata, indent=2, ensure_ascii=False).encode('utf-8')

        try:
            self.storage_path.mkdir(parents=True, exist_ok=True)
            self._atomic_write(self.index_path, index_bytes)
            self._atomic_write(self.metadata_path, metadata_bytes)
        except OSError as e:
            raise IndexIOError(f"Failed to save index to {self.storage_path}: {e}") from e

        logger.info(f"Saved {len(state.records)} vectors to {self.storage_path}")

    def load(self) -> IndexState:
        """
        Read both artifacts back into an IndexState

        Raises:
            IndexNotFoundError: neither artifact exists
            CorruptStateError: only one exists or they disagree
            IndexIOError: a file could not be read
        """
        has_index = self.index_path.exists()
        has_metadata = self.metadata_path.exists()

        if not has_index and not has_metadata:
            raise IndexNotFoundError(f"No index found at {self.storage_path}")
        if not has_index:
            raise CorruptStateError(f"Index file missing: {self.index_path}")
        if not has_metadata:
            raise CorruptStateError(f"Metadata file missing: {self.metadata_path}")

        try:
            index_bytes = self.index_path.read_bytes()
            metadata_text = self.metadata_path.read_text(encoding='utf-8')
        except UnicodeDecodeError as e:
            raise CorruptStateError(f"Metadata file is not valid UTF-8: {e}") from e
        except OSError as e:
            raise IndexIOError(f"Failed to read index from {self.storage_path}: {e}") from e

        dimension, vectors = self._decode_index(index_bytes)
        metadata = self._decode_metadata(metadata_text)
        state = self._assemble(dimension, vectors, metadata)

        logger.info(f"Loaded {len(state.records)} vectors from {self.storage_path}")
        return state

    def reset(self):
        """Delete both artifacts and the storage directory if nothing else is in it"""
        try:
            for path in (self.index_path, self.metadata_path):
                if path.exists():
                    path.unlink()
            if self.storage_path.is_dir():
                for leftover in self.storage_path.glob(".*.tmp"):
                    leftover.unlink()
                if not any(self.storage_path.iterdir()):
                    self.storage_path.rmdir()
        except OSError as e:
            raise IndexIOError(f"Failed to reset index at {self.storage_path}: {e}") from e

        logger.info(f"Removed index files under {self.storage_path}")

    def artifact_sizes(self) -> Tuple[int, int]:
        """Sizes in bytes of the index and metadata files (0 when absent)"""
        return (self._size(self.index_path), self._size(self.metadata_path))

    def last_modified(self) -> Optional[str]:
        mtimes = []
        for path in (self.index_path, self.metadata_path):
            try:
                mtimes.append(path.stat().st_mtime)
            except FileNotFoundError:
                continue
        if not mtimes:
            return None
        return datetime.fromtimestamp(max(mtimes)).isoformat()

    @staticmethod
    def _size(path: Path) -> int:
        try:
            return path.stat().st_size
        except FileNotFoundError:
            return 0

    def _atomic_write(self, target: Path, data: bytes):
        fd, tmp_name = tempfile.mkstemp(
            dir=str(target.parent), prefix=f".{target.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, 'wb') as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, target)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    def _decode_index(self, index_bytes: bytes) -> Tuple[int, np.ndarray]:
        try:
            index = faiss.deserialize_index(np.frombuffer(bytearray(index_bytes), dtype=np.uint8))
            dimension = int(index.d)
            if index.ntotal:
                vectors = index.reconstruct_n(0, index.ntotal)
            else:
                vectors = np.empty((0, dimension), dtype=np.float32)
        except RuntimeError as e:
            raise CorruptStateError(f"Unreadable index file {self.index_path}: {e}") from e
        return dimension, np.asarray(vectors, dtype=np.float32).reshape(-1, dimension)

    def _decode_metadata(self, metadata_text: str) -> Dict:
        try:
            metadata = json.loads(metadata_text)
        except json.JSONDecodeError as e:
            raise CorruptStateError(f"Unreadable metadata file {self.metadata_path}: {e}") from e

        if not isinstance(metadata, dict):
            raise CorruptStateError("Metadata file does not hold an object")
        for key in ('dimension', 'next_id', 'records'):
            if key not in metadata:
                raise CorruptStateError(f"Metadata file has no '{key}'")
        if not isinstance(metadata['records'], list):
            raise CorruptStateError("Metadata 'records' is not a list")
        for key in ('dimension', 'next_id', 'format_version', 'count'):
            value = metadata.get(key, 0)
            if isinstance(value, bool) or not isinstance(value, int):
                raise CorruptStateError(f"Metadata '{key}' is not an integer: {value!r}")
        if metadata.get('format_version', FORMAT_VERSION) > FORMAT_VERSION:
            raise CorruptStateError(
                f"Unsupported metadata format version {metadata['format_version']}"
            )
        return metadata

    def _assemble(self, dimension: int, vectors: np.ndarray, metadata: Dict) -> IndexState:
        entries = metadata['records']

        if metadata['dimension'] != dimension:
            raise CorruptStateError(
                f"Index dimension {dimension} does not match metadata "
                f"dimension {metadata['dimension']}"
            )
        if len(entries) != vectors.shape[0]:
            raise CorruptStateError(
                f"Index holds {vectors.shape[0]} vectors but metadata lists "
                f"{len(entries)} records"
            )
        if 'count' in metadata and metadata['count'] != len(entries):
            raise CorruptStateError("Metadata record count does not match its header")
        if 'vector_sha256' in metadata and metadata['vector_sha256'] != vector_digest(vectors):
            raise CorruptStateError("Index and metadata files come from different saves")

        next_id = metadata['next_id']
        records = []
        seen_ids = set()
        seen_paths = set()
        for vector, entry in zip(vectors, entries):
            try:
                record_id = int(entry['id'])
                meta = ImageMetadata.from_dict(entry)
            except (KeyError, TypeError, ValueError) as e:
                raise CorruptStateError(f"Malformed metadata record {entry!r}: {e}") from e

            if record_id in seen_ids or record_id >= next_id or record_id < 0:
                raise CorruptStateError(f"Invalid or duplicate record id {record_id}")
            if meta.path in seen_paths:
                raise CorruptStateError(f"Path indexed twice: {meta.path}")
            seen_ids.add(record_id)
            seen_paths.add(meta.path)

            vector = np.array(vector, dtype=np.float32)
            vector.setflags(write=False)
            records.append(VectorRecord(record_id, vector, meta))

        return IndexState(dimension=dimension, next_id=next_id, records=records)
