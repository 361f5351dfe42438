# tests/test_persistence.py

import json
from pathlib import Path
import pytest
import numpy as np
from core.errors import (
    CorruptStateError,
    IndexIOError,
    IndexNotFoundError,
    InvalidArgumentError,
)
from core.models import ImageMetadata, IndexState
from core.persistence import IndexPersistence
from core.record_store import VectorRecordStore


@pytest.fixture
def persistence(tmp_path):
    return IndexPersistence(str(tmp_path / "vector_db"))

def make_state(vectors, paths=None):
    store = VectorRecordStore(dimension=len(vectors[0]))
    paths = paths or [f"img_{i}.jpg" for i in range(len(vectors))]
    for vector, path in zip(vectors, paths):
        metadata = ImageMetadata(path=path, filename=path, size_bytes=1024,
                                 width=64, height=48, format="JPG").stamped()
        store.append(vector, metadata)
    return store.to_state()

def test_round_trip(persistence):
    """Saved vectors, ids and metadata come back unchanged"""
    state = make_state([[0.0, 0.5, 1.0], [2.0, 3.0, 4.0], [-1.0, 0.25, 9.5]])
    persistence.save(state)

    loaded = persistence.load()

    assert loaded.dimension == 3
    assert loaded.next_id == state.next_id
    assert [r.id for r in loaded.records] == [r.id for r in state.records]
    assert [r.metadata for r in loaded.records] == [r.metadata for r in state.records]
    for original, restored in zip(state.records, loaded.records):
        np.testing.assert_array_equal(original.vector, restored.vector)

def test_empty_state_round_trip(persistence):
    persistence.save(IndexState(dimension=4, next_id=7))

    loaded = persistence.load()
    assert loaded.dimension == 4
    assert loaded.next_id == 7
    assert loaded.records == []

def test_save_requires_dimension(persistence):
    with pytest.raises(InvalidArgumentError):
        persistence.save(IndexState())

def test_load_without_files_is_not_found(persistence):
    with pytest.raises(IndexNotFoundError):
        persistence.load()

def test_missing_metadata_is_corrupt(persistence):
    persistence.save(make_state([[0.0, 1.0]]))
    persistence.metadata_path.unlink()

    with pytest.raises(CorruptStateError):
        persistence.load()

def test_missing_index_is_corrupt(persistence):
    persistence.save(make_state([[0.0, 1.0]]))
    persistence.index_path.unlink()

    with pytest.raises(CorruptStateError):
        persistence.load()

def test_record_count_mismatch_is_corrupt(persistence):
    persistence.save(make_state([[0.0, 1.0], [1.0, 0.0]]))
    metadata = json.loads(persistence.metadata_path.read_text())
    metadata['records'] = metadata['records'][:1]
    persistence.metadata_path.write_text(json.dumps(metadata))

    with pytest.raises(CorruptStateError):
        persistence.load()

def test_dimension_mismatch_is_corrupt(persistence):
    persistence.save(make_state([[0.0, 1.0]]))
    metadata = json.loads(persistence.metadata_path.read_text())
    metadata['dimension'] = 3
    persistence.metadata_path.write_text(json.dumps(metadata))

    with pytest.raises(CorruptStateError):
        persistence.load()

def test_torn_pair_is_corrupt(persistence):
    """Metadata from one save next to the index from another is detected"""
    persistence.save(make_state([[0.0, 1.0], [1.0, 0.0]]))
    old_metadata = persistence.metadata_path.read_text()

    persistence.save(make_state([[5.0, 5.0], [6.0, 6.0]]))
    persistence.metadata_path.write_text(old_metadata)

    with pytest.raises(CorruptStateError):
        persistence.load()

def test_garbage_files_are_corrupt(persistence):
    persistence.save(make_state([[0.0, 1.0]]))
    persistence.metadata_path.write_text("{not json")
    with pytest.raises(CorruptStateError):
        persistence.load()

    persistence.save(make_state([[0.0, 1.0]]))
    persistence.index_path.write_bytes(b"definitely not a faiss index")
    with pytest.raises(CorruptStateError):
        persistence.load()

@pytest.mark.parametrize("key, value", [
    ("next_id", "abc"),
    ("next_id", None),
    ("dimension", 2.0),
    ("format_version", "2"),
    ("count", [1]),
])
def test_malformed_header_is_corrupt(persistence, key, value):
    persistence.save(make_state([[0.0, 1.0]]))
    metadata = json.loads(persistence.metadata_path.read_text())
    metadata[key] = value
    persistence.metadata_path.write_text(json.dumps(metadata))

    with pytest.raises(CorruptStateError):
        persistence.load()

def test_unreadable_file_is_io_error(persistence, monkeypatch):
    persistence.save(make_state([[0.0, 1.0]]))

    def unreadable(self):
        raise PermissionError(13, "Permission denied", str(self))
    monkeypatch.setattr(Path, "read_bytes", unreadable)

    with pytest.raises(IndexIOError):
        persistence.load()

def test_failed_write_is_io_error(persistence, monkeypatch):
    def no_space(target, data):
        raise OSError(28, "No space left on device")
    monkeypatch.setattr(persistence, "_atomic_write", no_space)

    with pytest.raises(IndexIOError):
        persistence.save(make_state([[0.0, 1.0]]))

def test_duplicate_ids_are_corrupt(persistence):
    persistence.save(make_state([[0.0, 1.0], [1.0, 0.0]]))
    metadata = json.loads(persistence.metadata_path.read_text())
    metadata['records'][1]['id'] = metadata['records'][0]['id']
    persistence.metadata_path.write_text(json.dumps(metadata))

    with pytest.raises(CorruptStateError):
        persistence.load()

def test_save_leaves_no_temp_files(persistence):
    persistence.save(make_state([[0.0, 1.0]]))
    persistence.save(make_state([[0.0, 1.0], [2.0, 2.0]]))

    names = sorted(p.name for p in persistence.storage_path.iterdir())
    assert names == ["faiss.index", "metadata.json"]

def test_reset_removes_artifacts_and_directory(persistence):
    persistence.save(make_state([[0.0, 1.0]]))
    persistence.reset()

    assert not persistence.storage_path.exists()
    with pytest.raises(IndexNotFoundError):
        persistence.load()

def test_reset_keeps_directory_with_foreign_files(persistence):
    persistence.save(make_state([[0.0, 1.0]]))
    other = persistence.storage_path / "notes.txt"
    other.write_text("keep me")

    persistence.reset()

    assert other.exists()
    assert not persistence.exists()

def test_artifact_sizes_and_mtime(persistence):
    assert persistence.artifact_sizes() == (0, 0)
    assert persistence.last_modified() is None

    persistence.save(make_state([[0.0, 1.0]]))
    index_size, metadata_size = persistence.artifact_sizes()

    assert index_size > 0
    assert metadata_size > 0
    assert persistence.last_modified() is not None
