# tests/test_config.py

import json
import logging
import yaml
from config import SystemConfig
from utils.file_utils import format_file_size, get_image_files
from utils.logging_config import JSONFormatter


def test_defaults_when_file_missing(tmp_path):
    config = SystemConfig.load(str(tmp_path / "missing.yaml"))

    assert config.index.dimension == 768
    assert config.index.backend == "flat"
    assert config.embedding.model == "llava:latest"
    assert config.search.max_results == 5

def test_save_and_load(tmp_path):
    path = str(tmp_path / "config.yaml")
    config = SystemConfig()
    config.index.storage_path = "elsewhere/db"
    config.index.backend = "faiss"
    config.duplicate_detection.similarity_threshold = 0.95
    config.save(path)

    loaded = SystemConfig.load(path)
    assert loaded.index.storage_path == "elsewhere/db"
    assert loaded.index.backend == "faiss"
    assert loaded.duplicate_detection.similarity_threshold == 0.95
    assert loaded.embedding.base_url == config.embedding.base_url

def test_partial_file_keeps_defaults(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.dump({'log_level': 'DEBUG', 'search': {'max_results': 20}}))

    loaded = SystemConfig.load(str(path))
    assert loaded.log_level == 'DEBUG'
    assert loaded.search.max_results == 20
    assert loaded.search.similarity_threshold == 0.8
    assert loaded.index.dimension == 768

def test_get_image_files(tmp_path):
    (tmp_path / "sub").mkdir()
    for name in ["a.JPG", "b.png", "sub/c.webp", "notes.txt"]:
        (tmp_path / name).write_bytes(b"x")

    assert [p.split("/")[-1] for p in get_image_files(str(tmp_path))] == ["a.JPG", "b.png", "c.webp"]
    assert len(get_image_files(str(tmp_path), recursive=False)) == 2

def test_format_file_size():
    assert format_file_size(512) == "512.00 B"
    assert format_file_size(2048) == "2.00 KB"

def test_json_formatter():
    record = logging.LogRecord("core.vector_store", logging.INFO, __file__, 10,
                               "Added %d vectors", (3,), None)
    data = json.loads(JSONFormatter().format(record))

    assert data['message'] == "Added 3 vectors"
    assert data['level'] == "INFO"
    assert data['logger'] == "core.vector_store"
