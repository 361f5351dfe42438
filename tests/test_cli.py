# tests/test_cli.py

import json
import logging
import pytest
from cli import main_cli
from config import SystemConfig


@pytest.fixture(autouse=True)
def restore_logging():
    """Remove handlers installed by the CLI so they do not outlive capsys"""
    yield
    root = logging.getLogger()
    for handler in list(root.handlers):
        if getattr(handler, '_image_index_handler', False):
            root.removeHandler(handler)
            handler.close()

def write_config(tmp_path):
    config = SystemConfig()
    config.index.storage_path = str(tmp_path / "vector_db")
    config.index.dimension = 4
    config.log_dir = str(tmp_path / "logs")
    path = str(tmp_path / "config.yaml")
    config.save(path)
    return path

def test_cli_stats(tmp_path, capsys):
    path = write_config(tmp_path)

    assert main_cli(['-c', path, 'stats', '--json']) == 0
    stats = json.loads(capsys.readouterr().out)
    assert stats['total_vectors'] == 0
    assert stats['dimension'] == 4

def test_cli_remove_unknown(tmp_path, capsys):
    path = write_config(tmp_path)

    assert main_cli(['-c', path, 'remove', 'nothing.jpg']) == 0
    assert "Not indexed" in capsys.readouterr().out

def test_cli_search_missing_file(tmp_path, capsys):
    path = write_config(tmp_path)

    assert main_cli(['-c', path, 'search', str(tmp_path / 'missing.png')]) == 1
    assert "Error" in capsys.readouterr().err
