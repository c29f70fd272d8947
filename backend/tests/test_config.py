import os
from pathlib import Path

import pytest

from storyflow import config


def test_require_store_mode(monkeypatch):
    monkeypatch.delenv("STORYFLOW_STORE", raising=False)
    with pytest.raises(RuntimeError, match="未配置"):
        config.require_store_mode()

    monkeypatch.setenv("STORYFLOW_STORE", " Kuzu ")
    assert config.require_store_mode() == "kuzu"

    monkeypatch.setenv("STORYFLOW_STORE", "sqlite")
    with pytest.raises(RuntimeError, match="非法"):
        config.require_store_mode()


def test_resolve_kuzu_db_path(monkeypatch, tmp_path):
    monkeypatch.delenv("KUZU_DB_PATH", raising=False)
    assert config.resolve_kuzu_db_path() == config.REPO_ROOT / "backend" / "data" / "storyflow.db"

    monkeypatch.setenv("KUZU_DB_PATH", "data/custom.db")
    assert config.resolve_kuzu_db_path() == config.REPO_ROOT / "data" / "custom.db"

    absolute = tmp_path / "abs.db"
    monkeypatch.setenv("KUZU_DB_PATH", str(absolute))
    assert config.resolve_kuzu_db_path() == Path(absolute)


def test_get_int_validation(monkeypatch):
    monkeypatch.delenv("STORYFLOW_TEST_INT", raising=False)
    assert config._get_int("STORYFLOW_TEST_INT", 7, minimum=0) == 7

    monkeypatch.setenv("STORYFLOW_TEST_INT", "12")
    assert config._get_int("STORYFLOW_TEST_INT", 7, minimum=0) == 12

    monkeypatch.setenv("STORYFLOW_TEST_INT", "abc")
    with pytest.raises(ValueError, match="integer"):
        config._get_int("STORYFLOW_TEST_INT", 7, minimum=0)

    monkeypatch.setenv("STORYFLOW_TEST_INT", "-1")
    with pytest.raises(ValueError, match=">= 0"):
        config._get_int("STORYFLOW_TEST_INT", 7, minimum=0)


def test_load_env_file_does_not_override(monkeypatch, tmp_path):
    env_file = tmp_path / ".env"
    env_file.write_text(
        "# comment\nSTORYFLOW_A='from-file'\nSTORYFLOW_B=from-file\n", encoding="utf-8"
    )
    monkeypatch.delenv("STORYFLOW_A", raising=False)
    monkeypatch.setenv("STORYFLOW_B", "from-env")
    config._load_env_file(env_file)
    assert os.environ["STORYFLOW_A"] == "from-file"
    assert os.environ["STORYFLOW_B"] == "from-env"
    monkeypatch.delenv("STORYFLOW_A")
