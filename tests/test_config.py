"""Tests for configuration."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from pageturner.config import AppConfig, load_config

ENV_NAMES = [
    "PAGETURNER_SERVER_URL",
    "PAGETURNER_BOOKS_DIR",
    "PAGETURNER_PRIMARY_ENCODING",
    "PAGETURNER_FALLBACK_ENCODING",
    "PAGETURNER_PROGRESS_DEBOUNCE",
    "PAGETURNER_PREFS_DEBOUNCE",
    "PAGETURNER_ISOLATE_BOOK_PREFS",
]


@pytest.fixture
def clean_env(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "xdg-data"))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg-config"))
    monkeypatch.chdir(tmp_path)
    for name in ENV_NAMES:
        monkeypatch.delenv(name, raising=False)
    yield
    # load_dotenv writes straight into os.environ
    for name in ENV_NAMES:
        os.environ.pop(name, None)


class TestAppConfig:
    def test_defaults(self, tmp_path: Path):
        config = AppConfig(data_dir=tmp_path / "data", config_dir=tmp_path / "config")
        assert config.server_url == ""
        assert config.primary_encoding == "utf-8"
        assert config.fallback_encoding == "gbk"
        assert config.progress_debounce == 1.0
        assert config.isolate_book_prefs is False
        assert config.db_path == tmp_path / "data" / "pageturner.db"
        assert config.log_path == tmp_path / "data" / "pageturner.log"

    def test_dirs_created(self, tmp_path: Path):
        data = tmp_path / "data"
        conf = tmp_path / "config"
        AppConfig(data_dir=data, config_dir=conf)
        assert data.exists()
        assert conf.exists()


class TestLoadConfig:
    def test_load_from_env_file(self, tmp_path: Path, clean_env):
        env_file = tmp_path / ".env"
        env_file.write_text(
            "PAGETURNER_SERVER_URL=http://localhost:3000\n"
            "PAGETURNER_FALLBACK_ENCODING=big5\n"
            "PAGETURNER_PROGRESS_DEBOUNCE=2.5\n"
            "PAGETURNER_ISOLATE_BOOK_PREFS=true\n"
            f"PAGETURNER_BOOKS_DIR={tmp_path / 'books'}\n"
        )
        config = load_config(env_path=env_file)
        assert config.server_url == "http://localhost:3000"
        assert config.fallback_encoding == "big5"
        assert config.progress_debounce == 2.5
        assert config.isolate_book_prefs is True
        assert config.books_dir == tmp_path / "books"

    def test_empty_env_file_gives_defaults(self, tmp_path: Path, clean_env):
        env_file = tmp_path / ".env"
        env_file.write_text("")
        config = load_config(env_path=env_file)
        assert config.server_url == ""
        assert config.prefs_debounce == 0.1
        assert config.data_dir == tmp_path / "xdg-data" / "pageturner"

    def test_bad_numbers_fall_back(self, tmp_path: Path, clean_env):
        env_file = tmp_path / ".env"
        env_file.write_text(
            "PAGETURNER_PROGRESS_DEBOUNCE=soon\n"
            "PAGETURNER_PREFS_DEBOUNCE=-4\n"
            "PAGETURNER_ISOLATE_BOOK_PREFS=maybe\n"
        )
        config = load_config(env_path=env_file)
        assert config.progress_debounce == 1.0
        assert config.prefs_debounce == 0.0
        assert config.isolate_book_prefs is False
