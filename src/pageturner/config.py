"""Configuration management via .env file."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


def _xdg_data_home() -> Path:
    return Path(os.environ.get("XDG_DATA_HOME", Path.home() / ".local" / "share"))


def _xdg_config_home() -> Path:
    return Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return max(0.0, float(raw))
    except ValueError:
        return default


@dataclass
class AppConfig:
    # Paths
    data_dir: Path = field(default_factory=lambda: _xdg_data_home() / "pageturner")
    config_dir: Path = field(default_factory=lambda: _xdg_config_home() / "pageturner")
    db_path: Path = field(init=False)

    # Content source
    server_url: str = ""  # empty: read books from books_dir
    books_dir: Path = field(default_factory=Path.cwd)

    # Plain-text decoding
    primary_encoding: str = "utf-8"
    fallback_encoding: str = "gbk"

    # Persistence debounce windows, in seconds
    progress_debounce: float = 1.0
    prefs_debounce: float = 0.1

    # Store typography per book instead of globally
    isolate_book_prefs: bool = False

    log_path: Path = field(init=False)

    def __post_init__(self) -> None:
        self.db_path = self.data_dir / "pageturner.db"
        self.log_path = self.data_dir / "pageturner.log"
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.config_dir.mkdir(parents=True, exist_ok=True)


def load_config(env_path: Optional[Path] = None) -> AppConfig:
    """Load config from .env file. Searches CWD then config dir."""
    search_paths = [
        env_path,
        Path.cwd() / ".env",
        _xdg_config_home() / "pageturner" / ".env",
        Path.home() / ".env",
    ]
    for p in search_paths:
        if p and p.exists():
            load_dotenv(p)
            break

    defaults = AppConfig()
    books_dir = os.getenv("PAGETURNER_BOOKS_DIR")
    return AppConfig(
        server_url=os.getenv("PAGETURNER_SERVER_URL", defaults.server_url),
        books_dir=Path(books_dir).expanduser() if books_dir else defaults.books_dir,
        primary_encoding=os.getenv(
            "PAGETURNER_PRIMARY_ENCODING", defaults.primary_encoding
        ),
        fallback_encoding=os.getenv(
            "PAGETURNER_FALLBACK_ENCODING", defaults.fallback_encoding
        ),
        progress_debounce=_env_float(
            "PAGETURNER_PROGRESS_DEBOUNCE", defaults.progress_debounce
        ),
        prefs_debounce=_env_float("PAGETURNER_PREFS_DEBOUNCE", defaults.prefs_debounce),
        isolate_book_prefs=_env_bool(
            "PAGETURNER_ISOLATE_BOOK_PREFS", defaults.isolate_book_prefs
        ),
    )
