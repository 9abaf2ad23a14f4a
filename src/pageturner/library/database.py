"""SQLite persistence for reading state (progress, preferences) and bookmarks."""

from __future__ import annotations

import json
import logging
import sqlite3
import time
from pathlib import Path
from typing import Any, Optional

from .models import Bookmark, locator_from_dict

log = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS reading_state (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at REAL NOT NULL
);

CREATE TABLE IF NOT EXISTS bookmarks (
    id TEXT PRIMARY KEY,
    book_key TEXT NOT NULL,
    title TEXT NOT NULL,
    level INTEGER DEFAULT 1,
    locator TEXT NOT NULL,
    chapter_label TEXT DEFAULT '',
    created_at REAL NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_bookmarks_book ON bookmarks(book_key);
"""

PROGRESS_PREFIX = "progress:"
PREFS_PREFIX = "prefs:"
GLOBAL_PREFS_KEY = "prefs"
LAST_READ_KEY = "last_read"


def progress_key(book_key: str) -> str:
    return PROGRESS_PREFIX + book_key


def prefs_key(book_key: Optional[str] = None) -> str:
    return PREFS_PREFIX + book_key if book_key else GLOBAL_PREFS_KEY


class Database:
    """Key-value reading state plus bookmarks.

    ``save`` and ``load`` never raise: a failed write is logged and reported
    through the return value, a failed read is treated as a cache miss.
    """

    def __init__(self, db_path: Path) -> None:
        self._db_path = db_path
        self._conn = sqlite3.connect(str(db_path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._init_schema()

    def _init_schema(self) -> None:
        self._conn.executescript(_SCHEMA)
        self._conn.commit()

    def close(self) -> None:
        self._conn.close()

    # ── Key-value ──────────────────────────────────────

    def save(self, key: str, value: Any) -> bool:
        try:
            payload = json.dumps(value, ensure_ascii=False)
            self._conn.execute(
                "INSERT OR REPLACE INTO reading_state (key, value, updated_at) VALUES (?, ?, ?)",
                (key, payload, time.time()),
            )
            self._conn.commit()
        except (TypeError, ValueError, sqlite3.Error) as e:
            log.warning("Failed to save %s: %s", key, e)
            return False
        return True

    def load(self, key: str) -> Any:
        try:
            row = self._conn.execute(
                "SELECT value FROM reading_state WHERE key = ?", (key,)
            ).fetchone()
        except sqlite3.Error as e:
            log.warning("Failed to load %s: %s", key, e)
            return None
        if not row:
            return None
        try:
            return json.loads(row["value"])
        except ValueError as e:
            log.warning("Discarding unreadable value for %s: %s", key, e)
            return None

    # ── Bookmarks ──────────────────────────────────────

    def add_bookmark(self, bm: Bookmark) -> bool:
        try:
            self._conn.execute(
                """INSERT OR REPLACE INTO bookmarks
                   (id, book_key, title, level, locator, chapter_label, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?)""",
                (
                    bm.id,
                    bm.book_key,
                    bm.title,
                    bm.level,
                    json.dumps(bm.locator.to_dict()),
                    bm.chapter_label,
                    bm.created_at,
                ),
            )
            self._conn.commit()
        except sqlite3.Error as e:
            log.warning("Failed to save bookmark %s: %s", bm.id, e)
            return False
        return True

    def remove_bookmark(self, bookmark_id: str) -> bool:
        try:
            cur = self._conn.execute("DELETE FROM bookmarks WHERE id = ?", (bookmark_id,))
            self._conn.commit()
        except sqlite3.Error as e:
            log.warning("Failed to remove bookmark %s: %s", bookmark_id, e)
            return False
        return cur.rowcount > 0

    def clear_bookmarks(self, book_key: str) -> int:
        try:
            cur = self._conn.execute("DELETE FROM bookmarks WHERE book_key = ?", (book_key,))
            self._conn.commit()
        except sqlite3.Error as e:
            log.warning("Failed to clear bookmarks for %s: %s", book_key, e)
            return 0
        return cur.rowcount

    def list_bookmarks(self, book_key: str) -> list[Bookmark]:
        """Bookmarks of one book, newest first. Rows with unreadable locators are skipped."""
        rows = self._conn.execute(
            "SELECT * FROM bookmarks WHERE book_key = ? ORDER BY created_at DESC",
            (book_key,),
        ).fetchall()
        bookmarks: list[Bookmark] = []
        for r in rows:
            try:
                locator = locator_from_dict(json.loads(r["locator"]))
            except ValueError:
                locator = None
            if locator is None:
                log.warning("Skipping bookmark %s with unreadable locator", r["id"])
                continue
            bookmarks.append(
                Bookmark(
                    id=r["id"],
                    book_key=r["book_key"],
                    title=r["title"],
                    level=r["level"],
                    locator=locator,
                    chapter_label=r["chapter_label"],
                    created_at=r["created_at"],
                )
            )
        return bookmarks
