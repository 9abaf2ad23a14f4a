"""Tests for database operations."""

from __future__ import annotations

import time

from pageturner.library.database import (
    LAST_READ_KEY,
    Database,
    prefs_key,
    progress_key,
)
from pageturner.library.models import (
    Bookmark,
    LineLocator,
    PageLocator,
    ReadingProgress,
    RefLocator,
)


def _make_bookmark(
    book_key: str = "book1", locator=None, title: str = "Mark", created_at: float | None = None
) -> Bookmark:
    locator = locator or PageLocator(3, 120.0)
    created = created_at if created_at is not None else time.time()
    return Bookmark(
        id=Bookmark.make_id(book_key, locator, created),
        book_key=book_key,
        title=title,
        locator=locator,
        chapter_label="Part 1",
        created_at=created,
    )


class TestKeys:
    def test_progress_key(self):
        assert progress_key("abc") == "progress:abc"

    def test_prefs_key(self):
        assert prefs_key() == "prefs"
        assert prefs_key("abc") == "prefs:abc"


class TestKeyValue:
    def test_save_and_load(self, db: Database):
        assert db.save("k", {"a": 1, "b": [1, 2]}) is True
        assert db.load("k") == {"a": 1, "b": [1, 2]}

    def test_load_missing(self, db: Database):
        assert db.load("nothing") is None

    def test_overwrite(self, db: Database):
        db.save("k", 1)
        db.save("k", 2)
        assert db.load("k") == 2

    def test_unserializable_value_fails_quietly(self, db: Database):
        assert db.save("k", object()) is False
        assert db.load("k") is None

    def test_corrupt_row_is_cache_miss(self, db: Database):
        db._conn.execute(
            "INSERT INTO reading_state (key, value, updated_at) VALUES (?, ?, ?)",
            ("bad", "{not json", time.time()),
        )
        assert db.load("bad") is None

    def test_closed_database_does_not_raise(self, tmp_path):
        database = Database(tmp_path / "closed.db")
        database.close()
        assert database.save("k", 1) is False
        assert database.load("k") is None

    def test_last_read_overwritten(self, db: Database):
        db.save(LAST_READ_KEY, {"path": "/a.txt"})
        db.save(LAST_READ_KEY, {"path": "/b.txt"})
        assert db.load(LAST_READ_KEY) == {"path": "/b.txt"}

    def test_unicode_value(self, db: Database):
        db.save("k", {"title": "第一章 开端"})
        assert db.load("k")["title"] == "第一章 开端"


class TestReadingProgress:
    def test_stored_under_progress_key(self, db: Database):
        progress = ReadingProgress(percentage=37.5, locator=LineLocator(40, 41))
        assert db.save(progress_key("book1"), progress.to_dict())
        fetched = ReadingProgress.from_dict(db.load(progress_key("book1")))
        assert fetched is not None
        assert fetched.percentage == 37.5
        assert fetched.locator == LineLocator(40, 41)

    def test_missing_progress(self, db: Database):
        assert ReadingProgress.from_dict(db.load(progress_key("nonexistent"))) is None

    def test_books_kept_apart(self, db: Database):
        db.save(progress_key("a"), ReadingProgress(percentage=10).to_dict())
        db.save(progress_key("b"), ReadingProgress(percentage=90).to_dict())
        assert db.load(progress_key("a"))["percentage"] == 10
        assert db.load(progress_key("b"))["percentage"] == 90


class TestBookmarks:
    def test_add_and_list(self, db: Database):
        bm = _make_bookmark()
        assert db.add_bookmark(bm)
        marks = db.list_bookmarks("book1")
        assert len(marks) == 1
        assert marks[0].title == "Mark"
        assert marks[0].locator == PageLocator(3, 120.0)
        assert marks[0].chapter_label == "Part 1"

    def test_newest_first(self, db: Database):
        now = time.time()
        db.add_bookmark(_make_bookmark(title="Old", locator=RefLocator("a.html"), created_at=now - 100))
        db.add_bookmark(_make_bookmark(title="New", locator=RefLocator("b.html"), created_at=now))
        assert [m.title for m in db.list_bookmarks("book1")] == ["New", "Old"]

    def test_remove(self, db: Database):
        bm = _make_bookmark()
        db.add_bookmark(bm)
        assert db.remove_bookmark(bm.id) is True
        assert db.list_bookmarks("book1") == []
        assert db.remove_bookmark(bm.id) is False

    def test_remove_on_closed_database_does_not_raise(self, tmp_path):
        database = Database(tmp_path / "closed.db")
        database.close()
        assert database.remove_bookmark("x") is False
        assert database.clear_bookmarks("book1") == 0

    def test_clear_only_one_book(self, db: Database):
        db.add_bookmark(_make_bookmark("book1"))
        db.add_bookmark(_make_bookmark("book1", locator=PageLocator(9)))
        db.add_bookmark(_make_bookmark("book2"))
        assert db.clear_bookmarks("book1") == 2
        assert db.list_bookmarks("book1") == []
        assert len(db.list_bookmarks("book2")) == 1

    def test_unreadable_locator_skipped(self, db: Database):
        db.add_bookmark(_make_bookmark())
        db._conn.execute(
            "INSERT INTO bookmarks (id, book_key, title, level, locator, chapter_label, created_at)"
            " VALUES (?, ?, ?, ?, ?, ?, ?)",
            ("broken", "book1", "Bad", 1, '{"kind": "page"}', "", time.time()),
        )
        marks = db.list_bookmarks("book1")
        assert [m.title for m in marks] == ["Mark"]
