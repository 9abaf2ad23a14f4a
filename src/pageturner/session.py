"""One open document: builder output, navigation and progress wired together."""

from __future__ import annotations

import asyncio
import logging
import time
from pathlib import PurePosixPath
from typing import Any, Optional

from pageturner.builders.base import build_document, detect_format
from pageturner.config import AppConfig
from pageturner.library.database import LAST_READ_KEY, Database
from pageturner.library.fetch import ContentFetcher
from pageturner.library.models import (
    Bookmark,
    Document,
    ReadingProgress,
    document_key,
    index_for_locator,
)
from pageturner.navigation.adapters import FormatAdapter, adapter_for
from pageturner.navigation.controller import NavigationController
from pageturner.navigation.events import EngineEvents
from pageturner.progress.coordinator import ProgressCoordinator, Viewport

log = logging.getLogger(__name__)


class ReaderSession:
    """Explicit per-document context passed to every component."""

    def __init__(
        self,
        book_path: str,
        document: Document,
        adapter: FormatAdapter,
        viewport: Viewport,
        db: Database,
        config: Optional[AppConfig] = None,
    ) -> None:
        self.book_path = book_path
        self.book_key = document_key(book_path)
        self.document = document
        self.adapter = adapter
        self.db = db
        self.events = EngineEvents()
        self.navigation = NavigationController(document, adapter, self.events)
        self.progress = ProgressCoordinator(
            self.navigation, viewport, db, self.book_key, config
        )

    # ── Navigation shortcuts ───────────────────────

    def go_to(self, index: int) -> bool:
        return self.navigation.go_to(index)

    def next(self) -> bool:
        return self.navigation.next()

    def prev(self) -> bool:
        return self.navigation.prev()

    # ── Progress ───────────────────────────────────

    def start(self) -> Optional[asyncio.Task]:
        """Resume at the saved position, or display the first chapter."""
        task = self.progress.restore()
        if task is None:
            self.navigation.go_to(0)
        return task

    def save_progress(self) -> ReadingProgress:
        return self.progress.capture()

    # ── Bookmarks ──────────────────────────────────

    def add_bookmark(self, title: str = "", level: int = 1) -> Optional[Bookmark]:
        locator = self.navigation.current_locator
        if locator is None:
            return None
        chapter = self.navigation.current_chapter
        created = time.time()
        bm = Bookmark(
            id=Bookmark.make_id(self.book_key, locator, created),
            book_key=self.book_key,
            title=title.strip() or chapter.label,
            locator=locator,
            level=level,
            chapter_label=chapter.label,
            created_at=created,
        )
        self.db.add_bookmark(bm)
        return bm

    def bookmarks(self) -> list[Bookmark]:
        return self.db.list_bookmarks(self.book_key)

    def remove_bookmark(self, bm: Bookmark) -> bool:
        if bm.book_key != self.book_key:
            return False
        return self.db.remove_bookmark(bm.id)

    def clear_bookmarks(self) -> int:
        return self.db.clear_bookmarks(self.book_key)

    def go_to_bookmark(self, bm: Bookmark) -> bool:
        if bm.book_key != self.book_key:
            return False
        return self.navigation.go_to(index_for_locator(self.document, bm.locator))

    # ── Lifecycle ──────────────────────────────────

    def close(self) -> None:
        self.progress.close()


async def open_session(
    book_path: str,
    fetcher: ContentFetcher,
    db: Database,
    viewport: Viewport,
    renderer: Any = None,
    config: Optional[AppConfig] = None,
) -> ReaderSession:
    """Fetch, build and wire a session. Builder errors propagate to the caller."""
    data = await fetcher.fetch(book_path)
    name = PurePosixPath(book_path.replace("\\", "/")).name
    fmt = detect_format(name, data)
    document = await asyncio.to_thread(
        build_document, fmt, data, name=name, config=config
    )
    log.info(
        "Opened %s as %s: %d chapters, %d units",
        name,
        fmt,
        len(document.chapters),
        document.total_units,
    )
    db.save(LAST_READ_KEY, {"path": book_path, "name": name, "timestamp": time.time()})
    return ReaderSession(
        book_path, document, adapter_for(document, renderer), viewport, db, config
    )
