"""Shared fixtures and fake collaborators for tests."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Callable, Optional

import pytest

from pageturner.config import AppConfig
from pageturner.library.database import Database
from pageturner.library.models import (
    FORMAT_PACKAGE,
    FORMAT_PAGED,
    FORMAT_TEXT,
    Chapter,
    Document,
    LineLocator,
    PageLocator,
    RefLocator,
)
from pageturner.progress.prefs import TypographyPrefs


@pytest.fixture
def db(tmp_path: Path) -> Database:
    db_path = tmp_path / "test.db"
    database = Database(db_path)
    yield database
    database.close()


@pytest.fixture
def config(tmp_path: Path) -> AppConfig:
    return AppConfig(
        data_dir=tmp_path / "data",
        config_dir=tmp_path / "config",
        books_dir=tmp_path / "books",
        progress_debounce=0.01,
        prefs_debounce=0.01,
    )


# ── Documents ──────────────────────────────────────


def package_doc(n: int = 5) -> Document:
    chapters = [
        Chapter(label=f"Chapter {i + 1}", locator=RefLocator(href=f"ch{i + 1}.xhtml"))
        for i in range(n)
    ]
    return Document(format=FORMAT_PACKAGE, chapters=chapters, total_units=n)


def paged_doc(pages: int = 20, starts: tuple[int, ...] = (0, 5, 12)) -> Document:
    chapters = [
        Chapter(label=f"Part {i + 1}", locator=PageLocator(page_index=p))
        for i, p in enumerate(starts)
    ]
    return Document(format=FORMAT_PAGED, chapters=chapters, total_units=pages)


def text_doc() -> Document:
    chapters = [
        Chapter(label="One", locator=LineLocator(0, 10), paragraphs=["One", "a"]),
        Chapter(label="Two", locator=LineLocator(10, 20), paragraphs=["Two", "b"]),
        Chapter(label="Three", locator=LineLocator(20, 30), paragraphs=["Three", "c"]),
    ]
    return Document(format=FORMAT_TEXT, chapters=chapters, total_units=30)


# ── Fake renderers ─────────────────────────────────


class FakePackageRenderer:
    """``display_by_ref`` blocks on ``gate`` when one is set."""

    def __init__(self) -> None:
        self.displayed: list[str] = []
        self.gate: Optional[asyncio.Event] = None
        self.fail = False
        self._callback: Optional[Callable[[str], Any]] = None

    async def display_by_ref(self, ref: str) -> None:
        self.displayed.append(ref)
        if self.gate is not None:
            await self.gate.wait()
        if self.fail:
            raise RuntimeError("render failed")

    def on_relocated(self, callback: Callable[[str], Any]) -> None:
        self._callback = callback

    def emit_relocated(self, ref: str) -> None:
        assert self._callback is not None
        self._callback(ref)


class FakePagedRenderer:
    """Synchronous by default; with ``async_mode`` each seek returns a Future."""

    def __init__(self, async_mode: bool = False) -> None:
        self.async_mode = async_mode
        self.seeks: list[tuple[int, Optional[float]]] = []
        self.futures: list[asyncio.Future] = []
        self._callback: Optional[Callable[[int], Any]] = None

    def scroll_to_page(self, index: int, y_offset: Optional[float] = None):
        self.seeks.append((index, y_offset))
        if self.async_mode:
            fut = asyncio.get_running_loop().create_future()
            self.futures.append(fut)
            return fut
        return None

    def on_visible_page(self, callback: Callable[[int], Any]) -> None:
        self._callback = callback

    def emit_visible(self, page: int) -> None:
        assert self._callback is not None
        self._callback(page)


class FakeViewport:
    """A scroll container whose content height depends on typography.

    New typography takes effect on the next ``wait_settled``, like a browser
    reflow; the offset is clamped to the new extent at that point.
    """

    TEXT_AREA = 12_000_000.0  # px^2 of text at line height 1.8

    def __init__(self, prefs: Optional[TypographyPrefs] = None, visible: float = 900.0) -> None:
        self.visible = visible
        self.scroll_offset = 0.0
        self.applied: list[TypographyPrefs] = []
        self.settle_count = 0
        self._pending: Optional[TypographyPrefs] = None
        self.prefs = prefs or TypographyPrefs()
        self.content_height = self.layout(self.prefs)

    @staticmethod
    def layout(prefs: TypographyPrefs) -> float:
        column = prefs.page_width - 2 * prefs.page_padding
        return FakeViewport.TEXT_AREA / column * (prefs.line_height / 1.8)

    @staticmethod
    def line_px(prefs: TypographyPrefs, font_size: float = 18.0) -> float:
        return prefs.line_height * font_size

    @property
    def scroll_extent(self) -> float:
        return max(0.0, self.content_height - self.visible)

    def scroll_to(self, offset: float) -> None:
        self.scroll_offset = min(max(0.0, offset), self.scroll_extent)

    def apply_typography(self, prefs: TypographyPrefs) -> None:
        self.applied.append(prefs)
        self._pending = prefs

    async def wait_settled(self) -> None:
        await asyncio.sleep(0)
        self.settle_count += 1
        if self._pending is not None:
            self.prefs = self._pending
            self._pending = None
            self.content_height = self.layout(self.prefs)
            self.scroll_to(self.scroll_offset)


class MemoryStore:
    """Persistence collaborator kept in a dict; can be told to fail."""

    def __init__(self) -> None:
        self.data: dict[str, Any] = {}
        self.writes: list[str] = []
        self.fail_writes = False
        self.fail_reads = False

    def save(self, key: str, value: Any) -> bool:
        if self.fail_writes:
            raise OSError("quota exceeded")
        self.writes.append(key)
        self.data[key] = value
        return True

    def load(self, key: str) -> Any:
        if self.fail_reads:
            raise OSError("storage unavailable")
        return self.data.get(key)


@pytest.fixture
def viewport() -> FakeViewport:
    return FakeViewport()


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()
