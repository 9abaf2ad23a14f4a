"""Per-format seek/relocation capabilities consumed by the navigation controller."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Optional, Protocol

from pageturner.library.models import (
    FORMAT_PACKAGE,
    FORMAT_PAGED,
    Chapter,
    Document,
    LineLocator,
    Locator,
    PageLocator,
    RefLocator,
)

RelocationCallback = Callable[[Locator], Any]


class PackageRenderer(Protocol):
    def display_by_ref(self, ref: str) -> Awaitable[None]: ...

    def on_relocated(self, callback: Callable[[str], Any]) -> None: ...


class PagedRenderer(Protocol):
    def scroll_to_page(
        self, index: int, y_offset: Optional[float] = None
    ) -> Optional[Awaitable[None]]: ...

    def on_visible_page(self, callback: Callable[[int], Any]) -> None: ...


class FormatAdapter(ABC):
    """Capability set ``{seek, observe_relocation}`` for one format."""

    @abstractmethod
    def seek(self, chapter: Chapter) -> Optional[Awaitable[Any]]:
        """Bring a chapter into view. May return an awaitable that settles later."""

    @abstractmethod
    def observe_relocation(self, callback: RelocationCallback) -> None:
        """Register for passive relocation signals, delivered as locators."""


class PackageAdapter(FormatAdapter):
    def __init__(self, renderer: PackageRenderer) -> None:
        self._renderer = renderer

    def seek(self, chapter: Chapter) -> Awaitable[None]:
        if not isinstance(chapter.locator, RefLocator):
            raise TypeError(f"Package chapter without ref locator: {chapter.locator!r}")
        return self._renderer.display_by_ref(chapter.locator.href)

    def observe_relocation(self, callback: RelocationCallback) -> None:
        self._renderer.on_relocated(lambda ref: callback(RefLocator(href=ref)))


class PagedAdapter(FormatAdapter):
    def __init__(self, renderer: PagedRenderer) -> None:
        self._renderer = renderer

    def seek(self, chapter: Chapter) -> Optional[Awaitable[None]]:
        loc = chapter.locator
        if not isinstance(loc, PageLocator):
            raise TypeError(f"Paged chapter without page locator: {loc!r}")
        return self._renderer.scroll_to_page(loc.page_index, loc.y_offset)

    def observe_relocation(self, callback: RelocationCallback) -> None:
        self._renderer.on_visible_page(lambda idx: callback(PageLocator(page_index=idx)))


def render_chapter_text(chapter: Chapter) -> str:
    """Heading followed by the chapter's non-blank lines."""
    lines = list(chapter.paragraphs)
    if not lines or lines[0] != chapter.label:
        lines.insert(0, chapter.label)
    return "\n".join(lines)


class TextAdapter(FormatAdapter):
    """Plain text is written by the engine itself; seeking is synchronous."""

    def __init__(self, sink: Optional[Callable[[Chapter, str], Any]] = None) -> None:
        self._sink = sink
        self._callbacks: list[RelocationCallback] = []
        self.rendered: str = ""

    def seek(self, chapter: Chapter) -> None:
        self.rendered = render_chapter_text(chapter)
        if self._sink:
            self._sink(chapter, self.rendered)

    def observe_relocation(self, callback: RelocationCallback) -> None:
        self._callbacks.append(callback)

    def report_line(self, line: int) -> None:
        """Forward a scroll observation (first visible source line) as a relocation."""
        for cb in list(self._callbacks):
            cb(LineLocator(start_line=line, end_line=line + 1))


def adapter_for(doc: Document, renderer: Any = None) -> FormatAdapter:
    """Pick the adapter for a document. For text, ``renderer`` is an optional sink."""
    if doc.format == FORMAT_PACKAGE:
        return PackageAdapter(renderer)
    if doc.format == FORMAT_PAGED:
        return PagedAdapter(renderer)
    return TextAdapter(renderer)
