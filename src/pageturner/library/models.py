"""Data models for documents, chapters, locators and reading progress."""

from __future__ import annotations

import hashlib
import math
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Optional, Union

FORMAT_PACKAGE = "package"
FORMAT_PAGED = "paged"
FORMAT_TEXT = "text"
FORMATS = (FORMAT_PACKAGE, FORMAT_PAGED, FORMAT_TEXT)

MIN_LEVEL = 1
MAX_LEVEL = 3


def clamp_level(level: Any) -> int:
    try:
        value = int(level)
    except (TypeError, ValueError):
        return MIN_LEVEL
    return max(MIN_LEVEL, min(MAX_LEVEL, value))


def strip_fragment(href: str) -> str:
    return href.split("#", 1)[0]


def document_key(book_path: str) -> str:
    """Stable per-document identifier derived from its storage path."""
    normalized = book_path.replace("\\", "/")
    return hashlib.sha256(normalized.encode()).hexdigest()[:16]


# ── Locators ───────────────────────────────────────────


@dataclass(frozen=True)
class RefLocator:
    href: str

    kind: ClassVar[str] = "ref"

    @property
    def key(self) -> str:
        return strip_fragment(self.href)

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "href": self.href}


@dataclass(frozen=True)
class PageLocator:
    page_index: int
    # Native page coordinate; increases upward on the page.
    y_offset: Optional[float] = None

    kind: ClassVar[str] = "page"

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "page_index": self.page_index, "y_offset": self.y_offset}


@dataclass(frozen=True)
class LineLocator:
    start_line: int
    end_line: int  # exclusive

    kind: ClassVar[str] = "line"

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "start_line": self.start_line, "end_line": self.end_line}


Locator = Union[RefLocator, PageLocator, LineLocator]


def locator_from_dict(data: Any) -> Optional[Locator]:
    """Rebuild a locator from its ``to_dict`` form. Malformed input yields None."""
    if not isinstance(data, dict):
        return None
    kind = data.get("kind")
    try:
        if kind == RefLocator.kind and isinstance(data.get("href"), str):
            return RefLocator(href=data["href"])
        if kind == PageLocator.kind:
            y = data.get("y_offset")
            return PageLocator(
                page_index=int(data["page_index"]),
                y_offset=float(y) if y is not None else None,
            )
        if kind == LineLocator.kind:
            return LineLocator(
                start_line=int(data["start_line"]), end_line=int(data["end_line"])
            )
    except (KeyError, TypeError, ValueError):
        return None
    return None


# ── Chapters & documents ───────────────────────────────


@dataclass
class Chapter:
    """One addressable unit of content."""

    label: str
    locator: Locator
    level: int = 1
    paragraphs: list[str] = field(default_factory=list)  # plain-text content only

    def __post_init__(self) -> None:
        self.label = (self.label or "").strip()
        self.level = clamp_level(self.level)


@dataclass
class Document:
    """The open book: a non-empty, ordered chapter list."""

    format: str
    chapters: list[Chapter]
    total_units: int
    title: str = ""

    def __len__(self) -> int:
        return len(self.chapters)

    def chapter(self, index: int) -> Optional[Chapter]:
        if 0 <= index < len(self.chapters):
            return self.chapters[index]
        return None


def order_key(locator: Locator) -> tuple:
    """Sort key in document order for page and line locators."""
    if isinstance(locator, PageLocator):
        y = locator.y_offset
        # Higher anchors read first; an anchor-less entry points at the top of the page.
        return (locator.page_index, -math.inf if y is None else -y)
    if isinstance(locator, LineLocator):
        return (locator.start_line,)
    return ()


def _same_resource(a: str, b: str) -> bool:
    """True when one href equals the other or ends with it on a path segment."""
    return a == b or a.endswith("/" + b) or b.endswith("/" + a)


def index_for_locator(doc: Document, locator: Optional[Locator]) -> int:
    """Resolve a locator to the index of the chapter containing it (0 if unknown)."""
    index = find_index(doc, locator)
    return 0 if index is None else index


def find_index(doc: Document, locator: Optional[Locator]) -> Optional[int]:
    """Like ``index_for_locator`` but None when no chapter matches the locator.

    Page and line positions before the first chapter belong to chapter 0.
    """
    if locator is None or not doc.chapters:
        return None

    if isinstance(locator, RefLocator):
        key = locator.key
        if not key:
            return None
        for idx, ch in enumerate(doc.chapters):
            if isinstance(ch.locator, RefLocator) and ch.locator.key == key:
                return idx
        for idx, ch in enumerate(doc.chapters):
            if not isinstance(ch.locator, RefLocator):
                continue
            name = ch.locator.key
            if name and _same_resource(name, key):
                return idx
        return None

    if isinstance(locator, PageLocator):
        # Without a y the whole page is in view: the last chapter starting on it wins.
        best: Optional[int] = None
        for idx, ch in enumerate(doc.chapters):
            loc = ch.locator
            if not isinstance(loc, PageLocator):
                continue
            if best is None:
                best = 0
            if loc.page_index < locator.page_index:
                best = idx
            elif loc.page_index == locator.page_index:
                if (
                    locator.y_offset is None
                    or loc.y_offset is None
                    or loc.y_offset >= locator.y_offset
                ):
                    best = idx
            else:
                break
        return best

    if isinstance(locator, LineLocator):
        best = None
        for idx, ch in enumerate(doc.chapters):
            loc = ch.locator
            if not isinstance(loc, LineLocator):
                continue
            if best is None:
                best = 0
            if loc.start_line <= locator.start_line:
                best = idx
        return best

    return None


# ── Session state ──────────────────────────────────────


class NavState(Enum):
    IDLE = "idle"
    LOCKED = "locked"


@dataclass
class NavigationState:
    current_index: int = 0
    current_locator: Optional[Locator] = None
    state: NavState = NavState.IDLE

    @property
    def locked(self) -> bool:
        return self.state is NavState.LOCKED


def clamp_percentage(value: Any) -> float:
    try:
        pct = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(pct):
        return 0.0
    return min(100.0, max(0.0, pct))


@dataclass
class ReadingProgress:
    percentage: float = 0.0  # 0 - 100
    locator: Optional[Locator] = None
    timestamp: float = field(default_factory=time.time)

    def __post_init__(self) -> None:
        self.percentage = clamp_percentage(self.percentage)

    def to_dict(self) -> dict[str, Any]:
        return {
            "percentage": self.percentage,
            "locator": self.locator.to_dict() if self.locator else None,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: Any) -> Optional[ReadingProgress]:
        if not isinstance(data, dict):
            return None
        try:
            timestamp = float(data.get("timestamp") or time.time())
        except (TypeError, ValueError):
            timestamp = time.time()
        return cls(
            percentage=clamp_percentage(data.get("percentage", 0.0)),
            locator=locator_from_dict(data.get("locator")),
            timestamp=timestamp,
        )


@dataclass
class Bookmark:
    id: str
    book_key: str
    title: str
    locator: Locator
    level: int = 1
    chapter_label: str = ""
    created_at: float = field(default_factory=time.time)

    def __post_init__(self) -> None:
        self.level = clamp_level(self.level)

    @staticmethod
    def make_id(book_key: str, locator: Locator, created_at: float) -> str:
        raw = f"{book_key}:{locator.to_dict()}:{created_at}"
        return hashlib.sha256(raw.encode()).hexdigest()[:12]
