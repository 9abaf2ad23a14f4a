"""Chapter builder interface and the canonical document assembly step."""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import PurePosixPath
from typing import Optional

from pageturner.config import AppConfig
from pageturner.errors import UnsupportedFormatError
from pageturner.library.models import (
    FORMAT_PACKAGE,
    FORMAT_PAGED,
    FORMAT_TEXT,
    FORMATS,
    Chapter,
    Document,
    LineLocator,
    PageLocator,
    RefLocator,
    order_key,
)


class BaseBuilder(ABC):
    """Turns a raw document buffer into an ordered chapter list."""

    FORMAT: str = ""
    SUPPORTED_EXTENSIONS: tuple[str, ...] = ()

    def __init__(self, config: Optional[AppConfig] = None) -> None:
        self.config = config

    @abstractmethod
    def build(self, data: bytes, name: str = "") -> Document:
        """Build a document from raw bytes. ``name`` is the file name, if known."""

    @classmethod
    def can_handle(cls, name: str) -> bool:
        return PurePosixPath(name).suffix.lower() in cls.SUPPORTED_EXTENSIONS


def _builders() -> list[type[BaseBuilder]]:
    from pageturner.builders.epub_builder import EpubBuilder
    from pageturner.builders.pdf_builder import PdfBuilder
    from pageturner.builders.txt_builder import TxtBuilder

    return [EpubBuilder, PdfBuilder, TxtBuilder]


def get_builder(fmt: str, config: Optional[AppConfig] = None) -> BaseBuilder:
    """Return the builder for a detected format."""
    for builder_cls in _builders():
        if builder_cls.FORMAT == fmt:
            return builder_cls(config)
    raise UnsupportedFormatError(
        f"Unsupported format: {fmt}. Supported: {', '.join(FORMATS)}"
    )


def detect_format(name: str, data: bytes = b"") -> str:
    """Pick a format from the file extension, or from magic bytes when there is none."""
    suffix = PurePosixPath(name).suffix.lower() if name else ""
    if suffix:
        for builder_cls in _builders():
            if builder_cls.can_handle(name):
                return builder_cls.FORMAT
        supported: list[str] = []
        for b in _builders():
            supported.extend(b.SUPPORTED_EXTENSIONS)
        raise UnsupportedFormatError(
            f"Unsupported format: {suffix}. Supported: {', '.join(supported)}"
        )
    if data.startswith(b"PK\x03\x04"):
        return FORMAT_PACKAGE
    if data.startswith(b"%PDF"):
        return FORMAT_PAGED
    return FORMAT_TEXT


def whole_document_chapter(fmt: str, total_units: int, label: str) -> Chapter:
    """A single synthetic chapter spanning the whole document."""
    if fmt == FORMAT_PAGED:
        locator = PageLocator(page_index=0)
    elif fmt == FORMAT_TEXT:
        locator = LineLocator(start_line=0, end_line=max(0, total_units))
    else:
        locator = RefLocator(href="")
    return Chapter(label=label, locator=locator)


def finalize_chapters(
    fmt: str, chapters: list[Chapter], total_units: int, name: str = ""
) -> list[Chapter]:
    """Enforce ordering, uniqueness and non-emptiness on a builder's output.

    Package chapters keep spine order as given; page and line chapters are
    stably sorted into document order. Repeated (locator, level) pairs keep
    their first occurrence.
    """
    if fmt in (FORMAT_PAGED, FORMAT_TEXT):
        chapters = sorted(chapters, key=lambda ch: order_key(ch.locator))

    seen: set = set()
    result: list[Chapter] = []
    for ch in chapters:
        ident = (ch.locator, ch.level)
        if ident in seen:
            continue
        seen.add(ident)
        if not ch.label:
            ch.label = f"Chapter {len(result) + 1}"
        result.append(ch)

    if not result:
        label = PurePosixPath(name).stem if name else "Document"
        result = [whole_document_chapter(fmt, total_units, label or "Document")]
    return result


def build_document(
    fmt: str,
    raw_source: bytes,
    *,
    name: str = "",
    config: Optional[AppConfig] = None,
) -> Document:
    """Build a document in the canonical chapter model."""
    if fmt not in FORMATS:
        raise UnsupportedFormatError(
            f"Unsupported format: {fmt}. Supported: {', '.join(FORMATS)}"
        )
    doc = get_builder(fmt, config).build(raw_source, name)
    doc.chapters = finalize_chapters(fmt, doc.chapters, doc.total_units, name)
    return doc
