"""PDF chapter builder using PyMuPDF."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import Any, Callable, Optional

import pymupdf

from pageturner.errors import DocumentCorruptError, OutlineResolutionError
from pageturner.library.models import (
    FORMAT_PAGED,
    MAX_LEVEL,
    Chapter,
    Document,
    PageLocator,
    order_key,
)

from .base import BaseBuilder

log = logging.getLogger(__name__)


@dataclass
class OutlineEntry:
    title: str
    dest: Any = None
    children: list[OutlineEntry] = field(default_factory=list)


# dest -> (page_index, y_offset or None); raises OutlineResolutionError
Resolver = Callable[[Any], tuple[int, Optional[float]]]


def page_chapters(page_count: int) -> list[Chapter]:
    return [
        Chapter(label=f"Page {i + 1}", locator=PageLocator(page_index=i))
        for i in range(page_count)
    ]


def build_paged_chapters(
    page_count: int, outline: Optional[list[OutlineEntry]], resolve: Resolver
) -> list[Chapter]:
    """Resolve an outline to page chapters, falling back to one chapter per page."""
    resolved: list[Chapter] = []

    def _visit(entries: list[OutlineEntry], level: int) -> None:
        for entry in entries:
            try:
                page_index, y_offset = resolve(entry.dest)
                if not 0 <= page_index < page_count:
                    raise OutlineResolutionError(f"page {page_index} out of range")
                label = (entry.title or "").strip() or f"Page {page_index + 1}"
                resolved.append(
                    Chapter(
                        label=label,
                        locator=PageLocator(page_index=page_index, y_offset=y_offset),
                        level=level,
                    )
                )
            except OutlineResolutionError as e:
                log.debug("Skipping outline entry %r: %s", entry.title, e)
            if entry.children:
                _visit(entry.children, min(level + 1, MAX_LEVEL))

    _visit(outline or [], 1)

    resolved.sort(key=lambda ch: order_key(ch.locator))
    seen: set[tuple[int, str]] = set()
    chapters: list[Chapter] = []
    for ch in resolved:
        k = (ch.locator.page_index, ch.label)
        if k in seen:
            continue
        seen.add(k)
        chapters.append(ch)

    if not chapters:
        return page_chapters(page_count)
    return chapters


def outline_from_toc(toc: list[list]) -> list[OutlineEntry]:
    """Nest PyMuPDF's flat ``[level, title, page, dest]`` rows by level."""
    roots: list[OutlineEntry] = []
    stack: list[tuple[int, OutlineEntry]] = []
    for row in toc:
        lvl, title, page = row[0], row[1], row[2]
        link = row[3] if len(row) > 3 and isinstance(row[3], dict) else {}
        to = link.get("to")
        entry = OutlineEntry(
            title=title or "",
            dest={
                "page": page - 1 if isinstance(page, int) and page > 0 else None,
                "to": (to[0], to[1]) if to is not None else None,
                "name": link.get("nameddest") or link.get("name"),
            },
        )
        while stack and stack[-1][0] >= lvl:
            stack.pop()
        if stack:
            stack[-1][1].children.append(entry)
        else:
            roots.append(entry)
        stack.append((lvl, entry))
    return roots


class PdfBuilder(BaseBuilder):
    FORMAT = FORMAT_PAGED
    SUPPORTED_EXTENSIONS = (".pdf",)

    def build(self, data: bytes, name: str = "") -> Document:
        try:
            doc = pymupdf.open(stream=data, filetype="pdf")
        except Exception as e:
            log.warning("Cannot open PDF: %s", e)
            raise DocumentCorruptError(f"Cannot open PDF: {e}") from e

        try:
            if doc.needs_pass:
                raise DocumentCorruptError("PDF is password protected")

            page_count = doc.page_count
            if page_count == 0:
                raise DocumentCorruptError("PDF has no pages")
            title = (doc.metadata or {}).get("title", "") or PurePosixPath(name).stem
            try:
                outline = outline_from_toc(doc.get_toc(simple=False))
            except Exception as e:
                log.warning("Unreadable PDF outline, using page list: %s", e)
                outline = []

            names: Optional[dict] = None

            def resolve(dest: dict) -> tuple[int, Optional[float]]:
                nonlocal names
                page, to = dest.get("page"), dest.get("to")
                if page is None:
                    name_ref = dest.get("name")
                    if not name_ref:
                        raise OutlineResolutionError("no destination")
                    if names is None:
                        names = self._named_destinations(doc)
                    target = names.get(name_ref)
                    if not target or target.get("page") is None or target["page"] < 0:
                        raise OutlineResolutionError(f"unknown destination {name_ref!r}")
                    page, to = target["page"], target.get("to")
                return page, self._native_y(doc, page, to)

            chapters = build_paged_chapters(page_count, outline, resolve)
        finally:
            doc.close()

        return Document(
            format=self.FORMAT,
            chapters=chapters,
            total_units=page_count,
            title=title,
        )

    @staticmethod
    def _named_destinations(doc: pymupdf.Document) -> dict:
        try:
            return doc.resolve_names()
        except Exception as e:
            log.warning("Cannot resolve named destinations: %s", e)
            return {}

    @staticmethod
    def _native_y(doc: pymupdf.Document, page: int, to: Any) -> Optional[float]:
        """Convert a top-left based target point to upward page space."""
        if not to:
            return None
        try:
            y = float(to[1])
            height = doc[page].rect.height
        except (IndexError, TypeError, ValueError) as e:
            raise OutlineResolutionError(f"bad target point {to!r}") from e
        return height - y
