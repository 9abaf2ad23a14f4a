"""EPUB chapter builder using ebooklib."""

from __future__ import annotations

import logging
import os
import tempfile
import zipfile
from dataclasses import dataclass, field
from pathlib import PurePosixPath

from ebooklib import epub

from pageturner.errors import DocumentCorruptError
from pageturner.library.models import (
    FORMAT_PACKAGE,
    Chapter,
    Document,
    RefLocator,
    clamp_level,
    strip_fragment,
)

from .base import BaseBuilder

log = logging.getLogger(__name__)

ENCRYPTION_ENTRY = "META-INF/encryption.xml"


@dataclass
class SpineItem:
    href: str
    identifier: str = ""


@dataclass
class NavEntry:
    title: str
    href: str = ""
    children: list[NavEntry] = field(default_factory=list)


def flatten_nav(nav: list[NavEntry]) -> dict[str, tuple[str, int]]:
    """Map stripped href -> (title, depth), depth-first, first title wins."""
    titles: dict[str, tuple[str, int]] = {}

    def _walk(entries: list[NavEntry], depth: int) -> None:
        for entry in entries:
            key = strip_fragment(entry.href or "")
            title = (entry.title or "").strip()
            if key and title and key not in titles:
                titles[key] = (title, depth)
            if entry.children:
                _walk(entry.children, depth + 1)

    _walk(nav, 1)
    return titles


def build_package_chapters(spine: list[SpineItem], nav: list[NavEntry]) -> list[Chapter]:
    """One chapter per spine item, in spine order, titled from the navigation tree.

    Navigation entries that match no spine item are dropped.
    """
    titles = flatten_nav(nav)
    chapters: list[Chapter] = []
    for n, item in enumerate(spine, start=1):
        key = strip_fragment(item.href)
        match = titles.get(key)
        if match:
            label, level = match
        else:
            label, level = item.identifier or f"Chapter {n}", 1
        chapters.append(
            Chapter(label=label, locator=RefLocator(href=item.href), level=clamp_level(level))
        )
    return chapters


def _convert_toc(toc: list) -> list[NavEntry]:
    """Convert ebooklib's toc structure (Links, (Section, children) tuples, lists)."""
    entries: list[NavEntry] = []
    for entry in toc:
        if isinstance(entry, tuple) and len(entry) == 2:
            section, children = entry
            node = NavEntry(
                title=getattr(section, "title", "") or "",
                href=getattr(section, "href", "") or "",
                children=_convert_toc(list(children)),
            )
            entries.append(node)
        elif isinstance(entry, list):
            entries.extend(_convert_toc(entry))
        elif isinstance(entry, (epub.Link, epub.Section)):
            entries.append(NavEntry(title=entry.title or "", href=entry.href or ""))
    return entries


class EpubBuilder(BaseBuilder):
    FORMAT = FORMAT_PACKAGE
    SUPPORTED_EXTENSIONS = (".epub",)

    def build(self, data: bytes, name: str = "") -> Document:
        book = self._open(data)

        spine: list[SpineItem] = []
        for idref, _linear in book.spine:
            item = book.get_item_with_id(idref)
            if item is None:
                log.debug("Spine entry %s has no manifest item", idref)
                continue
            spine.append(SpineItem(href=item.get_name(), identifier=idref))

        chapters = build_package_chapters(spine, _convert_toc(book.toc))
        title = self._get_meta(book, "title") or PurePosixPath(name).stem
        return Document(
            format=self.FORMAT,
            chapters=chapters,
            total_units=len(spine),
            title=title,
        )

    def _open(self, data: bytes) -> epub.EpubBook:
        # ebooklib opens containers by path
        fd, tmp_name = tempfile.mkstemp(suffix=".epub")
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(data)
            try:
                with zipfile.ZipFile(tmp_name) as zf:
                    if ENCRYPTION_ENTRY in zf.namelist():
                        raise DocumentCorruptError("EPUB is encrypted (DRM protected)")
            except zipfile.BadZipFile as e:
                raise DocumentCorruptError(f"Not a valid EPUB archive: {e}") from e
            try:
                return epub.read_epub(tmp_name, options={"ignore_ncx": False})
            except Exception as e:
                log.warning("Cannot open EPUB: %s", e)
                raise DocumentCorruptError(f"Cannot open EPUB: {e}") from e
        finally:
            os.unlink(tmp_name)

    @staticmethod
    def _get_meta(book: epub.EpubBook, field_name: str) -> str:
        values = book.get_metadata("DC", field_name)
        if values:
            val = values[0]
            if isinstance(val, tuple):
                return str(val[0]) if val[0] else ""
            return str(val)
        return ""
