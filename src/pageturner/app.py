"""pageturner - open a book headless and print its chapter outline."""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path
from typing import Any, Callable

from pageturner.config import AppConfig, load_config
from pageturner.errors import ContentFetchError, ReaderError
from pageturner.library.database import Database
from pageturner.library.fetch import ContentFetcher, make_fetcher
from pageturner.library.models import Document, index_for_locator
from pageturner.progress.prefs import TypographyPrefs
from pageturner.session import open_session

log = logging.getLogger(__name__)


class HeadlessView:
    """Renderer and viewport stand-in for running without a UI."""

    scroll_offset = 0.0
    scroll_extent = 0.0

    async def display_by_ref(self, ref: str) -> None:
        return None

    def scroll_to_page(self, index: int, y_offset: float | None = None) -> None:
        return None

    def on_relocated(self, callback: Callable[[str], Any]) -> None:
        pass

    def on_visible_page(self, callback: Callable[[int], Any]) -> None:
        pass

    def __call__(self, chapter: Any, text: str) -> None:
        pass

    def scroll_to(self, offset: float) -> None:
        self.scroll_offset = offset

    def apply_typography(self, prefs: TypographyPrefs) -> None:
        pass

    async def wait_settled(self) -> None:
        return None


def format_outline(doc: Document) -> str:
    lines = []
    for i, ch in enumerate(doc.chapters):
        indent = "  " * (ch.level - 1)
        lines.append(f"{i + 1:>4}  {indent}{ch.label}")
    return "\n".join(lines)


def resolve_target(config: AppConfig, target: str) -> tuple[ContentFetcher, str]:
    """Fetcher and book path for a command-line argument.

    Local paths are taken relative to ``books_dir``; absolute paths must lie
    inside it.
    """
    fetcher = make_fetcher(config)
    if config.server_url:
        return fetcher, target
    path = Path(target).expanduser()
    if path.is_absolute():
        root = config.books_dir.expanduser().resolve()
        try:
            return fetcher, path.resolve().relative_to(root).as_posix()
        except ValueError:
            raise ContentFetchError(f"{target} is outside the books directory {root}") from None
    return fetcher, path.as_posix()


async def _show(config: AppConfig, target: str) -> int:
    try:
        fetcher, book_path = resolve_target(config, target)
    except ReaderError as e:
        print(f"This document could not be opened: {e}", file=sys.stderr)
        return 1

    db = Database(config.db_path)
    view = HeadlessView()
    try:
        session = await open_session(book_path, fetcher, db, view, view, config)
        doc = session.document
        print(f"{doc.title or Path(book_path).name} [{doc.format}, {doc.total_units} units]")
        print(format_outline(doc))

        progress = session.progress.load_progress()
        if progress:
            idx = index_for_locator(doc, progress.locator)
            print(
                f"Resume: {idx + 1}. {doc.chapters[idx].label} "
                f"at {progress.percentage:.0f}%"
            )
        session.close()
        return 0
    except ReaderError as e:
        log.error("Cannot open %s: %s", book_path, e)
        print(f"This document could not be opened: {e}", file=sys.stderr)
        return 1
    finally:
        close = getattr(fetcher, "close", None)
        if close:
            await close()
        db.close()


def _setup_logging(config: AppConfig) -> None:
    handler = logging.FileHandler(config.log_path, encoding="utf-8")
    handler.setFormatter(
        logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
    )
    root = logging.getLogger("pageturner")
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)


def main() -> None:
    config = load_config()
    _setup_logging(config)

    if len(sys.argv) < 2:
        print("usage: pageturner FILE", file=sys.stderr)
        sys.exit(2)

    sys.exit(asyncio.run(_show(config, sys.argv[1])))


if __name__ == "__main__":
    main()
