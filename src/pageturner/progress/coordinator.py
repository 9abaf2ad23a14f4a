"""Reading progress capture/restore and typography reflow re-anchoring.

Position is persisted as a percentage of the scrollable extent, paired with the
best-known locator. On restore the locator picks the chapter and the
percentage picks the scroll offset inside it. On a layout change the
percentage is captured *before* the new typography is applied and re-applied
against the new extent once rendering has settled.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict
from typing import Any, Callable, Mapping, Optional, Protocol, Union

from pageturner.config import AppConfig
from pageturner.library.database import prefs_key, progress_key
from pageturner.library.models import ReadingProgress, clamp_percentage, index_for_locator
from pageturner.navigation.controller import NavigationController

from .debounce import Debouncer
from .prefs import TypographyPrefs, normalize_prefs

log = logging.getLogger(__name__)


class Viewport(Protocol):
    """The scrolling surface the active renderer draws into."""

    @property
    def scroll_offset(self) -> float: ...

    @property
    def scroll_extent(self) -> float:
        """Scrollable distance: content height minus visible height."""

    def scroll_to(self, offset: float) -> None: ...

    def apply_typography(self, prefs: TypographyPrefs) -> None: ...

    async def wait_settled(self) -> None:
        """Return once content has been laid out with the current typography."""


class ProgressStore(Protocol):
    def save(self, key: str, value: Any) -> Any: ...

    def load(self, key: str) -> Any: ...


class ProgressCoordinator:
    def __init__(
        self,
        controller: NavigationController,
        viewport: Viewport,
        store: ProgressStore,
        book_key: str,
        config: Optional[AppConfig] = None,
    ) -> None:
        self._controller = controller
        self._viewport = viewport
        self._store = store
        self._book_key = book_key
        isolate = config.isolate_book_prefs if config else False
        self._prefs_key = prefs_key(book_key if isolate else None)
        self._prefs = self.load_prefs()

        progress_delay = config.progress_debounce if config else 1.0
        prefs_delay = config.prefs_debounce if config else 0.1
        self._save_debounced = Debouncer(progress_delay, self._write_progress)
        self._prefs_debounced = Debouncer(prefs_delay, self._write_prefs)

        self._reanchor: Optional[asyncio.Task] = None
        self._reanchor_target = 0.0

        controller.events.relocated.connect(self._on_moved)
        controller.events.chapter_changed.connect(self._on_moved)

    @property
    def prefs(self) -> TypographyPrefs:
        return self._prefs

    @property
    def book_key(self) -> str:
        return self._book_key

    # ── Percentage math ────────────────────────────

    def percentage(self) -> float:
        extent = self._viewport.scroll_extent
        return clamp_percentage(self._viewport.scroll_offset / max(1.0, extent) * 100)

    def offset_for(self, percentage: float) -> float:
        return clamp_percentage(percentage) / 100 * max(1.0, self._viewport.scroll_extent)

    def _effective_percentage(self) -> float:
        # While a re-anchor is pending the viewport offset belongs to the old layout.
        if self.reanchor_pending:
            return self._reanchor_target
        return self.percentage()

    @property
    def reanchor_pending(self) -> bool:
        return self._reanchor is not None and not self._reanchor.done()

    # ── Capture / restore ──────────────────────────

    def capture(self, save: bool = True) -> ReadingProgress:
        progress = ReadingProgress(
            percentage=self._effective_percentage(),
            locator=self._controller.current_locator,
        )
        if save:
            self._save_debounced.cancel()
            self._write_progress(progress)
        return progress

    def load_progress(self) -> Optional[ReadingProgress]:
        try:
            return ReadingProgress.from_dict(self._store.load(progress_key(self._book_key)))
        except Exception as e:
            log.warning("Cannot load progress for %s: %s", self._book_key, e)
            return None

    def restore(self, progress: Optional[ReadingProgress] = None) -> Optional[asyncio.Task]:
        """Jump to the saved chapter and schedule the saved scroll percentage.

        Must be called from a running event loop.
        """
        if progress is None:
            progress = self.load_progress()
        if progress is None:
            return None

        doc = self._controller.document
        index = (
            index_for_locator(doc, progress.locator)
            if progress.locator is not None
            else self._controller.current_index
        )
        self._controller.go_to(index)
        return self._schedule_reanchor(progress.percentage)

    # ── Typography ─────────────────────────────────

    def on_typography_change(
        self, prefs: Union[TypographyPrefs, Mapping[str, Any]]
    ) -> Optional[asyncio.Task]:
        raw = asdict(prefs) if isinstance(prefs, TypographyPrefs) else prefs
        new = normalize_prefs(raw)
        old = self._prefs

        def _apply() -> None:
            self._prefs = new
            self._viewport.apply_typography(new)

        if old.affects_layout(new):
            task = self.on_layout_change(_apply)
        else:
            _apply()
            task = None
        self._prefs_debounced()
        return task

    def on_layout_change(self, apply: Callable[[], Any]) -> asyncio.Task:
        """Run a layout-affecting mutation while keeping the reading percentage."""
        pct = self._effective_percentage()
        apply()
        self._save_debounced(
            ReadingProgress(percentage=pct, locator=self._controller.current_locator)
        )
        return self._schedule_reanchor(pct)

    def load_prefs(self) -> TypographyPrefs:
        try:
            return normalize_prefs(self._store.load(self._prefs_key))
        except Exception as e:
            log.warning("Cannot load typography prefs: %s", e)
            return normalize_prefs(None)

    # ── Lifecycle ──────────────────────────────────

    def flush(self) -> None:
        self._prefs_debounced.flush()
        self._save_debounced.flush()

    def close(self) -> None:
        self.flush()
        if self._reanchor is not None:
            self._reanchor.cancel()
            self._reanchor = None
        self._controller.events.relocated.disconnect(self._on_moved)
        self._controller.events.chapter_changed.disconnect(self._on_moved)

    # ── Internals ──────────────────────────────────

    def _schedule_reanchor(self, percentage: float) -> asyncio.Task:
        if self._reanchor is not None and not self._reanchor.done():
            self._reanchor.cancel()
        self._reanchor_target = clamp_percentage(percentage)
        self._reanchor = asyncio.get_running_loop().create_task(
            self._reanchor_to(self._reanchor_target)
        )
        return self._reanchor

    async def _reanchor_to(self, percentage: float) -> None:
        await self._controller.settled()
        await self._viewport.wait_settled()
        self._viewport.scroll_to(self.offset_for(percentage))

    def _on_moved(self, *_args: Any) -> None:
        self._save_debounced()

    def _write_progress(self, progress: Optional[ReadingProgress] = None) -> bool:
        if progress is None:
            progress = self.capture(save=False)
        try:
            ok = self._store.save(progress_key(self._book_key), progress.to_dict()) is not False
        except Exception as e:
            log.warning("Failed to save progress for %s: %s", self._book_key, e)
            ok = False
        self._controller.events.progress_saved.emit(progress, ok)
        return ok

    def _write_prefs(self) -> None:
        try:
            self._store.save(self._prefs_key, self._prefs.to_dict())
        except Exception as e:
            log.warning("Failed to save typography prefs: %s", e)
