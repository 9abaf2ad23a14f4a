"""Chapter navigation: programmatic jumps versus passive relocation.

The controller is a two-state machine. ``go_to`` moves IDLE -> LOCKED, and the
controller returns to IDLE only after the format seek has settled (one loop
tick later for asynchronous seeks, to absorb trailing scroll events). Passive
relocation signals that arrive while LOCKED are dropped, never queued: they are
side effects of the jump in flight.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Optional

from pageturner.library.models import (
    Chapter,
    Document,
    Locator,
    NavigationState,
    NavState,
    PageLocator,
    find_index,
)

from .adapters import FormatAdapter
from .events import EngineEvents

log = logging.getLogger(__name__)


class NavigationController:
    """Sole writer of the session's ``NavigationState``."""

    def __init__(
        self,
        document: Document,
        adapter: FormatAdapter,
        events: Optional[EngineEvents] = None,
    ) -> None:
        if not document.chapters:
            raise ValueError("Cannot navigate a document without chapters")
        self._doc = document
        self._adapter = adapter
        self.events = events or EngineEvents()
        self._state = NavigationState(
            current_index=0, current_locator=document.chapters[0].locator
        )
        self._idle = asyncio.Event()
        self._idle.set()
        self._pending: Optional[asyncio.Future] = None
        adapter.observe_relocation(self.relocated)

    # ── Accessors ──────────────────────────────────

    @property
    def document(self) -> Document:
        return self._doc

    @property
    def state(self) -> NavState:
        return self._state.state

    @property
    def locked(self) -> bool:
        return self._state.locked

    @property
    def current_index(self) -> int:
        return self._state.current_index

    @property
    def current_locator(self) -> Optional[Locator]:
        return self._state.current_locator

    @property
    def current_chapter(self) -> Chapter:
        return self._doc.chapters[self._state.current_index]

    @property
    def can_go_prev(self) -> bool:
        return self._state.current_index > 0

    @property
    def can_go_next(self) -> bool:
        return self._state.current_index < len(self._doc.chapters) - 1

    # ── Programmatic jumps ─────────────────────────

    def go_to(self, index: int) -> bool:
        """Jump to a chapter. Returns False when the request was dropped."""
        if not 0 <= index < len(self._doc.chapters):
            log.debug("Ignoring jump to out-of-range chapter %d", index)
            return False
        if self.locked:
            log.debug("Ignoring jump to chapter %d: navigation in flight", index)
            return False

        self._lock()
        chapter = self._doc.chapters[index]
        self._set_current(index, chapter.locator, force=True)

        try:
            result = self._adapter.seek(chapter)
        except Exception:
            log.exception("Seek to chapter %d failed", index)
            self._unlock()
            return True

        if inspect.isawaitable(result):
            self._pending = asyncio.ensure_future(result)
            self._pending.add_done_callback(self._on_seek_done)
        else:
            self._unlock()
        return True

    def next(self) -> bool:
        return self.go_to(self._state.current_index + 1)

    def prev(self) -> bool:
        return self.go_to(self._state.current_index - 1)

    async def settled(self) -> None:
        """Wait until no jump is in flight."""
        await self._idle.wait()

    # ── Passive relocation ─────────────────────────

    def relocated(self, locator: Locator) -> bool:
        """Viewport moved on its own. Ignored while a jump is in flight."""
        if self.locked:
            log.debug("Dropping relocation to %r while locked", locator)
            return False
        index = find_index(self._doc, locator)
        if index is None:
            log.debug("Dropping relocation to %r: no matching chapter", locator)
            return False
        if self._on_current_page(locator):
            index = self._state.current_index
        self._accept(index, locator)
        return True

    def relocated_to_index(self, index: int) -> bool:
        if self.locked or not 0 <= index < len(self._doc.chapters):
            return False
        self._accept(index, self._doc.chapters[index].locator)
        return True

    # ── Internals ──────────────────────────────────

    def _accept(self, index: int, locator: Locator) -> None:
        self._set_current(index, locator)
        self.events.relocated.emit(locator)

    def _on_current_page(self, locator: Locator) -> bool:
        # A whole-page signal keeps the current chapter if it starts on that page.
        if not isinstance(locator, PageLocator) or locator.y_offset is not None:
            return False
        current = self.current_chapter.locator
        return isinstance(current, PageLocator) and current.page_index == locator.page_index

    def _set_current(self, index: int, locator: Locator, force: bool = False) -> None:
        changed = index != self._state.current_index
        self._state.current_index = index
        self._state.current_locator = locator
        if changed or force:
            self.events.chapter_changed.emit(index, self._doc.chapters[index])
            self.events.availability_changed.emit(self.can_go_prev, self.can_go_next)

    def _lock(self) -> None:
        self._state.state = NavState.LOCKED
        self._idle.clear()

    def _unlock(self) -> None:
        self._pending = None
        self._state.state = NavState.IDLE
        self._idle.set()

    def _on_seek_done(self, fut: asyncio.Future) -> None:
        if not fut.cancelled() and fut.exception() is not None:
            log.warning("Seek failed: %s", fut.exception())
        fut.get_loop().call_soon(self._unlock)
