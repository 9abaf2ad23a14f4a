"""Observer hooks the engine emits for the surrounding UI."""

from __future__ import annotations

import logging
from typing import Any, Callable

log = logging.getLogger(__name__)


class Signal:
    """A named list of callbacks. A failing observer is logged and skipped."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._handlers: list[Callable[..., Any]] = []

    def connect(self, handler: Callable[..., Any]) -> Callable[..., Any]:
        if handler not in self._handlers:
            self._handlers.append(handler)
        return handler

    def disconnect(self, handler: Callable[..., Any]) -> None:
        if handler in self._handlers:
            self._handlers.remove(handler)

    def emit(self, *args: Any) -> None:
        for handler in list(self._handlers):
            try:
                handler(*args)
            except Exception:
                log.exception("Observer of %s failed", self.name)


class EngineEvents:
    def __init__(self) -> None:
        # (index, chapter)
        self.chapter_changed = Signal("chapter_changed")
        # (can_prev, can_next)
        self.availability_changed = Signal("availability_changed")
        # (locator) passive relocations accepted while idle
        self.relocated = Signal("relocated")
        # (progress, ok)
        self.progress_saved = Signal("progress_saved")
