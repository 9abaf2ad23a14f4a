"""Coalesce bursts of calls into one trailing call."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Optional

log = logging.getLogger(__name__)


class Debouncer:
    """Trailing-edge debounce on the running event loop.

    Without a running loop the call goes straight through.
    """

    def __init__(self, delay: float, callback: Callable[..., Any]) -> None:
        self.delay = delay
        self._callback = callback
        self._handle: Optional[asyncio.TimerHandle] = None
        self._args: tuple = ()

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def __call__(self, *args: Any) -> None:
        self._args = args
        self.cancel()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._fire()
            return
        self._handle = loop.call_later(self.delay, self._fire)

    def flush(self) -> None:
        if self._handle is not None:
            self.cancel()
            self._fire()

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self) -> None:
        self._handle = None
        try:
            self._callback(*self._args)
        except Exception:
            log.exception("Debounced call failed")
