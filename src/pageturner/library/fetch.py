"""Raw document content sources: local books directory or the book server."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional, Protocol

import httpx

from pageturner.config import AppConfig
from pageturner.errors import ContentFetchError

log = logging.getLogger(__name__)

BOOK_ENDPOINT = "/api/book"


class ContentFetcher(Protocol):
    async def fetch(self, book_path: str) -> bytes: ...


class LocalFileFetcher:
    """Reads books below a root directory."""

    def __init__(self, root: Path) -> None:
        self._root = Path(root).expanduser().resolve()

    def resolve(self, book_path: str) -> Path:
        candidate = (self._root / book_path).resolve()
        if candidate != self._root and self._root not in candidate.parents:
            raise ContentFetchError(f"Path escapes books directory: {book_path}")
        return candidate

    async def fetch(self, book_path: str) -> bytes:
        path = self.resolve(book_path)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except OSError as e:
            log.error("Cannot read %s: %s", path, e)
            raise ContentFetchError(f"Cannot read {book_path}: {e}") from e


class HttpContentFetcher:
    """Fetches book bytes from the surrounding application's book API."""

    def __init__(self, base_url: str, timeout: float = 60.0) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._client: Optional[httpx.AsyncClient] = None

    async def fetch(self, book_path: str) -> bytes:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)

        url = f"{self._base_url}{BOOK_ENDPOINT}"
        try:
            resp = await self._client.get(url, params={"path": book_path})
            resp.raise_for_status()
            return resp.content
        except httpx.HTTPStatusError as e:
            log.error(
                "Book fetch error: %s %s",
                e.response.status_code,
                e.response.text[:200],
            )
            raise ContentFetchError(
                f"Book not found or failed to load: {book_path} "
                f"(HTTP {e.response.status_code})"
            ) from e
        except httpx.RequestError as e:
            log.error(
                "Book request error: %s %s -> %s",
                type(e).__name__,
                e.request.url,
                e,
            )
            raise ContentFetchError(f"Book fetch failed: {type(e).__name__} ({url})") from e

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None


def make_fetcher(config: AppConfig) -> LocalFileFetcher | HttpContentFetcher:
    if config.server_url:
        return HttpContentFetcher(config.server_url)
    return LocalFileFetcher(config.books_dir)
