"""Tests for content fetchers."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import httpx
import pytest

from pageturner.config import AppConfig
from pageturner.errors import ContentFetchError
from pageturner.library.fetch import HttpContentFetcher, LocalFileFetcher, make_fetcher

SERVER = "http://localhost:3000"


def _response(status: int, content: bytes = b"") -> httpx.Response:
    request = httpx.Request("GET", f"{SERVER}/api/book")
    return httpx.Response(status, content=content, request=request)


class TestLocalFileFetcher:
    @pytest.mark.asyncio
    async def test_reads_file(self, tmp_path: Path):
        (tmp_path / "a.txt").write_bytes(b"hello")
        fetcher = LocalFileFetcher(tmp_path)
        assert await fetcher.fetch("a.txt") == b"hello"

    @pytest.mark.asyncio
    async def test_missing_file(self, tmp_path: Path):
        with pytest.raises(ContentFetchError):
            await LocalFileFetcher(tmp_path).fetch("nope.txt")

    def test_path_escape_rejected(self, tmp_path: Path):
        fetcher = LocalFileFetcher(tmp_path / "books")
        with pytest.raises(ContentFetchError, match="escapes"):
            fetcher.resolve("../secret.txt")

    def test_nested_path_allowed(self, tmp_path: Path):
        fetcher = LocalFileFetcher(tmp_path)
        assert fetcher.resolve("shelf/b.epub") == (tmp_path / "shelf" / "b.epub").resolve()


class TestHttpContentFetcher:
    @pytest.mark.asyncio
    async def test_fetch_success(self):
        fetcher = HttpContentFetcher(SERVER + "/")
        with patch("httpx.AsyncClient.get", return_value=_response(200, b"%PDF-1.7")) as get:
            data = await fetcher.fetch("shelf/book.pdf")
        assert data == b"%PDF-1.7"
        args, kwargs = get.call_args
        assert args[0] == f"{SERVER}/api/book"
        assert kwargs["params"] == {"path": "shelf/book.pdf"}
        await fetcher.close()

    @pytest.mark.asyncio
    async def test_http_error(self):
        fetcher = HttpContentFetcher(SERVER)
        with patch("httpx.AsyncClient.get", return_value=_response(404, b"missing")):
            with pytest.raises(ContentFetchError, match="HTTP 404"):
                await fetcher.fetch("gone.epub")
        await fetcher.close()

    @pytest.mark.asyncio
    async def test_connection_error(self):
        fetcher = HttpContentFetcher(SERVER)
        error = httpx.ConnectError("refused", request=httpx.Request("GET", SERVER))
        with patch("httpx.AsyncClient.get", side_effect=error):
            with pytest.raises(ContentFetchError, match="ConnectError"):
                await fetcher.fetch("book.epub")
        await fetcher.close()


class TestMakeFetcher:
    def test_local_by_default(self, config: AppConfig):
        assert isinstance(make_fetcher(config), LocalFileFetcher)

    def test_server_when_configured(self, config: AppConfig):
        config.server_url = SERVER
        assert isinstance(make_fetcher(config), HttpContentFetcher)
