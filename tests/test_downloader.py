"""Tests for the asset downloader."""

import asyncio
import os

import httpx
import pytest

from wp_migration.client.downloader import AssetDownloader
from wp_migration.client.exceptions import DownloadError

URL = "https://blog.example.com/wp-content/uploads/2023/05/photo.jpg"


class BrokenStream(httpx.AsyncByteStream):
    """Yields one chunk, then fails like a dropped connection."""

    async def __aiter__(self):
        yield b"partial"
        raise httpx.ReadError("connection reset")


def download(handler, destination):
    async def go():
        async with AssetDownloader(transport=httpx.MockTransport(handler)) as downloader:
            return await downloader.download(URL, destination)

    return asyncio.run(go())


class TestAssetDownloader:
    def test_writes_file(self, tmp_path):
        destination = tmp_path / "media" / "1-photo.jpg"

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b"\xff\xd8image-bytes")

        written = download(handler, destination)

        assert written == len(b"\xff\xd8image-bytes")
        assert destination.read_bytes() == b"\xff\xd8image-bytes"
        assert os.listdir(destination.parent) == ["1-photo.jpg"]

    def test_http_error_leaves_nothing(self, tmp_path):
        destination = tmp_path / "1-photo.jpg"

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404, content=b"gone")

        with pytest.raises(DownloadError) as exc_info:
            download(handler, destination)

        assert exc_info.value.status_code == 404
        assert exc_info.value.url == URL
        assert os.listdir(tmp_path) == []

    def test_interrupted_stream_leaves_nothing(self, tmp_path):
        destination = tmp_path / "1-photo.jpg"

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, stream=BrokenStream())

        with pytest.raises(DownloadError):
            download(handler, destination)

        assert os.listdir(tmp_path) == []

    def test_failure_keeps_existing_file(self, tmp_path):
        destination = tmp_path / "1-photo.jpg"
        destination.write_bytes(b"complete")

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, stream=BrokenStream())

        with pytest.raises(DownloadError):
            download(handler, destination)

        assert destination.read_bytes() == b"complete"
        assert os.listdir(tmp_path) == ["1-photo.jpg"]

    def test_network_error(self, tmp_path):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused")

        with pytest.raises(DownloadError):
            download(handler, tmp_path / "1-photo.jpg")

        assert os.listdir(tmp_path) == []
