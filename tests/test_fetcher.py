"""Video downloader against a MockTransport host."""

from __future__ import annotations

import asyncio
import os
import time

import httpx
import pytest

from conftest import VIDEO_BYTES
from pinflow_proxy.core.clients.fetcher import USER_AGENT, download_to_tmp, make_temp_path
from pinflow_proxy.core.errors import (
    FetchEmptyError,
    FetchHtmlError,
    FetchNetworkError,
    FetchStatusError,
    FetchTooLargeError,
)

URL = "https://cdn.test/video.mp4"


def _transport(response_or_handler) -> httpx.MockTransport:
    if callable(response_or_handler):
        return httpx.MockTransport(response_or_handler)
    return httpx.MockTransport(lambda request: response_or_handler)


async def _download(transport, max_bytes=1024 * 1024):
    return await download_to_tmp(URL, max_bytes=max_bytes, timeout=5.0, transport=transport)


class TestDownloadToTmp:
    @pytest.mark.asyncio
    async def test_success_writes_temp_file(self):
        seen = {}

        def handler(request):
            seen["ua"] = request.headers.get("user-agent")
            return httpx.Response(200, content=VIDEO_BYTES, headers={"content-type": "video/mp4; codecs=avc1"})

        asset = await _download(_transport(handler))
        try:
            assert asset.mime_type == "video/mp4"
            assert asset.byte_size == len(VIDEO_BYTES)
            assert os.path.basename(asset.local_path).startswith("pinflow_")
            with open(asset.local_path, "rb") as fh:
                assert fh.read() == VIDEO_BYTES
            assert seen["ua"] == USER_AGENT
        finally:
            os.unlink(asset.local_path)

    @pytest.mark.asyncio
    async def test_follows_redirects(self):
        def handler(request):
            if request.url.path == "/video.mp4":
                return httpx.Response(302, headers={"location": "https://cdn.test/real.mp4"})
            return httpx.Response(200, content=VIDEO_BYTES, headers={"content-type": "video/webm"})

        asset = await _download(_transport(handler))
        os.unlink(asset.local_path)
        assert asset.mime_type == "video/webm"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("content_type", [None, "application/octet-stream"])
    async def test_generic_content_type_defaults_to_mp4(self, content_type):
        headers = {"content-type": content_type} if content_type else {}
        asset = await _download(_transport(httpx.Response(200, content=VIDEO_BYTES, headers=headers)))
        os.unlink(asset.local_path)
        assert asset.mime_type == "video/mp4"

    @pytest.mark.asyncio
    async def test_404_is_status_error(self):
        with pytest.raises(FetchStatusError) as info:
            await _download(_transport(httpx.Response(404, text="not found")))
        assert info.value.code == "DOWNLOAD_STATUS"
        assert info.value.upstream_status == 404
        assert info.value.status_code == 502

    @pytest.mark.asyncio
    @pytest.mark.parametrize("content_type", ["video/mp4", "text/html", "application/octet-stream"])
    async def test_empty_body_regardless_of_content_type(self, content_type):
        with pytest.raises(FetchEmptyError) as info:
            await _download(_transport(httpx.Response(200, content=b"", headers={"content-type": content_type})))
        assert info.value.code == "DOWNLOAD_EMPTY"

    @pytest.mark.asyncio
    async def test_declared_html_rejected(self):
        response = httpx.Response(200, text="<p>consent</p>", headers={"content-type": "text/html; charset=utf-8"})
        with pytest.raises(FetchHtmlError):
            await _download(_transport(response))

    @pytest.mark.asyncio
    async def test_html_disguised_as_video_rejected(self):
        body = b"\n  <!DOCTYPE html><html><body>Please accept cookies</body></html>"
        response = httpx.Response(200, content=body, headers={"content-type": "video/mp4"})
        with pytest.raises(FetchHtmlError) as info:
            await _download(_transport(response))
        assert info.value.code == "DOWNLOAD_HTML"

    @pytest.mark.asyncio
    async def test_declared_length_over_cap(self):
        response = httpx.Response(200, content=b"\x01" * 2048, headers={"content-type": "video/mp4"})
        with pytest.raises(FetchTooLargeError) as info:
            await _download(_transport(response), max_bytes=1024)
        assert info.value.status_code == 413

    @pytest.mark.asyncio
    async def test_streamed_body_over_cap_cleans_up(self, tmp_path, monkeypatch):
        monkeypatch.setattr("tempfile.tempdir", str(tmp_path))

        async def chunks():
            yield b"\x01" * 800
            yield b"\x02" * 800

        response = httpx.Response(200, content=chunks(), headers={"content-type": "video/mp4"})
        with pytest.raises(FetchTooLargeError):
            await _download(_transport(response), max_bytes=1024)
        assert list(tmp_path.iterdir()) == []

    @pytest.mark.asyncio
    async def test_network_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(FetchNetworkError) as info:
            await _download(_transport(handler))
        assert info.value.code == "DOWNLOAD_NETWORK"

    @pytest.mark.asyncio
    async def test_trickling_body_hits_total_deadline(self, tmp_path, monkeypatch):
        monkeypatch.setattr("tempfile.tempdir", str(tmp_path))

        async def drip():
            for _ in range(6):
                yield b"\x00" * 10
                await asyncio.sleep(0.3)

        response = httpx.Response(200, content=drip(), headers={"content-type": "video/mp4"})
        started = time.monotonic()
        with pytest.raises(FetchNetworkError) as info:
            await download_to_tmp(URL, max_bytes=1024 * 1024, timeout=0.5, transport=_transport(response))
        assert time.monotonic() - started < 1.0
        assert info.value.code == "DOWNLOAD_NETWORK"
        assert list(tmp_path.iterdir()) == []

    @pytest.mark.asyncio
    async def test_chunks_written_off_the_event_loop(self, monkeypatch):
        written = []
        real_to_thread = asyncio.to_thread

        async def recording_to_thread(func, *args):
            written.append(args[0])
            return await real_to_thread(func, *args)

        monkeypatch.setattr(asyncio, "to_thread", recording_to_thread)
        asset = await _download(_transport(httpx.Response(200, content=VIDEO_BYTES)))
        os.unlink(asset.local_path)
        assert b"".join(written) == VIDEO_BYTES


def test_temp_paths_are_unique():
    paths = {make_temp_path("video/mp4") for _ in range(200)}
    assert len(paths) == 200
    assert all(p.endswith(".mp4") for p in paths)
