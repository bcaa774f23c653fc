"""Video downloader.

Streams a caller-supplied URL into a uniquely named temp file. Rejects
anything that is clearly not media: non-2xx responses, empty bodies, HTML
interstitials (consent walls, login pages) and payloads above the size cap.
"""

from __future__ import annotations

import asyncio
import logging
import mimetypes
import os
import secrets
import tempfile
import time
from typing import Optional

import httpx

from ... import __version__
from ..errors import (
    FetchEmptyError,
    FetchHtmlError,
    FetchNetworkError,
    FetchStatusError,
    FetchTooLargeError,
)
from ..models import DownloadedAsset

logger = logging.getLogger(__name__)

USER_AGENT = f"pinflow-proxy/{__version__} (+video relevance scorer)"
DEFAULT_MIME_TYPE = "video/mp4"
GENERIC_MIME_TYPES = {"application/octet-stream", "binary/octet-stream", "application/unknown"}
VIDEO_EXTENSIONS = {"video/mp4": ".mp4", "video/quicktime": ".mov", "video/webm": ".webm"}
TEMP_PREFIX = "pinflow_"
SNIFF_BYTES = 512
CHUNK_SIZE = 64 * 1024


def _normalize_mime(content_type: Optional[str]) -> str:
    mime = (content_type or "").split(";", 1)[0].strip().lower()
    if not mime or mime in GENERIC_MIME_TYPES:
        return DEFAULT_MIME_TYPE
    return mime


def _looks_like_html(head: bytes) -> bool:
    sample = head[:SNIFF_BYTES].lstrip().lower()
    return sample.startswith(b"<!doctype html") or sample.startswith(b"<html") or b"<html" in sample[:64]


def make_temp_path(mime_type: str) -> str:
    """Collision-resistant temp path: epoch millis plus a random suffix."""
    ext = VIDEO_EXTENSIONS.get(mime_type) or mimetypes.guess_extension(mime_type) or ".mp4"
    name = f"{TEMP_PREFIX}{int(time.time() * 1000)}_{secrets.token_hex(6)}{ext}"
    return os.path.join(tempfile.gettempdir(), name)


def remove_quietly(path: Optional[str]) -> None:
    """Unlink a temp file; failures are logged, never raised."""
    if not path:
        return
    try:
        os.unlink(path)
    except FileNotFoundError:
        pass
    except OSError as exc:
        logger.warning("Could not remove temp file %s: %s", path, exc)


async def download_to_tmp(
    url: str,
    *,
    max_bytes: int,
    timeout: float = 60.0,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> DownloadedAsset:
    """Download ``url`` to a temp file.

    Args:
        url: Absolute http(s) URL of the video.
        max_bytes: Upper bound on the body size.
        timeout: Budget in seconds for the whole download, and the
            per-operation HTTP timeout. A server that keeps trickling bytes
            still fails once the budget is spent.
        transport: Optional httpx transport (tests inject a MockTransport).

    Returns:
        DownloadedAsset describing the temp file. The caller owns the file.
    """
    path: Optional[str] = None

    async def stream() -> tuple[str, int, bytes]:
        nonlocal path
        async with httpx.AsyncClient(
            timeout=httpx.Timeout(timeout, connect=10.0),
            follow_redirects=True,
            headers={"User-Agent": USER_AGENT, "Accept": "video/*,*/*;q=0.8"},
            transport=transport,
        ) as client:
            async with client.stream("GET", url) as response:
                if not response.is_success:
                    raise FetchStatusError(response.status_code)

                declared = response.headers.get("content-type")
                mime_type = _normalize_mime(declared)

                length = response.headers.get("content-length")
                if length and length.isdigit() and int(length) > max_bytes:
                    raise FetchTooLargeError(f"declared size {length} exceeds {max_bytes} bytes")

                path = make_temp_path(mime_type)
                size = 0
                head = b""
                with open(path, "wb") as fh:
                    async for chunk in response.aiter_bytes(CHUNK_SIZE):
                        if len(head) < SNIFF_BYTES:
                            head += chunk[:SNIFF_BYTES - len(head)]
                        size += len(chunk)
                        if size > max_bytes:
                            raise FetchTooLargeError(f"body exceeds {max_bytes} bytes")
                        await asyncio.to_thread(fh.write, chunk)
        return mime_type, size, head

    try:
        mime_type, size, head = await asyncio.wait_for(stream(), timeout=timeout)
        if size == 0:
            raise FetchEmptyError(f"{url} returned an empty body")
        if mime_type == "text/html" or _looks_like_html(head):
            raise FetchHtmlError(f"{url} returned an HTML page instead of media")
    except asyncio.TimeoutError as exc:
        remove_quietly(path)
        raise FetchNetworkError(f"download did not finish within {timeout:g}s") from exc
    except httpx.HTTPError as exc:
        remove_quietly(path)
        raise FetchNetworkError(f"{type(exc).__name__}: {exc}") from exc
    except BaseException:
        remove_quietly(path)
        raise

    logger.info("Downloaded %s -> %s (%d bytes, %s)", url, path, size, mime_type)
    return DownloadedAsset(local_path=path, mime_type=mime_type, byte_size=size)
