"""Gemini File API + generation client.

Docs: https://ai.google.dev/gemini-api/docs/files
Uploaded files are processed asynchronously; using one before it is ACTIVE
makes generate_content fail spuriously, hence the readiness poller.
All calls go through the SDK's async surface (``client.aio``).
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Optional

import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from ..errors import (
    AssetFailedError,
    AssetPollError,
    AssetTimeoutError,
    GenerationAuthError,
    GenerationError,
    GenerationRateLimitError,
    GenerationTransientError,
    UploadAuthError,
    UploadError,
    UploadQuotaError,
)
from ..models import AssetState, DownloadedAsset, RemoteAssetHandle
from ..retry import retry_async

logger = logging.getLogger(__name__)

DISPLAY_NAME = "pinflow-video"
MAX_SUGGESTED_DELAY = 10.0
MIN_QUERY_TIMEOUT = 0.05

AUTH_STATUSES = {"UNAUTHENTICATED", "PERMISSION_DENIED"}
QUOTA_STATUSES = {"RESOURCE_EXHAUSTED"}
TRANSIENT_STATUSES = {"INTERNAL", "UNAVAILABLE", "DEADLINE_EXCEEDED"}

SCORE_SCHEMA = types.Schema(
    type=types.Type.OBJECT,
    properties={
        "score": types.Schema(type=types.Type.INTEGER),
        "reason": types.Schema(type=types.Type.STRING),
        "confidence": types.Schema(type=types.Type.INTEGER),
    },
    required=["score", "reason", "confidence"],
)

SYSTEM_INSTRUCTION = " ".join([
    "You rate if the video matches the target niche.",
    "Return STRICT JSON ONLY with {score,reason,confidence}.",
    "score: 0..10 (10 = perfect on-topic).",
    "reason: <= 200 chars, one sentence, no JSON.",
    "confidence: 0..100 (how confident you are).",
])


def make_client(api_key: str, timeout_seconds: float = 120.0) -> genai.Client:
    """Create the process-wide SDK client. Timeout applies to every request."""
    return genai.Client(
        api_key=api_key,
        http_options=types.HttpOptions(timeout=int(timeout_seconds * 1000)),
    )


def build_prompt(niche: str) -> str:
    user = f"Target niche brief:\n{niche}\nScoring task: Does this video belong to the niche?"
    return f"{SYSTEM_INSTRUCTION}\n\n{user}"


# ─── Provider error classification ───────────────────────────────────────────


def classify_api_error(exc: Exception) -> str:
    """Return 'auth', 'quota', 'transient' or 'other' for a provider error.

    The structured code/status fields decide first; the message is only
    inspected when they say nothing useful (Gemini reports a bad key as
    400 INVALID_ARGUMENT).
    """
    code = getattr(exc, "code", None)
    status = str(getattr(exc, "status", None) or "").upper()
    if code in (401, 403) or status in AUTH_STATUSES:
        return "auth"
    if code == 429 or status in QUOTA_STATUSES:
        return "quota"
    if (isinstance(code, int) and code >= 500) or status in TRANSIENT_STATUSES:
        return "transient"

    message = str(getattr(exc, "message", None) or exc).lower()
    if "api key" in message or "api_key_invalid" in message:
        return "auth"
    if "quota" in message or "rate limit" in message:
        return "quota"
    if "internal error" in message or "overloaded" in message:
        return "transient"
    return "other"


def suggested_retry_delay(exc: Any) -> Optional[float]:
    """Seconds from a google.rpc.RetryInfo detail, if the provider sent one."""
    details = getattr(exc, "details", None)
    if not isinstance(details, dict):
        return None
    error = details.get("error", details)
    for item in error.get("details", []) or []:
        if not isinstance(item, dict) or not str(item.get("@type", "")).endswith("RetryInfo"):
            continue
        raw = str(item.get("retryDelay", "")).strip().rstrip("s")
        try:
            return float(raw)
        except ValueError:
            return None
    return None


def _upload_error(exc: Exception) -> UploadError:
    kind = classify_api_error(exc)
    message = str(getattr(exc, "message", None) or exc)
    if kind == "auth":
        return UploadAuthError(message)
    if kind == "quota":
        return UploadQuotaError(message)
    return UploadError(message)


def _generation_error(exc: Exception) -> GenerationError:
    kind = classify_api_error(exc)
    message = str(getattr(exc, "message", None) or exc)
    if kind == "auth":
        return GenerationAuthError(message)
    if kind == "quota":
        return GenerationRateLimitError(message)
    if kind == "transient":
        return GenerationTransientError(message, retry_after=suggested_retry_delay(exc))
    return GenerationError(message)


def handle_from_file(file: Any, previous: Optional[RemoteAssetHandle] = None) -> RemoteAssetHandle:
    """Convert an SDK File into our handle, keeping earlier fields the provider omitted."""
    return RemoteAssetHandle(
        id=getattr(file, "name", None) or (previous.id if previous else ""),
        uri=getattr(file, "uri", None) or (previous.uri if previous else ""),
        state=AssetState.from_provider(getattr(file, "state", None)),
    )


# ─── Upload ──────────────────────────────────────────────────────────────────


async def upload_asset(client: genai.Client, asset: DownloadedAsset) -> RemoteAssetHandle:
    """Upload a downloaded video to the File API."""
    try:
        file = await client.aio.files.upload(
            file=asset.local_path,
            config=types.UploadFileConfig(mime_type=asset.mime_type, display_name=DISPLAY_NAME),
        )
    except genai_errors.APIError as exc:
        raise _upload_error(exc) from exc
    except (httpx.HTTPError, OSError) as exc:
        raise UploadError(f"{type(exc).__name__}: {exc}") from exc

    handle = handle_from_file(file)
    if not handle.id:
        raise UploadError("upload returned no file name")
    logger.info("Uploaded %s as %s (state=%s)", asset.local_path, handle.id, handle.state.value)
    return handle


# ─── Readiness ───────────────────────────────────────────────────────────────


async def wait_until_active(
    client: genai.Client,
    handle: RemoteAssetHandle,
    *,
    timeout: float = 30.0,
    interval: float = 0.6,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> RemoteAssetHandle:
    """Poll until the file is ACTIVE.

    Sleeps ``interval`` before every query and gives up at ``timeout``; a
    status query that outlives the deadline counts as a timeout too.
    A FAILED state aborts at once with AssetFailedError; running out of time
    raises AssetTimeoutError.
    """
    deadline = clock() + timeout
    polls = 0
    while True:
        if handle.state is AssetState.ACTIVE:
            logger.info("File %s active after %d poll(s)", handle.id, polls)
            return handle
        if handle.state is AssetState.FAILED:
            raise AssetFailedError(f"file {handle.id} failed processing")

        remaining = deadline - clock()
        if remaining <= 0:
            raise AssetTimeoutError(f"file {handle.id} not active after {timeout:.0f}s", asset=handle.id)
        await sleep(min(interval, remaining))

        try:
            file = await asyncio.wait_for(
                client.aio.files.get(name=handle.id),
                timeout=max(deadline - clock(), MIN_QUERY_TIMEOUT),
            )
        except asyncio.TimeoutError as exc:
            raise AssetTimeoutError(f"file {handle.id} not active after {timeout:.0f}s", asset=handle.id) from exc
        except genai_errors.APIError as exc:
            raise AssetPollError(str(getattr(exc, "message", None) or exc), asset=handle.id) from exc
        except httpx.HTTPError as exc:
            raise AssetPollError(f"{type(exc).__name__}: {exc}", asset=handle.id) from exc
        handle = handle_from_file(file, previous=handle)
        polls += 1


# ─── Generation ──────────────────────────────────────────────────────────────


async def generate_score_text(
    client: genai.Client,
    handle: RemoteAssetHandle,
    mime_type: str,
    niche: str,
    *,
    model: str,
    limiter: Any = None,
    attempts: int = 2,
    retry_delay: float = 1.5,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> str:
    """Ask the model to score the video; returns the raw response text.

    Only provider-side transient errors are retried. Rate limiting is
    surfaced immediately.
    """
    contents = [
        types.Content(
            role="user",
            parts=[
                types.Part.from_uri(file_uri=handle.uri, mime_type=mime_type),
                types.Part.from_text(text=build_prompt(niche)),
            ],
        )
    ]
    config = types.GenerateContentConfig(
        response_mime_type="application/json",
        response_schema=SCORE_SCHEMA,
    )

    async def attempt() -> str:
        if limiter is not None:
            await limiter.acquire()
        try:
            response = await client.aio.models.generate_content(model=model, contents=contents, config=config)
        except genai_errors.APIError as exc:
            raise _generation_error(exc) from exc
        except httpx.HTTPError as exc:
            raise GenerationTransientError(f"{type(exc).__name__}: {exc}") from exc
        return response.text or ""

    return await retry_async(
        attempt,
        attempts=attempts,
        delay=retry_delay,
        should_retry=lambda exc: isinstance(exc, GenerationTransientError),
        suggested_delay=lambda exc: getattr(exc, "retry_after", None),
        max_delay=MAX_SUGGESTED_DELAY,
        sleep=sleep,
    )


# ─── Cleanup ─────────────────────────────────────────────────────────────────


async def delete_asset(client: genai.Client, handle: RemoteAssetHandle) -> bool:
    """Delete an uploaded file. Best effort: failures are logged, not raised."""
    try:
        await client.aio.files.delete(name=handle.id)
    except Exception as exc:
        logger.warning("Could not delete remote file %s: %s", handle.id, exc)
        return False
    logger.info("Deleted remote file %s", handle.id)
    return True
