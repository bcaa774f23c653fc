"""Error taxonomy for the scoring pipeline.

Each failure carries a stable machine-readable code and the HTTP status the
routes answer with. Codes are part of the public contract — callers branch
on them (e.g. "bad URL" vs "file too large").
"""

from __future__ import annotations

from typing import Any


class ScoreError(Exception):
    """Base class for every failure surfaced to a caller."""

    code = "INTERNAL"
    status_code = 500

    def __init__(self, message: str = "", *, code: str | None = None, **extra: Any):
        super().__init__(message or self.code)
        if code is not None:
            self.code = code
        self.message = message or self.code
        self.extra = extra

    def to_payload(self) -> dict:
        return {"error": self.code, **self.extra}


# ─── Client input ────────────────────────────────────────────────────────────


class InvalidRequestError(ScoreError):
    status_code = 400

    def __init__(self, code: str, message: str = "", **extra: Any):
        super().__init__(message, code=code, **extra)


class MissingFieldsError(InvalidRequestError):
    def __init__(self):
        super().__init__(
            "MISSING_FIELDS",
            "source URL and niche are both required",
            need=["resolved_url|resolvedUrl|url", "niche|nicheBrief|brief"],
        )


class MissingCredentialError(ScoreError):
    code = "NO_API_KEY"
    status_code = 401


# ─── Fetch ───────────────────────────────────────────────────────────────────


class FetchError(ScoreError):
    code = "DOWNLOAD_FAILED"
    status_code = 502


class FetchNetworkError(FetchError):
    code = "DOWNLOAD_NETWORK"


class FetchStatusError(FetchError):
    code = "DOWNLOAD_STATUS"

    def __init__(self, upstream_status: int):
        super().__init__(f"download returned HTTP {upstream_status}", upstream_status=upstream_status)
        self.upstream_status = upstream_status


class FetchTooLargeError(FetchError):
    code = "DOWNLOAD_TOO_LARGE"
    status_code = 413


class FetchEmptyError(FetchError):
    code = "DOWNLOAD_EMPTY"
    status_code = 422


class FetchHtmlError(FetchError):
    code = "DOWNLOAD_HTML"
    status_code = 422


# ─── Upload ──────────────────────────────────────────────────────────────────


class UploadError(ScoreError):
    code = "UPLOAD_FAILED"
    status_code = 502


class UploadAuthError(UploadError):
    code = "UPLOAD_AUTH"
    status_code = 401


class UploadQuotaError(UploadError):
    code = "UPLOAD_QUOTA"
    status_code = 429


# ─── Readiness ───────────────────────────────────────────────────────────────


class ReadinessError(ScoreError):
    status_code = 502


class AssetFailedError(ReadinessError):
    code = "ASSET_FAILED"


class AssetTimeoutError(ReadinessError):
    code = "ASSET_TIMEOUT"
    status_code = 504


class AssetPollError(ReadinessError):
    code = "ASSET_POLL_FAILED"


# ─── Generation ──────────────────────────────────────────────────────────────


class GenerationError(ScoreError):
    code = "GEN_FAILED"
    status_code = 502


class GenerationAuthError(GenerationError):
    code = "GEN_AUTH"
    status_code = 401


class GenerationRateLimitError(GenerationError):
    code = "GEN_RATE_LIMITED"
    status_code = 429


class GenerationTransientError(GenerationError):
    """Provider-side 5xx. Retried once before it reaches the caller."""

    code = "GEN_INTERNAL"

    def __init__(self, message: str = "", *, retry_after: float | None = None):
        super().__init__(message)
        self.retry_after = retry_after
