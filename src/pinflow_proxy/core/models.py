"""Pydantic data models — the per-request business objects.

Every object here lives for a single scoring request. The HTTP routes and
the MCP tool both hand a ScoreRequest to the pipeline and get a ScoreResult
back.
"""

from __future__ import annotations

from enum import Enum
from typing import Any
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .errors import InvalidRequestError, MissingFieldsError

# Accepted input spellings, in priority order.
URL_ALIASES = ("resolved_url", "resolvedUrl", "url", "source_url", "sourceUrl")
NICHE_ALIASES = ("niche", "nicheBrief", "niche_brief", "brief", "nicheDescription")

REASON_MAX_CHARS = 500


def _first_present(payload: dict, aliases: tuple[str, ...]) -> Any:
    for alias in aliases:
        value = payload.get(alias)
        if value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        return value
    return None


class ScoreRequest(BaseModel):
    """A caller's request to score one video against one niche."""

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    source_url: str = Field(min_length=1)
    niche: str = Field(min_length=1)

    @model_validator(mode="before")
    @classmethod
    def _normalize_aliases(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        normalized = {}
        url = _first_present(data, URL_ALIASES)
        if url is not None:
            normalized["source_url"] = url
        niche = _first_present(data, NICHE_ALIASES)
        if niche is not None:
            normalized["niche"] = niche
        return normalized

    @field_validator("source_url")
    @classmethod
    def _http_only(cls, value: str) -> str:
        parsed = urlparse(value)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError("source URL must be an absolute http(s) URL")
        return value

    @classmethod
    def from_payload(cls, payload: Any) -> ScoreRequest:
        """Build a request from a decoded JSON body, raising InvalidRequestError on bad input."""
        if not isinstance(payload, dict):
            raise InvalidRequestError("INVALID_BODY", "request body must be a JSON object")
        try:
            return cls.model_validate(payload)
        except ValidationError as exc:
            errors = exc.errors()
            if any(e["type"] in ("missing", "string_too_short") for e in errors):
                raise MissingFieldsError() from exc
            fields = sorted({str(e["loc"][0]) for e in errors if e.get("loc")})
            raise InvalidRequestError(
                "INVALID_FIELDS",
                "; ".join(e["msg"] for e in errors),
                fields=fields,
            ) from exc


class DownloadedAsset(BaseModel):
    """A video persisted to a local temp file for the duration of one request."""

    local_path: str
    mime_type: str
    byte_size: int


class AssetState(str, Enum):
    """Processing state of an uploaded file, as reported by the provider."""

    PENDING = "pending"
    ACTIVE = "active"
    FAILED = "failed"

    @classmethod
    def from_provider(cls, state: Any) -> AssetState:
        """Map a provider FileState (enum or string) onto our three states."""
        name = getattr(state, "name", None) or str(state or "")
        name = name.rsplit(".", 1)[-1].upper()
        if name == "ACTIVE":
            return cls.ACTIVE
        if name == "FAILED":
            return cls.FAILED
        return cls.PENDING


class RemoteAssetHandle(BaseModel):
    """An uploaded file on the provider side. The provider owns the authoritative state."""

    id: str
    uri: str = ""
    state: AssetState = AssetState.PENDING

    @property
    def ready(self) -> bool:
        return self.state is AssetState.ACTIVE


class ScoreResult(BaseModel):
    """Relevance of a video to a niche."""

    score: int = Field(default=0, ge=0, le=10)
    reason: str = Field(default="", max_length=REASON_MAX_CHARS)
    confidence: int = Field(default=0, ge=0, le=100)
