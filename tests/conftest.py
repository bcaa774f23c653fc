"""Shared fixtures: an in-memory stand-in for the genai client and a fake video host."""

from __future__ import annotations

import asyncio
from types import SimpleNamespace
from typing import Any, Callable, Optional, Union
from uuid import uuid4

import httpx
import pytest

from pinflow_proxy.config import ProxyConfig, reset_config
from pinflow_proxy.pipeline import ScoringPipeline, set_pipeline

GOOD_JSON = '{"score": 7, "reason": "matches the niche", "confidence": 85}'
VIDEO_BYTES = b"\x00\x00\x00\x18ftypmp42" + b"\x01" * 2048


class FakeFiles:
    """Mimics ``client.aio.files``. Tracks every upload and deletion."""

    def __init__(self, states: tuple = ("ACTIVE",)):
        self.states = list(states)
        self.uploaded: dict[str, dict] = {}
        self.deleted: list[str] = []
        self.get_calls = 0
        self.upload_error: Optional[Exception] = None

    def _state(self, index: int):
        return self.states[min(index, len(self.states) - 1)]

    async def upload(self, *, file: str, config: Any):
        if self.upload_error is not None:
            raise self.upload_error
        name = f"files/{uuid4().hex[:10]}"
        with open(file, "rb") as fh:
            content = fh.read()
        self.uploaded[name] = {"path": file, "mime_type": config.mime_type, "content": content}
        return SimpleNamespace(name=name, uri=f"https://files.test/{name}", state=self._state(0))

    async def get(self, *, name: str):
        self.get_calls += 1
        return SimpleNamespace(name=name, uri=f"https://files.test/{name}", state=self._state(self.get_calls))

    async def delete(self, *, name: str):
        self.deleted.append(name)

    @property
    def live(self) -> set[str]:
        return set(self.uploaded) - set(self.deleted)

    def content_for_uri(self, uri: str) -> bytes:
        return self.uploaded[uri.removeprefix("https://files.test/")]["content"]


Outcome = Union[str, Exception]


class FakeModels:
    """Mimics ``client.aio.models``.

    ``outcomes`` is either a callable ``(file_uri) -> str | Exception`` or a
    list consumed one call at a time (the last entry repeats).
    """

    def __init__(self, outcomes: Union[list, Callable[[str], Outcome]]):
        self.outcomes = outcomes
        self.calls: list[dict] = []
        self.gate: Optional[asyncio.Event] = None
        self.entered = asyncio.Event()

    async def generate_content(self, *, model: str, contents: Any, config: Any):
        file_uri = contents[0].parts[0].file_data.file_uri
        self.calls.append({"model": model, "file_uri": file_uri, "config": config})
        self.entered.set()
        if self.gate is not None:
            await self.gate.wait()
        if callable(self.outcomes):
            outcome = self.outcomes(file_uri)
        else:
            outcome = self.outcomes[min(len(self.calls), len(self.outcomes)) - 1]
        if isinstance(outcome, Exception):
            raise outcome
        return SimpleNamespace(text=outcome)


class FakeGenaiClient:
    def __init__(self, outcomes: Union[list, Callable[[str], Outcome]] = None, states: tuple = ("ACTIVE",)):
        self.files = FakeFiles(states)
        self.models = FakeModels(outcomes if outcomes is not None else [GOOD_JSON])
        self.aio = SimpleNamespace(files=self.files, models=self.models)


def video_host(routes: Optional[dict[str, httpx.Response]] = None) -> httpx.MockTransport:
    """A MockTransport serving VIDEO_BYTES for any URL not listed in ``routes``."""
    routes = routes or {}

    def handler(request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        if url in routes:
            return routes[url]
        return httpx.Response(200, content=VIDEO_BYTES, headers={"content-type": "video/mp4"})

    return httpx.MockTransport(handler)


@pytest.fixture
def test_config() -> ProxyConfig:
    return ProxyConfig(
        api_key="test-key",
        model="gemini-test",
        poll_interval=0.01,
        poll_timeout=0.05,
        generation_retry_delay=0.0,
        rate_limit_per_minute=0,
        max_download_bytes=1024 * 1024,
    )


@pytest.fixture
def fake_client() -> FakeGenaiClient:
    return FakeGenaiClient()


@pytest.fixture
def pipeline(test_config, fake_client) -> ScoringPipeline:
    return ScoringPipeline(test_config, fake_client, http_transport=video_host())


@pytest.fixture(autouse=True)
def reset_global_state(monkeypatch):
    """Every test starts without a cached config or pipeline."""
    monkeypatch.delenv("API_KEY", raising=False)
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    reset_config()
    set_pipeline(None)
    yield
    reset_config()
    set_pipeline(None)
