"""Scoring pipeline: download → upload → poll → generate → cleanup.

Stages run strictly in sequence for one request. Whatever happens — success,
a stage error, or the caller going away (task cancellation) — the temp file
is unlinked and the remote file deleted before ``score`` returns.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

import httpx
from google import genai

from .config import ProxyConfig, get_config
from .core.clients import fetcher, gemini
from .core.errors import MissingCredentialError
from .core.models import DownloadedAsset, RemoteAssetHandle, ScoreRequest, ScoreResult
from .core.parsing import parse_score_text
from .ratelimit import SlidingWindowLimiter

logger = logging.getLogger(__name__)


class ScoringPipeline:
    """Holds the shared, read-only collaborators and runs one request at a time per call."""

    def __init__(
        self,
        config: ProxyConfig,
        client: genai.Client,
        *,
        limiter: Optional[SlidingWindowLimiter] = None,
        http_transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config
        self.client = client
        self.limiter = limiter
        self.http_transport = http_transport

    async def score(self, request: ScoreRequest) -> ScoreResult:
        asset: Optional[DownloadedAsset] = None
        handle: Optional[RemoteAssetHandle] = None
        logger.info("Scoring %s", request.source_url)
        try:
            asset = await fetcher.download_to_tmp(
                request.source_url,
                max_bytes=self.config.max_download_bytes,
                timeout=self.config.download_timeout,
                transport=self.http_transport,
            )
            handle = await gemini.upload_asset(self.client, asset)
            handle = await gemini.wait_until_active(
                self.client,
                handle,
                timeout=self.config.poll_timeout,
                interval=self.config.poll_interval,
            )
            text = await gemini.generate_score_text(
                self.client,
                handle,
                asset.mime_type,
                request.niche,
                model=self.config.model,
                limiter=self.limiter,
                retry_delay=self.config.generation_retry_delay,
            )
            result = parse_score_text(text)
            logger.info("Scored %s -> score=%d confidence=%d", request.source_url, result.score, result.confidence)
            return result
        finally:
            await self._release(asset, handle)

    async def _release(self, asset: Optional[DownloadedAsset], handle: Optional[RemoteAssetHandle]) -> None:
        if asset is not None:
            fetcher.remove_quietly(asset.local_path)
        if handle is not None:
            # Must complete even while this task is being cancelled.
            await asyncio.shield(gemini.delete_asset(self.client, handle))


def build_pipeline(config: ProxyConfig) -> ScoringPipeline:
    if not config.has_key:
        raise MissingCredentialError("API_KEY (or GEMINI_API_KEY) is not configured")
    limiter = SlidingWindowLimiter(config.rate_limit_per_minute, 60.0)
    client = gemini.make_client(config.api_key, config.generation_timeout)
    return ScoringPipeline(config, client, limiter=limiter)


_pipeline: Optional[ScoringPipeline] = None


def get_pipeline() -> ScoringPipeline:
    """Return the process-wide pipeline, building it on first use."""
    global _pipeline
    if _pipeline is None:
        _pipeline = build_pipeline(get_config())
    return _pipeline


def set_pipeline(pipeline: Optional[ScoringPipeline]) -> None:
    global _pipeline
    _pipeline = pipeline
