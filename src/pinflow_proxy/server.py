"""pinflow-proxy server.

FastMCP server exposing the scoring pipeline twice: as plain HTTP routes
(``POST /score``, ``GET /health``, ``GET /``) for the browser extension, and
as the ``score_video`` MCP tool.
Run: pinflow-proxy
"""

from __future__ import annotations

import json
import logging

from mcp.server.fastmcp import FastMCP
from mcp.server.fastmcp.exceptions import ToolError
from mcp.types import ToolAnnotations
from starlette.requests import ClientDisconnect, Request
from starlette.responses import JSONResponse, PlainTextResponse, Response

from .config import get_config
from .core.errors import InvalidRequestError, ScoreError
from .core.models import ScoreRequest
from .pipeline import get_pipeline

logger = logging.getLogger(__name__)

CLIENT_CLOSED_REQUEST = 499

# Uploads and deletes remote files, but the same input always yields a fresh, independent run.
SCORING = ToolAnnotations(readOnlyHint=False, destructiveHint=False, idempotentHint=True, openWorldHint=True)

mcp = FastMCP(
    "pinflow-proxy",
    instructions="Score how well a video (given by URL) fits a niche description. Returns score 0-10, a short reason, and confidence 0-100.",
)


def _decode_body(raw: bytes) -> object:
    if not raw.strip():
        return {}
    try:
        return json.loads(raw)
    except ValueError as exc:
        raise InvalidRequestError("INVALID_JSON", "request body is not valid JSON") from exc


# ─── HTTP routes ─────────────────────────────────────────────────────────────


@mcp.custom_route("/", methods=["GET"])
async def banner(request: Request) -> Response:
    return PlainTextResponse("pinflow-proxy up")


@mcp.custom_route("/health", methods=["GET"])
async def health(request: Request) -> Response:
    config = get_config()
    return JSONResponse({"ok": True, "hasKey": config.has_key, "model": config.model})


@mcp.custom_route("/selftest", methods=["GET"])
async def selftest(request: Request) -> Response:
    return JSONResponse({"ok": True, "text": "Ping!"})


@mcp.custom_route("/diag", methods=["GET"])
async def diag(request: Request) -> Response:
    config = get_config()
    return JSONResponse({
        "ok": True,
        "keyLen": len(config.api_key),
        "model": config.model,
        "rateLimitPerMinute": config.rate_limit_per_minute,
    })


@mcp.custom_route("/score", methods=["POST"])
async def score(request: Request) -> Response:
    """Score one video. Body: {"resolved_url": ..., "niche": ...} (aliases accepted)."""
    try:
        payload = _decode_body(await request.body())
        score_request = ScoreRequest.from_payload(payload)
        pipeline = get_pipeline()
        result = await pipeline.score(score_request)
    except ScoreError as exc:
        logger.warning("Score request failed: %s (%s)", exc.code, exc.message)
        return JSONResponse(exc.to_payload(), status_code=exc.status_code)
    except ClientDisconnect:
        logger.info("Client disconnected before the score request was read")
        return Response(status_code=CLIENT_CLOSED_REQUEST)
    except Exception:
        logger.exception("Unexpected failure while scoring")
        return JSONResponse({"error": "INTERNAL"}, status_code=500)

    return JSONResponse({"ok": True, "model": pipeline.config.model, **result.model_dump()})


# ─── MCP tool ────────────────────────────────────────────────────────────────


@mcp.tool(annotations=SCORING)
async def score_video(url: str, niche: str) -> dict:
    """Score how well a video matches a niche.

    Args:
        url: Direct http(s) URL of the video file.
        niche: Natural-language description of the target niche.
    """
    try:
        request = ScoreRequest.from_payload({"url": url, "niche": niche})
        result = await get_pipeline().score(request)
    except ScoreError as exc:
        raise ToolError(f"{exc.code}: {exc.message}") from exc
    return result.model_dump()


def main():
    """Entry point for the CLI command."""
    config = get_config()
    logging.basicConfig(level=config.log_level, format="%(asctime)s %(name)s %(levelname)s %(message)s")
    if not config.has_key:
        logger.error("No API key in env (API_KEY or GEMINI_API_KEY) — /score will answer 401")
    else:
        logger.info("Booting model=%s on %s:%d", config.model, config.host, config.port)
    mcp.settings.host = config.host
    mcp.settings.port = config.port
    mcp.run(transport="streamable-http")


if __name__ == "__main__":
    main()
