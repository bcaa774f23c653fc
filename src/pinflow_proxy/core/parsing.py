"""Salvage parsing of model output into a ScoreResult.

The model is asked for strict JSON, but its output is not contractually
structured. Parsing is an ordered chain of attempts, each returning a mapping
or None; the first mapping wins. When every attempt fails the result degrades
to "no match" (score 0, confidence 0) with the raw text as the reason.

Fields are coerced one at a time, so a bad confidence never throws away a
good score.
"""

from __future__ import annotations

import json
import logging
import math
import re
from typing import Any, Callable, Optional

from .models import REASON_MAX_CHARS, ScoreResult

logger = logging.getLogger(__name__)

SCORE_MIN, SCORE_MAX = 0, 10
CONFIDENCE_MIN, CONFIDENCE_MAX = 0, 100

_WHITESPACE = re.compile(r"\s+")


def strip_markdown_code_blocks(text: str) -> str:
    """Strip a surrounding ```json ... ``` fence if the model added one."""
    text = text.strip()
    if text.startswith("```json"):
        text = text[7:]
    elif text.startswith("```"):
        text = text[3:]
    if text.endswith("```"):
        text = text[:-3]
    return text.strip()


def _loads_object(text: str) -> Optional[dict]:
    try:
        value = json.loads(text)
    except (ValueError, TypeError):
        return None
    return value if isinstance(value, dict) else None


def parse_strict(text: str) -> Optional[dict]:
    """The whole text is a JSON object (markdown fences tolerated)."""
    return _loads_object(strip_markdown_code_blocks(text))


def parse_brace_span(text: str) -> Optional[dict]:
    """Parse the substring between the first '{' and the last '}'."""
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        return None
    return _loads_object(text[start:end + 1])


PARSERS: tuple[Callable[[str], Optional[dict]], ...] = (parse_strict, parse_brace_span)


# ─── Field coercion ──────────────────────────────────────────────────────────


def _to_number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        cleaned = value.strip().rstrip("%").strip()
        try:
            number = float(cleaned)
        except ValueError:
            return None
    else:
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def _looks_fractional(value: Any, number: float) -> bool:
    """True for 0.85 or "0.85", false for integer literals like 1 or "1"."""
    if not 0.0 <= number <= 1.0:
        return False
    if isinstance(value, float):
        return True
    if isinstance(value, str):
        return "." in value and not value.strip().endswith("%")
    return False


def coerce_score(value: Any) -> int:
    number = _to_number(value)
    if number is None:
        return SCORE_MIN
    return int(max(SCORE_MIN, min(SCORE_MAX, number)))


def coerce_confidence(value: Any) -> int:
    number = _to_number(value)
    if number is None:
        return CONFIDENCE_MIN
    if _looks_fractional(value, number):
        number *= 100
    return int(max(CONFIDENCE_MIN, min(CONFIDENCE_MAX, round(number))))


def sanitize_reason(value: Any) -> str:
    if value is None:
        return ""
    reason = value if isinstance(value, str) else str(value)
    # A JSON blob mistakenly nested inside reason: keep only its reason.
    if reason.strip().startswith("{"):
        inner = _loads_object(reason.strip())
        if inner is not None and isinstance(inner.get("reason"), str):
            reason = inner["reason"]
    reason = _WHITESPACE.sub(" ", reason).strip()
    return reason[:REASON_MAX_CHARS]


def coerce_result(data: dict) -> ScoreResult:
    return ScoreResult(
        score=coerce_score(data.get("score")),
        reason=sanitize_reason(data.get("reason")),
        confidence=coerce_confidence(data.get("confidence")),
    )


def default_result(text: str) -> ScoreResult:
    return ScoreResult(score=SCORE_MIN, reason=text[:REASON_MAX_CHARS], confidence=CONFIDENCE_MIN)


def parse_score_text(text: Optional[str]) -> ScoreResult:
    """Turn raw model output into a ScoreResult. Never raises."""
    text = text or ""
    for parser in PARSERS:
        data = parser(text)
        if data is not None:
            return coerce_result(data)
    logger.warning("Unparsable model output (%d chars) — degrading to default result", len(text))
    return default_result(text)
