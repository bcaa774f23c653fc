"""Environment configuration.

Read once at startup into a frozen ProxyConfig; nothing mutates it afterwards.
"""

from __future__ import annotations

import logging
import os
from typing import Optional

from pydantic import BaseModel, ConfigDict

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-2.5-flash"
DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 10000
DEFAULT_MAX_DOWNLOAD_MB = 100
DEFAULT_DOWNLOAD_TIMEOUT_SECONDS = 60.0
DEFAULT_POLL_INTERVAL_SECONDS = 0.6
DEFAULT_POLL_TIMEOUT_SECONDS = 30.0
DEFAULT_GENERATION_TIMEOUT_SECONDS = 120.0
DEFAULT_GEN_RETRY_DELAY_SECONDS = 1.5
DEFAULT_GEN_RATE_LIMIT_PER_MINUTE = 15


class ProxyConfig(BaseModel):
    """Process-wide settings shared read-only by every request."""

    model_config = ConfigDict(frozen=True)

    api_key: str = ""
    model: str = DEFAULT_MODEL
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    max_download_bytes: int = DEFAULT_MAX_DOWNLOAD_MB * 1024 * 1024
    download_timeout: float = DEFAULT_DOWNLOAD_TIMEOUT_SECONDS
    poll_interval: float = DEFAULT_POLL_INTERVAL_SECONDS
    poll_timeout: float = DEFAULT_POLL_TIMEOUT_SECONDS
    generation_timeout: float = DEFAULT_GENERATION_TIMEOUT_SECONDS
    generation_retry_delay: float = DEFAULT_GEN_RETRY_DELAY_SECONDS
    rate_limit_per_minute: int = DEFAULT_GEN_RATE_LIMIT_PER_MINUTE
    log_level: str = "INFO"

    @property
    def has_key(self) -> bool:
        return bool(self.api_key)


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name, "")
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Ignoring non-numeric %s=%r, using %s", name, raw, default)
        return default


def load_config() -> ProxyConfig:
    """Build a ProxyConfig from the environment. Either API_KEY or GEMINI_API_KEY is accepted."""
    return ProxyConfig(
        api_key=os.environ.get("API_KEY") or os.environ.get("GEMINI_API_KEY", ""),
        model=os.environ.get("MODEL", DEFAULT_MODEL),
        host=os.environ.get("HOST", DEFAULT_HOST),
        port=int(_env_float("PORT", DEFAULT_PORT)),
        max_download_bytes=int(_env_float("MAX_DOWNLOAD_MB", DEFAULT_MAX_DOWNLOAD_MB) * 1024 * 1024),
        download_timeout=_env_float("DOWNLOAD_TIMEOUT_SECONDS", DEFAULT_DOWNLOAD_TIMEOUT_SECONDS),
        poll_interval=_env_float("POLL_INTERVAL_SECONDS", DEFAULT_POLL_INTERVAL_SECONDS),
        poll_timeout=_env_float("POLL_TIMEOUT_SECONDS", DEFAULT_POLL_TIMEOUT_SECONDS),
        generation_timeout=_env_float("GENERATION_TIMEOUT_SECONDS", DEFAULT_GENERATION_TIMEOUT_SECONDS),
        generation_retry_delay=_env_float("GEN_RETRY_DELAY_SECONDS", DEFAULT_GEN_RETRY_DELAY_SECONDS),
        rate_limit_per_minute=int(_env_float("GEN_RATE_LIMIT_PER_MINUTE", DEFAULT_GEN_RATE_LIMIT_PER_MINUTE)),
        log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    )


_config: Optional[ProxyConfig] = None


def get_config() -> ProxyConfig:
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reset_config() -> None:
    """Forget the cached config so the next get_config() re-reads the environment."""
    global _config
    _config = None
