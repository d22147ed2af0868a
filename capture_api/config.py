"""
Configuration for the Capture API

Everything here is read once from the environment at process start and kept
in a frozen Settings object that is handed to the engine explicitly.
"""
import os
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

# Retries after the first failed attempt (4 attempts in total)
MAX_RETRIES_WHEN_ERROR = 3

DEFAULT_CONCURRENCY = 15
DEFAULT_BODY_LIMIT_BYTES = 5 * 1024 * 1024

# Chromium flags the renderer is always launched with
BASE_BROWSER_ARGS = (
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-web-security",
)


def _parse_positive_int(value: Optional[str], default: int) -> int:
    try:
        if value is None or value == "":
            return default
        return max(0, int(value))
    except ValueError:
        return default


class Settings(BaseModel):
    model_config = ConfigDict(frozen=True)

    max_concurrency: int = Field(DEFAULT_CONCURRENCY, ge=1, description="Rendering contexts kept open")
    allow_private_networks: bool = Field(False, description="Let pages reach private/internal addresses")
    monitor: bool = Field(False, description="Periodically log pool statistics")
    monitor_interval: float = Field(5.0, gt=0, description="Seconds between pool statistic logs")
    max_retries: int = Field(MAX_RETRIES_WHEN_ERROR, ge=0)
    retry_delay_ms: int = Field(0, ge=0, description="Fixed pause between attempts (milliseconds)")
    body_limit_bytes: int = Field(DEFAULT_BODY_LIMIT_BYTES, ge=0)
    browser_args: Tuple[str, ...] = BASE_BROWSER_ARGS
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 8080


def load_settings(environ=None) -> Settings:
    env = os.environ if environ is None else environ
    extra_args = tuple(a.strip() for a in env.get("BROWSER_ARGS", "").split(",") if a.strip())
    return Settings(
        max_concurrency=max(1, _parse_positive_int(env.get("CONCURRENCY"), DEFAULT_CONCURRENCY)),
        allow_private_networks=env.get("ALLOW_PRIVATE_NETWORKS") == "true",
        monitor=bool(env.get("MONITOR")),
        monitor_interval=max(1, _parse_positive_int(env.get("MONITOR_INTERVAL"), 5)),
        retry_delay_ms=_parse_positive_int(env.get("RETRY_DELAY_MS"), 0),
        body_limit_bytes=_parse_positive_int(env.get("BODY_LIMIT_BYTES"), DEFAULT_BODY_LIMIT_BYTES),
        browser_args=BASE_BROWSER_ARGS + extra_args,
        log_level=env.get("LOG_LEVEL", "INFO"),
        host=env.get("HOST", "0.0.0.0"),
        port=_parse_positive_int(env.get("PORT"), 8080),
    )
