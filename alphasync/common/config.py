from __future__ import annotations

import os
from dataclasses import dataclass

from alphasync.common.errors import ConfigError

DEFAULT_BASE_URL = "https://www.alphavantage.co/query"


@dataclass(frozen=True)
class SyncConfig:
    """
    Runtime configuration for one sync job.

    Only the provider key and the database URL are required; everything else
    has a default that matches the provider's free-tier pacing.
    """

    api_key: str
    database_url: str
    base_url: str = DEFAULT_BASE_URL
    min_interval_s: float = 0.35
    penalty_s: float = 0.0
    max_errors: int = 50
    http_timeout_s: float = 30.0
    retry_attempts: int = 3
    log_level: str = "INFO"


def _env(name: str, default: str | None = None) -> str | None:
    v = os.getenv(name)
    if v is None:
        return default
    s = str(v).strip()
    return s if s else default


def _require(name: str) -> str:
    v = _env(name)
    if v is None:
        raise ConfigError(f"Missing required env var: {name}")
    return v


def _env_float(name: str, default: float) -> float:
    raw = _env(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigError(f"Invalid float for {name}: {raw!r}") from e


def _env_int(name: str, default: int) -> int:
    raw = _env(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigError(f"Invalid int for {name}: {raw!r}") from e


def from_env() -> SyncConfig:
    cfg = SyncConfig(
        api_key=_require("ALPHA_VANTAGE_API_KEY"),
        database_url=_require("DATABASE_URL"),
        base_url=_env("ALPHA_VANTAGE_BASE_URL", DEFAULT_BASE_URL) or DEFAULT_BASE_URL,
        min_interval_s=_env_float("ALPHASYNC_MIN_INTERVAL_S", 0.35),
        penalty_s=_env_float("ALPHASYNC_PENALTY_S", 0.0),
        max_errors=_env_int("ALPHASYNC_MAX_ERRORS", 50),
        http_timeout_s=_env_float("ALPHASYNC_HTTP_TIMEOUT_S", 30.0),
        retry_attempts=_env_int("ALPHASYNC_RETRY_ATTEMPTS", 3),
        log_level=(_env("LOG_LEVEL", "INFO") or "INFO").upper(),
    )
    if cfg.min_interval_s < 0 or cfg.penalty_s < 0:
        raise ConfigError("ALPHASYNC_MIN_INTERVAL_S and ALPHASYNC_PENALTY_S must be >= 0")
    if cfg.max_errors < 0:
        raise ConfigError("ALPHASYNC_MAX_ERRORS must be >= 0")
    if cfg.retry_attempts < 1:
        raise ConfigError("ALPHASYNC_RETRY_ATTEMPTS must be >= 1")
    return cfg
