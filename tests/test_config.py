import pytest

from alphasync.common.config import DEFAULT_BASE_URL, from_env
from alphasync.common.errors import ConfigError

_VARS = (
    "ALPHA_VANTAGE_API_KEY",
    "DATABASE_URL",
    "ALPHA_VANTAGE_BASE_URL",
    "ALPHASYNC_MIN_INTERVAL_S",
    "ALPHASYNC_PENALTY_S",
    "ALPHASYNC_MAX_ERRORS",
    "ALPHASYNC_HTTP_TIMEOUT_S",
    "ALPHASYNC_RETRY_ATTEMPTS",
    "LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in _VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("ALPHA_VANTAGE_API_KEY", "demo")
    monkeypatch.setenv("DATABASE_URL", "postgresql://localhost/alpha")


def test_defaults():
    cfg = from_env()
    assert cfg.api_key == "demo"
    assert cfg.base_url == DEFAULT_BASE_URL
    assert cfg.min_interval_s == pytest.approx(0.35)
    assert cfg.max_errors == 50
    assert cfg.retry_attempts == 3
    assert cfg.log_level == "INFO"


def test_overrides(monkeypatch):
    monkeypatch.setenv("ALPHASYNC_MIN_INTERVAL_S", "1.5")
    monkeypatch.setenv("ALPHASYNC_MAX_ERRORS", "5")
    monkeypatch.setenv("LOG_LEVEL", "debug")
    cfg = from_env()
    assert cfg.min_interval_s == pytest.approx(1.5)
    assert cfg.max_errors == 5
    assert cfg.log_level == "DEBUG"


def test_blank_value_uses_default(monkeypatch):
    monkeypatch.setenv("ALPHASYNC_MAX_ERRORS", "  ")
    assert from_env().max_errors == 50


@pytest.mark.parametrize("missing", ["ALPHA_VANTAGE_API_KEY", "DATABASE_URL"])
def test_required(monkeypatch, missing):
    monkeypatch.delenv(missing)
    with pytest.raises(ConfigError, match=missing):
        from_env()


@pytest.mark.parametrize(
    "name,value",
    [
        ("ALPHASYNC_MIN_INTERVAL_S", "fast"),
        ("ALPHASYNC_MIN_INTERVAL_S", "-1"),
        ("ALPHASYNC_MAX_ERRORS", "1.5"),
        ("ALPHASYNC_MAX_ERRORS", "-2"),
        ("ALPHASYNC_RETRY_ATTEMPTS", "0"),
    ],
)
def test_invalid_values(monkeypatch, name, value):
    monkeypatch.setenv(name, value)
    with pytest.raises(ConfigError):
        from_env()
