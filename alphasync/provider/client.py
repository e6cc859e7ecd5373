"""
Thin Alpha Vantage HTTP client.

- Builds query URLs per endpoint (the API key always goes last)
- Retries connection errors and timeouts with exponential backoff (tenacity)
- Maps every transport-level failure to `TransientError`

The client knows nothing about payload contents; marker checks and parsing
live in `alphasync.provider.parsers`. Spacing between calls is the request
gate's job, not the client's.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional
from urllib.parse import urlencode

import requests
from tenacity import RetryError, Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from alphasync.common.config import DEFAULT_BASE_URL
from alphasync.common.errors import TransientError

logger = logging.getLogger(__name__)

INTRADAY = "TIME_SERIES_INTRADAY"
CRYPTO_INTRADAY = "CRYPTO_INTRADAY"
DAILY = "TIME_SERIES_DAILY"
OVERVIEW = "OVERVIEW"
SYMBOL_SEARCH = "SYMBOL_SEARCH"
TOP_GAINERS_LOSERS = "TOP_GAINERS_LOSERS"
NEWS_SENTIMENT = "NEWS_SENTIMENT"

# Query parameters per endpoint, in URL order. "{symbol}" is substituted.
_ENDPOINTS: dict[str, tuple[tuple[str, str], ...]] = {
    INTRADAY: (("datatype", "csv"), ("symbol", "{symbol}"), ("interval", "1min")),
    CRYPTO_INTRADAY: (("symbol", "{symbol}"), ("market", "USD"), ("interval", "1min"), ("datatype", "csv")),
    DAILY: (("datatype", "json"), ("symbol", "{symbol}")),
    OVERVIEW: (("symbol", "{symbol}"),),
    SYMBOL_SEARCH: (("keywords", "{symbol}"), ("datatype", "csv")),
    TOP_GAINERS_LOSERS: (),
    NEWS_SENTIMENT: (("tickers", "{symbol}"),),
}

_RETRYABLE = (requests.exceptions.ConnectionError, requests.exceptions.Timeout)


class AlphaVantageClient:
    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = DEFAULT_BASE_URL,
        timeout_s: float = 30.0,
        retry_attempts: int = 3,
        session: Optional[requests.Session] = None,
        wait_min_s: float = 1.0,
        wait_max_s: float = 10.0,
    ) -> None:
        if not api_key:
            raise ValueError("api_key is required")
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout_s = float(timeout_s)
        self.retry_attempts = max(1, int(retry_attempts))
        self.session = session or requests.Session()
        self._wait_min_s = wait_min_s
        self._wait_max_s = wait_max_s

    def url_for(self, function: str, symbol: Optional[str] = None) -> str:
        try:
            endpoint = _ENDPOINTS[function]
        except KeyError:
            raise ValueError(f"unsupported function: {function!r}") from None
        params: list[tuple[str, str]] = [("function", function)]
        for name, value in endpoint:
            if value == "{symbol}":
                if not symbol:
                    raise ValueError(f"{function} requires a symbol")
                value = symbol
            params.append((name, value))
        params.append(("apikey", self.api_key))
        return f"{self.base_url}?{urlencode(params, safe=':,')}"

    def _get(self, url: str) -> requests.Response:
        retrying = Retrying(
            wait=wait_exponential(multiplier=1, min=self._wait_min_s, max=self._wait_max_s),
            stop=stop_after_attempt(self.retry_attempts),
            retry=retry_if_exception_type(_RETRYABLE),
            reraise=False,
        )
        try:
            for attempt in retrying:
                with attempt:
                    return self.session.get(url, timeout=self.timeout_s)
        except RetryError as e:
            cause = e.last_attempt.exception()
            raise TransientError(f"request failed after {self.retry_attempts} attempts: {cause}") from cause
        except requests.exceptions.RequestException as e:
            raise TransientError(f"request failed: {e}") from e
        raise TransientError("request produced no response")  # pragma: no cover

    def get_text(self, function: str, symbol: Optional[str] = None) -> str:
        r = self._get(self.url_for(function, symbol))
        if r.status_code >= 400:
            logger.warning(
                "provider.http_error",
                extra={"function": function, "symbol": symbol, "status_code": r.status_code},
            )
            raise TransientError(f"{function} returned HTTP {r.status_code}", entity=symbol)
        return r.text

    def get_json(self, function: str, symbol: Optional[str] = None) -> Any:
        text = self.get_text(function, symbol)
        try:
            return json.loads(text)
        except ValueError as e:
            raise TransientError(f"{function} returned undecodable JSON", entity=symbol) from e
