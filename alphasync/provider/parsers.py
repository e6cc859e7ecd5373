"""
Payload parsers for every provider endpoint.

Each parser first checks the endpoint's marker. A payload without it (rate-limit
notes, "Information" messages, empty bodies) raises `NoDataError`, which the
sync loop treats as "no data for this item", not as an error.

Field coercion follows two rules:
- Overview fields fall back to sentinels (`SENTINEL_*`) so one odd field never
  loses the whole record.
- Row-defining fields (tick timestamp, bar date, OHLC, top-mover numbers) have
  no meaningful sentinel: the row is dropped and counted in `ParseResult.dropped`.
"""

from __future__ import annotations

import csv
import io
import logging
from datetime import date, datetime, time
from typing import Any, Mapping, Optional

from alphasync.common.errors import NoDataError, ParseError
from alphasync.common.timeutils import (
    parse_date,
    parse_last_updated,
    parse_market_time,
    parse_news_timestamp,
    parse_tick_timestamp,
)
from alphasync.models import (
    TOP_ACTIVE,
    TOP_GAINER,
    TOP_LOSER,
    DailyBar,
    IntradayTick,
    NewsArticle,
    NewsSnapshot,
    Overview,
    SymbolMatch,
    TickerRelevance,
    TopicRelevance,
    TopMover,
)
from alphasync.sync.orchestrator import ParseResult

logger = logging.getLogger(__name__)

SENTINEL_STRING = "__Error__"
SENTINEL_FLOAT = -9.99
SENTINEL_INT = -999
SENTINEL_DATE = date(1900, 1, 1)
MARKET_OPEN_DEFAULT = time(0, 0)
MARKET_CLOSE_DEFAULT = time(23, 59)

SYMBOL_MARKER = "symbol"
OVERVIEW_MARKER = "Symbol"
INTRADAY_MARKER = "timestamp,open,high,low,close,volume"
DAILY_MARKER = "Meta Data"
DAILY_SERIES = "Time Series (Daily)"
TOPS_MARKER = "top_gainers"
NEWS_MARKER = "feed"

_TOP_SECTIONS = (
    ("top_gainers", TOP_GAINER),
    ("top_losers", TOP_LOSER),
    ("most_actively_traded", TOP_ACTIVE),
)


# --- field coercion -------------------------------------------------------


def str_field(data: Mapping[str, Any], key: str) -> str:
    v = data.get(key)
    return v if isinstance(v, str) else SENTINEL_STRING


def float_field(data: Mapping[str, Any], key: str) -> float:
    try:
        return float(str(data.get(key, "")).strip())
    except ValueError:
        return SENTINEL_FLOAT


def int_field(data: Mapping[str, Any], key: str) -> int:
    try:
        return int(str(data.get(key, "")).strip())
    except ValueError:
        return SENTINEL_INT


def date_field(data: Mapping[str, Any], key: str) -> date:
    try:
        return parse_date(data.get(key))
    except ValueError:
        return SENTINEL_DATE


def _number(value: Any) -> float:
    return float(str(value).strip())


def _percent(value: Any) -> float:
    return float(str(value).strip().rstrip("%"))


def _volume(value: Any) -> int:
    s = str(value).strip()
    try:
        return int(s)
    except ValueError:
        # Some feeds report volume as "123.0".
        f = float(s)
        if not f.is_integer():
            raise
        return int(f)


def _require_json_object(payload: Any, marker: str) -> Mapping[str, Any]:
    if not isinstance(payload, Mapping) or marker not in payload:
        raise NoDataError(f"payload missing {marker!r}")
    return payload


# --- symbol search --------------------------------------------------------


def parse_symbol_search(text: str) -> ParseResult:
    if not text or SYMBOL_MARKER not in text:
        raise NoDataError("symbol search returned no matches")
    rows: list[SymbolMatch] = []
    dropped = 0
    for rec in csv.DictReader(io.StringIO(text)):
        try:
            rows.append(
                SymbolMatch(
                    symbol=rec["symbol"].strip(),
                    name=(rec.get("name") or "").strip(),
                    type_label=(rec.get("type") or "").strip(),
                    region=(rec.get("region") or "").strip(),
                    market_open=market_hours(rec.get("marketOpen"), MARKET_OPEN_DEFAULT),
                    market_close=market_hours(rec.get("marketClose"), MARKET_CLOSE_DEFAULT),
                    timezone=(rec.get("timezone") or "").strip(),
                    currency=(rec.get("currency") or "").strip(),
                    match_score=float(rec.get("matchScore") or 0.0),
                )
            )
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            dropped += 1
            logger.debug("parse.symbol_dropped", extra={"error": str(e)})
    return ParseResult(rows=rows, dropped=dropped)


# --- overview -------------------------------------------------------------


def parse_overview(payload: Any, sid: int) -> ParseResult:
    data = _require_json_object(payload, OVERVIEW_MARKER)
    ov = Overview(
        sid=sid,
        symbol=str_field(data, "Symbol"),
        name=str_field(data, "Name"),
        description=str_field(data, "Description"),
        cik=str_field(data, "CIK"),
        exchange=str_field(data, "Exchange"),
        currency=str_field(data, "Currency"),
        country=str_field(data, "Country"),
        sector=str_field(data, "Sector"),
        industry=str_field(data, "Industry"),
        address=str_field(data, "Address"),
        fiscal_year_end=str_field(data, "FiscalYearEnd"),
        latest_quarter=date_field(data, "LatestQuarter"),
        market_capitalization=int_field(data, "MarketCapitalization"),
        ebitda=int_field(data, "EBITDA"),
        pe_ratio=float_field(data, "PERatio"),
        peg_ratio=float_field(data, "PEGRatio"),
        book_value=float_field(data, "BookValue"),
        dividend_per_share=float_field(data, "DividendPerShare"),
        dividend_yield=float_field(data, "DividendYield"),
        eps=float_field(data, "EPS"),
        revenue_per_share_ttm=float_field(data, "RevenuePerShareTTM"),
        profit_margin=float_field(data, "ProfitMargin"),
        operating_margin_ttm=float_field(data, "OperatingMarginTTM"),
        return_on_assets_ttm=float_field(data, "ReturnOnAssetsTTM"),
        return_on_equity_ttm=float_field(data, "ReturnOnEquityTTM"),
        revenue_ttm=int_field(data, "RevenueTTM"),
        gross_profit_ttm=int_field(data, "GrossProfitTTM"),
        diluted_eps_ttm=float_field(data, "DilutedEPSTTM"),
        quarterly_earnings_growth_yoy=float_field(data, "QuarterlyEarningsGrowthYOY"),
        quarterly_revenue_growth_yoy=float_field(data, "QuarterlyRevenueGrowthYOY"),
        analyst_target_price=float_field(data, "AnalystTargetPrice"),
        trailing_pe=float_field(data, "TrailingPE"),
        forward_pe=float_field(data, "ForwardPE"),
        price_to_sales_ratio_ttm=float_field(data, "PriceToSalesRatioTTM"),
        price_to_book_ratio=float_field(data, "PriceToBookRatio"),
        ev_to_revenue=float_field(data, "EVToRevenue"),
        ev_to_ebitda=float_field(data, "EVToEBITDA"),
        beta=float_field(data, "Beta"),
        week52_high=float_field(data, "52WeekHigh"),
        week52_low=float_field(data, "52WeekLow"),
        day50_moving_average=float_field(data, "50DayMovingAverage"),
        day200_moving_average=float_field(data, "200DayMovingAverage"),
        shares_outstanding=float_field(data, "SharesOutstanding"),
        dividend_date=date_field(data, "DividendDate"),
        ex_dividend_date=date_field(data, "ExDividendDate"),
    )
    return ParseResult(rows=[ov])


# --- prices ---------------------------------------------------------------


def parse_intraday_csv(text: str, sid: int, symbol: str) -> ParseResult:
    if not text or INTRADAY_MARKER not in text:
        raise NoDataError(f"no intraday prices for {symbol}", entity=symbol)
    rows: list[IntradayTick] = []
    dropped = 0
    for rec in csv.DictReader(io.StringIO(text)):
        try:
            rows.append(
                IntradayTick(
                    sid=sid,
                    symbol=symbol,
                    tstamp=parse_tick_timestamp(rec.get("timestamp")),
                    open=_number(rec["open"]),
                    high=_number(rec["high"]),
                    low=_number(rec["low"]),
                    close=_number(rec["close"]),
                    volume=_volume(rec["volume"]),
                )
            )
        except (KeyError, TypeError, ValueError) as e:
            dropped += 1
            logger.debug("parse.tick_dropped", extra={"symbol": symbol, "error": str(e)})
    return ParseResult(rows=rows, dropped=dropped)


def parse_daily_json(payload: Any, sid: int, symbol: str) -> ParseResult:
    data = _require_json_object(payload, DAILY_MARKER)
    series = data.get(DAILY_SERIES)
    if not isinstance(series, Mapping):
        raise ParseError(f"daily payload for {symbol} missing {DAILY_SERIES!r}", entity=symbol)
    rows: list[DailyBar] = []
    dropped = 0
    for day, values in series.items():
        try:
            rows.append(
                DailyBar(
                    sid=sid,
                    symbol=symbol,
                    date=parse_date(day),
                    open=_number(values["1. open"]),
                    high=_number(values["2. high"]),
                    low=_number(values["3. low"]),
                    close=_number(values["4. close"]),
                    volume=_volume(values["5. volume"]),
                )
            )
        except (KeyError, TypeError, ValueError) as e:
            dropped += 1
            logger.debug("parse.bar_dropped", extra={"symbol": symbol, "day": day, "error": str(e)})
    return ParseResult(rows=rows, dropped=dropped)


# --- top movers -----------------------------------------------------------


def parse_top_movers(payload: Any) -> ParseResult:
    data = _require_json_object(payload, TOPS_MARKER)
    try:
        last_updated = parse_last_updated(data.get("last_updated"))
    except ValueError as e:
        raise ParseError("top movers payload has no usable last_updated") from e
    rows: list[TopMover] = []
    dropped = 0
    for section, event_type in _TOP_SECTIONS:
        for rec in data.get(section) or []:
            try:
                rows.append(
                    TopMover(
                        ticker=str(rec["ticker"]).strip(),
                        event_type=event_type,
                        last_updated=last_updated,
                        price=_number(rec["price"]),
                        change_amount=_number(rec["change_amount"]),
                        change_pct=_percent(rec["change_percentage"]),
                        volume=_volume(rec["volume"]),
                    )
                )
            except (KeyError, TypeError, ValueError) as e:
                dropped += 1
                logger.debug("parse.top_dropped", extra={"section": section, "error": str(e)})
    return ParseResult(rows=rows, dropped=dropped)


# --- news -----------------------------------------------------------------


def _news_article(rec: Mapping[str, Any]) -> NewsArticle:
    banner = rec.get("banner_image")
    return NewsArticle(
        title=str(rec.get("title") or ""),
        url=str(rec["url"]),
        time_published=parse_news_timestamp(rec.get("time_published")),
        authors=[str(a) for a in (rec.get("authors") or []) if a],
        summary=str(rec.get("summary") or ""),
        banner_image=str(banner) if banner else None,
        source=str(rec.get("source") or ""),
        category_within_source=str(rec.get("category_within_source") or ""),
        source_domain=str(rec.get("source_domain") or ""),
        topics=[
            TopicRelevance(topic=str(t["topic"]), relevance_score=_number(t["relevance_score"]))
            for t in (rec.get("topics") or [])
        ],
        overall_sentiment_score=_number(rec.get("overall_sentiment_score", 0.0)),
        overall_sentiment_label=str(rec.get("overall_sentiment_label") or ""),
        ticker_sentiment=[
            TickerRelevance(
                ticker=str(t["ticker"]),
                relevance_score=_number(t["relevance_score"]),
                sentiment_score=_number(t["ticker_sentiment_score"]),
                sentiment_label=str(t.get("ticker_sentiment_label") or ""),
            )
            for t in (rec.get("ticker_sentiment") or [])
        ],
    )


def parse_news(payload: Any, sid: int, symbol: str, *, now: Optional[datetime] = None) -> ParseResult:
    data = _require_json_object(payload, NEWS_MARKER)
    articles: list[NewsArticle] = []
    dropped = 0
    for rec in data.get(NEWS_MARKER) or []:
        try:
            articles.append(_news_article(rec))
        except (KeyError, TypeError, ValueError) as e:
            dropped += 1
            logger.debug("parse.article_dropped", extra={"symbol": symbol, "error": str(e)})
    if not articles:
        raise NoDataError(f"no news articles for {symbol}", entity=symbol)
    items = int_field(data, "items")
    if items == SENTINEL_INT:
        items = len(articles)
    snapshot = NewsSnapshot(
        sid=sid,
        symbol=symbol,
        items=items,
        articles=articles,
        creation=now or datetime.now(),
    )
    return ParseResult(rows=[snapshot], dropped=dropped)


def market_hours(value: Optional[str], default: time) -> time:
    """Parse an "HH:MM" market time, falling back to `default`."""
    try:
        return parse_market_time(value)
    except ValueError:
        return default
