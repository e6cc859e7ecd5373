"""
Row types flowing from the parsers through the sync loop into the store.

All are plain dataclasses; the store maps each type onto its table.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Optional

from alphasync.security.codec import SecurityCategory

TOP_GAINER = "GAIN"
TOP_LOSER = "LOSE"
TOP_ACTIVE = "ACTV"


@dataclass(frozen=True)
class SyncTarget:
    """One security selected from the store for a per-symbol sync."""

    sid: int
    symbol: str
    category: Optional[SecurityCategory] = None


@dataclass
class SymbolMatch:
    """A symbol-search match before it has been assigned a sid."""

    symbol: str
    name: str
    type_label: str
    region: str
    market_open: time
    market_close: time
    timezone: str
    currency: str
    match_score: float = 0.0


@dataclass
class Security:
    sid: int
    symbol: str
    name: str
    category: SecurityCategory
    type_label: str
    region: str
    currency: str
    market_open: time
    market_close: time
    timezone: str


@dataclass
class Overview:
    sid: int
    symbol: str
    name: str
    description: str
    cik: str
    exchange: str
    currency: str
    country: str
    sector: str
    industry: str
    address: str
    fiscal_year_end: str
    latest_quarter: date
    market_capitalization: int
    ebitda: int
    pe_ratio: float
    peg_ratio: float
    book_value: float
    dividend_per_share: float
    dividend_yield: float
    eps: float
    revenue_per_share_ttm: float
    profit_margin: float
    operating_margin_ttm: float
    return_on_assets_ttm: float
    return_on_equity_ttm: float
    revenue_ttm: int
    gross_profit_ttm: int
    diluted_eps_ttm: float
    quarterly_earnings_growth_yoy: float
    quarterly_revenue_growth_yoy: float
    analyst_target_price: float
    trailing_pe: float
    forward_pe: float
    price_to_sales_ratio_ttm: float
    price_to_book_ratio: float
    ev_to_revenue: float
    ev_to_ebitda: float
    beta: float
    week52_high: float
    week52_low: float
    day50_moving_average: float
    day200_moving_average: float
    shares_outstanding: float
    dividend_date: date
    ex_dividend_date: date


@dataclass
class IntradayTick:
    sid: int
    symbol: str
    tstamp: datetime
    open: float
    high: float
    low: float
    close: float
    volume: int


@dataclass
class DailyBar:
    sid: int
    symbol: str
    date: date
    open: float
    high: float
    low: float
    close: float
    volume: int


@dataclass
class TopMover:
    """A top-mover entry as reported; `sid` is resolved later from the registry."""

    ticker: str
    event_type: str
    last_updated: datetime
    price: float
    change_amount: float
    change_pct: float
    volume: int


@dataclass
class TopStat:
    sid: int
    symbol: str
    event_type: str
    date: datetime
    price: float
    change_amount: float
    change_pct: float
    volume: int


@dataclass
class TopicRelevance:
    topic: str
    relevance_score: float


@dataclass
class TickerRelevance:
    ticker: str
    relevance_score: float
    sentiment_score: float
    sentiment_label: str


@dataclass
class NewsArticle:
    title: str
    url: str
    time_published: datetime
    authors: list[str]
    summary: str
    banner_image: Optional[str]
    source: str
    category_within_source: str
    source_domain: str
    topics: list[TopicRelevance] = field(default_factory=list)
    overall_sentiment_score: float = 0.0
    overall_sentiment_label: str = ""
    ticker_sentiment: list[TickerRelevance] = field(default_factory=list)


@dataclass
class NewsSnapshot:
    sid: int
    symbol: str
    items: int
    articles: list[NewsArticle]
    fingerprint: str = ""
    creation: Optional[datetime] = None


# Normalized news rows. Reference rows (source/author/topic) are resolved to ids
# through the run registry before the article and its link rows are written.


@dataclass(frozen=True)
class SourceRef:
    name: str
    domain: str


@dataclass(frozen=True)
class AuthorRef:
    name: str


@dataclass(frozen=True)
class TopicRef:
    name: str


@dataclass
class ArticleRecord:
    hashid: str
    source_id: int
    category: str
    title: str
    url: str
    summary: str
    banner: Optional[str]
    author_id: Optional[int]
    published: datetime


@dataclass
class FeedRecord:
    sid: int
    news_overview_id: int
    article_id: str
    source_id: int
    overall_sentiment: float
    sentiment_label: str


@dataclass
class AuthorMapRecord:
    feed_id: int
    author_id: int


@dataclass
class TopicMapRecord:
    sid: int
    feed_id: int
    topic_id: int
    relevance: float


@dataclass
class TickerSentimentRecord:
    feed_id: int
    sid: int
    relevance: float
    sentiment: float
    sentiment_label: str
