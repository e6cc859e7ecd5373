"""
PostgreSQL implementation of the sync store (psycopg2).

- One transaction per statement group; `with conn:` commits on success and
  rolls back on any error, so a rejected row never poisons the next one.
- Integrity / data errors -> RowRejectedError (skip the row)
- Every other psycopg2 error -> StoreFatalError (abort the run)
- Writing intraday ticks, daily bars or an overview also flips the matching
  flag on the symbol record (once per sid per store instance).
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any, Callable, Optional, Sequence

import psycopg2

from alphasync.common.errors import RowRejectedError, StoreFatalError
from alphasync.models import (
    ArticleRecord,
    AuthorMapRecord,
    AuthorRef,
    DailyBar,
    FeedRecord,
    IntradayTick,
    NewsSnapshot,
    Overview,
    Security,
    SourceRef,
    SyncTarget,
    TickerSentimentRecord,
    TopicMapRecord,
    TopicRef,
    TopStat,
)
from alphasync.persistence.store import FLAG_INTRADAY, FLAG_OVERVIEW, FLAG_SUMMARY, FLAGS
from alphasync.security.codec import MAX_SEQUENCE, TAG_SHIFT, SecurityCategory, decode
from alphasync.sync.registry import AUTHOR, SOURCE, SYMBOL, TOPIC

logger = logging.getLogger(__name__)

_REGISTRY_SQL = {
    AUTHOR: "SELECT author_name, id FROM authors",
    SOURCE: "SELECT source_name, id FROM sources",
    TOPIC: "SELECT name, id FROM topicrefs",
    SYMBOL: "SELECT symbol, sid FROM symbols",
}

_SQL_INSERT_SYMBOL = """
    INSERT INTO symbols (
        sid, symbol, name, sec_type, region, marketopen, marketclose, timezone, currency,
        overview, intraday, summary, c_time, m_time
    ) VALUES (%s,%s,%s,%s,%s,%s,%s,%s,%s,false,false,false,now(),now())
    ON CONFLICT (symbol) DO NOTHING
    RETURNING sid
"""

_SQL_INSERT_NEWS_OVERVIEW = """
    INSERT INTO newsoverviews (sid, items, hashid, creation)
    VALUES (%s,%s,%s,%s)
    ON CONFLICT (hashid, sid) DO NOTHING
    RETURNING id
"""

_SQL_INSERT_ARTICLE = """
    INSERT INTO articles (hashid, sourceid, category, title, url, summary, banner, author, ct)
    VALUES (%s,%s,%s,%s,%s,%s,%s,%s,%s)
    ON CONFLICT (hashid) DO NOTHING
    RETURNING hashid
"""

_SQL_INSERT_FEED = """
    INSERT INTO feeds (sid, newsoverviewid, articleid, sourceid, osentiment, sentlabel)
    VALUES (%s,%s,%s,%s,%s,%s)
    ON CONFLICT (newsoverviewid, articleid) DO NOTHING
    RETURNING id
"""

_SQL_INSERT_OVERVIEW = """
    INSERT INTO overviews (
        sid, symbol, name, description, cik, exch, curr, country, sector, industry, address,
        fiscalyearend, latestquarter, marketcapitalization, ebitda, peratio, pegratio, bookvalue,
        dividendpershare, dividendyield, eps, c_time, mod_time
    ) VALUES (%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,now(),now())
"""

_SQL_INSERT_OVERVIEW_EXT = """
    INSERT INTO overviewexts (
        sid, revenuepersharettm, profitmargin, operatingmarginttm, returnonassetsttm,
        returnonequityttm, revenuettm, grossprofitttm, dilutedepsttm, quarterlyearningsgrowthyoy,
        quarterlyrevenuegrowthyoy, analysttargetprice, trailingpe, forwardpe, pricetosalesratiottm,
        pricetobookratio, evtorevenue, evtoebitda, beta, annweekhigh, annweeklow,
        fiftydaymovingaverage, twohdaymovingaverage, sharesoutstanding, dividenddate,
        exdividenddate, c_time, mod_time
    ) VALUES (%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,now(),now())
"""

_SQL_INSERT_TICK = """
    INSERT INTO intradayprices (tstamp, sid, symbol, open, high, low, close, volume)
    VALUES (%s,%s,%s,%s,%s,%s,%s,%s)
    ON CONFLICT (sid, tstamp) DO NOTHING
"""

_SQL_INSERT_BAR = """
    INSERT INTO summaryprices (date, sid, symbol, open, high, low, close, volume)
    VALUES (%s,%s,%s,%s,%s,%s,%s,%s)
    ON CONFLICT (sid, date) DO NOTHING
"""

_SQL_INSERT_TOPSTAT = """
    INSERT INTO topstats (date, event_type, sid, symbol, price, change_val, change_pct, volume)
    VALUES (%s,%s,%s,%s,%s,%s,%s,%s)
    ON CONFLICT (date, event_type, sid) DO NOTHING
"""

_SQL_INSERT_AUTHOR_MAP = """
    INSERT INTO authormaps (feedid, authorid) VALUES (%s,%s)
    ON CONFLICT (feedid, authorid) DO NOTHING
"""

_SQL_INSERT_TOPIC_MAP = """
    INSERT INTO topicmaps (sid, feedid, topicid, relscore) VALUES (%s,%s,%s,%s)
    ON CONFLICT (feedid, topicid) DO NOTHING
"""

_SQL_INSERT_TICKER_SENTIMENT = """
    INSERT INTO tickersentiments (feedid, sid, relevance, tsentiment, sentimentlable)
    VALUES (%s,%s,%s,%s,%s)
    ON CONFLICT (feedid, sid) DO NOTHING
"""


def _overview_params(ov: Overview) -> tuple[tuple[Any, ...], tuple[Any, ...]]:
    base = (
        ov.sid, ov.symbol, ov.name, ov.description, ov.cik, ov.exchange, ov.currency, ov.country,
        ov.sector, ov.industry, ov.address, ov.fiscal_year_end, ov.latest_quarter,
        ov.market_capitalization, ov.ebitda, ov.pe_ratio, ov.peg_ratio, ov.book_value,
        ov.dividend_per_share, ov.dividend_yield, ov.eps,
    )
    ext = (
        ov.sid, ov.revenue_per_share_ttm, ov.profit_margin, ov.operating_margin_ttm,
        ov.return_on_assets_ttm, ov.return_on_equity_ttm, ov.revenue_ttm, ov.gross_profit_ttm,
        ov.diluted_eps_ttm, ov.quarterly_earnings_growth_yoy, ov.quarterly_revenue_growth_yoy,
        ov.analyst_target_price, ov.trailing_pe, ov.forward_pe, ov.price_to_sales_ratio_ttm,
        ov.price_to_book_ratio, ov.ev_to_revenue, ov.ev_to_ebitda, ov.beta, ov.week52_high,
        ov.week52_low, ov.day50_moving_average, ov.day200_moving_average, ov.shares_outstanding,
        ov.dividend_date, ov.ex_dividend_date,
    )
    return base, ext


class PostgresStore:
    def __init__(self, conn: Any) -> None:
        self.conn = conn
        self._flagged: set[tuple[str, int]] = set()

    @classmethod
    def connect(cls, dsn: str) -> "PostgresStore":
        try:
            conn = psycopg2.connect(dsn)
        except psycopg2.Error as e:
            raise StoreFatalError(f"cannot connect to database: {e}") from e
        return cls(conn)

    def close(self) -> None:
        self.conn.close()

    # --- plumbing ---------------------------------------------------------

    def _run(self, fn: Callable[[Any], Any], *, what: str) -> Any:
        """Run `fn(cursor)` in its own transaction and map psycopg2 errors."""
        try:
            with self.conn:
                with self.conn.cursor() as cur:
                    return fn(cur)
        except (psycopg2.IntegrityError, psycopg2.DataError) as e:
            raise RowRejectedError(f"{what} rejected: {e}", entity=what) from e
        except psycopg2.Error as e:
            raise StoreFatalError(f"{what} failed: {e}", entity=what) from e

    def _fetch_one(self, sql: str, params: Sequence[Any], *, what: str) -> Optional[tuple[Any, ...]]:
        def _q(cur: Any) -> Optional[tuple[Any, ...]]:
            cur.execute(sql, params)
            return cur.fetchone()

        return self._run(_q, what=what)

    def _fetch_all(self, sql: str, params: Sequence[Any] = (), *, what: str) -> list[tuple[Any, ...]]:
        def _q(cur: Any) -> list[tuple[Any, ...]]:
            cur.execute(sql, params)
            return list(cur.fetchall())

        return self._run(_q, what=what)

    def _execute(self, statements: Sequence[tuple[str, Sequence[Any]]], *, what: str) -> None:
        def _q(cur: Any) -> None:
            for sql, params in statements:
                cur.execute(sql, params)

        self._run(_q, what=what)

    def _insert_or_select(
        self,
        insert_sql: str,
        insert_params: Sequence[Any],
        select_sql: str,
        select_params: Sequence[Any],
        *,
        what: str,
    ) -> Any:
        def _q(cur: Any) -> Any:
            cur.execute(insert_sql, insert_params)
            row = cur.fetchone()
            if row is None:
                cur.execute(select_sql, select_params)
                row = cur.fetchone()
            if row is None:
                raise RowRejectedError(f"{what}: insert skipped and no existing row found", entity=what)
            return row[0]

        return self._run(_q, what=what)

    def _set_flag(self, flag: str, sid: int) -> tuple[str, Sequence[Any]]:
        # Column name comes from the fixed FLAGS tuple, never from input.
        if flag not in FLAGS:
            raise ValueError(f"unknown symbol flag: {flag!r}")
        return f"UPDATE symbols SET {flag} = true, m_time = now() WHERE sid = %s AND NOT {flag}", (sid,)

    def _write_flagged(self, statements: list[tuple[str, Sequence[Any]]], flag: str, sid: int, *, what: str) -> None:
        key = (flag, sid)
        if key not in self._flagged:
            statements.append(self._set_flag(flag, sid))
        self._execute(statements, what=what)
        self._flagged.add(key)

    # --- store contract ---------------------------------------------------

    def insert_if_absent(self, entity: Any) -> Any:
        if isinstance(entity, Security):
            return self._insert_or_select(
                _SQL_INSERT_SYMBOL,
                (
                    entity.sid, entity.symbol, entity.name, entity.type_label, entity.region,
                    entity.market_open, entity.market_close, entity.timezone, entity.currency,
                ),
                "SELECT sid FROM symbols WHERE symbol = %s",
                (entity.symbol,),
                what="symbol",
            )
        if isinstance(entity, NewsSnapshot):
            return self._insert_or_select(
                _SQL_INSERT_NEWS_OVERVIEW,
                (entity.sid, entity.items, entity.fingerprint, entity.creation or datetime.now()),
                "SELECT id FROM newsoverviews WHERE hashid = %s AND sid = %s",
                (entity.fingerprint, entity.sid),
                what="newsoverview",
            )
        if isinstance(entity, SourceRef):
            return self._insert_or_select(
                "INSERT INTO sources (source_name, domain) VALUES (%s,%s) ON CONFLICT (source_name) DO NOTHING RETURNING id",
                (entity.name, entity.domain),
                "SELECT id FROM sources WHERE source_name = %s",
                (entity.name,),
                what="source",
            )
        if isinstance(entity, AuthorRef):
            return self._insert_or_select(
                "INSERT INTO authors (author_name) VALUES (%s) ON CONFLICT (author_name) DO NOTHING RETURNING id",
                (entity.name,),
                "SELECT id FROM authors WHERE author_name = %s",
                (entity.name,),
                what="author",
            )
        if isinstance(entity, TopicRef):
            return self._insert_or_select(
                "INSERT INTO topicrefs (name) VALUES (%s) ON CONFLICT (name) DO NOTHING RETURNING id",
                (entity.name,),
                "SELECT id FROM topicrefs WHERE name = %s",
                (entity.name,),
                what="topic",
            )
        if isinstance(entity, ArticleRecord):
            return self._insert_or_select(
                _SQL_INSERT_ARTICLE,
                (
                    entity.hashid, entity.source_id, entity.category, entity.title, entity.url,
                    entity.summary, entity.banner, entity.author_id, entity.published,
                ),
                "SELECT hashid FROM articles WHERE hashid = %s",
                (entity.hashid,),
                what="article",
            )
        if isinstance(entity, FeedRecord):
            return self._insert_or_select(
                _SQL_INSERT_FEED,
                (
                    entity.sid, entity.news_overview_id, entity.article_id, entity.source_id,
                    entity.overall_sentiment, entity.sentiment_label,
                ),
                "SELECT id FROM feeds WHERE newsoverviewid = %s AND articleid = %s",
                (entity.news_overview_id, entity.article_id),
                what="feed",
            )
        raise TypeError(f"insert_if_absent: unsupported entity {type(entity).__name__}")

    def insert_row(self, row: Any) -> None:
        if isinstance(row, IntradayTick):
            params = (row.tstamp, row.sid, row.symbol, row.open, row.high, row.low, row.close, row.volume)
            self._write_flagged([(_SQL_INSERT_TICK, params)], FLAG_INTRADAY, row.sid, what="intradayprice")
        elif isinstance(row, DailyBar):
            params = (row.date, row.sid, row.symbol, row.open, row.high, row.low, row.close, row.volume)
            self._write_flagged([(_SQL_INSERT_BAR, params)], FLAG_SUMMARY, row.sid, what="summaryprice")
        elif isinstance(row, Overview):
            base, ext = _overview_params(row)
            self._write_flagged(
                [(_SQL_INSERT_OVERVIEW, base), (_SQL_INSERT_OVERVIEW_EXT, ext)],
                FLAG_OVERVIEW,
                row.sid,
                what="overview",
            )
        elif isinstance(row, TopStat):
            params = (row.date, row.event_type, row.sid, row.symbol, row.price, row.change_amount, row.change_pct, row.volume)
            self._execute([(_SQL_INSERT_TOPSTAT, params)], what="topstat")
        elif isinstance(row, AuthorMapRecord):
            self._execute([(_SQL_INSERT_AUTHOR_MAP, (row.feed_id, row.author_id))], what="authormap")
        elif isinstance(row, TopicMapRecord):
            self._execute(
                [(_SQL_INSERT_TOPIC_MAP, (row.sid, row.feed_id, row.topic_id, row.relevance))],
                what="topicmap",
            )
        elif isinstance(row, TickerSentimentRecord):
            self._execute(
                [(_SQL_INSERT_TICKER_SENTIMENT, (row.feed_id, row.sid, row.relevance, row.sentiment, row.sentiment_label))],
                what="tickersentiment",
            )
        else:
            raise TypeError(f"insert_row: unsupported row {type(row).__name__}")

    def max_timestamp(self, sid: int) -> Optional[datetime]:
        row = self._fetch_one("SELECT max(tstamp) FROM intradayprices WHERE sid = %s", (sid,), what="intradayprice")
        return row[0] if row else None

    def max_date(self, sid: int) -> Optional[date]:
        row = self._fetch_one("SELECT max(date) FROM summaryprices WHERE sid = %s", (sid,), what="summaryprice")
        return row[0] if row else None

    def latest_fingerprint(self, sid: int) -> Optional[str]:
        row = self._fetch_one(
            "SELECT hashid FROM newsoverviews WHERE sid = %s ORDER BY creation DESC, id DESC LIMIT 1",
            (sid,),
            what="newsoverview",
        )
        return row[0] if row else None

    def load_registry(self, kind: str) -> dict[str, int]:
        try:
            sql = _REGISTRY_SQL[kind]
        except KeyError:
            raise ValueError(f"unknown registry kind: {kind!r}") from None
        return {str(k): v for k, v in self._fetch_all(sql, what=kind)}

    def next_sequence(self, category: SecurityCategory) -> int:
        low = category.tag << TAG_SHIFT
        row = self._fetch_one(
            "SELECT max(sid) FROM symbols WHERE sid BETWEEN %s AND %s",
            (low, low + MAX_SEQUENCE),
            what="symbol",
        )
        if not row or row[0] is None:
            return 1
        key = decode(int(row[0]))
        return (key.sequence + 1) if key is not None else 1

    def targets(
        self,
        flag: Optional[str] = None,
        region: Optional[str] = None,
        type_label: Optional[str] = None,
        *,
        flag_value: bool = True,
    ) -> list[SyncTarget]:
        clauses: list[str] = []
        params: list[Any] = []
        if flag is not None:
            if flag not in FLAGS:
                raise ValueError(f"unknown symbol flag: {flag!r}")
            clauses.append(f"{flag} = %s")
            params.append(flag_value)
        if region is not None:
            clauses.append("region = %s")
            params.append(region)
        if type_label is not None:
            clauses.append("sec_type = %s")
            params.append(type_label)
        where = f" WHERE {' AND '.join(clauses)}" if clauses else ""
        rows = self._fetch_all(f"SELECT sid, symbol FROM symbols{where} ORDER BY sid", params, what="symbol")
        out: list[SyncTarget] = []
        for sid, symbol in rows:
            key = decode(int(sid))
            out.append(SyncTarget(sid=int(sid), symbol=str(symbol), category=key.category if key else None))
        return out