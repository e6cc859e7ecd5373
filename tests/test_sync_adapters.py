import json
from datetime import date, datetime
from unittest.mock import MagicMock

import pytest

from alphasync.adapters.news import NewsAdapter, article_hashid, normalize_ticker
from alphasync.adapters.prices import DailyAdapter, IntradayAdapter, OverviewAdapter
from alphasync.adapters.symbols import DigitalSymbolAdapter, SymbolSearchAdapter
from alphasync.adapters.tops import TopMoversAdapter
from alphasync.common.errors import RowRejectedError
from alphasync.ingestion.listings import ListingEntry
from alphasync.models import (
    ArticleRecord,
    AuthorMapRecord,
    DailyBar,
    FeedRecord,
    IntradayTick,
    NewsSnapshot,
    Overview,
    Security,
    SyncTarget,
    TickerSentimentRecord,
    TopicMapRecord,
    TopStat,
)
from alphasync.provider.client import CRYPTO_INTRADAY, INTRADAY, SYMBOL_SEARCH
from alphasync.security.codec import SecurityCategory, decode, encode
from alphasync.sync.orchestrator import Orchestrator, SyncContext
from alphasync.sync.registry import AUTHOR, SYMBOL, TOPIC
from tests.conftest import FakeStore

SEARCH_HEADER = "symbol,name,type,region,marketOpen,marketClose,timezone,currency,matchScore\n"


def _search_csv(*rows):
    return SEARCH_HEADER + "".join(r + "\n" for r in rows)


def _client(**payloads):
    client = MagicMock()
    client.get_text.side_effect = lambda function, symbol=None: payloads["text"][symbol]
    client.get_json.side_effect = lambda function, symbol=None: payloads["json"][symbol]
    return client


# --- symbols ----------------------------------------------------------------


def test_duplicate_symbols_created_once(ctx, gate, store):
    client = _client(
        text={
            "AAPL": _search_csv("AAPL,Apple Inc,Equity,United States,09:30,16:00,UTC-04,USD,1.0000"),
            "MSFT": _search_csv("MSFT,Microsoft Corporation,Equity,United States,09:30,16:00,UTC-04,USD,1.0000"),
        }
    )
    report = Orchestrator(SymbolSearchAdapter(client), ctx, gate).run(["AAPL", "AAPL", "MSFT"])

    created = store.entities_of(Security)
    assert [s.symbol for s in created] == ["AAPL", "MSFT"]
    assert report.rows_persisted == 2
    assert report.rows_filtered == 1
    assert client.get_text.call_args_list[0].args == (SYMBOL_SEARCH, "AAPL")

    aapl, msft = created
    assert aapl.sid == encode(SecurityCategory.EQUITY, 1)
    assert msft.sid == encode(SecurityCategory.EQUITY, 2)
    assert aapl.region == "USA"
    assert ctx.registry.lookup(SYMBOL, "MSFT") == msft.sid


def test_symbol_categories_get_their_own_sequences(ctx, gate, store):
    client = _client(
        text={
            "X": _search_csv(
                "X1,First Co,Equity,United States,09:30,16:00,UTC-04,USD,1.0",
                "X2,Some Fund ETF,ETF,United States,09:30,16:00,UTC-04,USD,0.9",
                "X3,Second Co,Equity,United States,09:30,16:00,UTC-04,USD,0.8",
                "X4,Big Bank ADR,Equity,United States,09:30,16:00,UTC-04,USD,0.7",
            )
        }
    )
    Orchestrator(SymbolSearchAdapter(client), ctx, gate).run(["X"])
    keys = {s.symbol: decode(s.sid) for s in store.entities_of(Security)}
    assert (keys["X1"].category, keys["X1"].sequence) == (SecurityCategory.EQUITY, 1)
    assert (keys["X2"].category, keys["X2"].sequence) == (SecurityCategory.ETF, 1)
    assert (keys["X3"].category, keys["X3"].sequence) == (SecurityCategory.EQUITY, 2)
    assert (keys["X4"].category, keys["X4"].sequence) == (SecurityCategory.ADR, 1)
    assert store.securities["X4"].type_label == "ADR"


def test_usa_only_drops_foreign_listings(ctx, gate, store):
    client = _client(
        text={
            "TSCO": _search_csv(
                "TSCO,Tractor Supply,Equity,United States,09:30,16:00,UTC-04,USD,1.0",
                "TSCO.LON,Tesco PLC,Equity,United Kingdom,08:00,16:30,UTC+01,GBX,0.8",
            )
        }
    )
    report = Orchestrator(SymbolSearchAdapter(client, usa_only=True), ctx, gate).run(["TSCO"])
    assert list(store.securities) == ["TSCO"]
    assert report.rows_filtered == 1


def test_resumed_symbol_run_skips_known_and_continues_sequence(gate):
    store = FakeStore()
    store.insert_if_absent(
        Security(
            sid=encode(SecurityCategory.EQUITY, 7),
            symbol="AAPL",
            name="Apple Inc",
            category=SecurityCategory.EQUITY,
            type_label="Equity",
            region="USA",
            currency="USD",
            market_open=datetime(2024, 1, 1, 9, 30).time(),
            market_close=datetime(2024, 1, 1, 16, 0).time(),
            timezone="UTC-04",
        )
    )
    store.registries = {SYMBOL: {"AAPL": encode(SecurityCategory.EQUITY, 7)}}
    ctx = SyncContext(store=store, resume=True)
    ctx.registry.load_from(store, [SYMBOL])
    client = _client(
        text={
            "A": _search_csv(
                "AAPL,Apple Inc,Equity,United States,09:30,16:00,UTC-04,USD,1.0",
                "AMZN,Amazon.com Inc,Equity,United States,09:30,16:00,UTC-04,USD,0.5",
            )
        }
    )
    Orchestrator(SymbolSearchAdapter(client), ctx, gate).run(["A"])
    assert store.securities["AMZN"].sid == encode(SecurityCategory.EQUITY, 8)


def test_digital_symbols(ctx, gate, store, clock):
    entries = [ListingEntry("BTC", "Bitcoin"), ListingEntry("ETH", "Ethereum"), ListingEntry("BTC", "Bitcoin")]
    report = Orchestrator(DigitalSymbolAdapter(), ctx, gate).run(entries)
    btc = store.securities["BTC"]
    assert btc.sid == encode(SecurityCategory.CRYPTO, 1)
    assert store.securities["ETH"].sid == encode(SecurityCategory.CRYPTO, 2)
    assert (btc.region, btc.currency, btc.timezone, btc.type_label) == ("USA", "USD", "UTC-04", "Crypto")
    assert report.rows_filtered == 1
    assert clock.sleeps == []


# --- prices -----------------------------------------------------------------


INTRADAY_CSV = (
    "timestamp,open,high,low,close,volume\n"
    "2024-01-01 00:00:01,10.0,11.0,9.5,10.5,100\n"
    "2024-01-01 00:00:00,9.0,10.0,8.5,9.5,200\n"
    "2023-12-31 23:59:00,8.0,9.0,7.5,8.5,300\n"
)


def test_intraday_persists_only_rows_past_watermark(ctx, gate, store):
    target = SyncTarget(sid=11, symbol="AAPL", category=SecurityCategory.EQUITY)
    store.watermarks_ts[11] = datetime(2024, 1, 1, 0, 0, 0)
    client = _client(text={"AAPL": INTRADAY_CSV})

    report = Orchestrator(IntradayAdapter(client), ctx, gate).run([target])

    ticks = store.rows_of(IntradayTick)
    assert [t.tstamp for t in ticks] == [datetime(2024, 1, 1, 0, 0, 1)]
    assert report.rows_filtered == 2
    assert client.get_text.call_args.args == (INTRADAY, "AAPL")


def test_intraday_rerun_is_idempotent(ctx, gate, store):
    target = SyncTarget(sid=11, symbol="AAPL")
    client = _client(text={"AAPL": INTRADAY_CSV})
    Orchestrator(IntradayAdapter(client), ctx, gate).run([target])
    Orchestrator(IntradayAdapter(client), ctx, gate).run([target])
    assert len(store.rows_of(IntradayTick)) == 3


def test_intraday_crypto_uses_crypto_endpoint(ctx, gate):
    target = SyncTarget(sid=encode(SecurityCategory.CRYPTO, 1), symbol="BTC", category=SecurityCategory.CRYPTO)
    client = _client(text={"BTC": INTRADAY_CSV})
    Orchestrator(IntradayAdapter(client), ctx, gate).run([target])
    assert client.get_text.call_args.args == (CRYPTO_INTRADAY, "BTC")


def test_intraday_without_marker_is_no_data(ctx, gate, store):
    client = _client(text={"AAPL": '{"Information": "rate limit"}'})
    report = Orchestrator(IntradayAdapter(client), ctx, gate).run([SyncTarget(1, "AAPL")])
    assert report.items_no_data == 1
    assert store.rows == []


def test_daily_watermark_on_date(ctx, gate, store):
    payload = {
        "Meta Data": {"2. Symbol": "IBM"},
        "Time Series (Daily)": {
            "2024-01-03": {"1. open": "1", "2. high": "2", "3. low": "0.5", "4. close": "1.5", "5. volume": "10"},
            "2024-01-02": {"1. open": "1", "2. high": "2", "3. low": "0.5", "4. close": "1.5", "5. volume": "10"},
        },
    }
    store.watermarks_date[5] = date(2024, 1, 2)
    client = _client(json={"IBM": payload})
    Orchestrator(DailyAdapter(client), ctx, gate).run([SyncTarget(5, "IBM")])
    assert [b.date for b in store.rows_of(DailyBar)] == [date(2024, 1, 3)]


def test_overview_persisted(ctx, gate, store):
    client = _client(json={"IBM": {"Symbol": "IBM", "Name": "International Business Machines", "PERatio": "n/a"}})
    Orchestrator(OverviewAdapter(client), ctx, gate).run([SyncTarget(5, "IBM")])
    (ov,) = store.rows_of(Overview)
    assert ov.sid == 5
    assert ov.pe_ratio == -9.99
    assert ov.description == "__Error__"


# --- tops -------------------------------------------------------------------


def test_tops_resolve_known_tickers_only(ctx, gate, store):
    ctx.registry.preload(SYMBOL, {"AAPL": 1, "MSFT": 2})
    payload = {
        "metadata": "Top gainers, losers, and most actively traded US tickers",
        "last_updated": "2024-01-05 16:15:59 US/Eastern",
        "top_gainers": [
            {"ticker": "AAPL", "price": "190.1", "change_amount": "5.1", "change_percentage": "2.75%", "volume": "1000"}
        ],
        "top_losers": [
            {"ticker": "ZZZZ", "price": "1.0", "change_amount": "-0.5", "change_percentage": "-33.3%", "volume": "5"}
        ],
        "most_actively_traded": [
            {"ticker": "MSFT", "price": "370.0", "change_amount": "1.0", "change_percentage": "0.27%", "volume": "99"}
        ],
    }
    client = MagicMock()
    client.get_json.return_value = payload
    report = Orchestrator(TopMoversAdapter(client), ctx, gate).run(["US"])

    stats = store.rows_of(TopStat)
    assert [(s.symbol, s.event_type, s.sid) for s in stats] == [("AAPL", "GAIN", 1), ("MSFT", "ACTV", 2)]
    assert stats[0].change_pct == pytest.approx(2.75)
    assert stats[0].date == datetime(2024, 1, 5, 16, 15, 59)
    assert report.rows_filtered == 1


# --- news -------------------------------------------------------------------


def _feed(*urls, tickers=("AAPL",)):
    return {
        "items": str(len(urls)),
        "sentiment_score_definition": "x",
        "relevance_score_definition": "y",
        "feed": [
            {
                "title": f"Story {u}",
                "url": u,
                "time_published": "20240105T093000",
                "authors": ["Jane Doe", "John Roe"],
                "summary": "summary",
                "banner_image": None,
                "source": "Wire",
                "category_within_source": "Markets",
                "source_domain": "wire.test",
                "topics": [{"topic": "Earnings", "relevance_score": "0.9"}],
                "overall_sentiment_score": 0.12,
                "overall_sentiment_label": "Neutral",
                "ticker_sentiment": [
                    {
                        "ticker": t,
                        "relevance_score": "0.5",
                        "ticker_sentiment_score": "0.2",
                        "ticker_sentiment_label": "Somewhat-Bullish",
                    }
                    for t in tickers
                ],
            }
            for u in urls
        ],
    }


def test_news_persists_snapshot_and_links(ctx, gate, store):
    ctx.registry.preload(SYMBOL, {"AAPL": 1})
    client = _client(json={"AAPL": _feed("https://wire.test/a", "https://wire.test/b", tickers=("AAPL", "NOPE"))})
    Orchestrator(NewsAdapter(client), ctx, gate).run([SyncTarget(1, "AAPL")])

    (snap,) = store.entities_of(NewsSnapshot)
    assert snap.items == 2
    assert snap.fingerprint.isdigit()
    articles = store.entities_of(ArticleRecord)
    assert [a.hashid for a in articles] == [article_hashid("https://wire.test/a"), article_hashid("https://wire.test/b")]
    assert len(store.entities_of(FeedRecord)) == 2
    assert len(store.rows_of(AuthorMapRecord)) == 4
    assert len(store.rows_of(TopicMapRecord)) == 2
    # NOPE is not a tracked symbol.
    assert len(store.rows_of(TickerSentimentRecord)) == 2
    # Authors / sources / topics created once each despite repeating.
    assert ctx.registry.size(AUTHOR) == 2
    assert ctx.registry.size(TOPIC) == 1


def test_news_unchanged_snapshot_is_skipped(ctx, gate, store):
    client = _client(json={"AAPL": _feed("https://wire.test/a")})
    Orchestrator(NewsAdapter(client), ctx, gate).run([SyncTarget(1, "AAPL")])
    first = len(store.entities)

    report = Orchestrator(NewsAdapter(client), ctx, gate).run([SyncTarget(1, "AAPL")])
    assert report.rows_filtered == 1
    assert report.rows_persisted == 0
    assert len(store.entities) == first


def test_news_changed_snapshot_is_written(ctx, gate, store):
    client = _client(json={"AAPL": _feed("https://wire.test/a")})
    Orchestrator(NewsAdapter(client), ctx, gate).run([SyncTarget(1, "AAPL")])
    client = _client(json={"AAPL": _feed("https://wire.test/a", "https://wire.test/c")})
    Orchestrator(NewsAdapter(client), ctx, gate).run([SyncTarget(1, "AAPL")])
    assert len(store.entities_of(NewsSnapshot)) == 2
    # Article "a" is shared, not duplicated.
    assert len(store.entities_of(ArticleRecord)) == 2


def test_news_feed_returning_to_older_snapshot_adds_no_rows(ctx, gate, store):
    feed_a = _client(json={"AAPL": _feed("https://wire.test/a")})
    feed_b = _client(json={"AAPL": _feed("https://wire.test/a", "https://wire.test/c")})
    for client in (feed_a, feed_b):
        Orchestrator(NewsAdapter(client), ctx, gate).run([SyncTarget(1, "AAPL")])
    entities = len(store.entities)

    for _ in range(2):
        report = Orchestrator(NewsAdapter(feed_a), ctx, gate).run([SyncTarget(1, "AAPL")])
        # Latest stored fingerprint is still B, so A is not filtered out.
        assert report.rows_filtered == 0
        assert report.rows_persisted == 1
        assert len(store.entities) == entities
    assert len(store.entities_of(NewsSnapshot)) == 2
    assert len(store.entities_of(FeedRecord)) == 3


def test_news_rejected_article_does_not_stop_snapshot(gate):
    store = FakeStore(reject=lambda obj: isinstance(obj, ArticleRecord) and obj.url.endswith("/bad"))
    ctx = SyncContext(store=store)
    client = _client(json={"AAPL": _feed("https://wire.test/bad", "https://wire.test/good")})
    report = Orchestrator(NewsAdapter(client), ctx, gate).run([SyncTarget(1, "AAPL")])
    assert report.rows_persisted == 1
    assert [a.url for a in store.entities_of(ArticleRecord)] == ["https://wire.test/good"]


def test_news_fingerprint_independent_of_creation_time(gate):
    payload = _feed("https://wire.test/a")
    fps = []
    for hour in (1, 2):
        store = FakeStore()
        ctx = SyncContext(store=store)
        adapter = NewsAdapter(_client(json={"AAPL": json.loads(json.dumps(payload))}), clock=lambda h=hour: datetime(2024, 1, 1, h))
        Orchestrator(adapter, ctx, gate).run([SyncTarget(1, "AAPL")])
        fps.append(store.entities_of(NewsSnapshot)[0].fingerprint)
    assert fps[0] == fps[1]


def test_normalize_ticker():
    assert normalize_ticker("CRYPTO:BTC") == "BTC"
    assert normalize_ticker("FOREX:USD") == "USD"
    assert normalize_ticker("AAPL") == "AAPL"


def test_row_rejected_error_is_not_fatal():
    assert not RowRejectedError("x").is_fatal
