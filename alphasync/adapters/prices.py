"""Per-symbol price loaders: overviews, intraday ticks and daily bars."""

from __future__ import annotations

from typing import Any

from alphasync.models import DailyBar, IntradayTick, Overview, SyncTarget
from alphasync.provider.client import CRYPTO_INTRADAY, DAILY, INTRADAY, OVERVIEW, AlphaVantageClient
from alphasync.provider.parsers import parse_daily_json, parse_intraday_csv, parse_overview
from alphasync.security.codec import SecurityCategory
from alphasync.sync.orchestrator import ParseResult, SyncContext
from alphasync.sync.watermark import partition


class OverviewAdapter:
    name = "overviews"

    def __init__(self, client: AlphaVantageClient) -> None:
        self.client = client

    def fetch(self, item: SyncTarget) -> Any:
        return self.client.get_json(OVERVIEW, item.symbol)

    def parse(self, item: SyncTarget, payload: Any) -> ParseResult[Overview]:
        return parse_overview(payload, item.sid)

    def filter(self, item: SyncTarget, rows: list[Overview], ctx: SyncContext) -> list[Overview]:
        return rows

    def persist(self, item: SyncTarget, row: Overview, ctx: SyncContext) -> None:
        ctx.store.insert_row(row)


class IntradayAdapter:
    """Minute ticks newer than the latest stored tick for the symbol."""

    name = "intraday"

    def __init__(self, client: AlphaVantageClient) -> None:
        self.client = client

    def fetch(self, item: SyncTarget) -> str:
        function = CRYPTO_INTRADAY if item.category is SecurityCategory.CRYPTO else INTRADAY
        return self.client.get_text(function, item.symbol)

    def parse(self, item: SyncTarget, payload: Any) -> ParseResult[IntradayTick]:
        return parse_intraday_csv(payload, item.sid, item.symbol)

    def filter(self, item: SyncTarget, rows: list[IntradayTick], ctx: SyncContext) -> list[IntradayTick]:
        new_rows, _ = partition(rows, ctx.store.max_timestamp(item.sid), key=lambda r: r.tstamp)
        return new_rows

    def persist(self, item: SyncTarget, row: IntradayTick, ctx: SyncContext) -> None:
        ctx.store.insert_row(row)


class DailyAdapter:
    """Daily bars newer than the latest stored bar date for the symbol."""

    name = "daily"

    def __init__(self, client: AlphaVantageClient) -> None:
        self.client = client

    def fetch(self, item: SyncTarget) -> Any:
        return self.client.get_json(DAILY, item.symbol)

    def parse(self, item: SyncTarget, payload: Any) -> ParseResult[DailyBar]:
        return parse_daily_json(payload, item.sid, item.symbol)

    def filter(self, item: SyncTarget, rows: list[DailyBar], ctx: SyncContext) -> list[DailyBar]:
        new_rows, _ = partition(rows, ctx.store.max_date(item.sid), key=lambda r: r.date)
        return new_rows

    def persist(self, item: SyncTarget, row: DailyBar, ctx: SyncContext) -> None:
        ctx.store.insert_row(row)
