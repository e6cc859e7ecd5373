from __future__ import annotations

import logging
from typing import Any

from alphasync.models import TopMover, TopStat
from alphasync.provider.client import TOP_GAINERS_LOSERS, AlphaVantageClient
from alphasync.provider.parsers import parse_top_movers
from alphasync.sync.orchestrator import ParseResult, SyncContext
from alphasync.sync.registry import SYMBOL

logger = logging.getLogger(__name__)


class TopMoversAdapter:
    """
    Daily top gainers / losers / most active.

    The endpoint takes no symbol, so a run has a single item (the market
    label, used only for logging). Tickers are resolved through the symbol
    registry, which must be preloaded; tickers we do not track are dropped.
    """

    name = "tops"

    def __init__(self, client: AlphaVantageClient) -> None:
        self.client = client

    def fetch(self, item: str) -> Any:
        return self.client.get_json(TOP_GAINERS_LOSERS)

    def parse(self, item: str, payload: Any) -> ParseResult[TopMover]:
        return parse_top_movers(payload)

    def filter(self, item: str, rows: list[TopMover], ctx: SyncContext) -> list[TopStat]:
        out: list[TopStat] = []
        unknown = 0
        for m in rows:
            sid = ctx.registry.lookup(SYMBOL, m.ticker)
            if sid is None:
                unknown += 1
                continue
            out.append(
                TopStat(
                    sid=sid,
                    symbol=m.ticker,
                    event_type=m.event_type,
                    date=m.last_updated,
                    price=m.price,
                    change_amount=m.change_amount,
                    change_pct=m.change_pct,
                    volume=m.volume,
                )
            )
        if unknown:
            logger.info("tops.unknown_tickers", extra={"count": unknown})
        return out

    def persist(self, item: str, row: TopStat, ctx: SyncContext) -> None:
        ctx.store.insert_row(row)
