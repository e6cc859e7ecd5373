from __future__ import annotations

import logging
from datetime import time
from typing import Any

from alphasync.ingestion.listings import ListingEntry
from alphasync.models import Security, SymbolMatch
from alphasync.provider.client import SYMBOL_SEARCH, AlphaVantageClient
from alphasync.provider.parsers import parse_symbol_search
from alphasync.security.classification import classify_detailed, normalize_region
from alphasync.security.codec import SecurityCategory, encode
from alphasync.sync.orchestrator import ParseResult, SyncContext
from alphasync.sync.registry import SYMBOL

logger = logging.getLogger(__name__)

DIGITAL_REGION = "USA"
DIGITAL_CURRENCY = "USD"
DIGITAL_TIMEZONE = "UTC-04"
DIGITAL_OPEN = time(0, 0)
DIGITAL_CLOSE = time(23, 59)


def _register(ctx: SyncContext, security: Security) -> int:
    sid = ctx.store.insert_if_absent(security)
    ctx.registry.register(SYMBOL, security.symbol, sid)
    logger.debug("symbols.created", extra={"symbol": security.symbol, "sid": sid})
    return sid


class SymbolSearchAdapter:
    """
    One item per listing symbol: run a symbol search and create every match
    not seen before in this run.

    With `usa_only`, matches outside the USA region are dropped after being
    marked seen, so the same foreign listing is not re-evaluated later.
    """

    name = "symbols"

    def __init__(self, client: AlphaVantageClient, *, usa_only: bool = False) -> None:
        self.client = client
        self.usa_only = usa_only

    def fetch(self, item: str) -> str:
        return self.client.get_text(SYMBOL_SEARCH, item)

    def parse(self, item: str, payload: Any) -> ParseResult[SymbolMatch]:
        return parse_symbol_search(payload)

    def filter(self, item: str, rows: list[SymbolMatch], ctx: SyncContext) -> list[SymbolMatch]:
        out: list[SymbolMatch] = []
        for m in rows:
            if not ctx.registry.mark_seen_or_skip(m.symbol):
                continue
            m.region = normalize_region(m.region)
            if self.usa_only and m.region != "USA":
                continue
            out.append(m)
        return out

    def persist(self, item: str, row: SymbolMatch, ctx: SyncContext) -> None:
        category, label = classify_detailed(row.type_label, row.name)
        sid = encode(category, ctx.next_sequence(category))
        _register(
            ctx,
            Security(
                sid=sid,
                symbol=row.symbol,
                name=row.name,
                category=category,
                type_label=label,
                region=row.region,
                currency=row.currency,
                market_open=row.market_open,
                market_close=row.market_close,
                timezone=row.timezone,
            ),
        )


class DigitalSymbolAdapter:
    """Crypto securities straight from a digital-currency listing; no provider call."""

    name = "digital-symbols"
    requires_gate = False

    def fetch(self, item: ListingEntry) -> ListingEntry:
        return item

    def parse(self, item: ListingEntry, payload: ListingEntry) -> ParseResult[ListingEntry]:
        return ParseResult(rows=[payload])

    def filter(self, item: ListingEntry, rows: list[ListingEntry], ctx: SyncContext) -> list[ListingEntry]:
        return [r for r in rows if ctx.registry.mark_seen_or_skip(r.symbol)]

    def persist(self, item: ListingEntry, row: ListingEntry, ctx: SyncContext) -> None:
        category = SecurityCategory.CRYPTO
        _register(
            ctx,
            Security(
                sid=encode(category, ctx.next_sequence(category)),
                symbol=row.symbol,
                name=row.name,
                category=category,
                type_label=category.value,
                region=DIGITAL_REGION,
                currency=DIGITAL_CURRENCY,
                market_open=DIGITAL_OPEN,
                market_close=DIGITAL_CLOSE,
                timezone=DIGITAL_TIMEZONE,
            ),
        )
