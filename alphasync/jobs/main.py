from __future__ import annotations

import argparse
import logging
import sys
from typing import Any, Callable, Optional, Sequence

from alphasync.adapters.news import NewsAdapter
from alphasync.adapters.prices import DailyAdapter, IntradayAdapter, OverviewAdapter
from alphasync.adapters.symbols import DigitalSymbolAdapter, SymbolSearchAdapter
from alphasync.adapters.tops import TopMoversAdapter
from alphasync.common.config import SyncConfig, from_env
from alphasync.common.errors import ConfigError, SyncError
from alphasync.common.logging import bind_run_id, init_structured_logging, log_event
from alphasync.ingestion.listings import (
    ListingKind,
    listing_path,
    read_listing,
    read_missed,
    read_symbols,
    write_missed,
)
from alphasync.ingestion.rate_limit import RequestGate
from alphasync.persistence.postgres import PostgresStore
from alphasync.persistence.store import FLAG_OVERVIEW
from alphasync.provider.client import AlphaVantageClient
from alphasync.sync.orchestrator import Orchestrator, SyncContext, SyncReport
from alphasync.sync.registry import KINDS, SYMBOL

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ABORTED = 1
EXIT_CONFIG = 2

SERVICE = "alphasync"


def build_store(cfg: SyncConfig) -> Any:
    return PostgresStore.connect(cfg.database_url)


def build_client(cfg: SyncConfig) -> AlphaVantageClient:
    return AlphaVantageClient(
        cfg.api_key,
        base_url=cfg.base_url,
        timeout_s=cfg.http_timeout_s,
        retry_attempts=cfg.retry_attempts,
    )


def build_gate(cfg: SyncConfig) -> RequestGate:
    return RequestGate(min_interval_s=cfg.min_interval_s, max_errors=cfg.max_errors, penalty_s=cfg.penalty_s)


def _limit(items: list[Any], limit: Optional[int]) -> list[Any]:
    return items[:limit] if limit else items


# --- command planners: (adapter, items) for one run -----------------------


def _plan_symbols(args: argparse.Namespace, client: AlphaVantageClient, ctx: SyncContext) -> tuple[Any, list[Any]]:
    keywords: list[str] = []
    if args.from_missed:
        keywords += read_missed(args.from_missed)
    else:
        keywords += read_symbols(listing_path(ListingKind.NASDAQ, args.nasdaq), ListingKind.NASDAQ)
        keywords += read_symbols(listing_path(ListingKind.NYSE, args.nyse), ListingKind.NYSE)
    if ctx.resume:
        ctx.registry.load_from(ctx.store, [SYMBOL])
    return SymbolSearchAdapter(client, usa_only=args.usa_only), list(dict.fromkeys(keywords))


def _plan_digital(args: argparse.Namespace, client: AlphaVantageClient, ctx: SyncContext) -> tuple[Any, list[Any]]:
    if ctx.resume:
        ctx.registry.load_from(ctx.store, [SYMBOL])
    return DigitalSymbolAdapter(), read_listing(listing_path(ListingKind.DIGITAL, args.file), ListingKind.DIGITAL)


def _plan_overviews(args: argparse.Namespace, client: AlphaVantageClient, ctx: SyncContext) -> tuple[Any, list[Any]]:
    targets = ctx.store.targets(FLAG_OVERVIEW, region=args.region, type_label=args.type_label, flag_value=False)
    return OverviewAdapter(client), targets


def _plan_intraday(args: argparse.Namespace, client: AlphaVantageClient, ctx: SyncContext) -> tuple[Any, list[Any]]:
    if args.crypto:
        targets = ctx.store.targets(None, type_label="Crypto")
    else:
        targets = ctx.store.targets(FLAG_OVERVIEW)
    return IntradayAdapter(client), targets


def _plan_daily(args: argparse.Namespace, client: AlphaVantageClient, ctx: SyncContext) -> tuple[Any, list[Any]]:
    return DailyAdapter(client), ctx.store.targets(FLAG_OVERVIEW)


def _plan_tops(args: argparse.Namespace, client: AlphaVantageClient, ctx: SyncContext) -> tuple[Any, list[Any]]:
    ctx.registry.load_from(ctx.store, [SYMBOL])
    return TopMoversAdapter(client), [args.market]


def _plan_news(args: argparse.Namespace, client: AlphaVantageClient, ctx: SyncContext) -> tuple[Any, list[Any]]:
    ctx.registry.load_from(ctx.store, KINDS)
    return NewsAdapter(client), ctx.store.targets(FLAG_OVERVIEW)


_PLANNERS: dict[str, Callable[[argparse.Namespace, AlphaVantageClient, SyncContext], tuple[Any, list[Any]]]] = {
    "symbols": _plan_symbols,
    "digital-symbols": _plan_digital,
    "overviews": _plan_overviews,
    "intraday": _plan_intraday,
    "daily": _plan_daily,
    "tops": _plan_tops,
    "news": _plan_news,
}


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="alphasync", description="Incremental Alpha Vantage -> PostgreSQL sync.")
    sub = p.add_subparsers(dest="command", required=True)

    s = sub.add_parser("symbols", help="Create securities from NASDAQ/NYSE listings via symbol search.")
    s.add_argument("--nasdaq", default=None, help="NASDAQ listing CSV (default: $NASDAQ_LISTED)")
    s.add_argument("--nyse", default=None, help="NYSE other-listings CSV (default: $OTHER_LISTED)")
    s.add_argument("--usa-only", action="store_true", help="Drop matches outside the USA region")
    s.add_argument("--resume", action="store_true", help="Continue sequences and skip symbols already stored")
    s.add_argument("--from-missed", default=None, help="Search only the keywords listed in a missed-item file")

    d = sub.add_parser("digital-symbols", help="Create crypto securities from a digital currency list.")
    d.add_argument("--file", default=None, help="symbol,name CSV (default: $DIGITAL_LIST)")
    d.add_argument("--resume", action="store_true", help="Continue sequences and skip symbols already stored")

    o = sub.add_parser("overviews", help="Load company overviews for symbols without one.")
    o.add_argument("--region", default="USA")
    o.add_argument("--type-label", default="Equity")

    i = sub.add_parser("intraday", help="Load 1-minute prices newer than the stored watermark.")
    i.add_argument("--crypto", action="store_true", help="Load crypto securities via CRYPTO_INTRADAY")

    sub.add_parser("daily", help="Load daily bars newer than the stored watermark.")

    t = sub.add_parser("tops", help="Load today's top gainers, losers and most active.")
    t.add_argument("--market", default="US")

    sub.add_parser("news", help="Load news sentiment snapshots.")

    for sp in sub.choices.values():
        sp.add_argument("--limit", type=int, default=None, help="Process at most N items")
        sp.add_argument("--missed-file", default=None, help="Write skipped and no-data items here, one per line")
    return p


def run_command(
    args: argparse.Namespace,
    cfg: SyncConfig,
    *,
    store: Any = None,
    client: Optional[AlphaVantageClient] = None,
    gate: Optional[RequestGate] = None,
) -> SyncReport:
    own_store = store is None
    store = build_store(cfg) if own_store else store
    client = client or build_client(cfg)
    gate = gate or build_gate(cfg)
    try:
        ctx = SyncContext(store=store, resume=bool(getattr(args, "resume", False)))
        try:
            adapter, items = _PLANNERS[args.command](args, client, ctx)
        except (OSError, ValueError) as e:
            # Unreadable or malformed listing / missed-item files.
            raise ConfigError(str(e)) from e
        items = _limit(items, args.limit)
        log_event(logger, "sync.run_start", entity=adapter.name, items=len(items))
        try:
            report = Orchestrator(adapter, ctx, gate).run(items)
        except SyncError as e:
            if args.missed_file and e.report is not None:
                write_missed(args.missed_file, e.report.missed)
            raise
        if args.missed_file:
            write_missed(args.missed_file, report.missed)
        return report
    finally:
        if own_store:
            store.close()


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        cfg = from_env()
    except ConfigError as e:
        init_structured_logging(service=SERVICE)
        log_event(logger, "config.invalid", severity="ERROR", message=str(e))
        return EXIT_CONFIG

    init_structured_logging(service=SERVICE, level=cfg.log_level)
    with bind_run_id():
        try:
            run_command(args, cfg)
        except ConfigError as e:
            log_event(logger, "config.invalid", severity="ERROR", message=str(e))
            return EXIT_CONFIG
        except SyncError as e:
            log_event(logger, "sync.exit_aborted", severity="ERROR", message=str(e), error_kind=e.kind.value)
            return EXIT_ABORTED
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
