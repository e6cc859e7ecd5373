"""
Generic fetch -> parse -> filter -> persist loop.

One `Orchestrator` drives one entity adapter over a list of work items:

    IDLE -> REQUESTING -> PARSING -> FILTERING -> PERSISTING -> IDLE
                                                       (any) -> ABORTED

Failure policy comes from the error kind, never from the message:
- TransientError on fetch: counted against the gate's error ceiling, item skipped
- NoDataError / ParseError on parse: item skipped, not counted
- a non-fatal SyncError on filter (say a watermark read the store rejects):
  item skipped, not counted
- RowRejectedError on persist: row skipped and counted in the report
- CircuitOpen / StoreFatalError anywhere: run aborted; the partial report is
  attached to the exception as `report` and the exception propagates
- any other SyncError escaping a stage: aborted the same way

Skipped and no-data items are also listed by label in `SyncReport.missed` so a
later run can replay just those.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import asdict, dataclass, field
from typing import TYPE_CHECKING, Any, Generic, Iterable, Protocol, TypeVar

from alphasync.common.errors import NoDataError, ParseError, RowRejectedError, SyncError, TransientError
from alphasync.common.logging import log_event
from alphasync.security.codec import SecurityCategory
from alphasync.sync.registry import RegistryCache

if TYPE_CHECKING:
    from alphasync.ingestion.rate_limit import RequestGate
    from alphasync.persistence.store import SyncStore

logger = logging.getLogger(__name__)

ItemT = TypeVar("ItemT")
RowT = TypeVar("RowT")


class SyncState(enum.Enum):
    IDLE = "idle"
    REQUESTING = "requesting"
    PARSING = "parsing"
    FILTERING = "filtering"
    PERSISTING = "persisting"
    ABORTED = "aborted"


@dataclass
class ParseResult(Generic[RowT]):
    rows: list[RowT]
    dropped: int = 0


@dataclass
class SyncReport:
    entity: str
    items_requested: int = 0
    items_no_data: int = 0
    items_skipped: int = 0
    rows_parsed: int = 0
    rows_dropped: int = 0
    rows_filtered: int = 0
    rows_persisted: int = 0
    rows_rejected: int = 0
    error_count: int = 0
    aborted: bool = False
    missed: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class SyncContext:
    """
    Everything one run shares across items: the store, the run registry and
    the per-category sequence counters used to mint new sids.

    `resume=True` seeds each counter from the store on first use so a resumed
    run never reuses a sid; otherwise counters start at 1.
    """

    store: "SyncStore"
    registry: RegistryCache = field(default_factory=RegistryCache)
    resume: bool = False
    sequences: dict[SecurityCategory, int] = field(default_factory=dict)

    def next_sequence(self, category: SecurityCategory) -> int:
        if category not in self.sequences:
            self.sequences[category] = self.store.next_sequence(category) if self.resume else 1
        seq = self.sequences[category]
        self.sequences[category] = seq + 1
        return seq


class EntityAdapter(Protocol[ItemT, RowT]):
    name: str

    def fetch(self, item: ItemT) -> Any: ...

    def parse(self, item: ItemT, payload: Any) -> ParseResult[RowT]: ...

    def filter(self, item: ItemT, rows: list[RowT], ctx: SyncContext) -> list[Any]: ...

    def persist(self, item: ItemT, row: Any, ctx: SyncContext) -> None: ...


def _item_label(item: Any) -> str:
    return str(getattr(item, "symbol", item))


class Orchestrator:
    def __init__(self, adapter: EntityAdapter, ctx: SyncContext, gate: "RequestGate") -> None:
        self.adapter = adapter
        self.ctx = ctx
        self.gate = gate
        self.state = SyncState.IDLE
        # Adapters that never call the provider (listing-file loads) skip the gate.
        self._gated = bool(getattr(adapter, "requires_gate", True))

    def run(self, items: Iterable[Any]) -> SyncReport:
        report = SyncReport(entity=self.adapter.name)
        try:
            for item in items:
                self._run_item(item, report)
        except SyncError as e:
            # Fatal kinds, or a non-fatal one no stage above handled.
            self.state = SyncState.ABORTED
            report.aborted = True
            report.error_count = self.gate.error_count
            e.report = report
            log_event(
                logger,
                "sync.aborted",
                severity="ERROR",
                message=str(e),
                entity=report.entity,
                error_kind=e.kind.value,
                report=report.to_dict(),
            )
            raise
        report.error_count = self.gate.error_count
        self.state = SyncState.IDLE
        log_event(logger, "sync.run_complete", entity=report.entity, report=report.to_dict())
        return report

    def _run_item(self, item: Any, report: SyncReport) -> None:
        label = _item_label(item)

        self.state = SyncState.REQUESTING
        report.items_requested += 1
        if self._gated:
            self.gate.wait()
        try:
            payload = self.adapter.fetch(item)
        except TransientError as e:
            if self._gated:
                self.gate.mark_request()
            report.items_skipped += 1
            report.missed.append(label)
            try:
                # Raises CircuitOpen once the ceiling is exceeded.
                self.gate.record_error()
            finally:
                log_event(
                    logger,
                    "sync.item_skipped",
                    severity="WARNING",
                    message=str(e),
                    entity=report.entity,
                    item=label,
                    error_count=self.gate.error_count,
                )
            self.state = SyncState.IDLE
            return
        if self._gated:
            self.gate.mark_request()
            self.gate.record_success()

        self.state = SyncState.PARSING
        try:
            result = self.adapter.parse(item, payload)
        except NoDataError as e:
            report.items_no_data += 1
            report.missed.append(label)
            logger.info("sync.no_data", extra={"entity": report.entity, "item": label, "reason": str(e)})
            self.state = SyncState.IDLE
            return
        except ParseError as e:
            report.items_skipped += 1
            report.missed.append(label)
            log_event(
                logger,
                "sync.parse_failed",
                severity="WARNING",
                message=str(e),
                entity=report.entity,
                item=label,
            )
            self.state = SyncState.IDLE
            return
        report.rows_parsed += len(result.rows)
        report.rows_dropped += result.dropped

        self.state = SyncState.FILTERING
        try:
            rows = self.adapter.filter(item, result.rows, self.ctx)
        except SyncError as e:
            if e.is_fatal:
                raise
            report.items_skipped += 1
            report.missed.append(label)
            log_event(
                logger,
                "sync.filter_failed",
                severity="WARNING",
                message=str(e),
                entity=report.entity,
                item=label,
                error_kind=e.kind.value,
            )
            self.state = SyncState.IDLE
            return
        report.rows_filtered += max(0, len(result.rows) - len(rows))

        self.state = SyncState.PERSISTING
        for row in rows:
            try:
                self.adapter.persist(item, row, self.ctx)
            except RowRejectedError as e:
                report.rows_rejected += 1
                log_event(
                    logger,
                    "sync.row_rejected",
                    severity="WARNING",
                    message=str(e),
                    entity=report.entity,
                    item=label,
                )
                continue
            report.rows_persisted += 1

        self.state = SyncState.IDLE


def run_sync(adapter: EntityAdapter, ctx: SyncContext, gate: "RequestGate", items: Iterable[Any]) -> SyncReport:
    return Orchestrator(adapter, ctx, gate).run(items)


__all__ = [
    "EntityAdapter",
    "Orchestrator",
    "ParseResult",
    "SyncContext",
    "SyncReport",
    "SyncState",
    "run_sync",
]