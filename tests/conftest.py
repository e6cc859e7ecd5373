from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Callable, Optional

import pytest

from alphasync.common.errors import RowRejectedError, StoreFatalError
from alphasync.ingestion.rate_limit import RequestGate
from alphasync.models import (
    ArticleRecord,
    AuthorRef,
    DailyBar,
    FeedRecord,
    IntradayTick,
    NewsSnapshot,
    Security,
    SourceRef,
    SyncTarget,
    TopicRef,
)
from alphasync.security.codec import MAX_SEQUENCE, TAG_SHIFT, SecurityCategory
from alphasync.sync.orchestrator import SyncContext


class FakeClock:
    """Monotonic clock + sleep pair; sleeping advances time instantly."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@dataclass
class FakeStore:
    """
    In-memory store honoring the sync store contract.

    `reject` / `fatal` are predicates over the entity or row being written; a
    match raises RowRejectedError / StoreFatalError like the real store would.
    """

    reject: Callable[[Any], bool] = lambda _obj: False
    fatal: Callable[[Any], bool] = lambda _obj: False
    rows: list[Any] = field(default_factory=list)
    entities: list[Any] = field(default_factory=list)
    securities: dict[str, Security] = field(default_factory=dict)
    watermarks_ts: dict[int, datetime] = field(default_factory=dict)
    watermarks_date: dict[int, date] = field(default_factory=dict)
    fingerprints: dict[int, str] = field(default_factory=dict)
    registries: dict[str, dict[str, int]] = field(default_factory=dict)
    target_list: list[SyncTarget] = field(default_factory=list)
    create_calls: int = 0
    _keys: dict[tuple[str, Any], Any] = field(default_factory=dict)
    _next_id: int = 1

    def _check(self, obj: Any) -> None:
        if self.fatal(obj):
            raise StoreFatalError("connection lost")
        if self.reject(obj):
            raise RowRejectedError(f"rejected {type(obj).__name__}")

    def _natural_key(self, entity: Any) -> tuple[str, Any]:
        if isinstance(entity, Security):
            return ("symbol", entity.symbol)
        if isinstance(entity, NewsSnapshot):
            return ("newsoverview", (entity.fingerprint, entity.sid))
        if isinstance(entity, SourceRef):
            return ("source", entity.name)
        if isinstance(entity, AuthorRef):
            return ("author", entity.name)
        if isinstance(entity, TopicRef):
            return ("topic", entity.name)
        if isinstance(entity, ArticleRecord):
            return ("article", entity.hashid)
        if isinstance(entity, FeedRecord):
            return ("feed", (entity.news_overview_id, entity.article_id))
        raise TypeError(type(entity).__name__)

    def insert_if_absent(self, entity: Any) -> Any:
        self._check(entity)
        key = self._natural_key(entity)
        if key in self._keys:
            return self._keys[key]
        self.create_calls += 1
        self.entities.append(entity)
        if isinstance(entity, Security):
            new_id: Any = entity.sid
            self.securities[entity.symbol] = entity
        elif isinstance(entity, ArticleRecord):
            new_id = entity.hashid
        else:
            new_id = self._next_id
            self._next_id += 1
        if isinstance(entity, NewsSnapshot):
            self.fingerprints[entity.sid] = entity.fingerprint
        self._keys[key] = new_id
        return new_id

    def insert_row(self, row: Any) -> None:
        self._check(row)
        self.rows.append(row)

    def max_timestamp(self, sid: int) -> Optional[datetime]:
        stamps = [r.tstamp for r in self.rows if isinstance(r, IntradayTick) and r.sid == sid]
        if sid in self.watermarks_ts:
            stamps.append(self.watermarks_ts[sid])
        return max(stamps) if stamps else None

    def max_date(self, sid: int) -> Optional[date]:
        days = [r.date for r in self.rows if isinstance(r, DailyBar) and r.sid == sid]
        if sid in self.watermarks_date:
            days.append(self.watermarks_date[sid])
        return max(days) if days else None

    def latest_fingerprint(self, sid: int) -> Optional[str]:
        return self.fingerprints.get(sid)

    def load_registry(self, kind: str) -> dict[str, int]:
        return dict(self.registries.get(kind, {}))

    def next_sequence(self, category: SecurityCategory) -> int:
        low = category.tag << TAG_SHIFT
        seqs = [s.sid - low for s in self.securities.values() if low <= s.sid <= low + MAX_SEQUENCE]
        return max(seqs) + 1 if seqs else 1

    def targets(self, flag=None, region=None, type_label=None, *, flag_value=True) -> list[SyncTarget]:
        return list(self.target_list)

    def rows_of(self, kind: type) -> list[Any]:
        return [r for r in self.rows if isinstance(r, kind)]

    def entities_of(self, kind: type) -> list[Any]:
        return [e for e in self.entities if isinstance(e, kind)]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def gate(clock: FakeClock) -> RequestGate:
    return RequestGate(min_interval_s=0.35, max_errors=50, clock=clock, sleep=clock.sleep)


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def ctx(store: FakeStore) -> SyncContext:
    return SyncContext(store=store)
