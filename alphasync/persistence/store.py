"""
Store contract used by the sync loop.

Implementations must map failures onto the sync error taxonomy:
- a single row the store refuses (constraint, bad value) -> RowRejectedError
- connection loss, missing table, permissions            -> StoreFatalError
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Optional, Protocol

from alphasync.models import SyncTarget
from alphasync.security.codec import SecurityCategory

# `targets` flags: which per-symbol loads have already produced data.
FLAG_OVERVIEW = "overview"
FLAG_INTRADAY = "intraday"
FLAG_SUMMARY = "summary"

FLAGS = (FLAG_OVERVIEW, FLAG_INTRADAY, FLAG_SUMMARY)


class SyncStore(Protocol):
    def insert_if_absent(self, entity: Any) -> Any:
        """Insert `entity` unless its natural key exists; return its id either way."""
        ...

    def insert_row(self, row: Any) -> None: ...

    def max_timestamp(self, sid: int) -> Optional[datetime]: ...

    def max_date(self, sid: int) -> Optional[date]: ...

    def latest_fingerprint(self, sid: int) -> Optional[str]: ...

    def load_registry(self, kind: str) -> dict[str, int]: ...

    def next_sequence(self, category: SecurityCategory) -> int:
        """One past the highest sequence stored for `category`; 1 when there is none."""
        ...

    def targets(
        self,
        flag: Optional[str] = None,
        region: Optional[str] = None,
        type_label: Optional[str] = None,
        *,
        flag_value: bool = True,
    ) -> list[SyncTarget]: ...
