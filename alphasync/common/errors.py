"""
Error taxonomy for sync runs.

Every failure the sync engine reacts to is a `SyncError` carrying an
`ErrorKind`. Callers decide skip vs abort from `kind` / `is_fatal`, never from
the message text:

- transient     transport failure; counted against the error ceiling, item skipped
- soft_empty    provider answered without the expected marker; item skipped, not an error
- parse         a single field/row could not be coerced; row dropped
- duplicate     natural key already known; resolved to the existing id
- row_rejected  the store refused one row; row skipped
- store_fatal   connection/schema failure; run aborted
- circuit_open  cumulative error ceiling exceeded; run aborted
"""

from __future__ import annotations

import enum
from typing import Any, Optional


class ErrorKind(enum.Enum):
    TRANSIENT = "transient"
    SOFT_EMPTY = "soft_empty"
    PARSE = "parse"
    DUPLICATE = "duplicate"
    ROW_REJECTED = "row_rejected"
    STORE_FATAL = "store_fatal"
    CIRCUIT_OPEN = "circuit_open"


_FATAL_KINDS = frozenset({ErrorKind.STORE_FATAL, ErrorKind.CIRCUIT_OPEN})


class SyncError(RuntimeError):
    kind: ErrorKind = ErrorKind.TRANSIENT

    def __init__(self, message: str = "", *, entity: Optional[str] = None) -> None:
        super().__init__(message or self.kind.value)
        self.entity = entity
        # Populated by the orchestrator when a fatal error unwinds a run.
        self.report: Any = None

    @property
    def is_fatal(self) -> bool:
        return self.kind in _FATAL_KINDS


class TransientError(SyncError):
    kind = ErrorKind.TRANSIENT


class NoDataError(SyncError):
    kind = ErrorKind.SOFT_EMPTY


class ParseError(SyncError):
    kind = ErrorKind.PARSE


class DuplicateKeyError(SyncError):
    kind = ErrorKind.DUPLICATE

    def __init__(self, message: str = "", *, existing_id: Optional[int] = None, entity: Optional[str] = None) -> None:
        super().__init__(message, entity=entity)
        self.existing_id = existing_id


class RowRejectedError(SyncError):
    kind = ErrorKind.ROW_REJECTED


class StoreFatalError(SyncError):
    kind = ErrorKind.STORE_FATAL


class CircuitOpen(SyncError):
    kind = ErrorKind.CIRCUIT_OPEN

    def __init__(self, count: int, *, ceiling: Optional[int] = None) -> None:
        super().__init__(f"Too many errors: {count}")
        self.count = int(count)
        self.ceiling = ceiling


class ConfigError(RuntimeError):
    """Missing or invalid runtime configuration."""
