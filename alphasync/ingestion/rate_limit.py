from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

from alphasync.common.errors import CircuitOpen
from alphasync.common.logging import log_event

logger = logging.getLogger(__name__)

DEFAULT_MIN_INTERVAL_S = 0.35
DEFAULT_MAX_ERRORS = 50


@dataclass
class RateState:
    last_request_at: Optional[float] = None
    error_count: int = 0


class RequestGate:
    """
    Minimum-spacing gate plus cumulative error ceiling for one provider.

    - min_interval_s: required spacing between the end of one request and the next
    - max_errors: `record_error` raises CircuitOpen once the count exceeds this
    - penalty_s: extra sleep added whenever a wait was actually needed

    The error count is never reset by successes; it accumulates for the life
    of the gate (one run).
    """

    def __init__(
        self,
        *,
        min_interval_s: float = DEFAULT_MIN_INTERVAL_S,
        max_errors: int = DEFAULT_MAX_ERRORS,
        penalty_s: float = 0.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if min_interval_s < 0:
            raise ValueError("min_interval_s must be >= 0")
        if max_errors < 0:
            raise ValueError("max_errors must be >= 0")
        self.min_interval_s = float(min_interval_s)
        self.max_errors = int(max_errors)
        self.penalty_s = max(0.0, float(penalty_s))
        self._clock = clock
        self._sleep = sleep
        self.state = RateState()

    @property
    def error_count(self) -> int:
        return self.state.error_count

    @property
    def is_open(self) -> bool:
        return self.state.error_count > self.max_errors

    def allow(self) -> float:
        last = self.state.last_request_at
        if last is None:
            return 0.0
        elapsed = self._clock() - last
        return max(0.0, self.min_interval_s - elapsed)

    def wait(self) -> float:
        delay = self.allow()
        if delay > 0.0:
            delay += self.penalty_s
            self._sleep(delay)
        return delay

    def mark_request(self) -> None:
        self.state.last_request_at = self._clock()

    def record_error(self) -> None:
        self.state.error_count += 1
        if self.is_open:
            log_event(
                logger,
                "rate_gate.circuit_open",
                severity="ERROR",
                error_count=self.state.error_count,
                max_errors=self.max_errors,
            )
            raise CircuitOpen(self.state.error_count, ceiling=self.max_errors)

    def record_success(self) -> None:
        # Successes do not reset the cumulative count.
        return None
