"""
Provider timestamp/date parsing.

Rules:
- Provider stamps carry no offset; they are returned as naive datetimes in
  the exchange's local time (the same convention the store uses).
- Top-mover stamps end in a zone abbreviation ("2024-01-05 16:15:59 US/Eastern");
  the zone is ignored.
- Every parser raises ValueError on malformed input. Callers decide whether
  that drops the row or maps to a sentinel.
"""

from __future__ import annotations

from datetime import date, datetime, time

TICK_FORMAT = "%Y-%m-%d %H:%M:%S"
DATE_FORMAT = "%Y-%m-%d"
NEWS_FORMAT = "%Y%m%dT%H%M%S"
MARKET_TIME_FORMAT = "%H:%M"


def _text(value: object, what: str) -> str:
    if value is None:
        raise ValueError(f"{what} is None")
    s = str(value).strip()
    if not s:
        raise ValueError(f"{what} is empty")
    return s


def parse_tick_timestamp(value: object) -> datetime:
    return datetime.strptime(_text(value, "timestamp"), TICK_FORMAT)


def parse_date(value: object) -> date:
    return datetime.strptime(_text(value, "date"), DATE_FORMAT).date()


def parse_news_timestamp(value: object) -> datetime:
    return datetime.strptime(_text(value, "time_published"), NEWS_FORMAT)


def parse_last_updated(value: object) -> datetime:
    """Parse "YYYY-MM-DD HH:MM:SS <zone>", dropping the trailing zone token."""
    s = _text(value, "last_updated")
    parts = s.split()
    if len(parts) < 2:
        raise ValueError(f"last_updated missing time: {s!r}")
    return datetime.strptime(f"{parts[0]} {parts[1]}", TICK_FORMAT)


def parse_market_time(value: object) -> time:
    return datetime.strptime(_text(value, "market time"), MARKET_TIME_FORMAT).time()
