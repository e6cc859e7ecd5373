from __future__ import annotations

from typing import Any, Callable, Iterable, Optional, TypeVar

T = TypeVar("T")


def is_new(candidate: Any, watermark: Optional[Any]) -> bool:
    """Strictly newer than the watermark; everything is new when there is none."""
    if watermark is None:
        return True
    return candidate > watermark


def partition(rows: Iterable[T], watermark: Optional[Any], key: Callable[[T], Any]) -> tuple[list[T], list[T]]:
    """Split rows into (new, already seen), preserving input order in both."""
    new_rows: list[T] = []
    seen_rows: list[T] = []
    for row in rows:
        if is_new(key(row), watermark):
            new_rows.append(row)
        else:
            seen_rows.append(row)
    return new_rows, seen_rows
