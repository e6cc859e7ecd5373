"""
Content fingerprint for news snapshots.

`canonical_bytes` is a self-delimiting encoding: every value is written as a
one-byte type tag, a 4-byte big-endian payload length and the payload. Two
structurally equal values always encode to the same bytes, independent of
dict insertion order or process (no `hash()` salt involved).

`fingerprint` is the decimal CRC-32 of the concatenated row encodings. It is a
cheap equality check, not a security primitive.
"""

from __future__ import annotations

import dataclasses
import enum
import struct
import zlib
from collections.abc import Mapping
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Iterable

_HEADER = struct.Struct(">cI")


def _frame(tag: bytes, payload: bytes) -> bytes:
    return _HEADER.pack(tag, len(payload)) + payload


def canonical_bytes(value: Any) -> bytes:
    if value is None:
        return _frame(b"N", b"")
    # bool before int: bool is an int subclass.
    if isinstance(value, bool):
        return _frame(b"?", b"\x01" if value else b"\x00")
    if isinstance(value, enum.Enum):
        return _frame(b"e", canonical_bytes(value.value))
    if isinstance(value, int):
        return _frame(b"i", str(value).encode("ascii"))
    if isinstance(value, float):
        return _frame(b"f", struct.pack(">d", value))
    if isinstance(value, str):
        return _frame(b"s", value.encode("utf-8"))
    if isinstance(value, (bytes, bytearray, memoryview)):
        return _frame(b"y", bytes(value))
    # datetime before date: datetime is a date subclass.
    if isinstance(value, datetime):
        return _frame(b"T", value.isoformat().encode("ascii"))
    if isinstance(value, date):
        return _frame(b"D", value.isoformat().encode("ascii"))
    if isinstance(value, time):
        return _frame(b"t", value.isoformat().encode("ascii"))
    if isinstance(value, Decimal):
        return _frame(b"d", str(value).encode("ascii"))
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        parts = []
        for f in dataclasses.fields(value):
            parts.append(canonical_bytes(f.name))
            parts.append(canonical_bytes(getattr(value, f.name)))
        return _frame(b"C", b"".join(parts))
    if isinstance(value, Mapping):
        items = sorted((canonical_bytes(k), canonical_bytes(v)) for k, v in value.items())
        return _frame(b"m", b"".join(k + v for k, v in items))
    if isinstance(value, (set, frozenset)):
        return _frame(b"S", b"".join(sorted(canonical_bytes(v) for v in value)))
    if isinstance(value, (list, tuple)):
        return _frame(b"l", b"".join(canonical_bytes(v) for v in value))
    raise TypeError(f"cannot fingerprint value of type {type(value).__name__}")


def fingerprint(rows: Iterable[Any]) -> str:
    crc = 0
    for row in rows:
        crc = zlib.crc32(canonical_bytes(row), crc)
    return str(crc & 0xFFFFFFFF)
