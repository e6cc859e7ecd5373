"""
Exchange listing-file readers.

Listing files seed the symbol loader. Supported layouts (CSV with header):
- NASDAQ:  `symbol` column (datahub nasdaq-listed)
- NYSE:    `actsymbol` column (datahub nyse-other-listings)
- DIGITAL: `symbol,name` (digital currency list)

File locations default to the NASDAQ_LISTED / OTHER_LISTED / DIGITAL_LIST env vars.

A missed-item file is plain text, one label per line. A run writes the labels
it skipped there and `symbols --from-missed` reads them back.
"""

from __future__ import annotations

import csv
import enum
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional, Union

from alphasync.common.errors import ConfigError

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


class ListingKind(enum.Enum):
    NASDAQ = "NASDAQ"
    NYSE = "NYSE"
    DIGITAL = "DIGITAL"


_SYMBOL_COLUMN = {
    ListingKind.NASDAQ: "symbol",
    ListingKind.NYSE: "actsymbol",
    ListingKind.DIGITAL: "symbol",
}

LISTING_ENV = {
    ListingKind.NASDAQ: "NASDAQ_LISTED",
    ListingKind.NYSE: "OTHER_LISTED",
    ListingKind.DIGITAL: "DIGITAL_LIST",
}


@dataclass(frozen=True)
class ListingEntry:
    symbol: str
    name: str = ""


def read_listing(path: PathLike, kind: ListingKind) -> list[ListingEntry]:
    """Read one listing file; rows with an empty symbol are skipped."""
    col = _SYMBOL_COLUMN[kind]
    out: list[ListingEntry] = []
    with open(path, newline="", encoding="utf-8") as f:
        reader = csv.DictReader(f)
        if reader.fieldnames is None or col not in reader.fieldnames:
            raise ValueError(f"{path}: missing {col!r} column for {kind.value} listing")
        for rec in reader:
            symbol = (rec.get(col) or "").strip()
            if not symbol:
                continue
            out.append(ListingEntry(symbol=symbol, name=(rec.get("name") or "").strip()))
    logger.info("listing.loaded", extra={"kind": kind.value, "path": str(path), "count": len(out)})
    return out


def read_symbols(path: PathLike, kind: ListingKind) -> list[str]:
    return [e.symbol for e in read_listing(path, kind)]


def listing_path(kind: ListingKind, override: Optional[PathLike] = None) -> Path:
    if override:
        return Path(override)
    env_name = LISTING_ENV[kind]
    v = (os.getenv(env_name) or "").strip()
    if not v:
        raise ConfigError(f"No {kind.value} listing file given and {env_name} is not set")
    return Path(v)


def write_missed(path: PathLike, labels: Iterable[str]) -> int:
    """Replace `path` with one label per line; returns the number written."""
    count = 0
    with open(path, "w", encoding="utf-8") as f:
        for label in labels:
            f.write(f"{label}\n")
            count += 1
    logger.info("missed.written", extra={"path": str(path), "count": count})
    return count


def read_missed(path: PathLike) -> list[str]:
    """Labels from a missed-item file, blank lines skipped, first occurrence kept."""
    with open(path, encoding="utf-8") as f:
        labels = [line.strip() for line in f]
    out = list(dict.fromkeys(label for label in labels if label))
    logger.info("missed.loaded", extra={"path": str(path), "count": len(out)})
    return out
