"""
Security identifier codec.

A security id (`sid`) is a single signed 64-bit integer that carries the
security category in its high bits and a per-category sequence number in its
low bits:

    bit 63        56 55      48 47            32 31                 0
        | 0 (sign) |   tag    |   zero padding  |      sequence     |

Rules:
- Tags are a wire contract. Persisted sids depend on them; changing a tag
  value is a schema migration, never a refactor.
- `encode` accepts any sequence in 0..2**32-1.
- `decode` returns None for an unknown tag or a key with stray padding bits,
  so a garbage key is never mapped onto a real category.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Optional

TAG_SHIFT = 48
SEQUENCE_BITS = 32
SEQUENCE_MASK = (1 << SEQUENCE_BITS) - 1
MAX_SEQUENCE = SEQUENCE_MASK
_PADDING_MASK = ((1 << TAG_SHIFT) - 1) & ~SEQUENCE_MASK


class SecurityCategory(enum.Enum):
    """Closed set of security categories; `value` is the display label."""

    EQUITY = "Equity"
    BOND = "Bond"
    OPTION = "Option"
    FUTURE = "Future"
    ETF = "ETF"
    MUTUAL_FUND = "Mutual Fund"
    CRYPTO = "Crypto"
    FX = "FX"
    SWAP = "Swap"
    WARRANT = "Warrant"
    ADR = "ADR"
    PREFERRED = "Preferred"
    OTHER = "Other"

    @property
    def tag(self) -> int:
        return CATEGORY_TAGS[self]

    def __str__(self) -> str:
        return self.value


CATEGORY_TAGS: dict[SecurityCategory, int] = {
    SecurityCategory.EQUITY: 0b0000_0000,
    SecurityCategory.PREFERRED: 0b0000_0010,
    SecurityCategory.ADR: 0b0000_0100,
    SecurityCategory.WARRANT: 0b0000_0110,
    SecurityCategory.BOND: 0b0001_0000,
    SecurityCategory.OPTION: 0b0010_0000,
    SecurityCategory.FUTURE: 0b0011_0000,
    SecurityCategory.ETF: 0b0100_0000,
    SecurityCategory.MUTUAL_FUND: 0b0101_0000,
    SecurityCategory.CRYPTO: 0b0110_0000,
    SecurityCategory.FX: 0b0111_0000,
    SecurityCategory.SWAP: 0b1000_0000,
    SecurityCategory.OTHER: 0b1111_0000,
}

_TAG_TO_CATEGORY: dict[int, SecurityCategory] = {tag: cat for cat, tag in CATEGORY_TAGS.items()}


@dataclass(frozen=True)
class SecurityKey:
    category: SecurityCategory
    sequence: int

    def encode(self) -> int:
        return encode(self.category, self.sequence)


def encode(category: SecurityCategory, sequence: int) -> int:
    if not isinstance(category, SecurityCategory):
        raise TypeError(f"category must be a SecurityCategory, got {type(category).__name__}")
    if isinstance(sequence, bool) or not isinstance(sequence, int):
        raise TypeError("sequence must be an int")
    if sequence < 0 or sequence > MAX_SEQUENCE:
        raise ValueError(f"sequence out of range 0..{MAX_SEQUENCE}: {sequence}")
    return (CATEGORY_TAGS[category] << TAG_SHIFT) | sequence


def decode(key: int) -> Optional[SecurityKey]:
    if key < 0:
        return None
    if key & _PADDING_MASK:
        return None
    category = _TAG_TO_CATEGORY.get(key >> TAG_SHIFT)
    if category is None:
        return None
    return SecurityKey(category=category, sequence=key & SEQUENCE_MASK)
