from __future__ import annotations

import re

from alphasync.security.codec import SecurityCategory

_BASE_TYPES = {
    "equity": SecurityCategory.EQUITY,
    "etf": SecurityCategory.ETF,
    "mutual fund": SecurityCategory.MUTUAL_FUND,
}

_ADR_RE = re.compile(r"\badr\b")
_WARRANT_RE = re.compile(r"\b(warrants?|wrnt)\b")
_PREFERRED_RE = re.compile(r"\b(pfd|preferred)\b")

_REGIONS = {
    "United States": "USA",
    "United Kingdom": "UK",
    "Frankfurt": "Frank",
    "Toronto Venture": "TOR",
    "India/Bombay": "Bomb",
    "Brazil/Sao Paolo": "SaoP",
}


def classify_detailed(type_str: str, name: str) -> tuple[SecurityCategory, str]:
    """
    Classify a symbol-search match.

    The provider type ("Equity", "ETF", "Mutual Fund") sets the base category;
    ADR / warrant / preferred markers in the security name take precedence.
    Returns (category, label stored in the symbol record).
    """
    category = _BASE_TYPES.get((type_str or "").strip().lower(), SecurityCategory.OTHER)
    lower_name = (name or "").lower()
    if _ADR_RE.search(lower_name):
        category = SecurityCategory.ADR
    elif _WARRANT_RE.search(lower_name):
        category = SecurityCategory.WARRANT
    elif _PREFERRED_RE.search(lower_name):
        category = SecurityCategory.PREFERRED
    return category, category.value


def normalize_region(region: str) -> str:
    """Abbreviate the provider's region names; unknown regions pass through."""
    return _REGIONS.get(region, region)
