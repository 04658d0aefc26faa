"""
Per-item attribute derivation: slug validity, brand, price value and band.

All functions are pure and tolerant of missing data (``None`` in, ``None`` or
``"unknown"`` out).
"""

from __future__ import annotations

import re
from typing import Optional

UNKNOWN = "unknown"

_SLUG_RE = re.compile(r"^[a-z0-9-]+$", re.IGNORECASE)
_BRAND_RE = re.compile(r"^([^-:|]+)(?:\s*[-:|]\s*|$)")
_NUMBER_RE = re.compile(r"[\d.,]+")
_FLOAT_PREFIX_RE = re.compile(r"\d+(?:\.\d*)?|\.\d+")

# Price band edges in whole currency units
LOW_BAND_LIMIT = 50.0
MID_BAND_LIMIT = 200.0


def is_valid_slug(slug: Optional[str]) -> bool:
    """Return ``True`` for URL-safe catalog slugs.

    Valid: alphanumerics and hyphens only, at least 2 characters, not
    starting with a hyphen.
    """
    if not slug or not isinstance(slug, str):
        return False
    if len(slug) < 2 or not slug.strip() or slug.startswith("-"):
        return False
    return bool(_SLUG_RE.match(slug))


def extract_brand(name: Optional[str]) -> Optional[str]:
    """Derive a brand key from an item name.

    The brand is the leading token before the first ``-``, ``:`` or ``|``
    separator (or the whole name when there is none), trimmed and lowercased.

    Examples:
        ``"Acme Trading - Pro Signals"`` → ``"acme trading"``
        ``"Solo Course"``                 → ``"solo course"``
    """
    if not name:
        return None
    match = _BRAND_RE.match(name)
    if not match:
        return None
    brand = match.group(1).strip().lower()
    return brand or None


def parse_float_prefix(text: str) -> Optional[float]:
    """Parse the leading decimal number of ``text`` (``"12.5.1"`` → ``12.5``)."""
    match = _FLOAT_PREFIX_RE.match(text)
    if not match:
        return None
    return float(match.group(0))


def parse_price_value(price: Optional[str]) -> Optional[float]:
    """Extract the first number from a free-text price string.

    Only the first thousands separator is removed, so ``"$1,299"`` parses to
    ``1299.0`` and ``"Free"`` to ``None``.
    """
    if not price:
        return None
    match = _NUMBER_RE.search(price)
    if not match:
        return None
    return parse_float_prefix(match.group(0).replace(",", "", 1))


def price_band(value: Optional[float]) -> str:
    """Bucket a price value into ``unknown`` / ``low`` / ``mid`` / ``high``."""
    if value is None:
        return UNKNOWN
    if value < LOW_BAND_LIMIT:
        return "low"
    if value < MID_BAND_LIMIT:
        return "mid"
    return "high"
