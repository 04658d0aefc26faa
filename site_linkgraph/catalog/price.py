"""
Free-text price parsing and price affinity.

Catalog prices are human strings ("$49/month", "From $1,299", "Free").
``parse_price_to_cents()`` normalises them to integer cents and
``price_affinity()`` turns two prices into a [0, 1] closeness score.

Affinity rules (evaluated in order)
-----------------------------------
    1. both free                → 1.0
    2. exactly one free         → 0.0
    3. either unparseable       → 0.5  (neutral)
    4. otherwise                → min / max ratio of the two prices
"""

from __future__ import annotations

import math
import re
from typing import Optional

from site_linkgraph.catalog.attributes import parse_float_prefix

NEUTRAL_AFFINITY = 0.5

_FREE_VALUES = frozenset({"free", "$0", "0"})
_PREFIX_RE = re.compile(r"^(from\s+|starting\s+at\s+|only\s+)", re.IGNORECASE)
_SUFFIX_RE = re.compile(
    r"\s+(per\s+month|/month|monthly|/mo|one-time|lifetime)", re.IGNORECASE
)
_NON_NUMERIC_RE = re.compile(r"[^\d.,]")


def _round_half_up(value: float) -> int:
    # Halves go up (12.5 → 13), not to the even neighbour.
    return math.floor(value + 0.5)


def parse_price_to_cents(price: Optional[str]) -> Optional[int]:
    """Parse a free-text price into integer cents.

    Values below 1000 are read as whole currency units; larger values are
    assumed to already be in cents.

    Returns:
        Cents, ``0`` for free items, or ``None`` when nothing numeric is found.
    """
    if not price or not isinstance(price, str):
        return None

    normalized = price.lower().strip()
    if normalized in _FREE_VALUES:
        return 0

    cleaned = _PREFIX_RE.sub("", normalized, count=1)
    cleaned = _SUFFIX_RE.sub("", cleaned, count=1)
    cleaned = _NON_NUMERIC_RE.sub("", cleaned)
    if not cleaned:
        return None

    value = parse_float_prefix(cleaned.replace(",", ""))
    if value is None:
        return None
    return _round_half_up(value * 100) if value < 1000 else _round_half_up(value)


def affinity_from_cents(cents_a: Optional[int], cents_b: Optional[int]) -> float:
    """``price_affinity()`` over already-parsed cents (hot-loop variant)."""
    if cents_a == 0 and cents_b == 0:
        return 1.0
    if (cents_a == 0) != (cents_b == 0):
        return 0.0
    if cents_a is None or cents_b is None:
        return NEUTRAL_AFFINITY
    high = max(cents_a, cents_b)
    if high == 0:
        return 1.0
    return min(cents_a, cents_b) / high


def price_affinity(price_a: Optional[str], price_b: Optional[str]) -> float:
    """Closeness of two free-text prices in [0, 1]."""
    return affinity_from_cents(parse_price_to_cents(price_a), parse_price_to_cents(price_b))
