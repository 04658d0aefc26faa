"""
Diversity caps for a single outgoing link list.

A list may hold at most ``max_same_category`` targets of one category,
``max_same_price_band`` of one price band and ``max_same_brand`` of one
brand.  Missing values count as their own ``"unknown"`` bucket.
"""

from __future__ import annotations

from collections import Counter
from typing import Iterable, Mapping, Optional, Sequence

from site_linkgraph.catalog.attributes import UNKNOWN
from site_linkgraph.config import GraphConfig
from site_linkgraph.models.graph import NodeProfile


def _keys(profile: Optional[NodeProfile]) -> tuple[str, str, str]:
    if profile is None:
        return UNKNOWN, UNKNOWN, UNKNOWN
    return profile.category_key, profile.price_band, profile.brand_key


class DiversityCounter:
    """Running category / price band / brand counts of one link list."""

    def __init__(self, config: GraphConfig) -> None:
        self.config = config
        self.categories: Counter[str] = Counter()
        self.bands: Counter[str] = Counter()
        self.brands: Counter[str] = Counter()

    @classmethod
    def from_list(
        cls,
        slugs: Iterable[str],
        profiles: Mapping[str, NodeProfile],
        config: GraphConfig,
    ) -> "DiversityCounter":
        counter = cls(config)
        for slug in slugs:
            counter.add(profiles.get(slug))
        return counter

    def allows(self, profile: Optional[NodeProfile]) -> bool:
        """``True`` if adding ``profile`` keeps every cap."""
        category, band, brand = _keys(profile)
        return (
            self.categories[category] < self.config.max_same_category
            and self.bands[band] < self.config.max_same_price_band
            and self.brands[brand] < self.config.max_same_brand
        )

    def add(self, profile: Optional[NodeProfile]) -> None:
        category, band, brand = _keys(profile)
        self.categories[category] += 1
        self.bands[band] += 1
        self.brands[brand] += 1

    def remove(self, profile: Optional[NodeProfile]) -> None:
        category, band, brand = _keys(profile)
        self.categories[category] -= 1
        self.bands[band] -= 1
        self.brands[brand] -= 1

    def breaches(self) -> list[str]:
        """Human-readable descriptions of every exceeded cap."""
        found: list[str] = []
        for label, counts, cap in (
            ("category", self.categories, self.config.max_same_category),
            ("price band", self.bands, self.config.max_same_price_band),
            ("brand", self.brands, self.config.max_same_brand),
        ):
            for key, count in counts.items():
                if count > cap:
                    found.append(f"{count} targets share {label} '{key}' (cap {cap})")
        return found


def diversity_ok(
    links: Sequence[str],
    candidate: str,
    profiles: Mapping[str, NodeProfile],
    config: GraphConfig,
) -> bool:
    """Return ``True`` if appending ``candidate`` to ``links`` keeps the caps."""
    counter = DiversityCounter.from_list(links, profiles, config)
    return counter.allows(profiles.get(candidate))
