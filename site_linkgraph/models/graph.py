"""
Graph-build state shared by every phase.

``GraphState`` is the single mutable value object handed from phase to phase
(candidates → selector → rescue → explore → gate).  Phases take it as an
input/output parameter; nothing in the build reads ambient or global state.

Determinism contract
--------------------
``GraphState.items`` preserves the catalog's natural order and every phase
iterates nodes in that order.  The greedy phases are order-dependent, so the
same catalog snapshot in the same order always yields the same graph; a
reordered catalog may legitimately yield a different (equally valid) one.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Optional

from site_linkgraph.catalog.price import parse_price_to_cents
from site_linkgraph.models.item import CatalogItem
from site_linkgraph.utils.time_utils import latest_timestamp


@dataclass(frozen=True)
class Edge:
    """A scored directed edge from an implicit source to ``target``."""

    target: str
    score: float


@dataclass(frozen=True)
class CandidatePool:
    """Ranked candidates for one source node (read-only after pass 1).

    Attributes:
        recommendations: Taxonomic/topical matches, descending score.
        alternatives:    Similarity + price-affinity matches, descending score.
    """

    recommendations: tuple[Edge, ...] = ()
    alternatives: tuple[Edge, ...] = ()


@dataclass(frozen=True)
class NodeProfile:
    """Pre-derived comparison keys for one item (hot-loop friendly).

    ``category`` and ``brand`` are ``None`` when missing and only ever match
    another present value; ``category_key`` and ``brand_key`` fold missing
    values into ``"unknown"`` for diversity counting.
    """

    slug: str
    index: int
    category: Optional[str]
    brand: Optional[str]
    category_key: str
    brand_key: str
    price_band: str
    price_raw: Optional[str]
    price_cents: Optional[int]
    rating: float
    topics: tuple[str, ...]
    topic_set: frozenset[str]
    updated_at: Optional[datetime]

    @property
    def primary_topic(self) -> Optional[str]:
        return self.topics[0] if self.topics else None

    @classmethod
    def from_item(cls, item: CatalogItem, index: int) -> "NodeProfile":
        return cls(
            slug=item.slug,
            index=index,
            category=item.category.lower() if item.category else None,
            brand=item.brand or None,
            category_key=item.category_key,
            brand_key=item.brand_key,
            price_band=item.price_band,
            price_raw=item.price,
            price_cents=parse_price_to_cents(item.price),
            rating=item.rating,
            topics=tuple(item.topics),
            topic_set=frozenset(item.topics),
            updated_at=item.updated_at,
        )


@dataclass
class NodeLinks:
    """Outgoing link set of one node.

    Mutated in sequence by the selector, rescue engine and explore allocator.
    ``recommendations`` and ``alternatives`` are display-ordered.
    """

    recommendations: list[str] = field(default_factory=list)
    alternatives: list[str] = field(default_factory=list)
    explore: Optional[str] = None

    def targets(self) -> list[str]:
        """Combined targets in display order, duplicates removed."""
        seen: dict[str, None] = {}
        for slug in (*self.recommendations, *self.alternatives):
            seen.setdefault(slug, None)
        if self.explore:
            seen.setdefault(self.explore, None)
        return list(seen)

    def links_to(self, slug: str) -> bool:
        return (
            slug in self.recommendations
            or slug in self.alternatives
            or self.explore == slug
        )

    def out_degree(self) -> int:
        return len(self.targets())

    def to_dict(self) -> dict:
        """Artifact form; ``explore`` only present when set."""
        entry: dict = {
            "recommendations": list(self.recommendations),
            "alternatives": list(self.alternatives),
        }
        if self.explore:
            entry["explore"] = self.explore
        return entry


@dataclass
class GraphState:
    """Everything the phases read and mutate during one build.

    Attributes:
        items:          slug → item, in catalog order.
        profiles:       slug → derived comparison keys.
        pools:          slug → candidate pool (set by pass 1).
        links:          slug → outgoing link set.
        popularity:     Running inbound estimate used by the selector.
        alt_usage:      Global alternative usage counter.
        reference_time: "Now" for freshness nudges (never the wall clock).
    """

    items: dict[str, CatalogItem]
    profiles: dict[str, NodeProfile]
    links: dict[str, NodeLinks]
    pools: dict[str, CandidatePool] = field(default_factory=dict)
    popularity: dict[str, int] = field(default_factory=dict)
    alt_usage: dict[str, int] = field(default_factory=dict)
    reference_time: Optional[datetime] = None

    @classmethod
    def from_items(
        cls,
        items: Iterable[CatalogItem],
        reference_time: Optional[datetime] = None,
    ) -> "GraphState":
        """Build an empty-link state from catalog items (order preserved).

        Raises:
            ValueError: If two items share a slug.
        """
        ordered: dict[str, CatalogItem] = {}
        for item in items:
            if item.slug in ordered:
                raise ValueError(f"Duplicate slug in catalog: '{item.slug}'.")
            ordered[item.slug] = item

        if reference_time is None:
            reference_time = latest_timestamp(i.updated_at for i in ordered.values())

        return cls(
            items=ordered,
            profiles={
                slug: NodeProfile.from_item(item, idx)
                for idx, (slug, item) in enumerate(ordered.items())
            },
            links={slug: NodeLinks() for slug in ordered},
            popularity={slug: 0 for slug in ordered},
            alt_usage={},
            reference_time=reference_time,
        )

    @property
    def slugs(self) -> list[str]:
        return list(self.items)

    def inbound_counts(self, include_explore: bool = True) -> dict[str, int]:
        """Recompute a fresh table of distinct inbound sources per node.

        Args:
            include_explore: Count explore edges too (the authoritative view).
                ``False`` restricts to recommendation + alternative edges.

        Returns:
            slug → count for every catalog slug, in catalog order.
        """
        counts = {slug: 0 for slug in self.items}
        for source, node in self.links.items():
            targets = set(node.recommendations) | set(node.alternatives)
            if include_explore and node.explore:
                targets.add(node.explore)
            targets.discard(source)
            for target in targets:
                if target in counts:
                    counts[target] += 1
        return counts

    def parents(self, include_explore: bool = False) -> dict[str, set[str]]:
        """Reverse index: target → set of sources linking to it."""
        index: dict[str, set[str]] = {slug: set() for slug in self.items}
        for source, node in self.links.items():
            targets = [*node.recommendations, *node.alternatives]
            if include_explore and node.explore:
                targets.append(node.explore)
            for target in targets:
                if target != source and target in index:
                    index[target].add(source)
        return index
