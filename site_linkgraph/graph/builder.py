"""
Graph build orchestration: runs every phase over one ``GraphState``.

    candidates → popularity seed → recommendations → rotation
               → alternatives → rescue → explore allocation → invariant gate

``build_site_graph()`` is pure with respect to its inputs: it reads no
files, never consults the wall clock (freshness is measured against the
newest ``updated_at`` in the catalog unless a reference time is passed) and
raises ``GraphInvariantError`` before any artifact could be written.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Optional

from site_linkgraph.config import GraphConfig
from site_linkgraph.graph.candidates import build_candidate_pools
from site_linkgraph.graph.explore import ExploreReport, allocate_explore_slots
from site_linkgraph.graph.gate import GateReport, inbound_from_links, run_invariant_gate
from site_linkgraph.graph.rescue import RescueReport, rescue_underlinked
from site_linkgraph.graph.selector import (
    rotate_recommendations,
    seed_popularity,
    select_alternatives,
    select_recommendations,
)
from site_linkgraph.models.graph import GraphState
from site_linkgraph.models.item import CatalogItem

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SiteGraph:
    """Final build result, ready for ``write_site_graph()``.

    Attributes:
        neighbors:      slug → {"recommendations", "alternatives"[, "explore"]}.
        topics:         topic → sorted member slugs.
        inbound_counts: slug → distinct inbound sources (every node).
        report:         Invariant gate statistics.
        rescue:         Rescue pass outcome (absent for loaded artifacts).
        explore:        Explore allocation outcome (absent for loaded artifacts).
    """

    neighbors: dict[str, dict[str, Any]]
    topics: dict[str, list[str]]
    inbound_counts: dict[str, int]
    report: GateReport
    rescue: Optional[RescueReport] = None
    explore: Optional[ExploreReport] = None

    @property
    def node_count(self) -> int:
        return len(self.neighbors)


def build_topic_index(state: GraphState) -> dict[str, list[str]]:
    """topic → sorted slugs; topics appear in first-seen catalog order."""
    topics: dict[str, list[str]] = {}
    for slug, item in state.items.items():
        for topic in item.topics:
            topics.setdefault(topic, []).append(slug)
    return {topic: sorted(slugs) for topic, slugs in topics.items()}


def build_site_graph(
    items: Iterable[CatalogItem],
    config: GraphConfig,
    reference_time: Optional[datetime] = None,
) -> SiteGraph:
    """Build the complete link graph for a catalog snapshot.

    Args:
        items:          Active catalog items in natural catalog order.
        config:         Graph section of ``AppConfig``.
        reference_time: "Now" for the freshness bonus.  Defaults to the
            newest ``updated_at`` among ``items``.

    Returns:
        ``SiteGraph`` that passed the invariant gate.

    Raises:
        ValueError: If two items share a slug.
        GraphInvariantError: If the finished graph breaks a hard invariant.
    """
    state = GraphState.from_items(items, reference_time)
    logger.info(
        "Building link graph for %d nodes (reference time: %s)",
        len(state.items),
        state.reference_time.isoformat() if state.reference_time else "none",
    )

    state.pools = build_candidate_pools(state.profiles.values(), config)
    seed_popularity(state, config)
    select_recommendations(state, config)
    rotate_recommendations(state, config)
    select_alternatives(state, config)
    rescue_report = rescue_underlinked(state, config)
    explore_report = allocate_explore_slots(state, config)
    gate_report = run_invariant_gate(state, config)

    return SiteGraph(
        neighbors={slug: state.links[slug].to_dict() for slug in state.items},
        topics=build_topic_index(state),
        inbound_counts=inbound_from_links(state.links, state.items),
        report=gate_report,
        rescue=rescue_report,
        explore=explore_report,
    )
