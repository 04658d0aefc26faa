"""
Explore-slot allocator (pass 6): guarantee ``min_inbound`` for every node.

Two sub-passes:

1. Slot allocation.  Every recommendation list with room, every alternative
   list with room and one dedicated ``explore`` link per node form a pool of
   donor slots.  Targets below ``min_inbound`` (fewest inbound first) take the
   best remaining slot by ``(list fill, closeness, pair hash)``, where
   closeness is 10 for a different category plus 5 for a different brand
   (lower is better).  Each slot is consumed once.

2. Top-up.  Anything still below the floor receives explore links from
   donors that do not already link to it, same-category donors first, then
   donors with the fewest outgoing links.  An occupied explore slot is only
   reassigned when its current target keeps ``min_inbound`` without it.

Neither sub-pass ever pushes a target to ``hub_cap``, creates a self-link or
repeats a target already present in the donor's combined link set.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from site_linkgraph.config import GraphConfig
from site_linkgraph.graph.diversity import diversity_ok
from site_linkgraph.models.graph import GraphState, NodeProfile
from site_linkgraph.utils.hashing import fnv1a, pair_hash

logger = logging.getLogger(__name__)

SLOT_RECOMMENDATION = "recommendation"
SLOT_ALTERNATIVE = "alternative"
SLOT_EXPLORE = "explore"

DIFFERENT_CATEGORY_DISTANCE = 10
DIFFERENT_BRAND_DISTANCE = 5


@dataclass(frozen=True)
class Slot:
    """One place a link can be added: ``kind`` list of node ``source``."""

    source: str
    kind: str


@dataclass
class ExploreReport:
    """Outcome of ``allocate_explore_slots()``.

    Attributes:
        targets:           Nodes below ``min_inbound`` before allocation.
        slots:             Available slots per kind before allocation.
        placed:            Links placed per slot kind during allocation.
        top_up_links:      Explore links added by the top-up sub-pass.
        top_up_reassigned: Top-up links that replaced an existing explore link.
        remaining:         Nodes still below ``min_inbound`` afterwards.
    """

    targets: int = 0
    slots: dict[str, int] = field(default_factory=dict)
    placed: dict[str, int] = field(
        default_factory=lambda: {SLOT_RECOMMENDATION: 0, SLOT_ALTERNATIVE: 0, SLOT_EXPLORE: 0}
    )
    top_up_links: int = 0
    top_up_reassigned: int = 0
    remaining: list[str] = field(default_factory=list)

    @property
    def total_links(self) -> int:
        return sum(self.placed.values()) + self.top_up_links


def explore_link_allowed(
    source: Optional[NodeProfile],
    target: Optional[NodeProfile],
    config: GraphConfig,
) -> bool:
    """Feasibility check for an allocator link ``source → target``.

    Permissive by default: any distinct pair may link.  With
    ``explore_requires_affinity`` the pair must share a category or a brand.
    """
    if source is None or target is None or source.slug == target.slug:
        return False
    if not config.explore_requires_affinity:
        return True
    same_category = source.category is not None and source.category == target.category
    same_brand = source.brand is not None and source.brand == target.brand
    return same_category or same_brand


def closeness(source: NodeProfile, target: NodeProfile) -> int:
    """Metadata distance between two nodes (lower is closer)."""
    distance = 0
    if source.category_key != target.category_key:
        distance += DIFFERENT_CATEGORY_DISTANCE
    if source.brand_key != target.brand_key:
        distance += DIFFERENT_BRAND_DISTANCE
    return distance


def build_slot_pool(state: GraphState, config: GraphConfig) -> list[Slot]:
    """Donor slots in catalog order: recommendation, alternative, explore."""
    slots: list[Slot] = []
    for slug, node in state.links.items():
        if len(node.recommendations) < config.recs_per_page:
            slots.append(Slot(slug, SLOT_RECOMMENDATION))
    for slug, node in state.links.items():
        if len(node.alternatives) < config.alts_per_page:
            slots.append(Slot(slug, SLOT_ALTERNATIVE))
    for slug, node in state.links.items():
        if node.explore is None:
            slots.append(Slot(slug, SLOT_EXPLORE))
    return slots


def _slot_list(state: GraphState, slot: Slot) -> list[str]:
    node = state.links[slot.source]
    if slot.kind == SLOT_RECOMMENDATION:
        return node.recommendations
    if slot.kind == SLOT_ALTERNATIVE:
        return node.alternatives
    return []


def _slot_has_room(slot: Slot, fill: int, config: GraphConfig) -> bool:
    if slot.kind == SLOT_RECOMMENDATION:
        return fill < config.recs_per_page
    if slot.kind == SLOT_ALTERNATIVE:
        return fill < config.alts_per_page
    return True


def _best_slot(
    slots: list[Slot],
    target: str,
    state: GraphState,
    config: GraphConfig,
) -> int:
    target_profile = state.profiles[target]
    best_idx = -1
    best_key: Optional[tuple[int, int, int]] = None

    for i, slot in enumerate(slots):
        source = slot.source
        if source == target or state.links[source].links_to(target):
            continue
        source_profile = state.profiles[source]
        if not explore_link_allowed(source_profile, target_profile, config):
            continue

        current = _slot_list(state, slot)
        if not _slot_has_room(slot, len(current), config):
            continue
        if slot.kind != SLOT_EXPLORE and not diversity_ok(
            current, target, state.profiles, config
        ):
            continue

        key = (len(current), closeness(source_profile, target_profile), pair_hash(source, target))
        if best_key is None or key < best_key:
            best_key = key
            best_idx = i

    return best_idx


def _allocate(state: GraphState, config: GraphConfig, report: ExploreReport) -> dict[str, int]:
    inbound = state.inbound_counts(include_explore=True)
    floor = config.min_inbound

    targets = sorted(
        (slug for slug in state.items if inbound[slug] < floor),
        key=lambda s: (inbound[s], fnv1a(s)),
    )
    slots = build_slot_pool(state, config)

    report.targets = len(targets)
    report.slots = {
        kind: sum(1 for s in slots if s.kind == kind)
        for kind in (SLOT_RECOMMENDATION, SLOT_ALTERNATIVE, SLOT_EXPLORE)
    }
    logger.info(
        "Explore allocation: %d targets below %d, %d slots "
        "(recommendation %d, alternative %d, explore %d)",
        len(targets), floor, len(slots),
        report.slots[SLOT_RECOMMENDATION], report.slots[SLOT_ALTERNATIVE],
        report.slots[SLOT_EXPLORE],
    )

    for target in targets:
        while inbound[target] < floor and inbound[target] < config.hub_cap:
            pick = _best_slot(slots, target, state, config)
            if pick < 0:
                logger.debug("No donor slot left for '%s'", target)
                break
            slot = slots.pop(pick)
            node = state.links[slot.source]
            if slot.kind == SLOT_RECOMMENDATION:
                node.recommendations.append(target)
            elif slot.kind == SLOT_ALTERNATIVE:
                node.alternatives.append(target)
            else:
                node.explore = target
            inbound[target] += 1
            report.placed[slot.kind] += 1

    return inbound


def _top_up(
    state: GraphState,
    config: GraphConfig,
    inbound: dict[str, int],
    report: ExploreReport,
) -> None:
    floor = config.min_inbound
    sources = list(state.items)
    out_degree = {slug: state.links[slug].out_degree() for slug in sources}

    for target in [slug for slug in sources if inbound[slug] < floor]:
        need = floor - inbound[target]
        if need <= 0:
            continue
        target_profile = state.profiles[target]

        def donor_key(slug: str) -> tuple[int, int]:
            profile = state.profiles[slug]
            same = target_profile.category is not None and profile.category == target_profile.category
            return (0 if same else 1, out_degree[slug])

        donors = sorted(
            (s for s in sources if s != target and not state.links[s].links_to(target)),
            key=donor_key,
        )

        for donor in donors:
            if need <= 0 or inbound[target] >= config.hub_cap:
                break
            if not explore_link_allowed(state.profiles[donor], target_profile, config):
                continue

            node = state.links[donor]
            previous = node.explore
            if previous is not None:
                if inbound[previous] - 1 < floor:
                    continue
                inbound[previous] -= 1
                report.top_up_reassigned += 1
            else:
                out_degree[donor] += 1

            node.explore = target
            inbound[target] += 1
            report.top_up_links += 1
            need -= 1


def allocate_explore_slots(state: GraphState, config: GraphConfig) -> ExploreReport:
    """Place links until every node has ``min_inbound`` distinct sources.

    Args:
        state:  Build state after the rescue pass (mutated in place).
        config: Graph section of ``AppConfig``.

    Returns:
        ``ExploreReport``; ``remaining`` lists nodes the allocator could not
        satisfy (the invariant gate will reject the build).
    """
    report = ExploreReport()
    inbound = _allocate(state, config, report)
    _top_up(state, config, inbound, report)

    report.remaining = [slug for slug in state.items if inbound[slug] < config.min_inbound]
    logger.info(
        "Explore allocation finished: %d placed (%s), %d top-up (%d reassigned), %d still below %d",
        sum(report.placed.values()),
        ", ".join(f"{k} {v}" for k, v in report.placed.items()),
        report.top_up_links, report.top_up_reassigned,
        len(report.remaining), config.min_inbound,
    )
    if report.remaining:
        logger.warning(
            "%d nodes remain below min_inbound after explore allocation: %s",
            len(report.remaining), ", ".join(report.remaining[:10]),
        )
    return report
