"""
Diversity-aware selector (passes 2-4 of the graph build).

Turns candidate pools into per-page link lists:

1. ``seed_popularity()``        — inbound estimate from each node's top
                                  recommendation candidates.
2. ``select_recommendations()`` — greedy re-ranked picks under the hub cap
                                  and the diversity caps, plus at most one
                                  deterministic exploration pick.
3. ``rotate_recommendations()`` — rotate full lists by a per-slug offset so
                                  neighbouring pages do not render identical
                                  sequences.
4. ``select_alternatives()``    — usage-balanced alternatives that never
                                  repeat a recommendation.

Re-rank formula (recommendations)
---------------------------------
    score − popularity_weight × log(1 + estimate)
          − same_category_penalty   (same category)
          − same_price_band_penalty (same price band)
          − same_brand_penalty      (same brand)
          + 0.05                    (target rating >= 4.5)
          + 0.03                    (target updated within freshness window)

The popularity estimate is incremented as soon as a target is accepted, so
nodes processed later see the load created by earlier ones.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime
from typing import Optional, Sequence

from site_linkgraph.config import GraphConfig
from site_linkgraph.graph.diversity import DiversityCounter
from site_linkgraph.models.graph import CandidatePool, Edge, GraphState, NodeProfile
from site_linkgraph.utils.hashing import fnv1a, seeded_rng
from site_linkgraph.utils.time_utils import is_recent

logger = logging.getLogger(__name__)

HIGH_RATING = 4.5
HIGH_RATING_BONUS = 0.05
FRESHNESS_BONUS = 0.03

ALT_SAME_CATEGORY_PENALTY = 0.05
ALT_SAME_BAND_PENALTY = 0.05
ALT_CROSS_CATEGORY_COST = 0.2
ALT_USAGE_COST = 0.05
ALT_JITTER_SCALE = 0.01

EXPLORATION_SALT_MOD = 997
EXPLORATION_STRIDE = 7


def popularity_penalty(estimate: int, config: GraphConfig) -> float:
    return config.popularity_weight * math.log(1 + estimate)


def seed_popularity(state: GraphState, config: GraphConfig) -> dict[str, int]:
    """Seed ``state.popularity`` from the top recommendation candidates.

    Every appearance of a target in some node's first
    ``popularity_prior_depth`` recommendation candidates counts once.
    """
    popularity = {slug: 0 for slug in state.items}
    for pool in state.pools.values():
        for edge in pool.recommendations[: config.popularity_prior_depth]:
            popularity[edge.target] = popularity.get(edge.target, 0) + 1
    state.popularity = popularity
    return popularity


# ── Recommendations ───────────────────────────────────────────────────────────


def _same_category(a: NodeProfile, b: NodeProfile) -> bool:
    return a.category is not None and a.category == b.category


def _same_brand(a: NodeProfile, b: NodeProfile) -> bool:
    return a.brand is not None and a.brand == b.brand


def rescore_recommendations(
    source: NodeProfile,
    candidates: Sequence[Edge],
    state: GraphState,
    config: GraphConfig,
    reference_time: Optional[datetime],
) -> list[Edge]:
    """Apply popularity, crowding and quality adjustments; sort descending."""
    rescored: list[Edge] = []
    for edge in candidates:
        if edge.target == source.slug:
            continue
        target = state.profiles.get(edge.target)
        if target is None:
            continue

        score = edge.score
        score -= popularity_penalty(state.popularity.get(edge.target, 0), config)
        if _same_category(source, target):
            score -= config.same_category_penalty
        if source.price_band == target.price_band:
            score -= config.same_price_band_penalty
        if _same_brand(source, target):
            score -= config.same_brand_penalty

        if target.rating >= HIGH_RATING:
            score += HIGH_RATING_BONUS
        if is_recent(target.updated_at, reference_time, config.freshness_window_days):
            score += FRESHNESS_BONUS

        rescored.append(Edge(target=edge.target, score=score))

    # sorted() is stable: equal scores keep candidate order
    return sorted(rescored, key=lambda e: -e.score)


def _exploration_pick(
    slug: str,
    rescored: Sequence[Edge],
    used: set[str],
    counter: DiversityCounter,
    picked: dict[str, int],
    state: GraphState,
    config: GraphConfig,
) -> Optional[str]:
    """First strided candidate not already picked whose *actual* recommendation
    inbound (``picked``) is below a quarter of the hub cap.

    The greedy pass skips candidates whose popularity estimate, inflated by
    the prior, reached the hub cap; this pick can still reach the ones that
    are in fact lightly linked.
    """
    salt = fnv1a(slug) % EXPLORATION_SALT_MOD
    ceiling = config.hub_cap / 4
    for i, edge in enumerate(rescored):
        if edge.target in used:
            continue
        if picked.get(edge.target, 0) >= ceiling:
            continue
        if (i + salt) % EXPLORATION_STRIDE != 0:
            continue
        if not counter.allows(state.profiles.get(edge.target)):
            continue
        return edge.target
    return None


def select_recommendations(
    state: GraphState,
    config: GraphConfig,
    reference_time: Optional[datetime] = None,
) -> None:
    """Pick up to ``recs_per_page`` recommendations for every node.

    Args:
        state:          Build state with pools and a seeded popularity estimate.
        config:         Graph section of ``AppConfig``.
        reference_time: "Now" for the freshness bonus; defaults to
            ``state.reference_time``.
    """
    ref = reference_time or state.reference_time
    n_exploration = 0
    picked: dict[str, int] = {}

    for slug in state.items:
        source = state.profiles[slug]
        pool = state.pools.get(slug) or CandidatePool()
        rescored = rescore_recommendations(source, pool.recommendations, state, config, ref)

        picks: list[str] = []
        used: set[str] = set()
        counter = DiversityCounter(config)

        for edge in rescored:
            if len(picks) >= config.recs_per_page:
                break
            if edge.target in used:
                continue
            if state.popularity.get(edge.target, 0) >= config.hub_cap:
                continue
            target = state.profiles.get(edge.target)
            if not counter.allows(target):
                continue

            picks.append(edge.target)
            used.add(edge.target)
            counter.add(target)
            state.popularity[edge.target] = state.popularity.get(edge.target, 0) + 1
            picked[edge.target] = picked.get(edge.target, 0) + 1

        if len(picks) < config.recs_per_page:
            extra = _exploration_pick(slug, rescored, used, counter, picked, state, config)
            if extra is not None:
                picks.append(extra)
                state.popularity[extra] = state.popularity.get(extra, 0) + 1
                picked[extra] = picked.get(extra, 0) + 1
                n_exploration += 1

        state.links[slug].recommendations = picks

    inbound = state.inbound_counts(include_explore=False)
    logger.info(
        "Recommendations selected: %d links, %d exploration picks, max inbound %d",
        sum(len(state.links[s].recommendations) for s in state.items),
        n_exploration,
        max(inbound.values(), default=0),
    )


def rotate_recommendations(state: GraphState, config: GraphConfig) -> int:
    """Rotate every full recommendation list left by ``fnv1a(slug) % len``.

    Returns:
        Number of lists whose order changed.
    """
    rotated = 0
    for slug, node in state.links.items():
        recs = node.recommendations
        if not recs or len(recs) < config.recs_per_page:
            continue
        shift = fnv1a(slug) % len(recs)
        if shift:
            node.recommendations = recs[shift:] + recs[:shift]
            rotated += 1
    logger.debug("Rotated %d recommendation lists", rotated)
    return rotated


# ── Alternatives ──────────────────────────────────────────────────────────────


def rescore_alternatives(
    source: NodeProfile,
    candidates: Sequence[Edge],
    exclude: set[str],
    state: GraphState,
    config: GraphConfig,
) -> list[Edge]:
    rescored: list[Edge] = []
    for edge in candidates:
        if edge.target == source.slug or edge.target in exclude:
            continue
        target = state.profiles.get(edge.target)
        if target is None:
            continue
        score = edge.score - popularity_penalty(state.popularity.get(edge.target, 0), config)
        if _same_category(source, target):
            score -= ALT_SAME_CATEGORY_PENALTY
        if source.price_band == target.price_band:
            score -= ALT_SAME_BAND_PENALTY
        rescored.append(Edge(target=edge.target, score=score))
    return sorted(rescored, key=lambda e: -e.score)


def select_alternatives(state: GraphState, config: GraphConfig) -> None:
    """Pick up to ``alts_per_page`` alternatives for every node.

    The first ``alt_pool_width`` re-scored candidates are re-ordered by a
    cost that prefers same-category targets, penalises targets already used
    as alternatives elsewhere, and breaks ties with a per-slug seeded jitter.
    """
    inbound = state.inbound_counts(include_explore=False)
    usage = state.alt_usage
    keep = config.alts_per_page * 2

    for slug in state.items:
        source = state.profiles[slug]
        node = state.links[slug]
        rec_set = set(node.recommendations)
        pool = state.pools.get(slug) or CandidatePool()

        rescored = rescore_alternatives(source, pool.alternatives, rec_set, state, config)
        rng = seeded_rng(f"alts-{slug}")

        costed: list[tuple[float, str]] = []
        for edge in rescored[: config.alt_pool_width]:
            target = state.profiles[edge.target]
            cost = (
                (0.0 if _same_category(source, target) else ALT_CROSS_CATEGORY_COST)
                + usage.get(edge.target, 0) * ALT_USAGE_COST
                + rng.random() * ALT_JITTER_SCALE
            )
            costed.append((cost, edge.target))
        costed.sort(key=lambda row: row[0])

        picks = [
            target
            for _, target in costed[:keep]
            if target != slug
            and target not in rec_set
            and inbound.get(target, 0) < config.hub_cap
        ][: config.alts_per_page]

        for target in picks:
            usage[target] = usage.get(target, 0) + 1
            inbound[target] = inbound.get(target, 0) + 1

        node.alternatives = picks

    logger.info(
        "Alternatives selected: %d links, max inbound %d",
        sum(len(state.links[s].alternatives) for s in state.items),
        max(inbound.values(), default=0),
    )
