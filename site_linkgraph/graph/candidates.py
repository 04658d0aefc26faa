"""
Candidate pool builder (pass 1 of the graph build).

For every node, scores the rest of the catalog twice and keeps the best
``candidate_pool_size`` matches of each kind.  The pools are read-only for
the rest of the build.

Recommendation score (taxonomic / topical)
------------------------------------------
    +100            same category (case-insensitive, both present)
    +80             same primary topic (only when topics overlap)
    +25 per topic   shared topics
    +10             identical raw price strings
    +2 × rating     candidate rating above 4.0

    kept when score >= recommendation_threshold

Alternative score (similarity + price)
--------------------------------------
    0.8 × topic_jaccard + 0.2 × price_affinity

    kept when score > alternatives_threshold

Pruning
-------
Scoring every pair is O(n²).  Instead each source only scores candidates
that can possibly clear the threshold:

  recommendations: same-category peers, shared-topic peers, and the few
                   "loose" items whose price + rating bonus alone can reach
                   the threshold.
  alternatives:    shared-topic peers, empty-topic peers (when the source has
                   no topics), free items (when the source is free) and a
                   price-ratio window found by bisection over sorted prices.
                   When a neutral price affinity alone clears the threshold
                   the pruning is unsound and every item is scored.

Pruned candidates are scored with exactly the same functions as a full scan
and sorted by (score desc, catalog index), so the resulting pools are
identical to a brute-force pass.
"""

from __future__ import annotations

import bisect
import logging
from collections import defaultdict
from typing import Callable, Iterable, Sequence

from site_linkgraph.catalog.attributes import is_valid_slug
from site_linkgraph.catalog.price import NEUTRAL_AFFINITY, affinity_from_cents
from site_linkgraph.catalog.topics import topic_jaccard
from site_linkgraph.config import GraphConfig
from site_linkgraph.models.graph import CandidatePool, Edge, NodeProfile

logger = logging.getLogger(__name__)

CATEGORY_MATCH_SCORE = 100
PRIMARY_TOPIC_SCORE = 80
SHARED_TOPIC_SCORE = 25
SAME_PRICE_SCORE = 10
QUALITY_RATING_FLOOR = 4.0
QUALITY_RATING_MULTIPLIER = 2

TOPIC_WEIGHT = 0.8
PRICE_WEIGHT = 0.2

# Relative widening of the price window; absorbs float rounding at the edges.
_WINDOW_SLACK = 1e-9


# ── Scoring ───────────────────────────────────────────────────────────────────


def score_recommendation(source: NodeProfile, candidate: NodeProfile) -> float:
    """Taxonomic/topical affinity of ``candidate`` for ``source``."""
    score = 0.0

    if source.category is not None and source.category == candidate.category:
        score += CATEGORY_MATCH_SCORE

    if source.topics and candidate.topics:
        common = sum(1 for topic in source.topics if topic in candidate.topic_set)
        if common:
            if source.topics[0] == candidate.topics[0]:
                score += PRIMARY_TOPIC_SCORE
            score += common * SHARED_TOPIC_SCORE

    if source.price_raw and source.price_raw == candidate.price_raw:
        score += SAME_PRICE_SCORE

    if candidate.rating > QUALITY_RATING_FLOOR:
        score += candidate.rating * QUALITY_RATING_MULTIPLIER

    return score


def score_alternative(source: NodeProfile, candidate: NodeProfile) -> float:
    """Topic similarity blended with price affinity, in [0, 1]."""
    topic_similarity = topic_jaccard(source.topic_set, candidate.topic_set)
    price_similarity = affinity_from_cents(source.price_cents, candidate.price_cents)
    return topic_similarity * TOPIC_WEIGHT + price_similarity * PRICE_WEIGHT


def _rank(
    source: NodeProfile,
    candidates: Iterable[NodeProfile],
    scorer: Callable[[NodeProfile, NodeProfile], float],
    accept: Callable[[float], bool],
    limit: int,
) -> tuple[Edge, ...]:
    scored: list[tuple[float, int, str]] = []
    for candidate in candidates:
        if candidate.slug == source.slug:
            continue
        score = scorer(source, candidate)
        if accept(score) and is_valid_slug(candidate.slug):
            scored.append((score, candidate.index, candidate.slug))

    scored.sort(key=lambda row: (-row[0], row[1]))
    return tuple(Edge(target=slug, score=score) for score, _, slug in scored[:limit])


def rank_recommendations(
    source: NodeProfile,
    candidates: Iterable[NodeProfile],
    config: GraphConfig,
) -> tuple[Edge, ...]:
    """Score, filter and order recommendation candidates for ``source``.

    Passing the whole catalog as ``candidates`` gives the brute-force pool.
    """
    threshold = config.recommendation_threshold
    return _rank(
        source, candidates, score_recommendation,
        lambda score: score >= threshold, config.candidate_pool_size,
    )


def rank_alternatives(
    source: NodeProfile,
    candidates: Iterable[NodeProfile],
    config: GraphConfig,
) -> tuple[Edge, ...]:
    """Score, filter and order alternative candidates for ``source``."""
    threshold = config.alternatives_threshold
    return _rank(
        source, candidates, score_alternative,
        lambda score: score > threshold, config.candidate_pool_size,
    )


# ── Pruning index ─────────────────────────────────────────────────────────────


def _loose_upper_bound(candidate: NodeProfile) -> float:
    """Best recommendation score ``candidate`` can reach without category/topic overlap."""
    bound = 0.0
    if candidate.price_raw:
        bound += SAME_PRICE_SCORE
    if candidate.rating > QUALITY_RATING_FLOOR:
        bound += candidate.rating * QUALITY_RATING_MULTIPLIER
    return bound


class CandidateIndex:
    """Inverted indices used to prune the candidate scan.

    Every method returns a superset of the candidates that can clear the
    corresponding threshold; exact scoring happens in the ``rank_*`` helpers.
    """

    def __init__(self, profiles: Sequence[NodeProfile], config: GraphConfig) -> None:
        self.profiles = list(profiles)
        self.by_category: dict[str, list[NodeProfile]] = defaultdict(list)
        self.by_topic: dict[str, list[NodeProfile]] = defaultdict(list)
        self.empty_topic: list[NodeProfile] = []
        self.free: list[NodeProfile] = []
        self.loose: list[NodeProfile] = []

        priced: list[NodeProfile] = []
        for profile in self.profiles:
            if profile.category is not None:
                self.by_category[profile.category].append(profile)
            for topic in profile.topic_set:
                self.by_topic[topic].append(profile)
            if not profile.topics:
                self.empty_topic.append(profile)
            if profile.price_cents == 0:
                self.free.append(profile)
            elif profile.price_cents is not None:
                priced.append(profile)
            if _loose_upper_bound(profile) >= config.recommendation_threshold:
                self.loose.append(profile)

        priced.sort(key=lambda p: (p.price_cents, p.index))
        self._priced = priced
        self._priced_cents = [p.price_cents for p in priced]

        threshold = config.alternatives_threshold
        self.alternatives_full_scan = PRICE_WEIGHT * NEUTRAL_AFFINITY > threshold
        self._ratio_floor = threshold / PRICE_WEIGHT

    def recommendation_candidates(self, source: NodeProfile) -> list[NodeProfile]:
        pool: dict[int, NodeProfile] = {}
        if source.category is not None:
            pool.update((p.index, p) for p in self.by_category.get(source.category, ()))
        for topic in source.topic_set:
            pool.update((p.index, p) for p in self.by_topic.get(topic, ()))
        pool.update((p.index, p) for p in self.loose)
        return list(pool.values())

    def alternative_candidates(self, source: NodeProfile) -> list[NodeProfile]:
        if self.alternatives_full_scan:
            return self.profiles

        pool: dict[int, NodeProfile] = {}
        for topic in source.topic_set:
            pool.update((p.index, p) for p in self.by_topic.get(topic, ()))
        if not source.topics:
            pool.update((p.index, p) for p in self.empty_topic)

        if source.price_cents == 0:
            pool.update((p.index, p) for p in self.free)
        elif source.price_cents is not None:
            pool.update((p.index, p) for p in self._price_window(source.price_cents))
        return list(pool.values())

    def _price_window(self, cents: int) -> list[NodeProfile]:
        """Priced items whose min/max ratio with ``cents`` can clear the floor."""
        low = cents * self._ratio_floor * (1 - _WINDOW_SLACK)
        high = cents / self._ratio_floor * (1 + _WINDOW_SLACK)
        lo_idx = bisect.bisect_left(self._priced_cents, low)
        hi_idx = bisect.bisect_right(self._priced_cents, high)
        return self._priced[lo_idx:hi_idx]


# ── Entry point ───────────────────────────────────────────────────────────────


def build_candidate_pools(
    profiles: Iterable[NodeProfile],
    config: GraphConfig,
) -> dict[str, CandidatePool]:
    """Build recommendation and alternative pools for every node.

    Args:
        profiles: Node profiles in catalog order (``profile.index`` is the
            catalog position and breaks score ties).
        config:   Graph section of ``AppConfig``.

    Returns:
        slug → ``CandidatePool``, in catalog order.
    """
    ordered = list(profiles)
    index = CandidateIndex(ordered, config)
    if index.alternatives_full_scan:
        logger.info(
            "alternatives_threshold %.3f is below the neutral price score; "
            "scanning the full catalog for alternatives.",
            config.alternatives_threshold,
        )

    pools: dict[str, CandidatePool] = {}
    for i, source in enumerate(ordered):
        if i and i % 1000 == 0:
            logger.debug("Candidate pools: %d/%d", i, len(ordered))
        pools[source.slug] = CandidatePool(
            recommendations=rank_recommendations(
                source, index.recommendation_candidates(source), config
            ),
            alternatives=rank_alternatives(
                source, index.alternative_candidates(source), config
            ),
        )

    n_recs = sum(len(p.recommendations) for p in pools.values())
    n_alts = sum(len(p.alternatives) for p in pools.values())
    logger.info(
        "Candidate pools built for %d nodes (%d recommendation / %d alternative candidates)",
        len(pools), n_recs, n_alts,
    )
    return pools
