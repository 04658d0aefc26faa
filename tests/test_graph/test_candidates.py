"""
Tests for site_linkgraph/graph/candidates.py.

What we test
------------
score_recommendation():
  - Worked example: category + primary topic + shared topic + price + rating.
  - Primary-topic bonus only when the primary topics match.
  - Missing categories never match each other.
  - Rating bonus only strictly above 4.0.

score_alternative():  topic Jaccard blended with price affinity.

rank_recommendations() / rank_alternatives():
  - Threshold filter (>= for recommendations, > for alternatives).
  - Sorted by score descending, ties by catalog order; self excluded.
  - Truncated to candidate_pool_size.

build_candidate_pools():
  - Pruned pools are identical to a brute-force scan over every item, for
    the default thresholds and for loose / strict variants.
"""

from __future__ import annotations

import pytest

from site_linkgraph.config import GraphConfig
from site_linkgraph.graph.candidates import (
    CandidateIndex,
    build_candidate_pools,
    rank_alternatives,
    rank_recommendations,
    score_alternative,
    score_recommendation,
)
from site_linkgraph.models.graph import Edge, GraphState

from conftest import make_item


def _profiles(*items):
    state = GraphState.from_items(items)
    return [state.profiles[slug] for slug in state.items]


# ── Scoring ───────────────────────────────────────────────────────────────────

class TestScoreRecommendation:
    def test_worked_example(self):
        alpha, beta = _profiles(
            make_item("alpha", "Alpha - Day trading signals", category="Trading", price="$49"),
            make_item("beta", "Beta - Forex signals", category="trading", price="$49", rating=4.5),
        )
        # 100 category + 80 primary + 25 shared + 10 price + 2 * 4.5 rating
        assert score_recommendation(alpha, beta) == pytest.approx(224.0)

    def test_shared_topic_without_primary_match(self):
        src, cand = _profiles(
            make_item("src", "Bitcoin Masterclass", category=None, price=None),
            make_item("cand", "Masterclass Course", category=None, price=None),
        )
        assert src.primary_topic == "cryptotrading"
        assert cand.primary_topic == "education"
        assert score_recommendation(src, cand) == pytest.approx(25.0)

    def test_missing_categories_do_not_match(self):
        a, b = _profiles(
            make_item("plain-a", "Plain", category=None, price=None),
            make_item("plain-b", "Plain", category=None, price=None),
        )
        assert score_recommendation(a, b) == 0.0

    def test_rating_bonus_strictly_above_floor(self):
        src, at_floor, above = _profiles(
            make_item("src", "Plain", category=None, price=None),
            make_item("floor", "Plain", category=None, price=None, rating=4.0),
            make_item("above", "Plain", category=None, price=None, rating=4.2),
        )
        assert score_recommendation(src, at_floor) == 0.0
        assert score_recommendation(src, above) == pytest.approx(8.4)


class TestScoreAlternative:
    def test_identical_topics_and_price(self):
        alpha, beta = _profiles(
            make_item("alpha", "Alpha - Day trading signals", price="$49"),
            make_item("beta", "Beta - Forex signals", price="$49"),
        )
        assert score_alternative(alpha, beta) == pytest.approx(1.0)

    def test_no_topics_and_unknown_prices(self):
        a, b = _profiles(
            make_item("plain-a", "Plain", price=None),
            make_item("plain-b", "Plain", price=None),
        )
        # empty vs empty topics → 1.0; unparseable prices → neutral 0.5
        assert score_alternative(a, b) == pytest.approx(0.8 + 0.1)

    def test_free_vs_paid_disjoint_topics(self):
        a, b = _profiles(
            make_item("gym", "Gym plans", price="Free"),
            make_item("poker", "Poker room", price="$20"),
        )
        assert score_alternative(a, b) == 0.0


# ── Ranking ───────────────────────────────────────────────────────────────────

class TestRanking:
    @pytest.fixture
    def profiles(self):
        return _profiles(
            make_item("src", "Source - Day trading signals", category="Trading", price="$49"),
            make_item("same-cat", "Other Co - Poker room", category="Trading", price="$5"),
            make_item("same-topic", "Third Co - Forex desk", category="Crypto", price="$7"),
            make_item("tie-topic", "Fourth Co - Scalping desk", category="Crypto", price="$9"),
            make_item("unrelated", "Fifth Co - Gym plans", category="Fitness", price="$3"),
        )

    def test_threshold_order_and_ties(self, profiles, graph_config):
        src = profiles[0]
        edges = rank_recommendations(src, profiles, graph_config)
        assert [e.target for e in edges] == ["same-topic", "tie-topic", "same-cat"]
        assert [e.score for e in edges] == [105.0, 105.0, 100.0]

    def test_self_never_ranked(self, profiles, graph_config):
        src = profiles[0]
        assert all(e.target != "src" for e in rank_recommendations(src, profiles, graph_config))
        assert all(e.target != "src" for e in rank_alternatives(src, profiles, graph_config))

    def test_pool_size_limit(self, profiles):
        config = GraphConfig(candidate_pool_size=1)
        edges = rank_recommendations(profiles[0], profiles, config)
        assert edges == (Edge(target="same-topic", score=105.0),)

    def test_alternative_threshold_is_strict(self, profiles):
        src = profiles[0]
        unrelated = profiles[4]
        score = score_alternative(src, unrelated)
        config = GraphConfig(alternatives_threshold=score)
        assert "unrelated" not in [e.target for e in rank_alternatives(src, profiles, config)]


# ── Pruned pools == brute force ───────────────────────────────────────────────

def _brute_force(profiles, config):
    return {
        p.slug: (
            rank_recommendations(p, profiles, config),
            rank_alternatives(p, profiles, config),
        )
        for p in profiles
    }


class TestBuildCandidatePools:
    @pytest.mark.parametrize(
        "overrides",
        [
            {},
            {"alternatives_threshold": 0.05},
            {"alternatives_threshold": 0.15},
            {"alternatives_threshold": 0.3, "recommendation_threshold": 10.0},
            {"candidate_pool_size": 5},
        ],
    )
    def test_matches_brute_force(self, synthetic_catalog, overrides):
        config = GraphConfig(**overrides)
        profiles = _profiles(*synthetic_catalog)

        pools = build_candidate_pools(profiles, config)
        expected = _brute_force(profiles, config)

        assert list(pools) == [p.slug for p in profiles]
        for slug, (recs, alts) in expected.items():
            assert pools[slug].recommendations == recs, slug
            assert pools[slug].alternatives == alts, slug

    def test_full_scan_flag(self, synthetic_catalog):
        profiles = _profiles(*synthetic_catalog)
        # 0.2 * neutral 0.5 = 0.1 clears any threshold below it
        assert CandidateIndex(profiles, GraphConfig(alternatives_threshold=0.05)).alternatives_full_scan
        assert not CandidateIndex(profiles, GraphConfig()).alternatives_full_scan

    def test_every_pool_edge_is_valid(self, small_catalog, graph_config):
        profiles = _profiles(*small_catalog)
        pools = build_candidate_pools(profiles, graph_config)
        slugs = {p.slug for p in profiles}
        for slug, pool in pools.items():
            targets = [e.target for e in pool.recommendations]
            assert slug not in targets
            assert set(targets) <= slugs
            assert len(targets) == len(set(targets))
            scores = [e.score for e in pool.recommendations]
            assert scores == sorted(scores, reverse=True)
