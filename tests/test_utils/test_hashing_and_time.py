"""
Tests for site_linkgraph/utils/hashing.py and utils/time_utils.py.

What we test
------------
fnv1a():      published 32-bit FNV-1a vectors; one step per UTF-16 code unit.
pair_hash():  direction matters.
seeded_rng(): same seed → same stream.
ensure_utc / latest_timestamp / is_recent: naive handling, nulls, window edge.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from site_linkgraph.utils.hashing import FNV_OFFSET_BASIS, FNV_PRIME, fnv1a, pair_hash, seeded_rng
from site_linkgraph.utils.time_utils import ensure_utc, is_recent, latest_timestamp

REF = datetime(2025, 3, 1, tzinfo=timezone.utc)


class TestFnv1a:
    @pytest.mark.parametrize("key,expected", [
        ("", 0x811C9DC5),
        ("a", 0xE40C292C),
        ("foobar", 0xBF9CF968),
    ])
    def test_known_vectors(self, key, expected):
        assert fnv1a(key) == expected

    def test_non_ascii_hashes_one_code_unit(self):
        expected = ((FNV_OFFSET_BASIS ^ 0xE9) * FNV_PRIME) & 0xFFFFFFFF
        assert fnv1a("é") == expected

    def test_pair_hash_is_directed(self):
        assert pair_hash("alpha", "beta") != pair_hash("beta", "alpha")
        assert pair_hash("alpha", "beta") == fnv1a("alpha→beta")

    def test_seeded_rng_reproducible(self):
        first = [seeded_rng("alpha-signals").random() for _ in range(3)]
        second = [seeded_rng("alpha-signals").random() for _ in range(3)]
        assert first == second
        assert seeded_rng("alpha-signals").random() != seeded_rng("beacon-fx").random()


class TestTimeUtils:
    def test_ensure_utc(self):
        assert ensure_utc(datetime(2025, 3, 1)) == REF
        plus_two = datetime(2025, 3, 1, 2, tzinfo=timezone(timedelta(hours=2)))
        assert ensure_utc(plus_two) == REF

    def test_latest_timestamp(self):
        assert latest_timestamp([None, REF - timedelta(days=1), REF]) == REF
        assert latest_timestamp([None, None]) is None

    def test_is_recent(self):
        assert is_recent(REF - timedelta(days=44), REF, 45)
        assert not is_recent(REF - timedelta(days=45), REF, 45)
        assert not is_recent(None, REF, 45)
        assert not is_recent(REF, None, 45)
