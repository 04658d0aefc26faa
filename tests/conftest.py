"""
Shared pytest fixtures for the site-linkgraph test suite.

Provides:
  - ``graph_config``: default ``GraphConfig``.
  - ``item_factory``: builds ``CatalogItem`` objects with derived brand/topics.
  - ``small_catalog``: 12 hand-written items (4 categories, shared topics)
    that build a gate-passing graph.
  - ``synthetic_catalog``: 100 seeded pseudo-random items.
  - ``write_config``: writes a TOML config into ``tmp_path`` for pipeline and
    CLI tests (no log file, run log under ``tmp_path``).
"""

from __future__ import annotations

import json
import random
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Optional

import pytest

from site_linkgraph.catalog.attributes import extract_brand
from site_linkgraph.catalog.topics import extract_topics
from site_linkgraph.config import GraphConfig
from site_linkgraph.models.item import CatalogItem

BASE_TIME = datetime(2025, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


def make_item(
    slug: str,
    name: Optional[str] = None,
    category: Optional[str] = "Trading",
    price: Optional[str] = "$49",
    rating: Optional[float] = 4.0,
    description: str = "",
    updated_at: Optional[datetime] = None,
) -> CatalogItem:
    """``CatalogItem`` with brand and topics derived the way the loader does."""
    name = name if name is not None else slug.replace("-", " ").title()
    return CatalogItem(
        id=slug,
        slug=slug,
        name=name,
        description=description,
        category=category,
        brand=extract_brand(name),
        price=price,
        rating=rating,
        topics=tuple(extract_topics(name, description)),
        updated_at=updated_at,
    )


# ── Config ────────────────────────────────────────────────────────────────────

@pytest.fixture
def graph_config() -> GraphConfig:
    return GraphConfig()


@pytest.fixture
def write_config(tmp_path: Path) -> Callable[..., Path]:
    """Return a helper writing a minimal TOML config under ``tmp_path``."""

    def _write(
        catalog_path: str | Path = "",
        output_dir: str | Path = "",
        graph: Optional[dict[str, Any]] = None,
        gone_sitemap: str = "",
    ) -> Path:
        lines = [
            "[catalog]",
            f"source_path = {json.dumps(str(catalog_path))}",
            f"gone_sitemap = {json.dumps(gone_sitemap)}",
            "",
            "[output]",
            f"output_dir = {json.dumps(str(output_dir or tmp_path / 'graph'))}",
            f"run_log = {json.dumps(str(tmp_path / 'runs.jsonl'))}",
            "",
            "[logging]",
            'level = "WARNING"',
            'log_file = ""',
            "",
            "[graph]",
        ]
        for key, value in (graph or {}).items():
            lines.append(f"{key} = {json.dumps(value)}")
        path = tmp_path / "config" / "test.toml"
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        return path

    return _write


# ── Catalog factories ─────────────────────────────────────────────────────────

@pytest.fixture
def item_factory() -> Callable[..., CatalogItem]:
    return make_item


_SMALL_CATALOG = [
    # slug, name, category, price, rating
    ("alpha-signals", "Alpha Desk - Day Trading Signals", "Trading", "$19", 4.6),
    ("beacon-fx", "Beacon FX - Forex Trading Signals", "Trading", "$99", 4.1),
    ("cobalt-charts", "Cobalt Charts - Price Action Trading Signals", "Trading", "$249", 3.9),
    ("delta-scalps", "Delta Room - Scalping Trading Signals", "Trading", "Free", 4.8),
    ("ember-crypto", "Ember Crypto - Bitcoin Trading Signals", "Crypto", "$29", 4.3),
    ("flux-alts", "Flux Labs - Altcoin Trading Signals", "Crypto", "$149", 4.0),
    ("granite-defi", "Granite Guild - DeFi Trading Signals", "Crypto", "$399", 4.7),
    ("harbor-hodl", "Harbor Group - Ethereum Trading Signals", "Crypto", None, 3.5),
    ("ion-stocks", "Ion Capital - Stock Trading Signals", "Stocks", "$39", 4.2),
    ("jade-options", "Jade Street - Options Trading Signals", "Stocks", "$179", 4.9),
    ("kite-dividends", "Kite Wealth - Dividend Trading Signals", "Stocks", "$599", 3.8),
    ("lumen-penny", "Lumen Picks - Penny Stocks Trading Signals", "Stocks", "$9", 4.4),
]


@pytest.fixture
def small_catalog() -> list[CatalogItem]:
    """Twelve items sharing the ``daytrading`` topic across three categories."""
    return [
        make_item(
            slug,
            name=name,
            category=category,
            price=price,
            rating=rating,
            updated_at=BASE_TIME - timedelta(days=i * 7),
        )
        for i, (slug, name, category, price, rating) in enumerate(_SMALL_CATALOG)
    ]


@pytest.fixture
def small_catalog_records() -> list[dict[str, Any]]:
    """``small_catalog`` as raw catalog-export records (camelCase timestamps)."""
    return [
        {
            "id": i + 1,
            "slug": slug,
            "name": name,
            "description": None,
            "category": category,
            "price": price,
            "rating": rating,
            "createdAt": "2024-06-01T00:00:00Z",
            "updatedAt": (BASE_TIME - timedelta(days=i * 7)).isoformat(),
        }
        for i, (slug, name, category, price, rating) in enumerate(_SMALL_CATALOG)
    ]


_CATEGORIES = ["Trading", "E-commerce", "Sports Betting", "Fitness", "Business", "Education", None]
_PHRASES = [
    "day trading signals", "bitcoin and ethereum alerts", "shopify dropshipping",
    "sports betting picks", "real estate investing", "instagram growth",
    "startup coaching", "gym workout plans", "masterclass course",
    "automation software", "options trading", "ai coding help",
]
_PRICES = ["Free", "$19", "$49/month", "$99", "$199", "$499", "From $1,299", None, "Contact us"]
_RATINGS = [None, 3.5, 4.2, 4.6, 4.9, 5.0]


def build_synthetic_catalog(n: int = 100, seed: int = 7) -> list[CatalogItem]:
    rng = random.Random(seed)
    items: list[CatalogItem] = []
    for i in range(n):
        phrases = rng.sample(_PHRASES, k=rng.choice([0, 1, 1, 2, 2, 3]))
        brand = f"Studio {i % 70}"
        items.append(make_item(
            f"item-{i:03d}",
            name=f"{brand} - {phrases[0].title() if phrases else 'Community'}",
            category=rng.choice(_CATEGORIES),
            price=rng.choice(_PRICES),
            rating=rng.choice(_RATINGS),
            description=", ".join(phrases),
            updated_at=BASE_TIME - timedelta(days=rng.randint(0, 120)),
        ))
    return items


@pytest.fixture
def synthetic_catalog() -> list[CatalogItem]:
    return build_synthetic_catalog()
