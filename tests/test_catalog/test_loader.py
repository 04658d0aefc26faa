"""
Tests for site_linkgraph/catalog/loader.py.

What we test
------------
build_catalog_items():
  - Gone slugs are excluded case-insensitively.
  - Invalid slugs, duplicate slugs and unparseable records are skipped.
  - Natural order is preserved; brand and topics are derived.

load_catalog():
  - JSON array and {"items": [...]} object.
  - Parquet via pyarrow.
  - SQLite table read in rowid order.
  - Gone sitemap applied from config.
  - Unknown suffix → CatalogError; missing file → FileNotFoundError.
  - Malformed JSON, corrupt Parquet and a SQLite file without the table
    → CatalogError.
"""

from __future__ import annotations

import json
import sqlite3

import pyarrow as pa
import pyarrow.parquet as pq
import pytest

from site_linkgraph.catalog.loader import (
    CatalogError,
    build_catalog_items,
    detect_format,
    load_catalog,
)
from site_linkgraph.config import CatalogConfig


def _config(path, **overrides) -> CatalogConfig:
    return CatalogConfig(source_path=str(path), gone_sitemap="", **overrides)


class TestBuildCatalogItems:
    def test_preserves_order_and_derives_fields(self, small_catalog_records):
        items = build_catalog_items(small_catalog_records)
        assert [i.slug for i in items] == [r["slug"] for r in small_catalog_records]
        first = items[0]
        assert first.brand == "alpha desk"
        assert first.topics[0] == "daytrading"
        assert first.id == "1"
        assert first.updated_at is not None

    def test_gone_slugs_excluded(self, small_catalog_records):
        items = build_catalog_items(small_catalog_records, gone_slugs={"beacon-fx"})
        assert "beacon-fx" not in {i.slug for i in items}
        assert len(items) == len(small_catalog_records) - 1

    def test_gone_match_is_case_insensitive(self, small_catalog_records):
        records = [dict(small_catalog_records[0], slug="Alpha-Signals")]
        assert build_catalog_items(records, gone_slugs={"alpha-signals"}) == []

    def test_invalid_and_duplicate_slugs_skipped(self, small_catalog_records):
        records = [
            small_catalog_records[0],
            {"id": 99, "slug": "-bad", "name": "Bad"},
            {"id": 100, "slug": "", "name": "Empty"},
            dict(small_catalog_records[0], id=101, name="Shadow Copy"),
            small_catalog_records[1],
        ]
        items = build_catalog_items(records)
        assert [i.slug for i in items] == ["alpha-signals", "beacon-fx"]
        assert items[0].name == "Alpha Desk - Day Trading Signals"

    def test_record_failing_validation_skipped(self):
        records = [{"slug": "no-id", "name": "No Id"}, {"id": 1, "slug": "ok-item", "name": "Ok"}]
        assert [i.slug for i in build_catalog_items(records)] == ["ok-item"]

    def test_missing_rating_reads_as_zero(self):
        items = build_catalog_items([{"id": 1, "slug": "plain", "name": "Plain", "rating": None}])
        assert items[0].rating == 0.0


class TestLoadCatalog:
    def test_json_array(self, tmp_path, small_catalog_records):
        path = tmp_path / "whops.json"
        path.write_text(json.dumps(small_catalog_records), encoding="utf-8")
        items = load_catalog(_config(path))
        assert len(items) == 12

    def test_json_items_object(self, tmp_path, small_catalog_records):
        path = tmp_path / "whops.json"
        path.write_text(json.dumps({"items": small_catalog_records}), encoding="utf-8")
        assert len(load_catalog(_config(path))) == 12

    def test_json_wrong_shape(self, tmp_path):
        path = tmp_path / "whops.json"
        path.write_text(json.dumps({"whops": []}), encoding="utf-8")
        with pytest.raises(CatalogError):
            load_catalog(_config(path))

    def test_parquet(self, tmp_path, small_catalog_records):
        path = tmp_path / "whops.parquet"
        pq.write_table(pa.Table.from_pylist(small_catalog_records), path)
        items = load_catalog(_config(path))
        assert [i.slug for i in items] == [r["slug"] for r in small_catalog_records]

    def test_sqlite(self, tmp_path, small_catalog_records):
        path = tmp_path / "catalog.db"
        conn = sqlite3.connect(path)
        conn.execute(
            'CREATE TABLE "Whop" (id INTEGER, slug TEXT, name TEXT, description TEXT, '
            'category TEXT, price TEXT, rating REAL, "createdAt" TEXT, "updatedAt" TEXT)'
        )
        conn.executemany(
            'INSERT INTO "Whop" VALUES (:id, :slug, :name, :description, :category, '
            ':price, :rating, :createdAt, :updatedAt)',
            small_catalog_records,
        )
        conn.commit()
        conn.close()

        items = load_catalog(_config(path))
        assert [i.slug for i in items] == [r["slug"] for r in small_catalog_records]
        assert items[3].price == "Free"

    def test_gone_sitemap_applied(self, tmp_path, small_catalog_records):
        path = tmp_path / "whops.json"
        path.write_text(json.dumps(small_catalog_records), encoding="utf-8")
        gone = tmp_path / "gone.xml"
        gone.write_text(
            "<urlset><url><loc>https://example.com/whop/ember-crypto</loc></url></urlset>",
            encoding="utf-8",
        )
        config = CatalogConfig(source_path=str(path), gone_sitemap=str(gone))
        slugs = [i.slug for i in load_catalog(config)]
        assert "ember-crypto" not in slugs
        assert len(slugs) == 11

    def test_source_path_override(self, tmp_path, small_catalog_records):
        path = tmp_path / "other.json"
        path.write_text(json.dumps(small_catalog_records[:3]), encoding="utf-8")
        items = load_catalog(_config(tmp_path / "missing.json"), source_path=str(path))
        assert len(items) == 3

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_catalog(_config(tmp_path / "missing.json"))

    def test_unknown_suffix(self, tmp_path):
        with pytest.raises(CatalogError):
            detect_format(tmp_path / "catalog.csv")

    def test_declared_format_wins(self, tmp_path):
        assert detect_format(tmp_path / "catalog.data", "sqlite") == "sqlite"


class TestUnreadableCatalog:
    def test_malformed_json(self, tmp_path):
        path = tmp_path / "whops.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(CatalogError, match="not valid JSON"):
            load_catalog(_config(path))

    def test_corrupt_parquet(self, tmp_path):
        path = tmp_path / "whops.parquet"
        path.write_bytes(b"definitely not parquet")
        with pytest.raises(CatalogError, match="Parquet catalog"):
            load_catalog(_config(path))

    def test_sqlite_without_table(self, tmp_path):
        path = tmp_path / "catalog.db"
        conn = sqlite3.connect(path)
        conn.execute("CREATE TABLE other (id INTEGER)")
        conn.commit()
        conn.close()
        with pytest.raises(CatalogError, match="Whop"):
            load_catalog(_config(path))

    def test_file_that_is_not_a_database(self, tmp_path):
        path = tmp_path / "catalog.db"
        path.write_bytes(b"plain text, no sqlite header" * 10)
        with pytest.raises(CatalogError, match="SQLite catalog"):
            load_catalog(_config(path))
