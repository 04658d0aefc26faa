"""
Catalog snapshot loader.

Reads item records once per build and turns them into ``CatalogItem``
objects ready for the graph phases.

Supported sources
-----------------
  json    : a JSON array of records, or an object with an ``"items"`` array.
  parquet : any Parquet file with one row per item (read with pyarrow).
  sqlite  : a table (default ``"Whop"``) in a catalog database export,
            read in ``rowid`` order.

Record handling (in order)
--------------------------
1. Slugs listed in the gone sitemap are excluded (case-insensitive).
2. Records with an invalid slug are dropped (logged).
3. Later duplicates of an already-seen slug are dropped (logged).
4. ``brand`` is derived from ``name``; ``topics`` from ``name`` + ``description``.

The returned list keeps the source's natural order, which is part of the
build's determinism contract.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from pathlib import Path
from typing import Any, Iterable, Optional

from pydantic import ValidationError

from site_linkgraph.catalog.attributes import extract_brand, is_valid_slug
from site_linkgraph.catalog.gone import load_gone_slugs
from site_linkgraph.catalog.topics import extract_topics
from site_linkgraph.config import CatalogConfig
from site_linkgraph.models.item import CatalogItem

logger = logging.getLogger(__name__)

_SUFFIX_FORMATS: dict[str, str] = {
    ".json": "json",
    ".parquet": "parquet",
    ".pq": "parquet",
    ".db": "sqlite",
    ".sqlite": "sqlite",
    ".sqlite3": "sqlite",
}

_RECORD_FIELDS = (
    "id", "slug", "name", "description", "category", "price", "rating",
    "createdAt", "updatedAt", "created_at", "updated_at",
)


class CatalogError(ValueError):
    """Raised when a catalog source cannot be read or has an unusable shape."""


def detect_format(path: Path, declared: str = "auto") -> str:
    """Resolve the catalog format from config or the file suffix.

    Raises:
        CatalogError: If ``declared`` is ``"auto"`` and the suffix is unknown.
    """
    if declared != "auto":
        return declared
    fmt = _SUFFIX_FORMATS.get(path.suffix.lower())
    if fmt is None:
        raise CatalogError(
            f"Cannot infer catalog format from '{path.name}'. "
            "Set catalog.source_format to json, parquet or sqlite."
        )
    return fmt


def _read_json(path: Path) -> list[dict[str, Any]]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise CatalogError(f"JSON catalog {path} is not valid JSON: {exc}") from exc
    if isinstance(data, dict):
        data = data.get("items")
    if not isinstance(data, list):
        raise CatalogError(
            f"JSON catalog {path} must be an array or an object with an 'items' array."
        )
    return [r for r in data if isinstance(r, dict)]


def _read_parquet(path: Path) -> list[dict[str, Any]]:
    import pyarrow as pa
    import pyarrow.parquet as pq

    try:
        return pq.read_table(str(path)).to_pylist()
    except pa.ArrowException as exc:
        raise CatalogError(f"Parquet catalog {path} is unreadable: {exc}") from exc


def _read_sqlite(path: Path, table: str) -> list[dict[str, Any]]:
    from site_linkgraph.db.connection import get_connection

    try:
        with get_connection(str(path)) as conn:
            rows = conn.execute(f'SELECT * FROM "{table}" ORDER BY rowid').fetchall()
    except sqlite3.Error as exc:
        raise CatalogError(f"SQLite catalog {path} is unreadable ({table}): {exc}") from exc
    return [dict(row) for row in rows]


def read_catalog_records(
    path: Path,
    fmt: str,
    sqlite_table: str = "Whop",
) -> list[dict[str, Any]]:
    """Read raw item records from ``path``.

    Raises:
        FileNotFoundError: If ``path`` does not exist.
        CatalogError: If the file cannot be parsed in ``fmt`` or the content
            is not a list of records.
    """
    if not path.exists():
        raise FileNotFoundError(f"Catalog source not found: {path}")

    if fmt == "json":
        return _read_json(path)
    if fmt == "parquet":
        return _read_parquet(path)
    if fmt == "sqlite":
        return _read_sqlite(path, sqlite_table)
    raise CatalogError(f"Unsupported catalog format '{fmt}'.")


def build_catalog_items(
    records: Iterable[dict[str, Any]],
    gone_slugs: Optional[set[str]] = None,
) -> list[CatalogItem]:
    """Convert raw records into ``CatalogItem`` objects (order preserved).

    Args:
        records:    Raw catalog rows.
        gone_slugs: Lowercased slugs to exclude.

    Returns:
        Valid, unique, non-gone items in input order.
    """
    gone = gone_slugs or set()
    items: list[CatalogItem] = []
    seen: set[str] = set()
    n_gone = n_invalid = n_duplicate = 0

    for record in records:
        slug = str(record.get("slug") or "").strip()

        if slug.lower() in gone:
            n_gone += 1
            continue
        if not is_valid_slug(slug):
            n_invalid += 1
            logger.warning("Skipping catalog record with invalid slug %r", slug)
            continue
        if slug in seen:
            n_duplicate += 1
            logger.warning("Skipping duplicate catalog slug '%s'", slug)
            continue

        fields = {k: record[k] for k in _RECORD_FIELDS if k in record}
        fields["slug"] = slug
        name = str(record.get("name") or "")
        fields["name"] = name
        fields["brand"] = extract_brand(name)
        fields["topics"] = extract_topics(name, record.get("description") or "")

        try:
            item = CatalogItem(**fields)
        except ValidationError as exc:
            n_invalid += 1
            logger.warning("Skipping catalog record '%s': %s", slug, exc.errors()[0]["msg"])
            continue

        seen.add(slug)
        items.append(item)

    logger.info(
        "Catalog: %d active items (%d gone, %d invalid, %d duplicate skipped)",
        len(items), n_gone, n_invalid, n_duplicate,
    )
    return items


def load_catalog(
    config: CatalogConfig,
    source_path: Optional[str] = None,
) -> list[CatalogItem]:
    """Load the active catalog described by ``config``.

    Args:
        config:      Catalog section of ``AppConfig``.
        source_path: Override for ``config.source_path``.

    Returns:
        Active items in catalog order.

    Raises:
        FileNotFoundError: If the catalog source does not exist.
        CatalogError: If the source format is unknown or malformed.
    """
    path = Path(source_path or config.source_path)
    fmt = detect_format(path, config.source_format)
    records = read_catalog_records(path, fmt, config.sqlite_table)
    logger.info("Read %d catalog records from %s (%s)", len(records), path, fmt)

    gone = load_gone_slugs(
        config.gone_sitemap,
        path_prefixes=config.gone_path_prefixes,
        timeout_seconds=config.http_timeout_seconds,
    )
    return build_catalog_items(records, gone)
