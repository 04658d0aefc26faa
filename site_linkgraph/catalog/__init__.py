"""
Catalog access and per-item attribute derivation.

Modules
-------
attributes : is_valid_slug() + extract_brand() + price_band() — pure helpers.
topics     : TOPIC_PATTERNS + extract_topics() + topic_jaccard().
price      : parse_price_to_cents() + price_affinity().
gone       : parse_gone_sitemap() + load_gone_slugs() — removed-listing filter.
loader     : load_catalog() — JSON / Parquet / SQLite snapshot → CatalogItem list.
"""
