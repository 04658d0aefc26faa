"""site-linkgraph: deterministic offline builder for a catalog site's link graph."""

__version__ = "0.1.0"
