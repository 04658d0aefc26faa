"""
Gone-slug lookup: items delisted from the site are excluded before the build.

The site publishes delisted item URLs in a ``gone.xml`` sitemap.  Every
``<loc>`` whose first path segment is a configured prefix (``/whop/<slug>``,
``/whops/<slug>``) contributes its lowercased slug.

The sitemap may be a local file or an ``http(s)://`` URL.  A missing local
file is treated as "nothing is gone" (logged), because a fresh checkout has
no sitemap yet; an unreachable URL raises so the build never silently
resurrects delisted items.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Iterable
from urllib.parse import unquote, urlparse

logger = logging.getLogger(__name__)

_LOC_RE = re.compile(r"<loc>([^<]+)</loc>", re.IGNORECASE)


def parse_gone_sitemap(xml: str, path_prefixes: Iterable[str] = ("whop", "whops")) -> set[str]:
    """Extract gone slugs from sitemap XML text.

    Args:
        xml:           Raw sitemap XML.
        path_prefixes: First path segments that identify item pages.

    Returns:
        Set of lowercased slugs.
    """
    prefixes = {p.strip("/").lower() for p in path_prefixes}
    slugs: set[str] = set()
    for match in _LOC_RE.finditer(xml):
        parsed = urlparse(match.group(1).strip())
        if not parsed.scheme or not parsed.netloc:
            continue
        parts = [p for p in parsed.path.split("/") if p]
        if len(parts) >= 2 and parts[0].lower() in prefixes:
            slug = unquote(parts[1]).lower()
            if slug:
                slugs.add(slug)
    return slugs


def load_gone_slugs(
    source: str,
    path_prefixes: Iterable[str] = ("whop", "whops"),
    timeout_seconds: float = 30.0,
) -> set[str]:
    """Load gone slugs from a sitemap file path or URL.

    Args:
        source:          Local path or ``http(s)://`` URL; empty string → no slugs.
        path_prefixes:   See ``parse_gone_sitemap()``.
        timeout_seconds: HTTP timeout when ``source`` is a URL.

    Returns:
        Set of lowercased gone slugs.

    Raises:
        httpx.HTTPError: If a remote sitemap cannot be fetched.
    """
    if not source:
        return set()

    if source.startswith(("http://", "https://")):
        import httpx

        resp = httpx.get(source, timeout=timeout_seconds, follow_redirects=True)
        resp.raise_for_status()
        xml = resp.text
    else:
        path = Path(source)
        if not path.exists():
            logger.warning("Gone sitemap not found at %s; no items excluded.", path)
            return set()
        xml = path.read_text(encoding="utf-8")

    slugs = parse_gone_sitemap(xml, path_prefixes)
    logger.info("Loaded %d gone slugs from %s", len(slugs), source)
    return slugs
