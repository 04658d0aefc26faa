"""
Topic extraction and topic-set similarity.

Topics are coarse niche keys matched by regex against an item's name and
description.  ``extract_topics()`` returns them in table order, so the first
element is the item's *primary* topic used by the recommendation scorer.
"""

from __future__ import annotations

import re
from typing import Iterable, Optional

# Order matters: the first matching key becomes the item's primary topic.
TOPIC_PATTERNS: dict[str, re.Pattern[str]] = {
    "ecommerce": re.compile(
        r"\b(dropshipping|shopify|amazon\s+fba|e[-\s]?commerce|online\s+store|"
        r"product\s+research|amazon|ebay|etsy|facebook\s+ads|google\s+ads|"
        r"product\s+sourcing|aliexpress|wholesale|retail|online\s+selling|"
        r"marketplace|brand\s+building|private\s+label|inventory|fulfillment)\b",
        re.IGNORECASE,
    ),
    "daytrading": re.compile(
        r"\b(day\s*trading|forex|fx\s*trading|scalping|swing\s*trading|"
        r"technical\s*analysis|chart\s*patterns|price\s*action|indicator(s)?|"
        r"currency\s*trading|pip(s)?|spread|leverage|margin|mt4|mt5|"
        r"trading\s*signals|market\s*analysis|trading\s*strategy|risk\s*management)\b",
        re.IGNORECASE,
    ),
    "cryptotrading": re.compile(
        r"\b(crypto\s*trading|bitcoin|ethereum|altcoin(s)?|cryptocurrency|"
        r"blockchain|defi|nft\s*trading|binance|coinbase|trading\s*bot|"
        r"crypto\s*signals|hodl|spot\s*trading|futures\s*trading|margin\s*trading|"
        r"crypto\s*analysis)\b",
        re.IGNORECASE,
    ),
    "stocktrading": re.compile(
        r"\b(stock\s*trading|stocks|equities|options\s*trading|penny\s*stocks|"
        r"dividend(s)?|portfolio|wall\s*street|nasdaq|dow\s*jones|s&?p\s*500|"
        r"market\s*cap|earnings|bull\s*market|bear\s*market|value\s*investing|"
        r"growth\s*stocks)\b",
        re.IGNORECASE,
    ),
    "sportsbetting": re.compile(
        r"\b(sports\s*betting|sportsbook|bet(ting)?|gambling|odds|handicapping|"
        r"picks|tipster(s)?|bookmaker|matched\s*betting|arbitrage\s*betting|"
        r"betting\s*strategy|football|basketball|soccer|tennis|horse\s*racing|"
        r"casino|poker)\b",
        re.IGNORECASE,
    ),
    "realestate": re.compile(
        r"\b(real\s*estate|property|rental|landlord|flip|wholesale|airbnb|"
        r"fix\s*and\s*flip|buy\s*and\s*hold|reit(s)?|mortgage|foreclosure|"
        r"investment\s*property|commercial\s*real\s*estate|residential)\b",
        re.IGNORECASE,
    ),
    "digitalmarketing": re.compile(
        r"\b(digital\s*marketing|social\s*media\s*marketing|smm|instagram|tiktok|"
        r"youtube|facebook\s*marketing|content\s*creation|influencer|"
        r"affiliate\s*marketing|email\s*marketing|lead\s*generation|conversion|"
        r"funnel|copywriting)\b",
        re.IGNORECASE,
    ),
    "business": re.compile(
        r"\b(business|entrepreneur(ship)?|startup|consulting|coaching|mentoring|"
        r"scaling|revenue|profit|business\s*model|saas|agency|freelancing|"
        r"side\s*hustle)\b",
        re.IGNORECASE,
    ),
    "fitness": re.compile(
        r"\b(fitness|workout|gym|bodybuilding|weight\s*loss|nutrition|diet|"
        r"muscle\s*building|personal\s*training|health\s*coaching|supplements?)\b",
        re.IGNORECASE,
    ),
    "education": re.compile(
        r"\b(course|training|masterclass|tutorial|education|learning|"
        r"skill\s*development|certification|academy|bootcamp|workshop)\b",
        re.IGNORECASE,
    ),
    "tools": re.compile(
        r"\b(software|tool|automation|bot|system|platform|app|plugin|script|api|"
        r"saas\s*tool)\b",
        re.IGNORECASE,
    ),
    "technology": re.compile(
        r"\b(ai|artificial\s*intelligence|machine\s*learning|coding|programming|"
        r"development|tech|blockchain|web\s*development|app\s*development)\b",
        re.IGNORECASE,
    ),
}


def extract_topics(name: Optional[str] = "", description: Optional[str] = "") -> list[str]:
    """Return the topic keys whose pattern matches ``name`` + ``description``.

    Args:
        name:        Item display name.
        description: Free-text description (may be ``None``).

    Returns:
        Matched topic keys in ``TOPIC_PATTERNS`` order (primary topic first).
    """
    text = f"{name or ''} {description or ''}".lower()
    return [topic for topic, pattern in TOPIC_PATTERNS.items() if pattern.search(text)]


def topic_jaccard(a: Iterable[str], b: Iterable[str]) -> float:
    """Jaccard similarity of two topic collections, in [0, 1].

    Two empty collections are considered identical (1.0); one empty and one
    non-empty share nothing (0.0).
    """
    set_a = set(a)
    set_b = set(b)
    if not set_a and not set_b:
        return 1.0
    if not set_a or not set_b:
        return 0.0
    return len(set_a & set_b) / len(set_a | set_b)
