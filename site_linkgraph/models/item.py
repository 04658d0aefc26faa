"""
Catalog item model.

``CatalogItem`` is one listing as read from the catalog snapshot.  Items are
immutable for the whole build; everything the graph phases need beyond the
raw record (brand, topics, price band, casefolded category) is derived once,
either by the catalog loader or by ``NodeProfile`` in ``models/graph.py``.

Catalog exports use camelCase timestamps (``createdAt`` / ``updatedAt``);
both spellings are accepted.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from site_linkgraph.catalog.attributes import (
    UNKNOWN,
    is_valid_slug,
    parse_price_value,
    price_band as band_for_price,
)


class CatalogItem(BaseModel):
    """A single catalog listing (one node of the link graph).

    Attributes:
        id: Catalog primary key (stringified).
        slug: Unique URL-safe key; the node identity in every artifact.
        name: Display name; the brand is derived from its leading token.
        description: Free-text description, used for topic extraction.
        category: Free-text category label (compared case-insensitively).
        brand: Derived brand key, or ``None`` when the name has none.
        price: Raw price string exactly as listed.
        rating: Average rating; missing ratings read as ``0.0``.
        topics: Ordered topic keys; ``topics[0]`` is the primary topic.
        created_at: Creation timestamp, if known.
        updated_at: Last update timestamp, if known.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    slug: str
    name: str
    description: Optional[str] = None
    category: Optional[str] = None
    brand: Optional[str] = None
    price: Optional[str] = None
    rating: float = 0.0
    topics: tuple[str, ...] = ()
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")
    updated_at: Optional[datetime] = Field(default=None, alias="updatedAt")

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v: Any) -> str:
        if v is None or str(v) == "":
            raise ValueError("Catalog item id must be non-empty.")
        return str(v)

    @field_validator("slug")
    @classmethod
    def validate_slug(cls, v: str) -> str:
        if not is_valid_slug(v):
            raise ValueError(
                f"Slug '{v}' must be alphanumeric/hyphen, >= 2 chars, not starting with '-'."
            )
        return v

    @field_validator("price", mode="before")
    @classmethod
    def coerce_price(cls, v: Any) -> Optional[str]:
        if v is None:
            return None
        return str(v)

    @field_validator("rating", mode="before")
    @classmethod
    def coerce_rating(cls, v: Any) -> float:
        return 0.0 if v is None else float(v)

    @property
    def category_key(self) -> str:
        """Casefolded category, ``"unknown"`` when missing."""
        cat = (self.category or "").strip().lower()
        return cat or UNKNOWN

    @property
    def brand_key(self) -> str:
        return self.brand or UNKNOWN

    @property
    def price_band(self) -> str:
        return band_for_price(parse_price_value(self.price))
