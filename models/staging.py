"""
Staging item schemas.

A StagingItem is a not-yet-canonical product variant. It belongs to exactly
one import batch and, while pending, to exactly one variant group (the items
sharing its variant_of_name).
"""

import re
from enum import Enum
from typing import Optional
from datetime import datetime
from decimal import Decimal, InvalidOperation
from pydantic import Field, field_validator

from models.base import BaseSchema


class StagingStatus(str, Enum):
    """Lifecycle of a staged item."""
    PENDING = "pending"
    COMMITTED = "committed"
    REMOVED = "removed"


_PRICE_PATTERN = re.compile(r"-?\d[\d.,]*")
_GROUPED_THOUSANDS = re.compile(r"\d{1,3}(?:[.,]\d{3})+")


def coerce_price(v):
    """
    Parse a price to Decimal rounded to 2 places.

    - "$1,250.00" → 1250.00
    - "$1,250" → 1250.00
    - "1.250,00" → 1250.00
    - "12,5" → 12.50
    """
    if v is None or isinstance(v, bool):
        return None
    if isinstance(v, Decimal):
        return round(v, 2)
    if isinstance(v, (int, float)):
        return round(Decimal(str(v)), 2)
    if not isinstance(v, str):
        return v

    match = _PRICE_PATTERN.search(v)
    if not match:
        return None
    token = match.group(0).rstrip(".,")

    if "," in token and "." in token:
        # The later separator is the decimal point
        decimal_sep = "," if token.rfind(",") > token.rfind(".") else "."
        thousands_sep = "." if decimal_sep == "," else ","
        token = token.replace(thousands_sep, "").replace(decimal_sep, ".")
    elif _GROUPED_THOUSANDS.fullmatch(token.lstrip("-")) and (token.count(",") or token.count(".") > 1):
        token = token.replace(",", "").replace(".", "")
    else:
        token = token.replace(",", ".")

    try:
        return round(Decimal(token), 2)
    except InvalidOperation:
        return None


class ScrapedProduct(BaseSchema):
    """
    One item-listing candidate returned by the connector.

    Only name is required; everything else may be filled later by
    enrichment or by the curator.
    """

    name: str = Field(..., min_length=1, max_length=500)
    variant_of_name: Optional[str] = Field(None, description="Parent product name if this is a variant")
    sku: Optional[str] = None
    rental_price: Optional[Decimal] = Field(None, ge=0)
    replacement_cost: Optional[Decimal] = Field(None, ge=0)
    color: Optional[str] = None
    material: Optional[str] = None
    weight: Optional[str] = None
    description: Optional[str] = None
    image_urls: list[str] = Field(default_factory=list)
    source_url: Optional[str] = None
    needs_enrichment: bool = True

    @field_validator("rental_price", "replacement_cost", mode="before")
    @classmethod
    def parse_price(cls, v):
        return coerce_price(v)

    @field_validator("image_urls", mode="before")
    @classmethod
    def default_images(cls, v):
        if v is None:
            return []
        if isinstance(v, str):
            return [v]
        return v

    @field_validator("weight", mode="before")
    @classmethod
    def weight_as_text(cls, v):
        if isinstance(v, (int, float)):
            return str(v)
        return v


class StagingItemCreate(ScrapedProduct):
    """A scraped product tagged with the scan selection's mapping."""

    category_id: Optional[str] = None
    collection_id: Optional[str] = None


class StagingItemUpdate(BaseSchema):
    """
    Edit a staged item.

    All fields optional. Only fields explicitly provided are written, so a
    field may be cleared by sending null.
    """

    name: Optional[str] = Field(None, min_length=1, max_length=500)
    variant_of_name: Optional[str] = Field(None, min_length=1, max_length=500)
    sku: Optional[str] = None
    rental_price: Optional[Decimal] = Field(None, ge=0)
    replacement_cost: Optional[Decimal] = Field(None, ge=0)
    color: Optional[str] = None
    material: Optional[str] = None
    weight: Optional[str] = None
    description: Optional[str] = None
    image_urls: Optional[list[str]] = None
    category_id: Optional[str] = None
    collection_id: Optional[str] = None

    @field_validator("rental_price", "replacement_cost", mode="before")
    @classmethod
    def parse_price(cls, v):
        return coerce_price(v)

    def to_patch(self) -> dict:
        """Fields explicitly set by the caller."""
        return self.model_dump(exclude_unset=True)


class StagingItemResponse(BaseSchema):
    """Staged item as stored."""

    id: str
    batch_id: str
    name: str
    variant_of_name: Optional[str] = None
    sku: Optional[str] = None
    rental_price: Optional[Decimal] = None
    replacement_cost: Optional[Decimal] = None
    color: Optional[str] = None
    material: Optional[str] = None
    weight: Optional[str] = None
    description: Optional[str] = None
    image_urls: list[str] = Field(default_factory=list)
    category_id: Optional[str] = None
    collection_id: Optional[str] = None
    source_url: Optional[str] = None
    status: StagingStatus = StagingStatus.PENDING
    needs_enrichment: bool = False
    enriched_at: Optional[datetime] = None
    created_at: datetime

    @field_validator("image_urls", mode="before")
    @classmethod
    def default_images(cls, v):
        return v or []

    @field_validator("rental_price", "replacement_cost", mode="before")
    @classmethod
    def ensure_decimal(cls, v):
        if v is not None:
            return Decimal(str(v))
        return v

    @field_validator("needs_enrichment", mode="before")
    @classmethod
    def default_flag(cls, v):
        return bool(v)

    @property
    def group_key(self) -> str:
        """Name of the variant group this item renders under."""
        return self.variant_of_name or self.name


class StagingItemGroup(BaseSchema):
    """One product group with its variants, newest first."""

    name: str
    items: list[StagingItemResponse]
    category_name: Optional[str] = None
    collection_name: Optional[str] = None
    variant_count: int
    created_at: datetime


# ===================
# REQUESTS
# ===================

class MoveItemRequest(BaseSchema):
    """Move one item into another variant group."""

    target_group: str = Field(..., min_length=1)


class RenameGroupRequest(BaseSchema):
    """Rename a variant group across all of its current members."""

    batch_id: str
    old_name: str = Field(..., min_length=1)
    new_name: str = Field(..., min_length=1)


class RenameGroupResult(BaseSchema):
    old_name: str
    new_name: str
    updated_count: int
