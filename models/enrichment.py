"""
Enrichment schemas.
"""

from decimal import Decimal
from typing import Literal, Optional
from pydantic import Field, field_validator

from models.base import BaseSchema
from models.staging import coerce_price


class ItemDetails(BaseSchema):
    """Per-item detail returned by the connector's detail pass."""

    sku: Optional[str] = None
    rental_price: Optional[Decimal] = Field(None, ge=0)
    replacement_cost: Optional[Decimal] = Field(None, ge=0)
    color: Optional[str] = None
    material: Optional[str] = None
    weight: Optional[str] = None
    description: Optional[str] = None
    image_urls: list[str] = Field(default_factory=list)

    @field_validator("rental_price", "replacement_cost", mode="before")
    @classmethod
    def parse_price(cls, v):
        return coerce_price(v)

    @field_validator("image_urls", mode="before")
    @classmethod
    def default_images(cls, v):
        return v or []

    @field_validator("weight", mode="before")
    @classmethod
    def weight_as_text(cls, v):
        if isinstance(v, (int, float)):
            return str(v)
        return v


class EnrichmentReport(BaseSchema):
    """
    Terminal report of one enrichment run.

    Failures on some items alongside successes on others is a warning,
    not an error.
    """

    batch_id: str
    enriched_count: int = 0
    failed_count: int = 0
    failed_item_ids: list[str] = Field(default_factory=list)

    @property
    def severity(self) -> Literal["ok", "warning", "error"]:
        if self.failed_count == 0:
            return "ok"
        if self.enriched_count > 0:
            return "warning"
        return "error"
