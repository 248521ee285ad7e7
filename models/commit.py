"""
Commit schemas.
"""

from typing import Optional
from pydantic import Field

from models.base import BaseSchema
from models.enrichment import EnrichmentReport


class CommitRequest(BaseSchema):
    model_id: Optional[str] = Field(None, description="Model for the pre-commit enrichment pass")


class CommitResult(BaseSchema):
    """Outcome of promoting a batch into canonical inventory."""

    batch_id: str
    imported_count: int
    already_promoted_count: int = Field(0, description="Items found in inventory from an earlier attempt")
    enrichment: Optional[EnrichmentReport] = None
