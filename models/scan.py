"""
Scan stage schemas.
"""

from typing import Optional
from pydantic import Field

from models.base import BaseSchema


class ScanSelection(BaseSchema):
    """One taxonomy candidate chosen for scanning, with its mapping."""

    name: str = Field(..., min_length=1)
    url: str = Field(..., min_length=1)
    category_id: Optional[str] = None
    collection_id: Optional[str] = None


class ScanRequest(BaseSchema):
    """Create a batch and scan the selected categories into it."""

    source_url: str = Field(..., min_length=1)
    categories: list[ScanSelection] = Field(..., min_length=1)
    model_id: Optional[str] = None


class ScanOutcome(BaseSchema):
    """Session-side summary of a finished scan stream."""

    batch_id: str
    success: bool
    items_found: int = 0
    failed_categories: list[str] = Field(default_factory=list)
    error: Optional[str] = None
