"""
Auto-classification schemas.
"""

from typing import Optional
from pydantic import Field

from models.base import BaseSchema


class ClassificationAssignment(BaseSchema):
    """Connector's suggestion for one staged item."""

    item_id: str
    category_id: Optional[str] = None
    collection_id: Optional[str] = None


class ClassificationResult(BaseSchema):
    """Partial success is the common case."""

    batch_id: str
    updated_count: int = 0
    unmatched: list[str] = Field(default_factory=list, description="Item ids left unclassified")


class ClassifyRequest(BaseSchema):
    model_id: Optional[str] = None
