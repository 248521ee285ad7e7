"""
Import batch schemas.

An import batch is one scraping session tied to one source URL.
"""

from enum import Enum
from typing import Optional
from datetime import datetime
from pydantic import Field

from models.base import BaseSchema


class BatchStatus(str, Enum):
    """
    Batch lifecycle.

    PENDING: created, nothing scanned yet
    SCANNING: scan started; stays here until enrichment finishes
    COMPLETED: enrichment has run over the batch
    """
    PENDING = "pending"
    SCANNING = "scanning"
    COMPLETED = "completed"


class ImportBatchCreate(BaseSchema):
    """Create a batch for a source URL."""

    source_url: str = Field(..., min_length=1)


class ImportBatchResponse(BaseSchema):
    """Import batch as stored."""

    id: str
    source_url: str
    status: BatchStatus = BatchStatus.PENDING
    items_scraped: int = 0
    items_removed: int = 0
    current_step: Optional[str] = None
    created_at: datetime
    pending_count: Optional[int] = Field(None, description="Filled on listing")


class BatchCounts(BaseSchema):
    """Item accounting for one batch."""

    batch_id: str
    pending: int = 0
    committed: int = 0
    removed: int = 0
    items_scraped: int = 0

    @property
    def is_consistent(self) -> bool:
        """Every scraped item is pending, committed or removed."""
        return self.pending + self.committed + self.removed == self.items_scraped


class BatchProgress(BaseSchema):
    """Polling view of a batch's background work."""

    batch_id: str
    status: BatchStatus
    current_step: Optional[str] = None
    counts: BatchCounts
