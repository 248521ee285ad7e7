"""
Stream event schemas.

Events are emitted in order by the Extraction and Scan stages and
serialized one JSON object per line. Chunk text is kept verbatim, so these
models do not strip whitespace.
"""

from typing import Literal, Optional, Union
from pydantic import BaseModel, Field

from models.extraction import ExtractedCategory, TokenUsage
from models.staging import ScrapedProduct


class ChunkEvent(BaseModel):
    """Incremental reasoning or response text."""
    type: Literal["chunk"] = "chunk"
    text: str
    is_thought: bool = False


class UsageEvent(BaseModel):
    """Token accounting for the request."""
    type: Literal["usage"] = "usage"
    usage: TokenUsage


class LogEvent(BaseModel):
    """Non-fatal notice (e.g. a salvaged truncated response)."""
    type: Literal["log"] = "log"
    message: str


class CategoriesResultEvent(BaseModel):
    """Terminal result of an extraction or exploration request."""
    type: Literal["result"] = "result"
    success: bool
    categories: list[ExtractedCategory] = Field(default_factory=list)
    error: Optional[str] = None


class ProductsResultEvent(BaseModel):
    """Terminal result of one category listing request."""
    type: Literal["result"] = "result"
    success: bool
    products: list[ScrapedProduct] = Field(default_factory=list)
    error: Optional[str] = None


class CategoryStartEvent(BaseModel):
    type: Literal["category_start"] = "category_start"
    category_name: str


class CategoryDoneEvent(BaseModel):
    type: Literal["category_done"] = "category_done"
    category_name: str
    count: int


class ScanResultEvent(BaseModel):
    """Terminal result of a whole scan run."""
    type: Literal["result"] = "result"
    success: bool
    items_found: int = 0
    failed_categories: list[str] = Field(default_factory=list)
    error: Optional[str] = None


# Connector streams
CategoryStreamEvent = Union[ChunkEvent, UsageEvent, LogEvent, CategoriesResultEvent]
ProductStreamEvent = Union[ChunkEvent, UsageEvent, LogEvent, ProductsResultEvent]

# Stage streams
ExtractionEvent = Union[ChunkEvent, UsageEvent, LogEvent, CategoriesResultEvent]
ScanEvent = Union[CategoryStartEvent, ChunkEvent, UsageEvent, CategoryDoneEvent, LogEvent, ScanResultEvent]


def to_ndjson(event: BaseModel) -> str:
    """Serialize one event as a newline-terminated JSON line."""
    return event.model_dump_json() + "\n"
