"""
Extraction and exploration schemas.

ExtractedCategory and CategoryMapping are session-local and never persisted.
Only the subset confirmed through a scan becomes StagingItem rows.
"""

from typing import Optional
from pydantic import Field, field_validator

from models.base import BaseSchema
from models.taxonomy import SuggestedType


class ExtractedCategory(BaseSchema):
    """
    One taxonomy candidate discovered on a source page.

    Ephemeral: produced by the Extraction or Exploration stage.
    """

    name: str = Field(..., min_length=1, description="Candidate name as shown on the page")
    url: Optional[str] = Field(None, description="Listing page URL for this candidate")
    item_count: Optional[int] = Field(None, ge=0, description="Estimated number of items")
    suggested_type: SuggestedType = Field(
        SuggestedType.CATEGORY,
        description="Whether this looks like a category or a collection"
    )

    @field_validator("suggested_type", mode="before")
    @classmethod
    def normalize_type(cls, v):
        """Unknown or missing types fall back to category."""
        if isinstance(v, str) and v.lower().strip() == "collection":
            return SuggestedType.COLLECTION
        if isinstance(v, SuggestedType):
            return v
        return SuggestedType.CATEGORY


class CategoryMapping(BaseSchema):
    """
    Pairs an extracted candidate with optional canonical targets.

    Discarded if the session ends before a scan runs.
    """

    extracted_category: ExtractedCategory
    mapped_category_id: Optional[str] = None
    mapped_collection_id: Optional[str] = None
    selected_for_scan: bool = False


class ExplorationResult(BaseSchema):
    """Outcome of exploring one candidate one level deeper."""

    success: bool
    parent_name: str
    sub_categories: list[ExtractedCategory] = Field(default_factory=list)
    error: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return self.success and not self.sub_categories


class TokenUsage(BaseSchema):
    """Token accounting reported by the connector."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class ModelInfo(BaseSchema):
    """A model the connector can run."""

    id: str
    display_name: str
    description: str = ""


# ===================
# REQUESTS
# ===================

class ExtractRequest(BaseSchema):
    """Start category extraction for a source page."""

    url: str = Field(..., min_length=1, description="Source page URL")
    model_id: Optional[str] = Field(None, description="Model selector (defaults to settings)")


class ExploreRequest(BaseSchema):
    """Explore one candidate's listing page for sub-categories."""

    url: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    model_id: Optional[str] = None


class ExploreResponse(BaseSchema):
    """Exploration result plus pre-matched mappings for its children."""

    result: ExplorationResult
    mappings: list[CategoryMapping] = Field(default_factory=list)


class MatchRequest(BaseSchema):
    """Match extracted candidates against canonical taxonomy."""

    categories: list[ExtractedCategory]
    loose: bool = Field(False, description="Allow substring matches (used for explored children)")
