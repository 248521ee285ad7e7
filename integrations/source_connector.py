"""
Source connector interface.

The connector is the external content-understanding service. Every stage
talks to it through this interface so the pipeline does not depend on how
pages are interpreted. Streams are slow, may fail, and may be truncated;
callers must tolerate a stream that ends without a result.
"""

from abc import ABC, abstractmethod
from typing import AsyncIterator

from models.classification import ClassificationAssignment
from models.enrichment import ItemDetails
from models.extraction import ModelInfo
from models.staging import StagingItemResponse
from models.stream import CategoryStreamEvent, ProductStreamEvent
from models.taxonomy import TaxonomyContext


class SourceConnector(ABC):
    """Abstract connector. See ClaudeConnector for the production adapter."""

    @abstractmethod
    def stream_categories(self, url: str, model_id: str) -> AsyncIterator[CategoryStreamEvent]:
        """Discover top-level taxonomy candidates on a page."""

    @abstractmethod
    def stream_subcategories(
        self,
        url: str,
        parent_name: str,
        model_id: str
    ) -> AsyncIterator[CategoryStreamEvent]:
        """Discover one level deeper under a candidate's listing page."""

    @abstractmethod
    def stream_products(
        self,
        url: str,
        category_name: str,
        model_id: str
    ) -> AsyncIterator[ProductStreamEvent]:
        """List the items on one category page."""

    @abstractmethod
    async def classify_items(
        self,
        items: list[StagingItemResponse],
        taxonomy: TaxonomyContext,
        model_id: str
    ) -> list[ClassificationAssignment]:
        """Suggest a canonical category/collection for each item."""

    @abstractmethod
    async def fetch_item_details(self, item: StagingItemResponse, model_id: str) -> ItemDetails:
        """Fill in per-item detail from the item's own page."""

    async def list_models(self) -> list[ModelInfo]:
        """Models the caller may choose from."""
        return []
