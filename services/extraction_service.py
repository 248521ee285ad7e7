"""
Extraction and exploration stages.

Extraction asks the connector for the top-level taxonomy of a page and
re-streams its events. Exploration runs the same request one level deeper
on a single candidate's listing page and returns a plain result.
"""

from typing import AsyncIterator, Optional
import structlog

from integrations.source_connector import SourceConnector
from models.extraction import CategoryMapping, ExplorationResult, ExtractedCategory
from models.stream import CategoriesResultEvent, ExtractionEvent
from models.taxonomy import SuggestedType, TaxonomyContext
from exceptions import UnsafeUrlError
from services.stream_guard import guarded_stream
from utils.text_utils import find_exact_match, find_loose_match
from utils.url_validator import validate_external_url

logger = structlog.get_logger(__name__)


def _is_result(event) -> bool:
    return isinstance(event, CategoriesResultEvent)


def _failure(message: str) -> CategoriesResultEvent:
    return CategoriesResultEvent(success=False, error=message)


def build_mappings(
    categories: list[ExtractedCategory],
    taxonomy: TaxonomyContext,
    loose: bool = False
) -> list[CategoryMapping]:
    """
    Pre-select canonical targets for extracted candidates.

    A candidate of type category is matched against canonical categories,
    a collection against collections. Matching is case-insensitive exact
    name; with loose=True a bidirectional substring match is the fallback.
    Unmatched candidates get no mapping. Nothing is selected for scan.
    """
    match = find_loose_match if loose else find_exact_match
    mappings = []

    for category in categories:
        entry = match(category.name, taxonomy.entries_for(category.suggested_type))
        is_collection = category.suggested_type == SuggestedType.COLLECTION
        mappings.append(CategoryMapping(
            extracted_category=category,
            mapped_category_id=entry.id if entry and not is_collection else None,
            mapped_collection_id=entry.id if entry and is_collection else None,
        ))

    return mappings


class ExtractionService:
    """Runs extraction and exploration through a source connector."""

    def __init__(self, connector: SourceConnector):
        self.connector = connector

    async def stream_categories(self, url: str, model_id: str) -> AsyncIterator[ExtractionEvent]:
        """
        Stream taxonomy discovery for a page.

        Yields chunk, usage and log events, then exactly one result. A
        success with zero categories is a valid outcome, not a failure.
        """
        try:
            url = validate_external_url(url)
        except UnsafeUrlError as e:
            yield _failure(e.message)
            return

        logger.info("extraction_started", url=url, model=model_id)

        async for event in guarded_stream(
            self.connector.stream_categories(url, model_id),
            _is_result,
            _failure,
            context="extraction"
        ):
            if _is_result(event):
                logger.info(
                    "extraction_finished",
                    url=url,
                    success=event.success,
                    categories=len(event.categories),
                    error=event.error
                )
            yield event

    async def explore(self, url: str, name: str, model_id: str) -> ExplorationResult:
        """
        Discover sub-categories under one candidate.

        Returns:
            ExplorationResult; zero children is a success with an empty list
        """
        try:
            url = validate_external_url(url)
        except UnsafeUrlError as e:
            return ExplorationResult(success=False, parent_name=name, error=e.message)

        logger.info("exploration_started", url=url, parent=name, model=model_id)

        result: Optional[CategoriesResultEvent] = None
        async for event in guarded_stream(
            self.connector.stream_subcategories(url, name, model_id),
            _is_result,
            _failure,
            context="exploration"
        ):
            if _is_result(event):
                result = event

        logger.info(
            "exploration_finished",
            parent=name,
            success=result.success,
            sub_categories=len(result.categories)
        )

        return ExplorationResult(
            success=result.success,
            parent_name=name,
            sub_categories=result.categories if result.success else [],
            error=result.error,
        )
