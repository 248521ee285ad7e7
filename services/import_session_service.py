"""
Import session.

In-process orchestration of one import from a source page: extraction,
optional exploration, mapping and selection, scan into a new batch, then
curation. Mappings live only in the session; only what a scan confirms is
ever persisted.
"""

from typing import Optional
import structlog

from integrations.source_connector import SourceConnector
from models.extraction import CategoryMapping, ExplorationResult
from models.scan import ScanOutcome, ScanSelection
from models.stream import CategoriesResultEvent, ScanResultEvent
from models.taxonomy import TaxonomyContext
from exceptions import ValidationError
from services.activity_log import ActivityLog, LogLevel
from services.classification_service import ClassificationService
from services.curation_service import CurationSession
from services.extraction_service import ExtractionService, build_mappings
from services.import_batch_service import ImportBatchService
from services.scan_service import ScanService
from services.staging_service import StagingService
from utils.text_utils import normalize_name

logger = structlog.get_logger(__name__)


class ImportSession:
    """
    One curator's pass over one source page.

    At most one stage stream is open at a time; the session is not meant
    to be shared between concurrent callers.
    """

    def __init__(
        self,
        url: str,
        model_id: str,
        taxonomy: TaxonomyContext,
        connector: SourceConnector,
        staging_service: Optional[StagingService] = None,
        batch_service: Optional[ImportBatchService] = None
    ):
        self.url = url
        self.model_id = model_id
        self.taxonomy = taxonomy
        self.connector = connector
        self.batches = batch_service or ImportBatchService()
        self.staging = staging_service or StagingService(self.batches)
        self.extraction = ExtractionService(connector)
        self.log = ActivityLog()
        self.mappings: list[CategoryMapping] = []
        self.batch_id: Optional[str] = None

    # ===================
    # DISCOVERY
    # ===================

    async def extract(self) -> CategoriesResultEvent:
        """
        Run extraction and replace the mapping list with its candidates.

        A failed extraction leaves the previous mappings untouched.
        """
        self.log.add(f"Analyzing {self.url}", LogLevel.INFO, "System")

        result: Optional[CategoriesResultEvent] = None
        async for event in self.extraction.stream_categories(self.url, self.model_id):
            self.log.apply(event)
            if isinstance(event, CategoriesResultEvent):
                result = event

        if result.success:
            self.mappings = build_mappings(result.categories, self.taxonomy)
            matched = sum(1 for m in self.mappings if m.mapped_category_id or m.mapped_collection_id)
            logger.info("extraction_mapped", url=self.url, candidates=len(self.mappings), matched=matched)

        return result

    async def explore(self, index: int) -> ExplorationResult:
        """
        Explore the candidate at index and splice its children right after it.

        Children whose names are already in the list are skipped.

        Raises:
            ValidationError: If the index is out of range or the candidate has no URL
        """
        parent = self._mapping(index).extracted_category
        if not parent.url:
            raise ValidationError(f"'{parent.name}' has no listing URL to explore")

        self.log.add(f"Exploring {parent.name}...", LogLevel.LOADING, "Fetch")
        result = await self.extraction.explore(parent.url, parent.name, self.model_id)

        if not result.success:
            self.log.close_last(LogLevel.ERROR)
            self.log.add(f"Exploration failed: {result.error}", LogLevel.ERROR, "Error")
            return result

        known = {normalize_name(m.extracted_category.name) for m in self.mappings}
        children = [c for c in result.sub_categories if normalize_name(c.name) not in known]

        if not children:
            self.log.add(f"No sub-categories found under {parent.name}", LogLevel.INFO, "Discovery")
            return result

        self.mappings[index + 1:index + 1] = build_mappings(children, self.taxonomy, loose=True)
        self.log.add(f"Found {len(children)} sub-categories under {parent.name}", LogLevel.SUCCESS, "Discovery")
        return result

    # ===================
    # MAPPING & SELECTION
    # ===================

    def _mapping(self, index: int) -> CategoryMapping:
        if not 0 <= index < len(self.mappings):
            raise ValidationError(f"No category at position {index}", details={"index": index})
        return self.mappings[index]

    def set_mapping(
        self,
        index: int,
        category_id: Optional[str] = None,
        collection_id: Optional[str] = None
    ) -> CategoryMapping:
        mapping = self._mapping(index)
        mapping.mapped_category_id = category_id
        mapping.mapped_collection_id = collection_id
        return mapping

    def toggle_selection(self, index: int) -> bool:
        """Flip the selected-for-scan flag. Returns the new state."""
        mapping = self._mapping(index)
        mapping.selected_for_scan = not mapping.selected_for_scan
        return mapping.selected_for_scan

    def selected_categories(self) -> list[ScanSelection]:
        """Selected candidates that can be scanned (those with a URL)."""
        return [
            ScanSelection(
                name=m.extracted_category.name,
                url=m.extracted_category.url,
                category_id=m.mapped_category_id,
                collection_id=m.mapped_collection_id,
            )
            for m in self.mappings
            if m.selected_for_scan and m.extracted_category.url
        ]

    # ===================
    # SCAN & CURATION
    # ===================

    async def scan(self, max_concurrency: Optional[int] = None) -> ScanOutcome:
        """
        Create a batch and scan the selected categories into it.

        The batch exists before any connector traffic, so items written
        before a failure or an abandoned stream stay reviewable.

        Raises:
            ValidationError: If nothing scannable is selected
        """
        selections = self.selected_categories()
        if not selections:
            raise ValidationError("Select at least one category with a URL to scan")

        batch = self.batches.create(self.url)
        self.batch_id = batch.id

        scanner = ScanService(self.connector, self.staging, self.batches, max_concurrency)

        result: Optional[ScanResultEvent] = None
        async for event in scanner.stream_scan(selections, self.model_id, batch.id):
            self.log.apply(event)
            if isinstance(event, ScanResultEvent):
                result = event

        return ScanOutcome(
            batch_id=batch.id,
            success=result.success,
            items_found=result.items_found,
            failed_categories=result.failed_categories,
            error=result.error,
        )

    def curation(self, batch_id: Optional[str] = None) -> CurationSession:
        """Open curation over the scanned batch (or another one)."""
        batch_id = batch_id or self.batch_id
        if batch_id is None:
            raise ValidationError("No batch to curate; run a scan first")

        session = CurationSession(
            batch_id,
            self.staging,
            self.taxonomy,
            ClassificationService(self.connector, self.staging, self.batches),
        )
        session.refresh()
        return session
