"""
Enrichment stage.

Second connector pass over a batch: fetches per-item detail for items still
flagged needs_enrichment and fills in whatever the listing pass left empty.
Runs as a background unit of work; callers poll batch progress.
"""

from typing import Optional
import structlog

from integrations.source_connector import SourceConnector
from models.enrichment import EnrichmentReport, ItemDetails
from models.import_batch import BatchStatus
from models.staging import StagingItemResponse
from exceptions import AppError
from services.import_batch_service import ImportBatchService
from services.staging_service import StagingService

logger = structlog.get_logger(__name__)


def details_patch(item: StagingItemResponse, details: ItemDetails) -> dict:
    """Fields the details provide that the item does not have yet."""
    patch = {}
    for field, value in details.model_dump().items():
        if value in (None, "", []):
            continue
        if getattr(item, field) in (None, "", []):
            patch[field] = value
    return patch


class EnrichmentService:
    """Fills missing per-item detail for a batch."""

    def __init__(
        self,
        connector: SourceConnector,
        staging_service: Optional[StagingService] = None,
        batch_service: Optional[ImportBatchService] = None
    ):
        self.connector = connector
        self.batches = batch_service or ImportBatchService()
        self.staging = staging_service or StagingService(self.batches)

    async def enrich_batch(self, batch_id: str, model_id: str) -> EnrichmentReport:
        """
        Enrich every pending item flagged needs_enrichment.

        One item's failure never aborts the run. Progress is written to the
        batch's current_step, and the batch is marked completed at the end.

        Raises:
            BatchNotFoundError: If batch doesn't exist
        """
        self.batches.get_by_id(batch_id)
        items = [item for item in self.staging.get_items(batch_id) if item.needs_enrichment]
        total = len(items)

        logger.info("enrichment_started", batch_id=batch_id, items=total, model=model_id)

        report = EnrichmentReport(batch_id=batch_id)

        for index, item in enumerate(items, start=1):
            self.batches.set_current_step(batch_id, f"Enriching {index}/{total}: {item.name}")

            try:
                details = await self.connector.fetch_item_details(item, model_id)
                self.staging.fill_details(item.id, details_patch(item, details))
            except Exception as e:
                message = e.message if isinstance(e, AppError) else str(e)
                logger.warning("item_enrichment_failed", batch_id=batch_id, item_id=item.id, error=message)
                report.failed_count += 1
                report.failed_item_ids.append(item.id)
                continue

            report.enriched_count += 1

        self.batches.set_current_step(batch_id, None)
        self.batches.update_status(batch_id, BatchStatus.COMPLETED)

        logger.info(
            "enrichment_finished",
            batch_id=batch_id,
            enriched=report.enriched_count,
            failed=report.failed_count,
            severity=report.severity
        )
        return report

    async def run_in_background(self, batch_id: str, model_id: str) -> None:
        """Background task entry point. Errors are logged, never raised."""
        try:
            await self.enrich_batch(batch_id, model_id)
        except AppError as e:
            logger.error("background_enrichment_failed", batch_id=batch_id, error=e.message)
            self._record_failure(batch_id, e.message)
        except Exception as e:
            logger.error("background_enrichment_crashed", batch_id=batch_id, error=str(e))
            self._record_failure(batch_id, str(e))

    def _record_failure(self, batch_id: str, message: str) -> None:
        try:
            self.batches.set_current_step(batch_id, f"Enrichment failed: {message}")
        except AppError as e:
            logger.warning("enrichment_failure_not_recorded", batch_id=batch_id, error=e.message)
