"""
Auto-classification.

Asks the connector to suggest a canonical category/collection for every
pending item of a batch and writes the suggestions back.
"""

from typing import Optional
import structlog

from integrations.source_connector import SourceConnector
from models.classification import ClassificationResult
from models.staging import StagingItemUpdate
from models.taxonomy import TaxonomyContext
from exceptions import AppError
from services.import_batch_service import ImportBatchService
from services.staging_service import StagingService

logger = structlog.get_logger(__name__)


class ClassificationService:
    """Assigns canonical taxonomy to staged items via the connector."""

    def __init__(
        self,
        connector: SourceConnector,
        staging_service: Optional[StagingService] = None,
        batch_service: Optional[ImportBatchService] = None
    ):
        self.connector = connector
        self.batches = batch_service or ImportBatchService()
        self.staging = staging_service or StagingService(self.batches)

    async def classify(
        self,
        batch_id: str,
        model_id: str,
        taxonomy: TaxonomyContext
    ) -> ClassificationResult:
        """
        Classify every pending item of a batch.

        Assignments naming ids outside the taxonomy are dropped. An item is
        unmatched when it still has neither a category nor a collection
        afterwards. Callers should reload from the staging store, since
        this touches fields the client never sent.

        Raises:
            BatchNotFoundError: If batch doesn't exist
            ConnectorError: If the connector call fails
        """
        self.batches.get_by_id(batch_id)
        items = self.staging.get_items(batch_id)

        if not items:
            return ClassificationResult(batch_id=batch_id)

        logger.info("classification_started", batch_id=batch_id, items=len(items), model=model_id)

        assignments = await self.connector.classify_items(items, taxonomy, model_id)

        category_ids = {entry.id for entry in taxonomy.categories}
        collection_ids = {entry.id for entry in taxonomy.collections}
        by_id = {item.id: item for item in items}
        classified = {item.id for item in items if item.category_id or item.collection_id}
        updated = 0

        for assignment in assignments:
            if assignment.item_id not in by_id:
                continue

            patch = {}
            if assignment.category_id in category_ids:
                patch["category_id"] = assignment.category_id
            if assignment.collection_id in collection_ids:
                patch["collection_id"] = assignment.collection_id
            if not patch:
                continue

            try:
                self.staging.update_item(assignment.item_id, StagingItemUpdate(**patch))
            except AppError as e:
                logger.warning("classification_write_failed", item_id=assignment.item_id, error=e.message)
                continue

            updated += 1
            classified.add(assignment.item_id)

        unmatched = [item.id for item in items if item.id not in classified]

        logger.info(
            "classification_finished",
            batch_id=batch_id,
            updated=updated,
            unmatched=len(unmatched)
        )

        return ClassificationResult(batch_id=batch_id, updated_count=updated, unmatched=unmatched)
