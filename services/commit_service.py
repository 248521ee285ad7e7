"""
Commit engine.

Promotes a batch's pending staged items into canonical inventory, then
removes the batch. Promotion is idempotent per staged item id: every
canonical row records the staging_item_id it came from, so a retry after a
partial failure never duplicates items.
"""

from typing import Optional
import structlog

from config import get_admin_client, get_supabase_client
from integrations.source_connector import SourceConnector
from models.commit import CommitResult
from models.enrichment import EnrichmentReport
from models.import_batch import BatchStatus
from models.staging import StagingItemResponse, StagingStatus
from exceptions import AppError, CommitError, NothingToCommitError
from services.enrichment_service import EnrichmentService
from services.import_batch_service import ImportBatchService
from services.staging_service import StagingService, to_db_row

logger = structlog.get_logger(__name__)

# Staged fields carried onto the canonical item
CANONICAL_FIELDS = (
    "name",
    "variant_of_name",
    "sku",
    "rental_price",
    "replacement_cost",
    "color",
    "material",
    "weight",
    "description",
    "image_urls",
    "category_id",
    "collection_id",
    "source_url",
)


def to_canonical_row(item: StagingItemResponse) -> dict:
    """Canonical item row for one staged item."""
    row = to_db_row({field: getattr(item, field) for field in CANONICAL_FIELDS})
    row["variant_of_name"] = item.group_key
    row["staging_item_id"] = item.id
    row["import_batch_id"] = item.batch_id
    return row


class CommitService:
    """
    Batch promotion into the items table.

    Writes canonical items with the admin client when a service key is
    configured, otherwise with the regular client.
    """

    def __init__(
        self,
        connector: Optional[SourceConnector] = None,
        staging_service: Optional[StagingService] = None,
        batch_service: Optional[ImportBatchService] = None,
        enrichment_service: Optional[EnrichmentService] = None
    ):
        self.db = get_supabase_client()
        self.writer = get_admin_client() or self.db
        self.items_table = "items"
        self.staging_table = "staging_items"
        self.batches = batch_service or ImportBatchService()
        self.staging = staging_service or StagingService(self.batches)
        self.enrichment = enrichment_service
        if self.enrichment is None and connector is not None:
            self.enrichment = EnrichmentService(connector, self.staging, self.batches)

    async def commit(self, batch_id: str, model_id: Optional[str] = None) -> CommitResult:
        """
        Promote every pending item of a batch, then delete the batch.

        Args:
            batch_id: Batch UUID
            model_id: Model for the pre-commit enrichment pass

        Returns:
            CommitResult with imported_count equal to the pending count
            before the commit started

        Raises:
            BatchNotFoundError: If batch doesn't exist
            NothingToCommitError: If no item is pending
            CommitError: If promotion or cleanup failed; nothing staged
                is deleted and the commit can be retried
                or items still need enrichment and no connector is
                configured
        """
        batch = self.batches.get_by_id(batch_id)
        pending = self.staging.get_items(batch_id)

        if not pending:
            committed = self.staging.get_items(batch_id, status=StagingStatus.COMMITTED)
            if not committed:
                raise NothingToCommitError(batch_id)
            # An earlier attempt promoted everything but did not clean up
            logger.info("commit_resuming_cleanup", batch_id=batch_id, committed=len(committed))
            self._cleanup(batch_id, len(committed))
            return CommitResult(batch_id=batch_id, imported_count=0, already_promoted_count=len(committed))

        pending_count = len(pending)
        logger.info("commit_started", batch_id=batch_id, pending=pending_count, status=batch.status.value)

        report: Optional[EnrichmentReport] = None
        needs_enrichment = any(item.needs_enrichment for item in pending)

        if needs_enrichment and batch.status != BatchStatus.COMPLETED:
            if self.enrichment is None:
                logger.error("commit_enrichment_unavailable", batch_id=batch_id)
                raise CommitError(batch_id, "Items still need enrichment and no connector is configured")
            try:
                report = await self.enrichment.enrich_batch(batch_id, model_id)
                pending = self.staging.get_items(batch_id)
            except AppError as e:
                logger.error("commit_enrichment_failed", batch_id=batch_id, error=e.message)
                raise CommitError(batch_id, f"Enrichment before commit failed: {e.message}")

        already_promoted = self._promote(batch_id, pending)
        self._cleanup(batch_id, pending_count)

        logger.info(
            "commit_finished",
            batch_id=batch_id,
            imported=pending_count,
            already_promoted=already_promoted
        )

        return CommitResult(
            batch_id=batch_id,
            imported_count=pending_count,
            already_promoted_count=already_promoted,
            enrichment=report,
        )

    def _promote(self, batch_id: str, pending: list[StagingItemResponse]) -> int:
        """
        Insert canonical rows for staged items not promoted yet, then mark
        every pending item committed.

        Returns:
            How many items were already in inventory from an earlier attempt
        """
        ids = [item.id for item in pending]

        try:
            existing = (
                self.writer.table(self.items_table)
                .select("staging_item_id")
                .in_("staging_item_id", ids)
                .execute()
            )
            promoted_ids = {row["staging_item_id"] for row in existing.data}

            rows = [to_canonical_row(item) for item in pending if item.id not in promoted_ids]
            if rows:
                self.writer.table(self.items_table).insert(rows).execute()

            (
                self.db.table(self.staging_table)
                .update({"status": StagingStatus.COMMITTED.value})
                .in_("id", ids)
                .execute()
            )
        except Exception as e:
            logger.error("commit_promotion_failed", batch_id=batch_id, error=str(e))
            raise CommitError(batch_id, f"Promotion failed: {e}")

        logger.info("items_promoted", batch_id=batch_id, inserted=len(rows), skipped=len(promoted_ids))
        return len(promoted_ids)

    def _cleanup(self, batch_id: str, promoted_count: int) -> None:
        """Delete committed staging rows, then the batch."""
        try:
            (
                self.db.table(self.staging_table)
                .delete()
                .eq("batch_id", batch_id)
                .eq("status", StagingStatus.COMMITTED.value)
                .execute()
            )
            self.batches.delete(batch_id)
        except Exception as e:
            logger.error("commit_cleanup_failed", batch_id=batch_id, error=str(e))
            raise CommitError(batch_id, f"Cleanup failed: {e}", promoted_count=promoted_count)
