"""
Import batch service.

A batch is the namespace of the Staging Store: every staged item belongs to
exactly one batch, and deleting a batch cascades to its items.
"""

from collections import Counter
from typing import Optional
import structlog

from config import get_supabase_client
from models.import_batch import (
    BatchCounts,
    BatchProgress,
    BatchStatus,
    ImportBatchResponse,
)
from models.staging import StagingStatus
from exceptions import BatchNotFoundError, DatabaseError
from utils.url_validator import validate_external_url

logger = structlog.get_logger(__name__)


class ImportBatchService:
    """
    Import batch persistence.

    Handles creation, status/progress updates, item accounting and
    cascading deletion.
    """

    def __init__(self):
        self.db = get_supabase_client()
        self.table = "import_batches"
        self.items_table = "staging_items"

    # ===================
    # READ OPERATIONS
    # ===================

    def get_by_id(self, batch_id: str) -> ImportBatchResponse:
        """
        Get a batch by ID.

        Raises:
            BatchNotFoundError: If batch doesn't exist
        """
        logger.debug("getting_batch", batch_id=batch_id)

        try:
            result = (
                self.db.table(self.table)
                .select("*")
                .eq("id", batch_id)
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.error("get_batch_failed", batch_id=batch_id, error=str(e))
            raise DatabaseError("select", str(e))

        if not result.data:
            raise BatchNotFoundError(batch_id)

        return ImportBatchResponse(**result.data[0])

    def get_all(self) -> list[ImportBatchResponse]:
        """
        List batches newest first, each with its pending item count.
        """
        logger.info("getting_batches")

        try:
            result = (
                self.db.table(self.table)
                .select("*")
                .order("created_at", desc=True)
                .execute()
            )
            batches = [ImportBatchResponse(**row) for row in result.data]

            if not batches:
                return []

            pending = (
                self.db.table(self.items_table)
                .select("batch_id")
                .in_("batch_id", [b.id for b in batches])
                .eq("status", StagingStatus.PENDING.value)
                .execute()
            )
        except Exception as e:
            logger.error("get_batches_failed", error=str(e))
            raise DatabaseError("select", str(e))

        pending_by_batch = Counter(row["batch_id"] for row in pending.data)
        for batch in batches:
            batch.pending_count = pending_by_batch.get(batch.id, 0)

        logger.info("batches_retrieved", count=len(batches))
        return batches

    def get_counts(self, batch_id: str) -> BatchCounts:
        """
        Item accounting for a batch.

        pending + committed + removed always equals items_scraped: removed
        items are hard-deleted, so they are tracked by a counter on the batch.
        """
        batch = self.get_by_id(batch_id)

        try:
            result = (
                self.db.table(self.items_table)
                .select("status")
                .eq("batch_id", batch_id)
                .execute()
            )
        except Exception as e:
            logger.error("get_batch_counts_failed", batch_id=batch_id, error=str(e))
            raise DatabaseError("select", str(e))

        statuses = Counter(row["status"] for row in result.data)

        return BatchCounts(
            batch_id=batch_id,
            pending=statuses.get(StagingStatus.PENDING.value, 0),
            committed=statuses.get(StagingStatus.COMMITTED.value, 0),
            removed=batch.items_removed,
            items_scraped=batch.items_scraped,
        )

    def get_progress(self, batch_id: str) -> BatchProgress:
        """Polling view used while enrichment runs in the background."""
        batch = self.get_by_id(batch_id)
        return BatchProgress(
            batch_id=batch_id,
            status=batch.status,
            current_step=batch.current_step,
            counts=self.get_counts(batch_id),
        )

    # ===================
    # WRITE OPERATIONS
    # ===================

    def create(self, source_url: str) -> ImportBatchResponse:
        """
        Create an empty batch before any scan traffic.

        Raises:
            UnsafeUrlError: If the URL targets an internal address
        """
        source_url = validate_external_url(source_url)
        logger.info("creating_batch", source_url=source_url)

        try:
            result = (
                self.db.table(self.table)
                .insert({
                    "source_url": source_url,
                    "status": BatchStatus.PENDING.value,
                    "items_scraped": 0,
                    "items_removed": 0,
                })
                .execute()
            )
        except Exception as e:
            logger.error("create_batch_failed", source_url=source_url, error=str(e))
            raise DatabaseError("insert", str(e))

        batch = ImportBatchResponse(**result.data[0])
        logger.info("batch_created", batch_id=batch.id)
        return batch

    def _update(self, batch_id: str, data: dict, operation: str) -> None:
        try:
            result = (
                self.db.table(self.table)
                .update(data)
                .eq("id", batch_id)
                .execute()
            )
        except Exception as e:
            logger.error(f"{operation}_failed", batch_id=batch_id, error=str(e))
            raise DatabaseError("update", str(e))

        if not result.data:
            raise BatchNotFoundError(batch_id)

    def update_status(self, batch_id: str, status: BatchStatus) -> None:
        logger.info("batch_status_changed", batch_id=batch_id, status=status.value)
        self._update(batch_id, {"status": status.value}, "update_batch_status")

    def set_current_step(self, batch_id: str, step: Optional[str]) -> None:
        """Progress text shown to pollers."""
        self._update(batch_id, {"current_step": step}, "set_batch_step")

    def add_scraped(self, batch_id: str, count: int) -> None:
        """
        Record newly inserted items. Single writer per batch, no locking.

        A negative count takes back a reservation whose write failed.
        """
        if count == 0:
            return
        batch = self.get_by_id(batch_id)
        self._update(batch_id, {"items_scraped": batch.items_scraped + count}, "add_scraped")

    def add_removed(self, batch_id: str, count: int = 1) -> None:
        if count == 0:
            return
        batch = self.get_by_id(batch_id)
        self._update(batch_id, {"items_removed": batch.items_removed + count}, "add_removed")

    def delete(self, batch_id: str) -> bool:
        """
        Delete a batch and every staged item in it.

        Raises:
            BatchNotFoundError: If batch doesn't exist
        """
        logger.info("deleting_batch", batch_id=batch_id)

        self.get_by_id(batch_id)

        try:
            self.db.table(self.items_table).delete().eq("batch_id", batch_id).execute()
            self.db.table(self.table).delete().eq("id", batch_id).execute()
        except Exception as e:
            logger.error("delete_batch_failed", batch_id=batch_id, error=str(e))
            raise DatabaseError("delete", str(e))

        logger.info("batch_deleted", batch_id=batch_id)
        return True


# Singleton instance for convenience
_import_batch_service: Optional[ImportBatchService] = None

def get_import_batch_service() -> ImportBatchService:
    """Get or create ImportBatchService instance."""
    global _import_batch_service
    if _import_batch_service is None:
        _import_batch_service = ImportBatchService()
    return _import_batch_service
