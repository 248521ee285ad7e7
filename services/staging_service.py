"""
Staging store and curation operations.

Holds not-yet-canonical item candidates namespaced by batch, and the
persisted half of curation: edit, remove, rename group, move item.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Iterable, Optional
import structlog

from config import get_supabase_client
from models.staging import (
    RenameGroupResult,
    StagingItemCreate,
    StagingItemGroup,
    StagingItemResponse,
    StagingItemUpdate,
    StagingStatus,
)
from models.taxonomy import TaxonomyContext
from exceptions import AppError, DatabaseError, StagingItemNotFoundError
from services.import_batch_service import ImportBatchService

logger = structlog.get_logger(__name__)


def to_db_row(data: dict) -> dict:
    """Money fields go to PostgREST as plain numbers."""
    return {key: float(value) if isinstance(value, Decimal) else value for key, value in data.items()}


def _newest_first(item: StagingItemResponse) -> tuple:
    # Ties on created_at fall back to id so ordering is deterministic
    return (-item.created_at.timestamp(), item.id)


def group_staging_items(
    items: Iterable[StagingItemResponse],
    taxonomy: TaxonomyContext
) -> list[StagingItemGroup]:
    """
    Group pending items into variant groups.

    Items are partitioned by variant_of_name (falling back to name). Members
    are ordered newest first and groups by their newest member. A group's
    category/collection names come from its newest member only.

    Args:
        items: Staged items of one batch (non-pending items are ignored)
        taxonomy: Canonical names for category/collection ids

    Returns:
        Groups, newest first
    """
    partitions: dict[str, list[StagingItemResponse]] = {}
    for item in items:
        if item.status != StagingStatus.PENDING:
            continue
        partitions.setdefault(item.group_key, []).append(item)

    groups = []
    for name, members in partitions.items():
        members = sorted(members, key=_newest_first)
        newest = members[0]
        groups.append(StagingItemGroup(
            name=name,
            items=members,
            category_name=taxonomy.category_name(newest.category_id),
            collection_name=taxonomy.collection_name(newest.collection_id),
            variant_count=len(members),
            created_at=newest.created_at,
        ))

    groups.sort(key=lambda g: (-g.created_at.timestamp(), g.name))
    return groups


class StagingService:
    """
    Staging item persistence and curation.

    Rename and remove are best-effort and non-transactional; concurrent
    edits of the same batch are not guarded.
    """

    def __init__(self, batch_service: Optional[ImportBatchService] = None):
        self.db = get_supabase_client()
        self.table = "staging_items"
        self.batches = batch_service or ImportBatchService()

    # ===================
    # READ OPERATIONS
    # ===================

    def get_items(
        self,
        batch_id: str,
        status: Optional[StagingStatus] = StagingStatus.PENDING
    ) -> list[StagingItemResponse]:
        """
        Get staged items of a batch, newest first.

        Args:
            batch_id: Batch UUID
            status: Filter by status (None for all)
        """
        logger.debug("getting_staging_items", batch_id=batch_id, status=status)

        try:
            query = self.db.table(self.table).select("*").eq("batch_id", batch_id)
            if status:
                query = query.eq("status", status.value)
            result = query.order("created_at", desc=True).execute()
        except Exception as e:
            logger.error("get_staging_items_failed", batch_id=batch_id, error=str(e))
            raise DatabaseError("select", str(e))

        return [StagingItemResponse(**row) for row in result.data]

    def get_by_id(self, item_id: str) -> StagingItemResponse:
        """
        Raises:
            StagingItemNotFoundError: If item doesn't exist
        """
        try:
            result = (
                self.db.table(self.table)
                .select("*")
                .eq("id", item_id)
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.error("get_staging_item_failed", item_id=item_id, error=str(e))
            raise DatabaseError("select", str(e))

        if not result.data:
            raise StagingItemNotFoundError(item_id)

        return StagingItemResponse(**result.data[0])

    def get_groups(self, batch_id: str, taxonomy: TaxonomyContext) -> list[StagingItemGroup]:
        """Pending items of a batch, grouped for review."""
        return group_staging_items(self.get_items(batch_id), taxonomy)

    # ===================
    # WRITE OPERATIONS
    # ===================

    def create_items(
        self,
        batch_id: str,
        items: list[StagingItemCreate]
    ) -> list[StagingItemResponse]:
        """
        Insert scraped items as pending.

        Each row gets its own creation time in input order, and
        variant_of_name defaults to the item's own name.

        The batch's scraped counter is raised before the insert and taken
        back if the insert fails, so rows never exist uncounted.

        Returns:
            Created items
        """
        if not items:
            return []

        logger.info("creating_staging_items", batch_id=batch_id, count=len(items))

        base = datetime.now(timezone.utc)
        rows = []
        for offset, item in enumerate(items):
            row = to_db_row(item.model_dump())
            row["variant_of_name"] = item.variant_of_name or item.name
            row["batch_id"] = batch_id
            row["status"] = StagingStatus.PENDING.value
            row["created_at"] = (base + timedelta(microseconds=offset)).isoformat()
            rows.append(row)

        self.batches.add_scraped(batch_id, len(rows))

        try:
            result = self.db.table(self.table).insert(rows).execute()
        except Exception as e:
            logger.error("create_staging_items_failed", batch_id=batch_id, error=str(e))
            self._release(self.batches.add_scraped, batch_id, -len(rows))
            raise DatabaseError("insert", str(e))

        created = [StagingItemResponse(**row) for row in result.data]

        logger.info("staging_items_created", batch_id=batch_id, count=len(created))
        return created

    def update_item(self, item_id: str, data: StagingItemUpdate) -> StagingItemResponse:
        """
        Edit one staged item. Only fields explicitly provided are written.

        Raises:
            StagingItemNotFoundError: If item doesn't exist
        """
        patch = data.to_patch()
        logger.info("updating_staging_item", item_id=item_id, fields=list(patch.keys()))

        if not patch:
            return self.get_by_id(item_id)

        return self._patch(item_id, patch)

    def _patch(self, item_id: str, patch: dict) -> StagingItemResponse:
        try:
            result = (
                self.db.table(self.table)
                .update(to_db_row(patch))
                .eq("id", item_id)
                .execute()
            )
        except Exception as e:
            logger.error("update_staging_item_failed", item_id=item_id, error=str(e))
            raise DatabaseError("update", str(e))

        if not result.data:
            raise StagingItemNotFoundError(item_id)

        return StagingItemResponse(**result.data[0])

    def move_item(self, item_id: str, target_group: Optional[str]) -> StagingItemResponse:
        """Put one item into another variant group (None groups it under its own name)."""
        logger.info("moving_staging_item", item_id=item_id, target_group=target_group)
        return self._patch(item_id, {"variant_of_name": target_group})

    def fill_details(self, item_id: str, patch: dict) -> StagingItemResponse:
        """Write enrichment results and clear the enrichment flag."""
        return self._patch(item_id, {
            **patch,
            "needs_enrichment": False,
            "enriched_at": datetime.now(timezone.utc).isoformat(),
        })

    def remove_item(self, item_id: str) -> bool:
        """
        Hard delete one staged item. Irreversible.

        The batch's removed counter is incremented before the delete and
        taken back if the delete fails, so item accounting still balances.

        Raises:
            StagingItemNotFoundError: If item doesn't exist
            DatabaseError: If the counter or the delete failed; the row
                is still there
        """
        item = self.get_by_id(item_id)
        logger.info("removing_staging_item", item_id=item_id, batch_id=item.batch_id)

        self.batches.add_removed(item.batch_id, 1)

        try:
            self.db.table(self.table).delete().eq("id", item_id).execute()
        except Exception as e:
            logger.error("remove_staging_item_failed", item_id=item_id, error=str(e))
            self._release(self.batches.add_removed, item.batch_id, -1)
            raise DatabaseError("delete", str(e))

        return True

    def _release(self, adjust, batch_id: str, count: int) -> None:
        """Take back a counter reservation after a failed write."""
        try:
            adjust(batch_id, count)
        except AppError as e:
            logger.error("batch_counter_release_failed", batch_id=batch_id, count=count, error=e.message)

    def rename_group(self, batch_id: str, old_name: str, new_name: str) -> RenameGroupResult:
        """
        Rewrite variant_of_name on every current member of a group.

        Members are resolved by group key at call time.
        """
        logger.info("renaming_group", batch_id=batch_id, old_name=old_name, new_name=new_name)

        member_ids = [item.id for item in self.get_items(batch_id) if item.group_key == old_name]

        if not member_ids or old_name == new_name:
            return RenameGroupResult(old_name=old_name, new_name=new_name, updated_count=0)

        try:
            result = (
                self.db.table(self.table)
                .update({"variant_of_name": new_name})
                .in_("id", member_ids)
                .execute()
            )
        except Exception as e:
            logger.error("rename_group_failed", batch_id=batch_id, error=str(e))
            raise DatabaseError("update", str(e))

        logger.info("group_renamed", batch_id=batch_id, updated=len(result.data))
        return RenameGroupResult(old_name=old_name, new_name=new_name, updated_count=len(result.data))


# Singleton instance for convenience
_staging_service: Optional[StagingService] = None

def get_staging_service() -> StagingService:
    """Get or create StagingService instance."""
    global _staging_service
    if _staging_service is None:
        _staging_service = StagingService()
    return _staging_service
