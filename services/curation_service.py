"""
Curation session.

Holds the review view's local copy of a batch's pending items and keeps it
consistent with the staging store. Moves are optimistic: local state
changes first, then the store; a failed write restores the captured prior
value so the two never silently diverge.
"""

from typing import Optional
import structlog

from models.classification import ClassificationResult
from models.staging import (
    RenameGroupResult,
    StagingItemGroup,
    StagingItemResponse,
    StagingItemUpdate,
)
from models.taxonomy import TaxonomyContext
from exceptions import AppError, StagingItemNotFoundError, StagingPersistenceError
from services.classification_service import ClassificationService
from services.staging_service import StagingService, group_staging_items

logger = structlog.get_logger(__name__)


class CurationSession:
    """Review state for one batch."""

    def __init__(
        self,
        batch_id: str,
        staging_service: StagingService,
        taxonomy: TaxonomyContext,
        classification_service: Optional[ClassificationService] = None
    ):
        self.batch_id = batch_id
        self.staging = staging_service
        self.taxonomy = taxonomy
        self.classification = classification_service
        self.items: dict[str, StagingItemResponse] = {}
        self.expanded_groups: set[str] = set()
        # variant_of_name as loaded, so a move back home restores an unset key
        self.loaded_keys: dict[str, Optional[str]] = {}

    # ===================
    # VIEW
    # ===================

    def refresh(self) -> list[StagingItemGroup]:
        """Reload pending items from the staging store."""
        items = self.staging.get_items(self.batch_id)
        self.items = {item.id: item for item in items}
        self.loaded_keys = {item.id: item.variant_of_name for item in items}
        logger.debug("curation_refreshed", batch_id=self.batch_id, items=len(items))
        return self.groups()

    def groups(self) -> list[StagingItemGroup]:
        return group_staging_items(self.items.values(), self.taxonomy)

    def item(self, item_id: str) -> StagingItemResponse:
        try:
            return self.items[item_id]
        except KeyError:
            raise StagingItemNotFoundError(item_id)

    def toggle_group(self, name: str) -> bool:
        """Flip a group's expanded flag. Returns the new state."""
        if name in self.expanded_groups:
            self.expanded_groups.discard(name)
            return False
        self.expanded_groups.add(name)
        return True

    # ===================
    # MUTATIONS
    # ===================

    def move_item(self, item_id: str, target_group: str) -> StagingItemResponse:
        """
        Move an item into another variant group.

        A move into the item's current group changes nothing and makes no
        write. An item loaded without variant_of_name that moves back to
        its own name gets the key unset again.

        Raises:
            StagingPersistenceError: If the write failed; the item keeps
                its previous group
        """
        item = self.item(item_id)

        if item.group_key == target_group:
            return item

        value: Optional[str] = target_group
        if target_group == item.name and item_id in self.loaded_keys and self.loaded_keys[item_id] is None:
            value = None

        inverse = {"variant_of_name": item.variant_of_name}

        self.items[item_id] = item.model_copy(update={"variant_of_name": value})
        self.expanded_groups.add(target_group)

        try:
            saved = self.staging.move_item(item_id, value)
        except AppError as e:
            self.items[item_id] = self.items[item_id].model_copy(update=inverse)
            logger.warning("move_rolled_back", item_id=item_id, target_group=target_group, error=e.message)
            raise StagingPersistenceError(item_id, f"Failed to move item: {e.message}")

        self.items[item_id] = saved
        return saved

    def edit_item(self, item_id: str, data: StagingItemUpdate) -> StagingItemResponse:
        """Persist an edit, then take the stored row as the local copy."""
        self.item(item_id)
        saved = self.staging.update_item(item_id, data)
        self.items[item_id] = saved
        if "variant_of_name" in data.to_patch():
            self.loaded_keys[item_id] = saved.variant_of_name
        return saved

    def remove_item(self, item_id: str) -> None:
        """
        Hard delete; the item disappears locally only once the store confirms.

        The store counts the removal before deleting, so a failure leaves
        both the row and the local copy in place.
        """
        self.item(item_id)
        self.staging.remove_item(item_id)
        del self.items[item_id]
        self.loaded_keys.pop(item_id, None)

    def rename_group(self, old_name: str, new_name: str) -> RenameGroupResult:
        result = self.staging.rename_group(self.batch_id, old_name, new_name)
        if result.updated_count:
            self.refresh()
            if old_name in self.expanded_groups:
                self.expanded_groups.discard(old_name)
                self.expanded_groups.add(new_name)
        return result

    async def auto_classify(self, model_id: str) -> ClassificationResult:
        """
        Run auto-classification, then reload from the store rather than
        patching local items.
        """
        if self.classification is None:
            raise ValueError("No classification service configured for this session")

        result = await self.classification.classify(self.batch_id, model_id, self.taxonomy)
        self.refresh()
        return result
