"""
Canonical taxonomy lookups.

Categories and collections are owned by the inventory side; the import
pipeline only reads them. A TaxonomyContext is built once per session and
passed explicitly into each stage.
"""

from enum import Enum
from typing import Optional
from pydantic import ConfigDict, Field

from models.base import BaseSchema


class SuggestedType(str, Enum):
    """What the connector thinks a taxonomy candidate is."""
    CATEGORY = "category"
    COLLECTION = "collection"


class TaxonomyEntry(BaseSchema):
    """One canonical category or collection."""

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    id: str
    name: str


class TaxonomyContext(BaseSchema):
    """Read-only view of canonical categories and collections."""

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    categories: tuple[TaxonomyEntry, ...] = Field(default_factory=tuple)
    collections: tuple[TaxonomyEntry, ...] = Field(default_factory=tuple)

    def category_name(self, category_id: Optional[str]) -> Optional[str]:
        if not category_id:
            return None
        for entry in self.categories:
            if entry.id == category_id:
                return entry.name
        return None

    def collection_name(self, collection_id: Optional[str]) -> Optional[str]:
        if not collection_id:
            return None
        for entry in self.collections:
            if entry.id == collection_id:
                return entry.name
        return None

    def entries_for(self, suggested_type: SuggestedType) -> tuple[TaxonomyEntry, ...]:
        """Entries a candidate of this type may be matched against."""
        if suggested_type == SuggestedType.COLLECTION:
            return self.collections
        return self.categories
