"""
Taxonomy service.

Loads canonical categories and collections once per session into a
read-only TaxonomyContext that stages receive as an explicit argument.
"""

from typing import Optional
import structlog

from config import get_supabase_client
from models.taxonomy import TaxonomyContext, TaxonomyEntry
from exceptions import DatabaseError

logger = structlog.get_logger(__name__)


class TaxonomyService:
    """Reads canonical categories and collections."""

    def __init__(self):
        self.db = get_supabase_client()

    def _load(self, table: str) -> tuple[TaxonomyEntry, ...]:
        try:
            result = (
                self.db.table(table)
                .select("id, name")
                .order("name")
                .execute()
            )
        except Exception as e:
            logger.error("taxonomy_load_failed", table=table, error=str(e))
            raise DatabaseError("select", str(e))

        return tuple(TaxonomyEntry(**row) for row in result.data)

    def get_context(self) -> TaxonomyContext:
        """
        Snapshot canonical taxonomy.

        Returns:
            TaxonomyContext with categories and collections ordered by name
        """
        context = TaxonomyContext(
            categories=self._load("categories"),
            collections=self._load("collections"),
        )
        logger.info(
            "taxonomy_loaded",
            categories=len(context.categories),
            collections=len(context.collections)
        )
        return context


# Singleton instance for convenience
_taxonomy_service: Optional[TaxonomyService] = None

def get_taxonomy_service() -> TaxonomyService:
    """Get or create TaxonomyService instance."""
    global _taxonomy_service
    if _taxonomy_service is None:
        _taxonomy_service = TaxonomyService()
    return _taxonomy_service
