"""
Pydantic models for validation and serialization.
"""

from models.base import BaseSchema
from models.taxonomy import SuggestedType, TaxonomyEntry, TaxonomyContext
from models.extraction import (
    ExtractedCategory,
    CategoryMapping,
    ExplorationResult,
    TokenUsage,
    ModelInfo,
    ExtractRequest,
    ExploreRequest,
    ExploreResponse,
    MatchRequest,
)
from models.staging import (
    StagingStatus,
    ScrapedProduct,
    StagingItemCreate,
    StagingItemUpdate,
    StagingItemResponse,
    StagingItemGroup,
    MoveItemRequest,
    RenameGroupRequest,
    RenameGroupResult,
)
from models.import_batch import (
    BatchStatus,
    ImportBatchCreate,
    ImportBatchResponse,
    BatchCounts,
    BatchProgress,
)
from models.stream import (
    ChunkEvent,
    UsageEvent,
    LogEvent,
    CategoriesResultEvent,
    ProductsResultEvent,
    CategoryStartEvent,
    CategoryDoneEvent,
    ScanResultEvent,
    to_ndjson,
)
from models.scan import ScanSelection, ScanRequest, ScanOutcome
from models.enrichment import ItemDetails, EnrichmentReport
from models.classification import ClassificationAssignment, ClassificationResult, ClassifyRequest
from models.commit import CommitRequest, CommitResult

__all__ = [
    # Base
    "BaseSchema",
    # Taxonomy
    "SuggestedType",
    "TaxonomyEntry",
    "TaxonomyContext",
    # Extraction
    "ExtractedCategory",
    "CategoryMapping",
    "ExplorationResult",
    "TokenUsage",
    "ModelInfo",
    "ExtractRequest",
    "ExploreRequest",
    "ExploreResponse",
    "MatchRequest",
    # Staging
    "StagingStatus",
    "ScrapedProduct",
    "StagingItemCreate",
    "StagingItemUpdate",
    "StagingItemResponse",
    "StagingItemGroup",
    "MoveItemRequest",
    "RenameGroupRequest",
    "RenameGroupResult",
    # Batches
    "BatchStatus",
    "ImportBatchCreate",
    "ImportBatchResponse",
    "BatchCounts",
    "BatchProgress",
    # Stream events
    "ChunkEvent",
    "UsageEvent",
    "LogEvent",
    "CategoriesResultEvent",
    "ProductsResultEvent",
    "CategoryStartEvent",
    "CategoryDoneEvent",
    "ScanResultEvent",
    "to_ndjson",
    # Scan
    "ScanSelection",
    "ScanRequest",
    "ScanOutcome",
    # Enrichment
    "ItemDetails",
    "EnrichmentReport",
    # Classification
    "ClassificationAssignment",
    "ClassificationResult",
    "ClassifyRequest",
    # Commit
    "CommitRequest",
    "CommitResult",
]
