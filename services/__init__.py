"""
Business logic services.

Each service handles one stage of the import pipeline.
"""

from services.import_batch_service import ImportBatchService, get_import_batch_service
from services.staging_service import StagingService, get_staging_service, group_staging_items
from services.taxonomy_service import TaxonomyService, get_taxonomy_service
from services.activity_log import ActivityLog, LogEntry, LogLevel, fold_events
from services.stream_guard import guarded_stream
from services.extraction_service import ExtractionService, build_mappings
from services.scan_service import ScanService
from services.classification_service import ClassificationService
from services.enrichment_service import EnrichmentService
from services.commit_service import CommitService
from services.curation_service import CurationSession
from services.import_session_service import ImportSession

__all__ = [
    "ImportBatchService",
    "get_import_batch_service",
    "StagingService",
    "get_staging_service",
    "group_staging_items",
    "TaxonomyService",
    "get_taxonomy_service",
    "ActivityLog",
    "LogEntry",
    "LogLevel",
    "fold_events",
    "guarded_stream",
    "ExtractionService",
    "build_mappings",
    "ScanService",
    "ClassificationService",
    "EnrichmentService",
    "CommitService",
    "CurationSession",
    "ImportSession",
]
