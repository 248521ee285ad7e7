"""
Import batch API routes.

Enrichment runs as a background task; clients poll /progress.
"""

from fastapi import APIRouter, BackgroundTasks
from fastapi.responses import JSONResponse
from typing import Optional
import structlog

from config import settings
from integrations.claude_connector import get_claude_connector
from models.classification import ClassificationResult, ClassifyRequest
from models.commit import CommitRequest, CommitResult
from models.import_batch import (
    BatchCounts,
    BatchProgress,
    ImportBatchCreate,
    ImportBatchResponse,
)
from services.classification_service import ClassificationService
from services.commit_service import CommitService
from services.enrichment_service import EnrichmentService
from services.import_batch_service import get_import_batch_service
from services.staging_service import get_staging_service
from services.taxonomy_service import get_taxonomy_service
from exceptions import AppError

logger = structlog.get_logger(__name__)

router = APIRouter()


# ===================
# EXCEPTION HANDLER
# ===================

def handle_error(e: Exception) -> JSONResponse:
    """Convert exception to JSON response."""
    if isinstance(e, AppError):
        return JSONResponse(
            status_code=e.status_code,
            content=e.to_dict()
        )
    logger.error("unexpected_error", error=str(e), type=type(e).__name__)
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred"
            }
        }
    )


# ===================
# ROUTES
# ===================

@router.get("", response_model=list[ImportBatchResponse])
async def list_batches():
    """List batches newest first, with pending item counts."""
    try:
        return get_import_batch_service().get_all()

    except Exception as e:
        return handle_error(e)


@router.post("", response_model=ImportBatchResponse, status_code=201)
async def create_batch(data: ImportBatchCreate):
    """
    Create an empty batch.

    Raises:
        422: Source URL is not allowed
    """
    try:
        return get_import_batch_service().create(data.source_url)

    except Exception as e:
        return handle_error(e)


@router.get("/{batch_id}", response_model=ImportBatchResponse)
async def get_batch(batch_id: str):
    try:
        return get_import_batch_service().get_by_id(batch_id)

    except Exception as e:
        return handle_error(e)


@router.delete("/{batch_id}", status_code=204)
async def delete_batch(batch_id: str):
    """
    Delete a batch and all of its staged items.

    Raises:
        404: Batch not found
    """
    try:
        get_import_batch_service().delete(batch_id)
        return None

    except Exception as e:
        return handle_error(e)


@router.get("/{batch_id}/counts", response_model=BatchCounts)
async def get_batch_counts(batch_id: str):
    """Pending, committed and removed counts against items scraped."""
    try:
        return get_import_batch_service().get_counts(batch_id)

    except Exception as e:
        return handle_error(e)


@router.get("/{batch_id}/progress", response_model=BatchProgress)
async def get_batch_progress(batch_id: str):
    """Poll background work on a batch."""
    try:
        return get_import_batch_service().get_progress(batch_id)

    except Exception as e:
        return handle_error(e)


@router.post("/{batch_id}/enrich", status_code=202)
async def enrich_batch(
    batch_id: str,
    background_tasks: BackgroundTasks,
    data: Optional[ClassifyRequest] = None
):
    """
    Start enrichment in the background.

    Returns immediately; poll /progress until status is completed.
    """
    try:
        batches = get_import_batch_service()
        batches.get_by_id(batch_id)

        service = EnrichmentService(get_claude_connector(), get_staging_service(), batches)
        model_id = (data.model_id if data else None) or settings.default_model
        background_tasks.add_task(service.run_in_background, batch_id, model_id)

        logger.info("enrichment_scheduled", batch_id=batch_id, model=model_id)
        return {"batch_id": batch_id, "status": "started"}

    except Exception as e:
        return handle_error(e)


@router.post("/{batch_id}/classify", response_model=ClassificationResult)
async def classify_batch(batch_id: str, data: Optional[ClassifyRequest] = None):
    """
    Assign canonical categories/collections to pending items.

    Reload staged items afterwards; this writes fields the client never sent.
    """
    try:
        service = ClassificationService(
            get_claude_connector(),
            get_staging_service(),
            get_import_batch_service()
        )
        taxonomy = get_taxonomy_service().get_context()
        model_id = (data.model_id if data else None) or settings.default_model
        return await service.classify(batch_id, model_id, taxonomy)

    except Exception as e:
        return handle_error(e)


@router.post("/{batch_id}/commit", response_model=CommitResult)
async def commit_batch(batch_id: str, data: Optional[CommitRequest] = None):
    """
    Promote pending items into inventory and delete the batch.

    Raises:
        404: Batch not found
        409: Nothing pending
        500: Commit failed; the batch is untouched and can be retried
    """
    try:
        service = CommitService(
            get_claude_connector(),
            get_staging_service(),
            get_import_batch_service()
        )
        model_id = (data.model_id if data else None) or settings.default_model
        return await service.commit(batch_id, model_id)

    except Exception as e:
        return handle_error(e)
