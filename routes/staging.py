"""
Staging API routes.

Persisted half of curation. The optimistic move with rollback lives in the
client; these endpoints are the writes it makes.
"""

from fastapi import APIRouter, Query
from fastapi.responses import JSONResponse
from typing import Optional
import structlog

from models.staging import (
    MoveItemRequest,
    RenameGroupRequest,
    RenameGroupResult,
    StagingItemGroup,
    StagingItemResponse,
    StagingItemUpdate,
    StagingStatus,
)
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

@router.get("/items", response_model=list[StagingItemResponse])
async def list_items(
    batch_id: str = Query(..., description="Batch UUID"),
    status: Optional[StagingStatus] = Query(StagingStatus.PENDING, description="Filter by status")
):
    """Staged items of a batch, newest first."""
    try:
        return get_staging_service().get_items(batch_id, status=status)

    except Exception as e:
        return handle_error(e)


@router.get("/groups", response_model=list[StagingItemGroup])
async def list_groups(batch_id: str = Query(..., description="Batch UUID")):
    """Pending items grouped by variant group, newest group first."""
    try:
        taxonomy = get_taxonomy_service().get_context()
        return get_staging_service().get_groups(batch_id, taxonomy)

    except Exception as e:
        return handle_error(e)


@router.get("/items/{item_id}", response_model=StagingItemResponse)
async def get_item(item_id: str):
    try:
        return get_staging_service().get_by_id(item_id)

    except Exception as e:
        return handle_error(e)


@router.patch("/items/{item_id}", response_model=StagingItemResponse)
async def update_item(item_id: str, data: StagingItemUpdate):
    """
    Edit one staged item. Only fields present in the body are written.

    Raises:
        404: Item not found
    """
    try:
        return get_staging_service().update_item(item_id, data)

    except Exception as e:
        return handle_error(e)


@router.delete("/items/{item_id}", status_code=204)
async def remove_item(item_id: str):
    """Hard delete one staged item. Irreversible."""
    try:
        get_staging_service().remove_item(item_id)
        return None

    except Exception as e:
        return handle_error(e)


@router.post("/items/{item_id}/move", response_model=StagingItemResponse)
async def move_item(item_id: str, data: MoveItemRequest):
    """Put one item into another variant group."""
    try:
        return get_staging_service().move_item(item_id, data.target_group)

    except Exception as e:
        return handle_error(e)


@router.post("/groups/rename", response_model=RenameGroupResult)
async def rename_group(data: RenameGroupRequest):
    """Rename a group across every current member."""
    try:
        return get_staging_service().rename_group(data.batch_id, data.old_name, data.new_name)

    except Exception as e:
        return handle_error(e)
