"""
Import pipeline API routes.

Extraction and scan stream newline-delimited JSON events; the last line of
every stream is the single terminal result.
"""

from typing import AsyncIterator
from fastapi import APIRouter
from fastapi.responses import JSONResponse, StreamingResponse
import structlog

from config import settings
from integrations.claude_connector import get_claude_connector
from models.extraction import (
    CategoryMapping,
    ExploreRequest,
    ExploreResponse,
    ExtractRequest,
    MatchRequest,
    ModelInfo,
)
from models.scan import ScanRequest
from models.stream import to_ndjson
from models.taxonomy import TaxonomyContext
from services.extraction_service import ExtractionService, build_mappings
from services.import_batch_service import get_import_batch_service
from services.scan_service import ScanService
from services.staging_service import get_staging_service
from services.taxonomy_service import get_taxonomy_service
from exceptions import AppError

logger = structlog.get_logger(__name__)

router = APIRouter()

NDJSON = "application/x-ndjson"


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


async def ndjson_lines(events: AsyncIterator) -> AsyncIterator[str]:
    async for event in events:
        yield to_ndjson(event)


# ===================
# ROUTES
# ===================

@router.post("/extract")
async def extract_categories(data: ExtractRequest):
    """
    Stream taxonomy discovery for a source page.

    Lines: chunk, usage, log events, then one result with the candidates.
    Success with zero categories is a valid result.
    """
    service = ExtractionService(get_claude_connector())
    model_id = data.model_id or settings.default_model

    return StreamingResponse(
        ndjson_lines(service.stream_categories(data.url, model_id)),
        media_type=NDJSON
    )


@router.post("/explore", response_model=ExploreResponse)
async def explore_category(data: ExploreRequest):
    """
    Discover sub-categories under one candidate.

    Children come back with loose-matched mappings, ready to be spliced
    after their parent.
    """
    try:
        service = ExtractionService(get_claude_connector())
        result = await service.explore(data.url, data.name, data.model_id or settings.default_model)

        mappings = []
        if result.sub_categories:
            taxonomy = get_taxonomy_service().get_context()
            mappings = build_mappings(result.sub_categories, taxonomy, loose=True)

        return ExploreResponse(result=result, mappings=mappings)

    except Exception as e:
        return handle_error(e)


@router.post("/match", response_model=list[CategoryMapping])
async def match_categories(data: MatchRequest):
    """Pre-select canonical targets for extracted candidates."""
    try:
        taxonomy = get_taxonomy_service().get_context()
        return build_mappings(data.categories, taxonomy, loose=data.loose)

    except Exception as e:
        return handle_error(e)


@router.post("/scan")
async def scan_categories(data: ScanRequest):
    """
    Create a batch and stream the scan of the selected categories into it.

    The batch is created before the stream starts; its id is returned in
    the X-Batch-Id header.

    Raises:
        422: Source URL is not allowed
    """
    try:
        batches = get_import_batch_service()
        batch = batches.create(data.source_url)
    except Exception as e:
        return handle_error(e)

    scanner = ScanService(get_claude_connector(), get_staging_service(), batches)
    events = scanner.stream_scan(data.categories, data.model_id or settings.default_model, batch.id)

    return StreamingResponse(
        ndjson_lines(events),
        media_type=NDJSON,
        headers={"X-Batch-Id": batch.id}
    )


@router.get("/models", response_model=list[ModelInfo])
async def list_models():
    """Models the connector can run."""
    try:
        return await get_claude_connector().list_models()

    except Exception as e:
        return handle_error(e)


@router.get("/taxonomy", response_model=TaxonomyContext)
async def get_taxonomy():
    """Canonical categories and collections for mapping."""
    try:
        return get_taxonomy_service().get_context()

    except Exception as e:
        return handle_error(e)
