"""
Scan stage.

One connector request per selected category. Every item a category stream
returns is written to the staging store as soon as that category finishes,
so abandoning the stream never loses what was already persisted.
"""

import asyncio
from typing import AsyncIterator, Optional
import structlog

from config import settings
from integrations.source_connector import SourceConnector
from models.import_batch import BatchStatus
from models.scan import ScanSelection
from models.staging import StagingItemCreate
from models.stream import (
    CategoryDoneEvent,
    CategoryStartEvent,
    LogEvent,
    ProductsResultEvent,
    ScanEvent,
    ScanResultEvent,
)
from exceptions import AppError
from services.import_batch_service import ImportBatchService
from services.staging_service import StagingService
from services.stream_guard import guarded_stream
from utils.url_validator import validate_external_url

logger = structlog.get_logger(__name__)

# Marks the end of one category's events on the shared queue
_DONE = object()


def _is_result(event) -> bool:
    return isinstance(event, ProductsResultEvent)


def _failure(message: str) -> ProductsResultEvent:
    return ProductsResultEvent(success=False, error=message)


class ScanService:
    """
    Scans selected categories into an existing batch.

    Category requests may overlap up to max_concurrency. Events of one
    category keep their order; events of different categories interleave.
    """

    def __init__(
        self,
        connector: SourceConnector,
        staging_service: Optional[StagingService] = None,
        batch_service: Optional[ImportBatchService] = None,
        max_concurrency: Optional[int] = None
    ):
        self.connector = connector
        self.batches = batch_service or ImportBatchService()
        self.staging = staging_service or StagingService(self.batches)
        self.max_concurrency = max(1, max_concurrency or settings.scan_max_concurrency)

    async def stream_scan(
        self,
        selections: list[ScanSelection],
        model_id: str,
        batch_id: str
    ) -> AsyncIterator[ScanEvent]:
        """
        Scan every selection and stream progress.

        Yields per category: category_start, chunks, category_done and
        non-fatal logs. Ends with exactly one result whose success flag is
        False if any category failed; items from other categories stay
        persisted either way.
        """
        logger.info(
            "scan_started",
            batch_id=batch_id,
            categories=len(selections),
            model=model_id,
            concurrency=self.max_concurrency
        )

        try:
            self.batches.update_status(batch_id, BatchStatus.SCANNING)
        except AppError as e:
            logger.error("scan_batch_unavailable", batch_id=batch_id, error=e.message)
            yield ScanResultEvent(success=False, error=e.message)
            return

        queue: asyncio.Queue = asyncio.Queue()
        semaphore = asyncio.Semaphore(self.max_concurrency)
        found: dict[str, int] = {}
        failed: list[str] = []

        async def run(selection: ScanSelection) -> None:
            async with semaphore:
                try:
                    count = await self._scan_category(selection, model_id, batch_id, queue)
                except Exception as e:
                    message = e.message if isinstance(e, AppError) else str(e)
                    logger.error("scan_category_crashed", batch_id=batch_id, category=selection.name, error=message)
                    failed.append(selection.name)
                    await queue.put(CategoryDoneEvent(category_name=selection.name, count=0))
                    await queue.put(LogEvent(message=f"Failed to scan {selection.name}: {message}"))
                else:
                    if count is None:
                        failed.append(selection.name)
                    else:
                        found[selection.name] = count
                finally:
                    await queue.put(_DONE)

        tasks = [asyncio.create_task(run(selection)) for selection in selections]
        remaining = len(tasks)

        try:
            while remaining:
                event = await queue.get()
                if event is _DONE:
                    remaining -= 1
                    continue
                yield event
        finally:
            # Abandoned streams stop outstanding requests; persisted items stay
            for task in tasks:
                if not task.done():
                    task.cancel()

        items_found = sum(found.values())
        failed_names = [s.name for s in selections if s.name in failed]

        try:
            self.batches.set_current_step(batch_id, None)
        except AppError as e:
            logger.warning("scan_step_reset_failed", batch_id=batch_id, error=e.message)

        logger.info(
            "scan_finished",
            batch_id=batch_id,
            items_found=items_found,
            failed_categories=failed_names
        )

        yield ScanResultEvent(
            success=not failed_names,
            items_found=items_found,
            failed_categories=failed_names,
            error=f"Failed to scan: {', '.join(failed_names)}" if failed_names else None,
        )

    async def _scan_category(
        self,
        selection: ScanSelection,
        model_id: str,
        batch_id: str,
        queue: asyncio.Queue
    ) -> Optional[int]:
        """
        Scan one category onto the queue.

        Returns:
            Number of items written, or None if the category failed
        """
        name = selection.name
        await queue.put(CategoryStartEvent(category_name=name))
        self.batches.set_current_step(batch_id, f"Scanning {name}")

        url = validate_external_url(selection.url)

        result: Optional[ProductsResultEvent] = None
        async for event in guarded_stream(
            self.connector.stream_products(url, name, model_id),
            _is_result,
            _failure,
            context="scan"
        ):
            if _is_result(event):
                result = event
            else:
                await queue.put(event)

        if not result.success:
            logger.warning("scan_category_failed", batch_id=batch_id, category=name, error=result.error)
            await queue.put(CategoryDoneEvent(category_name=name, count=0))
            await queue.put(LogEvent(message=f"Failed to scan {name}: {result.error}"))
            return None

        items = [
            StagingItemCreate(
                **product.model_dump(),
                category_id=selection.category_id,
                collection_id=selection.collection_id,
            )
            for product in result.products
        ]
        created = self.staging.create_items(batch_id, items)

        logger.info("scan_category_finished", batch_id=batch_id, category=name, count=len(created))
        await queue.put(CategoryDoneEvent(category_name=name, count=len(created)))

        if not created:
            await queue.put(LogEvent(message=f"No items found in {name}"))

        return len(created)
