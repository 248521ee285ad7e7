"""
API route modules.

Each module defines routes for one stage of the import pipeline.
"""

from routes.imports import router as imports_router
from routes.batches import router as batches_router
from routes.staging import router as staging_router

__all__ = [
    "imports_router",
    "batches_router",
    "staging_router",
]
