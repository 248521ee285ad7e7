"""
Supabase clients for the import pipeline.

The regular client serves batches, staging rows and taxonomy reads. The
admin client (service role key) is optional and only used to write
canonical items at commit time.
"""

from supabase import create_client, Client
from functools import lru_cache
from typing import Optional
import structlog

from config.settings import settings
from exceptions import DatabaseError

logger = structlog.get_logger(__name__)

# Tables the pipeline cannot run without
REQUIRED_TABLES = ("import_batches", "staging_items")


@lru_cache()
def get_supabase_client() -> Client:
    """
    Get cached Supabase client instance.

    Call get_supabase_client.cache_clear() to reconnect.

    Raises:
        DatabaseError: If the client cannot reach the batches table
    """
    try:
        logger.info(
            "connecting_to_supabase",
            url=settings.supabase_url[:30] + "..."  # Log partial URL only
        )

        client = create_client(settings.supabase_url, settings.supabase_key)
        client.table("import_batches").select("id").limit(1).execute()

        logger.info("supabase_connected", status="success")
        return client

    except Exception as e:
        logger.error(
            "supabase_connection_failed",
            error=str(e),
            error_type=type(e).__name__
        )
        raise DatabaseError("connect", str(e)) from e


@lru_cache()
def get_admin_client() -> Optional[Client]:
    """
    Service-role client for writing canonical items, or None.

    None when SUPABASE_SERVICE_KEY is unset or the client cannot be
    created; callers fall back to the regular client.
    """
    if not settings.supabase_service_key:
        logger.info("admin_client_not_configured")
        return None

    try:
        return create_client(settings.supabase_url, settings.supabase_service_key)
    except Exception as e:
        logger.error("admin_client_failed", error=str(e))
        return None


def check_connection() -> dict:
    """
    Health of the pipeline tables.

    Returns:
        dict: status plus row counts of batches and staged items, or the
        error when a table cannot be read
    """
    try:
        client = get_supabase_client()
        counts = {
            table: client.table(table).select("id", count="exact").execute().count
            for table in REQUIRED_TABLES
        }
    except Exception as e:
        return {"status": "unhealthy", "error": str(e)}

    return {
        "status": "healthy",
        "batches_count": counts["import_batches"],
        "staging_items_count": counts["staging_items"],
    }
