"""
Database connection management.

Provides the Supabase client singleton used as the catalog write target.
"""

from supabase import create_client, Client
from functools import lru_cache
import structlog

from config.settings import settings

logger = structlog.get_logger(__name__)


class DatabaseError(Exception):
    """Base exception for database errors."""
    pass


class ConnectionError(DatabaseError):
    """Failed to connect to database."""
    pass


@lru_cache()
def get_supabase_client() -> Client:
    """
    Get cached Supabase client instance.

    Uses lru_cache to ensure only one client is created.
    Call get_supabase_client.cache_clear() to reconnect.
    Uses the service role key when configured, otherwise the anon key.

    Returns:
        Client: Supabase client

    Raises:
        ConnectionError: If the client is not configured or cannot be created
    """
    if not settings.supabase_configured:
        raise ConnectionError("Supabase is not configured (SUPABASE_URL / SUPABASE_KEY)")

    try:
        logger.info(
            "connecting_to_supabase",
            url=settings.supabase_url[:30] + "..."  # Log partial URL only
        )

        client = create_client(
            settings.supabase_url,
            settings.supabase_service_key or settings.supabase_key
        )

        logger.info(
            "supabase_connected",
            status="success"
        )

        return client

    except Exception as e:
        logger.error(
            "supabase_connection_failed",
            error=str(e),
            error_type=type(e).__name__
        )
        raise ConnectionError(f"Failed to connect to Supabase: {e}") from e


# ===================
# HELPER FUNCTIONS
# ===================

def check_connection() -> dict:
    """
    Check database connection health.

    Returns:
        dict: Connection status with details
    """
    try:
        client = get_supabase_client()

        catalog = client.table(settings.catalog_table).select("id", count="exact").limit(1).execute()

        return {
            "status": "healthy",
            "catalog_count": catalog.count
        }

    except Exception as e:
        return {
            "status": "unhealthy",
            "error": str(e)
        }
