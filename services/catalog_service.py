"""
Catalog write target for bulk imports.

Thin data access over the catalog table: lookups used to match staged rows
against existing listings, plus create and update by id.
"""

from typing import Any, Optional
import structlog

from config import get_supabase_client, settings
from exceptions import DatabaseError

logger = structlog.get_logger(__name__)

# Two rows are enough to tell "one match" from "ambiguous"
MATCH_LOOKUP_LIMIT = 2

# ilike candidates fetched before the exact title/author filter
TITLE_AUTHOR_CANDIDATE_LIMIT = 50


def escape_like(value: str) -> str:
    """Escape SQL LIKE wildcards (`%`, `_`) in an ilike pattern."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class CatalogService:
    """
    Catalog data access.

    Every lookup is scoped to a vendor when one is given.
    """

    def __init__(self, client: Any = None, table: Optional[str] = None):
        self._client = client
        self.table = table or settings.catalog_table

    @property
    def db(self):
        # Resolved on first use so staging works without a database
        if self._client is None:
            self._client = get_supabase_client()
        return self._client

    # ===================
    # READ OPERATIONS
    # ===================

    def find_by_field(self, vendor_id: Optional[str], field: str, value: Any) -> list[dict]:
        """
        Find catalog records whose column equals value.

        Args:
            vendor_id: Vendor scope (None = all vendors)
            field: Catalog column (isbn, sid, legacy_id)
            value: Exact value to match

        Returns:
            Up to MATCH_LOOKUP_LIMIT matching records
        """
        logger.debug("finding_catalog_records", field=field, vendor_id=vendor_id)

        try:
            query = self.db.table(self.table).select("*").eq(field, value)
            if vendor_id is not None:
                query = query.eq("vendor_id", vendor_id)
            result = query.limit(MATCH_LOOKUP_LIMIT).execute()
            return result.data or []

        except Exception as e:
            logger.error(
                "find_catalog_records_failed",
                field=field,
                error=str(e)
            )
            raise DatabaseError("select", str(e))

    def find_by_title_author(self, vendor_id: Optional[str], title: str, author: str) -> list[dict]:
        """
        Find catalog records by case-insensitive exact title and author.

        PostgREST reads `*` in an ilike pattern as a wildcard, so the
        candidates are narrowed to exact casefolded matches afterwards.

        Returns:
            Matching records
        """
        logger.debug("finding_catalog_records_by_title_author", vendor_id=vendor_id)

        try:
            query = (
                self.db.table(self.table)
                .select("*")
                .ilike("title", escape_like(title))
                .ilike("author", escape_like(author))
            )
            if vendor_id is not None:
                query = query.eq("vendor_id", vendor_id)
            result = query.limit(TITLE_AUTHOR_CANDIDATE_LIMIT).execute()

        except Exception as e:
            logger.error(
                "find_catalog_records_by_title_author_failed",
                error=str(e)
            )
            raise DatabaseError("select", str(e))

        wanted = (title.casefold(), author.casefold())
        return [
            record for record in (result.data or [])
            if (str(record.get("title") or "").casefold(), str(record.get("author") or "").casefold()) == wanted
        ]

    # ===================
    # WRITE OPERATIONS
    # ===================

    def create(self, record: dict) -> dict:
        """
        Insert a catalog record.

        Returns:
            The stored record, including its id

        Raises:
            DatabaseError: If the insert fails or returns nothing
        """
        try:
            result = (
                self.db.table(self.table)
                .insert(record)
                .execute()
            )
        except Exception as e:
            logger.error(
                "create_catalog_record_failed",
                title=record.get("title"),
                error=str(e)
            )
            raise DatabaseError("insert", str(e))

        if not result.data:
            raise DatabaseError("insert", "no record returned")

        created = result.data[0]
        logger.debug("catalog_record_created", record_id=created.get("id"))
        return created

    def update(self, record_id: Any, changes: dict) -> dict:
        """
        Update a catalog record by id.

        Returns:
            The updated record

        Raises:
            DatabaseError: If the update fails or matches nothing
        """
        try:
            result = (
                self.db.table(self.table)
                .update(changes)
                .eq("id", record_id)
                .execute()
            )
        except Exception as e:
            logger.error(
                "update_catalog_record_failed",
                record_id=record_id,
                error=str(e)
            )
            raise DatabaseError("update", str(e))

        if not result.data:
            raise DatabaseError("update", f"record {record_id} not found")

        logger.debug("catalog_record_updated", record_id=record_id)
        return result.data[0]


# =============================================================================
# Singleton
# =============================================================================

_catalog_service: Optional[CatalogService] = None


def get_catalog_service() -> CatalogService:
    """Get or create CatalogService instance."""
    global _catalog_service
    if _catalog_service is None:
        _catalog_service = CatalogService()
    return _catalog_service
