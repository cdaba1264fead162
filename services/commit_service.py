"""
Commit engine for catalog imports.

Writes the valid rows of a staged import into the catalog under one of
three modes (create, update, upsert). Existing records are located with a
match strategy; rows fail independently, so one bad row never stops the
batch.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable, Optional
import structlog

from config.catalog_fields import (
    EXTERNAL_ID_FIELD,
    FIELDS_BY_KEY,
    INTERNAL_ID_FIELD,
    LEGACY_ID_FIELD,
)
from exceptions import AmbiguousMatchError, InvalidCommitOptionsError
from models.catalog_import import CommitMode, MatchStrategy
from services.catalog_service import CatalogService, get_catalog_service
from utils.text_utils import truncate_text
from services.validation_service import (
    FieldCoercionError,
    StagedRow,
    cell_text,
    coerce_value,
)

logger = structlog.get_logger(__name__)

_IMAGE_SEPARATOR = re.compile(r"\s*[|,]\s*")


@dataclass(frozen=True)
class RowFailure:
    """A valid row the catalog refused, or that matched ambiguously."""
    row_index: int
    title: Optional[str]
    error: str

    def to_dict(self) -> dict:
        return {"row_index": self.row_index, "title": self.title, "error": self.error}


@dataclass(frozen=True)
class CommitOptions:
    """Resolved commit request."""
    mode: CommitMode
    match_strategy: MatchStrategy = MatchStrategy.NONE
    defaults: dict[str, Any] = field(default_factory=dict)
    vendor_id: Optional[str] = None


@dataclass(frozen=True)
class CommitReport:
    """Outcome of one commit. Counts always add up to total_processed."""
    import_id: str
    mode: CommitMode
    match_strategy: MatchStrategy
    vendor_id: Optional[str]
    created_count: int
    updated_count: int
    skipped_count: int
    failures: tuple[RowFailure, ...]
    created_ids: tuple[str, ...]
    completed_at: datetime

    @property
    def failed_count(self) -> int:
        return len(self.failures)

    @property
    def total_processed(self) -> int:
        return self.created_count + self.updated_count + self.skipped_count + self.failed_count

    def to_dict(self) -> dict:
        """Convert to API response format."""
        return {
            "import_id": self.import_id,
            "created_count": self.created_count,
            "updated_count": self.updated_count,
            "skipped_count": self.skipped_count,
            "failed_count": self.failed_count,
            "total_processed": self.total_processed,
            "failures": [f.to_dict() for f in self.failures],
            "created_ids": list(self.created_ids),
            "mode": self.mode.value,
            "match_strategy": self.match_strategy.value,
            "vendor_id": self.vendor_id,
            "completed_at": self.completed_at,
        }


# ===================
# OPTION CHECKS
# ===================

def resolve_commit_options(
    mode: CommitMode,
    match_strategy: Optional[MatchStrategy],
    defaults: Optional[dict[str, Any]],
    vendor_id: Optional[str],
) -> CommitOptions:
    """
    Check a commit request and coerce its default overrides.

    Raises:
        InvalidCommitOptionsError: Strategy not given for update/upsert,
            or a default override that is unknown or has the wrong type
    """
    if mode == CommitMode.CREATE:
        strategy = MatchStrategy.NONE
    elif match_strategy is None:
        raise InvalidCommitOptionsError(
            f"A match strategy is required for {mode.value}",
            {"mode": mode.value}
        )
    else:
        strategy = match_strategy

    resolved: dict[str, Any] = {}
    for key, value in (defaults or {}).items():
        target = FIELDS_BY_KEY.get(key)
        if target is None or target.reserved or not target.has_default:
            raise InvalidCommitOptionsError(
                f"'{key}' has no default to override",
                {"field": key}
            )
        text = cell_text(value)
        if not text:
            raise InvalidCommitOptionsError(
                f"Default for '{key}' cannot be empty",
                {"field": key}
            )
        try:
            resolved[key] = coerce_value(target, text)
        except FieldCoercionError as e:
            raise InvalidCommitOptionsError(e.message, {"field": key, "code": e.code})

    return CommitOptions(
        mode=mode,
        match_strategy=strategy,
        defaults=resolved,
        vendor_id=vendor_id,
    )


# ===================
# RECORD BUILDING
# ===================

def split_images(value: Any) -> list[str]:
    """Split an images cell into URLs; keeps absolute URLs and site paths."""
    if not value:
        return []
    parts = _IMAGE_SEPARATOR.split(str(value))
    return [p for p in parts if p.startswith("http") or p.startswith("/")]


def build_create_record(row: StagedRow, options: CommitOptions) -> dict:
    """Catalog record for a new listing: row values, overridden defaults, vendor."""
    values = dict(row.values)
    for key in row.defaulted:
        if key in options.defaults:
            values[key] = options.defaults[key]
    record = _to_catalog_columns(values)
    if options.vendor_id is not None:
        record["vendor_id"] = options.vendor_id
    return record


def build_update_changes(row: StagedRow) -> dict:
    """Changes for an existing listing: only values that came from the file."""
    values = {k: v for k, v in row.values.items() if k not in row.defaulted}
    return _to_catalog_columns(values)


def _to_catalog_columns(values: dict[str, Any]) -> dict:
    record = dict(values)
    if "images" in record:
        record["images"] = split_images(record["images"])
    return record


# ===================
# COMMIT ENGINE
# ===================

class CommitService:
    """
    Applies staged rows to the catalog.

    Handles:
    - Match resolution per strategy (ambiguity fails the row)
    - Mode dispatch: create / update / upsert
    - Per-row failure isolation and reporting
    """

    def __init__(self, catalog: CatalogService):
        self.catalog = catalog

    def commit_rows(
        self,
        import_id: str,
        rows: Iterable[StagedRow],
        options: CommitOptions,
        internal_ids: Optional[dict[int, str]] = None,
    ) -> CommitReport:
        """
        Write valid rows in index order.

        Args:
            import_id: Session being committed (for logs and the report)
            rows: Staged rows; invalid ones are ignored
            options: Resolved commit options
            internal_ids: row_index -> catalog id read from the file's
                identifier column (internal_id strategy only)

        Returns:
            CommitReport
        """
        internal_ids = internal_ids or {}
        created = updated = skipped = 0
        failures: list[RowFailure] = []
        created_ids: list[str] = []

        for row in sorted(rows, key=lambda r: r.row_index):
            if not row.is_valid:
                continue

            try:
                existing = None
                if options.mode != CommitMode.CREATE:
                    existing = self.find_match(row, options, internal_ids.get(row.row_index))

                if existing is not None:
                    self.catalog.update(existing["id"], build_update_changes(row))
                    updated += 1
                elif options.mode == CommitMode.UPDATE:
                    skipped += 1
                else:
                    record = self.catalog.create(build_create_record(row, options))
                    created += 1
                    if record.get("id") is not None:
                        created_ids.append(str(record["id"]))

            except Exception as e:
                logger.warning(
                    "import_row_failed",
                    import_id=import_id,
                    row_index=row.row_index,
                    error=str(e)
                )
                failures.append(RowFailure(row.row_index, truncate_text(row.title), _failure_message(e)))

        return CommitReport(
            import_id=import_id,
            mode=options.mode,
            match_strategy=options.match_strategy,
            vendor_id=options.vendor_id,
            created_count=created,
            updated_count=updated,
            skipped_count=skipped,
            failures=tuple(failures),
            created_ids=tuple(created_ids),
            completed_at=datetime.now(timezone.utc),
        )

    def find_match(
        self,
        row: StagedRow,
        options: CommitOptions,
        internal_id: Optional[str] = None,
    ) -> Optional[dict]:
        """
        Find the existing catalog record a row refers to.

        A row without the strategy's key value has no match.

        Raises:
            AmbiguousMatchError: More than one record matches
        """
        strategy = options.match_strategy
        vendor_id = options.vendor_id

        if strategy == MatchStrategy.EXTERNAL_IDENTIFIER:
            value = row.values.get(EXTERNAL_ID_FIELD)
            matches = self.catalog.find_by_field(vendor_id, EXTERNAL_ID_FIELD, value) if value else []
        elif strategy == MatchStrategy.INTERNAL_ID:
            matches = self.catalog.find_by_field(vendor_id, INTERNAL_ID_FIELD, internal_id) if internal_id else []
        elif strategy == MatchStrategy.LEGACY_REFERENCE:
            value = row.values.get(LEGACY_ID_FIELD)
            matches = self.catalog.find_by_field(vendor_id, LEGACY_ID_FIELD, value) if value is not None else []
        elif strategy == MatchStrategy.TITLE_AUTHOR:
            title = row.values.get("title")
            author = row.values.get("author")
            matches = self.catalog.find_by_title_author(vendor_id, title, author) if title and author else []
        else:
            matches = []

        if len(matches) > 1:
            raise AmbiguousMatchError(strategy.value, len(matches))
        return matches[0] if matches else None


def _failure_message(error: Exception) -> str:
    # AppError subclasses carry a clean message
    return getattr(error, "message", None) or str(error) or type(error).__name__


# =============================================================================
# Singleton
# =============================================================================

_commit_service: Optional[CommitService] = None


def get_commit_service() -> CommitService:
    """Get or create CommitService instance."""
    global _commit_service
    if _commit_service is None:
        _commit_service = CommitService(get_catalog_service())
    return _commit_service
