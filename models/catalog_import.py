"""
Catalog import schemas for validation and serialization.

Request bodies and responses for the bulk import wizard: stage, remap,
row listing/editing, commit, status and target field listing.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, Field

from models.base import BaseSchema


CellValue = Union[str, int, float, bool, None]


class CommitMode(str, Enum):
    """How committed rows are applied to the catalog."""
    CREATE = "create"    # always insert, no matching
    UPDATE = "update"    # update matches, skip the rest
    UPSERT = "upsert"    # update matches, insert the rest


class MatchStrategy(str, Enum):
    """How an existing catalog record is located for update/upsert."""
    NONE = "none"
    EXTERNAL_IDENTIFIER = "external_identifier"   # ISBN
    INTERNAL_ID = "internal_id"                   # catalog sid column in the file
    TITLE_AUTHOR = "title_author"                 # lower confidence, ambiguity fails the row
    LEGACY_REFERENCE = "legacy_reference"         # WordPress post id


class RowFilter(str, Enum):
    """Staged row listing filter."""
    ALL = "all"
    VALID = "valid"
    INVALID = "invalid"


class ImportStatus(str, Enum):
    """Import session lifecycle."""
    STAGED = "staged"
    COMMITTING = "committing"
    COMMITTED = "committed"


# ===================
# SHARED PARTS
# ===================

class FieldErrorResponse(BaseSchema):
    """Validation failure attached to a staged row."""

    field: str = Field(..., description="Target field key")
    code: str = Field(..., description="Required, InvalidNumber, InvalidBoolean, InvalidEnum, OutOfRange or TooLong")
    message: str


class StagedRowResponse(BaseSchema):
    """One staged row with typed values and its validation errors."""

    row_index: int = Field(..., ge=1, description="1-based data row position in the file")
    values: dict[str, Any] = Field(default_factory=dict)
    errors: list[FieldErrorResponse] = Field(default_factory=list)
    is_valid: bool


class ImportStatsResponse(BaseSchema):
    """Validity counts across a session's rows."""

    total_rows: int = Field(..., ge=0, description="Rows held for staging")
    total_parsed: int = Field(..., ge=0, description="Data rows read before the row ceiling")
    valid_rows: int = Field(..., ge=0)
    invalid_rows: int = Field(..., ge=0)
    truncated: bool = Field(..., description="File exceeded the row or byte ceiling")


class TargetFieldResponse(BaseSchema):
    """Catalog field an import can populate."""

    key: str
    label: str
    type: str
    required: bool
    allowed_values: Optional[list[str]] = None
    default: Optional[CellValue] = None
    reserved: bool = False


# ===================
# STAGE / REMAP
# ===================

class StageResponse(BaseSchema):
    """Response after a file is parsed and staged."""

    import_id: str
    headers: list[str]
    suggested_mapping: dict[str, Optional[str]] = Field(
        ...,
        description="Header -> target field key, null for ignored columns"
    )
    identifier_column: Optional[str] = Field(
        None,
        description="Column carrying the catalog's own id (used by internal_id matching only)"
    )
    stats: ImportStatsResponse
    preview_rows: list[StagedRowResponse]
    target_fields: list[TargetFieldResponse]


class RemapRequest(BaseModel):
    """Replace the session's column mapping."""

    mapping: dict[str, Optional[str]] = Field(
        ...,
        description="Header -> target field key; null or '__ignore__' skips the column"
    )


class RemapResponse(BaseSchema):
    """Response after a remap and full revalidation."""

    import_id: str
    mapping: dict[str, Optional[str]]
    stats: ImportStatsResponse
    preview_rows: list[StagedRowResponse]


# ===================
# ROW EDITS
# ===================

class RowEditRequest(BaseModel):
    """
    Replacement values for one row.

    Keys are target field keys from the current mapping. Mapped fields
    left out are cleared.
    """

    values: dict[str, CellValue] = Field(default_factory=dict)


class RowEditResponse(BaseSchema):
    """Edited row after revalidation, with updated stats."""

    row: StagedRowResponse
    stats: ImportStatsResponse


# ===================
# COMMIT
# ===================

class CommitRequest(BaseModel):
    """Commit the currently valid rows of a session into the catalog."""

    mode: CommitMode = Field(..., description="create, update or upsert")
    match_strategy: Optional[MatchStrategy] = Field(
        None,
        description="Required for update and upsert"
    )
    defaults: dict[str, CellValue] = Field(
        default_factory=dict,
        description="Overrides for schema defaults, e.g. {'status': 'published'}"
    )
    vendor_id: Optional[str] = Field(
        None,
        description="Vendor the rows are written for; required when the file was staged without one"
    )


class RowFailureResponse(BaseSchema):
    """Row that could not be written."""

    row_index: int
    title: Optional[str] = None
    error: str


class CommitReportResponse(BaseSchema):
    """Outcome of one commit."""

    import_id: str
    created_count: int
    updated_count: int
    skipped_count: int
    failed_count: int
    total_processed: int
    failures: list[RowFailureResponse] = Field(default_factory=list)
    created_ids: list[str] = Field(default_factory=list)
    mode: CommitMode
    match_strategy: Optional[MatchStrategy] = None
    vendor_id: Optional[str] = None
    completed_at: datetime


# ===================
# STATUS
# ===================

class ImportMetaResponse(BaseSchema):
    """Upload metadata for an import session."""

    file_name: str
    uploaded_at: datetime
    vendor_id: Optional[str] = None
    byte_size: int
    revision: int


class ImportStatusResponse(BaseSchema):
    """Current state of an import session."""

    import_id: str
    status: ImportStatus
    stats: ImportStatsResponse
    meta: ImportMetaResponse
    report: Optional[CommitReportResponse] = None
