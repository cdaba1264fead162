"""
Pydantic models for validation and serialization.
"""

from models.base import (
    BaseSchema,
    PaginatedResponse
)
from models.catalog_import import (
    CommitMode,
    MatchStrategy,
    RowFilter,
    ImportStatus,
    FieldErrorResponse,
    StagedRowResponse,
    ImportStatsResponse,
    TargetFieldResponse,
    StageResponse,
    RemapRequest,
    RemapResponse,
    RowEditRequest,
    RowEditResponse,
    CommitRequest,
    RowFailureResponse,
    CommitReportResponse,
    ImportMetaResponse,
    ImportStatusResponse,
)

__all__ = [
    # Base
    "BaseSchema",
    "PaginatedResponse",

    # Catalog import
    "CommitMode",
    "MatchStrategy",
    "RowFilter",
    "ImportStatus",
    "FieldErrorResponse",
    "StagedRowResponse",
    "ImportStatsResponse",
    "TargetFieldResponse",
    "StageResponse",
    "RemapRequest",
    "RemapResponse",
    "RowEditRequest",
    "RowEditResponse",
    "CommitRequest",
    "RowFailureResponse",
    "CommitReportResponse",
    "ImportMetaResponse",
    "ImportStatusResponse",
]
