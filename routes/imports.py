"""
Catalog import API routes.

Bulk CSV import wizard: upload and stage a file, adjust the column
mapping, fix rows, commit into the catalog, download rejected rows.
"""

from fastapi import APIRouter, File, Form, Query, UploadFile
from fastapi.responses import JSONResponse, Response
from typing import Optional
import structlog

from models.base import PaginatedResponse
from models.catalog_import import (
    CommitReportResponse,
    CommitRequest,
    ImportStatusResponse,
    RemapRequest,
    RemapResponse,
    RowEditRequest,
    RowEditResponse,
    RowFilter,
    StageResponse,
    TargetFieldResponse,
)
from services.import_service import get_import_service
from exceptions import AppError

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/imports", tags=["Catalog Import"])


# ===================
# EXCEPTION HANDLER
# ===================

def _handle_error(e: Exception) -> JSONResponse:
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

@router.get("/target-fields", response_model=list[TargetFieldResponse])
async def list_target_fields():
    """Catalog fields a column can be mapped to."""
    try:
        return get_import_service().target_fields()
    except Exception as e:
        return _handle_error(e)


@router.post("/stage", response_model=StageResponse, status_code=201)
async def stage_import(
    file: UploadFile = File(..., description="CSV export of the catalog"),
    vendor_id: Optional[str] = Form(None, description="Vendor the listings belong to"),
):
    """
    Upload a CSV and stage it for review.

    Returns the import id, a suggested column mapping, validation stats
    and the first rows.

    Raises:
        422: File is empty or cannot be read as CSV
    """
    try:
        content = await file.read()
        service = get_import_service()
        return service.stage(content, file.filename or "upload.csv", vendor_id)

    except Exception as e:
        return _handle_error(e)


@router.post("/{import_id}/remap", response_model=RemapResponse)
async def remap_import(import_id: str, data: RemapRequest):
    """
    Replace the column mapping and revalidate every row.

    Raises:
        404: Import not found or expired
        409: Import busy or already committed
        422: Invalid mapping
    """
    try:
        return get_import_service().remap(import_id, data.mapping)
    except Exception as e:
        return _handle_error(e)


@router.get("/{import_id}/rows", response_model=PaginatedResponse)
async def list_import_rows(
    import_id: str,
    page: int = Query(1, ge=1, description="Page number"),
    page_size: Optional[int] = Query(None, ge=1, description="Rows per page"),
    filter: RowFilter = Query(RowFilter.ALL, description="all, valid or invalid"),
):
    """Staged rows in file order, filtered before paging."""
    try:
        return get_import_service().list_rows(
            import_id,
            page=page,
            page_size=page_size,
            row_filter=filter
        )
    except Exception as e:
        return _handle_error(e)


@router.put("/{import_id}/rows/{row_index}", response_model=RowEditResponse)
async def edit_import_row(import_id: str, row_index: int, data: RowEditRequest):
    """
    Replace a row's mapped values and revalidate it.

    Raises:
        404: Import or row not found
        409: Import busy or already committed
        422: Values for fields outside the mapping
    """
    try:
        return get_import_service().edit_row(import_id, row_index, data.values)
    except Exception as e:
        return _handle_error(e)


@router.post("/{import_id}/commit", response_model=CommitReportResponse)
async def commit_import(import_id: str, data: CommitRequest):
    """
    Write the valid rows into the catalog.

    Rows that fail to write are listed in the report; the rest still go
    through.

    Raises:
        403: Vendor differs from the one the file was staged for
        404: Import not found or expired
        409: Import busy or already committed
        422: Missing match strategy, vendor or bad defaults
    """
    try:
        return get_import_service().commit(
            import_id,
            mode=data.mode,
            match_strategy=data.match_strategy,
            defaults=data.defaults,
            vendor_id=data.vendor_id
        )
    except Exception as e:
        return _handle_error(e)


@router.get("/{import_id}/status", response_model=ImportStatusResponse)
async def get_import_status(import_id: str):
    """Session state, stats and the commit report once committed."""
    try:
        return get_import_service().get_status(import_id)
    except Exception as e:
        return _handle_error(e)


@router.get("/{import_id}/errors-csv", response_class=Response)
async def download_import_errors(import_id: str):
    """Invalid rows with an errors column, as a CSV download."""
    try:
        filename, content = get_import_service().export_errors(import_id)
        return Response(
            content=content,
            media_type="text/csv; charset=utf-8",
            headers={"Content-Disposition": f'attachment; filename="{filename}"'}
        )
    except Exception as e:
        return _handle_error(e)
