"""
Business logic services.

Each service handles one stage of the catalog import pipeline.
"""

from services.staging_service import StagingStore, ImportSession, ImportStats, get_staging_store
from services.catalog_service import CatalogService, get_catalog_service
from services.commit_service import (
    CommitService,
    CommitOptions,
    CommitReport,
    RowFailure,
    get_commit_service,
)
from services.error_export_service import ErrorExportService, get_error_export_service
from services.import_service import CatalogImportService, get_import_service

__all__ = [
    "StagingStore",
    "ImportSession",
    "ImportStats",
    "get_staging_store",
    "CatalogService",
    "get_catalog_service",
    "CommitService",
    "CommitOptions",
    "CommitReport",
    "RowFailure",
    "get_commit_service",
    "ErrorExportService",
    "get_error_export_service",
    "CatalogImportService",
    "get_import_service",
]
