"""
Catalog import service.

Orchestrates the bulk import wizard over the staging store:
stage -> (remap / edit rows)* -> commit, plus row listing, error export
and status. Every call after stage is addressed by import id.
"""

from typing import Any, Optional
import structlog

from config import Settings, settings
from config.catalog_fields import TARGET_FIELDS
from exceptions import (
    ImportAlreadyCommittedError,
    ImportScopeMismatchError,
    InvalidCommitOptionsError,
    ValidationError,
)
from models.base import PaginatedResponse
from models.catalog_import import (
    CommitMode,
    CommitReportResponse,
    ImportMetaResponse,
    ImportStatsResponse,
    ImportStatus,
    ImportStatusResponse,
    MatchStrategy,
    RemapResponse,
    RowEditResponse,
    RowFilter,
    StagedRowResponse,
    StageResponse,
    TargetFieldResponse,
)
from parsers.csv_parser import parse_catalog_csv
from services.commit_service import (
    CommitReport,
    CommitService,
    get_commit_service,
    resolve_commit_options,
)
from services.error_export_service import (
    ErrorExportService,
    export_filename,
    get_error_export_service,
)
from services.mapping_service import find_identifier_column, infer_mapping, validate_mapping
from services.staging_service import ImportSession, StagingStore, get_staging_store
from services.validation_service import StagedRow

logger = structlog.get_logger(__name__)


def _row_response(row: StagedRow) -> StagedRowResponse:
    return StagedRowResponse(**row.to_dict())


def _stats_response(session: ImportSession) -> ImportStatsResponse:
    return ImportStatsResponse(**session.stats.to_dict())


def _report_response(report: CommitReport) -> CommitReportResponse:
    return CommitReportResponse(**report.to_dict())


class CatalogImportService:
    """
    Bulk catalog import wizard.

    Mutating calls (remap, edit_row, commit) hold the session exclusively;
    a concurrent call on the same session fails with ImportSessionBusyError.
    Committed sessions are read-only.
    """

    def __init__(
        self,
        store: StagingStore,
        commit_service: CommitService,
        export_service: ErrorExportService,
        config: Settings = settings,
    ):
        self.store = store
        self.commit_service = commit_service
        self.export_service = export_service
        self.config = config

    # ===================
    # SCHEMA
    # ===================

    def target_fields(self) -> list[TargetFieldResponse]:
        """Catalog fields an import can populate, reserved ones flagged."""
        return [TargetFieldResponse(**target.to_dict()) for target in TARGET_FIELDS]

    # ===================
    # STAGE / REMAP
    # ===================

    def stage(
        self,
        content: bytes,
        file_name: str,
        vendor_id: Optional[str] = None,
    ) -> StageResponse:
        """
        Parse an upload, guess a mapping and validate every row.

        No session is created when the file cannot be parsed.

        Raises:
            MalformedInputError: Empty, binary or unreadable file
        """
        parsed = parse_catalog_csv(
            content,
            max_rows=self.config.import_max_rows,
            max_bytes=self.config.import_max_bytes,
        )

        mapping = infer_mapping(parsed.headers, TARGET_FIELDS)
        identifier_column = find_identifier_column(parsed.headers, TARGET_FIELDS)

        session = self.store.create(
            headers=parsed.headers,
            file_name=file_name,
            byte_size=len(content),
            total_parsed=parsed.total_parsed,
            truncated=parsed.truncated,
            vendor_id=vendor_id,
            identifier_column=identifier_column,
        )
        with session.exclusive("stage"):
            stats = session.initialize(parsed.records, mapping)

        logger.info(
            "import_staged",
            import_id=session.import_id,
            file_name=file_name,
            vendor_id=vendor_id,
            total_rows=stats.total_rows,
            valid_rows=stats.valid_rows,
            invalid_rows=stats.invalid_rows,
            truncated=stats.truncated
        )

        return StageResponse(
            import_id=session.import_id,
            headers=session.headers,
            suggested_mapping=session.mapping,
            identifier_column=identifier_column,
            stats=_stats_response(session),
            preview_rows=[_row_response(r) for r in session.preview(self.config.import_preview_rows)],
            target_fields=self.target_fields(),
        )

    def remap(self, import_id: str, mapping: dict[str, Optional[str]]) -> RemapResponse:
        """
        Replace the mapping and revalidate every row.

        Raises:
            ImportSessionNotFoundError, ImportSessionBusyError,
            ImportAlreadyCommittedError, InvalidMappingError
        """
        session = self.store.get(import_id)

        with session.exclusive("remap"):
            self._ensure_open(session)
            resolved = validate_mapping(mapping, session.headers, session.fields)
            stats = session.remap(resolved)

        logger.info(
            "import_remapped",
            import_id=import_id,
            mapped=sum(1 for key in resolved.values() if key),
            valid_rows=stats.valid_rows,
            invalid_rows=stats.invalid_rows,
            revision=session.revision
        )

        return RemapResponse(
            import_id=import_id,
            mapping=session.mapping,
            stats=_stats_response(session),
            preview_rows=[_row_response(r) for r in session.preview(self.config.import_preview_rows)],
        )

    # ===================
    # ROWS
    # ===================

    def list_rows(
        self,
        import_id: str,
        page: int = 1,
        page_size: Optional[int] = None,
        row_filter: RowFilter = RowFilter.ALL,
    ) -> PaginatedResponse:
        """
        Page through staged rows in index order.

        Raises:
            ImportSessionNotFoundError: Unknown or expired session
            ValidationError: Page or page size out of bounds
        """
        if page_size is None:
            page_size = self.config.import_default_page_size
        if page < 1:
            raise ValidationError("page must be at least 1", details={"page": page})
        if not 1 <= page_size <= self.config.import_max_page_size:
            raise ValidationError(
                f"page_size must be between 1 and {self.config.import_max_page_size}",
                details={"page_size": page_size}
            )

        session = self.store.get(import_id)
        rows, total = session.list_rows(page, page_size, row_filter)

        return PaginatedResponse.create(
            data=[_row_response(r) for r in rows],
            total=total,
            page=page,
            page_size=page_size,
        )

    def edit_row(self, import_id: str, row_index: int, values: dict[str, Any]) -> RowEditResponse:
        """
        Replace one row's mapped field values and revalidate it.

        Raises:
            ImportSessionNotFoundError, StagedRowNotFoundError,
            ImportSessionBusyError, ImportAlreadyCommittedError,
            UnmappedFieldEditError
        """
        session = self.store.get(import_id)

        with session.exclusive("edit_row"):
            self._ensure_open(session)
            was_valid = session.get_row(row_index).is_valid
            row = session.edit_row(row_index, values)

        logger.info(
            "staged_row_edited",
            import_id=import_id,
            row_index=row_index,
            was_valid=was_valid,
            is_valid=row.is_valid,
            revision=session.revision
        )

        return RowEditResponse(row=_row_response(row), stats=_stats_response(session))

    # ===================
    # COMMIT
    # ===================

    def commit(
        self,
        import_id: str,
        mode: CommitMode,
        match_strategy: Optional[MatchStrategy] = None,
        defaults: Optional[dict[str, Any]] = None,
        vendor_id: Optional[str] = None,
    ) -> CommitReportResponse:
        """
        Write the session's valid rows into the catalog.

        Row-level problems land in the report; only request-level problems
        raise.

        Raises:
            ImportSessionNotFoundError, ImportSessionBusyError,
            ImportAlreadyCommittedError, InvalidCommitOptionsError,
            ImportScopeMismatchError
        """
        session = self.store.get(import_id)

        with session.exclusive("commit"):
            self._ensure_open(session)

            options = resolve_commit_options(
                mode,
                match_strategy,
                defaults,
                self._resolve_vendor(session, vendor_id),
            )
            snapshot = session.snapshot

            internal_ids: dict[int, str] = {}
            if options.match_strategy == MatchStrategy.INTERNAL_ID and session.identifier_column:
                for index, record in enumerate(snapshot.records, start=1):
                    value = (record.get(session.identifier_column) or "").strip()
                    if value:
                        internal_ids[index] = value

            logger.info(
                "import_commit_started",
                import_id=import_id,
                mode=options.mode.value,
                match_strategy=options.match_strategy.value,
                vendor_id=options.vendor_id,
                valid_rows=snapshot.stats.valid_rows
            )

            session.status = ImportStatus.COMMITTING
            try:
                report = self.commit_service.commit_rows(
                    import_id,
                    snapshot.rows,
                    options,
                    internal_ids=internal_ids,
                )
            except Exception:
                session.status = ImportStatus.STAGED
                raise

            session.report = report
            session.committed_at = self.store.now()
            session.status = ImportStatus.COMMITTED

        logger.info(
            "import_committed",
            import_id=import_id,
            created=report.created_count,
            updated=report.updated_count,
            skipped=report.skipped_count,
            failed=report.failed_count,
            total_processed=report.total_processed
        )

        return _report_response(report)

    # ===================
    # READ-ONLY VIEWS
    # ===================

    def export_errors(self, import_id: str) -> tuple[str, bytes]:
        """
        Invalid rows as CSV, as currently staged.

        Returns:
            (file name, CSV bytes)
        """
        session = self.store.get(import_id)
        return export_filename(import_id), self.export_service.render(session)

    def get_status(self, import_id: str) -> ImportStatusResponse:
        session = self.store.get(import_id)
        report = session.report

        return ImportStatusResponse(
            import_id=import_id,
            status=session.status,
            stats=_stats_response(session),
            meta=ImportMetaResponse(
                file_name=session.file_name,
                uploaded_at=session.created_at,
                vendor_id=session.vendor_id,
                byte_size=session.byte_size,
                revision=session.revision,
            ),
            report=_report_response(report) if report is not None else None,
        )

    # ===================
    # HELPERS
    # ===================

    @staticmethod
    def _ensure_open(session: ImportSession) -> None:
        if session.status != ImportStatus.STAGED:
            raise ImportAlreadyCommittedError(session.import_id)

    @staticmethod
    def _resolve_vendor(session: ImportSession, vendor_id: Optional[str]) -> str:
        """
        Vendor the rows are written for.

        A session staged for a vendor only commits into that vendor. A
        session staged without one (admin upload) must name it at commit.
        """
        if session.vendor_id is not None:
            if vendor_id is not None and vendor_id != session.vendor_id:
                logger.warning(
                    "import_scope_mismatch",
                    import_id=session.import_id,
                    staged_vendor_id=session.vendor_id,
                    vendor_id=vendor_id
                )
                raise ImportScopeMismatchError(session.import_id)
            return session.vendor_id

        if not vendor_id:
            raise InvalidCommitOptionsError(
                "vendor_id is required for imports staged without a vendor",
                {"import_id": session.import_id}
            )
        return vendor_id


# =============================================================================
# Singleton
# =============================================================================

_import_service: Optional[CatalogImportService] = None


def get_import_service() -> CatalogImportService:
    """Get or create CatalogImportService instance."""
    global _import_service
    if _import_service is None:
        _import_service = CatalogImportService(
            store=get_staging_store(),
            commit_service=get_commit_service(),
            export_service=get_error_export_service(),
        )
    return _import_service
