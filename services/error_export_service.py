"""
Error export for catalog imports.

Renders a session's invalid rows as a CSV the vendor can fix in a
spreadsheet and upload again: the original columns, cell values as
currently staged (row edits included), plus a trailing errors column.
"""

from typing import Optional
import pandas as pd
import structlog

from services.staging_service import ImportSession

logger = structlog.get_logger(__name__)

ERRORS_COLUMN = "errors"


def export_filename(import_id: str) -> str:
    return f"import-errors-{import_id}.csv"


class ErrorExportService:
    """Builds error CSVs from the current state of a session."""

    def render(self, session: ImportSession) -> bytes:
        """
        Render invalid rows to CSV bytes.

        Reads one snapshot, so the file reflects the state after the last
        completed remap or edit.

        Returns:
            UTF-8 CSV (with BOM so spreadsheet apps detect the encoding).
            A file with only the header row when every row is valid.
        """
        snapshot = session.snapshot
        errors_column = _unique_column(ERRORS_COLUMN, session.headers)

        records = []
        for record, row in zip(snapshot.records, snapshot.rows):
            if row.is_valid:
                continue
            line = {header: record.get(header, "") for header in session.headers}
            line[errors_column] = row.error_summary()
            records.append(line)

        df = pd.DataFrame(records, columns=[*session.headers, errors_column])
        content = df.to_csv(index=False).encode("utf-8-sig")

        logger.info(
            "import_errors_exported",
            import_id=session.import_id,
            invalid_rows=len(records),
            revision=snapshot.revision
        )
        return content


def _unique_column(name: str, headers: list[str]) -> str:
    # Keep the source's own "errors" column intact
    candidate = name
    suffix = 1
    while candidate in headers:
        candidate = f"{name}.{suffix}"
        suffix += 1
    return candidate


# =============================================================================
# Singleton
# =============================================================================

_error_export_service: Optional[ErrorExportService] = None


def get_error_export_service() -> ErrorExportService:
    """Get or create ErrorExportService instance."""
    global _error_export_service
    if _error_export_service is None:
        _error_export_service = ErrorExportService()
    return _error_export_service
