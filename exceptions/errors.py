"""
Custom exception classes for the application.

Every error carries a stable code, an HTTP status and a details dict so
routes can render the same envelope for all failures.
"""

from typing import Optional, Any
from datetime import datetime, timezone


class AppError(Exception):
    """
    Base exception for all application errors.

    All custom exceptions inherit from this.

    Attributes:
        code: Error code (e.g., "IMPORT_SESSION_NOT_FOUND")
        message: Human-readable message
        status_code: HTTP status code
        details: Additional context
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: Optional[dict[str, Any]] = None
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc).isoformat()
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert to API response format."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
                "timestamp": self.timestamp
            }
        }


class NotFoundError(AppError):
    """Resource not found (404)."""

    def __init__(
        self,
        resource: str,
        identifier: str,
        code: Optional[str] = None
    ):
        super().__init__(
            code=code or f"{resource.upper()}_NOT_FOUND",
            message=f"{resource} not found",
            status_code=404,
            details={"id": identifier}
        )


class ValidationError(AppError):
    """Validation failed (422)."""

    def __init__(
        self,
        message: str,
        code: str = "VALIDATION_ERROR",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=422,
            details=details
        )


class ConflictError(AppError):
    """Conflict with existing resource (409)."""

    def __init__(
        self,
        message: str,
        code: str = "CONFLICT",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=409,
            details=details
        )


class DatabaseError(AppError):
    """Database operation failed (500)."""

    def __init__(
        self,
        operation: str,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code="DATABASE_ERROR",
            message=f"Database {operation} failed: {message}",
            status_code=500,
            details={"operation": operation, **(details or {})}
        )


# ===================
# IMPORT PARSE ERRORS
# ===================

class MalformedInputError(ValidationError):
    """Uploaded file cannot be read as delimited text."""

    def __init__(
        self,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code="MALFORMED_INPUT",
            message=message,
            details=details
        )


# ===================
# IMPORT SESSION ERRORS
# ===================

class ImportSessionNotFoundError(NotFoundError):
    """Import session unknown or expired."""

    def __init__(self, import_id: str):
        super().__init__(
            resource="Import session",
            identifier=import_id,
            code="IMPORT_SESSION_NOT_FOUND"
        )


class StagedRowNotFoundError(NotFoundError):
    """Row index not present in the import session."""

    def __init__(self, import_id: str, row_index: int):
        super().__init__(
            resource="Staged row",
            identifier=str(row_index),
            code="STAGED_ROW_NOT_FOUND"
        )
        self.details["import_id"] = import_id


class ImportSessionBusyError(ConflictError):
    """Another mutating operation is running on the same session."""

    def __init__(self, import_id: str, operation: str):
        super().__init__(
            code="IMPORT_SESSION_BUSY",
            message="Import session is busy with another operation, retry shortly",
            details={"import_id": import_id, "operation": operation}
        )


class ImportAlreadyCommittedError(ConflictError):
    """Commit is not repeatable, and committed sessions are read-only."""

    def __init__(self, import_id: str):
        super().__init__(
            code="IMPORT_ALREADY_COMMITTED",
            message="Import has already been committed",
            details={"import_id": import_id}
        )


class InvalidMappingError(ValidationError):
    """Column mapping references unknown, reserved or duplicate targets."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(
            code="INVALID_MAPPING",
            message=message,
            details=details
        )


class UnmappedFieldEditError(ValidationError):
    """Row edit touches fields outside the current mapping."""

    def __init__(self, fields: list[str]):
        super().__init__(
            code="UNMAPPED_FIELD_EDIT",
            message="Only fields present in the current mapping can be edited",
            details={"fields": fields}
        )


class InvalidCommitOptionsError(ValidationError):
    """Commit mode, strategy or defaults are inconsistent."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(
            code="INVALID_COMMIT_OPTIONS",
            message=message,
            details=details
        )


class ImportScopeMismatchError(AppError):
    """Commit targets a vendor other than the one the file was staged for (403)."""

    def __init__(self, import_id: str):
        super().__init__(
            code="IMPORT_SCOPE_MISMATCH",
            message="Not authorized for this import",
            status_code=403,
            details={"import_id": import_id}
        )


# ===================
# COMMIT ROW ERRORS
# ===================

class AmbiguousMatchError(ConflictError):
    """More than one catalog record matches a row; the engine never picks one."""

    def __init__(self, strategy: str, match_count: int):
        super().__init__(
            code="AMBIGUOUS_MATCH",
            message=f"AmbiguousMatch: {match_count} existing records match by {strategy}",
            details={"strategy": strategy, "match_count": match_count}
        )
