"""
Custom exceptions module.
"""

from exceptions.errors import (
    # Base exceptions
    AppError,
    NotFoundError,
    ValidationError,
    ConflictError,
    DatabaseError,

    # Import parsing
    MalformedInputError,

    # Import sessions
    ImportSessionNotFoundError,
    StagedRowNotFoundError,
    ImportSessionBusyError,
    ImportAlreadyCommittedError,
    InvalidMappingError,
    UnmappedFieldEditError,
    InvalidCommitOptionsError,
    ImportScopeMismatchError,

    # Commit rows
    AmbiguousMatchError,
)

__all__ = [
    # Base
    "AppError",
    "NotFoundError",
    "ValidationError",
    "ConflictError",
    "DatabaseError",

    # Import parsing
    "MalformedInputError",

    # Import sessions
    "ImportSessionNotFoundError",
    "StagedRowNotFoundError",
    "ImportSessionBusyError",
    "ImportAlreadyCommittedError",
    "InvalidMappingError",
    "UnmappedFieldEditError",
    "InvalidCommitOptionsError",
    "ImportScopeMismatchError",

    # Commit rows
    "AmbiguousMatchError",
]
