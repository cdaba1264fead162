"""
Staging store for catalog import sessions.

Keeps each uploaded file's raw records, current mapping and validation
results between the separate wizard calls, keyed by import id, with TTL
expiry. Single process, in memory.

Each session has its own lock: remap, row edits and commit on one session
are mutually exclusive (a second caller gets ImportSessionBusyError), while
different sessions proceed in parallel. Mutations build a new immutable
SessionSnapshot and swap it in with one assignment, so readers always see
the state after the last completed mutation.
"""

import secrets
import threading
from contextlib import contextmanager
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Any, Callable, Iterable, Iterator, Optional
import structlog

from config import settings
from config.catalog_fields import TARGET_FIELDS, TargetField
from exceptions import (
    ImportSessionBusyError,
    ImportSessionNotFoundError,
    StagedRowNotFoundError,
    UnmappedFieldEditError,
)
from models.catalog_import import ImportStatus, RowFilter
from services.validation_service import StagedRow, cell_text, validate_row

logger = structlog.get_logger(__name__)

IMPORT_ID_PREFIX = "imp_"


@dataclass(frozen=True)
class ImportStats:
    """Validity counts across a session's rows at one point in time."""
    total_rows: int
    valid_rows: int
    invalid_rows: int
    total_parsed: int
    truncated: bool

    @classmethod
    def from_rows(
        cls,
        rows: Iterable[StagedRow],
        total_parsed: int,
        truncated: bool,
    ) -> "ImportStats":
        rows = list(rows)
        valid = sum(1 for row in rows if row.is_valid)
        return cls(
            total_rows=len(rows),
            valid_rows=valid,
            invalid_rows=len(rows) - valid,
            total_parsed=total_parsed,
            truncated=truncated,
        )

    def after_edit(self, was_valid: bool, is_valid: bool) -> "ImportStats":
        """Move one row between the valid and invalid buckets."""
        if was_valid == is_valid:
            return self
        delta = 1 if is_valid else -1
        return replace(
            self,
            valid_rows=self.valid_rows + delta,
            invalid_rows=self.invalid_rows - delta,
        )

    def to_dict(self) -> dict:
        return {
            "total_rows": self.total_rows,
            "total_parsed": self.total_parsed,
            "valid_rows": self.valid_rows,
            "invalid_rows": self.invalid_rows,
            "truncated": self.truncated,
        }


@dataclass(frozen=True)
class SessionSnapshot:
    """Everything readers need, replaced as a whole on each mutation."""
    mapping: dict[str, Optional[str]]
    records: tuple[dict[str, str], ...]
    rows: tuple[StagedRow, ...]
    stats: ImportStats
    revision: int


class ImportSession:
    """
    Staging area for one uploaded file.

    Rows are addressed by their 1-based position in the file, which never
    changes across remaps and edits.
    """

    def __init__(
        self,
        import_id: str,
        headers: list[str],
        file_name: str,
        byte_size: int,
        total_parsed: int,
        truncated: bool,
        created_at: datetime,
        vendor_id: Optional[str] = None,
        identifier_column: Optional[str] = None,
        fields: Iterable[TargetField] = TARGET_FIELDS,
    ):
        self.import_id = import_id
        self.headers = list(headers)
        self.file_name = file_name
        self.byte_size = byte_size
        self.total_parsed = total_parsed
        self.truncated = truncated
        self.created_at = created_at
        self.vendor_id = vendor_id
        self.identifier_column = identifier_column
        self.fields = tuple(fields)

        self.status = ImportStatus.STAGED
        self.report: Any = None
        self.committed_at: Optional[datetime] = None
        self.last_activity = created_at

        self._lock = threading.Lock()
        self._snapshot: Optional[SessionSnapshot] = None

    # ===================
    # STATE ACCESS
    # ===================

    @property
    def snapshot(self) -> SessionSnapshot:
        if self._snapshot is None:
            raise RuntimeError(f"Import session {self.import_id} was never initialized")
        return self._snapshot

    @property
    def mapping(self) -> dict[str, Optional[str]]:
        return dict(self.snapshot.mapping)

    @property
    def stats(self) -> ImportStats:
        return self.snapshot.stats

    @property
    def revision(self) -> int:
        return self.snapshot.revision if self._snapshot is not None else 0

    @property
    def busy(self) -> bool:
        """True while a mutating operation holds the session."""
        return self._lock.locked()

    @contextmanager
    def exclusive(self, operation: str) -> Iterator["ImportSession"]:
        """
        Hold the session for one mutating operation.

        Raises:
            ImportSessionBusyError: If another operation already holds it
        """
        if not self._lock.acquire(blocking=False):
            logger.warning("import_session_busy", import_id=self.import_id, operation=operation)
            raise ImportSessionBusyError(self.import_id, operation)
        try:
            yield self
        finally:
            self._lock.release()

    # ===================
    # MUTATIONS (call inside exclusive())
    # ===================

    def initialize(self, records: list[dict[str, str]], mapping: dict[str, Optional[str]]) -> ImportStats:
        """Validate every record under the first mapping."""
        self._snapshot = self._build(tuple(dict(r) for r in records), mapping, revision=1)
        return self._snapshot.stats

    def remap(self, mapping: dict[str, Optional[str]]) -> ImportStats:
        """Replace the mapping and revalidate every row."""
        current = self.snapshot
        self._snapshot = self._build(current.records, mapping, revision=current.revision + 1)
        return self._snapshot.stats

    def edit_row(self, row_index: int, field_values: dict[str, Any]) -> StagedRow:
        """
        Replace the mapped field values of one row and revalidate it.

        Every mapped field is rewritten: fields absent from field_values
        become empty cells.

        Raises:
            StagedRowNotFoundError: Unknown row index
            UnmappedFieldEditError: field_values names a field outside the mapping
        """
        current = self.snapshot
        position = self._position(row_index, current)

        mapped_fields = {key: header for header, key in current.mapping.items() if key}
        unmapped = sorted(key for key in field_values if key not in mapped_fields)
        if unmapped:
            raise UnmappedFieldEditError(unmapped)

        record = dict(current.records[position])
        for key, header in mapped_fields.items():
            record[header] = cell_text(field_values.get(key))

        old_row = current.rows[position]
        new_row = validate_row(current.mapping, record, row_index, self.fields)

        records = current.records[:position] + (record,) + current.records[position + 1:]
        rows = current.rows[:position] + (new_row,) + current.rows[position + 1:]

        self._snapshot = SessionSnapshot(
            mapping=current.mapping,
            records=records,
            rows=rows,
            stats=current.stats.after_edit(old_row.is_valid, new_row.is_valid),
            revision=current.revision + 1,
        )
        return new_row

    # ===================
    # READS
    # ===================

    def list_rows(
        self,
        page: int,
        page_size: int,
        row_filter: RowFilter = RowFilter.ALL,
    ) -> tuple[list[StagedRow], int]:
        """
        Index-ordered page of rows; the filter applies before pagination.

        Returns:
            Tuple of (rows on the page, total rows matching the filter)
        """
        rows = self.snapshot.rows
        if row_filter == RowFilter.VALID:
            rows = tuple(row for row in rows if row.is_valid)
        elif row_filter == RowFilter.INVALID:
            rows = tuple(row for row in rows if not row.is_valid)

        offset = (page - 1) * page_size
        return list(rows[offset:offset + page_size]), len(rows)

    def get_row(self, row_index: int) -> StagedRow:
        current = self.snapshot
        return current.rows[self._position(row_index, current)]

    def record_for(self, row_index: int) -> dict[str, str]:
        """Raw cells of a row as currently staged (edits included)."""
        current = self.snapshot
        return dict(current.records[self._position(row_index, current)])

    def preview(self, limit: int) -> list[StagedRow]:
        return list(self.snapshot.rows[:limit])

    # ===================
    # HELPERS
    # ===================

    def _build(
        self,
        records: tuple[dict[str, str], ...],
        mapping: dict[str, Optional[str]],
        revision: int,
    ) -> SessionSnapshot:
        mapping = dict(mapping)
        rows = tuple(
            validate_row(mapping, record, index, self.fields)
            for index, record in enumerate(records, start=1)
        )
        return SessionSnapshot(
            mapping=mapping,
            records=records,
            rows=rows,
            stats=ImportStats.from_rows(rows, self.total_parsed, self.truncated),
            revision=revision,
        )

    def _position(self, row_index: int, snapshot: SessionSnapshot) -> int:
        if not 1 <= row_index <= len(snapshot.rows):
            raise StagedRowNotFoundError(self.import_id, row_index)
        return row_index - 1


class StagingStore:
    """
    Import sessions keyed by import id.

    Uncommitted sessions expire after session_ttl of inactivity; committed
    sessions stay readable for result_ttl after the commit. A session that
    is in the middle of an operation never expires.
    """

    def __init__(
        self,
        session_ttl_minutes: int,
        result_ttl_minutes: int,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.session_ttl = timedelta(minutes=session_ttl_minutes)
        self.result_ttl = timedelta(minutes=result_ttl_minutes)
        self._clock = clock
        self._sessions: dict[str, ImportSession] = {}
        self._guard = threading.Lock()

    def now(self) -> datetime:
        return self._clock()

    def create(self, **session_kwargs) -> ImportSession:
        """Register a new session under a fresh import id."""
        self.cleanup_expired()
        with self._guard:
            import_id = generate_import_id()
            while import_id in self._sessions:
                import_id = generate_import_id()
            session = ImportSession(import_id=import_id, created_at=self.now(), **session_kwargs)
            self._sessions[import_id] = session
        return session

    def get(self, import_id: str) -> ImportSession:
        """
        Look up a live session and mark it active.

        Raises:
            ImportSessionNotFoundError: Unknown or expired import id
        """
        self.cleanup_expired()
        with self._guard:
            session = self._sessions.get(import_id)
        if session is None:
            raise ImportSessionNotFoundError(import_id)
        session.last_activity = self.now()
        return session

    def cleanup_expired(self) -> int:
        """Drop expired sessions. Returns how many were removed."""
        now = self.now()
        with self._guard:
            expired = [
                import_id
                for import_id, session in self._sessions.items()
                if self._is_expired(session, now)
            ]
            for import_id in expired:
                del self._sessions[import_id]

        for import_id in expired:
            logger.info("import_session_expired", import_id=import_id)
        return len(expired)

    def __len__(self) -> int:
        return len(self._sessions)

    def _is_expired(self, session: ImportSession, now: datetime) -> bool:
        if session.busy:
            return False
        if session.status == ImportStatus.COMMITTED and session.committed_at is not None:
            return now > session.committed_at + self.result_ttl
        return now > session.last_activity + self.session_ttl


def generate_import_id() -> str:
    """Opaque import id: imp_ + 24 hex characters."""
    return IMPORT_ID_PREFIX + secrets.token_hex(12)


# =============================================================================
# Singleton
# =============================================================================

_staging_store: Optional[StagingStore] = None


def get_staging_store() -> StagingStore:
    """Get or create the process-wide StagingStore."""
    global _staging_store
    if _staging_store is None:
        _staging_store = StagingStore(
            session_ttl_minutes=settings.import_session_ttl_minutes,
            result_ttl_minutes=settings.import_result_ttl_minutes,
        )
    return _staging_store
