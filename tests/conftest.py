"""
Shared test fixtures.

Catalog data access is exercised against a mock Supabase client with a
chainable, filtering query builder. Services above it use FakeCatalog,
an in-memory stand-in for CatalogService.
"""

import sys
from pathlib import Path

# Add backend directory to Python path
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

import re
from unittest.mock import patch
import pytest
from datetime import datetime, timedelta
from typing import Optional

from config.settings import Settings
from exceptions import DatabaseError
from services.commit_service import CommitService
from services.error_export_service import ErrorExportService
from services.import_service import CatalogImportService
from services.staging_service import StagingStore

# ===================
# MOCK SUPABASE CLIENT
# ===================

class MockSupabaseResponse:
    """Mock Supabase query response."""

    def __init__(self, data: list = None, count: int = None):
        self.data = data or []
        self.count = count if count is not None else len(self.data)


def _ilike_pattern(pattern: str) -> re.Pattern:
    """Translate a PostgREST ilike pattern (backslash escapes, `*` as `%`) to a regex."""
    parts = []
    chars = iter(pattern)
    for char in chars:
        if char == "\\":
            parts.append(re.escape(next(chars, "\\")))
        elif char in "%*":
            parts.append(".*")
        elif char == "_":
            parts.append(".")
        else:
            parts.append(re.escape(char))
    return re.compile("".join(parts), re.IGNORECASE | re.DOTALL)


class MockSupabaseQuery:
    """Mock Supabase query builder with chainable methods."""

    def __init__(self, table: "MockSupabaseTable"):
        self._table = table
        self._filters = []
        self._limit: Optional[int] = None
        self._insert: Optional[list] = None
        self._update: Optional[dict] = None
        self._count_requested = False

    def select(self, *args, count: Optional[str] = None, **kwargs):
        self._count_requested = count is not None
        return self

    def insert(self, data):
        self._insert = [data] if isinstance(data, dict) else list(data)
        return self

    def update(self, data):
        self._update = dict(data)
        return self

    def eq(self, column, value):
        self._filters.append(lambda row: row.get(column) == value)
        return self

    def ilike(self, column, pattern):
        regex = _ilike_pattern(pattern)
        self._filters.append(lambda row: regex.fullmatch(str(row.get(column) or "")) is not None)
        return self

    def limit(self, count):
        self._limit = count
        return self

    def execute(self) -> MockSupabaseResponse:
        self._table.calls.append(self)
        if self._table.error is not None:
            raise self._table.error

        if self._insert is not None:
            created = []
            for item in self._insert:
                record = {**item, "id": self._table.next_id(), "created_at": datetime.utcnow().isoformat() + "Z"}
                self._table.rows.append(record)
                created.append(dict(record))
            return MockSupabaseResponse(data=created)

        matched = [row for row in self._table.rows if all(f(row) for f in self._filters)]

        if self._update is not None:
            for row in matched:
                row.update(self._update)
            return MockSupabaseResponse(data=[dict(row) for row in matched])

        total = len(matched)
        if self._limit is not None:
            matched = matched[:self._limit]
        return MockSupabaseResponse(data=[dict(row) for row in matched], count=total)


class MockSupabaseTable:
    """In-memory table shared by every query on it."""

    def __init__(self, rows: list = None):
        self.rows = [dict(r) for r in (rows or [])]
        self.calls: list = []
        self.error: Optional[Exception] = None
        self._next = 1000

    def next_id(self) -> str:
        self._next += 1
        return f"book-{self._next}"

    def select(self, *args, **kwargs):
        return MockSupabaseQuery(self).select(*args, **kwargs)

    def insert(self, data):
        return MockSupabaseQuery(self).insert(data)

    def update(self, data):
        return MockSupabaseQuery(self).update(data)


class MockSupabaseClient:
    """Mock Supabase client."""

    def __init__(self):
        self._tables: dict[str, MockSupabaseTable] = {}

    def set_table_data(self, table_name: str, data: list):
        """Configure rows for a table."""
        self._tables[table_name] = MockSupabaseTable(data)

    def table(self, name: str) -> MockSupabaseTable:
        if name not in self._tables:
            self._tables[name] = MockSupabaseTable()
        return self._tables[name]


# ===================
# FAKE CATALOG
# ===================

class FakeCatalog:
    """
    In-memory catalog with the CatalogService interface.

    Titles listed in fail_titles raise DatabaseError on write.
    """

    def __init__(self, records: list = None, fail_titles: set = None):
        self.records = [dict(r) for r in (records or [])]
        self.fail_titles = set(fail_titles or ())
        self.created: list[dict] = []
        self.updated: list[tuple] = []
        self._next = 0

    def _scoped(self, vendor_id):
        return [r for r in self.records if vendor_id is None or r.get("vendor_id") == vendor_id]

    def find_by_field(self, vendor_id, field, value):
        return [dict(r) for r in self._scoped(vendor_id) if r.get(field) == value][:2]

    def find_by_title_author(self, vendor_id, title, author):
        return [
            dict(r) for r in self._scoped(vendor_id)
            if str(r.get("title", "")).casefold() == title.casefold()
            and str(r.get("author", "")).casefold() == author.casefold()
        ][:2]

    def create(self, record):
        if record.get("title") in self.fail_titles:
            raise DatabaseError("insert", "duplicate key value violates unique constraint")
        self._next += 1
        stored = {**record, "id": f"new-{self._next}"}
        self.records.append(stored)
        self.created.append(stored)
        return dict(stored)

    def update(self, record_id, changes):
        for record in self.records:
            if record["id"] == record_id:
                if record.get("title") in self.fail_titles:
                    raise DatabaseError("update", "row is locked")
                record.update(changes)
                self.updated.append((record_id, dict(changes)))
                return dict(record)
        raise DatabaseError("update", f"record {record_id} not found")


class FakeClock:
    """Settable clock for expiry tests."""

    def __init__(self, start: datetime = None):
        self.now = start or datetime(2026, 3, 1, 9, 0, 0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


# ===================
# FIXTURES
# ===================

@pytest.fixture
def mock_supabase() -> MockSupabaseClient:
    """
    Create a mock Supabase client.

    Usage:
        def test_something(mock_supabase):
            mock_supabase.set_table_data("books", [
                {"id": "1", "isbn": "9780140449136", ...}
            ])
    """
    return MockSupabaseClient()


@pytest.fixture
def fake_catalog() -> FakeCatalog:
    return FakeCatalog()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def import_settings() -> Settings:
    """Settings with small limits, independent of the environment."""
    return Settings(
        _env_file=None,
        import_max_rows=50,
        import_max_bytes=64 * 1024,
        import_preview_rows=5,
        import_default_page_size=10,
        import_max_page_size=100,
    )


@pytest.fixture
def staging_store(clock) -> StagingStore:
    return StagingStore(session_ttl_minutes=30, result_ttl_minutes=60, clock=clock)


@pytest.fixture
def import_service(staging_store, fake_catalog, import_settings) -> CatalogImportService:
    """Import service wired to in-memory storage and catalog."""
    return CatalogImportService(
        store=staging_store,
        commit_service=CommitService(fake_catalog),
        export_service=ErrorExportService(),
        config=import_settings,
    )


@pytest.fixture
def test_client(import_service):
    """
    Create FastAPI test client wired to the in-memory import service.

    Usage:
        def test_endpoint(test_client):
            response = test_client.get("/api/imports/target-fields")
            assert response.status_code == 200
    """
    from fastapi.testclient import TestClient
    from main import app

    with patch("routes.imports.get_import_service", return_value=import_service):
        yield TestClient(app)
