"""
Unit tests for the import staging store.

Run: pytest tests/unit/test_staging_service.py -v
"""

import threading

import pytest

from models.catalog_import import ImportStatus, RowFilter
from services.staging_service import IMPORT_ID_PREFIX, ImportSession, generate_import_id
from services.validation_service import validate_row
from exceptions import (
    ImportSessionBusyError,
    ImportSessionNotFoundError,
    StagedRowNotFoundError,
    UnmappedFieldEditError,
)

HEADERS = ["Title", "Author", "Price"]
MAPPING = {"Title": "title", "Author": "author", "Price": "price"}
RECORDS = [
    {"Title": "Dune", "Author": "Frank Herbert", "Price": "9.99"},
    {"Title": "Emma", "Author": "Jane Austen", "Price": ""},
    {"Title": "Ulysses", "Author": "James Joyce", "Price": "12"},
]


def _new_session(store, records=RECORDS, mapping=MAPPING) -> ImportSession:
    session = store.create(
        headers=HEADERS,
        file_name="books.csv",
        byte_size=120,
        total_parsed=len(records),
        truncated=False,
    )
    with session.exclusive("stage"):
        session.initialize(records, mapping)
    return session


def _assert_stats_consistent(session):
    stats = session.stats
    rows, _ = session.list_rows(1, 1000)
    assert stats.valid_rows + stats.invalid_rows == stats.total_rows
    assert stats.valid_rows == sum(1 for r in rows if r.is_valid)


class TestInitialize:
    """Tests for ImportSession.initialize()"""

    def test_stats_after_initialize(self, staging_store):
        """Three rows with one empty required Price."""
        # Act
        session = _new_session(staging_store)

        # Assert
        assert session.stats.total_rows == 3
        assert session.stats.valid_rows == 2
        assert session.stats.invalid_rows == 1
        assert session.revision == 1
        assert session.status == ImportStatus.STAGED

    def test_row_indexes_follow_file_order(self, staging_store):
        session = _new_session(staging_store)

        rows, _ = session.list_rows(1, 10)

        assert [r.row_index for r in rows] == [1, 2, 3]
        assert rows[1].is_valid is False


class TestRemap:
    """Tests for ImportSession.remap()"""

    def test_ignoring_required_column_invalidates_all_rows(self, staging_store):
        """Should revalidate every row under the new mapping."""
        # Arrange
        session = _new_session(staging_store)

        # Act
        with session.exclusive("remap"):
            stats = session.remap({**MAPPING, "Price": None})

        # Assert
        assert stats.invalid_rows == 3
        assert session.revision == 2
        _assert_stats_consistent(session)

    def test_no_stale_errors_after_remap(self, staging_store):
        """Every row's errors equal a fresh validation of its raw record."""
        # Arrange
        session = _new_session(staging_store)
        new_mapping = {"Title": "title", "Author": None, "Price": "price"}

        # Act
        with session.exclusive("remap"):
            session.remap(new_mapping)

        # Assert
        for index, record in enumerate(RECORDS, start=1):
            assert session.get_row(index) == validate_row(new_mapping, record, index)


class TestListRows:
    """Tests for ImportSession.list_rows()"""

    def test_filter_applies_before_pagination(self, staging_store):
        # Arrange
        records = [
            {"Title": f"Book {n}", "Author": "", "Price": "" if n % 2 else "5"}
            for n in range(1, 11)
        ]
        session = _new_session(staging_store, records=records)

        # Act
        page1, total = session.list_rows(1, 3, RowFilter.VALID)
        page2, _ = session.list_rows(2, 3, RowFilter.VALID)

        # Assert
        assert total == 5 == session.stats.valid_rows
        assert [r.row_index for r in page1] == [2, 4, 6]
        assert [r.row_index for r in page2] == [8, 10]

    def test_page_past_end_is_empty(self, staging_store):
        session = _new_session(staging_store)

        rows, total = session.list_rows(5, 10, RowFilter.INVALID)

        assert rows == []
        assert total == 1


class TestEditRow:
    """Tests for ImportSession.edit_row()"""

    def test_fixing_row_moves_it_to_valid(self, staging_store):
        """Should revalidate the row and update stats incrementally."""
        # Arrange
        session = _new_session(staging_store)

        # Act
        with session.exclusive("edit_row"):
            row = session.edit_row(2, {"title": "Emma", "author": "Jane Austen", "price": 7.5})

        # Assert
        assert row.is_valid
        assert row.values["price"] == 7.5
        assert session.stats.valid_rows == 3
        assert session.stats.invalid_rows == 0
        assert session.record_for(2)["Price"] == "7.5"
        _assert_stats_consistent(session)

    def test_omitted_mapped_fields_are_cleared(self, staging_store):
        """Should replace every mapped value, not merge."""
        # Arrange
        session = _new_session(staging_store)

        # Act
        with session.exclusive("edit_row"):
            row = session.edit_row(1, {"title": "Dune"})

        # Assert
        assert not row.is_valid
        assert "author" not in row.values
        assert session.stats.invalid_rows == 2

    def test_unmapped_field_rejected(self, staging_store):
        session = _new_session(staging_store)

        with pytest.raises(UnmappedFieldEditError) as exc_info:
            with session.exclusive("edit_row"):
                session.edit_row(1, {"title": "Dune", "isbn": "123"})

        assert exc_info.value.details["fields"] == ["isbn"]
        assert session.revision == 1

    @pytest.mark.parametrize("row_index", [0, 4, -1])
    def test_unknown_row(self, staging_store, row_index):
        session = _new_session(staging_store)

        with pytest.raises(StagedRowNotFoundError):
            with session.exclusive("edit_row"):
                session.edit_row(row_index, {"title": "x"})

    def test_edit_matches_fresh_validation(self, staging_store):
        """Single-row revalidation uses the same validator as remap."""
        session = _new_session(staging_store)

        with session.exclusive("edit_row"):
            row = session.edit_row(3, {"title": "Ulysses", "author": "", "price": "abc"})

        assert row == validate_row(MAPPING, session.record_for(3), 3)


class TestExclusive:
    """Per-session mutual exclusion."""

    def test_second_operation_is_rejected(self, staging_store):
        session = _new_session(staging_store)

        with session.exclusive("remap"):
            with pytest.raises(ImportSessionBusyError):
                with session.exclusive("edit_row"):
                    pass

        assert not session.busy

    def test_other_sessions_are_independent(self, staging_store):
        first = _new_session(staging_store)
        second = _new_session(staging_store)

        with first.exclusive("remap"):
            with second.exclusive("remap"):
                assert first.busy and second.busy

    def test_concurrent_edits_never_lose_updates(self, staging_store):
        """Stats stay consistent when threads race on one session."""
        # Arrange
        records = [{"Title": f"B{n}", "Author": "", "Price": ""} for n in range(1, 41)]
        session = _new_session(staging_store, records=records)
        rejected = []

        def fix(row_index):
            while True:
                try:
                    with session.exclusive("edit_row"):
                        session.edit_row(row_index, {"title": f"B{row_index}", "price": 1})
                    return
                except ImportSessionBusyError:
                    rejected.append(row_index)

        # Act
        threads = [threading.Thread(target=fix, args=(i,)) for i in range(1, 41)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        # Assert
        assert session.stats.valid_rows == 40
        assert session.revision == 41
        _assert_stats_consistent(session)


class TestStagingStore:
    """Tests for StagingStore"""

    def test_get_unknown(self, staging_store):
        with pytest.raises(ImportSessionNotFoundError):
            staging_store.get("imp_missing")

    def test_import_id_format(self):
        import_id = generate_import_id()

        assert import_id.startswith(IMPORT_ID_PREFIX)
        assert len(import_id) == len(IMPORT_ID_PREFIX) + 24
        int(import_id[len(IMPORT_ID_PREFIX):], 16)

    def test_idle_session_expires(self, staging_store, clock):
        # Arrange
        session = _new_session(staging_store)

        # Act
        clock.advance(minutes=31)

        # Assert
        with pytest.raises(ImportSessionNotFoundError):
            staging_store.get(session.import_id)

    def test_activity_extends_lifetime(self, staging_store, clock):
        session = _new_session(staging_store)

        clock.advance(minutes=20)
        staging_store.get(session.import_id)
        clock.advance(minutes=20)

        assert staging_store.get(session.import_id) is session

    def test_busy_session_never_expires(self, staging_store, clock):
        """Should not collect a session while an operation holds it."""
        session = _new_session(staging_store)

        with session.exclusive("commit"):
            clock.advance(hours=5)
            assert staging_store.cleanup_expired() == 0

        assert staging_store.cleanup_expired() == 1

    def test_committed_session_kept_for_result_ttl(self, staging_store, clock):
        # Arrange
        session = _new_session(staging_store)
        session.status = ImportStatus.COMMITTED
        session.committed_at = clock()

        # Act / Assert
        clock.advance(minutes=45)
        assert staging_store.get(session.import_id) is session
        clock.advance(minutes=30)
        with pytest.raises(ImportSessionNotFoundError):
            staging_store.get(session.import_id)
