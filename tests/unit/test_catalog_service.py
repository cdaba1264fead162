"""
Unit tests for CatalogService.

Run: pytest tests/unit/test_catalog_service.py -v
"""

import pytest

from services.catalog_service import CatalogService, escape_like
from exceptions import DatabaseError

from tests.factories import CatalogRecordFactory

TABLE = "books"


class TestFindByField:
    """Tests for CatalogService.find_by_field()"""

    def test_scoped_to_vendor(self, mock_supabase):
        # Arrange
        mock_supabase.set_table_data(TABLE, [
            CatalogRecordFactory.create(isbn="111", vendor_id="vendor-1"),
            CatalogRecordFactory.create(isbn="111", vendor_id="vendor-2"),
        ])
        service = CatalogService(client=mock_supabase, table=TABLE)

        # Act
        matches = service.find_by_field("vendor-1", "isbn", "111")

        # Assert
        assert len(matches) == 1
        assert matches[0]["vendor_id"] == "vendor-1"

    def test_all_vendors_without_scope(self, mock_supabase):
        mock_supabase.set_table_data(TABLE, [
            CatalogRecordFactory.create(isbn="111", vendor_id="vendor-1"),
            CatalogRecordFactory.create(isbn="111", vendor_id="vendor-2"),
        ])
        service = CatalogService(client=mock_supabase, table=TABLE)

        assert len(service.find_by_field(None, "isbn", "111")) == 2

    def test_at_most_two_matches(self, mock_supabase):
        """Two rows are enough to detect ambiguity."""
        mock_supabase.set_table_data(TABLE, [CatalogRecordFactory.create(isbn="111") for _ in range(5)])
        service = CatalogService(client=mock_supabase, table=TABLE)

        assert len(service.find_by_field("vendor-1", "isbn", "111")) == 2

    def test_client_error_wrapped(self, mock_supabase):
        mock_supabase.table(TABLE).error = RuntimeError("connection reset")
        service = CatalogService(client=mock_supabase, table=TABLE)

        with pytest.raises(DatabaseError) as exc_info:
            service.find_by_field("vendor-1", "isbn", "111")

        assert "connection reset" in exc_info.value.message


class TestFindByTitleAuthor:
    """Tests for CatalogService.find_by_title_author()"""

    def test_case_insensitive_exact(self, mock_supabase):
        # Arrange
        mock_supabase.set_table_data(TABLE, [
            CatalogRecordFactory.create(title="Dune", author="Frank Herbert"),
            CatalogRecordFactory.create(title="Dune Messiah", author="Frank Herbert"),
        ])
        service = CatalogService(client=mock_supabase, table=TABLE)

        # Act
        matches = service.find_by_title_author("vendor-1", "DUNE", "frank herbert")

        # Assert
        assert [m["title"] for m in matches] == ["Dune"]

    def test_wildcards_in_title_are_literal(self, mock_supabase):
        mock_supabase.set_table_data(TABLE, [
            CatalogRecordFactory.create(title="100_Poems", author="Anon"),
            CatalogRecordFactory.create(title="100 Poems", author="Anon"),
        ])
        service = CatalogService(client=mock_supabase, table=TABLE)

        matches = service.find_by_title_author("vendor-1", "100_Poems", "Anon")

        assert [m["title"] for m in matches] == ["100_Poems"]

    def test_asterisk_in_title_is_literal(self, mock_supabase):
        """The backend reads * as a wildcard; only the exact title matches."""
        # Arrange
        mock_supabase.set_table_data(TABLE, [
            CatalogRecordFactory.create(title="MxAxSxH", author="Richard Hooker"),
            CatalogRecordFactory.create(title="M*A*S*H", author="Richard Hooker"),
        ])
        service = CatalogService(client=mock_supabase, table=TABLE)

        # Act
        matches = service.find_by_title_author("vendor-1", "m*a*s*h", "RICHARD HOOKER")

        # Assert
        assert [m["title"] for m in matches] == ["M*A*S*H"]

    def test_wildcard_candidates_do_not_hide_duplicates(self, mock_supabase):
        """Exact duplicates are still both found behind wildcard look-alikes."""
        mock_supabase.set_table_data(TABLE, [
            CatalogRecordFactory.create(title="A-Z", author="Anon"),
            CatalogRecordFactory.create(title="A to Z", author="Anon"),
            CatalogRecordFactory.create(title="A*Z", author="Anon"),
            CatalogRecordFactory.create(title="a*z", author="anon"),
        ])
        service = CatalogService(client=mock_supabase, table=TABLE)

        matches = service.find_by_title_author("vendor-1", "A*Z", "Anon")

        assert len(matches) == 2
        assert {m["title"] for m in matches} == {"A*Z", "a*z"}

    def test_escape_like(self):
        assert escape_like("50% off_now\\") == "50\\% off\\_now\\\\"


class TestWrites:
    """Tests for CatalogService.create() and update()"""

    def test_create_returns_stored_record(self, mock_supabase):
        service = CatalogService(client=mock_supabase, table=TABLE)

        created = service.create({"title": "Dune", "price": 9.99, "vendor_id": "vendor-1"})

        assert created["id"]
        assert created["title"] == "Dune"
        assert len(mock_supabase.table(TABLE).rows) == 1

    def test_update_by_id(self, mock_supabase):
        existing = CatalogRecordFactory.create(price=5.0)
        mock_supabase.set_table_data(TABLE, [existing])
        service = CatalogService(client=mock_supabase, table=TABLE)

        updated = service.update(existing["id"], {"price": 7.0})

        assert updated["price"] == 7.0

    def test_update_missing_record(self, mock_supabase):
        service = CatalogService(client=mock_supabase, table=TABLE)

        with pytest.raises(DatabaseError):
            service.update("nope", {"price": 1})

    def test_insert_error_wrapped(self, mock_supabase):
        mock_supabase.table(TABLE).error = RuntimeError("duplicate key")
        service = CatalogService(client=mock_supabase, table=TABLE)

        with pytest.raises(DatabaseError) as exc_info:
            service.create({"title": "Dune"})

        assert exc_info.value.details["operation"] == "insert"
