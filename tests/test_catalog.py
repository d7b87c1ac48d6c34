"""Tests for the nominee catalog."""

import pytest

from luxlibris.core.catalog import NomineeBook, get_nominee, list_nominees, register_nominee


def _book(book_id="wild-robot", title="The Wild Robot", year="2025-26", **kwargs):
    return NomineeBook(book_id=book_id, title=title, academic_year=year, **kwargs)


class TestRegisterNominee:
    def test_register_and_get(self, store):
        assert register_nominee(store, _book(authors=["Peter Brown"], pages=288)) is True
        book = get_nominee(store, "2025-26", "wild-robot")
        assert book is not None
        assert book.title == "The Wild Robot"
        assert book.authors == ["Peter Brown"]
        assert book.pages == 288

    def test_published_entry_is_immutable(self, store):
        register_nominee(store, _book())
        assert register_nominee(store, _book(title="Renamed")) is False
        assert get_nominee(store, "2025-26", "wild-robot").title == "The Wild Robot"

    def test_empty_title_rejected(self, store):
        with pytest.raises(ValueError):
            register_nominee(store, _book(title="   "))

    def test_bad_year_rejected(self, store):
        with pytest.raises(ValueError):
            register_nominee(store, _book(year="2025"))

    def test_years_are_separate(self, store):
        register_nominee(store, _book())
        assert get_nominee(store, "2026-27", "wild-robot") is None


class TestListNominees:
    def test_sorted_by_title(self, store):
        register_nominee(store, _book("b1", "wonder"))
        register_nominee(store, _book("b2", "Holes"))
        register_nominee(store, _book("b3", "Ban This Book"))
        assert [b.title for b in list_nominees(store, "2025-26")] == [
            "Ban This Book",
            "Holes",
            "wonder",
        ]

    def test_empty_year(self, store):
        assert list_nominees(store, "2030-31") == []
