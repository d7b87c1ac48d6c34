"""Nominee book catalog.

Catalog entries are published once per academic year and never edited
afterwards. Everything else refers to a nominee by id only.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import structlog

from luxlibris.core.phases import AcademicYear
from luxlibris.db import paths
from luxlibris.db.document_store import DocumentStore

logger = structlog.get_logger(__name__)

NOMINEE_SCHEMA = "nominee_book_v1"


@dataclass(frozen=True)
class NomineeBook:
    """A catalog entry for one academic year."""

    book_id: str
    title: str
    academic_year: str
    authors: list[str] = field(default_factory=list)
    pages: int | None = None
    audio_minutes: int | None = None
    grade_bands: list[str] = field(default_factory=list)
    genres: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "$schema": NOMINEE_SCHEMA,
            "book_id": self.book_id,
            "title": self.title,
            "academic_year": self.academic_year,
            "authors": list(self.authors),
            "pages": self.pages,
            "audio_minutes": self.audio_minutes,
            "grade_bands": list(self.grade_bands),
            "genres": list(self.genres),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "NomineeBook":
        return cls(
            book_id=data["book_id"],
            title=data["title"],
            academic_year=data["academic_year"],
            authors=list(data.get("authors", [])),
            pages=data.get("pages"),
            audio_minutes=data.get("audio_minutes"),
            grade_bands=list(data.get("grade_bands", [])),
            genres=list(data.get("genres", [])),
        )


def register_nominee(store: DocumentStore, book: NomineeBook) -> bool:
    """Publish a nominee into its year's catalog.

    Publishing is append-only: registering an id that already exists leaves
    the original entry untouched.

    Returns:
        True if the entry was added, False if the id was already published.
    """
    year = AcademicYear.parse(book.academic_year)
    if not book.title.strip():
        raise ValueError("Nominee title must not be empty")

    existed = store.get(paths.nominee_book(str(year), book.book_id)) is not None
    store.append(paths.nominee_books(str(year)), book.to_dict(), document_id=book.book_id)
    if existed:
        logger.info("nominee_already_published", book_id=book.book_id, academic_year=str(year))
        return False

    logger.info("nominee_published", book_id=book.book_id, academic_year=str(year))
    return True


def get_nominee(
    store: DocumentStore, year: AcademicYear | str, book_id: str
) -> NomineeBook | None:
    data = store.get(paths.nominee_book(str(AcademicYear.coerce(year)), book_id))
    if data is None:
        return None
    return NomineeBook.from_dict(data)


def list_nominees(store: DocumentStore, year: AcademicYear | str) -> list[NomineeBook]:
    """All nominees of a year, ordered by title."""
    docs = store.list_documents(paths.nominee_books(str(AcademicYear.coerce(year))))
    books = [NomineeBook.from_dict(d) for d in docs]
    return sorted(books, key=lambda b: b.title.lower())
