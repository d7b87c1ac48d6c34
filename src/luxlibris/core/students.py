"""Student records and bookshelves.

Each student is one document at students/{student_id}. It holds the
student's name/grade, yearly and lifetime completed-book counters, the
bookshelf of ShelfEntry records (one per book), the yearly favorite-book
votes and any back-filled completions from earlier grades. Keeping counters
and shelf in one document lets every approval be a single atomic update.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

import structlog

from luxlibris.core.phases import AcademicYear
from luxlibris.db import paths
from luxlibris.db.document_store import DocumentStore

logger = structlog.get_logger(__name__)

STUDENT_SCHEMA = "student_v1"


class SubmissionStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    PENDING_APPROVAL = "pending_approval"
    COMPLETED = "completed"
    REVISION_REQUESTED = "revision_requested"
    QUIZ_FAILED = "quiz_failed"


@dataclass
class ShelfEntry:
    """A book on a student's shelf and its submission state."""

    book_id: str
    status: SubmissionStatus = SubmissionStatus.IN_PROGRESS
    submission_type: str | None = None
    progress_value: int = 0
    teacher_notes: str | None = None
    added_at: str = ""
    submitted_at: str | None = None
    approved_at: str | None = None
    revision_requested_at: str | None = None
    failed_at: str | None = None
    # set once the completion has been added to the counters
    completion_counted: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "book_id": self.book_id,
            "status": self.status.value,
            "submission_type": self.submission_type,
            "progress_value": self.progress_value,
            "teacher_notes": self.teacher_notes,
            "added_at": self.added_at,
            "submitted_at": self.submitted_at,
            "approved_at": self.approved_at,
            "revision_requested_at": self.revision_requested_at,
            "failed_at": self.failed_at,
            "completion_counted": self.completion_counted,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ShelfEntry":
        return cls(
            book_id=data["book_id"],
            status=SubmissionStatus(data.get("status", "in_progress")),
            submission_type=data.get("submission_type"),
            progress_value=int(data.get("progress_value", 0)),
            teacher_notes=data.get("teacher_notes"),
            added_at=data.get("added_at", ""),
            submitted_at=data.get("submitted_at"),
            approved_at=data.get("approved_at"),
            revision_requested_at=data.get("revision_requested_at"),
            failed_at=data.get("failed_at"),
            completion_counted=bool(data.get("completion_counted", False)),
        )


@dataclass
class Vote:
    """A student's favorite book for one academic year; never changed once cast."""

    book_id: str
    academic_year: str
    voted_at: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "book_id": self.book_id,
            "academic_year": self.academic_year,
            "voted_at": self.voted_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Vote":
        return cls(
            book_id=data["book_id"],
            academic_year=data["academic_year"],
            voted_at=data.get("voted_at", ""),
        )


@dataclass
class HistoricalCompletion:
    """Books read in an earlier grade, before the student joined the program."""

    grade: int
    books: int
    added_at: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"grade": self.grade, "books": self.books, "added_at": self.added_at}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "HistoricalCompletion":
        return cls(
            grade=int(data["grade"]),
            books=int(data["books"]),
            added_at=data.get("added_at", ""),
        )


@dataclass
class StudentRecord:
    """A student enrolled with one teacher."""

    student_id: str
    first_name: str
    teacher_id: str
    academic_year: str
    last_initial: str = ""
    grade: int | None = None
    books_submitted_this_year: int = 0
    lifetime_books_submitted: int = 0
    bookshelf: list[ShelfEntry] = field(default_factory=list)
    votes: list[Vote] = field(default_factory=list)
    historical_completions: list[HistoricalCompletion] = field(default_factory=list)
    created_at: str = ""
    last_modified: str = ""

    def __post_init__(self):
        now = datetime.now(timezone.utc).isoformat()
        if not self.created_at:
            self.created_at = now
        if not self.last_modified:
            self.last_modified = now

    @property
    def display_name(self) -> str:
        if self.last_initial:
            return f"{self.first_name} {self.last_initial}."
        return self.first_name

    def get_entry(self, book_id: str) -> ShelfEntry | None:
        for entry in self.bookshelf:
            if entry.book_id == book_id:
                return entry
        return None

    def vote_for_year(self, academic_year: str) -> Vote | None:
        for vote in self.votes:
            if vote.academic_year == academic_year:
                return vote
        return None

    def history_for_grade(self, grade: int) -> HistoricalCompletion | None:
        for completion in self.historical_completions:
            if completion.grade == grade:
                return completion
        return None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "$schema": STUDENT_SCHEMA,
            "student_id": self.student_id,
            "first_name": self.first_name,
            "last_initial": self.last_initial,
            "grade": self.grade,
            "teacher_id": self.teacher_id,
            "academic_year": self.academic_year,
            "books_submitted_this_year": self.books_submitted_this_year,
            "lifetime_books_submitted": self.lifetime_books_submitted,
            "bookshelf": [e.to_dict() for e in self.bookshelf],
            "votes": [v.to_dict() for v in self.votes],
            "historical_completions": [h.to_dict() for h in self.historical_completions],
            "created_at": self.created_at,
            "last_modified": self.last_modified,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StudentRecord":
        return cls(
            student_id=data["student_id"],
            first_name=data.get("first_name", ""),
            teacher_id=data["teacher_id"],
            academic_year=data["academic_year"],
            last_initial=data.get("last_initial", ""),
            grade=data.get("grade"),
            books_submitted_this_year=int(data.get("books_submitted_this_year", 0)),
            lifetime_books_submitted=int(data.get("lifetime_books_submitted", 0)),
            bookshelf=[ShelfEntry.from_dict(e) for e in data.get("bookshelf", [])],
            votes=[Vote.from_dict(v) for v in data.get("votes", [])],
            historical_completions=[
                HistoricalCompletion.from_dict(h) for h in data.get("historical_completions", [])
            ],
            created_at=data.get("created_at", ""),
            last_modified=data.get("last_modified", ""),
        )


def load_student(store: DocumentStore, student_id: str) -> StudentRecord | None:
    data = store.get(paths.student(student_id))
    if data is None:
        return None
    return StudentRecord.from_dict(data)


def register_student(store: DocumentStore, student: StudentRecord) -> StudentRecord:
    """Create the student document unless it already exists.

    Returns:
        The stored record (the existing one when the id was already taken).
    """
    AcademicYear.parse(student.academic_year)

    def mutate(current: dict[str, Any] | None) -> dict[str, Any]:
        if current is not None:
            return current
        return student.to_dict()

    doc = store.atomic_update(paths.student(student.student_id), mutate)
    logger.info(
        "student_registered",
        student_id=student.student_id,
        teacher_id=student.teacher_id,
    )
    return StudentRecord.from_dict(doc)


def list_students_for_teacher(store: DocumentStore, teacher_id: str) -> list[StudentRecord]:
    return [
        StudentRecord.from_dict(doc)
        for doc in store.list_documents(paths.STUDENTS)
        if doc.get("teacher_id") == teacher_id
    ]
