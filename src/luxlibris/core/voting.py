"""Year-end favorite-book voting.

Responsibilities:
- Cast a student's single vote for a book they completed (VOTING phase only)
- Keep a per-year tally for each voted nominee
- Rank the year's results

The vote on the student document is the record of truth: one per student
per academic year, never changed. The tally keeps the set of voter ids
rather than a bare counter, so applying the same vote twice is harmless. A
repeated cast re-applies the existing vote to its tally, which repairs a
tally an interrupted cast never reached.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable

import structlog

from luxlibris.core.catalog import get_nominee
from luxlibris.core.errors import (
    AlreadyVotedError,
    ErrorCode,
    InvalidVoteError,
    ProgramError,
    RecordNotFoundError,
)
from luxlibris.core.phases import AcademicYear, Operation, PhaseController
from luxlibris.core.students import StudentRecord, SubmissionStatus, Vote
from luxlibris.db import paths
from luxlibris.db.document_store import DocumentStore

logger = structlog.get_logger(__name__)

VOTE_TALLY_SCHEMA = "vote_tally_v1"


@dataclass
class VoteTally:
    """Votes one nominee received in one academic year."""

    book_id: str
    academic_year: str
    book_title: str = ""
    voter_ids: list[str] = field(default_factory=list)
    last_updated: str = ""

    @property
    def total_votes(self) -> int:
        return len(self.voter_ids)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "$schema": VOTE_TALLY_SCHEMA,
            "book_id": self.book_id,
            "academic_year": self.academic_year,
            "book_title": self.book_title,
            "voter_ids": list(self.voter_ids),
            "total_votes": self.total_votes,
            "last_updated": self.last_updated,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "VoteTally":
        return cls(
            book_id=data["book_id"],
            academic_year=data["academic_year"],
            book_title=data.get("book_title", ""),
            voter_ids=list(data.get("voter_ids", [])),
            last_updated=data.get("last_updated", ""),
        )


@dataclass
class VoteResult:
    """Result of casting a vote."""

    success: bool
    message: str
    vote: Vote | None = None
    tally: VoteTally | None = None
    applied: bool = False
    error: ErrorCode | None = None


def record_in_tally(store: DocumentStore, student_id: str, vote: Vote) -> VoteTally:
    """Add ``student_id`` to the tally of the voted book; a no-op if already counted."""

    def mutate(current: dict[str, Any] | None) -> dict[str, Any]:
        if current is None:
            nominee = get_nominee(store, vote.academic_year, vote.book_id)
            tally = VoteTally(
                book_id=vote.book_id,
                academic_year=vote.academic_year,
                book_title=nominee.title if nominee else "Unknown Book",
            )
        else:
            tally = VoteTally.from_dict(current)
            if student_id in tally.voter_ids:
                return current
        tally.voter_ids.append(student_id)
        tally.last_updated = datetime.now(timezone.utc).isoformat()
        return tally.to_dict()

    doc = store.atomic_update(paths.vote_tally(vote.academic_year, vote.book_id), mutate)
    return VoteTally.from_dict(doc)


class VotingService:
    """Casts students' favorite-book votes and reports the tallies."""

    def __init__(
        self,
        store: DocumentStore,
        phases: PhaseController,
        clock: Callable[[], datetime] | None = None,
    ):
        self.store = store
        self.phases = phases
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def cast_vote(self, student_id: str, book_id: str) -> VoteResult:
        """Record the student's vote for ``book_id`` in their current year.

        Returns:
            VoteResult; a second vote in the same year is refused with
            success=True, applied=False, ALREADY_VOTED and the vote already
            on record.
        """
        existing: Vote | None = None
        cast: Vote | None = None

        def mutate(current: dict[str, Any] | None) -> dict[str, Any]:
            nonlocal existing, cast
            if current is None:
                raise RecordNotFoundError(f"Student {student_id}")
            student = StudentRecord.from_dict(current)
            self.phases.require(Operation.VOTE, student.academic_year)

            existing = student.vote_for_year(student.academic_year)
            if existing is not None:
                return current

            entry = student.get_entry(book_id)
            if entry is None or entry.status != SubmissionStatus.COMPLETED:
                raise InvalidVoteError(book_id)

            now = self.clock().isoformat()
            cast = Vote(book_id=book_id, academic_year=student.academic_year, voted_at=now)
            student.votes.append(cast)
            student.last_modified = now
            return student.to_dict()

        try:
            self.store.atomic_update(paths.student(student_id), mutate)
        except ProgramError as e:
            logger.info(
                "vote_rejected", student_id=student_id, book_id=book_id, error=e.code.value
            )
            return VoteResult(success=False, message=e.message, error=e.code)

        if existing is not None:
            tally = record_in_tally(self.store, student_id, existing)
            error = AlreadyVotedError(student_id, existing.academic_year)
            logger.info(
                "vote_replayed",
                student_id=student_id,
                book_id=existing.book_id,
                academic_year=existing.academic_year,
            )
            return VoteResult(
                success=True,
                message=error.message,
                vote=existing,
                tally=tally,
                applied=False,
                error=error.code,
            )

        tally = record_in_tally(self.store, student_id, cast)
        logger.info(
            "vote_cast",
            student_id=student_id,
            book_id=book_id,
            academic_year=cast.academic_year,
            total_votes=tally.total_votes,
        )
        return VoteResult(
            success=True,
            message=f"Vote recorded for {tally.book_title}",
            vote=cast,
            tally=tally,
            applied=True,
        )

    def get_tally(self, academic_year: AcademicYear | str, book_id: str) -> VoteTally | None:
        year = AcademicYear.coerce(academic_year)
        doc = self.store.get(paths.vote_tally(str(year), book_id))
        if doc is None:
            return None
        return VoteTally.from_dict(doc)

    def get_results(self, academic_year: AcademicYear | str) -> list[VoteTally]:
        """Tallies for the year, most votes first (ties by title)."""
        year = AcademicYear.coerce(academic_year)
        docs = self.store.list_documents(paths.vote_tallies(str(year)))
        tallies = [VoteTally.from_dict(doc) for doc in docs]
        tallies.sort(key=lambda t: (-t.total_votes, t.book_title, t.book_id))
        return tallies
