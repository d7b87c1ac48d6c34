"""Submission approval workflow.

Responsibilities:
- Central transition table for a (student, book) submission
- Teacher actions: approve, request revision, cancel back to reading
- Student actions: add to shelf, submit for approval, record quiz results
- Back-filled completions from grades before the student joined
- Pending-approval queue for a teacher
- Cooldown-aware shelf state for display

Transitions:
    in_progress        --submit-->           pending_approval
    revision_requested --submit-->           pending_approval (after cooldown)
    pending_approval   --approve-->          completed
    pending_approval   --request_revision--> revision_requested
    pending_approval   --cancel-->           in_progress
    in_progress        --quiz_pass-->        completed
    in_progress        --quiz_fail-->        quiz_failed
    quiz_failed        --quiz_pass/fail-->   completed / quiz_failed (after cooldown)

Reaching completed adds one to the yearly and lifetime counters exactly
once; the shelf entry remembers that it was counted, and the counters live
in the same document, so a replayed approval cannot count twice.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable

import structlog

from luxlibris.config.app_config import AppConfig, load_app_config
from luxlibris.core.catalog import get_nominee
from luxlibris.core.configuration_store import (
    CompletionMethod,
    load_configuration,
)
from luxlibris.core.errors import (
    ErrorCode,
    HistoryAlreadyRecordedError,
    InvalidHistoryError,
    InvalidNoteError,
    InvalidOptionError,
    InvalidTransitionError,
    ProgramError,
    RecordNotFoundError,
)
from luxlibris.core.phases import Operation, PhaseController
from luxlibris.core.students import (
    HistoricalCompletion,
    ShelfEntry,
    StudentRecord,
    SubmissionStatus,
    list_students_for_teacher,
    load_student,
)
from luxlibris.db import paths
from luxlibris.db.document_store import DocumentStore

logger = structlog.get_logger(__name__)


# =============================================================================
# TRANSITION TABLE
# =============================================================================


class SubmissionAction(str, Enum):
    SUBMIT = "submit"
    APPROVE = "approve"
    REQUEST_REVISION = "request_revision"
    CANCEL = "cancel"
    QUIZ_PASS = "quiz_pass"
    QUIZ_FAIL = "quiz_fail"


TRANSITIONS: dict[tuple[SubmissionStatus, SubmissionAction], SubmissionStatus] = {
    (SubmissionStatus.IN_PROGRESS, SubmissionAction.SUBMIT): SubmissionStatus.PENDING_APPROVAL,
    (SubmissionStatus.REVISION_REQUESTED, SubmissionAction.SUBMIT): SubmissionStatus.PENDING_APPROVAL,
    (SubmissionStatus.PENDING_APPROVAL, SubmissionAction.APPROVE): SubmissionStatus.COMPLETED,
    (SubmissionStatus.PENDING_APPROVAL, SubmissionAction.REQUEST_REVISION): SubmissionStatus.REVISION_REQUESTED,
    (SubmissionStatus.PENDING_APPROVAL, SubmissionAction.CANCEL): SubmissionStatus.IN_PROGRESS,
    (SubmissionStatus.IN_PROGRESS, SubmissionAction.QUIZ_PASS): SubmissionStatus.COMPLETED,
    (SubmissionStatus.IN_PROGRESS, SubmissionAction.QUIZ_FAIL): SubmissionStatus.QUIZ_FAILED,
    (SubmissionStatus.QUIZ_FAILED, SubmissionAction.QUIZ_PASS): SubmissionStatus.COMPLETED,
    (SubmissionStatus.QUIZ_FAILED, SubmissionAction.QUIZ_FAIL): SubmissionStatus.QUIZ_FAILED,
}

# Repeating these on a completed submission changes nothing.
REPLAYS = frozenset(
    {
        (SubmissionStatus.COMPLETED, SubmissionAction.APPROVE),
        (SubmissionStatus.COMPLETED, SubmissionAction.QUIZ_PASS),
    }
)


def next_status(current: SubmissionStatus, action: SubmissionAction) -> SubmissionStatus:
    """Resolve a transition.

    Raises:
        InvalidTransitionError: If the table has no such move.
    """
    if (current, action) in REPLAYS:
        return current
    try:
        return TRANSITIONS[(current, action)]
    except KeyError:
        raise InvalidTransitionError(current.value, action.value) from None


def is_replay(current: SubmissionStatus, action: SubmissionAction) -> bool:
    return (current, action) in REPLAYS


# =============================================================================
# DATA CLASSES
# =============================================================================


@dataclass
class SubmissionResult:
    """Result of a submission workflow operation."""

    success: bool
    message: str
    entry: ShelfEntry | None = None
    student: StudentRecord | None = None
    applied: bool = False
    error: ErrorCode | None = None


@dataclass
class PendingSubmission:
    """One row of a teacher's approval queue."""

    student_id: str
    student_name: str
    book_id: str
    book_title: str
    submission_type: str | None
    submitted_at: str | None
    progress_value: int

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "student_id": self.student_id,
            "student_name": self.student_name,
            "book_id": self.book_id,
            "book_title": self.book_title,
            "submission_type": self.submission_type,
            "submitted_at": self.submitted_at,
            "progress_value": self.progress_value,
        }


def _parse_time(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value)


def shelf_state(
    entry: ShelfEntry,
    now: datetime,
    revision_cooldown_hours: int = 24,
    quiz_cooldown_hours: int = 24,
) -> str:
    """Display state of a shelf entry, including cooldown windows."""
    if entry.status == SubmissionStatus.COMPLETED:
        return "completed"
    if entry.status == SubmissionStatus.PENDING_APPROVAL:
        return "pending_approval"
    if entry.status == SubmissionStatus.REVISION_REQUESTED:
        requested = _parse_time(entry.revision_requested_at)
        if requested and now < requested + timedelta(hours=revision_cooldown_hours):
            return "revision_cooldown"
        return "revision_ready"
    if entry.status == SubmissionStatus.QUIZ_FAILED:
        failed = _parse_time(entry.failed_at)
        if failed and now < failed + timedelta(hours=quiz_cooldown_hours):
            return "quiz_cooldown"
    return "in_progress"


# =============================================================================
# WORKFLOW
# =============================================================================


class SubmissionWorkflow:
    """Per (student, book) state machine driven by teachers and students."""

    def __init__(
        self,
        store: DocumentStore,
        phases: PhaseController,
        config: AppConfig | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.store = store
        self.phases = phases
        self.config = config or load_app_config()
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    # ------------------------------------------------------------------ reads

    def get_submission(self, student_id: str, book_id: str) -> ShelfEntry | None:
        student = load_student(self.store, student_id)
        if student is None:
            return None
        return student.get_entry(book_id)

    def get_pending_submissions(self, teacher_id: str) -> list[PendingSubmission]:
        """Pending submissions of the teacher's students, most recent first."""
        pending = []
        for student in list_students_for_teacher(self.store, teacher_id):
            for entry in student.bookshelf:
                if entry.status != SubmissionStatus.PENDING_APPROVAL:
                    continue
                nominee = get_nominee(self.store, student.academic_year, entry.book_id)
                pending.append(
                    PendingSubmission(
                        student_id=student.student_id,
                        student_name=student.display_name,
                        book_id=entry.book_id,
                        book_title=nominee.title if nominee else "Unknown Book",
                        submission_type=entry.submission_type,
                        submitted_at=entry.submitted_at,
                        progress_value=entry.progress_value,
                    )
                )
        pending.sort(key=lambda p: p.submitted_at or "", reverse=True)
        return pending

    def get_shelf_state(self, student_id: str, book_id: str) -> str | None:
        entry = self.get_submission(student_id, book_id)
        if entry is None:
            return None
        return shelf_state(
            entry,
            self.clock(),
            self.config.program.revision_cooldown_hours,
            self.config.program.quiz_cooldown_hours,
        )

    # ---------------------------------------------------------------- helpers

    def _clean_note(self, note: str | None) -> str | None:
        if note is None or not note.strip():
            return None
        if len(note) > self.config.program.note_max_length:
            raise InvalidNoteError(self.config.program.note_max_length)
        return note

    def _cooling_down(self, stamp: str | None, hours: int) -> bool:
        started = _parse_time(stamp)
        return started is not None and self.clock() < started + timedelta(hours=hours)

    def _apply(
        self,
        student_id: str,
        book_id: str,
        action: SubmissionAction,
        operation: Operation,
        update: Callable[[StudentRecord, ShelfEntry, str], None] | None = None,
    ) -> SubmissionResult:
        """Run one transition inside a single atomic update of the student document.

        ``update`` fills in action-specific fields after the status moved.
        """
        applied = False

        def mutate(current: dict[str, Any] | None) -> dict[str, Any]:
            nonlocal applied
            if current is None:
                raise RecordNotFoundError(f"Student {student_id}")
            student = StudentRecord.from_dict(current)
            self.phases.require(operation, student.academic_year)

            entry = student.get_entry(book_id)
            if entry is None:
                raise RecordNotFoundError(f"Book {book_id} on {student_id}'s shelf")

            if is_replay(entry.status, action):
                return current

            entry.status = next_status(entry.status, action)
            now = self.clock().isoformat()
            if update is not None:
                update(student, entry, now)

            if entry.status == SubmissionStatus.COMPLETED and not entry.completion_counted:
                entry.completion_counted = True
                student.books_submitted_this_year += 1
                student.lifetime_books_submitted += 1

            student.last_modified = now
            applied = True
            return student.to_dict()

        try:
            doc = self.store.atomic_update(paths.student(student_id), mutate)
        except ProgramError as e:
            logger.info(
                "submission_action_rejected",
                action=action.value,
                student_id=student_id,
                book_id=book_id,
                error=e.code.value,
            )
            return SubmissionResult(success=False, message=e.message, error=e.code)

        student = StudentRecord.from_dict(doc)
        entry = student.get_entry(book_id)
        logger.info(
            "submission_action_applied" if applied else "submission_action_replayed",
            action=action.value,
            student_id=student_id,
            book_id=book_id,
            status=entry.status.value if entry else None,
        )
        return SubmissionResult(
            success=True,
            message=f"{action.value}: {entry.status.value if entry else 'unknown'}",
            entry=entry,
            student=student,
            applied=applied,
        )

    # --------------------------------------------------------- teacher actions

    def approve(
        self, student_id: str, book_id: str, note: str | None = None
    ) -> SubmissionResult:
        """Approve a pending submission; repeating on a completed one is a no-op.

        The note is checked only when the approval actually applies, so a
        replay never fails on it.
        """

        def update(student: StudentRecord, entry: ShelfEntry, now: str) -> None:
            entry.teacher_notes = self._clean_note(note)
            entry.approved_at = now

        return self._apply(
            student_id, book_id, SubmissionAction.APPROVE, Operation.REVIEW_SUBMISSION, update
        )

    def request_revision(
        self, student_id: str, book_id: str, note: str | None = None
    ) -> SubmissionResult:
        def update(student: StudentRecord, entry: ShelfEntry, now: str) -> None:
            entry.teacher_notes = self._clean_note(note)
            entry.revision_requested_at = now

        return self._apply(
            student_id,
            book_id,
            SubmissionAction.REQUEST_REVISION,
            Operation.REVIEW_SUBMISSION,
            update,
        )

    def cancel_submission(self, student_id: str, book_id: str) -> SubmissionResult:
        """Send a pending submission back to reading, keeping progress."""

        def update(student: StudentRecord, entry: ShelfEntry, now: str) -> None:
            entry.submission_type = None
            entry.submitted_at = None
            entry.teacher_notes = None
            entry.approved_at = None
            entry.revision_requested_at = None

        return self._apply(
            student_id, book_id, SubmissionAction.CANCEL, Operation.REVIEW_SUBMISSION, update
        )

    # --------------------------------------------------------- student actions

    def add_to_shelf(self, student_id: str, book_id: str) -> SubmissionResult:
        """Put a book the student's teacher released onto the shelf."""
        student = load_student(self.store, student_id)
        if student is None:
            error = RecordNotFoundError(f"Student {student_id}")
            return SubmissionResult(success=False, message=error.message, error=error.code)

        applied = False

        def mutate(current: dict[str, Any] | None) -> dict[str, Any]:
            nonlocal applied
            if current is None:
                raise RecordNotFoundError(f"Student {student_id}")
            record = StudentRecord.from_dict(current)
            self.phases.require(Operation.STUDENT_READING, record.academic_year)
            if record.get_entry(book_id) is not None:
                return current

            config = load_configuration(self.store, record.teacher_id, record.academic_year)
            if config is None or not config.is_released or book_id not in config.selected_book_ids:
                raise RecordNotFoundError(f"Book {book_id} among {record.teacher_id}'s released books")

            now = self.clock().isoformat()
            record.bookshelf.append(ShelfEntry(book_id=book_id, added_at=now))
            record.last_modified = now
            applied = True
            return record.to_dict()

        try:
            doc = self.store.atomic_update(paths.student(student_id), mutate)
        except ProgramError as e:
            logger.info(
                "shelf_add_rejected", student_id=student_id, book_id=book_id, error=e.code.value
            )
            return SubmissionResult(success=False, message=e.message, error=e.code)

        record = StudentRecord.from_dict(doc)
        logger.info("shelf_book_added", student_id=student_id, book_id=book_id, applied=applied)
        return SubmissionResult(
            success=True,
            message="Book added to shelf" if applied else "Book already on shelf",
            entry=record.get_entry(book_id),
            student=record,
            applied=applied,
        )

    def submit_for_approval(
        self,
        student_id: str,
        book_id: str,
        submission_type: str,
        progress_value: int = 0,
    ) -> SubmissionResult:
        """Student hands in a non-quiz completion for teacher review."""
        try:
            method = CompletionMethod(submission_type)
        except ValueError:
            error = InvalidOptionError(submission_type, "unknown completion method")
            return SubmissionResult(success=False, message=error.message, error=error.code)
        if method == CompletionMethod.QUIZ:
            error = InvalidOptionError(submission_type, "quizzes are graded, not submitted")
            return SubmissionResult(success=False, message=error.message, error=error.code)

        student = load_student(self.store, student_id)
        if student is not None:
            config = load_configuration(self.store, student.teacher_id, student.academic_year)
            if config is None or method not in config.completion_options:
                error = InvalidOptionError(submission_type, "not enabled by the teacher")
                return SubmissionResult(success=False, message=error.message, error=error.code)

        cooldown = self.config.program.revision_cooldown_hours

        def update(record: StudentRecord, entry: ShelfEntry, now: str) -> None:
            if self._cooling_down(entry.revision_requested_at, cooldown):
                raise InvalidTransitionError(
                    SubmissionStatus.REVISION_REQUESTED.value, "resubmit during cooldown"
                )
            entry.submission_type = method.value
            entry.submitted_at = now
            entry.progress_value = max(entry.progress_value, progress_value)

        return self._apply(
            student_id, book_id, SubmissionAction.SUBMIT, Operation.STUDENT_READING, update
        )

    def record_quiz_result(
        self, student_id: str, book_id: str, passed: bool
    ) -> SubmissionResult:
        """Record an auto-graded quiz; a pass completes the book directly."""
        action = SubmissionAction.QUIZ_PASS if passed else SubmissionAction.QUIZ_FAIL
        cooldown = self.config.program.quiz_cooldown_hours

        def update(record: StudentRecord, entry: ShelfEntry, now: str) -> None:
            if self._cooling_down(entry.failed_at, cooldown):
                raise InvalidTransitionError(
                    SubmissionStatus.QUIZ_FAILED.value, "retake quiz during cooldown"
                )
            entry.submission_type = CompletionMethod.QUIZ.value
            entry.submitted_at = now
            if passed:
                entry.approved_at = now
            else:
                entry.failed_at = now

        return self._apply(student_id, book_id, action, Operation.STUDENT_READING, update)

    # ------------------------------------------------------ teacher back-fill

    def add_historical_completion(
        self, student_id: str, grade: int, books: int
    ) -> SubmissionResult:
        """Credit books the student read in an earlier grade to their lifetime count.

        Each earlier grade (from the program's first grade up to the one
        below the student's current grade) can be added once, with at most
        ``max_historical_books`` books. The yearly counter is not touched.
        Adding a grade that is already on record changes nothing and reports
        ALREADY_RECORDED.
        """
        settings = self.config.program

        def mutate(current: dict[str, Any] | None) -> dict[str, Any]:
            if current is None:
                raise RecordNotFoundError(f"Student {student_id}")
            student = StudentRecord.from_dict(current)
            if student.history_for_grade(grade) is not None:
                raise HistoryAlreadyRecordedError(student_id, grade)
            if not 1 <= books <= settings.max_historical_books:
                raise InvalidHistoryError(
                    f"books must be between 1 and {settings.max_historical_books}"
                )
            if student.grade is None or not settings.first_grade <= grade < student.grade:
                raise InvalidHistoryError(
                    f"grade {grade} is not an earlier program grade for {student_id}"
                )

            now = self.clock().isoformat()
            student.historical_completions.append(
                HistoricalCompletion(grade=grade, books=books, added_at=now)
            )
            student.lifetime_books_submitted += books
            student.last_modified = now
            return student.to_dict()

        try:
            doc = self.store.atomic_update(paths.student(student_id), mutate)
        except HistoryAlreadyRecordedError as e:
            logger.info("historical_completion_replayed", student_id=student_id, grade=grade)
            return SubmissionResult(
                success=True,
                message=e.message,
                student=load_student(self.store, student_id),
                applied=False,
                error=e.code,
            )
        except ProgramError as e:
            logger.info(
                "historical_completion_rejected",
                student_id=student_id,
                grade=grade,
                error=e.code.value,
            )
            return SubmissionResult(success=False, message=e.message, error=e.code)

        student = StudentRecord.from_dict(doc)
        logger.info(
            "historical_completion_added",
            student_id=student_id,
            grade=grade,
            books=books,
            lifetime=student.lifetime_books_submitted,
        )
        return SubmissionResult(
            success=True,
            message=f"Grade {grade}: {books} books added",
            student=student,
            applied=True,
        )
