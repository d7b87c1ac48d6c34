"""Typed failures of the reading-program lifecycle.

Each guard raises a ProgramError subclass inside a document mutator, which
aborts the atomic update before anything is written. The public operations
catch these and hand the caller a result object carrying the ErrorCode.
"""

from __future__ import annotations

from enum import Enum


class ErrorCode(str, Enum):
    """Closed set of outcome codes reported to callers."""

    PHASE_MISMATCH = "phase_mismatch"
    CAPACITY_EXCEEDED = "capacity_exceeded"
    EMPTY_SELECTION = "empty_selection"
    INVALID_OPTION = "invalid_option"
    CONFIGURATION_LOCKED = "configuration_locked"
    UNKNOWN_BOOK = "unknown_book"
    NOT_SAVED = "not_saved"
    ALREADY_RELEASED = "already_released"
    INVALID_TRANSITION = "invalid_transition"
    INVALID_NOTE = "invalid_note"
    ALREADY_ROLLED = "already_rolled"
    NOT_FOUND = "not_found"
    INVALID_YEAR = "invalid_year"
    ALREADY_VOTED = "already_voted"
    INVALID_VOTE = "invalid_vote"
    INVALID_HISTORY = "invalid_history"
    ALREADY_RECORDED = "already_recorded"


# Codes that report an operation which already took effect earlier.
BENIGN_CODES = frozenset(
    {
        ErrorCode.ALREADY_RELEASED,
        ErrorCode.ALREADY_ROLLED,
        ErrorCode.ALREADY_VOTED,
        ErrorCode.ALREADY_RECORDED,
    }
)


class ProgramError(Exception):
    """Base class for lifecycle guard failures."""

    code: ErrorCode = ErrorCode.NOT_FOUND

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class PhaseMismatchError(ProgramError):
    """Operation attempted outside its legal phase window."""

    code = ErrorCode.PHASE_MISMATCH

    def __init__(self, operation: str, phase: str, academic_year: str):
        self.operation = operation
        self.phase = phase
        self.academic_year = academic_year
        super().__init__(
            f"'{operation}' is not allowed while {academic_year} is in phase {phase}"
        )


class CapacityExceededError(ProgramError):
    """Selecting another book would exceed the teacher's ceiling."""

    code = ErrorCode.CAPACITY_EXCEEDED

    def __init__(self, ceiling: int):
        self.ceiling = ceiling
        super().__init__(f"Selection limit reached ({ceiling} books)")


class EmptySelectionError(ProgramError):
    code = ErrorCode.EMPTY_SELECTION

    def __init__(self) -> None:
        super().__init__("Select at least one book before saving")


class InvalidOptionError(ProgramError):
    """Unknown completion method, or an attempt to toggle an always-on one."""

    code = ErrorCode.INVALID_OPTION

    def __init__(self, option_key: str, reason: str):
        self.option_key = option_key
        super().__init__(f"Completion option '{option_key}': {reason}")


class ConfigurationLockedError(ProgramError):
    code = ErrorCode.CONFIGURATION_LOCKED

    def __init__(self, teacher_id: str, academic_year: str):
        super().__init__(
            f"Configuration for {teacher_id} in {academic_year} is released and locked"
        )


class UnknownBookError(ProgramError):
    code = ErrorCode.UNKNOWN_BOOK

    def __init__(self, book_id: str, academic_year: str):
        self.book_id = book_id
        super().__init__(f"Book '{book_id}' is not a {academic_year} nominee")


class NotSavedError(ProgramError):
    code = ErrorCode.NOT_SAVED

    def __init__(self, status: str):
        self.status = status
        super().__init__(f"Configuration must be saved before release (status: {status})")


class AlreadyReleasedError(ProgramError):
    code = ErrorCode.ALREADY_RELEASED

    def __init__(self, teacher_id: str, academic_year: str):
        super().__init__(f"Books for {teacher_id} in {academic_year} were already released")


class InvalidTransitionError(ProgramError):
    """Submission state machine refused the requested move."""

    code = ErrorCode.INVALID_TRANSITION

    def __init__(self, current: str, action: str):
        self.current = current
        self.action = action
        super().__init__(f"Cannot {action} a submission in state '{current}'")


class InvalidNoteError(ProgramError):
    code = ErrorCode.INVALID_NOTE

    def __init__(self, max_length: int):
        self.max_length = max_length
        super().__init__(f"Teacher note must be at most {max_length} characters")


class AlreadyRolledError(ProgramError):
    code = ErrorCode.ALREADY_ROLLED

    def __init__(self, teacher_id: str, academic_year: str):
        super().__init__(f"{teacher_id} already has a configuration for {academic_year}")


class RecordNotFoundError(ProgramError):
    code = ErrorCode.NOT_FOUND

    def __init__(self, what: str):
        super().__init__(f"{what} not found")


class InvalidYearError(ProgramError):
    """Rollover target does not come after the source year."""

    code = ErrorCode.INVALID_YEAR

    def __init__(self, old_year: str, new_year: str):
        self.old_year = old_year
        self.new_year = new_year
        super().__init__(f"Cannot roll over from {old_year} to {new_year}")


class AlreadyVotedError(ProgramError):
    code = ErrorCode.ALREADY_VOTED

    def __init__(self, student_id: str, academic_year: str):
        super().__init__(f"{student_id} already voted in {academic_year}")


class InvalidVoteError(ProgramError):
    """Vote for a book the student has not completed."""

    code = ErrorCode.INVALID_VOTE

    def __init__(self, book_id: str):
        self.book_id = book_id
        super().__init__(f"Only a completed book can get a vote ('{book_id}' is not)")


class InvalidHistoryError(ProgramError):
    code = ErrorCode.INVALID_HISTORY

    def __init__(self, reason: str):
        super().__init__(f"Historical completion rejected: {reason}")


class HistoryAlreadyRecordedError(ProgramError):
    code = ErrorCode.ALREADY_RECORDED

    def __init__(self, student_id: str, grade: int):
        self.grade = grade
        super().__init__(f"Grade {grade} completions for {student_id} were already added")
