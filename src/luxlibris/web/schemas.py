"""Pydantic schemas for the Web API.

Serialization models for phases, teacher configurations, releases,
submissions, voting and rollover.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field

from luxlibris.core.configuration_store import TeacherConfiguration
from luxlibris.core.errors import ErrorCode
from luxlibris.core.phases import ProgramPhase
from luxlibris.core.release_gate import ReleaseRecord
from luxlibris.core.students import ShelfEntry
from luxlibris.core.voting import VoteTally


# =============================================================================
# PHASE SCHEMAS
# =============================================================================


class PhaseResponse(BaseModel):
    """Current academic year and program phase."""

    academic_year: str | None
    phase: ProgramPhase


class PhaseUpdateRequest(BaseModel):
    """Request body for an administrative phase change."""

    academic_year: str = Field(..., pattern=r"^\d{4}-\d{2}$")
    phase: ProgramPhase


# =============================================================================
# CONFIGURATION SCHEMAS
# =============================================================================


class TierResponse(BaseModel):
    """One achievement tier."""

    books: int
    reward: str
    type: str
    tags: list[str] = Field(default_factory=list)
    customized: bool = False


class ConfigurationResponse(BaseModel):
    """A teacher's configuration for one academic year."""

    teacher_id: str
    academic_year: str
    ceiling: int
    selected_book_ids: list[str]
    enabled_methods: list[str]
    completion_options: list[str]
    achievement_tiers: list[TierResponse]
    status: str
    saved_at: str | None = None
    released_at: str | None = None
    books_released: int | None = None
    rolled_from: str | None = None

    @classmethod
    def from_configuration(cls, config: TeacherConfiguration) -> "ConfigurationResponse":
        return cls(
            teacher_id=config.teacher_id,
            academic_year=config.academic_year,
            ceiling=config.ceiling,
            selected_book_ids=list(config.selected_book_ids),
            enabled_methods=sorted(m.value for m in config.enabled_methods),
            completion_options=sorted(m.value for m in config.completion_options),
            achievement_tiers=[TierResponse(**t.to_dict()) for t in config.achievement_tiers],
            status=config.status.value,
            saved_at=config.saved_at,
            released_at=config.released_at,
            books_released=config.books_released,
            rolled_from=config.rolled_from,
        )


class OperationResponse(BaseModel):
    """Common outcome fields of a write operation."""

    success: bool
    applied: bool
    message: str
    error: ErrorCode | None = None


class ConfigurationResultResponse(OperationResponse):
    configuration: ConfigurationResponse | None = None


class TierListResponse(BaseModel):
    tiers: list[TierResponse]
    count: int


class BookSelectionRequest(BaseModel):
    """Request body for selecting a nominee."""

    book_id: str = Field(..., min_length=1, max_length=100)


class CompletionOptionRequest(BaseModel):
    """Request body for toggling a completion method."""

    option_key: str = Field(..., min_length=1)
    enabled: bool


class TierRewardRequest(BaseModel):
    """Request body for editing a tier's reward text."""

    reward: str = Field(..., min_length=1, max_length=200)


# =============================================================================
# RELEASE SCHEMAS
# =============================================================================


class ReleaseRecordResponse(BaseModel):
    teacher_id: str
    academic_year: str
    released_at: str
    books_released: int
    book_ids: list[str]

    @classmethod
    def from_record(cls, record: ReleaseRecord) -> "ReleaseRecordResponse":
        return cls(
            teacher_id=record.teacher_id,
            academic_year=record.academic_year,
            released_at=record.released_at,
            books_released=record.books_released,
            book_ids=list(record.book_ids),
        )


class ReleaseResponse(OperationResponse):
    record: ReleaseRecordResponse | None = None


# =============================================================================
# SUBMISSION SCHEMAS
# =============================================================================


class PendingSubmissionResponse(BaseModel):
    student_id: str
    student_name: str
    book_id: str
    book_title: str
    submission_type: str | None
    submitted_at: str | None
    progress_value: int


class PendingListResponse(BaseModel):
    """A teacher's approval queue, most recent first."""

    submissions: list[PendingSubmissionResponse]
    count: int


class ReviewRequest(BaseModel):
    """Request body for approve / request revision."""

    note: str | None = None


class ShelfEntryResponse(BaseModel):
    book_id: str
    status: str
    submission_type: str | None = None
    progress_value: int = 0
    teacher_notes: str | None = None
    submitted_at: str | None = None
    approved_at: str | None = None
    revision_requested_at: str | None = None

    @classmethod
    def from_entry(cls, entry: ShelfEntry) -> "ShelfEntryResponse":
        return cls(
            book_id=entry.book_id,
            status=entry.status.value,
            submission_type=entry.submission_type,
            progress_value=entry.progress_value,
            teacher_notes=entry.teacher_notes,
            submitted_at=entry.submitted_at,
            approved_at=entry.approved_at,
            revision_requested_at=entry.revision_requested_at,
        )


class SubmissionResponse(OperationResponse):
    entry: ShelfEntryResponse | None = None
    books_submitted_this_year: int | None = None
    lifetime_books_submitted: int | None = None


class HistoricalCompletionRequest(BaseModel):
    """Books a student read in an earlier grade."""

    grade: int
    books: int


# =============================================================================
# VOTING SCHEMAS
# =============================================================================


class VoteRequest(BaseModel):
    book_id: str = Field(..., min_length=1)


class VoteTallyResponse(BaseModel):
    book_id: str
    academic_year: str
    book_title: str
    total_votes: int

    @classmethod
    def from_tally(cls, tally: VoteTally) -> "VoteTallyResponse":
        return cls(
            book_id=tally.book_id,
            academic_year=tally.academic_year,
            book_title=tally.book_title,
            total_votes=tally.total_votes,
        )


class VoteResponse(OperationResponse):
    book_id: str | None = None
    academic_year: str | None = None
    voted_at: str | None = None
    tally: VoteTallyResponse | None = None


class VoteResultsResponse(BaseModel):
    """A year's tallies, most votes first."""

    academic_year: str
    results: list[VoteTallyResponse]
    total_votes: int


# =============================================================================
# ROLLOVER SCHEMAS
# =============================================================================


class RolloverRequest(BaseModel):
    old_year: str = Field(..., pattern=r"^\d{4}-\d{2}$")
    new_year: str = Field(..., pattern=r"^\d{4}-\d{2}$")


class RolloverResponse(OperationResponse):
    configuration: ConfigurationResponse | None = None
    students_rolled: list[str] = Field(default_factory=list)


# =============================================================================
# HEALTH SCHEMAS
# =============================================================================


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    version: str = "0.1.0"
    timestamp: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


class ErrorResponse(BaseModel):
    """Error response body."""

    error: str
    detail: Any = None
