"""Submission review endpoints."""

from fastapi import APIRouter

from luxlibris.core.submissions import SubmissionResult
from luxlibris.web.schemas import (
    HistoricalCompletionRequest,
    PendingListResponse,
    PendingSubmissionResponse,
    ReviewRequest,
    ShelfEntryResponse,
    SubmissionResponse,
)
from luxlibris.web.services import get_services, raise_for_error

router = APIRouter(prefix="/api", tags=["submissions"])


def _submission_response(result: SubmissionResult) -> SubmissionResponse:
    raise_for_error(result.success, result.error, result.message)
    return SubmissionResponse(
        success=result.success,
        applied=result.applied,
        message=result.message,
        error=result.error,
        entry=ShelfEntryResponse.from_entry(result.entry) if result.entry else None,
        books_submitted_this_year=(
            result.student.books_submitted_this_year if result.student else None
        ),
        lifetime_books_submitted=(
            result.student.lifetime_books_submitted if result.student else None
        ),
    )


@router.get("/teachers/{teacher_id}/submissions/pending", response_model=PendingListResponse)
async def list_pending(teacher_id: str) -> PendingListResponse:
    """Pending submissions of a teacher's students, most recent first."""
    pending = get_services().submissions.get_pending_submissions(teacher_id)
    return PendingListResponse(
        submissions=[PendingSubmissionResponse(**p.to_dict()) for p in pending],
        count=len(pending),
    )


@router.post("/students/{student_id}/books/{book_id}/approve", response_model=SubmissionResponse)
async def approve(
    student_id: str, book_id: str, request: ReviewRequest | None = None
) -> SubmissionResponse:
    note = request.note if request else None
    result = get_services().submissions.approve(student_id, book_id, note)
    return _submission_response(result)


@router.post(
    "/students/{student_id}/books/{book_id}/request-revision",
    response_model=SubmissionResponse,
)
async def request_revision(
    student_id: str, book_id: str, request: ReviewRequest | None = None
) -> SubmissionResponse:
    note = request.note if request else None
    result = get_services().submissions.request_revision(student_id, book_id, note)
    return _submission_response(result)


@router.post("/students/{student_id}/books/{book_id}/cancel", response_model=SubmissionResponse)
async def cancel(student_id: str, book_id: str) -> SubmissionResponse:
    """Send a pending submission back to reading."""
    result = get_services().submissions.cancel_submission(student_id, book_id)
    return _submission_response(result)


@router.post("/students/{student_id}/history", response_model=SubmissionResponse)
async def add_history(
    student_id: str, request: HistoricalCompletionRequest
) -> SubmissionResponse:
    """Back-fill books read in an earlier grade; repeating a grade is a no-op."""
    result = get_services().submissions.add_historical_completion(
        student_id, request.grade, request.books
    )
    return _submission_response(result)
