"""Favorite-book voting endpoints."""

from fastapi import APIRouter

from luxlibris.core.phases import AcademicYear
from luxlibris.web.schemas import (
    VoteRequest,
    VoteResponse,
    VoteResultsResponse,
    VoteTallyResponse,
)
from luxlibris.web.services import get_services, raise_for_error

router = APIRouter(prefix="/api", tags=["voting"])


@router.post("/students/{student_id}/vote", response_model=VoteResponse)
async def cast_vote(student_id: str, request: VoteRequest) -> VoteResponse:
    """Cast the student's one vote of the year for a book they completed."""
    result = get_services().voting.cast_vote(student_id, request.book_id)
    raise_for_error(result.success, result.error, result.message)
    return VoteResponse(
        success=result.success,
        applied=result.applied,
        message=result.message,
        error=result.error,
        book_id=result.vote.book_id if result.vote else None,
        academic_year=result.vote.academic_year if result.vote else None,
        voted_at=result.vote.voted_at if result.vote else None,
        tally=VoteTallyResponse.from_tally(result.tally) if result.tally else None,
    )


@router.get("/votes/{academic_year}", response_model=VoteResultsResponse)
async def vote_results(academic_year: str) -> VoteResultsResponse:
    year = AcademicYear.parse(academic_year)
    tallies = get_services().voting.get_results(year)
    return VoteResultsResponse(
        academic_year=str(year),
        results=[VoteTallyResponse.from_tally(t) for t in tallies],
        total_votes=sum(t.total_votes for t in tallies),
    )
