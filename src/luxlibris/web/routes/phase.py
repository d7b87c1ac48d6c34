"""Program phase endpoints."""

from fastapi import APIRouter, HTTPException, status

from luxlibris.core.phases import (
    AcademicYear,
    ProgramPhase,
    advance_phase,
    get_program_state,
    set_program_phase,
)
from luxlibris.web.schemas import PhaseResponse, PhaseUpdateRequest
from luxlibris.web.services import get_services

router = APIRouter(prefix="/api/phase", tags=["phase"])


@router.get("", response_model=PhaseResponse)
async def get_phase() -> PhaseResponse:
    """Current academic year and phase; SETUP before the program is initialized."""
    state = get_program_state(get_services().store)
    if state is None:
        return PhaseResponse(academic_year=None, phase=ProgramPhase.SETUP)
    year, phase = state
    return PhaseResponse(academic_year=str(year), phase=phase)


@router.put("", response_model=PhaseResponse)
async def update_phase(request: PhaseUpdateRequest) -> PhaseResponse:
    """Administrative phase change.

    A malformed year is a 422 (app-level ValueError handler); moving the
    program back to an earlier year is a 409.
    """
    academic_year = AcademicYear.parse(request.academic_year)
    try:
        doc = set_program_phase(get_services().store, academic_year, request.phase)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    return PhaseResponse(
        academic_year=doc["current_academic_year"],
        phase=ProgramPhase(doc["program_phase"]),
    )


@router.post("/advance", response_model=PhaseResponse)
async def advance() -> PhaseResponse:
    """Move the program to its next phase."""
    try:
        year, phase = advance_phase(get_services().store)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    return PhaseResponse(academic_year=str(year), phase=phase)
