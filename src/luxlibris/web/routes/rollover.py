"""Year rollover endpoint."""

from fastapi import APIRouter

from luxlibris.web.schemas import (
    ConfigurationResponse,
    RolloverRequest,
    RolloverResponse,
)
from luxlibris.web.services import get_services, raise_for_error

router = APIRouter(prefix="/api/teachers/{teacher_id}", tags=["rollover"])


@router.post("/rollover", response_model=RolloverResponse)
async def rollover(teacher_id: str, request: RolloverRequest) -> RolloverResponse:
    """Seed the teacher's next academic year. Retrying is harmless."""
    result = get_services().rollover.rollover(teacher_id, request.old_year, request.new_year)
    raise_for_error(result.success, result.error, result.message)
    return RolloverResponse(
        success=result.success,
        applied=result.applied,
        message=result.message,
        error=result.error,
        configuration=(
            ConfigurationResponse.from_configuration(result.configuration)
            if result.configuration
            else None
        ),
        students_rolled=result.students_rolled,
    )
