"""Teacher configuration and release endpoints."""

from fastapi import APIRouter, HTTPException, status

from luxlibris.core.configuration_store import ConfigurationResult
from luxlibris.web.schemas import (
    BookSelectionRequest,
    CompletionOptionRequest,
    ConfigurationResponse,
    ConfigurationResultResponse,
    ReleaseRecordResponse,
    ReleaseResponse,
    TierListResponse,
    TierResponse,
    TierRewardRequest,
)
from luxlibris.web.services import get_services, raise_for_error

router = APIRouter(
    prefix="/api/teachers/{teacher_id}/configurations/{year}",
    tags=["configurations"],
)


def _result_response(result: ConfigurationResult) -> ConfigurationResultResponse:
    raise_for_error(result.success, result.error, result.message)
    return ConfigurationResultResponse(
        success=result.success,
        applied=result.applied,
        message=result.message,
        error=result.error,
        configuration=(
            ConfigurationResponse.from_configuration(result.configuration)
            if result.configuration
            else None
        ),
    )


@router.get("", response_model=ConfigurationResponse)
async def get_configuration(teacher_id: str, year: str) -> ConfigurationResponse:
    """Get a teacher's configuration for a year."""
    config = get_services().configurations.get_configuration(teacher_id, year)
    if config is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No configuration for '{teacher_id}' in {year}",
        )
    return ConfigurationResponse.from_configuration(config)


@router.get("/tiers", response_model=TierListResponse)
async def get_tiers(teacher_id: str, year: str) -> TierListResponse:
    tiers = get_services().configurations.get_tiers(teacher_id, year)
    return TierListResponse(
        tiers=[TierResponse(**t.to_dict()) for t in tiers],
        count=len(tiers),
    )


@router.post("/books", response_model=ConfigurationResultResponse)
async def select_book(
    teacher_id: str, year: str, request: BookSelectionRequest
) -> ConfigurationResultResponse:
    """Add a nominee to the selection."""
    result = get_services().configurations.select_book(teacher_id, year, request.book_id)
    return _result_response(result)


@router.delete("/books/{book_id}", response_model=ConfigurationResultResponse)
async def deselect_book(teacher_id: str, year: str, book_id: str) -> ConfigurationResultResponse:
    result = get_services().configurations.deselect_book(teacher_id, year, book_id)
    return _result_response(result)


@router.put("/completion-options", response_model=ConfigurationResultResponse)
async def set_completion_option(
    teacher_id: str, year: str, request: CompletionOptionRequest
) -> ConfigurationResultResponse:
    result = get_services().configurations.set_completion_option(
        teacher_id, year, request.option_key, request.enabled
    )
    return _result_response(result)


@router.put("/tiers/{books}", response_model=ConfigurationResultResponse)
async def set_tier_reward(
    teacher_id: str, year: str, books: int, request: TierRewardRequest
) -> ConfigurationResultResponse:
    """Edit the reward text of the tier keyed by its book count."""
    result = get_services().configurations.set_tier_reward(
        teacher_id, year, books, request.reward
    )
    return _result_response(result)


@router.post("/save", response_model=ConfigurationResultResponse)
async def save_configuration(teacher_id: str, year: str) -> ConfigurationResultResponse:
    result = get_services().configurations.save(teacher_id, year)
    return _result_response(result)


@router.post("/release", response_model=ReleaseResponse)
async def release_configuration(teacher_id: str, year: str) -> ReleaseResponse:
    """Publish the saved configuration to students. Repeating it is harmless."""
    result = get_services().release_gate.release(teacher_id, year)
    raise_for_error(result.success, result.error, result.message)
    return ReleaseResponse(
        success=result.success,
        applied=result.applied,
        message=result.message,
        error=result.error,
        record=ReleaseRecordResponse.from_record(result.record) if result.record else None,
    )
