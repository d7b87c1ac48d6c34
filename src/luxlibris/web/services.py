"""Service wiring for the Web API.

Holds the document store and the lifecycle services shared by all
requests, and maps lifecycle error codes to HTTP statuses.
"""

from __future__ import annotations

from dataclasses import dataclass

import structlog
from fastapi import HTTPException, status

from luxlibris.config.app_config import AppConfig, load_app_config
from luxlibris.core.configuration_store import TeacherConfigurationStore
from luxlibris.core.errors import BENIGN_CODES, ErrorCode
from luxlibris.core.phases import PhaseController
from luxlibris.core.release_gate import ReleaseGate
from luxlibris.core.rollover import YearRolloverService
from luxlibris.core.submissions import SubmissionWorkflow
from luxlibris.core.voting import VotingService
from luxlibris.db import DocumentStore, open_document_store

logger = structlog.get_logger(__name__)

ERROR_STATUS: dict[ErrorCode, int] = {
    ErrorCode.PHASE_MISMATCH: status.HTTP_409_CONFLICT,
    ErrorCode.CAPACITY_EXCEEDED: status.HTTP_409_CONFLICT,
    ErrorCode.CONFIGURATION_LOCKED: status.HTTP_409_CONFLICT,
    ErrorCode.NOT_SAVED: status.HTTP_409_CONFLICT,
    ErrorCode.INVALID_TRANSITION: status.HTTP_409_CONFLICT,
    ErrorCode.EMPTY_SELECTION: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorCode.INVALID_OPTION: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorCode.INVALID_NOTE: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorCode.UNKNOWN_BOOK: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorCode.INVALID_YEAR: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorCode.INVALID_VOTE: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorCode.INVALID_HISTORY: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorCode.NOT_FOUND: status.HTTP_404_NOT_FOUND,
}


@dataclass
class ProgramServices:
    """Lifecycle services bound to one document store."""

    store: DocumentStore
    phases: PhaseController
    config: AppConfig
    configurations: TeacherConfigurationStore
    release_gate: ReleaseGate
    submissions: SubmissionWorkflow
    rollover: YearRolloverService
    voting: VotingService

    @classmethod
    def create(
        cls,
        store: DocumentStore,
        phases: PhaseController | None = None,
        config: AppConfig | None = None,
    ) -> "ProgramServices":
        config = config or load_app_config()
        phases = phases or PhaseController.from_store(store)
        return cls(
            store=store,
            phases=phases,
            config=config,
            configurations=TeacherConfigurationStore(store, phases, config),
            release_gate=ReleaseGate(store, phases),
            submissions=SubmissionWorkflow(store, phases, config),
            rollover=YearRolloverService(store, phases, config),
            voting=VotingService(store, phases),
        )


_services: ProgramServices | None = None


def get_services() -> ProgramServices:
    """Get the global services instance, opening the configured store on first use."""
    global _services
    if _services is None:
        _services = ProgramServices.create(open_document_store())
        logger.info("services_initialized", backend=_services.config.storage.backend)
    return _services


def set_services(services: ProgramServices) -> None:
    """Install a services instance (tests and embedding hosts)."""
    global _services
    _services = services


def reset_services() -> None:
    """Reset the services (for testing)."""
    global _services
    _services = None


def raise_for_error(success: bool, error: ErrorCode | None, message: str) -> None:
    """Turn a failed operation outcome into an HTTPException.

    Benign replays are successes and pass through.
    """
    if success or error in BENIGN_CODES:
        return
    code = status.HTTP_400_BAD_REQUEST
    if error is not None:
        code = ERROR_STATUS.get(error, code)
    raise HTTPException(
        status_code=code,
        detail={"error": error.value if error else "error", "message": message},
    )
