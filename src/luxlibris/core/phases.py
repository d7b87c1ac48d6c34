"""Academic years and program phases.

Responsibilities:
- Parse, order and step "YYYY-YY" academic year labels
- Report the phase a year is in (PhaseController)
- Gate lifecycle operations by phase (legal operation matrix)
- Administrative phase changes written to system/config

The phase is never derived from the clock here. Callers hand the
controller a PhaseSource (a fixed phase in tests, the stored system config
in the application) so any phase can be simulated.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Callable

import structlog

from luxlibris.core.errors import PhaseMismatchError
from luxlibris.db import paths
from luxlibris.db.document_store import DocumentStore

logger = structlog.get_logger(__name__)

YEAR_PATTERN = re.compile(r"^(\d{4})-(\d{2})$")


# =============================================================================
# ACADEMIC YEAR
# =============================================================================


@dataclass(frozen=True, order=True)
class AcademicYear:
    """A program year such as 2025-26, ordered by its start year."""

    start: int

    @classmethod
    def parse(cls, label: str) -> "AcademicYear":
        """Parse a "YYYY-YY" label.

        Raises:
            ValueError: If the label is malformed or the halves do not follow.
        """
        match = YEAR_PATTERN.match(label.strip())
        if not match:
            raise ValueError(f"Academic year must look like 2025-26, got {label!r}")
        start = int(match.group(1))
        end = int(match.group(2))
        if end != (start + 1) % 100:
            raise ValueError(f"Academic year {label!r} does not span consecutive years")
        return cls(start)

    @classmethod
    def coerce(cls, value: "AcademicYear | str") -> "AcademicYear":
        if isinstance(value, AcademicYear):
            return value
        return cls.parse(value)

    @classmethod
    def for_date(cls, day: date) -> "AcademicYear":
        """Year a calendar date belongs to: January-May close the previous one."""
        if day.month <= 5:
            return cls(day.year - 1)
        return cls(day.year)

    @property
    def label(self) -> str:
        return f"{self.start}-{(self.start + 1) % 100:02d}"

    def next(self) -> "AcademicYear":
        return AcademicYear(self.start + 1)

    def previous(self) -> "AcademicYear":
        return AcademicYear(self.start - 1)

    def __str__(self) -> str:
        return self.label


# =============================================================================
# PHASES AND LEGAL OPERATIONS
# =============================================================================


class ProgramPhase(str, Enum):
    """Lifecycle stage of an academic year, in order."""

    SETUP = "SETUP"  # nominees not yet released to teachers
    TEACHER_SELECTION = "TEACHER_SELECTION"
    ACTIVE = "ACTIVE"
    VOTING = "VOTING"
    RESULTS = "RESULTS"

    def next_phase(self) -> "ProgramPhase | None":
        """Following phase within the same year, None after RESULTS."""
        order = list(ProgramPhase)
        index = order.index(self)
        if index + 1 < len(order):
            return order[index + 1]
        return None


class Operation(str, Enum):
    """Lifecycle operations gated by phase."""

    CONFIGURE = "configure"
    RELEASE = "release"
    REVIEW_SUBMISSION = "review_submission"
    ROLLOVER = "rollover"
    STUDENT_READING = "student_reading"
    VOTE = "vote"


LEGAL_PHASES: dict[Operation, frozenset[ProgramPhase]] = {
    Operation.CONFIGURE: frozenset({ProgramPhase.TEACHER_SELECTION}),
    # once per (teacher, year) and only after save; enforced by the release gate
    Operation.RELEASE: frozenset(ProgramPhase),
    Operation.REVIEW_SUBMISSION: frozenset(
        {ProgramPhase.ACTIVE, ProgramPhase.VOTING, ProgramPhase.RESULTS}
    ),
    Operation.ROLLOVER: frozenset({ProgramPhase.TEACHER_SELECTION}),
    Operation.STUDENT_READING: frozenset({ProgramPhase.ACTIVE}),
    Operation.VOTE: frozenset({ProgramPhase.VOTING}),
}


def is_legal(operation: Operation, phase: ProgramPhase) -> bool:
    return phase in LEGAL_PHASES[operation]


PhaseSource = Callable[[AcademicYear], ProgramPhase]


class PhaseController:
    """Answers which phase a year is in and rejects out-of-phase operations."""

    def __init__(self, source: PhaseSource):
        self._source = source

    @classmethod
    def fixed(cls, phase: ProgramPhase) -> "PhaseController":
        """Controller reporting the same phase for every year."""
        return cls(lambda _year: phase)

    @classmethod
    def from_store(cls, store: DocumentStore) -> "PhaseController":
        return cls(StoredPhaseSource(store))

    def current_phase(self, year: AcademicYear | str) -> ProgramPhase:
        return self._source(AcademicYear.coerce(year))

    def require(self, operation: Operation, year: AcademicYear | str) -> ProgramPhase:
        """Return the current phase, or raise if ``operation`` is illegal in it.

        Raises:
            PhaseMismatchError: If the phase does not allow the operation.
        """
        academic_year = AcademicYear.coerce(year)
        phase = self.current_phase(academic_year)
        if not is_legal(operation, phase):
            logger.info(
                "phase_mismatch",
                operation=operation.value,
                phase=phase.value,
                academic_year=str(academic_year),
            )
            raise PhaseMismatchError(operation.value, phase.value, str(academic_year))
        return phase


# =============================================================================
# STORED PHASE (system/config)
# =============================================================================


class StoredPhaseSource:
    """Phase source backed by the system/config document.

    Years before the current one are finished (RESULTS); later years have not
    started (SETUP).
    """

    def __init__(self, store: DocumentStore):
        self._store = store

    def __call__(self, year: AcademicYear) -> ProgramPhase:
        config = self._store.get(paths.SYSTEM_CONFIG)
        if config is None:
            logger.warning("system_config_missing", path=paths.SYSTEM_CONFIG)
            return ProgramPhase.SETUP

        current = AcademicYear.parse(config["current_academic_year"])
        if year < current:
            return ProgramPhase.RESULTS
        if year > current:
            return ProgramPhase.SETUP
        return ProgramPhase(config.get("program_phase", ProgramPhase.SETUP.value))


def get_program_state(store: DocumentStore) -> tuple[AcademicYear, ProgramPhase] | None:
    """Current academic year and phase, or None before the first configuration."""
    config = store.get(paths.SYSTEM_CONFIG)
    if config is None:
        return None
    return (
        AcademicYear.parse(config["current_academic_year"]),
        ProgramPhase(config["program_phase"]),
    )


def _record_phase(
    doc: dict[str, Any] | None,
    year: AcademicYear,
    phase: ProgramPhase,
) -> dict[str, Any]:
    doc = doc or {"phase_history": []}
    if "current_academic_year" in doc:
        stored = AcademicYear.parse(doc["current_academic_year"])
        if year < stored:
            raise ValueError(f"Cannot move program back from {stored} to {year}")
    now = datetime.now(timezone.utc).isoformat()
    doc["current_academic_year"] = str(year)
    doc["program_phase"] = phase.value
    doc["last_modified"] = now
    doc.setdefault("phase_history", []).append(
        {"academic_year": str(year), "phase": phase.value, "at": now}
    )
    return doc


def set_program_phase(
    store: DocumentStore,
    year: AcademicYear | str,
    phase: ProgramPhase,
) -> dict[str, Any]:
    """Administrative write of the current year and phase.

    Calendar triggers and the admin console call this; the current year may
    only stay or move forward.

    Raises:
        ValueError: If ``year`` is earlier than the stored current year.
    """
    academic_year = AcademicYear.coerce(year)
    doc = store.atomic_update(
        paths.SYSTEM_CONFIG, lambda current: _record_phase(current, academic_year, phase)
    )
    logger.info("program_phase_set", academic_year=str(academic_year), phase=phase.value)
    return doc


def advance_phase(store: DocumentStore) -> tuple[AcademicYear, ProgramPhase]:
    """Move the program to its next phase; after RESULTS the next year opens in SETUP.

    Raises:
        ValueError: If the program has never been configured.
    """

    def mutate(current: dict[str, Any] | None) -> dict[str, Any]:
        if current is None:
            raise ValueError("Program phase has not been initialized")
        year = AcademicYear.parse(current["current_academic_year"])
        following = ProgramPhase(current["program_phase"]).next_phase()
        if following is None:
            year, following = year.next(), ProgramPhase.SETUP
        return _record_phase(current, year, following)

    doc = store.atomic_update(paths.SYSTEM_CONFIG, mutate)
    year = AcademicYear.parse(doc["current_academic_year"])
    phase = ProgramPhase(doc["program_phase"])
    logger.info("program_phase_advanced", academic_year=str(year), phase=phase.value)
    return year, phase
