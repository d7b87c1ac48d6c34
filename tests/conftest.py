"""Shared fixtures for the reading program tests.

Unit tests run against the in-memory document store with the phase read
from the stored system config, so a test moves the program between phases
the same way the calendar triggers do.
"""

from datetime import datetime, timedelta, timezone

import pytest

from luxlibris.config.app_config import AppConfig, clear_config_cache
from luxlibris.core.catalog import NomineeBook, register_nominee
from luxlibris.core.configuration_store import TeacherConfigurationStore
from luxlibris.core.phases import PhaseController, ProgramPhase, set_program_phase
from luxlibris.core.release_gate import ReleaseGate
from luxlibris.core.rollover import YearRolloverService
from luxlibris.core.students import StudentRecord, register_student
from luxlibris.core.submissions import SubmissionWorkflow
from luxlibris.core.voting import VotingService
from luxlibris.db import InMemoryDocumentStore

YEAR = "2025-26"
NEXT_YEAR = "2026-27"
TEACHER = "tch-rivera"


class FakeClock:
    """Controllable clock for cooldown and ordering tests."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2025, 10, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture(autouse=True)
def _fresh_config_cache():
    """Every test starts without a cached AppConfig."""
    clear_config_cache()
    yield
    clear_config_cache()


@pytest.fixture
def store():
    return InMemoryDocumentStore()


@pytest.fixture
def app_config():
    return AppConfig()


@pytest.fixture
def phases(store):
    return PhaseController.from_store(store)


@pytest.fixture
def set_phase(store):
    """Set the program phase (and current year) in the stored system config."""

    def _set(phase: ProgramPhase, year: str = YEAR) -> None:
        set_program_phase(store, year, phase)

    return _set


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def nominees(store):
    """Twenty published nominees for YEAR: book-01 .. book-20."""
    ids = []
    for n in range(1, 21):
        book = NomineeBook(
            book_id=f"book-{n:02d}",
            title=f"Nominee {n:02d}",
            academic_year=YEAR,
            authors=[f"Author {n}"],
            pages=100 + n,
        )
        register_nominee(store, book)
        ids.append(book.book_id)
    return ids


@pytest.fixture
def configurations(store, phases, app_config):
    return TeacherConfigurationStore(store, phases, app_config)


@pytest.fixture
def release_gate(store, phases):
    return ReleaseGate(store, phases)


@pytest.fixture
def workflow(store, phases, app_config, clock):
    return SubmissionWorkflow(store, phases, app_config, clock=clock)


@pytest.fixture
def rollover_service(store, phases, app_config):
    return YearRolloverService(store, phases, app_config)


@pytest.fixture
def voting(store, phases, clock):
    return VotingService(store, phases, clock=clock)


@pytest.fixture
def make_student(store):
    def _make(student_id: str, first_name: str = "Maria", teacher_id: str = TEACHER, **kwargs):
        return register_student(
            store,
            StudentRecord(
                student_id=student_id,
                first_name=first_name,
                teacher_id=teacher_id,
                academic_year=kwargs.pop("academic_year", YEAR),
                **kwargs,
            ),
        )

    return _make


@pytest.fixture
def released_program(set_phase, configurations, release_gate, nominees, make_student):
    """A teacher who released three books (quiz and submitReview enabled).

    Leaves the program ACTIVE with two enrolled students.
    """
    set_phase(ProgramPhase.TEACHER_SELECTION)
    for book_id in nominees[:3]:
        configurations.select_book(TEACHER, YEAR, book_id)
    configurations.set_completion_option(TEACHER, YEAR, "submitReview", True)
    configurations.save(TEACHER, YEAR)
    release_gate.release(TEACHER, YEAR)
    make_student("stu-maria", "Maria", last_initial="G", grade=4)
    make_student("stu-liam", "Liam", last_initial="O", grade=5)
    set_phase(ProgramPhase.ACTIVE)
    return {"teacher_id": TEACHER, "year": YEAR, "books": nominees[:3]}
