"""Tests for the year rollover service."""

import threading

import pytest

from luxlibris.core.catalog import NomineeBook, register_nominee
from luxlibris.core.configuration_store import (
    CompletionMethod,
    ConfigurationStatus,
    TeacherConfiguration,
)
from luxlibris.core.errors import ErrorCode
from luxlibris.core.phases import (
    AcademicYear,
    PhaseController,
    ProgramPhase,
    set_program_phase,
)
from luxlibris.core.rollover import YearRolloverService, roll_student
from luxlibris.core.students import StudentRecord, load_student, register_student
from luxlibris.db import InMemoryDocumentStore, SqliteDocumentStore, paths

YEAR = "2025-26"
NEXT_YEAR = "2026-27"
TEACHER = "tch-rivera"


@pytest.fixture
def finished_year(released_program, workflow, set_phase):
    """Maria completed two books in YEAR; the program has moved on to NEXT_YEAR."""
    for book_id in released_program["books"][:2]:
        workflow.add_to_shelf("stu-maria", book_id)
        workflow.record_quiz_result("stu-maria", book_id, passed=True)
    workflow.add_to_shelf("stu-liam", released_program["books"][2])
    set_phase(ProgramPhase.TEACHER_SELECTION, NEXT_YEAR)
    return released_program


class TestRolloverGate:
    def test_only_in_teacher_selection_of_new_year(self, released_program, rollover_service):
        # current year is ACTIVE, so the next year still reports SETUP
        result = rollover_service.rollover(TEACHER, YEAR, NEXT_YEAR)
        assert not result.success
        assert result.error == ErrorCode.PHASE_MISMATCH

    def test_new_year_must_follow_old(self, finished_year, rollover_service, store):
        result = rollover_service.rollover(TEACHER, NEXT_YEAR, YEAR)
        assert not result.success
        assert not result.applied
        assert result.error == ErrorCode.INVALID_YEAR
        assert load_student(store, "stu-maria").academic_year == YEAR

    def test_same_year_rejected(self, finished_year, rollover_service, store):
        result = rollover_service.rollover(TEACHER, NEXT_YEAR, NEXT_YEAR)
        assert result.error == ErrorCode.INVALID_YEAR
        assert store.get(paths.teacher_configuration(TEACHER, NEXT_YEAR)) is None

    def test_malformed_year_raises(self, finished_year, rollover_service):
        with pytest.raises(ValueError):
            rollover_service.rollover(TEACHER, YEAR, "2026-28")


class TestRolloverConfiguration:
    def test_creates_empty_draft(self, finished_year, rollover_service):
        result = rollover_service.rollover(TEACHER, YEAR, NEXT_YEAR)
        assert result.success and result.applied
        config = result.configuration
        assert config.academic_year == NEXT_YEAR
        assert config.status == ConfigurationStatus.DRAFT
        assert config.selected_book_ids == []
        assert config.achievement_tiers == []
        assert config.completion_options == {CompletionMethod.QUIZ}
        assert config.rolled_from == YEAR

    def test_ceiling_carried_over(self, store, set_phase, rollover_service):
        previous = TeacherConfiguration(teacher_id=TEACHER, academic_year=YEAR, ceiling=14)
        store.atomic_update(
            paths.teacher_configuration(TEACHER, YEAR), lambda current: previous.to_dict()
        )
        set_phase(ProgramPhase.TEACHER_SELECTION, NEXT_YEAR)
        result = rollover_service.rollover(TEACHER, YEAR, NEXT_YEAR)
        assert result.configuration.ceiling == 14

    def test_first_time_teacher_default_ceiling(self, set_phase, rollover_service):
        set_phase(ProgramPhase.TEACHER_SELECTION, NEXT_YEAR)
        result = rollover_service.rollover("tch-new", YEAR, NEXT_YEAR)
        assert result.configuration.ceiling == 20
        assert result.configuration.rolled_from is None

    def test_previous_year_untouched(self, finished_year, rollover_service, configurations):
        before = configurations.get_configuration(TEACHER, YEAR)
        rollover_service.rollover(TEACHER, YEAR, NEXT_YEAR)
        after = configurations.get_configuration(TEACHER, YEAR)
        assert after == before
        assert after.status == ConfigurationStatus.RELEASED

    def test_second_rollover_is_benign(self, finished_year, rollover_service):
        first = rollover_service.rollover(TEACHER, YEAR, NEXT_YEAR)
        second = rollover_service.rollover(TEACHER, YEAR, NEXT_YEAR)
        assert second.success
        assert not second.applied
        assert second.error == ErrorCode.ALREADY_ROLLED
        assert second.configuration == first.configuration
        assert second.students_rolled == []

    def test_existing_new_year_draft_kept(
        self, finished_year, rollover_service, configurations, store
    ):
        """A teacher who started next year early keeps their draft."""
        register_nominee(
            store, NomineeBook(book_id="book-09", title="Nominee 09", academic_year=NEXT_YEAR)
        )
        configurations.select_book(TEACHER, NEXT_YEAR, "book-09")
        result = rollover_service.rollover(TEACHER, YEAR, NEXT_YEAR)
        assert result.error == ErrorCode.ALREADY_ROLLED
        assert result.configuration.selected_book_ids == ["book-09"]


class TestRolloverStudents:
    def test_lifetime_kept_yearly_reset(self, finished_year, rollover_service, store):
        before = load_student(store, "stu-maria")
        assert before.books_submitted_this_year == 2
        assert before.lifetime_books_submitted == 2

        result = rollover_service.rollover(TEACHER, YEAR, NEXT_YEAR)
        assert sorted(result.students_rolled) == ["stu-liam", "stu-maria"]

        after = load_student(store, "stu-maria")
        assert after.academic_year == NEXT_YEAR
        assert after.books_submitted_this_year == 0
        assert after.lifetime_books_submitted == 2
        assert after.bookshelf == []
        assert after.first_name == "Maria"
        assert after.last_initial == "G"
        assert after.grade == 4

    def test_retry_counts_unchanged(self, finished_year, rollover_service, store):
        rollover_service.rollover(TEACHER, YEAR, NEXT_YEAR)
        rollover_service.rollover(TEACHER, YEAR, NEXT_YEAR)
        assert load_student(store, "stu-maria").lifetime_books_submitted == 2

    def test_retry_finishes_interrupted_rollover(self, finished_year, rollover_service, store):
        """Configuration created but students not yet rolled."""
        draft = TeacherConfiguration(teacher_id=TEACHER, academic_year=NEXT_YEAR, ceiling=20)
        store.atomic_update(
            paths.teacher_configuration(TEACHER, NEXT_YEAR), lambda current: draft.to_dict()
        )
        result = rollover_service.rollover(TEACHER, YEAR, NEXT_YEAR)
        assert result.error == ErrorCode.ALREADY_ROLLED
        assert sorted(result.students_rolled) == ["stu-liam", "stu-maria"]
        assert load_student(store, "stu-liam").academic_year == NEXT_YEAR

    def test_other_teachers_students_untouched(
        self, finished_year, rollover_service, make_student, store
    ):
        make_student("stu-zoe", "Zoe", teacher_id="tch-okafor")
        rollover_service.rollover(TEACHER, YEAR, NEXT_YEAR)
        assert load_student(store, "stu-zoe").academic_year == YEAR

    def test_roll_student_only_from_old_year(self, finished_year, store):
        old, new = AcademicYear.parse(YEAR), AcademicYear.parse(NEXT_YEAR)
        assert roll_student(store, "stu-maria", old, new) is True
        assert roll_student(store, "stu-maria", old, new) is False


class TestConcurrentRollover:
    @pytest.fixture(params=["memory", "sqlite"])
    def shared_store(self, request, tmp_path):
        if request.param == "memory":
            return InMemoryDocumentStore()
        return SqliteDocumentStore(tmp_path / "rollover.db")

    def test_parallel_rollovers_seed_once(self, shared_store, app_config):
        """Eight simultaneous rollovers create one configuration and roll each student once."""
        store = shared_store
        for student_id, books in (("s1", 3), ("s2", 1), ("s3", 0)):
            register_student(
                store,
                StudentRecord(
                    student_id=student_id,
                    first_name=student_id.upper(),
                    teacher_id=TEACHER,
                    academic_year=YEAR,
                    books_submitted_this_year=books,
                    lifetime_books_submitted=books + 5,
                ),
            )
        set_program_phase(store, NEXT_YEAR, ProgramPhase.TEACHER_SELECTION)
        service = YearRolloverService(store, PhaseController.from_store(store), app_config)

        results = []
        lock = threading.Lock()

        def run():
            result = service.rollover(TEACHER, YEAR, NEXT_YEAR)
            with lock:
                results.append(result)

        threads = [threading.Thread(target=run) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(results) == 8
        assert all(r.success for r in results)
        assert sum(r.applied for r in results) == 1
        assert all(r.error == ErrorCode.ALREADY_ROLLED for r in results if not r.applied)

        configs = store.list_documents(paths.teacher_configurations(TEACHER))
        assert [c["academic_year"] for c in configs] == [NEXT_YEAR]

        rolled = [sid for r in results for sid in r.students_rolled]
        assert sorted(rolled) == ["s1", "s2", "s3"]
        for student_id, books in (("s1", 3), ("s2", 1), ("s3", 0)):
            student = load_student(store, student_id)
            assert student.academic_year == NEXT_YEAR
            assert student.books_submitted_this_year == 0
            assert student.lifetime_books_submitted == books + 5
