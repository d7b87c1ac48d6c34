"""Tests for the release gate."""

import threading

import pytest

from luxlibris.core.catalog import NomineeBook, register_nominee
from luxlibris.core.configuration_store import ConfigurationStatus, TeacherConfigurationStore
from luxlibris.core.errors import ErrorCode
from luxlibris.core.phases import PhaseController, ProgramPhase, set_program_phase
from luxlibris.core.release_gate import ReleaseGate
from luxlibris.db import SqliteDocumentStore, paths

YEAR = "2025-26"
TEACHER = "tch-rivera"


@pytest.fixture
def saved(set_phase, nominees, configurations):
    """A saved configuration with three books."""
    set_phase(ProgramPhase.TEACHER_SELECTION)
    for book_id in nominees[:3]:
        configurations.select_book(TEACHER, YEAR, book_id)
    configurations.save(TEACHER, YEAR)
    return nominees[:3]


class TestReleaseGuards:
    def test_missing_configuration(self, set_phase, release_gate):
        set_phase(ProgramPhase.TEACHER_SELECTION)
        result = release_gate.release(TEACHER, YEAR)
        assert not result.success
        assert result.error == ErrorCode.NOT_FOUND

    def test_draft_cannot_be_released(self, set_phase, nominees, configurations, release_gate):
        set_phase(ProgramPhase.TEACHER_SELECTION)
        configurations.select_book(TEACHER, YEAR, nominees[0])
        result = release_gate.release(TEACHER, YEAR)
        assert result.error == ErrorCode.NOT_SAVED
        assert not release_gate.is_released(TEACHER, YEAR)

    def test_empty_saved_configuration_rejected(self, store, set_phase, release_gate):
        """A saved document with no books is never released."""
        set_phase(ProgramPhase.TEACHER_SELECTION)
        store.atomic_update(
            paths.teacher_configuration(TEACHER, YEAR),
            lambda current: {
                "teacher_id": TEACHER,
                "academic_year": YEAR,
                "ceiling": 20,
                "status": "saved",
            },
        )
        assert release_gate.release(TEACHER, YEAR).error == ErrorCode.EMPTY_SELECTION


class TestRelease:
    def test_release_saved(self, saved, release_gate, store):
        result = release_gate.release(TEACHER, YEAR)
        assert result.success and result.applied
        assert result.configuration.status == ConfigurationStatus.RELEASED
        assert result.record.books_released == 3
        assert result.record.book_ids == tuple(saved)
        assert len(store.list_documents(paths.RELEASE_RECORDS)) == 1

    def test_release_legal_in_any_phase(self, saved, set_phase, release_gate):
        set_phase(ProgramPhase.ACTIVE)
        assert release_gate.release(TEACHER, YEAR).applied

    def test_second_release_is_benign(self, saved, release_gate, store):
        first = release_gate.release(TEACHER, YEAR)
        second = release_gate.release(TEACHER, YEAR)
        assert second.success
        assert not second.applied
        assert second.error == ErrorCode.ALREADY_RELEASED
        assert second.record == first.record
        assert len(store.list_documents(paths.RELEASE_RECORDS)) == 1

    def test_released_books_visible_only_after_release(self, saved, release_gate):
        assert release_gate.released_books(TEACHER, YEAR) == []
        release_gate.release(TEACHER, YEAR)
        assert release_gate.released_books(TEACHER, YEAR) == saved

    def test_missing_record_restored_on_retry(self, saved, release_gate, store):
        """A released configuration without its record gets the record back."""

        def flip(current):
            current["status"] = "released"
            current["released_at"] = "2025-09-01T10:00:00+00:00"
            current["books_released"] = 3
            return current

        store.atomic_update(paths.teacher_configuration(TEACHER, YEAR), flip)
        assert release_gate.get_release_record(TEACHER, YEAR) is None

        result = release_gate.release(TEACHER, YEAR)
        assert result.error == ErrorCode.ALREADY_RELEASED
        record = release_gate.get_release_record(TEACHER, YEAR)
        assert record is not None
        assert record.released_at == "2025-09-01T10:00:00+00:00"


class TestScenario:
    def test_sixteen_of_twenty(self, set_phase, nominees, configurations, release_gate, store):
        """Ceiling 20, sixteen books, save, release once, then a harmless retry."""
        set_phase(ProgramPhase.TEACHER_SELECTION)
        for book_id in nominees[:16]:
            configurations.select_book(TEACHER, YEAR, book_id)
        configurations.save(TEACHER, YEAR)
        config = configurations.get_configuration(TEACHER, YEAR)
        assert config.ceiling == 20
        assert [t.books for t in config.achievement_tiers] == [4, 8, 12, 16, 80]

        assert release_gate.release(TEACHER, YEAR).applied
        before = store.read(paths.teacher_configuration(TEACHER, YEAR))
        retry = release_gate.release(TEACHER, YEAR)
        assert retry.error == ErrorCode.ALREADY_RELEASED
        assert store.read(paths.teacher_configuration(TEACHER, YEAR)) == before
        assert len(store.list_documents(paths.RELEASE_RECORDS)) == 1


class TestConcurrentRelease:
    @pytest.mark.parametrize("backend", ["memory", "sqlite"])
    def test_exactly_one_release_applies(self, backend, tmp_path, request):
        if backend == "memory":
            store = request.getfixturevalue("store")
        else:
            store = SqliteDocumentStore(tmp_path / "release.db")

        set_program_phase(store, YEAR, ProgramPhase.TEACHER_SELECTION)
        register_nominee(store, NomineeBook(book_id="b1", title="Holes", academic_year=YEAR))
        phases = PhaseController.from_store(store)
        configurations = TeacherConfigurationStore(store, phases)
        configurations.select_book(TEACHER, YEAR, "b1")
        configurations.save(TEACHER, YEAR)

        gate = ReleaseGate(store, phases)
        results = []
        lock = threading.Lock()

        def release():
            result = gate.release(TEACHER, YEAR)
            with lock:
                results.append(result)

        threads = [threading.Thread(target=release) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert all(r.success for r in results)
        assert sum(r.applied for r in results) == 1
        assert len(store.list_documents(paths.RELEASE_RECORDS)) == 1
