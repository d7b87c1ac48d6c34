"""Year rollover.

Seeds a teacher's next academic year from the previous one when the new
year opens for teacher selection:

- new draft configuration: no books, quiz only, no tiers
- ceiling carried over from the teacher's previous year
- each of the teacher's students starts the new year with an empty shelf
  and a zero yearly counter; lifetime counter, name and grade stay

Every step is a single-document update. The configuration is created only
if absent, and a student is rolled only while still on the old year, so a
retried rollover finishes whatever an interrupted one left undone and
changes nothing else.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import structlog

from luxlibris.config.app_config import AppConfig, load_app_config
from luxlibris.core.configuration_store import (
    TeacherConfiguration,
    load_configuration,
    new_configuration,
)
from luxlibris.core.errors import (
    AlreadyRolledError,
    ErrorCode,
    InvalidYearError,
    ProgramError,
    RecordNotFoundError,
)
from luxlibris.core.phases import AcademicYear, Operation, PhaseController
from luxlibris.core.students import StudentRecord, list_students_for_teacher
from luxlibris.db import paths
from luxlibris.db.document_store import DocumentStore

logger = structlog.get_logger(__name__)


@dataclass
class RolloverResult:
    """Result of a rollover request."""

    success: bool
    message: str
    configuration: TeacherConfiguration | None = None
    students_rolled: list[str] = field(default_factory=list)
    applied: bool = False
    error: ErrorCode | None = None


def roll_student(
    store: DocumentStore,
    student_id: str,
    old_year: AcademicYear,
    new_year: AcademicYear,
) -> bool:
    """Move one student from ``old_year`` to ``new_year``.

    Returns:
        True if the student was rolled, False if they were not on ``old_year``.
    """
    rolled = False

    def mutate(current: dict[str, Any] | None) -> dict[str, Any]:
        nonlocal rolled
        if current is None:
            raise RecordNotFoundError(f"Student {student_id}")
        if current.get("academic_year") != str(old_year):
            return current
        student = StudentRecord.from_dict(current)
        student.academic_year = str(new_year)
        student.books_submitted_this_year = 0
        student.bookshelf = []
        student.last_modified = datetime.now(timezone.utc).isoformat()
        rolled = True
        return student.to_dict()

    store.atomic_update(paths.student(student_id), mutate)
    return rolled


class YearRolloverService:
    """Creates next year's configuration skeleton for a teacher."""

    def __init__(
        self,
        store: DocumentStore,
        phases: PhaseController,
        config: AppConfig | None = None,
    ):
        self.store = store
        self.phases = phases
        self.config = config or load_app_config()

    def _roll_students(
        self, teacher_id: str, old_year: AcademicYear, new_year: AcademicYear
    ) -> list[str]:
        rolled = []
        for student in list_students_for_teacher(self.store, teacher_id):
            if student.academic_year != str(old_year):
                continue
            if roll_student(self.store, student.student_id, old_year, new_year):
                rolled.append(student.student_id)
        return rolled

    def rollover(
        self,
        teacher_id: str,
        old_year: AcademicYear | str,
        new_year: AcademicYear | str,
    ) -> RolloverResult:
        """Seed ``new_year`` for the teacher.

        Returns:
            RolloverResult; when the new year's configuration already exists
            it is returned with success=True, applied=False and ALREADY_ROLLED.
            A ``new_year`` that does not come after ``old_year`` fails with
            INVALID_YEAR.

        Raises:
            ValueError: If either year is not a well-formed academic year.
        """
        old = AcademicYear.coerce(old_year)
        new = AcademicYear.coerce(new_year)

        try:
            if new <= old:
                raise InvalidYearError(str(old), str(new))
            self.phases.require(Operation.ROLLOVER, new)
        except ProgramError as e:
            return RolloverResult(success=False, message=e.message, error=e.code)

        def mutate(current: dict[str, Any] | None) -> dict[str, Any]:
            if current is not None:
                raise AlreadyRolledError(teacher_id, str(new))
            configuration = new_configuration(
                self.store, teacher_id, new, self.config.program.default_ceiling
            )
            return configuration.to_dict()

        path = paths.teacher_configuration(teacher_id, str(new))
        try:
            doc = self.store.atomic_update(path, mutate)
        except AlreadyRolledError as e:
            students = self._roll_students(teacher_id, old, new)
            logger.info(
                "rollover_already_done",
                teacher_id=teacher_id,
                academic_year=str(new),
                students_rolled=len(students),
            )
            return RolloverResult(
                success=True,
                message=e.message,
                configuration=load_configuration(self.store, teacher_id, new),
                students_rolled=students,
                applied=False,
                error=ErrorCode.ALREADY_ROLLED,
            )

        configuration = TeacherConfiguration.from_dict(doc)
        students = self._roll_students(teacher_id, old, new)
        logger.info(
            "year_rolled_over",
            teacher_id=teacher_id,
            from_year=str(old),
            to_year=str(new),
            ceiling=configuration.ceiling,
            students_rolled=len(students),
        )
        return RolloverResult(
            success=True,
            message=f"{new} configuration created with a ceiling of {configuration.ceiling}",
            configuration=configuration,
            students_rolled=students,
            applied=True,
        )
