"""Release gate: publishing a teacher's configuration to students.

A release flips the configuration document from saved to released in one
atomic update, then appends the ReleaseRecord under the deterministic id
{teacher_id}__{year}. Because the status flip is the check-and-set and the
record id is fixed, a retried or concurrent release can neither release twice
nor append a second record. A retry that finds the configuration released
answers ALREADY_RELEASED with the existing record.

Releasing is irreversible.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

import structlog

from luxlibris.core.configuration_store import (
    ConfigurationStatus,
    TeacherConfiguration,
    load_configuration,
)
from luxlibris.core.errors import (
    AlreadyReleasedError,
    EmptySelectionError,
    ErrorCode,
    NotSavedError,
    ProgramError,
    RecordNotFoundError,
)
from luxlibris.core.phases import AcademicYear, Operation, PhaseController
from luxlibris.db import paths
from luxlibris.db.document_store import DocumentStore

logger = structlog.get_logger(__name__)

RELEASE_RECORD_SCHEMA = "release_record_v1"


@dataclass(frozen=True)
class ReleaseRecord:
    """Append-only fact: a teacher released their books for a year."""

    teacher_id: str
    academic_year: str
    released_at: str
    books_released: int
    book_ids: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "$schema": RELEASE_RECORD_SCHEMA,
            "teacher_id": self.teacher_id,
            "academic_year": self.academic_year,
            "released_at": self.released_at,
            "books_released": self.books_released,
            "book_ids": list(self.book_ids),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ReleaseRecord":
        return cls(
            teacher_id=data["teacher_id"],
            academic_year=data["academic_year"],
            released_at=data["released_at"],
            books_released=int(data["books_released"]),
            book_ids=tuple(data.get("book_ids", [])),
        )

    @classmethod
    def from_configuration(cls, config: TeacherConfiguration) -> "ReleaseRecord":
        return cls(
            teacher_id=config.teacher_id,
            academic_year=config.academic_year,
            released_at=config.released_at or "",
            books_released=config.books_released or len(config.selected_book_ids),
            book_ids=tuple(config.selected_book_ids),
        )


@dataclass
class ReleaseResult:
    """Result of a release request."""

    success: bool
    message: str
    record: ReleaseRecord | None = None
    configuration: TeacherConfiguration | None = None
    applied: bool = False
    error: ErrorCode | None = None


class ReleaseGate:
    """Decides whether a configuration may be, or has been, released."""

    def __init__(self, store: DocumentStore, phases: PhaseController):
        self.store = store
        self.phases = phases

    def get_release_record(
        self, teacher_id: str, year: AcademicYear | str
    ) -> ReleaseRecord | None:
        data = self.store.get(paths.release_record(teacher_id, str(AcademicYear.coerce(year))))
        if data is None:
            return None
        return ReleaseRecord.from_dict(data)

    def is_released(self, teacher_id: str, year: AcademicYear | str) -> bool:
        config = load_configuration(self.store, teacher_id, year)
        return config is not None and config.is_released

    def released_books(self, teacher_id: str, year: AcademicYear | str) -> list[str]:
        """Book ids visible to the teacher's students; empty until released."""
        config = load_configuration(self.store, teacher_id, year)
        if config is None or not config.is_released:
            return []
        return list(config.selected_book_ids)

    def _append_record(self, record: ReleaseRecord) -> None:
        self.store.append(
            paths.RELEASE_RECORDS,
            record.to_dict(),
            document_id=paths.release_record_id(record.teacher_id, record.academic_year),
        )

    def release(self, teacher_id: str, year: AcademicYear | str) -> ReleaseResult:
        """Publish a saved configuration to the teacher's students.

        Returns:
            ReleaseResult; a repeated call reports ALREADY_RELEASED with
            success=True and applied=False.
        """
        try:
            academic_year = AcademicYear.coerce(year)
            self.phases.require(Operation.RELEASE, academic_year)
        except ProgramError as e:
            return ReleaseResult(success=False, message=e.message, error=e.code)

        def mutate(current: dict[str, Any] | None) -> dict[str, Any]:
            if current is None:
                raise RecordNotFoundError(f"Configuration for {teacher_id} in {academic_year}")
            config = TeacherConfiguration.from_dict(current)
            if config.status == ConfigurationStatus.RELEASED:
                raise AlreadyReleasedError(teacher_id, str(academic_year))
            if config.status != ConfigurationStatus.SAVED:
                raise NotSavedError(config.status.value)
            if not config.selected_book_ids:
                raise EmptySelectionError()

            now = datetime.now(timezone.utc).isoformat()
            config.status = ConfigurationStatus.RELEASED
            config.released_at = config.updated_at = now
            config.books_released = len(config.selected_book_ids)
            return config.to_dict()

        path = paths.teacher_configuration(teacher_id, str(academic_year))
        try:
            doc = self.store.atomic_update(path, mutate)
        except AlreadyReleasedError as e:
            config = load_configuration(self.store, teacher_id, academic_year)
            record = self.get_release_record(teacher_id, academic_year)
            if record is None and config is not None:
                # earlier attempt stopped between the status flip and the append
                record = ReleaseRecord.from_configuration(config)
                self._append_record(record)
                logger.warning(
                    "release_record_restored",
                    teacher_id=teacher_id,
                    academic_year=str(academic_year),
                )
            logger.info(
                "release_already_done",
                teacher_id=teacher_id,
                academic_year=str(academic_year),
            )
            return ReleaseResult(
                success=True,
                message=e.message,
                record=record,
                configuration=config,
                applied=False,
                error=ErrorCode.ALREADY_RELEASED,
            )
        except ProgramError as e:
            logger.info(
                "release_rejected",
                teacher_id=teacher_id,
                academic_year=str(academic_year),
                error=e.code.value,
            )
            return ReleaseResult(success=False, message=e.message, error=e.code)

        config = TeacherConfiguration.from_dict(doc)
        record = ReleaseRecord.from_configuration(config)
        self._append_record(record)

        logger.info(
            "configuration_released",
            teacher_id=teacher_id,
            academic_year=str(academic_year),
            books_released=record.books_released,
        )
        return ReleaseResult(
            success=True,
            message=f"{record.books_released} books released to students",
            record=record,
            configuration=config,
            applied=True,
        )
