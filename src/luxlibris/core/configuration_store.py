"""Teacher configuration store.

Responsibilities:
- Hold one teacher's book selection, completion methods and tiers per year
- Enforce the selection ceiling carried over from the teacher's previous year
- Re-derive achievement tiers whenever the selection changes
- Move a configuration from draft to saved

All edits happen inside a single atomic document update at
teachers/{teacher_id}/configurations/{year}; a failed guard aborts the
update, so there are no partial writes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable

import structlog

from luxlibris.config.app_config import AppConfig, load_app_config
from luxlibris.core.catalog import get_nominee
from luxlibris.core.errors import (
    CapacityExceededError,
    ConfigurationLockedError,
    EmptySelectionError,
    ErrorCode,
    InvalidOptionError,
    ProgramError,
    RecordNotFoundError,
    UnknownBookError,
)
from luxlibris.core.phases import AcademicYear, Operation, PhaseController
from luxlibris.core.tiers import Tier, rederive_tiers, set_tier_reward
from luxlibris.db import paths
from luxlibris.db.document_store import DocumentStore

logger = structlog.get_logger(__name__)

CONFIGURATION_SCHEMA = "teacher_configuration_v1"


# =============================================================================
# DATA CLASSES
# =============================================================================


class CompletionMethod(str, Enum):
    """Ways a student can show they finished a book."""

    QUIZ = "quiz"
    PRESENT_TO_TEACHER = "presentToTeacher"
    SUBMIT_REVIEW = "submitReview"
    CREATE_STORYBOARD = "createStoryboard"
    BOOK_REPORT = "bookReport"
    DISCUSS_WITH_LIBRARIAN = "discussWithLibrarian"
    ACT_OUT_SCENE = "actOutScene"


ALWAYS_ENABLED_METHODS = frozenset({CompletionMethod.QUIZ})


class ConfigurationStatus(str, Enum):
    DRAFT = "draft"
    SAVED = "saved"
    RELEASED = "released"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class TeacherConfiguration:
    """One teacher's program setup for one academic year."""

    teacher_id: str
    academic_year: str
    ceiling: int
    selected_book_ids: list[str] = field(default_factory=list)
    enabled_methods: set[CompletionMethod] = field(default_factory=set)
    always_enabled_methods: frozenset[CompletionMethod] = ALWAYS_ENABLED_METHODS
    achievement_tiers: list[Tier] = field(default_factory=list)
    status: ConfigurationStatus = ConfigurationStatus.DRAFT
    created_at: str = ""
    updated_at: str = ""
    saved_at: str | None = None
    released_at: str | None = None
    books_released: int | None = None
    rolled_from: str | None = None

    def __post_init__(self):
        now = _now()
        if not self.created_at:
            self.created_at = now
        if not self.updated_at:
            self.updated_at = now

    @property
    def completion_options(self) -> set[CompletionMethod]:
        """Every method students may use: always-on plus teacher-enabled."""
        return set(self.always_enabled_methods) | set(self.enabled_methods)

    @property
    def is_released(self) -> bool:
        return self.status == ConfigurationStatus.RELEASED

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "$schema": CONFIGURATION_SCHEMA,
            "teacher_id": self.teacher_id,
            "academic_year": self.academic_year,
            "ceiling": self.ceiling,
            "selected_book_ids": list(self.selected_book_ids),
            "enabled_methods": sorted(m.value for m in self.enabled_methods),
            "always_enabled_methods": sorted(m.value for m in self.always_enabled_methods),
            "achievement_tiers": [t.to_dict() for t in self.achievement_tiers],
            "status": self.status.value,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "saved_at": self.saved_at,
            "released_at": self.released_at,
            "books_released": self.books_released,
            "rolled_from": self.rolled_from,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TeacherConfiguration":
        return cls(
            teacher_id=data["teacher_id"],
            academic_year=data["academic_year"],
            ceiling=int(data["ceiling"]),
            selected_book_ids=list(data.get("selected_book_ids", [])),
            enabled_methods={CompletionMethod(m) for m in data.get("enabled_methods", [])},
            always_enabled_methods=frozenset(
                CompletionMethod(m)
                for m in data.get("always_enabled_methods", [CompletionMethod.QUIZ.value])
            ),
            achievement_tiers=[Tier.from_dict(t) for t in data.get("achievement_tiers", [])],
            status=ConfigurationStatus(data.get("status", "draft")),
            created_at=data.get("created_at", ""),
            updated_at=data.get("updated_at", ""),
            saved_at=data.get("saved_at"),
            released_at=data.get("released_at"),
            books_released=data.get("books_released"),
            rolled_from=data.get("rolled_from"),
        )


@dataclass
class ConfigurationResult:
    """Result of a configuration operation."""

    success: bool
    message: str
    configuration: TeacherConfiguration | None = None
    applied: bool = False
    error: ErrorCode | None = None


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================


def load_configuration(
    store: DocumentStore, teacher_id: str, year: AcademicYear | str
) -> TeacherConfiguration | None:
    data = store.get(paths.teacher_configuration(teacher_id, str(AcademicYear.coerce(year))))
    if data is None:
        return None
    return TeacherConfiguration.from_dict(data)


def previous_configuration(
    store: DocumentStore, teacher_id: str, year: AcademicYear | str
) -> TeacherConfiguration | None:
    """Latest configuration of the teacher from a year before ``year``."""
    target = AcademicYear.coerce(year)
    earlier = []
    for doc in store.list_documents(paths.teacher_configurations(teacher_id)):
        config = TeacherConfiguration.from_dict(doc)
        if AcademicYear.parse(config.academic_year) < target:
            earlier.append(config)
    if not earlier:
        return None
    return max(earlier, key=lambda c: AcademicYear.parse(c.academic_year))


def new_configuration(
    store: DocumentStore,
    teacher_id: str,
    year: AcademicYear,
    default_ceiling: int,
) -> TeacherConfiguration:
    """Empty draft whose ceiling is carried over from the teacher's last year."""
    previous = previous_configuration(store, teacher_id, year)
    ceiling = previous.ceiling if previous is not None else default_ceiling
    return TeacherConfiguration(
        teacher_id=teacher_id,
        academic_year=str(year),
        ceiling=ceiling,
        rolled_from=previous.academic_year if previous is not None else None,
    )


def _failure(error: ProgramError) -> ConfigurationResult:
    return ConfigurationResult(success=False, message=error.message, error=error.code)


class _Unchanged(Exception):
    """Aborts the update so a no-op edit never creates a configuration document."""


# =============================================================================
# STORE
# =============================================================================


class TeacherConfigurationStore:
    """Teacher-facing configuration operations for the TEACHER_SELECTION phase."""

    def __init__(
        self,
        store: DocumentStore,
        phases: PhaseController,
        config: AppConfig | None = None,
    ):
        self.store = store
        self.phases = phases
        self.config = config or load_app_config()

    # ------------------------------------------------------------------ reads

    def get_configuration(
        self, teacher_id: str, year: AcademicYear | str
    ) -> TeacherConfiguration | None:
        return load_configuration(self.store, teacher_id, year)

    def get_tiers(self, teacher_id: str, year: AcademicYear | str) -> list[Tier]:
        config = self.get_configuration(teacher_id, year)
        if config is None:
            return []
        return config.achievement_tiers

    # ----------------------------------------------------------------- writes

    def _edit(
        self,
        teacher_id: str,
        year: AcademicYear | str,
        action: str,
        edit: Callable[[TeacherConfiguration, AcademicYear], bool],
    ) -> ConfigurationResult:
        """Run ``edit`` inside one atomic update of the configuration document.

        ``edit`` returns whether it changed anything. A changed saved
        configuration goes back to draft and has to be saved again.
        """
        try:
            academic_year = AcademicYear.coerce(year)
            self.phases.require(Operation.CONFIGURE, academic_year)
        except ProgramError as e:
            return _failure(e)

        applied = False

        def mutate(current: dict[str, Any] | None) -> dict[str, Any]:
            nonlocal applied
            if current is None:
                config = new_configuration(
                    self.store, teacher_id, academic_year, self.config.program.default_ceiling
                )
            else:
                config = TeacherConfiguration.from_dict(current)

            if config.is_released:
                raise ConfigurationLockedError(teacher_id, str(academic_year))

            applied = edit(config, academic_year)
            if current is None and not applied:
                raise _Unchanged()
            if applied:
                config.updated_at = _now()
                if config.status == ConfigurationStatus.SAVED:
                    config.status = ConfigurationStatus.DRAFT
                    config.saved_at = None
            return config.to_dict()

        path = paths.teacher_configuration(teacher_id, str(academic_year))
        try:
            doc = self.store.atomic_update(path, mutate)
        except _Unchanged:
            logger.info(
                "configuration_edited",
                action=action,
                teacher_id=teacher_id,
                academic_year=str(academic_year),
                applied=False,
                selected=0,
            )
            return ConfigurationResult(success=True, message=f"{action}: no change")
        except ProgramError as e:
            logger.info(
                "configuration_edit_rejected",
                action=action,
                teacher_id=teacher_id,
                academic_year=str(academic_year),
                error=e.code.value,
            )
            return _failure(e)

        configuration = TeacherConfiguration.from_dict(doc)
        logger.info(
            "configuration_edited",
            action=action,
            teacher_id=teacher_id,
            academic_year=str(academic_year),
            applied=applied,
            selected=len(configuration.selected_book_ids),
        )
        return ConfigurationResult(
            success=True,
            message=f"{action}: {'updated' if applied else 'no change'}",
            configuration=configuration,
            applied=applied,
        )

    def select_book(
        self, teacher_id: str, year: AcademicYear | str, book_id: str
    ) -> ConfigurationResult:
        """Add a nominee to the selection.

        Fails with CAPACITY_EXCEEDED at the ceiling; selecting an already
        selected book changes nothing.
        """

        def edit(config: TeacherConfiguration, academic_year: AcademicYear) -> bool:
            if book_id in config.selected_book_ids:
                return False
            if get_nominee(self.store, academic_year, book_id) is None:
                raise UnknownBookError(book_id, str(academic_year))
            if len(config.selected_book_ids) >= config.ceiling:
                raise CapacityExceededError(config.ceiling)
            config.selected_book_ids.append(book_id)
            config.achievement_tiers = rederive_tiers(
                config.achievement_tiers, len(config.selected_book_ids), self.config.tiers
            )
            return True

        return self._edit(teacher_id, year, "select_book", edit)

    def deselect_book(
        self, teacher_id: str, year: AcademicYear | str, book_id: str
    ) -> ConfigurationResult:
        def edit(config: TeacherConfiguration, academic_year: AcademicYear) -> bool:
            if book_id not in config.selected_book_ids:
                return False
            config.selected_book_ids.remove(book_id)
            config.achievement_tiers = rederive_tiers(
                config.achievement_tiers, len(config.selected_book_ids), self.config.tiers
            )
            return True

        return self._edit(teacher_id, year, "deselect_book", edit)

    def set_completion_option(
        self,
        teacher_id: str,
        year: AcademicYear | str,
        option_key: str,
        enabled: bool,
    ) -> ConfigurationResult:
        """Toggle a completion method; the always-on quiz cannot be toggled."""
        try:
            method = CompletionMethod(option_key)
        except ValueError:
            return _failure(InvalidOptionError(option_key, "unknown completion method"))
        if method in ALWAYS_ENABLED_METHODS:
            return _failure(InvalidOptionError(option_key, "always enabled, cannot be toggled"))

        def edit(config: TeacherConfiguration, academic_year: AcademicYear) -> bool:
            if (method in config.enabled_methods) == enabled:
                return False
            if enabled:
                config.enabled_methods.add(method)
            else:
                config.enabled_methods.discard(method)
            return True

        return self._edit(teacher_id, year, "set_completion_option", edit)

    def set_tier_reward(
        self,
        teacher_id: str,
        year: AcademicYear | str,
        books: int,
        reward: str,
    ) -> ConfigurationResult:
        """Edit the free-text reward of the tier keyed by ``books``."""

        def edit(config: TeacherConfiguration, academic_year: AcademicYear) -> bool:
            current = {t.books: t for t in config.achievement_tiers}.get(books)
            if current is None:
                raise RecordNotFoundError(f"Tier for {books} books")
            if current.reward == reward.strip() and current.customized:
                return False
            config.achievement_tiers = set_tier_reward(config.achievement_tiers, books, reward)
            return True

        return self._edit(teacher_id, year, "set_tier_reward", edit)

    def save(self, teacher_id: str, year: AcademicYear | str) -> ConfigurationResult:
        """Move draft -> saved. Saving a saved configuration is a no-op."""
        try:
            academic_year = AcademicYear.coerce(year)
            self.phases.require(Operation.CONFIGURE, academic_year)
        except ProgramError as e:
            return _failure(e)

        applied = False

        def mutate(current: dict[str, Any] | None) -> dict[str, Any]:
            nonlocal applied
            if current is None:
                raise EmptySelectionError()
            config = TeacherConfiguration.from_dict(current)
            if config.is_released:
                raise ConfigurationLockedError(teacher_id, str(academic_year))
            if config.status == ConfigurationStatus.SAVED:
                return current
            if not config.selected_book_ids:
                raise EmptySelectionError()
            config.status = ConfigurationStatus.SAVED
            config.saved_at = config.updated_at = _now()
            applied = True
            return config.to_dict()

        path = paths.teacher_configuration(teacher_id, str(academic_year))
        try:
            doc = self.store.atomic_update(path, mutate)
        except ProgramError as e:
            logger.info(
                "configuration_save_rejected",
                teacher_id=teacher_id,
                academic_year=str(academic_year),
                error=e.code.value,
            )
            return _failure(e)

        configuration = TeacherConfiguration.from_dict(doc)
        logger.info(
            "configuration_saved",
            teacher_id=teacher_id,
            academic_year=str(academic_year),
            applied=applied,
            books=len(configuration.selected_book_ids),
        )
        return ConfigurationResult(
            success=True,
            message="Configuration saved" if applied else "Configuration already saved",
            configuration=configuration,
            applied=applied,
        )
