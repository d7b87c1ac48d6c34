"""Document path conventions.

Layout:
- system/config                              program phase and current year
- nominees/{year}/books/{book_id}            NomineeBook catalog entries
- teachers/{teacher_id}/configurations/{year} TeacherConfiguration
- release_records/{teacher_id}__{year}       ReleaseRecord (append-only)
- students/{student_id}                      student record with bookshelf
- vote_tallies/{year}/books/{book_id}        VoteTally per nominee
"""

SYSTEM_CONFIG = "system/config"
RELEASE_RECORDS = "release_records"
STUDENTS = "students"


def _segment(value: str) -> str:
    if not value or "/" in value:
        raise ValueError(f"Invalid path segment: {value!r}")
    return value


def nominee_books(year: str) -> str:
    return f"nominees/{_segment(year)}/books"


def nominee_book(year: str, book_id: str) -> str:
    return f"{nominee_books(year)}/{_segment(book_id)}"


def teacher_configurations(teacher_id: str) -> str:
    return f"teachers/{_segment(teacher_id)}/configurations"


def teacher_configuration(teacher_id: str, year: str) -> str:
    return f"{teacher_configurations(teacher_id)}/{_segment(year)}"


def release_record_id(teacher_id: str, year: str) -> str:
    """Deterministic id so a ReleaseRecord can exist at most once per (teacher, year)."""
    return f"{_segment(teacher_id)}__{_segment(year)}"


def release_record(teacher_id: str, year: str) -> str:
    return f"{RELEASE_RECORDS}/{release_record_id(teacher_id, year)}"


def student(student_id: str) -> str:
    return f"{STUDENTS}/{_segment(student_id)}"


def vote_tallies(year: str) -> str:
    return f"vote_tallies/{_segment(year)}/books"


def vote_tally(year: str, book_id: str) -> str:
    return f"{vote_tallies(year)}/{_segment(book_id)}"
