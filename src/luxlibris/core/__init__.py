"""Core lifecycle logic for the annual reading program.

Modules:
- phases: academic years, program phases and the phase gate
- tiers: achievement tier derivation
- catalog: nominee books per academic year
- configuration_store: teacher book selection, completion methods, tiers
- release_gate: publishing a saved configuration to students
- students: student records and bookshelves
- submissions: submission approval workflow
- rollover: seeding the next academic year
"""

__all__ = [
    "phases",
    "tiers",
    "catalog",
    "configuration_store",
    "release_gate",
    "students",
    "submissions",
    "rollover",
]
