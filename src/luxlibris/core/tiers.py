"""Achievement tier derivation.

Tiers are (book-count, reward) milestones derived from how many books a
teacher selected:

- three basic tiers at 25% / 50% / 75% of the selection (rounded up)
- the annual tier at the full selection
- a lifetime tier of max(25, 5 x selection), spanning several years

Reward text is free-form and edited by teachers. Re-deriving after the
selection changes keys tiers by book count, so a customized reward survives
as long as its book count is still a milestone.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Literal

from luxlibris.config.app_config import TierDefaults

TierType = Literal["basic", "annual", "lifetime"]

MULTI_YEAR_TAG = "multi-year"
LIFETIME_FLOOR = 25
LIFETIME_MULTIPLIER = 5
BASIC_BREAKPOINTS = (0.25, 0.50, 0.75)


@dataclass
class Tier:
    """One achievement milestone."""

    books: int
    reward: str
    tier_type: TierType
    tags: list[str] = field(default_factory=list)
    customized: bool = False

    @property
    def multi_year(self) -> bool:
        return MULTI_YEAR_TAG in self.tags

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "books": self.books,
            "reward": self.reward,
            "type": self.tier_type,
            "tags": list(self.tags),
            "customized": self.customized,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Tier":
        return cls(
            books=int(data["books"]),
            reward=data.get("reward", ""),
            tier_type=data.get("type", "basic"),
            tags=list(data.get("tags", [])),
            customized=bool(data.get("customized", False)),
        )


def _thresholds(book_count: int) -> list[tuple[int, TierType]]:
    thresholds: list[tuple[int, TierType]] = []
    previous = 0
    for ratio in BASIC_BREAKPOINTS:
        value = max(previous + 1, math.ceil(ratio * book_count))
        thresholds.append((value, "basic"))
        previous = value

    # Small selections cannot fit three basic tiers below the annual one
    thresholds = [(books, kind) for books, kind in thresholds if books < book_count]
    thresholds.append((book_count, "annual"))
    thresholds.append(
        (max(LIFETIME_FLOOR, math.ceil(LIFETIME_MULTIPLIER * book_count)), "lifetime")
    )
    return thresholds


def derive_tiers(book_count: int, defaults: TierDefaults | None = None) -> list[Tier]:
    """Derive the milestone ladder for a selection of ``book_count`` books.

    Args:
        book_count: Number of selected books
        defaults: Reward text for fresh tiers (config defaults if omitted)

    Returns:
        Tiers in strictly increasing book-count order; empty for zero books.

    Raises:
        ValueError: If book_count is negative.
    """
    if book_count < 0:
        raise ValueError(f"book_count must be >= 0, got {book_count}")
    if book_count == 0:
        return []

    defaults = defaults or TierDefaults()
    basic_rewards = iter([defaults.first, defaults.second, defaults.third])

    tiers = []
    for books, kind in _thresholds(book_count):
        if kind == "basic":
            tiers.append(Tier(books=books, reward=next(basic_rewards), tier_type="basic"))
        elif kind == "annual":
            tiers.append(Tier(books=books, reward=defaults.annual, tier_type="annual"))
        else:
            tiers.append(
                Tier(
                    books=books,
                    reward=defaults.lifetime,
                    tier_type="lifetime",
                    tags=[MULTI_YEAR_TAG],
                )
            )
    return tiers


def rederive_tiers(
    existing: list[Tier],
    book_count: int,
    defaults: TierDefaults | None = None,
) -> list[Tier]:
    """Re-derive tiers for a new selection size, keeping customized rewards.

    A tier whose book count is still a milestone keeps the teacher's reward
    text if it was customized; every other tier gets the default text for its
    new position.
    """
    customized = {tier.books: tier for tier in existing if tier.customized}
    result = []
    for tier in derive_tiers(book_count, defaults):
        kept = customized.get(tier.books)
        if kept is not None:
            tier.reward = kept.reward
            tier.customized = True
        result.append(tier)
    return result


def set_tier_reward(tiers: list[Tier], books: int, reward: str) -> list[Tier]:
    """Replace the reward text of the tier keyed by ``books``.

    Raises:
        KeyError: If no tier has that book count.
    """
    reward = reward.strip()
    updated = []
    found = False
    for tier in tiers:
        if tier.books == books:
            found = True
            tier = Tier(
                books=tier.books,
                reward=reward,
                tier_type=tier.tier_type,
                tags=list(tier.tags),
                customized=True,
            )
        updated.append(tier)
    if not found:
        raise KeyError(books)
    return updated


def earned_tiers(tiers: list[Tier], books_this_year: int, lifetime_books: int) -> list[Tier]:
    """Tiers a student has reached; multi-year tiers count lifetime books."""
    return [
        tier
        for tier in tiers
        if (lifetime_books if tier.multi_year else books_this_year) >= tier.books
    ]
