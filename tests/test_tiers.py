"""Tests for achievement tier derivation."""

import pytest

from luxlibris.config.app_config import TierDefaults
from luxlibris.core.tiers import (
    MULTI_YEAR_TAG,
    Tier,
    derive_tiers,
    earned_tiers,
    rederive_tiers,
    set_tier_reward,
)


def _books(tiers):
    return [t.books for t in tiers]


class TestDeriveTiers:
    """Tests for derive_tiers."""

    def test_zero_books_no_tiers(self):
        assert derive_tiers(0) == []

    def test_negative_raises(self):
        with pytest.raises(ValueError):
            derive_tiers(-1)

    def test_sixteen_books(self):
        tiers = derive_tiers(16)
        assert _books(tiers) == [4, 8, 12, 16, 80]
        assert [t.tier_type for t in tiers] == ["basic", "basic", "basic", "annual", "lifetime"]

    def test_twenty_books(self):
        assert _books(derive_tiers(20)) == [5, 10, 15, 20, 100]

    def test_rounding_up(self):
        assert _books(derive_tiers(5)) == [2, 3, 4, 5, 25]

    @pytest.mark.parametrize(
        "count,expected",
        [
            (1, [1, 25]),
            (2, [1, 2, 25]),
            (3, [1, 2, 3, 25]),
            (4, [1, 2, 3, 4, 25]),
        ],
    )
    def test_small_selections(self, count, expected):
        """Basic tiers that would reach the annual tier are left out."""
        assert _books(derive_tiers(count)) == expected

    @pytest.mark.parametrize("count", range(1, 61))
    def test_strictly_increasing_and_annual_equals_count(self, count):
        tiers = derive_tiers(count)
        books = _books(tiers)
        assert books == sorted(set(books))
        assert books[0] >= 1
        annual = [t for t in tiers if t.tier_type == "annual"]
        assert annual[0].books == count

    def test_lifetime_floor(self):
        assert derive_tiers(4)[-1].books == 25
        assert derive_tiers(6)[-1].books == 30

    def test_lifetime_is_multi_year(self):
        lifetime = derive_tiers(10)[-1]
        assert lifetime.tier_type == "lifetime"
        assert MULTI_YEAR_TAG in lifetime.tags
        assert lifetime.multi_year

    def test_default_rewards(self):
        rewards = [t.reward for t in derive_tiers(16)]
        assert rewards == ["Recognition at Mass", "Certificate", "Party", "Medal", "Plaque"]

    def test_custom_defaults(self):
        defaults = TierDefaults(first="Sticker", lifetime="Trophy")
        tiers = derive_tiers(8, defaults)
        assert tiers[0].reward == "Sticker"
        assert tiers[-1].reward == "Trophy"


class TestRederiveTiers:
    """Reward text survives re-derivation by book-count key."""

    def test_customized_reward_kept_when_key_survives(self):
        tiers = set_tier_reward(derive_tiers(16), 8, "Pizza lunch")
        rederived = rederive_tiers(tiers, 15)
        assert _books(rederived) == [4, 8, 12, 15, 75]
        by_books = {t.books: t for t in rederived}
        assert by_books[8].reward == "Pizza lunch"
        assert by_books[8].customized

    def test_customized_reward_dropped_when_key_disappears(self):
        tiers = set_tier_reward(derive_tiers(16), 12, "Field trip")
        rederived = rederive_tiers(tiers, 17)
        assert 12 not in _books(rederived)
        assert all(t.reward != "Field trip" for t in rederived)

    def test_uncustomized_tiers_get_new_defaults(self):
        rederived = rederive_tiers(derive_tiers(16), 17)
        assert [t.reward for t in rederived] == [
            "Recognition at Mass",
            "Certificate",
            "Party",
            "Medal",
            "Plaque",
        ]

    def test_rederive_to_zero(self):
        assert rederive_tiers(derive_tiers(16), 0) == []


class TestSetTierReward:
    def test_sets_and_marks_customized(self):
        tiers = set_tier_reward(derive_tiers(16), 16, "  Medal and pizza  ")
        annual = [t for t in tiers if t.books == 16][0]
        assert annual.reward == "Medal and pizza"
        assert annual.customized

    def test_unknown_key_raises(self):
        with pytest.raises(KeyError):
            set_tier_reward(derive_tiers(16), 9, "Nope")

    def test_original_list_untouched(self):
        tiers = derive_tiers(16)
        set_tier_reward(tiers, 4, "Bookmark")
        assert tiers[0].reward == "Recognition at Mass"


class TestTierSerialization:
    def test_dict_uses_type_key(self):
        data = derive_tiers(16)[-1].to_dict()
        assert data["type"] == "lifetime"
        assert Tier.from_dict(data) == derive_tiers(16)[-1]


class TestEarnedTiers:
    def test_yearly_and_lifetime_counts(self):
        tiers = derive_tiers(16)
        earned = earned_tiers(tiers, books_this_year=9, lifetime_books=30)
        assert _books(earned) == [4, 8]

    def test_lifetime_tier_uses_lifetime_books(self):
        tiers = derive_tiers(4)
        earned = earned_tiers(tiers, books_this_year=2, lifetime_books=25)
        assert _books(earned) == [1, 2, 25]
