"""
Tests for placement fee and split arithmetic.
"""

from decimal import Decimal

import pytest

from core.exceptions import ValidationError
from core.fees import (
    compute_fee_amount,
    compute_fee_split,
    compute_share,
    round_cents,
    suggest_split_percentages,
    validate_percentage,
    validate_split_total,
)


class TestFeeAmount:
    """Test fee computation from salary and percentage."""

    def test_fee_is_percentage_of_salary(self):
        assert compute_fee_amount(10_000_000, 20) == 2_000_000

    def test_fractional_percentage(self):
        assert compute_fee_amount(12_000_000, 22.5) == 2_700_000

    @pytest.mark.parametrize("salary,pct,expected", [
        (5, 10, 1),       # 0.5 rounds up
        (4, 10, 0),       # 0.4 rounds down
        (15, 10, 2),      # 1.5 rounds up
        (0, 25, 0),
    ])
    def test_half_up_rounding(self, salary, pct, expected):
        assert compute_fee_amount(salary, pct) == expected

    def test_negative_salary_rejected(self):
        with pytest.raises(ValidationError):
            compute_fee_amount(-1, 20)

    @pytest.mark.parametrize("pct", [-0.01, 100.01, 150])
    def test_out_of_range_percentage_rejected(self, pct):
        with pytest.raises(ValidationError) as exc_info:
            compute_fee_amount(1_000_000, pct)
        assert exc_info.value.details["field"] == "fee_percentage"

    def test_round_cents(self):
        assert round_cents(Decimal("2.5")) == 3
        assert round_cents(Decimal("2.49")) == 2


class TestFeeSplit:
    """Test distribution of a fee across collaborators."""

    def test_even_split_has_no_remainder(self):
        split = compute_fee_split(10_000_000, 20, [50, 30, 20])

        assert split.fee_amount == 2_000_000
        assert split.shares == [1_000_000, 600_000, 400_000]
        assert split.platform_share == 0
        assert split.distributed == 2_000_000

    def test_platform_keeps_unallocated_percentage(self):
        split = compute_fee_split(10_000_000, 20, [40, 30])

        assert split.shares == [800_000, 600_000]
        assert split.platform_share == 600_000

    def test_rounding_remainder_goes_to_platform(self):
        split = compute_fee_split(100, 100, [33.33, 33.33, 33.34])

        assert split.shares == [33, 33, 33]
        assert split.platform_share == 1

    def test_rounding_overshoot_is_taken_from_last_share(self):
        # 5 cents split 50/50 rounds to 3 + 3
        split = compute_fee_split(5, 100, [50, 50])

        assert split.shares == [3, 2]
        assert split.platform_share == 0

    def test_shares_and_platform_always_sum_to_fee(self):
        for salary in (1, 7, 99, 12_345, 9_876_543):
            split = compute_fee_split(salary, 17.5, [12.5, 37.5, 50])
            assert split.distributed + split.platform_share == split.fee_amount
            assert split.platform_share >= 0

    def test_no_collaborators(self):
        split = compute_fee_split(1_000_000, 25, [])

        assert split.shares == []
        assert split.platform_share == 250_000

    def test_total_over_100_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            compute_fee_split(1_000_000, 20, [60, 41])
        assert exc_info.value.details["total_percentage"] == "101"

    def test_compute_share(self):
        assert compute_share(2_000_000, 50) == 1_000_000


class TestPercentageValidation:
    def test_bounds_inclusive(self):
        assert validate_percentage(0) == Decimal("0")
        assert validate_percentage(100) == Decimal("100")

    def test_split_total_returns_sum(self):
        assert validate_split_total([25, 25, 12.5]) == Decimal("62.5")


class TestSuggestedSplits:
    """Test role-weighted split suggestions."""

    def test_all_roles(self):
        assert suggest_split_percentages(["sourcer", "submitter", "closer", "support"]) == [
            40.0, 30.0, 20.0, 10.0,
        ]

    def test_suggestions_total_100(self):
        suggested = suggest_split_percentages(["sourcer", "closer"])

        assert suggested == [66.67, 33.33]
        assert sum(Decimal(str(p)) for p in suggested) == Decimal("100")

    def test_empty_roles(self):
        assert suggest_split_percentages([]) == []

    def test_unknown_role_rejected(self):
        with pytest.raises(ValidationError):
            suggest_split_percentages(["sourcer", "headhunter"])
