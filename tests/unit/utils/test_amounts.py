"""
Unit tests for exact token amount utilities
"""

from decimal import Decimal

import pytest

from tokensale.utils.amounts import (
    MAX_DECIMALS,
    compute_deposit_amount,
    format_units,
    parse_units,
    unit_scale,
)
from tokensale.utils.exceptions import (
    InsufficientSupplyError,
    InvalidDecimalsError,
    InvalidInputError,
)


class TestComputeDepositAmount:

    def test_reference_scenario(self):
        assert compute_deposit_amount(1000 * 10**18, 18) == 499 * 10**18

    def test_odd_whole_supply_floors_half(self):
        assert compute_deposit_amount(1001 * 10**18, 18) == 499 * 10**18

    def test_fractional_supply_floors_half(self):
        # 10.9 tokens -> half 5.45 -> floor 5 -> minus one = 4
        assert compute_deposit_amount(109 * 10**17, 18) == 4 * 10**18

    def test_zero_decimals(self):
        assert compute_deposit_amount(10, 0) == 4

    @pytest.mark.parametrize(
        "total_supply,decimals",
        [
            (2**53 + 1, 0),
            (2**64 * 10**18 + 12345, 18),
            (10**30 * 10**18 + 1, 18),
            (2**256 - 1, 18),
            (2**256 - 1, 6),
            (987654321987654321987654321 * 10**36 + 999, MAX_DECIMALS),
        ],
    )
    def test_large_supplies_match_integer_formula(self, total_supply, decimals):
        """Values beyond float precision are computed exactly"""
        scale = 10**decimals
        whole_half = (total_supply // scale) // 2
        expected = (whole_half - 1) * scale

        result = compute_deposit_amount(total_supply, decimals)

        assert result == expected
        assert result % scale == 0

    def test_float_path_would_differ(self):
        """The human-units float round trip loses precision at this size"""
        total_supply = (2**60 + 3) * 10**18
        exact = compute_deposit_amount(total_supply, 18)
        via_float = (int(float(total_supply) / 10**18) // 2 - 1) * 10**18
        assert exact == ((2**60 + 3) // 2 - 1) * 10**18
        assert exact != via_float

    def test_exactly_two_tokens_gives_zero(self):
        assert compute_deposit_amount(2 * 10**18, 18) == 0

    @pytest.mark.parametrize("total_supply", [0, 1, 10**18, 2 * 10**18 - 1])
    def test_insufficient_supply(self, total_supply):
        with pytest.raises(InsufficientSupplyError):
            compute_deposit_amount(total_supply, 18)

    @pytest.mark.parametrize("decimals", [-1, MAX_DECIMALS + 1, 77, 1.5, "18", True])
    def test_invalid_decimals(self, decimals):
        with pytest.raises(InvalidDecimalsError):
            compute_deposit_amount(1000 * 10**18, decimals)

    @pytest.mark.parametrize("total_supply", [-1, 1.5e21, "1000", None])
    def test_invalid_supply(self, total_supply):
        with pytest.raises(InvalidInputError):
            compute_deposit_amount(total_supply, 18)


class TestUnitScale:

    def test_bounds(self):
        assert unit_scale(0) == 1
        assert unit_scale(18) == 10**18
        assert unit_scale(MAX_DECIMALS) == 10**MAX_DECIMALS

    def test_invalid_decimals_is_an_input_error(self):
        with pytest.raises(InvalidInputError):
            unit_scale(-3)


class TestFormatUnits:

    def test_whole_amount(self):
        assert format_units(499 * 10**18, 18) == "499"

    def test_fractional_amount(self):
        assert format_units(1_500_000, 6) == "1.5"
        assert format_units(1, 18) == "0.000000000000000001"

    def test_zero_decimals(self):
        assert format_units(42, 0) == "42"

    def test_negative_amount(self):
        assert format_units(-25 * 10**17, 18) == "-2.5"


class TestParseUnits:

    def test_reference_price(self):
        assert parse_units("0.01", 18) == 10**16

    def test_integer_and_decimal_inputs(self):
        assert parse_units(3, 6) == 3_000_000
        assert parse_units(Decimal("1.25"), 2) == 125

    def test_large_value_is_exact(self):
        assert parse_units("123456789012345678901234567890.123456789012345678", 18) == (
            123456789012345678901234567890123456789012345678
        )

    def test_trailing_zeros_beyond_precision_are_fine(self):
        assert parse_units("1.500", 1) == 15

    @pytest.mark.parametrize("value", ["-1", "abc", "", "1e5", "0x10", True, -3])
    def test_invalid_values(self, value):
        with pytest.raises(InvalidInputError):
            parse_units(value, 18)

    def test_too_many_decimal_places(self):
        with pytest.raises(InvalidInputError, match="decimal places"):
            parse_units("0.0000001", 6)
