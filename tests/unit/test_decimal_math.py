"""
Unit tests for DecimalMath.

Verifies:
- Exact add/subtract/multiply/sum (no binary floating point)
- Single-step rounding on divide, in every supported mode
- Float, NaN and Infinity rejection
- Precision overflow and division by zero are typed errors
"""

from decimal import (
    ROUND_CEILING,
    ROUND_DOWN,
    ROUND_FLOOR,
    ROUND_HALF_EVEN,
    ROUND_HALF_UP,
    ROUND_UP,
    Decimal,
)

import pytest

from coa_kernel.domain.decimal_math import DecimalMath
from coa_kernel.exceptions import (
    DecimalArithmeticError,
    DivisionByZeroError,
    InvalidAmountError,
    PrecisionOverflowError,
)


@pytest.fixture
def dm() -> DecimalMath:
    return DecimalMath()


class TestExactOperations:
    """add/subtract/multiply never round."""

    def test_tenths_add_exactly(self, dm):
        """0.10 + 0.20 is exactly 0.30, unlike binary floating point."""
        assert dm.add("0.10", "0.20") == Decimal("0.30")

    def test_subtract_to_negative(self, dm):
        assert dm.subtract("10.00", "10.01") == Decimal("-0.01")

    def test_multiply_keeps_all_digits(self, dm):
        assert dm.multiply("1.5", "1.5") == Decimal("2.25")
        assert dm.multiply("0.001", "0.001") == Decimal("0.000001")

    def test_negate(self, dm):
        assert dm.negate("12.34") == Decimal("-12.34")

    def test_sum_of_pennies(self, dm):
        assert dm.sum(["0.01"] * 100) == Decimal("1.00")

    def test_empty_sum_is_scaled_zero(self, dm):
        result = dm.sum([])
        assert result == 0
        assert result.as_tuple().exponent == -2

    def test_accepts_int_str_and_decimal(self, dm):
        assert dm.add(1, Decimal("2")) == Decimal("3")
        assert dm.add(" 1.50 ", 0) == Decimal("1.50")


class TestRounding:
    """divide and round use one explicit rounding step."""

    def test_one_third(self, dm):
        assert dm.divide(1, 3) == Decimal("0.33")

    def test_two_thirds_rounds_up(self, dm):
        assert dm.divide(2, 3) == Decimal("0.67")

    def test_half_up_vs_half_even(self, dm):
        assert dm.divide(1, 8) == Decimal("0.13")
        assert dm.divide(1, 8, rounding=ROUND_HALF_EVEN) == Decimal("0.12")
        assert dm.divide(3, 8, rounding=ROUND_HALF_EVEN) == Decimal("0.38")

    def test_half_up_rounds_negative_away_from_zero(self, dm):
        assert dm.divide(-1, 8) == Decimal("-0.13")

    @pytest.mark.parametrize(
        "rounding, expected",
        [
            (ROUND_UP, Decimal("-0.34")),
            (ROUND_DOWN, Decimal("-0.33")),
            (ROUND_CEILING, Decimal("-0.33")),
            (ROUND_FLOOR, Decimal("-0.34")),
        ],
    )
    def test_directed_modes_on_negative(self, dm, rounding, expected):
        assert dm.divide(-1, 3, rounding=rounding) == expected

    def test_explicit_scale(self, dm):
        assert dm.divide(10, 3, scale=4) == Decimal("3.3333")
        assert dm.divide(10, 4, scale=0) == Decimal("3")

    def test_negative_scale_rounds_to_hundreds(self, dm):
        assert dm.divide(1250, 1, scale=-2) == Decimal("1300")
        assert dm.divide(-1250, 1, scale=-2) == Decimal("-1300")
        assert dm.divide(1249, 1, scale=-2) == dm.round(1249, scale=-2)
        assert dm.divide(1250, 1, scale=-2) == dm.round(1250, scale=-2)

    def test_round_is_decimal_exact(self, dm):
        """2.675 is exactly representable here, so it rounds up to 2.68."""
        assert dm.round(Decimal("2.675")) == Decimal("2.68")

    def test_round_configured_mode(self):
        dm = DecimalMath(scale=1, rounding=ROUND_HALF_EVEN)
        assert dm.round("0.25") == Decimal("0.2")
        assert dm.round("0.35") == Decimal("0.4")

    def test_fits_scale(self, dm):
        assert dm.fits_scale("1.00")
        assert dm.fits_scale("7")
        assert not dm.fits_scale("1.005")


class TestRejectedInput:

    @pytest.mark.parametrize("value", [0.1, 1.0, True])
    def test_float_and_bool_rejected(self, dm, value):
        with pytest.raises(InvalidAmountError):
            dm.to_decimal(value)

    @pytest.mark.parametrize("value", ["NaN", "Infinity", "-Infinity", Decimal("NaN")])
    def test_non_finite_rejected(self, dm, value):
        with pytest.raises(InvalidAmountError):
            dm.to_decimal(value)

    def test_garbage_rejected(self, dm):
        with pytest.raises(InvalidAmountError) as exc_info:
            dm.add("12abc", "1")
        assert exc_info.value.code == "INVALID_AMOUNT"

    def test_unsupported_type_rejected(self, dm):
        with pytest.raises(InvalidAmountError):
            dm.to_decimal([1])

    def test_divide_by_zero(self, dm):
        with pytest.raises(DivisionByZeroError) as exc_info:
            dm.divide("5.00", "0.00")
        assert exc_info.value.dividend == "5.00"
        assert isinstance(exc_info.value, ArithmeticError)
        assert isinstance(exc_info.value, DecimalArithmeticError)


class TestPrecisionOverflow:

    def test_result_wider_than_max_digits(self):
        dm = DecimalMath(max_digits=5)
        with pytest.raises(PrecisionOverflowError) as exc_info:
            dm.add("99999", "1")
        assert exc_info.value.max_digits == 5

    def test_input_wider_than_max_digits(self):
        dm = DecimalMath(max_digits=5)
        with pytest.raises(PrecisionOverflowError):
            dm.to_decimal("123456")

    def test_large_values_within_limit_are_exact(self, dm):
        big = "123456789012345678901234567890.12"
        assert dm.add(big, "0.01") == Decimal("123456789012345678901234567890.13")


class TestConstruction:

    def test_unknown_rounding_mode(self):
        with pytest.raises(ValueError):
            DecimalMath(rounding="ROUND_SIDEWAYS")

    def test_negative_scale(self):
        with pytest.raises(ValueError):
            DecimalMath(scale=-1)

    def test_zero_is_at_scale(self):
        assert str(DecimalMath(scale=3).zero()) == "0.000"
