"""
DecimalMath -- exact fixed-point arithmetic for every money computation.

Responsibility:
    Single, injected owner of precision and rounding.  Balance
    aggregation, opening-balance validation and store-side summation all
    go through one DecimalMath instance so the rounding mode and scale are
    governed centrally rather than per call site.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - No binary floating point: float inputs are rejected, never converted.
    - Add, subtract and multiply are exact.  An inexact result means the
      mantissa outgrew the working precision and raises
      PrecisionOverflowError instead of silently rounding.
    - Every result is checked against ``max_digits`` significant digits.
    - Division and explicit rounding are the only places where rounding
      happens, always with an explicit mode and target scale.

Failure modes:
    - DivisionByZeroError on a zero divisor.
    - PrecisionOverflowError when a result needs more than ``max_digits``
      significant digits.
    - InvalidAmountError on float, NaN, Infinity or unparseable input.
"""

from __future__ import annotations

from collections.abc import Iterable
from decimal import (
    ROUND_CEILING,
    ROUND_DOWN,
    ROUND_FLOOR,
    ROUND_HALF_DOWN,
    ROUND_HALF_EVEN,
    ROUND_HALF_UP,
    ROUND_UP,
    Context,
    Decimal,
    Inexact,
    InvalidOperation,
    localcontext,
)
from fractions import Fraction

from coa_kernel.exceptions import (
    DivisionByZeroError,
    InvalidAmountError,
    PrecisionOverflowError,
)

SUPPORTED_ROUNDING_MODES: frozenset[str] = frozenset({
    ROUND_HALF_UP,
    ROUND_HALF_EVEN,
    ROUND_HALF_DOWN,
    ROUND_DOWN,
    ROUND_UP,
    ROUND_CEILING,
    ROUND_FLOOR,
})

# Working precision for exact operations; results are bounded by
# max_digits afterwards, so this only has to be comfortably larger.
_WORKING_PRECISION = 1000

AmountLike = Decimal | int | str


class DecimalMath:
    """
    Exact decimal arithmetic with a configured scale and rounding mode.

    Contract:
        Values are Python ``Decimal`` objects -- an integer mantissa plus a
        base-10 exponent -- so no binary floating point is involved.

    Guarantees:
        - ``add``/``subtract``/``multiply``/``sum`` never round.
        - ``divide`` and ``round`` default to ``scale`` and ``rounding``.
        - All outputs have at most ``max_digits`` significant digits.

    Non-goals:
        - No currency awareness; callers pass the scale they need.
        - No display formatting.
    """

    def __init__(
        self,
        scale: int = 2,
        rounding: str = ROUND_HALF_UP,
        max_digits: int = 38,
    ):
        if scale < 0:
            raise ValueError(f"scale must be >= 0, got {scale}")
        if max_digits <= 0:
            raise ValueError(f"max_digits must be > 0, got {max_digits}")
        if rounding not in SUPPORTED_ROUNDING_MODES:
            raise ValueError(f"Unsupported rounding mode: {rounding}")
        self.scale = scale
        self.rounding = rounding
        self.max_digits = max_digits

    def __repr__(self) -> str:
        return (
            f"DecimalMath(scale={self.scale}, rounding={self.rounding}, "
            f"max_digits={self.max_digits})"
        )

    # ------------------------------------------------------------------
    # Conversion
    # ------------------------------------------------------------------

    def to_decimal(self, value: AmountLike) -> Decimal:
        """
        Convert an input amount to Decimal without any precision loss.

        Raises:
            InvalidAmountError: float, bool, non-finite or unparseable input.
            PrecisionOverflowError: more than ``max_digits`` digits.
        """
        if isinstance(value, bool) or isinstance(value, float):
            raise InvalidAmountError(repr(value), "floating point amounts are not accepted")
        if isinstance(value, Decimal):
            result = value
        elif isinstance(value, (int, str)):
            try:
                result = Decimal(value.strip() if isinstance(value, str) else value)
            except InvalidOperation:
                raise InvalidAmountError(repr(value), "not a decimal number") from None
        else:
            raise InvalidAmountError(repr(value), f"unsupported type {type(value).__name__}")
        if not result.is_finite():
            raise InvalidAmountError(str(result), "amount must be finite")
        return self._checked(result)

    def zero(self) -> Decimal:
        """Zero at the configured scale."""
        return Decimal(0).scaleb(-self.scale)

    # ------------------------------------------------------------------
    # Exact operations
    # ------------------------------------------------------------------

    def add(self, a: AmountLike, b: AmountLike) -> Decimal:
        a, b = self.to_decimal(a), self.to_decimal(b)
        return self._exact(lambda ctx: ctx.add(a, b), f"{a} + {b}")

    def subtract(self, a: AmountLike, b: AmountLike) -> Decimal:
        a, b = self.to_decimal(a), self.to_decimal(b)
        return self._exact(lambda ctx: ctx.subtract(a, b), f"{a} - {b}")

    def multiply(self, a: AmountLike, b: AmountLike) -> Decimal:
        a, b = self.to_decimal(a), self.to_decimal(b)
        return self._exact(lambda ctx: ctx.multiply(a, b), f"{a} * {b}")

    def negate(self, a: AmountLike) -> Decimal:
        a = self.to_decimal(a)
        return self._exact(lambda ctx: ctx.minus(a), f"-{a}")

    def sum(self, values: Iterable[AmountLike]) -> Decimal:
        """Exact sum; an empty iterable sums to ``zero()``."""
        total = self.zero()
        for value in values:
            total = self.add(total, value)
        return total

    # ------------------------------------------------------------------
    # Rounding operations
    # ------------------------------------------------------------------

    def divide(
        self,
        a: AmountLike,
        b: AmountLike,
        scale: int | None = None,
        rounding: str | None = None,
    ) -> Decimal:
        """
        Divide ``a`` by ``b`` and round once to ``scale``.

        The quotient is computed as an exact rational before rounding, so
        there is no double rounding.  A negative ``scale`` rounds left of
        the decimal point, as ``round`` does.

        Raises:
            DivisionByZeroError: ``b`` is zero.
        """
        a, b = self.to_decimal(a), self.to_decimal(b)
        if b == 0:
            raise DivisionByZeroError(str(a))
        target_scale = self.scale if scale is None else scale
        mode = self._mode(rounding)
        quotient = Fraction(a) / Fraction(b)
        return self._checked(_round_fraction(quotient, target_scale, mode))

    def round(
        self,
        value: AmountLike,
        scale: int | None = None,
        rounding: str | None = None,
    ) -> Decimal:
        """Quantize ``value`` to ``scale`` decimal places."""
        value = self.to_decimal(value)
        target_scale = self.scale if scale is None else scale
        mode = self._mode(rounding)
        with localcontext(Context(prec=_WORKING_PRECISION)):
            result = value.quantize(Decimal(1).scaleb(-target_scale), rounding=mode)
        return self._checked(result)

    def fits_scale(self, value: AmountLike, scale: int | None = None) -> bool:
        """True if ``value`` has no digits beyond ``scale`` decimal places."""
        value = self.to_decimal(value)
        return self.round(value, scale) == value

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _mode(self, rounding: str | None) -> str:
        mode = self.rounding if rounding is None else rounding
        if mode not in SUPPORTED_ROUNDING_MODES:
            raise ValueError(f"Unsupported rounding mode: {mode}")
        return mode

    def _exact(self, op, description: str) -> Decimal:
        ctx = Context(prec=_WORKING_PRECISION, traps=[Inexact, InvalidOperation])
        try:
            result = op(ctx)
        except Inexact:
            raise PrecisionOverflowError(description, self.max_digits) from None
        return self._checked(result)

    def _checked(self, value: Decimal) -> Decimal:
        if len(value.as_tuple().digits) > self.max_digits:
            raise PrecisionOverflowError(str(value), self.max_digits)
        return value


def _round_fraction(value: Fraction, scale: int, rounding: str) -> Decimal:
    """Round an exact rational to ``scale`` places with a single rounding step."""
    scaled = value * Fraction(10) ** scale
    negative = scaled < 0
    numerator, denominator = abs(scaled.numerator), scaled.denominator
    quotient, remainder = divmod(numerator, denominator)

    if remainder:
        if rounding == ROUND_UP:
            quotient += 1
        elif rounding == ROUND_CEILING:
            quotient += 0 if negative else 1
        elif rounding == ROUND_FLOOR:
            quotient += 1 if negative else 0
        elif rounding != ROUND_DOWN:
            twice = 2 * remainder
            if twice > denominator:
                quotient += 1
            elif twice == denominator:
                if rounding == ROUND_HALF_UP:
                    quotient += 1
                elif rounding == ROUND_HALF_EVEN and quotient % 2 == 1:
                    quotient += 1

    sign = 1 if negative and quotient else 0
    return Decimal((sign, tuple(int(digit) for digit in str(quotient)), -scale))
