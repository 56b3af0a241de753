"""
CodeScheme -- pure account code allocation rules.

Responsibility:
    Given the set of codes already taken in a tenant, compute the next
    free code for a root account (drawn from the type's numeric band) or
    for a child account (drawn from the parent's prefix block).

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  The
    AccountCodeGenerator service reads the taken codes from the store and
    delegates the arithmetic here.

Invariants enforced:
    - Roots: ``max(numeric codes in band) + increment``, starting at the
      band start for an empty band.
    - Children: ``max(sibling codes, parent code) + increment``, skipping
      any code already taken anywhere in the tenant.  The result shares
      the parent's first ``parent_prefix_digits`` digits and its length.
    - When the running maximum has reached the end of the band or block,
      the lowest free gap in the whole band or block is used instead, even
      one below the parent's own code.
    - The result is only a suggestion; uniqueness is re-checked by the
      store at insert time.

Failure modes:
    - CodeSpaceExhaustedError when a band or block has no free code.
    - InvalidAccountCodeError when a parent's code is not numeric.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

from coa_kernel.domain.classification import AccountSubType, AccountType
from coa_kernel.domain.dtos import CodeSuggestion
from coa_kernel.exceptions import (
    CodeSpaceExhaustedError,
    InvalidAccountCodeError,
)


@dataclass(frozen=True)
class CodeBand:
    """Inclusive numeric range reserved for a type or sub-type."""

    start: int
    end: int

    def __post_init__(self) -> None:
        if self.start < 0 or self.end < self.start:
            raise ValueError(f"Invalid code band {self.start}-{self.end}")

    def __contains__(self, value: int) -> bool:
        return self.start <= value <= self.end

    @property
    def pattern(self) -> str:
        return f"{self.start}-{self.end}"


DEFAULT_TYPE_BANDS: Mapping[AccountType, CodeBand] = {
    AccountType.ASSET: CodeBand(1000, 1999),
    AccountType.LIABILITY: CodeBand(2000, 2999),
    AccountType.EQUITY: CodeBand(3000, 3999),
    AccountType.REVENUE: CodeBand(4000, 4999),
    AccountType.EXPENSE: CodeBand(5000, 5999),
}


@dataclass(frozen=True)
class CodeScheme:
    """
    Code allocation settings for one tenant.

    Attributes:
        width: Zero-padded width of generated root codes.
        increment: Step between consecutive generated codes.
        parent_prefix_digits: Leading digits a child shares with its parent.
        type_bands: Band per account type.
        sub_type_bands: Optional band per sub-type; takes precedence over
            the type band when present.
    """

    width: int = 4
    increment: int = 1
    parent_prefix_digits: int = 2
    type_bands: Mapping[AccountType, CodeBand] = field(
        default_factory=lambda: dict(DEFAULT_TYPE_BANDS)
    )
    sub_type_bands: Mapping[AccountSubType, CodeBand] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.width <= 0:
            raise ValueError(f"width must be > 0, got {self.width}")
        if self.increment <= 0:
            raise ValueError(f"increment must be > 0, got {self.increment}")
        if self.parent_prefix_digits <= 0:
            raise ValueError(
                f"parent_prefix_digits must be > 0, got {self.parent_prefix_digits}"
            )
        missing = set(AccountType) - set(self.type_bands)
        if missing:
            names = ", ".join(sorted(t.value for t in missing))
            raise ValueError(f"No code band configured for: {names}")

    def band_for(
        self,
        account_type: AccountType,
        sub_type: AccountSubType | None = None,
    ) -> CodeBand:
        if sub_type is not None and sub_type in self.sub_type_bands:
            return self.sub_type_bands[sub_type]
        return self.type_bands[account_type]

    def next_root_code(
        self,
        account_type: AccountType,
        sub_type: AccountSubType | None,
        taken_codes: Iterable[str],
    ) -> CodeSuggestion:
        band = self.band_for(account_type, sub_type)
        taken = _numeric(taken_codes)
        in_band = [value for value in taken if value in band]

        candidate = max(in_band) + self.increment if in_band else band.start
        if candidate not in band or candidate in taken:
            candidate = self._first_gap(band.start, band.end, taken, band.pattern)

        return CodeSuggestion(
            code=str(candidate).zfill(self.width),
            pattern=band.pattern,
            band_start=band.start,
            band_end=band.end,
        )

    def next_child_code(
        self,
        parent_code: str,
        sibling_codes: Iterable[str],
        taken_codes: Iterable[str],
    ) -> CodeSuggestion:
        if not parent_code.isdigit():
            raise InvalidAccountCodeError(
                parent_code, "parent code must be numeric to derive child codes"
            )
        length = len(parent_code)
        prefix_len = min(self.parent_prefix_digits, length)
        prefix = parent_code[:prefix_len]
        suffix_len = length - prefix_len
        block_start = int(prefix) * 10 ** suffix_len
        block_end = block_start + 10 ** suffix_len - 1
        pattern = prefix + "x" * suffix_len

        parent_value = int(parent_code)
        taken = _numeric(taken_codes) | {parent_value}
        siblings = [
            value for value in _numeric(sibling_codes)
            if block_start <= value <= block_end
        ]

        candidate = max(siblings + [parent_value]) + self.increment
        while candidate <= block_end and candidate in taken:
            candidate += self.increment
        if candidate > block_end:
            candidate = self._first_gap(block_start, block_end, taken, pattern)

        return CodeSuggestion(
            code=str(candidate).zfill(length),
            pattern=pattern,
            band_start=block_start,
            band_end=block_end,
            parent_code=parent_code,
        )

    def _first_gap(self, start: int, end: int, taken: set[int], pattern: str) -> int:
        candidate = start
        while candidate <= end:
            if candidate not in taken:
                return candidate
            candidate += self.increment
        raise CodeSpaceExhaustedError(pattern)


def _numeric(codes: Iterable[str]) -> set[int]:
    return {int(code) for code in codes if code and code.isdigit()}
