"""
Unit tests for CodeScheme.

Verifies:
- Root codes come from the type band (sub-type bands take precedence)
- Child codes share the parent's prefix and follow the highest sibling
- Gaps are reused once the running maximum reaches the end of a block
- Exhausted bands raise CodeSpaceExhaustedError
"""

import pytest

from coa_kernel.domain.classification import AccountSubType, AccountType
from coa_kernel.domain.code_scheme import DEFAULT_TYPE_BANDS, CodeBand, CodeScheme
from coa_kernel.exceptions import CodeSpaceExhaustedError, InvalidAccountCodeError


@pytest.fixture
def scheme() -> CodeScheme:
    return CodeScheme()


class TestRootCodes:

    def test_first_code_is_band_start(self, scheme):
        suggestion = scheme.next_root_code(AccountType.ASSET, None, [])
        assert suggestion.code == "1000"
        assert suggestion.pattern == "1000-1999"
        assert suggestion.parent_code is None

    @pytest.mark.parametrize(
        "account_type, expected",
        [
            (AccountType.LIABILITY, "2000"),
            (AccountType.EQUITY, "3000"),
            (AccountType.REVENUE, "4000"),
            (AccountType.EXPENSE, "5000"),
        ],
    )
    def test_each_type_has_its_own_band(self, scheme, account_type, expected):
        assert scheme.next_root_code(account_type, None, []).code == expected

    def test_follows_highest_code_in_band(self, scheme):
        taken = ["1000", "1100", "1200", "2000", "ABC"]
        assert scheme.next_root_code(AccountType.ASSET, None, taken).code == "1201"

    def test_codes_in_other_bands_are_ignored(self, scheme):
        assert scheme.next_root_code(AccountType.EQUITY, None, ["1999", "2999"]).code == "3000"

    def test_reuses_gap_when_band_top_is_taken(self, scheme):
        taken = ["1000", "1999"]
        assert scheme.next_root_code(AccountType.ASSET, None, taken).code == "1001"

    def test_sub_type_band_takes_precedence(self):
        scheme = CodeScheme(
            sub_type_bands={AccountSubType.FIXED_ASSET: CodeBand(1500, 1599)}
        )
        suggestion = scheme.next_root_code(
            AccountType.ASSET, AccountSubType.FIXED_ASSET, ["1000", "1500"]
        )
        assert suggestion.code == "1501"
        assert (suggestion.band_start, suggestion.band_end) == (1500, 1599)

    def test_increment(self):
        scheme = CodeScheme(increment=10)
        assert scheme.next_root_code(AccountType.ASSET, None, ["1000"]).code == "1010"

    def test_width_pads_with_zeros(self):
        bands = dict(DEFAULT_TYPE_BANDS)
        bands[AccountType.ASSET] = CodeBand(1, 99)
        scheme = CodeScheme(width=4, type_bands=bands)
        assert scheme.next_root_code(AccountType.ASSET, None, []).code == "0001"

    def test_exhausted_band(self):
        bands = dict(DEFAULT_TYPE_BANDS)
        bands[AccountType.ASSET] = CodeBand(1000, 1002)
        scheme = CodeScheme(type_bands=bands)
        with pytest.raises(CodeSpaceExhaustedError) as exc_info:
            scheme.next_root_code(AccountType.ASSET, None, ["1000", "1001", "1002"])
        assert exc_info.value.pattern == "1000-1002"


class TestChildCodes:

    def test_first_child_follows_parent(self, scheme):
        suggestion = scheme.next_child_code("1000", [], ["1000"])
        assert suggestion.code == "1001"
        assert suggestion.pattern == "10xx"
        assert suggestion.parent_code == "1000"

    def test_follows_highest_sibling(self, scheme):
        suggestion = scheme.next_child_code("1200", ["1210", "1220"], ["1200", "1210", "1220"])
        assert suggestion.code == "1221"

    def test_skips_codes_taken_elsewhere(self, scheme):
        taken = ["1100", "1101", "1102"]
        assert scheme.next_child_code("1100", [], taken).code == "1103"

    def test_siblings_outside_block_ignored(self, scheme):
        assert scheme.next_child_code("1100", ["9999"], ["1100"]).code == "1101"

    def test_gap_reused_when_block_top_reached(self, scheme):
        taken = ["1000", "1099", "1001"]
        assert scheme.next_child_code("1000", ["1099"], taken).code == "1002"

    def test_parent_at_block_top_uses_lower_gap(self, scheme):
        suggestion = scheme.next_child_code("1099", [], ["1099"])
        assert suggestion.code == "1000"
        assert suggestion.pattern == "10xx"

    def test_gap_below_parent_reused(self, scheme):
        taken = ["1000", "1050"] + [str(code) for code in range(1051, 1100)]
        assert scheme.next_child_code("1050", taken[2:], taken).code == "1001"

    def test_block_exhausted(self, scheme):
        taken = [str(code) for code in range(1000, 1100)]
        with pytest.raises(CodeSpaceExhaustedError) as exc_info:
            scheme.next_child_code("1000", taken[1:], taken)
        assert exc_info.value.pattern == "10xx"

    def test_keeps_parent_length(self, scheme):
        assert scheme.next_child_code("110000", [], ["110000"]).code == "110001"

    def test_non_numeric_parent(self, scheme):
        with pytest.raises(InvalidAccountCodeError):
            scheme.next_child_code("CASH", [], [])


class TestConfiguration:

    def test_every_type_needs_a_band(self):
        bands = dict(DEFAULT_TYPE_BANDS)
        del bands[AccountType.EXPENSE]
        with pytest.raises(ValueError, match="expense"):
            CodeScheme(type_bands=bands)

    def test_invalid_band(self):
        with pytest.raises(ValueError):
            CodeBand(2000, 1000)

    def test_band_membership(self):
        band = CodeBand(1000, 1999)
        assert 1000 in band
        assert 1999 in band
        assert 2000 not in band
