"""
Account classification rules.

Static, side-effect-free lookups: which sub-types a type admits, which
side (debit or credit) increases a type, and which status transitions the
account lifecycle permits.

Architecture position:
    Kernel > Domain.  Used by the HierarchyManager to validate sub-types
    and status changes, and by the BalanceAggregator to orient net
    balances.
"""

from enum import Enum
from typing import Any, TypeVar

from coa_kernel.exceptions import AccountValidationError

E = TypeVar("E", bound=Enum)


class AccountType(str, Enum):
    """Types of accounts in the chart of accounts."""

    ASSET = "asset"
    LIABILITY = "liability"
    EQUITY = "equity"
    REVENUE = "revenue"
    EXPENSE = "expense"


class AccountSubType(str, Enum):
    """Sub-classification; each value belongs to exactly one AccountType."""

    # Asset
    CURRENT_ASSET = "current_asset"
    NON_CURRENT_ASSET = "non_current_asset"
    FIXED_ASSET = "fixed_asset"
    INTANGIBLE_ASSET = "intangible_asset"
    # Liability
    CURRENT_LIABILITY = "current_liability"
    NON_CURRENT_LIABILITY = "non_current_liability"
    LONG_TERM_LIABILITY = "long_term_liability"
    # Equity
    OWNERS_EQUITY = "owners_equity"
    RETAINED_EARNINGS = "retained_earnings"
    CAPITAL = "capital"
    # Revenue
    OPERATING_REVENUE = "operating_revenue"
    NON_OPERATING_REVENUE = "non_operating_revenue"
    OTHER_INCOME = "other_income"
    # Expense
    COST_OF_GOODS_SOLD = "cost_of_goods_sold"
    OPERATING_EXPENSE = "operating_expense"
    ADMINISTRATIVE_EXPENSE = "administrative_expense"
    SELLING_EXPENSE = "selling_expense"
    NON_OPERATING_EXPENSE = "non_operating_expense"


class AccountStatus(str, Enum):
    """Lifecycle marker. Archived is a soft delete."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    ARCHIVED = "archived"


class NormalBalance(str, Enum):
    """Normal balance side for an account."""

    DEBIT = "debit"
    CREDIT = "credit"


VALID_SUB_TYPES: dict[AccountType, frozenset[AccountSubType]] = {
    AccountType.ASSET: frozenset({
        AccountSubType.CURRENT_ASSET,
        AccountSubType.NON_CURRENT_ASSET,
        AccountSubType.FIXED_ASSET,
        AccountSubType.INTANGIBLE_ASSET,
    }),
    AccountType.LIABILITY: frozenset({
        AccountSubType.CURRENT_LIABILITY,
        AccountSubType.NON_CURRENT_LIABILITY,
        AccountSubType.LONG_TERM_LIABILITY,
    }),
    AccountType.EQUITY: frozenset({
        AccountSubType.OWNERS_EQUITY,
        AccountSubType.RETAINED_EARNINGS,
        AccountSubType.CAPITAL,
    }),
    AccountType.REVENUE: frozenset({
        AccountSubType.OPERATING_REVENUE,
        AccountSubType.NON_OPERATING_REVENUE,
        AccountSubType.OTHER_INCOME,
    }),
    AccountType.EXPENSE: frozenset({
        AccountSubType.COST_OF_GOODS_SOLD,
        AccountSubType.OPERATING_EXPENSE,
        AccountSubType.ADMINISTRATIVE_EXPENSE,
        AccountSubType.SELLING_EXPENSE,
        AccountSubType.NON_OPERATING_EXPENSE,
    }),
}

NORMAL_BALANCE: dict[AccountType, NormalBalance] = {
    AccountType.ASSET: NormalBalance.DEBIT,
    AccountType.EXPENSE: NormalBalance.DEBIT,
    AccountType.LIABILITY: NormalBalance.CREDIT,
    AccountType.EQUITY: NormalBalance.CREDIT,
    AccountType.REVENUE: NormalBalance.CREDIT,
}

# Archived -> anything is only reachable with an administrative override.
_STATUS_TRANSITIONS: dict[AccountStatus, frozenset[AccountStatus]] = {
    AccountStatus.ACTIVE: frozenset({AccountStatus.INACTIVE, AccountStatus.ARCHIVED}),
    AccountStatus.INACTIVE: frozenset({AccountStatus.ACTIVE, AccountStatus.ARCHIVED}),
    AccountStatus.ARCHIVED: frozenset(),
}


def coerce_enum(enum_cls: type[E], value: Any, field: str) -> E:
    """
    Convert caller input to ``enum_cls``.

    Raises:
        AccountValidationError: ``value`` is not a member or member value;
            ``field`` names the offending input.
    """
    try:
        return enum_cls(value)
    except ValueError:
        raise AccountValidationError(
            field, f"unknown {field} '{value}'", invariant="field"
        ) from None


def valid_sub_types(account_type: AccountType) -> frozenset[AccountSubType]:
    return VALID_SUB_TYPES[AccountType(account_type)]


def is_valid_sub_type(account_type: AccountType, sub_type: AccountSubType) -> bool:
    try:
        return AccountSubType(sub_type) in valid_sub_types(account_type)
    except ValueError:
        return False


def type_of_sub_type(sub_type: AccountSubType) -> AccountType:
    """Return the single AccountType that admits ``sub_type``."""
    sub_type = AccountSubType(sub_type)
    for account_type, allowed in VALID_SUB_TYPES.items():
        if sub_type in allowed:
            return account_type
    raise ValueError(f"Unclassified sub-type: {sub_type}")


def normal_balance_sign(account_type: AccountType) -> NormalBalance:
    return NORMAL_BALANCE[AccountType(account_type)]


def is_debit_normal(account_type: AccountType) -> bool:
    return normal_balance_sign(account_type) == NormalBalance.DEBIT


def can_transition(
    current: AccountStatus,
    target: AccountStatus,
    administrative_override: bool = False,
) -> bool:
    """
    Whether ``current -> target`` is a permitted status change.

    A same-status transition is always permitted (no-op).  Un-archiving is
    only permitted with ``administrative_override``.
    """
    current, target = AccountStatus(current), AccountStatus(target)
    if current == target:
        return True
    if current == AccountStatus.ARCHIVED:
        return administrative_override
    return target in _STATUS_TRANSITIONS[current]
