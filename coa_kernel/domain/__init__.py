"""
Pure domain layer.

This module contains pure data transfer objects and domain logic
with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- I/O

Time enters only through the injected Clock.  All DTOs except the
transient AccountNode are immutable.
"""

from coa_kernel.domain.cancellation import CancellationToken
from coa_kernel.domain.classification import (
    NORMAL_BALANCE,
    VALID_SUB_TYPES,
    AccountStatus,
    AccountSubType,
    AccountType,
    NormalBalance,
    can_transition,
    is_debit_normal,
    is_valid_sub_type,
    normal_balance_sign,
    type_of_sub_type,
    valid_sub_types,
)
from coa_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from coa_kernel.domain.code_scheme import DEFAULT_TYPE_BANDS, CodeBand, CodeScheme
from coa_kernel.domain.decimal_math import DecimalMath
from coa_kernel.domain.dtos import (
    MAX_PAGE_SIZE,
    UNSET,
    AccountBalance,
    AccountData,
    AccountFilter,
    AccountNode,
    AccountPatch,
    AccountQuery,
    AccountSummaryRow,
    ActivityTotals,
    ChartSeedEntry,
    CodeSuggestion,
    NewAccount,
    Page,
)

__all__ = [
    # Classification
    "AccountType",
    "AccountSubType",
    "AccountStatus",
    "NormalBalance",
    "VALID_SUB_TYPES",
    "NORMAL_BALANCE",
    "valid_sub_types",
    "is_valid_sub_type",
    "type_of_sub_type",
    "normal_balance_sign",
    "is_debit_normal",
    "can_transition",
    # Arithmetic
    "DecimalMath",
    # Codes
    "CodeBand",
    "CodeScheme",
    "DEFAULT_TYPE_BANDS",
    # DTOs
    "UNSET",
    "MAX_PAGE_SIZE",
    "AccountData",
    "NewAccount",
    "AccountPatch",
    "AccountFilter",
    "AccountQuery",
    "Page",
    "AccountNode",
    "AccountBalance",
    "ActivityTotals",
    "CodeSuggestion",
    "AccountSummaryRow",
    "ChartSeedEntry",
    # Time and cancellation
    "Clock",
    "SystemClock",
    "DeterministicClock",
    "CancellationToken",
]
