"""
DTOs -- Pure domain data transfer objects.

Responsibility:
    Defines the immutable data structures that cross service boundaries:
    AccountData (the account as callers see it), NewAccount and
    AccountPatch (inputs), AccountFilter/AccountQuery/Page (listing),
    AccountNode (tree view), AccountBalance and ActivityTotals (balances),
    CodeSuggestion (code generation) and ChartSeedEntry (templates).

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Services accept and return these DTOs, never ORM entities.  The
    stores convert rows to AccountData at their boundary.

Invariants enforced:
    - AccountData is frozen; a change is a new value returned by a service.
    - AccountPatch distinguishes "not supplied" (UNSET) from "set to None",
      so clearing a parent or a description is expressible.
    - AccountQuery bounds pagination (1 <= limit <= MAX_PAGE_SIZE).

Failure modes:
    - AccountValidationError on an out-of-range AccountQuery.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field, fields
from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from coa_kernel.domain.classification import (
    AccountStatus,
    AccountSubType,
    AccountType,
    NormalBalance,
)
from coa_kernel.exceptions import AccountValidationError

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 100

SORTABLE_FIELDS: frozenset[str] = frozenset({
    "code",
    "name",
    "account_type",
    "level",
    "created_at",
})


class _Unset:
    """Sentinel type for patch fields that were not supplied."""

    _instance: _Unset | None = None

    def __new__(cls) -> _Unset:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()


@dataclass(frozen=True)
class AccountData:
    """
    Immutable view of one chart-of-accounts entry.

    ``opening_balance`` is expressed in the account's own sign convention
    (positive means "more of what this account type normally holds").
    """

    id: UUID
    company_id: UUID
    code: str
    name: str
    account_type: AccountType
    sub_type: AccountSubType
    parent_account_id: UUID | None
    level: int
    is_control_account: bool
    allow_direct_transactions: bool
    currency: str
    opening_balance: Decimal
    opening_balance_date: date | None
    status: AccountStatus
    description: str | None
    created_at: datetime
    updated_at: datetime

    @property
    def is_root(self) -> bool:
        return self.parent_account_id is None

    @property
    def is_archived(self) -> bool:
        return self.status == AccountStatus.ARCHIVED

    @property
    def is_active(self) -> bool:
        return self.status == AccountStatus.ACTIVE

    @property
    def accepts_direct_postings(self) -> bool:
        """Control accounts take direct postings only when explicitly allowed."""
        return self.allow_direct_transactions or not self.is_control_account


@dataclass(frozen=True)
class NewAccount:
    """Input for HierarchyManager.create_account.

    ``code=None`` asks the code generator for the next free code;
    ``currency=None`` falls back to the configured default currency.
    """

    company_id: UUID
    name: str
    account_type: AccountType
    sub_type: AccountSubType
    code: str | None = None
    parent_account_id: UUID | None = None
    is_control_account: bool = False
    allow_direct_transactions: bool = True
    currency: str | None = None
    opening_balance: Decimal = Decimal("0")
    opening_balance_date: date | None = None
    description: str | None = None
    status: AccountStatus = AccountStatus.ACTIVE


@dataclass(frozen=True)
class AccountPatch:
    """
    Partial update for HierarchyManager.update_account.

    Every field defaults to UNSET; only supplied fields are applied.
    ``account_type`` is accepted so that an attempted type change can be
    rejected with a precise error instead of being silently ignored.
    """

    name: Any = UNSET
    description: Any = UNSET
    code: Any = UNSET
    account_type: Any = UNSET
    sub_type: Any = UNSET
    parent_account_id: Any = UNSET
    is_control_account: Any = UNSET
    allow_direct_transactions: Any = UNSET
    currency: Any = UNSET
    opening_balance: Any = UNSET
    opening_balance_date: Any = UNSET
    status: Any = UNSET

    def changed_fields(self) -> dict[str, Any]:
        """Supplied fields only, in declaration order."""
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if getattr(self, f.name) is not UNSET
        }

    def is_empty(self) -> bool:
        return not self.changed_fields()


@dataclass(frozen=True)
class AccountFilter:
    """Conjunctive filter over a tenant's accounts. ``None`` means "any"."""

    account_type: AccountType | None = None
    sub_type: AccountSubType | None = None
    status: AccountStatus | None = None
    parent_account_id: UUID | None = None
    roots_only: bool = False
    code: str | None = None
    exclude_archived: bool = False
    search: str | None = None

    def matches(self, account: AccountData) -> bool:
        if self.account_type is not None and account.account_type != self.account_type:
            return False
        if self.sub_type is not None and account.sub_type != self.sub_type:
            return False
        if self.status is not None and account.status != self.status:
            return False
        if self.exclude_archived and account.is_archived:
            return False
        if (
            self.parent_account_id is not None
            and account.parent_account_id != self.parent_account_id
        ):
            return False
        if self.roots_only and account.parent_account_id is not None:
            return False
        if self.code is not None and account.code != self.code:
            return False
        if self.search:
            needle = self.search.strip().lower()
            if needle and needle not in account.name.lower() and needle not in account.code.lower():
                return False
        return True


@dataclass(frozen=True)
class AccountQuery:
    """Filtered, sorted, offset-paginated listing request."""

    company_id: UUID
    filter: AccountFilter = field(default_factory=AccountFilter)
    offset: int = 0
    limit: int = DEFAULT_PAGE_SIZE
    sort_by: str = "code"
    descending: bool = False

    def __post_init__(self) -> None:
        if self.offset < 0:
            raise AccountValidationError("offset", "must be >= 0", invariant="pagination")
        if not 1 <= self.limit <= MAX_PAGE_SIZE:
            raise AccountValidationError(
                "limit", f"must be between 1 and {MAX_PAGE_SIZE}", invariant="pagination",
            )
        if self.sort_by not in SORTABLE_FIELDS:
            raise AccountValidationError(
                "sort_by",
                f"must be one of {', '.join(sorted(SORTABLE_FIELDS))}",
                invariant="pagination",
            )


@dataclass(frozen=True)
class Page:
    """One page of a listing plus the unpaginated total."""

    items: tuple[AccountData, ...]
    total: int
    offset: int
    limit: int

    @property
    def has_more(self) -> bool:
        return self.offset + len(self.items) < self.total


@dataclass(frozen=True)
class ActivityTotals:
    """Sum of posted debit and credit legs against one account."""

    debit: Decimal
    credit: Decimal


@dataclass(frozen=True)
class AccountBalance:
    """
    As-of-date balance of one account.

    ``net_balance`` is in the account's own sign convention: for a
    debit-normal account it is debit_total - credit_total, otherwise
    credit_total - debit_total.
    """

    account_id: UUID
    as_of_date: date
    debit_total: Decimal
    credit_total: Decimal
    net_balance: Decimal
    currency: str
    normal_balance: NormalBalance


@dataclass
class AccountNode:
    """Transient tree-view node built on demand by HierarchyManager.build_tree."""

    account: AccountData
    children: list[AccountNode] = field(default_factory=list)
    balance: AccountBalance | None = None

    def walk(self) -> Iterator[AccountNode]:
        """Pre-order traversal of this subtree."""
        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))


@dataclass(frozen=True)
class CodeSuggestion:
    """A generated code plus the band or block it was drawn from."""

    code: str
    pattern: str
    band_start: int
    band_end: int
    parent_code: str | None = None


@dataclass(frozen=True)
class AccountSummaryRow:
    account_type: AccountType
    sub_type: AccountSubType
    status: AccountStatus
    count: int


@dataclass(frozen=True)
class ChartSeedEntry:
    """One account in a default chart template. Parents reference by code."""

    code: str
    name: str
    account_type: AccountType
    sub_type: AccountSubType
    parent_code: str | None = None
    is_control_account: bool = False
    allow_direct_transactions: bool = True
    description: str | None = None
