"""
Module: coa_kernel.store.base
Responsibility: The Ledger Store contract -- everything the services need
    from persistence, and nothing more.
Architecture position: Kernel > Store.  May import from domain/ only.
    Services depend on this ABC, never on a concrete store.

Invariants enforced (by every implementation):
    - insert_account enforces (company_id, code) uniqueness atomically and
      raises DuplicateCodeError on conflict.  No other component may be
      trusted to guarantee uniqueness under concurrency.
    - update_account applies only the supplied columns.
    - transaction() makes every write inside it atomic: on exception,
      all of them are undone and the exception propagates.  Nested use is
      allowed.
    - Reads return AccountData DTOs, never ORM rows.

Failure modes:
    - DuplicateCodeError from insert_account / update_account.
    - AccountNotFoundError from update_account / delete_account on a
      missing id.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID

from coa_kernel.domain.dtos import AccountData, AccountFilter, ActivityTotals


class LedgerStore(ABC):
    """
    Abstract persistence boundary for accounts and their posted activity.

    Non-goals:
        - No business validation: the HierarchyManager validates every
          invariant before calling a write method.
        - No posting engine: record_activity appends a leg verbatim.
    """

    @abstractmethod
    def get_account(self, account_id: UUID) -> AccountData | None:
        """Return the account or None."""

    @abstractmethod
    def fetch_accounts(
        self,
        company_id: UUID,
        account_filter: AccountFilter | None = None,
    ) -> list[AccountData]:
        """All accounts of a company matching the filter, ordered by code."""

    @abstractmethod
    def insert_account(self, account: AccountData) -> AccountData:
        """
        Persist a new account.

        Raises:
            DuplicateCodeError: (company_id, code) is already taken.
        """

    @abstractmethod
    def update_account(self, account_id: UUID, changes: dict[str, Any]) -> AccountData:
        """
        Apply column changes and return the updated account.

        Raises:
            AccountNotFoundError: No such account.
            DuplicateCodeError: A code change collides.
        """

    @abstractmethod
    def delete_account(self, account_id: UUID) -> None:
        """Hard-delete an account row."""

    @abstractmethod
    def fetch_activity_totals(
        self,
        account_id: UUID,
        as_of_date: date,
        since: date | None = None,
    ) -> ActivityTotals:
        """
        Sum posted legs dated on or before ``as_of_date``.

        When ``since`` is given, legs dated before it are excluded.
        """

    @abstractmethod
    def has_activity(self, account_id: UUID) -> bool:
        """Whether any leg was ever posted against the account."""

    @abstractmethod
    def transaction(self) -> AbstractContextManager[None]:
        """Atomic scope for multi-row writes."""

    @abstractmethod
    def record_activity(
        self,
        account_id: UUID,
        entry_date: date,
        debit: Decimal = Decimal("0"),
        credit: Decimal = Decimal("0"),
    ) -> None:
        """Append one posted leg (seeding and tests)."""

    def fetch_codes(self, company_id: UUID) -> set[str]:
        """Every code used in the company, archived accounts included."""
        return {account.code for account in self.fetch_accounts(company_id)}

    def get_account_by_code(self, company_id: UUID, code: str) -> AccountData | None:
        matches = self.fetch_accounts(company_id, AccountFilter(code=code))
        return matches[0] if matches else None

    def fetch_children(self, account_id: UUID) -> list[AccountData]:
        """Direct children of an account, ordered by code."""
        parent = self.get_account(account_id)
        if parent is None:
            return []
        return self.fetch_accounts(
            parent.company_id, AccountFilter(parent_account_id=account_id)
        )
