"""
InMemoryLedgerStore -- dict-backed, thread-safe Ledger Store.

Every public method runs under one re-entrant lock.  ``transaction()``
holds that lock for its whole body and restores a snapshot if the body
raises, so a transaction is atomic and isolated from other threads.
Uniqueness of (company_id, code) is checked under the same lock, which is
what makes concurrent creations safe.
"""

import copy
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID

from coa_kernel.domain.decimal_math import DecimalMath
from coa_kernel.domain.dtos import AccountData, AccountFilter, ActivityTotals
from coa_kernel.exceptions import AccountNotFoundError, DuplicateCodeError
from coa_kernel.logging_config import get_logger
from coa_kernel.store.base import LedgerStore

logger = get_logger("store.memory")


@dataclass(frozen=True)
class _Leg:
    account_id: UUID
    entry_date: date
    debit: Decimal
    credit: Decimal


class InMemoryLedgerStore(LedgerStore):
    """Ledger Store held entirely in process memory."""

    def __init__(self, math: DecimalMath | None = None):
        self._math = math or DecimalMath()
        self._lock = threading.RLock()
        self._accounts: dict[UUID, AccountData] = {}
        self._codes: dict[tuple[UUID, str], UUID] = {}
        self._legs: list[_Leg] = []

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_account(self, account_id: UUID) -> AccountData | None:
        with self._lock:
            return self._accounts.get(account_id)

    def fetch_accounts(
        self,
        company_id: UUID,
        account_filter: AccountFilter | None = None,
    ) -> list[AccountData]:
        account_filter = account_filter or AccountFilter()
        with self._lock:
            rows = [
                account for account in self._accounts.values()
                if account.company_id == company_id and account_filter.matches(account)
            ]
        return sorted(rows, key=lambda account: account.code)

    def fetch_codes(self, company_id: UUID) -> set[str]:
        with self._lock:
            return {code for (company, code) in self._codes if company == company_id}

    def fetch_activity_totals(
        self,
        account_id: UUID,
        as_of_date: date,
        since: date | None = None,
    ) -> ActivityTotals:
        with self._lock:
            legs = [
                leg for leg in self._legs
                if leg.account_id == account_id
                and leg.entry_date <= as_of_date
                and (since is None or leg.entry_date >= since)
            ]
        return ActivityTotals(
            debit=self._math.sum(leg.debit for leg in legs),
            credit=self._math.sum(leg.credit for leg in legs),
        )

    def has_activity(self, account_id: UUID) -> bool:
        with self._lock:
            return any(leg.account_id == account_id for leg in self._legs)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def insert_account(self, account: AccountData) -> AccountData:
        key = (account.company_id, account.code)
        with self._lock:
            if key in self._codes:
                raise DuplicateCodeError(str(account.company_id), account.code)
            self._accounts[account.id] = account
            self._codes[key] = account.id
        return account

    def update_account(self, account_id: UUID, changes: dict[str, Any]) -> AccountData:
        with self._lock:
            current = self._accounts.get(account_id)
            if current is None:
                raise AccountNotFoundError(str(account_id))
            updated = replace(current, **changes)
            if updated.code != current.code:
                new_key = (updated.company_id, updated.code)
                if new_key in self._codes:
                    raise DuplicateCodeError(str(updated.company_id), updated.code)
                del self._codes[(current.company_id, current.code)]
                self._codes[new_key] = account_id
            self._accounts[account_id] = updated
        return updated

    def delete_account(self, account_id: UUID) -> None:
        with self._lock:
            account = self._accounts.pop(account_id, None)
            if account is None:
                raise AccountNotFoundError(str(account_id))
            del self._codes[(account.company_id, account.code)]

    def record_activity(
        self,
        account_id: UUID,
        entry_date: date,
        debit: Decimal = Decimal("0"),
        credit: Decimal = Decimal("0"),
    ) -> None:
        leg = _Leg(
            account_id=account_id,
            entry_date=entry_date,
            debit=self._math.to_decimal(debit),
            credit=self._math.to_decimal(credit),
        )
        with self._lock:
            if account_id not in self._accounts:
                raise AccountNotFoundError(str(account_id))
            self._legs.append(leg)

    @contextmanager
    def transaction(self) -> Iterator[None]:
        with self._lock:
            snapshot = (
                copy.copy(self._accounts),
                copy.copy(self._codes),
                list(self._legs),
            )
            try:
                yield
            except BaseException:
                self._accounts, self._codes, self._legs = snapshot
                logger.debug("memory_transaction_rolled_back")
                raise
