"""
Module: coa_kernel.store.sqlalchemy_store
Responsibility: Ledger Store over SQLAlchemy ORM sessions.
Architecture position: Kernel > Store.  May import from db/, models/ and
    domain/.  This is the only place ORM rows are converted to DTOs.

Invariants enforced:
    - Session ownership: the store flushes but never commits.  The caller
      owns the outer transaction (see db.engine.session_scope).
    - Every insert/update runs in a SAVEPOINT, so a unique violation rolls
      back only that statement and surfaces as DuplicateCodeError while the
      caller's session stays usable for a retry.
    - transaction() is a SAVEPOINT as well: nested calls nest.
    - Activity totals are summed in Python with DecimalMath, not in SQL,
      so the result is exact on every backend.

Failure modes:
    - DuplicateCodeError on a (company_id, code) unique violation.
    - AccountNotFoundError when updating or deleting a missing row.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import exists, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from coa_kernel.domain.classification import AccountStatus, AccountSubType, AccountType
from coa_kernel.domain.decimal_math import DecimalMath
from coa_kernel.domain.dtos import AccountData, AccountFilter, ActivityTotals
from coa_kernel.exceptions import AccountNotFoundError, DuplicateCodeError
from coa_kernel.logging_config import get_logger
from coa_kernel.models.account import Account
from coa_kernel.models.activity import LedgerActivity
from coa_kernel.store.base import LedgerStore

logger = get_logger("store.sqlalchemy")

_ENUM_COLUMNS = {"account_type", "sub_type", "status"}


class SqlAlchemyLedgerStore(LedgerStore):
    """
    Ledger Store backed by the ``accounts`` and ``ledger_activity`` tables.

    Args:
        session: Caller-owned SQLAlchemy session.
        math: DecimalMath used to sum activity legs.
    """

    def __init__(self, session: Session, math: DecimalMath | None = None):
        self._session = session
        self._math = math or DecimalMath()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_account(self, account_id: UUID) -> AccountData | None:
        row = self._session.get(Account, account_id, populate_existing=True)
        return self._to_dto(row) if row is not None else None

    def fetch_accounts(
        self,
        company_id: UUID,
        account_filter: AccountFilter | None = None,
    ) -> list[AccountData]:
        f = account_filter or AccountFilter()
        stmt = select(Account).where(Account.company_id == company_id)

        if f.account_type is not None:
            stmt = stmt.where(Account.account_type == AccountType(f.account_type).value)
        if f.sub_type is not None:
            stmt = stmt.where(Account.sub_type == AccountSubType(f.sub_type).value)
        if f.status is not None:
            stmt = stmt.where(Account.status == AccountStatus(f.status).value)
        if f.exclude_archived:
            stmt = stmt.where(Account.status != AccountStatus.ARCHIVED.value)
        if f.parent_account_id is not None:
            stmt = stmt.where(Account.parent_account_id == f.parent_account_id)
        if f.roots_only:
            stmt = stmt.where(Account.parent_account_id.is_(None))
        if f.code is not None:
            stmt = stmt.where(Account.code == f.code)
        if f.search and f.search.strip():
            # Literal substring: '%' and '_' in user text are not wildcards
            needle = f.search.strip()
            stmt = stmt.where(
                or_(
                    Account.name.icontains(needle, autoescape=True),
                    Account.code.icontains(needle, autoescape=True),
                )
            )

        stmt = stmt.order_by(Account.code).execution_options(populate_existing=True)
        return [self._to_dto(row) for row in self._session.scalars(stmt)]

    def fetch_codes(self, company_id: UUID) -> set[str]:
        stmt = select(Account.code).where(Account.company_id == company_id)
        return set(self._session.scalars(stmt))

    def fetch_activity_totals(
        self,
        account_id: UUID,
        as_of_date: date,
        since: date | None = None,
    ) -> ActivityTotals:
        stmt = select(LedgerActivity.debit_amount, LedgerActivity.credit_amount).where(
            LedgerActivity.account_id == account_id,
            LedgerActivity.entry_date <= as_of_date,
        )
        if since is not None:
            stmt = stmt.where(LedgerActivity.entry_date >= since)

        rows = self._session.execute(stmt).all()
        return ActivityTotals(
            debit=self._math.sum(row.debit_amount for row in rows),
            credit=self._math.sum(row.credit_amount for row in rows),
        )

    def has_activity(self, account_id: UUID) -> bool:
        stmt = select(exists().where(LedgerActivity.account_id == account_id))
        return bool(self._session.scalar(stmt))

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def insert_account(self, account: AccountData) -> AccountData:
        row = Account(
            id=account.id,
            company_id=account.company_id,
            code=account.code,
            name=account.name,
            account_type=AccountType(account.account_type).value,
            sub_type=AccountSubType(account.sub_type).value,
            parent_account_id=account.parent_account_id,
            level=account.level,
            is_control_account=account.is_control_account,
            allow_direct_transactions=account.allow_direct_transactions,
            currency=account.currency,
            opening_balance=account.opening_balance,
            opening_balance_date=account.opening_balance_date,
            status=AccountStatus(account.status).value,
            description=account.description,
            created_at=account.created_at,
            updated_at=account.updated_at,
        )

        savepoint = self._session.begin_nested()
        try:
            self._session.add(row)
            self._session.flush()
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            logger.debug(
                "account_insert_unique_violation",
                extra={"company_id": account.company_id, "code": account.code},
            )
            raise DuplicateCodeError(str(account.company_id), account.code) from None

        return self._to_dto(row)

    def update_account(self, account_id: UUID, changes: dict[str, Any]) -> AccountData:
        row = self._session.get(Account, account_id)
        if row is None:
            raise AccountNotFoundError(str(account_id))

        savepoint = self._session.begin_nested()
        try:
            for column, value in changes.items():
                if column in _ENUM_COLUMNS and value is not None:
                    value = value.value if hasattr(value, "value") else value
                setattr(row, column, value)
            self._session.flush()
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            self._session.refresh(row)
            raise DuplicateCodeError(str(row.company_id), str(changes.get("code"))) from None

        return self._to_dto(row)

    def delete_account(self, account_id: UUID) -> None:
        row = self._session.get(Account, account_id)
        if row is None:
            raise AccountNotFoundError(str(account_id))
        self._session.delete(row)
        self._session.flush()

    def record_activity(
        self,
        account_id: UUID,
        entry_date: date,
        debit: Decimal = Decimal("0"),
        credit: Decimal = Decimal("0"),
    ) -> None:
        if self._session.get(Account, account_id) is None:
            raise AccountNotFoundError(str(account_id))
        self._session.add(
            LedgerActivity(
                account_id=account_id,
                entry_date=entry_date,
                debit_amount=self._math.to_decimal(debit),
                credit_amount=self._math.to_decimal(credit),
            )
        )
        self._session.flush()

    @contextmanager
    def transaction(self) -> Iterator[None]:
        savepoint = self._session.begin_nested()
        try:
            yield
        except BaseException:
            if savepoint.is_active:
                savepoint.rollback()
            raise
        else:
            savepoint.commit()

    # ------------------------------------------------------------------
    # Conversion
    # ------------------------------------------------------------------

    @staticmethod
    def _to_dto(row: Account) -> AccountData:
        return AccountData(
            id=row.id,
            company_id=row.company_id,
            code=row.code,
            name=row.name,
            account_type=AccountType(row.account_type),
            sub_type=AccountSubType(row.sub_type),
            parent_account_id=row.parent_account_id,
            level=row.level,
            is_control_account=row.is_control_account,
            allow_direct_transactions=row.allow_direct_transactions,
            currency=row.currency,
            opening_balance=row.opening_balance,
            opening_balance_date=row.opening_balance_date,
            status=AccountStatus(row.status),
            description=row.description,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )
