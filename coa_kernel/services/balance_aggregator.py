"""
BalanceAggregator -- as-of-date balances rolled up through the account tree.

Responsibility:
    Computes ``{debit_total, credit_total, net_balance}`` for an account as
    of a date.  Leaf accounts (and accounts that take direct postings)
    contribute their opening balance plus posted activity; control
    accounts add the aggregated balances of their children.

Architecture position:
    Kernel > Services -- read-only.  Consumes the Ledger Store; called by
    the API facade and by HierarchyManager.build_tree(include_balance=True).

Invariants enforced:
    - Pure read: no store writes, no shared mutable state between calls.
      Repeated calls with the same as-of date and unchanged activity return
      identical results.
    - Exact arithmetic: all sums go through DecimalMath; rounding to the
      configured scale happens once, at the public boundary.
    - net_balance is in the account's own normal-balance convention.  A
      child whose normal side differs has its net negated before summing.
    - The opening balance is only counted when its date is on or before
      the as-of date; activity dated before the opening-balance date is
      excluded because it predates the baseline.
    - Recursion is bounded by ``max_depth`` and guarded against cycles.

Failure modes:
    - AccountNotFoundError: unknown account (or another tenant's account).
    - TreeTooDeepError: the subtree is deeper than ``max_depth`` levels.
    - CycleDetectedError: corrupted parent links form a loop.
    - AggregationCancelledError: the caller's token fired.  A failure in
      any subtree aborts the whole aggregation; no partial totals escape.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from uuid import UUID

from coa_kernel.domain.cancellation import CancellationToken
from coa_kernel.domain.classification import is_debit_normal, normal_balance_sign
from coa_kernel.domain.clock import Clock
from coa_kernel.domain.decimal_math import DecimalMath
from coa_kernel.domain.dtos import AccountBalance, AccountData
from coa_kernel.exceptions import (
    AccountNotFoundError,
    AggregationCancelledError,
    CycleDetectedError,
    TreeTooDeepError,
)
from coa_kernel.logging_config import get_logger
from coa_kernel.services.base import BaseService
from coa_kernel.store.base import LedgerStore

logger = get_logger("services.balance_aggregator")

DEFAULT_MAX_DEPTH = 32


@dataclass(frozen=True)
class _Totals:
    debit: Decimal
    credit: Decimal
    net: Decimal


@dataclass
class _Run:
    """State of one aggregation call. Never shared between calls."""

    as_of_date: date
    accounts: dict[UUID, AccountData]
    children: dict[UUID, list[AccountData]]
    token: CancellationToken | None
    memo: dict[UUID, _Totals] = field(default_factory=dict)
    path: set[UUID] = field(default_factory=set)


class BalanceAggregator(BaseService):
    """
    As-of-date balance engine.

    Args:
        store: Ledger Store supplying accounts and activity totals.
        math: DecimalMath that owns scale and rounding.
        clock: Supplies the default as-of date (today).
        max_depth: Maximum number of levels walked below the requested
            account, the account itself included.
    """

    def __init__(
        self,
        store: LedgerStore,
        math: DecimalMath | None = None,
        clock: Clock | None = None,
        max_depth: int = DEFAULT_MAX_DEPTH,
    ):
        super().__init__(store, clock)
        self.math = math or DecimalMath()
        self.max_depth = max_depth

    def get_balance(
        self,
        account_id: UUID,
        as_of_date: date | None = None,
        *,
        company_id: UUID | None = None,
        token: CancellationToken | None = None,
    ) -> AccountBalance:
        """
        Balance of one account as of ``as_of_date`` (default: today).

        ``company_id``, when given, scopes the lookup to that tenant.
        """
        account = self.store.get_account(account_id)
        if account is None or (company_id is not None and account.company_id != company_id):
            raise AccountNotFoundError(str(account_id))

        run = self._start(account.company_id, as_of_date, token)
        totals = self._aggregate_logged(run, account)
        balance = self._to_balance(account, totals, run.as_of_date)

        logger.info(
            "balance_computed",
            extra={
                "account_id": account.id,
                "company_id": account.company_id,
                "as_of_date": run.as_of_date,
                "net_balance": balance.net_balance,
                "fetches": len(run.memo),
            },
        )
        return balance

    def balances_for(
        self,
        company_id: UUID,
        as_of_date: date | None = None,
        *,
        account_ids: list[UUID] | None = None,
        token: CancellationToken | None = None,
    ) -> dict[UUID, AccountBalance]:
        """
        Balances for many accounts of one company in a single pass.

        Subtree totals are shared between the requested accounts, so each
        account's activity is fetched at most once.
        """
        run = self._start(company_id, as_of_date, token)
        targets = (
            [run.accounts[i] for i in account_ids if i in run.accounts]
            if account_ids is not None
            else list(run.accounts.values())
        )
        if account_ids is not None and len(targets) != len(account_ids):
            missing = next(i for i in account_ids if i not in run.accounts)
            raise AccountNotFoundError(str(missing))

        result: dict[UUID, AccountBalance] = {}
        for account in targets:
            totals = self._aggregate_logged(run, account)
            result[account.id] = self._to_balance(account, totals, run.as_of_date)

        logger.info(
            "balances_computed",
            extra={
                "company_id": company_id,
                "as_of_date": run.as_of_date,
                "account_count": len(result),
            },
        )
        return result

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _start(
        self,
        company_id: UUID,
        as_of_date: date | None,
        token: CancellationToken | None,
    ) -> _Run:
        accounts = {a.id: a for a in self.store.fetch_accounts(company_id)}
        children: dict[UUID, list[AccountData]] = defaultdict(list)
        for account in accounts.values():
            if account.parent_account_id is not None:
                children[account.parent_account_id].append(account)
        return _Run(
            as_of_date=as_of_date or self.clock.today(),
            accounts=accounts,
            children=children,
            token=token,
        )

    def _aggregate_logged(self, run: _Run, account: AccountData) -> _Totals:
        try:
            return self._aggregate(run, account, depth=0)
        except AggregationCancelledError:
            logger.warning(
                "balance_aggregation_cancelled",
                extra={"account_id": account.id, "completed": len(run.memo)},
            )
            raise

    def _aggregate(self, run: _Run, account: AccountData, depth: int) -> _Totals:
        cached = run.memo.get(account.id)
        if cached is not None:
            return cached
        if account.id in run.path:
            raise CycleDetectedError(str(account.id), str(account.parent_account_id))
        if depth >= self.max_depth:
            raise TreeTooDeepError(str(account.id), self.max_depth)

        run.path.add(account.id)
        math = self.math
        debit_normal = is_debit_normal(account.account_type)
        children = run.children.get(account.id, [])

        debit = math.zero()
        credit = math.zero()
        net = math.zero()

        if not children or account.accepts_direct_postings:
            own_debit, own_credit = self._own_totals(run, account)
            debit = math.add(debit, own_debit)
            credit = math.add(credit, own_credit)
            net = math.add(net, self._signed(own_debit, own_credit, debit_normal))

        if account.is_control_account and children:
            for child in sorted(children, key=lambda c: c.code):
                child_totals = self._aggregate(run, child, depth + 1)
                debit = math.add(debit, child_totals.debit)
                credit = math.add(credit, child_totals.credit)
                if is_debit_normal(child.account_type) == debit_normal:
                    net = math.add(net, child_totals.net)
                else:
                    net = math.subtract(net, child_totals.net)

        run.path.discard(account.id)
        totals = _Totals(debit=debit, credit=credit, net=net)
        run.memo[account.id] = totals
        return totals

    def _own_totals(self, run: _Run, account: AccountData) -> tuple[Decimal, Decimal]:
        math = self.math
        debit = math.zero()
        credit = math.zero()

        baseline = account.opening_balance_date
        if baseline is None or baseline <= run.as_of_date:
            opening = math.to_decimal(account.opening_balance)
            # Opening balance is stored in the account's own convention.
            if opening < 0:
                opening_on_normal_side, opening_on_other_side = math.zero(), math.negate(opening)
            else:
                opening_on_normal_side, opening_on_other_side = opening, math.zero()
            if is_debit_normal(account.account_type):
                debit, credit = opening_on_normal_side, opening_on_other_side
            else:
                debit, credit = opening_on_other_side, opening_on_normal_side

        if run.token is not None:
            run.token.raise_if_cancelled(account.id)
        activity = self.store.fetch_activity_totals(
            account.id, run.as_of_date, since=baseline
        )
        return math.add(debit, activity.debit), math.add(credit, activity.credit)

    def _signed(self, debit: Decimal, credit: Decimal, debit_normal: bool) -> Decimal:
        if debit_normal:
            return self.math.subtract(debit, credit)
        return self.math.subtract(credit, debit)

    def _to_balance(self, account: AccountData, totals: _Totals, as_of: date) -> AccountBalance:
        return AccountBalance(
            account_id=account.id,
            as_of_date=as_of,
            debit_total=self.math.round(totals.debit),
            credit_total=self.math.round(totals.credit),
            net_balance=self.math.round(totals.net),
            currency=account.currency,
            normal_balance=normal_balance_sign(account.account_type),
        )
