"""
ChartOfAccountsAPI -- the exposed operation surface.

Responsibility:
    Wraps HierarchyManager, AccountCodeGenerator and BalanceAggregator so
    an outer layer (HTTP handler, CLI, batch import) receives structured
    OperationResult values instead of raw exceptions, and binds the
    tenant into the logging context for the duration of each call.

Architecture position:
    Kernel > API -- outermost kernel module.  Imports services; nothing
    in the kernel imports it.

Invariants enforced:
    - Only CoaKernelError subclasses are converted to results.  Any other
      exception is a defect and propagates unchanged.
    - ErrorInfo carries the machine-readable ``code`` and the exception's
      structured attributes (offending field, invariant, ids).

Usage:
    api = ChartOfAccountsAPI.build(store, clock=clock)
    result = api.create_account(NewAccount(...))
    if result.is_success:
        account = result.value
    else:
        respond(result.status, result.error.code, result.error.details)
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Generic, TypeVar
from uuid import UUID

from coa_kernel.domain.cancellation import CancellationToken
from coa_kernel.domain.classification import AccountStatus, AccountSubType, AccountType
from coa_kernel.domain.clock import Clock
from coa_kernel.domain.code_scheme import CodeScheme
from coa_kernel.domain.decimal_math import DecimalMath
from coa_kernel.domain.dtos import (
    AccountBalance,
    AccountData,
    AccountNode,
    AccountPatch,
    AccountQuery,
    AccountSummaryRow,
    ChartSeedEntry,
    CodeSuggestion,
    NewAccount,
    Page,
)
from coa_kernel.exceptions import (
    AccountNotFoundError,
    AggregationCancelledError,
    CoaKernelError,
    CodeConflictError,
    CodeSpaceExhaustedError,
    DuplicateCodeError,
    HasActivityError,
    HasChildrenError,
)
from coa_kernel.logging_config import LogContext, get_logger
from coa_kernel.services.balance_aggregator import BalanceAggregator
from coa_kernel.services.code_generator import AccountCodeGenerator
from coa_kernel.services.hierarchy_manager import HierarchyManager, HierarchyPolicy
from coa_kernel.store.base import LedgerStore

logger = get_logger("api")

T = TypeVar("T")


class OperationStatus(str, Enum):
    """Outcome category of an exposed operation."""

    SUCCEEDED = "succeeded"
    NOT_FOUND = "not_found"
    REJECTED = "rejected"
    CONFLICT = "conflict"
    BLOCKED = "blocked"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class ErrorInfo:
    """Transport-neutral description of a failure."""

    code: str
    message: str
    details: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_exception(cls, exc: CoaKernelError) -> ErrorInfo:
        return cls(code=exc.code, message=str(exc), details=exc.details())


@dataclass(frozen=True)
class OperationResult(Generic[T]):
    """Result of an exposed operation: a value on success, an ErrorInfo otherwise."""

    status: OperationStatus
    value: T | None = None
    error: ErrorInfo | None = None

    @property
    def is_success(self) -> bool:
        return self.status == OperationStatus.SUCCEEDED

    @classmethod
    def ok(cls, value: T | None) -> OperationResult[T]:
        return cls(status=OperationStatus.SUCCEEDED, value=value)

    @classmethod
    def failed(cls, exc: CoaKernelError) -> OperationResult[T]:
        return cls(status=status_for(exc), error=ErrorInfo.from_exception(exc))


def status_for(exc: CoaKernelError) -> OperationStatus:
    """Map a kernel exception to its outcome category."""
    if isinstance(exc, AccountNotFoundError):
        return OperationStatus.NOT_FOUND
    if isinstance(exc, (HasChildrenError, HasActivityError)):
        return OperationStatus.BLOCKED
    if isinstance(exc, AggregationCancelledError):
        return OperationStatus.CANCELLED
    if isinstance(exc, (DuplicateCodeError, CodeConflictError, CodeSpaceExhaustedError)):
        return OperationStatus.CONFLICT
    return OperationStatus.REJECTED


class ChartOfAccountsAPI:
    """
    Structured-result facade over the chart-of-accounts services.

    Every method returns an OperationResult.  Methods that act on one
    tenant take ``company_id`` first and refuse accounts of other tenants
    with NOT_FOUND.
    """

    def __init__(
        self,
        manager: HierarchyManager,
        code_generator: AccountCodeGenerator,
        balance_aggregator: BalanceAggregator,
    ):
        self.manager = manager
        self.code_generator = code_generator
        self.balance_aggregator = balance_aggregator

    @classmethod
    def build(
        cls,
        store: LedgerStore,
        *,
        math: DecimalMath | None = None,
        clock: Clock | None = None,
        scheme: CodeScheme | None = None,
        policy: HierarchyPolicy | None = None,
    ) -> ChartOfAccountsAPI:
        """Wire the three services over one store with shared settings."""
        math = math or DecimalMath()
        policy = policy or HierarchyPolicy()
        generator = AccountCodeGenerator(store, scheme)
        aggregator = BalanceAggregator(
            store, math=math, clock=clock, max_depth=policy.max_tree_depth
        )
        manager = HierarchyManager(
            store,
            code_generator=generator,
            math=math,
            clock=clock,
            policy=policy,
            balance_aggregator=aggregator,
        )
        return cls(manager, generator, aggregator)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def create_account(self, new: NewAccount) -> OperationResult[AccountData]:
        return self._run("create_account", new.company_id, lambda: self.manager.create_account(new))

    def update_account(
        self, company_id: UUID, account_id: UUID, patch: AccountPatch
    ) -> OperationResult[AccountData]:
        return self._run(
            "update_account",
            company_id,
            lambda: self.manager.update_account(account_id, patch, company_id),
            account_id=account_id,
        )

    def reparent_account(
        self, company_id: UUID, account_id: UUID, new_parent_id: UUID | None
    ) -> OperationResult[AccountData]:
        return self._run(
            "reparent_account",
            company_id,
            lambda: self.manager.reparent_account(account_id, new_parent_id, company_id),
            account_id=account_id,
        )

    def bulk_reparent(
        self,
        company_id: UUID,
        account_ids: Sequence[UUID],
        new_parent_id: UUID | None,
    ) -> OperationResult[list[AccountData]]:
        return self._run(
            "bulk_reparent",
            company_id,
            lambda: self.manager.bulk_reparent(company_id, account_ids, new_parent_id),
        )

    def archive_account(self, company_id: UUID, account_id: UUID) -> OperationResult[AccountData]:
        return self._run(
            "archive_account",
            company_id,
            lambda: self.manager.archive_account(account_id, company_id),
            account_id=account_id,
        )

    def delete_account(
        self, company_id: UUID, account_id: UUID, archive_instead: bool = False
    ) -> OperationResult[AccountData]:
        """Value is None after a hard delete, the archived account otherwise."""
        return self._run(
            "delete_account",
            company_id,
            lambda: self.manager.delete_account(account_id, archive_instead, company_id),
            account_id=account_id,
        )

    def change_status(
        self,
        company_id: UUID,
        account_id: UUID,
        status: AccountStatus,
        administrative_override: bool = False,
    ) -> OperationResult[AccountData]:
        return self._run(
            "change_status",
            company_id,
            lambda: self.manager.change_status(
                account_id, status, administrative_override, company_id
            ),
            account_id=account_id,
        )

    def bulk_update_status(
        self,
        company_id: UUID,
        account_ids: Sequence[UUID],
        status: AccountStatus,
    ) -> OperationResult[list[AccountData]]:
        return self._run(
            "bulk_update_status",
            company_id,
            lambda: self.manager.bulk_update_status(company_id, account_ids, status),
        )

    def get_account(self, company_id: UUID, account_id: UUID) -> OperationResult[AccountData]:
        return self._run(
            "get_account",
            company_id,
            lambda: self.manager.get_account(account_id, company_id),
            account_id=account_id,
        )

    def list_accounts(self, query: AccountQuery) -> OperationResult[Page]:
        return self._run("list_accounts", query.company_id, lambda: self.manager.list_accounts(query))

    def build_account_tree(
        self,
        company_id: UUID,
        include_balance: bool = False,
        as_of_date: date | None = None,
        include_archived: bool = False,
        token: CancellationToken | None = None,
    ) -> OperationResult[list[AccountNode]]:
        return self._run(
            "build_account_tree",
            company_id,
            lambda: self.manager.build_tree(
                company_id,
                include_balance=include_balance,
                as_of_date=as_of_date,
                include_archived=include_archived,
                token=token,
            ),
        )

    def get_account_balance(
        self,
        company_id: UUID,
        account_id: UUID,
        as_of_date: date | None = None,
        token: CancellationToken | None = None,
    ) -> OperationResult[AccountBalance]:
        return self._run(
            "get_account_balance",
            company_id,
            lambda: self.balance_aggregator.get_balance(
                account_id, as_of_date, company_id=company_id, token=token
            ),
            account_id=account_id,
        )

    def generate_account_code(
        self,
        company_id: UUID,
        account_type: AccountType,
        sub_type: AccountSubType | None = None,
        parent_account_id: UUID | None = None,
    ) -> OperationResult[CodeSuggestion]:
        return self._run(
            "generate_account_code",
            company_id,
            lambda: self.code_generator.generate(
                company_id, account_type, sub_type, parent_account_id
            ),
        )

    def is_code_available(
        self, company_id: UUID, code: str, exclude_account_id: UUID | None = None
    ) -> OperationResult[bool]:
        return self._run(
            "is_code_available",
            company_id,
            lambda: self.code_generator.is_code_available(company_id, code, exclude_account_id),
        )

    def summarize(self, company_id: UUID) -> OperationResult[list[AccountSummaryRow]]:
        return self._run("summarize", company_id, lambda: self.manager.summarize(company_id))

    def seed_default_chart(
        self, company_id: UUID, entries: Sequence[ChartSeedEntry]
    ) -> OperationResult[list[AccountData]]:
        return self._run(
            "seed_default_chart",
            company_id,
            lambda: self.manager.seed_default_chart(company_id, entries),
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _run(
        self,
        operation: str,
        company_id: UUID,
        call: Callable[[], T],
        account_id: UUID | None = None,
    ) -> OperationResult[T]:
        with LogContext.bind(company_id=company_id, account_id=account_id):
            try:
                return OperationResult.ok(call())
            except CoaKernelError as exc:
                result: OperationResult[T] = OperationResult.failed(exc)
                logger.info(
                    "operation_failed",
                    extra={
                        "operation": operation,
                        "result_status": result.status,
                        "error_code": exc.code,
                    },
                )
                return result
