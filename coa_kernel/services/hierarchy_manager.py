"""
HierarchyManager -- the chart-of-accounts tree and its lifecycle.

Responsibility:
    Creates, updates, re-parents, archives and deletes accounts while
    keeping the tree consistent, and builds transient tree views and
    listings on demand.

Architecture position:
    Kernel > Services -- imperative shell.  Validates against the
    classification rules, allocates codes through the AccountCodeGenerator,
    persists through the Ledger Store, and delegates balances to the
    BalanceAggregator.

Invariants enforced:
    1. sub_type is in the allowed set for account_type.
    2. A parent has the same account_type as its child and is not archived.
    3. level == parent.level + 1 (0 for roots); re-parenting cascades the
       new levels to every descendant inside one store transaction.
    4. code is unique within the company (store-enforced; generated codes
       are retried on a lost race).
    5. No cycles: an account never becomes its own ancestor.
    6. An archived account takes no new children and no direct postings.
    - account_type never changes; code never changes once activity exists.
    - All validation runs before the first store write.

Failure modes:
    - AccountNotFoundError, AccountValidationError (and subclasses),
      TypeMismatchError, CycleDetectedError, TreeTooDeepError,
      DuplicateCodeError, CodeConflictError, HasChildrenError,
      HasActivityError, AccountNotPostableError.

Audit relevance:
    Every mutation logs an event-style message (account_created,
    account_updated, account_reparented, account_archived, account_deleted,
    account_status_changed, account_bulk_reparented) with the account id
    and the changed fields.
"""

from __future__ import annotations

import re
from collections import Counter, defaultdict, deque
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, replace
from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from coa_kernel.db.types import validate_currency
from coa_kernel.domain.cancellation import CancellationToken
from coa_kernel.domain.classification import (
    AccountStatus,
    AccountSubType,
    AccountType,
    can_transition,
    coerce_enum,
    is_valid_sub_type,
)
from coa_kernel.domain.clock import Clock
from coa_kernel.domain.decimal_math import DecimalMath
from coa_kernel.domain.dtos import (
    AccountData,
    AccountFilter,
    AccountNode,
    AccountPatch,
    AccountQuery,
    AccountSummaryRow,
    ChartSeedEntry,
    NewAccount,
    Page,
)
from coa_kernel.exceptions import (
    AccountNotFoundError,
    AccountNotPostableError,
    AccountValidationError,
    ArchivedAccountError,
    CodeConflictError,
    CycleDetectedError,
    DuplicateCodeError,
    HasActivityError,
    HasChildrenError,
    ImmutableFieldError,
    InvalidAccountCodeError,
    InvalidStatusTransitionError,
    InvalidSubTypeError,
    TreeTooDeepError,
    TypeMismatchError,
)
from coa_kernel.logging_config import get_logger
from coa_kernel.services.balance_aggregator import BalanceAggregator
from coa_kernel.services.base import BaseService
from coa_kernel.services.code_generator import AccountCodeGenerator
from coa_kernel.store.base import LedgerStore

logger = get_logger("services.hierarchy_manager")

_CODE_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9.\-]*$")
_MAX_CODE_LENGTH = 50
_MAX_NAME_LENGTH = 255

_PATCHABLE_FIELDS = frozenset({
    "name",
    "description",
    "code",
    "sub_type",
    "is_control_account",
    "allow_direct_transactions",
    "currency",
    "opening_balance",
    "opening_balance_date",
    "status",
})


@dataclass(frozen=True)
class HierarchyPolicy:
    """
    Tenant-independent limits for the hierarchy.

    Attributes:
        max_tree_depth: Maximum number of levels; levels run 0..max-1.
        max_code_retries: Attempts at a generated code before CodeConflictError.
        default_currency: Currency for accounts created without one.
    """

    max_tree_depth: int = 32
    max_code_retries: int = 3
    default_currency: str = "USD"


class HierarchyManager(BaseService):
    """
    Service for the chart-of-accounts hierarchy.

    Contract:
        Public methods accept and return DTOs.  Every write is preceded by
        complete validation; multi-row writes run inside
        ``store.transaction()``.
    """

    def __init__(
        self,
        store: LedgerStore,
        code_generator: AccountCodeGenerator | None = None,
        math: DecimalMath | None = None,
        clock: Clock | None = None,
        policy: HierarchyPolicy | None = None,
        balance_aggregator: BalanceAggregator | None = None,
    ):
        super().__init__(store, clock)
        self.code_generator = code_generator or AccountCodeGenerator(store)
        self.math = math or DecimalMath()
        self.policy = policy or HierarchyPolicy()
        self.balance_aggregator = balance_aggregator or BalanceAggregator(
            store,
            math=self.math,
            clock=self.clock,
            max_depth=self.policy.max_tree_depth,
        )

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_account(self, account_id: UUID, company_id: UUID | None = None) -> AccountData:
        """
        Fetch one account.

        Raises:
            AccountNotFoundError: Unknown id, or the account belongs to a
                different company than ``company_id``.
        """
        account = self.store.get_account(account_id)
        if account is None or (company_id is not None and account.company_id != company_id):
            raise AccountNotFoundError(str(account_id))
        return account

    def get_account_by_code(self, company_id: UUID, code: str) -> AccountData:
        account = self.store.get_account_by_code(company_id, code)
        if account is None:
            raise AccountNotFoundError(f"{company_id}/{code}")
        return account

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create_account(self, new: NewAccount) -> AccountData:
        """
        Validate and persist a new account.

        A supplied code that is already taken fails immediately with
        DuplicateCodeError.  A generated code that loses a race is
        regenerated up to ``policy.max_code_retries`` times before
        CodeConflictError is raised.
        """
        account_type = self._coerce_type(new.account_type)
        sub_type = self._validate_sub_type(account_type, new.sub_type)
        name = self._validate_name(new.name)
        currency = validate_currency(new.currency or self.policy.default_currency)
        opening_balance = self._validate_opening_balance(new.opening_balance)
        opening_balance_date = self._validate_opening_balance_date(new.opening_balance_date)
        description = self._validate_description(new.description)
        status = coerce_enum(AccountStatus, new.status, "status")
        if status == AccountStatus.ARCHIVED:
            raise AccountValidationError(
                "status", "new accounts cannot be created archived", invariant="status_transition"
            )

        level = 0
        if new.parent_account_id is not None:
            parent = self.get_account(new.parent_account_id, new.company_id)
            self._validate_parent(account_type, parent)
            level = parent.level + 1
            if level >= self.policy.max_tree_depth:
                raise TreeTooDeepError(str(parent.id), self.policy.max_tree_depth)

        now = self.clock.now()
        draft = AccountData(
            id=uuid4(),
            company_id=new.company_id,
            code="",
            name=name,
            account_type=account_type,
            sub_type=sub_type,
            parent_account_id=new.parent_account_id,
            level=level,
            is_control_account=bool(new.is_control_account),
            allow_direct_transactions=bool(new.allow_direct_transactions),
            currency=currency,
            opening_balance=opening_balance,
            opening_balance_date=opening_balance_date,
            status=status,
            description=description,
            created_at=now,
            updated_at=now,
        )

        if new.code is not None:
            account = self.store.insert_account(
                replace(draft, code=self._validate_code(new.code))
            )
        else:
            account = self._insert_with_generated_code(draft)

        logger.info(
            "account_created",
            extra={
                "account_id": account.id,
                "company_id": account.company_id,
                "code": account.code,
                "account_type": account.account_type,
                "sub_type": account.sub_type,
                "account_level": account.level,
            },
        )
        return account

    def _insert_with_generated_code(self, draft: AccountData) -> AccountData:
        attempts = self.policy.max_code_retries
        for attempt in range(1, attempts + 1):
            suggestion = self.code_generator.generate(
                draft.company_id,
                draft.account_type,
                draft.sub_type,
                draft.parent_account_id,
            )
            try:
                return self.store.insert_account(replace(draft, code=suggestion.code))
            except DuplicateCodeError:
                logger.warning(
                    "account_code_conflict_retry",
                    extra={
                        "company_id": draft.company_id,
                        "code": suggestion.code,
                        "attempt": attempt,
                        "max_attempts": attempts,
                    },
                )
        raise CodeConflictError(str(draft.company_id), attempts)

    # ------------------------------------------------------------------
    # Update / re-parent
    # ------------------------------------------------------------------

    def update_account(
        self,
        account_id: UUID,
        patch: AccountPatch,
        company_id: UUID | None = None,
    ) -> AccountData:
        """
        Apply a partial update.

        ``account_type`` can never change.  ``code`` cannot change once the
        account has activity.  A ``parent_account_id`` change is handled as
        a re-parent (cycle check, level cascade) in the same transaction as
        the other field changes.
        """
        current = self.get_account(account_id, company_id)
        requested = patch.changed_fields()
        if not requested:
            return current

        if "account_type" in requested:
            if self._coerce_type(requested.pop("account_type")) != current.account_type:
                raise ImmutableFieldError(
                    str(account_id), "account_type", "account type cannot change after creation"
                )

        level_plan: dict[UUID, int] | None = None
        new_parent_id = requested.pop("parent_account_id", current.parent_account_id)
        if new_parent_id != current.parent_account_id:
            level_plan = self._plan_reparent(current, new_parent_id)

        changes = self._validate_changes(current, requested)
        if level_plan is not None:
            changes["parent_account_id"] = new_parent_id
        if not changes:
            return current

        now = self.clock.now()
        with self.store.transaction():
            if level_plan is not None:
                self._apply_level_plan(level_plan, now)
            updated = self.store.update_account(current.id, {**changes, "updated_at": now})

        logger.info(
            "account_updated",
            extra={
                "account_id": updated.id,
                "company_id": updated.company_id,
                "fields": sorted(changes),
            },
        )
        if level_plan is not None:
            self._log_reparent(current, updated, level_plan)
        return updated

    def reparent_account(
        self,
        account_id: UUID,
        new_parent_id: UUID | None,
        company_id: UUID | None = None,
    ) -> AccountData:
        """
        Move an account (and its subtree) under ``new_parent_id``.

        ``None`` makes the account a root.  The moved account's and every
        descendant's level is rewritten atomically.
        """
        account = self.get_account(account_id, company_id)
        if new_parent_id == account.parent_account_id:
            return account

        level_plan = self._plan_reparent(account, new_parent_id)
        now = self.clock.now()
        with self.store.transaction():
            self._apply_level_plan(level_plan, now)
            moved = self.store.update_account(
                account.id, {"parent_account_id": new_parent_id, "updated_at": now}
            )

        self._log_reparent(account, moved, level_plan)
        return moved

    def bulk_reparent(
        self,
        company_id: UUID,
        account_ids: Sequence[UUID],
        new_parent_id: UUID | None,
    ) -> list[AccountData]:
        """
        Move many accounts under one new parent atomically.

        Each move is validated against the current tree before the first
        write; one cycle, type mismatch or unknown account rejects the whole
        batch.  Levels are then recomputed on the combined result, so a
        batch holding both an account and one of its descendants ends with
        both directly under ``new_parent_id``.
        """
        accounts = [
            self.get_account(account_id, company_id)
            for account_id in dict.fromkeys(account_ids)
        ]
        snapshot = {a.id: a for a in self.store.fetch_accounts(company_id)}
        moving = [a for a in accounts if a.parent_account_id != new_parent_id]
        for account in moving:
            self._plan_reparent(account, new_parent_id, snapshot)
        if not moving:
            return accounts

        moved_ids = {a.id for a in moving}
        children = self._children_index(
            replace(a, parent_account_id=new_parent_id) if a.id in moved_ids else a
            for a in snapshot.values()
        )
        base_level = 0 if new_parent_id is None else snapshot[new_parent_id].level + 1
        plan = self._cascade_levels({a.id: base_level for a in moving}, children)
        if max(plan.values()) >= self.policy.max_tree_depth:
            raise TreeTooDeepError(str(new_parent_id or moving[0].id), self.policy.max_tree_depth)
        plan = {
            account_id: level
            for account_id, level in plan.items()
            if account_id in moved_ids or snapshot[account_id].level != level
        }

        now = self.clock.now()
        with self.store.transaction():
            self._apply_level_plan(plan, now)
            for account in moving:
                self.store.update_account(
                    account.id, {"parent_account_id": new_parent_id, "updated_at": now}
                )

        logger.info(
            "account_bulk_reparented",
            extra={
                "company_id": company_id,
                "new_parent_id": new_parent_id,
                "account_count": len(moving),
                "descendants_relevelled": len(plan) - len(moving),
            },
        )
        return [self.get_account(account.id) for account in accounts]

    def _plan_reparent(
        self,
        account: AccountData,
        new_parent_id: UUID | None,
        accounts: dict[UUID, AccountData] | None = None,
    ) -> dict[UUID, int]:
        """Validate a move and return the new level of every affected account."""
        if accounts is None:
            accounts = {a.id: a for a in self.store.fetch_accounts(account.company_id)}
        children = self._children_index(accounts.values())

        if new_parent_id is None:
            new_level = 0
        else:
            if new_parent_id == account.id:
                raise CycleDetectedError(str(account.id), str(new_parent_id))
            parent = accounts.get(new_parent_id)
            if parent is None:
                raise AccountNotFoundError(str(new_parent_id))

            # Walk the new parent's ancestors; finding the moved account
            # there means the move would close a loop.
            seen: set[UUID] = set()
            cursor: AccountData | None = parent
            while cursor is not None and cursor.id not in seen:
                if cursor.id == account.id:
                    raise CycleDetectedError(str(account.id), str(new_parent_id))
                seen.add(cursor.id)
                cursor = (
                    accounts.get(cursor.parent_account_id)
                    if cursor.parent_account_id is not None
                    else None
                )

            self._validate_parent(account.account_type, parent)
            new_level = parent.level + 1

        plan = self._cascade_levels({account.id: new_level}, children)
        deepest = max(plan.values())
        if deepest >= self.policy.max_tree_depth:
            raise TreeTooDeepError(str(account.id), self.policy.max_tree_depth)

        return {
            account_id: level
            for account_id, level in plan.items()
            if account_id == account.id or accounts[account_id].level != level
        }

    @staticmethod
    def _cascade_levels(
        start: dict[UUID, int],
        children: dict[UUID, list[AccountData]],
    ) -> dict[UUID, int]:
        """Breadth-first levels for the subtrees under ``start``."""
        plan = dict(start)
        queue = deque(start)
        while queue:
            current_id = queue.popleft()
            for child in children.get(current_id, []):
                if child.id in plan:
                    continue
                plan[child.id] = plan[current_id] + 1
                queue.append(child.id)
        return plan

    def _apply_level_plan(self, plan: dict[UUID, int], now: datetime) -> None:
        for account_id, level in plan.items():
            self.store.update_account(account_id, {"level": level, "updated_at": now})

    def _log_reparent(self, before: AccountData, after: AccountData, plan: dict[UUID, int]) -> None:
        logger.info(
            "account_reparented",
            extra={
                "account_id": after.id,
                "company_id": after.company_id,
                "old_parent_id": before.parent_account_id,
                "new_parent_id": after.parent_account_id,
                "new_level": after.level,
                "descendants_relevelled": len(plan) - 1,
            },
        )

    # ------------------------------------------------------------------
    # Status lifecycle
    # ------------------------------------------------------------------

    def change_status(
        self,
        account_id: UUID,
        status: AccountStatus,
        administrative_override: bool = False,
        company_id: UUID | None = None,
    ) -> AccountData:
        """
        Move an account through Active -> Inactive -> Archived.

        Inactive -> Active is permitted and re-validates the account's
        invariants.  Archived is terminal unless ``administrative_override``.
        """
        current = self.get_account(account_id, company_id)
        target = coerce_enum(AccountStatus, status, "status")
        if current.status == target:
            return current
        self._validate_transition(current, target, administrative_override)

        updated = self.store.update_account(
            current.id, {"status": target, "updated_at": self.clock.now()}
        )
        logger.info(
            "account_status_changed",
            extra={
                "account_id": updated.id,
                "from_status": current.status,
                "to_status": target,
                "administrative_override": administrative_override,
            },
        )
        return updated

    def archive_account(self, account_id: UUID, company_id: UUID | None = None) -> AccountData:
        """Soft-delete.  Idempotent: archiving an archived account is a no-op."""
        current = self.get_account(account_id, company_id)
        if current.is_archived:
            return current

        archived = self.store.update_account(
            current.id, {"status": AccountStatus.ARCHIVED, "updated_at": self.clock.now()}
        )
        logger.info(
            "account_archived",
            extra={
                "account_id": archived.id,
                "company_id": archived.company_id,
                "previous_status": current.status,
            },
        )
        return archived

    def bulk_update_status(
        self,
        company_id: UUID,
        account_ids: Sequence[UUID],
        status: AccountStatus,
        administrative_override: bool = False,
    ) -> list[AccountData]:
        """
        Apply one status to many accounts atomically.

        Every transition is validated before the first write; one invalid
        account rejects the whole batch.
        """
        target = coerce_enum(AccountStatus, status, "status")
        accounts = [self.get_account(account_id, company_id) for account_id in account_ids]
        for account in accounts:
            if account.status != target:
                self._validate_transition(account, target, administrative_override)

        now = self.clock.now()
        result: list[AccountData] = []
        with self.store.transaction():
            for account in accounts:
                if account.status == target:
                    result.append(account)
                    continue
                result.append(
                    self.store.update_account(account.id, {"status": target, "updated_at": now})
                )

        logger.info(
            "account_status_bulk_changed",
            extra={
                "company_id": company_id,
                "to_status": target,
                "account_count": len(result),
            },
        )
        return result

    def _validate_transition(
        self,
        account: AccountData,
        target: AccountStatus,
        administrative_override: bool,
    ) -> None:
        if not can_transition(account.status, target, administrative_override):
            raise InvalidStatusTransitionError(
                str(account.id), account.status.value, target.value
            )
        if target != AccountStatus.ARCHIVED:
            self._revalidate(account)

    def _revalidate(self, account: AccountData) -> None:
        """Re-check invariants 1-3 for an account about to become usable again."""
        self._validate_sub_type(account.account_type, account.sub_type)
        if account.parent_account_id is None:
            if account.level != 0:
                raise AccountValidationError(
                    "level", "root accounts must have level 0", invariant="level"
                )
            return
        parent = self.store.get_account(account.parent_account_id)
        if parent is None or parent.company_id != account.company_id:
            raise AccountNotFoundError(str(account.parent_account_id))
        self._validate_parent(account.account_type, parent)
        if account.level != parent.level + 1:
            raise AccountValidationError(
                "level",
                f"expected level {parent.level + 1}, found {account.level}",
                invariant="level",
            )

    def assert_postable(self, account_id: UUID, company_id: UUID | None = None) -> AccountData:
        """
        Raise unless the account may receive a direct posting.

        Archived and inactive accounts are rejected, as are control
        accounts that do not allow direct transactions.
        """
        account = self.get_account(account_id, company_id)
        if account.is_archived:
            raise AccountNotPostableError(str(account.id), "account is archived")
        if account.status == AccountStatus.INACTIVE:
            raise AccountNotPostableError(str(account.id), "account is inactive")
        if not account.accepts_direct_postings:
            raise AccountNotPostableError(
                str(account.id), "control account does not allow direct transactions"
            )
        return account

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------

    def delete_account(
        self,
        account_id: UUID,
        archive_instead: bool = False,
        company_id: UUID | None = None,
    ) -> AccountData | None:
        """
        Hard-delete an account with no children and no activity.

        Returns None after a hard delete.  With ``archive_instead`` a blocked
        delete archives the account and returns it.

        Raises:
            HasChildrenError: The account has child accounts.
            HasActivityError: Activity has been posted against it.
        """
        account = self.get_account(account_id, company_id)

        child_count = len(
            self.store.fetch_accounts(
                account.company_id, AccountFilter(parent_account_id=account.id)
            )
        )
        blocker: HasChildrenError | HasActivityError | None = None
        if child_count:
            blocker = HasChildrenError(str(account.id), child_count)
        elif self.store.has_activity(account.id):
            blocker = HasActivityError(str(account.id))

        if blocker is not None:
            if archive_instead:
                return self.archive_account(account.id)
            raise blocker

        self.store.delete_account(account.id)
        logger.info(
            "account_deleted",
            extra={
                "account_id": account.id,
                "company_id": account.company_id,
                "code": account.code,
            },
        )
        return None

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def build_tree(
        self,
        company_id: UUID,
        include_balance: bool = False,
        as_of_date: date | None = None,
        include_archived: bool = False,
        token: CancellationToken | None = None,
    ) -> list[AccountNode]:
        """
        Assemble the company's accounts into a forest.

        Siblings (and roots) are ordered by code.  An account whose parent
        is not in the view (for example an archived parent) appears as a
        root.  Balances, when requested, still include archived
        descendants' activity.
        """
        accounts = self.store.fetch_accounts(
            company_id, AccountFilter(exclude_archived=not include_archived)
        )
        nodes = {account.id: AccountNode(account=account) for account in accounts}

        roots: list[AccountNode] = []
        for account in sorted(accounts, key=lambda a: a.code):
            node = nodes[account.id]
            parent = nodes.get(account.parent_account_id) if account.parent_account_id else None
            if parent is None:
                roots.append(node)
            else:
                parent.children.append(node)

        if include_balance and nodes:
            balances = self.balance_aggregator.balances_for(
                company_id,
                as_of_date,
                account_ids=list(nodes),
                token=token,
            )
            for account_id, node in nodes.items():
                node.balance = balances[account_id]

        return roots

    def list_accounts(self, query: AccountQuery) -> Page:
        """
        Filtered listing, sorted by ``query.sort_by`` with code as tie-breaker.

        Raises:
            AccountValidationError: A filter names an unknown type, sub-type
                or status.
        """
        coerced = {
            name: coerce_enum(enum_cls, getattr(query.filter, name), name)
            for name, enum_cls in (
                ("account_type", AccountType),
                ("sub_type", AccountSubType),
                ("status", AccountStatus),
            )
            if getattr(query.filter, name) is not None
        }
        rows = self.store.fetch_accounts(query.company_id, replace(query.filter, **coerced))

        def sort_key(account: AccountData) -> tuple[Any, str]:
            value = getattr(account, query.sort_by)
            return (value.value if isinstance(value, AccountType) else value, account.code)

        rows.sort(key=sort_key, reverse=query.descending)
        items = tuple(rows[query.offset:query.offset + query.limit])
        return Page(items=items, total=len(rows), offset=query.offset, limit=query.limit)

    def summarize(self, company_id: UUID) -> list[AccountSummaryRow]:
        counts = Counter(
            (account.account_type, account.sub_type, account.status)
            for account in self.store.fetch_accounts(company_id)
        )
        return [
            AccountSummaryRow(account_type=t, sub_type=s, status=st, count=n)
            for (t, s, st), n in sorted(
                counts.items(), key=lambda item: tuple(v.value for v in item[0])
            )
        ]

    # ------------------------------------------------------------------
    # Seeding
    # ------------------------------------------------------------------

    def seed_default_chart(
        self,
        company_id: UUID,
        entries: Iterable[ChartSeedEntry],
        currency: str | None = None,
    ) -> list[AccountData]:
        """
        Create a template chart for a company that has no accounts yet.

        Entries must list parents before children.  Every entry goes
        through ``create_account``, so every invariant is checked.  A
        company that already has accounts is left untouched.
        """
        if self.store.fetch_accounts(company_id):
            logger.info("default_chart_skipped", extra={"company_id": company_id})
            return []

        created: dict[str, AccountData] = {}
        with self.store.transaction():
            for entry in entries:
                parent_id = None
                if entry.parent_code is not None:
                    parent = created.get(entry.parent_code)
                    if parent is None:
                        raise AccountValidationError(
                            "parent_code",
                            f"parent '{entry.parent_code}' of '{entry.code}' is not defined earlier",
                            invariant="parent_type",
                        )
                    parent_id = parent.id
                created[entry.code] = self.create_account(
                    NewAccount(
                        company_id=company_id,
                        name=entry.name,
                        account_type=entry.account_type,
                        sub_type=entry.sub_type,
                        code=entry.code,
                        parent_account_id=parent_id,
                        is_control_account=entry.is_control_account,
                        allow_direct_transactions=entry.allow_direct_transactions,
                        currency=currency,
                        description=entry.description,
                    )
                )

        logger.info(
            "default_chart_seeded",
            extra={"company_id": company_id, "account_count": len(created)},
        )
        return list(created.values())

    # ------------------------------------------------------------------
    # Validation helpers
    # ------------------------------------------------------------------

    def _validate_changes(self, current: AccountData, requested: dict[str, Any]) -> dict[str, Any]:
        unknown = set(requested) - _PATCHABLE_FIELDS
        if unknown:
            raise AccountValidationError(
                sorted(unknown)[0], "field cannot be updated", invariant="field"
            )

        changes: dict[str, Any] = {}
        for field_name, value in requested.items():
            if field_name == "name":
                value = self._validate_name(value)
            elif field_name == "sub_type":
                value = self._validate_sub_type(current.account_type, value)
            elif field_name == "code":
                value = self._validate_code(value)
                if value != current.code:
                    if self.store.has_activity(current.id):
                        raise ImmutableFieldError(
                            str(current.id), "code", "code cannot change once activity is recorded"
                        )
                    if not self.code_generator.is_code_available(
                        current.company_id, value, exclude_account_id=current.id
                    ):
                        raise DuplicateCodeError(str(current.company_id), value)
            elif field_name == "currency":
                value = validate_currency(value)
            elif field_name == "opening_balance":
                value = self._validate_opening_balance(value)
            elif field_name == "opening_balance_date":
                value = self._validate_opening_balance_date(value)
            elif field_name == "description":
                value = self._validate_description(value)
            elif field_name in ("is_control_account", "allow_direct_transactions"):
                value = bool(value)
            elif field_name == "status":
                value = coerce_enum(AccountStatus, value, "status")
                if value != current.status:
                    self._validate_transition(current, value, administrative_override=False)

            if getattr(current, field_name) != value:
                changes[field_name] = value
        return changes

    def _validate_parent(self, account_type: AccountType, parent: AccountData) -> None:
        if parent.account_type != account_type:
            raise TypeMismatchError(
                AccountType(account_type).value, str(parent.id), parent.account_type.value
            )
        if parent.is_archived:
            raise ArchivedAccountError(str(parent.id))

    def _validate_sub_type(self, account_type: AccountType, sub_type: Any) -> AccountSubType:
        try:
            coerced = AccountSubType(sub_type)
        except ValueError:
            raise InvalidSubTypeError(AccountType(account_type).value, str(sub_type)) from None
        if not is_valid_sub_type(account_type, coerced):
            raise InvalidSubTypeError(AccountType(account_type).value, coerced.value)
        return coerced

    @staticmethod
    def _coerce_type(account_type: Any) -> AccountType:
        return coerce_enum(AccountType, account_type, "account_type")

    @staticmethod
    def _validate_opening_balance_date(value: Any) -> date | None:
        # datetime is a date subclass but does not compare with one
        if value is not None and (not isinstance(value, date) or isinstance(value, datetime)):
            raise AccountValidationError(
                "opening_balance_date", f"expected a date, got {type(value).__name__}"
            )
        return value

    @staticmethod
    def _validate_description(value: Any) -> str | None:
        if value is not None and not isinstance(value, str):
            raise AccountValidationError(
                "description", f"expected text, got {type(value).__name__}"
            )
        return value

    @staticmethod
    def _validate_name(name: Any) -> str:
        if not isinstance(name, str) or not name.strip():
            raise AccountValidationError("name", "name is required")
        name = name.strip()
        if len(name) > _MAX_NAME_LENGTH:
            raise AccountValidationError("name", f"longer than {_MAX_NAME_LENGTH} characters")
        return name

    @staticmethod
    def _validate_code(code: Any) -> str:
        if not isinstance(code, str) or not code.strip():
            raise InvalidAccountCodeError(str(code), "code is required")
        code = code.strip()
        if len(code) > _MAX_CODE_LENGTH:
            raise InvalidAccountCodeError(code, f"longer than {_MAX_CODE_LENGTH} characters")
        if not _CODE_PATTERN.match(code):
            raise InvalidAccountCodeError(code, "only letters, digits, '.' and '-' are allowed")
        return code

    def _validate_opening_balance(self, value: Any) -> Decimal:
        amount = self.math.to_decimal(value)
        if not self.math.fits_scale(amount):
            raise AccountValidationError(
                "opening_balance",
                f"more than {self.math.scale} decimal places",
                invariant="field",
            )
        return amount

    @staticmethod
    def _children_index(accounts: Iterable[AccountData]) -> dict[UUID, list[AccountData]]:
        index: dict[UUID, list[AccountData]] = defaultdict(list)
        for account in accounts:
            if account.parent_account_id is not None:
                index[account.parent_account_id].append(account)
        return index
