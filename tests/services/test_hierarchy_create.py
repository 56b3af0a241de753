"""
Tests for HierarchyManager.create_account.

Verifies:
- Generated codes (first Asset 1000, first child 1001) and levels
- Sub-type, parent-type and archived-parent validation
- Supplied-code uniqueness and format
- Retry of a generated code that loses a race, then CodeConflictError
"""

from dataclasses import replace
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from coa_kernel.domain.classification import AccountStatus, AccountSubType, AccountType
from coa_kernel.domain.dtos import NewAccount
from coa_kernel.exceptions import (
    AccountNotFoundError,
    AccountValidationError,
    ArchivedAccountError,
    CodeConflictError,
    DuplicateCodeError,
    InvalidAccountCodeError,
    InvalidAmountError,
    InvalidSubTypeError,
    TreeTooDeepError,
    TypeMismatchError,
)
from coa_kernel.services.hierarchy_manager import HierarchyManager, HierarchyPolicy
from coa_kernel.store.memory import InMemoryLedgerStore


class TestCreateRoot:

    def test_first_asset_gets_band_start(self, create_account, deterministic_clock):
        cash = create_account("Cash")
        assert cash.code == "1000"
        assert cash.level == 0
        assert cash.parent_account_id is None
        assert cash.status == AccountStatus.ACTIVE
        assert cash.currency == "USD"
        assert cash.created_at == deterministic_clock.now()

    def test_child_code_and_level(self, create_account):
        cash = create_account("Cash")
        petty = create_account("Petty Cash", parent=cash)
        assert petty.code == "1001"
        assert petty.level == 1
        assert petty.parent_account_id == cash.id

    def test_grandchild_level(self, create_account):
        assets = create_account("Assets", is_control_account=True)
        current = create_account("Current Assets", parent=assets)
        cash = create_account("Cash", parent=current)
        assert cash.level == 2

    def test_supplied_code_is_kept(self, create_account):
        account = create_account("Cash", code="1010")
        assert account.code == "1010"

    def test_fields_are_normalised(self, create_account):
        account = create_account("  Cash  ", currency="eur", opening_balance=Decimal("12.50"))
        assert account.name == "Cash"
        assert account.currency == "EUR"
        assert account.opening_balance == Decimal("12.50")

    def test_created_event_logged(self, create_account, captured_logs):
        account = create_account("Cash")
        records = [r for r in captured_logs() if r["message"] == "account_created"]
        assert len(records) == 1
        assert records[0]["account_id"] == str(account.id)
        assert records[0]["code"] == "1000"


class TestCreateValidation:

    def test_retained_earnings_under_asset_rejected(self, create_account):
        with pytest.raises(AccountValidationError) as exc_info:
            create_account(
                "Retained Earnings",
                account_type=AccountType.ASSET,
                sub_type=AccountSubType.RETAINED_EARNINGS,
            )
        assert isinstance(exc_info.value, InvalidSubTypeError)
        assert exc_info.value.invariant == "sub_type"
        assert exc_info.value.field == "sub_type"

    def test_unknown_sub_type_rejected(self, create_account):
        with pytest.raises(InvalidSubTypeError):
            create_account("Cash", sub_type="petty_cash")

    def test_parent_type_must_match(self, create_account):
        cash = create_account("Cash")
        with pytest.raises(TypeMismatchError) as exc_info:
            create_account(
                "Rent",
                account_type=AccountType.EXPENSE,
                sub_type=AccountSubType.OPERATING_EXPENSE,
                parent=cash,
            )
        assert exc_info.value.parent_id == str(cash.id)

    def test_archived_parent_rejected(self, create_account, manager):
        cash = create_account("Cash")
        manager.archive_account(cash.id)
        archived = manager.get_account(cash.id)
        with pytest.raises(ArchivedAccountError):
            create_account("Petty Cash", parent=archived)

    def test_parent_must_exist_in_company(
        self, create_account, manager, other_company_id
    ):
        cash = create_account("Cash")
        with pytest.raises(AccountNotFoundError):
            create_account("Petty Cash", parent=cash, company_id=other_company_id)

    def test_duplicate_supplied_code(self, create_account):
        create_account("Cash", code="1000")
        with pytest.raises(DuplicateCodeError) as exc_info:
            create_account("Bank", code="1000")
        assert exc_info.value.account_code == "1000"

    def test_same_code_in_another_company_is_fine(self, create_account, other_company_id):
        create_account("Cash", code="1000")
        other = create_account("Cash", code="1000", company_id=other_company_id)
        assert other.code == "1000"

    @pytest.mark.parametrize("code", ["", "  ", "10 00", "-100", "x" * 51])
    def test_malformed_code(self, create_account, code):
        with pytest.raises(InvalidAccountCodeError):
            create_account("Cash", code=code)

    @pytest.mark.parametrize("name", ["", "   ", "x" * 256])
    def test_invalid_name(self, create_account, name):
        with pytest.raises(AccountValidationError) as exc_info:
            create_account(name)
        assert exc_info.value.field == "name"

    def test_invalid_currency(self, create_account):
        with pytest.raises(AccountValidationError) as exc_info:
            create_account("Cash", currency="XXY")
        assert exc_info.value.field == "currency"

    def test_opening_balance_beyond_scale(self, create_account):
        with pytest.raises(AccountValidationError) as exc_info:
            create_account("Cash", opening_balance=Decimal("1.005"))
        assert exc_info.value.field == "opening_balance"

    def test_float_opening_balance(self, create_account):
        with pytest.raises(InvalidAmountError):
            create_account("Cash", opening_balance=10.5)

    def test_cannot_create_archived(self, create_account):
        with pytest.raises(AccountValidationError):
            create_account("Cash", status=AccountStatus.ARCHIVED)

    def test_depth_limit(self, store, company_id, deterministic_clock):
        manager = HierarchyManager(
            store, clock=deterministic_clock, policy=HierarchyPolicy(max_tree_depth=3)
        )
        parent = None
        for name in ("L0", "L1", "L2"):
            parent = manager.create_account(
                NewAccount(
                    company_id=company_id,
                    name=name,
                    account_type=AccountType.ASSET,
                    sub_type=AccountSubType.CURRENT_ASSET,
                    parent_account_id=parent.id if parent else None,
                )
            )
        assert parent.level == 2
        with pytest.raises(TreeTooDeepError):
            manager.create_account(
                NewAccount(
                    company_id=company_id,
                    name="L3",
                    account_type=AccountType.ASSET,
                    sub_type=AccountSubType.CURRENT_ASSET,
                    parent_account_id=parent.id,
                )
            )

    def test_nothing_written_on_failure(self, create_account, store, company_id):
        cash = create_account("Cash")
        with pytest.raises(TypeMismatchError):
            create_account(
                "Sales",
                account_type=AccountType.REVENUE,
                sub_type=AccountSubType.OPERATING_REVENUE,
                parent=cash,
            )
        assert [a.name for a in store.fetch_accounts(company_id)] == ["Cash"]


class _RacingStore(InMemoryLedgerStore):
    """Store where another writer takes the first generated code just before us."""

    def __init__(self, races: int):
        super().__init__()
        self.races = races
        self.attempted_codes: list[str] = []

    def insert_account(self, account):
        self.attempted_codes.append(account.code)
        if self.races > 0:
            self.races -= 1
            super().insert_account(replace(account, id=uuid4()))
        return super().insert_account(account)


class TestGeneratedCodeRace:

    def _new(self, company_id):
        return NewAccount(
            company_id=company_id,
            name="Cash",
            account_type=AccountType.ASSET,
            sub_type=AccountSubType.CURRENT_ASSET,
        )

    def test_lost_race_is_retried(self, company_id, deterministic_clock, captured_logs):
        store = _RacingStore(races=1)
        manager = HierarchyManager(store, clock=deterministic_clock)

        account = manager.create_account(self._new(company_id))

        assert store.attempted_codes == ["1000", "1001"]
        assert account.code == "1001"
        retries = [r for r in captured_logs() if r["message"] == "account_code_conflict_retry"]
        assert len(retries) == 1

    def test_gives_up_after_max_retries(self, company_id, deterministic_clock):
        store = _RacingStore(races=10)
        manager = HierarchyManager(
            store, clock=deterministic_clock, policy=HierarchyPolicy(max_code_retries=3)
        )

        with pytest.raises(CodeConflictError) as exc_info:
            manager.create_account(self._new(company_id))

        assert exc_info.value.attempts == 3
        assert store.attempted_codes == ["1000", "1001", "1002"]

    def test_supplied_code_is_not_retried(self, company_id, deterministic_clock):
        store = _RacingStore(races=1)
        manager = HierarchyManager(store, clock=deterministic_clock)
        new = NewAccount(
            company_id=company_id,
            name="Cash",
            account_type=AccountType.ASSET,
            sub_type=AccountSubType.CURRENT_ASSET,
            code="1000",
            opening_balance_date=date(2024, 1, 1),
        )
        with pytest.raises(DuplicateCodeError):
            manager.create_account(new)
        assert store.attempted_codes == ["1000"]
