"""
Tests for the account status lifecycle, posting eligibility and deletion.

Active -> Inactive -> Archived; Archived is terminal without an
administrative override.  Delete is refused while children or activity
exist, and can fall back to archiving.
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from coa_kernel.domain.classification import AccountStatus, AccountType
from coa_kernel.exceptions import (
    AccountNotFoundError,
    AccountNotPostableError,
    HasActivityError,
    HasChildrenError,
    InvalidStatusTransitionError,
    TypeMismatchError,
)


class TestStatusChanges:

    def test_deactivate_and_reactivate(self, manager, create_account):
        cash = create_account("Cash")
        inactive = manager.change_status(cash.id, AccountStatus.INACTIVE)
        assert inactive.status == AccountStatus.INACTIVE
        active = manager.change_status(cash.id, AccountStatus.ACTIVE)
        assert active.status == AccountStatus.ACTIVE

    def test_archived_is_terminal(self, manager, create_account):
        cash = create_account("Cash")
        manager.change_status(cash.id, AccountStatus.ARCHIVED)
        with pytest.raises(InvalidStatusTransitionError) as exc_info:
            manager.change_status(cash.id, AccountStatus.ACTIVE)
        assert exc_info.value.from_status == "archived"
        assert exc_info.value.to_status == "active"

    def test_override_unarchives(self, manager, create_account):
        cash = create_account("Cash")
        manager.archive_account(cash.id)
        restored = manager.change_status(
            cash.id, AccountStatus.ACTIVE, administrative_override=True
        )
        assert restored.status == AccountStatus.ACTIVE

    def test_reactivation_revalidates_parent(self, manager, store, create_account):
        """A corrupted parent link is caught when the account becomes usable again."""
        cash = create_account("Cash")
        petty = create_account("Petty Cash", parent=cash)
        manager.change_status(petty.id, AccountStatus.INACTIVE)
        store.update_account(cash.id, {"account_type": AccountType.EXPENSE})

        with pytest.raises(TypeMismatchError):
            manager.change_status(petty.id, AccountStatus.ACTIVE)

    def test_same_status_is_noop(self, manager, create_account, captured_logs):
        cash = create_account("Cash")
        assert manager.change_status(cash.id, AccountStatus.ACTIVE) == cash
        assert not [r for r in captured_logs() if r["message"] == "account_status_changed"]

    def test_archive_is_idempotent(self, manager, create_account):
        cash = create_account("Cash")
        first = manager.archive_account(cash.id)
        second = manager.archive_account(cash.id)
        assert first == second
        assert second.is_archived

    def test_archive_logged(self, manager, create_account, captured_logs):
        cash = create_account("Cash")
        manager.archive_account(cash.id)
        records = [r for r in captured_logs() if r["message"] == "account_archived"]
        assert records[0]["previous_status"] == "active"


class TestBulkStatus:

    def test_all_or_nothing(self, manager, create_account):
        cash = create_account("Cash")
        bank = create_account("Bank")
        old = create_account("Old")
        manager.archive_account(old.id)

        with pytest.raises(InvalidStatusTransitionError):
            manager.bulk_update_status(
                cash.company_id, [cash.id, bank.id, old.id], AccountStatus.INACTIVE
            )

        assert manager.get_account(cash.id).status == AccountStatus.ACTIVE
        assert manager.get_account(bank.id).status == AccountStatus.ACTIVE

    def test_bulk_deactivate(self, manager, create_account):
        cash = create_account("Cash")
        bank = create_account("Bank")
        result = manager.bulk_update_status(
            cash.company_id, [cash.id, bank.id], AccountStatus.INACTIVE
        )
        assert [a.status for a in result] == [AccountStatus.INACTIVE] * 2

    def test_unknown_id_rejects_batch(self, manager, create_account):
        cash = create_account("Cash")
        with pytest.raises(AccountNotFoundError):
            manager.bulk_update_status(cash.company_id, [cash.id, uuid4()], AccountStatus.INACTIVE)
        assert manager.get_account(cash.id).status == AccountStatus.ACTIVE


class TestPostable:

    def test_leaf_is_postable(self, manager, create_account):
        cash = create_account("Cash")
        assert manager.assert_postable(cash.id) == cash

    def test_archived_not_postable(self, manager, create_account):
        cash = create_account("Cash")
        manager.archive_account(cash.id)
        with pytest.raises(AccountNotPostableError, match="archived"):
            manager.assert_postable(cash.id)

    def test_inactive_not_postable(self, manager, create_account):
        cash = create_account("Cash")
        manager.change_status(cash.id, AccountStatus.INACTIVE)
        with pytest.raises(AccountNotPostableError, match="inactive"):
            manager.assert_postable(cash.id)

    def test_control_without_direct_postings(self, manager, create_account):
        assets = create_account(
            "Assets", is_control_account=True, allow_direct_transactions=False
        )
        with pytest.raises(AccountNotPostableError, match="control"):
            manager.assert_postable(assets.id)

    def test_control_allowing_direct_postings(self, manager, create_account):
        cash = create_account("Cash", is_control_account=True, allow_direct_transactions=True)
        assert manager.assert_postable(cash.id) == cash


class TestDelete:

    def test_delete_leaf(self, manager, create_account, captured_logs):
        cash = create_account("Cash")
        assert manager.delete_account(cash.id) is None
        with pytest.raises(AccountNotFoundError):
            manager.get_account(cash.id)
        assert [r for r in captured_logs() if r["message"] == "account_deleted"]

    def test_deleted_code_can_be_reused(self, manager, create_account):
        cash = create_account("Cash", code="1000")
        manager.delete_account(cash.id)
        assert create_account("Bank", code="1000").code == "1000"

    def test_delete_with_child_then_archive(self, manager, create_account):
        cash = create_account("Cash", is_control_account=True)
        create_account("Petty Cash", parent=cash)

        with pytest.raises(HasChildrenError) as exc_info:
            manager.delete_account(cash.id)
        assert exc_info.value.child_count == 1

        archived = manager.archive_account(cash.id)
        assert archived.status == AccountStatus.ARCHIVED

    def test_archived_children_still_block_delete(self, manager, create_account):
        cash = create_account("Cash")
        petty = create_account("Petty Cash", parent=cash)
        manager.archive_account(petty.id)
        with pytest.raises(HasChildrenError):
            manager.delete_account(cash.id)

    def test_delete_with_activity(self, manager, create_account, post):
        cash = create_account("Cash")
        post(cash, debit="1.00")
        with pytest.raises(HasActivityError):
            manager.delete_account(cash.id)

    def test_archive_instead(self, manager, create_account, post):
        cash = create_account("Cash")
        post(cash, credit="1.00")
        result = manager.delete_account(cash.id, archive_instead=True)
        assert result.is_archived
        assert manager.get_account(cash.id).is_archived

    def test_opening_balance_alone_does_not_block(self, manager, create_account):
        cash = create_account("Cash", opening_balance=Decimal("100.00"))
        assert manager.delete_account(cash.id) is None

    def test_other_tenant_cannot_delete(self, manager, create_account, other_company_id):
        cash = create_account("Cash")
        with pytest.raises(AccountNotFoundError):
            manager.delete_account(cash.id, company_id=other_company_id)
        assert manager.get_account(cash.id) == cash
