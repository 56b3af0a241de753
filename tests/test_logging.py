"""
Tests for the kernel's structured log output.

Checks the JSON payloads the services actually emit, the tenant fields
ChartOfAccountsAPI binds around each operation, and how a kernel error
is rendered when logged with its traceback.
"""

import logging
from datetime import date
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from coa_kernel.db.engine import session_scope
from coa_kernel.domain.classification import AccountStatus, AccountSubType, AccountType
from coa_kernel.domain.dtos import NewAccount
from coa_kernel.exceptions import HasChildrenError
from coa_kernel.logging_config import LogContext, configure_logging, get_logger, reset_logging


def _new(company_id, name, **kwargs):
    return NewAccount(
        company_id=company_id,
        name=name,
        account_type=AccountType.ASSET,
        sub_type=AccountSubType.CURRENT_ASSET,
        **kwargs,
    )


def _only(records, message):
    matching = [r for r in records if r["message"] == message]
    assert len(matching) == 1, [r["message"] for r in records]
    return matching[0]


class TestEventPayloads:

    def test_account_created(self, api, company_id, captured_logs):
        cash = api.create_account(_new(company_id, "Cash")).value

        record = _only(captured_logs(), "account_created")
        assert record["level"] == "INFO"
        assert record["logger"] == "coa_kernel.services.hierarchy_manager"
        assert record["account_id"] == str(cash.id)
        assert record["code"] == "1000"
        assert record["account_type"] == "asset"
        assert record["sub_type"] == "current_asset"
        assert record["account_level"] == 0

    def test_account_reparented(self, api, company_id, captured_logs):
        top = api.create_account(_new(company_id, "Top", is_control_account=True)).value
        mid = api.create_account(_new(company_id, "Mid", is_control_account=True)).value
        api.create_account(_new(company_id, "Leaf", parent_account_id=mid.id))

        api.reparent_account(company_id, mid.id, top.id)

        record = _only(captured_logs(), "account_reparented")
        assert record["account_id"] == str(mid.id)
        assert record["old_parent_id"] is None
        assert record["new_parent_id"] == str(top.id)
        assert record["new_level"] == 1
        assert record["descendants_relevelled"] == 1

    def test_balance_computed(self, api, store, company_id, captured_logs):
        cash = api.create_account(_new(company_id, "Cash", opening_balance=Decimal("1000.00"))).value
        store.record_activity(cash.id, date(2024, 1, 1), Decimal("50.00"))

        api.get_account_balance(company_id, cash.id)

        record = _only(captured_logs(), "balance_computed")
        assert record["net_balance"] == "1050.00"
        assert record["as_of_date"] == "2024-01-01"
        assert record["fetches"] == 1

    def test_operation_failed(self, api, company_id, captured_logs):
        cash = api.create_account(_new(company_id, "Cash", is_control_account=True)).value
        api.create_account(_new(company_id, "Petty Cash", parent_account_id=cash.id))

        api.delete_account(company_id, cash.id)

        record = _only(captured_logs(), "operation_failed")
        assert record["operation"] == "delete_account"
        assert record["result_status"] == "blocked"
        assert record["error_code"] == "HAS_CHILDREN"
        assert record["account_id"] == str(cash.id)
        assert record["company_id"] == str(company_id)

    def test_successful_operation_logs_no_failure(self, api, company_id, captured_logs):
        api.create_account(_new(company_id, "Cash"))
        assert not [r for r in captured_logs() if r["message"] == "operation_failed"]


class TestApiContext:

    def test_tenant_bound_for_service_records(self, api, company_id, captured_logs):
        cash = api.create_account(_new(company_id, "Cash")).value

        api.change_status(company_id, cash.id, AccountStatus.INACTIVE)

        # account_status_changed carries no company_id of its own
        record = _only(captured_logs(), "account_status_changed")
        assert record["company_id"] == str(company_id)
        assert record["from_status"] == "active"
        assert record["to_status"] == "inactive"

    def test_context_released_after_call(self, api, company_id):
        api.get_account(company_id, uuid4())
        assert LogContext.current() == {}

    def test_records_outside_api_have_no_tenant(self, manager, company_id, captured_logs):
        cash = manager.create_account(_new(company_id, "Cash"))
        manager.change_status(cash.id, AccountStatus.INACTIVE)

        record = _only(captured_logs(), "account_status_changed")
        assert "company_id" not in record


class TestBind:

    def test_nested_bind_restores_outer(self):
        with LogContext.bind(company_id="outer", account_id="a1"):
            with LogContext.bind(account_id="a2"):
                assert LogContext.current() == {"company_id": "outer", "account_id": "a2"}
            assert LogContext.current() == {"company_id": "outer", "account_id": "a1"}
        assert LogContext.current() == {}

    def test_none_keeps_outer_value(self):
        company_id = uuid4()
        with LogContext.bind(company_id=company_id):
            with LogContext.bind(company_id=None, account_id=None):
                assert LogContext.current() == {"company_id": str(company_id)}

    def test_restored_when_block_raises(self):
        with pytest.raises(RuntimeError):
            with LogContext.bind(company_id="co"):
                raise RuntimeError("boom")
        assert LogContext.current() == {}

    def test_unknown_field_rejected(self):
        with pytest.raises(ValueError, match="producer"):
            with LogContext.bind(producer="ap"):
                pass


class TestKernelErrorRendering:

    def test_rolled_back_transaction_carries_error_details(self, db_engine, captured_logs):
        with pytest.raises(HasChildrenError):
            with session_scope():
                raise HasChildrenError("acc-1", 2)

        record = _only(captured_logs(), "transaction_rolled_back")
        assert record["level"] == "WARNING"
        assert record["exc_type"] == "HasChildrenError"
        assert record["error_code"] == "HAS_CHILDREN"
        assert record["error_details"] == {"account_id": "acc-1", "child_count": 2}
        assert "Traceback" in record["traceback"]


class TestConfiguration:

    @pytest.fixture
    def fresh_logging(self):
        reset_logging()
        yield
        reset_logging()
        configure_logging(level=logging.DEBUG)

    def test_configure_is_idempotent(self, fresh_logging):
        first, second = StringIO(), StringIO()
        configure_logging(stream=first)
        configure_logging(stream=second)

        get_logger("services.hierarchy_manager").info("account_created")

        assert '"account_created"' in first.getvalue()
        assert second.getvalue() == ""

    def test_level_filters_debug(self, fresh_logging):
        stream = StringIO()
        configure_logging(level=logging.INFO, stream=stream)

        get_logger("services.code_generator").debug("account_code_suggested")

        assert stream.getvalue() == ""
