"""
Pytest fixtures for the chart-of-accounts kernel test suite.

Provides:
- Structured logging configured once per session, plus a capture fixture
- In-memory Ledger Store and fully wired services for most tests
- A file-backed SQLite database for store and concurrency tests
- Factory fixtures for accounts and posted activity

Environment Variables:
- DATABASE_URL: optional SQLAlchemy URL for the SQL store tests.  When not
  set, each test gets its own SQLite file under pytest's tmp_path.
"""

import json
import logging
import os
from datetime import date, datetime, timezone
from decimal import Decimal
from io import StringIO
from typing import Generator
from uuid import UUID, uuid4

import pytest
from sqlalchemy.orm import Session

from coa_kernel.api import ChartOfAccountsAPI
from coa_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from coa_kernel.domain.classification import AccountSubType, AccountType
from coa_kernel.domain.clock import DeterministicClock
from coa_kernel.domain.decimal_math import DecimalMath
from coa_kernel.domain.dtos import AccountData, NewAccount
from coa_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from coa_kernel.store.memory import InMemoryLedgerStore
from coa_kernel.store.sqlalchemy_store import SqlAlchemyLedgerStore

# The deterministic clock's "today"
TODAY = date(2024, 1, 1)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """Capture structured log records emitted under ``coa_kernel``.

    Usage:
        def test_something(captured_logs, manager):
            manager.create_account(...)
            records = captured_logs()
            assert any(r["message"] == "account_created" for r in records)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("coa_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Core fixtures
# =============================================================================


@pytest.fixture
def deterministic_clock() -> DeterministicClock:
    return DeterministicClock(datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def company_id() -> UUID:
    return uuid4()


@pytest.fixture
def other_company_id() -> UUID:
    return uuid4()


@pytest.fixture
def math() -> DecimalMath:
    return DecimalMath()


@pytest.fixture
def store(math) -> InMemoryLedgerStore:
    return InMemoryLedgerStore(math)


@pytest.fixture
def api(store, math, deterministic_clock) -> ChartOfAccountsAPI:
    return ChartOfAccountsAPI.build(store, math=math, clock=deterministic_clock)


@pytest.fixture
def manager(api):
    return api.manager


@pytest.fixture
def aggregator(api):
    return api.balance_aggregator


@pytest.fixture
def code_generator(api):
    return api.code_generator


# =============================================================================
# Test data generators
# =============================================================================


@pytest.fixture
def create_account(manager, company_id):
    """Factory fixture to create accounts through the HierarchyManager."""

    def _create_account(
        name: str,
        account_type: AccountType = AccountType.ASSET,
        sub_type: AccountSubType = AccountSubType.CURRENT_ASSET,
        parent: AccountData | None = None,
        **kwargs,
    ) -> AccountData:
        kwargs.setdefault("company_id", company_id)
        return manager.create_account(
            NewAccount(
                name=name,
                account_type=account_type,
                sub_type=sub_type,
                parent_account_id=parent.id if parent is not None else None,
                **kwargs,
            )
        )

    return _create_account


@pytest.fixture
def post(store):
    """Factory fixture to record one debit or credit leg."""

    def _post(
        account: AccountData,
        debit: str = "0",
        credit: str = "0",
        entry_date: date = TODAY,
    ) -> None:
        store.record_activity(account.id, entry_date, Decimal(debit), Decimal(credit))

    return _post


# =============================================================================
# SQL database fixtures
# =============================================================================


def get_database_url(tmp_path) -> str:
    """Database URL from the environment, or a fresh SQLite file."""
    return os.environ.get("DATABASE_URL", f"sqlite:///{tmp_path / 'coa_test.db'}")


@pytest.fixture
def db_engine(tmp_path):
    """Engine with all kernel tables created; disposed at teardown."""
    engine = init_engine_from_url(get_database_url(tmp_path))
    create_tables()
    yield engine
    drop_tables()
    reset_engine()


@pytest.fixture
def session(db_engine) -> Generator[Session, None, None]:
    """Provide a database session; uncommitted work is rolled back at teardown."""
    sess = get_session()
    yield sess
    try:
        sess.rollback()
    finally:
        sess.close()


@pytest.fixture
def session_factory(db_engine):
    """Session factory for tests that open one session per thread."""
    return get_session_factory()


@pytest.fixture
def sql_store(session, math) -> SqlAlchemyLedgerStore:
    return SqlAlchemyLedgerStore(session, math)


@pytest.fixture
def sql_api(sql_store, math, deterministic_clock) -> ChartOfAccountsAPI:
    return ChartOfAccountsAPI.build(sql_store, math=math, clock=deterministic_clock)
