"""Ledger Store contract and its implementations."""

from coa_kernel.store.base import LedgerStore
from coa_kernel.store.memory import InMemoryLedgerStore
from coa_kernel.store.sqlalchemy_store import SqlAlchemyLedgerStore

__all__ = [
    "LedgerStore",
    "InMemoryLedgerStore",
    "SqlAlchemyLedgerStore",
]
