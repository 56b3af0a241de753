"""SQLAlchemy ORM models for the chart-of-accounts kernel."""

from coa_kernel.models.account import Account
from coa_kernel.models.activity import LedgerActivity

__all__ = [
    "Account",
    "LedgerActivity",
]
