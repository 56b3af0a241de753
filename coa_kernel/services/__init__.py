"""
Kernel services.

Services own the imperative shell: they validate against the pure domain,
persist through a LedgerStore, and log every mutation.
"""

from coa_kernel.services.balance_aggregator import BalanceAggregator
from coa_kernel.services.base import BaseService
from coa_kernel.services.code_generator import AccountCodeGenerator
from coa_kernel.services.hierarchy_manager import HierarchyManager, HierarchyPolicy

__all__ = [
    "BaseService",
    "AccountCodeGenerator",
    "BalanceAggregator",
    "HierarchyManager",
    "HierarchyPolicy",
]
