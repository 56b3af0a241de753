"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Provides the common constructor and store-handling contract for every
    service in the kernel layer.  Services receive a LedgerStore and never
    manage the outer transaction themselves.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    - Transaction boundaries: services write through the store (which
      flushes within the caller's transaction) and never commit.  Multi-row
      writes are wrapped in ``store.transaction()`` so they are atomic.

Failure modes:
    - If a subclass writes outside ``store.transaction()`` across several
      rows, a failure part-way through leaves a partially applied change.
"""

from abc import ABC

from coa_kernel.domain.clock import Clock, SystemClock
from coa_kernel.store.base import LedgerStore


class BaseService(ABC):
    """
    Abstract base class for all kernel services.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
    """

    def __init__(self, store: LedgerStore, clock: Clock | None = None):
        """
        Initialize the service.

        Args:
            store: Ledger Store for reads and writes.
            clock: Time source; defaults to the system clock.
        """
        self.store = store
        self.clock = clock or SystemClock()
