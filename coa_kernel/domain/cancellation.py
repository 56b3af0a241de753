"""
CancellationToken -- cooperative cancellation for long-running reads.

The BalanceAggregator checks the token before every store fetch, so a
cancelled or expired token stops a recursive aggregation between fetches
rather than after the whole tree has been walked.
"""

import threading
import time

from coa_kernel.exceptions import AggregationCancelledError


class CancellationToken:
    """
    Thread-safe cancellation flag with an optional monotonic deadline.

    Args:
        timeout_seconds: If given, the token expires this many seconds
            after construction.
    """

    def __init__(self, timeout_seconds: float | None = None):
        self._event = threading.Event()
        self._reason: str | None = None
        self._deadline = (
            time.monotonic() + timeout_seconds if timeout_seconds is not None else None
        )

    def cancel(self, reason: str = "cancelled by caller") -> None:
        if not self._event.is_set():
            self._reason = reason
            self._event.set()

    @property
    def is_cancelled(self) -> bool:
        if self._event.is_set():
            return True
        return self._deadline is not None and time.monotonic() >= self._deadline

    @property
    def reason(self) -> str | None:
        if self._event.is_set():
            return self._reason
        if self.is_cancelled:
            return "deadline exceeded"
        return None

    def raise_if_cancelled(self, account_id: object) -> None:
        if self.is_cancelled:
            raise AggregationCancelledError(str(account_id), self.reason or "cancelled")
