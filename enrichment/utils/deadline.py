"""
Caller-supplied deadline and cancellation signal for store operations.

A Deadline is created by the caller and passed down through the resolver to
every store call. The store checks it before touching the database, caps the
SQLite busy timeout by the time remaining, and aborts a running statement
when it fires.
"""
import threading
import time
from typing import Optional

from enrichment.services.errors import (
    DeadlineExceededError,
    EntityError,
    OperationCancelledError,
)


class Deadline:
    """
    Deadline plus explicit cancellation, safe to share across threads.

    Args:
        timeout: Seconds from now until expiry (None = no time limit)
    """

    def __init__(self, timeout: Optional[float] = None):
        self._expires_at = time.monotonic() + timeout if timeout is not None else None
        self._cancelled = threading.Event()

    def cancel(self) -> None:
        """Signal cancellation to every operation holding this deadline."""
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    @property
    def expired(self) -> bool:
        return self._expires_at is not None and time.monotonic() >= self._expires_at

    @property
    def done(self) -> bool:
        """True once cancelled or expired."""
        return self.cancelled or self.expired

    def remaining(self) -> Optional[float]:
        """Seconds left, clamped at 0, or None without a time limit."""
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - time.monotonic())

    def error(self, operation: str) -> Optional[EntityError]:
        """The error describing why the caller gave up, or None if it has not."""
        if self.cancelled:
            return OperationCancelledError(operation)
        if self.expired:
            return DeadlineExceededError(operation)
        return None

    def check(self, operation: str) -> None:
        """
        Raise if the caller has given up.

        Raises:
            OperationCancelledError: cancel() was called
            DeadlineExceededError: the timeout elapsed
        """
        error = self.error(operation)
        if error is not None:
            raise error
