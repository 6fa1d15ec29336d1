"""Per-call cancellation and deadline handling."""

import threading
import time
from typing import Optional

from eureka_client.errors import OperationCancelled


class CallContext:
    """
    Deadline and cancellation signal for one client call.

    The timeout is turned into an absolute deadline when the context is
    created, so a context can be shared across several calls and expire
    between them. Pass a threading.Event to cancel from another thread.
    """

    def __init__(
        self,
        timeout: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
    ):
        self._deadline = time.monotonic() + timeout if timeout is not None else None
        self._cancel_event = cancel_event or threading.Event()

    @classmethod
    def background(cls) -> "CallContext":
        """A context that never expires."""
        return cls()

    def cancel(self) -> None:
        self._cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    @property
    def expired(self) -> bool:
        return self._deadline is not None and time.monotonic() >= self._deadline

    @property
    def done(self) -> bool:
        return self.cancelled or self.expired

    def remaining(self) -> Optional[float]:
        """Seconds until the deadline, or None when there is none."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def raise_if_done(self) -> None:
        if self.cancelled:
            raise OperationCancelled("context cancelled")
        if self.expired:
            raise OperationCancelled("context deadline exceeded")
