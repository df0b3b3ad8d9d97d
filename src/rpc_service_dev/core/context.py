"""Cancellation context threaded through every remote call."""

import threading
import time
from typing import Optional

from .errors import OperationCancelled


class CallContext:
    """
    Cancel flag plus an optional deadline.

    The transport checks the context before sending a request and while
    waiting for the reply; the dump loop checks it before every chunk.

    Example:
        ctx = CallContext(timeout=60)
        service.get_info("sfl0", ctx=ctx)
        ctx.cancel()  # from another thread or a signal handler
    """

    def __init__(self, timeout: Optional[float] = None, clock=time.monotonic):
        self._clock = clock
        self._cancelled = threading.Event()
        self.deadline: Optional[float] = None
        if timeout is not None:
            self.deadline = clock() + timeout

    def cancel(self) -> None:
        """Cancel the context. Pending and future calls fail."""
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    @property
    def expired(self) -> bool:
        return self.deadline is not None and self._clock() >= self.deadline

    def remaining(self) -> Optional[float]:
        """Seconds left until the deadline, None if there is no deadline."""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - self._clock())

    def check(self) -> None:
        """
        Raise if the context is no longer usable.

        Raises:
            OperationCancelled: If cancelled or past the deadline
        """
        if self.cancelled:
            raise OperationCancelled("operation cancelled")
        if self.expired:
            raise OperationCancelled("operation deadline exceeded")


def background() -> CallContext:
    """A context that is never cancelled and has no deadline."""
    return CallContext()
