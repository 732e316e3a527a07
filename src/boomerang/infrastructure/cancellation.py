"""Cancellation tokens for in-progress calls"""

from __future__ import annotations

import threading
import time
from typing import Optional


class CancelToken:
    """Signal that aborts a call's remaining attempts and backoff sleeps.

    A token fires when cancel() is called or, if it carries a deadline, when
    the deadline passes. A single token may be shared by several calls.
    """

    def __init__(self, deadline: Optional[float] = None):
        """Create a token

        Args:
            deadline: Absolute time.monotonic() value after which the token fires
        """
        self._event = threading.Event()
        self.deadline = deadline

    @classmethod
    def with_timeout(cls, seconds: float) -> "CancelToken":
        """Create a token that fires after the given number of seconds"""
        return cls(deadline=time.monotonic() + seconds)

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        return self.deadline is not None and time.monotonic() >= self.deadline

    def remaining(self) -> Optional[float]:
        """Seconds left until the deadline (None when there is no deadline)"""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def wait(self, seconds: float) -> bool:
        """Block for up to the given number of seconds

        Returns:
            True if the token fired before the time elapsed
        """
        remaining = self.remaining()
        if remaining is not None and remaining < seconds:
            # The deadline passes before the sleep ends
            self._event.wait(remaining)
            return True
        return self._event.wait(seconds) or self.cancelled
