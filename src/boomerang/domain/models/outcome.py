"""Attempt outcome and retry decision models"""

from dataclasses import dataclass
from typing import Optional

import requests


@dataclass(frozen=True)
class RetryDecision:
    """Result of a retry policy.

    Attributes:
        should_retry: Whether another attempt should be made
        error: Error to surface instead of the natural one (None = keep it)
    """

    should_retry: bool
    error: Optional[BaseException] = None


@dataclass(frozen=True)
class AttemptOutcome:
    """Result of one transport call.

    Exactly one of response and error is set.

    Attributes:
        attempt: Attempt number, starting at 1
        started_at: Wall-clock timestamp when the attempt started
        elapsed: Duration of the attempt in seconds
        response: Response received from the transport
        error: Transport-level failure
    """

    attempt: int
    started_at: float
    elapsed: float
    response: Optional[requests.Response] = None
    error: Optional[BaseException] = None

    @property
    def status_code(self) -> int:
        """Status code of the response, 0 when there is none"""
        if self.response is None:
            return 0
        return self.response.status_code or 0

    def describe(self) -> str:
        if self.error is not None:
            return f"attempt {self.attempt}: {type(self.error).__name__}: {self.error}"
        return f"attempt {self.attempt}: status {self.status_code}"
