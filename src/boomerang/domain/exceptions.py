"""Error taxonomy for the resilient HTTP client."""

from typing import List, Optional

from boomerang.domain.models.outcome import AttemptOutcome


class BoomerangError(Exception):
    """Base class for all errors raised by boomerang."""

    pass


class ConfigurationError(BoomerangError):
    """Configuration validation error."""

    pass


class MetricsRegistrationError(ConfigurationError):
    """Raised when metric collectors are registered twice under the same names."""

    pass


class RequestBuildError(BoomerangError, ValueError):
    """Raised when a request cannot be built (bad method, URL or body)."""

    pass


class BodyRewindError(BoomerangError):
    """Raised when the request body cannot be seeked back before an attempt."""

    def __init__(self, method: str, url: str, cause: Exception):
        self.method = method
        self.url = url
        super().__init__(f"{method} {url}: failed to seek body: {cause}")


class RequestCancelledError(BoomerangError):
    """Raised when a call is cancelled or its deadline passes."""

    def __init__(self, method: str, url: str, attempts: int):
        self.method = method
        self.url = url
        self.attempts = attempts
        super().__init__(f"{method} {url} cancelled after {attempts} attempts")


class RetryExhaustedError(BoomerangError):
    """Raised when every attempt ended in a retryable outcome.

    Attributes:
        method: HTTP method of the request
        url: Target URL of the request
        attempts: Number of attempts made
        history: Outcome of every attempt, oldest first
        last_exception: Error of the last attempt, if it had one
    """

    def __init__(
        self,
        method: str,
        url: str,
        attempts: int,
        history: Optional[List[AttemptOutcome]] = None,
        last_exception: Optional[BaseException] = None,
    ):
        self.method = method
        self.url = url
        self.attempts = attempts
        self.history = list(history or [])
        self.last_exception = last_exception
        super().__init__(f"{method} {url} giving up after {attempts} attempts")

    @property
    def status_codes(self) -> List[int]:
        """Status code of each attempt (0 when no response was received)"""
        return [outcome.status_code for outcome in self.history]


class BreakerRejectedError(BoomerangError):
    """Raised when the circuit breaker refuses to run an attempt."""

    def __init__(self, command_name: str, reason: str):
        self.command_name = command_name
        super().__init__(f"{command_name}: {reason}")


class CircuitOpenError(BreakerRejectedError):
    """The circuit for the command is open."""

    def __init__(self, command_name: str):
        super().__init__(command_name, "circuit open")


class MaxConcurrencyError(BreakerRejectedError):
    """The command already runs its maximum number of concurrent attempts."""

    def __init__(self, command_name: str):
        super().__init__(command_name, "max concurrency")
