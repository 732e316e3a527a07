"""Circuit breaker configuration model."""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class CircuitBreakerConfig(BaseModel):
    """Configuration for the circuit breaker wrapping each attempt.

    The circuit opens when, within the rolling window, at least
    request_volume_threshold attempts were made and at least
    error_percent_threshold percent of them failed. failure_threshold
    additionally opens it after that many consecutive failures.

    Attributes:
        command_name: Name the breaker is registered under
        timeout: Per-attempt timeout in seconds (None = client timeout)
        max_concurrent_requests: Attempts allowed to run at once
        request_volume_threshold: Attempts in the window before the error rate is considered
        error_percent_threshold: Failure percentage that opens the circuit
        rolling_window: Length of the statistics window in seconds
        reset_timeout: Seconds the circuit stays open before a trial call
        failure_threshold: Consecutive failures that open the circuit (None = disabled)
    """

    command_name: str = Field(..., min_length=1)
    timeout: Optional[float] = Field(None, gt=0.0)
    max_concurrent_requests: int = Field(10, gt=0)
    request_volume_threshold: int = Field(20, gt=0)
    error_percent_threshold: int = Field(50, ge=0, le=100)
    rolling_window: float = Field(10.0, gt=0.0)
    reset_timeout: float = Field(5.0, gt=0.0)
    failure_threshold: Optional[int] = Field(None, gt=0)

    model_config = ConfigDict(frozen=True, extra="forbid")
