"""HTTP client configuration model."""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from boomerang.domain.config.backoff import BackoffConfig
from boomerang.domain.config.breaker import CircuitBreakerConfig
from boomerang.domain.config.metrics import MetricsConfig
from boomerang.domain.config.retry import RetryPolicyConfig

DEFAULT_TIMEOUT = 10.0
DEFAULT_MAX_RETRIES = 1


class ClientConfig(BaseModel):
    """Configuration for HttpClient.

    The model is immutable; a client keeps the instance it was built with.

    Attributes:
        timeout: Per-attempt transport timeout in seconds
        max_retries: Retries after the first attempt (total attempts = max_retries + 1)
        backoff: Backoff strategy configuration
        retry_policy: Retry policy configuration
        metrics: Metrics configuration
        circuit_breaker: Circuit breaker configuration (None = no breaker)
    """

    timeout: float = Field(DEFAULT_TIMEOUT, gt=0.0)
    max_retries: int = Field(DEFAULT_MAX_RETRIES, ge=0, le=100)
    backoff: BackoffConfig = Field(default_factory=BackoffConfig)
    retry_policy: RetryPolicyConfig = Field(default_factory=RetryPolicyConfig)
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)
    circuit_breaker: Optional[CircuitBreakerConfig] = None

    model_config = ConfigDict(frozen=True, extra="forbid")
