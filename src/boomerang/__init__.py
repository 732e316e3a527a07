"""boomerang - resilient HTTP client with retries, backoff and circuit breaking."""

from boomerang.domain.config import (
    AppConfig,
    BackoffConfig,
    CircuitBreakerConfig,
    ClientConfig,
    MetricsConfig,
    RetryPolicyConfig,
)
from boomerang.domain.exceptions import (
    BodyRewindError,
    BoomerangError,
    BreakerRejectedError,
    CircuitOpenError,
    ConfigurationError,
    MaxConcurrencyError,
    MetricsRegistrationError,
    RequestBuildError,
    RequestCancelledError,
    RetryExhaustedError,
)
from boomerang.domain.models.outcome import AttemptOutcome, RetryDecision
from boomerang.domain.models.request import Request
from boomerang.infrastructure.backoff import (
    Backoff,
    BackoffFunc,
    ConstantBackoff,
    ExponentialBackoff,
    JitterBackoff,
    create_backoff,
)
from boomerang.infrastructure.cancellation import CancelToken
from boomerang.infrastructure.http_client import HttpClient, default_transport
from boomerang.infrastructure.metrics import Metrics, NoopMetrics, PrometheusMetrics, get_prometheus_metrics
from boomerang.infrastructure.retry import RetryPolicy, default_retry_policy, status_retry_policy

__all__ = [
    "AppConfig",
    "AttemptOutcome",
    "Backoff",
    "BackoffConfig",
    "BackoffFunc",
    "BodyRewindError",
    "BoomerangError",
    "BreakerRejectedError",
    "CancelToken",
    "CircuitBreakerConfig",
    "CircuitOpenError",
    "ClientConfig",
    "ConfigurationError",
    "ConstantBackoff",
    "ExponentialBackoff",
    "HttpClient",
    "JitterBackoff",
    "MaxConcurrencyError",
    "Metrics",
    "MetricsConfig",
    "MetricsRegistrationError",
    "NoopMetrics",
    "PrometheusMetrics",
    "Request",
    "RequestBuildError",
    "RequestCancelledError",
    "RetryDecision",
    "RetryExhaustedError",
    "RetryPolicy",
    "RetryPolicyConfig",
    "create_backoff",
    "default_retry_policy",
    "default_transport",
    "get_prometheus_metrics",
    "status_retry_policy",
]
