"""Configuration models with Pydantic validation."""

from boomerang.domain.config.app import AppConfig
from boomerang.domain.config.backoff import BackoffConfig
from boomerang.domain.config.breaker import CircuitBreakerConfig
from boomerang.domain.config.client import ClientConfig
from boomerang.domain.config.metrics import MetricsConfig
from boomerang.domain.config.retry import RetryPolicyConfig

__all__ = [
    "AppConfig",
    "BackoffConfig",
    "CircuitBreakerConfig",
    "ClientConfig",
    "MetricsConfig",
    "RetryPolicyConfig",
]
