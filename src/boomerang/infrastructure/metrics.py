"""
Attempt metrics
===============
Prometheus counters and summaries describing every attempt made by a client.

Collectors are process-wide: get_prometheus_metrics() registers each
(registry, namespace, subsystem) set once and hands out the same instance
afterwards.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Tuple

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Summary

from boomerang.domain.config.metrics import DEFAULT_NAMESPACE, MetricsConfig
from boomerang.domain.exceptions import MetricsRegistrationError

logger = logging.getLogger(__name__)


def status_class(status_code: int) -> str:
    """Bucket a status code by its hundreds digit (e.g. 503 -> "5xx")"""
    return f"{(status_code or 0) // 100}xx"


def error_label(error: Optional[BaseException]) -> str:
    if error is None:
        return "none"
    return type(error).__name__


class Metrics(ABC):
    """Sink for attempt outcomes"""

    @abstractmethod
    def record(self, error: Optional[BaseException], status_code: int, duration: float) -> None:
        """Record one attempt

        Args:
            error: Transport error of the attempt, if any
            status_code: Response status code (0 when there was no response)
            duration: Attempt duration in seconds
        """
        pass


class NoopMetrics(Metrics):
    """Metrics sink that drops everything"""

    def record(self, error: Optional[BaseException], status_code: int, duration: float) -> None:
        return None


class PrometheusMetrics(Metrics):
    """Prometheus-backed metrics sink.

    Registers three collectors on construction:
    - request_count: attempts, labelled by error
    - request_latency: attempt duration in seconds, labelled by error
    - status_code: attempts, labelled by status class
    """

    def __init__(
        self,
        namespace: str = DEFAULT_NAMESPACE,
        subsystem: str = "",
        registry: Optional[CollectorRegistry] = None,
    ):
        """Create and register the collectors

        Args:
            namespace: Metric namespace
            subsystem: Metric subsystem
            registry: Collector registry (default: the process-wide registry)

        Raises:
            MetricsRegistrationError: If collectors with these names already exist
        """
        self.namespace = namespace
        self.subsystem = subsystem
        self.registry = registry if registry is not None else REGISTRY
        self._collectors: List[object] = []

        try:
            self.request_count = self._register(
                Counter,
                "request_count",
                "Number of requests made.",
                ["error"],
            )
            self.request_latency = self._register(
                Summary,
                "request_latency",
                "Total duration of requests in seconds.",
                ["error"],
            )
            self.status_codes = self._register(
                Counter,
                "status_code",
                "Count of different response status codes.",
                ["status_code"],
            )
        except ValueError as e:
            self.unregister()
            raise MetricsRegistrationError(
                f"Metrics for namespace={namespace!r} subsystem={subsystem!r} already registered: {e}"
            ) from e

    def _register(self, collector_cls, name: str, documentation: str, labelnames: List[str]):
        collector = collector_cls(
            name,
            documentation,
            labelnames,
            namespace=self.namespace,
            subsystem=self.subsystem,
            registry=self.registry,
        )
        self._collectors.append(collector)
        return collector

    def record(self, error: Optional[BaseException], status_code: int, duration: float) -> None:
        label = error_label(error)
        self.request_count.labels(error=label).inc()
        self.request_latency.labels(error=label).observe(duration)
        self.status_codes.labels(status_code=status_class(status_code)).inc()

    def unregister(self) -> None:
        """Remove this instance's collectors from the registry"""
        while self._collectors:
            self.registry.unregister(self._collectors.pop())


_registered: Dict[Tuple[int, str, str], PrometheusMetrics] = {}
_registered_lock = threading.Lock()


def get_prometheus_metrics(
    namespace: str = DEFAULT_NAMESPACE,
    subsystem: str = "",
    registry: Optional[CollectorRegistry] = None,
) -> PrometheusMetrics:
    """Get the metrics sink for a name set, registering it on first use

    Args:
        namespace: Metric namespace
        subsystem: Metric subsystem
        registry: Collector registry (default: the process-wide registry)

    Returns:
        Shared PrometheusMetrics instance
    """
    registry = registry if registry is not None else REGISTRY
    key = (id(registry), namespace, subsystem)
    with _registered_lock:
        metrics = _registered.get(key)
        if metrics is None or metrics.registry is not registry:
            metrics = PrometheusMetrics(namespace, subsystem, registry)
            _registered[key] = metrics
            logger.debug(f"Registered metrics namespace={namespace!r} subsystem={subsystem!r}")
        return metrics


def release_prometheus_metrics(
    namespace: str = DEFAULT_NAMESPACE,
    subsystem: str = "",
    registry: Optional[CollectorRegistry] = None,
) -> None:
    """Unregister a name set obtained from get_prometheus_metrics()"""
    registry = registry if registry is not None else REGISTRY
    with _registered_lock:
        metrics = _registered.pop((id(registry), namespace, subsystem), None)
    if metrics is not None:
        metrics.unregister()


def metrics_from_config(
    config: Optional[MetricsConfig], registry: Optional[CollectorRegistry] = None
) -> Metrics:
    """Create the metrics sink described by configuration."""
    if config is None or not config.enabled:
        return NoopMetrics()
    return get_prometheus_metrics(config.namespace, config.subsystem, registry)
