"""Metrics configuration model."""

from pydantic import BaseModel, ConfigDict

DEFAULT_NAMESPACE = "boomerang"


class MetricsConfig(BaseModel):
    """Configuration for per-attempt Prometheus metrics.

    Attributes:
        enabled: Whether attempts are recorded
        namespace: Metric name namespace
        subsystem: Metric name subsystem
    """

    enabled: bool = False
    namespace: str = DEFAULT_NAMESPACE
    subsystem: str = ""

    model_config = ConfigDict(frozen=True, extra="forbid")
