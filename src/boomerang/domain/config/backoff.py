"""Backoff configuration model."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator


class BackoffConfig(BaseModel):
    """Configuration for the wait between attempts.

    Attributes:
        strategy: Backoff strategy (constant, exponential or jitter)
        min_timeout: Shortest wait in seconds (the fixed wait for constant)
        max_timeout: Longest wait in seconds
        factor: Exponential growth factor
    """

    strategy: Literal["constant", "exponential", "jitter"] = "constant"
    min_timeout: float = Field(0.010, ge=0.0)
    max_timeout: float = Field(0.020, ge=0.0)
    factor: float = Field(2.0, ge=1.0, le=10.0)

    model_config = ConfigDict(frozen=True, extra="forbid")

    @model_validator(mode="after")
    def _check_bounds(self) -> "BackoffConfig":
        if self.max_timeout < self.min_timeout:
            raise ValueError("max_timeout must not be lower than min_timeout")
        return self
