"""Retry policy configuration model."""

from typing import List

from pydantic import BaseModel, ConfigDict, Field


class RetryPolicyConfig(BaseModel):
    """Configuration for the default retry policy.

    Attributes:
        server_error_threshold: Lowest status code treated as a retryable server error
        retry_statuses: Extra status codes to retry (e.g. 429)
    """

    server_error_threshold: int = Field(500, ge=100, le=999)
    retry_statuses: List[int] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True, extra="forbid")
