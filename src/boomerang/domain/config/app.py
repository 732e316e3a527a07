"""Main application configuration model."""

from pydantic import BaseModel, ConfigDict, Field

from boomerang.domain.config.client import ClientConfig


class AppConfig(BaseModel):
    """Main application configuration.

    This is the root configuration model loaded from .boomerang.yml.
    Validation is performed at load time to fail fast on configuration errors.

    Attributes:
        client: HTTP client configuration
    """

    client: ClientConfig = Field(default_factory=ClientConfig)

    model_config = ConfigDict(
        extra="forbid",  # Reject unknown fields
        json_schema_extra={
            "example": {
                "client": {
                    "timeout": 10.0,
                    "max_retries": 3,
                    "backoff": {
                        "strategy": "exponential",
                        "min_timeout": 0.1,
                        "max_timeout": 2.0,
                        "factor": 2.0,
                    },
                    "retry_policy": {
                        "server_error_threshold": 500,
                        "retry_statuses": [429],
                    },
                    "metrics": {
                        "enabled": True,
                        "namespace": "boomerang",
                        "subsystem": "",
                    },
                    "circuit_breaker": {
                        "command_name": "payments",
                        "timeout": 1.0,
                        "max_concurrent_requests": 10,
                        "request_volume_threshold": 20,
                        "error_percent_threshold": 50,
                        "reset_timeout": 5.0,
                    },
                }
            }
        },
    )
