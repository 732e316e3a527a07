"""Factory for creating HTTP clients from configuration"""

import logging
from typing import Any, Dict, Optional

from pydantic import ValidationError

from boomerang.domain.config import ClientConfig
from boomerang.domain.exceptions import ConfigurationError
from boomerang.infrastructure.http_client import HttpClient

logger = logging.getLogger(__name__)


class ClientFactory:
    """Factory for creating HttpClient instances"""

    @staticmethod
    def apply_overrides(
        config: ClientConfig,
        *,
        max_retries: Optional[int] = None,
        timeout: Optional[float] = None,
        backoff_strategy: Optional[str] = None,
        breaker_name: Optional[str] = None,
    ) -> ClientConfig:
        """Return a copy of the configuration with explicit overrides applied

        Args:
            config: Base configuration
            max_retries: Retries after the first attempt
            timeout: Per-attempt timeout in seconds
            backoff_strategy: Backoff strategy name
            breaker_name: Circuit breaker command name

        Returns:
            Validated ClientConfig

        Raises:
            ConfigurationError: If an override is invalid
        """
        data: Dict[str, Any] = config.model_dump()
        if max_retries is not None:
            data["max_retries"] = max_retries
        if timeout is not None:
            data["timeout"] = timeout
        if backoff_strategy is not None:
            data["backoff"]["strategy"] = backoff_strategy.lower()
        if breaker_name is not None:
            breaker = data.get("circuit_breaker") or {}
            breaker["command_name"] = breaker_name
            data["circuit_breaker"] = breaker

        try:
            return ClientConfig(**data)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid client options: {e}") from e

    @classmethod
    def create(cls, config: Optional[ClientConfig] = None, **collaborators: Any) -> HttpClient:
        """Create an HTTP client

        Args:
            config: Client configuration
            **collaborators: Keyword arguments passed to HttpClient (transport, fallback, ...)

        Returns:
            HttpClient instance
        """
        config = config or ClientConfig()
        breaker = config.circuit_breaker.command_name if config.circuit_breaker else "none"
        logger.info(
            f"Creating HTTP client (max_retries={config.max_retries}, "
            f"backoff={config.backoff.strategy}, circuit_breaker={breaker})"
        )
        return HttpClient(config, **collaborators)
