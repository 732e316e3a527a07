"""Configuration manager for loading and validating .boomerang.yml"""

import copy
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import ValidationError

from boomerang.domain.config import (
    AppConfig,
    BackoffConfig,
    CircuitBreakerConfig,
    ClientConfig,
    MetricsConfig,
    RetryPolicyConfig,
)
from boomerang.domain.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = ".boomerang.yml"

# Names used by earlier releases
_CLIENT_ALIASES = {
    "max_http_retries": "max_retries",
    "retries": "max_retries",
    "hystrix": "circuit_breaker",
}

_TRUE_VALUES = ("1", "true", "yes", "on")

# Legacy hystrix blocks give durations in milliseconds
_HYSTRIX_MILLISECONDS = {
    "timeout": "timeout",
    "sleep_window": "reset_timeout",
}
_HYSTRIX_NAMES = {
    "CommandName": "command_name",
}


def _format_validation_error(e: ValidationError) -> str:
    errors = []
    for error in e.errors():
        field = ".".join(str(x) for x in error["loc"])
        msg = error["msg"]
        errors.append(f"  - {field}: {msg}")
    return "Configuration validation failed:\n" + "\n".join(errors)


def _from_hystrix(block: Any) -> Any:
    """Translate a legacy hystrix command block to circuit_breaker fields"""
    if not isinstance(block, dict):
        return block
    result = {}
    for key, value in block.items():
        if key in _HYSTRIX_MILLISECONDS:
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                value = value / 1000.0
            key = _HYSTRIX_MILLISECONDS[key]
        result[_HYSTRIX_NAMES.get(key, key)] = value
    return result


def _apply_aliases(config: Dict[str, Any]) -> Dict[str, Any]:
    result = dict(config)
    if "hystrix" in result:
        result["hystrix"] = _from_hystrix(result["hystrix"])
    for alias, name in _CLIENT_ALIASES.items():
        if alias in result:
            value = result.pop(alias)
            result.setdefault(name, value)
    return result


def client_config_from_dict(config: Dict[str, Any]) -> ClientConfig:
    """Parse client config from dict, supporting legacy aliases

    Args:
        config: Client configuration dictionary

    Returns:
        Validated ClientConfig

    Raises:
        ConfigurationError: If the configuration is invalid
    """
    try:
        return ClientConfig(**_apply_aliases(config or {}))
    except ValidationError as e:
        raise ConfigurationError(_format_validation_error(e)) from e


class ConfigManager:
    """Manages configuration from .boomerang.yml and environment variables

    Loads configuration with validation using Pydantic models. Configuration priority:
    1. Default values (defined in Pydantic models)
    2. .boomerang.yml file (searched from current directory)
    3. Environment variables (BOOMERANG_*)
    4. CLI arguments (handled by CLI layer)
    """

    DEFAULT_CONFIG: Dict[str, Any] = {
        "client": {
            "timeout": 10.0,
            "max_retries": 1,
            "backoff": {
                "strategy": "constant",
                "min_timeout": 0.010,
                "max_timeout": 0.020,
                "factor": 2.0,
            },
            "retry_policy": {
                "server_error_threshold": 500,
                "retry_statuses": [],
            },
            "metrics": {
                "enabled": False,
                "namespace": "boomerang",
                "subsystem": "",
            },
            "circuit_breaker": None,
        },
    }

    def __init__(self, config_path: Optional[Path] = None):
        """Initialize config manager

        Args:
            config_path: Path to .boomerang.yml (searches from current dir if None)

        Raises:
            ConfigurationError: If configuration validation fails
        """
        if isinstance(config_path, str):
            config_path = Path(config_path)
        self.config_path = config_path or self._find_config_file()
        try:
            self.config: AppConfig = self._load_config()
        except ValidationError as e:
            raise ConfigurationError(_format_validation_error(e)) from e

    def _find_config_file(self) -> Optional[Path]:
        """Find .boomerang.yml starting from current directory

        Returns:
            Path to config file or None if not found
        """
        current = Path.cwd()
        for parent in [current] + list(current.parents):
            config_file = parent / CONFIG_FILE_NAME
            if config_file.exists():
                logger.info(f"Found config file: {config_file}")
                return config_file
        logger.debug(f"No {CONFIG_FILE_NAME} found, using defaults")
        return None

    def _load_config(self) -> AppConfig:
        """Load configuration from file and validate with Pydantic

        Returns:
            Validated AppConfig instance

        Raises:
            ValidationError: If configuration is invalid
            ConfigurationError: If the file cannot be read or parsed
        """
        config_dict = copy.deepcopy(self.DEFAULT_CONFIG)

        if self.config_path and self.config_path.exists():
            try:
                with open(self.config_path, "r", encoding="utf-8") as f:
                    file_config = yaml.safe_load(f) or {}
            except (OSError, yaml.YAMLError) as e:
                raise ConfigurationError(f"Failed to load config from {self.config_path}: {e}") from e
            if not isinstance(file_config, dict):
                raise ConfigurationError(f"Config file {self.config_path} must contain a mapping")
            if isinstance(file_config.get("client"), dict):
                file_config["client"] = _apply_aliases(file_config["client"])
            config_dict = self._merge_config(config_dict, file_config)
            logger.info(f"Loaded configuration from {self.config_path}")

        config_dict = self._apply_env_overrides(config_dict)

        return AppConfig(**config_dict)

    def _merge_config(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Recursively merge configuration dictionaries

        Args:
            base: Base configuration
            override: Override configuration

        Returns:
            Merged configuration
        """
        result = base.copy()
        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._merge_config(result[key], value)
            else:
                result[key] = value
        return result

    def _apply_env_overrides(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """Apply environment variable overrides

        Args:
            config: Configuration dictionary

        Returns:
            Configuration with env overrides applied
        """
        client = config["client"]

        if os.getenv("BOOMERANG_TIMEOUT"):
            client["timeout"] = os.getenv("BOOMERANG_TIMEOUT")

        if os.getenv("BOOMERANG_MAX_RETRIES"):
            client["max_retries"] = os.getenv("BOOMERANG_MAX_RETRIES")

        if os.getenv("BOOMERANG_BACKOFF_STRATEGY"):
            client["backoff"]["strategy"] = os.getenv("BOOMERANG_BACKOFF_STRATEGY")

        if os.getenv("BOOMERANG_METRICS_ENABLED"):
            client["metrics"]["enabled"] = os.getenv("BOOMERANG_METRICS_ENABLED", "").lower() in _TRUE_VALUES

        return config

    def get_client_config(self) -> ClientConfig:
        return self.config.client

    def get_backoff_config(self) -> BackoffConfig:
        return self.config.client.backoff

    def get_retry_policy_config(self) -> RetryPolicyConfig:
        return self.config.client.retry_policy

    def get_metrics_config(self) -> MetricsConfig:
        return self.config.client.metrics

    def get_circuit_breaker_config(self) -> Optional[CircuitBreakerConfig]:
        return self.config.client.circuit_breaker

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value by key (supports dot notation)

        Args:
            key: Configuration key (e.g., "client.backoff.strategy" or "client")
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        keys = key.split(".")
        value = self.config.model_dump()
        for k in keys:
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default
        return value
