"""Backoff strategies for spacing out retries.

A strategy maps a retry index to a wait in seconds. Index 0 (and anything
below it) always maps to zero: the first attempt never waits.
"""

from __future__ import annotations

import logging
import random
from abc import ABC, abstractmethod
from typing import Callable, Dict, Optional, Type

from boomerang.domain.config.backoff import BackoffConfig

logger = logging.getLogger(__name__)

DEFAULT_MIN_TIMEOUT = 0.010
DEFAULT_MAX_TIMEOUT = 0.020
DEFAULT_FACTOR = 2.0


class Backoff(ABC):
    """Abstract base class for backoff strategies"""

    @abstractmethod
    def next_interval(self, retry: int) -> float:
        """Wait before the given retry

        Args:
            retry: Retry index (1 = first retry)

        Returns:
            Wait in seconds
        """
        pass


class BackoffFunc(Backoff):
    """Backoff backed by a plain function of the retry index"""

    def __init__(self, func: Callable[[int], float]):
        self._func = func

    def next_interval(self, retry: int) -> float:
        if retry <= 0:
            return 0.0
        return float(self._func(retry))


class ConstantBackoff(Backoff):
    """Waits the same interval before every retry"""

    def __init__(self, interval: float = DEFAULT_MIN_TIMEOUT):
        self.interval = interval

    def next_interval(self, retry: int) -> float:
        if retry <= 0:
            return 0.0
        return self.interval

    def __repr__(self) -> str:
        return f"ConstantBackoff(interval={self.interval})"


class ExponentialBackoff(Backoff):
    """Waits min_timeout * factor ** retry, capped at max_timeout"""

    def __init__(
        self,
        min_timeout: float = DEFAULT_MIN_TIMEOUT,
        max_timeout: float = DEFAULT_MAX_TIMEOUT,
        factor: float = DEFAULT_FACTOR,
    ):
        self.min_timeout = min_timeout
        self.max_timeout = max_timeout
        self.factor = factor

    def next_interval(self, retry: int) -> float:
        if retry <= 0:
            return 0.0
        return min(self.min_timeout * self.factor**retry, self.max_timeout)

    def __repr__(self) -> str:
        return (
            f"ExponentialBackoff(min_timeout={self.min_timeout}, "
            f"max_timeout={self.max_timeout}, factor={self.factor})"
        )


class JitterBackoff(ExponentialBackoff):
    """Exponential backoff with a uniformly drawn wait.

    The wait is drawn from [min_timeout, min_timeout * factor ** retry] and
    then kept within [min_timeout, max_timeout].
    """

    def __init__(
        self,
        min_timeout: float = DEFAULT_MIN_TIMEOUT,
        max_timeout: float = DEFAULT_MAX_TIMEOUT,
        factor: float = DEFAULT_FACTOR,
        rng: Optional[random.Random] = None,
    ):
        super().__init__(min_timeout, max_timeout, factor)
        self._rng = rng or random.Random()

    def next_interval(self, retry: int) -> float:
        if retry <= 0:
            return 0.0
        upper = self.min_timeout * self.factor**retry
        wait = self._rng.uniform(self.min_timeout, upper)
        if wait < self.min_timeout:
            return self.min_timeout
        if wait > self.max_timeout:
            return self.max_timeout
        return wait

    def __repr__(self) -> str:
        return (
            f"JitterBackoff(min_timeout={self.min_timeout}, "
            f"max_timeout={self.max_timeout}, factor={self.factor})"
        )


STRATEGIES: Dict[str, Type[Backoff]] = {
    "constant": ConstantBackoff,
    "exponential": ExponentialBackoff,
    "jitter": JitterBackoff,
}


def create_backoff(config: Optional[BackoffConfig] = None) -> Backoff:
    """Create a backoff strategy from configuration

    Args:
        config: Backoff configuration (defaults to a constant backoff)

    Returns:
        Backoff instance

    Raises:
        ValueError: If the strategy is not supported
    """
    if config is None:
        config = BackoffConfig()

    strategy = config.strategy.lower()
    if strategy not in STRATEGIES:
        available = ", ".join(STRATEGIES.keys())
        raise ValueError(f"Unknown backoff strategy: {config.strategy}. Available strategies: {available}")

    if strategy == "constant":
        backoff: Backoff = ConstantBackoff(config.min_timeout)
    else:
        backoff = STRATEGIES[strategy](config.min_timeout, config.max_timeout, config.factor)
    logger.debug(f"Using backoff {backoff!r}")
    return backoff
