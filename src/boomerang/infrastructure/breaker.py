"""Circuit breaker adapter.

Each attempt of a breaker-enabled client runs inside a pybreaker breaker
registered under the configured command name. Everything about a command is
process-wide and shared by every client using that name: the breaker, its
concurrency slots and its rolling error statistics.

The circuit opens when, within the rolling window, the request volume
threshold is reached and the failure percentage is at or above the error
threshold (and, if configured, after failure_threshold consecutive failures,
which is pybreaker's own fail_max).
"""

from __future__ import annotations

import logging
import sys
import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Dict, Tuple, TypeVar

import pybreaker

from boomerang.domain.config.breaker import CircuitBreakerConfig
from boomerang.domain.exceptions import BreakerRejectedError, CircuitOpenError, MaxConcurrencyError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _state_name(state) -> str:
    return getattr(state, "name", state)


class _LoggingListener(pybreaker.CircuitBreakerListener):
    """Logs breaker state changes"""

    def state_change(self, cb, old_state, new_state) -> None:
        old_name = _state_name(old_state)
        new_name = _state_name(new_state)
        if new_name == pybreaker.STATE_OPEN:
            logger.warning(f"Circuit breaker {cb.name} opened (was {old_name})")
        else:
            logger.info(f"Circuit breaker {cb.name}: {old_name} -> {new_name}")


class _ErrorRateListener(pybreaker.CircuitBreakerListener):
    """Opens a closed circuit when the failure rate over a rolling window is too high"""

    def __init__(self, config: CircuitBreakerConfig):
        self._lock = threading.Lock()
        self._events: Deque[Tuple[float, bool]] = deque()
        self.configure(config)

    def configure(self, config: CircuitBreakerConfig) -> None:
        self.volume_threshold = config.request_volume_threshold
        self.error_percent_threshold = config.error_percent_threshold
        self.window = config.rolling_window

    def success(self, cb) -> None:
        self._add(failed=False)

    def failure(self, cb, exc) -> None:
        tripped, failures, total = self._add(failed=True)
        if tripped and cb.current_state == pybreaker.STATE_CLOSED:
            logger.warning(
                f"Circuit breaker {cb.name}: {failures}/{total} attempts failed "
                f"in the last {self.window:g}s, opening"
            )
            cb.open()

    def state_change(self, cb, old_state, new_state) -> None:
        # A closed circuit starts over with fresh statistics
        if _state_name(new_state) == pybreaker.STATE_CLOSED:
            self.reset()

    def reset(self) -> None:
        with self._lock:
            self._events.clear()

    def _add(self, failed: bool) -> Tuple[bool, int, int]:
        now = time.monotonic()
        with self._lock:
            self._events.append((now, failed))
            while self._events[0][0] <= now - self.window:
                self._events.popleft()
            total = len(self._events)
            failures = sum(1 for _, f in self._events if f)
        tripped = total >= self.volume_threshold and failures * 100 >= self.error_percent_threshold * total
        return tripped, failures, total


@dataclass
class _Command:
    config: CircuitBreakerConfig
    breaker: pybreaker.CircuitBreaker
    error_rate: _ErrorRateListener
    slots: threading.BoundedSemaphore


def _fail_max(config: CircuitBreakerConfig) -> int:
    if config.failure_threshold is None:
        return sys.maxsize
    return config.failure_threshold


_commands: Dict[str, _Command] = {}
_commands_lock = threading.Lock()


def _configure(config: CircuitBreakerConfig) -> _Command:
    with _commands_lock:
        command = _commands.get(config.command_name)
        if command is None:
            error_rate = _ErrorRateListener(config)
            breaker = pybreaker.CircuitBreaker(
                fail_max=_fail_max(config),
                reset_timeout=config.reset_timeout,
                listeners=[_LoggingListener(), error_rate],
                name=config.command_name,
            )
            command = _Command(
                config=config,
                breaker=breaker,
                error_rate=error_rate,
                slots=threading.BoundedSemaphore(config.max_concurrent_requests),
            )
            _commands[config.command_name] = command
            logger.debug(f"Configured circuit breaker {config.command_name}")
        elif command.config != config:
            command.breaker.fail_max = _fail_max(config)
            command.breaker.reset_timeout = config.reset_timeout
            command.error_rate.configure(config)
            if config.max_concurrent_requests != command.config.max_concurrent_requests:
                # Attempts in flight release the semaphore they acquired
                command.slots = threading.BoundedSemaphore(config.max_concurrent_requests)
            command.config = config
            logger.debug(f"Reconfigured circuit breaker {config.command_name}")
        return command


def configure_command(config: CircuitBreakerConfig) -> pybreaker.CircuitBreaker:
    """Get the process-wide breaker for a command, creating it on first use

    Configuring an existing command updates its limits in place; clients using
    the same command name share one breaker, one concurrency cap and one set of
    error statistics.

    Args:
        config: Circuit breaker configuration

    Returns:
        Breaker registered under config.command_name
    """
    return _configure(config).breaker


def reset_commands() -> None:
    """Forget every configured command"""
    with _commands_lock:
        _commands.clear()


class _FailedAttempt(Exception):
    """Carries a failed attempt's result through the breaker"""

    def __init__(self, result):
        super().__init__("attempt failed")
        self.result = result


class CircuitBreakerAdapter:
    """Runs single attempts through a command's circuit breaker"""

    def __init__(self, config: CircuitBreakerConfig):
        self.command_name = config.command_name
        self._command = _configure(config)

    @property
    def config(self) -> CircuitBreakerConfig:
        """Current limits of the command"""
        return self._command.config

    @property
    def breaker(self) -> pybreaker.CircuitBreaker:
        return self._command.breaker

    def execute(
        self,
        protected: Callable[[], T],
        is_failure: Callable[[T], bool],
        fallback: Callable[[BreakerRejectedError], T],
    ) -> T:
        """Run one attempt through the breaker

        Args:
            protected: The attempt
            is_failure: Whether an attempt result counts as a failure for the breaker
            fallback: Called instead of the attempt when the breaker rejects it

        Returns:
            The attempt's result, or the fallback's
        """
        slots = self._command.slots
        if not slots.acquire(blocking=False):
            logger.warning(f"Circuit breaker {self.command_name}: max concurrency reached")
            return fallback(MaxConcurrencyError(self.command_name))

        try:
            return self.breaker.call(self._run, protected, is_failure)
        except _FailedAttempt as failed:
            return failed.result
        except pybreaker.CircuitBreakerError as e:
            # Raised in place of the failure that tripped the breaker
            tripped_by = e.__cause__ or e.__context__
            if isinstance(tripped_by, _FailedAttempt):
                return tripped_by.result
            if tripped_by is not None:
                raise tripped_by
            logger.warning(f"Circuit breaker {self.command_name} is open, calling fallback")
            return fallback(CircuitOpenError(self.command_name))
        finally:
            slots.release()

    @staticmethod
    def _run(protected: Callable[[], T], is_failure: Callable[[T], bool]) -> T:
        result = protected()
        if is_failure(result):
            raise _FailedAttempt(result)
        return result

    def effective_timeout(self, timeout: float) -> float:
        """Per-attempt timeout: the client timeout capped by the command's"""
        if self.config.timeout is None:
            return timeout
        return min(timeout, self.config.timeout)
