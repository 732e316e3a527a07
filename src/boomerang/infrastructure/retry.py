"""Retry policies and the tenacity plumbing of the retry loop.

A retry policy is called after every attempt with the response and the
transport error (exactly one of them is set) and returns a RetryDecision.
"""

from __future__ import annotations

import logging
from typing import Callable, Iterable, Optional

import requests
from tenacity import RetryCallState, Retrying, retry_if_result, stop_after_attempt

from boomerang.domain.config.retry import RetryPolicyConfig
from boomerang.domain.models.outcome import RetryDecision
from boomerang.infrastructure.backoff import Backoff

logger = logging.getLogger(__name__)

RetryPolicy = Callable[[Optional[requests.Response], Optional[BaseException]], RetryDecision]


def _should_retry_status(status_code: int, threshold: int, retry_statuses: Iterable[int]) -> bool:
    """Check if a status code should be retried."""
    # 0 (and anything unparseable) means there was no valid response
    if not status_code:
        return True
    if status_code in retry_statuses:
        return True
    return status_code >= threshold


def default_retry_policy(
    response: Optional[requests.Response], error: Optional[BaseException]
) -> RetryDecision:
    """Retry on transport errors, status 0 and 5xx responses.

    5xx responses are typically not permanent and may relate to outages on the
    server side. Everything else, including 4xx, is returned to the caller.
    """
    if error is not None:
        return RetryDecision(True, error)
    status_code = response.status_code if response is not None else 0
    return RetryDecision(_should_retry_status(status_code, 500, ()))


def status_retry_policy(threshold: int = 500, retry_statuses: Iterable[int] = ()) -> RetryPolicy:
    """Create a policy retrying transport errors and the given statuses

    Args:
        threshold: Lowest status code treated as a retryable server error
        retry_statuses: Extra status codes to retry (e.g. 429)

    Returns:
        Retry policy
    """
    statuses = frozenset(retry_statuses)

    def _policy(response: Optional[requests.Response], error: Optional[BaseException]) -> RetryDecision:
        if error is not None:
            return RetryDecision(True, error)
        status_code = response.status_code if response is not None else 0
        return RetryDecision(_should_retry_status(status_code, threshold, statuses))

    return _policy


def retry_policy_from_config(config: Optional[RetryPolicyConfig] = None) -> RetryPolicy:
    """Create the retry policy described by configuration."""
    if config is None or (config.server_error_threshold == 500 and not config.retry_statuses):
        return default_retry_policy
    return status_retry_policy(config.server_error_threshold, config.retry_statuses)


def create_retrying(
    max_retries: int,
    backoff: Backoff,
    should_retry: Callable[[object], bool],
    before_sleep: Callable[[RetryCallState], None],
    give_up: Callable[[RetryCallState], object],
    sleep: Callable[[float], None],
) -> Retrying:
    """Create the tenacity controller for one call.

    Attempt results are never exceptions for retryable conditions: the attempt
    function returns a value and should_retry inspects it. Exceptions raised by
    an attempt (body rewind, cancellation) therefore stop the loop and
    propagate unchanged.

    Args:
        max_retries: Retries after the first attempt
        backoff: Backoff strategy; the wait before attempt n + 1 is next_interval(n)
        should_retry: Predicate over an attempt result
        before_sleep: Called before each backoff sleep
        give_up: Called when the retries are exhausted
        sleep: Sleep function

    Returns:
        Retrying controller
    """

    def _wait(retry_state: RetryCallState) -> float:
        return backoff.next_interval(retry_state.attempt_number)

    return Retrying(
        stop=stop_after_attempt(max_retries + 1),
        wait=_wait,
        retry=retry_if_result(should_retry),
        before_sleep=before_sleep,
        retry_error_callback=give_up,
        sleep=sleep,
    )
