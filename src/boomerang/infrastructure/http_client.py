"""Resilient HTTP client (requests + retry/backoff).

HttpClient runs every request through one retry loop:

1. rewind the request body and send the request (through the circuit breaker
   when one is configured),
2. record the attempt and ask the retry policy about it,
3. if the outcome is final, return the response or raise the error,
4. otherwise drain the response, sleep the backoff wait and go to 1, or give
   up with RetryExhaustedError once max_retries retries have been made.

max_retries counts retries after the first attempt, so a call makes at most
max_retries + 1 attempts, with or without a circuit breaker.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional
from urllib.parse import urlencode

import requests
from requests.adapters import HTTPAdapter
from tenacity import RetryCallState

from boomerang.domain.config.client import ClientConfig
from boomerang.domain.exceptions import BreakerRejectedError, RequestCancelledError, RetryExhaustedError
from boomerang.domain.models.outcome import AttemptOutcome, RetryDecision
from boomerang.domain.models.request import BodyType, Request
from boomerang.infrastructure.backoff import Backoff, create_backoff
from boomerang.infrastructure.breaker import CircuitBreakerAdapter
from boomerang.infrastructure.cancellation import CancelToken
from boomerang.infrastructure.metrics import Metrics, metrics_from_config
from boomerang.infrastructure.retry import RetryPolicy, create_retrying, retry_policy_from_config

logger = logging.getLogger(__name__)

# Response bodies are consumed up to this many bytes before a retry so the
# connection can go back to the pool
RESP_READ_LIMIT = 4096

FallbackFunc = Callable[[BreakerRejectedError], Optional[requests.Response]]


def default_transport(pool_maxsize: int = 10) -> requests.Session:
    """Create a pooled session without adapter-level retries"""
    session = requests.Session()
    adapter = HTTPAdapter(pool_connections=pool_maxsize, pool_maxsize=pool_maxsize, max_retries=0)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    return session


@dataclass(frozen=True)
class _AttemptResult:
    outcome: AttemptOutcome
    decision: RetryDecision

    @property
    def error(self) -> Optional[BaseException]:
        """Error to surface if this attempt ends the call"""
        if self.decision.error is not None:
            return self.decision.error
        return self.outcome.error

    @property
    def failed(self) -> bool:
        return self.decision.should_retry or self.error is not None


class HttpClient:
    """HTTP client with retries, backoff, body replay, metrics and an optional circuit breaker.

    The client keeps no per-call state and can be shared between threads.
    """

    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        *,
        transport: Optional[requests.Session] = None,
        backoff: Optional[Backoff] = None,
        retry_policy: Optional[RetryPolicy] = None,
        metrics: Optional[Metrics] = None,
        fallback: Optional[FallbackFunc] = None,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        """Initialize the client

        Collaborators passed explicitly take precedence over the configuration.

        Args:
            config: Client configuration (defaults to ClientConfig())
            transport: requests session used to send attempts (default: default_transport())
            backoff: Backoff strategy (default: built from config.backoff)
            retry_policy: Retry policy (default: built from config.retry_policy)
            metrics: Metrics sink (default: built from config.metrics)
            fallback: Called when the circuit breaker rejects an attempt
            sleep: Sleep function used between attempts (default: time.sleep)
        """
        self.config = config or ClientConfig()
        self._owns_transport = transport is None
        self.transport = transport if transport is not None else default_transport()
        self.backoff = backoff if backoff is not None else create_backoff(self.config.backoff)
        self.retry_policy = retry_policy if retry_policy is not None else retry_policy_from_config(self.config.retry_policy)
        self.metrics = metrics if metrics is not None else metrics_from_config(self.config.metrics)
        self.breaker = CircuitBreakerAdapter(self.config.circuit_breaker) if self.config.circuit_breaker else None
        self.fallback = fallback
        self._sleep = sleep or time.sleep

    @property
    def max_retries(self) -> int:
        return self.config.max_retries

    @property
    def timeout(self) -> float:
        return self.config.timeout

    def close(self) -> None:
        """Close the transport if the client created it"""
        if self._owns_transport:
            self.transport.close()

    def __enter__(self) -> "HttpClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def request(
        self,
        method: str,
        url: str,
        body: Optional[BodyType] = None,
        headers: Optional[Mapping[str, str]] = None,
        cancel: Optional[CancelToken] = None,
    ) -> requests.Response:
        return self.do(Request(method, url, body=body, headers=headers), cancel=cancel)

    def get(self, url: str, headers: Optional[Mapping[str, str]] = None, cancel: Optional[CancelToken] = None) -> requests.Response:
        return self.request("GET", url, headers=headers, cancel=cancel)

    def head(self, url: str, headers: Optional[Mapping[str, str]] = None, cancel: Optional[CancelToken] = None) -> requests.Response:
        return self.request("HEAD", url, headers=headers, cancel=cancel)

    def post(self, url: str, content_type: str, body: Optional[BodyType], cancel: Optional[CancelToken] = None) -> requests.Response:
        return self.request("POST", url, body=body, headers={"Content-Type": content_type}, cancel=cancel)

    def put(self, url: str, content_type: str, body: Optional[BodyType], cancel: Optional[CancelToken] = None) -> requests.Response:
        return self.request("PUT", url, body=body, headers={"Content-Type": content_type}, cancel=cancel)

    def post_form(self, url: str, data: Mapping[str, Any], cancel: Optional[CancelToken] = None) -> requests.Response:
        return self.post(url, "application/x-www-form-urlencoded", urlencode(data, doseq=True), cancel=cancel)

    def do(self, request: Request, cancel: Optional[CancelToken] = None) -> requests.Response:
        """Send a request, retrying per the retry policy

        Args:
            request: Request to send
            cancel: Token aborting remaining attempts and backoff sleeps

        Returns:
            Final response (including 4xx responses under the default policy)

        Raises:
            RetryExhaustedError: If every attempt was retryable
            BodyRewindError: If the body could not be rewound
            RequestCancelledError: If the token fired
            requests.RequestException: Transport error the policy did not retry
        """
        desc = f"{request.method} {request.url}"
        history: List[AttemptOutcome] = []

        request.rewind()
        prepared = self.transport.prepare_request(request.transport_request)
        settings = self.transport.merge_environment_settings(prepared.url, {}, True, None, None)

        def _attempt() -> _AttemptResult:
            if cancel is not None and cancel.cancelled:
                raise RequestCancelledError(request.method, request.url, len(history))
            request.rewind()
            attempt = len(history) + 1
            timeout = self._attempt_timeout(request, cancel, len(history))
            if self.breaker is None:
                result = self._send(prepared, desc, attempt, timeout, settings)
            else:
                result = self.breaker.execute(
                    lambda: self._send(prepared, desc, attempt, timeout, settings),
                    lambda r: r.failed,
                    lambda error: self._reject(error, attempt),
                )
            history.append(result.outcome)
            return result

        def _before_sleep(retry_state: RetryCallState) -> None:
            result: _AttemptResult = retry_state.outcome.result()
            self._drain(result.outcome.response)
            wait = retry_state.next_action.sleep if retry_state.next_action else 0.0
            left = self.max_retries + 1 - retry_state.attempt_number
            logger.debug(f"{desc}: retrying in {wait:.3f}s ({left} left)")

        def _give_up(retry_state: RetryCallState) -> None:
            result: _AttemptResult = retry_state.outcome.result()
            self._drain(result.outcome.response)
            logger.error(
                f"{desc} giving up after {retry_state.attempt_number} attempts, "
                f"last {result.outcome.describe()}"
            )
            raise RetryExhaustedError(
                request.method,
                request.url,
                retry_state.attempt_number,
                history=history,
                last_exception=result.error,
            )

        def _sleep(seconds: float) -> None:
            if cancel is None:
                self._sleep(seconds)
            elif cancel.wait(seconds):
                raise RequestCancelledError(request.method, request.url, len(history))

        retrying = create_retrying(
            self.max_retries,
            self.backoff,
            should_retry=lambda result: result.decision.should_retry,
            before_sleep=_before_sleep,
            give_up=_give_up,
            sleep=_sleep,
        )
        result: _AttemptResult = retrying(_attempt)

        if result.error is not None:
            self._drain(result.outcome.response)
            raise result.error
        return result.outcome.response

    def _attempt_timeout(self, request: Request, cancel: Optional[CancelToken], attempts: int) -> float:
        """Per-attempt transport timeout, capped by the breaker and the deadline

        Raises:
            RequestCancelledError: If the deadline has already passed
        """
        timeout = self.timeout
        if self.breaker is not None:
            timeout = self.breaker.effective_timeout(timeout)
        if cancel is not None:
            remaining = cancel.remaining()
            if remaining is not None:
                if remaining <= 0:
                    raise RequestCancelledError(request.method, request.url, attempts)
                timeout = min(timeout, remaining)
        return timeout

    def _send(
        self,
        prepared: requests.PreparedRequest,
        desc: str,
        attempt: int,
        timeout: float,
        settings: Dict[str, Any],
    ) -> _AttemptResult:
        """Make one transport call and judge its outcome"""
        started_at = time.time()
        start = time.monotonic()
        response: Optional[requests.Response] = None
        error: Optional[BaseException] = None
        try:
            response = self.transport.send(prepared, timeout=timeout, allow_redirects=True, **settings)
        except requests.RequestException as e:
            logger.warning(f"{desc} request failed: {e}")
            error = e
        outcome = AttemptOutcome(
            attempt=attempt,
            started_at=started_at,
            elapsed=time.monotonic() - start,
            response=response,
            error=error,
        )
        return self._judge(outcome)

    def _reject(self, error: BreakerRejectedError, attempt: int) -> _AttemptResult:
        """Outcome of an attempt the circuit breaker refused to run"""
        response: Optional[requests.Response] = None
        failure: Optional[BaseException] = error
        if self.fallback is not None:
            try:
                response = self.fallback(error)
            except Exception as e:
                logger.warning(f"Fallback for {error.command_name} failed: {e}")
                failure = e
            if response is not None:
                failure = None
        outcome = AttemptOutcome(
            attempt=attempt,
            started_at=time.time(),
            elapsed=0.0,
            response=response,
            error=failure,
        )
        return self._judge(outcome)

    def _judge(self, outcome: AttemptOutcome) -> _AttemptResult:
        self._record(outcome)
        decision = self.retry_policy(outcome.response, outcome.error)
        return _AttemptResult(outcome, decision)

    def _record(self, outcome: AttemptOutcome) -> None:
        try:
            self.metrics.record(outcome.error, outcome.status_code, outcome.elapsed)
        except Exception as e:
            logger.warning(f"Failed to record metrics for attempt {outcome.attempt}: {e}")

    def _drain(self, response: Optional[requests.Response]) -> None:
        """Read and discard the response body so the connection can be reused"""
        if response is None:
            return
        try:
            read = 0
            for chunk in response.iter_content(chunk_size=1024):
                read += len(chunk)
                if read >= RESP_READ_LIMIT:
                    break
        except (requests.RequestException, OSError) as e:
            logger.error(f"error reading response body: {e}")
        finally:
            response.close()
