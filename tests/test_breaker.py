"""Tests for the circuit breaker adapter and breaker-enabled clients"""

import threading
import time

import pybreaker
import pytest

from boomerang.domain.config import CircuitBreakerConfig, ClientConfig
from boomerang.domain.exceptions import CircuitOpenError, MaxConcurrencyError, RetryExhaustedError
from boomerang.infrastructure.breaker import CircuitBreakerAdapter, configure_command
from boomerang.infrastructure.http_client import HttpClient
from conftest import ScriptedAdapter, make_response, make_session

URL = "http://example.test/resource"


def _breaker_client(adapter, command_name="test_command", max_retries=3, fallback=None, **breaker):
    breaker.setdefault("failure_threshold", 2)
    config = ClientConfig(
        timeout=0.5,
        max_retries=max_retries,
        circuit_breaker=CircuitBreakerConfig(command_name=command_name, **breaker),
    )
    return HttpClient(config, transport=make_session(adapter), sleep=lambda s: None, fallback=fallback)


class TestConfigureCommand:
    """Tests for the process-wide breaker registry"""

    def test_same_command_shares_breaker(self):
        first = configure_command(CircuitBreakerConfig(command_name="shared", failure_threshold=3))
        second = configure_command(CircuitBreakerConfig(command_name="shared", failure_threshold=7, reset_timeout=1.5))
        assert first is second
        assert second.fail_max == 7
        assert second.reset_timeout == 1.5

    def test_distinct_commands(self):
        a = configure_command(CircuitBreakerConfig(command_name="a"))
        b = configure_command(CircuitBreakerConfig(command_name="b"))
        assert a is not b
        assert a.name == "a"


class TestCircuitBreakerAdapter:
    """Tests for CircuitBreakerAdapter.execute"""

    def test_successful_result_passes_through(self):
        adapter = CircuitBreakerAdapter(CircuitBreakerConfig(command_name="ok"))
        result = adapter.execute(lambda: "fine", lambda r: False, lambda err: "fallback")
        assert result == "fine"
        assert adapter.breaker.current_state == pybreaker.STATE_CLOSED

    def test_failed_result_is_returned_and_counted(self):
        adapter = CircuitBreakerAdapter(CircuitBreakerConfig(command_name="counted", failure_threshold=5))
        result = adapter.execute(lambda: "bad", lambda r: True, lambda err: "fallback")
        assert result == "bad"
        assert adapter.breaker.fail_counter == 1

    def test_tripping_result_is_returned(self):
        adapter = CircuitBreakerAdapter(CircuitBreakerConfig(command_name="trip", failure_threshold=1))
        result = adapter.execute(lambda: "bad", lambda r: True, lambda err: "fallback")
        assert result == "bad"
        assert adapter.breaker.current_state == pybreaker.STATE_OPEN

    def test_open_circuit_calls_fallback(self):
        adapter = CircuitBreakerAdapter(CircuitBreakerConfig(command_name="open", failure_threshold=1))
        adapter.execute(lambda: "bad", lambda r: True, lambda err: err)
        calls = []
        result = adapter.execute(lambda: calls.append(1), lambda r: False, lambda err: err)
        assert isinstance(result, CircuitOpenError)
        assert result.command_name == "open"
        assert calls == []

    def test_max_concurrency_calls_fallback(self):
        adapter = CircuitBreakerAdapter(CircuitBreakerConfig(command_name="nested", max_concurrent_requests=1))

        def _outer():
            return adapter.execute(lambda: "inner", lambda r: False, lambda err: err)

        result = adapter.execute(_outer, lambda r: False, lambda err: err)
        assert isinstance(result, MaxConcurrencyError)
        assert "max concurrency" in str(result)

    def test_slot_released_after_exception(self):
        adapter = CircuitBreakerAdapter(CircuitBreakerConfig(command_name="raises", max_concurrent_requests=1))

        def _boom():
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            adapter.execute(_boom, lambda r: False, lambda err: err)
        assert adapter.execute(lambda: "again", lambda r: False, lambda err: err) == "again"

    @pytest.mark.parametrize(
        "breaker_timeout, expected",
        [(None, 2.0), (0.5, 0.5), (5.0, 2.0)],
    )
    def test_effective_timeout(self, breaker_timeout, expected):
        adapter = CircuitBreakerAdapter(CircuitBreakerConfig(command_name="timeouts", timeout=breaker_timeout))
        assert adapter.effective_timeout(2.0) == expected


class TestBreakerClient:
    """Tests for HttpClient with a circuit breaker"""

    def test_success(self):
        adapter = ScriptedAdapter(200)
        resp = _breaker_client(adapter).get(URL)
        assert resp.status_code == 200
        assert adapter.calls == 1

    def test_attempt_count_matches_plain_client(self):
        """Test that max_retries + 1 attempts are made while the circuit stays closed"""
        adapter = ScriptedAdapter(503)
        client = _breaker_client(adapter, max_retries=2, failure_threshold=10)
        with pytest.raises(RetryExhaustedError, match="giving up after 3 attempts"):
            client.get(URL)
        assert adapter.calls == 3

    def test_open_circuit_stops_transport_calls(self):
        adapter = ScriptedAdapter(503)
        client = _breaker_client(adapter, max_retries=3, failure_threshold=2)
        with pytest.raises(RetryExhaustedError) as exc_info:
            client.get(URL)
        assert adapter.calls == 2
        assert exc_info.value.attempts == 4
        assert isinstance(exc_info.value.last_exception, CircuitOpenError)
        assert exc_info.value.status_codes == [503, 503, 0, 0]

    def test_fallback_response_is_served(self):
        adapter = ScriptedAdapter(503)
        fallback_calls = []

        def _fallback(error):
            fallback_calls.append(error)
            return make_response(200, b"cached")

        client = _breaker_client(adapter, max_retries=3, failure_threshold=1, fallback=_fallback)
        resp = client.get(URL)
        assert resp.status_code == 200
        assert resp.text == "cached"
        assert adapter.calls == 1
        assert isinstance(fallback_calls[0], CircuitOpenError)

    def test_failing_fallback_is_retried(self):
        adapter = ScriptedAdapter(503)

        def _fallback(error):
            raise LookupError("no cached copy")

        client = _breaker_client(adapter, max_retries=2, failure_threshold=1, fallback=_fallback)
        with pytest.raises(RetryExhaustedError) as exc_info:
            client.get(URL)
        assert isinstance(exc_info.value.last_exception, LookupError)

    def test_clients_share_command(self):
        """Test that two clients with the same command name trip one circuit"""
        adapter = ScriptedAdapter(503)
        first = _breaker_client(adapter, command_name="shared_cmd", max_retries=1, failure_threshold=2)
        second = _breaker_client(adapter, command_name="shared_cmd", max_retries=1, failure_threshold=2)
        with pytest.raises(RetryExhaustedError):
            first.get(URL)
        with pytest.raises(RetryExhaustedError) as exc_info:
            second.get(URL)
        assert adapter.calls == 2
        assert isinstance(exc_info.value.last_exception, CircuitOpenError)

    def test_breaker_timeout_caps_attempt_timeout(self):
        adapter = ScriptedAdapter(200)
        _breaker_client(adapter, timeout=0.1).get(URL)
        assert adapter.sent[0].timeout == 0.1


class TestSharedCommandLimits:
    """Tests for limits shared by every adapter of a command"""

    def test_concurrency_cap_is_per_command(self):
        config = CircuitBreakerConfig(command_name="cap_cmd", max_concurrent_requests=1)
        first = CircuitBreakerAdapter(config)
        second = CircuitBreakerAdapter(config)
        entered = threading.Event()
        release = threading.Event()
        results = []

        def _blocking():
            entered.set()
            release.wait(5.0)
            return "first"

        worker = threading.Thread(
            target=lambda: results.append(first.execute(_blocking, lambda r: False, lambda err: err))
        )
        worker.start()
        try:
            assert entered.wait(5.0)
            result = second.execute(lambda: "ran", lambda r: False, lambda err: err)
            assert isinstance(result, MaxConcurrencyError)
        finally:
            release.set()
            worker.join(5.0)

        assert results == ["first"]
        assert second.execute(lambda: "ran", lambda r: False, lambda err: err) == "ran"

    def test_reconfigure_resizes_cap(self):
        CircuitBreakerAdapter(CircuitBreakerConfig(command_name="resize", max_concurrent_requests=1))
        adapter = CircuitBreakerAdapter(CircuitBreakerConfig(command_name="resize", max_concurrent_requests=2))

        def _outer():
            return adapter.execute(lambda: "inner", lambda r: False, lambda err: err)

        assert adapter.execute(_outer, lambda r: False, lambda err: err) == "inner"

    def test_timeout_follows_latest_config(self):
        first = CircuitBreakerAdapter(CircuitBreakerConfig(command_name="slow", timeout=2.0))
        CircuitBreakerAdapter(CircuitBreakerConfig(command_name="slow", timeout=0.5))
        assert first.effective_timeout(10.0) == 0.5


class TestErrorRate:
    """Tests for the rolling error-percentage trip"""

    @staticmethod
    def _feed(adapter, outcomes):
        for failed in outcomes:
            adapter.execute(lambda: failed, lambda r: r, lambda err: err)

    def test_opens_at_volume_and_percentage(self):
        adapter = CircuitBreakerAdapter(
            CircuitBreakerConfig(command_name="rate", request_volume_threshold=4, error_percent_threshold=50)
        )
        self._feed(adapter, [False, True, False])
        assert adapter.breaker.current_state == pybreaker.STATE_CLOSED
        self._feed(adapter, [True])
        assert adapter.breaker.current_state == pybreaker.STATE_OPEN

    def test_low_error_rate_stays_closed(self):
        adapter = CircuitBreakerAdapter(
            CircuitBreakerConfig(command_name="healthy", request_volume_threshold=4, error_percent_threshold=50)
        )
        self._feed(adapter, [False, False, False, True, False, False, True])
        assert adapter.breaker.current_state == pybreaker.STATE_CLOSED

    def test_below_volume_stays_closed(self):
        """Test that failures below the volume threshold never open the circuit"""
        adapter = CircuitBreakerAdapter(CircuitBreakerConfig(command_name="quiet", request_volume_threshold=20))
        self._feed(adapter, [True] * 19)
        assert adapter.breaker.current_state == pybreaker.STATE_CLOSED

    def test_old_attempts_leave_the_window(self):
        adapter = CircuitBreakerAdapter(
            CircuitBreakerConfig(
                command_name="window",
                request_volume_threshold=2,
                error_percent_threshold=100,
                rolling_window=0.05,
            )
        )
        self._feed(adapter, [True])
        time.sleep(0.1)
        self._feed(adapter, [True])
        assert adapter.breaker.current_state == pybreaker.STATE_CLOSED
        self._feed(adapter, [True])
        assert adapter.breaker.current_state == pybreaker.STATE_OPEN

    def test_client_trips_on_error_rate(self):
        adapter = ScriptedAdapter(503)
        client = _breaker_client(
            adapter,
            command_name="rate_client",
            max_retries=5,
            failure_threshold=None,
            request_volume_threshold=3,
            error_percent_threshold=50,
        )
        with pytest.raises(RetryExhaustedError) as exc_info:
            client.get(URL)
        assert adapter.calls == 3
        assert isinstance(exc_info.value.last_exception, CircuitOpenError)
