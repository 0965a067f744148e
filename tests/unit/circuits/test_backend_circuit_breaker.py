"""Unit tests for the backend circuit breaker.

Tests state transitions, failure counting, recovery timing and the
single half-open trial call.
"""

from __future__ import annotations

import asyncio

import pytest

from queue_ops.circuit_breaker import (
    BackendCircuitBreaker,
    CircuitOpenError,
    CircuitStateChange,
)
from queue_ops.circuit_breaker_config import CircuitBreakerConfig, CircuitState


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


async def _ok() -> str:
    return "ok"


async def _boom() -> str:
    raise ConnectionError("backend down")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def breaker(clock: FakeClock) -> BackendCircuitBreaker:
    config = CircuitBreakerConfig(failure_threshold=3, reset_timeout_seconds=30.0)
    return BackendCircuitBreaker("queue", config, clock=clock)


async def _fail(breaker: BackendCircuitBreaker, times: int) -> None:
    for _ in range(times):
        with pytest.raises(ConnectionError):
            await breaker.execute(_boom)


class TestCircuitBreakerConfig:
    """Tests for circuit breaker configuration."""

    def test_defaults(self) -> None:
        config = CircuitBreakerConfig()
        assert config.failure_threshold == 3
        assert config.reset_timeout_seconds == 30.0

    def test_config_is_frozen(self) -> None:
        """Config dataclass is immutable."""
        config = CircuitBreakerConfig()
        with pytest.raises(AttributeError):
            config.failure_threshold = 10  # type: ignore[misc]

    def test_threshold_below_one_rejected(self) -> None:
        with pytest.raises(ValueError):
            CircuitBreakerConfig(failure_threshold=0)


class TestClosedState:
    async def test_starts_closed(self, breaker: BackendCircuitBreaker) -> None:
        assert breaker.state == CircuitState.CLOSED
        assert breaker.is_closed
        assert breaker.failure_count == 0

    async def test_success_passes_result_through(self, breaker: BackendCircuitBreaker) -> None:
        assert await breaker.execute(_ok) == "ok"

    async def test_operation_error_propagates_unchanged(
        self, breaker: BackendCircuitBreaker
    ) -> None:
        with pytest.raises(ConnectionError, match="backend down"):
            await breaker.execute(_boom)
        assert breaker.failure_count == 1
        assert breaker.to_dict()["last_error"] == "backend down"

    async def test_stays_closed_below_threshold(self, breaker: BackendCircuitBreaker) -> None:
        await _fail(breaker, 2)
        assert breaker.state == CircuitState.CLOSED

    async def test_success_resets_consecutive_count(self, breaker: BackendCircuitBreaker) -> None:
        await _fail(breaker, 2)
        await breaker.execute(_ok)
        await _fail(breaker, 2)
        assert breaker.state == CircuitState.CLOSED
        assert breaker.failure_count == 2

    async def test_opens_at_threshold(self, breaker: BackendCircuitBreaker) -> None:
        await _fail(breaker, 3)
        assert breaker.state == CircuitState.OPEN
        assert breaker.is_open


class TestOpenState:
    async def test_fails_fast_without_calling_operation(
        self, breaker: BackendCircuitBreaker
    ) -> None:
        await _fail(breaker, 3)
        calls = 0

        async def counted() -> str:
            nonlocal calls
            calls += 1
            return "ok"

        with pytest.raises(CircuitOpenError) as exc_info:
            await breaker.execute(counted)
        assert calls == 0
        assert exc_info.value.identifier == "queue"
        assert exc_info.value.time_until_retry == pytest.approx(30.0)

    async def test_time_until_retry_counts_down(
        self, breaker: BackendCircuitBreaker, clock: FakeClock
    ) -> None:
        await _fail(breaker, 3)
        clock.advance(12)
        assert breaker.get_time_until_retry() == pytest.approx(18.0)

    async def test_trial_after_timeout_closes_on_success(
        self, breaker: BackendCircuitBreaker, clock: FakeClock
    ) -> None:
        await _fail(breaker, 3)
        clock.advance(30)
        assert await breaker.execute(_ok) == "ok"
        assert breaker.state == CircuitState.CLOSED
        assert breaker.failure_count == 0

    async def test_failed_trial_reopens_with_fresh_timer(
        self, breaker: BackendCircuitBreaker, clock: FakeClock
    ) -> None:
        await _fail(breaker, 3)
        clock.advance(31)
        await _fail(breaker, 1)
        assert breaker.state == CircuitState.OPEN
        assert breaker.get_time_until_retry() == pytest.approx(30.0)


class TestHalfOpenState:
    async def test_only_one_trial_call_in_flight(
        self, breaker: BackendCircuitBreaker, clock: FakeClock
    ) -> None:
        await _fail(breaker, 3)
        clock.advance(30)
        release = asyncio.Event()

        async def slow() -> str:
            await release.wait()
            return "ok"

        trial = asyncio.create_task(breaker.execute(slow))
        await asyncio.sleep(0)
        assert breaker.state == CircuitState.HALF_OPEN

        with pytest.raises(CircuitOpenError):
            await breaker.execute(_ok)

        release.set()
        assert await trial == "ok"
        assert breaker.state == CircuitState.CLOSED


class TestResetAndListeners:
    async def test_manual_reset_closes_open_circuit(self, breaker: BackendCircuitBreaker) -> None:
        await _fail(breaker, 3)
        await breaker.reset()
        assert breaker.state == CircuitState.CLOSED
        assert breaker.failure_count == 0
        assert await breaker.execute(_ok) == "ok"

    async def test_listeners_receive_transitions(
        self, breaker: BackendCircuitBreaker, clock: FakeClock
    ) -> None:
        changes: list[CircuitStateChange] = []
        breaker.on_state_change(changes.append)

        await _fail(breaker, 3)
        clock.advance(30)
        await breaker.execute(_ok)

        assert [(c.old_state, c.new_state) for c in changes] == [
            (CircuitState.CLOSED, CircuitState.OPEN),
            (CircuitState.OPEN, CircuitState.HALF_OPEN),
            (CircuitState.HALF_OPEN, CircuitState.CLOSED),
        ]
        assert changes[0].to_dict()["new_state"] == "open"

    async def test_failing_listener_does_not_break_breaker(
        self, breaker: BackendCircuitBreaker
    ) -> None:
        def bad_listener(change: CircuitStateChange) -> None:
            raise RuntimeError("listener bug")

        breaker.on_state_change(bad_listener)
        await _fail(breaker, 3)
        assert breaker.state == CircuitState.OPEN

    async def test_removed_listener_not_called(self, breaker: BackendCircuitBreaker) -> None:
        changes: list[CircuitStateChange] = []
        breaker.on_state_change(changes.append)
        breaker.remove_listener(changes.append)
        await _fail(breaker, 3)
        assert changes == []
