"""Tests for the enrichment circuit breaker."""

import pytest
from docketcc.enrichment.circuit_breaker import CircuitBreaker
from docketcc.exceptions import CircuitOpenError


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def _fail():
    raise RuntimeError("boom")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def breaker(clock):
    return CircuitBreaker(threshold=3, reset_timeout=300, clock=clock)


class TestCircuitBreaker:
    def test_opens_after_threshold(self, breaker):
        for _ in range(3):
            with pytest.raises(RuntimeError):
                breaker.call(_fail)
        assert breaker.state == "open"
        with pytest.raises(CircuitOpenError):
            breaker.call(lambda: "never called")

    def test_success_resets_count(self, breaker):
        for _ in range(2):
            with pytest.raises(RuntimeError):
                breaker.call(_fail)
        assert breaker.call(lambda: "ok") == "ok"
        assert breaker.failures == 0
        assert breaker.state == "closed"

    def test_half_open_after_timeout(self, breaker, clock):
        for _ in range(3):
            with pytest.raises(RuntimeError):
                breaker.call(_fail)
        clock.now = 301
        assert breaker.state == "half_open"
        assert breaker.call(lambda: "recovered") == "recovered"
        assert breaker.state == "closed"

    def test_half_open_failure_reopens(self, breaker, clock):
        for _ in range(3):
            with pytest.raises(RuntimeError):
                breaker.call(_fail)
        clock.now = 301
        with pytest.raises(RuntimeError):
            breaker.call(_fail)
        assert breaker.state == "open"

    def test_open_error_category(self, breaker):
        for _ in range(3):
            with pytest.raises(RuntimeError):
                breaker.call(_fail)
        with pytest.raises(CircuitOpenError) as excinfo:
            breaker.call(lambda: None)
        assert excinfo.value.category == "CIRCUIT_OPEN"
