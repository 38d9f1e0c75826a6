# === NAVMAP v1 ===
# {
#   "module": "tests.resilience.test_circuit_breaker",
#   "purpose": "Unit tests for the rolling-window circuit breaker",
#   "sections": [
#     {"id": "test-closed", "name": "TestClosed", "kind": "class"},
#     {"id": "test-open", "name": "TestOpen", "kind": "class"},
#     {"id": "test-half-open", "name": "TestHalfOpen", "kind": "class"},
#     {"id": "test-registry", "name": "TestRegistry", "kind": "class"}
#   ]
# }
# === /NAVMAP ===

"""Unit tests for circuit breaker core functionality.

Tests cover:
- Trip on volume + error percentage within the time window
- Samples ageing out of the window
- Fail fast while open, without running the operation
- Sleep window, single half-open trial, trial success/failure
- Callbacks fired once per transition
"""

from __future__ import annotations

import threading

import pybreaker
import pytest

from pigeon.errors import CircuitOpen, InvalidArgument, TransportError
from pigeon.resilience.breakers import (
    BreakerConfig,
    BreakerMode,
    BreakerRegistry,
    CircuitBreaker,
)

NAME = "billing-api"


def _ok():
    return "ok"


def _fail():
    raise TransportError("boom")


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def registry(fake_clock):
    return BreakerRegistry(now_monotonic=fake_clock)


@pytest.fixture
def events():
    return []


@pytest.fixture
def breaker(registry, events):
    return CircuitBreaker(
        registry,
        BreakerConfig(volume_threshold=10, error_threshold=50, time_window=10, sleep_window=5),
        on_open=lambda name: events.append(("open", name)),
        on_close=lambda name: events.append(("close", name)),
    )


def _run(breaker, outcome):
    try:
        return breaker.run(NAME, outcome)
    except TransportError:
        return None


def _trip(breaker):
    for _ in range(4):
        _run(breaker, _ok)
    for _ in range(6):
        _run(breaker, _fail)
    assert breaker.mode(NAME) is BreakerMode.OPEN


# ============================================================================
# Closed
# ============================================================================


class TestClosed:
    def test_success_passes_through(self, breaker):
        assert breaker.run(NAME, _ok) == "ok"
        assert breaker.mode(NAME) is BreakerMode.CLOSED

    def test_failure_reraised_unchanged(self, breaker):
        error = TransportError("specific")

        def fail():
            raise error

        with pytest.raises(TransportError) as excinfo:
            breaker.run(NAME, fail)
        assert excinfo.value is error

    def test_trips_on_tenth_call_with_six_failures(self, breaker, events):
        for _ in range(4):
            _run(breaker, _ok)
        for _ in range(5):
            _run(breaker, _fail)
        assert breaker.mode(NAME) is BreakerMode.CLOSED
        _run(breaker, _fail)
        assert breaker.mode(NAME) is BreakerMode.OPEN
        assert events == [("open", NAME)]

    def test_below_volume_never_trips(self, breaker):
        for _ in range(9):
            _run(breaker, _fail)
        assert breaker.mode(NAME) is BreakerMode.CLOSED

    def test_below_error_threshold(self, breaker):
        for _ in range(6):
            _run(breaker, _ok)
        for _ in range(4):
            _run(breaker, _fail)
        assert breaker.mode(NAME) is BreakerMode.CLOSED

    def test_old_samples_age_out(self, breaker, fake_clock):
        for _ in range(9):
            _run(breaker, _fail)
        fake_clock.advance(11)
        _run(breaker, _fail)
        assert breaker.mode(NAME) is BreakerMode.CLOSED

    def test_any_exception_counts(self, registry):
        breaker = CircuitBreaker(registry, BreakerConfig(volume_threshold=1, error_threshold=100))

        def bug():
            raise KeyError("not an http error")

        with pytest.raises(KeyError):
            breaker.run(NAME, bug)
        assert breaker.mode(NAME) is BreakerMode.OPEN

    def test_zero_error_threshold_needs_a_failure(self, registry):
        breaker = CircuitBreaker(registry, BreakerConfig(volume_threshold=2, error_threshold=0))
        breaker.run(NAME, _ok)
        breaker.run(NAME, _ok)
        assert breaker.mode(NAME) is BreakerMode.CLOSED


# ============================================================================
# Open
# ============================================================================


class TestOpen:
    def test_short_circuits_without_running(self, breaker):
        _trip(breaker)
        calls = []
        with pytest.raises(CircuitOpen) as excinfo:
            breaker.run(NAME, lambda: calls.append(1))
        assert calls == []
        assert excinfo.value.identifier == NAME
        assert 0 < excinfo.value.remaining_s <= 5

    def test_stays_open_within_sleep_window(self, breaker, fake_clock):
        _trip(breaker)
        fake_clock.advance(4.9)
        with pytest.raises(CircuitOpen):
            breaker.run(NAME, _ok)

    def test_open_fires_once(self, breaker, events):
        _trip(breaker)
        for _ in range(3):
            with pytest.raises(CircuitOpen):
                breaker.run(NAME, _ok)
        assert events == [("open", NAME)]


# ============================================================================
# Half-open
# ============================================================================


class TestHalfOpen:
    def test_trial_success_closes(self, breaker, fake_clock, events, registry):
        _trip(breaker)
        fake_clock.advance(5)
        assert breaker.run(NAME, _ok) == "ok"
        assert breaker.mode(NAME) is BreakerMode.CLOSED
        assert events == [("open", NAME), ("close", NAME)]
        assert len(registry.state_for(NAME).samples) == 0

    def test_trial_failure_reopens(self, breaker, fake_clock, events):
        _trip(breaker)
        fake_clock.advance(5)
        with pytest.raises(TransportError):
            breaker.run(NAME, _fail)
        assert breaker.mode(NAME) is BreakerMode.OPEN
        assert events == [("open", NAME), ("open", NAME)]

        fake_clock.advance(4)
        with pytest.raises(CircuitOpen):
            breaker.run(NAME, _ok)
        fake_clock.advance(1)
        assert breaker.run(NAME, _ok) == "ok"

    def test_single_trial_in_flight(self, breaker, fake_clock):
        _trip(breaker)
        fake_clock.advance(5)
        entered = threading.Event()
        release = threading.Event()
        results = []

        def slow_trial():
            entered.set()
            release.wait(timeout=5)
            return "trial"

        worker = threading.Thread(target=lambda: results.append(breaker.run(NAME, slow_trial)))
        worker.start()
        assert entered.wait(timeout=5)
        assert breaker.mode(NAME) is BreakerMode.HALF_OPEN
        with pytest.raises(CircuitOpen):
            breaker.run(NAME, _ok)
        release.set()
        worker.join(timeout=5)

        assert results == ["trial"]
        assert breaker.mode(NAME) is BreakerMode.CLOSED

    def test_recovered_breaker_needs_full_volume_again(self, breaker, fake_clock):
        _trip(breaker)
        fake_clock.advance(5)
        breaker.run(NAME, _ok)
        for _ in range(9):
            _run(breaker, _fail)
        assert breaker.mode(NAME) is BreakerMode.CLOSED


# ============================================================================
# Registry
# ============================================================================


class TestRegistry:
    def test_state_created_on_first_use(self, registry):
        assert NAME not in registry
        assert registry.current_state(NAME) == "closed"
        state = registry.state_for(NAME)
        assert registry.state_for(NAME) is state
        assert registry.identifiers() == [NAME]

    def test_identifiers_are_independent(self, breaker):
        _trip(breaker)
        assert breaker.run("other-api", _ok) == "ok"
        assert breaker.mode("other-api") is BreakerMode.CLOSED

    def test_shared_registry_trips_together(self, registry):
        config = BreakerConfig(volume_threshold=2, error_threshold=50)
        first = CircuitBreaker(registry, config)
        second = CircuitBreaker(registry, config)
        _run(first, _fail)
        _run(second, _fail)
        with pytest.raises(CircuitOpen):
            first.run(NAME, _ok)

    def test_pybreaker_holds_mode(self, breaker, registry):
        _trip(breaker)
        assert registry.state_for(NAME).breaker.current_state == pybreaker.STATE_OPEN

    def test_listener_factory(self, fake_clock):
        changes = []

        class Recorder(pybreaker.CircuitBreakerListener):
            def state_change(self, cb, old_state, new_state):
                changes.append(new_state.name)

        registry = BreakerRegistry(now_monotonic=fake_clock, listener_factory=lambda _: Recorder())
        breaker = CircuitBreaker(registry, BreakerConfig(volume_threshold=1, error_threshold=100))
        _run(breaker, _fail)
        assert changes == [pybreaker.STATE_OPEN]

    def test_reset(self, registry, breaker):
        _trip(breaker)
        registry.reset(NAME)
        assert breaker.mode(NAME) is BreakerMode.CLOSED
        assert len(registry) == 0

    def test_callback_errors_are_logged(self, registry, caplog):
        def explode(_):
            raise RuntimeError("callback bug")

        breaker = CircuitBreaker(
            registry, BreakerConfig(volume_threshold=1, error_threshold=100), on_open=explode
        )
        with pytest.raises(TransportError):
            breaker.run(NAME, _fail)
        assert "circuit breaker callback failed" in caplog.text


@pytest.mark.parametrize(
    "kwargs",
    [{"volume_threshold": 0}, {"error_threshold": 101}, {"time_window": -1}],
)
def test_config_validation(kwargs):
    with pytest.raises(InvalidArgument):
        BreakerConfig(**kwargs)
