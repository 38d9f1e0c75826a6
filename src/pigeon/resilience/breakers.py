# === NAVMAP v1 ===
# {
#   "module": "pigeon.resilience.breakers",
#   "purpose": "Per-identifier circuit breakers over a rolling error-rate window, backed by pybreaker state",
#   "sections": [
#     {
#       "id": "breakermode",
#       "name": "BreakerMode",
#       "anchor": "class-breakermode",
#       "kind": "class"
#     },
#     {
#       "id": "breakerconfig",
#       "name": "BreakerConfig",
#       "anchor": "class-breakerconfig",
#       "kind": "class"
#     },
#     {
#       "id": "breakerstate",
#       "name": "BreakerState",
#       "anchor": "class-breakerstate",
#       "kind": "class"
#     },
#     {
#       "id": "breakerloglistener",
#       "name": "BreakerLogListener",
#       "anchor": "class-breakerloglistener",
#       "kind": "class"
#     },
#     {
#       "id": "breakerregistry",
#       "name": "BreakerRegistry",
#       "anchor": "class-breakerregistry",
#       "kind": "class"
#     },
#     {
#       "id": "circuitbreaker",
#       "name": "CircuitBreaker",
#       "anchor": "class-circuitbreaker",
#       "kind": "class"
#     }
#   ]
# }
# === /NAVMAP ===

"""Circuit breaker pattern over a rolling error-rate window.

Each *identifier* (the request name of a :class:`pigeon.ResilientClient`) owns
one :class:`BreakerState`, kept in an application-owned
:class:`BreakerRegistry`. The mode itself (closed / open / half-open) is held
by a ``pybreaker.CircuitBreaker`` that we drive explicitly, so pybreaker
listeners see every transition; the trip decision is ours, since pybreaker
only knows consecutive-failure counts.

State machine:

- **Closed**: calls run; every outcome is a ``(timestamp, success)`` sample
  in a window of ``time_window`` seconds. Once the window holds at least
  ``volume_threshold`` samples and the failure percentage reaches
  ``error_threshold``, the breaker opens.
- **Open**: calls fail fast with :class:`CircuitOpen` without running, until
  ``sleep_window`` seconds have passed since opening. The check happens on
  the next call, not on a timer.
- **Half-open**: exactly one trial call runs; concurrent callers fail fast.
  Success closes the breaker (window cleared), failure re-opens it.

Every exception raised by the protected operation counts as a failure and is
re-raised unchanged. HTTP status codes never count: a 500 response is a
successful call as far as the breaker is concerned.

Typical usage:
    registry = BreakerRegistry()
    breaker = CircuitBreaker(registry, BreakerConfig(volume_threshold=20))
    envelope = breaker.run("billing-api", lambda: executor.execute(spec))
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Deque, Dict, List, Optional, Tuple, TypeVar

import pybreaker

from pigeon.errors import CircuitOpen, InvalidArgument

logger = logging.getLogger(__name__)

T = TypeVar("T")

BreakerCallback = Callable[[str], None]
ListenerFactory = Callable[[str], Optional[pybreaker.CircuitBreakerListener]]


# ────────────────────────────────────────────────────────────────────────────────
# Modes & configuration
# ────────────────────────────────────────────────────────────────────────────────


class BreakerMode(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


_MODE_BY_PYBREAKER_STATE = {
    pybreaker.STATE_CLOSED: BreakerMode.CLOSED,
    pybreaker.STATE_OPEN: BreakerMode.OPEN,
    pybreaker.STATE_HALF_OPEN: BreakerMode.HALF_OPEN,
}


@dataclass(frozen=True)
class BreakerConfig:
    """Trip thresholds. Windows are in seconds, ``error_threshold`` in percent."""

    volume_threshold: int = 10
    error_threshold: float = 10.0
    time_window: float = 10.0
    sleep_window: float = 10.0

    def __post_init__(self) -> None:
        if self.volume_threshold < 1:
            raise InvalidArgument("volume_threshold must be >= 1")
        if not 0 <= self.error_threshold <= 100:
            raise InvalidArgument("error_threshold must be between 0 and 100")
        if self.time_window < 0 or self.sleep_window < 0:
            raise InvalidArgument("time_window and sleep_window must be >= 0")


# ────────────────────────────────────────────────────────────────────────────────
# Per-identifier state
# ────────────────────────────────────────────────────────────────────────────────


@dataclass
class BreakerState:
    """Mutable breaker bookkeeping for one identifier. Guarded by ``lock``."""

    identifier: str
    breaker: pybreaker.CircuitBreaker = field(repr=False)
    samples: Deque[Tuple[float, bool]] = field(default_factory=deque, repr=False)
    opened_at: Optional[float] = None
    trial_in_flight: bool = False
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    @property
    def mode(self) -> BreakerMode:
        return _MODE_BY_PYBREAKER_STATE[self.breaker.current_state]

    def failure_count(self) -> int:
        return sum(1 for _, ok in self.samples if not ok)

    def prune(self, now: float, time_window: float) -> None:
        """Drop samples older than ``time_window`` seconds."""
        cutoff = now - time_window
        while self.samples and self.samples[0][0] < cutoff:
            self.samples.popleft()


class BreakerLogListener(pybreaker.CircuitBreakerListener):
    """Logs every state change of one identifier's pybreaker instance."""

    def __init__(self, identifier: str) -> None:
        self.identifier = identifier

    def state_change(self, cb, old_state, new_state):
        logger.info(
            "circuit breaker state change",
            extra={
                "identifier": self.identifier,
                "old": getattr(old_state, "name", str(old_state)),
                "new": getattr(new_state, "name", str(new_state)),
            },
        )


# ────────────────────────────────────────────────────────────────────────────────
# Registry
# ────────────────────────────────────────────────────────────────────────────────


class BreakerRegistry:
    """Application-owned store of :class:`BreakerState`, one per identifier.

    States are created on first use and live as long as the registry. Share
    one registry between clients that should trip together.

    Args:
        now_monotonic: Clock used for samples and sleep windows (tests inject a fake).
        listener_factory: Optional extra pybreaker listener per identifier.
    """

    def __init__(
        self,
        *,
        now_monotonic: Callable[[], float] = time.monotonic,
        listener_factory: Optional[ListenerFactory] = None,
    ) -> None:
        self._now = now_monotonic
        self.listener_factory = listener_factory
        self._states: Dict[str, BreakerState] = {}
        self._lock = threading.Lock()

    def now(self) -> float:
        return self._now()

    def state_for(self, identifier: str, config: Optional[BreakerConfig] = None) -> BreakerState:
        """Return the state for ``identifier``, creating it on first use."""
        state = self._states.get(identifier)
        if state is not None:
            return state
        with self._lock:
            state = self._states.get(identifier)
            if state is None:
                state = BreakerState(
                    identifier=identifier,
                    breaker=self._create_breaker(identifier, config or BreakerConfig()),
                )
                self._states[identifier] = state
            return state

    def current_state(self, identifier: str) -> str:
        """Return ``closed``/``open``/``half_open`` (``closed`` for unknown identifiers)."""
        state = self._states.get(identifier)
        if state is None:
            return BreakerMode.CLOSED.value
        with state.lock:
            return state.mode.value

    def identifiers(self) -> List[str]:
        with self._lock:
            return list(self._states)

    def reset(self, identifier: Optional[str] = None) -> None:
        """Forget one identifier's state, or every state when ``identifier`` is None."""
        with self._lock:
            if identifier is None:
                self._states.clear()
            else:
                self._states.pop(identifier, None)

    def __contains__(self, identifier: object) -> bool:
        return identifier in self._states

    def __len__(self) -> int:
        return len(self._states)

    def _create_breaker(self, identifier: str, config: BreakerConfig) -> pybreaker.CircuitBreaker:
        listeners: List[pybreaker.CircuitBreakerListener] = [BreakerLogListener(identifier)]
        if self.listener_factory:
            extra = self.listener_factory(identifier)
            if extra is not None:
                listeners.append(extra)
        # pybreaker's own trip logic is never exercised: we never call cb.call()
        return pybreaker.CircuitBreaker(
            fail_max=config.volume_threshold,
            reset_timeout=config.sleep_window,
            listeners=listeners,
            name=identifier,
        )


# ────────────────────────────────────────────────────────────────────────────────
# Breaker
# ────────────────────────────────────────────────────────────────────────────────


class CircuitBreaker:
    """Runs operations through the breaker of their identifier.

    Args:
        registry: Where per-identifier state lives.
        config: Trip thresholds applied to every identifier run through this breaker.
        on_open: Called with the identifier after each transition to open.
        on_close: Called with the identifier after each transition to closed.
    """

    def __init__(
        self,
        registry: Optional[BreakerRegistry] = None,
        config: Optional[BreakerConfig] = None,
        on_open: Optional[BreakerCallback] = None,
        on_close: Optional[BreakerCallback] = None,
    ) -> None:
        self.registry = registry if registry is not None else BreakerRegistry()
        self.config = config or BreakerConfig()
        self.on_open = on_open
        self.on_close = on_close

    def run(self, identifier: str, operation: Callable[[], T]) -> T:
        """Run ``operation`` unless the breaker for ``identifier`` is open.

        Raises:
            CircuitOpen: The breaker is open, or half-open with a trial in flight.
                ``operation`` is not invoked.
        """
        state = self.registry.state_for(identifier, self.config)
        is_trial = self._admit(state)

        ok = False
        try:
            result = operation()
            ok = True
            return result
        finally:
            transition = self._record(state, ok, is_trial)
            if transition is BreakerMode.OPEN:
                self._fire(self.on_open, identifier)
            elif transition is BreakerMode.CLOSED:
                self._fire(self.on_close, identifier)

    def mode(self, identifier: str) -> BreakerMode:
        return BreakerMode(self.registry.current_state(identifier))

    # ── internals ─────────────────────────────────────────────────────────────

    def _admit(self, state: BreakerState) -> bool:
        """Admit a call or raise :class:`CircuitOpen`. Returns True for a half-open trial."""
        with state.lock:
            now = self.registry.now()
            if state.mode is BreakerMode.OPEN:
                elapsed = now - (state.opened_at if state.opened_at is not None else now)
                if elapsed < self.config.sleep_window:
                    raise CircuitOpen(state.identifier, self.config.sleep_window - elapsed)
                state.breaker.half_open()
            if state.mode is BreakerMode.HALF_OPEN:
                if state.trial_in_flight:
                    raise CircuitOpen(state.identifier)
                state.trial_in_flight = True
                return True
            return False

    def _record(self, state: BreakerState, ok: bool, is_trial: bool) -> Optional[BreakerMode]:
        """Record one outcome; return the mode transitioned to, if any."""
        with state.lock:
            now = self.registry.now()
            if is_trial:
                state.trial_in_flight = False
                if ok:
                    state.samples.clear()
                    state.opened_at = None
                    state.breaker.close()
                    return BreakerMode.CLOSED
                state.opened_at = now
                state.breaker.open()
                return BreakerMode.OPEN

            state.samples.append((now, ok))
            state.prune(now, self.config.time_window)
            if state.mode is not BreakerMode.CLOSED:
                return None

            total = len(state.samples)
            failures = state.failure_count()
            if (
                failures
                and total >= self.config.volume_threshold
                and failures * 100 >= self.config.error_threshold * total
            ):
                state.opened_at = now
                state.breaker.open()
                logger.warning(
                    "circuit breaker tripped",
                    extra={
                        "identifier": state.identifier,
                        "samples": total,
                        "failures": failures,
                        "error_threshold": self.config.error_threshold,
                    },
                )
                return BreakerMode.OPEN
            return None

    @staticmethod
    def _fire(callback: Optional[BreakerCallback], identifier: str) -> None:
        if callback is None:
            return
        try:
            callback(identifier)
        except Exception:
            logger.exception(
                "circuit breaker callback failed", extra={"identifier": identifier}
            )


__all__ = [
    "BreakerMode",
    "BreakerConfig",
    "BreakerState",
    "BreakerLogListener",
    "BreakerRegistry",
    "CircuitBreaker",
]
