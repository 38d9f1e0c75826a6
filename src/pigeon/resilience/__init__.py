"""Resilience layer: circuit breakers and retry policies.

- breakers: per-identifier rolling-window circuit breakers (pybreaker-backed)
- retry: Tenacity retry loop with power-of-four backoff

The retry loop always runs inside the breaker::

    breaker.run(name, lambda: retry.run(lambda: executor.execute(spec)))
"""

from pigeon.resilience.breakers import (
    BreakerConfig,
    BreakerLogListener,
    BreakerMode,
    BreakerRegistry,
    BreakerState,
    CircuitBreaker,
)
from pigeon.resilience.retry import (
    PowerBackoff,
    RetryObservation,
    RetryPolicy,
    RetryResult,
)

__all__ = [
    "BreakerConfig",
    "BreakerLogListener",
    "BreakerMode",
    "BreakerRegistry",
    "BreakerState",
    "CircuitBreaker",
    "PowerBackoff",
    "RetryObservation",
    "RetryPolicy",
    "RetryResult",
]
