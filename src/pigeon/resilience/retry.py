# === NAVMAP v1 ===
# {
#   "module": "pigeon.resilience.retry",
#   "purpose": "Bounded Tenacity retry loop with power-of-four backoff",
#   "sections": [
#     {
#       "id": "retryobservation",
#       "name": "RetryObservation",
#       "anchor": "class-retryobservation",
#       "kind": "class"
#     },
#     {
#       "id": "retryresult",
#       "name": "RetryResult",
#       "anchor": "class-retryresult",
#       "kind": "class"
#     },
#     {
#       "id": "powerbackoff",
#       "name": "PowerBackoff",
#       "anchor": "class-powerbackoff",
#       "kind": "class"
#     },
#     {
#       "id": "retrypolicy",
#       "name": "RetryPolicy",
#       "anchor": "class-retrypolicy",
#       "kind": "class"
#     }
#   ]
# }
# === /NAVMAP ===

"""Retry policy: Tenacity-based backoff around one request execution.

The loop runs *inside* the circuit breaker, so however many attempts it
makes, the breaker records a single sample per call.

Design:
- **Attempt budget**: ``max_tries`` total attempts (first call included)
- **Power-of-four backoff**: sleep ``backoff_unit * 4**n`` seconds before retry ``n``
- **Narrow retry set**: only :class:`TransportError` and :class:`RequestTimeout`;
  anything else propagates unchanged on first occurrence
- **Observable**: every retry fires ``on_retry(RetryObservation)``

Example:
    >>> policy = RetryPolicy(max_tries=3, sleep=lambda _: None)
    >>> result = policy.run(lambda: "ok")
    >>> (result.value, result.attempts)
    ('ok', 1)
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Generic, Optional, Tuple, Type, TypeVar

from tenacity import (
    RetryCallState,
    RetryError,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
)
from tenacity.wait import wait_base

from pigeon.errors import RETRYABLE_ERRORS, InvalidArgument, RetryExhausted

logger = logging.getLogger(__name__)

T = TypeVar("T")

#: Default attempt budget (first call included)
DEFAULT_MAX_TRIES = 3

#: Seconds multiplied by ``4**n`` before retry ``n``
DEFAULT_BACKOFF_UNIT = 1.0


@dataclass(frozen=True)
class RetryObservation:
    """One retry about to happen: ``attempt`` is the attempt that just failed."""

    attempt: int
    error: BaseException


@dataclass(frozen=True)
class RetryResult(Generic[T]):
    value: T
    attempts: int

    @property
    def retried(self) -> bool:
        return self.attempts > 1


class PowerBackoff(wait_base):
    """Wait ``unit * 4**n`` seconds, where ``n`` counts the attempts made so far."""

    def __init__(self, unit: float = DEFAULT_BACKOFF_UNIT, base: int = 4) -> None:
        self.unit = unit
        self.base = base

    def __call__(self, retry_state: RetryCallState) -> float:
        return float(self.unit * self.base**retry_state.attempt_number)


class RetryPolicy:
    """Bounded retry loop.

    Args:
        max_tries: Total attempts, at least 1.
        backoff_unit: Seconds scaled by ``4**n``; tests use 0.
        retry_on: Exception types worth another attempt.
        on_retry: Observation hook fired before each retry sleep.
        sleep: Sleep function handed to Tenacity (tests inject a no-op).
    """

    def __init__(
        self,
        max_tries: int = DEFAULT_MAX_TRIES,
        *,
        backoff_unit: float = DEFAULT_BACKOFF_UNIT,
        retry_on: Tuple[Type[BaseException], ...] = RETRYABLE_ERRORS,
        on_retry: Optional[Callable[[RetryObservation], None]] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if max_tries < 1:
            raise InvalidArgument("max_tries must be >= 1")
        self.max_tries = max_tries
        self.backoff_unit = backoff_unit
        self.retry_on = retry_on
        self.on_retry = on_retry
        self.sleep = sleep

    def run(self, operation: Callable[[], T]) -> RetryResult[T]:
        """Call ``operation`` until it succeeds or the attempt budget is spent.

        Raises:
            RetryExhausted: Every attempt failed with a retryable error; chained
                from the last one.
            Exception: Any non-retryable error, unchanged, on first occurrence.
        """
        retrying = Retrying(
            stop=stop_after_attempt(self.max_tries),
            wait=PowerBackoff(self.backoff_unit),
            retry=retry_if_exception_type(self.retry_on),
            before_sleep=self._before_sleep,
            sleep=self.sleep,
            reraise=False,
        )
        try:
            for attempt in retrying:
                with attempt:
                    value = operation()
                    return RetryResult(value=value, attempts=attempt.retry_state.attempt_number)
        except RetryError as exc:
            last_attempt = exc.last_attempt
            last_error = last_attempt.exception()
            logger.warning(
                "retries exhausted",
                extra={
                    "attempts": last_attempt.attempt_number,
                    "error_type": type(last_error).__name__,
                },
            )
            raise RetryExhausted(last_attempt.attempt_number, last_error) from last_error
        raise AssertionError("tenacity loop ended without an outcome")  # pragma: no cover

    def _before_sleep(self, retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "retrying after error",
            extra={
                "attempt": retry_state.attempt_number,
                "max_tries": self.max_tries,
                "sleep_s": retry_state.next_action.sleep if retry_state.next_action else None,
                "error_type": type(error).__name__,
            },
        )
        if self.on_retry is not None and error is not None:
            self.on_retry(RetryObservation(attempt=retry_state.attempt_number, error=error))


__all__ = [
    "DEFAULT_MAX_TRIES",
    "DEFAULT_BACKOFF_UNIT",
    "RetryObservation",
    "RetryResult",
    "PowerBackoff",
    "RetryPolicy",
]
