# === NAVMAP v1 ===
# {
#   "module": "pigeon.client",
#   "purpose": "Resilient client facade: breaker around retry around the request executor",
#   "sections": [
#     {
#       "id": "callresult",
#       "name": "CallResult",
#       "anchor": "class-callresult",
#       "kind": "class"
#     },
#     {
#       "id": "resilientclient",
#       "name": "ResilientClient",
#       "anchor": "class-resilientclient",
#       "kind": "class"
#     }
#   ]
# }
# === /NAVMAP ===

"""Resilient HTTP client facade.

Every call follows the same path::

    ResilientClient.request
      -> RequestSpec.build          (InvalidArgument raised, InvalidUri returned)
      -> CircuitBreaker.run(name)   (one sample per call)
        -> RetryPolicy.run          (transport errors and timeouts only)
          -> RequestExecutor.execute + body decoding

Operational failures never cross the public boundary as exceptions: the call
returns a :class:`CallResult` carrying the error, and ``on_http_error`` fires.
Only :class:`InvalidArgument` (unknown option keys, malformed parameters) is
raised, because it signals a programming mistake.

Example:
    >>> client = ResilientClient("billing-api", {"retry_threshold": 2})
    >>> result = client.get("https://billing.example.com/invoices", query={"page": 1})  # doctest: +SKIP
    >>> result.unwrap().status_code  # doctest: +SKIP
    200
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional, Union

from pigeon.errors import InvalidArgument, PigeonError, RetryExhausted, UnexpectedError
from pigeon.logging_config import generate_correlation_id
from pigeon.network.executor import RequestExecutor
from pigeon.network.request import RequestSpec, Verb
from pigeon.network.response import ResponseEnvelope
from pigeon.network.uri import UriLike
from pigeon.observability.metrics import MetricKind, MetricsSink, create_sink
from pigeon.resilience.breakers import BreakerRegistry, CircuitBreaker
from pigeon.resilience.retry import RetryObservation, RetryPolicy
from pigeon.settings import Callbacks, ClientOptions, load_client_options

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CallResult:
    """Outcome of one facade call: a response or an error, never both."""

    response: Optional[ResponseEnvelope] = None
    error: Optional[PigeonError] = None
    attempts: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> ResponseEnvelope:
        """Return the response or raise the error."""
        if self.error is not None:
            raise self.error
        assert self.response is not None
        return self.response

    def __bool__(self) -> bool:
        return self.ok


class ResilientClient:
    """Named HTTP client whose calls share one circuit breaker.

    Args:
        name: Request name; identifies the breaker and prefixes metric names.
        options: :class:`ClientOptions`, or a raw mapping validated on top of the
            ``PIGEON_*`` environment defaults.
        callbacks: :class:`Callbacks` or a raw slot mapping.
        registry: Breaker registry, shared between clients that should trip together.
        executor: Request executor (tests inject one over ``httpx.MockTransport``).
        sink: Metrics sink; chosen from ``monitoring_sink`` when omitted.
        sleep: Sleep used between retries.

    Raises:
        InvalidArgument: Empty name, unknown option or callback keys, bad values.
    """

    def __init__(
        self,
        name: str,
        options: Union[ClientOptions, Mapping[str, Any], None] = None,
        callbacks: Union[Callbacks, Mapping[str, Any], None] = None,
        *,
        registry: Optional[BreakerRegistry] = None,
        executor: Optional[RequestExecutor] = None,
        sink: Optional[MetricsSink] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if not name or not isinstance(name, str):
            raise InvalidArgument("request name must be a non-empty string")
        self.name = name
        if isinstance(options, ClientOptions):
            self._options = options
        else:
            self._options = load_client_options(**dict(options or {}))
        self._callbacks = (
            callbacks if isinstance(callbacks, Callbacks) else Callbacks.from_mapping(callbacks)
        )
        self.registry = registry if registry is not None else BreakerRegistry()
        self._owns_executor = executor is None
        self._executor = executor if executor is not None else RequestExecutor()
        self._explicit_sink = sink
        self._sink: Optional[MetricsSink] = sink
        self._sleep = sleep
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    @property
    def options(self) -> ClientOptions:
        return self._options

    @property
    def callbacks(self) -> Callbacks:
        return self._callbacks

    @property
    def sink(self) -> MetricsSink:
        with self._lock:
            if self._sink is None:
                self._sink = create_sink(self._options.monitoring_sink)
            return self._sink

    def config(self, key: str, value: Any) -> ClientOptions:
        """Set one option after re-validating the whole set.

        Raises:
            InvalidArgument: Unknown key or invalid value; options stay unchanged.
        """
        with self._lock:
            self._options = self._options.with_value(key, value)
            if key == "monitoring_sink" and self._explicit_sink is None:
                self._sink = None
            return self._options

    # ------------------------------------------------------------------
    # Verbs
    # ------------------------------------------------------------------

    def get(self, url: UriLike, **options: Any) -> CallResult:
        return self.request(Verb.GET, url, **options)

    def post(self, url: UriLike, **options: Any) -> CallResult:
        return self.request(Verb.POST, url, **options)

    def put(self, url: UriLike, **options: Any) -> CallResult:
        return self.request(Verb.PUT, url, **options)

    def delete(self, url: UriLike, **options: Any) -> CallResult:
        return self.request(Verb.DELETE, url, **options)

    def request(self, verb: Union[Verb, str], url: UriLike, **options: Any) -> CallResult:
        """Run one call through breaker, retry and executor.

        Per-call options: ``headers query body json files auth timeout
        open_timeout read_timeout ssl_timeout max_redirects ssl_verify
        cookie_jar``. Client timeouts and ``ssl_verify`` apply unless overridden.

        Raises:
            InvalidArgument: Unknown option keys or malformed parameters.
        """
        opts = self._options
        call_id = generate_correlation_id()
        defaults = opts.request_defaults()
        if "timeout" in options:
            defaults.pop("open_timeout")
            defaults.pop("read_timeout")
        call_options = {**defaults, **options}

        try:
            spec = RequestSpec.build(verb, url, call_options)
        except InvalidArgument:
            raise
        except PigeonError as exc:
            return self._failed(exc, call_id, attempts=0)

        host = spec.uri.host
        breaker = CircuitBreaker(
            self.registry,
            opts.breaker_config(),
            on_open=self._callbacks.on_circuit_open,
            on_close=self._callbacks.on_circuit_close,
        )

        def attempt() -> ResponseEnvelope:
            envelope = self._executor.execute(spec)
            envelope.body  # decode inside the breaker so corrupt bodies count as failures
            return envelope

        def guarded():
            if not opts.retryable:
                return attempt(), 1
            policy = RetryPolicy(
                max_tries=opts.retry_threshold,
                on_retry=lambda observation: self._on_retry(opts, host, observation),
                sleep=self._sleep,
            )
            outcome = policy.run(attempt)
            return outcome.value, outcome.attempts

        logger.debug(
            "call started",
            extra={
                "call_id": call_id,
                "request_name": self.name,
                "verb": spec.verb.value,
                "url": str(spec.uri),
            },
        )
        start = time.perf_counter()
        try:
            envelope, attempts = breaker.run(self.name, guarded)
        except InvalidArgument:
            raise
        except PigeonError as exc:
            self._record_call(opts, host, time.perf_counter() - start)
            if isinstance(exc, RetryExhausted):
                self._fire(self._callbacks.on_retry_failure, exc)
            return self._failed(exc, call_id, attempts=getattr(exc, "attempts", 0))
        except Exception as exc:
            self._record_call(opts, host, time.perf_counter() - start)
            logger.exception(
                "unexpected error during call",
                extra={"call_id": call_id, "request_name": self.name},
            )
            error = UnexpectedError(f"{type(exc).__name__}: {exc}")
            error.__cause__ = exc
            return self._failed(error, call_id, attempts=0)

        self._record_call(opts, host, time.perf_counter() - start)
        self._emit(
            opts,
            f"{self.name}_status",
            MetricKind.INCREMENT,
            1,
            {"host": host, "code": str(envelope.status_code)},
        )
        if attempts > 1:
            self._fire(self._callbacks.on_retry_success, attempts)
        self._fire(self._callbacks.on_http_success, envelope)
        logger.debug(
            "call completed",
            extra={
                "call_id": call_id,
                "request_name": self.name,
                "status": envelope.status_code,
                "attempts": attempts,
                "redirects": envelope.redirect_count,
            },
        )
        return CallResult(response=envelope, attempts=attempts)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        if self._owns_executor:
            self._executor.close()

    def __enter__(self) -> "ResilientClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def __repr__(self) -> str:
        state = self.registry.current_state(self.name)
        return f"<{self.__class__.__name__} name={self.name!r} breaker={state}>"

    # ------------------------------------------------------------------
    # Metrics & callbacks
    # ------------------------------------------------------------------

    def _failed(self, error: PigeonError, call_id: str, attempts: int) -> CallResult:
        logger.warning(
            "call failed",
            extra={
                "call_id": call_id,
                "request_name": self.name,
                "error_type": type(error).__name__,
                "error": str(error),
            },
        )
        self._fire(self._callbacks.on_http_error, error)
        return CallResult(error=error, attempts=attempts)

    def _on_retry(self, opts: ClientOptions, host: str, observation: RetryObservation) -> None:
        self._emit(
            opts,
            f"{self.name}_retry",
            MetricKind.INCREMENT,
            1,
            {"host": host, "error": type(observation.error).__name__},
        )

    def _record_call(self, opts: ClientOptions, host: str, elapsed: float) -> None:
        self._emit(opts, f"{self.name}_latency", MetricKind.HISTOGRAM, elapsed, {"host": host})
        self._emit(opts, f"{self.name}_throughput", MetricKind.INCREMENT, 1, {"host": host})

    def _emit(
        self,
        opts: ClientOptions,
        name: str,
        kind: MetricKind,
        value: float,
        tags: Mapping[str, str],
    ) -> None:
        if not opts.monitoring:
            return
        try:
            self.sink.emit(name, kind, value, tags)
        except Exception as exc:
            logger.warning(
                "metrics emission failed",
                extra={"metric": name, "error_type": type(exc).__name__, "error": str(exc)},
            )

    def _fire(self, callback: Optional[Callable[..., Any]], *args: Any) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception:
            logger.exception("client callback failed", extra={"request_name": self.name})


__all__ = ["CallResult", "ResilientClient"]
