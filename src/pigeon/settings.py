# === NAVMAP v1 ===
# {
#   "module": "pigeon.settings",
#   "purpose": "Typed client options, callback slots and PIGEON_* environment overrides",
#   "sections": [
#     {
#       "id": "clientoptions",
#       "name": "ClientOptions",
#       "anchor": "class-clientoptions",
#       "kind": "class"
#     },
#     {
#       "id": "clientsettings",
#       "name": "ClientSettings",
#       "anchor": "class-clientsettings",
#       "kind": "class"
#     },
#     {
#       "id": "load-client-options",
#       "name": "load_client_options",
#       "anchor": "function-load-client-options",
#       "kind": "function"
#     },
#     {
#       "id": "callbacks",
#       "name": "Callbacks",
#       "anchor": "class-callbacks",
#       "kind": "class"
#     }
#   ]
# }
# === /NAVMAP ===

"""Client configuration.

:class:`ClientOptions` is the closed, typed set of construction options of a
:class:`pigeon.ResilientClient`. It is frozen; the client swaps in a
re-validated copy on ``config(key, value)``. Unknown keys and out-of-range
values raise :class:`InvalidArgument` (never a bare pydantic error).

Deployment defaults come from the environment through
:class:`ClientSettings` (``PIGEON_REQUEST_TIMEOUT=30`` and so on);
:func:`load_client_options` layers explicit overrides on top.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields
from typing import Any, Callable, Dict, Literal, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from pigeon.errors import InvalidArgument
from pigeon.resilience.breakers import BreakerConfig

logger = logging.getLogger(__name__)

MonitoringSink = Literal["memory", "prometheus"]


def _format_validation_error(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error.get("loc", ()))
        if error.get("type") == "extra_forbidden":
            parts.append(f"unknown option {location}")
        else:
            parts.append(f"{location}: {error.get('msg')}")
    return "; ".join(parts)


# ============================================================================
# Options
# ============================================================================


class ClientOptions(BaseModel):
    """Construction options of a resilient client (timeouts in seconds, 0 = unbounded)."""

    request_timeout: float = Field(default=60.0, ge=0, description="Read timeout per attempt")
    request_open_timeout: float = Field(
        default=10.0, ge=0, description="Connect (and TLS handshake) timeout per attempt"
    )
    ssl_verify: bool = Field(default=True, description="Verify peer certificates")
    volume_threshold: int = Field(
        default=10, ge=1, description="Samples required in the window before the breaker may trip"
    )
    error_threshold: float = Field(
        default=10.0, ge=0, le=100, description="Failure percentage that trips the breaker"
    )
    time_window: float = Field(default=10.0, gt=0, description="Rolling sample window (seconds)")
    sleep_window: float = Field(
        default=10.0, ge=0, description="Time an open breaker waits before a trial (seconds)"
    )
    retryable: bool = Field(default=True, description="Retry transport errors and timeouts")
    retry_threshold: int = Field(default=3, ge=1, description="Total attempts per call")
    monitoring: bool = Field(default=True, description="Emit metrics")
    monitoring_sink: MonitoringSink = Field(default="memory", description="Metrics sink selector")

    model_config = ConfigDict(frozen=True, extra="forbid")

    @classmethod
    def from_mapping(cls, options: Optional[Mapping[str, Any]] = None) -> "ClientOptions":
        """Validate a raw options mapping.

        Raises:
            InvalidArgument: Unknown keys or invalid values.
        """
        try:
            return cls.model_validate(dict(options or {}))
        except ValidationError as exc:
            raise InvalidArgument(_format_validation_error(exc)) from None

    def with_value(self, key: str, value: Any) -> "ClientOptions":
        """Return a re-validated copy with ``key`` set to ``value``."""
        if key not in type(self).model_fields:
            raise InvalidArgument(f"unknown option {key}")
        return self.from_mapping({**self.model_dump(), key: value})

    def breaker_config(self) -> BreakerConfig:
        return BreakerConfig(
            volume_threshold=self.volume_threshold,
            error_threshold=self.error_threshold,
            time_window=self.time_window,
            sleep_window=self.sleep_window,
        )

    def request_defaults(self) -> Dict[str, Any]:
        """Per-call option defaults derived from these options."""
        return {
            "open_timeout": self.request_open_timeout,
            "read_timeout": self.request_timeout,
            "ssl_verify": self.ssl_verify,
        }


class ClientSettings(BaseSettings):
    """Environment-derived option overrides (``PIGEON_`` prefix, unset fields are None)."""

    request_timeout: Optional[float] = None
    request_open_timeout: Optional[float] = None
    ssl_verify: Optional[bool] = None
    volume_threshold: Optional[int] = None
    error_threshold: Optional[float] = None
    time_window: Optional[float] = None
    sleep_window: Optional[float] = None
    retryable: Optional[bool] = None
    retry_threshold: Optional[int] = None
    monitoring: Optional[bool] = None
    monitoring_sink: Optional[MonitoringSink] = None

    model_config = SettingsConfigDict(env_prefix="PIGEON_", case_sensitive=False, extra="ignore")


def get_env_overrides() -> Dict[str, Any]:
    """Return the options set through ``PIGEON_*`` environment variables."""
    try:
        env = ClientSettings()
    except ValidationError as exc:
        raise InvalidArgument(f"invalid PIGEON_* environment: {_format_validation_error(exc)}") from None
    return env.model_dump(exclude_none=True)


def load_client_options(**overrides: Any) -> ClientOptions:
    """Build options from defaults, then ``PIGEON_*`` variables, then ``overrides``."""
    env = get_env_overrides()
    if env:
        logger.debug("client options from environment", extra={"keys": sorted(env)})
    return ClientOptions.from_mapping({**env, **overrides})


# ============================================================================
# Callbacks
# ============================================================================

#: Legacy CamelCase slot names accepted by :meth:`Callbacks.from_mapping`
CALLBACK_ALIASES = {
    "CircuitBreakerOpen": "on_circuit_open",
    "CircuitBreakerClose": "on_circuit_close",
    "HttpSuccess": "on_http_success",
    "HttpError": "on_http_error",
    "RetrySuccess": "on_retry_success",
    "RetryFailure": "on_retry_failure",
}


@dataclass(frozen=True)
class Callbacks:
    """Optional hooks, one slot each, fired at most once per event.

    Attributes:
        on_circuit_open: ``(identifier)`` after the breaker opens.
        on_circuit_close: ``(identifier)`` after the breaker closes.
        on_http_success: ``(ResponseEnvelope)`` after a call returns a response.
        on_http_error: ``(PigeonError)`` after a call fails.
        on_retry_success: ``(attempts)`` when a call succeeds after retrying.
        on_retry_failure: ``(RetryExhausted)`` when the attempt budget is spent.
    """

    on_circuit_open: Optional[Callable[[str], Any]] = None
    on_circuit_close: Optional[Callable[[str], Any]] = None
    on_http_success: Optional[Callable[[Any], Any]] = None
    on_http_error: Optional[Callable[[Exception], Any]] = None
    on_retry_success: Optional[Callable[[int], Any]] = None
    on_retry_failure: Optional[Callable[[Exception], Any]] = None

    @classmethod
    def from_mapping(cls, callbacks: Optional[Mapping[str, Any]] = None) -> "Callbacks":
        """Validate a raw slot mapping.

        Raises:
            InvalidArgument: Unknown slot names or non-callable values.
        """
        slots = {f.name for f in fields(cls)}
        resolved: Dict[str, Any] = {}
        for key, value in (callbacks or {}).items():
            name = CALLBACK_ALIASES.get(key, key)
            if name not in slots:
                raise InvalidArgument(f"unknown callback {key}")
            if value is not None and not callable(value):
                raise InvalidArgument(f"callback {key} is not callable")
            resolved[name] = value
        return cls(**resolved)


__all__ = [
    "CALLBACK_ALIASES",
    "Callbacks",
    "ClientOptions",
    "ClientSettings",
    "MonitoringSink",
    "get_env_overrides",
    "load_client_options",
]
