# === NAVMAP v1 ===
# {
#   "module": "pigeon.errors",
#   "purpose": "Exception hierarchy shared by the request engine, resilience layer and client facade",
#   "sections": [
#     {"id": "base", "name": "Base Exceptions", "anchor": "BAS", "kind": "api"},
#     {"id": "validation", "name": "Argument & URI Errors", "anchor": "VAL", "kind": "api"},
#     {"id": "transport", "name": "Transport Errors", "anchor": "TRN", "kind": "api"},
#     {"id": "resilience", "name": "Breaker & Retry Errors", "anchor": "RES", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Exception hierarchy for the pigeon HTTP client.

Every failure surfaced by the engine is a :class:`PigeonError`. Errors raised
by ``httpx`` or the compression libraries are always wrapped (and chained with
``raise ... from``) so callers never have to know which transport produced
them.

``retryable`` marks the operational failures that :class:`RetryPolicy` may
re-attempt. Everything else propagates on first occurrence.
"""

from __future__ import annotations

from typing import Optional


class PigeonError(Exception):
    """Base class for every error raised by pigeon."""

    retryable = False


# --- Argument & URI errors -------------------------------------------------


class InvalidArgument(PigeonError, ValueError):
    """Raised for unknown options/callbacks or malformed request parameters.

    Indicates programmer error; never attempts network I/O and is the only
    error the client facade raises instead of returning.
    """


class InvalidUri(PigeonError):
    """Raised when a URI is unparsable, host-less or not http/https."""

    def __init__(self, uri: object, reason: Optional[str] = None) -> None:
        self.uri = str(uri)
        self.reason = reason
        message = f"invalid URI {self.uri}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


# --- Transport errors ------------------------------------------------------


class TransportError(PigeonError):
    """Connection failure, malformed response or other protocol violation."""

    retryable = True


class RequestTimeout(PigeonError):
    """Open, read or TLS handshake timeout exceeded."""

    retryable = True


class DecodeError(PigeonError):
    """Response body could not be decompressed."""


# --- Breaker & retry errors ------------------------------------------------


class CircuitOpen(PigeonError):
    """Raised when the breaker short-circuits a call without running it."""

    def __init__(self, identifier: str, remaining_s: float = 0.0) -> None:
        self.identifier = identifier
        self.remaining_s = remaining_s
        super().__init__(
            f"circuit {identifier!r} is open (remaining_ms={int(remaining_s * 1000)})"
        )


class RetryExhausted(PigeonError):
    """Raised once every allowed attempt failed with a retryable error."""

    def __init__(self, attempts: int, last_error: BaseException) -> None:
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"gave up after {attempts} attempts: {last_error}")


class UnexpectedError(PigeonError):
    """Wraps a non-pigeon exception raised while a call was running.

    The original exception is kept as ``__cause__``.
    """


#: Errors RetryPolicy re-attempts by default.
RETRYABLE_ERRORS = (TransportError, RequestTimeout)


__all__ = [
    "PigeonError",
    "InvalidArgument",
    "InvalidUri",
    "TransportError",
    "RequestTimeout",
    "DecodeError",
    "CircuitOpen",
    "RetryExhausted",
    "UnexpectedError",
    "RETRYABLE_ERRORS",
]
