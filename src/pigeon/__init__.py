# === NAVMAP v1 ===
# {
#   "module": "pigeon",
#   "purpose": "Public API of the pigeon resilient HTTP client",
#   "sections": []
# }
# === /NAVMAP ===

"""Public API for the pigeon resilient HTTP client.

pigeon issues HTTP/HTTPS requests, follows redirects per method semantics,
carries cookies across a redirect chain, encodes query/form/JSON/multipart
payloads and decompresses responses, wrapping every call in bounded retry
inside a per-name circuit breaker.
"""

from __future__ import annotations

from pigeon._version import __version__
from pigeon.client import CallResult, ResilientClient
from pigeon.errors import (
    CircuitOpen,
    DecodeError,
    InvalidArgument,
    InvalidUri,
    PigeonError,
    RequestTimeout,
    RetryExhausted,
    TransportError,
    UnexpectedError,
)
from pigeon.network import (
    CookieJar,
    FileRef,
    RequestExecutor,
    RequestSpec,
    ResponseEnvelope,
    Verb,
)
from pigeon.observability import InMemorySink, PrometheusSink
from pigeon.resilience import BreakerConfig, BreakerRegistry, CircuitBreaker, RetryPolicy
from pigeon.settings import Callbacks, ClientOptions, load_client_options

__all__ = [
    "__version__",
    # Facade
    "ResilientClient",
    "CallResult",
    "ClientOptions",
    "Callbacks",
    "load_client_options",
    # Engine
    "RequestSpec",
    "RequestExecutor",
    "ResponseEnvelope",
    "CookieJar",
    "FileRef",
    "Verb",
    # Resilience
    "BreakerConfig",
    "BreakerRegistry",
    "CircuitBreaker",
    "RetryPolicy",
    # Metrics
    "InMemorySink",
    "PrometheusSink",
    # Errors
    "PigeonError",
    "InvalidArgument",
    "InvalidUri",
    "TransportError",
    "RequestTimeout",
    "DecodeError",
    "CircuitOpen",
    "RetryExhausted",
    "UnexpectedError",
]
