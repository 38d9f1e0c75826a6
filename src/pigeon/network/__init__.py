"""Network subsystem: request construction, execution and response decoding.

This package is the request engine underneath :class:`pigeon.ResilientClient`:
- HTTPX: HTTP/1.1 transport, redirects disabled at the client level
- certifi: CA bundle for TLS verification

Modules:
- uri: URI validation and relative-reference resolution
- cookies: Domain/path scoped cookie jar
- multipart: Byte-exact multipart/form-data encoding
- decoding: gzip/deflate response decompression
- request: Validated per-call request options and payload placement
- response: Immutable response envelope
- executor: Manual redirect following over a pooled HTTPX client
- policy: Engine constants (verbs, redirect statuses, timeouts)
- transport: HTTPX client pool keyed by TLS verification mode

Example:
    >>> from pigeon.network import RequestExecutor, RequestSpec
    >>> spec = RequestSpec.build("POST", "https://example.com/upload", {"query": {"a": 1}})
    >>> with RequestExecutor() as executor:  # doctest: +SKIP
    ...     envelope = executor.execute(spec)
"""

from pigeon.network.cookies import CookieJar
from pigeon.network.decoding import ResponseDecoder
from pigeon.network.executor import ExecutionState, RequestExecutor, format_audit_trail
from pigeon.network.multipart import FileRef, MultipartEncoder, choose_boundary
from pigeon.network.policy import (
    HTTP_OPEN_TIMEOUT,
    HTTP_READ_TIMEOUT,
    MAX_REDIRECT_HOPS,
    USER_AGENT,
)
from pigeon.network.request import VALID_PARAMETERS, BasicAuth, RequestSpec, Verb
from pigeon.network.response import ResponseEnvelope
from pigeon.network.transport import HttpClientPool, create_ssl_context
from pigeon.network.uri import ResolvedUri, UriResolver, resolve_uri

__all__ = [
    # URIs
    "ResolvedUri",
    "UriResolver",
    "resolve_uri",
    # Payloads
    "FileRef",
    "MultipartEncoder",
    "choose_boundary",
    "CookieJar",
    # Requests & responses
    "VALID_PARAMETERS",
    "Verb",
    "BasicAuth",
    "RequestSpec",
    "ResponseEnvelope",
    "ResponseDecoder",
    # Execution
    "ExecutionState",
    "RequestExecutor",
    "HttpClientPool",
    "create_ssl_context",
    "format_audit_trail",
    # Defaults
    "HTTP_OPEN_TIMEOUT",
    "HTTP_READ_TIMEOUT",
    "MAX_REDIRECT_HOPS",
    "USER_AGENT",
]
