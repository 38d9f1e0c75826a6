# === NAVMAP v1 ===
# {
#   "module": "pigeon.network.executor",
#   "purpose": "Run one RequestSpec: send, collect cookies, follow redirects, build the envelope.",
#   "sections": [
#     {
#       "id": "executionstate",
#       "name": "ExecutionState",
#       "anchor": "class-executionstate",
#       "kind": "class"
#     },
#     {
#       "id": "requestexecutor",
#       "name": "RequestExecutor",
#       "anchor": "class-requestexecutor",
#       "kind": "class"
#     },
#     {
#       "id": "format-audit-trail",
#       "name": "format_audit_trail",
#       "anchor": "function-format-audit-trail",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""Request execution with manual redirect following.

HTTPX clients are created with ``follow_redirects=False``; every hop is sent
by :class:`RequestExecutor` itself so that cookies, method rewriting and the
hop limit are under our control.

State machine::

    INITIAL -> SENT -> (REDIRECTING -> SENT)* -> DONE
                  \\______________________________-> FAILED

Per hop:

1. Headers = defaults + caller headers, ``Cookie`` from the jar for the hop
   URI (appended to a caller ``Cookie``), ``Authorization: Basic`` when
   credentials exist.
2. Send, read the raw (still compressed) body.
3. Ingest every ``Set-Cookie`` against the hop URI.
4. 301/302/303 with ``Location`` → bodyless GET; 307/308 → same verb and
   body. ``Location`` is resolved against the hop URI. The loop stops on a
   non-redirect status, a missing ``Location`` or an exhausted hop budget,
   and the last response is returned in every case.

Example:
    >>> executor = RequestExecutor()
    >>> spec = RequestSpec.build("GET", "https://example.com/", {"max_redirects": 3})
    >>> envelope = executor.execute(spec)  # doctest: +SKIP
    >>> format_audit_trail(envelope.history)  # doctest: +SKIP
    'https://example.com/ (301) → https://www.example.com/ (200)'
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import List, Optional, Tuple

import httpx

from pigeon.errors import InvalidUri, RequestTimeout, TransportError
from pigeon.network.cookies import CookieJar
from pigeon.network.multipart import MultipartEncoder
from pigeon.network.policy import (
    BODY_HEADERS,
    DEFAULT_HEADERS,
    HOP_ONLY_HEADERS,
    REDIRECT_REWRITE_STATUSES,
    REDIRECT_STATUSES,
)
from pigeon.network.request import RequestSpec, Verb
from pigeon.network.response import ResponseEnvelope
from pigeon.network.transport import HttpClientPool
from pigeon.network.uri import ResolvedUri, UriResolver

logger = logging.getLogger(__name__)


class ExecutionState(str, Enum):
    INITIAL = "initial"
    SENT = "sent"
    REDIRECTING = "redirecting"
    DONE = "done"
    FAILED = "failed"


# ============================================================================
# Executor
# ============================================================================


class RequestExecutor:
    """Executes :class:`RequestSpec` objects against an HTTPX transport.

    Args:
        transport: Optional ``httpx`` transport (``httpx.MockTransport`` in tests).
        resolver: Resolver used for ``Location`` headers.
        encoder: Multipart encoder used for ``files`` payloads.
    """

    def __init__(
        self,
        transport: Optional[httpx.BaseTransport] = None,
        *,
        resolver: Optional[UriResolver] = None,
        encoder: Optional[MultipartEncoder] = None,
    ) -> None:
        self._pool = HttpClientPool(transport)
        self._resolver = resolver or UriResolver()
        self._encoder = encoder or MultipartEncoder()

    def execute(self, spec: RequestSpec) -> ResponseEnvelope:
        """Run ``spec`` to completion and return the last hop's envelope.

        Raises:
            RequestTimeout: Open, read or TLS handshake timeout exceeded.
            TransportError: Connection failure or protocol violation.
            InvalidUri: A ``Location`` header could not be resolved.
        """
        state = ExecutionState.INITIAL
        jar = spec.cookie_jar if spec.cookie_jar is not None else CookieJar()
        client = self._pool.get(spec.ssl_verify)
        timeout = spec.timeout().as_dict()

        payload = spec.encode_payload(self._encoder)
        uri = payload.uri
        verb = spec.verb
        content = payload.content
        headers = self._initial_headers(spec, payload.content_type)

        history: List[Tuple[str, int]] = []
        redirects = 0

        try:
            while True:
                request = self._build_request(verb, uri, headers, content, jar, timeout)
                status, response_headers, raw = self._send(client, request, uri)
                state = self._transition(state, ExecutionState.SENT, uri)
                history.append((str(uri), status))
                jar.ingest(response_headers.get_list("set-cookie"), uri)

                location = response_headers.get("location")
                if (
                    status not in REDIRECT_STATUSES
                    or not location
                    or redirects >= spec.max_redirects
                ):
                    break

                state = self._transition(state, ExecutionState.REDIRECTING, uri)
                target = self._resolver.resolve(location, base=uri)
                if status in REDIRECT_REWRITE_STATUSES:
                    verb, content = Verb.GET, None
                    headers = _without(headers, BODY_HEADERS)
                headers = _without(headers, HOP_ONLY_HEADERS)
                redirects += 1
                logger.debug(
                    "Following redirect",
                    extra={
                        "from": str(uri),
                        "to": str(target),
                        "status": status,
                        "hop": redirects,
                    },
                )
                uri = target
        except (RequestTimeout, TransportError, InvalidUri):
            self._transition(state, ExecutionState.FAILED, uri)
            raise

        self._transition(state, ExecutionState.DONE, uri)
        if redirects:
            logger.debug(
                "Redirect following complete",
                extra={"final_status": status, "hops": len(history)},
            )
        return ResponseEnvelope(
            status_code=status,
            headers=response_headers,
            raw_body=raw,
            effective_uri=uri,
            history=tuple(history),
        )

    def close(self) -> None:
        self._pool.close()

    def __enter__(self) -> "RequestExecutor":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Hop helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _initial_headers(spec: RequestSpec, content_type: Optional[str]) -> httpx.Headers:
        headers = httpx.Headers(DEFAULT_HEADERS)
        for name, value in spec.headers.items():
            headers[name] = value
        if content_type is not None:
            if spec.files is not None or "content-type" not in headers:
                headers["Content-Type"] = content_type
        credentials = spec.credentials()
        if credentials is not None:
            headers["Authorization"] = credentials.header_value()
        return headers

    @staticmethod
    def _build_request(
        verb: Verb,
        uri: ResolvedUri,
        headers: httpx.Headers,
        content: Optional[bytes],
        jar: CookieJar,
        timeout: dict,
    ) -> httpx.Request:
        hop_headers = headers.copy()
        jar_cookies = jar.cookies_for(uri)
        if jar_cookies:
            caller_cookies = hop_headers.get("cookie")
            hop_headers["Cookie"] = (
                f"{caller_cookies}; {jar_cookies}" if caller_cookies else jar_cookies
            )
        try:
            return httpx.Request(
                verb.value,
                uri.url,
                headers=hop_headers,
                content=content,
                extensions={"timeout": timeout},
            )
        except httpx.InvalidURL as exc:
            raise InvalidUri(uri, str(exc)) from exc

    @staticmethod
    def _send(
        client: httpx.Client, request: httpx.Request, uri: ResolvedUri
    ) -> Tuple[int, httpx.Headers, bytes]:
        try:
            response = client.send(request, stream=True)
            try:
                raw = b"".join(response.iter_raw())
            finally:
                response.close()
        except httpx.TimeoutException as exc:
            logger.warning(
                "HTTP request timed out",
                extra={"url": str(uri), "error_type": type(exc).__name__},
            )
            raise RequestTimeout(f"{request.method} {uri}: {exc}") from exc
        except httpx.TransportError as exc:
            logger.warning(
                "HTTP transport error",
                extra={"url": str(uri), "error_type": type(exc).__name__},
            )
            raise TransportError(f"{request.method} {uri}: {exc}") from exc
        except httpx.InvalidURL as exc:
            raise InvalidUri(uri, str(exc)) from exc
        return response.status_code, response.headers, raw

    @staticmethod
    def _transition(
        current: ExecutionState, target: ExecutionState, uri: ResolvedUri
    ) -> ExecutionState:
        logger.debug(
            "executor state change",
            extra={"from_state": current.value, "to_state": target.value, "url": str(uri)},
        )
        return target


def _without(headers: httpx.Headers, names) -> httpx.Headers:
    return httpx.Headers([(k, v) for k, v in headers.multi_items() if k.lower() not in names])


def format_audit_trail(audit_trail) -> str:
    """Format an ``(url, status)`` trail as ``"http://a (301) → http://b (200)"``."""
    return " → ".join(f"{url} ({status})" for url, status in audit_trail)


__all__ = ["ExecutionState", "RequestExecutor", "format_audit_trail"]
