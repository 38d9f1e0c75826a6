# === NAVMAP v1 ===
# {
#   "module": "pigeon.network.request",
#   "purpose": "Validated description of one outbound request and its payload.",
#   "sections": [
#     {
#       "id": "verb",
#       "name": "Verb",
#       "anchor": "class-verb",
#       "kind": "class"
#     },
#     {
#       "id": "basicauth",
#       "name": "BasicAuth",
#       "anchor": "class-basicauth",
#       "kind": "class"
#     },
#     {
#       "id": "requestspec",
#       "name": "RequestSpec",
#       "anchor": "class-requestspec",
#       "kind": "class"
#     },
#     {
#       "id": "encodedpayload",
#       "name": "EncodedPayload",
#       "anchor": "class-encodedpayload",
#       "kind": "class"
#     }
#   ]
# }
# === /NAVMAP ===

"""Validated request descriptions.

:class:`RequestSpec` is the validated, immutable description of a call.
Validation happens once, at construction, and raises before any network I/O:

- unknown option keys, bad verbs and malformed values → :class:`InvalidArgument`
- a body, JSON body or files on GET/HEAD/DELETE/OPTIONS/TRACE → :class:`InvalidArgument`
- an unusable target URI → :class:`InvalidUri`

Payload placement follows the verb:

========================  =============================================
Input                     Placement
========================  =============================================
``query`` (bodyless verb)  URL query string
``json``                   ``application/json`` body, query in URL
``body``                   raw body, query in URL
``files``                  multipart body, query entries as form fields
``query`` only (POST/PUT)  ``application/x-www-form-urlencoded`` body
========================  =============================================
"""

from __future__ import annotations

import base64
import json as jsonlib
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Union
from urllib.parse import urlencode

import httpx

from pigeon.errors import InvalidArgument
from pigeon.network.cookies import CookieJar
from pigeon.network.multipart import FileRef, MultipartEncoder
from pigeon.network.policy import (
    BODY_VERBS,
    HTTP_OPEN_TIMEOUT,
    HTTP_READ_TIMEOUT,
    MAX_REDIRECT_HOPS,
    TLS_VERIFY_ENABLED,
)
from pigeon.network.uri import ResolvedUri, UriLike, UriResolver

#: Per-call option keys accepted by :meth:`RequestSpec.build`
VALID_PARAMETERS = frozenset(
    {
        "headers",
        "query",
        "body",
        "json",
        "files",
        "auth",
        "timeout",
        "open_timeout",
        "read_timeout",
        "ssl_timeout",
        "max_redirects",
        "ssl_verify",
        "cookie_jar",
    }
)


class Verb(str, Enum):
    GET = "GET"
    HEAD = "HEAD"
    PUT = "PUT"
    POST = "POST"
    DELETE = "DELETE"
    OPTIONS = "OPTIONS"
    TRACE = "TRACE"

    @classmethod
    def parse(cls, value: Union["Verb", str]) -> "Verb":
        if isinstance(value, Verb):
            return value
        try:
            return cls(str(value).upper())
        except ValueError:
            raise InvalidArgument(f"invalid verb {value}") from None

    @property
    def allows_body(self) -> bool:
        return self.value in BODY_VERBS


@dataclass(frozen=True)
class BasicAuth:
    username: str
    password: str

    @classmethod
    def coerce(cls, value: Any) -> "BasicAuth":
        if isinstance(value, BasicAuth):
            return value
        if isinstance(value, Mapping):
            try:
                return cls(str(value["username"]), str(value["password"]))
            except KeyError as exc:
                raise InvalidArgument(f"auth is missing {exc.args[0]!r}") from None
        if isinstance(value, tuple) and len(value) == 2:
            return cls(str(value[0]), str(value[1]))
        raise InvalidArgument("auth must be a (username, password) pair")

    def header_value(self) -> str:
        token = base64.b64encode(f"{self.username}:{self.password}".encode("utf-8"))
        return "Basic " + token.decode("ascii")


@dataclass(frozen=True)
class EncodedPayload:
    """Outcome of payload placement: final URI, body bytes and body headers."""

    uri: ResolvedUri
    content: Optional[bytes] = None
    content_type: Optional[str] = None


@dataclass(frozen=True)
class RequestSpec:
    """Everything the executor needs to run one call."""

    verb: Verb
    uri: ResolvedUri
    headers: Dict[str, str] = field(default_factory=dict)
    body: Optional[bytes] = None
    json: Any = None
    query: Optional[Mapping[str, Any]] = None
    files: Optional[Mapping[str, FileRef]] = None
    auth: Optional[BasicAuth] = None
    open_timeout: Optional[float] = HTTP_OPEN_TIMEOUT
    read_timeout: Optional[float] = HTTP_READ_TIMEOUT
    ssl_timeout: Optional[float] = None
    max_redirects: int = MAX_REDIRECT_HOPS
    ssl_verify: bool = TLS_VERIFY_ENABLED
    cookie_jar: Optional[CookieJar] = field(default=None, compare=False)

    def __post_init__(self) -> None:
        given = [
            name
            for name, value in (("body", self.body), ("json", self.json), ("files", self.files))
            if value is not None
        ]
        if given and not self.verb.allows_body:
            raise InvalidArgument(f"{self.verb.value} cannot have body")
        if len(given) > 1:
            raise InvalidArgument(f"{' and '.join(given)} are mutually exclusive")
        if self.max_redirects < 0:
            raise InvalidArgument("max_redirects must be >= 0")
        for name in ("open_timeout", "read_timeout", "ssl_timeout"):
            value = getattr(self, name)
            if value is not None and value < 0:
                raise InvalidArgument(f"{name} must be >= 0")

    @classmethod
    def build(
        cls,
        verb: Union[Verb, str],
        uri: UriLike,
        options: Optional[Mapping[str, Any]] = None,
        *,
        resolver: Optional[UriResolver] = None,
    ) -> "RequestSpec":
        """Validate raw per-call ``options`` and build a spec.

        Raises:
            InvalidArgument: Unknown option keys or malformed values.
            InvalidUri: ``uri`` is not an absolute http/https URI.
        """
        options = dict(options or {})
        for key in options:
            if key not in VALID_PARAMETERS:
                raise InvalidArgument(f"unknown argument {key}")

        parsed_verb = Verb.parse(verb)
        if not parsed_verb.allows_body and any(
            options.get(name) is not None for name in ("body", "json", "files")
        ):
            raise InvalidArgument(f"{parsed_verb.value} cannot have body")

        timeout = options.pop("timeout", None)
        default_open = timeout if timeout is not None else HTTP_OPEN_TIMEOUT
        default_read = timeout if timeout is not None else HTTP_READ_TIMEOUT
        open_timeout = options.pop("open_timeout", default_open)
        read_timeout = options.pop("read_timeout", default_read)

        headers = options.pop("headers", None) or {}
        if not isinstance(headers, Mapping):
            raise InvalidArgument("headers must be a mapping")

        query = options.pop("query", None)
        if query is not None and not isinstance(query, Mapping):
            raise InvalidArgument("query must be a mapping")

        body = options.pop("body", None)
        if isinstance(body, str):
            body = body.encode("utf-8")
        elif body is not None and not isinstance(body, (bytes, bytearray)):
            raise InvalidArgument("body must be bytes or str (use json= for objects)")

        files = options.pop("files", None)
        if files is not None:
            if not isinstance(files, Mapping):
                raise InvalidArgument("files must be a mapping")
            files = {str(name): FileRef.coerce(value) for name, value in files.items()}

        payload = options.pop("json", None)
        if payload is not None:
            try:
                jsonlib.dumps(payload)
            except (TypeError, ValueError) as exc:
                raise InvalidArgument(f"json is not serializable: {exc}") from exc

        ssl_verify = options.pop("ssl_verify", TLS_VERIFY_ENABLED)
        if not isinstance(ssl_verify, bool):
            raise InvalidArgument("ssl_verify must be a bool")

        auth = options.pop("auth", None)
        cookie_jar = options.pop("cookie_jar", None)
        if cookie_jar is not None and not isinstance(cookie_jar, CookieJar):
            raise InvalidArgument("cookie_jar must be a pigeon CookieJar")
        resolved = (resolver or UriResolver()).resolve(uri)

        try:
            return cls(
                verb=parsed_verb,
                uri=resolved,
                headers={str(k): str(v) for k, v in headers.items()},
                body=bytes(body) if body is not None else None,
                json=payload,
                query=dict(query) if query is not None else None,
                files=files,
                auth=BasicAuth.coerce(auth) if auth is not None else None,
                open_timeout=open_timeout,
                read_timeout=read_timeout,
                ssl_timeout=options.pop("ssl_timeout", None),
                max_redirects=int(options.pop("max_redirects", MAX_REDIRECT_HOPS)),
                ssl_verify=ssl_verify,
                cookie_jar=cookie_jar,
            )
        except (TypeError, ValueError) as exc:
            if isinstance(exc, InvalidArgument):
                raise
            raise InvalidArgument(str(exc)) from exc

    # ------------------------------------------------------------------
    # Derived request pieces
    # ------------------------------------------------------------------

    def credentials(self) -> Optional[BasicAuth]:
        """Basic-auth credentials, URI userinfo first."""
        if self.uri.userinfo:
            return BasicAuth(self.uri.username, self.uri.password)
        return self.auth

    def encode_payload(self, encoder: Optional[MultipartEncoder] = None) -> EncodedPayload:
        """Place ``query``/``json``/``body``/``files`` per the verb rules."""
        if self.files is not None:
            fields = {str(k): _form_value(v) for k, v in (self.query or {}).items()}
            content_type, content = (encoder or MultipartEncoder()).encode(fields, self.files)
            return EncodedPayload(self.uri, content, content_type)

        uri = self.uri
        if self.json is not None:
            content = jsonlib.dumps(self.json).encode("utf-8")
            return EncodedPayload(self._with_query(uri), content, "application/json")

        if self.body is not None:
            return EncodedPayload(self._with_query(uri), self.body, None)

        if self.query and self.verb.allows_body:
            content = urlencode(self.query, doseq=True).encode("ascii")
            return EncodedPayload(uri, content, "application/x-www-form-urlencoded")

        return EncodedPayload(self._with_query(uri))

    def timeout(self) -> httpx.Timeout:
        """Per-request ``httpx.Timeout``; TLS handshake falls under connect."""
        connect = _bound(self.open_timeout)
        ssl_bound = _bound(self.ssl_timeout)
        if self.uri.is_https and ssl_bound is not None:
            connect = ssl_bound if connect is None else max(connect, ssl_bound)
        read = _bound(self.read_timeout)
        return httpx.Timeout(connect=connect, read=read, write=read, pool=connect)

    def _with_query(self, uri: ResolvedUri) -> ResolvedUri:
        if not self.query:
            return uri
        return uri.with_params(self.query)


def _bound(value: Optional[float]) -> Optional[float]:
    if not value:
        return None
    return float(value)


def _form_value(value: Any) -> Union[str, bytes]:
    if isinstance(value, bytes):
        return value
    return str(value)


__all__ = [
    "VALID_PARAMETERS",
    "Verb",
    "BasicAuth",
    "EncodedPayload",
    "RequestSpec",
]
