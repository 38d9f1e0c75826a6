# === NAVMAP v1 ===
# {
#   "module": "pigeon.network.uri",
#   "purpose": "Validate and merge request URIs (absolute or relative to the previous hop).",
#   "sections": [
#     {
#       "id": "resolveduri",
#       "name": "ResolvedUri",
#       "anchor": "class-resolveduri",
#       "kind": "class"
#     },
#     {
#       "id": "uriresolver",
#       "name": "UriResolver",
#       "anchor": "class-uriresolver",
#       "kind": "class"
#     },
#     {
#       "id": "resolve-uri",
#       "name": "resolve_uri",
#       "anchor": "function-resolve-uri",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""URI validation and relative-reference resolution.

Every URI the engine touches (the initial target and every ``Location``
header) goes through :class:`UriResolver`. Only absolute http/https URIs with
a host survive; relative references are merged against the URI of the hop
being redirected from, per RFC 3986 section 5.2.

Example:
    >>> resolver = UriResolver()
    >>> base = resolver.resolve("https://example.com/a/b")
    >>> str(resolver.resolve("../c?x=1", base=base))
    'https://example.com/c?x=1'
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Union

import httpx

from pigeon.errors import InvalidUri

ALLOWED_SCHEMES = frozenset({"http", "https"})

UriLike = Union["ResolvedUri", httpx.URL, str]


@dataclass(frozen=True)
class ResolvedUri:
    """An absolute, validated http/https URI."""

    scheme: str
    host: str
    port: Optional[int]
    path: str
    query: str
    userinfo: str
    url: httpx.URL = field(repr=False, compare=False)

    @classmethod
    def from_url(cls, url: httpx.URL) -> "ResolvedUri":
        return cls(
            scheme=url.scheme,
            host=url.host,
            port=url.port,
            path=url.path,
            query=url.query.decode("ascii"),
            userinfo=url.userinfo.decode("ascii"),
            url=url,
        )

    @property
    def is_https(self) -> bool:
        return self.scheme == "https"

    @property
    def username(self) -> str:
        return self.url.username

    @property
    def password(self) -> str:
        return self.url.password

    @property
    def directory(self) -> str:
        """Path up to and including the last ``/`` (default cookie path)."""
        path = self.path or "/"
        return path[: path.rfind("/") + 1]

    def with_params(self, params) -> "ResolvedUri":
        """Return a copy with ``params`` merged into the query string."""
        return ResolvedUri.from_url(self.url.copy_merge_params(params))

    def __str__(self) -> str:
        return str(self.url)


class UriResolver:
    """Turns raw strings or URLs into :class:`ResolvedUri` instances."""

    def resolve(self, raw: UriLike, base: Optional[ResolvedUri] = None) -> ResolvedUri:
        """Validate ``raw``, resolving it against ``base`` when relative.

        Args:
            raw: Target URI (string, ``httpx.URL`` or already resolved).
            base: URI of the request currently being redirected from.

        Returns:
            The validated absolute URI.

        Raises:
            InvalidUri: If the URI cannot be parsed, is relative with no base,
                has no host, or uses a scheme other than http/https.
        """
        if isinstance(raw, ResolvedUri):
            return raw

        try:
            url = raw if isinstance(raw, httpx.URL) else httpx.URL(raw)
            if not url.scheme:
                if base is None:
                    raise InvalidUri(raw, "relative reference without a base URI")
                url = base.url.join(url)
        except InvalidUri:
            raise
        except (httpx.InvalidURL, TypeError, ValueError) as exc:
            raise InvalidUri(raw, str(exc)) from exc

        if url.scheme not in ALLOWED_SCHEMES:
            raise InvalidUri(raw, f"scheme not allowed: {url.scheme!r}")
        if not url.host:
            raise InvalidUri(raw, "missing host")
        return ResolvedUri.from_url(url)


_DEFAULT_RESOLVER = UriResolver()


def resolve_uri(raw: UriLike, base: Optional[ResolvedUri] = None) -> ResolvedUri:
    """Module-level shortcut for :meth:`UriResolver.resolve`."""
    return _DEFAULT_RESOLVER.resolve(raw, base=base)


__all__ = [
    "ALLOWED_SCHEMES",
    "ResolvedUri",
    "UriResolver",
    "resolve_uri",
]
