"""In-memory cookie jar scoped by domain and path.

Thin wrapper over :class:`httpx.Cookies` (and the ``http.cookiejar`` policy it
delegates to) exposing the two operations the redirect loop needs: the
``Cookie`` header value for a URI, and ingesting ``Set-Cookie`` values
observed at a URI.
"""

from __future__ import annotations

import threading
from typing import Iterable, Iterator, Union

import httpx

from pigeon.network.uri import UriLike, resolve_uri


class CookieJar:
    """Cookie store shared across the hops of one call (or several, if passed in).

    Scoping follows the standard rules: host-only cookies default to the
    issuing host, the default path is the directory of the request path,
    ``Domain``/``Path`` attributes widen or narrow that scope, and expired
    cookies are never returned.
    """

    def __init__(self) -> None:
        self._cookies = httpx.Cookies()
        self._lock = threading.Lock()

    def cookies_for(self, uri: UriLike) -> str:
        """Return the ``Cookie`` header value visible to ``uri`` ('' if none)."""
        resolved = resolve_uri(uri)
        request = httpx.Request("GET", resolved.url)
        with self._lock:
            self._cookies.set_cookie_header(request)
        return request.headers.get("cookie", "")

    def ingest(self, set_cookie: Union[str, Iterable[str]], uri: UriLike) -> None:
        """Merge cookies from one or more ``Set-Cookie`` values issued by ``uri``."""
        values = [set_cookie] if isinstance(set_cookie, str) else list(set_cookie)
        values = [value for value in values if value]
        if not values:
            return
        resolved = resolve_uri(uri)
        response = httpx.Response(
            200,
            headers=[("set-cookie", value) for value in values],
            request=httpx.Request("GET", resolved.url),
        )
        with self._lock:
            self._cookies.extract_cookies(response)

    def clear(self) -> None:
        with self._lock:
            self._cookies.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._cookies.jar)

    def __iter__(self) -> Iterator[str]:
        with self._lock:
            names = [cookie.name for cookie in self._cookies.jar]
        return iter(names)

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} cookies={len(self)}>"


__all__ = ["CookieJar"]
