# === NAVMAP v1 ===
# {
#   "module": "tests.fixtures.http_mocking",
#   "purpose": "HTTP mocking fixtures for hermetic network testing",
#   "sections": [
#     {"id": "mock-response-builder", "name": "MockResponseBuilder", "anchor": "class-mock-response-builder", "kind": "class"},
#     {"id": "mock-router", "name": "MockRouter", "anchor": "class-mock-router", "kind": "class"},
#     {"id": "http-mock-fixture", "name": "http_mock", "anchor": "fixture-http-mock", "kind": "fixture"},
#     {"id": "router-fixture", "name": "router", "anchor": "fixture-router", "kind": "fixture"},
#     {"id": "executor-fixture", "name": "executor", "anchor": "fixture-executor", "kind": "fixture"}
#   ]
# }
# === /NAVMAP ===

"""
HTTP mocking fixtures for hermetic network testing.

Provides an HTTPX MockTransport router and a mock response builder so the
request executor can be tested without real network access. Responses are
built over ``httpx.ByteStream`` so the executor reads the raw, undecoded body
exactly as a real transport would deliver it.
"""

from __future__ import annotations

import gzip
import json
import zlib
from typing import Any, Callable, Generator, Union

import httpx
import pytest

from pigeon.network.executor import RequestExecutor


class MockResponseBuilder:
    """Builder for constructing mock HTTP responses with fluent API."""

    def __init__(self, status_code: int = 200, content: bytes = b""):
        self.status_code = status_code
        self.content = content
        self.headers: list[tuple[str, str]] = []

    def with_status(self, code: int) -> MockResponseBuilder:
        self.status_code = code
        return self

    def with_content(self, content: bytes | str) -> MockResponseBuilder:
        if isinstance(content, str):
            content = content.encode("utf-8")
        self.content = content
        return self

    def with_json(self, data: Any) -> MockResponseBuilder:
        self.content = json.dumps(data).encode("utf-8")
        self.headers.append(("content-type", "application/json"))
        return self

    def with_header(self, name: str, value: str) -> MockResponseBuilder:
        """Add a response header (repeatable, e.g. several Set-Cookie)."""
        self.headers.append((name, value))
        return self

    def with_cookie(self, name: str, value: str, **attributes: str) -> MockResponseBuilder:
        """Add a ``Set-Cookie`` header, e.g. ``with_cookie("sid", "1", Path="/")``."""
        parts = [f"{name}={value}"] + [f"{k}={v}" for k, v in attributes.items()]
        return self.with_header("set-cookie", "; ".join(parts))

    def redirect_to(self, location: str, status: int = 302) -> MockResponseBuilder:
        self.status_code = status
        return self.with_header("location", location)

    def gzipped(self) -> MockResponseBuilder:
        self.content = gzip.compress(self.content)
        return self.with_header("content-encoding", "gzip")

    def deflated(self, wrapped: bool = False) -> MockResponseBuilder:
        """Raw deflate by default, zlib-wrapped deflate when ``wrapped``."""
        if wrapped:
            self.content = zlib.compress(self.content)
        else:
            compressor = zlib.compressobj(wbits=-zlib.MAX_WBITS)
            self.content = compressor.compress(self.content) + compressor.flush()
        return self.with_header("content-encoding", "deflate")

    def build(self) -> httpx.Response:
        return httpx.Response(
            status_code=self.status_code,
            headers=self.headers,
            stream=httpx.ByteStream(self.content),
        )


Route = Union[MockResponseBuilder, httpx.Response, Exception, Callable[[httpx.Request], Any]]


class MockRouter:
    """Maps ``(method, url)`` to canned responses and records every request.

    A route may be a builder, a response, an exception instance (raised by
    the transport) or a callable taking the request. Registering several
    routes for the same key serves them in order; the last one repeats.
    """

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], list[Route]] = {}
        self.requests: list[httpx.Request] = []

    def add(self, method: str, url: str, *routes: Route) -> MockRouter:
        self.routes.setdefault((method.upper(), url), []).extend(routes)
        return self

    def get(self, url: str, *routes: Route) -> MockRouter:
        return self.add("GET", url, *routes)

    def post(self, url: str, *routes: Route) -> MockRouter:
        return self.add("POST", url, *routes)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        queue = self.routes.get((request.method, str(request.url)))
        if queue is None:
            bare = str(request.url.copy_with(query=None))
            queue = self.routes.get((request.method, bare))
        if not queue:
            return MockResponseBuilder(404, b'{"error": "Not mocked"}').build()

        route = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(route, Exception):
            raise route
        if isinstance(route, MockResponseBuilder):
            return route.build()
        if isinstance(route, httpx.Response):
            return route
        result = route(request)
        if isinstance(result, MockResponseBuilder):
            return result.build()
        return result

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]


@pytest.fixture
def http_mock() -> Callable[..., MockResponseBuilder]:
    """
    Provide a mock HTTP response builder factory.

    Example:
        def test_gzip(http_mock):
            builder = http_mock(200, b"Hello").gzipped()
            response = builder.build()
            assert response.headers["content-encoding"] == "gzip"
    """

    def _mock_response(status_code: int = 200, content: bytes | str = b"") -> MockResponseBuilder:
        if isinstance(content, str):
            content = content.encode("utf-8")
        return MockResponseBuilder(status_code=status_code, content=content)

    return _mock_response


@pytest.fixture
def router() -> MockRouter:
    return MockRouter()


@pytest.fixture
def executor(router: MockRouter) -> Generator[RequestExecutor, None, None]:
    """A request executor whose every hop is served by ``router``."""
    executor = RequestExecutor(router.transport)
    yield executor
    executor.close()
