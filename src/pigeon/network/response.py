"""Immutable response envelope returned by the request executor."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from functools import cached_property
from typing import Any, Tuple

import httpx

from pigeon.network.decoding import ResponseDecoder
from pigeon.network.uri import ResolvedUri

_DECODER = ResponseDecoder()


@dataclass(frozen=True)
class ResponseEnvelope:
    """Final response of a call, after redirects.

    Attributes:
        status_code: HTTP status of the last hop.
        headers: Case-insensitive response headers of the last hop.
        raw_body: Body bytes exactly as received (still compressed).
        effective_uri: URI of the last hop.
        history: ``(url, status)`` audit trail, one entry per hop.
    """

    status_code: int
    headers: httpx.Headers
    raw_body: bytes
    effective_uri: ResolvedUri
    history: Tuple[Tuple[str, int], ...] = field(default=())

    @cached_property
    def body(self) -> bytes:
        """Decoded body. Raises :class:`DecodeError` on corrupt payloads."""
        return _DECODER.decode(self.headers, self.raw_body)

    @property
    def redirect_count(self) -> int:
        return max(0, len(self.history) - 1)

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 400

    def text(self, encoding: str = "utf-8") -> str:
        return self.body.decode(encoding, errors="replace")

    def json(self) -> Any:
        return json.loads(self.body)

    def __repr__(self) -> str:
        return (
            f"<{self.__class__.__name__} status_code={self.status_code} "
            f"effective_uri={self.effective_uri}>"
        )


__all__ = ["ResponseEnvelope"]
