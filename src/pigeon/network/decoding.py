"""Response body decompression keyed on ``Content-Encoding``."""

from __future__ import annotations

import gzip
import logging
import zlib
from typing import Mapping

from pigeon.errors import DecodeError

logger = logging.getLogger(__name__)

GZIP_ENCODINGS = frozenset({"gzip", "x-gzip"})
DEFLATE_ENCODINGS = frozenset({"deflate"})


class ResponseDecoder:
    """Decompresses gzip and deflate bodies; any other encoding passes through."""

    def decode(self, headers: Mapping[str, str], raw: bytes) -> bytes:
        """Return the decoded body.

        Raises:
            DecodeError: If the body claims gzip/deflate but cannot be inflated.
        """
        encoding = _content_encoding(headers)
        if not raw or not encoding:
            return raw
        if encoding in GZIP_ENCODINGS:
            try:
                return gzip.decompress(raw)
            except (OSError, EOFError, zlib.error) as exc:
                raise DecodeError(f"corrupt gzip body: {exc}") from exc
        if encoding in DEFLATE_ENCODINGS:
            return _inflate(raw)
        return raw


def _content_encoding(headers: Mapping[str, str]) -> str:
    # httpx.Headers is already case-insensitive, plain dicts are not
    value = headers.get("content-encoding")
    if value is None:
        for key, candidate in headers.items():
            if key.lower() == "content-encoding":
                value = candidate
                break
    return (value or "").strip().lower()


def _inflate(raw: bytes) -> bytes:
    try:
        return zlib.decompress(raw, -zlib.MAX_WBITS)
    except zlib.error:
        logger.debug("raw deflate failed, retrying as zlib stream")
    try:
        return zlib.decompress(raw)
    except zlib.error as exc:
        raise DecodeError(f"corrupt deflate body: {exc}") from exc


__all__ = ["ResponseDecoder"]
