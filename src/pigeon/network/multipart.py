# === NAVMAP v1 ===
# {
#   "module": "pigeon.network.multipart",
#   "purpose": "Byte-exact multipart/form-data encoding for fields and files.",
#   "sections": [
#     {
#       "id": "fileref",
#       "name": "FileRef",
#       "anchor": "class-fileref",
#       "kind": "class"
#     },
#     {
#       "id": "multipartencoder",
#       "name": "MultipartEncoder",
#       "anchor": "class-multipartencoder",
#       "kind": "class"
#     },
#     {
#       "id": "choose-boundary",
#       "name": "choose_boundary",
#       "anchor": "function-choose-boundary",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""Multipart/form-data encoding.

Builds the request body by hand so the layout is fully under our control:
every file part carries ``Content-Type``, ``Content-Transfer-Encoding`` and
``Content-Length`` headers, parts appear in caller order, and the body is
assembled as bytes end to end (file payloads are never re-encoded as text).

Example:
    >>> encoder = MultipartEncoder()
    >>> content_type, body = encoder.encode(
    ...     {"a": "1"}, {"f": FileRef("x.png", b"\\x89PNG")}, boundary="b0undary"
    ... )
    >>> content_type
    'multipart/form-data; boundary=b0undary'
"""

from __future__ import annotations

import mimetypes
import os
import secrets
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional, Tuple, Union

from pigeon.errors import InvalidArgument

CRLF = b"\r\n"

#: Fallback when the extension lookup has no answer
DEFAULT_CONTENT_TYPE = "application/octet-stream"

#: Random bytes behind each boundary (hex-encoded, so 32 characters)
BOUNDARY_BYTES = 16


@dataclass(frozen=True)
class FileRef:
    """A file part: name reported to the server plus its raw bytes."""

    filename: str
    content: bytes
    content_type: Optional[str] = None

    @classmethod
    def from_path(cls, path: Union[str, os.PathLike], content_type: Optional[str] = None) -> "FileRef":
        path = Path(path)
        try:
            content = path.read_bytes()
        except OSError as exc:
            raise InvalidArgument(f"cannot read file {path}: {exc}") from exc
        return cls(filename=path.name, content=content, content_type=content_type)

    @classmethod
    def coerce(cls, value: "FileLike") -> "FileRef":
        """Accept a ``FileRef``, a filesystem path, or a ``(filename, bytes)`` pair."""
        if isinstance(value, FileRef):
            return value
        if isinstance(value, (str, os.PathLike)):
            return cls.from_path(value)
        if isinstance(value, tuple) and len(value) == 2:
            filename, content = value
            if isinstance(content, str):
                content = content.encode("utf-8")
            return cls(filename=str(filename), content=bytes(content))
        raise InvalidArgument(f"unsupported file value {value!r}")

    @property
    def basename(self) -> str:
        return os.path.basename(self.filename.replace("\\", "/"))

    def guess_content_type(self) -> str:
        if self.content_type:
            return self.content_type
        guessed, _ = mimetypes.guess_type(self.basename)
        return guessed or DEFAULT_CONTENT_TYPE


FileLike = Union[FileRef, str, os.PathLike, Tuple[str, bytes]]


def choose_boundary() -> str:
    """Return a fresh 128-bit hex boundary."""
    return secrets.token_hex(BOUNDARY_BYTES)


def _to_bytes(value: Union[str, bytes, int, float]) -> bytes:
    if isinstance(value, bytes):
        return value
    return str(value).encode("utf-8")


def _quote(name: str) -> str:
    return name.replace("\\", "\\\\").replace('"', '\\"')


class MultipartEncoder:
    """Encodes ordered fields and files into a ``multipart/form-data`` body."""

    def encode(
        self,
        fields: Optional[Mapping[str, Union[str, bytes]]] = None,
        files: Optional[Mapping[str, FileLike]] = None,
        *,
        boundary: Optional[str] = None,
    ) -> Tuple[str, bytes]:
        """Encode ``fields`` then ``files`` in caller order.

        Args:
            fields: Plain form fields.
            files: File parts keyed by form field name.
            boundary: Fixed boundary (tests); a random one is drawn otherwise.

        Returns:
            ``(content_type, body)`` where ``content_type`` carries the boundary.
        """
        boundary = boundary or choose_boundary()
        delimiter = b"--" + boundary.encode("ascii")
        chunks = []

        for name, value in (fields or {}).items():
            chunks.append(delimiter + CRLF)
            chunks.append(
                f'Content-Disposition: form-data; name="{_quote(name)}"'.encode("utf-8") + CRLF
            )
            chunks.append(CRLF)
            chunks.append(_to_bytes(value) + CRLF)

        for name, value in (files or {}).items():
            ref = FileRef.coerce(value)
            headers = (
                f'Content-Disposition: form-data; name="{_quote(name)}"; '
                f'filename="{_quote(ref.basename)}"\r\n'
                f"Content-Type: {ref.guess_content_type()}\r\n"
                "Content-Transfer-Encoding: binary\r\n"
                f"Content-Length: {len(ref.content)}\r\n"
            )
            chunks.append(delimiter + CRLF)
            chunks.append(headers.encode("utf-8"))
            chunks.append(CRLF)
            chunks.append(ref.content + CRLF)

        chunks.append(delimiter + b"--" + CRLF)
        return f"multipart/form-data; boundary={boundary}", b"".join(chunks)


__all__ = [
    "DEFAULT_CONTENT_TYPE",
    "FileRef",
    "MultipartEncoder",
    "choose_boundary",
]
