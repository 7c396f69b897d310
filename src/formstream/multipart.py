"""Streaming ``multipart/form-data`` body encoder."""

from __future__ import annotations

import io
import logging
import uuid
from dataclasses import dataclass, field
from typing import Dict, List, Optional, cast

from .errors import InvalidPartError
from .payloads import Payload, Sink

logger = logging.getLogger(__name__)

DEFAULT_TRANSFER_ENCODING = "binary"
MIME_TYPE_PREFIX = "multipart/form-data; boundary="

_CRLF = "\r\n"

__all__ = [
    "DEFAULT_TRANSFER_ENCODING",
    "MultipartBodyEncoder",
    "Part",
    "build_boundary",
    "build_header",
]


def build_boundary(boundary: str, is_first: bool, is_last: bool) -> bytes:
    """
    Return the encoded delimiter line for *boundary*.

    Every delimiter except the first is preceded by a line break, and the
    closing delimiter carries the trailing ``--`` marker.
    """

    pieces: List[str] = []
    if not is_first:
        pieces.append(_CRLF)
    pieces.append("--")
    pieces.append(boundary)
    if is_last:
        pieces.append("--")
    pieces.append(_CRLF)
    return "".join(pieces).encode("utf-8")


def build_header(name: str, transfer_encoding: str, payload: Payload) -> bytes:
    """Return the encoded MIME header block, blank line included, for one part."""

    headers = [f'Content-Disposition: form-data; name="{name}']
    file_name = payload.file_name()
    if file_name is not None:
        headers.append(f'"; filename="{file_name}')
    headers.append(f'"{_CRLF}Content-Type: {payload.mime_type()}')
    length = _known_length(payload)
    if length is not None:
        headers.append(f"{_CRLF}Content-Length: {length}")
    headers.append(f"{_CRLF}Content-Transfer-Encoding: {transfer_encoding}")
    headers.append(_CRLF * 2)
    return "".join(headers).encode("utf-8")


def _known_length(payload: Payload) -> Optional[int]:
    length = payload.length()
    if length is None or length < 0:
        return None
    return int(length)


@dataclass(slots=True)
class Part:
    """One named field of a multipart body.

    The delimiter and header bytes are derived on first access and cached.
    """

    name: str
    transfer_encoding: str
    payload: Payload
    boundary: str
    is_first: bool
    _boundary_bytes: Optional[bytes] = field(default=None, init=False, repr=False)
    _header_bytes: Optional[bytes] = field(default=None, init=False, repr=False)

    def _build(self) -> None:
        if self._boundary_bytes is None:
            self._boundary_bytes = build_boundary(self.boundary, self.is_first, False)
            self._header_bytes = build_header(self.name, self.transfer_encoding, self.payload)

    @property
    def boundary_bytes(self) -> bytes:
        self._build()
        return cast(bytes, self._boundary_bytes)

    @property
    def header_bytes(self) -> bytes:
        self._build()
        return cast(bytes, self._header_bytes)

    def size(self) -> Optional[int]:
        """Encoded size of this part, or ``None`` when the payload length is unknown."""

        self._build()
        length = _known_length(self.payload)
        if length is None:
            return None
        return len(self.boundary_bytes) + len(self.header_bytes) + length

    def write_to(self, sink: Sink) -> None:
        sink.write(self.boundary_bytes)
        sink.write(self.header_bytes)
        self.payload.write_to(sink)


class MultipartBodyEncoder:
    """
    Assemble named payloads into a single ``multipart/form-data`` body.

    Parts are written in insertion order. The total encoded length is kept
    up to date as parts are added; it becomes ``None`` for good as soon as
    one part cannot report its length.

    The encoder satisfies the payload interface itself, so it can be nested
    inside another encoder.
    """

    def __init__(self, boundary: str | None = None) -> None:
        if boundary is None:
            boundary = str(uuid.uuid4())
        if not isinstance(boundary, str) or not boundary:
            raise InvalidPartError("Boundary must be a non-empty string.")
        self._boundary = boundary
        self._parts: List[Part] = []
        self._footer = build_boundary(boundary, False, True)
        self._length: Optional[int] = len(self._footer)

    @property
    def boundary(self) -> str:
        return self._boundary

    @property
    def footer(self) -> bytes:
        return self._footer

    @property
    def parts(self) -> tuple[Part, ...]:
        return tuple(self._parts)

    def add_part(
        self,
        name: str,
        payload: Payload,
        transfer_encoding: str = DEFAULT_TRANSFER_ENCODING,
    ) -> None:
        """
        Append a part named *name* carrying *payload*.

        Raises:
            InvalidPartError: If *name* is missing or empty, *transfer_encoding*
                is ``None``, or *payload* is ``None``. Nothing is appended.
        """

        if name is None:
            raise InvalidPartError("Part name must not be None.")
        if not isinstance(name, str) or not name:
            raise InvalidPartError("Part name must be a non-empty string.")
        if transfer_encoding is None:
            raise InvalidPartError("Transfer encoding must not be None.")
        if payload is None:
            raise InvalidPartError("Part payload must not be None.")

        part = Part(
            name=name,
            transfer_encoding=transfer_encoding,
            payload=payload,
            boundary=self._boundary,
            is_first=not self._parts,
        )
        # Sizing may raise from the payload; append only once it succeeds.
        size = part.size()
        self._parts.append(part)
        if size is None:
            if self._length is not None:
                logger.debug("Part %r has unknown length; total length is now unknown", name)
            self._length = None
        elif self._length is not None:
            self._length += size
        logger.debug("Added part %r (%d parts, length=%s)", name, len(self._parts), self._length)

    def part_count(self) -> int:
        return len(self._parts)

    def __len__(self) -> int:
        return len(self._parts)

    def mime_type(self) -> str:
        return MIME_TYPE_PREFIX + self._boundary

    def file_name(self) -> Optional[str]:
        return None

    def length(self) -> Optional[int]:
        """Total encoded length in bytes, or ``None`` when it cannot be known."""

        return self._length

    def write_to(self, sink: Sink) -> None:
        """Stream every part, then the closing delimiter, into *sink*.

        Errors raised by the sink or a payload propagate unchanged; bytes
        already written are left in place.
        """

        for part in self._parts:
            part.write_to(sink)
        sink.write(self._footer)

    def encoded_parts(self) -> List[bytes]:
        """Render each part (delimiter, headers, payload) to its own bytes object."""

        rendered: List[bytes] = []
        for part in self._parts:
            buffer = io.BytesIO()
            part.write_to(buffer)
            rendered.append(buffer.getvalue())
        return rendered

    def to_bytes(self) -> bytes:
        buffer = io.BytesIO()
        self.write_to(buffer)
        return buffer.getvalue()

    def request_headers(self) -> Dict[str, str]:
        """
        Headers describing this body for the enclosing HTTP message.

        ``Content-Length`` is reported when the total length is known,
        otherwise ``Transfer-Encoding: chunked``.
        """

        headers = {"Content-Type": self.mime_type()}
        if self._length is None:
            headers["Transfer-Encoding"] = "chunked"
        else:
            headers["Content-Length"] = str(self._length)
        return headers

    def __repr__(self) -> str:
        return (
            f"MultipartBodyEncoder(boundary={self._boundary!r}, "
            f"parts={len(self._parts)}, length={self._length})"
        )
