"""Typed payloads that can be streamed into a multipart body."""

from __future__ import annotations

import logging
import mimetypes
import os
from collections.abc import Iterable
from pathlib import Path
from typing import BinaryIO, Optional, Protocol, Union, runtime_checkable

from .errors import PayloadConsumedError

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 4096
DEFAULT_BINARY_MIME_TYPE = "application/octet-stream"
DEFAULT_TEXT_MIME_TYPE = "text/plain; charset=UTF-8"

__all__ = [
    "BytesPayload",
    "DEFAULT_CHUNK_SIZE",
    "FilePayload",
    "Payload",
    "Sink",
    "StreamPayload",
    "TextPayload",
]


@runtime_checkable
class Sink(Protocol):
    """Append-only byte destination."""

    def write(self, data: bytes) -> object:
        ...


@runtime_checkable
class Payload(Protocol):
    """A body with a content type, optional filename, and optional length.

    ``length()`` returns ``None`` when the size cannot be known before the
    bytes are streamed.
    """

    def mime_type(self) -> str:
        ...

    def file_name(self) -> Optional[str]:
        ...

    def length(self) -> Optional[int]:
        ...

    def write_to(self, sink: Sink) -> None:
        ...


class BytesPayload:
    """In-memory payload backed by a bytes object."""

    def __init__(self, mime_type: str, data: bytes, file_name: str | None = None) -> None:
        if mime_type is None:
            raise ValueError("mime_type must not be None")
        if data is None:
            raise ValueError("data must not be None")
        self._mime_type = mime_type
        self._data = bytes(data)
        self._file_name = file_name

    @property
    def data(self) -> bytes:
        return self._data

    def mime_type(self) -> str:
        return self._mime_type

    def file_name(self) -> Optional[str]:
        return self._file_name

    def length(self) -> Optional[int]:
        return len(self._data)

    def write_to(self, sink: Sink) -> None:
        sink.write(self._data)

    def __repr__(self) -> str:
        return f"BytesPayload(mime_type={self._mime_type!r}, length={len(self._data)})"


class TextPayload(BytesPayload):
    """UTF-8 text payload."""

    def __init__(self, text: str, mime_type: str = DEFAULT_TEXT_MIME_TYPE) -> None:
        if text is None:
            raise ValueError("text must not be None")
        super().__init__(mime_type, text.encode("utf-8"))
        self._text = text

    @property
    def text(self) -> str:
        return self._text

    def __repr__(self) -> str:
        return f"TextPayload({self._text!r})"


class FilePayload:
    """
    Payload that streams a file from disk in fixed-size chunks.

    The length is the file size at the time ``length()`` is called. The file
    is reopened on every ``write_to`` so the payload can be streamed again.
    """

    def __init__(
        self,
        path: Union[str, os.PathLike[str]],
        mime_type: str | None = None,
        file_name: str | None = None,
        *,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        if chunk_size <= 0:
            raise ValueError("chunk_size must be > 0")
        self._path = Path(path)
        self._mime_type = mime_type or _guess_mime_type(self._path.name)
        self._file_name = file_name if file_name is not None else self._path.name
        self._chunk_size = chunk_size

    @property
    def path(self) -> Path:
        return self._path

    def mime_type(self) -> str:
        return self._mime_type

    def file_name(self) -> Optional[str]:
        return self._file_name

    def length(self) -> Optional[int]:
        return self._path.stat().st_size

    def write_to(self, sink: Sink) -> None:
        with self._path.open("rb") as handle:
            _copy_stream(handle, sink, self._chunk_size)

    def __repr__(self) -> str:
        return f"FilePayload({str(self._path)!r}, mime_type={self._mime_type!r})"


class StreamPayload:
    """
    Payload wrapping a readable binary stream or an iterable of byte chunks.

    Its length is never known in advance, so an encoder holding it reports
    an unknown total length. The source can only be drained once.
    """

    def __init__(
        self,
        source: Union[BinaryIO, Iterable[bytes]],
        mime_type: str = DEFAULT_BINARY_MIME_TYPE,
        file_name: str | None = None,
        *,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        if source is None:
            raise ValueError("source must not be None")
        if isinstance(source, (bytes, bytearray, memoryview, str)):
            raise ValueError("source must be a readable stream or an iterable of byte chunks; use BytesPayload for bytes")
        if chunk_size <= 0:
            raise ValueError("chunk_size must be > 0")
        self._source = source
        self._mime_type = mime_type
        self._file_name = file_name
        self._chunk_size = chunk_size
        self._consumed = False

    @property
    def consumed(self) -> bool:
        return self._consumed

    def mime_type(self) -> str:
        return self._mime_type

    def file_name(self) -> Optional[str]:
        return self._file_name

    def length(self) -> Optional[int]:
        return None

    def write_to(self, sink: Sink) -> None:
        if self._consumed:
            raise PayloadConsumedError("Stream payload has already been written")
        self._consumed = True
        read = getattr(self._source, "read", None)
        if callable(read):
            _copy_stream(self._source, sink, self._chunk_size)  # type: ignore[arg-type]
            return
        for chunk in self._source:  # type: ignore[union-attr]
            if not isinstance(chunk, (bytes, bytearray, memoryview)):
                raise TypeError(f"Stream chunks must be bytes, got {type(chunk).__name__}")
            if chunk:
                sink.write(bytes(chunk))


def _copy_stream(handle: BinaryIO, sink: Sink, chunk_size: int) -> None:
    while True:
        chunk = handle.read(chunk_size)
        if not chunk:
            break
        sink.write(chunk)


def _guess_mime_type(name: str) -> str:
    guessed, _encoding = mimetypes.guess_type(name)
    if guessed is None:
        logger.debug("No mime type known for %s; using %s", name, DEFAULT_BINARY_MIME_TYPE)
        return DEFAULT_BINARY_MIME_TYPE
    return guessed
