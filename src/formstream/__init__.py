"""
Streaming ``multipart/form-data`` body encoder.

Build a :class:`MultipartBodyEncoder`, add named payloads, then stream the
body into any object with a ``write(bytes)`` method::

    encoder = MultipartBodyEncoder()
    encoder.add_part("title", TextPayload("hello"))
    encoder.add_part("upload", FilePayload("image.png"))
    encoder.write_to(sink)
"""

from .errors import FormstreamError, InvalidPartError, PayloadConsumedError
from .multipart import (
    DEFAULT_TRANSFER_ENCODING,
    MultipartBodyEncoder,
    Part,
    build_boundary,
    build_header,
)
from .payloads import BytesPayload, FilePayload, Payload, Sink, StreamPayload, TextPayload

__version__ = "0.1.0"

__all__ = (
    "DEFAULT_TRANSFER_ENCODING",
    "BytesPayload",
    "FilePayload",
    "FormstreamError",
    "InvalidPartError",
    "MultipartBodyEncoder",
    "Part",
    "Payload",
    "PayloadConsumedError",
    "Sink",
    "StreamPayload",
    "TextPayload",
    "build_boundary",
    "build_header",
)
