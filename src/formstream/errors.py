"""Exception hierarchy for multipart body encoding."""

from __future__ import annotations

__all__ = ["FormstreamError", "InvalidPartError", "PayloadConsumedError"]


class FormstreamError(RuntimeError):
    """Base class for multipart encoding failures."""


class InvalidPartError(FormstreamError, ValueError):
    """Raised when a part is added with a missing name, encoding, or payload."""


class PayloadConsumedError(FormstreamError):
    """Raised when a one-shot payload is asked to stream a second time."""
