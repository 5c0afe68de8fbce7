"""Transport failure taxonomy for the proxy streams."""

from __future__ import annotations


class CleanEof(EOFError):
    """The peer closed the stream before the first header byte of a message.

    This is the normal end of a session, not a failure.
    """


class TransportError(RuntimeError):
    """A framed message could not be read from the stream.

    The relay direction that owns the stream logs it and stops.
    """


class TruncatedMessage(TransportError):
    """The stream closed after a message had started (mid-header or mid-body)."""

    def __init__(self, message: str, *, received: int = 0) -> None:
        super().__init__(message)
        self.received = received


class MalformedHeader(TransportError):
    """The header block had no usable Content-Length."""


class InvalidBody(TransportError):
    """The body was not a UTF-8 encoded JSON object."""
