"""Exceptions raised by the streaming engine.

Each exception carries the ErrorKind reported in the session's terminal event.
"""

from streamchat.models.schemas import ErrorKind


class StreamError(Exception):
    """Base class for streaming failures."""

    kind: ErrorKind = ErrorKind.READ_ERROR


class TransportError(StreamError):
    """Raised when the request fails before any data arrives.

    Covers non-2xx responses and connection failures.
    """

    kind = ErrorKind.TRANSPORT_ERROR

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ReadError(StreamError):
    """Raised when reading the response body fails after it has started."""

    kind = ErrorKind.READ_ERROR


class DecodeError(ReadError):
    """Raised when the response framing cannot be decoded."""

    kind = ErrorKind.DECODE_ERROR
