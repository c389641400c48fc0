"""Frame decoders turning response text into answer fragments.

Two framings are supported:
    - Event-framed (text/event-stream): blank-line separated records whose
      ``data:`` lines carry the payload.
    - Raw-framed (anything else): the whole body is one record that may start
      with a "process" preamble closed by an in-band marker.

Both decoders are incremental: ``feed()`` takes whatever text the transport
produced and returns the fragments that are complete so far; ``flush()``
releases anything still held once the stream has ended.
"""

import logging
from abc import ABC, abstractmethod

from streamchat.models.schemas import EVENT_STREAM_CONTENT_TYPE, RawFragment
from streamchat.streaming.config import DEFAULT_MARKER
from streamchat.streaming.errors import DecodeError

logger = logging.getLogger(__name__)

DATA_PREFIX = "data:"
RECORD_SEPARATOR = "\n\n"

# Event-stream fields that carry no answer text
_IGNORED_FIELDS = frozenset({"event", "id", "retry"})


class FrameDecoder(ABC):
    """Base class numbering emitted fragments in arrival order."""

    event_framed: bool = False

    def __init__(self) -> None:
        self._sequence = 0

    @abstractmethod
    def feed(self, text: str) -> list[RawFragment]:
        """Consume newly received text and return completed fragments."""

    @abstractmethod
    def flush(self) -> list[RawFragment]:
        """Return fragments still held at end of stream."""

    def _fragment(self, text: str) -> RawFragment:
        fragment = RawFragment(text=text, sequence=self._sequence)
        self._sequence += 1
        return fragment


class EventFrameDecoder(FrameDecoder):
    """Decoder for server-sent-event style responses.

    Partial records are buffered until their terminating blank line arrives.
    Only the first non-empty payload of the session has its leading whitespace
    trimmed, which removes the single leading space the backend puts in front
    of the answer.
    """

    event_framed = True

    def __init__(self, prefix: str = DATA_PREFIX) -> None:
        super().__init__()
        self._prefix = prefix
        self._buffer = ""
        self._trim_first = True

    def feed(self, text: str) -> list[RawFragment]:
        self._buffer = (self._buffer + text).replace("\r\n", "\n")
        *records, self._buffer = self._buffer.split(RECORD_SEPARATOR)
        return self._decode(records)

    def flush(self) -> list[RawFragment]:
        remainder, self._buffer = self._buffer, ""
        if not remainder.strip():
            return []
        logger.debug("Decoding unterminated trailing event-stream record")
        return self._decode([remainder])

    def _decode(self, records: list[str]) -> list[RawFragment]:
        fragments = []
        for record in records:
            payload = self._parse_record(record)
            if payload is None:
                continue
            if self._trim_first:
                payload = payload.lstrip()
            # Empty payloads are keep-alives
            if not payload:
                continue
            self._trim_first = False
            fragments.append(self._fragment(payload))
        return fragments

    def _parse_record(self, record: str) -> str | None:
        """Return the record's payload, or None if it has no data lines.

        Raises:
            DecodeError: If a line is neither a known field nor a comment.
        """
        data_lines: list[str] = []
        for line in record.split("\n"):
            if not line or line.startswith(":"):
                continue
            if line.startswith(self._prefix):
                data_lines.append(line[len(self._prefix) :])
                continue
            field = line.split(":", 1)[0]
            if field not in _IGNORED_FIELDS:
                raise DecodeError(f"Unrecognized event-stream line: {line[:80]!r}")
        if not data_lines:
            return None
        return "\n".join(data_lines)


class RawFrameDecoder(FrameDecoder):
    """Decoder for plain text responses with an optional preamble marker.

    Text is held back as preamble until the marker shows up. Each feed scans
    the new chunk together with the tail of what was already held, so a
    marker split across two reads is still found. After the first detection
    ``preamble_closed`` stays true and further text passes straight through.
    If the stream ends without a marker, the held text is the answer.
    """

    def __init__(self, marker: str = DEFAULT_MARKER) -> None:
        super().__init__()
        if not marker:
            raise ValueError("Preamble marker must not be empty")
        self._marker = marker
        self._held = ""
        self._preamble = ""
        self.preamble_closed = False

    @property
    def preamble(self) -> str:
        """Discarded "process" text, or the text held so far while still open."""
        return self._preamble if self.preamble_closed else self._held

    def feed(self, text: str) -> list[RawFragment]:
        if not text:
            return []
        if self.preamble_closed:
            return [self._fragment(text)]

        # The marker may start in the held tail, up to len(marker) - 1 chars back
        start = max(0, len(self._held) - len(self._marker) + 1)
        self._held += text
        index = self._held.find(self._marker, start)
        if index < 0:
            return []

        self._preamble = self._held[:index]
        answer = self._held[index + len(self._marker) :]
        self._held = ""
        self.preamble_closed = True
        logger.debug(f"Preamble closed after {len(self._preamble)} characters")
        return [self._fragment(answer)] if answer else []

    def flush(self) -> list[RawFragment]:
        if self.preamble_closed or not self._held:
            return []
        logger.debug("Stream ended without preamble marker, releasing held text as answer")
        held, self._held = self._held, ""
        return [self._fragment(held)]


def make_decoder(content_type: str | None, marker: str = DEFAULT_MARKER) -> FrameDecoder:
    """Select a decoder for a response content type.

    Args:
        content_type: The response Content-Type header value.
        marker: Preamble marker used by the raw-framed decoder.

    Returns:
        An event-stream decoder for text/event-stream, a raw decoder otherwise.
    """
    if content_type and EVENT_STREAM_CONTENT_TYPE in content_type.lower():
        return EventFrameDecoder()
    return RawFrameDecoder(marker)
