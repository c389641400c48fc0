"""Streaming answer consumption and progressive delivery.

Opens a long-lived answer from the backend, decodes it incrementally and
releases it to the UI under a configurable pacing policy.

Responsibilities:
    - HTTP transport with abortable, lazily read response bodies
    - Event-stream and raw text framing, including the preamble marker
    - Accumulation of decoded text and the committed watermark
    - Pacing: immediate, chunk threshold, fixed interval, character rate
    - Session lifecycle with exactly one terminal event per session

Sessions are handed out by StreamController, which keeps at most one active.
"""

from streamchat.streaming.accumulator import Accumulator
from streamchat.streaming.config import StreamSettings, get_stream_settings, parse_pacing
from streamchat.streaming.decoder import EventFrameDecoder, RawFrameDecoder, make_decoder
from streamchat.streaming.errors import DecodeError, ReadError, StreamError, TransportError
from streamchat.streaming.pacing import build_policy
from streamchat.streaming.scheduler import AsyncioScheduler, ManualScheduler, Scheduler
from streamchat.streaming.session import StreamController, StreamSession
from streamchat.streaming.sink import ChatMessage, ChatTranscript
from streamchat.streaming.transport import FragmentSource, HttpTransport

__all__ = [
    "Accumulator",
    "AsyncioScheduler",
    "ChatMessage",
    "ChatTranscript",
    "DecodeError",
    "EventFrameDecoder",
    "FragmentSource",
    "HttpTransport",
    "ManualScheduler",
    "RawFrameDecoder",
    "ReadError",
    "Scheduler",
    "StreamController",
    "StreamError",
    "StreamSession",
    "StreamSettings",
    "TransportError",
    "build_policy",
    "get_stream_settings",
    "make_decoder",
    "parse_pacing",
]
