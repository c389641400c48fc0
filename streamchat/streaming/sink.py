"""Delivery sinks applying session updates to a message model.

A sink is any callable taking a DeliveryEvent; it may return an awaitable.
Every event carries the full committed text, so applying one replaces the
message body (last write wins per session) instead of appending to it.
"""

from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from streamchat.models.schemas import DeliveryEvent, ErrorKind

if TYPE_CHECKING:
    from streamchat.streaming.session import StreamSession

DeliverySink = Callable[[DeliveryEvent], Awaitable[None] | None]


class ChatMessage(BaseModel):
    """One assistant bubble driven by a streaming session.

    Attributes:
        session_id: Session feeding this bubble.
        text: Text currently shown.
        done: Whether the terminal event has been applied.
        error_kind: Terminal error kind, if the session did not complete.
        error: Terminal error message, if any.
        updates: Number of events applied.
        time: Display timestamp.
    """

    session_id: str
    text: str = ""
    done: bool = False
    error_kind: ErrorKind | None = None
    error: str | None = None
    updates: int = Field(default=0, ge=0)
    time: str = Field(default_factory=lambda: datetime.now().strftime("%I:%M %p"))

    @property
    def failed(self) -> bool:
        return self.error_kind is not None and self.error_kind is not ErrorKind.USER_CANCELLED


class ChatTranscript:
    """Message model keyed by session id.

    Usable directly as a sink (``transcript(event)``) or wired to a session
    with ``attach()``. Updates for a message that is already done are ignored.
    """

    def __init__(self) -> None:
        self.messages: dict[str, ChatMessage] = {}

    def __call__(self, event: DeliveryEvent) -> None:
        self.apply(event)

    def apply(self, event: DeliveryEvent) -> ChatMessage:
        message = self.messages.setdefault(event.session_id, ChatMessage(session_id=event.session_id))
        if message.done:
            return message

        message.text = event.text
        message.updates += 1
        if event.terminal:
            message.done = True
            message.error_kind = event.error_kind
            message.error = event.error
        return message

    def attach(self, session: "StreamSession") -> "StreamSession":
        """Route a session's deltas and terminal event into this transcript."""
        return session.on_delta(self.apply).on_terminal(self.apply)

    def get(self, session_id: str) -> ChatMessage | None:
        return self.messages.get(session_id)
