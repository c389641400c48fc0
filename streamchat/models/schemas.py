from enum import Enum
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

EVENT_STREAM_CONTENT_TYPE = "text/event-stream"
PLAIN_TEXT_CONTENT_TYPE = "text/plain"


class SessionState(str, Enum):
    """Lifecycle states of a streaming session."""

    IDLE = "idle"
    CONNECTING = "connecting"
    STREAMING = "streaming"
    DRAINING = "draining"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionState.COMPLETED, SessionState.FAILED, SessionState.CANCELLED)


class ErrorKind(str, Enum):
    """Reason attached to a terminal event that did not complete normally."""

    TRANSPORT_ERROR = "transport_error"
    READ_ERROR = "read_error"
    DECODE_ERROR = "decode_error"
    USER_CANCELLED = "user_cancelled"


class Framing(str, Enum):
    """Response framing requested from the backend."""

    EVENT = "event"
    RAW = "raw"

    @property
    def accept(self) -> str:
        """Value for the Accept header selecting this framing."""
        if self is Framing.EVENT:
            return EVENT_STREAM_CONTENT_TYPE
        return PLAIN_TEXT_CONTENT_TYPE


class AskRequest(BaseModel):
    """Request payload for the ask endpoint.

    Attributes:
        question: User's question.
        session_key: Backend conversation key, sent as ``sessionKey``.
    """

    model_config = ConfigDict(populate_by_name=True)

    question: str = Field(..., min_length=1)
    session_key: str = Field(..., alias="sessionKey", min_length=1)

    @field_validator("question", mode="before")
    @classmethod
    def strip_question(cls, v: str) -> str:
        """Strip whitespace from question before validation."""
        if isinstance(v, str):
            return v.strip()
        return v


class RawFragment(BaseModel):
    """One decoded piece of answer text, in arrival order.

    Attributes:
        text: The decoded text.
        sequence: Zero-based position of this fragment within its session.
    """

    model_config = ConfigDict(frozen=True)

    text: str
    sequence: int = Field(ge=0)


class DeliveryEvent(BaseModel):
    """One observable update handed to the UI.

    Every event carries the full committed text, not a diff, so consumers
    replace what they show instead of appending to it.

    Attributes:
        session_id: Session the update belongs to.
        text: Committed text so far (full text on a successful terminal event).
        terminal: Whether this is the session's final event.
        error_kind: Set on terminal events that did not complete normally.
        error: Human readable error message, if any.
    """

    model_config = ConfigDict(frozen=True)

    session_id: str
    text: str
    terminal: bool = False
    error_kind: ErrorKind | None = None
    error: str | None = None


class ImmediatePacing(BaseModel):
    """Commit every fragment as soon as it arrives."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["immediate"] = "immediate"


class ChunkThresholdPacing(BaseModel):
    """Commit once every ``n`` fragments."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["chunk_threshold"] = "chunk_threshold"
    n: int = Field(default=5, ge=1, description="Fragments per commit")


class IntervalPacing(BaseModel):
    """Commit whatever is pending every ``ms`` milliseconds."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["interval"] = "interval"
    ms: int = Field(default=100, ge=1, description="Tick period in milliseconds")


class CharRatePacing(BaseModel):
    """Reveal at most ``chars`` characters every ``tick_ms`` milliseconds."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["char_rate"] = "char_rate"
    chars: int = Field(default=3, ge=1, description="Characters revealed per tick")
    tick_ms: int = Field(default=50, ge=1, description="Tick period in milliseconds")


PacingConfig = Annotated[
    ImmediatePacing | ChunkThresholdPacing | IntervalPacing | CharRatePacing,
    Field(discriminator="kind"),
]
