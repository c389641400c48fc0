"""Pydantic models shared by the streaming engine and the UI.

Provides type safety and validation for everything that crosses a seam.

Models:
    - AskRequest: Outgoing question payload
    - RawFragment: One decoded piece of answer text
    - DeliveryEvent: One update handed to the UI
    - Pacing configs: Immediate, ChunkThreshold, Interval, CharRate
    - Enums: SessionState, ErrorKind, Framing
"""

from streamchat.models.schemas import (
    AskRequest,
    CharRatePacing,
    ChunkThresholdPacing,
    DeliveryEvent,
    ErrorKind,
    Framing,
    ImmediatePacing,
    IntervalPacing,
    PacingConfig,
    RawFragment,
    SessionState,
)

__all__ = [
    "AskRequest",
    "CharRatePacing",
    "ChunkThresholdPacing",
    "DeliveryEvent",
    "ErrorKind",
    "Framing",
    "ImmediatePacing",
    "IntervalPacing",
    "PacingConfig",
    "RawFragment",
    "SessionState",
]
