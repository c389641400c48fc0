"""Streaming configuration with environment variable loading.

Pydantic-based settings for the chat stream client: where to send questions,
which framing to request and how to pace delivery to the UI.
"""

import os
import uuid
from typing import Any

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

from streamchat.models.schemas import Framing, PacingConfig

# Load environment variables from .env file
load_dotenv()

DEFAULT_MARKER = "PREQUESTIONEND"

_PACING_ADAPTER = TypeAdapter(PacingConfig)

# Positional argument names for each pacing kind in "kind:arg:arg" strings
_PACING_ARGS: dict[str, tuple[str, ...]] = {
    "immediate": (),
    "chunk_threshold": ("n",),
    "interval": ("ms",),
    "char_rate": ("chars", "tick_ms"),
}


def parse_pacing(value: str) -> PacingConfig:
    """Parse a compact pacing string into a pacing config.

    Accepted forms: ``immediate``, ``chunk_threshold:N``, ``interval:MS``
    and ``char_rate:CHARS:TICK_MS``. Omitted arguments use the model defaults.

    Args:
        value: The pacing string, e.g. from STREAM_PACING.

    Returns:
        The validated pacing config.

    Raises:
        ValueError: If the kind is unknown or has too many arguments.
    """
    kind, *args = [part.strip() for part in value.strip().lower().split(":")]
    names = _PACING_ARGS.get(kind)
    if names is None:
        raise ValueError(f"Unknown pacing policy '{kind}'. Expected one of: {', '.join(_PACING_ARGS)}")
    if len(args) > len(names):
        raise ValueError(f"Pacing policy '{kind}' takes at most {len(names)} argument(s)")
    return _PACING_ADAPTER.validate_python({"kind": kind, **dict(zip(names, args))})


class StreamSettings(BaseModel):
    """Configuration for the chat stream client.

    Attributes:
        api_base_url: Backend base URL.
        ask_path: Path of the streaming ask endpoint.
        session_key: Conversation key sent with every question.
        api_token: Optional bearer token for the Authorization header.
        framing: Response framing requested through the Accept header.
        pacing: How decoded text is released to the UI.
        marker: In-band marker closing the preamble of raw-framed answers.
        timeout: HTTP timeout in seconds; a stalled read surfaces as a read error.
    """

    model_config = ConfigDict(validate_default=True)

    api_base_url: str = Field(
        default_factory=lambda: os.getenv("API_BASE_URL", "http://localhost:8000"),
        description="Backend base URL",
    )
    ask_path: str = Field(
        default_factory=lambda: os.getenv("ASK_PATH", "/api/v1/agents/ask"),
        description="Path of the streaming ask endpoint",
    )
    session_key: str = Field(
        default_factory=lambda: os.getenv("SESSION_KEY") or str(uuid.uuid4()),
        description="Backend conversation key",
    )
    api_token: str | None = Field(
        default_factory=lambda: os.getenv("API_TOKEN") or None,
        description="Bearer token (None to send no Authorization header)",
    )
    framing: Framing = Field(
        default_factory=lambda: os.getenv("STREAM_FRAMING", "event"),
        description="Requested response framing",
    )
    pacing: PacingConfig = Field(
        default_factory=lambda: os.getenv("STREAM_PACING", "immediate"),
        description="Delivery pacing policy",
    )
    marker: str = Field(
        default_factory=lambda: os.getenv("STREAM_MARKER", DEFAULT_MARKER),
        min_length=1,
        description="Preamble marker for raw-framed answers",
    )
    timeout: float = Field(
        default_factory=lambda: os.getenv("STREAM_TIMEOUT", "120.0"),
        gt=0.0,
        description="HTTP timeout in seconds",
    )

    @field_validator("api_base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        """Validate the URL scheme and drop any trailing slash."""
        v = v.strip()
        if not v.startswith(("http://", "https://")):
            raise ValueError("API base URL must start with http:// or https://. Set API_BASE_URL in .env")
        return v.rstrip("/")

    @field_validator("ask_path")
    @classmethod
    def validate_ask_path(cls, v: str) -> str:
        """Ensure the path is absolute."""
        v = v.strip()
        return v if v.startswith("/") else f"/{v}"

    @field_validator("framing", mode="before")
    @classmethod
    def normalize_framing(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @field_validator("pacing", mode="before")
    @classmethod
    def parse_pacing_string(cls, v: Any) -> Any:
        """Accept compact pacing strings such as ``char_rate:3:50``."""
        if isinstance(v, str):
            return parse_pacing(v)
        return v

    @property
    def ask_url(self) -> str:
        return f"{self.api_base_url}{self.ask_path}"


def get_stream_settings() -> StreamSettings:
    """Create stream settings from environment.

    Returns:
        Configured StreamSettings instance.

    Raises:
        ValueError: If an environment value is invalid.
    """
    return StreamSettings()
