"""Pytest fixtures and shared test configuration.

Provides reusable fixtures for unit and integration tests.

Fixtures:
    - mock_session_key: Consistent backend session key for tests
    - test_settings: StreamSettings pointing at the in-process backend
    - scheduler: Virtual clock for timed pacing policies
    - backend_app: FastAPI double of the streaming ask endpoint
    - async_client: HTTPX client bound to the backend double
"""

from collections.abc import AsyncGenerator

import pytest
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import StreamingResponse
from httpx import ASGITransport, AsyncClient

from streamchat.models.schemas import EVENT_STREAM_CONTENT_TYPE, PLAIN_TEXT_CONTENT_TYPE, AskRequest
from streamchat.streaming.config import StreamSettings
from streamchat.streaming.scheduler import ManualScheduler

BACKEND_TOKEN = "secret-token"
EVENT_TOKENS = [" Hello", " streaming", " world"]
RAW_CHUNKS = ["Let me think about it...", "PREQUESTION", "END", "The answer", " is 42."]


def create_backend(require_token: bool = False) -> FastAPI:
    """Build a backend double answering every question in the requested framing.

    Questions containing "fail" get an HTTP 500.
    """
    backend = FastAPI()

    @backend.post("/api/v1/agents/ask")
    async def ask(payload: AskRequest, request: Request) -> StreamingResponse:
        if require_token and request.headers.get("authorization") != f"Bearer {BACKEND_TOKEN}":
            raise HTTPException(status_code=401, detail="Unauthorized")
        if "fail" in payload.question:
            raise HTTPException(status_code=500, detail="backend exploded")

        if EVENT_STREAM_CONTENT_TYPE in request.headers.get("accept", ""):

            async def events() -> AsyncGenerator[str]:
                for token in EVENT_TOKENS:
                    yield f"data:{token}\n\n"

            return StreamingResponse(events(), media_type=EVENT_STREAM_CONTENT_TYPE)

        async def chunks() -> AsyncGenerator[str]:
            for chunk in RAW_CHUNKS:
                yield chunk

        return StreamingResponse(chunks(), media_type=PLAIN_TEXT_CONTENT_TYPE)

    return backend


@pytest.fixture
def mock_session_key() -> str:
    """Generate consistent session key for testing.

    Returns:
        Predictable session key for test assertions.
    """
    return "test-session-12345"


@pytest.fixture
def test_settings(mock_session_key: str) -> StreamSettings:
    """Return settings for the in-process backend with immediate pacing."""
    return StreamSettings(
        api_base_url="http://test",
        session_key=mock_session_key,
        api_token=None,
        framing="event",
        pacing="immediate",
    )


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def backend_app() -> FastAPI:
    return create_backend()


@pytest.fixture
async def async_client(backend_app: FastAPI) -> AsyncGenerator[AsyncClient]:
    """Create async HTTP client bound to the backend double.

    Yields:
        Configured AsyncClient for making test requests.
    """
    transport = ASGITransport(app=backend_app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
