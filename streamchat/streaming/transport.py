"""HTTP transport opening streamed answers from the backend.

``HttpTransport.open()`` posts a question and returns a FragmentSource that
yields decoded text chunks as they arrive. Failures before the body starts
raise TransportError; failures while reading raise ReadError.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from typing import Protocol

import httpx

from streamchat.models.schemas import AskRequest, Framing
from streamchat.streaming.config import StreamSettings, get_stream_settings
from streamchat.streaming.errors import ReadError, TransportError

logger = logging.getLogger(__name__)

# Characters of an error response body kept in the TransportError message
_ERROR_BODY_LIMIT = 200


class FragmentSource(ABC):
    """Lazy, finite sequence of text chunks from one response.

    ``read()`` returns None once the stream is done instead of raising.
    ``abort()`` makes any later or in-flight read resolve to None.
    """

    def __init__(self, content_type: str | None = None) -> None:
        self.content_type = content_type
        self._aborted = False

    @property
    def aborted(self) -> bool:
        return self._aborted

    @abstractmethod
    async def read(self) -> str | None:
        """Return the next text chunk, or None when the stream is done."""

    def abort(self) -> None:
        self._aborted = True

    async def aclose(self) -> None:
        """Release the underlying connection."""

    async def __aiter__(self) -> AsyncIterator[str]:
        while (text := await self.read()) is not None:
            yield text


class Transport(Protocol):
    """Anything able to open a FragmentSource for a question."""

    async def open(self, request: AskRequest, framing: Framing) -> FragmentSource: ...

    async def aclose(self) -> None: ...


class HttpFragmentSource(FragmentSource):
    """FragmentSource reading an httpx streaming response.

    Each read races the next body chunk against ``abort()``, so a read that is
    already waiting on the network returns None as soon as the source is aborted.
    """

    def __init__(self, response: httpx.Response) -> None:
        super().__init__(response.headers.get("content-type"))
        self._response = response
        self._chunks = response.aiter_text()
        self._abort_requested = asyncio.Event()

    async def _next_text(self) -> str | None:
        try:
            return await anext(self._chunks)
        except StopAsyncIteration:
            return None

    async def read(self) -> str | None:
        while not self._aborted:
            next_text = asyncio.create_task(self._next_text())
            abort_wait = asyncio.create_task(self._abort_requested.wait())
            try:
                await asyncio.wait({next_text, abort_wait}, return_when=asyncio.FIRST_COMPLETED)
            finally:
                abort_wait.cancel()
                if not next_text.done():
                    next_text.cancel()

            if self._aborted or next_text.cancelled():
                if next_text.done() and not next_text.cancelled():
                    # Mark a failure racing the abort as retrieved
                    next_text.exception()
                return None
            try:
                text = next_text.result()
            except (httpx.HTTPError, httpx.StreamError) as e:
                raise ReadError(f"Stream read failed: {e}") from e
            if text is None:
                return None
            if text:
                return text
        return None

    def abort(self) -> None:
        super().abort()
        self._abort_requested.set()
        logger.debug("Aborting response stream")

    async def aclose(self) -> None:
        await self._response.aclose()


class HttpTransport:
    """Opens streaming ask requests against the backend.

    Owns its httpx.AsyncClient unless one is injected.
    """

    def __init__(
        self,
        settings: StreamSettings | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the transport.

        Args:
            settings: Optional stream settings.
                      Loads from environment if not provided.
            client: Optional preconfigured client (e.g. for tests).
        """
        self._settings = settings or get_stream_settings()
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._settings.timeout)
        return self._client

    def _headers(self, framing: Framing) -> dict[str, str]:
        headers = {"Accept": framing.accept, "Content-Type": "application/json"}
        if self._settings.api_token:
            headers["Authorization"] = f"Bearer {self._settings.api_token}"
        return headers

    async def open(self, request: AskRequest, framing: Framing) -> FragmentSource:
        """Send the question and wait for the response headers.

        Args:
            request: The question payload.
            framing: Requested response framing (Accept header).

        Returns:
            A FragmentSource over the response body.

        Raises:
            TransportError: On connection failure or a non-2xx status.
        """
        client = self._get_client()
        http_request = client.build_request(
            "POST",
            self._settings.ask_url,
            json=request.model_dump(by_alias=True),
            headers=self._headers(framing),
        )
        logger.info(f"Opening {framing.value} stream to {http_request.url}")

        try:
            response = await client.send(http_request, stream=True)
        except httpx.RequestError as e:
            raise TransportError(f"Connection failed: {e}") from e

        if not response.is_success:
            try:
                body = (await response.aread()).decode("utf-8", errors="replace")
            except httpx.HTTPError:
                body = ""
            finally:
                await response.aclose()
            logger.warning(f"Ask request rejected with HTTP {response.status_code}")
            message = f"HTTP {response.status_code}"
            if body.strip():
                message = f"{message}: {body.strip()[:_ERROR_BODY_LIMIT]}"
            raise TransportError(message, status_code=response.status_code)

        return HttpFragmentSource(response)

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
