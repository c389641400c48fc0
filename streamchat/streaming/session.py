"""Streaming session lifecycle and the controller handing sessions out.

A StreamSession owns one question/answer exchange end to end:

    transport -> decoder -> accumulator -> pacing policy -> callbacks

States: idle -> connecting -> streaming -> draining -> completed | failed | cancelled.

Whatever path ends the session (success, error, cancellation), exactly one
terminal DeliveryEvent is delivered, and no delta follows it. The read loop
and the policy timer run independently, so every commit checks whether the
session has already ended before touching shared state.
"""

import asyncio
import inspect
import logging
import uuid
from datetime import datetime

from streamchat.models.schemas import (
    AskRequest,
    DeliveryEvent,
    ErrorKind,
    Framing,
    PacingConfig,
    RawFragment,
    SessionState,
)
from streamchat.streaming.accumulator import Accumulator
from streamchat.streaming.config import StreamSettings, get_stream_settings
from streamchat.streaming.decoder import FrameDecoder, RawFrameDecoder, make_decoder
from streamchat.streaming.errors import StreamError
from streamchat.streaming.pacing import build_policy
from streamchat.streaming.scheduler import Scheduler
from streamchat.streaming.sink import DeliverySink
from streamchat.streaming.transport import FragmentSource, HttpTransport, Transport

logger = logging.getLogger(__name__)


async def _dispatch(callback: DeliverySink | None, event: DeliveryEvent) -> None:
    if callback is None:
        return
    result = callback(event)
    if inspect.isawaitable(result):
        await result


class StreamSession:
    """Handle for one in-flight answer.

    Register ``on_delta`` / ``on_terminal`` callbacks right after submitting;
    callbacks may be plain functions or coroutine functions.
    """

    def __init__(
        self,
        request: AskRequest,
        transport: Transport,
        settings: StreamSettings,
        pacing: PacingConfig | None = None,
        framing: Framing | None = None,
        scheduler: Scheduler | None = None,
    ) -> None:
        self.id = uuid.uuid4().hex
        self.request = request
        self.state = SessionState.IDLE
        self.started_at = datetime.now()
        self.finished_at: datetime | None = None
        self.fragments = 0

        self._transport = transport
        self._settings = settings
        self._framing = framing or settings.framing
        self._accumulator = Accumulator()
        self._policy = build_policy(pacing or settings.pacing, self._accumulator, self._commit, scheduler)
        self._decoder: FrameDecoder | None = None
        self._source: FragmentSource | None = None
        self._task: asyncio.Task[None] | None = None

        self._delta_callback: DeliverySink | None = None
        self._terminal_callback: DeliverySink | None = None
        self._result: DeliveryEvent | None = None
        self._delivered = asyncio.Event()
        self._terminal_task: asyncio.Future[None] | None = None

    def __repr__(self) -> str:
        return f"StreamSession(id={self.id[:8]!r}, state={self.state.value!r})"

    # -- public handle -------------------------------------------------------

    @property
    def done(self) -> bool:
        """Whether the terminal event has been issued."""
        return self.state.is_terminal

    @property
    def result(self) -> DeliveryEvent | None:
        return self._result

    @property
    def text(self) -> str:
        """Text committed to the UI so far."""
        return self._accumulator.committed_text

    @property
    def accumulated_text(self) -> str:
        return self._accumulator.text

    @property
    def pending(self) -> str:
        return self._accumulator.pending()

    @property
    def preamble(self) -> str:
        """Discarded "process" text of a raw-framed answer."""
        if isinstance(self._decoder, RawFrameDecoder):
            return self._decoder.preamble
        return ""

    @property
    def preamble_closed(self) -> bool:
        return isinstance(self._decoder, RawFrameDecoder) and self._decoder.preamble_closed

    def on_delta(self, callback: DeliverySink) -> "StreamSession":
        self._delta_callback = callback
        return self

    def on_terminal(self, callback: DeliverySink) -> "StreamSession":
        self._terminal_callback = callback
        return self

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._run(), name=f"stream-session-{self.id[:8]}")

    def cancel(self) -> None:
        """Cancel the session without waiting for network teardown.

        Idempotent: only the first call (or the first terminal path reached)
        delivers a terminal event.
        """
        if self._result is not None:
            return
        logger.info(f"Cancelling session {self.id[:8]}")
        self._finish(SessionState.CANCELLED, ErrorKind.USER_CANCELLED)
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def wait(self) -> DeliveryEvent:
        """Wait until the terminal event has been delivered and return it."""
        await self._delivered.wait()
        assert self._result is not None
        return self._result

    # -- run loop ------------------------------------------------------------

    async def _run(self) -> None:
        self._set_state(SessionState.CONNECTING)
        try:
            self._source = await self._transport.open(self.request, self._framing)
            if self._result is not None:
                return

            self._decoder = make_decoder(self._source.content_type or self._framing.accept, self._settings.marker)
            if self._decoder.event_framed:
                self._set_state(SessionState.STREAMING)
            self._policy.start()

            while (chunk := await self._source.read()) is not None:
                await self._consume(self._decoder.feed(chunk))
            await self._consume(self._decoder.flush())
            if self._result is not None:
                return

            if self._accumulator.pending_length() > 0:
                self._set_state(SessionState.DRAINING)
            await self._policy.finish()
            await self._terminate(SessionState.COMPLETED)
        except StreamError as e:
            logger.warning(f"Session {self.id[:8]} failed ({e.kind.value}): {e}")
            self._release_held_text()
            await self._terminate(SessionState.FAILED, e.kind, str(e))
        except asyncio.CancelledError:
            self._finish(SessionState.CANCELLED, ErrorKind.USER_CANCELLED)
            raise
        except Exception as e:
            logger.exception(f"Unexpected error in session {self.id[:8]}")
            self._release_held_text()
            await self._terminate(SessionState.FAILED, ErrorKind.READ_ERROR, str(e))
        finally:
            self._policy.stop()
            if self._source is not None:
                await self._source.aclose()

    async def _consume(self, fragments: list[RawFragment]) -> None:
        with self._policy.consuming():
            for fragment in fragments:
                if self._result is not None:
                    return
                if self.state is SessionState.CONNECTING:
                    self._set_state(SessionState.STREAMING)
                self._accumulator.append(fragment.text)
                self.fragments += 1
                await self._policy.on_fragment()

    def _release_held_text(self) -> None:
        """Keep raw text still waiting for a marker when the stream fails.

        Without a marker the held text is the answer, so it is not dropped.
        """
        if not isinstance(self._decoder, RawFrameDecoder) or self._result is not None:
            return
        for fragment in self._decoder.flush():
            self._accumulator.append(fragment.text)
            self.fragments += 1

    async def _commit(self, length: int) -> None:
        """Advance the committed watermark and deliver it if it grew."""
        if self._result is not None:
            return
        before = self._accumulator.committed
        if self._accumulator.commit(length) > before:
            event = DeliveryEvent(session_id=self.id, text=self._accumulator.committed_text)
            await _dispatch(self._delta_callback, event)

    # -- termination ---------------------------------------------------------

    def _finish(
        self,
        state: SessionState,
        error_kind: ErrorKind | None = None,
        error: str | None = None,
    ) -> "asyncio.Future[None] | None":
        """Record the terminal event and schedule its delivery, once."""
        if self._result is not None:
            return None

        self._policy.stop()
        if self._source is not None:
            self._source.abort()

        if state is SessionState.CANCELLED:
            text = self._accumulator.committed_text
        else:
            # Completed and failed sessions hand over everything received
            self._accumulator.commit(len(self._accumulator))
            text = self._accumulator.text

        self._result = DeliveryEvent(
            session_id=self.id,
            text=text,
            terminal=True,
            error_kind=error_kind,
            error=error,
        )
        self.finished_at = datetime.now()
        self._set_state(state)
        logger.info(f"Session {self.id[:8]} {state.value} with {len(text)} characters")
        self._terminal_task = asyncio.ensure_future(self._deliver_terminal(self._result))
        return self._terminal_task

    async def _terminate(
        self,
        state: SessionState,
        error_kind: ErrorKind | None = None,
        error: str | None = None,
    ) -> None:
        delivery = self._finish(state, error_kind, error)
        if delivery is not None:
            await delivery

    async def _deliver_terminal(self, event: DeliveryEvent) -> None:
        try:
            await _dispatch(self._terminal_callback, event)
        except Exception:
            logger.exception(f"Terminal callback failed for session {self.id[:8]}")
        finally:
            self._delivered.set()

    def _set_state(self, state: SessionState) -> None:
        if state is not self.state:
            logger.debug(f"Session {self.id[:8]}: {self.state.value} -> {state.value}")
            self.state = state


class StreamController:
    """Hands out sessions, keeping at most one active at a time.

    Submitting a new question cancels the active session first.
    """

    def __init__(
        self,
        transport: Transport | None = None,
        settings: StreamSettings | None = None,
        scheduler: Scheduler | None = None,
    ) -> None:
        """Initialize the controller.

        Args:
            transport: Transport used to open answers (HTTP if omitted).
            settings: Optional stream settings.
                      Loads from environment if not provided.
            scheduler: Timer source for timed pacing policies.
        """
        self._settings = settings or get_stream_settings()
        self._transport = transport or HttpTransport(self._settings)
        self._scheduler = scheduler
        self._active: StreamSession | None = None

    @property
    def settings(self) -> StreamSettings:
        return self._settings

    @property
    def active(self) -> StreamSession | None:
        """The session still in flight, if any."""
        if self._active is not None and not self._active.done:
            return self._active
        return None

    def submit(
        self,
        question: str,
        pacing: PacingConfig | None = None,
        framing: Framing | None = None,
    ) -> StreamSession:
        """Start streaming an answer, superseding any active session.

        Args:
            question: The user's question.
            pacing: Override of the configured pacing policy.
            framing: Override of the configured framing.

        Returns:
            The new session handle.

        Raises:
            ValidationError: If the question is empty.
        """
        request = AskRequest(question=question, session_key=self._settings.session_key)
        if (previous := self.active) is not None:
            logger.info(f"Session {previous.id[:8]} superseded by a new question")
            previous.cancel()

        session = StreamSession(
            request,
            self._transport,
            self._settings,
            pacing=pacing,
            framing=framing,
            scheduler=self._scheduler,
        )
        self._active = session
        session.start()
        return session

    def cancel(self) -> None:
        """Cancel the active session, if any."""
        if self._active is not None:
            self._active.cancel()

    async def aclose(self) -> None:
        """Cancel the active session and close the transport."""
        session = self._active
        self.cancel()
        if session is not None:
            await session.wait()
        await self._transport.aclose()
