"""
session.py — Conversation controller for the streaming assistant.

State machine per sent message: IDLE → SENDING → STREAMING →
{COMPLETED, CANCELLED, FAILED}.

At most one StreamSession is live per conversation. A new send() cancels
the previous session and waits for its teardown (placeholder removal)
before it appends anything, so two sessions never publish concurrently.

Cancellation is a CancellationToken. The read loop checks it at every
chunk boundary; its callback cancels the consumer task so a read that is
still waiting on the network is abandoned. Chunk processing contains no
await, so a chunk is either applied entirely or not at all.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import aclosing
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

from .client import AssistantClient, AssistantRequest, AssistantResponse
from .config import AssistantConfig
from .conversation import (
    Conversation,
    ConversationObserver,
    Message,
    MessageAccumulator,
    NullObserver,
)
from .errors import EMPTY_STREAM, AssistantStreamError, CancellationError
from .stream_consumer import StreamConsumer

logger = logging.getLogger("assistant_stream.session")

# States
IDLE = "IDLE"
SENDING = "SENDING"
STREAMING = "STREAMING"
COMPLETED = "COMPLETED"
CANCELLED = "CANCELLED"
FAILED = "FAILED"

TERMINAL_STATES = frozenset({COMPLETED, CANCELLED, FAILED})


class CancellationToken:
    """Cooperative cancellation signal for one stream session."""

    def __init__(self) -> None:
        self._cancelled = False
        self._callbacks: List[Callable[[], object]] = []

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def add_callback(self, callback: Callable[[], object]) -> None:
        """Run callback on cancel (immediately if already cancelled)."""
        if self._cancelled:
            callback()
        else:
            self._callbacks.append(callback)

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback()

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise CancellationError()


@dataclass(eq=False)
class StreamSession:
    """Lifecycle of one streamed reply."""
    target_message_id: str
    token: CancellationToken
    accumulator: MessageAccumulator
    state: str = IDLE
    task: Optional[asyncio.Task] = None

    @property
    def accumulated_text(self) -> str:
        return self.accumulator.text

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES


class ConversationController:
    """Owns one Conversation and its (at most one) active StreamSession.

    External callers read `messages` / `is_loading` or call send(), clear(),
    regenerate() and aclose(). Nothing else mutates the conversation.
    """

    def __init__(
        self,
        client: AssistantClient,
        config: AssistantConfig,
        observer: Optional[ConversationObserver] = None,
        project_id: Optional[str] = None,
        start_date: str = "",
        end_date: str = "",
    ) -> None:
        self._client = client
        self._config = config
        self._observer = observer or NullObserver()
        self._conversation = Conversation()
        self._session: Optional[StreamSession] = None
        self._project_id = project_id
        self._start_date = start_date
        self._end_date = end_date

    # ── Observable state ──────────────────────────────────────────────

    @property
    def messages(self) -> Tuple[Message, ...]:
        return self._conversation.snapshot()

    @property
    def state(self) -> str:
        return self._session.state if self._session else IDLE

    @property
    def is_loading(self) -> bool:
        return self.state in (SENDING, STREAMING)

    def set_context(self, project_id: Optional[str], start_date: str, end_date: str) -> None:
        """Select the project and period the assistant analyses."""
        self._project_id = project_id
        self._start_date = start_date
        self._end_date = end_date

    # ── Commands ──────────────────────────────────────────────────────

    async def send(
        self,
        content: str,
        analysis_type: Optional[str] = None,
        skip_cache: bool = False,
    ) -> None:
        """Send a user message and stream the assistant's reply into the conversation.

        Returns once the reply is COMPLETED, FAILED or CANCELLED. Failures are
        reported to the observer, never raised. Cancelling the awaiting task
        cancels the session and re-raises CancelledError.
        """
        if not self._project_id:
            logger.warning("No project selected, ignoring message")
            return
        if not content.strip():
            return

        await self._cancel_active()

        placeholder = Message.placeholder()
        self._conversation.append(Message.user(content))
        self._conversation.append(placeholder)
        self._publish()

        session = StreamSession(
            target_message_id=placeholder.id,
            token=CancellationToken(),
            accumulator=MessageAccumulator(self._conversation, placeholder.id, self._observer),
        )
        self._session = session
        self._set_state(session, SENDING)

        request = AssistantRequest(
            project_id=self._project_id,
            start_date=self._start_date,
            end_date=self._end_date,
            message=content,
            analysis_type=analysis_type,
            skip_cache=skip_cache,
        )
        session.task = asyncio.create_task(self._run(session, request))
        session.token.add_callback(session.task.cancel)

        try:
            await asyncio.wait({session.task})
        except asyncio.CancelledError:
            # Caller went away: dispose of the session before propagating
            await self._cancel(session)
            raise

        if session.task.cancelled():
            self._finish_cancelled(session)
        else:
            session.task.result()

    async def regenerate(self) -> None:
        """Ask the last question again, bypassing the backend's answer cache."""
        last = self._conversation.last_user_message()
        if last is None:
            logger.warning("Nothing to regenerate")
            return
        await self.send(last.content, skip_cache=True)

    async def clear(self) -> None:
        """Cancel any active session and empty the conversation."""
        await self._cancel_active()
        self._conversation.clear()
        self._session = None
        self._publish()
        self._observer.on_state(IDLE)

    async def aclose(self) -> None:
        """Dispose: cancel the active session, if any."""
        await self._cancel_active()

    # ── Session lifecycle ─────────────────────────────────────────────

    async def _run(self, session: StreamSession, request: AssistantRequest) -> None:
        cached = False
        try:
            async with self._client.stream(request) as response:
                session.token.raise_if_cancelled()
                self._set_state(session, STREAMING)
                if response.is_json:
                    answer = await response.read_answer()
                    session.token.raise_if_cancelled()
                    if answer.text:
                        session.accumulator.apply(answer.text)
                    cached = answer.cached
                else:
                    await self._consume(session, response)
            self._complete(session, cached)
        except CancellationError:
            self._finish_cancelled(session)
        except asyncio.CancelledError:
            self._finish_cancelled(session)
            raise
        except AssistantStreamError as e:
            self._fail(session, e)
        except Exception as e:
            logger.exception("Unexpected error while streaming reply")
            self._fail(session, e)

    async def _consume(self, session: StreamSession, response: AssistantResponse) -> None:
        consumer = StreamConsumer()
        async with aclosing(response.chunks()) as chunks:
            async for chunk in chunks:
                session.token.raise_if_cancelled()
                for delta in consumer.feed(chunk):
                    session.accumulator.apply(delta)
                if consumer.terminated:
                    logger.debug("Terminator received, ending stream")
                    break

        session.token.raise_if_cancelled()
        for delta in consumer.finish():
            session.accumulator.apply(delta)

    async def _cancel_active(self) -> None:
        # Re-check after each wait: another send may have started meanwhile
        while self._session is not None and not self._session.is_terminal:
            await self._cancel(self._session)

    async def _cancel(self, session: StreamSession) -> None:
        if session.is_terminal:
            return
        logger.info("Cancelling session for %s", session.target_message_id)
        session.token.cancel()
        if session.task is not None and not session.task.done():
            await asyncio.wait({session.task})
        self._finish_cancelled(session)

    def _complete(self, session: StreamSession, cached: bool = False) -> None:
        changes = {"is_streaming": False, "cached": cached}
        if not session.accumulated_text:
            logger.info("Stream produced no content (%s), using fallback text", EMPTY_STREAM)
            changes["content"] = self._config.fallback_text
        self._conversation.update(session.target_message_id, **changes)
        self._publish()
        self._set_state(session, COMPLETED)

    def _finish_cancelled(self, session: StreamSession) -> None:
        if session.is_terminal:
            return
        self._conversation.remove(session.target_message_id)
        self._publish()
        self._set_state(session, CANCELLED)

    def _fail(self, session: StreamSession, error: Exception) -> None:
        logger.error("Assistant reply failed: %s", error)
        self._conversation.update(
            session.target_message_id,
            content=self._config.error_text,
            is_streaming=False,
        )
        self._publish()
        self._set_state(session, FAILED)
        self._observer.on_error(error)

    def _set_state(self, session: StreamSession, state: str) -> None:
        logger.info("Session %s: %s → %s", session.target_message_id, session.state, state)
        session.state = state
        self._observer.on_state(state)

    def _publish(self) -> None:
        self._observer.on_messages(self._conversation.snapshot())
