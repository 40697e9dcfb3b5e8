"""
WebSocket handler bridging a Twilio media stream and an OpenAI realtime session.

Both sides deliver events concurrently; they are funneled into one queue per
call and applied to the CallSession by a single consumer, in arrival order.
"""
import asyncio
import itertools
import logging
from typing import Any, AsyncIterator, Awaitable, Callable, Optional, Set

from fastapi import WebSocket

from config import INITIAL_GREETING, OPENAI_API_KEY, OPENAI_REALTIME_MODEL, SHOW_TIMING_MATH
from instructions_service import InstructionsService
from models import (
    AIClosed,
    AudioDelta,
    BridgeState,
    CallSession,
    MarkAck,
    MediaFrame,
    ResponseDone,
    SpeechStarted,
    StreamStarted,
    TelephonyClosed,
    UnknownAIEvent,
)
from openai_service import OpenAIRealtimeService
from persistence_service import PersistenceService
from twilio_stream import TwilioStream
from utils import safe_task

logger = logging.getLogger(__name__)

MARK_PREFIX = "responsePart"


class SessionBridge:
    """Owns the synchronization state of one call and the interruption protocol."""

    def __init__(self, telephony, ai, persistence, session: Optional[CallSession] = None):
        self.telephony = telephony
        self.ai = ai
        self.persistence = persistence
        self.session = session or CallSession()
        self.queue: "asyncio.Queue[Any]" = asyncio.Queue()
        self.closed = False
        self._mark_ids = itertools.count(1)
        self._background: Set[asyncio.Task] = set()

    # =============================
    # Lifecycle
    # =============================
    async def run(self) -> None:
        """Relay until either side goes away, then tear everything down."""
        producers = [
            asyncio.create_task(
                self._pump(self.telephony.events(), TelephonyClosed("error")), name="twilio->bridge"
            ),
            asyncio.create_task(self._pump(self.ai.events(), AIClosed("error")), name="openai->bridge"),
        ]
        try:
            await self._consume()
        except Exception:
            logger.exception("Session bridge failed for stream %s", self.session.stream_sid)
        finally:
            for task in producers:
                task.cancel()
            await asyncio.gather(*producers, return_exceptions=True)
            await self.shutdown("bridge stopped")
            await self.flush_background()

    async def _pump(self, events: AsyncIterator[Any], terminal: Any) -> None:
        """Feed one side's events into the queue; always end with `terminal`."""
        try:
            async for event in events:
                await self.queue.put(event)
        except Exception:
            logger.exception("Event stream failed for stream %s", self.session.stream_sid)
        await self.queue.put(terminal)

    async def _consume(self) -> None:
        while not self.closed:
            event = await self.queue.get()
            await self.handle_event(event)

    async def shutdown(self, reason: str) -> None:
        """Close both sides once and release the session state."""
        if self.closed:
            return
        self.closed = True
        logger.info("Closing session for stream %s (%s)", self.session.stream_sid, reason)
        try:
            await self.ai.close()
        except Exception:
            logger.exception("Error closing OpenAI connection")
        try:
            await self.telephony.close()
        except Exception:
            logger.exception("Error closing Twilio WebSocket")
        self.session.reset()

    async def flush_background(self) -> None:
        """Wait for outstanding persistence writes."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    # =============================
    # Event dispatch
    # =============================
    async def handle_event(self, event: Any) -> None:
        if self.closed:
            logger.debug("Session closed; dropping %s", type(event).__name__)
            return

        if isinstance(event, MediaFrame):
            await self._on_media(event)
        elif isinstance(event, AudioDelta):
            await self._on_audio_delta(event)
        elif isinstance(event, SpeechStarted):
            await self._on_speech_started()
        elif isinstance(event, ResponseDone):
            self._on_response_done(event)
        elif isinstance(event, MarkAck):
            self._on_mark_ack(event)
        elif isinstance(event, StreamStarted):
            self._on_start(event)
        elif isinstance(event, TelephonyClosed):
            await self.shutdown(f"twilio {event.reason}")
        elif isinstance(event, AIClosed):
            await self.shutdown(f"openai {event.reason}")
        elif isinstance(event, UnknownAIEvent):
            pass
        else:
            logger.warning("Unhandled bridge event: %r", event)

    def _on_start(self, event: StreamStarted) -> None:
        if self.session.record_stream_start(event.stream_sid):
            logger.info("Incoming stream has started %s", event.stream_sid)
        else:
            logger.warning(
                "Ignoring second start event %s; stream is %s", event.stream_sid, self.session.stream_sid
            )

    async def _on_media(self, event: MediaFrame) -> None:
        if event.timestamp < self.session.latest_media_timestamp:
            logger.debug(
                "Media timestamp went backwards (%s < %s)", event.timestamp, self.session.latest_media_timestamp
            )
        self.session.advance_media_clock(event.timestamp)
        # Caller audio always goes through, even while the assistant speaks,
        # so server VAD can detect barge-in.
        await self.ai.append_audio(event.payload)

    async def _on_audio_delta(self, event: AudioDelta) -> None:
        if self.session.stream_sid is None:
            logger.warning("Dropping assistant audio received before the stream started")
            return

        item_id = event.item_id or self.session.last_assistant_item
        if item_id is None:
            logger.warning("Assistant audio without an item id; it cannot be truncated")
        else:
            self.session.begin_or_continue_response(item_id)

        await self.telephony.send_audio(event.content)
        await self._send_mark()

    async def _send_mark(self) -> None:
        name = f"{MARK_PREFIX}-{next(self._mark_ids)}"
        await self.telephony.send_mark(name)
        self.session.enqueue_mark(name)

    async def _on_speech_started(self) -> None:
        session = self.session
        if not session.response_in_flight:
            logger.warning("Speech started with no assistant response in flight; nothing to truncate")
            return

        item_id = session.last_assistant_item
        elapsed = session.elapsed_response_ms()
        if SHOW_TIMING_MATH:
            logger.info(
                "Truncating %s: latest=%s - start=%s = %sms",
                item_id, session.latest_media_timestamp, session.response_start_timestamp, elapsed,
            )

        session.state = BridgeState.TRUNCATING
        try:
            await self.ai.truncate(item_id, elapsed)
            await self.telephony.clear()
        finally:
            session.clear_marks()
            session.end_response()

    def _on_response_done(self, event: ResponseDone) -> None:
        self._spawn(self.persistence.store_transcript(event.payload), "store transcript")
        self._spawn(self.persistence.post_realtime_update(event.payload), "post realtime update")
        self.session.end_response()

    def _on_mark_ack(self, event: MarkAck) -> None:
        queue = self.session.mark_queue
        if event.name not in queue:
            # Twilio also echoes marks for audio removed by a clear.
            logger.debug("Ignoring stale mark %s", event.name)
            return
        head = queue[0]
        if head != event.name:
            logger.warning("Mark %s acknowledged out of order; expected %s", event.name, head)
        queue.remove(event.name)

    def _spawn(self, coro: Awaitable[None], description: str) -> None:
        task = asyncio.create_task(safe_task(coro, description))
        self._background.add(task)
        task.add_done_callback(self._background.discard)


AIConnector = Callable[[], Awaitable[OpenAIRealtimeService]]


def connect_openai() -> Awaitable[OpenAIRealtimeService]:
    return OpenAIRealtimeService.connect(OPENAI_API_KEY, OPENAI_REALTIME_MODEL)


class WebSocketHandler:
    """Handles WebSocket connections for realtime voice communication."""

    def __init__(
        self,
        persistence: PersistenceService,
        instructions: InstructionsService,
        ai_connector: AIConnector = connect_openai,
        greeting: str = INITIAL_GREETING,
    ):
        self.persistence = persistence
        self.instructions = instructions
        self.ai_connector = ai_connector
        self.greeting = greeting

    async def handle_media_stream(self, websocket: WebSocket) -> None:
        """Main WebSocket handler for media stream from Twilio."""
        await websocket.accept()
        logger.info("Client connected")
        telephony = TwilioStream(websocket)

        try:
            ai = await self.ai_connector()
        except Exception:
            logger.exception("OpenAI connection failed")
            await telephony.close()
            return

        try:
            instructions = await self.instructions.get_instructions()
            await ai.initialize_session(instructions, self.greeting)
        except Exception:
            logger.exception("OpenAI session setup failed")
            await ai.close()
            await telephony.close()
            return

        bridge = SessionBridge(telephony, ai, self.persistence)
        await bridge.run()
        logger.info("Call closed.")
