"""
OpenAI service for managing the realtime speech session of one call.
"""
import logging
from typing import Any, AsyncIterator, Dict, Optional, Union

from openai import AsyncOpenAI

from config import LOG_EVENT_TYPES, TEMPERATURE, VOICE
from models import AIClosed, AudioDelta, ResponseDone, SpeechStarted, UnknownAIEvent
from utils import normalize_event_to_dict

logger = logging.getLogger(__name__)

AIEvent = Union[AudioDelta, SpeechStarted, ResponseDone, UnknownAIEvent, AIClosed]


def build_session_update(instructions: str, voice: str = VOICE, temperature: float = TEMPERATURE) -> Dict[str, Any]:
    """The session.update sent once right after connecting."""
    return {
        "type": "session.update",
        "session": {
            "turn_detection": {"type": "server_vad"},
            "input_audio_format": "g711_ulaw",
            "output_audio_format": "g711_ulaw",
            "voice": voice,
            "instructions": instructions,
            "modalities": ["text", "audio"],
            "temperature": temperature,
        },
    }


def parse_openai_event(response: Dict[str, Any]) -> AIEvent:
    """Classify a decoded realtime server event."""
    t = response.get("type") or "unknown"
    if t == "response.audio.delta" and response.get("delta"):
        return AudioDelta(content=response["delta"], item_id=response.get("item_id"))
    if t == "input_audio_buffer.speech_started":
        return SpeechStarted()
    if t == "response.done":
        return ResponseDone(payload=response)
    return UnknownAIEvent(type=t, payload=response)


class OpenAIRealtimeService:
    """Service for one OpenAI realtime connection."""

    def __init__(self, connection):
        self.connection = connection
        self._closed = False

    @classmethod
    async def connect(cls, api_key: Optional[str], model: str) -> "OpenAIRealtimeService":
        """Open the realtime websocket. Raises if the connection cannot be made."""
        client = AsyncOpenAI(api_key=api_key)
        connection = await client.beta.realtime.connect(model=model).enter()
        logger.info("OpenAI realtime connection opened (model=%s)", model)
        return cls(connection)

    @property
    def closed(self) -> bool:
        return self._closed

    async def initialize_session(self, instructions: str, greeting: str = "") -> None:
        """Configure the session, optionally asking the assistant to speak first."""
        session_update = build_session_update(instructions)
        logger.debug("Sending session update: %s", session_update)
        await self.connection.send(session_update)
        if greeting:
            await self.send_initial_conversation_item(greeting)

    async def send_initial_conversation_item(self, text: str) -> None:
        """Send the initial conversation item to start the session."""
        initial_conversation_item = {
            "type": "conversation.item.create",
            "item": {
                "type": "message",
                "role": "user",
                "content": [{"type": "input_text", "text": text}],
            },
        }
        await self.connection.send(initial_conversation_item)
        await self.connection.send({"type": "response.create"})

    async def append_audio(self, payload: str) -> None:
        await self.connection.send({"type": "input_audio_buffer.append", "audio": payload})

    async def truncate(self, item_id: str, audio_end_ms: int) -> None:
        """Tell OpenAI the caller only heard `audio_end_ms` of the item."""
        await self.connection.send({
            "type": "conversation.item.truncate",
            "item_id": item_id,
            "content_index": 0,
            "audio_end_ms": audio_end_ms,
        })

    async def events(self) -> AsyncIterator[AIEvent]:
        """Yield parsed server events; ends with AIClosed."""
        reason = "closed"
        try:
            async for event in self.connection:
                response = normalize_event_to_dict(event)
                t = response.get("type")
                if t in LOG_EVENT_TYPES:
                    if t == "error":
                        logger.error("OpenAI error event: %s", response.get("error"))
                    else:
                        logger.info("OpenAI event: %s", t)
                yield parse_openai_event(response)
        except Exception as e:
            if not self._closed:
                logger.exception("OpenAI realtime stream failed")
            reason = f"error: {e}"
        yield AIClosed(reason=reason)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self.connection.close()
        logger.info("OpenAI realtime connection closed")
