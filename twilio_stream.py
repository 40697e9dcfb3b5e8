"""
Telephony side of a call: reads Twilio Media Stream frames and writes audio,
marks and clears back to the caller.
"""
import json
import logging
from typing import Any, AsyncIterator, Dict, Optional, Union

from fastapi import WebSocket
from fastapi.websockets import WebSocketDisconnect
from starlette.websockets import WebSocketState

from models import MarkAck, MediaFrame, StreamStarted, TelephonyClosed

logger = logging.getLogger(__name__)

TelephonyEvent = Union[StreamStarted, MediaFrame, MarkAck, TelephonyClosed]


class MalformedMessage(ValueError):
    """Raised when a Twilio frame does not have the expected shape."""


def parse_twilio_message(data: Dict[str, Any]) -> Optional[TelephonyEvent]:
    """
    Map one decoded Twilio frame to a telephony event.
    Returns None for events the bridge does not care about.
    """
    event = data.get("event")
    try:
        if event == "media":
            media = data["media"]
            payload = media["payload"]
            if not isinstance(payload, str):
                raise MalformedMessage("media payload is not a string")
            return MediaFrame(payload=payload, timestamp=int(media["timestamp"]))
        if event == "start":
            return StreamStarted(stream_sid=str(data["start"]["streamSid"]))
        if event == "mark":
            return MarkAck(name=str(data["mark"]["name"]))
        if event == "stop":
            return TelephonyClosed(reason="stop")
    except (KeyError, TypeError, ValueError) as e:
        raise MalformedMessage(f"bad {event!r} frame: {e}") from e
    return None


class TwilioStream:
    """Wraps the Twilio Media Stream websocket for one call."""

    def __init__(self, websocket: WebSocket):
        self.websocket = websocket
        self.stream_sid: Optional[str] = None

    @property
    def connected(self) -> bool:
        return self.websocket.client_state == WebSocketState.CONNECTED

    async def events(self) -> AsyncIterator[TelephonyEvent]:
        """Yield telephony events until the stream stops or disconnects."""
        try:
            async for message in self.websocket.iter_text():
                try:
                    data = json.loads(message)
                    if not isinstance(data, dict):
                        raise MalformedMessage("frame is not a JSON object")
                    event = parse_twilio_message(data)
                except ValueError as e:
                    logger.warning("Dropping malformed Twilio message: %s", e)
                    continue

                if event is None:
                    logger.debug("Ignoring Twilio event %r", data.get("event"))
                    continue
                if isinstance(event, StreamStarted):
                    self.stream_sid = event.stream_sid
                yield event
                if isinstance(event, TelephonyClosed):
                    return
        except WebSocketDisconnect:
            logger.info("Twilio WebSocket disconnected")
        yield TelephonyClosed()

    async def send_audio(self, payload: str) -> None:
        await self.websocket.send_json({
            "event": "media",
            "streamSid": self.stream_sid,
            "media": {"payload": payload},
        })

    async def send_mark(self, name: str) -> None:
        """Ask Twilio to echo `name` back once playback reaches this point."""
        await self.websocket.send_json({
            "event": "mark",
            "streamSid": self.stream_sid,
            "mark": {"name": name},
        })

    async def clear(self) -> None:
        """Drop any audio Twilio has buffered but not yet played."""
        await self.websocket.send_json({"event": "clear", "streamSid": self.stream_sid})

    async def close(self) -> None:
        if self.connected:
            await self.websocket.close()
