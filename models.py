"""
Data models for the realtime call bridge.
"""
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Deque, Dict, Optional


class BridgeState(str, Enum):
    """Conceptual state of the assistant side of a call."""

    IDLE = "idle"
    SPEAKING = "speaking"
    TRUNCATING = "truncating"


# =============================
# Telephony events (Twilio -> bridge)
# =============================
@dataclass(frozen=True)
class StreamStarted:
    stream_sid: str


@dataclass(frozen=True)
class MediaFrame:
    payload: str
    timestamp: int  # ms, media clock


@dataclass(frozen=True)
class MarkAck:
    name: str


@dataclass(frozen=True)
class TelephonyClosed:
    reason: str = "disconnected"


# =============================
# AI events (OpenAI -> bridge)
# =============================
@dataclass(frozen=True)
class AudioDelta:
    content: str
    item_id: Optional[str] = None


@dataclass(frozen=True)
class SpeechStarted:
    pass


@dataclass(frozen=True)
class ResponseDone:
    payload: Dict[str, Any]


@dataclass(frozen=True)
class UnknownAIEvent:
    type: str
    payload: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class AIClosed:
    reason: str = "closed"


@dataclass
class CallSession:
    """
    Per-call synchronization state. Mutated only by the session bridge's
    consumer, one event at a time.
    """
    stream_sid: Optional[str] = None
    latest_media_timestamp: int = 0  # ms (from Twilio media events)
    response_start_timestamp: Optional[int] = None  # ms, media clock
    last_assistant_item: Optional[str] = None
    mark_queue: Deque[str] = field(default_factory=deque)
    state: BridgeState = BridgeState.IDLE

    @property
    def response_in_flight(self) -> bool:
        return self.last_assistant_item is not None and self.response_start_timestamp is not None

    def record_stream_start(self, stream_sid: str) -> bool:
        """Record the stream id once; returns False if it was already set."""
        if self.stream_sid is not None:
            return False
        self.stream_sid = stream_sid
        return True

    def advance_media_clock(self, timestamp: int) -> int:
        """Move the media clock forward; never backwards."""
        if timestamp > self.latest_media_timestamp:
            self.latest_media_timestamp = timestamp
        return self.latest_media_timestamp

    def begin_or_continue_response(self, item_id: str) -> None:
        if self.response_start_timestamp is None:
            self.response_start_timestamp = self.latest_media_timestamp
        self.last_assistant_item = item_id
        self.state = BridgeState.SPEAKING

    def elapsed_response_ms(self) -> int:
        if self.response_start_timestamp is None:
            return 0
        return max(0, self.latest_media_timestamp - self.response_start_timestamp)

    def end_response(self) -> None:
        self.response_start_timestamp = None
        self.last_assistant_item = None
        self.state = BridgeState.IDLE

    def enqueue_mark(self, name: str) -> None:
        self.mark_queue.append(name)

    def clear_marks(self) -> None:
        self.mark_queue.clear()

    def reset(self) -> None:
        """Drop everything; used on teardown."""
        self.end_response()
        self.clear_marks()
