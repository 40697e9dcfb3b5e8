"""Shared fakes and fixtures."""

import asyncio
from typing import Any, Dict, List, Optional

import pytest

from models import AIClosed, TelephonyClosed
from websocket_handler import SessionBridge


class FakeTelephony:
    """Stands in for TwilioStream; records everything sent to the caller."""

    def __init__(self) -> None:
        self.incoming: asyncio.Queue = asyncio.Queue()
        self.sent: List[tuple] = []
        self.close_calls = 0
        self.fail_on_send = False

    async def events(self):
        while True:
            event = await self.incoming.get()
            yield event
            if isinstance(event, TelephonyClosed):
                return

    async def send_audio(self, payload: str) -> None:
        if self.fail_on_send:
            raise RuntimeError("websocket is closed")
        self.sent.append(("media", payload))

    async def send_mark(self, name: str) -> None:
        self.sent.append(("mark", name))

    async def clear(self) -> None:
        self.sent.append(("clear", None))

    async def close(self) -> None:
        self.close_calls += 1


class FakeAI:
    """Stands in for OpenAIRealtimeService.

    `script` maps an appended payload to the events the fake emits in reply.
    """

    def __init__(self, script: Optional[Dict[str, list]] = None) -> None:
        self.incoming: asyncio.Queue = asyncio.Queue()
        self.script = script or {}
        self.appended: List[str] = []
        self.truncations: List[tuple] = []
        self.close_calls = 0
        self.instructions: Optional[str] = None
        self.greeting: Optional[str] = None

    async def initialize_session(self, instructions: str, greeting: str = "") -> None:
        self.instructions = instructions
        self.greeting = greeting

    async def append_audio(self, payload: str) -> None:
        self.appended.append(payload)
        for event in self.script.get(payload, []):
            self.incoming.put_nowait(event)

    async def truncate(self, item_id: str, audio_end_ms: int) -> None:
        self.truncations.append((item_id, audio_end_ms))

    async def events(self):
        while True:
            event = await self.incoming.get()
            yield event
            if isinstance(event, AIClosed):
                return

    async def close(self) -> None:
        self.close_calls += 1


class FakePersistence:
    def __init__(self, fail: bool = False) -> None:
        self.transcripts: List[Dict[str, Any]] = []
        self.updates: List[Dict[str, Any]] = []
        self.fail = fail

    async def store_transcript(self, event: Dict[str, Any]) -> None:
        if self.fail:
            raise RuntimeError("supabase down")
        self.transcripts.append(event)

    async def post_realtime_update(self, event: Dict[str, Any]) -> None:
        if self.fail:
            raise RuntimeError("supabase down")
        self.updates.append(event)


@pytest.fixture
def telephony() -> FakeTelephony:
    return FakeTelephony()


@pytest.fixture
def ai() -> FakeAI:
    return FakeAI()


@pytest.fixture
def persistence() -> FakePersistence:
    return FakePersistence()


@pytest.fixture
def bridge(telephony, ai, persistence) -> SessionBridge:
    return SessionBridge(telephony, ai, persistence)
