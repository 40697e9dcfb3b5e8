import pytest

from models import AIClosed, AudioDelta, ResponseDone, SpeechStarted, UnknownAIEvent
from openai_service import OpenAIRealtimeService, build_session_update, parse_openai_event


class FakeConnection:
    def __init__(self, events=(), error=None):
        self.events = list(events)
        self.error = error
        self.sent = []
        self.close_calls = 0

    async def send(self, event):
        self.sent.append(event)

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for event in self.events:
            yield event
        if self.error is not None:
            raise self.error

    async def close(self):
        self.close_calls += 1


def test_session_update_configuration():
    update = build_session_update("Be brief.", voice="alloy", temperature=0.8)
    assert update["type"] == "session.update"
    session = update["session"]
    assert session["turn_detection"] == {"type": "server_vad"}
    assert session["input_audio_format"] == "g711_ulaw"
    assert session["output_audio_format"] == "g711_ulaw"
    assert session["voice"] == "alloy"
    assert session["instructions"] == "Be brief."
    assert session["modalities"] == ["text", "audio"]
    assert session["temperature"] == 0.8


def test_parse_openai_events():
    assert parse_openai_event(
        {"type": "response.audio.delta", "delta": "AAAA", "item_id": "item_1"}
    ) == AudioDelta(content="AAAA", item_id="item_1")
    assert parse_openai_event({"type": "input_audio_buffer.speech_started", "audio_start_ms": 10}) == SpeechStarted()

    done = {"type": "response.done", "response": {"id": "resp_1"}}
    assert parse_openai_event(done) == ResponseDone(payload=done)

    other = parse_openai_event({"type": "session.created"})
    assert isinstance(other, UnknownAIEvent)
    assert other.type == "session.created"


def test_audio_delta_without_payload_is_not_audio():
    assert isinstance(parse_openai_event({"type": "response.audio.delta", "delta": ""}), UnknownAIEvent)


@pytest.mark.asyncio
async def test_initialize_session_with_greeting():
    connection = FakeConnection()
    service = OpenAIRealtimeService(connection)

    await service.initialize_session("Be brief.", greeting="Say hello.")

    assert [event["type"] for event in connection.sent] == [
        "session.update",
        "conversation.item.create",
        "response.create",
    ]
    assert connection.sent[1]["item"]["content"][0]["text"] == "Say hello."


@pytest.mark.asyncio
async def test_initialize_session_without_greeting_waits_for_caller():
    connection = FakeConnection()
    await OpenAIRealtimeService(connection).initialize_session("Be brief.")
    assert [event["type"] for event in connection.sent] == ["session.update"]


@pytest.mark.asyncio
async def test_append_and_truncate_messages():
    connection = FakeConnection()
    service = OpenAIRealtimeService(connection)

    await service.append_audio("AAAA")
    await service.truncate("item_1", 400)

    assert connection.sent == [
        {"type": "input_audio_buffer.append", "audio": "AAAA"},
        {"type": "conversation.item.truncate", "item_id": "item_1", "content_index": 0, "audio_end_ms": 400},
    ]


@pytest.mark.asyncio
async def test_events_end_with_closed():
    connection = FakeConnection([
        {"type": "session.created"},
        '{"type": "response.audio.delta", "delta": "AAAA", "item_id": "item_1"}',
    ])
    events = [event async for event in OpenAIRealtimeService(connection).events()]

    assert isinstance(events[0], UnknownAIEvent)
    assert events[1] == AudioDelta("AAAA", "item_1")
    assert events[2] == AIClosed(reason="closed")


@pytest.mark.asyncio
async def test_stream_failure_surfaces_as_closed():
    connection = FakeConnection([{"type": "session.created"}], error=ConnectionResetError("reset"))
    events = [event async for event in OpenAIRealtimeService(connection).events()]

    assert isinstance(events[-1], AIClosed)
    assert events[-1].reason.startswith("error")


@pytest.mark.asyncio
async def test_close_is_idempotent():
    connection = FakeConnection()
    service = OpenAIRealtimeService(connection)
    await service.close()
    await service.close()
    assert connection.close_calls == 1
    assert service.closed
