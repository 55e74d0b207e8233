# pylint: disable=missing-module-docstring,missing-function-docstring

import asyncio
from typing import Any

import pytest

from adapters.asr.base import Recognized, Recognizing
from constants import OVERLOAD_CLOSE_CODE, OVERLOAD_CLOSE_REASON, TOO_MANY_PENDING
from fakes import FakeRecognizer, FakeRecognizerFactory, FakeTextGen, FakeWebSocket, collect, make_session
from protocol.messages import (
    AudioAck,
    AudioChunk,
    ChatReply,
    ChatText,
    ErrorNotice,
    Ping,
    Pong,
    TranscriptFinal,
    TranscriptPartial,
)
from session.session_state import SessionState


@pytest.mark.asyncio
async def test_full_inbox_refuses_with_error() -> None:
    session = make_session(inbox_max=4)

    for _ in range(6):
        session.dispatch(Ping())

    results = await collect(session, 6)

    refused = [r for r in results if isinstance(r, ErrorNotice)]
    assert len(refused) == 2
    assert all(r.message == TOO_MANY_PENDING for r in refused)
    assert sum(isinstance(r, Pong) for r in results) == 4

    await session.close()


@pytest.mark.asyncio
async def test_full_turn_queue_refuses_chat(log_events: list[dict[str, Any]]) -> None:
    text_gen = FakeTextGen(lambda text: text.upper(), delay_s=0.05)
    session = make_session(text_gen=text_gen, turn_queue_max=2)

    for text in ("a", "b", "c", "d", "e"):
        session.dispatch(ChatText(text=text))

    results = await collect(session, 5)

    refused = [r for r in results if isinstance(r, ErrorNotice)]
    replies = [r.text for r in results if isinstance(r, ChatReply)]
    assert len(refused) == 3
    assert refused[0].message == TOO_MANY_PENDING
    assert replies == ["A", "B"]
    assert [call["user_text"] for call in text_gen.calls] == ["a", "b"]
    assert any(
        e["event_type"] == "session_overloaded" and e["queue"] == "turns"
        for e in log_events
    )

    await session.close()


@pytest.mark.asyncio
async def test_unread_outbox_closes_session() -> None:
    session = make_session(outbox_max=3)
    ws = FakeWebSocket()
    session.transport = ws

    for _ in range(5):
        session.dispatch(Ping())

    async def _closed() -> None:
        while ws.closed_with is None:
            await asyncio.sleep(0.005)
    await asyncio.wait_for(_closed(), timeout=1.0)

    assert session.state is SessionState.CLOSED
    assert ws.closed_with == (OVERLOAD_CLOSE_CODE, OVERLOAD_CLOSE_REASON)
    assert await session.next_result() is None


def partials_then_final(recognizer: FakeRecognizer, index: int, _audio: bytes) -> None:
    if index == 1:
        recognizer.sink(Recognizing(text="a"))
        recognizer.sink(Recognizing(text="a b"))
        recognizer.sink(Recognized(text="a b c"))


@pytest.mark.asyncio
async def test_full_inbox_drops_partials_but_keeps_finals(log_events: list[dict[str, Any]]) -> None:
    factory = FakeRecognizerFactory(partials_then_final)
    session = make_session(
        text_gen=FakeTextGen(lambda text: f"R:{text}"),
        recognizer_factory=factory,
        inbox_max=2,
    )

    session.dispatch(AudioChunk(data=b"1"))
    session.dispatch(Ping())

    results = await collect(session, 5)

    assert isinstance(results[0], AudioAck)
    assert isinstance(results[1], Pong)
    assert [r.text for r in results if isinstance(r, TranscriptPartial)] == ["a"]
    assert [r.text for r in results if isinstance(r, TranscriptFinal)] == ["a b c"]
    assert [r.text for r in results if isinstance(r, ChatReply)] == ["R:a b c"]
    assert any(e["event_type"] == "partial_transcript_dropped" for e in log_events)

    await session.close()
    assert factory.created[0].close_calls == 1
