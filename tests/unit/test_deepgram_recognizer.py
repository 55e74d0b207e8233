# pylint: disable=missing-module-docstring,missing-function-docstring

import asyncio
import json
from typing import Any
from urllib.parse import parse_qs, urlparse

import pytest

from adapters.asr.base import RecognizerClosed, RecognizerError, RecognizerEvent, Recognized, Recognizing
from adapters.asr.deepgram_streaming import (
    DeepgramRecognizer,
    DeepgramRecognizerFactory,
    build_listen_url,
)
from adapters.result import FailureKind


class FakeDeepgramSocket:
    def __init__(self) -> None:
        self.sent: list[Any] = []
        self.closed = False
        self._incoming: asyncio.Queue[str | None] = asyncio.Queue()

    def push(self, message: dict[str, Any]) -> None:
        self._incoming.put_nowait(json.dumps(message))

    def end(self) -> None:
        self._incoming.put_nowait(None)

    async def send(self, data: Any) -> None:
        self.sent.append(data)
        if isinstance(data, str) and json.loads(data).get("type") == "CloseStream":
            self.end()

    def __aiter__(self) -> "FakeDeepgramSocket":
        return self

    async def __anext__(self) -> str:
        item = await self._incoming.get()
        if item is None:
            raise StopAsyncIteration
        return item

    async def close(self) -> None:
        self.closed = True


class FakeConnect:
    def __init__(self, socket: FakeDeepgramSocket | None = None, error: Exception | None = None) -> None:
        self.socket = socket or FakeDeepgramSocket()
        self.error = error
        self.calls: list[tuple[str, dict[str, Any]]] = []

    async def __call__(self, url: str, **kwargs: Any) -> FakeDeepgramSocket:
        self.calls.append((url, kwargs))
        if self.error is not None:
            raise self.error
        return self.socket


def results(transcript: str, *, is_final: bool = False, speech_final: bool = False) -> dict[str, Any]:
    return {
        "type": "Results",
        "is_final": is_final,
        "speech_final": speech_final,
        "channel": {"alternatives": [{"transcript": transcript}]},
    }


def make_recognizer(connect: FakeConnect, **kwargs: Any) -> tuple[DeepgramRecognizer, list[RecognizerEvent]]:
    events: list[RecognizerEvent] = []
    recognizer = DeepgramRecognizer(
        sink=events.append,
        api_key="dg-key",
        session_id="sess_test",
        connect=connect,
        **kwargs,
    )
    return recognizer, events


async def wait_for_event(events: list[RecognizerEvent], kind: type, timeout_s: float = 1.0) -> None:
    async def _poll() -> None:
        while not any(isinstance(e, kind) for e in events):
            await asyncio.sleep(0.005)
    await asyncio.wait_for(_poll(), timeout=timeout_s)


# -------------------------
# URL
# -------------------------

def test_listen_url_declares_pcm_encoding() -> None:
    url = build_listen_url(model="nova-2", language="en-US", mime_hint="audio/pcm")
    params = parse_qs(urlparse(url).query)

    assert params["model"] == ["nova-2"]
    assert params["language"] == ["en-US"]
    assert params["interim_results"] == ["true"]
    assert params["encoding"] == ["linear16"]
    assert params["sample_rate"] == ["16000"]


def test_listen_url_lets_deepgram_sniff_containers() -> None:
    url = build_listen_url(model="nova-2", language=None, mime_hint="audio/webm;codecs=opus")
    params = parse_qs(urlparse(url).query)

    assert "encoding" not in params
    assert "language" not in params


# -------------------------
# Message translation
# -------------------------

def test_interim_then_final_segments() -> None:
    recognizer, events = make_recognizer(FakeConnect())

    recognizer.handle_message(results("what"))
    recognizer.handle_message(results("what is", is_final=True))
    recognizer.handle_message(results("two"))
    recognizer.handle_message(results("two plus two", is_final=True, speech_final=True))

    assert events == [
        Recognizing(text="what"),
        Recognizing(text="what is"),
        Recognizing(text="what is two"),
        Recognized(text="what is two plus two"),
    ]


def test_utterance_end_flushes_pending_segments() -> None:
    recognizer, events = make_recognizer(FakeConnect())

    recognizer.handle_message(results("hello", is_final=True))
    recognizer.handle_message({"type": "UtteranceEnd"})
    recognizer.handle_message({"type": "UtteranceEnd"})

    assert events == [Recognizing(text="hello"), Recognized(text="hello")]


def test_metadata_and_empty_results_are_ignored() -> None:
    recognizer, events = make_recognizer(FakeConnect())

    recognizer.handle_message({"type": "Metadata", "request_id": "abc"})
    recognizer.handle_message({"type": "SpeechStarted"})
    recognizer.handle_message(results(""))
    recognizer.handle_message({"type": "Results", "channel": {}})

    assert events == []


def test_vendor_error_message_becomes_recognizer_error() -> None:
    recognizer, events = make_recognizer(FakeConnect())

    recognizer.handle_message({"type": "Error", "err_code": "BAD_AUDIO", "err_msg": "corrupt"})
    recognizer.handle_message({"type": "Error", "err_code": "AGAIN", "err_msg": "ignored"})

    assert len(events) == 1
    error = events[0]
    assert isinstance(error, RecognizerError)
    assert error.kind is FailureKind.BAD_RESPONSE
    assert "BAD_AUDIO" in error.detail


# -------------------------
# Lifecycle
# -------------------------

@pytest.mark.asyncio
async def test_connects_lazily_and_forwards_audio() -> None:
    connect = FakeConnect()
    recognizer, _ = make_recognizer(connect, mime_hint="audio/pcm")

    assert connect.calls == []

    await recognizer.write(b"\x01\x02")
    await recognizer.write(b"\x03\x04")

    assert len(connect.calls) == 1
    url, kwargs = connect.calls[0]
    assert url.startswith("wss://api.deepgram.com/v1/listen?")
    assert kwargs["additional_headers"] == {"Authorization": "Token dg-key"}
    assert connect.socket.sent == [b"\x01\x02", b"\x03\x04"]

    await recognizer.close()
    assert connect.socket.closed is True


@pytest.mark.asyncio
async def test_stop_drains_then_emits_closed_once() -> None:
    connect = FakeConnect()
    recognizer, events = make_recognizer(connect)

    await recognizer.write(b"audio")
    connect.socket.push(results("hello", is_final=True))
    await recognizer.stop()
    await recognizer.stop()

    await wait_for_event(events, RecognizerClosed)

    assert json.loads(connect.socket.sent[-1]) == {"type": "CloseStream"}
    assert events == [
        Recognizing(text="hello"),
        Recognized(text="hello"),
        RecognizerClosed(),
    ]

    await recognizer.write(b"late")
    assert b"late" not in connect.socket.sent

    await recognizer.close()


@pytest.mark.asyncio
async def test_stop_before_any_audio_closes_immediately() -> None:
    connect = FakeConnect()
    recognizer, events = make_recognizer(connect)

    await recognizer.stop()

    assert events == [RecognizerClosed()]
    assert connect.calls == []
    await recognizer.close()


@pytest.mark.asyncio
async def test_connect_failure_is_reported_once_and_not_retried() -> None:
    connect = FakeConnect(error=OSError("connection refused"))
    recognizer, events = make_recognizer(connect)

    await recognizer.write(b"a")
    await recognizer.write(b"b")

    assert len(connect.calls) == 1
    assert len(events) == 1
    error = events[0]
    assert isinstance(error, RecognizerError)
    assert error.kind is FailureKind.UNAVAILABLE

    await recognizer.close()


@pytest.mark.asyncio
async def test_close_is_idempotent_and_silences_events() -> None:
    connect = FakeConnect()
    recognizer, events = make_recognizer(connect)

    await recognizer.write(b"audio")
    await recognizer.close()
    await recognizer.close()

    recognizer.handle_message(results("too late", is_final=True, speech_final=True))

    assert events == []
    assert connect.socket.closed is True


def test_factory_builds_independent_recognizers() -> None:
    factory = DeepgramRecognizerFactory(api_key="dg-key", model="nova-2", connect=FakeConnect())

    first = factory.create(sink=lambda _e: None, mime_hint=None, session_id="a")
    second = factory.create(sink=lambda _e: None, mime_hint="audio/pcm", session_id="b")

    assert isinstance(first, DeepgramRecognizer)
    assert first is not second
