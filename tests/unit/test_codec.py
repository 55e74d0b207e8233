# pylint: disable=missing-module-docstring,missing-function-docstring

import base64
import json

import pytest

from protocol.codec import DecodeError, connection_established, decode, encode
from protocol.messages import (
    AudioAck,
    AudioAckKind,
    AudioChunk,
    ChatReply,
    ChatText,
    EchoAck,
    EchoKind,
    ErrorNotice,
    Ping,
    Pong,
    ReplyType,
    StopAudio,
    TestEcho as EchoRequest,
    TranscriptFinal,
    TranscriptPartial,
    UnknownMessage,
)


# -------------------------
# decode
# -------------------------

def test_decode_ping() -> None:
    assert decode('{"type":"ping"}') == Ping()


def test_decode_test_echo_keeps_message() -> None:
    assert decode(json.dumps({"type": "test", "message": "hi"})) == EchoRequest(message="hi")


def test_decode_chat_and_text_message_pick_reply_type() -> None:
    chat = decode(json.dumps({"type": "chat", "message": "2+2"}))
    text = decode(json.dumps({"type": "text_message", "text": "hello"}))

    assert chat == ChatText(text="2+2", history=None, reply_type=ReplyType.CHAT)
    assert text == ChatText(text="hello", history=None, reply_type=ReplyType.TEXT)


def test_decode_chat_with_history() -> None:
    msg = decode(json.dumps({
        "type": "chat",
        "message": "and then?",
        "history": [
            {"role": "user", "content": "hi"},
            {"role": "assistant", "content": "hello"},
        ],
    }))

    assert isinstance(msg, ChatText)
    assert msg.history == (
        {"role": "user", "content": "hi"},
        {"role": "assistant", "content": "hello"},
    )


@pytest.mark.parametrize("history", [
    "not a list",
    [{"role": "system", "content": "x"}],
    [{"role": "user", "content": 5}],
    ["bare string"],
])
def test_decode_chat_rejects_malformed_history(history: object) -> None:
    with pytest.raises(DecodeError):
        decode(json.dumps({"type": "chat", "message": "hi", "history": history}))


@pytest.mark.parametrize("payload", [
    {"type": "chat"},
    {"type": "chat", "message": ""},
    {"type": "chat", "message": "   "},
    {"type": "text_message", "text": 42},
])
def test_decode_chat_requires_text(payload: dict[str, object]) -> None:
    with pytest.raises(DecodeError, match="Chat message is required"):
        decode(json.dumps(payload))


def test_decode_audio_chunk() -> None:
    raw = b"\x00\x01\x02\x03"
    msg = decode(json.dumps({
        "type": "audio_chunk",
        "data": base64.b64encode(raw).decode(),
        "format": "audio/webm;codecs=opus",
        "isFinal": True,
    }))

    assert msg == AudioChunk(data=raw, mime_hint="audio/webm;codecs=opus", is_final=True)


def test_decode_audio_strips_data_url_prefix() -> None:
    raw = b"RIFF...."
    encoded = "data:audio/wav;base64," + base64.b64encode(raw).decode()

    msg = decode(json.dumps({"type": "audio", "data": encoded}))

    assert isinstance(msg, AudioChunk)
    assert msg.data == raw
    assert msg.mime_hint is None
    assert msg.is_final is False


def test_decode_audio_is_final_must_be_true_literal() -> None:
    msg = decode(json.dumps({"type": "audio", "data": "AAAA", "isFinal": "yes"}))
    assert isinstance(msg, AudioChunk)
    assert msg.is_final is False


@pytest.mark.parametrize("data", [None, "", "%%%not-base64%%%"])
def test_decode_audio_rejects_bad_payload(data: object) -> None:
    with pytest.raises(DecodeError):
        decode(json.dumps({"type": "audio_chunk", "data": data}))


def test_decode_binary_frame_is_raw_audio() -> None:
    assert decode(b"\x10\x20") == AudioChunk(data=b"\x10\x20")


def test_decode_empty_binary_frame_rejected() -> None:
    with pytest.raises(DecodeError):
        decode(b"")


def test_decode_stop_audio() -> None:
    assert decode('{"type":"stop_audio"}') == StopAudio()


def test_decode_unknown_type_is_not_an_error() -> None:
    assert decode('{"type":"dance"}') == UnknownMessage(original_type="dance")


@pytest.mark.parametrize("raw", [
    "not json",
    "[1, 2]",
    '"ping"',
    "{}",
    '{"type": 7}',
])
def test_decode_rejects_malformed_frames(raw: str) -> None:
    with pytest.raises(DecodeError):
        decode(raw)


# -------------------------
# encode
# -------------------------

def test_encode_pong() -> None:
    frame = encode(Pong(timestamp="2024-01-01T00:00:00.000Z"))
    assert frame == {"type": "pong", "timestamp": "2024-01-01T00:00:00.000Z"}


def test_encode_test_response_and_echo() -> None:
    test = encode(EchoAck(kind=EchoKind.TEST, original_message="hi"))
    echo = encode(EchoAck(kind=EchoKind.UNKNOWN, original_type="dance"))

    assert test["type"] == "test_response"
    assert test["message"] == "Test message received successfully"
    assert test["originalMessage"] == "hi"

    assert echo["type"] == "echo"
    assert echo["originalType"] == "dance"


def test_encode_transcripts() -> None:
    assert encode(TranscriptPartial(text="what is"))["type"] == "speech_recognizing"
    final = encode(TranscriptFinal(text="what is two plus two"))
    assert final["type"] == "speech_recognized"
    assert final["message"] == "what is two plus two"


def test_encode_chat_reply_with_audio() -> None:
    frame = encode(ChatReply(
        text="4",
        ai_used=True,
        original_message="2+2",
        audio=b"mp3bytes",
        audio_format="mp3",
    ))

    assert frame["type"] == "chat_response"
    assert frame["message"] == "4"
    assert frame["aiUsed"] is True
    assert frame["originalMessage"] == "2+2"
    assert base64.b64decode(frame["audioData"]) == b"mp3bytes"
    assert frame["audioFormat"] == "mp3"
    assert "error" not in frame


def test_encode_fallback_reply_carries_error_and_no_audio() -> None:
    frame = encode(ChatReply(
        text="Echo (AI failed): hi",
        ai_used=False,
        original_message="hi",
        reply_type=ReplyType.TEXT,
        error="timeout: no response within 10s",
    ))

    assert frame["type"] == "text_response"
    assert frame["aiUsed"] is False
    assert frame["error"] == "timeout: no response within 10s"
    assert "audioData" not in frame


def test_encode_audio_acks() -> None:
    processing = encode(AudioAck(kind=AudioAckKind.PROCESSING, byte_count=320))
    stopped = encode(AudioAck(kind=AudioAckKind.STOPPED))

    assert processing["type"] == "audio_processing"
    assert processing["dataSize"] == 320
    assert stopped["type"] == "audio_stopped"


def test_encode_error_notice() -> None:
    bare = encode(ErrorNotice(message="Failed to process message"))
    detailed = encode(ErrorNotice(message="Failed to process message", detail="Invalid JSON"))

    assert bare["type"] == "error"
    assert "error" not in bare
    assert detailed["error"] == "Invalid JSON"


def test_encoded_frames_are_json_serialisable() -> None:
    frame = encode(ChatReply(text="x", ai_used=True, original_message="y", audio=b"\xff"))
    json.dumps(frame)


def test_connection_established_frame() -> None:
    frame = connection_established(
        connection_id="sess_abc",
        ai_configured=True,
        speech_configured=False,
    )

    assert frame["type"] == "connection"
    assert frame["connectionId"] == "sess_abc"
    assert frame["aiConfigured"] is True
    assert frame["speechConfigured"] is False
    assert frame["timestamp"].endswith("Z")
