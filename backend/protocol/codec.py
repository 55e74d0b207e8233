"""
JSON frame codec.

decode():
    raw text frame (or raw binary audio frame) -> Message
    raises DecodeError for frames that do not conform; unknown type tags are
    NOT an error, they decode to UnknownMessage.

encode():
    Result -> JSON-serialisable dict with a "type" discriminator

Usage example:

    try:
        message = decode(frame_text)
    except DecodeError as e:
        session.report(ErrorNotice(message="Failed to process message", detail=str(e)))
    else:
        session.dispatch(message)

    await ws.send_text(json.dumps(encode(result)))
"""

from __future__ import annotations

import base64
import binascii
import json
from typing import Any

from protocol.messages import (
    AudioAck,
    AudioChunk,
    ChatReply,
    ChatText,
    EchoAck,
    EchoKind,
    ErrorNotice,
    Message,
    Ping,
    Pong,
    ReplyType,
    Result,
    StopAudio,
    TestEcho,
    TranscriptFinal,
    TranscriptPartial,
    UnknownMessage,
    iso_now,
)


# -------------------------
# Exceptions
# -------------------------

class DecodeError(Exception):
    """
    Raised when an inbound frame does not conform to the wire protocol.

    Only the offending frame is rejected; the connection stays open.
    """


# -------------------------
# Inbound type tags
# -------------------------

_CHAT_TYPES: dict[str, ReplyType] = {
    "chat": ReplyType.CHAT,
    "text_message": ReplyType.TEXT,
}
_AUDIO_TYPES = frozenset({"audio", "audio_chunk"})
_HISTORY_ROLES = frozenset({"user", "assistant"})

_AUDIO_ACK_TEXT = {
    "audio_processing": "Audio stream started",
    "audio_received": "Audio data received",
    "audio_stopped": "Audio stream stopped",
}


# -------------------------
# Decode
# -------------------------

def decode(raw: str | bytes) -> Message:
    """
    Decode one inbound frame.

    Binary frames are raw audio bytes with no container hint. Text frames
    must be JSON objects carrying a string "type".
    """
    if isinstance(raw, (bytes, bytearray)):
        if not raw:
            raise DecodeError("Empty binary frame")
        return AudioChunk(data=bytes(raw))

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise DecodeError(f"Invalid JSON: {e.msg}") from e

    if not isinstance(data, dict):
        raise DecodeError("Frame must be a JSON object")

    msg_type = data.get("type")
    if not isinstance(msg_type, str) or not msg_type:
        raise DecodeError("Frame is missing a string 'type' field")

    if msg_type == "ping":
        return Ping()

    if msg_type == "test":
        message = data.get("message")
        return TestEcho(message=message if isinstance(message, str) else None)

    if msg_type in _CHAT_TYPES:
        return _decode_chat(data, _CHAT_TYPES[msg_type])

    if msg_type in _AUDIO_TYPES:
        return _decode_audio(data)

    if msg_type == "stop_audio":
        return StopAudio()

    return UnknownMessage(original_type=msg_type)


def _decode_chat(data: dict[str, Any], reply_type: ReplyType) -> ChatText:
    text = data.get("message")
    if text is None:
        text = data.get("text")

    if not isinstance(text, str) or not text.strip():
        raise DecodeError("Chat message is required")

    history = data.get("history")
    return ChatText(
        text=text,
        history=decode_history(history) if history is not None else None,
        reply_type=reply_type,
    )


def decode_history(history: Any) -> tuple[dict[str, str], ...]:
    if not isinstance(history, list):
        raise DecodeError("history must be a list of {role, content} objects")

    turns: list[dict[str, str]] = []
    for index, turn in enumerate(history):
        if not isinstance(turn, dict):
            raise DecodeError(f"history[{index}] must be an object")

        role = turn.get("role")
        content = turn.get("content")
        if role not in _HISTORY_ROLES:
            raise DecodeError(f"history[{index}].role must be 'user' or 'assistant'")
        if not isinstance(content, str):
            raise DecodeError(f"history[{index}].content must be a string")

        turns.append({"role": role, "content": content})

    return tuple(turns)


def _decode_audio(data: dict[str, Any]) -> AudioChunk:
    payload = data.get("data")
    if not isinstance(payload, str) or not payload:
        raise DecodeError("Audio frame requires base64 'data'")

    # Browsers sometimes send the full data: URL from FileReader.readAsDataURL
    if payload.startswith("data:") and "," in payload:
        payload = payload.split(",", 1)[1]

    try:
        audio = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise DecodeError(f"Audio data is not valid base64: {e}") from e

    if not audio:
        raise DecodeError("Audio frame is empty")

    mime_hint = data.get("format")
    is_final = data.get("isFinal", False)

    return AudioChunk(
        data=audio,
        mime_hint=mime_hint if isinstance(mime_hint, str) and mime_hint else None,
        is_final=is_final is True,
    )


# -------------------------
# Encode
# -------------------------

def encode(result: Result) -> dict[str, Any]:
    """Encode one outbound result into its wire dict."""
    if isinstance(result, Pong):
        return {"type": "pong", "timestamp": result.timestamp}

    if isinstance(result, EchoAck):
        if result.kind is EchoKind.TEST:
            return {
                "type": EchoKind.TEST.value,
                "message": "Test message received successfully",
                "originalMessage": result.original_message,
                "timestamp": result.timestamp,
            }
        return {
            "type": EchoKind.UNKNOWN.value,
            "originalType": result.original_type,
            "message": "Unknown message type received",
            "timestamp": result.timestamp,
        }

    if isinstance(result, TranscriptPartial):
        return {
            "type": "speech_recognizing",
            "message": result.text,
            "timestamp": result.timestamp,
        }

    if isinstance(result, TranscriptFinal):
        return {
            "type": "speech_recognized",
            "message": result.text,
            "timestamp": result.timestamp,
        }

    if isinstance(result, ChatReply):
        return _encode_chat_reply(result)

    if isinstance(result, AudioAck):
        return {
            "type": result.kind.value,
            "message": _AUDIO_ACK_TEXT[result.kind.value],
            "dataSize": result.byte_count,
            "timestamp": result.timestamp,
        }

    if isinstance(result, ErrorNotice):
        frame: dict[str, Any] = {
            "type": "error",
            "message": result.message,
            "timestamp": result.timestamp,
        }
        if result.detail is not None:
            frame["error"] = result.detail
        return frame

    raise TypeError(f"Unsupported result type: {type(result).__name__}")


def _encode_chat_reply(reply: ChatReply) -> dict[str, Any]:
    frame: dict[str, Any] = {
        "type": reply.reply_type.value,
        "message": reply.text,
        "aiUsed": reply.ai_used,
        "originalMessage": reply.original_message,
        "timestamp": reply.timestamp,
    }
    if reply.audio is not None:
        frame["audioData"] = base64.b64encode(reply.audio).decode("ascii")
        frame["audioFormat"] = reply.audio_format
    if reply.error is not None:
        frame["error"] = reply.error
    return frame


def connection_established(
    *,
    connection_id: str,
    ai_configured: bool,
    speech_configured: bool,
) -> dict[str, Any]:
    """
    Out-of-band greeting sent once per connection.

    Not a Result: it carries capability flags, not conversational content.
    """
    return {
        "type": "connection",
        "message": "WebSocket connected successfully",
        "connectionId": connection_id,
        "aiConfigured": ai_configured,
        "speechConfigured": speech_configured,
        "timestamp": iso_now(),
    }
