"""
Wire message types.

Inbound messages and outbound results are closed tagged unions: every frame
is exactly one of the dataclasses below. Messages carry data only; the codec
(protocol/codec.py) maps them to and from JSON frames, the Session decides
what they mean.

Timestamps are ISO-8601 UTC strings with millisecond precision, matching what
browser clients produce with Date.toISOString().
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Union


def iso_now() -> str:
    """UTC timestamp in the Date.toISOString() shape."""
    return (
        datetime.now(timezone.utc)
        .isoformat(timespec="milliseconds")
        .replace("+00:00", "Z")
    )


# =============================================================================
# Inbound
# =============================================================================

class ReplyType(str, Enum):
    """Outbound type a chat turn answers with; mirrors the inbound spelling."""

    CHAT = "chat_response"
    TEXT = "text_response"


@dataclass(frozen=True)
class Ping:
    pass


@dataclass(frozen=True)
class TestEcho:
    message: str | None = None


@dataclass(frozen=True)
class ChatText:
    """
    A typed user turn.

    history is the client-supplied prior turns ({role, content} dicts) or
    None, in which case the session's own in-memory context is used.
    """
    text: str
    history: tuple[dict[str, str], ...] | None = None
    reply_type: ReplyType = ReplyType.CHAT


@dataclass(frozen=True)
class AudioChunk:
    data: bytes
    mime_hint: str | None = None
    is_final: bool = False


@dataclass(frozen=True)
class StopAudio:
    pass


@dataclass(frozen=True)
class UnknownMessage:
    """Any well-formed frame whose type this server does not know."""
    original_type: str


Message = Union[Ping, TestEcho, ChatText, AudioChunk, StopAudio, UnknownMessage]


# =============================================================================
# Outbound
# =============================================================================

class EchoKind(str, Enum):
    TEST = "test_response"
    UNKNOWN = "echo"


class AudioAckKind(str, Enum):
    PROCESSING = "audio_processing"
    RECEIVED = "audio_received"
    STOPPED = "audio_stopped"


@dataclass(frozen=True)
class Pong:
    timestamp: str = field(default_factory=iso_now)


@dataclass(frozen=True)
class EchoAck:
    kind: EchoKind
    original_message: str | None = None
    original_type: str | None = None
    timestamp: str = field(default_factory=iso_now)


@dataclass(frozen=True)
class TranscriptPartial:
    text: str
    timestamp: str = field(default_factory=iso_now)


@dataclass(frozen=True)
class TranscriptFinal:
    text: str
    timestamp: str = field(default_factory=iso_now)


@dataclass(frozen=True)
class ChatReply:
    """
    Exactly one per chat turn.

    audio/audio_format are set only when synthesis succeeded; error carries
    the classified failure detail when the reply is a fallback echo.
    """
    text: str
    ai_used: bool
    original_message: str
    reply_type: ReplyType = ReplyType.CHAT
    audio: bytes | None = None
    audio_format: str | None = None
    error: str | None = None
    timestamp: str = field(default_factory=iso_now)


@dataclass(frozen=True)
class AudioAck:
    kind: AudioAckKind
    byte_count: int = 0
    timestamp: str = field(default_factory=iso_now)


@dataclass(frozen=True)
class ErrorNotice:
    message: str
    detail: str | None = None
    timestamp: str = field(default_factory=iso_now)


Result = Union[
    Pong,
    EchoAck,
    TranscriptPartial,
    TranscriptFinal,
    ChatReply,
    AudioAck,
    ErrorNotice,
]
