"""
Session settings.

Per-deployment knobs every session (and the REST chat route) is built
with. Resolved once at startup by server/app.py.
"""

from __future__ import annotations

from dataclasses import dataclass

from adapters.llm.prompts import SYSTEM_PROMPT
from constants import (
    RECOGNIZER_STOP_TIMEOUT_S,
    SESSION_CLOSE_TIMEOUT_S,
    SESSION_INBOX_MAX,
    SESSION_OUTBOX_MAX,
    SESSION_TURN_QUEUE_MAX,
    TEXTGEN_TIMEOUT_S,
    TTS_DEFAULT_SPEED,
    TTS_DEFAULT_VOICE,
    TTS_TIMEOUT_S,
)


@dataclass(frozen=True)
class SessionSettings:
    system_prompt: str = SYSTEM_PROMPT
    tts_voice: str = TTS_DEFAULT_VOICE
    tts_speed: float = TTS_DEFAULT_SPEED
    textgen_timeout_s: float = TEXTGEN_TIMEOUT_S
    tts_timeout_s: float = TTS_TIMEOUT_S
    recognizer_stop_timeout_s: float = RECOGNIZER_STOP_TIMEOUT_S
    close_timeout_s: float = SESSION_CLOSE_TIMEOUT_S

    # Queue bounds
    inbox_max: int = SESSION_INBOX_MAX
    turn_queue_max: int = SESSION_TURN_QUEUE_MAX
    outbox_max: int = SESSION_OUTBOX_MAX
