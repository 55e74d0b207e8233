"""
Session state enumeration.

Rules:
- This enum defines ONLY the audio-pipeline states of one connection.
- No behavior, no helper methods, no side effects.
- Transitions live in VoiceSession.
"""

from __future__ import annotations

from enum import Enum


class SessionState(str, Enum):
    """
    Lifecycle of one connection's audio pipeline.

    IDLE:
        No recognizer. Accepts every message kind.

    STREAMING:
        Recognizer active; audio is forwarded as it arrives.

    STOPPING:
        stop() issued; late recognition events are still accepted until the
        recognizer confirms shutdown, then back to IDLE.

    CLOSED:
        Terminal. Transport gone, recognizer released, results discarded.

    Chat text is accepted in every state except CLOSED.
    """

    IDLE = "IDLE"
    STREAMING = "STREAMING"
    STOPPING = "STOPPING"
    CLOSED = "CLOSED"
