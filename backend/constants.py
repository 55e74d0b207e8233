"""
Behavioral constants
--------------------
Single source of truth for timing, sizing and wire defaults.

Rules:
- If changing a value changes runtime behavior, it belongs here.
- No magic numbers elsewhere in the codebase.
- Deployment-specific values (keys, endpoints, models) live in config.py.
"""

from __future__ import annotations

from typing import Final, Tuple

# =============================================================================
# Identity
# =============================================================================

SERVICE_NAME: Final[str] = "AIMCS Voice Gateway"
SERVICE_VERSION: Final[str] = "1.0.0"
SESSION_ID_PREFIX: Final[str] = "sess_"

# =============================================================================
# External call timeouts
# =============================================================================

TEXTGEN_TIMEOUT_S: Final[float] = 10.0
TTS_TIMEOUT_S: Final[float] = 15.0

# Bounded wait for a recognizer to confirm shutdown after stop()
RECOGNIZER_STOP_TIMEOUT_S: Final[float] = 5.0
RECOGNIZER_CONNECT_TIMEOUT_S: Final[float] = 5.0

# Bounded wait for every session to release its recognizer at process shutdown
SHUTDOWN_TIMEOUT_S: Final[float] = 10.0

# Bounded wait for a session's dispatch loop to finish its current item on close
SESSION_CLOSE_TIMEOUT_S: Final[float] = 2.0

# =============================================================================
# Session backpressure
# =============================================================================

# Decoded client frames and recognizer events awaiting the dispatch loop
SESSION_INBOX_MAX: Final[int] = 256

# Chat turns awaiting the turn worker; overflow is refused with an error
SESSION_TURN_QUEUE_MAX: Final[int] = 16

# Results awaiting the transport; overflow closes the session
SESSION_OUTBOX_MAX: Final[int] = 512

OVERLOAD_CLOSE_CODE: Final[int] = 1008
OVERLOAD_CLOSE_REASON: Final[str] = "Too many pending results"
TOO_MANY_PENDING: Final[str] = "Too many pending messages"

# =============================================================================
# Text generation
# =============================================================================

TEXTGEN_MAX_TOKENS: Final[int] = 500
TEXTGEN_TEMPERATURE: Final[float] = 0.7

ECHO_PREFIX: Final[str] = "Echo: "
ECHO_FAILED_PREFIX: Final[str] = "Echo (AI failed): "

# =============================================================================
# Speech synthesis
# =============================================================================

TTS_DEFAULT_VOICE: Final[str] = "alloy"
TTS_DEFAULT_SPEED: Final[float] = 1.0
PROVIDER_CHUNK_SIZE: Final[int] = 4096

# =============================================================================
# Speech recognition (Deepgram live)
# =============================================================================

AUDIO_SAMPLE_RATE_HZ: Final[int] = 16_000
AUDIO_CHANNELS: Final[int] = 1
AUDIO_SAMPLE_WIDTH_BYTES: Final[int] = 2  # PCM16

# Mime hints that mean "raw little-endian PCM16", everything else is containerised
PCM_MIME_HINTS: Final[Tuple[str, ...]] = (
    "pcm",
    "pcm16",
    "linear16",
    "audio/pcm",
    "audio/l16",
    "audio/raw",
)

DEEPGRAM_LISTEN_URL: Final[str] = "wss://api.deepgram.com/v1/listen"
DEEPGRAM_MAX_MESSAGE_BYTES: Final[int] = 2**22

# =============================================================================
# Conversation context (in-memory only)
# =============================================================================

MAX_CONTEXT_TURNS: Final[int] = 8
MAX_CONTEXT_CHARS: Final[int] = 6_000

# Truncation rule:
# While (turn_count > MAX_CONTEXT_TURNS) OR (total_chars > MAX_CONTEXT_CHARS):
#     drop oldest turn

# =============================================================================
# Logging
# =============================================================================

LOG_PREVIEW_CHARS: Final[int] = 100
