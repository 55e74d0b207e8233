"""
Chat turn.

One user text in, exactly one ChatReply out. Shared by the session's turn
worker and the REST chat route.

Responsibilities:
- Call TextGen with the system prompt, prior turns and the user text
- Fall back to an echo reply when TextGen is unconfigured, fails or
  returns nothing
- Synthesize the reply when a configured TTS adapter is given; a
  synthesis failure only omits the audio

Non-responsibilities:
- No queueing or ordering (VoiceSession's turn worker)
- No context bookkeeping (callers record successful exchanges)
- No retries
"""

from __future__ import annotations

from typing import Any, Sequence

from adapters.llm.base import TextGenAdapter
from adapters.result import FailureKind, call_with_timeout
from adapters.tts.base import TTSAdapter
from constants import ECHO_FAILED_PREFIX, ECHO_PREFIX
from observability.logger import log_event
from protocol.messages import ChatReply, ReplyType
from session.settings import SessionSettings


def echo_reply(
    text: str,
    *,
    reply_type: ReplyType = ReplyType.CHAT,
    error: str | None = None,
) -> ChatReply:
    """Fallback reply. error set means TextGen was configured but failed."""
    prefix = ECHO_PREFIX if error is None else ECHO_FAILED_PREFIX
    return ChatReply(
        text=f"{prefix}{text}",
        ai_used=False,
        original_message=text,
        reply_type=reply_type,
        error=error,
    )


async def run_chat_turn(
    *,
    text_gen: TextGenAdapter,
    settings: SessionSettings,
    text: str,
    history: Sequence[dict[str, str]],
    reply_type: ReplyType = ReplyType.CHAT,
    tts: TTSAdapter | None = None,
    log_context: dict[str, Any] | None = None,
) -> ChatReply:
    """TextGen -> optional TTS -> exactly one ChatReply. Never raises for adapter failures."""
    ctx = log_context or {}

    generated = await call_with_timeout(
        text_gen.generate(
            system_prompt=settings.system_prompt,
            history=list(history),
            user_text=text,
        ),
        settings.textgen_timeout_s,
    )

    if generated.failure is not None or not generated.value:
        failure = generated.failure
        if failure is not None and failure.kind is FailureKind.UNCONFIGURED:
            return echo_reply(text, reply_type=reply_type)

        detail = failure.describe() if failure is not None else "empty reply"
        log_event({
            "event_type": "chat_turn_degraded",
            **ctx,
            "detail": detail,
        })
        return echo_reply(text, reply_type=reply_type, error=detail)

    reply_text = generated.value
    audio: bytes | None = None
    audio_format: str | None = None

    if tts is not None and tts.configured:
        synthesized = await call_with_timeout(
            tts.synthesize(
                text=reply_text,
                voice=settings.tts_voice,
                speed=settings.tts_speed,
            ),
            settings.tts_timeout_s,
        )
        if synthesized.value is not None:
            audio = synthesized.value.audio
            audio_format = synthesized.value.audio_format
        else:
            log_event({
                "event_type": "tts_omitted",
                **ctx,
                "detail": synthesized.failure.describe() if synthesized.failure else None,
            })

    log_event({
        "event_type": "chat_turn_completed",
        **ctx,
        "chars": len(reply_text),
        "audio": audio is not None,
    })
    return ChatReply(
        text=reply_text,
        ai_used=True,
        original_message=text,
        reply_type=reply_type,
        audio=audio,
        audio_format=audio_format,
    )
