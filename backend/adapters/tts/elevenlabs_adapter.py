"""
ElevenLabs TTS adapter.

Request/response Text-to-Speech using the ElevenLabs convert endpoint.
The provider streams mp3 bytes; they are collected into one payload.

- voice is the ElevenLabs voice_id; unknown/blank falls back to the
  configured default voice.
- speed is ignored.
"""

from __future__ import annotations

import inspect
import time
from typing import Any

from elevenlabs.client import AsyncElevenLabs

from adapters.result import AdapterResult, FailureKind
from adapters.tts.base import SynthesizedAudio, TTSAdapter
from observability.logger import log_event


class ElevenLabsTTSAdapter(TTSAdapter):
    """ElevenLabs request/response TTS adapter."""

    def __init__(
        self,
        *,
        api_key: str | None,
        voice_id: str = "21m00Tcm4TlvDq8ikWAM",
        model_id: str = "eleven_turbo_v2",
        output_format: str = "mp3_44100_128",
        client: Any | None = None,
    ) -> None:
        self._voice_id = voice_id
        self._model_id = model_id
        self._output_format = output_format

        if client is not None:
            self._client = client
        elif api_key:
            self._client = AsyncElevenLabs(api_key=api_key)
        else:
            self._client = None

    @property
    def configured(self) -> bool:
        return self._client is not None

    async def synthesize(
        self,
        *,
        text: str,
        voice: str,
        speed: float,
    ) -> AdapterResult[SynthesizedAudio]:
        if self._client is None:
            return AdapterResult.fail(FailureKind.UNCONFIGURED, "ELEVENLABS_API_KEY not set")

        voice_id = voice if voice and voice != "default" else self._voice_id
        t0 = time.monotonic_ns()

        try:
            audio_stream = self._client.text_to_speech.convert(
                voice_id=voice_id,
                model_id=self._model_id,
                text=text,
                output_format=self._output_format,
            )
            # Older SDKs return a coroutine resolving to the stream
            if inspect.isawaitable(audio_stream):
                audio_stream = await audio_stream

            audio = bytearray()
            async for chunk in audio_stream:
                if chunk:
                    audio.extend(chunk)

        except Exception as exc:  # pylint: disable=broad-exception-caught
            return AdapterResult.fail(FailureKind.UNAVAILABLE, f"{type(exc).__name__}: {exc}")

        if not audio:
            return AdapterResult.fail(FailureKind.BAD_RESPONSE, "empty audio payload")

        log_event({
            "event_type": "tts_synthesized",
            "provider": "elevenlabs",
            "voice_id": voice_id,
            "chars": len(text),
            "audio_bytes": len(audio),
            "synth_ms": (time.monotonic_ns() - t0) // 1_000_000,
        })
        return AdapterResult.success(SynthesizedAudio(audio=bytes(audio), audio_format="mp3"))
