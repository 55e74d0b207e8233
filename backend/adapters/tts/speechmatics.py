"""
Speechmatics TTS adapter.

Implements request/response Text-to-Speech using the Speechmatics TTS API.

Role in the system:
- Receives the full reply text of one chat turn.
- Streams raw PCM16 16kHz mono from the provider and collects it.
- Wraps the PCM in a WAV container so clients can play it without knowing
  the sample format.

Architectural constraints:
- No retries, timers, or backpressure logic live in this adapter.
- speed is not supported by the provider and is ignored.
"""
from __future__ import annotations

import io
import time
import wave

from speechmatics.tts import AsyncClient, OutputFormat, Voice # pyright: ignore[reportMissingTypeStubs] # pylint: disable=no-name-in-module, import-error

from adapters.result import AdapterResult, FailureKind
from adapters.tts.base import SynthesizedAudio, TTSAdapter
from constants import (
    AUDIO_CHANNELS,
    AUDIO_SAMPLE_RATE_HZ,
    AUDIO_SAMPLE_WIDTH_BYTES,
    PROVIDER_CHUNK_SIZE,
)
from observability.logger import log_event


def pcm16_to_wav(pcm: bytes) -> bytes:
    """Wrap mono PCM16 @ 16kHz in a RIFF/WAV header."""
    buf = io.BytesIO()
    with wave.open(buf, "wb") as wav:
        wav.setnchannels(AUDIO_CHANNELS)
        wav.setsampwidth(AUDIO_SAMPLE_WIDTH_BYTES)
        wav.setframerate(AUDIO_SAMPLE_RATE_HZ)
        wav.writeframes(pcm)
    return buf.getvalue()


class SpeechmaticsTTSAdapter(TTSAdapter):
    """Speechmatics request/response TTS adapter."""

    _VOICE_MAP: dict[str, Voice] = {
        "sarah": Voice.SARAH,
        "theo": Voice.THEO,
        "megan": Voice.MEGAN,
    }

    def __init__(self, *, api_key: str | None, default_voice: str = "sarah") -> None:
        self._api_key = api_key
        self._default_voice = default_voice

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    async def synthesize(
        self,
        *,
        text: str,
        voice: str,
        speed: float,
    ) -> AdapterResult[SynthesizedAudio]:
        if not self._api_key:
            return AdapterResult.fail(FailureKind.UNCONFIGURED, "SPEECHMATICS_API_KEY not set")

        resolved_voice = self._resolve_voice(voice)
        t0 = time.monotonic_ns()

        try:
            pcm = bytearray()
            carry = b""
            async with AsyncClient(api_key=self._api_key) as client:
                async with await client.generate(
                    text=text,
                    voice=resolved_voice,
                    output_format=OutputFormat.RAW_PCM_16000,
                ) as response:
                    async for chunk in response.content.iter_chunked(PROVIDER_CHUNK_SIZE):
                        data = carry + chunk

                        # Keep sample alignment across provider chunk boundaries
                        if len(data) % 2 == 1:
                            carry = data[-1:]
                            data = data[:-1]
                        else:
                            carry = b""

                        pcm.extend(data)

        except Exception as exc:  # pylint: disable=broad-exception-caught
            return AdapterResult.fail(FailureKind.UNAVAILABLE, f"{type(exc).__name__}: {exc}")

        if not pcm:
            return AdapterResult.fail(FailureKind.BAD_RESPONSE, "empty audio payload")

        log_event({
            "event_type": "tts_synthesized",
            "provider": "speechmatics",
            "voice": voice,
            "chars": len(text),
            "audio_bytes": len(pcm),
            "synth_ms": (time.monotonic_ns() - t0) // 1_000_000,
        })
        return AdapterResult.success(
            SynthesizedAudio(audio=pcm16_to_wav(bytes(pcm)), audio_format="wav")
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _resolve_voice(self, voice: str) -> Voice:
        """
        Convert user-facing voice string to Speechmatics Voice enum.

        Unknown names fall back to the configured default, then SARAH.
        """
        return self._VOICE_MAP.get(
            voice.lower(),
            self._VOICE_MAP.get(self._default_voice.lower(), Voice.SARAH),
        )
