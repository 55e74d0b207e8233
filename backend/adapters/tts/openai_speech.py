"""
OpenAI / Azure OpenAI speech adapter.

Calls the audio/speech endpoint once per reply and returns the encoded
audio (mp3 by default) as-is; browsers play it directly.
"""
from __future__ import annotations

import time
from typing import Any

import openai

from adapters.result import AdapterResult, FailureKind
from adapters.tts.base import SynthesizedAudio, TTSAdapter
from observability.logger import log_event


class OpenAISpeechAdapter(TTSAdapter):
    """
    Request/response TTS over openai.AsyncOpenAI or AsyncAzureOpenAI.

    For Azure, model is the TTS deployment name.
    """

    def __init__(
        self,
        *,
        client: Any | None,
        model: str,
        response_format: str = "mp3",
    ) -> None:
        self._client = client
        self._model = model
        self._response_format = response_format

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
            return AdapterResult.fail(FailureKind.UNCONFIGURED, "speech credentials not set")

        t0 = time.monotonic_ns()
        try:
            response = await self._client.audio.speech.create(
                model=self._model,
                voice=voice,
                input=text,
                response_format=self._response_format,
                speed=speed,
            )
            audio = response.content
        except openai.APITimeoutError as exc:
            return AdapterResult.fail(FailureKind.TIMEOUT, f"{type(exc).__name__}: {exc}")
        except openai.APIConnectionError as exc:
            return AdapterResult.fail(FailureKind.UNAVAILABLE, f"{type(exc).__name__}: {exc}")
        except openai.APIStatusError as exc:
            kind = (
                FailureKind.UNAVAILABLE if exc.status_code >= 500
                else FailureKind.BAD_RESPONSE
            )
            return AdapterResult.fail(kind, f"HTTP {exc.status_code}: {exc.message}")
        except Exception as exc:  # pylint: disable=broad-exception-caught
            return AdapterResult.fail(FailureKind.UNAVAILABLE, f"{type(exc).__name__}: {exc}")

        if not audio:
            return AdapterResult.fail(FailureKind.BAD_RESPONSE, "empty audio payload")

        log_event({
            "event_type": "tts_synthesized",
            "provider": "openai",
            "model": self._model,
            "chars": len(text),
            "audio_bytes": len(audio),
            "synth_ms": (time.monotonic_ns() - t0) // 1_000_000,
        })
        return AdapterResult.success(
            SynthesizedAudio(audio=audio, audio_format=self._response_format)
        )
