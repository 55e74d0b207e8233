"""
TTS adapter contract.

This module defines the *interface only*: no retries, timers, or session
decisions live here.

Key invariants:
- One synthesize() call per chat reply, whole text in, whole audio out.
- Failures are returned, never raised. A failed synthesis only drops the
  audio from the reply; the text reply is still delivered.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

from adapters.result import AdapterResult, FailureKind


@dataclass(frozen=True)
class SynthesizedAudio:
    audio: bytes
    audio_format: str  # "mp3", "wav", ...


class TTSAdapter(ABC):
    """
    Abstract interface for a request/response TTS adapter.

    Implementations are responsible for:
    - Calling the TTS provider
    - Returning encoded audio plus its format name

    Non-responsibilities:
    - No timeouts (the session bounds the call)
    - No chunking of the input text
    - No direct interaction with WebSocket or UI
    """

    @property
    @abstractmethod
    def configured(self) -> bool:
        raise NotImplementedError

    @abstractmethod
    async def synthesize(
        self,
        *,
        text: str,
        voice: str,
        speed: float,
    ) -> AdapterResult[SynthesizedAudio]:
        """
        Synthesize text into a single audio payload.

        Contract:
        - Returns success with non-empty audio, or a classified failure.
        - UNCONFIGURED must be returned without any network call.
        - voice is provider-specific; speed is honored where the provider
          supports it and ignored otherwise.
        - The adapter MUST NOT retry internally.
        """
        raise NotImplementedError


class DisabledTTSAdapter(TTSAdapter):
    """Stand-in used when TTS_PROVIDER is 'none' or credentials are missing."""

    def __init__(self, reason: str = "tts disabled") -> None:
        self._reason = reason

    @property
    def configured(self) -> bool:
        return False

    async def synthesize(
        self,
        *,
        text: str,
        voice: str,
        speed: float,
    ) -> AdapterResult[SynthesizedAudio]:
        return AdapterResult.fail(FailureKind.UNCONFIGURED, self._reason)
