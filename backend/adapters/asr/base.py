"""
Streaming speech recognizer contract.

This module defines the *interface only*: no endpointing policy, retries,
timers, or session decisions live here.

Key invariants:
- One recognizer instance per session audio stream. The session creates it
  lazily through a RecognizerFactory and releases it exactly once via
  close().
- Recognizers never call into the session. They push RecognizerEvents into
  the sink they were constructed with; the session's dispatch loop consumes
  them in order alongside client messages.
- Failures surface as RecognizerError events, never as exceptions from
  write()/stop()/close().
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Union

from adapters.result import FailureKind


# ---------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class Recognizing:
    """Partial hypothesis for the current utterance. May be superseded."""
    text: str


@dataclass(frozen=True)
class Recognized:
    """Final transcript for one utterance."""
    text: str


@dataclass(frozen=True)
class RecognizerError:
    kind: FailureKind
    detail: str


@dataclass(frozen=True)
class RecognizerClosed:
    """The vendor stream is fully shut down; no further events follow."""


RecognizerEvent = Union[Recognizing, Recognized, RecognizerError, RecognizerClosed]
EventSink = Callable[[RecognizerEvent], None]


# ---------------------------------------------------------------------
# Contract
# ---------------------------------------------------------------------

class SpeechRecognizer(ABC):
    """
    Abstract interface for a streaming recognizer.

    Implementations are responsible for:
    - Accepting raw audio via write()
    - Emitting Recognizing / Recognized on the vendor's schedule
    - Emitting exactly one RecognizerClosed once the stream has ended
    - Releasing every socket and task in close()

    Non-responsibilities:
    - No chat turns
    - No session state
    - No direct interaction with the client transport
    """

    @abstractmethod
    async def write(self, audio: bytes) -> None:
        """
        Feed raw audio.

        Contract:
        - Must not wait on anything but the vendor socket.
        - Writes after stop() or close() are dropped.
        """
        raise NotImplementedError

    @abstractmethod
    async def stop(self) -> None:
        """
        Request graceful finalisation.

        Returns once the request is issued. Remaining Recognized events and
        then RecognizerClosed arrive through the sink. Idempotent.
        """
        raise NotImplementedError

    @abstractmethod
    async def close(self) -> None:
        """
        Release all underlying resources immediately.

        Idempotent. No events are emitted after close() returns.
        """
        raise NotImplementedError


class RecognizerFactory(ABC):
    """Builds one recognizer per audio stream."""

    @abstractmethod
    def create(
        self,
        *,
        sink: EventSink,
        mime_hint: str | None,
        session_id: str | None,
    ) -> SpeechRecognizer:
        raise NotImplementedError
