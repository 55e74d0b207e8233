"""
Deepgram live streaming recognizer.

Core model:
- One Deepgram WebSocket per recognizer, i.e. per session audio stream.
  It is opened lazily on the first write() and never reopened: after a
  failure the session releases this instance and builds a new one.
- Audio is forwarded as binary messages exactly as received. Raw PCM
  (mime hint pcm/linear16/...) is declared as linear16 @ 16kHz mono;
  containerised audio (webm/ogg/mp4 from MediaRecorder) is left for
  Deepgram to sniff.

Event behavior:
- Results with is_final=False  -> Recognizing(segments so far + interim)
- Results with is_final=True   -> segment appended; Recognizing(segments)
- speech_final / UtteranceEnd  -> Recognized(all segments), segments cleared
- stream end                   -> pending segments flushed as Recognized,
                                  then exactly one RecognizerClosed
- socket/connect failure       -> RecognizerError

Design constraints:
- Adapter never calls the session; events go to the sink only.
- stop() sends CloseStream and returns; Deepgram flushes and closes.
- close() cancels the receive task and closes the socket. Idempotent.
"""

from __future__ import annotations

import asyncio
import json
import urllib.parse
from typing import Any, Callable

from websockets.asyncio.client import connect as ws_connect
from websockets.exceptions import ConnectionClosed

from adapters.asr.base import (
    EventSink,
    RecognizerClosed,
    RecognizerError,
    RecognizerEvent,
    RecognizerFactory,
    Recognized,
    Recognizing,
    SpeechRecognizer,
)
from adapters.result import FailureKind
from constants import (
    AUDIO_CHANNELS,
    AUDIO_SAMPLE_RATE_HZ,
    DEEPGRAM_LISTEN_URL,
    DEEPGRAM_MAX_MESSAGE_BYTES,
    LOG_PREVIEW_CHARS,
    PCM_MIME_HINTS,
    RECOGNIZER_CONNECT_TIMEOUT_S,
)
from observability.logger import log_event


def build_listen_url(
    *,
    model: str,
    language: str | None,
    mime_hint: str | None,
    base_url: str = DEEPGRAM_LISTEN_URL,
) -> str:
    params: dict[str, str] = {
        "model": model,
        "interim_results": "true",
        "punctuate": "true",
        "smart_format": "true",
        "endpointing": "300",
        "utterance_end_ms": "1000",
        "vad_events": "true",
    }
    if language:
        params["language"] = language

    if mime_hint is not None and mime_hint.lower().split(";")[0].strip() in PCM_MIME_HINTS:
        params["encoding"] = "linear16"
        params["sample_rate"] = str(AUDIO_SAMPLE_RATE_HZ)
        params["channels"] = str(AUDIO_CHANNELS)

    return f"{base_url}?{urllib.parse.urlencode(params)}"


class DeepgramRecognizer(SpeechRecognizer):
    """
    Per-stream Deepgram Live WebSocket recognizer.

    Lifecycle:
    - created by DeepgramRecognizerFactory when a session starts streaming
    - write(): connects on first call, then forwards audio
    - stop(): CloseStream; the receive loop drains and emits RecognizerClosed
    - close(): hard release (called by the session exactly once)
    """

    def __init__(
        self,
        *,
        sink: EventSink,
        api_key: str,
        model: str = "nova-2",
        language: str | None = None,
        mime_hint: str | None = None,
        session_id: str | None = None,
        connect: Callable[..., Any] = ws_connect,
    ) -> None:
        self._sink = sink
        self._api_key = api_key
        self._url = build_listen_url(model=model, language=language, mime_hint=mime_hint)
        self._session_id = session_id
        self._connect = connect

        self._ws: Any = None
        self._recv_task: asyncio.Task[None] | None = None
        self._lock = asyncio.Lock()

        self._final_segments: list[str] = []
        self._bytes_sent = 0

        self._failed = False
        self._stopping = False
        self._released = False
        self._closed_emitted = False

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    async def write(self, audio: bytes) -> None:
        if self._released or self._stopping or self._failed:
            return

        async with self._lock:
            connected = await self._ensure_connected_locked()
        if not connected:
            return

        ws = self._ws
        if ws is None:
            return

        try:
            await ws.send(audio)
            self._bytes_sent += len(audio)
        except Exception as e:  # pylint: disable=broad-exception-caught
            self._fail(FailureKind.UNAVAILABLE, f"deepgram_send_failed: {e!r}")

    async def stop(self) -> None:
        if self._stopping or self._released:
            return
        self._stopping = True

        ws = self._ws
        if ws is None or self._failed:
            # Nothing was ever streamed (or the socket already failed)
            self._emit_closed()
            return

        try:
            await ws.send(json.dumps({"type": "CloseStream"}))
        except Exception as e:  # pylint: disable=broad-exception-caught
            log_event({
                "event_type": "deepgram_close_stream_failed",
                "session_id": self._session_id,
                "error": repr(e),
            })
            self._flush_segments()
            self._emit_closed()

    async def close(self) -> None:
        if self._released:
            return
        self._released = True
        self._stopping = True

        ws = self._ws
        self._ws = None

        rt = self._recv_task
        self._recv_task = None
        if rt is not None and not rt.done():
            rt.cancel()
            try:
                await rt
            except asyncio.CancelledError:
                pass

        if ws is not None:
            try:
                await ws.close()
            except Exception:  # pylint: disable=broad-exception-caught
                pass

        log_event({
            "event_type": "deepgram_recognizer_released",
            "session_id": self._session_id,
            "bytes_sent": self._bytes_sent,
        })

    # -------------------------------------------------------------------------
    # Connection management
    # -------------------------------------------------------------------------

    async def _ensure_connected_locked(self) -> bool:
        if self._ws is not None:
            return True
        if self._failed or self._released:
            return False

        headers = {"Authorization": f"Token {self._api_key}"}
        try:
            self._ws = await asyncio.wait_for(
                self._connect(
                    self._url,
                    additional_headers=headers,
                    max_size=DEEPGRAM_MAX_MESSAGE_BYTES,
                    ping_interval=None,
                ),
                timeout=RECOGNIZER_CONNECT_TIMEOUT_S,
            )
        except asyncio.TimeoutError:
            self._fail(FailureKind.TIMEOUT, "deepgram_connect_timeout")
            return False
        except Exception as e:  # pylint: disable=broad-exception-caught
            self._fail(FailureKind.UNAVAILABLE, f"deepgram_connect_failed: {e!r}")
            return False

        log_event({
            "event_type": "deepgram_connected",
            "session_id": self._session_id,
        })
        self._recv_task = asyncio.create_task(self._recv_loop(self._ws))
        return True

    # -------------------------------------------------------------------------
    # Background loop
    # -------------------------------------------------------------------------

    async def _recv_loop(self, ws: Any) -> None:
        try:
            async for raw in ws:
                if isinstance(raw, bytes):
                    continue
                try:
                    data = json.loads(raw)
                except ValueError:
                    log_event({
                        "event_type": "deepgram_undecodable_message",
                        "session_id": self._session_id,
                        "preview": raw[:LOG_PREVIEW_CHARS],
                    })
                    continue

                if isinstance(data, dict):
                    self.handle_message(data)
        except asyncio.CancelledError:
            raise
        except ConnectionClosed as e:
            if not self._stopping:
                self._fail(FailureKind.UNAVAILABLE, f"deepgram_connection_closed: {e!r}")
        except Exception as e:  # pylint: disable=broad-exception-caught
            self._fail(FailureKind.BAD_RESPONSE, f"deepgram_recv_failed: {e!r}")

        self._flush_segments()
        self._emit_closed()

    def handle_message(self, data: dict[str, Any]) -> None:
        """Translate one Deepgram JSON message into recognizer events."""
        msg_type = data.get("type")

        if msg_type == "Results":
            transcript = self._extract_transcript(data)

            if data.get("is_final"):
                if transcript:
                    self._final_segments.append(transcript)
                if data.get("speech_final"):
                    self._flush_segments()
                elif transcript:
                    self._emit(Recognizing(text=" ".join(self._final_segments)))
                return

            if transcript:
                self._emit(Recognizing(text=" ".join([*self._final_segments, transcript])))
            return

        if msg_type == "UtteranceEnd":
            self._flush_segments()
            return

        if msg_type == "Error":
            self._fail(
                FailureKind.BAD_RESPONSE,
                f"deepgram_error: {data.get('err_code') or data.get('code')} "
                f"{data.get('err_msg') or data.get('description')}",
            )
            return

        # Metadata, SpeechStarted: nothing to surface

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    @staticmethod
    def _extract_transcript(data: dict[str, Any]) -> str:
        try:
            transcript = data["channel"]["alternatives"][0]["transcript"]
        except (KeyError, IndexError, TypeError):
            return ""
        return transcript.strip() if isinstance(transcript, str) else ""

    def _flush_segments(self) -> None:
        if not self._final_segments:
            return
        text = " ".join(self._final_segments)
        self._final_segments = []
        self._emit(Recognized(text=text))

    def _fail(self, kind: FailureKind, detail: str) -> None:
        if self._failed:
            return
        self._failed = True
        log_event({
            "event_type": "deepgram_failure",
            "session_id": self._session_id,
            "kind": kind.value,
            "detail": detail,
        })
        self._emit(RecognizerError(kind=kind, detail=detail))

    def _emit_closed(self) -> None:
        if self._closed_emitted:
            return
        self._closed_emitted = True
        self._emit(RecognizerClosed())

    def _emit(self, event: RecognizerEvent) -> None:
        if self._released:
            return
        self._sink(event)


class DeepgramRecognizerFactory(RecognizerFactory):
    """Holds deployment settings; builds one DeepgramRecognizer per stream."""

    def __init__(
        self,
        *,
        api_key: str,
        model: str = "nova-2",
        language: str | None = None,
        connect: Callable[..., Any] = ws_connect,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._language = language
        self._connect = connect

    def create(
        self,
        *,
        sink: EventSink,
        mime_hint: str | None,
        session_id: str | None,
    ) -> SpeechRecognizer:
        return DeepgramRecognizer(
            sink=sink,
            api_key=self._api_key,
            model=self._model,
            language=self._language,
            mime_hint=mime_hint,
            session_id=session_id,
            connect=self._connect,
        )
