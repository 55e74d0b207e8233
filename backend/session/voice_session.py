"""
Voice session.

One VoiceSession per client connection. It owns:
- the audio-pipeline state machine (IDLE / STREAMING / STOPPING / CLOSED)
- at most one SpeechRecognizer, created lazily and released exactly once
- the pending partial transcript
- an in-memory ConversationContext
- the outbox of results awaiting delivery

Concurrency model (three activities, one writer each):
- dispatch loop: consumes a single inbox fed by the gateway (client
  messages), the recognizer (events) and the stop timer. Audio ingest lives
  here and never waits on text generation or synthesis.
- turn worker: runs chat turns FIFO, one at a time, so replies come out in
  the order their inputs became final.
- outbox: drained by the gateway's result pump, in enqueue order.

All three channels are bounded. A full inbox or turn queue refuses the
client's work with an error result; a full outbox means the client stopped
reading, and the session closes.

Non-responsibilities:
- No transport IO (gateway)
- No wire encoding (protocol/codec.py)
- No vendor logic (adapters/)
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Union

from adapters.asr.base import (
    RecognizerClosed,
    RecognizerError,
    RecognizerEvent,
    RecognizerFactory,
    Recognized,
    Recognizing,
    SpeechRecognizer,
)
from adapters.llm.base import TextGenAdapter
from adapters.tts.base import TTSAdapter
from constants import OVERLOAD_CLOSE_CODE, OVERLOAD_CLOSE_REASON, TOO_MANY_PENDING
from context.conversation import ConversationContext
from observability.logger import log_event
from protocol.messages import (
    AudioAck,
    AudioAckKind,
    AudioChunk,
    ChatReply,
    ChatText,
    EchoAck,
    EchoKind,
    ErrorNotice,
    Message,
    Ping,
    Pong,
    ReplyType,
    Result,
    StopAudio,
    TestEcho,
    TranscriptFinal,
    TranscriptPartial,
    UnknownMessage,
)
from session.chat_turn import echo_reply, run_chat_turn
from session.session_state import SessionState
from session.settings import SessionSettings


# ---------------------------------------------------------------------
# Internal inbox / turn-queue items
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class _RecognizerSignal:
    generation: int
    event: RecognizerEvent


@dataclass(frozen=True)
class _StopTimeout:
    generation: int


@dataclass(frozen=True)
class _Notice:
    """A result produced outside the session (e.g. a rejected frame)."""
    result: Result


_InboxItem = Union[Ping, TestEcho, ChatText, AudioChunk, StopAudio, UnknownMessage,
                   _RecognizerSignal, _StopTimeout, _Notice]


@dataclass(frozen=True)
class _ChatTurn:
    text: str
    history: tuple[dict[str, str], ...] | None
    reply_type: ReplyType
    source: str  # "text" | "speech"


@dataclass(frozen=True)
class _AfterTurns:
    """Emit a result only once every turn queued before it has replied."""
    result: Result


_TurnJob = Union[_ChatTurn, _AfterTurns]


# ---------------------------------------------------------------------
# VoiceSession
# ---------------------------------------------------------------------

class VoiceSession:
    """Server-side state for one client connection across its lifetime."""

    def __init__(
        self,
        *,
        text_gen: TextGenAdapter,
        tts: TTSAdapter,
        recognizer_factory: RecognizerFactory | None,
        settings: SessionSettings | None = None,
        transport: Any = None,
    ) -> None:
        # ------------------------------------------------------------------
        # Identity / lifecycle
        # ------------------------------------------------------------------

        self.session_id: str | None = None  # assigned by SessionRegistry
        self.created_at: float = time.time()
        self.transport = transport
        self.state: SessionState = SessionState.IDLE

        # ------------------------------------------------------------------
        # Conversation state
        # ------------------------------------------------------------------

        self.pending_transcript: str = ""
        self.context = ConversationContext()

        # ------------------------------------------------------------------
        # Collaborators
        # ------------------------------------------------------------------

        self._text_gen = text_gen
        self._tts = tts
        self._recognizer_factory = recognizer_factory
        self._settings = settings or SessionSettings()

        # ------------------------------------------------------------------
        # Recognizer ownership
        # ------------------------------------------------------------------

        self._recognizer: SpeechRecognizer | None = None
        self._generation = 0
        self._stop_timer: asyncio.Task[None] | None = None
        self._released = asyncio.Event()
        self._released.set()
        self.recognizers_created = 0

        # ------------------------------------------------------------------
        # Channels
        # ------------------------------------------------------------------

        self._inbox: asyncio.Queue[_InboxItem | None] = asyncio.Queue(
            maxsize=self._settings.inbox_max
        )
        self._turns: asyncio.Queue[_TurnJob | None] = asyncio.Queue(
            maxsize=self._settings.turn_queue_max
        )
        self._outbox: asyncio.Queue[Result | None] = asyncio.Queue(
            maxsize=self._settings.outbox_max
        )

        self._dispatch_task: asyncio.Task[None] | None = None
        self._turn_task: asyncio.Task[None] | None = None
        self._overload_task: asyncio.Task[None] | None = None
        self._deferred_signals: set[asyncio.Task[None]] = set()

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def recognizer(self) -> SpeechRecognizer | None:
        return self._recognizer

    @property
    def ai_configured(self) -> bool:
        return self._text_gen.configured

    @property
    def speech_configured(self) -> bool:
        return self._recognizer_factory is not None

    def log_context(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "state": self.state.value,
        }

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Spawn the dispatch loop and the turn worker. Idempotent."""
        if self._dispatch_task is not None or self.state is SessionState.CLOSED:
            return
        self._dispatch_task = asyncio.create_task(
            self._dispatch_loop(), name=f"dispatch:{self.session_id}"
        )
        self._turn_task = asyncio.create_task(
            self._turn_loop(), name=f"turns:{self.session_id}"
        )

    async def close(self, reason: str = "transport_closed") -> None:
        """
        Tear the session down. Idempotent.

        - state becomes CLOSED and never changes again
        - undelivered results are discarded
        - the dispatch loop finishes its current item (bounded), then exits
        - the recognizer, if any, is released
        - an in-flight chat turn may finish; its reply is dropped
        """
        if self.state is SessionState.CLOSED:
            return

        previous = self.state
        self.state = SessionState.CLOSED

        # A full queue needs no sentinel: its consumer sees CLOSED on the next get
        for queue in (self._inbox, self._turns):
            try:
                queue.put_nowait(None)
            except asyncio.QueueFull:
                pass

        for task in list(self._deferred_signals):
            task.cancel()

        discarded = self._discard_pending_results()
        self._outbox.put_nowait(None)

        dispatch = self._dispatch_task
        if dispatch is not None and not dispatch.done() and dispatch is not asyncio.current_task():
            try:
                await asyncio.wait_for(dispatch, timeout=self._settings.close_timeout_s)
            except asyncio.TimeoutError:
                log_event({
                    "event_type": "session_dispatch_close_timeout",
                    "session_id": self.session_id,
                })

        await self._release_recognizer(reason="session_closed")
        self.pending_transcript = ""

        log_event({
            "event_type": "session_closed",
            "session_id": self.session_id,
            "reason": reason,
            "previous_state": previous.value,
            "results_discarded": discarded,
            "recognizers_created": self.recognizers_created,
        })

    async def shutdown(
        self,
        *,
        code: int = 1001,
        reason: str = "Server shutting down",
        close_reason: str = "server_shutdown",
    ) -> None:
        """Server-initiated close: stop the session, then close the transport."""
        transport = self.transport
        await self.close(reason=close_reason)
        if transport is None:
            return
        try:
            await transport.close(code=code, reason=reason)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            log_event({
                "event_type": "transport_close_failed",
                "session_id": self.session_id,
                "exception": type(exc).__name__,
                "message": str(exc),
            })

    async def wait_released(self) -> None:
        """Resolve once no recognizer is held."""
        await self._released.wait()

    # ------------------------------------------------------------------
    # Gateway-facing API
    # ------------------------------------------------------------------

    def dispatch(self, message: Message) -> None:
        """Queue one decoded client message. Never blocks; refuses when the inbox is full."""
        if self.state is SessionState.CLOSED:
            log_event({
                "event_type": "message_after_close_dropped",
                "session_id": self.session_id,
                "message": type(message).__name__,
            })
            return
        try:
            self._inbox.put_nowait(message)
        except asyncio.QueueFull:
            self._refuse(type(message).__name__, queue="inbox")

    def report(self, result: Result) -> None:
        """Queue a result produced outside the session, in arrival order."""
        if self.state is SessionState.CLOSED:
            return
        try:
            self._inbox.put_nowait(_Notice(result=result))
        except asyncio.QueueFull:
            self._emit(result)

    async def next_result(self) -> Result | None:
        """Next result to deliver, or None once the session is closed."""
        if self.state is SessionState.CLOSED and self._outbox.empty():
            return None
        return await self._outbox.get()

    # ------------------------------------------------------------------
    # Dispatch loop
    # ------------------------------------------------------------------

    async def _dispatch_loop(self) -> None:
        while True:
            item = await self._inbox.get()
            if item is None or self.state is SessionState.CLOSED:
                return

            try:
                await self._handle(item)
            except asyncio.CancelledError:
                raise
            except Exception as exc:  # pylint: disable=broad-exception-caught
                log_event({
                    "event_type": "session_handler_error",
                    **self.log_context(),
                    "item": type(item).__name__,
                    "exception": type(exc).__name__,
                    "message": str(exc),
                })
                self._emit(ErrorNotice(
                    message="Failed to process message",
                    detail=f"{type(exc).__name__}: {exc}",
                ))

    async def _handle(self, item: _InboxItem) -> None:
        if isinstance(item, Ping):
            self._emit(Pong())

        elif isinstance(item, TestEcho):
            self._emit(EchoAck(kind=EchoKind.TEST, original_message=item.message))

        elif isinstance(item, UnknownMessage):
            log_event({
                "event_type": "unknown_message_type",
                "session_id": self.session_id,
                "msg_type": item.original_type,
            })
            self._emit(EchoAck(kind=EchoKind.UNKNOWN, original_type=item.original_type))

        elif isinstance(item, ChatText):
            self._queue_turn(_ChatTurn(
                text=item.text,
                history=item.history,
                reply_type=item.reply_type,
                source="text",
            ))

        elif isinstance(item, AudioChunk):
            await self._on_audio(item)

        elif isinstance(item, StopAudio):
            await self._on_stop_audio()

        elif isinstance(item, _RecognizerSignal):
            await self._on_recognizer_event(item)

        elif isinstance(item, _StopTimeout):
            await self._on_stop_timeout(item)

        elif isinstance(item, _Notice):
            self._emit(item.result)

    # ------------------------------------------------------------------
    # Audio pipeline
    # ------------------------------------------------------------------

    async def _on_audio(self, chunk: AudioChunk) -> None:
        if self._recognizer_factory is None:
            self._emit(AudioAck(kind=AudioAckKind.RECEIVED, byte_count=len(chunk.data)))
            return

        if self.state is SessionState.STOPPING:
            self._emit(ErrorNotice(
                message="Audio stream is stopping",
                detail="wait for audio_stopped before streaming again",
            ))
            return

        if self.state is SessionState.IDLE:
            self._open_recognizer(chunk.mime_hint)
            self._emit(AudioAck(kind=AudioAckKind.PROCESSING, byte_count=len(chunk.data)))

        recognizer = self._recognizer
        assert recognizer is not None, "STREAMING without a recognizer"
        await recognizer.write(chunk.data)

        if chunk.is_final and self.state is SessionState.STREAMING:
            await self._begin_stop(reason="final_chunk")

    async def _on_stop_audio(self) -> None:
        if self.state is SessionState.IDLE:
            self._emit(AudioAck(kind=AudioAckKind.STOPPED))
            return

        if self.state is SessionState.STOPPING:
            log_event({
                "event_type": "stop_audio_ignored",
                **self.log_context(),
            })
            return

        await self._begin_stop(reason="stop_audio")

    def _open_recognizer(self, mime_hint: str | None) -> None:
        assert self._recognizer_factory is not None
        assert self._recognizer is None, "recognizer already active"

        generation = self._generation + 1
        recognizer = self._recognizer_factory.create(
            sink=self._sink_for(generation),
            mime_hint=mime_hint,
            session_id=self.session_id,
        )

        self._generation = generation
        self._recognizer = recognizer
        self.recognizers_created += 1
        self._released.clear()
        self._set_state(SessionState.STREAMING)

        log_event({
            "event_type": "recognizer_created",
            **self.log_context(),
            "generation": generation,
            "mime_hint": mime_hint,
        })

    async def _begin_stop(self, *, reason: str) -> None:
        recognizer = self._recognizer
        assert recognizer is not None, "STREAMING without a recognizer"

        self._set_state(SessionState.STOPPING)
        self._stop_timer = asyncio.create_task(self._stop_timeout_after(self._generation))

        log_event({
            "event_type": "recognizer_stop_requested",
            **self.log_context(),
            "generation": self._generation,
            "reason": reason,
        })
        await recognizer.stop()

    async def _stop_timeout_after(self, generation: int) -> None:
        await asyncio.sleep(self._settings.recognizer_stop_timeout_s)
        if self.state is not SessionState.CLOSED:
            await self._inbox.put(_StopTimeout(generation=generation))

    async def _on_stop_timeout(self, item: _StopTimeout) -> None:
        if (
            item.generation != self._generation
            or self._recognizer is None
            or self.state is not SessionState.STOPPING
        ):
            return

        log_event({
            "event_type": "recognizer_stop_timeout",
            **self.log_context(),
            "generation": item.generation,
        })
        await self._release_recognizer(reason="stop_timeout")
        self._set_state(SessionState.IDLE)
        self._emit_after_turns(AudioAck(kind=AudioAckKind.STOPPED))

    # ------------------------------------------------------------------
    # Recognition events
    # ------------------------------------------------------------------

    def _sink_for(self, generation: int):
        def sink(event: RecognizerEvent) -> None:
            if self.state is SessionState.CLOSED:
                return
            signal = _RecognizerSignal(generation=generation, event=event)
            try:
                self._inbox.put_nowait(signal)
            except asyncio.QueueFull:
                self._defer_signal(signal)
        return sink

    def _defer_signal(self, signal: _RecognizerSignal) -> None:
        """
        Inbox is full. Partials are superseded by later events and can be
        dropped; finals, errors and closes wait for room, in order.
        """
        if isinstance(signal.event, Recognizing):
            log_event({
                "event_type": "partial_transcript_dropped",
                **self.log_context(),
                "generation": signal.generation,
            })
            return

        task = asyncio.create_task(self._inbox.put(signal))
        self._deferred_signals.add(task)
        task.add_done_callback(self._deferred_signals.discard)

    async def _on_recognizer_event(self, signal: _RecognizerSignal) -> None:
        if signal.generation != self._generation or self._recognizer is None:
            log_event({
                "event_type": "stale_recognizer_event_dropped",
                **self.log_context(),
                "generation": signal.generation,
                "event": type(signal.event).__name__,
            })
            return

        event = signal.event

        if isinstance(event, Recognizing):
            self.pending_transcript = event.text
            self._emit(TranscriptPartial(text=event.text))

        elif isinstance(event, Recognized):
            self.pending_transcript = ""
            self._emit(TranscriptFinal(text=event.text))

            # STOPPING still drains in-flight finals into turns
            if event.text.strip():
                self._queue_turn(_ChatTurn(
                    text=event.text,
                    history=None,
                    reply_type=ReplyType.CHAT,
                    source="speech",
                ))
            else:
                log_event({
                    "event_type": "empty_transcript_skipped",
                    **self.log_context(),
                })

        elif isinstance(event, RecognizerError):
            was_stopping = self.state is SessionState.STOPPING
            self._emit(ErrorNotice(
                message="Speech recognition failed",
                detail=f"{event.kind.value}: {event.detail}",
            ))
            await self._release_recognizer(reason="recognizer_error")
            self._set_state(SessionState.IDLE)
            if was_stopping:
                self._emit_after_turns(AudioAck(kind=AudioAckKind.STOPPED))

        elif isinstance(event, RecognizerClosed):
            if self.state is SessionState.STOPPING:
                await self._release_recognizer(reason="stopped")
                self._set_state(SessionState.IDLE)
                self._emit_after_turns(AudioAck(kind=AudioAckKind.STOPPED))
            else:
                self._emit(ErrorNotice(message="Speech recognition stream closed unexpectedly"))
                await self._release_recognizer(reason="vendor_closed")
                self._set_state(SessionState.IDLE)

    async def _release_recognizer(self, *, reason: str) -> None:
        """The single place a recognizer is released."""
        recognizer = self._recognizer
        if recognizer is None:
            return

        self._recognizer = None
        self.pending_transcript = ""

        timer = self._stop_timer
        self._stop_timer = None
        if timer is not None and not timer.done():
            timer.cancel()

        try:
            await asyncio.shield(recognizer.close())
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # pylint: disable=broad-exception-caught
            log_event({
                "event_type": "recognizer_close_failed",
                "session_id": self.session_id,
                "exception": type(exc).__name__,
                "message": str(exc),
            })
        finally:
            self._released.set()

        log_event({
            "event_type": "recognizer_released",
            **self.log_context(),
            "generation": self._generation,
            "reason": reason,
        })

    # ------------------------------------------------------------------
    # Chat turns
    # ------------------------------------------------------------------

    async def _turn_loop(self) -> None:
        while True:
            job = await self._turns.get()
            if job is None or self.state is SessionState.CLOSED:
                return

            if isinstance(job, _AfterTurns):
                self._emit(job.result)
                continue

            try:
                reply = await self._run_chat_turn(job)
            except asyncio.CancelledError:
                raise
            except Exception as exc:  # pylint: disable=broad-exception-caught
                reply = echo_reply(
                    job.text,
                    reply_type=job.reply_type,
                    error=f"{type(exc).__name__}: {exc}",
                )

            self._emit(reply)

    async def _run_chat_turn(self, job: _ChatTurn) -> ChatReply:
        history = list(job.history) if job.history is not None else self.context.serialize()

        reply = await run_chat_turn(
            text_gen=self._text_gen,
            settings=self._settings,
            text=job.text,
            history=history,
            reply_type=job.reply_type,
            tts=self._tts,
            log_context={"session_id": self.session_id, "source": job.source},
        )

        if reply.ai_used:
            self.context.session_id = self.session_id
            self.context.record_exchange(job.text, reply.text)
        return reply

    # ------------------------------------------------------------------
    # Backpressure
    # ------------------------------------------------------------------

    def _queue_turn(self, turn: _ChatTurn) -> None:
        try:
            self._turns.put_nowait(turn)
        except asyncio.QueueFull:
            self._refuse(f"{turn.source}_turn", queue="turns")

    def _refuse(self, what: str, *, queue: str) -> None:
        log_event({
            "event_type": "session_overloaded",
            **self.log_context(),
            "queue": queue,
            "refused": what,
        })
        self._emit(ErrorNotice(message=TOO_MANY_PENDING, detail=f"{what} refused"))

    def _on_outbox_overflow(self) -> None:
        if self._overload_task is not None:
            return
        log_event({
            "event_type": "outbox_overflow",
            **self.log_context(),
            "pending": self._outbox.qsize(),
        })
        self._overload_task = asyncio.create_task(self.shutdown(
            code=OVERLOAD_CLOSE_CODE,
            reason=OVERLOAD_CLOSE_REASON,
            close_reason="outbox_overflow",
        ))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _set_state(self, state: SessionState) -> None:
        if self.state is SessionState.CLOSED:
            return
        if self.state is not state:
            log_event({
                "event_type": "session_state_changed",
                "session_id": self.session_id,
                "from": self.state.value,
                "to": state.value,
            })
        self.state = state

    def _emit(self, result: Result) -> None:
        if self.state is SessionState.CLOSED:
            return
        if self._outbox.full():
            self._on_outbox_overflow()
            return
        self._outbox.put_nowait(result)

    def _emit_after_turns(self, result: Result) -> None:
        try:
            self._turns.put_nowait(_AfterTurns(result=result))
        except asyncio.QueueFull:
            # Overtakes queued replies rather than losing the ack
            self._emit(result)

    def _discard_pending_results(self) -> int:
        discarded = 0
        while not self._outbox.empty():
            self._outbox.get_nowait()
            discarded += 1
        return discarded
