"""
Session gateway.

Binds one client connection to one VoiceSession.

Responsibilities:
- Create, register and start a session per connection
- Send the connection greeting before anything else
- Read loop: decode frames, hand messages to the session in arrival order
- Result pump: drain the session's outbox onto the wire in order
- Teardown exactly once on disconnect or fatal error: unregister, close
  the session, stop the pump

Non-responsibilities:
- No state machine logic (VoiceSession)
- No vendor adapters (injected, shared across sessions)
- No HTTP routing (server/routes.py)
"""

from __future__ import annotations

import asyncio
import json
from typing import Any

from fastapi import WebSocketDisconnect

from adapters.asr.base import RecognizerFactory
from adapters.llm.base import TextGenAdapter
from adapters.tts.base import TTSAdapter
from observability.logger import log_event
from protocol.codec import DecodeError, connection_established, decode, encode
from protocol.messages import ErrorNotice
from session.registry import SessionRegistry
from session.session_state import SessionState
from session.settings import SessionSettings
from session.voice_session import VoiceSession


class SessionGateway:
    """
    Shared, stateless connection handler.

    One instance per process; serve() runs once per connection. All
    per-connection state lives on the VoiceSession it creates.
    """

    def __init__(
        self,
        *,
        registry: SessionRegistry,
        text_gen: TextGenAdapter,
        tts: TTSAdapter,
        recognizer_factory: RecognizerFactory | None,
        settings: SessionSettings | None = None,
    ) -> None:
        self._registry = registry
        self._text_gen = text_gen
        self._tts = tts
        self._recognizer_factory = recognizer_factory
        self._settings = settings or SessionSettings()

    @property
    def ai_configured(self) -> bool:
        return self._text_gen.configured

    @property
    def speech_configured(self) -> bool:
        return self._recognizer_factory is not None

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    async def serve(self, ws: Any) -> None:
        """
        Run one accepted connection until it ends.

        ws follows the Starlette WebSocket surface: receive(), send_text(),
        close(code=, reason=).
        """
        session = VoiceSession(
            text_gen=self._text_gen,
            tts=self._tts,
            recognizer_factory=self._recognizer_factory,
            settings=self._settings,
            transport=ws,
        )
        session_id = self._registry.register(session)
        session.start()

        log_event({
            "event_type": "ws_connected",
            "session_id": session_id,
            "ai_configured": self.ai_configured,
            "speech_configured": self.speech_configured,
        })

        pump: asyncio.Task[None] | None = None
        reason = "client_disconnect"

        try:
            await ws.send_text(json.dumps(connection_established(
                connection_id=session_id,
                ai_configured=self.ai_configured,
                speech_configured=self.speech_configured,
            )))
            pump = asyncio.create_task(self._pump(session, ws), name=f"pump:{session_id}")

            while session.state is not SessionState.CLOSED:
                msg = await ws.receive()

                if msg["type"] == "websocket.disconnect":
                    break
                if msg["type"] != "websocket.receive":
                    continue

                if msg.get("text") is not None:
                    self._route(session, msg["text"])
                elif msg.get("bytes") is not None:
                    self._route(session, msg["bytes"])

        except WebSocketDisconnect:
            pass

        except Exception as exc:  # pylint: disable=broad-exception-caught
            reason = "server_error"
            log_event({
                "event_type": "WS_FATAL_ERROR",
                "session_id": session_id,
                "exception": type(exc).__name__,
                "message": str(exc),
            })

        finally:
            await self._teardown(session, pump, reason=reason)

    def _route(self, session: VoiceSession, raw: str | bytes) -> None:
        try:
            message = decode(raw)
        except DecodeError as e:
            log_event({
                "event_type": "frame_rejected",
                "session_id": session.session_id,
                "error": str(e),
            })
            session.report(ErrorNotice(message="Failed to process message", detail=str(e)))
        else:
            session.dispatch(message)

    async def _pump(self, session: VoiceSession, ws: Any) -> None:
        """Deliver results in outbox order until the session closes."""
        sent = 0
        while True:
            result = await session.next_result()
            if result is None:
                break

            try:
                await ws.send_text(json.dumps(encode(result)))
                sent += 1
            except Exception as exc:  # pylint: disable=broad-exception-caught
                log_event({
                    "event_type": "ws_send_failed",
                    "session_id": session.session_id,
                    "exception": type(exc).__name__,
                    "message": str(exc),
                })
                self._registry.unregister(session.session_id)
                await session.close(reason="send_failed")
                break

        log_event({
            "event_type": "result_pump_stopped",
            "session_id": session.session_id,
            "results_sent": sent,
        })

    async def _teardown(
        self,
        session: VoiceSession,
        pump: asyncio.Task[None] | None,
        *,
        reason: str,
    ) -> None:
        self._registry.unregister(session.session_id)
        await session.close(reason=reason)

        if pump is not None and not pump.done():
            try:
                await asyncio.wait_for(pump, timeout=self._settings.close_timeout_s)
            except asyncio.TimeoutError:
                log_event({
                    "event_type": "result_pump_cancelled",
                    "session_id": session.session_id,
                })

        log_event({
            "event_type": "ws_disconnected",
            "session_id": session.session_id,
            "reason": reason,
        })
