"""
Route registration for the voice gateway API.

Responsibilities:
- Define HTTP and WebSocket endpoints
- Wire the gateway to the WebSocket lifecycle
- Answer one-shot REST chat requests with the same turn logic sessions use
- Pull dependencies from app.state
"""

from __future__ import annotations

import time
from typing import Any

from fastapi import FastAPI, Request, WebSocket
from fastapi.responses import JSONResponse

from constants import SERVICE_NAME, SERVICE_VERSION
from protocol.codec import DecodeError, decode_history
from protocol.messages import iso_now
from session.chat_turn import run_chat_turn
from session.gateway import SessionGateway
from session.registry import SessionRegistry


def register_routes(app: FastAPI) -> None:
    """Register all routes on the FastAPI app."""

    @app.get("/health")
    async def health() -> dict[str, Any]: # pyright: ignore[reportUnusedFunction]
        registry: SessionRegistry = app.state.registry
        return {
            "status": "healthy",
            "timestamp": iso_now(),
            "uptime": round(time.time() - app.state.started_at, 3),
            "connections": registry.size(),
            "version": SERVICE_VERSION,
            "aiConfigured": app.state.config.ai_configured,
            "speechConfigured": app.state.config.speech_configured,
        }

    @app.get("/api/status")
    async def status() -> dict[str, Any]: # pyright: ignore[reportUnusedFunction]
        registry: SessionRegistry = app.state.registry
        return {
            "message": f"{SERVICE_NAME} is running",
            "timestamp": iso_now(),
            "activeConnections": registry.size(),
            "aiConfigured": app.state.config.ai_configured,
            "speechConfigured": app.state.config.speech_configured,
            "endpoints": {
                "health": "/health",
                "status": "/api/status",
                "chat": "POST /api/chat",
                "websocket": "/ws/audio",
            },
        }

    @app.post("/api/chat")
    async def chat(request: Request) -> JSONResponse: # pyright: ignore[reportUnusedFunction]
        try:
            body = await request.json()
        except ValueError:
            body = None
        if not isinstance(body, dict):
            body = {}

        message = body.get("message")
        if not isinstance(message, str) or not message.strip():
            return JSONResponse(status_code=400, content={"error": "Message is required"})

        history = body.get("conversationHistory")
        try:
            turns = decode_history(history) if history is not None else ()
        except DecodeError as e:
            return JSONResponse(status_code=400, content={"error": str(e)})

        reply = await run_chat_turn(
            text_gen=app.state.text_gen,
            settings=app.state.session_settings,
            text=message,
            history=turns,
            log_context={"source": "rest"},
        )

        payload: dict[str, Any] = {
            "id": str(int(time.time() * 1000)),
            "message": reply.text,
            "timestamp": reply.timestamp,
            "context": body.get("context") or {},
            "aiUsed": reply.ai_used,
            "originalMessage": message,
        }
        if reply.error is not None:
            payload["error"] = reply.error
        return JSONResponse(payload)

    @app.websocket("/ws/audio")
    async def websocket_audio(ws: WebSocket) -> None: # pyright: ignore[reportUnusedFunction]
        await _serve(app, ws)

    @app.websocket("/ws")
    async def websocket_endpoint(ws: WebSocket) -> None: # pyright: ignore[reportUnusedFunction]
        await _serve(app, ws)


async def _serve(app: FastAPI, ws: WebSocket) -> None:
    """One connection = one session; the gateway owns the rest."""
    await ws.accept()
    gateway: SessionGateway = app.state.gateway
    await gateway.serve(ws)
