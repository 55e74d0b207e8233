"""
Session registry.

Process-wide set of live sessions.

Responsibilities:
- Assign session ids at registration
- Lookup / count for the status endpoints
- Broadcast a stop to every session at shutdown and wait (bounded) for
  their recognizers to be released

Non-responsibilities:
- No per-session state (lives on VoiceSession)
- No transport IO
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, TYPE_CHECKING

from uuid import uuid4

from constants import SESSION_ID_PREFIX, SHUTDOWN_TIMEOUT_S
from observability.logger import log_event

if TYPE_CHECKING:
    from session.voice_session import VoiceSession


def new_session_id() -> str:
    return f"{SESSION_ID_PREFIX}{uuid4().hex[:12]}"


class SessionRegistry:
    """
    Map of session id -> VoiceSession.

    All mutation happens on the event loop thread; each call completes
    without awaiting, so no lock is needed.
    """

    def __init__(self) -> None:
        self._sessions: dict[str, VoiceSession] = {}

    def register(self, session: VoiceSession) -> str:
        session_id = new_session_id()
        while session_id in self._sessions:
            session_id = new_session_id()

        session.session_id = session_id
        self._sessions[session_id] = session

        log_event({
            "event_type": "session_registered",
            "session_id": session_id,
            "active_sessions": len(self._sessions),
        })
        return session_id

    def unregister(self, session_id: str | None) -> None:
        """Remove a session. Unknown ids are ignored."""
        if session_id is None or self._sessions.pop(session_id, None) is None:
            return

        log_event({
            "event_type": "session_unregistered",
            "session_id": session_id,
            "active_sessions": len(self._sessions),
        })

    def get(self, session_id: str) -> VoiceSession | None:
        return self._sessions.get(session_id)

    def size(self) -> int:
        return len(self._sessions)

    def __len__(self) -> int:
        return len(self._sessions)

    async def for_each(self, fn: Callable[[VoiceSession], Awaitable[None]]) -> None:
        """
        Run fn over a snapshot of the registered sessions, concurrently.

        Sessions registered or removed meanwhile do not affect the
        iteration. Failures are logged per session and never propagate.
        """
        snapshot = list(self._sessions.values())
        if not snapshot:
            return

        results = await asyncio.gather(
            *(fn(session) for session in snapshot),
            return_exceptions=True,
        )
        for session, outcome in zip(snapshot, results):
            if isinstance(outcome, BaseException):
                log_event({
                    "event_type": "registry_for_each_failed",
                    "session_id": session.session_id,
                    "exception": type(outcome).__name__,
                    "message": str(outcome),
                })

    async def shutdown(self, timeout_s: float = SHUTDOWN_TIMEOUT_S) -> None:
        """Stop every session, then wait up to timeout_s for recognizer release."""
        snapshot = list(self._sessions.values())
        log_event({
            "event_type": "registry_shutdown_started",
            "active_sessions": len(snapshot),
        })

        async def _stop_all() -> None:
            await self.for_each(lambda session: session.shutdown())
            await asyncio.gather(*(session.wait_released() for session in snapshot))

        timed_out = False
        try:
            await asyncio.wait_for(_stop_all(), timeout=timeout_s)
        except asyncio.TimeoutError:
            timed_out = True

        log_event({
            "event_type": "registry_shutdown_completed",
            "sessions": len(snapshot),
            "timed_out": timed_out,
        })
