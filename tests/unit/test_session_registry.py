# pylint: disable=missing-module-docstring,missing-function-docstring

import asyncio

import pytest

from fakes import FakeRecognizerFactory, FakeWebSocket, collect, make_session
from protocol.messages import AudioChunk
from session.registry import SessionRegistry
from session.session_state import SessionState
from session.voice_session import VoiceSession


@pytest.mark.asyncio
async def test_register_assigns_unique_prefixed_ids() -> None:
    registry = SessionRegistry()
    a = make_session()
    b = make_session()

    id_a = registry.register(a)
    id_b = registry.register(b)

    assert id_a.startswith("sess_") and len(id_a) == len("sess_") + 12
    assert id_a != id_b
    assert a.session_id == id_a
    assert registry.get(id_b) is b
    assert registry.size() == 2

    await a.close()
    await b.close()


@pytest.mark.asyncio
async def test_unregister_is_idempotent() -> None:
    registry = SessionRegistry()
    session = make_session()
    session_id = registry.register(session)

    registry.unregister(session_id)
    registry.unregister(session_id)
    registry.unregister("sess_unknown")
    registry.unregister(None)

    assert registry.size() == 0
    assert registry.get(session_id) is None
    await session.close()


@pytest.mark.asyncio
async def test_for_each_runs_over_snapshot_and_isolates_failures() -> None:
    registry = SessionRegistry()
    sessions = [make_session() for _ in range(3)]
    for s in sessions:
        registry.register(s)

    seen: list[str | None] = []

    async def visit(session: VoiceSession) -> None:
        seen.append(session.session_id)
        registry.unregister(session.session_id)
        if session is sessions[1]:
            raise RuntimeError("boom")

    await registry.for_each(visit)

    assert sorted(seen) == sorted(s.session_id for s in sessions)
    assert registry.size() == 0

    for s in sessions:
        await s.close()


@pytest.mark.asyncio
async def test_shutdown_closes_sessions_and_releases_recognizers() -> None:
    registry = SessionRegistry()
    factory = FakeRecognizerFactory()
    ws = FakeWebSocket()

    session = make_session(recognizer_factory=factory)
    session.transport = ws
    registry.register(session)

    session.dispatch(AudioChunk(data=b"x"))
    await collect(session, 1)
    assert session.state is SessionState.STREAMING

    await registry.shutdown(timeout_s=1.0)

    assert session.state is SessionState.CLOSED
    assert factory.created[0].close_calls == 1
    assert ws.closed_with == (1001, "Server shutting down")
    await asyncio.wait_for(session.wait_released(), timeout=0.1)


@pytest.mark.asyncio
async def test_shutdown_with_no_sessions_returns() -> None:
    await SessionRegistry().shutdown(timeout_s=0.1)
