# pylint: disable=missing-module-docstring,missing-function-docstring

import asyncio
from types import SimpleNamespace
from typing import Any

import httpx
import openai
import pytest

from adapters.llm.openai_chat import OpenAITextGenAdapter
from adapters.result import AdapterResult, FailureKind, call_with_timeout
from adapters.tts.base import DisabledTTSAdapter
from adapters.tts.openai_speech import OpenAISpeechAdapter


REQUEST = httpx.Request("POST", "https://api.openai.test/v1/chat/completions")


class FakeCompletions:
    def __init__(self, *, content: str | None = "4", error: Exception | None = None) -> None:
        self.content = content
        self.error = error
        self.calls: list[dict[str, Any]] = []

    async def create(self, **kwargs: Any) -> Any:
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


class FakeSpeech:
    def __init__(self, *, audio: bytes = b"ID3", error: Exception | None = None) -> None:
        self.audio = audio
        self.error = error
        self.calls: list[dict[str, Any]] = []

    async def create(self, **kwargs: Any) -> Any:
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return SimpleNamespace(content=self.audio)


def chat_client(completions: FakeCompletions) -> Any:
    return SimpleNamespace(chat=SimpleNamespace(completions=completions))


def speech_client(speech: FakeSpeech) -> Any:
    return SimpleNamespace(audio=SimpleNamespace(speech=speech))


# -------------------------
# call_with_timeout
# -------------------------

@pytest.mark.asyncio
async def test_call_with_timeout_passes_result_through() -> None:
    async def call() -> AdapterResult[str]:
        return AdapterResult.success("ok")

    result = await call_with_timeout(call(), 1.0)
    assert result.ok and result.value == "ok"


@pytest.mark.asyncio
async def test_call_with_timeout_classifies_deadline() -> None:
    async def call() -> AdapterResult[str]:
        await asyncio.sleep(1.0)
        return AdapterResult.success("late")

    result = await call_with_timeout(call(), 0.01)

    assert not result.ok
    assert result.failure is not None
    assert result.failure.kind is FailureKind.TIMEOUT
    assert result.failure.describe() == "timeout: no response within 0.01s"


@pytest.mark.asyncio
async def test_call_with_timeout_contains_raising_adapter() -> None:
    async def call() -> AdapterResult[str]:
        raise RuntimeError("contract broken")

    result = await call_with_timeout(call(), 1.0)

    assert result.failure is not None
    assert result.failure.kind is FailureKind.UNAVAILABLE


# -------------------------
# Text generation
# -------------------------

@pytest.mark.asyncio
async def test_generate_builds_messages_and_returns_text() -> None:
    completions = FakeCompletions(content="  4  ")
    adapter = OpenAITextGenAdapter(client=chat_client(completions), model="gpt-4o-mini", provider="openai")

    result = await adapter.generate(
        system_prompt="be brief",
        history=[{"role": "user", "content": "hi"}, {"role": "assistant", "content": "hello"}],
        user_text="2+2",
    )

    assert result.ok and result.value == "4"
    call = completions.calls[0]
    assert call["model"] == "gpt-4o-mini"
    assert call["max_tokens"] == 500
    assert call["temperature"] == 0.7
    assert call["messages"] == [
        {"role": "system", "content": "be brief"},
        {"role": "user", "content": "hi"},
        {"role": "assistant", "content": "hello"},
        {"role": "user", "content": "2+2"},
    ]


@pytest.mark.asyncio
async def test_generate_without_client_is_unconfigured() -> None:
    adapter = OpenAITextGenAdapter(client=None, model="m", provider="azure")

    result = await adapter.generate(system_prompt="s", history=[], user_text="hi")

    assert adapter.configured is False
    assert result.failure is not None
    assert result.failure.kind is FailureKind.UNCONFIGURED


@pytest.mark.asyncio
@pytest.mark.parametrize(("error", "kind"), [
    (openai.APITimeoutError(request=REQUEST), FailureKind.TIMEOUT),
    (openai.APIConnectionError(request=REQUEST), FailureKind.UNAVAILABLE),
    (
        openai.APIStatusError("overloaded", response=httpx.Response(503, request=REQUEST), body=None),
        FailureKind.UNAVAILABLE,
    ),
    (
        openai.APIStatusError("bad key", response=httpx.Response(401, request=REQUEST), body=None),
        FailureKind.BAD_RESPONSE,
    ),
])
async def test_generate_classifies_vendor_errors(error: Exception, kind: FailureKind) -> None:
    adapter = OpenAITextGenAdapter(
        client=chat_client(FakeCompletions(error=error)),
        model="m",
        provider="openai",
    )

    result = await adapter.generate(system_prompt="s", history=[], user_text="hi")

    assert result.failure is not None
    assert result.failure.kind is kind


@pytest.mark.asyncio
async def test_generate_empty_choice_is_bad_response() -> None:
    adapter = OpenAITextGenAdapter(
        client=chat_client(FakeCompletions(content=None)),
        model="m",
        provider="openai",
    )

    result = await adapter.generate(system_prompt="s", history=[], user_text="hi")

    assert result.failure is not None
    assert result.failure.kind is FailureKind.BAD_RESPONSE
    assert result.failure.detail == "No response from AI"


# -------------------------
# Speech synthesis
# -------------------------

@pytest.mark.asyncio
async def test_speech_returns_mp3() -> None:
    speech = FakeSpeech(audio=b"ID3audio")
    adapter = OpenAISpeechAdapter(client=speech_client(speech), model="gpt-4o-mini-tts")

    result = await adapter.synthesize(text="hello", voice="alloy", speed=1.0)

    assert result.value is not None
    assert result.value.audio == b"ID3audio"
    assert result.value.audio_format == "mp3"
    assert speech.calls[0]["voice"] == "alloy"
    assert speech.calls[0]["input"] == "hello"


@pytest.mark.asyncio
async def test_speech_empty_payload_is_bad_response() -> None:
    adapter = OpenAISpeechAdapter(client=speech_client(FakeSpeech(audio=b"")), model="m")

    result = await adapter.synthesize(text="hello", voice="alloy", speed=1.0)

    assert result.failure is not None
    assert result.failure.kind is FailureKind.BAD_RESPONSE


@pytest.mark.asyncio
async def test_speech_connection_error_is_unavailable() -> None:
    speech = FakeSpeech(error=openai.APIConnectionError(request=REQUEST))
    adapter = OpenAISpeechAdapter(client=speech_client(speech), model="m")

    result = await adapter.synthesize(text="hello", voice="alloy", speed=1.0)

    assert result.failure is not None
    assert result.failure.kind is FailureKind.UNAVAILABLE


@pytest.mark.asyncio
async def test_disabled_tts_never_configured() -> None:
    adapter = DisabledTTSAdapter("TTS_PROVIDER=none")

    result = await adapter.synthesize(text="hello", voice="alloy", speed=1.0)

    assert adapter.configured is False
    assert result.failure is not None
    assert result.failure.kind is FailureKind.UNCONFIGURED
