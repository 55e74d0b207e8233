"""OpenAI-compatible chat completions adapter (OpenAI, Azure OpenAI, Groq)."""
from __future__ import annotations

import time
from typing import Any, Mapping, Sequence

import openai

from adapters.llm.base import TextGenAdapter
from adapters.result import AdapterResult, FailureKind
from context.serialization import serialize_for_llm
from constants import TEXTGEN_MAX_TOKENS, TEXTGEN_TEMPERATURE
from observability.logger import log_event


class OpenAITextGenAdapter(TextGenAdapter):
    """
    Concrete text generation adapter.

    Design notes:
    - One adapter instance is shared by every session in the process; it
      holds no per-session state.
    - client is an openai.AsyncOpenAI / AsyncAzureOpenAI, or None when the
      deployment has no credentials.
    - For Azure, model is the deployment name.
    """

    def __init__(
        self,
        *,
        client: Any | None,
        model: str,
        provider: str,
        max_tokens: int = TEXTGEN_MAX_TOKENS,
        temperature: float = TEXTGEN_TEMPERATURE,
    ) -> None:
        self._client = client
        self._model = model
        self._provider = provider
        self._max_tokens = max_tokens
        self._temperature = temperature

    @property
    def configured(self) -> bool:
        return self._client is not None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def generate(
        self,
        *,
        system_prompt: str,
        history: Sequence[Mapping[str, str]],
        user_text: str,
    ) -> AdapterResult[str]:
        if self._client is None:
            return AdapterResult.fail(
                FailureKind.UNCONFIGURED, f"{self._provider} credentials not set"
            )

        messages = serialize_for_llm(
            system_prompt=system_prompt,
            history=history,
            user_text=user_text,
        )

        t0 = time.monotonic_ns()
        try:
            completion = await self._client.chat.completions.create(
                model=self._model,
                messages=messages,
                max_tokens=self._max_tokens,
                temperature=self._temperature,
            )
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

        text = self._extract_text(completion)
        if not text:
            return AdapterResult.fail(FailureKind.BAD_RESPONSE, "No response from AI")

        log_event({
            "event_type": "textgen_completed",
            "provider": self._provider,
            "model": self._model,
            "history_turns": len(history),
            "chars": len(text),
            "latency_ms": (time.monotonic_ns() - t0) // 1_000_000,
        })
        return AdapterResult.success(text)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _extract_text(completion: Any) -> str:
        """Extract choices[0].message.content, tolerating missing pieces."""
        try:
            content = completion.choices[0].message.content
        except (AttributeError, IndexError, TypeError):
            return ""
        return content.strip() if isinstance(content, str) else ""
