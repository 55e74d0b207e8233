"""
Text generation adapter contract.

Purpose:
- Define the interface for single request/response completions.
- Keep timeouts, fallback text and context construction OUT of the adapter.

Rules:
- This file contains NO vendor logic.
- No retries.
- Failures are returned, never raised.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Mapping, Sequence

from adapters.result import AdapterResult


class TextGenAdapter(ABC):
    """
    Abstract base class for text generation adapters.

    The adapter is a *dumb pipe*:
    (system prompt, prior turns, user text) -> vendor -> text.

    Session responsibilities (NOT here):
    - Timeout
    - Echo fallback
    - Which history to send
    - Recording the exchange
    """

    @property
    @abstractmethod
    def configured(self) -> bool:
        """True when a call could reach the vendor."""
        raise NotImplementedError

    @abstractmethod
    async def generate(
        self,
        *,
        system_prompt: str,
        history: Sequence[Mapping[str, str]],
        user_text: str,
    ) -> AdapterResult[str]:
        """
        Produce one reply.

        Contract:
        - Returns AdapterResult.success(text) with non-empty text, or a
          classified failure.
        - UNCONFIGURED must be returned without any network call.
        - Must NOT retry internally.
        - Must NOT raise.
        """
        raise NotImplementedError
