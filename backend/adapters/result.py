"""
Uniform adapter outcome contract.

Every external call (TextGen, TextToSpeech, recognizer setup) returns an
AdapterResult: either a value or a classified AdapterFailure. Call sites
branch on result.ok instead of catching vendor exceptions, so a failing
collaborator can never tear down a session.

Rules:
- Adapters translate vendor exceptions into FailureKind at the boundary.
- UNCONFIGURED is returned without touching the network.
- call_with_timeout() is the one place a deadline becomes a TIMEOUT failure.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Generic, TypeVar

T = TypeVar("T")


class FailureKind(str, Enum):
    """
    Failure classification shared by all adapters.

    UNCONFIGURED:
        Credentials or client missing. No call was attempted.

    UNAVAILABLE:
        Network failure, connection refused, vendor 5xx.

    BAD_RESPONSE:
        Vendor answered, but the answer is unusable (4xx, empty choices,
        empty audio, undecodable payload).

    TIMEOUT:
        No answer within the caller's deadline.
    """

    UNCONFIGURED = "unconfigured"
    UNAVAILABLE = "unavailable"
    BAD_RESPONSE = "bad_response"
    TIMEOUT = "timeout"


@dataclass(frozen=True)
class AdapterFailure:
    kind: FailureKind
    detail: str

    def describe(self) -> str:
        return f"{self.kind.value}: {self.detail}"


@dataclass(frozen=True)
class AdapterResult(Generic[T]):
    """Either value or failure is set, never both."""

    value: T | None = None
    failure: AdapterFailure | None = None

    @property
    def ok(self) -> bool:
        return self.failure is None

    @classmethod
    def success(cls, value: T) -> AdapterResult[T]:
        return cls(value=value)

    @classmethod
    def fail(cls, kind: FailureKind, detail: str) -> AdapterResult[T]:
        return cls(failure=AdapterFailure(kind=kind, detail=detail))


async def call_with_timeout(
    call: Awaitable[AdapterResult[T]],
    timeout_s: float,
) -> AdapterResult[T]:
    """
    Await an adapter call with a hard deadline.

    Expiry cancels the underlying call and yields a TIMEOUT failure. An
    adapter that raises despite the contract is reported as UNAVAILABLE.
    """
    try:
        return await asyncio.wait_for(call, timeout=timeout_s)
    except asyncio.TimeoutError:
        return AdapterResult.fail(
            FailureKind.TIMEOUT, f"no response within {timeout_s:g}s"
        )
    except Exception as exc:  # pylint: disable=broad-exception-caught
        return AdapterResult.fail(
            FailureKind.UNAVAILABLE, f"{type(exc).__name__}: {exc}"
        )
