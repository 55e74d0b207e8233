"""
Conversation serialization for text generation.

Responsibilities:
- Convert system prompt + prior turns + current user text into the
  chat-completions message list.

Non-responsibilities:
- No truncation logic
- No turn storage
- No logging
"""

from __future__ import annotations

from typing import Sequence, Mapping


def serialize_for_llm(
    *,
    system_prompt: str,
    history: Sequence[Mapping[str, str]],
    user_text: str,
) -> list[dict[str, str]]:
    """
    Serialize a turn request into chat-completions message format.

    [
        {"role": "system", "content": "..."},
        {"role": "user", "content": "..."},
        {"role": "assistant", "content": "..."},
        ...
        {"role": "user", "content": "<current user text>"},
    ]

    Rules:
    - System prompt is always first
    - Prior turns come next, in the order given
    - Current user text is appended last as a fresh user turn
    """
    messages: list[dict[str, str]] = [
        {"role": "system", "content": system_prompt},
    ]

    messages.extend(
        {"role": turn["role"], "content": turn["content"]}
        for turn in history
    )

    messages.append({"role": "user", "content": user_text})

    return messages
