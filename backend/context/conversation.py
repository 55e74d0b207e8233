"""
Conversation context management.

Responsibilities:
- Store ordered user/assistant turns for one session, in memory only
- Enforce truncation rules:
  - Max 8 turns OR max 6,000 characters (whichever is hit first)
  - Drop oldest turns until constraints are satisfied
  - Allow a single oversized turn (with warning)
- Provide a serializable representation for text generation

Non-responsibilities:
- No persistence (context dies with the session)
- No prompt formatting
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from observability.logger import log_event
from constants import MAX_CONTEXT_CHARS, MAX_CONTEXT_TURNS


Role = Literal["user", "assistant"]


@dataclass(frozen=True)
class Turn:
    """Single conversation turn."""
    role: Role
    text: str
    turn_id: int


class ConversationContext:
    """
    Mutable conversation context owned by a Session.

    The chat-turn worker decides *when* to add turns; this class decides
    *what to keep*.

    Invariants:
    - Turns are stored in chronological order
    - turn_id is monotonic but not required to be contiguous
    """

    def __init__(
        self,
        session_id: str | None = None,
        *,
        max_turns: int = MAX_CONTEXT_TURNS,
        max_chars: int = MAX_CONTEXT_CHARS,
    ) -> None:
        self.session_id = session_id
        self._max_turns = max_turns
        self._max_chars = max_chars
        self._turns: list[Turn] = []
        self._next_turn_id = 0

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def record_exchange(self, user_text: str, assistant_text: str) -> int:
        """Append one user turn and its reply. Returns the exchange's turn id."""
        turn_id = self._next_turn_id
        self._next_turn_id += 1
        self._turns.append(Turn(role="user", text=user_text, turn_id=turn_id))
        self._turns.append(Turn(role="assistant", text=assistant_text, turn_id=turn_id))
        self._truncate()
        return turn_id

    def clear(self) -> None:
        self._turns.clear()

    def __len__(self) -> int:
        return len(self._turns)

    def serialize(self) -> list[dict[str, str]]:
        """
        Serialize turns into a role/content structure.

        [
          {"role": "user", "content": "..."},
          {"role": "assistant", "content": "..."},
        ]
        """
        return [
            {"role": t.role, "content": t.text}
            for t in self._turns
        ]

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _truncate(self) -> None:
        while self._violates_limits():
            if len(self._turns) == 1:
                log_event({
                    "event_type": "context_single_turn_oversized",
                    "session_id": self.session_id,
                    "turn_id": self._turns[0].turn_id,
                    "char_count": len(self._turns[0].text),
                })
                break

            dropped = self._turns.pop(0)
            log_event({
                "event_type": "context_turn_dropped",
                "session_id": self.session_id,
                "turn_id": dropped.turn_id,
                "role": dropped.role,
                "char_count": len(dropped.text),
            })

    def _violates_limits(self) -> bool:
        if len(self._turns) > self._max_turns:
            return True

        total_chars = sum(len(t.text) for t in self._turns)
        return total_chars > self._max_chars
