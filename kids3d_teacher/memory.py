"""In-process conversation memory, one instance per session."""

from typing import List, Union

from kids3d_teacher.models import DEFAULT_TIER, Tier, Turn

# Matches the history cap of the saved browser session
DEFAULT_MAX_TURNS = 200


class ConversationMemory:
    """Ordered user/assistant turns plus the selected difficulty tier."""

    def __init__(self, tier: Union[Tier, str] = DEFAULT_TIER, max_turns: int = DEFAULT_MAX_TURNS):
        self._turns: List[Turn] = []
        self._tier = Tier.parse(tier)
        self.max_turns = max_turns

    def append_user(self, text: str) -> Turn:
        return self._append("user", text)

    def append_assistant(self, text: str) -> Turn:
        return self._append("assistant", text)

    def get_history(self) -> List[Turn]:
        """Return a copy of the turns, oldest first."""
        return list(self._turns)

    def clear(self) -> None:
        self._turns = []

    def set_tier(self, tier: Union[Tier, str]) -> None:
        self._tier = Tier.parse(tier)

    def get_tier(self) -> Tier:
        return self._tier

    def __len__(self) -> int:
        return len(self._turns)

    def _append(self, role: str, text: str) -> Turn:
        turn = Turn(role=role, text=text)
        self._turns.append(turn)
        if self.max_turns > 0 and len(self._turns) > self.max_turns:
            del self._turns[: len(self._turns) - self.max_turns]
        return turn
