"""Data models for Kids3D Teacher."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, StrictStr


class Tier(str, Enum):
    """Difficulty tier. School class levels (class3, class7, class10) are accepted as aliases."""

    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"

    @classmethod
    def parse(cls, value: Union["Tier", str, None], default: Optional["Tier"] = None) -> "Tier":
        """Normalize a tier name, falling back to ``default`` (intermediate) when unknown."""
        if default is None:
            default = DEFAULT_TIER
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return default
        key = value.strip().lower()
        return _TIER_ALIASES.get(key, default)


DEFAULT_TIER = Tier.INTERMEDIATE

_TIER_ALIASES = {
    "beginner": Tier.BEGINNER,
    "class3": Tier.BEGINNER,
    "intermediate": Tier.INTERMEDIATE,
    "class7": Tier.INTERMEDIATE,
    "advanced": Tier.ADVANCED,
    "class10": Tier.ADVANCED,
}


class ChatMode(str, Enum):
    COACH = "coach"
    CASUAL = "casual"
    PRACTICE = "practice"


@dataclass(frozen=True)
class Turn:
    """One message of the conversation."""
    role: Literal["user", "assistant"]
    text: str
    ts: float = field(default_factory=time.time)

    def to_dict(self):
        return {
            "role": self.role,
            "text": self.text,
            "ts": self.ts
        }


@dataclass(frozen=True)
class Correction:
    """Structured feedback parsed from a practice-mode reply."""
    correctness: Literal["correct", "almost", "wrong"]
    corrected: str
    explanation: str
    reply: str


# Request models
class ChatRequest(BaseModel):
    """Body of /api/chat and /api/generate. ``text`` is an alias for ``prompt``."""
    prompt: Optional[StrictStr] = None
    text: Optional[StrictStr] = None
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None

    @property
    def resolved_prompt(self) -> Optional[str]:
        return self.prompt if self.prompt is not None else self.text


class TtsRequest(BaseModel):
    text: Optional[Any] = None


class ChatResponse(BaseModel):
    ok: bool = True
    reply: str
