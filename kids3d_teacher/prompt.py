from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Union

from kids3d_teacher.models import Correction, Tier, Turn
from kids3d_teacher.schema import try_parse_json

PERSONA_NAME = "Spidey"

# Only the most recent turns are serialized; older ones stay in memory.
DEFAULT_HISTORY_TURNS = 20
CASUAL_HISTORY_TURNS = 15


@dataclass(frozen=True)
class ToneConfig:
    praise: str
    correction: str
    max_corrections: int
    length: str
    examples: str
    grade: str


TONES: Dict[Tier, ToneConfig] = {
    Tier.BEGINNER: ToneConfig(
        praise="HUGE praise, lots of excitement, simple words",
        correction="only 1 tiny gentle correction",
        max_corrections=1,
        length="30–60 words max",
        examples="cricket, mango, school, dosa, Bollywood",
        grade="Class 3 (8 years)",
    ),
    Tier.INTERMEDIATE: ToneConfig(
        praise="Strong specific praise",
        correction="1–2 corrections + explain why",
        max_corrections=2,
        length="70–120 words",
        examples="exams, friends, movies, phone",
        grade="Class 7 (13 years)",
    ),
    Tier.ADVANCED: ToneConfig(
        praise="Confident praise",
        correction="grammar + fluency + filler words + public speaking tip",
        max_corrections=2,
        length="100–180 words",
        examples="debates, interviews, presentations",
        grade="Class 10 (15-16 years)",
    ),
}


def tone_for(tier: Union[Tier, str, None]) -> ToneConfig:
    return TONES[Tier.parse(tier)]


def format_history(history: Sequence[Turn], assistant_label: str = PERSONA_NAME,
                   limit: Optional[int] = None) -> str:
    turns = list(history)
    if limit is not None:
        turns = turns[-limit:] if limit > 0 else []
    lines: List[str] = []
    for t in turns:
        speaker = "Student" if t.role == "user" else assistant_label
        lines.append(f"{speaker}: {t.text}")
    return "\n".join(lines).strip()


def build_prompt(tier: Union[Tier, str, None], history: Sequence[Turn], utterance: str,
                 history_turns: int = DEFAULT_HISTORY_TURNS) -> str:
    """
    Spoken-English coaching prompt shared by every provider.
    Unknown tiers fall back to the default tier instead of raising.
    """
    tone = tone_for(tier)
    convo = format_history(history, limit=history_turns)
    plural = "thing" if tone.max_corrections == 1 else "things"

    return f"""You are {PERSONA_NAME} — the coolest, most encouraging Spoken English Coach for Indian kids.
Never judge, always hype them up.

Rules:
- Start with massive praise
- Correct max {tone.max_corrections} {plural} gently
- Give the natural way to say it
- End with "Now you try saying: [sentence]"
- Use Indian examples

Grade: {tone.grade}
{tone.praise} | {tone.correction} | {tone.length} | Examples: {tone.examples}

Conversation so far:
{convo or "None"}

Student just said: "{utterance}"

Respond now — warm, fun, zero judgment."""


def build_casual_prompt(history: Sequence[Turn], utterance: str) -> str:
    """Free conversation with the companion persona; no corrections."""
    convo = format_history(history, assistant_label="You", limit=CASUAL_HISTORY_TURNS)
    return f"""You're a friendly 16-17 year old anime-style English companion. Warm, supportive, genuinely interested.

Personality:
- Cheerful and encouraging
- Natural and conversational
- Show genuine interest with follow-up questions
- Age-appropriate for 13-15 year olds
- No catchphrases or repetitive patterns

Recent conversation:
{convo or "(First message)"}

Student: "{utterance}"

Respond in 1-3 sentences (30-50 words). Be warm, natural, engaging!"""


def build_practice_prompt(utterance: str) -> str:
    """Grammar check that asks the model for a strict JSON verdict."""
    return f"""You are a friendly English learning companion (age 16-17, warm and supportive).

TASK: Analyze this sentence for grammar/spelling errors.

Student said: "{utterance}"

Respond in this EXACT JSON format (no markdown):
{{
  "correctness": "correct" OR "almost" OR "wrong",
  "corrected": "the corrected sentence",
  "explanation": "brief explanation",
  "reply": "encouraging response"
}}

Rules:
- If perfect: correctness="correct"
- If minor errors: correctness="almost"
- If major errors: correctness="wrong"
- Always be encouraging
- Keep explanation under 20 words"""


def parse_practice_reply(reply: str, user_text: str = "") -> Optional[Correction]:
    """Decode a practice-mode reply. Returns None when the model ignored the JSON format."""
    obj = try_parse_json(reply)
    if obj is None or not str(obj.get("reply", "")).strip():
        return None

    correctness = str(obj.get("correctness", "")).strip().lower()
    if correctness not in ("correct", "almost", "wrong"):
        correctness = "wrong"
    corrected = str(obj.get("corrected", "")).strip() or user_text
    if correctness == "correct":
        corrected = user_text or corrected

    return Correction(
        correctness=correctness,
        corrected=corrected,
        explanation=str(obj.get("explanation", "")).strip(),
        reply=str(obj.get("reply", "")).strip(),
    )
