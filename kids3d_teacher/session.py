"""Practice session: wires capture, memory, prompts, gateway, speech output and avatar."""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Optional, Set, Tuple, Union

from kids3d_teacher.avatar import AvatarPresenter, ModelLoader
from kids3d_teacher.client import ChatClient, ChatClientError
from kids3d_teacher.config import Config
from kids3d_teacher.memory import ConversationMemory
from kids3d_teacher.models import ChatMode, Correction, Tier
from kids3d_teacher.prompt import (
    build_casual_prompt,
    build_practice_prompt,
    build_prompt,
    parse_practice_reply,
)
from kids3d_teacher.speech.capture import EngineFactory
from kids3d_teacher.speech.device import DESKTOP, DeviceProfile, SpeechTimings
from kids3d_teacher.speech.loop import Notifier, TurnTakingLoop
from kids3d_teacher.speech.output import SpeechOutput, SynthesisEngine
from kids3d_teacher.speech.scheduler import Scheduler
from kids3d_teacher.speech.signals import SignalBus

logger = logging.getLogger(__name__)

APOLOGY = "Sorry, I lost connection. Can you try again?"

CHALLENGES = [
    "Tell me about something that made you smile today!",
    "What's your favorite hobby or thing to do?",
    "If you could learn any new skill, what would it be?",
    "Tell me about a friend who's important to you.",
    "What's your favorite anime or show right now?",
    "Describe your perfect weekend!",
]

# (temperature, max_tokens) per mode
MODE_SAMPLING = {
    ChatMode.COACH: (0.5, None),
    ChatMode.CASUAL: (0.5, 100),
    ChatMode.PRACTICE: (0.3, 200),
}


class PracticeSession:
    """One learner, one page load. Nothing here is shared between sessions."""

    def __init__(
        self,
        client: Optional[ChatClient],
        capture_factory: Optional[EngineFactory],
        synthesis_engine: Optional[SynthesisEngine],
        scheduler: Scheduler,
        avatar_loader: Optional[ModelLoader] = None,
        config: Optional[Config] = None,
        device: DeviceProfile = DESKTOP,
        notify: Optional[Notifier] = None,
        lang: str = "en-IN",
    ):
        config = config or Config.from_env()
        timings = SpeechTimings.from_config(config, device)

        self.bus = SignalBus()
        self.memory = ConversationMemory()
        self.client = client or ChatClient(config.backend_url, timeout=config.llm_timeout_seconds)
        self.loop = TurnTakingLoop(capture_factory, scheduler, self.bus, timings, device, notify)
        self.output = SpeechOutput(synthesis_engine, self.bus, scheduler, device, timings)
        self.avatar = AvatarPresenter(avatar_loader, self.bus) if avatar_loader else None

        self.mode = ChatMode.COACH
        self.lang = lang
        self.history_turns = config.prompt_history_turns
        self.last_correction: Optional[Correction] = None
        self.active = False
        self._tasks: Set[asyncio.Task] = set()

    def start_conversation(self) -> None:
        """Mic on: listen continuously until paused."""
        self.active = True
        logger.info("Conversation started")
        self.loop.start(self._on_utterance, continuous=True, lang=self.lang)

    def pause(self) -> None:
        self.active = False
        self.loop.stop()
        self.output.cancel()
        logger.info("Conversation paused")

    def reset(self) -> None:
        """Fresh start: forget the conversation and silence output."""
        self.memory.clear()
        self.output.cancel()
        self.last_correction = None
        logger.info("Conversation cleared")

    def set_mode(self, mode: Union[ChatMode, str]) -> None:
        self.mode = ChatMode(mode)
        self.last_correction = None

    def set_tier(self, tier: Union[Tier, str]) -> None:
        self.memory.set_tier(tier)

    def speak_challenge(self) -> str:
        challenge = random.choice(CHALLENGES)
        self.output.speak(challenge)
        return challenge

    async def handle_utterance(self, text: str) -> Optional[str]:
        """Run one turn: remember, ask the gateway, remember the reply, speak it.

        Returns:
            The text that was spoken, or None when nothing was sent
        """
        text = (text or "").strip()
        if not text:
            return None

        history = self.memory.get_history()
        self.memory.append_user(text)
        prompt, temperature, max_tokens = self._request_for(text, history)

        try:
            reply = await self.client.generate(prompt, temperature=temperature, max_tokens=max_tokens)
        except ChatClientError as e:
            logger.error("Backend error: %s", e)
            self.output.speak(APOLOGY)
            return None

        spoken = reply
        if self.mode is ChatMode.PRACTICE:
            correction = parse_practice_reply(reply, text)
            if correction is not None:
                self.last_correction = correction
                spoken = correction.reply
            else:
                logger.warning("Practice reply was not valid JSON; speaking it as-is")

        self.memory.append_assistant(spoken)
        self.output.speak(spoken)
        return spoken

    async def wait_idle(self) -> None:
        """Wait for in-flight turns started by the capture loop."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def close(self) -> None:
        self.pause()
        self.loop.close()
        if self.avatar is not None:
            self.avatar.dispose()

    def _request_for(self, text: str, history) -> Tuple[str, Optional[float], Optional[int]]:
        temperature, max_tokens = MODE_SAMPLING[self.mode]
        if self.mode is ChatMode.PRACTICE:
            prompt = build_practice_prompt(text)
        elif self.mode is ChatMode.CASUAL:
            prompt = build_casual_prompt(history, text)
        else:
            prompt = build_prompt(self.memory.get_tier(), history, text, history_turns=self.history_turns)
        return prompt, temperature, max_tokens

    def _on_utterance(self, text: str, is_final: bool) -> None:
        task = asyncio.get_running_loop().create_task(self.handle_utterance(text))
        self._tasks.add(task)
        task.add_done_callback(self._turn_done)

    def _turn_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error("Turn failed", exc_info=error)
