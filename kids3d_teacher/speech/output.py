"""Speech output: one audible utterance at a time, announced on the signal bus."""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from kids3d_teacher.speech.device import DESKTOP, DeviceProfile, SpeechTimings
from kids3d_teacher.speech.scheduler import Scheduler, TimerHandle
from kids3d_teacher.speech.signals import Signal, SignalBus

logger = logging.getLogger(__name__)

PREFERRED_VOICES = (
    "Google US English Female",
    "Google UK English Female",
    "Microsoft Zira",
    "Samantha",
    "Karen",
    "Victoria",
)

_MARKDOWN_RE = re.compile(r"[*_~`#\[\]]")
_SPACE_RE = re.compile(r"\s+")
_FEMALE_RE = re.compile(r"female|woman|girl", re.IGNORECASE)


@dataclass(frozen=True)
class Voice:
    name: str
    lang: str


@dataclass(frozen=True)
class VoiceSettings:
    rate: float
    pitch: float
    volume: float = 1.0
    lang: str = "en-US"

    @classmethod
    def for_device(cls, device: DeviceProfile) -> "VoiceSettings":
        if device.is_mobile:
            if device.is_android:
                return cls(rate=0.85, pitch=1.12)
            return cls(rate=0.88, pitch=1.15)
        return cls(rate=0.95, pitch=1.22)


class Utterance:
    """Text plus voice settings and the callbacks the engine reports through."""

    def __init__(self, text: str, settings: VoiceSettings, voice: Optional[Voice] = None):
        self.text = text
        self.settings = settings
        self.voice = voice
        self.on_start: Optional[Callable[[], None]] = None
        self.on_end: Optional[Callable[[], None]] = None
        self.on_error: Optional[Callable[[str], None]] = None


class SynthesisEngine(ABC):
    """Abstract text-to-speech engine."""

    @abstractmethod
    def voices(self) -> List[Voice]:
        pass

    @abstractmethod
    def speak(self, utterance: Utterance):
        """Queue ``utterance``; the engine fires its callbacks as playback progresses."""
        pass

    @abstractmethod
    def cancel(self):
        """Silence everything queued or playing."""
        pass


def clean_text(text: str) -> str:
    """Strip markdown markers and collapse whitespace so the engine reads plain prose."""
    return _SPACE_RE.sub(" ", _MARKDOWN_RE.sub("", text or "")).strip()


def select_best_voice(voices: Sequence[Voice]) -> Optional[Voice]:
    if not voices:
        return None

    for name in PREFERRED_VOICES:
        for voice in voices:
            if name in voice.name:
                return voice

    for voice in voices:
        if voice.lang.startswith(("en-US", "en-GB")) and _FEMALE_RE.search(voice.name):
            return voice

    for voice in voices:
        if voice.lang.startswith("en"):
            return voice
    return voices[0]


class SpeechOutput:
    """Speaks replies; starting a new utterance cancels the one in flight."""

    def __init__(self, engine: Optional[SynthesisEngine], bus: SignalBus, scheduler: Scheduler,
                 device: DeviceProfile = DESKTOP, timings: Optional[SpeechTimings] = None):
        self._engine = engine
        self.bus = bus
        self._scheduler = scheduler
        self.device = device
        self.timings = timings or SpeechTimings.for_device(device)
        self.settings = VoiceSettings.for_device(device)

        self._current: Optional[Utterance] = None
        self._pending: Optional[TimerHandle] = None
        self._speaking = False
        self.last_spoken = ""

    @property
    def speaking(self) -> bool:
        return self._speaking

    @property
    def available(self) -> bool:
        return self._engine is not None

    def speak(self, text: str) -> Optional[Utterance]:
        """Speak ``text`` after cancelling any in-flight output. Empty text is ignored."""
        cleaned = clean_text(text)
        if not cleaned:
            return None
        if self._engine is None:
            logger.warning("No speech synthesis available; dropping reply")
            return None

        self.cancel()
        self.last_spoken = cleaned

        utterance = Utterance(cleaned, self.settings, select_best_voice(self._engine.voices()))
        utterance.on_start = lambda: self._handle_start(utterance)
        utterance.on_end = lambda: self._handle_end(utterance)
        utterance.on_error = lambda error: self._handle_error(utterance, error)
        self._current = utterance

        if self.timings.speak > 0:
            self._pending = self._scheduler.call_later(self.timings.speak, lambda: self._dispatch(utterance))
        else:
            self._dispatch(utterance)
        return utterance

    def cancel(self) -> None:
        """Silence current output. Idempotent."""
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None
        was_active = self._current is not None
        self._current = None
        if self._engine is not None and was_active:
            try:
                self._engine.cancel()
            except Exception as e:
                logger.debug("Ignoring synthesis cancel failure: %s", e)
        if self._speaking:
            self._speaking = False
            self.bus.emit(Signal.SPEAK_STOP, text=self.last_spoken, cancelled=True)

    def _dispatch(self, utterance: Utterance) -> None:
        self._pending = None
        if utterance is not self._current:
            return
        try:
            self._engine.speak(utterance)
        except Exception as e:
            logger.error("Speech synthesis failed to start: %s", e)
            self._handle_error(utterance, str(e))

    def _handle_start(self, utterance: Utterance) -> None:
        if utterance is not self._current:
            return
        self._speaking = True
        logger.info("Speaking...")
        self.bus.emit(Signal.SPEAK_START, text=utterance.text)

    def _handle_end(self, utterance: Utterance) -> None:
        if utterance is not self._current:
            return
        self._current = None
        self._speaking = False
        logger.info("Done speaking")
        self.bus.emit(Signal.SPEAK_STOP, text=utterance.text, cancelled=False)

    def _handle_error(self, utterance: Utterance, error: str) -> None:
        if utterance is not self._current:
            return
        logger.error("Speech synthesis error: %s", error)
        self._current = None
        self._speaking = False
        self.bus.emit(Signal.SPEAK_STOP, text=utterance.text, cancelled=False, error=error)
