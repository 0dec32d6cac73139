"""Speech capture, turn-taking and speech output."""

from kids3d_teacher.speech.capture import (
    CaptureEngine,
    CaptureErrorKind,
    CaptureOptions,
    CaptureStartError,
    RecognitionEvent,
    RecognitionResult,
)
from kids3d_teacher.speech.device import DeviceProfile, SpeechTimings
from kids3d_teacher.speech.loop import CaptureState, TurnTakingLoop
from kids3d_teacher.speech.output import SpeechOutput, SynthesisEngine, Utterance, Voice
from kids3d_teacher.speech.scheduler import AsyncioScheduler, Scheduler, TimerHandle
from kids3d_teacher.speech.signals import Signal, SignalBus

__all__ = [
    "AsyncioScheduler",
    "CaptureEngine",
    "CaptureErrorKind",
    "CaptureOptions",
    "CaptureStartError",
    "CaptureState",
    "DeviceProfile",
    "RecognitionEvent",
    "RecognitionResult",
    "Scheduler",
    "Signal",
    "SignalBus",
    "SpeechOutput",
    "SpeechTimings",
    "SynthesisEngine",
    "TimerHandle",
    "TurnTakingLoop",
    "Utterance",
    "Voice",
]
