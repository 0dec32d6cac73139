"""Device classification and the timing values tuned per device class."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

from kids3d_teacher.config import Config

_MOBILE_RE = re.compile(r"Android|webOS|iPhone|iPad|iPod|BlackBerry|IEMobile|Opera Mini", re.IGNORECASE)
_IOS_RE = re.compile(r"iPad|iPhone|iPod")
_ANDROID_RE = re.compile(r"Android", re.IGNORECASE)


@dataclass(frozen=True)
class DeviceProfile:
    is_mobile: bool = False
    is_ios: bool = False
    is_android: bool = False

    @classmethod
    def from_user_agent(cls, user_agent: Optional[str]) -> "DeviceProfile":
        ua = user_agent or ""
        return cls(
            is_mobile=bool(_MOBILE_RE.search(ua)),
            is_ios=bool(_IOS_RE.search(ua)),
            is_android=bool(_ANDROID_RE.search(ua)),
        )


DESKTOP = DeviceProfile()


@dataclass(frozen=True)
class SpeechTimings:
    """
    Empirically tuned UX delays, in seconds.

    silence: quiet time after the last partial result before finalizing
    restart: delay before reopening capture after the engine ended
    resume: delay before reopening capture after speech output ended
    retry: delay before the single retry of a failed restart
    speak: delay before handing an utterance to the synthesis engine
    """
    silence: float = 0.6
    restart: float = 0.3
    resume: float = 0.8
    retry: float = 1.5
    speak: float = 0.0

    @classmethod
    def for_device(cls, device: DeviceProfile) -> "SpeechTimings":
        if device.is_mobile:
            return cls(silence=0.7, restart=0.4, resume=1.2, retry=1.5, speak=0.15)
        return cls()

    @classmethod
    def from_config(cls, config: Config, device: DeviceProfile = DESKTOP) -> "SpeechTimings":
        base = cls.for_device(device)
        return cls(
            silence=_seconds(config.speech_silence_ms, base.silence),
            restart=_seconds(config.speech_restart_ms, base.restart),
            resume=_seconds(config.speech_resume_ms, base.resume),
            retry=_seconds(config.speech_retry_ms, base.retry),
            speak=base.speak,
        )


def _seconds(ms: Optional[int], default: float) -> float:
    return default if ms is None else ms / 1000.0
