"""Speech capture engine abstraction (speech-to-text session)."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional


@dataclass(frozen=True)
class RecognitionResult:
    """One recognized segment with its alternatives, best first."""
    alternatives: List[str]
    is_final: bool = False

    @property
    def transcript(self) -> str:
        return self.alternatives[0] if self.alternatives else ""


@dataclass(frozen=True)
class RecognitionEvent:
    """
    Result batch as delivered by the engine. Results before ``result_index``
    were already reported and are skipped.
    """
    results: List[RecognitionResult] = field(default_factory=list)
    result_index: int = 0

    @classmethod
    def single(cls, text: str, is_final: bool = False) -> "RecognitionEvent":
        return cls(results=[RecognitionResult([text], is_final)])


@dataclass(frozen=True)
class CaptureOptions:
    lang: str = "en-US"
    continuous: bool = True
    interim_results: bool = True
    max_alternatives: int = 1


class CaptureErrorKind(str, Enum):
    PERMISSION = "permission"
    NO_SPEECH = "no-speech"
    NETWORK = "network"
    OTHER = "other"


def classify_capture_error(code: str) -> CaptureErrorKind:
    if code in ("not-allowed", "service-not-allowed"):
        return CaptureErrorKind.PERMISSION
    if code == "no-speech":
        return CaptureErrorKind.NO_SPEECH
    if code == "network":
        return CaptureErrorKind.NETWORK
    return CaptureErrorKind.OTHER


class CaptureStartError(RuntimeError):
    """The capture engine refused to start."""


class CaptureEngine(ABC):
    """Abstract interface for speech capture engines.

    The owner assigns the handlers before calling ``start``:
        on_start() -> None
        on_result(event: RecognitionEvent) -> None
        on_error(code: str) -> None
        on_end() -> None
    """

    def __init__(self, options: CaptureOptions):
        self.options = options
        self.on_start: Optional[Callable[[], None]] = None
        self.on_result: Optional[Callable[[RecognitionEvent], None]] = None
        self.on_error: Optional[Callable[[str], None]] = None
        self.on_end: Optional[Callable[[], None]] = None

    @abstractmethod
    def start(self):
        """Begin capturing. May raise if the platform refuses."""
        pass

    @abstractmethod
    def stop(self):
        """Stop capturing; the engine delivers pending results and then ends."""
        pass

    def detach(self):
        """Drop all handlers so a released engine can no longer reach its owner."""
        self.on_start = None
        self.on_result = None
        self.on_error = None
        self.on_end = None


EngineFactory = Callable[[CaptureOptions], CaptureEngine]
