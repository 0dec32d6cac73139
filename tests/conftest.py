"""Shared fakes: virtual-time scheduler, capture/synthesis engines and avatar models."""

import itertools
from typing import Callable, Dict, List, Optional, Sequence, Union

import pytest

from kids3d_teacher.avatar import AvatarModel, ModelLoader, Node
from kids3d_teacher.speech.capture import CaptureEngine, CaptureOptions, RecognitionEvent
from kids3d_teacher.speech.output import SynthesisEngine, Utterance, Voice
from kids3d_teacher.speech.scheduler import Scheduler, TimerHandle

ENV_VARS = [
    "GEMINI_API_KEY", "GEMINI_MODEL", "GEMINI_API_URL",
    "OPENAI_API_KEY", "OPENAI_MODEL", "OPENAI_API_URL",
    "TTS_PROVIDER", "LLM_TIMEOUT_SECONDS", "PROMPT_HISTORY_TURNS",
    "SPEECH_SILENCE_MS", "SPEECH_RESTART_MS", "SPEECH_RESUME_MS", "SPEECH_RETRY_MS",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class FakeTimer(TimerHandle):
    def __init__(self, when: float, seq: int, callback: Callable[[], None]):
        self.when = when
        self.seq = seq
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeScheduler(Scheduler):
    """Virtual clock; nothing fires until ``advance`` is called."""

    def __init__(self):
        self.now = 0.0
        self._timers: List[FakeTimer] = []
        self._seq = itertools.count()

    def call_later(self, delay, callback):
        timer = FakeTimer(self.now + max(0.0, delay), next(self._seq), callback)
        self._timers.append(timer)
        return timer

    def time(self) -> float:
        return self.now

    @property
    def pending(self) -> List[FakeTimer]:
        return [t for t in self._timers if not t.cancelled]

    def advance(self, seconds: float) -> None:
        target = self.now + seconds + 1e-9
        while True:
            due = [t for t in self.pending if t.when <= target]
            if not due:
                break
            timer = min(due, key=lambda t: (t.when, t.seq))
            self._timers.remove(timer)
            self.now = max(self.now, timer.when)
            timer.callback()
        self.now = target


class FakeCaptureEngine(CaptureEngine):
    def __init__(self, options: CaptureOptions, fail_start: bool = False):
        super().__init__(options)
        self.fail_start = fail_start
        self.started = False
        self.stopped = False

    def start(self):
        if self.fail_start:
            raise RuntimeError("microphone busy")
        self.started = True
        if self.on_start:
            self.on_start()

    def stop(self):
        self.stopped = True

    # Test drivers
    def emit(self, event: RecognitionEvent):
        if self.on_result:
            self.on_result(event)

    def interim(self, text: str):
        self.emit(RecognitionEvent.single(text, is_final=False))

    def final(self, text: str):
        self.emit(RecognitionEvent.single(text, is_final=True))

    def error(self, code: str):
        if self.on_error:
            self.on_error(code)

    def end(self):
        if self.on_end:
            self.on_end()


class EngineRecorder:
    """Engine factory that remembers every engine it built."""

    def __init__(self):
        self.engines: List[FakeCaptureEngine] = []
        self.fail_next = 0

    def __call__(self, options: CaptureOptions) -> FakeCaptureEngine:
        fail = self.fail_next > 0
        if fail:
            self.fail_next -= 1
        engine = FakeCaptureEngine(options, fail_start=fail)
        self.engines.append(engine)
        return engine

    @property
    def latest(self) -> FakeCaptureEngine:
        return self.engines[-1]


class FakeSynthesisEngine(SynthesisEngine):
    def __init__(self, voices: Optional[Sequence[Voice]] = None):
        self._voices = list(voices or [])
        self.spoken: List[Utterance] = []
        self.cancel_calls = 0

    def voices(self):
        return list(self._voices)

    def speak(self, utterance: Utterance):
        self.spoken.append(utterance)

    def cancel(self):
        self.cancel_calls += 1

    # Test drivers
    def begin(self, utterance: Optional[Utterance] = None):
        (utterance or self.spoken[-1]).on_start()

    def finish(self, utterance: Optional[Utterance] = None):
        (utterance or self.spoken[-1]).on_end()

    def fail(self, error: str = "synthesis-failed", utterance: Optional[Utterance] = None):
        (utterance or self.spoken[-1]).on_error(error)


class FakeModel(AvatarModel):
    def __init__(self, bones: Sequence[str] = ("chest", "spine", "head"),
                 expressions: Sequence[str] = ("aa", "blink")):
        self._root = Node()
        self.bones: Dict[str, Node] = {name: Node() for name in bones}
        self._expressions = list(expressions)
        self.expression_values: Dict[str, float] = {}
        self.disposed = False

    @property
    def root(self) -> Node:
        return self._root

    def bone(self, name):
        return self.bones.get(name)

    def expression_names(self):
        return list(self._expressions)

    def set_expression(self, name, value):
        self.expression_values[name] = value

    def dispose(self):
        self.disposed = True


class FakeLoader(ModelLoader):
    def __init__(self, models: Dict[str, Union[AvatarModel, Exception]]):
        self.models = models
        self.requested: List[str] = []

    async def load(self, path):
        self.requested.append(path)
        result = self.models[path]
        if isinstance(result, Exception):
            raise result
        return result


@pytest.fixture
def scheduler():
    return FakeScheduler()


@pytest.fixture
def engines():
    return EngineRecorder()


@pytest.fixture
def synth():
    return FakeSynthesisEngine()


@pytest.fixture
def make_synth():
    return FakeSynthesisEngine


@pytest.fixture
def make_model():
    return FakeModel


@pytest.fixture
def make_loader():
    return FakeLoader
