"""
Turn-taking loop: listen, finalize an utterance, stay quiet while the reply is
spoken, listen again.

State flow:
    IDLE -> LISTENING -> FINALIZING -> (IDLE | restart) -> LISTENING ...
    any  -> SUSPENDED while speech output is active -> LISTENING after it ends
    any  -> IDLE on stop()

Every timer goes through the injected Scheduler, so the whole transition table
can be driven with a virtual clock.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Callable, Optional

from kids3d_teacher.speech.capture import (
    CaptureEngine,
    CaptureErrorKind,
    CaptureOptions,
    CaptureStartError,
    EngineFactory,
    RecognitionEvent,
    classify_capture_error,
)
from kids3d_teacher.speech.device import DESKTOP, DeviceProfile, SpeechTimings
from kids3d_teacher.speech.scheduler import Scheduler, TimerHandle
from kids3d_teacher.speech.signals import Signal, SignalBus

logger = logging.getLogger(__name__)

UtteranceCallback = Callable[[str, bool], None]
Notifier = Callable[[str], None]

PERMISSION_NOTICE = "Please allow microphone access."
UNSUPPORTED_NOTICE = "Speech recognition is not supported in this environment."


class CaptureState(str, Enum):
    IDLE = "idle"
    LISTENING = "listening"
    FINALIZING = "finalizing"
    SUSPENDED = "suspended"


class TurnTakingLoop:
    """Owns at most one capture engine and decides when an utterance is finished."""

    def __init__(
        self,
        engine_factory: Optional[EngineFactory],
        scheduler: Scheduler,
        bus: Optional[SignalBus] = None,
        timings: Optional[SpeechTimings] = None,
        device: DeviceProfile = DESKTOP,
        notify: Optional[Notifier] = None,
    ):
        """
        Args:
            engine_factory: Builds a capture engine; None when capture is unavailable
            scheduler: Timer driver shared with the rest of the session
            bus: Signal bus; speak-start/speak-stop on it suspend and resume capture
            timings: Delays; defaults to the device's tuned values
            device: Device class, used for timings and engine options
            notify: User-facing notice sink (permission prompts, missing capability)
        """
        self._factory = engine_factory
        self._scheduler = scheduler
        self.bus = bus or SignalBus()
        self.device = device
        self.timings = timings or SpeechTimings.for_device(device)
        self._notify = notify

        self._state = CaptureState.IDLE
        self._engine: Optional[CaptureEngine] = None
        self._callback: Optional[UtteranceCallback] = None
        self._continuous = False
        self._deferred = False
        self._speaking = False
        self._lang = "en-US"

        self._final_text = ""
        self._interim_text = ""
        self._silence_timer: Optional[TimerHandle] = None
        self._restart_timer: Optional[TimerHandle] = None

        self._unsubscribe = [
            self.bus.subscribe(Signal.SPEAK_START, lambda **_: self.set_speaking(True)),
            self.bus.subscribe(Signal.SPEAK_STOP, lambda **_: self.set_speaking(False)),
        ]

    @property
    def state(self) -> CaptureState:
        return self._state

    @property
    def continuous(self) -> bool:
        return self._continuous

    @property
    def speaking(self) -> bool:
        return self._speaking

    @property
    def available(self) -> bool:
        return self._factory is not None

    # ------------------------------------------------------------------
    # Public transitions
    # ------------------------------------------------------------------

    def start(self, on_utterance: UtteranceCallback, continuous: bool = False,
              lang: Optional[str] = None) -> None:
        """Arm the loop with ``on_utterance`` and open capture unless output is speaking.

        Raises:
            CaptureStartError: If the engine could not be created or started
        """
        if self._factory is None:
            logger.error("Speech recognition not supported")
            self._tell_user(UNSUPPORTED_NOTICE)
            return

        self._callback = on_utterance
        self._continuous = continuous
        if lang:
            self._lang = lang

        if self._speaking:
            # Never listen while our own voice is audible
            self._deferred = True
            self._state = CaptureState.SUSPENDED
            logger.debug("Output is speaking; capture start deferred")
            return

        if self._engine is not None and self._state is CaptureState.LISTENING:
            return

        self._open_engine()

    def stop(self) -> None:
        """Drop callback and continuous mode, cancel timers, release the engine. Idempotent."""
        self._continuous = False
        self._callback = None
        self._deferred = False
        self._cancel_silence()
        self._cancel_restart()
        was_active = self._engine is not None
        self._release_engine()
        self._final_text = ""
        self._interim_text = ""
        self._state = CaptureState.IDLE
        if was_active:
            logger.info("Capture stopped")
            self.bus.emit(Signal.CAPTURE_STOPPED)

    def set_speaking(self, speaking: bool) -> None:
        """Suspend capture while output is audible; resume after it ends."""
        if speaking:
            self._speaking = True
            self._cancel_silence()
            self._cancel_restart()
            if self._engine is not None:
                logger.debug("Suspending capture while output is speaking (dropped %r)", self._pending_text())
                self._release_engine()
                self._final_text = ""
                self._interim_text = ""
                self._deferred = self._callback is not None
                self.bus.emit(Signal.CAPTURE_STOPPED)
            if self._wants_capture():
                self._state = CaptureState.SUSPENDED
            return

        self._speaking = False
        if self._wants_capture():
            self._state = CaptureState.SUSPENDED
            self._schedule_restart(self.timings.resume)
        elif self._state is CaptureState.SUSPENDED:
            self._state = CaptureState.IDLE

    def close(self) -> None:
        self.stop()
        for unsubscribe in self._unsubscribe:
            unsubscribe()
        self._unsubscribe = []

    # ------------------------------------------------------------------
    # Engine lifecycle
    # ------------------------------------------------------------------

    def _open_engine(self) -> None:
        self._cancel_restart()
        self._cancel_silence()
        self._release_engine()
        self._final_text = ""
        self._interim_text = ""

        options = CaptureOptions(lang=self._lang, continuous=not self.device.is_mobile)
        try:
            engine = self._factory(options)
        except Exception as e:
            self._state = CaptureState.IDLE
            raise CaptureStartError(f"Could not create capture engine: {e}") from e

        engine.on_start = lambda: self._handle_start(engine)
        engine.on_result = lambda event: self._handle_result(engine, event)
        engine.on_error = lambda code: self._handle_error(engine, code)
        engine.on_end = lambda: self._handle_end(engine)

        self._engine = engine
        self._state = CaptureState.LISTENING
        try:
            engine.start()
        except Exception as e:
            logger.error("Capture start failed: %s", e)
            self._release_engine()
            self._state = CaptureState.IDLE
            raise CaptureStartError(str(e)) from e
        self._deferred = False

    def _release_engine(self) -> None:
        engine = self._engine
        if engine is None:
            return
        self._engine = None
        engine.detach()
        try:
            engine.stop()
        except Exception as e:
            logger.debug("Ignoring failure while stopping capture engine: %s", e)

    def _handle_start(self, engine: CaptureEngine) -> None:
        if engine is not self._engine:
            return
        logger.info("Listening... (lang=%s)", self._lang)
        self.bus.emit(Signal.CAPTURE_STARTED)

    def _handle_result(self, engine: CaptureEngine, event: RecognitionEvent) -> None:
        if engine is not self._engine or self._state is not CaptureState.LISTENING:
            return
        self._cancel_silence()

        final_parts = []
        interim_parts = []
        for result in event.results[event.result_index:]:
            if result.is_final:
                final_parts.append(result.transcript)
            else:
                interim_parts.append(result.transcript)

        if final_parts:
            self._final_text += " ".join(final_parts) + " "
        self._interim_text = "".join(interim_parts)

        if final_parts:
            self._finalize("final result")
            return

        if self._pending_text():
            logger.debug("... %s", self._interim_text)
            self._silence_timer = self._scheduler.call_later(self.timings.silence, self._on_silence)

    def _handle_error(self, engine: CaptureEngine, code: str) -> None:
        if engine is not self._engine:
            return
        self._cancel_silence()
        kind = classify_capture_error(code)
        if kind is CaptureErrorKind.NO_SPEECH:
            logger.debug("No speech detected")
        elif kind is CaptureErrorKind.PERMISSION:
            logger.warning("Microphone permission denied (%s)", code)
            # Restarting would only hit the same wall
            self._continuous = False
            self._tell_user(PERMISSION_NOTICE)
        else:
            logger.warning("Capture error: %s", code)
        self.bus.emit(Signal.CAPTURE_ERROR, code=code, kind=kind)

    def _handle_end(self, engine: CaptureEngine) -> None:
        if engine is not self._engine:
            return
        logger.debug("Capture engine ended")
        self._cancel_silence()
        if self._pending_text():
            self._finalize("engine ended")
            return
        self._engine = None
        engine.detach()
        if self._state is CaptureState.LISTENING:
            self._idle_or_restart()

    # ------------------------------------------------------------------
    # Finalize and restart
    # ------------------------------------------------------------------

    def _on_silence(self) -> None:
        self._silence_timer = None
        if self._state is CaptureState.LISTENING and self._pending_text():
            self._finalize("silence timeout")

    def _finalize(self, reason: str) -> None:
        text = self._pending_text()
        self._state = CaptureState.FINALIZING
        self._final_text = ""
        self._interim_text = ""
        self._cancel_silence()
        self._release_engine()

        callback = self._callback
        if text and callback is not None:
            logger.info("Utterance finalized (%s): %s", reason, text)
            try:
                callback(text, True)
            except Exception:
                logger.exception("Utterance callback failed")

        # The callback may already have stopped, restarted or suspended us
        if self._state is CaptureState.FINALIZING:
            self._idle_or_restart()

    def _idle_or_restart(self) -> None:
        self._state = CaptureState.IDLE
        self.bus.emit(Signal.CAPTURE_STOPPED)
        if self._continuous and not self._speaking and self._callback is not None:
            self._schedule_restart(self.timings.restart)

    def _schedule_restart(self, delay: float, attempt: int = 0) -> None:
        self._cancel_restart()
        self._restart_timer = self._scheduler.call_later(delay, lambda: self._restart(attempt))

    def _restart(self, attempt: int) -> None:
        self._restart_timer = None
        if self._speaking or self._callback is None or self._engine is not None:
            return
        if not self._wants_capture():
            return
        try:
            self.start(self._callback, continuous=self._continuous, lang=self._lang)
        except CaptureStartError as e:
            if attempt == 0:
                logger.warning("Capture restart failed (%s); retrying in %.1fs", e, self.timings.retry)
                self._schedule_restart(self.timings.retry, attempt=1)
            else:
                logger.error("Capture restart failed again (%s); giving up", e)
                self._state = CaptureState.IDLE

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _wants_capture(self) -> bool:
        return self._callback is not None and (self._continuous or self._deferred)

    def _pending_text(self) -> str:
        return (self._final_text + self._interim_text).strip()

    def _cancel_silence(self) -> None:
        if self._silence_timer is not None:
            self._silence_timer.cancel()
            self._silence_timer = None

    def _cancel_restart(self) -> None:
        if self._restart_timer is not None:
            self._restart_timer.cancel()
            self._restart_timer = None

    def _tell_user(self, message: str) -> None:
        if self._notify is None:
            return
        try:
            self._notify(message)
        except Exception:
            logger.exception("User notice failed")
